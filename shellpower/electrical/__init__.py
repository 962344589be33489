"""
Electrical module.

Single-diode cell IV curves and series-string combination with bypass
diodes.
"""

from .cell import CellSpec, calc_sweep
from .iv_trace import IVTrace
from .string import DiodeSpec, calc_string_iv

__all__ = [
    # cell
    "CellSpec",
    "calc_sweep",
    # string
    "DiodeSpec",
    "calc_string_iv",
    # iv_trace
    "IVTrace",
]
