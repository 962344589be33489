"""
ShellPower: power output of a PV array on a curved surface.

The array is rasterized from the sun's point of view to find how much
light reaches each cell, then every cell and series string is solved
electrically, including partial shading and bypass diodes.
"""

from .core.exceptions import (
    BackendSetupError,
    ConvergenceError,
    PreconditionError,
    ShellPowerError,
)
from .electrical import CellSpec, DiodeSpec, IVTrace
from .geometry import Mesh, ShadowSilhouette, sun_direction
from .layout import (
    ArraySpec,
    BoundsSpec,
    BypassDiode,
    Cell,
    CellString,
    decode_layout,
    encode_layout,
)
from .raster import IrradianceRasterizer
from .simulation import (
    ArraySimulationStepInput,
    ArraySimulationStepOutput,
    ArraySimulator,
    run_time_averaged,
    write_sweep_csv,
)

__version__ = "0.1.0"

__all__ = [
    # errors
    "ShellPowerError",
    "PreconditionError",
    "ConvergenceError",
    "BackendSetupError",
    # model
    "ArraySpec",
    "BoundsSpec",
    "BypassDiode",
    "Cell",
    "CellString",
    "CellSpec",
    "DiodeSpec",
    "IVTrace",
    "Mesh",
    # operations
    "encode_layout",
    "decode_layout",
    "ShadowSilhouette",
    "sun_direction",
    "IrradianceRasterizer",
    "ArraySimulator",
    "ArraySimulationStepInput",
    "ArraySimulationStepOutput",
    "run_time_averaged",
    "write_sweep_csv",
]
