"""
Array layout module.

The logical array model (cells, strings, bypass diodes) and the codec
that maps it to and from a colour-coded layout image.
"""

from .array_spec import ArraySpec, BoundsSpec, BypassDiode, Cell, CellString
from .codec import decode_layout, encode_layout
from .colors import is_grayscale

__all__ = [
    # array_spec
    "ArraySpec",
    "BoundsSpec",
    "BypassDiode",
    "Cell",
    "CellString",
    # codec
    "encode_layout",
    "decode_layout",
    # colors
    "is_grayscale",
]
