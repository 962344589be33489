"""
Two-byte scalar encoding used by 8-bit render targets.

A non-negative value ``v < 128`` is stored as ``r = 2 * floor(v)`` and
``g = round(frac(v) * 255)``, and read back as
``scale * (r / 2 + g / 255)``. The round trip is exact to one
quantisation step, ``scale / 255``.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

SCALAR_MAX = 128.0


def encode_scalar(value: ArrayLike) -> tuple[NDArray[np.uint8], NDArray[np.uint8]]:
    """Encode *value* into ``(r, g)`` bytes.

    Raises
    ------
    ValueError
        Any value is negative, non-finite or >= 128.
    """
    v = np.asarray(value, dtype=np.float64)
    if not np.all(np.isfinite(v)) or np.any(v < 0.0) or np.any(v >= SCALAR_MAX):
        raise ValueError(f"scalar out of encodable range [0, {SCALAR_MAX:g})")

    whole = np.floor(v)
    frac = np.rint((v - whole) * 255.0)
    # A fraction that rounds up to 255/255 is kept at 255 rather than
    # carried, so r never exceeds 254.
    r = (whole * 2.0).astype(np.uint8)
    g = frac.astype(np.uint8)
    return r, g


def decode_scalar(r: ArrayLike, g: ArrayLike, scale: float = 1.0) -> NDArray[np.float64]:
    r = np.asarray(r, dtype=np.float64)
    g = np.asarray(g, dtype=np.float64)
    return scale * (r / 2.0 + g / 255.0)
