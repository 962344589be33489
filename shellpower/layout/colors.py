"""Colour keys used by the cell layout image."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

RGB = tuple[int, int, int]

# Grayscale background texels are clipped to this level so they never
# collide with white (unassigned) after normalisation.
BACKGROUND_MAX_GRAY = 200


def is_grayscale(rgb: RGB) -> bool:
    r, g, b = rgb
    return r == g and g == b


def grayscale_mask(image: NDArray[np.uint8]) -> NDArray[np.bool_]:
    """Per-texel :func:`is_grayscale` over an (..., >=3) array."""
    r = image[..., 0]
    g = image[..., 1]
    b = image[..., 2]
    return (r == g) & (g == b)


def pack_rgb(image: NDArray[np.uint8]) -> NDArray[np.int64]:
    """Pack the RGB channels of *image* into one integer key per texel."""
    rgb = image[..., :3].astype(np.int64)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def color_key(rgb: RGB) -> int:
    r, g, b = rgb
    return (int(r) << 16) | (int(g) << 8) | int(b)


def string_key(rgb: RGB) -> RGB:
    """Colour of the string a cell colour belongs to (blue cleared)."""
    return (rgb[0], rgb[1], 0)
