"""
Cell layout codec.

The layout image is the wiring diagram: every cell is painted a flat,
unique colour. A string owns the colour family ``(R, G, *)`` and the
blue channel gives each cell's position in the string. Grayscale texels
are background.

:func:`encode_layout` paints an :class:`ArraySpec`'s logical strings
onto its image; :func:`decode_layout` recovers strings and cells from an
image. Decoding is the left-inverse of encoding.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from numpy.typing import NDArray

from shellpower.core.exceptions import PreconditionError

from .array_spec import ArraySpec, Cell, CellString
from .colors import BACKGROUND_MAX_GRAY, RGB, grayscale_mask, string_key

logger = logging.getLogger(__name__)

MAX_STRINGS = 255
MAX_CELLS_PER_STRING = 255


# ---------------------------------------------------------------------------
# Colour assignment
# ---------------------------------------------------------------------------

def assign_colors(strings: list[CellString]) -> None:
    """Give every cell of every non-empty string its wiring colour.

    Strings are spread over an ``steps x steps`` red/green grid where
    ``steps = ceil(sqrt(N))``. Grid slots on the diagonal (R == G) are
    skipped so no cell colour can ever be grayscale.
    """
    n_strings = len(strings)
    if n_strings > MAX_STRINGS:
        raise PreconditionError(
            f"Cannot create a layout texture with more than {MAX_STRINGS} "
            f"strings, got {n_strings}."
        )
    for s in strings:
        if len(s.cells) > MAX_CELLS_PER_STRING:
            raise PreconditionError(
                f"String {s.name!r} has {len(s.cells)} cells; at most "
                f"{MAX_CELLS_PER_STRING} fit in the blue channel."
            )
    if n_strings == 0:
        return

    steps = math.ceil(math.sqrt(n_strings))
    color_ix = 0
    for s in strings:
        if not any(cell.pixels for cell in s.cells):
            continue

        if color_ix // steps == color_ix % steps:
            color_ix += 1
        red = 255 * (color_ix // steps) // steps
        green = 255 * (color_ix % steps) // steps
        color_ix += 1

        n_cells = len(s.cells)
        for j, cell in enumerate(s.cells):
            cell.color = (red, green, 255 * j // max(1, n_cells))


def encode_layout(array: ArraySpec) -> None:
    """Repaint ``array.layout_image`` in place from ``array.strings``.

    Grayscale texels are kept as background (clipped to a gray level of
    200), all other texels are reset to opaque white, then every cell's
    registered texels are painted with its colour. Texel coordinates
    outside the image are ignored.

    Raises
    ------
    PreconditionError
        No image is loaded, there are too many strings, or a string has
        too many cells.
    """
    image = array.layout_image
    if image is None:
        raise PreconditionError("No layout texture is loaded.")
    _check_image(image)

    assign_colors(array.strings)

    gray = grayscale_mask(image)
    level = np.minimum(image[..., 0], BACKGROUND_MAX_GRAY)
    image[..., 0] = np.where(gray, level, 255)
    image[..., 1] = image[..., 0]
    image[..., 2] = image[..., 0]
    image[..., 3] = 255

    height, width = image.shape[:2]
    skipped = 0
    for s in array.strings:
        for cell in s.cells:
            if not cell.pixels:
                continue
            xy = np.asarray(cell.pixels, dtype=np.int64).reshape(-1, 2)
            inside = (
                (xy[:, 0] >= 0) & (xy[:, 0] < width)
                & (xy[:, 1] >= 0) & (xy[:, 1] < height)
            )
            skipped += int((~inside).sum())
            xy = xy[inside]
            image[xy[:, 1], xy[:, 0], :3] = cell.color
            image[xy[:, 1], xy[:, 0], 3] = 255

    if skipped:
        logger.debug("Ignored %d cell texels outside the %dx%d layout", skipped, width, height)


def decode_layout(
    image: NDArray[np.uint8],
) -> tuple[list[CellString], list[Cell]]:
    """Recover strings and cells from a layout image.

    Texels are scanned row by row. The first texel of a new ``(R, G, 0)``
    family creates a string named ``"String k"``; the first texel of a
    new ``(R, G, B)`` colour creates a cell in that string. Afterwards
    each string's cells are stably sorted by blue channel.

    Returns
    -------
    tuple
        ``(strings, cells)`` where *cells* is every cell in wiring order.

    Raises
    ------
    PreconditionError
        The image is malformed or has a non-opaque texel.
    """
    _check_image(image)
    if np.any(image[..., 3] != 255):
        raise PreconditionError("Layout texture cannot be transparent.")

    strings: list[CellString] = []
    string_map: dict[RGB, CellString] = {}
    cell_map: dict[RGB, Cell] = {}

    foreground = ~grayscale_mask(image)
    ys, xs = np.nonzero(foreground)  # row-major order
    colors = image[ys, xs, :3]

    for x, y, rgb in zip(xs.tolist(), ys.tolist(), map(tuple, colors.tolist())):
        cell = cell_map.get(rgb)
        if cell is None:
            skey = string_key(rgb)
            owner = string_map.get(skey)
            if owner is None:
                owner = CellString(name=f"String {len(strings)}")
                strings.append(owner)
                string_map[skey] = owner
            cell = Cell(color=rgb)
            cell_map[rgb] = cell
            owner.cells.append(cell)
        cell.pixels.append((x, y))

    for s in strings:
        s.cells.sort(key=lambda c: c.color[2])

    cells = [cell for s in strings for cell in s.cells]
    logger.debug("Decoded %d strings, %d cells", len(strings), len(cells))
    return strings, cells


def _check_image(image: NDArray[np.uint8]) -> None:
    if not isinstance(image, np.ndarray) or image.dtype != np.uint8:
        raise PreconditionError("Layout image must be a uint8 numpy array.")
    if image.ndim != 3 or image.shape[2] != 4:
        raise PreconditionError(
            f"Layout image must have shape (H, W, 4), got {image.shape}"
        )
