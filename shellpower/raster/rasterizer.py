"""
Software irradiance rasterizer.

The mesh is drawn orthographically from the sun's point of view into an
R x R grid. Every texel that ends up showing a lit part of the array
carries three channels:

* A: the layout colour under that point, i.e. which cell it belongs to;
* B: direct-beam power reaching the texel's surface patch (W);
* C: the surface area that texel's footprint covers (m^2).

The depth buffer keeps only the surface nearest to the sun, so anything
behind it is shadowed. :meth:`IrradianceRasterizer.reduce` then sums B
and C per cell.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from shellpower.config import settings
from shellpower.core.exceptions import BackendSetupError, PreconditionError
from shellpower.geometry.mesh import Mesh
from shellpower.geometry.shadow import lit_triangles
from shellpower.geometry.transforms import SunEyeTransform, sun_eye_transform
from shellpower.layout.array_spec import BoundsSpec
from shellpower.layout.colors import RGB, color_key, grayscale_mask, pack_rgb

from .scalar_codec import SCALAR_MAX, decode_scalar, encode_scalar

logger = logging.getLogger(__name__)

MAX_RESOLUTION = 16384
WATTS_SCALE = 1e-4
AREA_SCALE = 0.25

_BACKGROUND = 255
_SATURATED = np.nextafter(SCALAR_MAX, 0.0)


@dataclass(frozen=True)
class RasterBuffers:
    """Views of the rasterizer's buffers after one render.

    Only valid until the next render on the same rasterizer.
    """

    colors: NDArray[np.uint8]         # (R, R, 3) channel A
    watts: NDArray[np.float64]        # (R, R) channel B
    area: NDArray[np.float64]         # (R, R) channel C
    depth: NDArray[np.float64]        # (R, R), -inf where empty
    triangle_ids: NDArray[np.intp]    # (R, R), -1 where empty
    transform: SunEyeTransform


@dataclass(frozen=True)
class CellIrradiance:
    """Per-cell totals from one reduction pass."""

    watts_in: NDArray[np.float64]     # incoming power per cell (W)
    area: NDArray[np.float64]         # exposed area per cell (m^2)
    unlinked_watts: float
    unlinked_area: float
    unlinked_texels: int


class IrradianceRasterizer:
    """Rasterizes a mesh from the sun and reduces texels to per-cell totals.

    Buffers are allocated once and cleared at the start of every render.
    A single instance is not re-entrant: callers hold :attr:`lock` across
    :meth:`render` and :meth:`reduce`, and concurrent steps use separate
    instances.

    Parameters default to the matching ``settings`` fields.

    Raises
    ------
    BackendSetupError
        The resolution is out of range or the buffers cannot be allocated.
    """

    def __init__(
        self,
        resolution: Optional[int] = None,
        area_multiplier_max: Optional[float] = None,
        grazing_epsilon: Optional[float] = None,
        quantize_channels: Optional[bool] = None,
        shard_rows: Optional[int] = None,
        workers: Optional[int] = None,
    ) -> None:
        self.resolution = int(settings.raster_resolution if resolution is None else resolution)
        self.area_multiplier_max = float(
            settings.area_multiplier_max if area_multiplier_max is None else area_multiplier_max
        )
        self.grazing_epsilon = float(
            settings.grazing_epsilon if grazing_epsilon is None else grazing_epsilon
        )
        self.quantize_channels = bool(
            settings.quantize_channels if quantize_channels is None else quantize_channels
        )
        self.shard_rows = int(settings.reduction_shard_rows if shard_rows is None else shard_rows)
        self.workers = int(settings.reduction_workers if workers is None else workers)

        if not 0 < self.resolution <= MAX_RESOLUTION:
            raise BackendSetupError(
                f"raster resolution must be in (0, {MAX_RESOLUTION}], got {self.resolution}"
            )
        if self.shard_rows <= 0 or self.workers <= 0:
            raise BackendSetupError("reduction shard rows and workers must be positive")

        n = self.resolution
        try:
            self._colors = np.empty((n, n, 3), dtype=np.uint8)
            self._watts = np.empty((n, n), dtype=np.float64)
            self._area = np.empty((n, n), dtype=np.float64)
            self._depth = np.empty((n, n), dtype=np.float64)
            self._triangle_ids = np.empty((n, n), dtype=np.intp)
        except MemoryError as exc:
            raise BackendSetupError(
                f"cannot allocate {n}x{n} raster buffers"
            ) from exc

        self.lock = threading.Lock()
        logger.debug("Rasterizer ready: %dx%d", n, n)

    def clear(self) -> None:
        self._colors.fill(_BACKGROUND)
        self._watts.fill(0.0)
        self._area.fill(0.0)
        self._depth.fill(-np.inf)
        self._triangle_ids.fill(-1)

    # ------------------------------------------------------------------
    # Render pass
    # ------------------------------------------------------------------

    def render(
        self,
        mesh: Mesh,
        layout_image: NDArray[np.uint8],
        bounds: BoundsSpec,
        sun_dir: NDArray[np.float64],
        insolation: float,
    ) -> RasterBuffers:
        """Draw *mesh* as seen from the sun.

        Lit triangles (face normal towards the sun) are drawn first, so
        they win depth ties. Unlit triangles only occlude; their texels
        stay background.
        """
        self.clear()
        light = np.asarray(sun_dir, dtype=np.float64)
        transform = sun_eye_transform(mesh, light, self.resolution)
        pixel_area = transform.pixel_area

        px, py, pz = transform.project(mesh.vertices)
        lit = lit_triangles(mesh, light)
        order = np.concatenate([np.flatnonzero(lit), np.flatnonzero(~lit)])

        layout_h, layout_w = layout_image.shape[:2]
        saturated = 0

        for tri in order:
            ix = mesh.triangles[tri]
            x = px[ix]
            y = py[ix]
            z = pz[ix]

            det = (x[1] - x[0]) * (y[2] - y[0]) - (x[2] - x[0]) * (y[1] - y[0])
            if det == 0.0:
                continue  # edge-on from the sun

            c0 = max(int(np.ceil(x.min() - 0.5)), 0)
            c1 = min(int(np.floor(x.max() - 0.5)), self.resolution - 1)
            r0 = max(int(np.ceil(y.min() - 0.5)), 0)
            r1 = min(int(np.floor(y.max() - 0.5)), self.resolution - 1)
            if c0 > c1 or r0 > r1:
                continue

            sx, sy = np.meshgrid(
                np.arange(c0, c1 + 1) + 0.5, np.arange(r0, r1 + 1) + 0.5
            )
            b0 = ((x[1] - sx) * (y[2] - sy) - (x[2] - sx) * (y[1] - sy)) / det
            b1 = ((x[2] - sx) * (y[0] - sy) - (x[0] - sx) * (y[2] - sy)) / det
            b2 = ((x[0] - sx) * (y[1] - sy) - (x[1] - sx) * (y[0] - sy)) / det
            inside = (b0 >= 0.0) & (b1 >= 0.0) & (b2 >= 0.0)

            frag_z = b0 * z[0] + b1 * z[1] + b2 * z[2]
            win = (slice(r0, r1 + 1), slice(c0, c1 + 1))
            hit = inside & (frag_z > self._depth[win])
            if not hit.any():
                continue

            rows, cols = np.nonzero(hit)
            rows += r0
            cols += c0
            self._depth[rows, cols] = frag_z[hit]
            self._triangle_ids[rows, cols] = tri

            if not lit[tri]:
                self._colors[rows, cols] = _BACKGROUND
                self._watts[rows, cols] = 0.0
                self._area[rows, cols] = 0.0
                continue

            w = np.stack([b0[hit], b1[hit], b2[hit]], axis=1)

            normal = w @ mesh.normals[ix]
            length = np.linalg.norm(normal, axis=1)
            flat = length == 0.0
            if flat.any():
                normal[flat] = mesh.face_normals[tri]
                length[flat] = 1.0
            n_dot_l = normal @ light

            cos_factor = np.maximum(n_dot_l / length, 0.0)
            area_mult = np.clip(
                length / np.maximum(n_dot_l, self.grazing_epsilon),
                0.0, self.area_multiplier_max,
            )

            pos = w @ mesh.vertices[ix]
            u = (pos[:, 0] - bounds.x0) / bounds.width
            v = (pos[:, 2] - bounds.z0) / bounds.height
            tx = np.clip(np.floor(u * layout_w), 0, layout_w - 1).astype(np.intp)
            ty = np.clip(np.floor(v * layout_h), 0, layout_h - 1).astype(np.intp)

            watts = pixel_area * insolation * cos_factor
            area = pixel_area * area_mult
            if self.quantize_channels:
                watts, n_sat_w = _quantize(watts / WATTS_SCALE, WATTS_SCALE)
                area, n_sat_a = _quantize(area_mult / AREA_SCALE, pixel_area * AREA_SCALE)
                saturated += n_sat_w + n_sat_a

            self._colors[rows, cols] = layout_image[ty, tx, :3]
            self._watts[rows, cols] = watts
            self._area[rows, cols] = area

        if saturated:
            logger.warning(
                "%d channel values saturated the 8-bit encoding", saturated
            )

        return RasterBuffers(
            colors=self._colors,
            watts=self._watts,
            area=self._area,
            depth=self._depth,
            triangle_ids=self._triangle_ids,
            transform=transform,
        )

    # ------------------------------------------------------------------
    # Reduction pass
    # ------------------------------------------------------------------

    def reduce(
        self,
        buffers: RasterBuffers,
        cell_colors: Sequence[RGB],
        cell_area: float,
        indirect_irradiance: float = 0.0,
        encapsulation_loss: float = 0.0,
    ) -> CellIrradiance:
        """Sum channels B and C per cell colour.

        Every texel is visited once. Grayscale texels are background;
        coloured texels that match no cell are counted as unlinked and
        logged, never raised. Each cell then receives
        ``cell_area * indirect_irradiance`` and the total is scaled by
        ``1 - encapsulation_loss``.

        Row bands are reduced independently and merged in band order, so
        the result does not depend on :attr:`workers`.
        """
        keys = np.array([color_key(c) for c in cell_colors], dtype=np.int64)
        if len(np.unique(keys)) != len(keys):
            raise PreconditionError("Cell colours must be unique.")

        sort_ix = np.argsort(keys, kind="stable")
        sorted_keys = keys[sort_ix]
        n_cells = len(keys)

        bands = [
            (start, min(start + self.shard_rows, self.resolution))
            for start in range(0, self.resolution, self.shard_rows)
        ]

        def reduce_band(band: tuple[int, int]):
            rows = slice(*band)
            colors = buffers.colors[rows]
            foreground = ~grayscale_mask(colors)
            texel_keys = pack_rgb(colors)[foreground]
            watts = buffers.watts[rows][foreground]
            area = buffers.area[rows][foreground]

            if n_cells:
                pos = np.minimum(np.searchsorted(sorted_keys, texel_keys), n_cells - 1)
                linked = sorted_keys[pos] == texel_keys
                cell_ix = sort_ix[pos[linked]]
            else:
                linked = np.zeros(texel_keys.shape, dtype=bool)
                cell_ix = np.zeros(0, dtype=np.intp)

            return (
                np.bincount(cell_ix, weights=watts[linked], minlength=n_cells),
                np.bincount(cell_ix, weights=area[linked], minlength=n_cells),
                float(watts[~linked].sum()),
                float(area[~linked].sum()),
                int((~linked).sum()),
            )

        if self.workers > 1 and len(bands) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                parts = list(pool.map(reduce_band, bands))
        else:
            parts = [reduce_band(b) for b in bands]

        watts_in = np.zeros(n_cells)
        area = np.zeros(n_cells)
        unlinked_watts = 0.0
        unlinked_area = 0.0
        unlinked_texels = 0
        for band_watts, band_area, u_watts, u_area, u_texels in parts:
            watts_in += band_watts
            area += band_area
            unlinked_watts += u_watts
            unlinked_area += u_area
            unlinked_texels += u_texels

        if unlinked_texels:
            logger.warning(
                "%d texels matched no cell colour (%.3f W, %.4f m^2)",
                unlinked_texels, unlinked_watts, unlinked_area,
                extra={"unlinked_watts": unlinked_watts, "unlinked_area": unlinked_area},
            )

        watts_in += cell_area * indirect_irradiance
        watts_in *= 1.0 - encapsulation_loss

        return CellIrradiance(
            watts_in=watts_in,
            area=area,
            unlinked_watts=unlinked_watts,
            unlinked_area=unlinked_area,
            unlinked_texels=unlinked_texels,
        )


def _quantize(values: NDArray[np.float64], scale: float) -> tuple[NDArray[np.float64], int]:
    """Round-trip *values* through the two-byte encoding; returns the
    decoded values times *scale* and the number that saturated."""
    over = values >= SCALAR_MAX
    r, g = encode_scalar(np.where(over, _SATURATED, values))
    return decode_scalar(r, g, scale), int(over.sum())
