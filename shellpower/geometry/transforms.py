"""
Coordinate transforms for the sun's point of view.

The rasterizer never keeps a shared matrix stack; a
:class:`SunEyeTransform` value is built per step and passed explicitly to
everything that needs model -> sun-eye projection.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .mesh import Mesh

_WORLD_UP = np.array([0.0, 1.0, 0.0])
_FALLBACK_UP = np.array([0.0, 0.0, -1.0])


@dataclass(frozen=True)
class SunEyeTransform:
    """Orthographic view looking from the sun at the mesh centre.

    ``basis`` rows are the eye-space right, up and towards-sun axes.
    Pixel coordinates run from 0 to ``resolution`` across a square of
    side ``2 * half_extent`` metres.
    """

    center: NDArray[np.float64]
    basis: NDArray[np.float64]
    half_extent: float
    resolution: int

    @property
    def pixel_size(self) -> float:
        return 2.0 * self.half_extent / self.resolution

    @property
    def pixel_area(self) -> float:
        """Footprint of one texel perpendicular to the sun (m^2)."""
        return self.pixel_size * self.pixel_size

    def project(
        self, points: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """Map model-space points to ``(px, py, depth)``.

        Larger depth is closer to the sun.
        """
        eye = (np.asarray(points, dtype=np.float64) - self.center) @ self.basis.T
        scale = self.resolution / (2.0 * self.half_extent)
        px = (eye[:, 0] + self.half_extent) * scale
        py = (eye[:, 1] + self.half_extent) * scale
        return px, py, eye[:, 2]


def sun_eye_transform(
    mesh: Mesh, sun_dir: NDArray[np.float64], resolution: int
) -> SunEyeTransform:
    """Build the sun-eye view for *mesh*.

    The view volume half extent is half the bounding-box diagonal, so the
    whole mesh stays inside the frustum for any sun direction. World +Y
    is the up vector unless the sun is straight overhead (or underfoot),
    in which case world -Z is used.
    """
    w = np.asarray(sun_dir, dtype=np.float64)
    w = w / np.linalg.norm(w)

    up = _WORLD_UP
    if np.linalg.norm(np.cross(up, w)) < 1e-6:
        up = _FALLBACK_UP
    u = np.cross(up, w)
    u /= np.linalg.norm(u)
    v = np.cross(w, u)

    half = mesh.diagonal * 0.5
    if half <= 0.0:
        half = 0.5  # single point or empty mesh

    return SunEyeTransform(
        center=mesh.center,
        basis=np.vstack([u, v, w]),
        half_extent=half,
        resolution=int(resolution),
    )


def sun_direction(
    azimuth: float, elevation: float, heading: float = 0.0, tilt: float = 0.0
) -> NDArray[np.float64]:
    """Unit vector towards the sun in the array's model frame (+Y up).

    Parameters
    ----------
    azimuth, elevation : float
        Solar azimuth and elevation (radians), e.g. from an astronomy
        helper.
    heading : float
        Vehicle heading (radians), same convention as *azimuth*.
    tilt : float
        Vehicle roll about its longitudinal axis (radians).
    """
    phi = azimuth - heading
    x = math.cos(elevation) * math.cos(phi)
    y = math.cos(elevation) * math.sin(phi)
    z = math.sin(elevation)

    z_t = math.cos(tilt) * z + math.sin(tilt) * y
    y_t = math.cos(tilt) * y - math.sin(tilt) * z
    return np.array([x, z_t, y_t])
