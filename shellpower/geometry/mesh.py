"""
Triangle mesh of the array surface.

Vertices are in metres with +Y up. The mesh is immutable once built: all
arrays are copied and flagged read-only, and per-triangle face normals
are cached at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from shellpower.core.exceptions import PreconditionError


@dataclass(frozen=True, eq=False)
class Mesh:
    """Indexed triangle mesh with per-vertex normals.

    Parameters
    ----------
    vertices : array-like, shape (n, 3)
        Vertex positions (m).
    normals : array-like, shape (n, 3)
        Vertex normals, parallel to *vertices*. Need not be unit length.
    triangles : array-like, shape (m, 3)
        Vertex indices of each triangle.

    Face normals are taken from the triangle winding and flipped where
    they point away from the triangle's summed vertex normals, so that
    loaders with inconsistent winding still give outward faces.
    """

    vertices: NDArray[np.float64]
    normals: NDArray[np.float64]
    triangles: NDArray[np.intp]
    face_normals: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        vertices = np.array(self.vertices, dtype=np.float64)
        normals = np.array(self.normals, dtype=np.float64)
        triangles = np.array(self.triangles, dtype=np.intp)

        if vertices.ndim != 2 or vertices.shape[1] != 3:
            raise PreconditionError(
                f"vertices must have shape (n, 3), got {vertices.shape}"
            )
        if normals.shape != vertices.shape:
            raise PreconditionError(
                f"normals must match vertices {vertices.shape}, got {normals.shape}"
            )
        if triangles.size == 0:
            triangles = triangles.reshape(0, 3)
        if triangles.ndim != 2 or triangles.shape[1] != 3:
            raise PreconditionError(
                f"triangles must have shape (m, 3), got {triangles.shape}"
            )
        if triangles.size and (triangles.min() < 0 or triangles.max() >= len(vertices)):
            raise PreconditionError(
                f"triangle indices must be in [0, {len(vertices)}), "
                f"got [{triangles.min()}, {triangles.max()}]"
            )

        face_normals = _face_normals(vertices, normals, triangles)

        for arr in (vertices, normals, triangles, face_normals):
            arr.setflags(write=False)

        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "normals", normals)
        object.__setattr__(self, "triangles", triangles)
        object.__setattr__(self, "face_normals", face_normals)

    @property
    def n_vertices(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def n_triangles(self) -> int:
        return int(self.triangles.shape[0])

    @property
    def bounding_box(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Axis-aligned ``(min, max)`` corners."""
        if self.n_vertices == 0:
            zero = np.zeros(3)
            return zero, zero
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    @property
    def center(self) -> NDArray[np.float64]:
        """Centre of the axis-aligned bounding box."""
        lo, hi = self.bounding_box
        return (lo + hi) * 0.5

    @property
    def diagonal(self) -> float:
        """Length of the bounding-box diagonal (m)."""
        lo, hi = self.bounding_box
        return float(np.linalg.norm(hi - lo))


def _face_normals(
    vertices: NDArray[np.float64],
    normals: NDArray[np.float64],
    triangles: NDArray[np.intp],
) -> NDArray[np.float64]:
    """Unit face normals from winding, oriented along the vertex normals."""
    if triangles.shape[0] == 0:
        return np.zeros((0, 3))

    a = vertices[triangles[:, 0]]
    b = vertices[triangles[:, 1]]
    c = vertices[triangles[:, 2]]
    fn = np.cross(b - a, c - a)

    vn = normals[triangles].sum(axis=1)
    flip = np.einsum("ij,ij->i", fn, vn) < 0.0
    fn[flip] *= -1.0

    length = np.linalg.norm(fn, axis=1, keepdims=True)
    return np.divide(fn, length, out=np.zeros_like(fn), where=length > 0.0)
