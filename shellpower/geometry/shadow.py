"""
Silhouette edges and ground shadow volume for a light direction.

Only used for the display overlay; the rasterizer does its own
visibility test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .mesh import Mesh

logger = logging.getLogger(__name__)

GRAZING_EPS = 1e-6


@dataclass(frozen=True)
class EdgeIndex:
    """Unique undirected edges of a mesh and their incident triangles.

    ``edges`` is (k, 2) with ``edges[:, 0] < edges[:, 1]``, sorted
    lexicographically. ``edge_of`` is (m, 3): the edge id of each
    triangle side. ``counts`` is the number of incident triangles per
    edge (1 on a boundary, 2 on a manifold, more on a non-manifold edge).
    """

    edges: NDArray[np.intp]
    edge_of: NDArray[np.intp]
    counts: NDArray[np.intp]

    @property
    def n_edges(self) -> int:
        return int(self.edges.shape[0])


def build_edge_index(mesh: Mesh) -> EdgeIndex:
    tris = mesh.triangles
    if tris.shape[0] == 0:
        empty = np.zeros((0, 2), dtype=np.intp)
        return EdgeIndex(empty, np.zeros((0, 3), dtype=np.intp), np.zeros(0, dtype=np.intp))

    sides = np.stack(
        [tris[:, [0, 1]], tris[:, [1, 2]], tris[:, [2, 0]]], axis=1
    ).reshape(-1, 2)
    sides = np.sort(sides, axis=1)
    edges, inverse, counts = np.unique(
        sides, axis=0, return_inverse=True, return_counts=True
    )
    return EdgeIndex(
        edges=edges.astype(np.intp),
        edge_of=inverse.reshape(-1, 3).astype(np.intp),
        counts=counts.astype(np.intp),
    )


def lit_triangles(mesh: Mesh, light_dir: NDArray[np.float64]) -> NDArray[np.bool_]:
    """Triangles whose face normal points towards the light."""
    return mesh.face_normals @ np.asarray(light_dir, dtype=np.float64) > 0.0


def silhouette_edges(index: EdgeIndex, lit: NDArray[np.bool_]) -> NDArray[np.intp]:
    """Edges on the lit/unlit boundary.

    An edge qualifies when its incident triangles are a mix of lit and
    unlit, or when it is a boundary edge of a lit triangle. Returns the
    (s, 2) vertex pairs in lexicographic order.
    """
    if index.n_edges == 0:
        return index.edges

    flat = index.edge_of.ravel()
    lit_count = np.bincount(
        flat, weights=np.repeat(lit, 3).astype(np.float64), minlength=index.n_edges
    ).astype(np.intp)

    mixed = (lit_count > 0) & (lit_count < index.counts)
    boundary = (index.counts == 1) & (lit_count == 1)
    return index.edges[mixed | boundary]


class ShadowSilhouette:
    """Silhouette and shadow volume of one mesh placed at *position*.

    The edge index is built once; :meth:`set_light` recomputes the lit
    mask and silhouette, which depend only on the mesh and light.
    """

    def __init__(self, mesh: Mesh, position=(0.0, 0.0, 0.0)) -> None:
        self.mesh = mesh
        self.position = np.asarray(position, dtype=np.float64)
        self.edge_index = build_edge_index(mesh)
        self.light_dir = np.zeros(3)
        self.lit = np.zeros(mesh.n_triangles, dtype=bool)
        self.silhouette = np.zeros((0, 2), dtype=np.intp)

    def set_light(self, light_dir) -> None:
        self.light_dir = np.asarray(light_dir, dtype=np.float64)
        self.lit = lit_triangles(self.mesh, self.light_dir)
        self.silhouette = silhouette_edges(self.edge_index, self.lit)
        logger.debug(
            "Silhouette: %d of %d edges, %d lit triangles",
            len(self.silhouette), self.edge_index.n_edges, int(self.lit.sum()),
        )

    def shadow_volume(self) -> NDArray[np.float64]:
        """Quads ``(p0, p1, p0', p1')`` from each silhouette edge to its
        ground projection, shape (k, 4, 3).

        The ground plane is the mesh's lowest point. Empty when the light
        is at or below the horizon.
        """
        light = self.light_dir
        if light[1] <= 0.0 or len(self.silhouette) == 0:
            return np.zeros((0, 4, 3))

        ly = light[1] if abs(light[1]) >= GRAZING_EPS else GRAZING_EPS
        min_y = self.mesh.vertices[:, 1].min() + self.position[1]

        p0 = self.mesh.vertices[self.silhouette[:, 0]] + self.position
        p1 = self.mesh.vertices[self.silhouette[:, 1]] + self.position
        p0g = p0 - np.outer((p0[:, 1] - min_y) / ly, light)
        p1g = p1 - np.outer((p1[:, 1] - min_y) / ly, light)
        return np.stack([p0, p1, p0g, p1g], axis=1)

    def outline(self) -> NDArray[np.float64]:
        """Silhouette edges as (s, 2, 3) world-space segments, empty when
        the light is below the horizon."""
        if self.light_dir[1] <= 0.0:
            return np.zeros((0, 2, 3))
        return self.mesh.vertices[self.silhouette] + self.position
