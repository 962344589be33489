"""Shared test fixtures for ShellPower engine tests."""

from __future__ import annotations

import numpy as np
import pytest

from shellpower.electrical.cell import CellSpec
from shellpower.geometry.mesh import Mesh
from shellpower.layout.array_spec import ArraySpec, BoundsSpec
from shellpower.raster.rasterizer import IrradianceRasterizer

RED = (255, 0, 0)
RED_BLUE = (255, 0, 128)


def unit(v) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    return v / np.linalg.norm(v)


def panel_arrays(x0, x1, z0, z1, y=0.0):
    """Vertices, normals and triangles of a horizontal rectangle facing +Y."""
    vertices = np.array([
        [x0, y, z0],
        [x1, y, z0],
        [x1, y, z1],
        [x0, y, z1],
    ], dtype=np.float64)
    normals = np.tile([0.0, 1.0, 0.0], (4, 1))
    triangles = np.array([[0, 1, 2], [0, 2, 3]])
    return vertices, normals, triangles


def merge_meshes(*parts) -> Mesh:
    vertices, normals, triangles = [], [], []
    offset = 0
    for v, n, t in parts:
        vertices.append(v)
        normals.append(n)
        triangles.append(t + offset)
        offset += len(v)
    return Mesh(np.vstack(vertices), np.vstack(normals), np.vstack(triangles))


# ======================================================================
# Mesh fixtures
# ======================================================================

@pytest.fixture
def cube_mesh() -> Mesh:
    """Unit cube centred on the origin, 8 shared vertices, corner normals."""
    vertices = np.array([
        [x, y, z]
        for x in (-0.5, 0.5)
        for y in (-0.5, 0.5)
        for z in (-0.5, 0.5)
    ], dtype=np.float64)
    normals = vertices / np.linalg.norm(vertices, axis=1, keepdims=True)
    # Index = 4*x + 2*y + z with each coordinate 0 (low) or 1 (high).
    triangles = np.array([
        [0, 1, 3], [0, 3, 2],   # -X
        [4, 6, 7], [4, 7, 5],   # +X
        [0, 4, 5], [0, 5, 1],   # -Y
        [2, 3, 7], [2, 7, 6],   # +Y
        [0, 2, 6], [0, 6, 4],   # -Z
        [1, 5, 7], [1, 7, 3],   # +Z
    ])
    return Mesh(vertices, normals, triangles)


@pytest.fixture
def flat_panel() -> Mesh:
    """2 m x 1 m panel at y = 0 facing up."""
    return Mesh(*panel_arrays(-1.0, 1.0, -0.5, 0.5))


@pytest.fixture
def two_plate_mesh() -> Mesh:
    """The flat panel plus a 1 m x 1 m plate hovering 1 m over its left half."""
    return merge_meshes(
        panel_arrays(-1.0, 1.0, -0.5, 0.5),
        panel_arrays(-1.0, 0.0, -0.5, 0.5, y=1.0),
    )


# ======================================================================
# Layout fixtures
# ======================================================================

@pytest.fixture
def panel_bounds() -> BoundsSpec:
    return BoundsSpec(x0=-1.0, x1=1.0, z0=-0.5, z1=0.5)


@pytest.fixture
def two_cell_layout() -> np.ndarray:
    """2 x 1 RGBA image: left texel one cell, right texel the next, same string."""
    image = np.zeros((1, 2, 4), dtype=np.uint8)
    image[0, 0] = (*RED, 255)
    image[0, 1] = (*RED_BLUE, 255)
    return image


@pytest.fixture
def cell_spec() -> CellSpec:
    """Default cell, but 1 m^2 so one cell covers one panel half."""
    return CellSpec(area=1.0)


@pytest.fixture
def panel_array(flat_panel, two_cell_layout, panel_bounds, cell_spec) -> ArraySpec:
    array = ArraySpec(
        mesh=flat_panel,
        layout_image=two_cell_layout,
        layout_bounds=panel_bounds,
        cell_spec=cell_spec,
    )
    array.read_strings_from_colors()
    return array


@pytest.fixture
def small_rasterizer() -> IrradianceRasterizer:
    return IrradianceRasterizer(resolution=128)
