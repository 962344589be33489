"""
Geometry module.

Triangle mesh, sun-eye transforms and silhouette / shadow-volume
extraction for a light direction.
"""

from .mesh import Mesh
from .shadow import (
    EdgeIndex,
    ShadowSilhouette,
    build_edge_index,
    lit_triangles,
    silhouette_edges,
)
from .transforms import SunEyeTransform, sun_direction, sun_eye_transform

__all__ = [
    # mesh
    "Mesh",
    # transforms
    "SunEyeTransform",
    "sun_eye_transform",
    "sun_direction",
    # shadow
    "EdgeIndex",
    "ShadowSilhouette",
    "build_edge_index",
    "lit_triangles",
    "silhouette_edges",
]
