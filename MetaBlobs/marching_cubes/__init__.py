"""
Marching Cubes - Isosurface Triangulation
=========================================

This module implements the classic Marching Cubes algorithm on a
:class:`MetaBlobs.voxel_grid.VoxelGrid`. Every cell is classified by the
inside/outside state of its eight corners into one of 256 cases, and the
precomputed edge and triangle tables in ``MetaBlobs.marching_cubes.tables``
turn that case into up to five triangles with interpolated vertices and
smooth per-vertex normals.

The whole grid is processed with batched tensor operations instead of a
Python loop over cells.
"""

from MetaBlobs.marching_cubes.marching_cubes import (
    MarchingCubes,
    max_triangles_for_resolution,
)

__all__ = ["MarchingCubes", "max_triangles_for_resolution"]
