"""
MetaBlobs - Interactive Metaball Isosurfaces
============================================

MetaBlobs animates a set of spherical metaballs and extracts the surface
where their blended scalar potential crosses an iso value, once per frame.
The field is sampled on a uniform voxel grid and triangulated with the
classic Marching Cubes tables into a fixed-size vertex/normal buffer that
a renderer can draw directly.

Key Components
--------------

Simulation
    - ``MetaBlobs.ball``: Point masses with an influence radius
    - ``MetaBlobs.scene``: Per-frame driver (physics, sampling, triangulation)
    - ``MetaBlobs.config``: Scene specifications and JSON loading

Isosurface Extraction
    - ``MetaBlobs.field``: Metaball potential and scalar field base class
    - ``MetaBlobs.voxel_grid``: Uniform lattice of field samples
    - ``MetaBlobs.marching_cubes``: 256-case Marching Cubes triangulator
    - ``MetaBlobs.mesh``: Triangle buffers, double buffering, connectivity

Presentation
    - ``MetaBlobs.camera``: Orbit camera with view/projection matrices
    - ``MetaBlobs.plotting``: Matplotlib renderer and field slices
    - ``MetaBlobs.utils``: Logging configuration and colours

Examples
--------
Extract the surface of two merging balls::

    from MetaBlobs.ball import Ball
    from MetaBlobs.voxel_grid import VoxelGrid
    from MetaBlobs.marching_cubes import MarchingCubes

    balls = [Ball([-0.3, 0, 0], radius=0.6), Ball([0.3, 0, 0], radius=0.6)]
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=32)
    grid.resample(balls)

    mc = MarchingCubes()
    n_triangles = mc.polygonize(0.25, grid)
    vertices = mc.buffer.valid_vertices

Run a full scene::

    from MetaBlobs.scene import Scene

    scene = Scene()
    scene.populate()
    scene.tick(1 / 60)
"""

import MetaBlobs.utils

MetaBlobs.utils.configure_logging()

__version__ = "0.1.0"
