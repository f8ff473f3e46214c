"""
Scene Driver
============

Owns the balls, the voxel grid and the triangulator, and runs one frame
tick at a time: integrate the balls, resample the grid, polygonize into the
back buffer and publish it. Drawing goes through any object implementing
the :class:`Renderer` protocol.
"""

import logging
import typing

import numpy as np
import torch

import MetaBlobs
from MetaBlobs.ball import Ball
from MetaBlobs.camera import Camera, translation
from MetaBlobs.config import SceneSpecs, make_scene_specs
from MetaBlobs.marching_cubes import MarchingCubes, max_triangles_for_resolution
from MetaBlobs.mesh import DoubleBuffer, TriangleBuffer
from MetaBlobs.utils import SCENE_COLORS
from MetaBlobs.voxel_grid import VoxelGrid

logger = logging.getLogger(MetaBlobs.__name__)


class Renderer(typing.Protocol):
    """Drawing backend consumed by :meth:`Scene.draw`.

    Colours are (r, g, b) tuples in the 0-255 range, matrices are 4x4.
    """

    def set_world_matrix(self, matrix) -> None: ...

    def set_view_matrix(self, matrix) -> None: ...

    def set_projection_matrix(self, matrix) -> None: ...

    def clear(self, color, depth: float, stencil: int) -> None: ...

    def draw_triangle_list(
        self, vertices, normals, color, triangle_count: int
    ) -> None: ...

    def draw_line_list(self, vertices, color, segment_count: int) -> None: ...


def grid_line_vertices(spacing=(20.0, 20.0, 20.0), major_delta=5.0, extent=500.0):
    """Line lists of a floor grid in the y = 0 plane.

    Returns two ``(vertices, segment_count)`` pairs, the minor grid first.
    The major grid uses a spacing of ``spacing * (1 + major_delta)``. Lines
    run across the whole ``[-extent, extent]`` square, mirrored around the
    axes.
    """
    grids = []
    for t in range(2):
        dx = spacing[0] + spacing[0] * major_delta * t
        dz = spacing[1] + spacing[1] * major_delta * t
        lines = []
        for x in np.arange(0.0, extent, dx):
            lines += [[x, 0, -extent], [x, 0, extent]]
            lines += [[-x, 0, -extent], [-x, 0, extent]]
        for z in np.arange(0.0, extent, dz):
            lines += [[-extent, 0, z], [extent, 0, z]]
            lines += [[-extent, 0, -z], [extent, 0, -z]]
        vertices = np.array(lines, dtype=np.float32).reshape(-1, 3)
        grids.append((vertices, vertices.shape[0] // 2))
    return grids


class Scene:
    """Metaball scene advanced one tick at a time.

    Parameters
    ----------
    specs : dict, optional
        Overrides of :data:`MetaBlobs.config.DEFAULT_SCENE_SPECS`.

    Examples
    --------
    >>> from MetaBlobs.scene import Scene
    >>> scene = Scene({"resolution": 32, "num_balls": 4, "seed": 0})
    >>> scene.populate()
    >>> n_triangles = scene.tick(1 / 60)
    """

    def __init__(self, specs: SceneSpecs | None = None):
        self.specs = make_scene_specs(specs)
        device = self.specs["device"]
        self.iso_value = float(self.specs["iso_value"])
        self.balls: list[Ball] = []
        self.grid = VoxelGrid(
            self.specs["grid_min"],
            self.specs["grid_max"],
            self.specs["resolution"],
            device=device,
        )
        self.marching_cubes = MarchingCubes(
            normal_mode=self.specs["normal_mode"], device=device
        )
        capacity = self.specs["max_triangles"]
        if capacity is None:
            capacity = max_triangles_for_resolution(self.grid.resolution)
        self.buffers = DoubleBuffer(capacity, device=device)
        self.attractor = torch.tensor(self.specs["attractor"], dtype=torch.float32)
        self.world_matrix = translation(self.specs["surface_offset"])
        self.grid_lines = grid_line_vertices()

    @property
    def front(self) -> TriangleBuffer:
        """Buffer holding the most recently completed triangulation."""
        return self.buffers.front

    def add_ball(self, ball: Ball):
        self.balls.append(ball)

    def populate(self, n: int | None = None, seed: int | None = None):
        """Add ``n`` balls at uniformly random positions."""
        n = self.specs["num_balls"] if n is None else n
        seed = self.specs["seed"] if seed is None else seed
        generator = torch.Generator()
        if seed is not None:
            generator.manual_seed(seed)
        else:
            generator.seed()
        extent = self.specs["spawn_extent"]
        positions = torch.rand((n, 3), generator=generator) * 2 * extent - extent
        for position in positions:
            self.add_ball(Ball(position, self.specs["ball_radius"]))
        logger.info(f"Populated scene with {n} balls")

    def animate(self, dt: float):
        for ball in self.balls:
            ball.attract_to(self.attractor, self.specs["attraction"])
            ball.integrate(dt)

    def compute_grid(self) -> int:
        """Resample the field and triangulate it into the back buffer.

        The back buffer becomes the front buffer once it is complete.
        """
        self.grid.resample(self.balls)
        count = self.marching_cubes.polygonize(
            self.iso_value, self.grid, out=self.buffers.back
        )
        self.buffers.swap()
        return count

    def tick(self, dt: float) -> int:
        self.animate(dt)
        return self.compute_grid()

    def draw(self, renderer: Renderer, camera: Camera):
        renderer.clear(SCENE_COLORS["background"], 1.0, 0)
        renderer.set_view_matrix(camera.view)
        renderer.set_projection_matrix(camera.projection)

        renderer.set_world_matrix(np.identity(4, dtype=np.float32))
        (minor, n_minor), (major, n_major) = self.grid_lines
        renderer.draw_line_list(minor, SCENE_COLORS["minor_grid"], n_minor)
        renderer.draw_line_list(major, SCENE_COLORS["major_grid"], n_major)

        front = self.buffers.front
        renderer.set_world_matrix(self.world_matrix)
        renderer.draw_triangle_list(
            front.vertices, front.normals, SCENE_COLORS["surface"], front.triangle_count
        )
