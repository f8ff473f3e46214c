import logging
import math

import numpy as np
import pytest
import skimage.measure
import torch

from MetaBlobs.ball import Ball
from MetaBlobs.field import MetaballField
from MetaBlobs.marching_cubes import MarchingCubes, max_triangles_for_resolution
from MetaBlobs.marching_cubes.tables import (
    MAX_TRIANGLES_PER_CELL,
    cube_corners,
    cube_edges,
    edge_table,
    num_tri_table,
    tri_table,
)
from MetaBlobs.mesh import TriangleBuffer
from MetaBlobs.voxel_grid import VoxelGrid

ISO_VALUE = 0.25


@pytest.fixture
def sphere_grid():
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=16)
    grid.resample([Ball([0.0, 0.0, 0.0], radius=0.8)])
    return grid


def test_tables_are_consistent():
    assert len(edge_table) == 256
    assert len(tri_table) == 256
    assert all(len(row) == 16 for row in tri_table)
    assert MAX_TRIANGLES_PER_CELL == 5
    for case, row in enumerate(tri_table):
        used = [e for e in row if e != -1]
        assert len(used) == 3 * num_tri_table[case]
        # -1 only as trailing padding
        assert row[: len(used)] == used
        mask = 0
        for e in used:
            mask |= 1 << e
        assert mask == edge_table[case], f"edge mask mismatch for case {case}"
    # every edge joins two corners one lattice step apart, lower node first
    for c0, c1 in cube_edges:
        step = np.subtract(cube_corners[c1], cube_corners[c0])
        assert sorted(step.tolist()) == [0, 0, 1]


def test_sphere_is_closed_genus_zero(sphere_grid):
    mc = MarchingCubes()
    count = mc.polygonize(ISO_VALUE, sphere_grid)
    assert count > 0
    assert mc.buffer.max_triangles == max_triangles_for_resolution(16)

    mesh = mc.buffer.to_trimesh()
    assert mesh.is_watertight
    assert mesh.is_winding_consistent
    assert mesh.euler_number == 2

    iso_radius = MetaballField.iso_radius(0.8, ISO_VALUE)
    radii = torch.linalg.norm(mc.buffer.valid_vertices, dim=1)
    cell = float(sphere_grid.cell_size[0])
    assert torch.all((radii - iso_radius).abs() < cell / 2)
    # outward orientation gives a positive enclosed volume
    assert mesh.volume == pytest.approx(4 / 3 * math.pi * iso_radius**3, rel=0.1)


def test_normals_point_outward(sphere_grid):
    mc = MarchingCubes()
    mc.polygonize(ISO_VALUE, sphere_grid)
    verts = mc.buffer.valid_vertices
    normals = mc.buffer.valid_normals
    torch.testing.assert_close(
        torch.linalg.norm(normals, dim=1), torch.ones(verts.shape[0])
    )
    radial = verts / torch.linalg.norm(verts, dim=1, keepdim=True)
    assert torch.all((normals * radial).sum(dim=1) > 0.9)

    # triangle winding agrees with the interpolated vertex normals
    tris = verts.reshape(-1, 3, 3)
    face_normals = torch.linalg.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    mean_normals = normals.reshape(-1, 3, 3).mean(dim=1)
    proper = torch.linalg.norm(face_normals, dim=1) > 1e-6
    assert torch.all((face_normals * mean_normals).sum(dim=1)[proper] > 0)


def test_field_normals_are_radial(sphere_grid):
    mc = MarchingCubes(normal_mode="field")
    mc.polygonize(ISO_VALUE, sphere_grid)
    verts = mc.buffer.valid_vertices
    radial = verts / torch.linalg.norm(verts, dim=1, keepdim=True)
    torch.testing.assert_close(mc.buffer.valid_normals, radial, atol=1e-5, rtol=1e-5)


def test_field_normals_need_resampled_grid():
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=4)
    grid.samples[2, 2, 2] = 1.0
    mc = MarchingCubes(normal_mode="field")
    with pytest.raises(RuntimeError):
        mc.polygonize(0.5, grid)


def test_invalid_normal_mode():
    with pytest.raises(ValueError):
        MarchingCubes(normal_mode="faces")


@pytest.mark.parametrize("iso_value", [0.01, 0.25, 1.0, 7.5])
def test_no_balls_no_triangles(iso_value):
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=6)
    grid.resample([])
    mc = MarchingCubes()
    assert mc.polygonize(iso_value, grid) == 0
    assert mc.buffer.triangle_count == 0


def test_merging_balls_form_one_surface():
    grid = VoxelGrid([-1.5, -1.5, -1.5], [1.5, 1.5, 1.5], resolution=24)
    grid.resample([Ball([-0.3, 0.0, 0.0], 0.6), Ball([0.3, 0.0, 0.0], 0.6)])
    mc = MarchingCubes()
    assert mc.polygonize(ISO_VALUE, grid) > 0
    num_components, labels = mc.buffer.connected_components()
    assert num_components == 1
    assert labels.shape == (mc.buffer.triangle_count,)


def test_distant_balls_form_two_surfaces():
    grid = VoxelGrid([-2, -2, -2], [2, 2, 2], resolution=32)
    grid.resample([Ball([-1.2, 0.0, 0.0], 0.6), Ball([1.2, 0.0, 0.0], 0.6)])
    mc = MarchingCubes()
    mc.polygonize(ISO_VALUE, grid)
    num_components, labels = mc.buffer.connected_components()
    assert num_components == 2

    # each blob stays on its own side
    x = mc.buffer.valid_vertices[:, 0].reshape(-1, 3).mean(dim=1).numpy()
    for label in np.unique(labels):
        side = np.sign(x[labels == label])
        assert np.all(side == side[0])


def test_polygonize_is_idempotent(sphere_grid):
    mc = MarchingCubes()
    first = TriangleBuffer(max_triangles_for_resolution(16))
    second = TriangleBuffer(max_triangles_for_resolution(16))
    n_first = mc.polygonize(ISO_VALUE, sphere_grid, out=first)
    n_second = mc.polygonize(ISO_VALUE, sphere_grid, out=second)
    assert n_first == n_second
    assert torch.equal(first.valid_vertices, second.valid_vertices)
    assert torch.equal(first.valid_normals, second.valid_normals)


def test_capacity_truncation(sphere_grid, caplog):
    mc = MarchingCubes()
    full = TriangleBuffer(max_triangles_for_resolution(16))
    n_full = mc.polygonize(ISO_VALUE, sphere_grid, out=full)

    small = TriangleBuffer(10)
    with caplog.at_level(logging.WARNING):
        n_small = mc.polygonize(ISO_VALUE, sphere_grid, out=small)
    assert n_full > 10
    assert n_small == 10
    assert small.triangle_count == 10
    assert small.vertices.shape == (30, 3)
    assert small.normals.shape == (30, 3)
    assert "truncating" in caplog.text
    # the truncated output is the head of the full output
    assert torch.equal(small.valid_vertices, full.vertices[:30])


def test_configured_capacity():
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=8)
    grid.resample([Ball([0.0, 0.0, 0.0], 0.8)])
    mc = MarchingCubes(max_triangles=4)
    assert mc(ISO_VALUE, grid) == 4
    assert mc.buffer.max_triangles == 4


def test_triangles_follow_cell_order():
    grid = VoxelGrid([0, 0, 0], [3, 3, 3], resolution=3)
    grid.samples[1, 1, 1] = 1.0
    grid.samples[2, 2, 2] = 1.0
    mc = MarchingCubes()
    count = mc.polygonize(0.5, grid)
    # 7 corner triangles around each node plus 2 in the cell holding both
    assert count == 16
    centroids = mc.buffer.valid_vertices.reshape(-1, 3, 3).mean(dim=1)
    cells = torch.floor(centroids).long()
    cell_ids = cells[:, 0] * 9 + cells[:, 1] * 3 + cells[:, 2]
    assert torch.all(cell_ids[1:] >= cell_ids[:-1])


def test_single_cell_plane():
    grid = VoxelGrid([0, 0, 0], [1, 1, 1], resolution=1)
    grid.samples[1, :, :] = 1.0
    mc = MarchingCubes()
    assert mc.polygonize(0.5, grid) == 2
    torch.testing.assert_close(
        mc.buffer.valid_vertices[:, 0], torch.full((6,), 0.5)
    )
    # the gradient points along +x, so the outside normal is -x
    torch.testing.assert_close(
        mc.buffer.valid_normals,
        torch.tensor([[-1.0, 0.0, 0.0]]).expand(6, 3),
    )


def test_matches_skimage_surface_area(sphere_grid):
    mc = MarchingCubes()
    mc.polygonize(ISO_VALUE, sphere_grid)
    area = mc.buffer.to_trimesh().area

    spacing = tuple(float(h) for h in sphere_grid.cell_size)
    verts, faces, _, _ = skimage.measure.marching_cubes(
        sphere_grid.samples.numpy(), level=ISO_VALUE, spacing=spacing
    )
    reference_area = skimage.measure.mesh_surface_area(verts, faces)
    assert area == pytest.approx(reference_area, rel=1e-2)

    verts = verts + sphere_grid.min.numpy()
    np.testing.assert_allclose(
        mc.buffer.valid_vertices.numpy().min(axis=0), verts.min(axis=0), atol=1e-5
    )
    np.testing.assert_allclose(
        mc.buffer.valid_vertices.numpy().max(axis=0), verts.max(axis=0), atol=1e-5
    )


if __name__ == "__main__":
    test_tables_are_consistent()
    test_invalid_normal_mode()
    test_single_cell_plane()
