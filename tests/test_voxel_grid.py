import numpy as np
import pytest
import torch

from MetaBlobs.ball import Ball
from MetaBlobs.field import MetaballField, potential
from MetaBlobs.voxel_grid import VoxelGrid


def test_grid_geometry():
    grid = VoxelGrid([-1.0, -2.0, 0.0], [1.0, 2.0, 4.0], resolution=4)
    torch.testing.assert_close(grid.cell_size, torch.tensor([0.5, 1.0, 1.0]))
    assert grid.samples.shape == (5, 5, 5)
    assert grid.node_count == 125
    assert grid.cell_count == 64
    torch.testing.assert_close(grid.node_position(0, 0, 0), grid.min)
    torch.testing.assert_close(grid.node_position(4, 4, 4), grid.max)
    torch.testing.assert_close(
        grid.node_position(1, 2, 3), torch.tensor([-0.5, 0.0, 3.0])
    )
    torch.testing.assert_close(grid.bounds, torch.stack([grid.min, grid.max]))


@pytest.mark.parametrize(
    "bounds_min, bounds_max, resolution, error",
    [
        ([-1, -1, -1], [1, 1, 1], 0, ValueError),
        ([-1, -1, -1], [1, 1, 1], -3, ValueError),
        ([-1, -1, -1], [1, 1, 1], 2.5, TypeError),
        ([-1, -1, -1], [1, 1, 1], True, TypeError),
        ([1, -1, -1], [1, 1, 1], 4, ValueError),
        ([-1, 2, -1], [1, 1, 1], 4, ValueError),
        ([-1, -1], [1, 1], 4, ValueError),
    ],
)
def test_invalid_construction(bounds_min, bounds_max, resolution, error):
    with pytest.raises(error):
        VoxelGrid(bounds_min, bounds_max, resolution)


def test_resample_matches_potential():
    balls = [Ball([0.1, 0.0, 0.0], 0.6), Ball([-0.3, 0.2, 0.1], 0.5)]
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=8)
    grid.resample(balls)
    expected = potential(grid.nodes.reshape(-1, 3), balls).reshape(9, 9, 9)
    torch.testing.assert_close(grid.samples, expected)
    assert grid.sample(4, 4, 4) == pytest.approx(float(expected[4, 4, 4]))
    assert isinstance(grid.field, MetaballField)
    assert grid.field.balls is balls


def test_resample_overwrites_in_place():
    balls = [Ball([0.0, 0.0, 0.0], 0.8)]
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=4)
    samples = grid.samples
    grid.resample(balls)
    assert grid.samples is samples
    assert grid.sample(2, 2, 2) == pytest.approx(1.0)

    balls[0].position = torch.tensor([5.0, 5.0, 5.0])
    grid.resample(balls)
    assert grid.samples is samples
    assert torch.all(grid.samples == 0)


def test_resample_with_field():
    field = MetaballField([Ball([0.0, 0.0, 0.0], 0.5)]) + MetaballField(
        [Ball([0.5, 0.0, 0.0], 0.5)]
    )
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=4)
    grid.resample(field)
    assert grid.field is field
    assert grid.sample(2, 2, 2) == pytest.approx(1.0)
    assert grid.sample(3, 2, 2) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "index",
    [(-1, 0, 0), (0, 5, 0), (0, 0, 6), (np.int64(5), 0, 0), (0.5, 0, 0)],
)
def test_sample_out_of_bounds(index):
    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=4)
    with pytest.raises(IndexError):
        grid.sample(*index)


def test_gradients_on_linear_field():
    class LinearField(MetaballField):
        def __init__(self):
            super().__init__([])

        def _compute(self, queries):
            return (2 * queries[:, 0] - queries[:, 1] + 0.5 * queries[:, 2]).reshape(
                -1, 1
            )

    grid = VoxelGrid([-1, -1, -1], [1, 1, 1], resolution=4)
    grid.resample(LinearField())
    grads = grid.gradients()
    assert grads.shape == (5, 5, 5, 3)
    # boundary nodes use one-sided differences and stay exact for linear fields
    expected = torch.tensor([2.0, -1.0, 0.5]).expand(5, 5, 5, 3)
    torch.testing.assert_close(grads, expected)


if __name__ == "__main__":
    test_grid_geometry()
    test_resample_matches_potential()
    test_resample_overwrites_in_place()
    test_gradients_on_linear_field()
