import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from MetaBlobs.ball import Ball  # noqa: E402
from MetaBlobs.camera import Camera  # noqa: E402
from MetaBlobs.field import MetaballField  # noqa: E402
from MetaBlobs.plotting import (  # noqa: E402
    MatplotlibRenderer,
    generate_plane_points,
    plot_slice,
)
from MetaBlobs.scene import Scene  # noqa: E402


def test_generate_plane_points():
    points, u, v = generate_plane_points(
        origin=(0, 0, 0.5), normal=(0, 0, 1), res=(3, 4), xlim=(-1, 1), ylim=(0, 3)
    )
    assert points.shape == (12, 3)
    np.testing.assert_allclose(points[:, 2], 0.5)
    np.testing.assert_allclose(points[:, 0], u)
    np.testing.assert_allclose(points[:, 1], v)
    assert set(np.round(v, 6)) == {0.0, 1.0, 2.0, 3.0}

    points, u, v = generate_plane_points((0, 0, 0), (1, 0, 0), (2, 2), (-1, 1), (-1, 1))
    np.testing.assert_allclose(points[:, 0], 0.0)

    with pytest.raises(NotImplementedError):
        generate_plane_points((0, 0, 0), (1, 1, 0), (2, 2), (-1, 1), (-1, 1))


def test_plot_slice_into_axes():
    field = MetaballField([Ball([0.0, 0.0, 0.0], 0.5), Ball([0.4, 0.0, 0.0], 0.5)])
    fig, ax = plt.subplots()
    field.plot_slice(ax=ax, res=(20, 20), iso_value=0.25)
    assert len(ax.collections) > 0
    plt.close(fig)


def test_plot_slice_creates_figure():
    field = MetaballField([Ball([0.0, 0.0, 0.0], 0.5)])
    fig, ax = plot_slice(field, normal=(0, 1, 0), res=(10, 10), clim=(0, 1))
    assert ax.figure is fig
    plt.close(fig)


def test_renderer_draws_scene():
    scene = Scene(
        {
            "grid_min": [-1.0, -1.0, -1.0],
            "grid_max": [1.0, 1.0, 1.0],
            "resolution": 8,
            "iso_value": 0.25,
        }
    )
    scene.add_ball(Ball([0.0, 0.0, 0.0], 0.8))
    scene.tick(0.0)

    renderer = MatplotlibRenderer()
    scene.draw(renderer, Camera())
    ax = renderer.ax
    # two grid line collections and the surface
    assert len(ax.collections) == 3
    np.testing.assert_allclose(renderer.world_matrix[:3, 3], [0.0, 100.0, 0.0])
    zmin, zmax = ax.get_zlim()
    # y-up scene drawn in a z-up axes, offset by the world matrix
    assert zmin < 100.0 < zmax
    plt.close(ax.figure)


def test_renderer_skips_empty_lists():
    fig = plt.figure()
    ax = fig.add_subplot(projection="3d")
    renderer = MatplotlibRenderer(ax=ax)
    renderer.clear((80, 80, 80))
    renderer.draw_triangle_list(np.zeros((3, 3)), np.zeros((3, 3)), (255, 0, 0), 0)
    renderer.draw_line_list(np.zeros((2, 3)), (255, 0, 0), 0)
    assert len(ax.collections) == 0
    plt.close(fig)
