"""
Visualization and Plotting Utilities
=====================================

This module provides a matplotlib implementation of the renderer interface
used by :class:`MetaBlobs.scene.Scene`, and a helper for inspecting the
scalar field on 2D cross sections.

Classes
-------
MatplotlibRenderer
    Draws triangle and line lists into a 3D matplotlib axes.

Functions
---------
plot_slice
    Create a contour plot of a scalar field on a 2D plane slice.
generate_plane_points
    Generate a regular grid of points on a plane in 3D space.
"""

import math

import matplotlib.pyplot as plt
import numpy as np
import torch
from mpl_toolkits.mplot3d.art3d import Line3DCollection, Poly3DCollection


def _to_numpy(array):
    if isinstance(array, torch.Tensor):
        return array.detach().cpu().numpy()
    return np.asarray(array)


def _transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    homogeneous = np.hstack([points, np.ones((points.shape[0], 1))])
    return (homogeneous @ matrix.T)[:, :3]


def _swap_up_axis(points: np.ndarray) -> np.ndarray:
    # scene is y-up, matplotlib 3D axes are z-up
    return points[:, [0, 2, 1]]


class MatplotlibRenderer:
    """Renderer backed by a matplotlib 3D axes.

    Triangles are shaded with a single directional light using their
    per-vertex normals. The view matrix only steers the matplotlib camera
    angles; the projection matrix is stored but matplotlib applies its own.

    Parameters
    ----------
    ax : mpl_toolkits.mplot3d.Axes3D, optional
        Axes to draw into. If None, a new figure is created.
    light_direction : array-like of shape (3,)
        Direction the light travels in.
    ambient : float
        Brightness of unlit faces.
    """

    def __init__(self, ax=None, light_direction=(0.25, -1.0, -1.0), ambient=0.25):
        if ax is None:
            fig = plt.figure()
            ax = fig.add_subplot(projection="3d")
        self.ax = ax
        light = np.asarray(light_direction, dtype=np.float64)
        self.light_direction = light / np.linalg.norm(light)
        self.ambient = ambient
        self.world_matrix = np.eye(4)
        self.view_matrix = np.eye(4)
        self.projection_matrix = np.eye(4)

    def set_world_matrix(self, matrix):
        self.world_matrix = _to_numpy(matrix).astype(np.float64)

    def set_view_matrix(self, matrix):
        self.view_matrix = _to_numpy(matrix).astype(np.float64)
        # third row of a look-at matrix points from the target to the eye
        back = self.view_matrix[2, :3]
        elev = math.degrees(math.asin(float(np.clip(back[1], -1.0, 1.0))))
        azim = math.degrees(math.atan2(back[2], back[0]))
        self.ax.view_init(elev=elev, azim=azim)

    def set_projection_matrix(self, matrix):
        self.projection_matrix = _to_numpy(matrix).astype(np.float64)

    def clear(self, color, depth=1.0, stencil=0):
        self.ax.cla()
        self.ax.set_facecolor(np.asarray(color) / 255.0)
        self.ax.set_axis_off()

    def draw_triangle_list(self, vertices, normals, color, triangle_count):
        if triangle_count <= 0:
            return
        n_rows = 3 * triangle_count
        verts = _transform_points(self.world_matrix, _to_numpy(vertices)[:n_rows])
        norms = _to_numpy(normals)[:n_rows] @ self.world_matrix[:3, :3].T

        face_normals = norms.reshape(-1, 3, 3).mean(axis=1)
        lengths = np.linalg.norm(face_normals, axis=1, keepdims=True)
        face_normals = face_normals / np.where(lengths == 0, 1.0, lengths)
        diffuse = np.clip(face_normals @ -self.light_direction, 0.0, 1.0)
        shade = self.ambient + (1.0 - self.ambient) * diffuse

        base = np.asarray(color, dtype=np.float64) / 255.0
        facecolors = np.clip(shade[:, None] * base[None, :], 0.0, 1.0)

        triangles = _swap_up_axis(verts).reshape(-1, 3, 3)
        collection = Poly3DCollection(triangles, facecolors=facecolors, linewidths=0)
        self.ax.add_collection3d(collection)
        self._extend_limits(triangles.reshape(-1, 3))

    def draw_line_list(self, vertices, color, segment_count):
        if segment_count <= 0:
            return
        verts = _transform_points(
            self.world_matrix, _to_numpy(vertices)[: 2 * segment_count]
        )
        segments = _swap_up_axis(verts).reshape(-1, 2, 3)
        collection = Line3DCollection(
            segments, colors=[np.asarray(color) / 255.0], linewidths=0.5
        )
        self.ax.add_collection3d(collection)

    def _extend_limits(self, points: np.ndarray):
        lower = points.min(axis=0)
        upper = points.max(axis=0)
        center = (lower + upper) / 2
        half = max(float((upper - lower).max()) / 2, 1e-6)
        self.ax.set_xlim(center[0] - half, center[0] + half)
        self.ax.set_ylim(center[1] - half, center[1] + half)
        self.ax.set_zlim(center[2] - half, center[2] + half)


def plot_slice(
    fun,
    origin=(0, 0, 0),
    normal=(0, 0, 1),
    res=(100, 100),
    ax=None,
    xlim=(-1, 1),
    ylim=(-1, 1),
    clim=None,
    cmap="viridis",
    iso_value=None,
):
    """Plot a 2D slice through a scalar field as a contour plot.

    Parameters
    ----------
    fun : callable
        The field to visualize. Should accept a torch.Tensor of shape
        (N, 3) and return values of shape (N, 1) or (N,).
    origin : tuple of float, default (0, 0, 0)
        A point on the slice plane.
    normal : tuple of float, default (0, 0, 1)
        Normal vector of the slice plane. Only axis-aligned planes are
        supported.
    res : tuple of int, default (100, 100)
        Resolution of the slice grid (num_points_u, num_points_v).
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, creates a new figure.
    xlim, ylim : tuple of float, default (-1, 1)
        Range along the first and second plane axis.
    clim : tuple of float, optional
        Color map limits.
    cmap : str, default 'viridis'
        Matplotlib colormap name.
    iso_value : float, optional
        If given, draws a black contour line at this level (the surface).

    Returns
    -------
    fig, ax : matplotlib.figure.Figure, matplotlib.axes.Axes
        Only returned if ax was None (i.e., a new figure was created).

    Examples
    --------
    >>> from MetaBlobs.ball import Ball
    >>> from MetaBlobs.field import MetaballField
    >>> field = MetaballField([Ball([0, 0, 0], 0.5), Ball([0.4, 0, 0], 0.5)])
    >>> fig, ax = plot_slice(field, iso_value=0.25)
    """
    plt_show = False
    if ax is None:
        fig, ax = plt.subplots()
        plt_show = True

    points, u, v = generate_plane_points(origin, normal, res, xlim, ylim)

    points = torch.from_numpy(points).to(torch.float32)
    values = _to_numpy(fun(points)).reshape((res[0], res[1]))
    X = u.reshape((res[0], res[1]))
    Y = v.reshape((res[0], res[1]))

    cbar = ax.contourf(X, Y, values, cmap=cmap, levels=10)
    if iso_value is not None and values.min() < iso_value < values.max():
        ax.contour(X, Y, values, levels=[iso_value], colors="black", linewidths=0.5)
    if clim is not None:
        cbar.set_clim(clim[0], clim[1])
    ax.set_xticks([])
    ax.set_yticks([])
    ax.set_aspect(1)
    if plt_show:
        plt.show()
        return fig, ax


def generate_plane_points(origin, normal, res, xlim, ylim):
    """Generate evenly spaced points on a plane in 3D space.

    Parameters
    ----------
    origin : array-like of shape (3,)
        A point on the plane.
    normal : array-like of shape (3,)
        Normal vector of the plane. Only [1,0,0], [0,1,0] and [0,0,1] are
        supported.
    res : tuple of int
        Grid resolution (num_points_u, num_points_v).
    xlim, ylim : tuple of float
        Range along the first and second plane axis.

    Returns
    -------
    points : np.ndarray of shape (num_points_u * num_points_v, 3)
    u : np.ndarray of shape (num_points_u * num_points_v,)
    v : np.ndarray of shape (num_points_u * num_points_v,)

    Raises
    ------
    NotImplementedError
        If normal is not axis-aligned.
    """
    normal = np.array(normal, dtype=np.float64)
    normal = normal / np.linalg.norm(normal)
    origin = np.array(origin, dtype=np.float64)
    if np.allclose(normal, [0, 0, 1]):
        u_axis = np.array([1, 0, 0])
        v_axis = np.array([0, 1, 0])
    elif np.allclose(normal, [0, 1, 0]):
        u_axis = np.array([1, 0, 0])
        v_axis = np.array([0, 0, 1])
    elif np.allclose(normal, [1, 0, 0]):
        u_axis = np.array([0, 1, 0])
        v_axis = np.array([0, 0, 1])
    else:
        raise NotImplementedError(
            "Normal vector other than [1,0,0], [0,1,0] and [0,0,1] not supported yet."
        )

    u_coords = np.linspace(xlim[0], xlim[1], res[0])
    v_coords = np.linspace(ylim[0], ylim[1], res[1])
    uu, vv = np.meshgrid(u_coords, v_coords, indexing="ij")
    u = uu.reshape(-1)
    v = vv.reshape(-1)
    points = origin[None, :] + u[:, None] * u_axis[None, :] + v[:, None] * v_axis[None, :]

    return points, u, v
