"""
Voxel Grid
==========

Uniform lattice over an axis-aligned box. The grid owns one scalar sample
per lattice node, ``(resolution + 1)^3`` in total, allocated once and
overwritten in full by every :meth:`VoxelGrid.resample` call.
"""

import logging
from typing import Sequence

import numpy as np
import torch

from MetaBlobs.ball import Ball
from MetaBlobs.field import FieldBase, MetaballField
import MetaBlobs

logger = logging.getLogger(MetaBlobs.__name__)


class VoxelGrid:
    """Dense lattice of field samples.

    Parameters
    ----------
    min, max : array-like of shape (3,)
        Corners of the bounding box. ``min`` must be strictly below ``max``
        in every component.
    resolution : int
        Number of cells per axis, must be positive.
    device : str or torch.device, default "cpu"
    dtype : torch.dtype, default torch.float32

    Raises
    ------
    TypeError
        If ``resolution`` is not an integer.
    ValueError
        If the box is empty or inverted, or ``resolution`` is not positive.
    """

    def __init__(self, min, max, resolution: int, device="cpu", dtype=torch.float32):
        if isinstance(resolution, bool) or not isinstance(
            resolution, (int, np.integer)
        ):
            raise TypeError(f"Resolution must be an integer, got {resolution!r}")
        if resolution <= 0:
            raise ValueError(f"Resolution must be positive, got {resolution}")

        self.min = torch.as_tensor(min, dtype=dtype, device=device).clone()
        self.max = torch.as_tensor(max, dtype=dtype, device=device).clone()
        if self.min.shape != (3,) or self.max.shape != (3,):
            raise ValueError(
                "Grid bounds must be 3D vectors, "
                f"got {tuple(self.min.shape)} and {tuple(self.max.shape)}"
            )
        if not torch.all(self.min < self.max):
            raise ValueError(
                f"Grid min {self.min.tolist()} must be below max {self.max.tolist()}"
            )

        self.resolution = int(resolution)
        self.device = device
        self.dtype = dtype
        self.cell_size = (self.max - self.min) / self.resolution

        n = self.resolution + 1
        idx = torch.arange(n, device=device, dtype=dtype)
        xs = self.min[0] + idx * self.cell_size[0]
        ys = self.min[1] + idx * self.cell_size[1]
        zs = self.min[2] + idx * self.cell_size[2]
        grid = torch.meshgrid(xs, ys, zs, indexing="ij")
        self.nodes = torch.stack(grid, dim=-1)
        self.samples = torch.zeros((n, n, n), device=device, dtype=dtype)
        self.field = None

        logger.debug(
            f"Created {self.resolution}^3 voxel grid over "
            f"{self.min.tolist()} - {self.max.tolist()}"
        )

    @property
    def bounds(self) -> torch.Tensor:
        return torch.stack([self.min, self.max], dim=0)

    @property
    def node_count(self) -> int:
        return (self.resolution + 1) ** 3

    @property
    def cell_count(self) -> int:
        return self.resolution**3

    def resample(self, source: Sequence[Ball] | FieldBase):
        """Evaluate the field at every lattice node.

        Parameters
        ----------
        source : sequence of Ball or FieldBase
            A ball sequence is wrapped in a :class:`MetaballField` that keeps
            referring to the same sequence.
        """
        if isinstance(source, FieldBase):
            field = source
        else:
            field = MetaballField(source)
        values = field(self.nodes.reshape(-1, 3))
        self.samples.copy_(values.reshape(self.samples.shape))
        self.field = field
        return self.samples

    def _check_index(self, i, j, k):
        for axis, value in zip("ijk", (i, j, k)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise IndexError(f"Lattice index {axis}={value!r} is not an integer")
            if value < 0 or value > self.resolution:
                raise IndexError(
                    f"Lattice index {axis}={value} outside of 0..{self.resolution}"
                )

    def sample(self, i: int, j: int, k: int) -> float:
        """Stored field value at lattice node ``(i, j, k)``."""
        self._check_index(i, j, k)
        return float(self.samples[i, j, k])

    def node_position(self, i: int, j: int, k: int) -> torch.Tensor:
        self._check_index(i, j, k)
        return self.nodes[i, j, k].clone()

    def gradients(self) -> torch.Tensor:
        """Per-node gradient of the samples, shape (n, n, n, 3).

        Central differences in the interior, one-sided differences on the
        boundary layer of nodes.
        """
        spacing = [float(h) for h in self.cell_size]
        grads = torch.gradient(self.samples, spacing=spacing, edge_order=1)
        return torch.stack(grads, dim=-1)
