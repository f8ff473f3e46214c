import logging

import torch

import MetaBlobs
from MetaBlobs.marching_cubes.tables import (
    cube_corners,
    cube_edges,
    num_tri_table,
    tri_table,
    MAX_TRIANGLES_PER_CELL,
)
from MetaBlobs.mesh import TriangleBuffer
from MetaBlobs.voxel_grid import VoxelGrid

logger = logging.getLogger(MetaBlobs.__name__)

__all__ = ["MarchingCubes", "max_triangles_for_resolution"]

NORMAL_MODES = ("grid", "field")


def max_triangles_for_resolution(resolution: int) -> int:
    """Worst-case triangle count of a ``resolution^3`` cell grid."""
    return MAX_TRIANGLES_PER_CELL * resolution**3


class MarchingCubes:
    """
    Extracts the iso-surface of a sampled :class:`VoxelGrid` as a triangle
    soup with smooth per-vertex normals.

    During initialization the lookup tables are converted into tensors on
    the requested device, together with a triangle buffer the output is
    written to unless the caller provides its own.

    Attributes:
        device (str): Computational device, usually "cpu" or "cuda".
        tri_table (torch.Tensor): (256, 16) edge indices of the triangles of
            each case, padded with -1.
        num_tri_table (torch.Tensor): Number of triangles per case.
        cube_corners (torch.Tensor): (8, 3) lattice offsets of the corners.
        cube_corners_idx (torch.Tensor): Corner bits used to build case ids.
        cube_edges (torch.Tensor): (12, 2) corner pairs of each edge, lower
            lattice node first.
        normal_mode (str): "grid" to interpolate finite-difference gradients
            of the samples, "field" to evaluate the analytic gradient of the
            field the grid was last resampled from.
        buffer (TriangleBuffer): Default output buffer, or None if no
            capacity was given.
    """

    def __init__(self, max_triangles: int | None = None, normal_mode="grid", device="cpu"):
        if normal_mode not in NORMAL_MODES:
            raise ValueError(
                f"normal_mode must be one of {NORMAL_MODES}, got {normal_mode!r}"
            )
        self.device = device
        self.normal_mode = normal_mode
        self.tri_table = torch.tensor(
            tri_table, dtype=torch.long, device=device, requires_grad=False
        )
        self.num_tri_table = torch.tensor(
            num_tri_table, dtype=torch.long, device=device, requires_grad=False
        )
        self.cube_corners = torch.tensor(cube_corners, dtype=torch.long, device=device)
        # Each corner corresponds to a binary bit (for the 2^8 possible inside/outside cases):
        self.cube_corners_idx = torch.pow(2, torch.arange(8, device=device))
        self.cube_edges = torch.tensor(cube_edges, dtype=torch.long, device=device)

        self.buffer = None
        if max_triangles is not None:
            self.buffer = TriangleBuffer(max_triangles, device=device)

    def _output_buffer(self, grid: VoxelGrid, out: TriangleBuffer | None):
        if out is not None:
            return out
        if self.buffer is None:
            capacity = max_triangles_for_resolution(grid.resolution)
            logger.debug(f"Allocating worst-case buffer for {capacity} triangles")
            self.buffer = TriangleBuffer(capacity, device=self.device)
        return self.buffer

    def _cell_cases(self, iso_value: float, samples: torch.Tensor, res: int):
        # corner values per cell, cells in lattice order with k fastest
        corner_values = torch.stack(
            [
                samples[di : di + res, dj : dj + res, dk : dk + res]
                for di, dj, dk in self.cube_corners.tolist()
            ],
            dim=-1,
        ).reshape(-1, 8)
        outside = (corner_values < iso_value).long()
        return (outside * self.cube_corners_idx).sum(dim=1)

    def polygonize(
        self, iso_value: float, grid: VoxelGrid, out: TriangleBuffer | None = None
    ) -> int:
        """
        Triangulates the ``iso_value`` level set of the grid samples.

        Args:
            iso_value (float): Threshold between outside (below) and inside
                (at or above).
            grid (VoxelGrid): Sampled grid. Only read.
            out (TriangleBuffer, optional): Destination buffer. Defaults to
                the triangulator's own buffer, sized for the worst case of
                the grid if no capacity was configured.

        Returns:
            int: Number of triangles written. If the buffer is too small the
            output is truncated at its capacity and a warning is logged.
        """
        out = self._output_buffer(grid, out)
        res = grid.resolution
        samples = grid.samples

        cases = self._cell_cases(iso_value, samples, res)
        n_tris = self.num_tri_table[cases]
        active = torch.nonzero(n_tris > 0).squeeze(1)

        tri_edges = self.tri_table[cases[active]][:, :15].reshape(-1, 5, 3)
        tri_mask = (
            torch.arange(5, device=self.device)[None, :] < n_tris[active][:, None]
        )
        edges = tri_edges[tri_mask]
        cell_of_tri = active[:, None].expand(-1, 5)[tri_mask]

        total = edges.shape[0]
        count = total
        if total > out.max_triangles:
            logger.warning(
                f"Iso-surface has {total} triangles but the buffer holds "
                f"{out.max_triangles}, truncating"
            )
            count = out.max_triangles
            edges = edges[:count]
            cell_of_tri = cell_of_tri[:count]

        cell_ijk = torch.stack(
            [cell_of_tri // (res * res), (cell_of_tri // res) % res, cell_of_tri % res],
            dim=1,
        )
        corner_pairs = self.cube_edges[edges]
        n0 = cell_ijk[:, None, :] + self.cube_corners[corner_pairs[..., 0]]
        n1 = cell_ijk[:, None, :] + self.cube_corners[corner_pairs[..., 1]]
        i0, j0, k0 = n0.unbind(-1)
        i1, j1, k1 = n1.unbind(-1)

        v0 = samples[i0, j0, k0]
        v1 = samples[i1, j1, k1]
        denom = v1 - v0
        flat = denom == 0
        t = (iso_value - v0) / torch.where(flat, torch.ones_like(denom), denom)
        t = torch.where(flat, torch.full_like(t, 0.5), t).clamp(0.0, 1.0)

        p0 = grid.nodes[i0, j0, k0]
        p1 = grid.nodes[i1, j1, k1]
        verts = p0 + t[..., None] * (p1 - p0)

        if self.normal_mode == "grid":
            grads = grid.gradients()
            g0 = grads[i0, j0, k0]
            g1 = grads[i1, j1, k1]
            gradient = g0 + t[..., None] * (g1 - g0)
        else:
            if grid.field is None:
                raise RuntimeError(
                    "Field normals need a grid that has been resampled from a field"
                )
            gradient = grid.field.gradient(verts.reshape(-1, 3)).reshape(verts.shape)
        normals = torch.nn.functional.normalize(-gradient, dim=-1)

        n_rows = 3 * count
        out.vertices[:n_rows] = verts.reshape(-1, 3).to(out.vertices)
        out.normals[:n_rows] = normals.reshape(-1, 3).to(out.normals)
        out.triangle_count = count

        logger.debug(
            f"Polygonized {active.shape[0]} of {grid.cell_count} cells "
            f"into {count} triangles at iso value {iso_value}"
        )
        return count

    def __call__(self, iso_value: float, grid: VoxelGrid, out=None) -> int:
        return self.polygonize(iso_value, grid, out=out)
