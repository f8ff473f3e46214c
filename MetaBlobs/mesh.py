import logging

import gustaf as gus
import numpy as np
import scipy
import scipy.sparse.csgraph
import torch
import trimesh

import MetaBlobs

logger = logging.getLogger(MetaBlobs.__name__)


class TriangleBuffer:
    """Fixed capacity triangle soup with per-vertex normals.

    ``vertices`` and ``normals`` are allocated once with room for
    ``max_triangles`` triangles and overwritten by every polygonization.
    Only the leading ``3 * triangle_count`` rows are valid; everything after
    them is stale data from earlier frames.
    """

    def __init__(self, max_triangles: int, device="cpu", dtype=torch.float32):
        if max_triangles < 0:
            raise ValueError(
                f"Triangle capacity must not be negative, got {max_triangles}"
            )
        self.max_triangles = int(max_triangles)
        self.vertices = torch.zeros(
            (3 * self.max_triangles, 3), device=device, dtype=dtype
        )
        self.normals = torch.zeros_like(self.vertices)
        self.triangle_count = 0

    @property
    def valid_vertices(self) -> torch.Tensor:
        return self.vertices[: 3 * self.triangle_count]

    @property
    def valid_normals(self) -> torch.Tensor:
        return self.normals[: 3 * self.triangle_count]

    @property
    def faces(self) -> torch.Tensor:
        return torch.arange(
            3 * self.triangle_count, device=self.vertices.device
        ).reshape(-1, 3)

    def clear(self):
        self.triangle_count = 0

    def welded(self) -> tuple[torch.Tensor, torch.Tensor]:
        """Merge bit-identical vertices into an indexed mesh.

        Returns
        -------
        vertices : torch.Tensor
            Unique vertex positions, shape (V, 3).
        faces : torch.Tensor
            Indices into ``vertices``, shape (triangle_count, 3).
        """
        verts_unique, inverse_indices = torch.unique(
            self.valid_vertices, dim=0, return_inverse=True
        )
        return verts_unique, inverse_indices.reshape(-1, 3)

    def connected_components(self) -> tuple[int, np.ndarray]:
        """Label every triangle with the surface patch it belongs to.

        Two triangles are connected when they share a vertex after welding.

        Returns
        -------
        num_components : int
        labels : np.ndarray
            Component label per triangle, shape (triangle_count,).
        """
        if self.triangle_count == 0:
            return 0, np.zeros(0, dtype=np.int32)
        verts, faces = self.welded()
        edges = torch.cat([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])

        # Make it undirected
        edges = torch.cat([edges, edges[:, [1, 0]]], dim=0)
        num_nodes = verts.shape[0]
        row, col = edges.T.cpu().numpy()
        data = np.ones(len(row), dtype=np.int8)
        adj = scipy.sparse.coo_matrix((data, (row, col)), shape=(num_nodes, num_nodes))

        num_comp, component_labels = scipy.sparse.csgraph.connected_components(
            adj, directed=False
        )
        face_labels = component_labels[faces[:, 0].cpu().numpy()]
        logger.debug(
            f"{self.triangle_count} triangles form {num_comp} connected components"
        )
        return num_comp, face_labels

    def to_gus(self):
        verts, faces = self.welded()
        return gus.Faces(verts.detach().cpu().numpy(), faces.detach().cpu().numpy())

    def to_trimesh(self, process=True):
        """Convert the valid triangles to a ``trimesh.Trimesh``.

        With ``process=True`` trimesh merges coincident vertices, which is
        what watertightness and Euler characteristic checks need.
        """
        return trimesh.Trimesh(
            vertices=self.valid_vertices.detach().cpu().numpy(),
            faces=self.faces.cpu().numpy(),
            vertex_normals=self.valid_normals.detach().cpu().numpy(),
            process=process,
        )


class DoubleBuffer:
    """Pair of triangle buffers for tear-free hand-over to a renderer.

    The triangulator writes ``back`` while a renderer may still read
    ``front``. :meth:`swap` publishes the freshly written buffer.
    """

    def __init__(self, max_triangles: int, device="cpu", dtype=torch.float32):
        self._buffers = [
            TriangleBuffer(max_triangles, device=device, dtype=dtype),
            TriangleBuffer(max_triangles, device=device, dtype=dtype),
        ]
        self._front = 0

    @property
    def front(self) -> TriangleBuffer:
        return self._buffers[self._front]

    @property
    def back(self) -> TriangleBuffer:
        return self._buffers[1 - self._front]

    def swap(self):
        self._front = 1 - self._front
