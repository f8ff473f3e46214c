from abc import ABC, abstractmethod
from typing import Sequence
import math

import torch

from MetaBlobs.ball import Ball
from MetaBlobs.plotting import plot_slice


def _stack_balls(balls: Sequence[Ball], device, dtype):
    centers = torch.stack([ball.position for ball in balls]).to(
        device=device, dtype=dtype
    )
    radii = torch.tensor(
        [ball.radius for ball in balls], device=device, dtype=dtype
    )
    return centers, radii


def potential(
    points: torch.Tensor, balls: Sequence[Ball], max_batch: int = 32**3
) -> torch.Tensor:
    """
    Evaluates the metaball potential at the given points.

    Each ball contributes ``clamp(1 - d^2 / r^2, 0)^2`` where ``d`` is the
    distance from the ball centre and ``r`` its radius. Contributions are
    summed, so overlapping balls blend into one blob.

    Parameters
    ----------
    points : torch.Tensor
        Tensor of shape (N, 3)
    balls : sequence of Ball
        Influence sources. An empty sequence gives an all-zero field.
    max_batch : int
        Maximum number of points evaluated at once.

    Returns
    -------
    values : torch.Tensor
        Tensor of shape (N,)
    """
    n_points = points.shape[0]
    values = torch.zeros(n_points, device=points.device, dtype=points.dtype)
    if len(balls) == 0:
        return values

    centers, radii = _stack_balls(balls, points.device, points.dtype)
    r2 = radii**2

    head = 0
    while head < n_points:
        end = min(head + max_batch, n_points)
        diff = points[head:end, None, :] - centers[None, :, :]
        d2 = (diff**2).sum(dim=-1)
        falloff = torch.clamp(1.0 - d2 / r2, min=0.0)
        values[head:end] = (falloff**2).sum(dim=1)
        head = end
    return values


def potential_gradient(
    points: torch.Tensor, balls: Sequence[Ball], max_batch: int = 32**3
) -> torch.Tensor:
    """
    Analytic gradient of :func:`potential`, shape (N, 3).

    Inside the support of a ball the contribution's gradient is
    ``-4 (1 - d^2/r^2) (p - c) / r^2``, outside it is zero.
    """
    n_points = points.shape[0]
    grads = torch.zeros((n_points, 3), device=points.device, dtype=points.dtype)
    if len(balls) == 0:
        return grads

    centers, radii = _stack_balls(balls, points.device, points.dtype)
    r2 = radii**2

    head = 0
    while head < n_points:
        end = min(head + max_batch, n_points)
        diff = points[head:end, None, :] - centers[None, :, :]
        d2 = (diff**2).sum(dim=-1)
        falloff = torch.clamp(1.0 - d2 / r2, min=0.0)
        grads[head:end] = (
            -4.0 * (falloff / r2)[..., None] * diff
        ).sum(dim=1)
        head = end
    return grads


class FieldBase(ABC):
    """Abstract base class for scalar fields sampled by the voxel grid.

    High values are inside the surface, low values outside. Subclasses
    implement ``_compute`` (and ``_get_domain_bounds``); ``__call__``
    validates the queries and guarantees finite output so that nothing
    downstream in the triangulation ever sees NaN or Inf.

    Fields can be combined with ``+``, which sums their values the same
    way metaballs blend.
    """

    def __call__(self, queries: torch.Tensor) -> torch.Tensor:
        """Evaluate the field at given query points.

        Parameters
        ----------
        queries : torch.Tensor
            Query points of shape (N, 3).

        Returns
        -------
        torch.Tensor
            Field values of shape (N, 1).

        Raises
        ------
        ValueError
            If queries have invalid shape.
        RuntimeError
            If the computation returns invalid output.
        """
        self._validate_input(queries)
        values = self._compute(queries)
        if values is None:
            raise RuntimeError("Invalid field output")
        if not torch.isfinite(values).all():
            raise RuntimeError(
                f"{self.__class__.__name__} produced non-finite field values"
            )
        return values

    def _validate_input(self, queries: torch.Tensor):
        if queries.ndim != 2 or queries.shape[1] != 3:
            raise ValueError(f"Expected input of shape (N, 3), got {queries.shape}")

    @abstractmethod
    def _compute(self, queries: torch.Tensor) -> torch.Tensor:
        """Compute field values of shape (N, 1) for (N, 3) query points."""
        pass

    @abstractmethod
    def _get_domain_bounds(self) -> torch.Tensor:
        """Return the (2, 3) box outside of which the field vanishes."""
        pass

    def gradient(self, queries: torch.Tensor, h: float = 1e-3) -> torch.Tensor:
        """Central-difference gradient of shape (N, 3).

        Subclasses with a closed form override this.
        """
        self._validate_input(queries)
        grads = []
        for dim in range(3):
            offset = torch.zeros(3, device=queries.device, dtype=queries.dtype)
            offset[dim] = h
            forward = self._compute(queries + offset).reshape(-1)
            backward = self._compute(queries - offset).reshape(-1)
            grads.append((forward - backward) / (2 * h))
        return torch.stack(grads, dim=1)

    def plot_slice(self, *args, **kwargs):
        return plot_slice(self, *args, **kwargs)

    def __add__(self, other):
        return SummedField(self, other)


class SummedField(FieldBase):
    def __init__(self, obj1: FieldBase, obj2: FieldBase):
        self.obj1 = obj1
        self.obj2 = obj2

    def _compute(self, queries):
        return self.obj1._compute(queries) + self.obj2._compute(queries)

    def gradient(self, queries, h: float = 1e-3):
        return self.obj1.gradient(queries, h=h) + self.obj2.gradient(queries, h=h)

    def _get_domain_bounds(self):
        bounds1 = self.obj1._get_domain_bounds()
        bounds2 = self.obj2._get_domain_bounds()

        lower = torch.minimum(bounds1[0], bounds2[0])
        upper = torch.maximum(bounds1[1], bounds2[1])

        return torch.stack([lower, upper], dim=0)


class MetaballField(FieldBase):
    """Metaball potential over a live sequence of balls.

    The sequence is read on every evaluation, so balls appended to it or
    moved by the scene driver are picked up by the next call.

    Parameters
    ----------
    balls : sequence of Ball
        Influence sources, shared with the owner of the ball list.
    max_batch : int, default 32**3
        Chunk size for the pairwise point/ball evaluation.

    Examples
    --------
    >>> from MetaBlobs.ball import Ball
    >>> from MetaBlobs.field import MetaballField
    >>> field = MetaballField([Ball([0, 0, 0], radius=1.0)])
    >>> field(torch.tensor([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]))
    tensor([[1.],
            [0.]])
    """

    def __init__(self, balls: Sequence[Ball], max_batch: int = 32**3):
        self.balls = balls
        self.max_batch = max_batch

    def _compute(self, queries: torch.Tensor) -> torch.Tensor:
        return potential(queries, self.balls, max_batch=self.max_batch).reshape(
            -1, 1
        )

    def gradient(self, queries: torch.Tensor, h: float = None) -> torch.Tensor:
        self._validate_input(queries)
        return potential_gradient(queries, self.balls, max_batch=self.max_batch)

    def _get_domain_bounds(self) -> torch.Tensor:
        if len(self.balls) == 0:
            return torch.zeros((2, 3), dtype=torch.float32)
        centers, radii = _stack_balls(self.balls, "cpu", torch.float32)
        lower = (centers - radii[:, None]).min(dim=0).values
        upper = (centers + radii[:, None]).max(dim=0).values
        return torch.stack([lower, upper], dim=0)

    @staticmethod
    def iso_radius(radius: float, iso_value: float) -> float:
        """Radius of the iso-surface around an isolated ball.

        Solves ``(1 - d^2/r^2)^2 = iso_value`` for ``d``, which gives
        ``r * sqrt(1 - sqrt(iso_value))``.
        """
        if not 0.0 < iso_value < 1.0:
            raise ValueError(
                f"An isolated ball only crosses iso values in (0, 1), got {iso_value}"
            )
        return radius * math.sqrt(1.0 - math.sqrt(iso_value))
