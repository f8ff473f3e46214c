"""
Metaball Point Masses
=====================

A ``Ball`` is a point mass with an influence radius. The scene driver sets
its acceleration every tick and advances it with ``Ball.integrate``; the
scalar field only reads ``position`` and ``radius``.
"""

import torch


def _as_vec3(value, dtype=torch.float32) -> torch.Tensor:
    vec = torch.as_tensor(value, dtype=dtype).clone()
    if vec.shape != (3,):
        raise ValueError(f"Expected a 3D vector, got shape {tuple(vec.shape)}")
    return vec


class Ball:
    """Spherical influence source integrated as a point mass.

    Parameters
    ----------
    position : array-like of shape (3,)
        Centre of the ball.
    radius : float
        Influence radius. The ball contributes nothing to the field at or
        beyond this distance.
    velocity : array-like of shape (3,), optional
        Initial velocity, zero if omitted.
    acceleration : array-like of shape (3,), optional
        Initial acceleration, zero if omitted.

    Examples
    --------
    >>> from MetaBlobs.ball import Ball
    >>> ball = Ball([0.0, 0.0, 0.0], radius=12.0)
    >>> ball.acceleration = torch.tensor([0.0, -9.81, 0.0])
    >>> ball.integrate(0.016)
    """

    def __init__(self, position, radius: float, velocity=None, acceleration=None):
        if radius <= 0:
            raise ValueError(f"Ball radius must be positive, got {radius}")
        self.position = _as_vec3(position)
        self.radius = float(radius)
        self.velocity = (
            torch.zeros(3) if velocity is None else _as_vec3(velocity)
        )
        self.acceleration = (
            torch.zeros(3) if acceleration is None else _as_vec3(acceleration)
        )

    def integrate(self, dt: float):
        """Semi-implicit Euler step: velocity first, then position."""
        self.velocity = self.velocity + self.acceleration * dt
        self.position = self.position + self.velocity * dt

    def attract_to(self, target, strength: float):
        """Point the acceleration toward ``target``.

        The magnitude is ``strength * |target - position| / |position|``,
        so balls far from the origin are pulled harder. A ball sitting at
        the origin is left without acceleration.
        """
        target = torch.as_tensor(target, dtype=self.position.dtype)
        distance_to_origin = torch.linalg.norm(self.position)
        if distance_to_origin == 0:
            self.acceleration = torch.zeros_like(self.position)
            return
        self.acceleration = strength * (target - self.position) / distance_to_origin

    def __repr__(self):
        return (
            f"Ball(position={self.position.tolist()}, radius={self.radius}, "
            f"velocity={self.velocity.tolist()})"
        )
