import math

import pytest
import torch

from MetaBlobs.ball import Ball
from MetaBlobs.field import (
    MetaballField,
    potential,
    potential_gradient,
)


@pytest.fixture
def queries():
    torch.manual_seed(42)
    return torch.rand(50, 3) * 4 - 2


def test_potential_peak_and_support():
    ball = Ball([0.0, 0.0, 0.0], radius=2.0)
    points = torch.tensor(
        [[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [0.0, -3.0, 0.0], [0.0, 0.0, 10.0]]
    )
    values = potential(points, [ball])
    torch.testing.assert_close(values, torch.tensor([1.0, 0.0, 0.0, 0.0]))
    assert torch.isfinite(values).all()


def test_monotonic_falloff():
    center = torch.tensor([0.5, -0.25, 1.0])
    ball = Ball(center, radius=1.5)
    distances = torch.linspace(0.0, 3.0, 301)
    points = center[None, :] + distances[:, None] * torch.tensor([[1.0, 0.0, 0.0]])
    values = potential(points, [ball])
    assert torch.all(values[1:] - values[:-1] <= 0)
    assert torch.all(values[distances >= 1.5 + 1e-4] == 0)


def test_zero_exactly_at_radius():
    ball = Ball([0.0, 0.0, 0.0], radius=0.7)
    points = torch.tensor([[0.7, 0.0, 0.0], [0.0, 0.7, 0.0], [0.0, 0.0, -0.7]])
    assert torch.all(potential(points, [ball]) == 0)


def test_no_balls_is_empty_field(queries):
    assert torch.all(potential(queries, []) == 0)
    assert torch.all(potential_gradient(queries, []) == 0)


def test_blending_is_additive(queries):
    balls = [Ball([0.2, 0.0, 0.0], 1.0), Ball([-0.3, 0.4, 0.1], 0.8)]
    combined = potential(queries, balls)
    separate = potential(queries, balls[:1]) + potential(queries, balls[1:])
    torch.testing.assert_close(combined, separate)

    summed_field = MetaballField(balls[:1]) + MetaballField(balls[1:])
    torch.testing.assert_close(summed_field(queries).reshape(-1), combined)


def test_batching_does_not_change_values(queries):
    balls = [Ball([0.0, 0.0, 0.0], 1.2), Ball([0.5, 0.5, 0.0], 0.9)]
    torch.testing.assert_close(
        potential(queries, balls, max_batch=7), potential(queries, balls)
    )


def test_analytic_gradient_matches_finite_differences(queries):
    balls = [Ball([0.1, 0.0, -0.2], 1.3), Ball([-0.4, 0.3, 0.2], 1.0)]
    field = MetaballField(balls)
    queries = queries.to(torch.float64)
    h = 1e-5
    numeric = []
    for dim in range(3):
        offset = torch.zeros(3, dtype=torch.float64)
        offset[dim] = h
        numeric.append(
            (potential(queries + offset, balls) - potential(queries - offset, balls))
            / (2 * h)
        )
    numeric = torch.stack(numeric, dim=1)
    torch.testing.assert_close(field.gradient(queries), numeric, atol=1e-5, rtol=1e-4)


def test_field_sees_moving_balls():
    balls = [Ball([0.0, 0.0, 0.0], 1.0)]
    field = MetaballField(balls)
    query = torch.tensor([[0.0, 0.0, 0.0]])
    assert field(query).item() == pytest.approx(1.0)
    balls[0].position = torch.tensor([5.0, 0.0, 0.0])
    assert field(query).item() == 0.0
    balls.append(Ball([0.0, 0.0, 0.0], 1.0))
    assert field(query).item() == pytest.approx(1.0)


def test_field_validation():
    field = MetaballField([Ball([0.0, 0.0, 0.0], 1.0)])
    with pytest.raises(ValueError):
        field(torch.zeros(4, 2))
    with pytest.raises(ValueError):
        field(torch.zeros(3))


def test_domain_bounds():
    field = MetaballField([Ball([0.0, 0.0, 0.0], 1.0), Ball([2.0, 1.0, 0.0], 0.5)])
    torch.testing.assert_close(
        field._get_domain_bounds(),
        torch.tensor([[-1.0, -1.0, -1.0], [2.5, 1.5, 1.0]]),
    )


def test_iso_radius():
    radius = MetaballField.iso_radius(0.8, 0.25)
    assert radius == pytest.approx(0.8 * math.sqrt(0.5))
    ball = Ball([0.0, 0.0, 0.0], 0.8)
    value = potential(torch.tensor([[radius, 0.0, 0.0]]), [ball])
    assert value.item() == pytest.approx(0.25, abs=1e-6)
    with pytest.raises(ValueError):
        MetaballField.iso_radius(1.0, 1.5)


if __name__ == "__main__":
    test_potential_peak_and_support()
    test_monotonic_falloff()
    test_zero_exactly_at_radius()
    test_iso_radius()
