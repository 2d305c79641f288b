import math

from areaeffect.expansion.numerics import (
    bisect_increasing,
    bisect_min_satisfying,
    bisect_relative,
    quadratic_buffer_distance,
    secant,
)


def test_quadratic_buffer_distance_for_a_point_like_shape() -> None:
    # Zero perimeter: pi * d^2 = pi  ->  d = 1
    assert abs(quadratic_buffer_distance(0.0, math.pi) - 1.0) < 1e-12
    assert quadratic_buffer_distance(40.0, 0.0) == 0.0


def test_bisect_increasing_widens_the_bracket() -> None:
    out = bisect_increasing(lambda x: x * x, 0.0, 1.0, target=4.0, abs_tol=1e-6, max_iter=60)
    assert out.converged
    assert abs(out.value - 2.0) < 1e-3


def test_bisect_increasing_reports_cap() -> None:
    out = bisect_increasing(lambda x: x, 0.0, 100.0, target=37.123456, abs_tol=1e-9, max_iter=3)
    assert not out.converged
    assert out.iterations == 3


def test_bisect_relative() -> None:
    out = bisect_relative(lambda x: x, 1.0, 100.0, target=10.0, rel_tol=1e-3, max_iter=50)
    assert out.converged
    assert abs(out.value - 10.0) / 10.0 < 1e-3


def test_bisect_min_satisfying_never_undershoots() -> None:
    threshold = 0.37
    out = bisect_min_satisfying(lambda x: x >= threshold, 0.0, 1.0, width=1e-3, max_iter=30)

    assert out.converged
    assert out.value >= threshold
    assert out.value - threshold < 1e-3


def test_secant_finds_root() -> None:
    out = secant(lambda x: x * x - 2.0, 1.0, 2.0, rel_tol=1e-8, scale=2.0, max_iter=30)
    assert out.converged
    assert abs(out.value - math.sqrt(2.0)) < 1e-6


def test_secant_returns_best_estimate_on_cap() -> None:
    calls = []

    def f(x: float) -> float:
        calls.append(x)
        return x**3 - 1000.0

    out = secant(f, 1.0, 2.0, rel_tol=1e-12, scale=1000.0, max_iter=2)

    assert not out.converged
    assert out.value in calls
    assert out.iterations == len(set(calls))
