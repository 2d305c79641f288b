"""
Bounded one-dimensional searches used by the expansion solver, the adaptive
search and the border width search.

Every search is a pure function returning a `Refinement`: the value it
settled on, whether the tolerance was met, and how many evaluations it took.
Deciding what to do about a search that ran out of iterations (warn, accept,
fail) is left to the caller.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Callable

# scipy runs the secant iteration (newton without fprime is the secant method).
from scipy.optimize import newton


@dataclass(frozen=True)
class Refinement:
    value: float
    converged: bool
    iterations: int


def quadratic_buffer_distance(perimeter: float, halo_area: float) -> float:
    """
    Positive root of pi*d^2 + P*d = halo_area.

    Exact for a convex boundary whose buffer does not self-intersect; used as
    the starting point of the bisection everywhere else.
    """
    if halo_area <= 0:
        return 0.0
    discriminant = perimeter * perimeter + 4.0 * math.pi * halo_area
    return (-perimeter + math.sqrt(discriminant)) / (2.0 * math.pi)


def bisect_increasing(
    f: Callable[[float], float],
    low: float,
    high: float,
    *,
    target: float,
    abs_tol: float,
    max_iter: int,
) -> Refinement:
    """
    Find x with |f(x) - target| < abs_tol for a non-decreasing f.

    The bracket [low, high] is widened first (high doubled) while f(high) is
    still short of the target; widening steps count against `max_iter`.
    """
    iterations = 0
    while iterations < max_iter and f(high) < target:
        low, high = high, high * 2.0
        iterations += 1

    mid = (low + high) / 2.0
    while iterations < max_iter:
        iterations += 1
        mid = (low + high) / 2.0
        value = f(mid)
        if abs(value - target) < abs_tol:
            return Refinement(value=mid, converged=True, iterations=iterations)
        if value < target:
            low = mid
        else:
            high = mid
    return Refinement(value=mid, converged=False, iterations=iterations)


def bisect_relative(
    f: Callable[[float], float],
    low: float,
    high: float,
    *,
    target: float,
    rel_tol: float,
    max_iter: int,
) -> Refinement:
    """Plain bisection on a fixed bracket, converged when |f(x) - target| / target < rel_tol."""
    mid = (low + high) / 2.0
    for i in range(1, max_iter + 1):
        mid = (low + high) / 2.0
        value = f(mid)
        if abs(value - target) / target < rel_tol:
            return Refinement(value=mid, converged=True, iterations=i)
        if value < target:
            low = mid
        else:
            high = mid
    return Refinement(value=mid, converged=False, iterations=max_iter)


def bisect_min_satisfying(
    satisfied: Callable[[float], bool],
    low: float,
    high: float,
    *,
    width: float,
    max_iter: int,
) -> Refinement:
    """
    Smallest x in (low, high] for which `satisfied(x)` holds.

    Assumes `satisfied(high)` is true and `satisfied(low)` is false. The
    returned value always satisfies the predicate: overshooting is fine,
    undershooting is not.
    """
    best = high
    iterations = 0
    while iterations < max_iter:
        if high - low < width:
            return Refinement(value=best, converged=True, iterations=iterations)
        iterations += 1
        mid = (low + high) / 2.0
        if satisfied(mid):
            high = mid
            best = mid
        else:
            low = mid
    return Refinement(value=best, converged=high - low < width, iterations=iterations)


class _ResidualReached(Exception):
    def __init__(self, x: float) -> None:
        super().__init__(x)
        self.x = x


def secant(
    f: Callable[[float], float],
    x0: float,
    x1: float,
    *,
    rel_tol: float,
    scale: float,
    max_iter: int,
    lower: float = 0.0,
) -> Refinement:
    """
    Secant iteration x_{n+1} = x_n - f(x_n) (x_n - x_{n-1}) / (f(x_n) - f(x_{n-1})).

    Stops as soon as |f(x)| < rel_tol * scale. Iterates are clamped above
    `lower` because f is only defined for positive arguments. If the cap is
    reached (or the iteration stalls on a flat f) the x with the smallest
    residual seen is returned with `converged=False`.
    """
    tol = rel_tol * abs(scale)
    seen: dict[float, float] = {}
    floor = lower + 1e-12 * max(1.0, abs(x0))

    def _f(x: float) -> float:
        x = max(float(x), floor)
        if x not in seen:
            seen[x] = float(f(x))
        if abs(seen[x]) < tol:
            raise _ResidualReached(x)
        return seen[x]

    try:
        with warnings.catch_warnings():
            # scipy warns when two consecutive residuals are equal; that case is handled below.
            warnings.simplefilter("ignore", RuntimeWarning)
            newton(_f, float(x0), x1=float(x1), tol=1e-12 * max(1.0, abs(x0)), maxiter=max_iter, disp=False)
    except _ResidualReached as hit:
        return Refinement(value=hit.x, converged=True, iterations=len(seen))

    best = min(seen, key=lambda x: abs(seen[x]))
    return Refinement(value=best, converged=abs(seen[best]) < tol, iterations=len(seen))
