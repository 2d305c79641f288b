"""
Expansion solver: from an original support polygon to its area of effect.

Two ways of expanding:

- `scale_affine`: every vertex is pushed away from a reference point r,
  p' = r + (1 + s)(p - r). Exact and cheap. The result contains the original
  only when the polygon is star-shaped with respect to r; for strongly
  concave shapes small slivers of the original can stick out of the AoE.
  That is accepted and documented, not corrected.
- `buffer`: a uniform outward buffer whose distance is chosen so that the
  buffered area equals original_area * (1 + s)^2. Robust for any shape and
  always contains the original.

Two ways of stating the target:

- `ScaleTarget(s)`: the AoE area before masking is (1 + s)^2 times the original.
- `AreaTarget(a)`: the halo area *after* masking is a times the original.
  Masking makes area(s) non-linear, so the scale is found with a secant
  iteration on the masked halo area.
"""

from __future__ import annotations

import math
# Targets and expansions are small immutable records.
from dataclasses import dataclass
from typing import Literal, Union

# shapely types only; every geometric operation goes through the engine.
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from areaeffect.classify.mask import clip
from areaeffect.errors import InvalidArgumentError
from areaeffect.expansion.config import DEFAULT_CONFIG, SolverConfig
from areaeffect.expansion.numerics import Refinement, bisect_increasing, quadratic_buffer_distance, secant
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine

Method = Literal["buffer", "scale_affine"]

# Halo area equals core area.
EQUAL_AREA_SCALE = math.sqrt(2.0) - 1.0

_METHOD_ALIASES = {"buffer": "buffer", "scale_affine": "scale_affine", "stamp": "scale_affine"}


def normalize_method(method: str) -> Method:
    try:
        return _METHOD_ALIASES[str(method)]  # type: ignore[return-value]
    except KeyError:
        raise InvalidArgumentError(f"`method` must be 'buffer' or 'scale_affine' (got {method!r})") from None


@dataclass(frozen=True)
class ScaleTarget:
    scale: float

    def __post_init__(self) -> None:
        if not isinstance(self.scale, (int, float)) or isinstance(self.scale, bool) or not math.isfinite(self.scale):
            raise InvalidArgumentError("`scale` must be a single positive number")
        if self.scale <= 0:
            raise InvalidArgumentError("`scale` must be a single positive number")


@dataclass(frozen=True)
class AreaTarget:
    area: float

    def __post_init__(self) -> None:
        if not isinstance(self.area, (int, float)) or isinstance(self.area, bool) or not math.isfinite(self.area):
            raise InvalidArgumentError("`area` must be a single positive number")
        if self.area <= 0:
            raise InvalidArgumentError("`area` must be a single positive number")


Target = Union[ScaleTarget, AreaTarget]


@dataclass(frozen=True)
class Expansion:
    aoe_raw: BaseGeometry
    aoe_final: BaseGeometry
    scale: float
    # Only set for the buffer method.
    buffer_distance: float | None
    # Search outcomes; None when no search was needed.
    buffer_search: Refinement | None = None
    scale_search: Refinement | None = None

    @property
    def converged(self) -> bool:
        return all(r is None or r.converged for r in (self.buffer_search, self.scale_search))


def scale_affine(
    original: BaseGeometry,
    scale: float,
    *,
    reference: Point | None = None,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> BaseGeometry:
    # Without an explicit reference the polygon grows about its own centroid.
    origin = reference if reference is not None else engine.centroid(original)
    return engine.scale(original, 1.0 + scale, origin)


def buffer_distance_for_scale(
    original: BaseGeometry,
    scale: float,
    *,
    engine: GeometryEngine = DEFAULT_ENGINE,
    config: SolverConfig = DEFAULT_CONFIG,
) -> Refinement:
    """
    Buffer distance d such that area(buffer(original, d)) == area * (1 + scale)^2.

    Starts from the convex closed form pi*d^2 + P*d = halo_area and refines
    by bisection on [d0/2, 2*d0] against the true buffered area, within
    `config.buffer.rel_tol` of the target total area.
    """
    original_area = engine.area(original)
    multiplier = 1.0 + scale
    # Total buffered area the search aims for, original included.
    target_total = original_area * multiplier * multiplier
    halo_target = target_total - original_area
    # Closed-form start; exact for convex shapes, a good bracket centre otherwise.
    d0 = quadratic_buffer_distance(engine.length(original), halo_target)
    if d0 <= 0:
        return Refinement(value=0.0, converged=True, iterations=0)

    # Buffered area grows monotonically with d, so bisection applies.
    return bisect_increasing(
        lambda d: engine.area(engine.buffer(original, d)),
        d0 * 0.5,
        d0 * 2.0,
        target=target_total,
        abs_tol=target_total * config.buffer.rel_tol,
        max_iter=config.buffer.max_iter,
    )


def expand_raw(
    original: BaseGeometry,
    scale: float,
    method: Method,
    *,
    reference: Point | None = None,
    engine: GeometryEngine = DEFAULT_ENGINE,
    config: SolverConfig = DEFAULT_CONFIG,
) -> tuple[BaseGeometry, float | None, Refinement | None]:
    """Unmasked AoE at a given scale: (aoe_raw, buffer distance, buffer search)."""
    # Scale 0 is the support itself (used by the adaptive search).
    if scale <= 0:
        return original, (0.0 if method == "buffer" else None), None
    if method == "buffer":
        search = buffer_distance_for_scale(original, scale, engine=engine, config=config)
        return engine.buffer(original, search.value), search.value, search
    return scale_affine(original, scale, reference=reference, engine=engine), None, None


def expand_at_scale(
    original: BaseGeometry,
    scale: float,
    method: Method,
    *,
    reference: Point | None = None,
    mask: BaseGeometry | None = None,
    engine: GeometryEngine = DEFAULT_ENGINE,
    config: SolverConfig = DEFAULT_CONFIG,
) -> Expansion:
    aoe_raw, distance, search = expand_raw(
        original, scale, method, reference=reference, engine=engine, config=config
    )
    # The mask only ever shrinks the raw AoE.
    return Expansion(
        aoe_raw=aoe_raw,
        aoe_final=clip(aoe_raw, mask, engine=engine),
        scale=scale,
        buffer_distance=distance,
        buffer_search=search,
    )


def scale_for_masked_area(
    original: BaseGeometry,
    area: float,
    method: Method,
    *,
    reference: Point | None = None,
    mask: BaseGeometry | None = None,
    engine: GeometryEngine = DEFAULT_ENGINE,
    config: SolverConfig = DEFAULT_CONFIG,
) -> tuple[Refinement, dict[float, Expansion]]:
    """
    Secant search for the scale whose *masked* halo area is `area` times the original.

    Returns the search outcome and every expansion evaluated along the way,
    keyed by scale, so the caller can reuse the winning geometry.
    """
    original_area = engine.area(original)
    target_halo = area * original_area
    # Memoised by scale: the secant and the caller both reuse evaluated geometry.
    cache: dict[float, Expansion] = {}

    def _expansion(s: float) -> Expansion:
        if s not in cache:
            cache[s] = expand_at_scale(
                original, s, method, reference=reference, mask=mask, engine=engine, config=config
            )
        return cache[s]

    def _halo(s: float) -> float:
        # Halo is the AoE minus the original; the mask may also bite into the original.
        return engine.area(engine.difference(_expansion(s).aoe_final, original))

    def _residual(s: float) -> float:
        return _halo(s) - target_halo

    # Without a mask, halo = ((1+s)^2 - 1) * area, so this is exact for buffer/affine expansion.
    s0 = math.sqrt(1.0 + area) - 1.0
    halo0 = _halo(s0)
    if halo0 > 0:
        # Second point rescales the first by how far the masked halo fell short.
        s1 = s0 * math.sqrt(target_halo / halo0)
    else:
        s1 = s0 * 2.0
    # The secant needs two distinct starting points.
    if s1 == s0:
        s1 = s0 * 1.01

    refinement = secant(
        _residual,
        s0,
        s1,
        rel_tol=config.secant.rel_tol,
        scale=target_halo,
        max_iter=config.secant.max_iter,
    )
    return refinement, cache


def expand(
    original: BaseGeometry,
    target: Target,
    method: Method = "buffer",
    *,
    reference: Point | None = None,
    mask: BaseGeometry | None = None,
    engine: GeometryEngine = DEFAULT_ENGINE,
    config: SolverConfig = DEFAULT_CONFIG,
) -> Expansion:
    """
    Compute the area of effect of `original` for a scale or area target.

    `mask` (already prepared) is applied to produce `aoe_final`; it also
    drives the search in area mode. `reference` only matters for
    `scale_affine` and defaults to the centroid.
    """
    if isinstance(target, ScaleTarget):
        return expand_at_scale(
            original, target.scale, method, reference=reference, mask=mask, engine=engine, config=config
        )
    if not isinstance(target, AreaTarget):
        raise InvalidArgumentError(f"Unsupported expansion target: {target!r}")

    refinement, cache = scale_for_masked_area(
        original, target.area, method, reference=reference, mask=mask, engine=engine, config=config
    )
    # The winning scale was normally evaluated during the search already.
    best = cache.get(refinement.value)
    if best is None:
        best = expand_at_scale(
            original, refinement.value, method, reference=reference, mask=mask, engine=engine, config=config
        )
    return Expansion(
        aoe_raw=best.aoe_raw,
        aoe_final=best.aoe_final,
        scale=best.scale,
        buffer_distance=best.buffer_distance,
        buffer_search=best.buffer_search,
        scale_search=refinement,
    )
