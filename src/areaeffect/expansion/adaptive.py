"""
Adaptive expansion: grow each support's AoE just enough to capture
`min_points`, within two caps.

- `max_area` (relative): halo area at most `max_area` times the support,
  i.e. scale <= sqrt(1 + max_area) - 1.
- `max_dist` (absolute, CRS units): converted to a scale through the
  support's characteristic radius sqrt(area / pi), for both methods.

Per support: if the core alone already holds `min_points`, nothing is
expanded. Otherwise the count at the capped scale decides between "cannot
reach" (capped result, warning) and a bisection for the smallest scale whose
count reaches the target. Each support is searched independently; a support
that misses its target never blocks the others.

Note that the scale is chosen per support, so AoEs of supports with
different point densities are no longer comparable.
"""

from __future__ import annotations

# Named-logger pattern shared by every module.
import logging
import math
from dataclasses import dataclass
from typing import Any, Literal, Sequence

import numpy as np
# pandas builds the per-support expansion_info table.
import pandas as pd
from shapely.geometry.base import BaseGeometry

from areaeffect.classify.orchestrator import PreparedInputs, combine_rows, label_rows, prepare_inputs, run_supports
from areaeffect.classify.points import CORE, class_labels
from areaeffect.errors import Diagnostic, InvalidArgumentError, emit_diagnostics
from areaeffect.expansion.config import DEFAULT_CONFIG, SolverConfig
from areaeffect.expansion.numerics import bisect_min_satisfying
from areaeffect.expansion.solver import Expansion, expand_at_scale
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine
from areaeffect.results.model import EXPANSION_INFO_COLUMNS, ExpandResult, GeometryBundle, ScaleParameter, SupportOutcome

CapHit = Literal["none", "max_area", "max_dist"]


def _log() -> logging.Logger:
    return logging.getLogger("areaeffect")


@dataclass(frozen=True)
class ScaleCaps:
    area_scale: float
    dist_scale: float

    @property
    def max_scale(self) -> float:
        return min(self.area_scale, self.dist_scale)

    @property
    def binding(self) -> CapHit:
        return "max_area" if self.area_scale <= self.dist_scale else "max_dist"


def characteristic_radius(area: float) -> float:
    return math.sqrt(area / math.pi)


def scale_caps(original_area: float, *, max_area: float, max_dist: float | None) -> ScaleCaps:
    # (1+s)^2 - 1 <= max_area.
    area_scale = math.sqrt(1.0 + max_area) - 1.0
    dist_scale = math.inf
    if max_dist is not None:
        # Same conversion for buffer and scale_affine: expansion distance ~ scale * radius.
        dist_scale = max_dist / characteristic_radius(original_area)
    return ScaleCaps(area_scale=area_scale, dist_scale=dist_scale)


def count_at_scale(
    inputs: PreparedInputs,
    original: BaseGeometry,
    scale: float,
    *,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> tuple[int, Expansion]:
    """Points kept (core or halo) when `original` is expanded by `scale`, with the geometry used."""
    # Scale 0: only points inside the support itself count.
    if scale <= 0:
        core = engine.covers(original, inputs.point_geoms)
        return int(core.sum()), Expansion(aoe_raw=original, aoe_final=original, scale=0.0, buffer_distance=None)
    expansion = expand_at_scale(
        original,
        scale,
        inputs.method,
        reference=inputs.reference,
        mask=inputs.mask,
        engine=engine,
        config=config,
    )
    labels = class_labels(inputs.point_geoms, original, expansion.aoe_final, engine=engine)
    return int(pd.notna(labels).sum()), expansion


def expand_support(
    inputs: PreparedInputs,
    support_id: str,
    original: BaseGeometry,
    *,
    min_points: int,
    max_area: float,
    max_dist: float | None,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> SupportOutcome:
    # Enough points in the core already: no expansion at all.
    core_count, _ = count_at_scale(inputs, original, 0.0, config=config, engine=engine)
    if core_count >= min_points:
        labels = np.where(engine.covers(original, inputs.point_geoms), CORE, None).astype(object)
        return SupportOutcome(
            support_id=support_id,
            rows=label_rows(inputs, support_id, labels),
            bundle=GeometryBundle(original=original, aoe_raw=original, aoe_final=original),
            info={"scale_used": 0.0, "points_captured": core_count, "target_reached": True, "cap_hit": "none"},
        )

    # Probe at the cap first; if even that falls short, bisection is pointless.
    caps = scale_caps(engine.area(original), max_area=max_area, max_dist=max_dist)
    max_scale = caps.max_scale
    max_count, max_expansion = count_at_scale(inputs, original, max_scale, config=config, engine=engine)

    diagnostics: list[Diagnostic] = []
    if max_count < min_points:
        scale_used, captured, final, reached, cap_hit = max_scale, max_count, max_expansion, False, caps.binding
    else:
        # Every probe is kept so the winning geometry is not recomputed.
        probes: dict[float, tuple[int, Expansion]] = {max_scale: (max_count, max_expansion)}

        def _enough(s: float) -> bool:
            probes[s] = count_at_scale(inputs, original, s, config=config, engine=engine)
            return probes[s][0] >= min_points

        search = bisect_min_satisfying(
            _enough, 0.0, max_scale, width=config.adaptive.width, max_iter=config.adaptive.max_iter
        )
        scale_used = search.value
        captured, final = probes[scale_used]
        reached, cap_hit = True, "none"
        if not search.converged:
            message = (
                f"Support {support_id}: adaptive search stopped after {search.iterations} iterations "
                f"(scale={scale_used:.4g})"
            )
            _log().warning(message)
            diagnostics.append(Diagnostic(kind="convergence", message=message, support_id=support_id))

    if not final.converged:
        message = f"Support {support_id}: buffer distance search did not converge at scale={scale_used:.4g}"
        _log().warning(message)
        diagnostics.append(Diagnostic(kind="convergence", message=message, support_id=support_id))

    labels = class_labels(inputs.point_geoms, original, final.aoe_final, engine=engine)
    return SupportOutcome(
        support_id=support_id,
        rows=label_rows(inputs, support_id, labels),
        bundle=GeometryBundle(original=original, aoe_raw=final.aoe_raw, aoe_final=final.aoe_final),
        diagnostics=tuple(diagnostics),
        info={
            "scale_used": float(scale_used),
            "points_captured": int(captured),
            "target_reached": bool(reached),
            "cap_hit": cap_hit,
        },
    )


def _validate_caps(min_points: Any, max_area: Any, max_dist: Any) -> int:
    # Fractional counts are rejected rather than truncated (0.5 would become 0).
    if isinstance(min_points, bool) or not isinstance(min_points, (int, float, np.integer, np.floating)):
        raise InvalidArgumentError("`min_points` must be a positive integer")
    if not math.isfinite(min_points) or not float(min_points).is_integer() or min_points < 1:
        raise InvalidArgumentError("`min_points` must be a positive integer")
    if isinstance(max_area, bool) or not isinstance(max_area, (int, float)) or max_area <= 0:
        raise InvalidArgumentError("`max_area` must be a positive number")
    if max_dist is not None and (isinstance(max_dist, bool) or not isinstance(max_dist, (int, float)) or max_dist <= 0):
        raise InvalidArgumentError("`max_dist` must be a positive number (in CRS units)")
    return int(min_points)


def expand_to_count(
    points: Any,
    support: Any = None,
    min_points: int | None = None,
    *,
    max_area: float = 2.0,
    max_dist: float | None = None,
    method: str = "buffer",
    reference: Any = None,
    mask: Any = None,
    coords: Sequence[str] | None = None,
    support_id_col: str | None = None,
    point_id_col: str | None = None,
    countries: Any = None,
    land: Any = None,
    workers: int | None = None,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> ExpandResult:
    """
    Expand each support's AoE to the smallest scale capturing `min_points` points.

    Returns an `ExpandResult` whose `expansion_info` has one row per support
    (`support_id, scale_used, points_captured, target_reached, cap_hit`).
    Supports that cannot reach the target within the caps keep the capped
    AoE; they are listed in a single `TargetNotReachedWarning`.
    """
    min_points = _validate_caps(min_points, max_area, max_dist)
    inputs = prepare_inputs(
        points,
        support,
        method=method,
        reference=reference,
        mask=mask,
        coords=coords,
        support_id_col=support_id_col,
        point_id_col=point_id_col,
        countries=countries,
        land=land,
        config=config,
        engine=engine,
    )
    _log().info(
        "Adaptive expansion: %d support(s) min_points=%d max_area=%s max_dist=%s",
        len(inputs.supports),
        min_points,
        max_area,
        max_dist,
    )

    outcomes = run_supports(
        inputs,
        lambda sid, geom: expand_support(
            inputs,
            sid,
            geom,
            min_points=min_points,
            max_area=float(max_area),
            max_dist=None if max_dist is None else float(max_dist),
            config=config,
            engine=engine,
        ),
        workers=int(workers if workers is not None else config.workers),
    )

    # One row per support, in input order.
    info = pd.DataFrame(
        [{"support_id": o.support_id, **(o.info or {})} for o in outcomes],
        columns=list(EXPANSION_INFO_COLUMNS),
    )
    diagnostics = list(inputs.diagnostics) + [d for o in outcomes for d in o.diagnostics]
    # Misses are collected into a single warning naming every affected support.
    failed = info.loc[~info["target_reached"].astype(bool), "support_id"].astype(str).tolist()
    if failed:
        message = (
            f"Could not reach min_points={min_points} for {len(failed)} support(s): {', '.join(failed)}"
        )
        _log().warning(message)
        diagnostics.append(Diagnostic(kind="target_not_reached", message=message))
    emit_diagnostics(diagnostics)

    # The mean scale is only a display value; per-support scales live in expansion_info.
    mean_scale = float(info["scale_used"].mean()) if len(info) else 0.0
    return ExpandResult(
        table=combine_rows(inputs, outcomes),
        geometries={o.support_id: o.bundle for o in outcomes},
        parameter=ScaleParameter(mean_scale),
        support_count=len(inputs.supports),
        expansion_info=info,
        min_points=min_points,
        target_reached=not failed,
        warnings=tuple(diagnostics),
    )
