"""
Multi-support orchestration: one AoE per support, one long-format table.

Each support is processed by `process_support`, a pure function of the
shared (read-only) point set, the prepared mask and that support's own
geometry. Supports never see each other, so they can run on a thread pool;
results land in index-addressed slots and are concatenated in input order.

A point that falls inside the AoE of k supports appears k times in the
output, once per `support_id`, each with its own `aoe_class`.
"""

from __future__ import annotations

# Named-logger pattern shared by every module (configured once by the CLI).
import logging
# Supports are independent, so a thread pool can process them side by side.
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Sequence

# geopandas holds points and supports as frames with an active geometry column.
import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from areaeffect.classify.mask import prepare_mask, resolve_mask
from areaeffect.classify.points import class_labels
from areaeffect.errors import Diagnostic, InvalidArgumentError, emit_diagnostics
from areaeffect.expansion.config import DEFAULT_CONFIG, SolverConfig
from areaeffect.expansion.solver import (
    EQUAL_AREA_SCALE,
    AreaTarget,
    Method,
    ScaleTarget,
    Target,
    expand,
    normalize_method,
)
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine
from areaeffect.geometry.inputs import (
    align_crs,
    resolve_ids,
    select_dominant_fragment,
    to_points_frame,
    to_polygon_frame,
    to_reference_point,
)
from areaeffect.results.model import (
    AOE_COLUMNS,
    AoEResult,
    AreaParameter,
    GeometryBundle,
    ScaleParameter,
    SupportOutcome,
    empty_table,
    order_columns,
)


def _log() -> logging.Logger:
    return logging.getLogger("areaeffect")


@dataclass(frozen=True)
class PreparedInputs:
    points: gpd.GeoDataFrame
    point_ids: np.ndarray
    point_geoms: np.ndarray
    supports: list[tuple[str, BaseGeometry]]
    mask: BaseGeometry | None
    reference: Point | None
    method: Method
    crs: Any
    diagnostics: tuple[Diagnostic, ...]


def _resolve_support(support: Any, points: Any, countries: Any, coords: Sequence[str] | None) -> Any:
    # Country names / ISO codes need a loaded country table.
    if support is None or isinstance(support, str) or (
        isinstance(support, (list, tuple)) and support and all(isinstance(s, str) for s in support)
    ):
        from areaeffect.reference.countries import detect_countries, get_countries

        if countries is None:
            raise InvalidArgumentError(
                "`support` given as country name(s) or omitted, but no country table was supplied"
            )
        if support is None or (isinstance(support, str) and support.lower() == "auto"):
            return detect_countries(to_points_frame(points, coords=coords, crs=countries.crs), countries)
        names = [support] if isinstance(support, str) else list(support)
        return get_countries(names, countries)
    return support


def prepare_inputs(
    points: Any,
    support: Any,
    *,
    method: str,
    reference: Any = None,
    mask: Any = None,
    coords: Sequence[str] | None = None,
    support_id_col: str | None = None,
    point_id_col: str | None = None,
    countries: Any = None,
    land: Any = None,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> PreparedInputs:
    """Validate and normalize every input before any expansion work starts."""
    # Every check runs before any geometry work; a failure leaves nothing half-done.
    method_n = normalize_method(method)
    support = _resolve_support(support, points, countries, coords)
    support_frame = to_polygon_frame(support, label="support")
    crs = support_frame.crs
    # Points follow the supports' CRS; all geometry below is planar in that CRS.
    point_frame = align_crs(to_points_frame(points, coords=coords, crs=crs), crs)

    if reference is not None:
        if method_n != "scale_affine":
            raise InvalidArgumentError("`reference` can only be used with method='scale_affine'")
        if len(support_frame) > 1:
            raise InvalidArgumentError(
                "`reference` can only be provided when `support` has a single row; "
                "with multiple supports each one uses its own centroid"
            )
    reference_point = to_reference_point(reference, crs)

    support_ids = resolve_ids(support_frame, support_id_col, label="support")
    # Support ids key the geometry bundle, so they must be unique.
    duplicated = sorted({s for s in support_ids if support_ids.count(s) > 1})
    if duplicated:
        raise InvalidArgumentError(f"Support ids must be unique; duplicated: {duplicated}")

    point_ids = np.asarray(resolve_ids(point_frame, point_id_col, label="points"), dtype=object)
    # Output columns are generated; stale copies from a previous run are dropped.
    point_frame = point_frame.drop(columns=[c for c in AOE_COLUMNS if c in point_frame.columns])

    # The mask is unioned once and shared read-only by every support.
    mask_geom = prepare_mask(resolve_mask(mask, land), crs=crs, engine=engine)

    diagnostics: list[Diagnostic] = []
    supports: list[tuple[str, BaseGeometry]] = []
    for sid, geom in zip(support_ids, support_frame.geometry):
        # Repair first; a support with no area left cannot be expanded.
        geom = engine.make_valid(geom)
        if engine.is_empty(geom) or engine.area(geom) <= 0:
            raise InvalidArgumentError(f"Support {sid} has no polygonal area after repair")
        geom, note = select_dominant_fragment(
            geom, policy=config.fragment_policy, dominance=config.fragment_dominance, support_id=sid
        )
        if note is not None:
            _log().warning(note.message)
            diagnostics.append(note)
        supports.append((sid, geom))

    return PreparedInputs(
        points=point_frame,
        point_ids=point_ids,
        point_geoms=np.asarray(point_frame.geometry.to_numpy(), dtype=object),
        supports=supports,
        mask=mask_geom,
        reference=reference_point,
        method=method_n,
        crs=crs,
        diagnostics=tuple(diagnostics),
    )


def label_rows(
    inputs: PreparedInputs,
    support_id: str,
    labels: np.ndarray,
) -> gpd.GeoDataFrame | None:
    """Rows of the long-format table for one support (None when every point was pruned)."""
    # None marks a pruned point.
    keep = np.flatnonzero(pd.notna(labels))
    if keep.size == 0:
        return None
    rows = inputs.points.iloc[keep].copy()
    rows.insert(0, "point_id", inputs.point_ids[keep])
    rows.insert(1, "support_id", support_id)
    rows.insert(2, "aoe_class", labels[keep])
    return rows


def process_support(
    inputs: PreparedInputs,
    support_id: str,
    original: BaseGeometry,
    target: Target,
    *,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> SupportOutcome:
    expansion = expand(
        original,
        target,
        inputs.method,
        reference=inputs.reference,
        mask=inputs.mask,
        engine=engine,
        config=config,
    )
    bundle = GeometryBundle(original=original, aoe_raw=expansion.aoe_raw, aoe_final=expansion.aoe_final)
    labels = class_labels(inputs.point_geoms, original, expansion.aoe_final, engine=engine)

    diagnostics: list[Diagnostic] = []
    if not expansion.converged:
        what = "area search" if expansion.scale_search is not None else "buffer distance search"
        message = f"Support {support_id}: {what} did not converge; using best estimate (scale={expansion.scale:.4g})"
        _log().warning(message)
        diagnostics.append(Diagnostic(kind="convergence", message=message, support_id=support_id))

    return SupportOutcome(
        support_id=support_id,
        rows=label_rows(inputs, support_id, labels),
        bundle=bundle,
        diagnostics=tuple(diagnostics),
    )


def run_supports(
    inputs: PreparedInputs,
    work: Callable[[str, BaseGeometry], SupportOutcome],
    *,
    workers: int = 1,
) -> list[SupportOutcome]:
    """Run `work` for every support; output order follows input order, not completion order."""
    # One slot per support keeps input order whatever the completion order.
    slots: list[SupportOutcome | None] = [None] * len(inputs.supports)
    if workers > 1 and len(inputs.supports) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(work, sid, geom): i for i, (sid, geom) in enumerate(inputs.supports)
            }
            # result() re-raises a worker's exception in the caller.
            for future, i in futures.items():
                slots[i] = future.result()
    else:
        for i, (sid, geom) in enumerate(inputs.supports):
            slots[i] = work(sid, geom)
    return [s for s in slots if s is not None]


def combine_rows(inputs: PreparedInputs, outcomes: Sequence[SupportOutcome]) -> gpd.GeoDataFrame:
    frames = [o.rows for o in outcomes if o.rows is not None and len(o.rows)]
    if not frames:
        # Zero rows still carry the full column set.
        return empty_table(inputs.points, AOE_COLUMNS)
    table = pd.concat(frames, ignore_index=True)
    table = gpd.GeoDataFrame(table, geometry=inputs.points.geometry.name, crs=inputs.points.crs)
    return order_columns(table, AOE_COLUMNS)


def _resolve_target(scale: float | None, area: float | None) -> Target:
    if scale is not None and area is not None:
        raise InvalidArgumentError("Cannot specify both `scale` and `area`; use one or the other")
    if area is not None:
        return AreaTarget(area)
    return ScaleTarget(EQUAL_AREA_SCALE if scale is None else scale)


def classify(
    points: Any,
    support: Any = None,
    *,
    scale: float | None = None,
    area: float | None = None,
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
) -> AoEResult:
    """
    Classify points as core / halo relative to each support, pruning the rest.

    `scale` (default sqrt(2) - 1, equal core and halo areas) and `area`
    (masked halo area as a multiple of the support area) are mutually
    exclusive. `method` is `"buffer"` (default) or `"scale_affine"`
    (`"stamp"` is accepted too). `reference` is only valid for
    `scale_affine` with a single support.

    Supports are identified by `support_id_col` when given, otherwise by the
    frame index; points likewise by `point_id_col` or their index.
    """
    target = _resolve_target(scale, area)
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
        "Classifying %d point(s) against %d support(s) method=%s target=%s",
        len(inputs.points),
        len(inputs.supports),
        inputs.method,
        target,
    )

    outcomes = run_supports(
        inputs,
        lambda sid, geom: process_support(inputs, sid, geom, target, config=config, engine=engine),
        workers=int(workers if workers is not None else config.workers),
    )

    # Warnings from all supports surface together, once, after the work is done.
    diagnostics = inputs.diagnostics + tuple(d for o in outcomes for d in o.diagnostics)
    emit_diagnostics(diagnostics)

    parameter = AreaParameter(target.area) if isinstance(target, AreaTarget) else ScaleParameter(target.scale)
    return AoEResult(
        table=combine_rows(inputs, outcomes),
        geometries={o.support_id: o.bundle for o in outcomes},
        parameter=parameter,
        support_count=len(inputs.supports),
        warnings=diagnostics,
    )
