"""
Tabular views of a classification result: geometry extraction, area
statistics, per-support counts, a text summary and JSON-ready records.
"""

from __future__ import annotations

import math
from typing import Any, Literal

# geopandas returns geometry tables; pandas the plain statistics tables.
import geopandas as gpd
import numpy as np
import pandas as pd

from areaeffect.errors import InvalidArgumentError
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine
from areaeffect.results.model import AoEResult, AreaParameter, BorderResult, ExpandResult, Result
from areaeffect.results.schemas import BorderPointRecord, ClassifiedPointRecord, ExpansionRecord, ResultRecords

SUMMARY_COLUMNS = ["n_total", "n_core", "n_halo", "prop_core", "prop_halo"]
AREA_COLUMNS = ["support_id", "area_core", "area_halo", "area_aoe", "halo_core_ratio", "pct_masked"]


def _require_supports(result: Result, what: str) -> AoEResult | ExpandResult:
    if isinstance(result, BorderResult):
        raise InvalidArgumentError(f"{what} needs a support-based result; border zones live in result.geometries")
    if not result.geometries:
        raise InvalidArgumentError("No geometries stored in result")
    return result


def extract_geometry(
    result: Result,
    which: Literal["aoe", "original", "both"] = "aoe",
    support_id: Any = None,
) -> gpd.GeoDataFrame:
    """One row per support and geometry type: `support_id, type, geometry`."""
    if which not in ("aoe", "original", "both"):
        raise InvalidArgumentError(f"`which` must be 'aoe', 'original' or 'both' (got {which!r})")
    result = _require_supports(result, "extract_geometry")

    bundles = result.geometries
    if support_id is not None:
        wanted = {str(s) for s in (support_id if isinstance(support_id, (list, tuple, set)) else [support_id])}
        bundles = {sid: b for sid, b in bundles.items() if sid in wanted}
        if not bundles:
            raise InvalidArgumentError("No matching support_id found")

    records: list[dict[str, Any]] = []
    for sid, bundle in bundles.items():
        if which in ("original", "both"):
            records.append({"support_id": sid, "type": "original", "geometry": bundle.original})
        if which in ("aoe", "both"):
            records.append({"support_id": sid, "type": "aoe", "geometry": bundle.aoe_final})
    return gpd.GeoDataFrame(records, geometry="geometry", crs=result.table.crs)


def _theoretical_multiplier(result: AoEResult | ExpandResult) -> dict[str, float]:
    # Unmasked AoE area as a multiple of the support area.
    if isinstance(result.parameter, AreaParameter):
        factor = 1.0 + result.parameter.area
        return {sid: factor for sid in result.geometries}
    if isinstance(result, ExpandResult):
        scales = dict(zip(result.expansion_info["support_id"].astype(str), result.expansion_info["scale_used"]))
        return {sid: (1.0 + float(scales.get(sid, 0.0))) ** 2 for sid in result.geometries}
    factor = (1.0 + result.parameter.scale) ** 2
    return {sid: factor for sid in result.geometries}


def area_statistics(result: Result, *, engine: GeometryEngine = DEFAULT_ENGINE) -> pd.DataFrame:
    """
    Areas per support after masking.

    `area_halo` is `max(0, area_aoe - area_core)`; `pct_masked` is the share
    of the theoretical (unmasked) AoE removed by the mask. In scale mode the
    theoretical AoE is `core * (1 + s)^2` (per-support `s` for adaptive
    results), in area mode `core * (1 + a)`.
    """
    result = _require_supports(result, "area_statistics")
    multipliers = _theoretical_multiplier(result)

    rows = []
    for sid, bundle in result.geometries.items():
        area_core = engine.area(bundle.original)
        area_aoe = engine.area(bundle.aoe_final)
        theoretical = area_core * multipliers[sid]
        rows.append(
            {
                "support_id": sid,
                "area_core": area_core,
                "area_halo": max(0.0, area_aoe - area_core),
                "area_aoe": area_aoe,
                "halo_core_ratio": max(0.0, area_aoe - area_core) / area_core if area_core > 0 else math.nan,
                "pct_masked": 100.0 * (theoretical - area_aoe) / theoretical if theoretical > 0 else math.nan,
            }
        )
    return pd.DataFrame(rows, columns=AREA_COLUMNS)


def summarize(result: Result) -> pd.DataFrame:
    """Counts and proportions of core / halo rows per support (per side for border results)."""
    key = "side" if isinstance(result, BorderResult) else "support_id"
    table = result.table
    if len(table) == 0:
        return pd.DataFrame(
            {
                key: pd.Series([], dtype=object),
                "n_total": pd.Series([], dtype=int),
                "n_core": pd.Series([], dtype=int),
                "n_halo": pd.Series([], dtype=int),
                "prop_core": pd.Series([], dtype=float),
                "prop_halo": pd.Series([], dtype=float),
            }
        )

    grouped = table.groupby(key, sort=False)["aoe_class"]
    out = pd.DataFrame(
        {
            "n_total": grouped.size(),
            "n_core": grouped.apply(lambda s: int((s == "core").sum())),
            "n_halo": grouped.apply(lambda s: int((s == "halo").sum())),
        }
    )
    out["prop_core"] = out["n_core"] / out["n_total"]
    out["prop_halo"] = out["n_halo"] / out["n_total"]
    return out.reset_index().rename(columns={"index": key})[[key, *SUMMARY_COLUMNS]]


def describe(result: Result) -> str:
    """Human-readable summary of a result."""
    table = result.table
    n_core = int((table["aoe_class"] == "core").sum()) if len(table) else 0
    n_halo = int((table["aoe_class"] == "halo").sum()) if len(table) else 0

    if isinstance(result, BorderResult):
        first, second = result.side_names
        n_first = int((table["side"] == first).sum()) if len(table) else 0
        n_second = int((table["side"] == second).sum()) if len(table) else 0
        lines = [
            "Border AoE Result",
            f"Points: {len(table)} ({first}: {n_first}, {second}: {n_second})",
            f"Classification: {n_core} core, {n_halo} halo",
            f"Core width: {result.core_width:.1f}, Halo width: {result.halo_width:.1f}",
        ]
        return "\n".join(lines)

    lines = [
        "Area of Effect Result",
        f"Points:   {len(table)} ({n_core} core, {n_halo} halo)",
        f"Supports: {result.support_count}",
    ]
    if isinstance(result.parameter, AreaParameter):
        area = result.parameter.area
        lines.append(f"Area:     {area:.3g} (target halo = {area:.3g} x original)")
    else:
        scale = result.parameter.scale
        lines.append(
            f"Scale:    {scale:.3g} (multiplier {1 + scale:.3g}, theoretical halo:core {(1 + scale) ** 2 - 1:.2f})"
        )

    if isinstance(result, ExpandResult):
        info = result.expansion_info
        lines.append("")
        lines.append("Expansion Info:")
        lines.append(f"  Target: min_points = {result.min_points}")
        if len(info) <= 5:
            for row in info.itertuples(index=False):
                status = "reached" if row.target_reached else f"capped by {row.cap_hit}"
                lines.append(
                    f"  {row.support_id}: scale={row.scale_used:.3f}, points={row.points_captured} ({status})"
                )
        else:
            reached = int(info["target_reached"].sum())
            lines.append(f"  {reached}/{len(info)} supports reached target")
            lines.append(f"  Scale range: {info['scale_used'].min():.3f} - {info['scale_used'].max():.3f}")
    return "\n".join(lines)


def _plain(value: Any) -> Any:
    # numpy scalars and NaN are not JSON values.
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def to_records(result: Result) -> ResultRecords:
    """Pydantic records for JSON export (`.model_dump_json()`)."""
    table = result.table
    geom_col = table.geometry.name
    leading = {"point_id", "side" if isinstance(result, BorderResult) else "support_id", "aoe_class", geom_col}
    extra_cols = [c for c in table.columns if c not in leading]

    points: list[ClassifiedPointRecord | BorderPointRecord] = []
    for row in table.to_dict(orient="records"):
        geom = row[geom_col]
        attributes = {str(c): _plain(row[c]) for c in extra_cols}
        if isinstance(result, BorderResult):
            points.append(
                BorderPointRecord(
                    point_id=str(row["point_id"]),
                    side=str(row["side"]),
                    aoe_class=row["aoe_class"],
                    x=geom.x,
                    y=geom.y,
                    attributes=attributes,
                )
            )
        else:
            points.append(
                ClassifiedPointRecord(
                    point_id=str(row["point_id"]),
                    support_id=str(row["support_id"]),
                    aoe_class=row["aoe_class"],
                    x=geom.x,
                    y=geom.y,
                    attributes=attributes,
                )
            )

    warnings = [d.message for d in result.warnings]
    if isinstance(result, BorderResult):
        return ResultRecords(
            kind="border",
            core_width=result.core_width,
            halo_width=result.halo_width,
            area=result.area,
            points=points,
            warnings=warnings,
        )

    expansion: list[ExpansionRecord] = []
    if isinstance(result, ExpandResult):
        expansion = [
            ExpansionRecord(
                support_id=str(r["support_id"]),
                scale_used=float(r["scale_used"]),
                points_captured=int(r["points_captured"]),
                target_reached=bool(r["target_reached"]),
                cap_hit=str(r["cap_hit"]),
            )
            for r in result.expansion_info.to_dict(orient="records")
        ]
    is_area = isinstance(result.parameter, AreaParameter)
    return ResultRecords(
        kind=result.kind,
        support_count=result.support_count,
        scale=None if is_area else result.parameter.scale,
        area=result.parameter.area if is_area else None,
        points=points,
        expansion=expansion,
        warnings=warnings,
    )
