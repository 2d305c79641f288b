"""
Result types returned by the classifiers.

A result is a long-format GeoDataFrame plus explicit metadata: the per-support
geometry bundle, the expansion parameter that produced it and the support
count. The three kinds (`aoe`, `expand`, `border`) are separate frozen
dataclasses with a `kind` tag, so presentation code dispatches on that tag.

Results are values: `subset` returns a new result whose geometry bundle is
filtered to the supports still present, and never mutates the original.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry.base import BaseGeometry

from areaeffect.errors import Diagnostic

AOE_COLUMNS = ("point_id", "support_id", "aoe_class")
BORDER_COLUMNS = ("point_id", "side", "aoe_class")
EXPANSION_INFO_COLUMNS = ("support_id", "scale_used", "points_captured", "target_reached", "cap_hit")


@dataclass(frozen=True)
class GeometryBundle:
    original: BaseGeometry
    aoe_raw: BaseGeometry
    aoe_final: BaseGeometry


@dataclass(frozen=True)
class ScaleParameter:
    scale: float
    kind: Literal["scale"] = "scale"


@dataclass(frozen=True)
class AreaParameter:
    area: float
    kind: Literal["area"] = "area"


Parameter = Union[ScaleParameter, AreaParameter]


@dataclass(frozen=True)
class AoEResult:
    table: gpd.GeoDataFrame
    geometries: dict[str, GeometryBundle]
    parameter: Parameter
    support_count: int
    warnings: tuple[Diagnostic, ...] = ()
    sample_info: pd.DataFrame | None = None
    kind: Literal["aoe"] = "aoe"

    def __len__(self) -> int:
        return len(self.table)

    def subset(self, rows: Any) -> "AoEResult":
        return subset(self, rows)


@dataclass(frozen=True)
class ExpandResult:
    table: gpd.GeoDataFrame
    geometries: dict[str, GeometryBundle]
    parameter: Parameter
    support_count: int
    expansion_info: pd.DataFrame
    min_points: int
    target_reached: bool
    warnings: tuple[Diagnostic, ...] = ()
    sample_info: pd.DataFrame | None = None
    kind: Literal["expand"] = "expand"

    def __len__(self) -> int:
        return len(self.table)

    def subset(self, rows: Any) -> "ExpandResult":
        return subset(self, rows)


@dataclass(frozen=True)
class BorderGeometries:
    border: BaseGeometry
    side1_core: BaseGeometry
    side2_core: BaseGeometry
    side1_halo: BaseGeometry
    side2_halo: BaseGeometry


@dataclass(frozen=True)
class BorderResult:
    table: gpd.GeoDataFrame
    geometries: BorderGeometries
    core_width: float
    halo_width: float
    side_names: tuple[str, str]
    area: float | None = None
    halo_area: float | None = None
    warnings: tuple[Diagnostic, ...] = ()
    sample_info: pd.DataFrame | None = None
    kind: Literal["border"] = "border"

    def __len__(self) -> int:
        return len(self.table)

    def subset(self, rows: Any) -> "BorderResult":
        return subset(self, rows)


Result = Union[AoEResult, ExpandResult, BorderResult]


def _select_rows(table: gpd.GeoDataFrame, rows: Any) -> gpd.GeoDataFrame:
    if callable(rows):
        rows = rows(table)
    if isinstance(rows, slice):
        picked = table.iloc[rows]
    else:
        arr = np.asarray(rows.to_numpy() if isinstance(rows, pd.Series) else rows)
        if arr.dtype == bool:
            if arr.shape[0] != len(table):
                raise ValueError("Boolean row selector must match the number of rows")
            picked = table.loc[arr]
        else:
            picked = table.iloc[arr.astype(int)] if arr.size else table.iloc[0:0]
    return picked.reset_index(drop=True)


def subset(result: Result, rows: Any) -> Result:
    """
    Select rows of a result.

    `rows` may be a boolean mask, positional indices, a slice, or a callable
    taking the table and returning one of those. For AoE results the
    geometry bundle is pruned to the supports still present and
    `support_count` is recomputed; every other field is carried over.
    """
    table = _select_rows(result.table, rows)
    if isinstance(result, BorderResult):
        return replace(result, table=table)
    remaining = [str(s) for s in pd.unique(table["support_id"].astype(str))]
    geometries = {sid: g for sid, g in result.geometries.items() if sid in set(remaining)}
    return replace(result, table=table, geometries=geometries, support_count=len(remaining))


def empty_table(points: gpd.GeoDataFrame, leading: Sequence[str]) -> gpd.GeoDataFrame:
    """Zero-row table with the full output schema."""
    base = points.iloc[0:0].copy()
    for i, col in enumerate(leading):
        base.insert(i, col, pd.Series([], dtype=object))
    return order_columns(base, leading)


def order_columns(table: gpd.GeoDataFrame, leading: Sequence[str]) -> gpd.GeoDataFrame:
    geom_col = table.geometry.name
    others = [c for c in table.columns if c not in leading and c != geom_col]
    return table[[*leading, *others, geom_col]]


@dataclass(frozen=True)
class SupportOutcome:
    """What one support contributes to an AoE call."""

    support_id: str
    rows: gpd.GeoDataFrame | None
    bundle: GeometryBundle
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)
    info: dict[str, Any] | None = None
