"""
Input normalization: turn whatever the caller handed us into GeoDataFrames.

Points may arrive as a GeoDataFrame, a plain DataFrame with coordinate
columns, a GeoSeries or a list of shapely Points. Supports and masks may
arrive as frames, series or bare shapely polygons. Everything downstream
works on GeoDataFrames with a single active geometry column.
"""

from __future__ import annotations

from typing import Any, Sequence

import geopandas as gpd
import pandas as pd
from shapely.geometry import MultiPolygon, Point
from shapely.geometry.base import BaseGeometry

from areaeffect.errors import Diagnostic, InvalidArgumentError
from areaeffect.expansion.config import FragmentPolicy

# Column pairs tried (case-insensitively) when coordinates must be detected.
_COORD_PAIRS: list[tuple[str, str]] = [
    ("x", "y"),
    ("lon", "lat"),
    ("longitude", "latitude"),
    ("lng", "lat"),
    ("long", "lat"),
    ("easting", "northing"),
]

POLYGONAL = ("Polygon", "MultiPolygon")
LINEAL = ("LineString", "MultiLineString")


def detect_coords(columns: Sequence[str]) -> tuple[str, str] | None:
    lower = {str(c).lower(): str(c) for c in columns}
    for x_name, y_name in _COORD_PAIRS:
        if x_name in lower and y_name in lower:
            return lower[x_name], lower[y_name]
    return None


def _as_geoseries(obj: Any) -> gpd.GeoSeries | None:
    if isinstance(obj, BaseGeometry):
        return gpd.GeoSeries([obj])
    if isinstance(obj, gpd.GeoSeries):
        return obj
    if isinstance(obj, (list, tuple)) and obj and all(isinstance(g, BaseGeometry) for g in obj):
        return gpd.GeoSeries(list(obj))
    return None


def to_points_frame(obj: Any, *, coords: Sequence[str] | None = None, crs: Any = None) -> gpd.GeoDataFrame:
    if isinstance(obj, gpd.GeoDataFrame):
        frame = obj
    elif isinstance(obj, pd.DataFrame):
        if coords is None:
            coords = detect_coords(list(obj.columns))
            if coords is None:
                raise InvalidArgumentError("Cannot detect coordinate columns; pass coords=('x', 'y')")
        if len(coords) != 2:
            raise InvalidArgumentError("`coords` must name exactly two columns")
        x_col, y_col = coords
        missing = {x_col, y_col} - set(obj.columns)
        if missing:
            raise InvalidArgumentError(f"Missing coordinate columns: {sorted(missing)}")
        frame = gpd.GeoDataFrame(
            obj.copy(),
            geometry=gpd.points_from_xy(obj[x_col].astype(float), obj[y_col].astype(float)),
            crs=crs,
        )
    else:
        series = _as_geoseries(obj)
        if series is None:
            raise TypeError("`points` must be a GeoDataFrame, DataFrame, GeoSeries or list of shapely Points")
        frame = gpd.GeoDataFrame(geometry=series.reset_index(drop=True), crs=series.crs or crs)

    types = set(frame.geometry.geom_type.dropna().unique())
    if frame.geometry.isna().any() or not types <= {"Point"}:
        raise InvalidArgumentError("`points` must contain only POINT geometries")
    return frame


def to_polygon_frame(obj: Any, *, label: str) -> gpd.GeoDataFrame:
    if isinstance(obj, gpd.GeoDataFrame):
        frame = obj
    else:
        series = _as_geoseries(obj)
        if series is None:
            raise TypeError(f"`{label}` must be a GeoDataFrame, GeoSeries or shapely polygon(s)")
        frame = gpd.GeoDataFrame(geometry=series, crs=series.crs)
    if len(frame) == 0:
        raise InvalidArgumentError(f"`{label}` must contain at least one geometry")
    types = set(frame.geometry.geom_type.dropna().unique())
    if frame.geometry.isna().any() or not types <= set(POLYGONAL):
        raise InvalidArgumentError(f"`{label}` must contain only POLYGON or MULTIPOLYGON geometries")
    return frame


def to_line_geometry(obj: Any) -> tuple[list[BaseGeometry], Any]:
    if isinstance(obj, gpd.GeoDataFrame):
        series, crs = obj.geometry, obj.crs
    else:
        series = _as_geoseries(obj)
        if series is None:
            raise TypeError("`border` must be a GeoDataFrame, GeoSeries or shapely line")
        crs = series.crs
    if len(series) == 0:
        raise InvalidArgumentError("`border` must contain at least one line")
    if series.isna().any() or not set(series.geom_type.unique()) <= set(LINEAL):
        raise InvalidArgumentError("`border` must have LINESTRING or MULTILINESTRING geometry")
    return list(series), crs


def to_reference_point(obj: Any, crs: Any = None) -> Point | None:
    if obj is None:
        return None
    if isinstance(obj, gpd.GeoDataFrame):
        series = obj.geometry
    elif isinstance(obj, (tuple, list)) and len(obj) == 2 and all(isinstance(v, (int, float)) for v in obj):
        return Point(float(obj[0]), float(obj[1]))
    else:
        series = _as_geoseries(obj)
        if series is None:
            raise TypeError("`reference` must be a shapely Point, GeoSeries/GeoDataFrame or (x, y) tuple")
    if len(series) != 1:
        raise InvalidArgumentError("`reference` must contain exactly one point")
    if series.geom_type.iloc[0] != "Point":
        raise InvalidArgumentError("`reference` must be a POINT geometry")
    if crs is not None and series.crs is not None and series.crs != crs:
        series = series.to_crs(crs)
    return series.iloc[0]


def align_crs(frame: gpd.GeoDataFrame, crs: Any) -> gpd.GeoDataFrame:
    # Reprojection is delegated to geopandas (pyproj); frames without a CRS are taken as-is.
    if crs is None or frame.crs is None or frame.crs == crs:
        return frame
    return frame.to_crs(crs)


def resolve_ids(frame: pd.DataFrame, id_col: str | None, *, label: str) -> list[str]:
    if id_col is not None:
        if id_col not in frame.columns:
            raise InvalidArgumentError(f"`{label}` has no column {id_col!r}")
        ids = frame[id_col].astype(str).tolist()
    else:
        ids = [str(i) for i in frame.index]
    return ids


def select_dominant_fragment(
    geom: BaseGeometry,
    *,
    policy: FragmentPolicy,
    dominance: float,
    support_id: str,
) -> tuple[BaseGeometry, Diagnostic | None]:
    """
    Apply the multipolygon fragment policy to one support.

    `"keep"` leaves the geometry untouched. `"largest"` keeps only the largest
    polygon of a multipolygon when it holds at least `dominance` of the total
    area (e.g. a mainland with small islands); the drop is reported.
    """
    if policy == "keep" or not isinstance(geom, MultiPolygon) or len(geom.geoms) < 2:
        return geom, None
    parts = sorted(geom.geoms, key=lambda p: p.area, reverse=True)
    total = sum(p.area for p in parts)
    if total <= 0 or parts[0].area / total < dominance:
        return geom, None
    dropped = len(parts) - 1
    share = 100.0 * parts[0].area / total
    return parts[0], Diagnostic(
        kind="fragment_dropped",
        support_id=support_id,
        message=(
            f"Support {support_id}: kept largest polygon ({share:.1f}% of area), "
            f"dropped {dropped} minor fragment(s)"
        ),
    )
