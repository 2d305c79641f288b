"""
Border classifier: core / halo bands on both sides of a line.

The border is buffered twice, by `core_width` and by `core_width +
halo_width`. Each buffer is clipped to the optional bbox and mask, then split
by the border into two sides; the halo of a side is its total zone minus its
core zone. Points are labelled in a fixed order: side 1 core, side 2 core,
side 1 halo, side 2 halo. The first zone that covers a point wins, so on an
exact overlap of zone boundaries side 1 beats side 2.

Side 1 is the left side when walking the border from its first to its last
vertex (2D cross product >= 0).
"""

from __future__ import annotations

# Named-logger pattern shared by every module.
import logging
import math
from typing import Any, Mapping, Sequence

import geopandas as gpd
import numpy as np
# GEOS raises on degenerate splits; those fall back to half-planes.
from shapely.errors import GEOSException
from shapely.geometry import LineString, MultiLineString, Polygon, box
from shapely.geometry.base import BaseGeometry

from areaeffect.classify.mask import clip, prepare_mask, resolve_mask
from areaeffect.classify.points import CORE, HALO
from areaeffect.errors import Diagnostic, InvalidArgumentError, emit_diagnostics
from areaeffect.expansion.config import DEFAULT_CONFIG, SolverConfig
from areaeffect.expansion.numerics import Refinement, bisect_relative
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine
from areaeffect.geometry.inputs import align_crs, resolve_ids, to_line_geometry, to_points_frame
from areaeffect.results.model import BORDER_COLUMNS, BorderGeometries, BorderResult, empty_table, order_columns


def _log() -> logging.Logger:
    return logging.getLogger("areaeffect")


def _endpoints(line: BaseGeometry) -> tuple[tuple[float, float], tuple[float, float]]:
    if isinstance(line, MultiLineString):
        parts = list(line.geoms)
        first, last = parts[0].coords[0], parts[-1].coords[-1]
    else:
        coords = list(line.coords)
        first, last = coords[0], coords[-1]
    return (float(first[0]), float(first[1])), (float(last[0]), float(last[1]))


def determine_sides(line: BaseGeometry, points: Sequence[BaseGeometry]) -> np.ndarray:
    """
    Side (1 or 2) of each point relative to the chord from the line's first
    to its last vertex. Points on the chord are side 1.
    """
    (x1, y1), (x2, y2) = _endpoints(line)
    dx, dy = x2 - x1, y2 - y1
    xy = np.array([(p.x, p.y) for p in points], dtype=float).reshape(-1, 2)
    # z-component of (end - start) x (point - start); positive means left.
    cross = dx * (xy[:, 1] - y1) - dy * (xy[:, 0] - x1)
    return np.where(cross >= 0, 1, 2)


def _extend_line(line: LineString, distance: float) -> LineString:
    # Push both end segments outward so the blade crosses the whole buffer, round caps included.
    coords = [(float(x), float(y)) for x, y, *_ in line.coords]

    def _step(a: tuple[float, float], b: tuple[float, float]) -> tuple[float, float]:
        ux, uy = a[0] - b[0], a[1] - b[1]
        norm = math.hypot(ux, uy)
        return (a[0] + ux / norm * distance, a[1] + uy / norm * distance)

    head = next((c for c in coords[1:] if c != coords[0]), None)
    tail = next((c for c in reversed(coords[:-1]) if c != coords[-1]), None)
    if head is None or tail is None:
        return line
    return LineString([_step(coords[0], head), *coords, _step(coords[-1], tail)])


def _half_planes(
    polygon: BaseGeometry, line: BaseGeometry, *, engine: GeometryEngine
) -> tuple[BaseGeometry, BaseGeometry]:
    (x1, y1), (x2, y2) = _endpoints(line)
    pb, lb = engine.bounds(polygon), engine.bounds(line)
    minx, miny = min(pb[0], lb[0]), min(pb[1], lb[1])
    maxx, maxy = max(pb[2], lb[2]), max(pb[3], lb[3])
    # Half-planes must cover the polygon and the line whatever their orientation.
    expand = 3.0 * max(maxx - minx, maxy - miny)

    length = math.hypot(x2 - x1, y2 - y1)
    dx, dy = (x2 - x1) / length, (y2 - y1) / length
    # Left-hand normal: side 1.
    px, py = -dy, dx
    e1 = (x1 - dx * expand, y1 - dy * expand)
    e2 = (x2 + dx * expand, y2 + dy * expand)
    reach = 2.0 * expand

    side1_plane = Polygon([e1, e2, (e2[0] + px * reach, e2[1] + py * reach), (e1[0] + px * reach, e1[1] + py * reach)])
    side2_plane = Polygon([e1, e2, (e2[0] - px * reach, e2[1] - py * reach), (e1[0] - px * reach, e1[1] - py * reach)])
    return engine.intersection(polygon, side1_plane), engine.intersection(polygon, side2_plane)


def split_by_line(
    polygon: BaseGeometry, line: BaseGeometry, *, engine: GeometryEngine = DEFAULT_ENGINE
) -> tuple[BaseGeometry, BaseGeometry]:
    """
    Partition `polygon` into (side 1, side 2) along `line`.

    The polygon is cut with the line (end segments extended past the
    polygon) and every fragment goes to the side of its centroid. When the
    cut does not produce fragments on both sides, two oversized half-planes
    bounded by the line's chord are intersected with the polygon instead.
    """
    if engine.is_empty(polygon):
        return Polygon(), Polygon()

    minx, miny, maxx, maxy = engine.bounds(polygon)
    blade = line
    if isinstance(line, LineString):
        blade = _extend_line(line, 2.0 * math.hypot(maxx - minx, maxy - miny))

    try:
        parts = engine.split(polygon, blade)
    except (ValueError, GEOSException) as exc:
        _log().debug("Line split failed (%s); falling back to half-planes", exc)
        parts = []

    # Each fragment goes to the side of its centroid.
    if len(parts) >= 2:
        sides = determine_sides(line, [engine.centroid(p) for p in parts])
        side1 = [p for p, s in zip(parts, sides) if s == 1]
        side2 = [p for p, s in zip(parts, sides) if s == 2]
        if side1 and side2:
            return engine.union_all(side1), engine.union_all(side2)

    return _half_planes(polygon, line, engine=engine)


def bbox_to_polygon(bbox: Any, *, crs: Any = None) -> Polygon:
    """
    Rectangle for a study-area bbox given as `(xmin, ymin, xmax, ymax)`, a
    mapping with those keys, a shapely geometry or a GeoSeries/GeoDataFrame
    (its total bounds, reprojected to `crs` first when both CRSs are known).
    """
    if isinstance(bbox, (gpd.GeoDataFrame, gpd.GeoSeries)):
        if crs is not None and bbox.crs is not None and bbox.crs != crs:
            bbox = bbox.to_crs(crs)
        values = tuple(bbox.total_bounds)
    elif isinstance(bbox, BaseGeometry):
        values = bbox.bounds
    elif isinstance(bbox, Mapping):
        missing = [k for k in ("xmin", "ymin", "xmax", "ymax") if k not in bbox]
        if missing:
            raise InvalidArgumentError(f"`bbox` mapping is missing keys: {missing}")
        values = (bbox["xmin"], bbox["ymin"], bbox["xmax"], bbox["ymax"])
    elif isinstance(bbox, (list, tuple, np.ndarray)) and len(bbox) == 4:
        values = tuple(bbox)
    else:
        raise TypeError("`bbox` must be (xmin, ymin, xmax, ymax), a mapping, a geometry or a GeoDataFrame")

    xmin, ymin, xmax, ymax = (float(v) for v in values)
    if not (xmin < xmax and ymin < ymax):
        raise InvalidArgumentError(f"`bbox` must have xmin < xmax and ymin < ymax (got {values})")
    return box(xmin, ymin, xmax, ymax)


def _clipped_buffer(
    line: BaseGeometry,
    width: float,
    *,
    bbox: BaseGeometry | None,
    mask: BaseGeometry | None,
    engine: GeometryEngine,
) -> BaseGeometry:
    # Buffer, then bbox, then mask: zone areas are measured inside the study area.
    zone = engine.buffer(line, width)
    if bbox is not None:
        zone = engine.intersection(zone, bbox)
    return clip(zone, mask, engine=engine)


def find_border_width(
    line: BaseGeometry,
    area: float,
    *,
    mask: BaseGeometry | None = None,
    bbox: BaseGeometry | None = None,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> Refinement:
    """Core width whose side-1 zone (after bbox and mask) has area `area`."""
    # One side of a straight band of width w has area ~ L * w; caps and clipping are corrections.
    guess = area / (2.0 * engine.length(line))

    def _side_area(w: float) -> float:
        side1, _ = split_by_line(_clipped_buffer(line, w, bbox=bbox, mask=mask, engine=engine), line, engine=engine)
        return engine.area(side1)

    return bisect_relative(
        _side_area,
        guess / 10.0,
        guess * 10.0,
        target=area,
        rel_tol=config.border.rel_tol,
        max_iter=config.border.max_iter,
    )


def find_halo_width(
    line: BaseGeometry,
    core_width: float,
    halo_area: float,
    *,
    mask: BaseGeometry | None = None,
    bbox: BaseGeometry | None = None,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> Refinement:
    """Extra width beyond `core_width` whose side-1 halo band has area `halo_area`."""
    guess = halo_area / (2.0 * engine.length(line))
    core_side1, _ = split_by_line(
        _clipped_buffer(line, core_width, bbox=bbox, mask=mask, engine=engine), line, engine=engine
    )

    def _halo_area(w: float) -> float:
        total = _clipped_buffer(line, core_width + w, bbox=bbox, mask=mask, engine=engine)
        total_side1, _ = split_by_line(total, line, engine=engine)
        return engine.area(engine.difference(total_side1, core_side1))

    return bisect_relative(
        _halo_area,
        guess / 10.0,
        guess * 10.0,
        target=halo_area,
        rel_tol=config.border.rel_tol,
        max_iter=config.border.max_iter,
    )


def border_zones(
    line: BaseGeometry,
    core_width: float,
    halo_width: float,
    *,
    bbox: BaseGeometry | None = None,
    mask: BaseGeometry | None = None,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> BorderGeometries:
    core = _clipped_buffer(line, core_width, bbox=bbox, mask=mask, engine=engine)
    total = _clipped_buffer(line, core_width + halo_width, bbox=bbox, mask=mask, engine=engine)
    side1_core, side2_core = split_by_line(core, line, engine=engine)
    side1_total, side2_total = split_by_line(total, line, engine=engine)
    return BorderGeometries(
        border=line,
        side1_core=side1_core,
        side2_core=side2_core,
        side1_halo=engine.difference(side1_total, side1_core),
        side2_halo=engine.difference(side2_total, side2_core),
    )


def _positive_or_none(value: Any, name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)) or not math.isfinite(value):
        raise InvalidArgumentError(f"`{name}` must be a single positive number")
    if value <= 0:
        raise InvalidArgumentError(f"`{name}` must be a single positive number")
    return float(value)


def _side_names(side_names: Any) -> tuple[str, str]:
    if isinstance(side_names, str) or not isinstance(side_names, Sequence) or len(side_names) != 2:
        raise InvalidArgumentError("`side_names` must be a sequence of length 2")
    first, second = (str(s) for s in side_names)
    if first == second:
        raise InvalidArgumentError("`side_names` must be two distinct names")
    return first, second


def classify_by_border(
    points: Any,
    border: Any,
    width: float | None = None,
    area: float | None = None,
    *,
    halo_width: float | None = None,
    halo_area: float | None = None,
    mask: Any = None,
    bbox: Any = None,
    side_names: Sequence[str] = ("side_1", "side_2"),
    coords: Sequence[str] | None = None,
    point_id_col: str | None = None,
    land: Any = None,
    config: SolverConfig = DEFAULT_CONFIG,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> BorderResult:
    """
    Classify points by side of `border` and by distance band (core / halo).

    Exactly one of `width` and `area` sets the core band; `area` is the
    target area of each side's core zone after bbox and mask clipping. The
    halo band is `halo_width` wide, or sized to `halo_area` per side, or by
    default as wide as the core band. Points outside both bands are pruned.
    """
    lines, crs = to_line_geometry(border)

    if width is not None and area is not None:
        raise InvalidArgumentError("Cannot specify both `width` and `area`; use one or the other")
    if width is None and area is None:
        raise InvalidArgumentError("Must specify either `width` or `area`")
    if halo_width is not None and halo_area is not None:
        raise InvalidArgumentError("Cannot specify both `halo_width` and `halo_area`")
    width = _positive_or_none(width, "width")
    area = _positive_or_none(area, "area")
    halo_width = _positive_or_none(halo_width, "halo_width")
    halo_area = _positive_or_none(halo_area, "halo_area")
    names = _side_names(side_names)

    # Several lines are merged into one border before sides are defined.
    line = lines[0] if len(lines) == 1 else engine.merge_lines(engine.union_all(lines))
    (x1, y1), (x2, y2) = _endpoints(line)
    if x1 == x2 and y1 == y2:
        raise InvalidArgumentError("`border` must be an open line (its first and last vertex coincide)")

    # Points follow the border's CRS.
    point_frame = align_crs(to_points_frame(points, coords=coords, crs=crs), crs)
    point_ids = np.asarray(resolve_ids(point_frame, point_id_col, label="points"), dtype=object)
    point_frame = point_frame.drop(columns=[c for c in BORDER_COLUMNS if c in point_frame.columns])

    mask_geom = prepare_mask(resolve_mask(mask, land), crs=crs, engine=engine)
    bbox_geom = bbox_to_polygon(bbox, crs=crs) if bbox is not None else None

    diagnostics: list[Diagnostic] = []

    def _note(search: Refinement, what: str) -> None:
        if not search.converged:
            message = f"{what} search did not converge; using best estimate ({search.value:.6g})"
            _log().warning(message)
            diagnostics.append(Diagnostic(kind="convergence", message=message))

    if width is not None:
        core_width = width
    else:
        search = find_border_width(line, area, mask=mask_geom, bbox=bbox_geom, config=config, engine=engine)
        _note(search, "Border width")
        core_width = search.value

    # Halo defaults to the core width when neither halo option is given.
    if halo_width is not None:
        halo_w = halo_width
    elif halo_area is not None:
        search = find_halo_width(
            line, core_width, halo_area, mask=mask_geom, bbox=bbox_geom, config=config, engine=engine
        )
        _note(search, "Halo width")
        halo_w = search.value
    else:
        halo_w = core_width

    _log().info(
        "Border classification: %d point(s) core_width=%.6g halo_width=%.6g",
        len(point_frame),
        core_width,
        halo_w,
    )
    zones = border_zones(line, core_width, halo_w, bbox=bbox_geom, mask=mask_geom, engine=engine)

    geoms = np.asarray(point_frame.geometry.to_numpy(), dtype=object)
    checks = [
        (zones.side1_core, names[0], CORE),
        (zones.side2_core, names[1], CORE),
        (zones.side1_halo, names[0], HALO),
        (zones.side2_halo, names[1], HALO),
    ]
    side = np.full(len(geoms), None, dtype=object)
    aoe_class = np.full(len(geoms), None, dtype=object)
    assigned = np.zeros(len(geoms), dtype=bool)
    # First matching zone wins; later zones only see unassigned points.
    for zone, side_name, label in checks:
        hit = engine.covers(zone, geoms) & ~assigned
        side[hit] = side_name
        aoe_class[hit] = label
        assigned |= hit

    keep = np.flatnonzero(assigned)
    if keep.size == 0:
        table = empty_table(point_frame, BORDER_COLUMNS)
    else:
        rows = point_frame.iloc[keep].copy()
        rows.insert(0, "point_id", point_ids[keep])
        rows.insert(1, "side", side[keep])
        rows.insert(2, "aoe_class", aoe_class[keep])
        table = order_columns(rows.reset_index(drop=True), BORDER_COLUMNS)

    emit_diagnostics(diagnostics)
    return BorderResult(
        table=table,
        geometries=zones,
        core_width=float(core_width),
        halo_width=float(halo_w),
        side_names=names,
        area=area,
        halo_area=halo_area,
        warnings=tuple(diagnostics),
    )
