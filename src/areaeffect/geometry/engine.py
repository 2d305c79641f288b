"""
Geometry engine boundary.

The expansion solver, the classifiers and the border code only talk to
`GeometryEngine`. `ShapelyEngine` is the production backend (shapely 2.x,
planar coordinates); any other planar kernel can be dropped in by
implementing the same methods.

All polygon-producing methods return *polygonal* geometry (Polygon or
MultiPolygon, possibly empty): `make_valid` can turn a bow-tie into a
GeometryCollection with stray lines, and those parts carry no area.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, Sequence

import numpy as np
# shapely 2.x vectorised predicates (covers, prepare) and make_valid.
import shapely
from shapely import affinity
from shapely.geometry import GeometryCollection, LineString, MultiLineString, MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import linemerge, split, unary_union


class GeometryEngine(Protocol):
    def area(self, geom: BaseGeometry) -> float: ...

    def length(self, geom: BaseGeometry) -> float: ...

    def buffer(self, geom: BaseGeometry, distance: float) -> BaseGeometry: ...

    def scale(self, geom: BaseGeometry, factor: float, origin: Point) -> BaseGeometry: ...

    def intersection(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry: ...

    def union(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry: ...

    def union_all(self, geoms: Sequence[BaseGeometry]) -> BaseGeometry: ...

    def difference(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry: ...

    def covers(self, geom: BaseGeometry, points: Sequence[BaseGeometry]) -> np.ndarray: ...

    def centroid(self, geom: BaseGeometry) -> Point: ...

    def make_valid(self, geom: BaseGeometry) -> BaseGeometry: ...

    def bounds(self, geom: BaseGeometry) -> tuple[float, float, float, float]: ...

    def is_empty(self, geom: BaseGeometry) -> bool: ...

    def split(self, polygon: BaseGeometry, line: BaseGeometry) -> list[BaseGeometry]: ...

    def merge_lines(self, line: BaseGeometry) -> BaseGeometry: ...

    def transform(self, geom: BaseGeometry, func: Callable[..., Any]) -> BaseGeometry: ...


def polygonal_part(geom: BaseGeometry) -> BaseGeometry:
    """Keep only the polygonal members of `geom` (empty Polygon when there are none)."""
    if geom is None or geom.is_empty:
        return Polygon()
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    if isinstance(geom, GeometryCollection):
        parts: list[Polygon] = []
        for g in geom.geoms:
            g = polygonal_part(g)
            if isinstance(g, Polygon) and not g.is_empty:
                parts.append(g)
            elif isinstance(g, MultiPolygon):
                parts.extend(p for p in g.geoms if not p.is_empty)
        if not parts:
            return Polygon()
        if len(parts) == 1:
            return parts[0]
        return unary_union(parts)
    return Polygon()


class ShapelyEngine:
    """Planar geometry backed by shapely 2.x (GEOS)."""

    def __init__(self, *, quad_segs: int = 16) -> None:
        # Segments per quarter circle used for round buffer joins/caps.
        self.quad_segs = int(quad_segs)

    def area(self, geom: BaseGeometry) -> float:
        return float(geom.area)

    def length(self, geom: BaseGeometry) -> float:
        # For polygons this is the perimeter (all rings), for lines the line length.
        return float(geom.length)

    def buffer(self, geom: BaseGeometry, distance: float) -> BaseGeometry:
        return self.make_valid(geom.buffer(float(distance), quad_segs=self.quad_segs))

    def scale(self, geom: BaseGeometry, factor: float, origin: Point) -> BaseGeometry:
        # p' = r + factor * (p - r) for every vertex.
        scaled = affinity.scale(geom, xfact=float(factor), yfact=float(factor), origin=origin)
        return self.make_valid(scaled)

    def intersection(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        return self.make_valid(a.intersection(b))

    def union(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        return self.make_valid(a.union(b))

    def union_all(self, geoms: Sequence[BaseGeometry]) -> BaseGeometry:
        geoms = [g for g in geoms if g is not None and not g.is_empty]
        if not geoms:
            return Polygon()
        merged = unary_union(geoms)
        if isinstance(merged, (LineString, MultiLineString)):
            return merged
        return self.make_valid(merged)

    def difference(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        return self.make_valid(a.difference(b))

    def covers(self, geom: BaseGeometry, points: Sequence[BaseGeometry]) -> np.ndarray:
        pts = np.asarray(points, dtype=object)
        if pts.size == 0 or geom.is_empty:
            return np.zeros(pts.shape[0], dtype=bool)
        # Boundary-inclusive: a point on the ring is covered.
        shapely.prepare(geom)
        return np.asarray(shapely.covers(geom, pts), dtype=bool)

    def centroid(self, geom: BaseGeometry) -> Point:
        return geom.centroid

    def make_valid(self, geom: BaseGeometry) -> BaseGeometry:
        if geom.is_empty:
            return Polygon() if not isinstance(geom, (LineString, MultiLineString)) else geom
        if isinstance(geom, (LineString, MultiLineString)):
            return geom if geom.is_valid else shapely.make_valid(geom)
        if geom.is_valid and isinstance(geom, (Polygon, MultiPolygon)):
            return geom
        return polygonal_part(shapely.make_valid(geom))

    def bounds(self, geom: BaseGeometry) -> tuple[float, float, float, float]:
        minx, miny, maxx, maxy = geom.bounds
        return float(minx), float(miny), float(maxx), float(maxy)

    def is_empty(self, geom: BaseGeometry) -> bool:
        return bool(geom.is_empty)

    def split(self, polygon: BaseGeometry, line: BaseGeometry) -> list[BaseGeometry]:
        pieces = split(polygon, line)
        return [g for g in pieces.geoms if isinstance(g, Polygon) and not g.is_empty]

    def merge_lines(self, line: BaseGeometry) -> BaseGeometry:
        if isinstance(line, MultiLineString):
            return linemerge(line)
        return line

    def transform(self, geom: BaseGeometry, func: Callable[..., Any]) -> BaseGeometry:
        # `func` maps an (N, 2) coordinate array to an (N, 2) array.
        return shapely.transform(geom, func)


DEFAULT_ENGINE: GeometryEngine = ShapelyEngine()
