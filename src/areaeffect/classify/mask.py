from __future__ import annotations

from typing import Any

from shapely.geometry.base import BaseGeometry

from areaeffect.errors import InvalidArgumentError
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine
from areaeffect.geometry.inputs import align_crs, to_polygon_frame


def prepare_mask(mask: Any, *, crs: Any = None, engine: GeometryEngine = DEFAULT_ENGINE) -> BaseGeometry | None:
    """Union a mask given as polygon(s) or a frame into one valid geometry, once per call."""
    if mask is None:
        return None
    frame = align_crs(to_polygon_frame(mask, label="mask"), crs)
    return engine.make_valid(engine.union_all(list(frame.geometry)))


def clip(aoe_raw: BaseGeometry, mask: BaseGeometry | None, *, engine: GeometryEngine = DEFAULT_ENGINE) -> BaseGeometry:
    """
    Intersect an expanded polygon with the hard mask.

    The intersection of unions can come back with slivers or collapsed rings,
    so the result is repaired and reduced to its polygonal part. An empty
    result is a legitimate answer (every point of that support is pruned).
    """
    if mask is None:
        return aoe_raw
    return engine.make_valid(engine.intersection(aoe_raw, mask))


def resolve_mask(mask: Any, land: Any = None) -> Any:
    # The only string accepted is "land", standing for the loaded land polygon.
    if isinstance(mask, str):
        if mask.lower() != "land":
            raise InvalidArgumentError(f"`mask` string must be 'land' (got {mask!r})")
        if land is None:
            raise InvalidArgumentError("mask='land' requires a loaded land mask")
        return land
    return mask
