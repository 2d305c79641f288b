from __future__ import annotations

from typing import Sequence

import numpy as np
from shapely.geometry.base import BaseGeometry

from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine

CORE = "core"
HALO = "halo"


def class_labels(
    points: Sequence[BaseGeometry],
    original: BaseGeometry,
    aoe_final: BaseGeometry,
    *,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> np.ndarray:
    """
    Label every point `"core"`, `"halo"` or None (pruned).

    Both tests are boundary-inclusive, and core wins: any point covered by
    `original` is core, even where the mask has removed that area from
    `aoe_final`. Core rows can therefore lie outside `aoe_final` when a mask
    cuts into the support itself; filter on `aoe_final` afterwards if such
    points should be pruned instead.
    """
    in_original = engine.covers(original, points)
    in_aoe = engine.covers(aoe_final, points)
    labels = np.full(in_original.shape[0], None, dtype=object)
    labels[in_aoe] = HALO
    labels[in_original] = CORE
    return labels


def classify_points(
    points: Sequence[BaseGeometry],
    original: BaseGeometry,
    aoe_final: BaseGeometry,
    *,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> list[tuple[int, str | None]]:
    labels = class_labels(points, original, aoe_final, engine=engine)
    return [(i, label) for i, label in enumerate(labels.tolist())]
