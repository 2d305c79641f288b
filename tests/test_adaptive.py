import math

import geopandas as gpd
import pytest
from shapely.geometry import Point, box

from areaeffect.classify.orchestrator import prepare_inputs
from areaeffect.errors import InvalidArgumentError, TargetNotReachedWarning
from areaeffect.expansion.adaptive import count_at_scale, expand_to_count, scale_caps


def _points(*xy: tuple[float, float]) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(geometry=[Point(x, y) for x, y in xy])


def test_scale_caps() -> None:
    caps = scale_caps(100.0, max_area=2.0, max_dist=None)
    assert caps.area_scale == pytest.approx(math.sqrt(3) - 1)
    assert caps.binding == "max_area"

    caps = scale_caps(100.0, max_area=2.0, max_dist=1.0)
    assert caps.dist_scale == pytest.approx(1.0 / math.sqrt(100.0 / math.pi))
    assert caps.binding == "max_dist"
    assert caps.max_scale == caps.dist_scale


def test_core_already_enough_skips_expansion() -> None:
    result = expand_to_count(_points((1, 1), (5, 5), (9, 9), (11, 5)), box(0, 0, 10, 10), min_points=2)

    info = result.expansion_info.iloc[0]
    assert info["scale_used"] == 0.0
    assert info["points_captured"] == 3
    assert bool(info["target_reached"]) and info["cap_hit"] == "none"
    assert set(result.table["aoe_class"]) == {"core"}
    assert result.target_reached


def test_smallest_scale_reaching_target() -> None:
    points = _points((5, 5), (13, 5), (16, 5))
    square = box(0, 0, 10, 10)
    result = expand_to_count(points, square, min_points=2)

    info = result.expansion_info.iloc[0]
    assert bool(info["target_reached"])
    assert info["points_captured"] == 2
    assert result.table["aoe_class"].tolist() == ["core", "halo"]

    inputs = prepare_inputs(points, square, method="buffer")
    below, _ = count_at_scale(inputs, square, float(info["scale_used"]) - 1e-3)
    assert below < 2


def test_max_area_cap() -> None:
    with pytest.warns(TargetNotReachedWarning, match="Could not reach min_points=2 for 1 support"):
        result = expand_to_count(_points((5, 5), (15, 5)), box(0, 0, 10, 10), min_points=2)

    info = result.expansion_info.iloc[0]
    assert info["cap_hit"] == "max_area"
    assert info["scale_used"] == pytest.approx(math.sqrt(3) - 1)
    assert info["points_captured"] == 1
    assert not result.target_reached


def test_max_dist_cap() -> None:
    with pytest.warns(TargetNotReachedWarning):
        result = expand_to_count(_points((5, 5), (12, 5)), box(0, 0, 10, 10), min_points=2, max_dist=1.0)

    info = result.expansion_info.iloc[0]
    assert info["cap_hit"] == "max_dist"
    # The 1-unit cap cannot reach a point 2 units out.
    assert info["points_captured"] == 1


def test_supports_are_searched_independently() -> None:
    supports = gpd.GeoDataFrame({"id": ["dense", "sparse"]}, geometry=[box(0, 0, 10, 10), box(100, 0, 110, 10)])
    points = _points((2, 2), (8, 8), (105, 5))

    with pytest.warns(TargetNotReachedWarning, match="sparse"):
        result = expand_to_count(points, supports, min_points=2, support_id_col="id")

    info = result.expansion_info.set_index("support_id")
    assert bool(info.loc["dense", "target_reached"])
    assert not bool(info.loc["sparse", "target_reached"])
    assert result.expansion_info["support_id"].tolist() == ["dense", "sparse"]


def test_validation() -> None:
    points, square = _points((5, 5)), box(0, 0, 10, 10)
    with pytest.raises(InvalidArgumentError, match="min_points"):
        expand_to_count(points, square, min_points=0)
    with pytest.raises(InvalidArgumentError, match="min_points"):
        expand_to_count(points, square, min_points=0.5)
    with pytest.raises(InvalidArgumentError, match="min_points"):
        expand_to_count(points, square, min_points=2.5)
    with pytest.raises(InvalidArgumentError, match="max_area"):
        expand_to_count(points, square, min_points=1, max_area=0)
    with pytest.raises(InvalidArgumentError, match="max_dist"):
        expand_to_count(points, square, min_points=1, max_dist=-1.0)


def test_whole_float_min_points_is_accepted() -> None:
    result = expand_to_count(_points((1, 1), (5, 5)), box(0, 0, 10, 10), min_points=2.0)
    assert result.min_points == 2
    assert result.target_reached
