import geopandas as gpd
import pytest
from shapely.geometry import Point, box

from areaeffect.classify.orchestrator import classify
from areaeffect.results.model import subset


def _result():
    supports = gpd.GeoDataFrame({"id": ["A", "B"]}, geometry=[box(0, 0, 10, 10), box(50, 0, 60, 10)])
    points = gpd.GeoDataFrame(geometry=[Point(5, 5), Point(55, 5), Point(11, 5)])
    return classify(points, supports, support_id_col="id")


def test_subset_prunes_geometry_bundle() -> None:
    result = _result()
    only_a = subset(result, result.table["support_id"] == "A")

    assert set(only_a.geometries) == {"A"}
    assert only_a.support_count == 1
    assert only_a.table.index.tolist() == list(range(len(only_a.table)))
    # The original is untouched.
    assert set(result.geometries) == {"A", "B"}
    assert result.support_count == 2


def test_subset_accepts_callables_and_positions() -> None:
    result = _result()

    halo = result.subset(lambda t: t["aoe_class"] == "halo")
    assert halo.table["aoe_class"].tolist() == ["halo"]

    first = result.subset([0])
    assert len(first) == 1
    assert first.parameter == result.parameter


def test_subset_rejects_short_boolean_mask() -> None:
    result = _result()
    with pytest.raises(ValueError, match="Boolean row selector"):
        result.subset([True])
