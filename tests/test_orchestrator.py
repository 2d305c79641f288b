import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import MultiPolygon, Point, box

from areaeffect.classify.orchestrator import classify
from areaeffect.errors import FragmentDroppedWarning, InvalidArgumentError
from areaeffect.expansion.config import SolverConfig
from areaeffect.results.model import ScaleParameter


def _points(*xy: tuple[float, float]) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame({"site": [f"p{i}" for i in range(len(xy))]}, geometry=[Point(x, y) for x, y in xy])


def test_square_support_default_scale() -> None:
    points = _points((5, 5), (2, 2), (12, 5), (100, 100))
    result = classify(points, box(0, 0, 10, 10))

    table = result.table
    assert len(table) == 3
    assert list(table.columns[:3]) == ["point_id", "support_id", "aoe_class"]
    assert table["aoe_class"].tolist() == ["core", "core", "halo"]
    assert table["site"].tolist() == ["p0", "p1", "p2"]
    assert isinstance(result.parameter, ScaleParameter)
    assert result.support_count == 1


def test_point_in_two_supports_appears_twice() -> None:
    supports = gpd.GeoDataFrame({"id": ["A", "B"]}, geometry=[box(0, 0, 10, 10), box(8, 0, 18, 10)])
    result = classify(_points((9, 5)), supports, support_id_col="id")

    rows = result.table
    assert len(rows) == 2
    assert sorted(rows["support_id"]) == ["A", "B"]
    assert set(rows["aoe_class"]) == {"core"}
    assert set(result.geometries) == {"A", "B"}


def test_mask_prunes_point_outside_it() -> None:
    support = box(40, 40, 60, 60)
    points = _points((70, 50), (50, 50))

    unmasked = classify(points, support, scale=1.0)
    assert unmasked.table["aoe_class"].tolist() == ["halo", "core"]

    masked = classify(points, support, scale=1.0, mask=box(0, 0, 55, 100))
    assert masked.table["aoe_class"].tolist() == ["core"]
    assert masked.table["point_id"].tolist() == ["1"]


def test_all_points_pruned_keeps_schema() -> None:
    result = classify(_points((100, 100)), box(0, 0, 10, 10))

    assert len(result.table) == 0
    assert list(result.table.columns) == ["point_id", "support_id", "aoe_class", "site", "geometry"]
    # Geometry is kept even when nothing was classified.
    assert "0" in result.geometries


def test_dataframe_points_and_id_column() -> None:
    df = pd.DataFrame({"name": ["a", "b"], "lon": [5.0, 50.0], "lat": [5.0, 50.0]})
    result = classify(df, box(0, 0, 10, 10), point_id_col="name")

    assert result.table["point_id"].tolist() == ["a"]


def test_parallel_workers_keep_input_order() -> None:
    supports = gpd.GeoDataFrame(
        {"id": ["C", "A", "B"]},
        geometry=[box(40, 0, 50, 10), box(0, 0, 10, 10), box(20, 0, 30, 10)],
    )
    points = _points((5, 5), (25, 5), (45, 5))

    serial = classify(points, supports, support_id_col="id", workers=1)
    parallel = classify(points, supports, support_id_col="id", workers=2)

    assert parallel.table["support_id"].tolist() == ["C", "A", "B"]
    assert parallel.table["point_id"].tolist() == serial.table["point_id"].tolist()


def test_validation_errors() -> None:
    points = _points((5, 5))
    square = box(0, 0, 10, 10)

    with pytest.raises(InvalidArgumentError, match="Cannot specify both"):
        classify(points, square, scale=1.0, area=1.0)
    with pytest.raises(InvalidArgumentError, match="positive number"):
        classify(points, square, scale=-1.0)
    with pytest.raises(InvalidArgumentError, match="method"):
        classify(points, square, method="grow")
    with pytest.raises(InvalidArgumentError, match="only be used with method='scale_affine'"):
        classify(points, square, reference=(0, 0))
    with pytest.raises(InvalidArgumentError, match="single row"):
        classify(points, [square, box(20, 0, 30, 10)], method="scale_affine", reference=(0, 0))
    with pytest.raises(InvalidArgumentError, match="no country table"):
        classify(points, "Austria")


def test_duplicated_support_ids_rejected() -> None:
    supports = gpd.GeoDataFrame({"id": ["A", "A"]}, geometry=[box(0, 0, 1, 1), box(2, 2, 3, 3)])
    with pytest.raises(InvalidArgumentError, match="unique"):
        classify(_points((0.5, 0.5)), supports, support_id_col="id")


def test_fragment_policy_largest_warns() -> None:
    support = MultiPolygon([box(0, 0, 10, 10), box(30, 30, 30.5, 30.5)])
    config = SolverConfig(fragment_policy="largest")

    with pytest.warns(FragmentDroppedWarning, match="minor fragment"):
        result = classify(_points((30.2, 30.2), (5, 5)), support, config=config)

    assert result.table["point_id"].tolist() == ["1"]
    assert [d.kind for d in result.warnings] == ["fragment_dropped"]


def test_core_point_survives_mask_cutting_the_support() -> None:
    # The mask removes the right half of the support; points there stay core.
    result = classify(_points((8, 5), (2, 5)), box(0, 0, 10, 10), mask=box(0, 0, 5, 10))

    assert result.table["aoe_class"].tolist() == ["core", "core"]
    assert not result.geometries["0"].aoe_final.covers(Point(8, 5))
