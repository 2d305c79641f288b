import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point, box

from areaeffect.classify.border import (
    bbox_to_polygon,
    classify_by_border,
    determine_sides,
    find_border_width,
    split_by_line,
)
from areaeffect.errors import InvalidArgumentError


def _points(*xy: tuple[float, float]) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame({"tag": list(range(len(xy)))}, geometry=[Point(x, y) for x, y in xy])


HORIZONTAL = LineString([(0, 0), (100, 0)])


def test_width_mode_labels_sides_and_bands() -> None:
    points = _points((50, 5), (50, -5), (50, 15), (50, -25))
    result = classify_by_border(points, HORIZONTAL, width=10)

    table = result.table
    assert list(table.columns[:3]) == ["point_id", "side", "aoe_class"]
    assert table["point_id"].tolist() == ["0", "1", "2"]
    assert table["side"].tolist() == ["side_1", "side_2", "side_1"]
    assert table["aoe_class"].tolist() == ["core", "core", "halo"]
    assert result.core_width == 10.0 and result.halo_width == 10.0


def test_custom_side_names_and_halo_width() -> None:
    points = _points((50, 5), (50, -25))
    result = classify_by_border(points, HORIZONTAL, width=10, halo_width=20, side_names=("north", "south"))

    assert result.table["side"].tolist() == ["north", "south"]
    assert result.table["aoe_class"].tolist() == ["core", "halo"]


def test_area_mode_hits_target_inside_bbox() -> None:
    bbox = (0, -50, 100, 50)
    result = classify_by_border(_points((50, 1)), HORIZONTAL, area=1000.0, halo_area=500.0, bbox=bbox)

    assert result.core_width == pytest.approx(10.0, rel=0.02)
    assert result.halo_width == pytest.approx(5.0, rel=0.02)
    assert result.geometries.side1_core.area == pytest.approx(1000.0, rel=0.01)
    assert result.geometries.side2_core.area == pytest.approx(1000.0, rel=0.01)
    assert result.area == 1000.0


def test_find_border_width_respects_mask() -> None:
    # The mask keeps only the left half of the band, so the width has to double.
    search = find_border_width(HORIZONTAL, 1000.0, bbox=box(0, -50, 100, 50), mask=box(0, -50, 50, 50))
    assert search.value == pytest.approx(20.0, rel=0.02)


def test_diagonal_border_sides() -> None:
    line = LineString([(0, 0), (10, 10)])
    sides = determine_sides(line, [Point(0, 5), Point(5, 0), Point(5, 5)])
    assert sides.tolist() == [1, 2, 1]

    result = classify_by_border(_points((4, 6), (6, 4)), line, width=2)
    assert result.table["side"].tolist() == ["side_1", "side_2"]


def test_split_by_line_halves_a_square() -> None:
    upper, lower = split_by_line(box(-5, -5, 5, 5), LineString([(-10, 0), (10, 0)]))
    assert upper.area == pytest.approx(50.0)
    assert lower.area == pytest.approx(50.0)
    assert upper.centroid.y > 0 > lower.centroid.y


def test_split_falls_back_to_half_planes() -> None:
    # The line never crosses the polygon: everything lands on one side.
    above, below = split_by_line(box(0, 1, 10, 5), LineString([(0, 0), (10, 0)]))
    assert above.area == pytest.approx(40.0)
    assert below.is_empty or below.area == pytest.approx(0.0)


def test_bbox_to_polygon_forms() -> None:
    assert bbox_to_polygon((0, 0, 2, 1)).area == 2.0
    assert bbox_to_polygon({"xmin": 0, "ymin": 0, "xmax": 1, "ymax": 1}).area == 1.0
    assert bbox_to_polygon(LineString([(0, 0), (3, 3)])).area == 9.0
    with pytest.raises(InvalidArgumentError, match="xmin < xmax"):
        bbox_to_polygon((2, 0, 1, 1))
    with pytest.raises(TypeError):
        bbox_to_polygon("0,0,1,1")


def test_border_validation() -> None:
    points = _points((1, 1))
    with pytest.raises(InvalidArgumentError, match="Cannot specify both `width` and `area`"):
        classify_by_border(points, HORIZONTAL, width=1, area=1)
    with pytest.raises(InvalidArgumentError, match="Must specify either"):
        classify_by_border(points, HORIZONTAL)
    with pytest.raises(InvalidArgumentError, match="halo_width"):
        classify_by_border(points, HORIZONTAL, width=1, halo_width=1, halo_area=1)
    with pytest.raises(InvalidArgumentError, match="length 2"):
        classify_by_border(points, HORIZONTAL, width=1, side_names=("a", "b", "c"))
    with pytest.raises(InvalidArgumentError, match="LINESTRING"):
        classify_by_border(points, box(0, 0, 1, 1), width=1)
    with pytest.raises(InvalidArgumentError, match="open line"):
        classify_by_border(points, LineString([(0, 0), (5, 5), (0, 0)]), width=1)


def test_no_points_near_border_keeps_schema() -> None:
    result = classify_by_border(_points((50, 500)), HORIZONTAL, width=1)
    assert len(result.table) == 0
    assert list(result.table.columns) == ["point_id", "side", "aoe_class", "tag", "geometry"]
