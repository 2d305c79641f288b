import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import LineString, MultiPolygon, Point, box

from areaeffect.errors import InvalidArgumentError
from areaeffect.geometry.inputs import (
    detect_coords,
    resolve_ids,
    select_dominant_fragment,
    to_line_geometry,
    to_points_frame,
    to_polygon_frame,
    to_reference_point,
)


def test_detect_coords_is_case_insensitive() -> None:
    assert detect_coords(["id", "Lon", "LAT"]) == ("Lon", "LAT")
    assert detect_coords(["easting", "northing"]) == ("easting", "northing")
    assert detect_coords(["a", "b"]) is None


def test_to_points_frame_from_dataframe() -> None:
    df = pd.DataFrame({"site": ["a", "b"], "x": [1.0, 2.0], "y": [3.0, 4.0]})
    frame = to_points_frame(df, crs="EPSG:32631")

    assert list(frame.geometry.x) == [1.0, 2.0]
    assert frame.crs == "EPSG:32631"
    assert "site" in frame.columns


def test_to_points_frame_errors() -> None:
    with pytest.raises(InvalidArgumentError, match="Cannot detect coordinate columns"):
        to_points_frame(pd.DataFrame({"a": [1], "b": [2]}))
    with pytest.raises(InvalidArgumentError, match="only POINT geometries"):
        to_points_frame(gpd.GeoDataFrame(geometry=[box(0, 0, 1, 1)]))
    with pytest.raises(TypeError):
        to_points_frame(42)


def test_to_polygon_frame_rejects_lines() -> None:
    with pytest.raises(InvalidArgumentError, match="POLYGON or MULTIPOLYGON"):
        to_polygon_frame(LineString([(0, 0), (1, 1)]), label="support")
    assert len(to_polygon_frame([box(0, 0, 1, 1), box(2, 2, 3, 3)], label="support")) == 2


def test_to_line_geometry_rejects_polygons() -> None:
    with pytest.raises(InvalidArgumentError, match="LINESTRING or MULTILINESTRING"):
        to_line_geometry(box(0, 0, 1, 1))
    lines, crs = to_line_geometry(LineString([(0, 0), (1, 1)]))
    assert len(lines) == 1 and crs is None


def test_reference_point_forms() -> None:
    assert to_reference_point((1, 2)).equals(Point(1, 2))
    assert to_reference_point(Point(3, 4)).equals(Point(3, 4))
    assert to_reference_point(None) is None
    with pytest.raises(InvalidArgumentError, match="exactly one point"):
        to_reference_point([Point(0, 0), Point(1, 1)])


def test_resolve_ids_from_column_or_index() -> None:
    frame = pd.DataFrame({"name": ["A", "B"]}, index=[10, 11])
    assert resolve_ids(frame, "name", label="support") == ["A", "B"]
    assert resolve_ids(frame, None, label="support") == ["10", "11"]
    with pytest.raises(InvalidArgumentError, match="no column 'code'"):
        resolve_ids(frame, "code", label="support")


def test_fragment_policy() -> None:
    mainland = box(0, 0, 10, 10)
    islet = box(20, 20, 20.5, 20.5)
    geom = MultiPolygon([mainland, islet])

    kept, note = select_dominant_fragment(geom, policy="keep", dominance=0.9, support_id="X")
    assert kept is geom and note is None

    largest, note = select_dominant_fragment(geom, policy="largest", dominance=0.9, support_id="X")
    assert largest.equals(mainland)
    assert note is not None and note.kind == "fragment_dropped"
    assert "dropped 1 minor fragment" in note.message

    # No fragment dominates: geometry is left alone.
    balanced = MultiPolygon([box(0, 0, 1, 1), box(5, 5, 6, 6)])
    same, note = select_dominant_fragment(balanced, policy="largest", dominance=0.9, support_id="Y")
    assert same is balanced and note is None
