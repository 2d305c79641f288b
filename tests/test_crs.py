import math

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import Point, box

from areaeffect.geometry.crs import (
    EARTH_RADIUS_M,
    choose_reference_lat_deg,
    frame_reference_lat,
    lonlat_to_xy_m,
    project_frame,
    xy_to_lonlat,
)


def test_one_degree_of_latitude_in_meters() -> None:
    _, y = lonlat_to_xy_m(np.array([0.0, 0.0]), np.array([0.0, 1.0]), reference_lat_deg=0.0)
    assert y[1] - y[0] == pytest.approx(EARTH_RADIUS_M * math.pi / 180.0)


def test_longitude_shrinks_with_reference_latitude() -> None:
    x, _ = lonlat_to_xy_m(np.array([1.0]), np.array([60.0]), reference_lat_deg=60.0)
    assert x[0] == pytest.approx(EARTH_RADIUS_M * math.pi / 180.0 * 0.5)


def test_inverse_projection() -> None:
    x, y = lonlat_to_xy_m(np.array([16.37]), np.array([48.21]), reference_lat_deg=48.0)
    lon, lat = xy_to_lonlat(x, y, reference_lat_deg=48.0)
    assert lon[0] == pytest.approx(16.37)
    assert lat[0] == pytest.approx(48.21)


def test_reference_latitude_strategies() -> None:
    lats = np.array([10.0, 20.0, 60.0])
    assert choose_reference_lat_deg(lats) == pytest.approx(30.0)
    assert choose_reference_lat_deg(lats, "median") == pytest.approx(20.0)
    with pytest.raises(ValueError):
        choose_reference_lat_deg(np.array([]))


def test_project_frame_drops_crs_and_keeps_columns() -> None:
    frame = gpd.GeoDataFrame({"name": ["a"]}, geometry=[box(0, 0, 1, 1)], crs="EPSG:4326")
    points = gpd.GeoDataFrame(geometry=[Point(0.5, 2.0)], crs="EPSG:4326")

    ref = frame_reference_lat([frame, points])
    assert ref == pytest.approx(1.25)

    out = project_frame(frame, reference_lat_deg=ref)
    assert out.crs is None
    assert out["name"].tolist() == ["a"]
    side = EARTH_RADIUS_M * math.pi / 180.0
    assert out.geometry.iloc[0].area == pytest.approx(side * side * math.cos(math.radians(ref)))
