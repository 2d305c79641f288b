"""
Lightweight local projection for lon/lat inputs.

Buffer distances and areas only mean something in a planar, metric space.
Callers with a proper projected CRS should reproject with geopandas
(`GeoDataFrame.to_crs`) before calling the library. For quick analyses of
raw lon/lat tables we offer an equirectangular projection around a
reference latitude:

- x = R * lon_rad * cos(reference_lat)
- y = R * lat_rad

Distortion grows with distance from the reference latitude, so this is only
suitable for regions spanning a few degrees.
"""

from __future__ import annotations

import math
from typing import Literal

import geopandas as gpd
import numpy as np
from shapely.geometry.base import BaseGeometry

from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine

# Earth radius in meters (spherical approximation).
EARTH_RADIUS_M = 6_371_000.0

ReferenceLatStrategy = Literal["mean", "median"]


def choose_reference_lat_deg(latitudes_deg: np.ndarray, strategy: ReferenceLatStrategy = "mean") -> float:
    # An empty array cannot produce a meaningful reference latitude.
    if latitudes_deg.size == 0:
        raise ValueError("Cannot choose reference latitude from empty array")
    if strategy == "median":
        return float(np.median(latitudes_deg))
    return float(np.mean(latitudes_deg))


def lonlat_to_xy_m(
    lon_deg: np.ndarray,
    lat_deg: np.ndarray,
    *,
    reference_lat_deg: float,
) -> tuple[np.ndarray, np.ndarray]:
    lat_rad = np.deg2rad(np.asarray(lat_deg, dtype=float))
    lon_rad = np.deg2rad(np.asarray(lon_deg, dtype=float))
    ref_lat_rad = math.radians(float(reference_lat_deg))
    # Meridians converge toward the poles, hence the cos(reference_lat) factor on x.
    x = EARTH_RADIUS_M * lon_rad * math.cos(ref_lat_rad)
    y = EARTH_RADIUS_M * lat_rad
    return x, y


def xy_to_lonlat(
    x_m: np.ndarray,
    y_m: np.ndarray,
    *,
    reference_lat_deg: float,
) -> tuple[np.ndarray, np.ndarray]:
    ref_lat_rad = math.radians(float(reference_lat_deg))
    lat_rad = np.asarray(y_m, dtype=float) / EARTH_RADIUS_M
    # Pitfall: near the poles cos(ref_lat) approaches 0.
    lon_rad = np.asarray(x_m, dtype=float) / (EARTH_RADIUS_M * math.cos(ref_lat_rad))
    return np.rad2deg(lon_rad), np.rad2deg(lat_rad)


def project_geometry(
    geom: BaseGeometry,
    *,
    reference_lat_deg: float,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> BaseGeometry:
    def _fwd(coords: np.ndarray) -> np.ndarray:
        x, y = lonlat_to_xy_m(coords[:, 0], coords[:, 1], reference_lat_deg=reference_lat_deg)
        return np.column_stack([x, y])

    return engine.transform(geom, _fwd)


def unproject_geometry(
    geom: BaseGeometry,
    *,
    reference_lat_deg: float,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> BaseGeometry:
    def _inv(coords: np.ndarray) -> np.ndarray:
        lon, lat = xy_to_lonlat(coords[:, 0], coords[:, 1], reference_lat_deg=reference_lat_deg)
        return np.column_stack([lon, lat])

    return engine.transform(geom, _inv)


def project_frame(
    frame: gpd.GeoDataFrame,
    *,
    reference_lat_deg: float,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> gpd.GeoDataFrame:
    geoms = [project_geometry(g, reference_lat_deg=reference_lat_deg, engine=engine) for g in frame.geometry]
    # The result is planar meters with no registered CRS; set_geometry would keep the old one.
    return gpd.GeoDataFrame(
        frame.drop(columns=frame.geometry.name),
        geometry=gpd.GeoSeries(geoms, index=frame.index, name=frame.geometry.name),
        crs=None,
    )


def frame_reference_lat(frames: list[gpd.GeoDataFrame], strategy: ReferenceLatStrategy = "mean") -> float:
    # Bounding-box mid latitudes: geographic centroids trigger geopandas warnings and add nothing here.
    lats = []
    for f in frames:
        if len(f) == 0:
            continue
        b = f.geometry.bounds
        lats.append(((b["miny"] + b["maxy"]) / 2.0).to_numpy(dtype=float))
    if not lats:
        raise ValueError("Cannot choose reference latitude from empty frames")
    return choose_reference_lat_deg(np.concatenate(lats), strategy=strategy)
