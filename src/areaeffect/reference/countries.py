"""
Country boundaries and the land mask (read-only reference data).

Supports can be named by country instead of passed as polygons. This module
loads a country table (any vector file geopandas can read, with `iso2`,
`iso3` and `name` columns) and a land polygon once per process, and offers
lookup helpers on top. Loaded tables are never mutated; lookups return new
frames.

The reference data is a convenience: every entry point also accepts
caller-supplied polygons, and nothing in the expansion code depends on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
# `lru_cache` gives us the "load once per process" registry without globals we mutate.
from functools import lru_cache
# `Path` keeps file handling portable and lets us normalise cache keys.
from pathlib import Path
from typing import Any, Sequence

# geopandas reads the vector files (GeoPackage, GeoJSON, shapefile, ...).
import geopandas as gpd
import numpy as np
import pandas as pd

from areaeffect.errors import CountryNotFoundError, InvalidArgumentError
from areaeffect.geometry.engine import DEFAULT_ENGINE, GeometryEngine
from areaeffect.geometry.inputs import align_crs

COUNTRY_COLUMNS = ("iso2", "iso3", "name")


@dataclass(frozen=True)
class CountryTable:
    frame: gpd.GeoDataFrame

    @property
    def crs(self) -> Any:
        return self.frame.crs

    def __len__(self) -> int:
        return len(self.frame)

    @classmethod
    def from_frame(cls, frame: gpd.GeoDataFrame) -> "CountryTable":
        missing = [c for c in COUNTRY_COLUMNS if c not in frame.columns]
        if missing:
            raise InvalidArgumentError(f"Country table is missing columns: {missing}")
        # Keep codes and names as trimmed strings so lookups compare like with like.
        cleaned = frame.copy()
        for c in COUNTRY_COLUMNS:
            cleaned[c] = cleaned[c].astype("string").str.strip()
        # The table index doubles as support id downstream; use ISO3 codes when they are unique.
        if cleaned["iso3"].notna().all() and cleaned["iso3"].is_unique:
            cleaned.index = pd.Index(cleaned["iso3"].astype(str).tolist())
        return cls(frame=cleaned)


@lru_cache(maxsize=8)
def _read_countries(path: str) -> CountryTable:
    return CountryTable.from_frame(gpd.read_file(path))


def load_countries(path: str | Path) -> CountryTable:
    """Read a country table once; later calls with the same path reuse it."""
    # Resolve so "./a.gpkg" and "a.gpkg" share one cache entry.
    return _read_countries(str(Path(path).resolve()))


@lru_cache(maxsize=8)
def _read_land(path: str) -> gpd.GeoDataFrame:
    frame = gpd.read_file(path)
    # Dissolve to one row: the mask is used as a single polygon anyway.
    return gpd.GeoDataFrame(geometry=[frame.geometry.union_all()], crs=frame.crs)


def load_land_mask(path: str | Path) -> gpd.GeoDataFrame:
    """Read the global land polygon once (single-row GeoDataFrame)."""
    return _read_land(str(Path(path).resolve()))


def get_country(query: str, countries: CountryTable) -> gpd.GeoDataFrame:
    """
    Look up one country by ISO2 code, ISO3 code, exact name or, failing
    those, a unique case-insensitive partial name match.
    """
    frame = countries.frame
    q = str(query).strip()
    upper, lower = q.upper(), q.lower()

    # Each rule must single out exactly one row to win; otherwise try the next.
    for column, value in (("iso2", upper), ("iso3", upper)):
        hits = frame[column].str.upper() == value
        if int(hits.sum()) == 1:
            return frame.loc[hits.fillna(False).to_numpy(dtype=bool)]
    hits = frame["name"].str.lower() == lower
    if int(hits.sum()) == 1:
        return frame.loc[hits.fillna(False).to_numpy(dtype=bool)]

    # Partial matches are literal substrings, not regular expressions.
    partial = frame["name"].str.contains(q, case=False, regex=False).fillna(False).to_numpy(dtype=bool)
    if partial.sum() == 1:
        return frame.loc[partial]
    if partial.sum() > 1:
        names = ", ".join(frame.loc[partial, "name"].astype(str).tolist())
        raise InvalidArgumentError(f"Multiple matches for {q!r}: {names}")
    raise CountryNotFoundError(f"Country not found: {q}")


def get_countries(queries: Sequence[str], countries: CountryTable) -> gpd.GeoDataFrame:
    # Order follows the queries, which is also the support order downstream.
    frames = [get_country(q, countries) for q in queries]
    out = pd.concat(frames)
    return gpd.GeoDataFrame(out, geometry=countries.frame.geometry.name, crs=countries.crs)


def detect_countries(
    points: gpd.GeoDataFrame,
    countries: CountryTable,
    *,
    engine: GeometryEngine = DEFAULT_ENGINE,
) -> gpd.GeoDataFrame:
    """Every country whose polygon covers at least one of `points`."""
    pts = align_crs(points, countries.crs)
    geoms = np.asarray(pts.geometry.to_numpy(), dtype=object)
    hits = np.array([bool(engine.covers(g, geoms).any()) for g in countries.frame.geometry], dtype=bool)
    if not hits.any():
        raise CountryNotFoundError("No countries contain the provided points")
    found = countries.frame.loc[hits]
    logging.getLogger("areaeffect").info("Countries: %s", ", ".join(found["name"].astype(str)))
    return found
