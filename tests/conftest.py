"""Pytest fixtures: two tract-like squares and three incidents around them."""

import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import Point, box


@pytest.fixture
def regions():
    """Polygons A and B, side by side with a gap, in EPSG:4326."""
    return gpd.GeoDataFrame(
        {
            "GEOID": ["A", "B"],
            "NAME": ["Census Tract 1, Test County, Test State",
                     "Census Tract 2, Test County, Test State"],
            "median_income_est": [50000.0, 80000.0],
            "median_income_moe": [1500.0, 2500.0],
        },
        geometry=[box(0, 0, 1, 1), box(2, 0, 3, 1)],
        crs="EPSG:4326",
    )


@pytest.fixture
def incidents():
    """One incident inside A, one inside B, one far outside both."""
    return gpd.GeoDataFrame(
        {
            "unique_id": [101, 102, 103],
            "name": ["First", "Second", "Third"],
        },
        geometry=[Point(0.5, 0.5), Point(2.5, 0.5), Point(40.0, 80.0)],
        crs="EPSG:4326",
    )


@pytest.fixture
def acs_long():
    """Long ACS table: 2 regions x 3 variables."""
    rows = []
    for geoid, offset in [("06037000101", 0), ("06037000102", 10)]:
        for i, code in enumerate(["V1", "V2", "V3"]):
            rows.append({
                "GEOID": geoid,
                "NAME": f"Census Tract {geoid[-4:]}, Los Angeles County, California",
                "variable": code,
                "estimate": float(offset + i),
                "moe": float(offset + i) / 10,
            })
    return pd.DataFrame(rows)
