"""End-to-end test of the pipeline with the remote sources mocked out."""

from unittest.mock import patch

import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import box

from tract_maps.run_of_show import run_pipeline

VARIABLES = {"B19013_001": "median_income", "B01003_001": "total_pop"}
TRACT_A = "06037000101"
TRACT_B = "06037000102"


@pytest.fixture
def raw_sheet():
    return pd.DataFrame({
        "Unique ID": ["1", "2", "3", "4", "5", "6"],
        "Name": ["Inside A", "Inside B", "Arctic Ocean", "No Coordinates", "Other State", "Sacramento"],
        "State": ["CA", "CA", "CA", "CA", "NV", "CA"],
        "Location of death (county)": [
            "Los Angeles", "Los Angeles", "Los Angeles", "Los Angeles", "Clark", "Sacramento",
        ],
        "Date of injury resulting in death (month/day/year)": ["01/01/2015"] * 6,
        "Latitude": ["34.05", "34.05", "80.0", "", "36.17", "38.58"],
        "Longitude": ["-118.35", "-118.15", "-118.25", "", "-115.14", "-121.49"],
    }, dtype=object)


@pytest.fixture
def acs_long():
    rows = []
    for geoid, name, income, pop in [
        (TRACT_A, "Census Tract 1.01, Los Angeles County, California", 45000, 4000),
        (TRACT_B, "Census Tract 1.02, Los Angeles County, California", 90000, 3500),
    ]:
        rows.append({"GEOID": geoid, "NAME": name, "variable": "B19013_001",
                     "estimate": float(income), "moe": 2000.0})
        rows.append({"GEOID": geoid, "NAME": name, "variable": "B01003_001",
                     "estimate": float(pop), "moe": 300.0})
    return pd.DataFrame(rows)


@pytest.fixture
def tracts():
    # published in NAD83, as the Census boundary files are
    return gpd.GeoDataFrame(
        {"GEOID": [TRACT_A, TRACT_B]},
        geometry=[box(-118.4, 34.0, -118.3, 34.1), box(-118.2, 34.0, -118.1, 34.1)],
        crs="EPSG:4269",
    )


@pytest.fixture
def sources(raw_sheet, acs_long, tracts):
    with patch("tract_maps.run_of_show.fetch_incident_sheet", return_value=raw_sheet), \
            patch("tract_maps.run_of_show.fetch_acs_long", return_value=acs_long), \
            patch("tract_maps.run_of_show.fetch_tract_geometries", return_value=tracts):
        yield


def _paths(tmp_path):
    return {
        "cleaned_csv": str(tmp_path / "incidents_cleaned.csv"),
        "enriched_csv": str(tmp_path / "incidents_with_tracts.csv"),
        "map_paths": [str(tmp_path / "map.svg"), str(tmp_path / "map.png")],
    }


def test_pipeline(tmp_path, sources):
    with pytest.warns(UserWarning, match="outside the study area"):
        result = run_pipeline(
            variables=VARIABLES, map_column="median_income_est", **_paths(tmp_path)
        )

    # NV and Sacramento incidents filtered out, the one without coordinates reported separately
    assert result["incidents"]["unique_id"].tolist() == ["1", "2", "3", "4"]
    assert result["missing"]["unique_id"].tolist() == ["4"]

    joined = result["joined"].set_index("unique_id")
    assert len(joined) == 3
    assert joined.loc["1", "GEOID"] == TRACT_A
    assert joined.loc["2", "GEOID"] == TRACT_B
    assert joined.loc["2", "median_income_est"] == 90000
    assert joined.loc["2", "tract_name"] == "1.02"
    assert pd.isna(joined.loc["3", "GEOID"])
    assert bool(joined.loc["3", "implausible_location"])

    assert result["matched"]["unique_id"].tolist() == ["1", "2"]
    assert result["regions"].crs.to_epsg() == 4326

    enriched = pd.read_csv(tmp_path / "incidents_with_tracts.csv", dtype={"GEOID": str})
    assert len(enriched) == 3
    assert enriched["GEOID"].dropna().tolist() == [TRACT_A, TRACT_B]

    assert (tmp_path / "incidents_cleaned.csv").exists()
    assert (tmp_path / "map.svg").exists()
    assert (tmp_path / "map.png").exists()


def test_enriched_table_written_before_rendering(tmp_path, sources):
    with patch("tract_maps.run_of_show.render_incident_map", side_effect=RuntimeError("boom")):
        with pytest.warns(UserWarning):
            with pytest.raises(RuntimeError):
                run_pipeline(variables=VARIABLES, **_paths(tmp_path))

    assert (tmp_path / "incidents_with_tracts.csv").exists()


def test_render_disabled(tmp_path, sources):
    with pytest.warns(UserWarning):
        result = run_pipeline(variables=VARIABLES, render=False, **_paths(tmp_path))

    assert len(result["outputs"]) == 2
    assert not (tmp_path / "map.png").exists()


def test_other_counties_never_reach_the_plausibility_check(tmp_path, sources):
    with pytest.warns(UserWarning, match="outside the study area") as record:
        result = run_pipeline(variables=VARIABLES, render=False, **_paths(tmp_path))

    joined = result["joined"].set_index("unique_id")
    assert "6" not in joined.index
    assert joined["implausible_location"].tolist() == [False, False, True]

    messages = [str(w.message) for w in record if "outside the study area" in str(w.message)]
    assert messages == ["1 incident(s) lie more than 1.0 units outside the study area's "
                        "bounding box: ['3']"]


def test_county_filter_can_be_disabled(tmp_path, sources):
    with pytest.warns(UserWarning, match="outside the study area"):
        result = run_pipeline(variables=VARIABLES, county_name=None, render=False,
                              **_paths(tmp_path))

    joined = result["joined"].set_index("unique_id")
    assert "6" in joined.index
    assert bool(joined.loc["6", "implausible_location"])
