"""Tests for the point-in-polygon join."""

import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import Point, box

from tract_maps.mapping_utilities import CRSMismatchError, MissingCRSError
from tract_maps.spatial_join import filter_matched, join_incidents_to_regions, summarize_join

REGION_COLS = ["GEOID", "NAME", "median_income_est", "median_income_moe"]


class TestJoinIncidentsToRegions:
    """Tests for join_incidents_to_regions."""

    def test_one_row_per_incident(self, incidents, regions):
        joined = join_incidents_to_regions(incidents, regions)
        assert len(joined) == len(incidents)
        assert joined["unique_id"].tolist() == [101, 102, 103]

    def test_contained_points_get_region_attributes(self, incidents, regions):
        joined = join_incidents_to_regions(incidents, regions).set_index("unique_id")

        for uid, geoid in [(101, "A"), (102, "B")]:
            expected = regions.set_index("GEOID").loc[geoid]
            row = joined.loc[uid]
            assert row["GEOID"] == geoid
            assert row["NAME"] == expected["NAME"]
            assert row["median_income_est"] == expected["median_income_est"]
            assert row["median_income_moe"] == expected["median_income_moe"]

    def test_outside_point_has_null_region_attributes(self, incidents, regions):
        joined = join_incidents_to_regions(incidents, regions)
        outside = joined[joined["unique_id"] == 103].iloc[0]
        for col in REGION_COLS:
            assert pd.isna(outside[col])

    def test_filter_matched_keeps_two_rows(self, incidents, regions):
        joined = join_incidents_to_regions(incidents, regions)
        matched = filter_matched(joined)
        assert len(matched) == 2
        assert set(matched["GEOID"]) == {"A", "B"}
        assert summarize_join(joined) == {"total": 3, "matched": 2, "unmatched": 1}

    def test_geometry_and_crs_unchanged(self, incidents, regions):
        joined = join_incidents_to_regions(incidents, regions)
        assert isinstance(joined, gpd.GeoDataFrame)
        assert joined.crs == incidents.crs
        assert joined.geometry.geom_equals(incidents.geometry).all()

    def test_inputs_not_mutated(self, incidents, regions):
        incident_cols = list(incidents.columns)
        region_cols = list(regions.columns)
        join_incidents_to_regions(incidents, regions)
        assert list(incidents.columns) == incident_cols
        assert list(regions.columns) == region_cols

    def test_index_preserved(self, incidents, regions):
        incidents.index = [10, 20, 30]
        joined = join_incidents_to_regions(incidents, regions)
        assert joined.index.tolist() == [10, 20, 30]
        assert joined.loc[20, "GEOID"] == "B"

    def test_selected_region_columns(self, incidents, regions):
        joined = join_incidents_to_regions(incidents, regions, region_cols=["median_income_est"])
        assert "GEOID" in joined.columns
        assert "median_income_est" in joined.columns
        assert "NAME" not in joined.columns

    def test_crs_mismatch_raises(self, incidents, regions):
        with pytest.raises(CRSMismatchError):
            join_incidents_to_regions(incidents, regions.to_crs("EPSG:3857"))

    def test_missing_crs_raises(self, incidents, regions):
        no_crs = gpd.GeoDataFrame(regions.drop(columns="geometry"), geometry=list(regions.geometry))
        with pytest.raises(MissingCRSError):
            join_incidents_to_regions(incidents, no_crs)

    def test_missing_geometry_raises(self, incidents, regions):
        incidents.loc[2, "geometry"] = None
        with pytest.raises(ValueError, match="no point geometry"):
            join_incidents_to_regions(incidents, regions)

    def test_duplicate_region_ids_raise(self, incidents, regions):
        regions.loc[1, "GEOID"] = "A"
        with pytest.raises(ValueError, match="unique"):
            join_incidents_to_regions(incidents, regions)

    def test_column_clash_raises(self, incidents, regions):
        incidents["NAME"] = "x"
        with pytest.raises(ValueError, match="exist on both layers"):
            join_incidents_to_regions(incidents, regions)

    def test_overlap_tie_break_uses_region_order(self, incidents):
        small = box(0, 0, 1, 1)
        large = box(-5, -5, 5, 5)

        first_small = gpd.GeoDataFrame(
            {"GEOID": ["small", "large"]}, geometry=[small, large], crs="EPSG:4326"
        )
        first_large = gpd.GeoDataFrame(
            {"GEOID": ["large", "small"]}, geometry=[large, small], crs="EPSG:4326"
        )

        joined = join_incidents_to_regions(incidents.iloc[[0]], first_small)
        assert joined["GEOID"].tolist() == ["small"]

        joined = join_incidents_to_regions(incidents.iloc[[0]], first_large)
        assert joined["GEOID"].tolist() == ["large"]

    def test_tie_reported(self, incidents, capsys):
        overlapping = gpd.GeoDataFrame(
            {"GEOID": ["one", "two"]},
            geometry=[box(0, 0, 1, 1), box(0, 0, 2, 2)],
            crs="EPSG:4326",
        )
        join_incidents_to_regions(incidents, overlapping)
        assert "more than one region" in capsys.readouterr().out

    def test_no_incidents(self, incidents, regions):
        joined = join_incidents_to_regions(incidents.iloc[0:0], regions)
        assert len(joined) == 0
        assert "GEOID" in joined.columns

    def test_projected_layers(self, incidents, regions):
        joined = join_incidents_to_regions(
            incidents.to_crs("EPSG:3857"), regions.to_crs("EPSG:3857")
        )
        assert joined["GEOID"].tolist()[:2] == ["A", "B"]
        assert pd.isna(joined["GEOID"].iloc[2])


class TestFilterMatched:
    """Tests for filter_matched."""

    def test_requires_join_column(self, incidents):
        with pytest.raises(KeyError):
            filter_matched(incidents)

    def test_reports_dropped(self, incidents, regions, capsys):
        filter_matched(join_incidents_to_regions(incidents, regions, verbose=False))
        assert "Dropped 1 of 3" in capsys.readouterr().out


def test_point_in_gap_between_regions_is_unmatched(regions):
    gap = gpd.GeoDataFrame({"unique_id": [1]}, geometry=[Point(1.5, 0.5)], crs="EPSG:4326")
    joined = join_incidents_to_regions(gap, regions)
    assert pd.isna(joined["GEOID"].iloc[0])
