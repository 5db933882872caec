# Filename: run_of_show.py

# ------------------------------------------------------------------
#       Fatal police encounters x ACS tract demographics.
#       Downloads the incident spreadsheet and the county's ACS tract
#       estimates, attaches each incident to the tract containing it,
#       writes the enriched table and draws the map.
#
# NOTE: the enriched CSV is written before the map is drawn, so a
#       rendering failure never loses the joined data.
# ------------------------------------------------------------------

import warnings

from tract_maps import mapping_dicts as cfg
from tract_maps.incident_data import (
    fetch_incident_sheet,
    clean_incident_data,
    split_missing_coordinates,
    incidents_to_gdf,
    flag_implausible_points,
    export_incident_table,
)
from tract_maps.census_data import (
    fetch_acs_long,
    reshape_acs_wide,
    parse_region_name,
    fetch_tract_geometries,
    attach_region_geometry,
)
from tract_maps.mapping_utilities import (
    align_crs,
    normalize_crs,
    check_mutual_exclusivity,
    map_fips_and_state,
)
from tract_maps.spatial_join import join_incidents_to_regions, filter_matched, summarize_join
from tract_maps.display_choropleth import render_incident_map


def run_pipeline(
    sheet_id=cfg.INCIDENT_SHEET_ID,
    sheet_name=cfg.INCIDENT_SHEET_NAME,
    state_fips=cfg.STATE_FIPS,
    county_fips=cfg.COUNTY_FIPS,
    county_name=cfg.COUNTY_NAME,
    variables=cfg.ACS_VARIABLES,
    year=cfg.ACS_YEAR,
    api_key=cfg.CENSUS_API_KEY,
    name_pattern=cfg.TRACT_NAME_PATTERN,
    incident_crs=cfg.INCIDENT_CRS,
    planar_crs=cfg.PLANAR_CRS,
    plausibility_margin=cfg.PLAUSIBILITY_MARGIN,
    cleaned_csv=cfg.CLEANED_INCIDENTS_CSV,
    enriched_csv=cfg.ENRICHED_INCIDENTS_CSV,
    map_paths=cfg.MAP_PATHS,
    map_column=cfg.MAP_COLUMN,
    render=True,
):
    """
    Run every stage once, top to bottom. Each stage's output is passed
    explicitly to the next.

    Returns a dict with the intermediate tables ("incidents", "missing",
    "regions", "joined", "matched") and the written file paths ("outputs").
    """
    outputs = []

    # ------------------------------------------------------------------
    # 1. INCIDENTS
    # ------------------------------------------------------------------
    print("\nLoading incidents...")
    raw_incidents = fetch_incident_sheet(sheet_id, sheet_name)
    incidents = clean_incident_data(
        raw_incidents, state=map_fips_and_state(state_fips), county=county_name
    )
    outputs.append(export_incident_table(incidents, cleaned_csv))

    located, missing = split_missing_coordinates(incidents)
    incident_points = incidents_to_gdf(located, crs=incident_crs)

    # ------------------------------------------------------------------
    # 2. REGIONS
    # ------------------------------------------------------------------
    print("\nLoading ACS tract estimates...")
    acs_long = fetch_acs_long(
        variables, state_fips=state_fips, county_fips=county_fips, year=year, api_key=api_key
    )
    acs_wide = reshape_acs_wide(acs_long, variables)
    acs_wide = parse_region_name(acs_wide, pattern=name_pattern)

    tracts = fetch_tract_geometries(state_fips, county_fips, year=year)
    regions = attach_region_geometry(acs_wide, tracts)

    # Census boundaries are published in NAD83; bring them onto the incidents' CRS
    regions = align_crs(regions, incident_points, label="regions")
    check_mutual_exclusivity(normalize_crs(regions, planar_crs, label="regions"))

    # ------------------------------------------------------------------
    # 3. JOIN + FILTER
    # ------------------------------------------------------------------
    print("\nJoining incidents to tracts...")
    incident_points = flag_implausible_points(incident_points, regions, plausibility_margin)
    joined = join_incidents_to_regions(incident_points, regions, region_id_col="GEOID")
    print(f"Join summary: {summarize_join(joined)}")
    matched = filter_matched(joined, region_id_col="GEOID")

    outputs.append(export_incident_table(joined, enriched_csv))

    # ------------------------------------------------------------------
    # 4. MAP
    # ------------------------------------------------------------------
    if render:
        print("\nRendering map...")
        outputs.extend(
            render_incident_map(
                regions,
                matched,
                column=map_column,
                paths=map_paths,
                planar_crs=planar_crs,
            )
        )

    return {
        "incidents": incidents,
        "missing": missing,
        "regions": regions,
        "joined": joined,
        "matched": matched,
        "outputs": outputs,
    }


if __name__ == "__main__":

    # Suppress all warnings from pyogrio
    warnings.filterwarnings("ignore", module="pyogrio")

    result = run_pipeline()
    print(f"\nDone. Files written: {result['outputs']}")
