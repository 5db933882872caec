# Settings for the fatal-encounters / census-tract analysis.
# Every value here is a default; the functions that use them take a keyword
# argument of the same meaning so a run can override any of them.

import os

# ------------------------------------------------------------------
# INCIDENTS (public spreadsheet)
# ------------------------------------------------------------------

INCIDENT_SHEET_ID = "1dKmaV_JiWcG8XBoRgP8b4e9Eopkpgt7FL7nyspvzAsE"
INCIDENT_SHEET_NAME = "Form Responses"

# Spreadsheet headers -> short names. The sheet's columns evolve; headers
# missing from a given download are simply not renamed.
INCIDENT_RENAME_MAP = {
    "Unique ID": "unique_id",
    "Name": "name",
    "Age": "age",
    "Gender": "gender",
    "Race": "race",
    "Race with imputations": "race_imputed",
    "Date of injury resulting in death (month/day/year)": "date",
    "Location of injury (address)": "address",
    "Location of death (city)": "city",
    "State": "state",
    "Location of death (zip code)": "zip_code",
    "Location of death (county)": "county",
    "Full Address": "full_address",
    "Latitude": "latitude",
    "Longitude": "longitude",
    "Agency or agencies involved": "agency",
    "Highest level of force": "highest_force",
    "Brief description": "description",
}

INCIDENT_COLS_TO_FRONT = [
    "unique_id", "name", "date", "age", "gender", "race",
    "full_address", "city", "county", "state", "latitude", "longitude",
]

# ------------------------------------------------------------------
# REGIONS (ACS 5-year estimates by census tract)
# ------------------------------------------------------------------

ACS_YEAR = 2022
ACS_DATASET = "acs/acs5"
ACS_BASE_URL = "https://api.census.gov/data/{year}/{dataset}"

STATE_FIPS = "06"     # California
COUNTY_FIPS = "037"   # Los Angeles County

# The same county as the sheet records it; incidents elsewhere in the state are
# dropped during cleaning, so the plausibility check only sees this county.
COUNTY_NAME = "Los Angeles"

# ACS variable code (without the E/M suffix) -> short column name.
# Short names must be unique.
ACS_VARIABLES = {
    "B01003_001": "total_pop",
    "B19013_001": "median_income",
    "B17001_002": "below_poverty",
    "B02001_002": "white_alone",
    "B02001_003": "black_alone",
    "B03003_003": "hispanic",
}

# Parses the ACS NAME field at the *tract* level, e.g.
#   "Census Tract 1011.10, Los Angeles County, California"
#   "Census Tract 1011.10; Los Angeles County; California"   (2023+ releases)
# Other geography levels (block group, county subdivision, ...) produce a
# differently shaped NAME and need their own pattern. Group names become
# column names.
TRACT_NAME_PATTERN = (
    r"^Census Tract (?P<tract_name>[^,;]+)[,;]\s*"
    r"(?P<county_name>[^,;]+)[,;]\s*(?P<state_name>[^,;]+)$"
)

# Cartographic boundary tract polygons, one file per state
TRACT_BOUNDARY_URL = (
    "https://www2.census.gov/geo/tiger/GENZ{year}/shp/cb_{year}_{state_fips}_tract_500k.zip"
)

CENSUS_API_KEY = os.environ.get("CENSUS_API_KEY")

# ------------------------------------------------------------------
# CRS
# ------------------------------------------------------------------

INCIDENT_CRS = "EPSG:4326"   # the sheet's latitude/longitude
PLANAR_CRS = "EPSG:5070"     # CONUS Albers equal-area, for rendering

# ------------------------------------------------------------------
# PLAUSIBILITY CHECK
# ------------------------------------------------------------------

# Degrees added on every side of the tract polygons' bounding box; points
# outside the expanded box are flagged (and warned about), never dropped.
# None disables the check.
PLAUSIBILITY_MARGIN = 1.0

# ------------------------------------------------------------------
# OUTPUTS
# ------------------------------------------------------------------

OUTPUT_DIR = "output"
CLEANED_INCIDENTS_CSV = os.path.join(OUTPUT_DIR, "incidents_cleaned.csv")
ENRICHED_INCIDENTS_CSV = os.path.join(OUTPUT_DIR, "incidents_with_tracts.csv")
MAP_PATHS = [
    os.path.join(OUTPUT_DIR, "incident_map.svg"),
    os.path.join(OUTPUT_DIR, "incident_map.png"),
]
MAP_COLUMN = "median_income_est"
MAP_FIGSIZE = (10, 10)
MAP_DPI = 300
