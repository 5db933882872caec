import re
import warnings

import numpy as np
import pandas as pd
import geopandas as gpd
import requests

from tract_maps.mapping_dicts import (
    ACS_BASE_URL,
    ACS_DATASET,
    ACS_VARIABLES,
    ACS_YEAR,
    CENSUS_API_KEY,
    COUNTY_FIPS,
    STATE_FIPS,
    TRACT_BOUNDARY_URL,
    TRACT_NAME_PATTERN,
)
from tract_maps.mapping_utilities import fix_invalid_geometries
from tract_maps.dataset_utilities import verbose_merge

# ACS annotation values published in place of an estimate / margin of error
ACS_SENTINELS = [-999999999, -888888888, -666666666, -555555555, -333333333, -222222222]

LONG_COLUMNS = ["GEOID", "NAME", "variable", "estimate", "moe"]


class MissingVariableError(KeyError):
    """A requested ACS variable code is not in the source response."""


def fetch_acs_long(
    variables=ACS_VARIABLES,
    state_fips=STATE_FIPS,
    county_fips=COUNTY_FIPS,
    year=ACS_YEAR,
    dataset=ACS_DATASET,
    api_key=CENSUS_API_KEY,
    timeout=60,
    print_=True,
):
    """
    Query the ACS API for every tract in one county.

    Parameters
    ----------
    variables : dict or list
        ACS variable codes without the E/M suffix (e.g. "B19013_001"). When a
        dict is given only its keys are used here.
    state_fips, county_fips : str
        Two- and three-digit FIPS codes of the containing county.
    year : int
        ACS release year.
    dataset : str, default "acs/acs5"
        API dataset path.
    api_key : str, optional
        Census API key; small queries work without one.
    timeout : float
        Request timeout in seconds.
    print_ : bool
        Print progress.

    Returns
    -------
    pd.DataFrame
        Long table with columns GEOID, NAME, variable, estimate, moe
        (one row per tract per variable).

    Raises
    ------
    MissingVariableError
        If the API rejects a variable code or the response lacks one.
    requests.HTTPError
        On any other HTTP failure.
    """
    codes = list(variables)
    get_cols = ["NAME"] + [f"{code}{suffix}" for code in codes for suffix in ("E", "M")]

    params = {
        "get": ",".join(get_cols),
        "for": "tract:*",
        "in": f"state:{state_fips} county:{county_fips}",
    }
    if api_key:
        params["key"] = api_key

    url = ACS_BASE_URL.format(year=year, dataset=dataset)
    if print_:
        print(f"[fetch_acs_long] Requesting {len(codes)} variables for tracts in "
              f"state {state_fips}, county {county_fips} ({year} {dataset})...")

    response = requests.get(url, params=params, timeout=timeout)
    if response.status_code == 400 and "unknown variable" in response.text.lower():
        raise MissingVariableError(response.text.strip())
    response.raise_for_status()

    raw = response.json()
    wide = pd.DataFrame(raw[1:], columns=raw[0])
    wide["GEOID"] = wide["state"] + wide["county"] + wide["tract"]

    long_df = acs_response_to_long(wide, codes)
    if print_:
        print(f"[fetch_acs_long] Received {wide['GEOID'].nunique():,} tracts.")
    return long_df


def acs_response_to_long(wide, codes):
    """
    Convert an ACS API table (one ``<code>E`` / ``<code>M`` column pair per
    variable) to the long GEOID / NAME / variable / estimate / moe layout.
    Sentinel annotation values become NaN.
    """
    missing = [code for code in codes if f"{code}E" not in wide.columns]
    if missing:
        raise MissingVariableError(f"Variables not in ACS response: {missing}")

    frames = []
    for code in codes:
        est = pd.to_numeric(wide[f"{code}E"], errors="coerce")
        if f"{code}M" in wide.columns:
            moe = pd.to_numeric(wide[f"{code}M"], errors="coerce")
        else:
            moe = pd.Series(np.nan, index=wide.index)

        frames.append(pd.DataFrame({
            "GEOID": wide["GEOID"],
            "NAME": wide["NAME"] if "NAME" in wide.columns else np.nan,
            "variable": code,
            "estimate": est,
            "moe": moe,
        }))

    long_df = pd.concat(frames, ignore_index=True)

    sentinel_mask = long_df[["estimate", "moe"]].isin(ACS_SENTINELS)
    n_sentinel = int(sentinel_mask["estimate"].sum())
    if n_sentinel:
        warnings.warn(
            f"{n_sentinel} ACS estimates are suppressed/annotated values and were set to NaN.",
            UserWarning,
        )
    long_df[["estimate", "moe"]] = long_df[["estimate", "moe"]].mask(sentinel_mask)

    return long_df[LONG_COLUMNS]


def reshape_acs_wide(long_df, variables=ACS_VARIABLES, id_col="GEOID", name_col="NAME"):
    """
    Pivot the long ACS table to one row per region.

    Parameters
    ----------
    long_df : pd.DataFrame
        Columns ``id_col``, ``variable``, ``estimate``, ``moe`` and optionally
        ``name_col``.
    variables : dict
        Variable code -> short name. Each short name yields ``<short>_est`` and
        ``<short>_moe`` columns, in the order of the mapping.
    id_col, name_col : str
        Region identifier and display-name columns.

    Returns
    -------
    pd.DataFrame
        Exactly one row per distinct ``id_col`` value in ``long_df``.

    Raises
    ------
    ValueError
        If short names are not unique or a region has the same variable twice.
    MissingVariableError
        If a requested code never appears in ``long_df``.
    """
    short_names = list(variables.values())
    if len(set(short_names)) != len(short_names):
        dupes = sorted({s for s in short_names if short_names.count(s) > 1})
        raise ValueError(f"Short names must be unique; duplicated: {dupes}")

    present = set(long_df["variable"].unique())
    missing = [code for code in variables if code not in present]
    if missing:
        raise MissingVariableError(f"Requested variables not in source data: {missing}")

    subset = long_df[long_df["variable"].isin(list(variables))]
    dupes = subset.duplicated(subset=[id_col, "variable"])
    if dupes.any():
        raise ValueError(
            f"{dupes.sum()} duplicated ({id_col}, variable) rows; cannot reshape."
        )

    region_ids = pd.Index(long_df[id_col].unique(), name=id_col)
    pivoted = subset.pivot(index=id_col, columns="variable", values=["estimate", "moe"])
    pivoted = pivoted.reindex(region_ids)

    wide = pd.DataFrame(index=region_ids)
    for code, short in variables.items():
        wide[f"{short}_est"] = pivoted[("estimate", code)]
        wide[f"{short}_moe"] = pivoted[("moe", code)]
    wide = wide.reset_index()

    if name_col in long_df.columns:
        names = long_df.drop_duplicates(subset=id_col)[[id_col, name_col]]
        wide = names.merge(wide, on=id_col, how="right")

    return wide


def parse_region_name(df, pattern=TRACT_NAME_PATTERN, name_col="NAME", print_=True):
    """
    Split the composite region name into one column per named group of
    ``pattern``.

    The default pattern only fits tract-level names such as
    "Census Tract 1011.10, Los Angeles County, California"; other geography
    levels need their own pattern.
    """
    regex = re.compile(pattern)
    if not regex.groupindex:
        raise ValueError("pattern must define named groups, e.g. (?P<tract_name>...).")

    clashes = [g for g in regex.groupindex if g in df.columns]
    if clashes:
        raise ValueError(f"Parsed columns {clashes} already exist in the table.")

    parts = df[name_col].astype(str).str.extract(regex)
    unmatched = parts.isna().all(axis=1) & df[name_col].notna()
    if unmatched.any():
        examples = df.loc[unmatched, name_col].head(3).tolist()
        warnings.warn(
            f"{unmatched.sum()} names did not match the region-name pattern, e.g. {examples}",
            UserWarning,
        )
    if print_:
        print(f"[parse_region_name] Parsed {(~unmatched).sum():,} of {len(df):,} names "
              f"into {list(regex.groupindex)}.")

    return pd.concat([df, parts], axis=1)


def fetch_tract_geometries(
    state_fips=STATE_FIPS,
    county_fips=COUNTY_FIPS,
    year=ACS_YEAR,
    url_template=TRACT_BOUNDARY_URL,
    print_=True,
):
    """
    Read the cartographic boundary tract polygons for one county.

    Returns a GeoDataFrame with ``GEOID`` and ``geometry`` in the CRS the
    file is published in (NAD83 for Census boundary files).
    """
    url = url_template.format(year=year, state_fips=state_fips)
    if print_:
        print(f"[fetch_tract_geometries] Reading tract boundaries from {url}")

    tracts = gpd.read_file(url)
    tracts = tracts[tracts["COUNTYFP"] == county_fips]
    tracts = fix_invalid_geometries(tracts[["GEOID", "geometry"]])

    if print_:
        print(f"[fetch_tract_geometries] {len(tracts):,} tracts in county {county_fips}.")
    return tracts.reset_index(drop=True)


def attach_region_geometry(wide_df, tracts, id_col="GEOID", print_=True):
    """
    Put tract polygons under the reshaped attributes.

    Only regions present in both tables are kept; the merge statistics show
    how many were dropped from each side.
    """
    merged = verbose_merge(
        tracts[[id_col, tracts.geometry.name]],
        wide_df,
        left_on=id_col,
        right_on=id_col,
        how="outer",
        verbose=print_,
    )
    merged = merged[merged["merge_source"] == "merged"].drop(columns="merge_source")

    return gpd.GeoDataFrame(
        merged, geometry=tracts.geometry.name, crs=tracts.crs
    ).reset_index(drop=True)
