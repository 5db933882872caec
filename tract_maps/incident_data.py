import io
import os
import warnings
from urllib.parse import quote

import numpy as np
import pandas as pd
import geopandas as gpd
import requests

from tract_maps.mapping_dicts import (
    INCIDENT_SHEET_ID,
    INCIDENT_SHEET_NAME,
    INCIDENT_RENAME_MAP,
    INCIDENT_COLS_TO_FRONT,
    INCIDENT_CRS,
)
from tract_maps.mapping_utilities import require_same_crs, remove_geometry
from tract_maps.dataset_utilities import reorder_columns

REQUIRED_INCIDENT_COLS = ["unique_id", "latitude", "longitude"]


def sheet_csv_url(sheet_id=INCIDENT_SHEET_ID, sheet_name=INCIDENT_SHEET_NAME):
    """CSV export URL for one tab of a publicly readable spreadsheet."""
    return (
        f"https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq"
        f"?tqx=out:csv&sheet={quote(sheet_name)}"
    )


def fetch_incident_sheet(
    sheet_id=INCIDENT_SHEET_ID,
    sheet_name=INCIDENT_SHEET_NAME,
    timeout=60,
    print_=True,
):
    """
    Download one tab of the incident spreadsheet into a DataFrame.

    All columns are read as strings; typing happens in ``clean_incident_data``.
    HTTP errors are raised (``requests.HTTPError``) and abort the run.
    """
    url = sheet_csv_url(sheet_id, sheet_name)
    if print_:
        print(f"[fetch_incident_sheet] Downloading '{sheet_name}' from {url}")

    response = requests.get(url, timeout=timeout)
    response.raise_for_status()

    df = pd.read_csv(io.StringIO(response.text), dtype=str)
    if print_:
        print(f"[fetch_incident_sheet] Loaded {len(df):,} rows x {len(df.columns)} columns.")
    return df


def clean_incident_data(
    df,
    rename_map=INCIDENT_RENAME_MAP,
    cols_to_front=INCIDENT_COLS_TO_FRONT,
    state=None,
    county=None,
    date_col="date",
    date_format="%m/%d/%Y",
    print_=True,
):
    """
    Standardize the raw incident table.

    Parameters
    ----------
    df : pd.DataFrame
        Raw spreadsheet download.
    rename_map : dict
        Verbose spreadsheet header -> short column name. Headers that are not
        present are ignored so the map survives the sheet's column churn.
    cols_to_front : list of str
        Columns moved to the front of the table (missing ones are skipped).
    state : str, optional
        Postal abbreviation; when given, only that state's incidents are kept.
    county : str, optional
        County name as recorded in the sheet (e.g. "Los Angeles"); when given,
        only that county's incidents are kept. Case and a trailing "County"
        are ignored on both sides.
    date_col : str, default "date"
        Column parsed to datetime (unparseable values become NaT and are counted).
    date_format : str, default "%m/%d/%Y"
        Format of the recorded date in the sheet.
    print_ : bool, default True
        Print cleaning diagnostics.

    Returns
    -------
    pd.DataFrame
        Cleaned copy with numeric ``latitude`` / ``longitude`` (invalid -> NaN).

    Raises
    ------
    KeyError
        If ``unique_id``, ``latitude`` or ``longitude`` is missing after renaming.
    """
    df = df.copy()
    df.columns = [str(c).strip() for c in df.columns]
    df = df.rename(columns=rename_map)

    missing_cols = [c for c in REQUIRED_INCIDENT_COLS if c not in df.columns]
    if missing_cols:
        raise KeyError(
            f"Required incident columns missing after renaming: {missing_cols}. "
            f"Check the rename map against the sheet's headers."
        )

    # trim whitespace in text fields, leave everything else alone
    text_cols = df.select_dtypes(include=["object", "string"]).columns
    for col in text_cols:
        df[col] = df[col].map(lambda v: v.strip() if isinstance(v, str) else v)
        df[col] = df[col].replace("", np.nan)

    # spacer / footnote rows carry no id
    no_id = df["unique_id"].isna()
    if no_id.any():
        df = df[~no_id]
        if print_:
            print(f"[clean_incident_data] Dropped {no_id.sum()} rows without a unique_id.")

    for col in ["latitude", "longitude"]:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    if date_col in df.columns:
        raw_dates = df[date_col]
        df[date_col] = pd.to_datetime(raw_dates, format=date_format, errors="coerce")
        bad_dates = df[date_col].isna() & raw_dates.notna()
        if bad_dates.any() and print_:
            print(f"[clean_incident_data] {bad_dates.sum()} dates could not be parsed "
                  f"with '{date_format}' and were set to NaT.")

    if state is not None:
        if "state" not in df.columns:
            raise KeyError("Cannot filter by state: no 'state' column.")
        before = len(df)
        df = df[df["state"].str.upper() == state.upper()]
        if print_:
            print(f"[clean_incident_data] Kept {len(df):,} of {before:,} incidents in {state}.")

    if county is not None:
        if "county" not in df.columns:
            raise KeyError("Cannot filter by county: no 'county' column.")
        before = len(df)
        df = df[_county_key(df["county"]) == _county_key(pd.Series([county])).iloc[0]]
        if print_:
            print(f"[clean_incident_data] Kept {len(df):,} of {before:,} incidents in {county}.")

    df = reorder_columns(df, cols_to_front)

    return df.reset_index(drop=True)


def _county_key(names):
    # "Los Angeles", "los angeles county" and "Los Angeles County" compare equal
    return (
        names.fillna("").astype(str).str.lower()
        .str.replace(r"\s+county$", "", regex=True)
        .str.strip()
    )


def split_missing_coordinates(df, lat_col="latitude", lon_col="longitude", print_=True):
    """
    Separate incidents without a usable position.

    A position is usable when both coordinates are present, finite and inside
    the valid latitude/longitude ranges. Coordinates that are valid numbers but
    point to the wrong place are *not* caught here (see ``flag_implausible_points``).

    Returns
    -------
    located : pd.DataFrame
        Rows with a usable position.
    missing : pd.DataFrame
        The excluded rows, for reporting.
    """
    lat = pd.to_numeric(df[lat_col], errors="coerce")
    lon = pd.to_numeric(df[lon_col], errors="coerce")

    valid = (
        np.isfinite(lat) & np.isfinite(lon)
        & lat.between(-90, 90) & lon.between(-180, 180)
    )

    located = df[valid].copy()
    missing = df[~valid].copy()

    if print_:
        print(f"[split_missing_coordinates] Excluded {len(missing):,} of {len(df):,} incidents "
              f"with missing or invalid coordinates.")
        if not missing.empty and "unique_id" in missing.columns:
            print(f"[split_missing_coordinates] Excluded ids: {missing['unique_id'].tolist()}")

    return located, missing


def incidents_to_gdf(df, crs=INCIDENT_CRS, lat_col="latitude", lon_col="longitude"):
    """
    Build a point GeoDataFrame from latitude/longitude columns in ``crs``.
    """
    if df[lat_col].isna().any() or df[lon_col].isna().any():
        raise ValueError(
            "Incidents with missing coordinates cannot become points; "
            "run split_missing_coordinates() first."
        )

    return gpd.GeoDataFrame(
        df.copy(),
        geometry=gpd.points_from_xy(df[lon_col], df[lat_col]),
        crs=crs,
    )


def flag_implausible_points(
    incidents,
    regions,
    margin,
    flag_col="implausible_location",
    id_col="unique_id",
):
    """
    Flag incidents lying far outside the study area.

    The plausible area is the bounding box of ``regions`` expanded by
    ``margin`` on every side, in the regions' CRS units (degrees for a
    geographic CRS). Flagged incidents are warned about but kept.

    Parameters
    ----------
    incidents : geopandas.GeoDataFrame
        Point layer, same CRS as ``regions``.
    regions : geopandas.GeoDataFrame
        Polygon layer defining the study area.
    margin : float or None
        Expansion of the bounding box. None disables the check and every
        incident is marked plausible.
    flag_col : str, default "implausible_location"
        Name of the boolean output column.
    id_col : str, default "unique_id"
        Column used to name flagged incidents in the warning.

    Returns
    -------
    geopandas.GeoDataFrame
        Copy of ``incidents`` with ``flag_col`` added.
    """
    incidents = incidents.copy()

    if margin is None:
        incidents[flag_col] = False
        return incidents

    if margin < 0:
        raise ValueError("margin must be non-negative.")

    require_same_crs(incidents, regions, left_label="incidents", right_label="regions")
    if regions.empty:
        raise ValueError("regions is empty; the study area has no bounding box.")

    minx, miny, maxx, maxy = regions.total_bounds
    x = incidents.geometry.x
    y = incidents.geometry.y

    inside = (
        x.between(minx - margin, maxx + margin)
        & y.between(miny - margin, maxy + margin)
    )
    incidents[flag_col] = ~inside.to_numpy()

    n_flagged = int(incidents[flag_col].sum())
    if n_flagged:
        if id_col in incidents.columns:
            ids = incidents.loc[incidents[flag_col], id_col].tolist()
        else:
            ids = incidents.index[incidents[flag_col]].tolist()
        shown = f"{ids[:10]}" + (f" and {n_flagged - 10} more" if n_flagged > 10 else "")
        warnings.warn(
            f"{n_flagged} incident(s) lie more than {margin} units outside the "
            f"study area's bounding box: {shown}",
            UserWarning,
        )

    return incidents


def export_incident_table(df, path, print_=True):
    """
    Write the incident table to CSV, dropping the geometry column.
    Parent directories are created as needed. Returns ``path``.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    if isinstance(df, gpd.GeoDataFrame):
        df = remove_geometry(df, geometry_col=df.geometry.name)

    df.to_csv(path, index=False)
    if print_:
        print(f"[export_incident_table] Wrote {len(df):,} rows to {path}")
    return path
