import pandas as pd
import geopandas as gpd
from pyproj import CRS


class MissingCRSError(ValueError):
    """Raised when a GeoDataFrame without a declared CRS reaches a CRS-sensitive step."""


class CRSMismatchError(ValueError):
    """Raised when two layers that must share a CRS do not."""


def normalize_crs(gdf, target_crs, label="layer"):
    """
    Return a copy of ``gdf`` expressed in ``target_crs``.

    Parameters
    ----------
    gdf : geopandas.GeoDataFrame
        Input layer. Must declare a CRS; a layer without one is rejected
        rather than silently passed through.
    target_crs : str, int or pyproj.CRS
        Anything ``pyproj.CRS.from_user_input`` accepts (e.g. "EPSG:5070").
    label : str, default "layer"
        Name used in error messages.

    Returns
    -------
    geopandas.GeoDataFrame
        A new GeoDataFrame. If ``gdf`` is already in ``target_crs`` the
        geometries are copied unchanged.

    Raises
    ------
    MissingCRSError
        If ``gdf.crs`` is None.
    """
    if gdf.crs is None:
        raise MissingCRSError(
            f"{label} has no CRS; set one with .set_crs() before reprojecting."
        )

    target = CRS.from_user_input(target_crs)
    if gdf.crs == target:
        return gdf.copy()

    return gdf.to_crs(target)


def require_same_crs(left, right, left_label="left", right_label="right"):
    """
    Raise unless ``left`` and ``right`` declare the same CRS.
    """
    if left.crs is None:
        raise MissingCRSError(f"{left_label} has no CRS.")
    if right.crs is None:
        raise MissingCRSError(f"{right_label} has no CRS.")
    if left.crs != right.crs:
        raise CRSMismatchError(
            f"CRS mismatch: {left_label} is {left.crs.to_string()} but "
            f"{right_label} is {right.crs.to_string()}. Reproject one of them "
            f"(normalize_crs / align_crs) before comparing geometries."
        )


def align_crs(gdf, reference, label="layer"):
    """Reproject ``gdf`` into the CRS of ``reference``."""
    if reference.crs is None:
        raise MissingCRSError("Reference layer has no CRS.")
    return normalize_crs(gdf, reference.crs, label=label)


def remove_geometry(gdf, geometry_col="geometry"):
    """
    Remove geometry from a GeoDataFrame and return a DataFrame.
    """
    if geometry_col not in gdf.columns:
        print(f"Warning: '{geometry_col}' not found in GeoDataFrame columns.")
        return pd.DataFrame(gdf.copy())
    return pd.DataFrame(gdf.drop(columns=geometry_col))


def fix_invalid_geometries(gdf):
    """
    Fix invalid geometries in a GeoDataFrame via buffer(0).
    Returns a GeoDataFrame with repaired geometries.
    """
    if gdf.empty:
        print("Warning: Received an empty GeoDataFrame. No geometries to fix.")
        return gdf

    gdf = gdf.copy()
    invalid_count = (~gdf.is_valid).sum()
    if invalid_count > 0:
        print(f"Found {invalid_count} invalid geometries; attempting to fix...")
        gdf["geometry"] = gdf["geometry"].buffer(0)
    return gdf


def check_mutual_exclusivity(
    gdf: gpd.GeoDataFrame,
    *,
    area_tol: float = 1e-8,
    pct_tol: float = 1e-4,
    verbose: bool = True,
):
    """Assess whether region polygons in *gdf* are mutually exclusive (non-overlapping).

    Shared edges between neighbouring tracts have zero area and are never
    reported; only genuine overlaps above the tolerances are.

    Parameters
    ----------
    gdf : geopandas.GeoDataFrame
        Input GeoDataFrame with *projected* coordinates so that ``area`` is
        meaningful.
    area_tol : float, default 1e-8
        Absolute area threshold. Intersections smaller than this are ignored.
    pct_tol : float, default 1e-4 (0.01 %)
        Overlap threshold as a fraction of the smaller geometry's area.
    verbose : bool, default True
        If True print a short report.

    Returns
    -------
    is_exclusive : bool
        True if no overlaps exceed the tolerances.
    overlaps : pandas.DataFrame
        One row per overlapping pair with columns
        ``["idx1", "idx2", "overlap_area", "pct_smaller"]``.
    """
    if gdf.crs is None:
        raise MissingCRSError(
            "GeoDataFrame must have a projected CRS so that area calculations make sense."
        )
    if gdf.crs.is_geographic:
        raise ValueError(
            f"check_mutual_exclusivity needs a projected CRS, got {gdf.crs.to_string()}."
        )

    sindex = gdf.sindex
    overlaps_records = []

    for i, geom_i in enumerate(gdf.geometry):
        if geom_i is None or geom_i.is_empty:
            continue

        for j in sindex.intersection(geom_i.bounds):
            if j <= i:
                continue
            geom_j = gdf.geometry.iloc[j]
            if geom_j is None or geom_j.is_empty:
                continue
            if not geom_i.intersects(geom_j):
                continue

            area = geom_i.intersection(geom_j).area
            if area < area_tol:
                continue

            pct_smaller = area / min(geom_i.area, geom_j.area)
            if pct_smaller < pct_tol:
                continue

            overlaps_records.append(
                {
                    "idx1": gdf.index[i],
                    "idx2": gdf.index[j],
                    "overlap_area": area,
                    "pct_smaller": pct_smaller,
                }
            )

    overlaps = pd.DataFrame(
        overlaps_records, columns=["idx1", "idx2", "overlap_area", "pct_smaller"]
    )
    is_exclusive = overlaps.empty

    if verbose:
        if is_exclusive:
            print(
                f"[check_mutual_exclusivity] {len(gdf):,} polygons are mutually exclusive "
                f"within tolerances (area_tol={area_tol}, pct_tol={pct_tol:.4%})."
            )
        else:
            print(
                f"[check_mutual_exclusivity] Found {len(overlaps)} overlapping pair(s); "
                f"largest overlap is {overlaps['pct_smaller'].max():.2%} of the smaller polygon. "
                f"Points in overlaps go to the first region in table order."
            )

    return is_exclusive, overlaps


def map_fips_and_state(value):
    """Two-way lookup between a state FIPS code and its postal abbreviation."""

    fips_to_state = {
        '01': 'AL', '02': 'AK', '04': 'AZ', '05': 'AR', '06': 'CA',
        '08': 'CO', '09': 'CT', '10': 'DE', '11': 'DC', '12': 'FL',
        '13': 'GA', '15': 'HI', '16': 'ID', '17': 'IL', '18': 'IN',
        '19': 'IA', '20': 'KS', '21': 'KY', '22': 'LA', '23': 'ME',
        '24': 'MD', '25': 'MA', '26': 'MI', '27': 'MN', '28': 'MS',
        '29': 'MO', '30': 'MT', '31': 'NE', '32': 'NV', '33': 'NH',
        '34': 'NJ', '35': 'NM', '36': 'NY', '37': 'NC', '38': 'ND',
        '39': 'OH', '40': 'OK', '41': 'OR', '42': 'PA', '44': 'RI',
        '45': 'SC', '46': 'SD', '47': 'TN', '48': 'TX', '49': 'UT',
        '50': 'VT', '51': 'VA', '53': 'WA', '54': 'WV', '55': 'WI',
        '56': 'WY', '72': 'PR'  # Puerto Rico
    }
    state_to_fips = {state: fips for fips, state in fips_to_state.items()}

    if value in fips_to_state:
        return fips_to_state[value]
    elif value in state_to_fips:
        return state_to_fips[value]
    raise ValueError(f"'{value}' is neither a state FIPS code nor a state abbreviation.")
