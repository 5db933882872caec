import numpy as np
import pandas as pd
import geopandas as gpd

from tract_maps.mapping_utilities import require_same_crs
from tract_maps.dataset_utilities import drop_duplicates_qualify


def join_incidents_to_regions(
    incidents,
    regions,
    region_id_col="GEOID",
    region_cols=None,
    verbose=True,
):
    """
    Attach the attributes of the region polygon containing each incident point.

    The join is left-outer over ``incidents``: the output has exactly one row
    per input incident, in input order and with the input index. An incident
    is matched to a region when its point is strictly *within* the polygon
    (a point lying exactly on a boundary may not match). Incidents inside no
    polygon, whether because they are outside the study area or because their
    coordinates are wrong, get nulls in every region column.

    Parameters
    ----------
    incidents : geopandas.GeoDataFrame
        Point layer. Rows without a geometry must be removed beforehand
        (see ``incident_data.split_missing_coordinates``).
    regions : geopandas.GeoDataFrame
        Polygon layer with a unique ``region_id_col``.
    region_id_col : str, default "GEOID"
        Region identifier column; always copied to the output.
    region_cols : list of str, optional
        Region attribute columns to copy. Defaults to every non-geometry column.
    verbose : bool, default True
        Print match statistics.

    Returns
    -------
    geopandas.GeoDataFrame
        ``incidents`` plus the region columns, geometry and CRS unchanged.

    Raises
    ------
    MissingCRSError, CRSMismatchError
        If either layer lacks a CRS or the two CRS differ.
    KeyError
        If a requested region column is missing.
    ValueError
        On missing incident geometries, duplicate region ids, or region columns
        that already exist on the incidents.

    Notes
    -----
    If polygons overlap and a point falls within more than one of them, the
    first region in ``regions`` row order wins and the number of such points is
    printed.
    """
    require_same_crs(incidents, regions, left_label="incidents", right_label="regions")

    if region_id_col not in regions.columns:
        raise KeyError(f"'{region_id_col}' not found in regions columns.")

    if regions[region_id_col].duplicated().any():
        dupes = regions.loc[regions[region_id_col].duplicated(), region_id_col].unique()
        raise ValueError(f"Region ids must be unique; duplicated: {list(dupes)[:10]}")

    region_geom_col = regions.geometry.name
    if region_cols is None:
        region_cols = [c for c in regions.columns if c != region_geom_col]
    else:
        missing_cols = [c for c in region_cols if c not in regions.columns]
        if missing_cols:
            raise KeyError(f"Region columns not found: {missing_cols}")
        region_cols = [region_id_col] + [
            c for c in region_cols if c not in (region_id_col, region_geom_col)
        ]

    clashes = [c for c in region_cols if c in incidents.columns]
    if clashes:
        raise ValueError(
            f"Columns {clashes} exist on both layers; rename or drop them before joining."
        )

    no_geom = incidents.geometry.isna() | incidents.geometry.is_empty
    if no_geom.any():
        raise ValueError(
            f"{no_geom.sum()} incidents have no point geometry. "
            f"Split them out with split_missing_coordinates() before joining."
        )

    n_incidents = len(incidents)

    # positional keys keep the output aligned with the input regardless of its index
    points = gpd.GeoDataFrame(
        {"_incident_pos": np.arange(n_incidents)},
        geometry=incidents.geometry.to_numpy(),
        crs=incidents.crs,
    )
    polygons = gpd.GeoDataFrame(
        {"_region_pos": np.arange(len(regions))},
        geometry=regions.geometry.to_numpy(),
        crs=regions.crs,
    )

    if n_incidents and len(regions):
        hits = gpd.sjoin(points, polygons, how="inner", predicate="within")
        hits = pd.DataFrame(hits[["_incident_pos", "_region_pos"]])
    else:
        hits = pd.DataFrame({"_incident_pos": [], "_region_pos": []}, dtype="int64")

    n_ties = int((hits["_incident_pos"].value_counts() > 1).sum())
    hits = drop_duplicates_qualify(hits, ["_incident_pos"], order_by="_region_pos")
    if n_ties:
        print(f"[join_incidents_to_regions] {n_ties} incident(s) fall within more than one "
              f"region; kept the first region in table order.")

    attrs = pd.DataFrame(regions[region_cols]).reset_index(drop=True)
    attrs["_region_pos"] = np.arange(len(regions))
    matched = hits.merge(attrs, on="_region_pos", how="left")

    enrich = (
        pd.DataFrame({"_incident_pos": np.arange(n_incidents)})
        .merge(matched, on="_incident_pos", how="left")
        .sort_values("_incident_pos")
        .reset_index(drop=True)
    )

    joined = incidents.copy()
    for col in region_cols:
        joined[col] = enrich[col].to_numpy()

    if verbose:
        n_matched = int(joined[region_id_col].notna().sum())
        print(f"[join_incidents_to_regions] Matched {n_matched:,} of {n_incidents:,} incidents "
              f"to a region; {n_incidents - n_matched:,} fall within none.")

    return joined


def filter_matched(joined, region_id_col="GEOID", verbose=True):
    """
    Keep only incidents that were matched to a region.
    """
    if region_id_col not in joined.columns:
        raise KeyError(f"'{region_id_col}' not found; was the table joined to regions?")

    mask = joined[region_id_col].notna()
    if verbose:
        print(f"[filter_matched] Dropped {(~mask).sum():,} of {len(joined):,} incidents "
              f"outside every region.")
    return joined[mask].copy()


def summarize_join(joined, region_id_col="GEOID"):
    """Counts of matched and unmatched incidents."""
    matched = int(joined[region_id_col].notna().sum())
    return {
        "total": len(joined),
        "matched": matched,
        "unmatched": len(joined) - matched,
    }
