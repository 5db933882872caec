"""
display_choropleth.py

Draws the tract choropleth with the incident points on top and writes it to
one or more files (the format follows each path's extension, e.g. .svg / .png).
"""

import os

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import contextily as ctx

from tract_maps.mapping_dicts import MAP_DPI, MAP_FIGSIZE, PLANAR_CRS
from tract_maps.mapping_utilities import normalize_crs


def render_incident_map(
    regions,
    incidents,
    column,
    paths,
    planar_crs=PLANAR_CRS,
    figsize=MAP_FIGSIZE,
    dpi=MAP_DPI,
    add_basemap=False,
    title=None,
    cmap="OrRd",
):
    """
    Render a choropleth of one region attribute with incidents overlaid.

    Parameters
    ----------
    regions : geopandas.GeoDataFrame
        Region polygons carrying ``column``.
    incidents : geopandas.GeoDataFrame
        Incident points.
    column : str
        Numeric region attribute used for the fill.
    paths : str or list of str
        Output file(s); parent directories are created.
    planar_crs : str, default "EPSG:5070"
        Projected CRS both layers are drawn in. With ``add_basemap=True`` the
        layers are drawn in Web Mercator instead, as the tiles require.
    figsize : tuple, default (10, 10)
        Figure size in inches; with ``dpi`` this fixes the raster dimensions.
    dpi : int, default 300
        Resolution for raster outputs.
    add_basemap : bool, default False
        Add OpenStreetMap tiles underneath (needs network access).
    title : str, optional
        Plot title; defaults to the column name.
    cmap : str, default "OrRd"
        Matplotlib colormap for the fill.

    Returns
    -------
    list of str
        The files written.

    Notes
    -----
    - Regions whose ``column`` is NULL are drawn grey with a hatch pattern.
    - Both layers go through ``normalize_crs``, so a layer without a CRS
      raises instead of being drawn in the wrong place.
    """
    if column not in regions.columns:
        raise KeyError(f"Column '{column}' not found in regions.")

    if isinstance(paths, str):
        paths = [paths]

    draw_crs = "EPSG:3857" if add_basemap else planar_crs
    regions_proj = normalize_crs(regions, draw_crs, label="regions")
    incidents_proj = normalize_crs(incidents, draw_crs, label="incidents")

    null_mask = regions_proj[column].isnull()

    fig, ax = plt.subplots(figsize=figsize)
    try:
        if null_mask.any():
            regions_proj[null_mask].plot(
                ax=ax,
                color="lightgray",
                edgecolor="white",
                hatch="///",
                linewidth=0.2,
            )

        if (~null_mask).any():
            regions_proj[~null_mask].plot(
                ax=ax,
                column=column,
                cmap=cmap,
                legend=True,
                edgecolor="white",
                linewidth=0.2,
            )
        else:
            print(f"[render_incident_map] Warning: every value of '{column}' is NULL.")

        if not incidents_proj.empty:
            incidents_proj.plot(
                ax=ax,
                color="black",
                markersize=6,
                alpha=0.7,
            )

        if add_basemap:
            ctx.add_basemap(ax, source=ctx.providers.OpenStreetMap.Mapnik)

        ax.set_title(title or column, fontsize=16)
        ax.set_axis_off()
        fig.tight_layout()

        for path in paths:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            fig.savefig(path, dpi=dpi)
            print(f"[render_incident_map] Saved {path}")
    finally:
        plt.close(fig)

    return list(paths)
