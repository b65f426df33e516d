"""Attach cluster labels to LSOA polygons and render the choropleth."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

import folium
import geopandas as gpd
import pandas as pd

from .loader import AREA_COL
from .validation import DataValidationError, check_id_match, preview_ids


CLUSTER_COL = "cluster"

CLUSTER_COLOR_LIST = [
    "#8dd3c7",
    "#fdb462",
    "#bebada",
    "#fb8072",
    "#80b1d3",
    "#b3de69",
    "#fccde5",
    "#bc80bd",
    "#ccebc5",
    "#ffed6f",
]

UNLABELLED_COLOR = "#bdbdbd"


def cluster_to_color(label: Any) -> str:
    try:
        c = int(label)
    except (TypeError, ValueError):
        return UNLABELLED_COLOR
    if c <= 0:
        return UNLABELLED_COLOR
    return CLUSTER_COLOR_LIST[(c - 1) % len(CLUSTER_COLOR_LIST)]


def load_boundaries(src: Union[str, Path, gpd.GeoDataFrame], id_col: str = "LSOA21CD") -> gpd.GeoDataFrame:
    """Read a polygon layer and expose its id column as ``area_code``."""
    if isinstance(src, gpd.GeoDataFrame):
        g = src.copy()
    else:
        path = Path(src)
        if not path.exists():
            raise FileNotFoundError(f"Missing boundary file: {path}")
        g = gpd.read_file(path)

    if id_col not in g.columns:
        raise DataValidationError(f"Boundary layer has no '{id_col}' column; found {list(g.columns)}")

    g[AREA_COL] = g[id_col].astype(str).str.strip()
    dup = g[AREA_COL][g[AREA_COL].duplicated()]
    if len(dup):
        raise DataValidationError(f"Duplicate area codes in boundary layer: {preview_ids(set(dup))}")
    if g.crs is None:
        print("⚠️ Boundary layer has no CRS; assuming EPSG:27700 (British National Grid).")
        g = g.set_crs(27700, allow_override=True)
    return g


def attach_clusters(boundaries: gpd.GeoDataFrame, labels: pd.Series) -> gpd.GeoDataFrame:
    """Merge cluster labels (indexed by area code) onto polygons.

    The two sides must cover exactly the same area codes.
    """
    labels = labels.rename(CLUSTER_COL)
    labels.index = labels.index.astype(str)
    if labels.index.duplicated().any():
        raise DataValidationError(f"Duplicate area codes in cluster labels: {preview_ids(set(labels.index[labels.index.duplicated()]))}")
    check_id_match(labels.index, boundaries[AREA_COL], what="cluster map")

    out = boundaries.merge(labels.rename_axis(AREA_COL).reset_index(), on=AREA_COL, how="left", validate="one_to_one")
    out[CLUSTER_COL] = out[CLUSTER_COL].astype(int)
    return out


def folium_cluster_map(gdf: gpd.GeoDataFrame, out_html: Union[str, Path], title: Optional[str] = None) -> folium.Map:
    g = gdf.to_crs(4326).copy()

    bounds = g.total_bounds
    center = [(bounds[1] + bounds[3]) / 2.0, (bounds[0] + bounds[2]) / 2.0]
    m = folium.Map(location=center, zoom_start=10, tiles="cartodb positron", control_scale=True)

    if title:
        title_html = f"""
        <div style="
            position: fixed;
            top: 10px; left: 50%;
            transform: translateX(-50%);
            z-index: 999999;
            background: rgba(255,255,255,0.95);
            padding: 10px 14px;
            border: 1px solid #888;
            border-radius: 6px;
            font-size: 18px;
            font-weight: 600;
            box-shadow: 0 1px 4px rgba(0,0,0,0.2);
        ">
          {title}
        </div>
        """
        m.get_root().html.add_child(folium.Element(title_html))

    m.fit_bounds([[bounds[1], bounds[0]], [bounds[3], bounds[2]]])

    def style_fn(feat):
        return {
            "fillColor": cluster_to_color(feat["properties"].get(CLUSTER_COL)),
            "color": "#000000",
            "weight": 0.25,
            "fillOpacity": 0.70,
        }

    keep_cols = [c for c in [AREA_COL, "LSOA21NM", CLUSTER_COL, "geometry"] if c in g.columns]
    tooltip_fields = [c for c in keep_cols if c != "geometry"]
    aliases_map = {AREA_COL: "LSOA code", "LSOA21NM": "LSOA name", CLUSTER_COL: "Cluster"}

    folium.GeoJson(
        data=g[keep_cols].to_json(),
        name="Clusters",
        style_function=style_fn,
        tooltip=folium.GeoJsonTooltip(
            fields=tooltip_fields,
            aliases=[aliases_map.get(f, f) for f in tooltip_fields],
            localize=True,
            sticky=False,
        ),
    ).add_to(m)

    present = sorted(int(c) for c in g[CLUSTER_COL].dropna().unique())
    legend_swatches = "".join(
        f"<div><span style='display:inline-block;width:12px;height:12px;background:{cluster_to_color(c)};border:1px solid #333;margin-right:6px;'></span>Cluster {c}</div>"
        for c in present
    )
    legend_html = f"""
    <div style="
         position: fixed; bottom: 20px; left: 20px; z-index: 9999;
         background: rgba(255,255,255,0.95); padding: 10px 12px; border: 1px solid #888;
         font-size: 13px; line-height: 1.3;">
      <div style="font-weight:600; margin-bottom:6px;">Legend</div>
      {legend_swatches}
    </div>
    """
    m.get_root().html.add_child(folium.Element(legend_html))
    folium.LayerControl(collapsed=True).add_to(m)

    m.save(str(out_html))
    print("✅ Saved HTML map:", out_html)
    return m
