"""Dashboard widgets: binned choropleth, paged data table, histogram."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd
import plotly.colors as pcolors
import plotly.express as px
from itables import to_html_datatable

from .config import HistogramWidgetConfig, MapWidgetConfig, TableWidgetConfig
from .join import JoinedTable
from .models import WidgetOutput

MISSING_LABEL = "No data"
PLOTLY_CONFIG = {"responsive": True, "displaylogo": False}

_LOGGER = logging.getLogger("dashbuilder.widgets")


@dataclass(frozen=True, slots=True)
class BinnedValues:
    """Class breaks for a choropleth: ordered labels, their colors, and one label per row."""

    edges: tuple[float, ...]
    labels: tuple[str, ...]
    colors: tuple[str, ...]
    assigned: tuple[str, ...]

    def color_map(self, missing_color: str) -> dict[str, str]:
        mapping = dict(zip(self.labels, self.colors))
        mapping[MISSING_LABEL] = missing_color
        return mapping

    def unit_colors(self) -> list[tuple[float, float, float]]:
        """Colors as 0-1 RGB tuples, for Matplotlib."""
        return [pcolors.unconvert_from_RGB_255(pcolors.unlabel_rgb(color)) for color in self.colors]


def bin_edges(values: pd.Series, bins: Sequence[float] | int) -> list[float]:
    """Resolve configured bins into ascending edges covering every finite value.

    Explicit edges are stretched outward when data falls outside them; an
    integer asks for that many equal-width bins over the data range.
    """
    finite = pd.to_numeric(values, errors="coerce").dropna()
    if isinstance(bins, int):
        if finite.empty:
            return [float(i) for i in range(bins + 1)]
        lo, hi = float(finite.min()), float(finite.max())
        if lo == hi:
            hi = lo + max(1.0, abs(lo) * 1e-6)
        return [float(edge) for edge in np.linspace(lo, hi, bins + 1)]

    edges = [float(edge) for edge in bins]
    if not finite.empty:
        edges[0] = min(edges[0], float(finite.min()))
        edges[-1] = max(edges[-1], float(finite.max()))
    return edges


def bin_labels(edges: Sequence[float]) -> list[str]:
    """Labels like `10 to 25`, with as many significant digits as it takes to keep them distinct."""
    texts = [f"{edge:g}" for edge in edges]
    for digits in range(7, 18):
        if len(set(texts)) == len(texts):
            break
        texts = [f"{edge:.{digits}g}" for edge in edges]
    return [f"{lo} to {hi}" for lo, hi in zip(texts[:-1], texts[1:])]


def classify_values(values: pd.Series, cfg: MapWidgetConfig) -> BinnedValues:
    edges = bin_edges(values, cfg.bins)
    labels = bin_labels(edges)
    positions = [i / (len(labels) - 1) for i in range(len(labels))] if len(labels) > 1 else [1.0]
    colors = pcolors.sample_colorscale(cfg.palette, positions, colortype="rgb")

    categories = pd.cut(
        pd.to_numeric(values, errors="coerce"),
        bins=edges,
        labels=labels,
        include_lowest=True,
        right=True,
    )
    assigned = [MISSING_LABEL if pd.isna(item) else str(item) for item in categories]
    return BinnedValues(
        edges=tuple(edges),
        labels=tuple(labels),
        colors=tuple(colors),
        assigned=tuple(assigned),
    )


def figure_html(fig: Any, div_id: str) -> str:
    return fig.to_html(
        full_html=False,
        include_plotlyjs=False,
        div_id=div_id,
        config=PLOTLY_CONFIG,
    )


def choropleth(table: JoinedTable, cfg: MapWidgetConfig, *, name: str = "map") -> WidgetOutput:
    """Shade each country by the bin its value falls in; countries without data use the missing color."""
    frame = table.to_frame()
    binned = classify_values(frame["value"], cfg)
    plot_df = frame.assign(
        feature_id=table.feature_ids(),
        bin=list(binned.assigned),
        name=frame["name"].fillna(""),
        iso3=frame["iso3"].fillna(""),
    )

    fig = px.choropleth(
        plot_df,
        geojson=table.geojson(),
        locations="feature_id",
        color="bin",
        color_discrete_map=binned.color_map(cfg.missing_color),
        category_orders={"bin": [*binned.labels, MISSING_LABEL]},
        hover_name="name",
        hover_data={"iso3": True, "value": ":.2f", "feature_id": False, "bin": False},
        labels={"bin": table.value_label, "value": table.value_label, "iso3": "Code"},
        projection=cfg.projection,
    )
    fig.update_traces(marker_line_color=cfg.line_color, marker_line_width=0.5)
    fig.update_geos(fitbounds="locations", visible=False)
    fig.update_layout(margin=dict(l=0, r=0, t=0, b=0), legend_title_text=table.value_label)
    _LOGGER.debug("Choropleth built with %d bins over %d countries", len(binned.labels), len(frame))
    return WidgetOutput(name=name, html=figure_html(fig, f"widget-{name}"), uses_plotly=True)


def data_table(
    frame: pd.DataFrame,
    cfg: TableWidgetConfig,
    *,
    value_label: str = "Value",
    name: str = "table",
    connected: bool = True,
) -> WidgetOutput:
    """Paged DataTables view showing `cfg.page_size` rows per page, ordered by country name.

    With `connected=False` the DataTables bundle is inlined rather than loaded from a CDN.
    """
    rows_df = (
        frame[["iso3", "name", "value"]]
        .sort_values("name", na_position="last", kind="mergesort")
        .round({"value": cfg.decimals})
        .rename(columns={"iso3": "Code", "name": "Country", "value": value_label})
        .reset_index(drop=True)
    )
    html = to_html_datatable(
        rows_df,
        connected=connected,
        pageLength=cfg.page_size,
        order=[],
    )
    return WidgetOutput(name=name, html=html)


def histogram(
    frame: pd.DataFrame,
    cfg: HistogramWidgetConfig,
    *,
    value_label: str = "Value",
    name: str = "histogram",
) -> WidgetOutput:
    """Distribution of the non-null values; Plotly chooses the bins unless `cfg.nbins` is set."""
    values = frame.dropna(subset=["value"])
    fig = px.histogram(
        values,
        x="value",
        nbins=cfg.nbins,
        color_discrete_sequence=[cfg.color],
        labels={"value": value_label},
        template="plotly_white",
    )
    fig.update_layout(
        yaxis_title="Countries",
        bargap=0.05,
        margin=dict(l=40, r=10, t=10, b=40),
    )
    return WidgetOutput(name=name, html=figure_html(fig, f"widget-{name}"), uses_plotly=True)
