"""Static PNG rendering of the binned choropleth for offline review."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config import MapWidgetConfig, PreviewConfig
from .join import JoinedTable
from .widgets import MISSING_LABEL, classify_values

_LOGGER = logging.getLogger("dashbuilder.preview")


def render_static_preview(
    table: JoinedTable,
    map_cfg: MapWidgetConfig,
    preview_cfg: PreviewConfig,
    output_path: Path,
    *,
    title: str | None = None,
) -> Path:
    """Draw the same classes and colors as the interactive map into a PNG."""
    plt, patches, mcolors = _require_matplotlib()
    binned = classify_values(table.frame["value"], map_cfg)
    # GeoDataFrame.plot rejects mixed color types, so everything goes through hex.
    missing_hex = mcolors.to_hex(map_cfg.missing_color)
    bin_hex = [mcolors.to_hex(color) for color in binned.unit_colors()]
    color_for = dict(zip(binned.labels, bin_hex))
    colors = [color_for.get(label, missing_hex) for label in binned.assigned]

    frame = table.frame.assign(_color=colors)
    if frame.crs is not None:
        frame = frame.to_crs(preview_cfg.crs)

    dpi = preview_cfg.dpi
    fig, ax = plt.subplots(
        figsize=(preview_cfg.width_px / dpi, preview_cfg.height_px / dpi),
        dpi=dpi,
    )
    try:
        frame.plot(
            ax=ax,
            color=frame["_color"].tolist(),
            edgecolor=map_cfg.line_color,
            linewidth=0.3,
        )
        ax.axis("off")
        if title:
            ax.set_title(title, fontsize=11)

        handles = [
            patches.Patch(facecolor=color, edgecolor="#999999", label=label)
            for label, color in zip(binned.labels, bin_hex)
        ]
        handles.append(
            patches.Patch(facecolor=missing_hex, edgecolor="#999999", label=MISSING_LABEL)
        )
        ax.legend(
            handles=handles,
            title=table.value_label,
            loc="lower left",
            fontsize=7,
            title_fontsize=8,
            frameon=False,
        )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, format="png", bbox_inches="tight")
    finally:
        plt.close(fig)
    _LOGGER.info("Static preview written to %s", output_path)
    return output_path


def _require_matplotlib() -> tuple[Any, Any, Any]:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.colors as mcolors
        import matplotlib.patches as patches
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for static preview rendering") from exc
    return (plt, patches, mcolors)
