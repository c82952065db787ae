"""Left-lookup of indicator observations against the country geometry table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import pandas as pd

from .models import JoinDiagnostics, normalize_iso3

TABLE_COLUMNS = ["iso3", "name", "value"]

_LOGGER = logging.getLogger("dashbuilder.join")


@dataclass(frozen=True)
class JoinedTable:
    """Country rows keyed by ISO3 with one measurement column and their geometries.

    Built once per dashboard build and treated as read-only afterwards; the
    accessors hand out copies.
    """

    frame: Any
    value_label: str
    year: int | None = None

    def __len__(self) -> int:
        return len(self.frame)

    def to_frame(self) -> pd.DataFrame:
        """Non-spatial view: `iso3`, `name`, `value`."""
        return pd.DataFrame(self.frame[TABLE_COLUMNS]).copy()

    def geojson(self) -> dict[str, Any]:
        """Feature collection whose feature ids are the row positions as strings."""
        return self.frame[["geometry"]].__geo_interface__

    def feature_ids(self) -> list[str]:
        return [str(idx) for idx in self.frame.index]


def join_indicator(
    countries: Any,
    observations: pd.DataFrame,
    *,
    value_label: str = "value",
    year: int | None = None,
) -> tuple[JoinedTable, JoinDiagnostics]:
    """Attach `observations.value` to every geometry row by ISO3.

    The result holds exactly one row per geometry record, in geometry order.
    `value` is null where the code is missing from the source. When the source
    repeats a code, its first occurrence is used.
    """
    for col in ("iso3", "name", "geometry"):
        if col not in countries.columns:
            raise ValueError(f"Country table missing required column '{col}'")
    for col in ("iso3", "value"):
        if col not in observations.columns:
            raise ValueError(f"Observation table missing required column '{col}'")

    source = pd.DataFrame(
        {
            "iso3": [normalize_iso3(code) for code in observations["iso3"].tolist()],
            "value": pd.to_numeric(observations["value"], errors="coerce").tolist(),
        }
    )
    source = source.dropna(subset=["iso3"])
    duplicated = source["iso3"].duplicated(keep="first")
    duplicate_codes = sorted(set(source.loc[duplicated, "iso3"]))
    if duplicate_codes:
        _LOGGER.warning(
            "Indicator source repeats %d codes; first occurrence used: %s",
            len(duplicate_codes),
            ", ".join(duplicate_codes[:12]),
        )
    lookup = source.loc[~duplicated].set_index("iso3")["value"]

    joined = countries[["iso3", "name", "geometry"]].copy().reset_index(drop=True)
    joined["value"] = joined["iso3"].map(lookup).astype("float64")
    joined = joined[["iso3", "name", "value", "geometry"]]

    geometry_codes = [code for code in joined["iso3"].tolist() if isinstance(code, str)]
    lookup_codes = set(lookup.index)
    matched_mask = joined["iso3"].isin(lookup_codes)
    missing_code_names = sorted(
        str(name) for name in joined.loc[joined["iso3"].isna(), "name"].tolist()
    )

    diagnostics = JoinDiagnostics(
        geometry_rows=int(len(joined)),
        matched_rows=int(matched_mask.sum()),
        null_rows=int(joined["value"].isna().sum()),
        unmatched_geometry=tuple(sorted(set(geometry_codes) - lookup_codes)),
        missing_geometry_codes=tuple(missing_code_names),
        unmatched_source=tuple(sorted(lookup_codes - set(geometry_codes))),
        duplicate_source=tuple(duplicate_codes),
    )
    _LOGGER.info(
        "Joined %d geometry rows: %d matched, %d null",
        diagnostics.geometry_rows,
        diagnostics.matched_rows,
        diagnostics.null_rows,
    )
    return JoinedTable(frame=joined, value_label=value_label, year=year), diagnostics
