"""Natural Earth admin-0 boundary loading and join-key detection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Sequence

import requests

from .models import normalize_iso3

_LOGGER = logging.getLogger("dashbuilder.io_ne")


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {col.lower(): col for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


class NaturalEarthRepository:
    """Access to the admin-0 countries dataset, downloading it on first use if configured."""

    COUNTRY_ISO_COLUMNS = (
        "ADM0_A3",
        "ISO_A3_EH",
        "ISO_A3",
        "WB_A3",
        "ADM0_A3_US",
        "ADM0_A3_UN",
        "SOV_A3",
        "BRK_A3",
        "SU_A3",
        "GU_A3",
        "ISO3",
        "A3",
    )
    COUNTRY_NAME_COLUMNS = ("NAME", "ADMIN", "NAME_LONG", "SOVEREIGNT", "name", "admin")

    def __init__(
        self,
        admin0_path: Path,
        *,
        source_url: str | None = None,
        download_if_missing: bool = False,
        request_timeout_s: int = 60,
        user_agent: str | None = None,
    ) -> None:
        self.admin0_path = admin0_path
        self.source_url = source_url
        self.download_if_missing = download_if_missing
        self.request_timeout_s = request_timeout_s
        self.user_agent = user_agent

    def ensure_local_copy(self) -> Path:
        """Return the admin-0 path, fetching the archive from `source_url` when it is absent."""
        if self.admin0_path.exists():
            return self.admin0_path
        if not self.download_if_missing or not self.source_url:
            raise FileNotFoundError(f"Natural Earth admin0 file not found: {self.admin0_path}")

        _LOGGER.info("Downloading Natural Earth admin0 from %s", self.source_url)
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        partial = self.admin0_path.with_name(self.admin0_path.name + ".part")
        partial.parent.mkdir(parents=True, exist_ok=True)
        with requests.get(
            self.source_url,
            stream=True,
            timeout=self.request_timeout_s,
            headers=headers,
        ) as response:
            response.raise_for_status()
            with partial.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        fh.write(chunk)
        partial.replace(self.admin0_path)
        _LOGGER.info("Natural Earth admin0 saved to %s", self.admin0_path)
        return self.admin0_path

    def load_admin0(self) -> Any:
        """Load admin-0 country polygons via GeoPandas."""
        gpd = self._require_geopandas()
        path = self.ensure_local_copy()
        return gpd.read_file(path)

    def detect_iso_column(
        self,
        admin0_df: Any,
        *,
        iso_allowlist: set[str] | None = None,
    ) -> str:
        iso_col = _select_best_iso_column(
            admin0_df,
            self.COUNTRY_ISO_COLUMNS,
            iso_allowlist=iso_allowlist,
        )
        if iso_col is None:
            cols = ", ".join(str(c) for c in admin0_df.columns)
            raise ValueError(
                "Could not detect ISO3 column in Natural Earth admin0 data. "
                f"Available columns: {cols}"
            )
        return iso_col

    def detect_name_column(self, admin0_df: Any) -> str:
        name_col = _first_existing_column(admin0_df.columns, self.COUNTRY_NAME_COLUMNS)
        if name_col is None:
            cols = ", ".join(str(c) for c in admin0_df.columns)
            raise ValueError(
                "Could not detect country name column in Natural Earth admin0 data. "
                f"Available columns: {cols}"
            )
        return name_col

    def country_table(
        self,
        admin0_df: Any,
        *,
        iso_col: str | None = None,
        name_col: str | None = None,
        iso_allowlist: set[str] | None = None,
    ) -> Any:
        """Reduce admin-0 rows to `iso3`, `name`, `geometry`, one row per geometry record.

        Placeholder codes such as `-99` become null rather than being dropped so
        that every geometry still reaches the map.
        """
        key_col = iso_col or self.detect_iso_column(admin0_df, iso_allowlist=iso_allowlist)
        label_col = name_col or self.detect_name_column(admin0_df)
        for col in (key_col, label_col):
            if col not in admin0_df.columns:
                raise ValueError(f"Column '{col}' not present in Natural Earth admin0 data")

        gpd = self._require_geopandas()
        table = gpd.GeoDataFrame(
            {
                "iso3": [normalize_iso3(value) for value in admin0_df[key_col].tolist()],
                "name": [
                    str(value).strip() if value is not None else None
                    for value in admin0_df[label_col].tolist()
                ],
            },
            geometry=admin0_df.geometry.values,
            crs=admin0_df.crs,
        )
        if table.crs is not None and table.crs.to_epsg() != 4326:
            table = table.to_crs(epsg=4326)
        _LOGGER.debug(
            "Country table built from %d rows (iso=%s, name=%s)", len(table), key_col, label_col
        )
        return table.reset_index(drop=True)

    @staticmethod
    def _require_geopandas() -> Any:
        try:
            import geopandas as gpd
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("geopandas is required for Natural Earth data loading") from exc
        return gpd


def _select_best_iso_column(
    dataframe: Any,
    preferred_columns: Sequence[str],
    *,
    iso_allowlist: set[str] | None,
) -> str | None:
    """Pick the best ISO3-like column using schema hints and data-based scoring."""
    existing = [str(col) for col in dataframe.columns]
    by_lower = {col.lower(): col for col in existing}

    candidates: list[str] = []
    for candidate in preferred_columns:
        match = by_lower.get(candidate.lower())
        if match and match not in candidates:
            candidates.append(match)

    for candidate in _heuristic_iso_candidates(existing):
        if candidate not in candidates:
            candidates.append(candidate)

    if not candidates:
        return None

    best_col: str | None = None
    best_score: tuple[int, int, int] | None = None
    for candidate in candidates:
        score = _score_iso_values(dataframe[candidate].tolist(), iso_allowlist=iso_allowlist)
        if best_score is None or score > best_score:
            best_col = candidate
            best_score = score

    if best_col is None or best_score is None or best_score[1] == 0:
        return None
    return best_col


def _score_iso_values(
    values: list[Any],
    *,
    iso_allowlist: set[str] | None,
) -> tuple[int, int, int]:
    valid = [code for code in (normalize_iso3(value) for value in values) if code is not None]
    valid_set = set(valid)
    overlap_count = len(valid_set & iso_allowlist) if iso_allowlist else 0
    return (overlap_count, len(valid), len(valid_set))


def _heuristic_iso_candidates(columns: Iterable[str]) -> list[str]:
    candidates: list[str] = []
    for original_name in columns:
        norm = _normalize_column_name(original_name)
        if "A3" not in norm:
            continue
        if any(token in norm for token in ("ISO", "ADM0", "SOV", "WB", "BRK", "GU", "SU")):
            candidates.append(original_name)
    return candidates


def _normalize_column_name(name: str) -> str:
    return "".join(ch for ch in name.upper() if ch.isalnum())
