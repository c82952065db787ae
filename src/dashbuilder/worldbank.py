"""World Bank Indicators API (v2) client: catalog search and indicator download."""

from __future__ import annotations

import logging
import re
import time
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd
import requests

from .config import WorldBankConfig
from .models import IndicatorInfo, normalize_iso3
from .util import read_json, request_cache_key, write_json


_RETRYABLE_HTTP_STATUS = {429, 500, 502, 503, 504}
_SEARCH_FIELDS = {"name", "id", "source_note"}
OBSERVATION_COLUMNS = ["iso3", "country", "year", "value"]

_LOGGER = logging.getLogger("dashbuilder.worldbank")


class WorldBankAPIError(RuntimeError):
    """Raised when the API answers with an error payload or an unexpected shape."""


class WorldBankClient:
    """Paged JSON access to the World Bank API with pacing, retries, and an optional disk cache."""

    def __init__(self, cfg: WorldBankConfig, *, cache_dir: Path | None = None) -> None:
        self.cfg = cfg
        self.cache_dir = cache_dir if cfg.cache_http else None
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": cfg.user_agent})
        self._min_request_interval_s = max(float(cfg.min_request_interval_s), 0.0)
        self._max_retries = max(int(cfg.max_retries), 0)
        self._retry_backoff_s = max(float(cfg.retry_backoff_s), 0.01)
        self._last_request_started_at: float | None = None

    def __enter__(self) -> WorldBankClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def search_indicators(self, pattern: str, *, field: str = "name") -> list[IndicatorInfo]:
        """Return catalog indicators whose `field` matches `pattern` (case-insensitive regex)."""
        if field not in _SEARCH_FIELDS:
            raise ValueError(f"field must be one of: {', '.join(sorted(_SEARCH_FIELDS))}")
        try:
            matcher = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            raise ValueError(f"Invalid search pattern '{pattern}': {exc}") from exc

        matches: list[IndicatorInfo] = []
        for record in self._get_all_pages("indicator", {}):
            try:
                info = IndicatorInfo.from_api(record)
            except ValueError:
                _LOGGER.debug("Skipping malformed catalog entry: %r", record)
                continue
            target = getattr(info, field) or ""
            if matcher.search(target):
                matches.append(info)
        _LOGGER.info("Indicator search '%s' on %s matched %d series", pattern, field, len(matches))
        return sorted(matches, key=lambda item: item.id)

    def fetch_indicator(self, code: str, year: int) -> pd.DataFrame:
        """Download one indicator for all economies and one year.

        Returns columns `iso3, country, year, value`. Rows without an ISO3 code are
        dropped; regional aggregates are kept and simply never join to a geometry.
        """
        code = code.strip()
        if not code:
            raise ValueError("Indicator code must be non-empty")
        records = self._get_all_pages(
            f"country/all/indicator/{code}",
            {"date": str(int(year))},
        )

        rows: list[dict[str, Any]] = []
        for record in records:
            iso3 = normalize_iso3(record.get("countryiso3code"))
            if iso3 is None:
                continue
            country_raw = record.get("country")
            country = country_raw.get("value") if isinstance(country_raw, Mapping) else None
            rows.append(
                {
                    "iso3": iso3,
                    "country": country,
                    "year": _to_int_or_none(record.get("date")),
                    "value": record.get("value"),
                }
            )

        frame = pd.DataFrame(rows, columns=OBSERVATION_COLUMNS)
        frame["value"] = pd.to_numeric(frame["value"], errors="coerce")
        _LOGGER.info(
            "Fetched %s for %d: %d rows (%d with values)",
            code,
            year,
            len(frame),
            int(frame["value"].notna().sum()),
        )
        return frame.sort_values("iso3").reset_index(drop=True)

    def _get_all_pages(self, path: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        url = f"{self.cfg.base_url}/{path.lstrip('/')}"
        query = {**params, "format": "json", "per_page": self.cfg.per_page}

        cache_path = self._cache_path(url, query)
        if cache_path is not None:
            cached = read_json(cache_path)
            if isinstance(cached, list):
                _LOGGER.debug("Cache hit for %s (%s)", url, cache_path.name)
                return cached

        records: list[dict[str, Any]] = []
        page = 1
        pages = 1
        while page <= pages:
            payload = self._request_json(url, params={**query, "page": page})
            meta, data = _split_payload(payload, url=url)
            pages = max(_to_int_or_none(meta.get("pages")) or 1, 1)
            records.extend(item for item in data if isinstance(item, dict))
            _LOGGER.debug("Fetched page %d/%d of %s", page, pages, url)
            page += 1

        if cache_path is not None:
            write_json(cache_path, records)
        return records

    def _cache_path(self, url: str, params: Mapping[str, Any]) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / f"wb_{request_cache_key(url, params)}.json"

    def _request_json(self, url: str, *, params: Mapping[str, Any]) -> Any:
        response = self._request_get(url, params=params)
        try:
            return response.json()
        except requests.exceptions.JSONDecodeError as exc:
            raise WorldBankAPIError(f"Non-JSON response from {response.url}") from exc

    def _request_get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> requests.Response:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            self._wait_for_request_slot()
            response = self._session.get(
                url,
                params=params,
                timeout=self.cfg.request_timeout_s,
            )
            if response.status_code not in _RETRYABLE_HTTP_STATUS:
                response.raise_for_status()
                return response
            if attempt >= self._max_retries:
                response.raise_for_status()
            delay_s = self._compute_retry_delay_s(response=response, attempt=attempt)
            _LOGGER.warning(
                "Retryable response %s for %s; retrying in %.1fs (%d/%d)",
                response.status_code,
                response.url,
                delay_s,
                attempt + 1,
                self._max_retries,
            )
            response.close()
            time.sleep(delay_s)
        raise RuntimeError("Unreachable retry loop in World Bank client")

    def _wait_for_request_slot(self) -> None:
        if self._min_request_interval_s <= 0:
            self._last_request_started_at = time.monotonic()
            return
        now = time.monotonic()
        if self._last_request_started_at is not None:
            elapsed = now - self._last_request_started_at
            if elapsed < self._min_request_interval_s:
                time.sleep(self._min_request_interval_s - elapsed)
        self._last_request_started_at = time.monotonic()

    def _compute_retry_delay_s(self, *, response: requests.Response, attempt: int) -> float:
        retry_after_s = _parse_retry_after_seconds(response.headers.get("Retry-After"))
        exponential_s = self._retry_backoff_s * (2**attempt)
        chosen = max(exponential_s, retry_after_s)
        return min(chosen, 120.0)


def _split_payload(payload: Any, *, url: str) -> tuple[Mapping[str, Any], Sequence[Any]]:
    """Split a v2 response into (paging metadata, records), raising on error payloads."""
    if isinstance(payload, list) and payload and isinstance(payload[0], Mapping):
        head = payload[0]
        if "message" in head:
            raise WorldBankAPIError(f"World Bank API error for {url}: {_format_messages(head['message'])}")
        data = payload[1] if len(payload) > 1 else None
        if data is None:
            return head, []
        if not isinstance(data, list):
            raise WorldBankAPIError(f"Unexpected record list in response from {url}")
        return head, data
    if isinstance(payload, Mapping) and "message" in payload:
        raise WorldBankAPIError(f"World Bank API error for {url}: {_format_messages(payload['message'])}")
    raise WorldBankAPIError(f"Unexpected response shape from {url}")


def _format_messages(raw: Any) -> str:
    if isinstance(raw, list):
        parts = []
        for item in raw:
            if isinstance(item, Mapping):
                parts.append(" ".join(str(item.get(k, "")).strip() for k in ("key", "value")).strip())
            else:
                parts.append(str(item))
        return "; ".join(part for part in parts if part) or "unknown error"
    return str(raw)


def _parse_retry_after_seconds(raw: str | None) -> float:
    if raw is None:
        return 0.0
    value = raw.strip()
    if not value:
        return 0.0
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


def _to_int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
