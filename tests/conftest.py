"""Shared fixtures for dashbuilder tests."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
import yaml
from shapely.geometry import box

from dashbuilder.config import AppConfig, load_config


DOCUMENT_TEXT = """---
title: "PM2.5 exposure"
subtitle: "Test build"
output:
  orientation: columns
---

Column {data-width=650}
-----------------------------------------------------------------------

### Exposure map {widget=map}

Grey means no data.

Column {data-width=350}
-----------------------------------------------------------------------

### Values {widget=table}

### Distribution {widget=histogram}
"""


def _config_mapping() -> dict:
    return {
        "project": {
            "document": "dashboards/test.dash.md",
            "output_html": "build/dashboard.html",
        },
        "paths": {
            "ne_admin0_countries": "data/admin0.gpkg",
            "build_root": "build",
            "cache_dir": "build/cache",
            "data_dir": "build/data",
            "manifests_dir": "build/manifests",
            "logs_dir": "build/logs",
        },
        "geometry": {
            "source_url": None,
            "download_if_missing": False,
        },
        "indicator": {
            "code": "EN.ATM.PM25.MC.M3",
            "year": 2017,
            "label": "PM2.5 exposure",
            "unit": "µg/m³",
        },
        "worldbank": {
            "base_url": "https://api.example.org/v2/",
            "cache_http": False,
            "request_timeout_s": 5,
            "user_agent": "dashbuilder-tests",
            "per_page": 2,
            "min_request_interval_s": 0,
            "max_retries": 2,
            "retry_backoff_s": 0.01,
        },
        "widgets": {
            "map": {"palette": "YlOrRd", "bins": [0, 10, 25, 50]},
            "table": {"page_size": 2},
            "histogram": {},
        },
        "build": {
            "write_manifest": True,
            "manifest_include_hashes": True,
            "write_preview_png": False,
            "export_csv": True,
        },
    }


@pytest.fixture
def document_text() -> str:
    return DOCUMENT_TEXT


@pytest.fixture
def config_mapping() -> dict:
    return _config_mapping()


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a config (plus the dashboard document) under tmp_path and return its path."""

    def _write(mapping: dict | None = None, document: str = DOCUMENT_TEXT) -> Path:
        doc_path = tmp_path / "dashboards" / "test.dash.md"
        doc_path.parent.mkdir(parents=True, exist_ok=True)
        doc_path.write_text(document, encoding="utf-8")
        cfg_path = tmp_path / "config.yaml"
        cfg_path.write_text(yaml.safe_dump(mapping or _config_mapping()), encoding="utf-8")
        return cfg_path

    return _write


@pytest.fixture
def app_config(write_config) -> AppConfig:
    return load_config(write_config())


@pytest.fixture
def countries() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {
            "iso3": ["FRA", "DEU", None, "ESP"],
            "name": ["France", "Germany", "Somaliland", "Spain"],
        },
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(2, 0, 3, 1), box(3, 0, 4, 1)],
        crs="EPSG:4326",
    )


@pytest.fixture
def observations() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "iso3": ["DEU", "FRA", "WLD", "ITA"],
            "country": ["Germany", "France", "World", "Italy"],
            "year": [2017, 2017, 2017, 2017],
            "value": [12.5, 11.8, 45.5, 18.2],
        }
    )
