"""Tests for Natural Earth loading and join-key detection."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import geopandas as gpd
import pytest
from shapely.geometry import box

from dashbuilder.io_ne import NaturalEarthRepository


@pytest.fixture
def admin0() -> gpd.GeoDataFrame:
    # Natural Earth marks France and Norway with -99 in ISO_A3.
    return gpd.GeoDataFrame(
        {
            "ADMIN": ["France", "Norway", "Germany", "Kosovo"],
            "NAME": ["France", "Norway", "Germany", "Kosovo"],
            "ISO_A3": ["-99", "-99", "DEU", "-99"],
            "ADM0_A3": ["FRA", "NOR", "DEU", "KOS"],
            "POP_EST": [67_000_000, 5_300_000, 83_000_000, 1_800_000],
        },
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(2, 0, 3, 1), box(3, 0, 4, 1)],
        crs="EPSG:4326",
    )


@pytest.fixture
def repo(tmp_path) -> NaturalEarthRepository:
    return NaturalEarthRepository(tmp_path / "admin0.gpkg")


class TestColumnDetection:
    """Picking the ISO3 and name columns."""

    def test_prefers_column_with_most_valid_codes(self, repo, admin0):
        assert repo.detect_iso_column(admin0) == "ADM0_A3"

    def test_allowlist_overlap_wins(self, repo, admin0):
        frame = admin0.assign(ADM0_A3=["FRX", "NOX", "DEX", "KOX"], ISO_A3=["FRA", "NOR", "DEU", "-99"])

        assert repo.detect_iso_column(frame, iso_allowlist={"FRA", "NOR", "DEU"}) == "ISO_A3"

    def test_no_iso_column_raises(self, repo, admin0):
        frame = admin0[["NAME", "geometry"]]

        with pytest.raises(ValueError, match="Could not detect ISO3 column"):
            repo.detect_iso_column(frame)

    def test_name_column(self, repo, admin0):
        assert repo.detect_name_column(admin0) == "NAME"
        assert repo.detect_name_column(admin0.drop(columns=["NAME"])) == "ADMIN"

    def test_no_name_column_raises(self, repo, admin0):
        with pytest.raises(ValueError, match="country name column"):
            repo.detect_name_column(admin0[["ADM0_A3", "geometry"]])


class TestCountryTable:
    """Reduction to iso3/name/geometry."""

    def test_one_row_per_geometry(self, repo, admin0):
        table = repo.country_table(admin0)

        assert list(table.columns) == ["iso3", "name", "geometry"]
        assert len(table) == len(admin0)
        assert table["iso3"].tolist() == ["FRA", "NOR", "DEU", "KOS"]

    def test_placeholder_codes_become_null(self, repo, admin0):
        table = repo.country_table(admin0, iso_col="ISO_A3", name_col="ADMIN")

        assert table["iso3"].tolist() == [None, None, "DEU", None]
        assert table["name"].tolist() == ["France", "Norway", "Germany", "Kosovo"]

    def test_unknown_column_raises(self, repo, admin0):
        with pytest.raises(ValueError, match="not present"):
            repo.country_table(admin0, iso_col="ISO3166", name_col="NAME")

    def test_reprojects_to_wgs84(self, repo, admin0):
        projected = admin0.to_crs(epsg=3857)

        table = repo.country_table(projected)

        assert table.crs.to_epsg() == 4326


class TestLocalCopy:
    """Finding or downloading the admin-0 archive."""

    def test_existing_file_is_used(self, tmp_path):
        path = tmp_path / "admin0.zip"
        path.write_bytes(b"zip")
        repo = NaturalEarthRepository(path, source_url="https://example.org/admin0.zip", download_if_missing=True)

        assert repo.ensure_local_copy() == path

    def test_missing_without_download_raises(self, repo):
        with pytest.raises(FileNotFoundError):
            repo.ensure_local_copy()

    @patch("dashbuilder.io_ne.requests.get")
    def test_downloads_when_missing(self, mock_get, tmp_path):
        response = MagicMock()
        response.iter_content.return_value = [b"PK", b"data"]
        mock_get.return_value.__enter__.return_value = response
        target = tmp_path / "ne" / "admin0.zip"
        repo = NaturalEarthRepository(
            target,
            source_url="https://example.org/admin0.zip",
            download_if_missing=True,
            request_timeout_s=7,
            user_agent="tests",
        )

        path = repo.ensure_local_copy()

        assert path == target
        assert Path(path).read_bytes() == b"PKdata"
        mock_get.assert_called_once_with(
            "https://example.org/admin0.zip",
            stream=True,
            timeout=7,
            headers={"User-Agent": "tests"},
        )
        assert not (tmp_path / "ne" / "admin0.zip.part").exists()

    def test_load_admin0_reads_file(self, tmp_path, admin0):
        path = tmp_path / "admin0.gpkg"
        admin0.to_file(path, driver="GPKG")
        repo = NaturalEarthRepository(path)

        loaded = repo.load_admin0()

        assert len(loaded) == 4
        assert "ADM0_A3" in loaded.columns
