"""Tests for YAML config loading and validation."""

import pytest

from dashbuilder.config import load_config


class TestLoadConfig:
    def test_loads_typed_sections(self, app_config, tmp_path):
        assert app_config.source_path == (tmp_path / "config.yaml").resolve()
        assert app_config.indicator.code == "EN.ATM.PM25.MC.M3"
        assert app_config.indicator.year == 2017
        assert app_config.worldbank.base_url == "https://api.example.org/v2"
        assert app_config.widgets.map.bins == (0.0, 10.0, 25.0, 50.0)
        assert app_config.widgets.table.page_size == 2
        assert app_config.widgets.histogram.nbins is None

    def test_relative_paths_resolve_against_config_dir(self, app_config, tmp_path):
        root = tmp_path.resolve()

        assert app_config.project.document == root / "dashboards" / "test.dash.md"
        assert app_config.paths.ne_admin0_countries == root / "data" / "admin0.gpkg"
        assert app_config.paths.manifests_dir == root / "build" / "manifests"

    def test_defaults(self, app_config):
        assert app_config.widgets.map.missing_color == "#d9d9d9"
        assert app_config.widgets.map.projection == "natural earth"
        assert app_config.widgets.table.decimals == 2
        assert app_config.build.preview.crs == "ESRI:54030"
        assert app_config.geometry.iso_column is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Top-level config"):
            load_config(path)


class TestValidation:
    """Field-level errors raised while loading."""

    @pytest.mark.parametrize(
        "section, key, value, message",
        [
            ("indicator", "year", 1850, "between 1900 and 2100"),
            ("indicator", "year", "2017", "Expected integer"),
            ("indicator", "code", "  ", "indicator.code"),
            ("worldbank", "per_page", 0, "per_page must be >= 1"),
            ("worldbank", "retry_backoff_s", 0, "retry_backoff_s must be > 0"),
            ("worldbank", "cache_http", "yes", "Expected bool"),
        ],
    )
    def test_invalid_scalar(self, write_config, config_mapping, section, key, value, message):
        config_mapping[section][key] = value

        with pytest.raises(ValueError, match=message):
            load_config(write_config(config_mapping))

    def test_bins_must_ascend(self, write_config, config_mapping):
        config_mapping["widgets"]["map"]["bins"] = [0, 25, 10]

        with pytest.raises(ValueError, match="strictly ascending"):
            load_config(write_config(config_mapping))

    def test_bins_need_two_edges(self, write_config, config_mapping):
        config_mapping["widgets"]["map"]["bins"] = [5]

        with pytest.raises(ValueError, match="at least two edges"):
            load_config(write_config(config_mapping))

    def test_bins_as_count(self, write_config, config_mapping):
        config_mapping["widgets"]["map"]["bins"] = 5

        cfg = load_config(write_config(config_mapping))

        assert cfg.widgets.map.bins == 5

    def test_bins_count_must_be_positive(self, write_config, config_mapping):
        config_mapping["widgets"]["map"]["bins"] = 0

        with pytest.raises(ValueError, match="bins must be >= 1"):
            load_config(write_config(config_mapping))

    def test_page_size_must_be_positive(self, write_config, config_mapping):
        config_mapping["widgets"]["table"]["page_size"] = 0

        with pytest.raises(ValueError, match="page_size must be >= 1"):
            load_config(write_config(config_mapping))

    def test_missing_section(self, write_config, config_mapping):
        del config_mapping["widgets"]

        with pytest.raises(ValueError, match="'widgets'"):
            load_config(write_config(config_mapping))
