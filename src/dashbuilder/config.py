"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _opt_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _str(value, field_name)


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _opt_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    return _int(value, field_name)


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    document: Path
    output_html: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> ProjectConfig:
        return cls(
            document=_path_from_cfg(raw.get("document"), "project.document", root_dir),
            output_html=_path_from_cfg(raw.get("output_html"), "project.output_html", root_dir),
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    ne_admin0_countries: Path
    build_root: Path
    cache_dir: Path
    data_dir: Path
    manifests_dir: Path
    logs_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (
            self.build_root,
            self.cache_dir,
            self.data_dir,
            self.manifests_dir,
            self.logs_dir,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            ne_admin0_countries=_path_from_cfg(
                raw.get("ne_admin0_countries"), "paths.ne_admin0_countries", root_dir
            ),
            build_root=_path_from_cfg(raw.get("build_root"), "paths.build_root", root_dir),
            cache_dir=_path_from_cfg(raw.get("cache_dir"), "paths.cache_dir", root_dir),
            data_dir=_path_from_cfg(raw.get("data_dir"), "paths.data_dir", root_dir),
            manifests_dir=_path_from_cfg(raw.get("manifests_dir"), "paths.manifests_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class GeometryConfig:
    source_url: str | None
    download_if_missing: bool
    iso_column: str | None
    name_column: str | None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GeometryConfig:
        return cls(
            source_url=_opt_str(raw.get("source_url"), "geometry.source_url"),
            download_if_missing=_bool(
                raw.get("download_if_missing", False), "geometry.download_if_missing"
            ),
            iso_column=_opt_str(raw.get("iso_column"), "geometry.iso_column"),
            name_column=_opt_str(raw.get("name_column"), "geometry.name_column"),
        )


@dataclass(frozen=True, slots=True)
class IndicatorConfig:
    code: str
    year: int
    label: str
    unit: str | None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> IndicatorConfig:
        year = _int(raw.get("year"), "indicator.year")
        if year < 1900 or year > 2100:
            raise ValueError("indicator.year must be between 1900 and 2100")
        return cls(
            code=_str(raw.get("code"), "indicator.code"),
            year=year,
            label=_str(raw.get("label"), "indicator.label"),
            unit=_opt_str(raw.get("unit"), "indicator.unit"),
        )


@dataclass(frozen=True, slots=True)
class WorldBankConfig:
    base_url: str
    cache_http: bool
    request_timeout_s: int
    user_agent: str
    per_page: int
    min_request_interval_s: float
    max_retries: int
    retry_backoff_s: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> WorldBankConfig:
        per_page = _int(raw.get("per_page", 1000), "worldbank.per_page")
        min_request_interval_s = _float(
            raw.get("min_request_interval_s", 0.2),
            "worldbank.min_request_interval_s",
        )
        max_retries = _int(raw.get("max_retries", 3), "worldbank.max_retries")
        retry_backoff_s = _float(raw.get("retry_backoff_s", 1.0), "worldbank.retry_backoff_s")
        if per_page < 1:
            raise ValueError("worldbank.per_page must be >= 1")
        if min_request_interval_s < 0:
            raise ValueError("worldbank.min_request_interval_s must be >= 0")
        if max_retries < 0:
            raise ValueError("worldbank.max_retries must be >= 0")
        if retry_backoff_s <= 0:
            raise ValueError("worldbank.retry_backoff_s must be > 0")

        return cls(
            base_url=_str(raw.get("base_url"), "worldbank.base_url").rstrip("/"),
            cache_http=_bool(raw.get("cache_http"), "worldbank.cache_http"),
            request_timeout_s=_int(raw.get("request_timeout_s"), "worldbank.request_timeout_s"),
            user_agent=_str(raw.get("user_agent"), "worldbank.user_agent"),
            per_page=per_page,
            min_request_interval_s=min_request_interval_s,
            max_retries=max_retries,
            retry_backoff_s=retry_backoff_s,
        )


@dataclass(frozen=True, slots=True)
class MapWidgetConfig:
    palette: str
    bins: tuple[float, ...] | int
    missing_color: str
    line_color: str
    projection: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapWidgetConfig:
        bins_raw = raw.get("bins")
        bins: tuple[float, ...] | int
        if isinstance(bins_raw, list):
            if len(bins_raw) < 2:
                raise ValueError("widgets.map.bins needs at least two edges")
            bins = tuple(_float(item, f"widgets.map.bins[{idx}]") for idx, item in enumerate(bins_raw))
            if any(hi <= lo for lo, hi in zip(bins[:-1], bins[1:])):
                raise ValueError("widgets.map.bins edges must be strictly ascending")
        else:
            bins = _int(bins_raw, "widgets.map.bins")
            if bins < 1:
                raise ValueError("widgets.map.bins must be >= 1")
        return cls(
            palette=_str(raw.get("palette"), "widgets.map.palette"),
            bins=bins,
            missing_color=_str(raw.get("missing_color", "#d9d9d9"), "widgets.map.missing_color"),
            line_color=_str(raw.get("line_color", "#ffffff"), "widgets.map.line_color"),
            projection=_str(raw.get("projection", "natural earth"), "widgets.map.projection"),
        )


@dataclass(frozen=True, slots=True)
class TableWidgetConfig:
    page_size: int
    decimals: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TableWidgetConfig:
        page_size = _int(raw.get("page_size"), "widgets.table.page_size")
        decimals = _int(raw.get("decimals", 2), "widgets.table.decimals")
        if page_size < 1:
            raise ValueError("widgets.table.page_size must be >= 1")
        if decimals < 0:
            raise ValueError("widgets.table.decimals must be >= 0")
        return cls(page_size=page_size, decimals=decimals)


@dataclass(frozen=True, slots=True)
class HistogramWidgetConfig:
    nbins: int | None
    color: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> HistogramWidgetConfig:
        nbins = _opt_int(raw.get("nbins"), "widgets.histogram.nbins")
        if nbins is not None and nbins < 1:
            raise ValueError("widgets.histogram.nbins must be >= 1")
        return cls(
            nbins=nbins,
            color=_str(raw.get("color", "#e6550d"), "widgets.histogram.color"),
        )


@dataclass(frozen=True, slots=True)
class WidgetsConfig:
    map: MapWidgetConfig
    table: TableWidgetConfig
    histogram: HistogramWidgetConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> WidgetsConfig:
        return cls(
            map=MapWidgetConfig.from_mapping(_mapping(raw.get("map"), "widgets.map")),
            table=TableWidgetConfig.from_mapping(_mapping(raw.get("table"), "widgets.table")),
            histogram=HistogramWidgetConfig.from_mapping(
                _mapping(raw.get("histogram", {}), "widgets.histogram")
            ),
        )


@dataclass(frozen=True, slots=True)
class PreviewConfig:
    width_px: int
    height_px: int
    dpi: int
    crs: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PreviewConfig:
        width_px = _int(raw.get("width_px", 1600), "build.preview.width_px")
        height_px = _int(raw.get("height_px", 900), "build.preview.height_px")
        dpi = _int(raw.get("dpi", 150), "build.preview.dpi")
        if min(width_px, height_px, dpi) < 1:
            raise ValueError("build.preview dimensions and dpi must be >= 1")
        return cls(
            width_px=width_px,
            height_px=height_px,
            dpi=dpi,
            crs=_str(raw.get("crs", "ESRI:54030"), "build.preview.crs"),
        )


@dataclass(frozen=True, slots=True)
class BuildConfig:
    write_manifest: bool
    manifest_include_hashes: bool
    write_preview_png: bool
    export_csv: bool
    preview: PreviewConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BuildConfig:
        return cls(
            write_manifest=_bool(raw.get("write_manifest"), "build.write_manifest"),
            manifest_include_hashes=_bool(
                raw.get("manifest_include_hashes"), "build.manifest_include_hashes"
            ),
            write_preview_png=_bool(raw.get("write_preview_png", False), "build.write_preview_png"),
            export_csv=_bool(raw.get("export_csv", True), "build.export_csv"),
            preview=PreviewConfig.from_mapping(_mapping(raw.get("preview", {}), "build.preview")),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    project: ProjectConfig
    paths: PathsConfig
    geometry: GeometryConfig
    indicator: IndicatorConfig
    worldbank: WorldBankConfig
    widgets: WidgetsConfig
    build: BuildConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            project=ProjectConfig.from_mapping(_mapping(raw.get("project"), "project"), root_dir),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            geometry=GeometryConfig.from_mapping(_mapping(raw.get("geometry", {}), "geometry")),
            indicator=IndicatorConfig.from_mapping(_mapping(raw.get("indicator"), "indicator")),
            worldbank=WorldBankConfig.from_mapping(_mapping(raw.get("worldbank"), "worldbank")),
            widgets=WidgetsConfig.from_mapping(_mapping(raw.get("widgets"), "widgets")),
            build=BuildConfig.from_mapping(_mapping(raw.get("build"), "build")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
