"""Build pipeline: geometry + indicator -> join -> widgets -> dashboard HTML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import pandas as pd

from .config import AppConfig
from .dashboard import count_rendered_slots, render_dashboard, write_dashboard
from .io_ne import NaturalEarthRepository
from .join import JoinedTable, join_indicator
from .layout import load_document
from .models import BuildManifest, DashboardDocument, JoinDiagnostics, WidgetOutput
from .preview import render_static_preview
from .util import detect_git_commit, format_code_list, sha256_file, write_json
from .widgets import choropleth, data_table, histogram
from .worldbank import WorldBankClient

_LOGGER = logging.getLogger("dashbuilder.pipeline")

# Builders receive the document's self_contained flag as their third argument.
WidgetBuilder = Callable[[JoinedTable, AppConfig, bool], WidgetOutput]

WIDGET_BUILDERS: Mapping[str, WidgetBuilder] = {
    "map": lambda table, cfg, _: choropleth(table, cfg.widgets.map, name="map"),
    "table": lambda table, cfg, self_contained: data_table(
        table.to_frame(),
        cfg.widgets.table,
        value_label=table.value_label,
        name="table",
        connected=not self_contained,
    ),
    "histogram": lambda table, cfg, _: histogram(
        table.to_frame(), cfg.widgets.histogram, value_label=table.value_label, name="histogram"
    ),
}


@dataclass(slots=True)
class BuildReport:
    output_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)
    artifacts: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


def value_label(cfg: AppConfig) -> str:
    if cfg.indicator.unit:
        return f"{cfg.indicator.label} ({cfg.indicator.unit})"
    return cfg.indicator.label


def make_repository(cfg: AppConfig) -> NaturalEarthRepository:
    return NaturalEarthRepository(
        cfg.paths.ne_admin0_countries,
        source_url=cfg.geometry.source_url,
        download_if_missing=cfg.geometry.download_if_missing,
        request_timeout_s=cfg.worldbank.request_timeout_s,
        user_agent=cfg.worldbank.user_agent,
    )


def fetch_observations(
    cfg: AppConfig,
    *,
    code: str | None = None,
    year: int | None = None,
) -> pd.DataFrame:
    with WorldBankClient(cfg.worldbank, cache_dir=cfg.paths.cache_dir) as client:
        return client.fetch_indicator(code or cfg.indicator.code, year or cfg.indicator.year)


def load_countries(cfg: AppConfig, *, iso_allowlist: set[str] | None = None) -> Any:
    repo = make_repository(cfg)
    admin0 = repo.load_admin0()
    return repo.country_table(
        admin0,
        iso_col=cfg.geometry.iso_column,
        name_col=cfg.geometry.name_column,
        iso_allowlist=iso_allowlist,
    )


def build_joined_table(cfg: AppConfig) -> tuple[JoinedTable, JoinDiagnostics, pd.DataFrame]:
    observations = fetch_observations(cfg)
    countries = load_countries(cfg, iso_allowlist=set(observations["iso3"].tolist()))
    table, diagnostics = join_indicator(
        countries,
        observations,
        value_label=value_label(cfg),
        year=cfg.indicator.year,
    )
    return table, diagnostics, observations


def build_widgets(
    table: JoinedTable,
    cfg: AppConfig,
    names: Sequence[str],
    *,
    self_contained: bool = False,
) -> dict[str, WidgetOutput]:
    widgets: dict[str, WidgetOutput] = {}
    for name in names:
        builder = WIDGET_BUILDERS.get(name)
        if builder is None:
            raise ValueError(
                f"Unknown widget '{name}'; available: {', '.join(sorted(WIDGET_BUILDERS))}"
            )
        if name not in widgets:
            widgets[name] = builder(table, cfg, self_contained)
            _LOGGER.debug("Widget '%s' built", name)
    return widgets


def run_build(cfg: AppConfig) -> BuildReport:
    """Generate the dashboard and its side artifacts; problems are collected into the report."""
    report = BuildReport(output_path=cfg.project.output_html)
    steps: dict[str, str] = {}

    try:
        document = load_document(cfg.project.document)
    except Exception as exc:
        report.add_error(f"Failed loading dashboard document '{cfg.project.document}': {exc}")
        return report
    steps["layout"] = "ok"
    report.add_info(
        f"Dashboard document declares {len(document.sections)} sections and {len(document.slots)} slots"
    )

    try:
        table, diagnostics, observations = build_joined_table(cfg)
    except Exception as exc:
        _LOGGER.exception("Data step failed")
        report.add_error(f"Failed preparing indicator data: {exc}")
        return report
    steps["fetch_indicator"] = "ok"
    steps["join"] = "ok"
    _report_join(report, diagnostics)

    try:
        widgets = build_widgets(
            table,
            cfg,
            document.widget_names,
            self_contained=document.header.self_contained,
        )
        html = render_dashboard(document, widgets)
    except Exception as exc:
        _LOGGER.exception("Rendering failed")
        report.add_error(f"Failed rendering dashboard: {exc}")
        return report
    steps["widgets"] = "ok"

    rendered_slots = count_rendered_slots(html)
    if rendered_slots != len(document.slots):
        report.add_error(
            f"Rendered {rendered_slots} slots but the document declares {len(document.slots)}"
        )
        return report

    write_dashboard(html, cfg.project.output_html)
    steps["render"] = "ok"
    report.artifacts["dashboard_html"] = str(cfg.project.output_html)
    report.add_info(f"Dashboard written to {cfg.project.output_html}")

    diagnostics_path = cfg.paths.manifests_dir / "join_diagnostics.json"
    write_json(diagnostics_path, diagnostics.to_dict())
    report.artifacts["join_diagnostics"] = str(diagnostics_path)

    if cfg.build.export_csv:
        stem = _artifact_stem(cfg)
        observations_path = cfg.paths.data_dir / f"observations_{stem}.csv"
        joined_path = cfg.paths.data_dir / f"joined_{stem}.csv"
        observations_path.parent.mkdir(parents=True, exist_ok=True)
        observations.to_csv(observations_path, index=False)
        table.to_frame().to_csv(joined_path, index=False)
        report.artifacts["observations_csv"] = str(observations_path)
        report.artifacts["joined_csv"] = str(joined_path)
        steps["export_csv"] = "ok"
    else:
        steps["export_csv"] = "skipped"

    if cfg.build.write_preview_png:
        preview_path = cfg.paths.build_root / f"preview_{_artifact_stem(cfg)}.png"
        try:
            render_static_preview(
                table,
                cfg.widgets.map,
                cfg.build.preview,
                preview_path,
                title=document.header.title,
            )
        except Exception as exc:
            _LOGGER.exception("Static preview failed")
            report.add_warning(f"Static preview not written: {exc}")
            steps["preview_png"] = "error"
        else:
            report.artifacts["preview_png"] = str(preview_path)
            steps["preview_png"] = "ok"
    else:
        steps["preview_png"] = "skipped"

    report.summary = {
        "geometry_rows": diagnostics.geometry_rows,
        "matched_rows": diagnostics.matched_rows,
        "null_rows": diagnostics.null_rows,
        "slots": rendered_slots,
    }

    if cfg.build.write_manifest:
        manifest_path = _write_manifest(
            cfg,
            steps=steps,
            artifacts=report.artifacts,
            diagnostics=diagnostics,
        )
        report.add_info(f"Build manifest written to {manifest_path}")
    return report


def run_inspect_join(cfg: AppConfig) -> tuple[Path, JoinDiagnostics]:
    """Write join diagnostics for the configured indicator without rendering anything."""
    _, diagnostics, _ = build_joined_table(cfg)
    path = cfg.paths.manifests_dir / "join_diagnostics.json"
    write_json(path, diagnostics.to_dict())
    return path, diagnostics


def format_build_lines(report: BuildReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Dashboard build completed with no errors.")
    return lines


def check_document_widgets(document: DashboardDocument) -> list[str]:
    """Return widget names referenced by the document that no builder provides."""
    return sorted({name for name in document.widget_names if name not in WIDGET_BUILDERS})


def _report_join(report: BuildReport, diagnostics: JoinDiagnostics) -> None:
    report.add_info(
        "Join summary: "
        f"geometry_rows={diagnostics.geometry_rows}, "
        f"matched_rows={diagnostics.matched_rows}, "
        f"null_rows={diagnostics.null_rows}"
    )
    if diagnostics.unmatched_geometry:
        report.add_warning(
            "Geometry codes without indicator rows: "
            + format_code_list(list(diagnostics.unmatched_geometry))
        )
    if diagnostics.missing_geometry_codes:
        report.add_warning(
            "Geometry rows without a usable ISO3 code: "
            + format_code_list(list(diagnostics.missing_geometry_codes))
        )
    if diagnostics.duplicate_source:
        report.add_warning(
            "Duplicate codes in indicator source (first kept): "
            + format_code_list(list(diagnostics.duplicate_source))
        )


def _artifact_stem(cfg: AppConfig) -> str:
    safe_code = "".join(ch if ch.isalnum() else "_" for ch in cfg.indicator.code)
    return f"{safe_code}_{cfg.indicator.year}"


def _write_manifest(
    cfg: AppConfig,
    *,
    steps: Mapping[str, str],
    artifacts: Mapping[str, str],
    diagnostics: JoinDiagnostics,
) -> Path:
    hashes: dict[str, str] = {}
    if cfg.build.manifest_include_hashes:
        for name, raw_path in artifacts.items():
            path = Path(raw_path)
            if path.is_file():
                hashes[name] = sha256_file(path)
    manifest = BuildManifest.create(
        config_hash_sha256=sha256_file(cfg.source_path),
        git_commit=detect_git_commit(cfg.source_path.parent),
        indicator={
            "code": cfg.indicator.code,
            "year": cfg.indicator.year,
            "label": cfg.indicator.label,
        },
        steps=steps,
        artifacts=artifacts,
        join=diagnostics.to_dict(),
        artifact_hashes=hashes,
    )
    manifest_path = cfg.paths.manifests_dir / "build_manifest.json"
    write_json(manifest_path, manifest.to_dict())
    return manifest_path
