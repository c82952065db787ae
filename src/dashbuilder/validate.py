"""Validation layer for config, dashboard document, and boundary dataset."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from .config import AppConfig
from .layout import load_document
from .models import DashboardDocument
from .pipeline import check_document_widgets, make_repository


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Checks everything a build needs that can be checked without the network."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, *, strict_data_files: bool) -> ValidationReport:
        report = ValidationReport()
        document = self._validate_document(report)
        if document is not None:
            self._validate_slots(report, document)
        self._validate_geometry(report, strict_data_files=strict_data_files)
        self._describe_widgets(report)
        return report

    def _validate_document(self, report: ValidationReport) -> DashboardDocument | None:
        path = self.cfg.project.document
        if not path.exists():
            report.add_error(f"Missing dashboard document: {path}")
            return None
        try:
            document = load_document(path)
        except Exception as exc:
            report.add_error(f"Failed parsing dashboard document '{path}': {exc}")
            return None
        report.add_info(
            f"Dashboard '{document.header.title}': {document.header.orientation} layout, "
            f"{len(document.sections)} sections, {len(document.slots)} slots"
        )
        return document

    def _validate_slots(self, report: ValidationReport, document: DashboardDocument) -> None:
        unknown = check_document_widgets(document)
        if unknown:
            report.add_error("Document references unknown widgets: " + ", ".join(unknown))
        repeated = sorted(name for name, count in Counter(document.widget_names).items() if count > 1)
        if repeated:
            report.add_error("Widgets placed in more than one slot: " + ", ".join(repeated))

    def _validate_geometry(self, report: ValidationReport, *, strict_data_files: bool) -> None:
        path = self.cfg.paths.ne_admin0_countries
        if not path.exists():
            if self.cfg.geometry.download_if_missing and self.cfg.geometry.source_url:
                report.add_info(
                    f"Natural Earth admin0 not present; it will be downloaded from "
                    f"{self.cfg.geometry.source_url}"
                )
                return
            msg = f"Missing Natural Earth admin0 file: {path}"
            if strict_data_files:
                report.add_error(msg)
            else:
                report.add_warning(msg)
            return

        repo = make_repository(self.cfg)
        try:
            admin0 = repo.load_admin0()
            iso_col = self.cfg.geometry.iso_column or repo.detect_iso_column(admin0)
            name_col = self.cfg.geometry.name_column or repo.detect_name_column(admin0)
            countries = repo.country_table(admin0, iso_col=iso_col, name_col=name_col)
        except Exception as exc:
            msg = f"Failed reading Natural Earth admin0 '{path}': {exc}"
            if strict_data_files:
                report.add_error(msg)
            else:
                report.add_warning(msg)
            return

        missing_codes = int(countries["iso3"].isna().sum())
        report.add_info(
            f"Natural Earth admin0: {len(countries)} rows, key column '{iso_col}', "
            f"name column '{name_col}'"
        )
        if missing_codes:
            report.add_warning(f"{missing_codes} geometry rows have no usable ISO3 code in '{iso_col}'")
        duplicated = countries["iso3"].dropna()
        duplicated = sorted(set(duplicated[duplicated.duplicated()].tolist()))
        if duplicated:
            report.add_warning("Duplicate ISO3 codes in geometry: " + ", ".join(duplicated))

    def _describe_widgets(self, report: ValidationReport) -> None:
        widgets = self.cfg.widgets
        bins = widgets.map.bins
        bins_text = f"{bins} equal-width bins" if isinstance(bins, int) else f"edges {list(bins)}"
        report.add_info(f"Map widget: palette '{widgets.map.palette}', {bins_text}")
        report.add_info(f"Table widget: page size {widgets.table.page_size}")
        nbins = widgets.histogram.nbins
        report.add_info(
            "Histogram widget: " + ("default binning" if nbins is None else f"{nbins} bins")
        )


def format_report_lines(report: ValidationReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Validation completed with no errors.")
    return lines
