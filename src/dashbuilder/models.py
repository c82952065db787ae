"""Domain models shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def normalize_iso3(value: Any) -> str | None:
    """Return an upper-case ISO3 code, or None for blanks and placeholders like '-99'."""
    if value is None:
        return None
    normalized = str(value).strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        return None
    return normalized


@dataclass(frozen=True, slots=True)
class IndicatorInfo:
    """One series from the World Bank indicator catalog."""

    id: str
    name: str
    unit: str | None = None
    source: str | None = None
    source_note: str | None = None
    source_organization: str | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> IndicatorInfo:
        source_raw = data.get("source")
        source = source_raw.get("value") if isinstance(source_raw, Mapping) else None
        return cls(
            id=_require_str(data.get("id"), "indicator.id"),
            name=_require_str(data.get("name"), "indicator.name"),
            unit=_optional_str(data.get("unit")),
            source=_optional_str(source),
            source_note=_optional_str(data.get("sourceNote")),
            source_organization=_optional_str(data.get("sourceOrganization")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "source": self.source,
            "source_note": self.source_note,
            "source_organization": self.source_organization,
        }


@dataclass(frozen=True, slots=True)
class JoinDiagnostics:
    """Outcome of aligning indicator rows to geometry rows by ISO3."""

    geometry_rows: int
    matched_rows: int
    null_rows: int
    unmatched_geometry: tuple[str, ...] = ()
    missing_geometry_codes: tuple[str, ...] = ()
    unmatched_source: tuple[str, ...] = ()
    duplicate_source: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "geometry_rows": self.geometry_rows,
            "matched_rows": self.matched_rows,
            "null_rows": self.null_rows,
            "unmatched_geometry": list(self.unmatched_geometry),
            "missing_geometry_codes": list(self.missing_geometry_codes),
            "unmatched_source": list(self.unmatched_source),
            "duplicate_source": list(self.duplicate_source),
        }


@dataclass(frozen=True, slots=True)
class WidgetOutput:
    """HTML fragment produced by one widget, addressed by widget name."""

    name: str
    html: str
    uses_plotly: bool = False


@dataclass(frozen=True, slots=True)
class DocumentHeader:
    """Structured header block of a dashboard document."""

    title: str
    subtitle: str | None = None
    output_format: str = "html"
    orientation: str = "columns"
    vertical_layout: str = "fill"
    self_contained: bool = False
    theme: str = "default"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DocumentHeader:
        title = _require_str(data.get("title"), "title")
        output_raw = data.get("output", {})
        if output_raw is None:
            output_raw = {}
        if isinstance(output_raw, str):
            output_raw = {"format": output_raw}
        if not isinstance(output_raw, Mapping):
            raise ValueError("Expected mapping for 'output'")

        output_format = str(output_raw.get("format", "html")).strip().casefold()
        if output_format != "html":
            raise ValueError(f"Unsupported output format '{output_format}'; only 'html' is available")
        orientation = str(output_raw.get("orientation", "columns")).strip().casefold()
        if orientation not in {"columns", "rows"}:
            raise ValueError("output.orientation must be 'columns' or 'rows'")
        vertical_layout = str(output_raw.get("vertical_layout", "fill")).strip().casefold()
        if vertical_layout not in {"fill", "scroll"}:
            raise ValueError("output.vertical_layout must be 'fill' or 'scroll'")
        self_contained = output_raw.get("self_contained", False)
        if not isinstance(self_contained, bool):
            raise ValueError("Expected bool for 'output.self_contained'")

        return cls(
            title=title,
            subtitle=_optional_str(data.get("subtitle")),
            output_format=output_format,
            orientation=orientation,
            vertical_layout=vertical_layout,
            self_contained=self_contained,
            theme=str(output_raw.get("theme", "default")).strip() or "default",
        )


@dataclass(frozen=True, slots=True)
class LayoutSlot:
    """A titled box that receives exactly one widget."""

    title: str
    widget: str
    caption: str = ""


@dataclass(frozen=True, slots=True)
class LayoutSection:
    """A column (or row, depending on orientation) holding stacked slots."""

    title: str | None
    size: int | None
    slots: tuple[LayoutSlot, ...] = ()


@dataclass(frozen=True, slots=True)
class DashboardDocument:
    header: DocumentHeader
    sections: tuple[LayoutSection, ...]

    @property
    def slots(self) -> tuple[LayoutSlot, ...]:
        return tuple(slot for section in self.sections for slot in section.slots)

    @property
    def widget_names(self) -> tuple[str, ...]:
        return tuple(slot.widget for slot in self.slots)


@dataclass(frozen=True, slots=True)
class BuildManifest:
    """Build metadata used for deterministic audit trails."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    indicator: Mapping[str, Any]
    steps: Mapping[str, str]
    artifacts: Mapping[str, str]
    join: Mapping[str, Any] = field(default_factory=dict)
    artifact_hashes: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        indicator: Mapping[str, Any],
        steps: Mapping[str, str],
        artifacts: Mapping[str, str],
        join: Mapping[str, Any] | None = None,
        artifact_hashes: Mapping[str, str] | None = None,
    ) -> BuildManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            indicator=indicator,
            steps=steps,
            artifacts=artifacts,
            join=join or {},
            artifact_hashes=artifact_hashes or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "indicator": dict(self.indicator),
            "steps": dict(self.steps),
            "artifacts": dict(self.artifacts),
            "join": dict(self.join),
            "artifact_hashes": dict(self.artifact_hashes),
        }
