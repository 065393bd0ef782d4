"""User-friendly run configuration loader for manual runs."""
from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Dict, Iterable, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:  # pragma: no cover
    from hotel_etl.config.settings import Settings


def _coerce_string_list(value: object) -> list[str]:
    if value in (None, "", ()):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Iterable):
        result: list[str] = []
        for item in value:
            text = str(item).strip()
            if text:
                result.append(text)
        return result
    raise TypeError("Expected string or list of strings")


class SourceSection(BaseModel):
    """Where raw booking rows come from."""

    path: Optional[str] = Field(default=None, description="CSV file with a header row")
    null_markers: Optional[list[str]] = Field(
        default=None, description="Cell values treated as no value (e.g. 'NULL')"
    )

    @field_validator("path", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class NormalizationSection(BaseModel):
    """Overrides for field normalisation tables."""

    date_formats: list[str] = Field(default_factory=list)
    email_sentinel: Optional[str] = None
    status_canonicalization: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra misspelling -> canonical status entries merged over the defaults",
    )

    @field_validator("date_formats", mode="before")
    @classmethod
    def _coerce_date_formats(cls, value: object) -> list[str]:
        return _coerce_string_list(value)


class StorageSection(BaseModel):
    """Typed record store overrides."""

    sqlite_path: Optional[str] = Field(default=None, description="Override the SQLite file path")
    sqlite_busy_timeout_ms: Optional[int] = Field(
        default=None, ge=0, description="Override SQLite busy timeout (ms) for locks"
    )
    sqlite_journal_mode: Optional[str] = Field(
        default=None,
        description="Override SQLite journal_mode (e.g., 'wal', 'delete')",
    )
    sqlite_synchronous: Optional[str] = Field(
        default=None,
        description="Override SQLite synchronous PRAGMA (e.g., 'normal', 'full')",
    )


class OutputSection(BaseModel):
    """Report and logging destinations."""

    report_dir: Optional[str] = None
    log_dir: Optional[str] = None
    log_level: Optional[str] = None


class RunConfig(BaseModel):
    """Top-level configuration decoded from TOML."""

    profile: str = Field(default="default", description="Human label used for logging")
    title: Optional[str] = None
    notes: Optional[str] = None
    source: SourceSection = Field(default_factory=SourceSection)
    normalization: NormalizationSection = Field(default_factory=NormalizationSection)
    storage: Optional[StorageSection] = None
    output: OutputSection = Field(default_factory=OutputSection)

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        """Load a config from a TOML file."""
        data = tomllib.loads(path.read_text(encoding="utf-8"))
        return cls.model_validate(data)

    # Public API -----------------------------------------------------------------

    def apply_to(self, settings: "Settings", *, base_dir: Optional[Path] = None) -> None:
        """Apply overrides to an existing Settings instance."""
        self._apply_source(settings, base_dir)
        self._apply_normalization(settings)
        self._apply_storage(settings, base_dir)
        self._apply_output(settings, base_dir)

    # Internal helpers -----------------------------------------------------------

    def _apply_source(self, settings: "Settings", base_dir: Optional[Path]) -> None:
        source = self.source
        if source.path:
            settings.source_path = _resolve_path(source.path, base_dir)
        if source.null_markers is not None:
            settings.csv_null_markers = tuple(source.null_markers)

    def _apply_normalization(self, settings: "Settings") -> None:
        normalization = self.normalization
        if normalization.date_formats:
            settings.date_formats = tuple(normalization.date_formats)
        if normalization.email_sentinel is not None:
            settings.email_sentinel = normalization.email_sentinel
        if normalization.status_canonicalization:
            merged = dict(settings.status_canonicalization)
            merged.update(normalization.status_canonicalization)
            settings.status_canonicalization = merged

    def _apply_storage(self, settings: "Settings", base_dir: Optional[Path]) -> None:
        storage = self.storage
        if not storage:
            return
        if storage.sqlite_path:
            settings.sqlite_path = _resolve_path(storage.sqlite_path, base_dir)
        if storage.sqlite_busy_timeout_ms is not None:
            settings.sqlite_busy_timeout_ms = storage.sqlite_busy_timeout_ms
        if storage.sqlite_journal_mode is not None:
            settings.sqlite_journal_mode = storage.sqlite_journal_mode
        if storage.sqlite_synchronous is not None:
            settings.sqlite_synchronous = storage.sqlite_synchronous

    def _apply_output(self, settings: "Settings", base_dir: Optional[Path]) -> None:
        output = self.output
        if output.report_dir:
            settings.report_dir = _resolve_path(output.report_dir, base_dir)
        if output.log_dir:
            settings.log_dir = _resolve_path(output.log_dir, base_dir)
        if output.log_level:
            settings.log_level = output.log_level


def _resolve_path(raw: str, base_dir: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute() and base_dir:
        return (base_dir / path).resolve()
    return path


__all__ = ["RunConfig"]
