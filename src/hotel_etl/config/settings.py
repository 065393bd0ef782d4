"""Runtime configuration for the booking pipeline.

Relies on pydantic-settings so that environment variables (prefixed with ``HOTEL_ETL_``)
can override defaults, e.g. ``HOTEL_ETL_SQLITE_PATH=/tmp/hotels.sqlite3``.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hotel_etl.bookings.normalizer import (
    DEFAULT_DATE_FORMATS,
    DEFAULT_EMAIL_SENTINEL,
    DEFAULT_STATUS_CANONICALIZATION,
    NormalizationRules,
)
from hotel_etl.sources.csv_source import DEFAULT_NULL_MARKERS

logger = logging.getLogger(__name__)


def _split_csv(value: str) -> Tuple[str, ...]:
    parts = (part.strip() for part in value.split(","))
    return tuple(part for part in parts if part)


class Settings(BaseSettings):
    """Captures runtime configuration for a pipeline run."""

    source_path: Optional[Path] = Field(
        default=None, description="CSV file holding raw booking rows"
    )
    csv_null_markers: Tuple[str, ...] = Field(
        default=DEFAULT_NULL_MARKERS,
        description="Cell values read as no value; the empty string is always included",
    )

    date_formats: Tuple[str, ...] = Field(
        default=DEFAULT_DATE_FORMATS,
        description="strptime formats tried in order for check-in/check-out dates",
    )
    email_sentinel: str = Field(
        default=DEFAULT_EMAIL_SENTINEL,
        description="Replacement for missing or malformed customer e-mail addresses",
    )
    status_canonicalization: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_STATUS_CANONICALIZATION),
        description="Case-insensitive booking_status misspellings mapped to canonical values",
    )

    sqlite_path: Path = Field(default=Path("data/storage/bookings.sqlite3"))
    sqlite_busy_timeout_ms: int = Field(default=2000, description="SQLite busy timeout for locks")
    sqlite_journal_mode: Optional[str] = Field(default="wal")
    sqlite_synchronous: Optional[str] = Field(default="normal")

    report_dir: Path = Field(default=Path("data/reports"), description="Run report JSON output")
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("data/logs"))

    model_config = SettingsConfigDict(
        env_prefix="HOTEL_ETL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )

    @field_validator("source_path", mode="before")
    def _expand_source_path(cls, value: str | Path | None) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @field_validator("sqlite_path", "report_dir", "log_dir", mode="before")
    def _expand_paths(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value
        return Path(value).expanduser()

    @field_validator("csv_null_markers", mode="before")
    def _parse_null_markers(cls, value: object) -> Tuple[str, ...]:
        if value is None:
            return ("",)
        if isinstance(value, str):
            markers = _split_csv(value)
        elif isinstance(value, (list, tuple)):
            markers = tuple(str(item) for item in value)
        else:
            raise TypeError("csv_null_markers must be provided as a comma-separated string or list")
        if "" not in markers:
            markers = markers + ("",)
        return markers

    @field_validator("date_formats", mode="before")
    def _parse_date_formats(cls, value: object) -> Tuple[str, ...]:
        if value is None or value == "":
            return DEFAULT_DATE_FORMATS
        if isinstance(value, str):
            formats = _split_csv(value)
        elif isinstance(value, (list, tuple)):
            formats = tuple(str(item).strip() for item in value if str(item).strip())
        else:
            raise TypeError("date_formats must be provided as a comma-separated string or list")
        if not formats:
            raise ValueError("date_formats must contain at least one format")
        return formats

    @field_validator("status_canonicalization", mode="before")
    def _parse_status_table(cls, value: object) -> Dict[str, str]:
        if value in (None, ""):
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:  # noqa: TRY003
                raise ValueError("status_canonicalization must be a JSON object") from exc
        if not isinstance(value, dict):
            raise TypeError("status_canonicalization must be a mapping of misspelling to value")
        return {str(key).strip().lower(): str(canonical) for key, canonical in value.items()}

    @field_validator("sqlite_busy_timeout_ms")
    def _validate_timeout(cls, value: int) -> int:
        if value < 0:
            raise ValueError("sqlite_busy_timeout_ms must not be negative")
        return value

    def normalization_rules(self) -> NormalizationRules:
        """Freeze the normalisation tables for injection into the normaliser."""
        return NormalizationRules(
            status_canonicalization=dict(self.status_canonicalization),
            email_sentinel=self.email_sentinel,
            date_formats=tuple(self.date_formats),
        )

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        self.report_dir.mkdir(parents=True, exist_ok=True)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Ensured directories %s and %s", self.report_dir, self.sqlite_path.parent)
