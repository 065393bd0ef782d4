from __future__ import annotations

from hotel_etl.config.run_config import RunConfig
from hotel_etl.config.settings import Settings


def test_run_config_applies_overrides(tmp_path):
    config_path = tmp_path / "run_config.toml"
    config_path.write_text(
        """
profile = "nightly"
title = "Nightly reload"

[source]
path = "raw/bookings.csv"
null_markers = ["NULL", "N/A"]

[normalization]
date_formats = "%d/%m/%Y, %Y-%m-%d"
email_sentinel = "no-email"

[normalization.status_canonicalization]
CNFRMD = "Confirmed"

[storage]
sqlite_path = "db/bookings.sqlite3"
sqlite_journal_mode = "delete"

[output]
report_dir = "reports"
log_level = "DEBUG"
""",
        encoding="utf-8",
    )

    config = RunConfig.load(config_path)
    settings = Settings()
    config.apply_to(settings, base_dir=tmp_path)

    assert config.profile == "nightly"
    assert settings.source_path == (tmp_path / "raw" / "bookings.csv").resolve()
    assert settings.csv_null_markers == ("NULL", "N/A", "")
    assert settings.date_formats == ("%d/%m/%Y", "%Y-%m-%d")
    assert settings.email_sentinel == "no-email"
    assert settings.status_canonicalization["cnfrmd"] == "Confirmed"
    assert settings.status_canonicalization["confirmeeed"] == "Confirmed"
    assert settings.sqlite_path == (tmp_path / "db" / "bookings.sqlite3").resolve()
    assert settings.sqlite_journal_mode == "delete"
    assert settings.report_dir == (tmp_path / "reports").resolve()
    assert settings.log_level == "DEBUG"


def test_empty_run_config_leaves_settings_untouched(tmp_path):
    config_path = tmp_path / "empty.toml"
    config_path.write_text("", encoding="utf-8")

    settings = Settings()
    before = settings.model_dump()
    RunConfig.load(config_path).apply_to(settings, base_dir=tmp_path)
    assert settings.model_dump() == before
