"""Entry point for manual pipeline runs."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from hotel_etl.config.run_config import RunConfig
from hotel_etl.config.settings import Settings
from hotel_etl.core.errors import PipelineError
from hotel_etl.core.logging import configure_logging
from hotel_etl.pipeline import BookingPipeline
from hotel_etl.sources import CsvRecordSource
from hotel_etl.storage import JsonReportWriter


async def run(settings: Settings) -> int:
    if settings.source_path is None:
        raise PipelineError("No source configured; pass --source or set HOTEL_ETL_SOURCE_PATH")

    source = CsvRecordSource(settings.source_path, null_markers=settings.csv_null_markers)
    pipeline = BookingPipeline.from_settings(settings)
    try:
        report = await pipeline.run(source, source_label=str(settings.source_path))
    finally:
        await pipeline.close()

    writer = JsonReportWriter(settings.report_dir)
    path = writer.write(report)
    logging.info("Wrote run report to %s", path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cleanse raw hotel bookings and rebuild the summary views")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=(
            "Path to a TOML run configuration file "
            "(defaults to config/run_config.toml when present)"
        ),
    )
    parser.add_argument(
        "--no-config",
        action="store_true",
        help="Ignore config/run_config.toml even if it exists",
    )
    parser.add_argument("--source", type=Path, default=None, help="CSV file with raw booking rows")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database for the typed store")
    parser.add_argument(
        "--override",
        action="append",
        metavar="KEY=VALUE",
        help="Override a Settings attribute (repeatable). Values accept JSON literals.",
    )
    return parser


def _decode_override(value: str) -> object:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _apply_overrides(settings: Settings, overrides: dict[str, object]) -> None:
    for key, raw in overrides.items():
        if key not in Settings.model_fields:
            logging.getLogger(__name__).warning("Ignoring unknown override '%s'", key)
            continue
        setattr(settings, key, raw)
        logging.getLogger(__name__).info("Override: set %s=%r", key, raw)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings()
    config_path: Optional[Path] = None
    run_config: Optional[RunConfig] = None
    overrides: dict[str, object] = {}

    if not args.no_config:
        if args.config:
            config_path = args.config
            if not config_path.exists():
                parser.error(f"Config file not found: {config_path}")
        else:
            default_path = Path("config/run_config.toml")
            if default_path.exists():
                config_path = default_path

    if config_path:
        run_config = RunConfig.load(config_path)
        run_config.apply_to(settings, base_dir=config_path.parent)

    if args.override:
        for entry in args.override:
            if "=" not in entry:
                parser.error(f"Override must be in KEY=VALUE form (got '{entry}')")
            key, value = entry.split("=", 1)
            overrides[key.strip()] = _decode_override(value.strip())

    if args.source:
        settings.source_path = args.source
    if args.db:
        settings.sqlite_path = args.db

    if overrides:
        _apply_overrides(settings, overrides)
    configure_logging(settings.log_level, settings.log_dir)
    settings.ensure_directories()

    if run_config:
        suffix = f" ({run_config.title})" if run_config.title else ""
        logging.getLogger(__name__).info(
            "Loaded run profile '%s'%s from %s", run_config.profile, suffix, config_path
        )
        if run_config.notes:
            logging.getLogger(__name__).info("Profile notes: %s", run_config.notes)
    else:
        logging.getLogger(__name__).info(
            "Running with environment-based settings (no run_config applied)"
        )

    try:
        return asyncio.run(run(settings))
    except PipelineError as exc:
        logging.getLogger(__name__).error("Pipeline run aborted: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
