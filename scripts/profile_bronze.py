"""Profile a raw booking extract before loading it."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from hotel_etl.analysis.profile import format_report, profile_records
from hotel_etl.config.settings import Settings
from hotel_etl.core.errors import SourceUnavailableError
from hotel_etl.sources import CsvRecordSource


def main() -> int:
    parser = argparse.ArgumentParser(description="Summarize data quality issues in a raw booking CSV")
    parser.add_argument("--source", type=Path, required=True, help="CSV file with raw booking rows")
    parser.add_argument("--top", type=int, default=10, help="How many values to show per distribution")
    parser.add_argument("--json", action="store_true", help="Emit the profile as JSON")
    args = parser.parse_args()

    settings = Settings()
    source = CsvRecordSource(args.source, null_markers=settings.csv_null_markers)
    try:
        records = source.read()
    except SourceUnavailableError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    report = profile_records(records, date_formats=settings.date_formats)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report, top=args.top))
    return 0


if __name__ == "__main__":
    sys.exit(main())
