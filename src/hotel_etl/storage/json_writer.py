"""JSON run-report persistence."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from hotel_etl.bookings.models import RunReport


class JsonReportWriter:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def write(self, report: RunReport, *, filename: str | None = None) -> Path:
        """Write ``report`` as ``run_<id>.json`` (or ``filename``) and return its path."""
        name = filename or f"run_{report.run_id if report.run_id is not None else 'adhoc'}.json"
        path = self.root / name
        serialisable = {
            "generated_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "report": report.to_dict(),
        }
        path.write_text(json.dumps(serialisable, indent=2), encoding="utf-8")
        return path
