"""Logging helpers."""
from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str, log_dir: Path, *, filename: str = "pipeline.log") -> Path:
    """Route pipeline logs to stderr and ``log_dir/filename``; return the log path."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / filename

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_path, encoding="utf-8"),
        ],
        force=True,
    )
    logging.captureWarnings(True)
    return log_path
