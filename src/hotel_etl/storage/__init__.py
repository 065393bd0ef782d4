"""Persistence for pipeline datasets and run reports."""

from .json_writer import JsonReportWriter
from .sqlite_store import PipelineRunRecord, SqliteStore

__all__ = [
    "JsonReportWriter",
    "PipelineRunRecord",
    "SqliteStore",
]
