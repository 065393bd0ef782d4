"""Raw record sources."""

from .csv_source import DEFAULT_NULL_MARKERS, CsvRecordSource, IterableRecordSource

__all__ = [
    "DEFAULT_NULL_MARKERS",
    "CsvRecordSource",
    "IterableRecordSource",
]
