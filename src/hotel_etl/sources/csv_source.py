"""Raw record sources: delimited files and in-memory mappings."""
from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional

from hotel_etl.bookings.models import RAW_FIELDS, RawRecord
from hotel_etl.core.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_NULL_MARKERS: tuple[str, ...] = ("NULL", "null", "")


class CsvRecordSource:
    """Reads booking rows from a CSV file with a header row.

    Cells equal to one of ``null_markers`` become ``None``. Header names are
    matched case-insensitively after trimming; columns outside the booking
    schema are ignored and absent columns read as ``None``.
    """

    def __init__(
        self,
        path: Path,
        *,
        null_markers: Iterable[str] = DEFAULT_NULL_MARKERS,
        delimiter: str = ",",
        encoding: str = "utf-8",
    ) -> None:
        self._path = path
        self._null_markers = frozenset(null_markers)
        self._delimiter = delimiter
        self._encoding = encoding

    @property
    def path(self) -> Path:
        return self._path

    def _cell(self, value: Optional[str]) -> Optional[str]:
        if value is None or value in self._null_markers:
            return None
        return value

    def read(self) -> List[RawRecord]:
        """Read every row; raises :class:`SourceUnavailableError` on I/O or CSV errors."""
        if not self._path.is_file():
            raise SourceUnavailableError(f"Source file not found: {self._path}")
        try:
            with self._path.open("r", encoding=self._encoding, newline="") as handle:
                reader = csv.reader(handle, delimiter=self._delimiter, quotechar='"')
                header = next(reader, None)
                if header is None:
                    logger.warning("Source %s is empty", self._path)
                    return []
                columns = [name.strip().lower() for name in header]
                unknown = [name for name in columns if name not in RAW_FIELDS]
                if unknown:
                    logger.info("Ignoring unknown source columns: %s", ", ".join(unknown))
                records: List[RawRecord] = []
                for row_number, row in enumerate(reader, start=1):
                    if not row:
                        continue
                    data = {
                        name: self._cell(row[index]) if index < len(row) else None
                        for index, name in enumerate(columns)
                    }
                    records.append(RawRecord.from_mapping(data, row_number=row_number))
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise SourceUnavailableError(f"Unable to read source {self._path}: {exc}") from exc
        logger.info("Read %s raw records from %s", len(records), self._path)
        return records

    def __iter__(self) -> Iterator[RawRecord]:
        return iter(self.read())


class IterableRecordSource:
    """Wraps already-loaded mappings so they can feed the pipeline."""

    def __init__(self, rows: Iterable[Mapping[str, Any]]) -> None:
        self._rows = list(rows)

    def read(self) -> List[RawRecord]:
        return [
            row if isinstance(row, RawRecord) else RawRecord.from_mapping(row, row_number=index)
            for index, row in enumerate(self._rows, start=1)
        ]

    def __iter__(self) -> Iterator[RawRecord]:
        return iter(self.read())
