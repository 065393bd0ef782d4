"""Pipeline orchestrator: Source -> Normalise/Validate -> Store swap -> Aggregate."""
from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Iterable, Optional, Protocol, Sequence

from hotel_etl.bookings.aggregator import summarize
from hotel_etl.bookings.models import RawRecord, RunReport, SummaryFacts
from hotel_etl.bookings.normalizer import FieldNormalizer
from hotel_etl.bookings.validator import RecordValidator, ValidationResult
from hotel_etl.config.settings import Settings
from hotel_etl.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


class RecordSource(Protocol):
    def read(self) -> Sequence[RawRecord]: ...


def input_signature(records: Iterable[RawRecord]) -> str:
    """Stable digest of the raw input, used to spot identical reruns."""
    digest = hashlib.sha1()
    for record in records:
        payload = json.dumps([record.row_number, record.to_dict()], separators=(",", ":"), sort_keys=True)
        digest.update(payload.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


def process_records(
    records: Iterable[RawRecord],
    validator: Optional[RecordValidator] = None,
) -> tuple[ValidationResult, SummaryFacts]:
    """Run the in-memory core: validate every record and aggregate the accepted ones."""
    validator = validator or RecordValidator()
    result = validator.validate(records)
    return result, summarize(result.accepted)


class BookingPipeline:
    """Coordinates one batch run against a :class:`SqliteStore`."""

    def __init__(self, store: SqliteStore, *, validator: Optional[RecordValidator] = None) -> None:
        self.store = store
        self.validator = validator or RecordValidator()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BookingPipeline":
        store = SqliteStore(
            settings.sqlite_path,
            busy_timeout_ms=settings.sqlite_busy_timeout_ms,
            journal_mode=settings.sqlite_journal_mode,
            synchronous=settings.sqlite_synchronous,
        )
        validator = RecordValidator(FieldNormalizer(settings.normalization_rules()))
        return cls(store, validator=validator)

    async def run(self, source: RecordSource, *, source_label: Optional[str] = None) -> RunReport:
        """Execute a full run.

        The store is swapped only after every record has been processed. Any
        failure marks the run as failed, leaves the previous dataset in place
        and propagates.
        """
        start_time = time.perf_counter()
        await self.store.initialize()
        run_id = await self.store.begin_run(source=source_label)
        logger.info("Started run %s (source=%s)", run_id, source_label or "<memory>")

        try:
            raw_records = list(source.read())
            result, summary = process_records(raw_records, self.validator)
            breakdown = result.rejection_breakdown()
            await self.store.replace_dataset(
                run_id,
                raw_records=raw_records,
                result=result,
                summary=summary,
                input_signature=input_signature(raw_records),
            )
        except Exception as exc:
            logger.error("Run %s failed: %s", run_id, exc)
            await self.store.mark_run_failed(run_id, str(exc))
            raise

        report = RunReport(
            run_id=run_id,
            total_records=result.total,
            accepted=len(result.accepted),
            rejected=len(result.rejected),
            rejection_breakdown=breakdown,
            summary=summary,
            rejections=list(result.rejected),
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        logger.info(
            "Run %s complete: %s records, %s accepted, %s rejected",
            run_id,
            report.total_records,
            report.accepted,
            report.rejected,
        )
        for reason, count in breakdown.items():
            if count:
                logger.info("  rejected %-24s %s", reason, count)
        return report

    async def close(self) -> None:
        await self.store.close()


__all__ = ["BookingPipeline", "RecordSource", "input_signature", "process_records"]
