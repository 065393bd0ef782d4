"""SQLite-backed typed record store for the Bronze, Silver and Gold layers."""
from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from hotel_etl.bookings.aggregator import summarize
from hotel_etl.bookings.models import (
    RAW_FIELDS,
    CityRevenue,
    DailyBookingCount,
    DailyRevenue,
    RawRecord,
    RejectedRecord,
    SummaryFacts,
    TypedBooking,
)
from hotel_etl.bookings.validator import ValidationResult
from hotel_etl.core.errors import StoreWriteError

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
SCHEMA_VERSION = 1

VALID_JOURNAL_MODES = frozenset({"delete", "truncate", "persist", "memory", "wal", "off"})
VALID_SYNCHRONOUS_MODES = frozenset({"off", "normal", "full", "extra"})

_SILVER_COLUMNS = (
    "booking_id",
    "hotel_id",
    "hotel_city",
    "customer_id",
    "customer_name",
    "customer_email",
    "check_in_date",
    "check_out_date",
    "room_type",
    "num_guests",
    "total_amount",
    "currency",
    "booking_status",
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


@dataclass(frozen=True)
class PipelineRunRecord:
    """Lightweight view of a pipeline run row."""

    id: int
    source: str | None
    status: str
    started_at: str
    updated_at: str
    completed_at: str | None
    failure_reason: str | None
    total_records: int
    accepted: int
    rejected: int
    input_signature: str | None
    rejection_breakdown: dict[str, int] = field(default_factory=dict)


logger = logging.getLogger(__name__)


class SqliteStore:
    """Thin async wrapper over sqlite3 holding the pipeline's datasets.

    ``replace_dataset`` swaps Bronze, Silver, the rejected sink and the Gold
    facts inside a single transaction, so readers never observe a mix of two
    runs.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = 2000,
        journal_mode: str | None = "wal",
        synchronous: str | None = "normal",
    ) -> None:
        self._path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = self._normalize_journal_mode(journal_mode)
        self._synchronous = self._normalize_synchronous(synchronous)
        self._connection: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # lifecycle

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        async with self._lock:
            if self._connection is None:
                conn = await asyncio.to_thread(self._open_connection)
                self._connection = conn

    async def close(self) -> None:
        if self._connection is None:
            return
        conn = self._connection
        self._connection = None
        await asyncio.to_thread(conn.close)

    def _open_connection(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.execute(f"PRAGMA busy_timeout = {int(max(self._busy_timeout_ms, 0))};")
        if self._journal_mode:
            conn.execute(f"PRAGMA journal_mode = {self._journal_mode.upper()};")
        if self._synchronous:
            conn.execute(f"PRAGMA synchronous = {self._synchronous.upper()};")
        try:
            self._apply_migrations(conn)
        except sqlite3.OperationalError as exc:
            conn.close()
            logger.error(
                "SQLite migration failed (path=%s, timeout_ms=%s): %s",
                self._path,
                self._busy_timeout_ms,
                exc,
            )
            raise
        return conn

    @staticmethod
    def _normalize_journal_mode(value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if not mode:
            return None
        if mode not in VALID_JOURNAL_MODES:
            raise ValueError(
                f"Unsupported SQLite journal_mode '{value}'. Expected one of: {sorted(VALID_JOURNAL_MODES)}"
            )
        return mode

    @staticmethod
    def _normalize_synchronous(value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if not mode:
            return None
        if mode not in VALID_SYNCHRONOUS_MODES:
            raise ValueError(
                f"Unsupported SQLite synchronous mode '{value}'. Expected one of: {sorted(VALID_SYNCHRONOUS_MODES)}"
            )
        return mode

    def _apply_migrations(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        current = self._get_meta_int(conn, "schema_version")
        if current >= SCHEMA_VERSION:
            return
        for version in range(current + 1, SCHEMA_VERSION + 1):
            script = MIGRATIONS.get(version)
            if not script:
                raise RuntimeError(f"Missing migration script for version {version}")
            conn.executescript(script)
            self._set_meta(conn, "schema_version", str(version))
        conn.commit()

    @staticmethod
    def _get_meta_int(conn: sqlite3.Connection, key: str) -> int:
        row = conn.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        if not row:
            return 0
        try:
            return int(row[0])
        except (TypeError, ValueError):
            return 0

    @staticmethod
    def _set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO meta(key, value) VALUES(?, ?)\n"
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )

    def _require_connection(self) -> sqlite3.Connection:
        if not self._connection:
            raise RuntimeError("SQLite store has not been initialised")
        return self._connection

    def _row_to_run(self, row: Sequence[Any]) -> PipelineRunRecord:
        breakdown_raw = row[11]
        return PipelineRunRecord(
            id=int(row[0]),
            source=row[1],
            status=row[2],
            started_at=row[3],
            updated_at=row[4],
            completed_at=row[5],
            failure_reason=row[6],
            total_records=int(row[7] or 0),
            accepted=int(row[8] or 0),
            rejected=int(row[9] or 0),
            input_signature=row[10],
            rejection_breakdown=json.loads(breakdown_raw) if breakdown_raw else {},
        )

    # ------------------------------------------------------------------
    # run orchestration

    async def begin_run(self, *, source: str | None) -> int:
        """Record a new pipeline run and return its identifier."""

        def _op() -> int:
            conn = self._require_connection()
            now = _utc_now()
            with conn:
                conn.execute(
                    """
                    UPDATE pipeline_runs
                    SET status='failed', failure_reason='Superseded by new run', updated_at=?
                    WHERE source IS ? AND status='running'
                    """,
                    (now, source),
                )
                cursor = conn.execute(
                    """
                    INSERT INTO pipeline_runs(source, status, started_at, updated_at)
                    VALUES(?, 'running', ?, ?)
                    """,
                    (source, now, now),
                )
                return int(cursor.lastrowid)

        async with self._lock:
            return await asyncio.to_thread(_op)

    @staticmethod
    def _complete_run(
        conn: sqlite3.Connection,
        run_id: int,
        *,
        total_records: int,
        accepted: int,
        rejected: int,
        rejection_breakdown: dict[str, int],
        input_signature: str | None,
    ) -> None:
        now = _utc_now()
        conn.execute(
            """
            UPDATE pipeline_runs
            SET status='complete',
                completed_at=?,
                updated_at=?,
                total_records=?,
                accepted=?,
                rejected=?,
                rejection_breakdown=?,
                input_signature=?
            WHERE id=?
            """,
            (
                now,
                now,
                total_records,
                accepted,
                rejected,
                _json_dumps(rejection_breakdown),
                input_signature,
                run_id,
            ),
        )

    async def finalize_run(
        self,
        run_id: int,
        *,
        total_records: int,
        accepted: int,
        rejected: int,
        rejection_breakdown: dict[str, int],
        input_signature: str | None = None,
    ) -> None:
        def _op() -> None:
            conn = self._require_connection()
            with conn:
                self._complete_run(
                    conn,
                    run_id,
                    total_records=total_records,
                    accepted=accepted,
                    rejected=rejected,
                    rejection_breakdown=rejection_breakdown,
                    input_signature=input_signature,
                )

        async with self._lock:
            await asyncio.to_thread(_op)

    async def mark_run_failed(self, run_id: int, reason: str) -> None:
        def _op() -> None:
            conn = self._require_connection()
            now = _utc_now()
            with conn:
                conn.execute(
                    """
                    UPDATE pipeline_runs
                    SET status='failed', completed_at=?, updated_at=?, failure_reason=?
                    WHERE id=?
                    """,
                    (now, now, reason[:512], run_id),
                )

        async with self._lock:
            await asyncio.to_thread(_op)

    async def fetch_run(self, run_id: int) -> PipelineRunRecord | None:
        def _op() -> PipelineRunRecord | None:
            conn = self._require_connection()
            row = conn.execute(f"{_RUN_SELECT} WHERE id=?", (run_id,)).fetchone()
            return self._row_to_run(row) if row else None

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def fetch_latest_run(self, *, status: str | None = None) -> PipelineRunRecord | None:
        def _op() -> PipelineRunRecord | None:
            conn = self._require_connection()
            if status:
                cursor = conn.execute(
                    f"{_RUN_SELECT} WHERE status=? ORDER BY id DESC LIMIT 1",
                    (status,),
                )
            else:
                cursor = conn.execute(f"{_RUN_SELECT} ORDER BY id DESC LIMIT 1")
            row = cursor.fetchone()
            return self._row_to_run(row) if row else None

        async with self._lock:
            return await asyncio.to_thread(_op)

    # ------------------------------------------------------------------
    # dataset replacement

    async def replace_dataset(
        self,
        run_id: int,
        *,
        raw_records: Sequence[RawRecord],
        result: ValidationResult,
        summary: SummaryFacts,
        input_signature: str | None = None,
    ) -> None:
        """Atomically replace every layer with the output of ``run_id``.

        The run is marked complete in the same transaction, so a committed
        dataset always belongs to a completed run.

        Raises:
            StoreWriteError: if any statement fails; the previous dataset is kept.
        """

        def _op() -> None:
            conn = self._require_connection()
            try:
                with conn:
                    self._write_bronze(conn, raw_records)
                    self._write_silver(conn, result.accepted)
                    self._write_rejections(conn, result.rejected)
                    self._write_summary(conn, summary)
                    self._set_meta(conn, "dataset_run_id", str(run_id))
                    self._complete_run(
                        conn,
                        run_id,
                        total_records=result.total,
                        accepted=len(result.accepted),
                        rejected=len(result.rejected),
                        rejection_breakdown=result.rejection_breakdown(),
                        input_signature=input_signature,
                    )
            except sqlite3.Error as exc:
                logger.error("Dataset replacement for run %s rolled back: %s", run_id, exc)
                raise StoreWriteError(f"Unable to replace dataset for run {run_id}: {exc}") from exc
            logger.info(
                "Replaced dataset for run %s (%s bronze, %s silver, %s rejected)",
                run_id,
                len(raw_records),
                len(result.accepted),
                len(result.rejected),
            )

        async with self._lock:
            await asyncio.to_thread(_op)

    def _write_bronze(self, conn: sqlite3.Connection, raw_records: Sequence[RawRecord]) -> None:
        conn.execute("DELETE FROM bronze_bookings")
        rows = [
            (record.row_number, *(getattr(record, name) for name in RAW_FIELDS))
            for record in raw_records
        ]
        if rows:
            conn.executemany(
                f"INSERT INTO bronze_bookings(row_number, {', '.join(RAW_FIELDS)}) "
                f"VALUES ({_placeholders(len(RAW_FIELDS) + 1)})",
                rows,
            )

    def _write_silver(self, conn: sqlite3.Connection, bookings: Sequence[TypedBooking]) -> None:
        conn.execute("DELETE FROM silver_bookings")
        rows = []
        for position, booking in enumerate(bookings):
            rows.append(
                (
                    position,
                    booking.booking_id,
                    booking.hotel_id,
                    booking.hotel_city,
                    booking.customer_id,
                    booking.customer_name,
                    booking.customer_email,
                    booking.check_in_date.isoformat(),
                    booking.check_out_date.isoformat(),
                    booking.room_type,
                    booking.num_guests,
                    booking.total_amount,
                    booking.currency,
                    booking.booking_status,
                )
            )
        if rows:
            conn.executemany(
                f"INSERT INTO silver_bookings(position, {', '.join(_SILVER_COLUMNS)}) "
                f"VALUES ({_placeholders(len(_SILVER_COLUMNS) + 1)})",
                rows,
            )

    def _write_rejections(self, conn: sqlite3.Connection, rejections: Sequence[RejectedRecord]) -> None:
        conn.execute("DELETE FROM rejected_bookings")
        rows = [
            (position, rejection.row_number, rejection.reason, _json_dumps(rejection.raw.to_dict()))
            for position, rejection in enumerate(rejections)
        ]
        if rows:
            conn.executemany(
                "INSERT INTO rejected_bookings(position, row_number, reason, raw_json) VALUES (?, ?, ?, ?)",
                rows,
            )

    def _write_summary(self, conn: sqlite3.Connection, summary: SummaryFacts) -> None:
        conn.execute("DELETE FROM gold_daily_bookings")
        conn.execute("DELETE FROM gold_daily_revenue")
        conn.execute("DELETE FROM gold_city_revenue")
        conn.executemany(
            "INSERT INTO gold_daily_bookings(position, check_in_date, total_bookings) VALUES (?, ?, ?)",
            [
                (position, row.check_in_date.isoformat(), row.total_bookings)
                for position, row in enumerate(summary.daily_bookings)
            ],
        )
        conn.executemany(
            "INSERT INTO gold_daily_revenue(position, check_in_date, total_revenue) VALUES (?, ?, ?)",
            [
                (position, row.check_in_date.isoformat(), row.total_revenue)
                for position, row in enumerate(summary.daily_revenue)
            ],
        )
        conn.executemany(
            "INSERT INTO gold_city_revenue(position, hotel_city, total_revenue) VALUES (?, ?, ?)",
            [
                (position, row.hotel_city, row.total_revenue)
                for position, row in enumerate(summary.city_revenue)
            ],
        )

    # ------------------------------------------------------------------
    # queries

    def _read_bookings(self, conn: sqlite3.Connection) -> list[TypedBooking]:
        cursor = conn.execute(
            f"SELECT {', '.join(_SILVER_COLUMNS)} FROM silver_bookings ORDER BY position"
        )
        bookings: list[TypedBooking] = []
        for row in cursor.fetchall():
            bookings.append(
                TypedBooking(
                    booking_id=row[0],
                    hotel_id=row[1],
                    hotel_city=row[2],
                    customer_id=row[3],
                    customer_name=row[4],
                    customer_email=row[5],
                    check_in_date=date.fromisoformat(row[6]),
                    check_out_date=date.fromisoformat(row[7]),
                    room_type=row[8],
                    num_guests=row[9],
                    total_amount=row[10],
                    currency=row[11],
                    booking_status=row[12],
                )
            )
        return bookings

    async def fetch_bookings(self) -> list[TypedBooking]:
        def _op() -> list[TypedBooking]:
            return self._read_bookings(self._require_connection())

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def fetch_rejections(self) -> list[RejectedRecord]:
        def _op() -> list[RejectedRecord]:
            conn = self._require_connection()
            cursor = conn.execute(
                "SELECT row_number, reason, raw_json FROM rejected_bookings ORDER BY position"
            )
            return [
                RejectedRecord(
                    row_number=int(row[0]),
                    reason=row[1],
                    raw=RawRecord.from_mapping(json.loads(row[2]), row_number=int(row[0])),
                )
                for row in cursor.fetchall()
            ]

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def fetch_summary(self) -> SummaryFacts:
        """Read the materialised Gold facts in their stored order."""

        def _op() -> SummaryFacts:
            conn = self._require_connection()
            daily_bookings = tuple(
                DailyBookingCount(check_in_date=date.fromisoformat(row[0]), total_bookings=int(row[1]))
                for row in conn.execute(
                    "SELECT check_in_date, total_bookings FROM gold_daily_bookings ORDER BY position"
                )
            )
            daily_revenue = tuple(
                DailyRevenue(check_in_date=date.fromisoformat(row[0]), total_revenue=float(row[1]))
                for row in conn.execute(
                    "SELECT check_in_date, total_revenue FROM gold_daily_revenue ORDER BY position"
                )
            )
            city_revenue = tuple(
                CityRevenue(hotel_city=row[0], total_revenue=float(row[1]))
                for row in conn.execute(
                    "SELECT hotel_city, total_revenue FROM gold_city_revenue ORDER BY position"
                )
            )
            return SummaryFacts(
                daily_bookings=daily_bookings,
                daily_revenue=daily_revenue,
                city_revenue=city_revenue,
            )

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def recompute_summary(self) -> SummaryFacts:
        """Re-derive the Gold facts from Silver and rewrite them atomically."""

        def _op() -> SummaryFacts:
            conn = self._require_connection()
            try:
                with conn:
                    summary = summarize(self._read_bookings(conn))
                    self._write_summary(conn, summary)
            except sqlite3.Error as exc:
                raise StoreWriteError(f"Unable to refresh summary facts: {exc}") from exc
            return summary

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def dataset_run_id(self) -> int | None:
        """Identifier of the run whose output is currently loaded, if any."""

        def _op() -> int | None:
            value = self._get_meta_int(self._require_connection(), "dataset_run_id")
            return value or None

        async with self._lock:
            return await asyncio.to_thread(_op)


_RUN_SELECT = """
    SELECT id, source, status, started_at, updated_at, completed_at, failure_reason,
           total_records, accepted, rejected, input_signature, rejection_breakdown
    FROM pipeline_runs
"""


MIGRATIONS: dict[int, str] = {
    1: """
        CREATE TABLE IF NOT EXISTS pipeline_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source TEXT,
            status TEXT NOT NULL,
            started_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            completed_at TEXT,
            failure_reason TEXT,
            total_records INTEGER DEFAULT 0,
            accepted INTEGER DEFAULT 0,
            rejected INTEGER DEFAULT 0,
            rejection_breakdown TEXT,
            input_signature TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_pipeline_runs_source ON pipeline_runs(source);
        CREATE INDEX IF NOT EXISTS idx_pipeline_runs_status ON pipeline_runs(status);

        CREATE TABLE IF NOT EXISTS bronze_bookings (
            row_number INTEGER NOT NULL,
            booking_id TEXT,
            hotel_id TEXT,
            hotel_city TEXT,
            customer_id TEXT,
            customer_name TEXT,
            customer_email TEXT,
            check_in_date TEXT,
            check_out_date TEXT,
            room_type TEXT,
            num_guests TEXT,
            total_amount TEXT,
            currency TEXT,
            booking_status TEXT
        );

        CREATE TABLE IF NOT EXISTS silver_bookings (
            position INTEGER PRIMARY KEY,
            booking_id TEXT,
            hotel_id INTEGER,
            hotel_city TEXT,
            customer_id TEXT,
            customer_name TEXT,
            customer_email TEXT NOT NULL,
            check_in_date TEXT NOT NULL,
            check_out_date TEXT NOT NULL,
            room_type TEXT,
            num_guests INTEGER,
            total_amount REAL,
            currency TEXT,
            booking_status TEXT,
            CHECK (check_out_date >= check_in_date)
        );
        CREATE INDEX IF NOT EXISTS idx_silver_check_in ON silver_bookings(check_in_date);
        CREATE INDEX IF NOT EXISTS idx_silver_city ON silver_bookings(hotel_city);

        CREATE TABLE IF NOT EXISTS rejected_bookings (
            position INTEGER PRIMARY KEY,
            row_number INTEGER NOT NULL,
            reason TEXT NOT NULL,
            raw_json TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_rejected_reason ON rejected_bookings(reason);

        CREATE TABLE IF NOT EXISTS gold_daily_bookings (
            position INTEGER PRIMARY KEY,
            check_in_date TEXT NOT NULL,
            total_bookings INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS gold_daily_revenue (
            position INTEGER PRIMARY KEY,
            check_in_date TEXT NOT NULL,
            total_revenue REAL NOT NULL
        );

        CREATE TABLE IF NOT EXISTS gold_city_revenue (
            position INTEGER PRIMARY KEY,
            hotel_city TEXT,
            total_revenue REAL NOT NULL
        );

        CREATE VIEW IF NOT EXISTS gold_booking_details AS
            SELECT booking_id, hotel_id, hotel_city, customer_id, customer_name, customer_email,
                   check_in_date, check_out_date, room_type, num_guests, total_amount, currency,
                   booking_status
            FROM silver_bookings
            ORDER BY position;
    """,
}
