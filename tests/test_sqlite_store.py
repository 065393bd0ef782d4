from __future__ import annotations

import sqlite3
from datetime import date

import pytest

from hotel_etl.bookings import RawRecord, RecordValidator, summarize
from hotel_etl.core.errors import StoreWriteError
from hotel_etl.storage import SqliteStore

_SYNCHRONOUS_MAP = {0: "off", 1: "normal", 2: "full", 3: "extra"}


def _records(*rows: dict) -> list[RawRecord]:
    return [RawRecord.from_mapping(row, row_number=index) for index, row in enumerate(rows, start=1)]


def _load(records: list[RawRecord]):
    result = RecordValidator().validate(records)
    return result, summarize(result.accepted)


_FIRST_BATCH = _records(
    {
        "booking_id": "B1",
        "hotel_city": "paris",
        "customer_email": "a@b.com",
        "check_in_date": "2024-01-01",
        "check_out_date": "2024-01-03",
        "total_amount": "100",
    },
    {
        "booking_id": "B2",
        "hotel_city": "rome",
        "check_in_date": "2024-01-02",
        "check_out_date": "2024-01-02",
        "total_amount": "-50",
    },
    {"booking_id": "B3", "check_in_date": None, "check_out_date": "2024-01-02"},
)

_SECOND_BATCH = _records(
    {
        "booking_id": "B9",
        "hotel_city": "oslo",
        "check_in_date": "2024-02-01",
        "check_out_date": "2024-02-04",
        "total_amount": "80",
    },
)


@pytest.mark.asyncio
async def test_sqlite_store_replaces_and_reads_dataset(tmp_path) -> None:
    db_path = tmp_path / "store.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()

    run_id = await store.begin_run(source="memory")
    result, summary = _load(_FIRST_BATCH)
    await store.replace_dataset(run_id, raw_records=_FIRST_BATCH, result=result, summary=summary)
    await store.finalize_run(
        run_id,
        total_records=result.total,
        accepted=len(result.accepted),
        rejected=len(result.rejected),
        rejection_breakdown=result.rejection_breakdown(),
        input_signature="abc",
    )

    assert await store.fetch_bookings() == result.accepted
    rejections = await store.fetch_rejections()
    assert [(item.row_number, item.reason) for item in rejections] == [(3, "missing_check_in")]
    assert rejections[0].raw.booking_id == "B3"
    assert await store.fetch_summary() == summary
    assert await store.dataset_run_id() == run_id

    run = await store.fetch_latest_run()
    assert run is not None
    assert run.status == "complete"
    assert (run.total_records, run.accepted, run.rejected) == (3, 2, 1)
    assert run.rejection_breakdown["missing_check_in"] == 1
    assert run.input_signature == "abc"

    writer_sync_mode = store._require_connection().execute("PRAGMA synchronous").fetchone()[0]
    assert _SYNCHRONOUS_MAP[int(writer_sync_mode)] == "normal"

    await store.close()

    conn = sqlite3.connect(db_path)
    try:
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert journal_mode.lower() == "wal"
        assert conn.execute("SELECT COUNT(*) FROM bronze_bookings").fetchone()[0] == 3
        cur = conn.execute("SELECT booking_id, hotel_city FROM gold_booking_details")
        assert cur.fetchall() == [("B1", "Paris"), ("B2", "Rome")]
        cur = conn.execute("SELECT hotel_city, total_revenue FROM gold_city_revenue ORDER BY position")
        assert cur.fetchall() == [("Paris", 100.0), ("Rome", 50.0)]
    finally:
        conn.close()


@pytest.mark.asyncio
async def test_sqlite_store_custom_pragmas(tmp_path) -> None:
    db_path = tmp_path / "custom.sqlite"
    store = SqliteStore(db_path, journal_mode="delete", synchronous="full")
    await store.initialize()

    writer_sync_mode = store._require_connection().execute("PRAGMA synchronous").fetchone()[0]
    assert _SYNCHRONOUS_MAP[int(writer_sync_mode)] == "full"

    await store.close()

    conn = sqlite3.connect(db_path)
    try:
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        synchronous_mode = conn.execute("PRAGMA synchronous").fetchone()[0]
        assert journal_mode.lower() == "delete"
        assert _SYNCHRONOUS_MAP[int(synchronous_mode)] == "full"
    finally:
        conn.close()


def test_sqlite_store_rejects_unknown_pragmas(tmp_path) -> None:
    with pytest.raises(ValueError):
        SqliteStore(tmp_path / "bad.sqlite", journal_mode="sideways")
    with pytest.raises(ValueError):
        SqliteStore(tmp_path / "bad.sqlite", synchronous="always")


@pytest.mark.asyncio
async def test_uninitialised_store_raises(tmp_path) -> None:
    store = SqliteStore(tmp_path / "never.sqlite")
    with pytest.raises(RuntimeError):
        await store.fetch_bookings()


@pytest.mark.asyncio
async def test_failed_replace_keeps_previous_dataset(tmp_path, monkeypatch) -> None:
    store = SqliteStore(tmp_path / "atomic.sqlite")
    await store.initialize()

    first_run = await store.begin_run(source="memory")
    result, summary = _load(_FIRST_BATCH)
    await store.replace_dataset(first_run, raw_records=_FIRST_BATCH, result=result, summary=summary)

    def _boom(conn, summary) -> None:
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_write_summary", _boom)
    second_run = await store.begin_run(source="memory")
    new_result, new_summary = _load(_SECOND_BATCH)
    with pytest.raises(StoreWriteError):
        await store.replace_dataset(
            second_run, raw_records=_SECOND_BATCH, result=new_result, summary=new_summary
        )

    assert await store.fetch_bookings() == result.accepted
    assert await store.fetch_summary() == summary
    assert len(await store.fetch_rejections()) == 1
    assert await store.dataset_run_id() == first_run

    await store.close()


@pytest.mark.asyncio
async def test_recompute_summary_from_silver(tmp_path) -> None:
    db_path = tmp_path / "recompute.sqlite"
    store = SqliteStore(db_path)
    await store.initialize()

    run_id = await store.begin_run(source=None)
    result, summary = _load(_FIRST_BATCH)
    await store.replace_dataset(run_id, raw_records=_FIRST_BATCH, result=result, summary=summary)

    conn = store._require_connection()
    with conn:
        conn.execute("DELETE FROM gold_daily_revenue")

    refreshed = await store.recompute_summary()
    assert refreshed == summary
    assert await store.fetch_summary() == summary
    assert refreshed.daily_revenue[0].check_in_date == date(2024, 1, 2)

    await store.close()


@pytest.mark.asyncio
async def test_run_ledger_tracks_failures_and_supersedes(tmp_path) -> None:
    store = SqliteStore(tmp_path / "ledger.sqlite")
    await store.initialize()

    stale = await store.begin_run(source="a.csv")
    fresh = await store.begin_run(source="a.csv")
    other = await store.begin_run(source="b.csv")

    stale_run = await store.fetch_run(stale)
    assert stale_run is not None
    assert stale_run.status == "failed"
    assert stale_run.failure_reason == "Superseded by new run"

    await store.mark_run_failed(other, "boom")
    failed = await store.fetch_latest_run(status="failed")
    assert failed is not None and failed.id == other
    assert failed.failure_reason == "boom"

    running = await store.fetch_latest_run(status="running")
    assert running is not None and running.id == fresh
    assert await store.fetch_run(9999) is None

    await store.close()
