from __future__ import annotations

import json
import sqlite3
from datetime import date

import pytest

from hotel_etl.bookings import RawRecord, RunReport
from hotel_etl.config.settings import Settings
from hotel_etl.core.errors import SourceUnavailableError, StoreWriteError
from hotel_etl.pipeline import BookingPipeline, input_signature, process_records
from hotel_etl.sources import CsvRecordSource, IterableRecordSource
from hotel_etl.storage import JsonReportWriter, SqliteStore

_CSV = (
    "booking_id,hotel_id,hotel_city,customer_id,customer_name,customer_email,"
    "check_in_date,check_out_date,room_type,num_guests,total_amount,currency,booking_status\n"
    "B1,101,new york,C1,jane doe,Jane@Example.com,2024-03-01,2024-03-04,deluxe,2,450.00,usd,confirmed\n"
    "B2,abc,NEW YORK,C2,john smith,invalid-email,2024-03-01,2024-03-02,standard,0,-120.5,usd,confirmeeed\n"
    "B3,102,boston,C3,amy lee,amy@lee.io,NULL,2024-03-05,suite,1,300,usd,Cancelled\n"
    "B4,103,boston,C4,bo chan,bo@chan.net,2024-03-06,2024-03-05,suite,1,200,usd,confirmd\n"
    "B5,104,,C5,kim park,kim@park.kr,03/02/2024,03/03/2024,standard,3,0,krw,pending\n"
)

_TABLES = (
    "bronze_bookings",
    "silver_bookings",
    "rejected_bookings",
    "gold_daily_bookings",
    "gold_daily_revenue",
    "gold_city_revenue",
)


def _dump_tables(db_path) -> dict[str, list[tuple]]:
    conn = sqlite3.connect(db_path)
    try:
        return {table: conn.execute(f"SELECT * FROM {table} ORDER BY 1").fetchall() for table in _TABLES}
    finally:
        conn.close()


def _pipeline(tmp_path) -> BookingPipeline:
    settings = Settings(sqlite_path=tmp_path / "bookings.sqlite3", report_dir=tmp_path / "reports")
    return BookingPipeline.from_settings(settings)


@pytest.mark.asyncio
async def test_pipeline_end_to_end(tmp_path) -> None:
    csv_path = tmp_path / "bookings.csv"
    csv_path.write_text(_CSV, encoding="utf-8")
    pipeline = _pipeline(tmp_path)

    report = await pipeline.run(CsvRecordSource(csv_path), source_label=str(csv_path))

    assert report.total_records == 5
    assert report.accepted == 3
    assert report.rejected == 2
    assert report.rejection_breakdown == {
        "missing_check_in": 1,
        "missing_check_out": 0,
        "checkout_before_checkin": 1,
    }

    bookings = await pipeline.store.fetch_bookings()
    assert [booking.booking_id for booking in bookings] == ["B1", "B2", "B5"]
    degraded = bookings[1]
    assert degraded.hotel_id is None
    assert degraded.hotel_city == "New York"
    assert degraded.customer_email == "unknown"
    assert degraded.num_guests is None
    assert degraded.total_amount == 120.5
    assert degraded.booking_status == "Confirmed"
    assert bookings[2].check_in_date == date(2024, 3, 2)
    assert bookings[2].total_amount is None
    assert bookings[2].hotel_city is None

    summary = report.summary
    assert [(row.check_in_date, row.total_bookings) for row in summary.daily_bookings] == [
        (date(2024, 3, 2), 1),
        (date(2024, 3, 1), 2),
    ]
    assert [(row.check_in_date, row.total_revenue) for row in summary.daily_revenue] == [
        (date(2024, 3, 2), 0.0),
        (date(2024, 3, 1), 570.5),
    ]
    assert [(row.hotel_city, row.total_revenue) for row in summary.city_revenue] == [
        ("New York", 570.5),
        (None, 0.0),
    ]
    assert await pipeline.store.fetch_summary() == summary

    run = await pipeline.store.fetch_latest_run()
    assert run is not None and run.id == report.run_id
    assert run.status == "complete"
    assert run.input_signature == input_signature(CsvRecordSource(csv_path).read())

    await pipeline.close()


@pytest.mark.asyncio
async def test_pipeline_rerun_is_idempotent(tmp_path) -> None:
    csv_path = tmp_path / "bookings.csv"
    csv_path.write_text(_CSV, encoding="utf-8")
    db_path = tmp_path / "bookings.sqlite3"

    pipeline = _pipeline(tmp_path)
    first = await pipeline.run(CsvRecordSource(csv_path))
    await pipeline.close()
    first_tables = _dump_tables(db_path)

    pipeline = _pipeline(tmp_path)
    second = await pipeline.run(CsvRecordSource(csv_path))
    await pipeline.close()

    assert _dump_tables(db_path) == first_tables
    assert second.summary == first.summary
    assert second.rejection_breakdown == first.rejection_breakdown
    assert second.run_id != first.run_id


@pytest.mark.asyncio
async def test_unavailable_source_marks_run_failed(tmp_path) -> None:
    db_path = tmp_path / "bookings.sqlite3"
    pipeline = _pipeline(tmp_path)
    await pipeline.run(IterableRecordSource([{"check_in_date": "2024-01-01", "check_out_date": "2024-01-02"}]))

    with pytest.raises(SourceUnavailableError):
        await pipeline.run(CsvRecordSource(tmp_path / "missing.csv"), source_label="missing.csv")

    failed = await pipeline.store.fetch_latest_run()
    assert failed is not None
    assert failed.status == "failed"
    assert "missing.csv" in (failed.failure_reason or "")
    assert len(await pipeline.store.fetch_bookings()) == 1
    await pipeline.close()

    assert len(_dump_tables(db_path)["silver_bookings"]) == 1


@pytest.mark.asyncio
async def test_failed_ledger_update_rolls_back_the_swap(tmp_path, monkeypatch) -> None:
    pipeline = _pipeline(tmp_path)
    first = await pipeline.run(
        IterableRecordSource([{"check_in_date": "2024-01-01", "check_out_date": "2024-01-02"}])
    )

    def _ledger_down(conn, run_id, **fields) -> None:
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(pipeline.store, "_complete_run", _ledger_down)
    second_source = IterableRecordSource(
        [
            {"check_in_date": "2024-02-01", "check_out_date": "2024-02-02"},
            {"check_in_date": "2024-02-03", "check_out_date": "2024-02-04"},
        ]
    )
    with pytest.raises(StoreWriteError):
        await pipeline.run(second_source)

    failed = await pipeline.store.fetch_latest_run()
    assert failed is not None and failed.id != first.run_id
    assert failed.status == "failed"
    assert await pipeline.store.dataset_run_id() == first.run_id
    bookings = await pipeline.store.fetch_bookings()
    assert [booking.check_in_date for booking in bookings] == [date(2024, 1, 1)]
    previous = await pipeline.store.fetch_run(first.run_id)
    assert previous is not None and previous.status == "complete"
    await pipeline.close()


@pytest.mark.asyncio
async def test_pipeline_with_empty_source(tmp_path) -> None:
    store = SqliteStore(tmp_path / "empty.sqlite3")
    pipeline = BookingPipeline(store)
    report = await pipeline.run(IterableRecordSource([]))

    assert report.total_records == 0
    assert report.summary.daily_bookings == ()
    assert sum(report.rejection_breakdown.values()) == 0
    await pipeline.close()


def test_process_records_without_store():
    records = [
        RawRecord.from_mapping(
            {"check_in_date": "2024-01-01", "check_out_date": "2024-01-02", "total_amount": "100"},
            row_number=1,
        ),
        RawRecord.from_mapping(
            {"check_in_date": "2024-01-01", "check_out_date": "2024-01-02", "total_amount": "50"},
            row_number=2,
        ),
    ]
    result, summary = process_records(records)
    assert len(result.accepted) == 2
    assert summary.daily_revenue[0].total_revenue == 150.0


def test_input_signature_is_order_sensitive():
    first = RawRecord.from_mapping({"booking_id": "A"}, row_number=1)
    second = RawRecord.from_mapping({"booking_id": "B"}, row_number=2)
    assert input_signature([first, second]) == input_signature([first, second])
    assert input_signature([first, second]) != input_signature([second, first])


def test_json_report_writer(tmp_path):
    _, summary = process_records([])
    writer = JsonReportWriter(tmp_path / "reports")
    path = writer.write(RunReport(run_id=4, total_records=0, accepted=0, rejected=0, summary=summary))
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert path.name == "run_4.json"
    assert payload["report"]["run_id"] == 4
    assert payload["report"]["summary"]["city_revenue"] == []
    assert payload["generated_at"].endswith("Z")
