"""Data profiling for raw booking records.

Surfaces the anomalies that drive the cleansing rules before anything is
loaded: odd hotel identifiers, malformed e-mails, negative amounts,
unparseable or inverted stay dates and the spread of booking statuses. Use it
from the CLI:

    python scripts/profile_bronze.py --source data/raw/hotel_bookings.csv
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from hotel_etl.bookings.models import RawRecord
from hotel_etl.bookings.normalizer import DEFAULT_DATE_FORMATS, parse_date, parse_decimal


@dataclass(slots=True)
class ProfileReport:
    total_records: int = 0
    hotel_id_counts: List[Tuple[Optional[str], int]] = field(default_factory=list)
    non_numeric_hotel_ids: int = 0
    email_length_counts: List[Tuple[int, int]] = field(default_factory=list)
    negative_amounts: List[str] = field(default_factory=list)
    unparseable_check_in: int = 0
    unparseable_check_out: int = 0
    both_dates_unparseable: int = 0
    either_date_unparseable: int = 0
    checkout_before_checkin: int = 0
    booking_status_counts: List[Tuple[Optional[str], int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "total_records": self.total_records,
            "hotel_id_counts": [list(item) for item in self.hotel_id_counts],
            "non_numeric_hotel_ids": self.non_numeric_hotel_ids,
            "email_length_counts": [list(item) for item in self.email_length_counts],
            "negative_amounts": list(self.negative_amounts),
            "unparseable_check_in": self.unparseable_check_in,
            "unparseable_check_out": self.unparseable_check_out,
            "both_dates_unparseable": self.both_dates_unparseable,
            "either_date_unparseable": self.either_date_unparseable,
            "checkout_before_checkin": self.checkout_before_checkin,
            "booking_status_counts": [list(item) for item in self.booking_status_counts],
        }


def _most_common(counter: Counter) -> list:
    # Frequency first, then a stable textual order so reports diff cleanly.
    return sorted(counter.items(), key=lambda item: (-item[1], "" if item[0] is None else str(item[0])))


def profile_records(
    records: Iterable[RawRecord],
    *,
    date_formats: Iterable[str] = DEFAULT_DATE_FORMATS,
) -> ProfileReport:
    formats = tuple(date_formats)
    report = ProfileReport()
    hotel_ids: Counter = Counter()
    email_lengths: Counter = Counter()
    statuses: Counter = Counter()

    for record in records:
        report.total_records += 1
        hotel_ids[record.hotel_id] += 1
        if record.hotel_id is not None and parse_decimal(record.hotel_id) is None:
            report.non_numeric_hotel_ids += 1

        # A missing e-mail counts as length 1, matching length(coalesce(email, 'e')).
        email_lengths[len(record.customer_email) if record.customer_email is not None else 1] += 1

        amount = parse_decimal(record.total_amount)
        if amount is not None and amount < 0 and record.total_amount is not None:
            report.negative_amounts.append(record.total_amount)

        check_in = parse_date(record.check_in_date, formats, field_name="check_in_date")
        check_out = parse_date(record.check_out_date, formats, field_name="check_out_date")
        if check_in is None:
            report.unparseable_check_in += 1
        if check_out is None:
            report.unparseable_check_out += 1
        if check_in is None and check_out is None:
            report.both_dates_unparseable += 1
        if check_in is None or check_out is None:
            report.either_date_unparseable += 1
        elif check_out < check_in:
            report.checkout_before_checkin += 1

        statuses[record.booking_status] += 1

    report.hotel_id_counts = _most_common(hotel_ids)
    report.email_length_counts = _most_common(email_lengths)
    report.booking_status_counts = _most_common(statuses)
    return report


def format_report(report: ProfileReport, *, top: int = 10) -> str:
    lines = [f"Records profiled: {report.total_records}"]
    lines.append(f"Non-numeric hotel_id values: {report.non_numeric_hotel_ids}")
    lines.append("Top hotel_id values:")
    for value, count in report.hotel_id_counts[:top]:
        lines.append(f"  {value!s:<24} {count}")
    lines.append("customer_email length distribution:")
    for length, count in report.email_length_counts[:top]:
        lines.append(f"  {length:<24} {count}")
    lines.append(f"Negative total_amount values: {len(report.negative_amounts)}")
    lines.append(f"Unparseable check_in_date: {report.unparseable_check_in}")
    lines.append(f"Unparseable check_out_date: {report.unparseable_check_out}")
    lines.append(f"Both dates unparseable: {report.both_dates_unparseable}")
    lines.append(f"Either date unparseable: {report.either_date_unparseable}")
    lines.append(f"check_out_date before check_in_date: {report.checkout_before_checkin}")
    lines.append("booking_status distribution:")
    for value, count in report.booking_status_counts:
        lines.append(f"  {value!s:<24} {count}")
    return "\n".join(lines)


__all__ = ["ProfileReport", "format_report", "profile_records"]
