"""Dataclasses for raw, typed and aggregated booking records."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Mapping, Optional

RAW_FIELDS: tuple[str, ...] = (
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

MISSING_CHECK_IN = "missing_check_in"
MISSING_CHECK_OUT = "missing_check_out"
CHECKOUT_BEFORE_CHECKIN = "checkout_before_checkin"

# Rule evaluation order; reports list reasons in this order.
REJECTION_REASONS: tuple[str, ...] = (
    MISSING_CHECK_IN,
    MISSING_CHECK_OUT,
    CHECKOUT_BEFORE_CHECKIN,
)


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True, slots=True)
class RawRecord:
    """A booking row as received: every field is optional text."""

    booking_id: Optional[str] = None
    hotel_id: Optional[str] = None
    hotel_city: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    room_type: Optional[str] = None
    num_guests: Optional[str] = None
    total_amount: Optional[str] = None
    currency: Optional[str] = None
    booking_status: Optional[str] = None
    row_number: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, row_number: int = 0) -> "RawRecord":
        """Build a record from a loose mapping; unknown keys are ignored."""
        values = {name: _text_or_none(data.get(name)) for name in RAW_FIELDS}
        return cls(**values, row_number=row_number)

    def to_dict(self) -> dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in RAW_FIELDS}


@dataclass(frozen=True, slots=True)
class TypedBooking:
    """Validated booking; both stay dates are always present."""

    booking_id: Optional[str]
    hotel_id: Optional[int]
    hotel_city: Optional[str]
    customer_id: Optional[str]
    customer_name: Optional[str]
    customer_email: str
    check_in_date: date
    check_out_date: date
    room_type: Optional[str]
    num_guests: Optional[int]
    total_amount: Optional[float]
    currency: Optional[str]
    booking_status: Optional[str]

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days

    def to_dict(self) -> dict[str, object]:
        return {
            "booking_id": self.booking_id,
            "hotel_id": self.hotel_id,
            "hotel_city": self.hotel_city,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "check_in_date": self.check_in_date.isoformat(),
            "check_out_date": self.check_out_date.isoformat(),
            "room_type": self.room_type,
            "num_guests": self.num_guests,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "booking_status": self.booking_status,
        }


@dataclass(frozen=True, slots=True)
class RejectedRecord:
    """A raw record that failed an acceptance rule."""

    row_number: int
    reason: str
    raw: RawRecord

    def to_dict(self) -> dict[str, object]:
        return {
            "row_number": self.row_number,
            "reason": self.reason,
            "raw": self.raw.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class DailyBookingCount:
    check_in_date: date
    total_bookings: int

    def to_dict(self) -> dict[str, object]:
        return {"check_in_date": self.check_in_date.isoformat(), "total_bookings": self.total_bookings}


@dataclass(frozen=True, slots=True)
class DailyRevenue:
    check_in_date: date
    total_revenue: float

    def to_dict(self) -> dict[str, object]:
        return {"check_in_date": self.check_in_date.isoformat(), "total_revenue": self.total_revenue}


@dataclass(frozen=True, slots=True)
class CityRevenue:
    hotel_city: Optional[str]
    total_revenue: float

    def to_dict(self) -> dict[str, object]:
        return {"hotel_city": self.hotel_city, "total_revenue": self.total_revenue}


@dataclass(frozen=True, slots=True)
class SummaryFacts:
    """The three Gold projections, already in their contractual order."""

    daily_bookings: tuple[DailyBookingCount, ...] = ()
    daily_revenue: tuple[DailyRevenue, ...] = ()
    city_revenue: tuple[CityRevenue, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "daily_bookings": [row.to_dict() for row in self.daily_bookings],
            "daily_revenue": [row.to_dict() for row in self.daily_revenue],
            "city_revenue": [row.to_dict() for row in self.city_revenue],
        }


@dataclass(slots=True)
class RunReport:
    """Outcome of one pipeline run."""

    run_id: Optional[int]
    total_records: int
    accepted: int
    rejected: int
    rejection_breakdown: dict[str, int] = field(default_factory=dict)
    summary: SummaryFacts = field(default_factory=SummaryFacts)
    rejections: List[RejectedRecord] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "total_records": self.total_records,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "rejection_breakdown": dict(self.rejection_breakdown),
            "duration_ms": round(self.duration_ms, 3),
            "summary": self.summary.to_dict(),
            "rejections": [rejection.to_dict() for rejection in self.rejections],
        }

