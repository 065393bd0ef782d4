"""Record-level acceptance rules for normalised bookings."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from .models import (
    CHECKOUT_BEFORE_CHECKIN,
    MISSING_CHECK_IN,
    MISSING_CHECK_OUT,
    REJECTION_REASONS,
    RawRecord,
    RejectedRecord,
    TypedBooking,
)
from .normalizer import FieldNormalizer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationResult:
    """Accepted and rejected records, both kept in source order."""

    accepted: List[TypedBooking] = field(default_factory=list)
    rejected: List[RejectedRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.accepted) + len(self.rejected)

    def rejection_breakdown(self) -> dict[str, int]:
        counts = {reason: 0 for reason in REJECTION_REASONS}
        for rejection in self.rejected:
            counts[rejection.reason] = counts.get(rejection.reason, 0) + 1
        return counts


class RecordValidator:
    """Normalises each raw record and decides whether it is accepted.

    Only the stay dates can reject a record. Every other field degrades to
    "no value" (or a sentinel) and the record is still accepted.
    """

    def __init__(self, normalizer: Optional[FieldNormalizer] = None) -> None:
        self._normalizer = normalizer or FieldNormalizer()

    @property
    def normalizer(self) -> FieldNormalizer:
        return self._normalizer

    def evaluate(self, raw: RawRecord) -> Union[TypedBooking, RejectedRecord]:
        norm = self._normalizer
        check_in = norm.stay_date(raw.check_in_date, field_name="check_in_date")
        if check_in is None:
            return RejectedRecord(row_number=raw.row_number, reason=MISSING_CHECK_IN, raw=raw)
        check_out = norm.stay_date(raw.check_out_date, field_name="check_out_date")
        if check_out is None:
            return RejectedRecord(row_number=raw.row_number, reason=MISSING_CHECK_OUT, raw=raw)
        if check_out < check_in:
            return RejectedRecord(row_number=raw.row_number, reason=CHECKOUT_BEFORE_CHECKIN, raw=raw)

        return TypedBooking(
            booking_id=raw.booking_id,
            hotel_id=norm.hotel_id(raw.hotel_id),
            hotel_city=norm.text(raw.hotel_city),
            customer_id=raw.customer_id,
            customer_name=norm.text(raw.customer_name),
            customer_email=norm.email(raw.customer_email),
            check_in_date=check_in,
            check_out_date=check_out,
            room_type=norm.text(raw.room_type),
            num_guests=norm.num_guests(raw.num_guests),
            total_amount=norm.total_amount(raw.total_amount),
            currency=norm.currency(raw.currency),
            booking_status=norm.booking_status(raw.booking_status),
        )

    def validate(self, records: Iterable[RawRecord]) -> ValidationResult:
        result = ValidationResult()
        for raw in records:
            outcome = self.evaluate(raw)
            if isinstance(outcome, RejectedRecord):
                logger.debug("Rejected row %s: %s", outcome.row_number, outcome.reason)
                result.rejected.append(outcome)
            else:
                result.accepted.append(outcome)
        return result


__all__ = ["RecordValidator", "ValidationResult"]
