"""Booking domain models, normalisation, validation and aggregation."""

from .aggregator import city_revenue, daily_booking_counts, daily_revenue, summarize
from .models import (
    CHECKOUT_BEFORE_CHECKIN,
    MISSING_CHECK_IN,
    MISSING_CHECK_OUT,
    RAW_FIELDS,
    REJECTION_REASONS,
    CityRevenue,
    DailyBookingCount,
    DailyRevenue,
    RawRecord,
    RejectedRecord,
    RunReport,
    SummaryFacts,
    TypedBooking,
)
from .normalizer import FieldNormalizer, NormalizationRules
from .validator import RecordValidator, ValidationResult

__all__ = [
    "CHECKOUT_BEFORE_CHECKIN",
    "MISSING_CHECK_IN",
    "MISSING_CHECK_OUT",
    "RAW_FIELDS",
    "REJECTION_REASONS",
    "CityRevenue",
    "DailyBookingCount",
    "DailyRevenue",
    "FieldNormalizer",
    "NormalizationRules",
    "RawRecord",
    "RecordValidator",
    "RejectedRecord",
    "RunReport",
    "SummaryFacts",
    "TypedBooking",
    "ValidationResult",
    "city_revenue",
    "daily_booking_counts",
    "daily_revenue",
    "summarize",
]
