"""Gold-layer projections over the typed booking set."""
from __future__ import annotations

import math
from collections import defaultdict
from datetime import date
from typing import Iterable, List, Optional

from .models import CityRevenue, DailyBookingCount, DailyRevenue, SummaryFacts, TypedBooking


def _amount(booking: TypedBooking) -> float:
    return booking.total_amount if booking.total_amount is not None else 0.0


def daily_booking_counts(bookings: Iterable[TypedBooking]) -> List[DailyBookingCount]:
    counts: dict[date, int] = defaultdict(int)
    for booking in bookings:
        counts[booking.check_in_date] += 1
    return [
        DailyBookingCount(check_in_date=day, total_bookings=counts[day])
        for day in sorted(counts, reverse=True)
    ]


def daily_revenue(bookings: Iterable[TypedBooking]) -> List[DailyRevenue]:
    amounts: dict[date, list[float]] = defaultdict(list)
    for booking in bookings:
        amounts[booking.check_in_date].append(_amount(booking))
    return [
        DailyRevenue(check_in_date=day, total_revenue=math.fsum(amounts[day]))
        for day in sorted(amounts, reverse=True)
    ]


def city_revenue(bookings: Iterable[TypedBooking]) -> List[CityRevenue]:
    amounts: dict[Optional[str], list[float]] = defaultdict(list)
    for booking in bookings:
        amounts[booking.hotel_city].append(_amount(booking))
    rows = [CityRevenue(hotel_city=city, total_revenue=math.fsum(values)) for city, values in amounts.items()]
    rows.sort(key=lambda row: (-row.total_revenue, row.hotel_city is None, row.hotel_city or ""))
    return rows


def summarize(bookings: Iterable[TypedBooking]) -> SummaryFacts:
    """Compute all three summary projections in their contractual order."""
    materialized = list(bookings)
    return SummaryFacts(
        daily_bookings=tuple(daily_booking_counts(materialized)),
        daily_revenue=tuple(daily_revenue(materialized)),
        city_revenue=tuple(city_revenue(materialized)),
    )


__all__ = ["city_revenue", "daily_booking_counts", "daily_revenue", "summarize"]
