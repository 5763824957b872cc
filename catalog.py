"""
Catalog and table filters.

Everything here works on documents already fetched from Mongo and never
touches the database.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List

Doc = Dict[str, Any]

ACTIVE_STATUSES = ("assigned", "confirmed")
BOOKING_SORT_FIELDS = ("created_at", "pickup_date", "total_amount", "id")


def in_price_range(price: float, price_range: str) -> bool:
    if price_range == "low":
        return price <= 1
    if price_range == "medium":
        return 1 < price <= 2
    if price_range == "high":
        return price > 2
    return True


def filter_cars(cars: Iterable[Doc], type: str = "all", price_range: str = "all", sort_by: str = "default") -> List[Doc]:
    result = [
        car for car in cars
        if (type == "all" or car.get("type") == type)
        and in_price_range(car.get("price_per_km", 0), price_range)
    ]
    if sort_by == "priceLow":
        result.sort(key=lambda c: c.get("price_per_km", 0))
    elif sort_by == "priceHigh":
        result.sort(key=lambda c: c.get("price_per_km", 0), reverse=True)
    elif sort_by == "name":
        result.sort(key=lambda c: c.get("name") or "")
    return result


def available_cars(cars: Iterable[Doc]) -> List[Doc]:
    return [car for car in cars if car.get("is_available") is True]


def _sort_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def filter_bookings(
    bookings: Iterable[Doc],
    status: str = "all",
    payment_status: str = "all",
    sort_field: str = "created_at",
    direction: str = "desc",
) -> List[Doc]:
    """Admin bookings table: status/payment filters plus a single sort column.

    Rows missing the sort column fall back to their creation time.
    """
    result = [
        b for b in bookings
        if (status == "all" or b.get("status") == status)
        and (payment_status == "all" or b.get("payment_status") == payment_status)
    ]
    if sort_field not in BOOKING_SORT_FIELDS:
        sort_field = "created_at"

    def key(b: Doc):
        value = b.get(sort_field)
        if sort_field == "total_amount":
            return value or 0
        if sort_field == "id":
            return str(b.get("_id") or value or "")
        return _sort_value(value or b.get("created_at")) or ""

    result.sort(key=key, reverse=(direction != "asc"))
    return result


def filter_payments(bookings: Iterable[Doc], status: str = "all", method: str = "all") -> List[Doc]:
    result = [
        b for b in bookings
        if (status == "all" or b.get("payment_status") == status)
        and (method == "all" or b.get("payment_method") == method)
    ]
    result.sort(key=lambda b: _sort_value(b.get("paid_at") or b.get("created_at")) or "", reverse=True)
    return result


def filter_rides(rides: Iterable[Doc], tab: str = "all") -> List[Doc]:
    if tab == "active":
        return [r for r in rides if r.get("status") in ACTIVE_STATUSES]
    if tab == "completed":
        return [r for r in rides if r.get("status") == "completed"]
    return list(rides)
