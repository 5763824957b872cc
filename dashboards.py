"""
Dashboard statistics computed from fetched booking, car and driver documents.
"""

from typing import Any, Dict, Iterable, List

from catalog import ACTIVE_STATUSES, filter_bookings

Doc = Dict[str, Any]


def _amount(booking: Doc) -> float:
    return booking.get("total_amount") or 0


def _paid(booking: Doc) -> bool:
    return booking.get("payment_status") == "paid"


def admin_stats(bookings: List[Doc], cars: List[Doc], drivers: List[Doc]) -> Dict[str, Any]:
    online_revenue = 0.0
    cash_revenue = 0.0
    for b in bookings:
        # revenue counts settled trips only
        if b.get("status") == "completed" and _paid(b):
            if b.get("payment_method") == "online":
                online_revenue += _amount(b)
            elif b.get("payment_method") == "cash":
                cash_revenue += _amount(b)

    return {
        "total_bookings": len(bookings),
        "active_bookings": sum(1 for b in bookings if b.get("status") in ACTIVE_STATUSES),
        "completed_bookings": sum(1 for b in bookings if b.get("status") == "completed"),
        "cancelled_bookings": sum(1 for b in bookings if b.get("status") == "cancelled"),
        "total_cars": len(cars),
        "available_cars": sum(1 for c in cars if c.get("is_available")),
        "total_drivers": len(drivers),
        "available_drivers": sum(1 for d in drivers if d.get("is_available")),
        "total_revenue": online_revenue + cash_revenue,
        "online_revenue": online_revenue,
        "cash_revenue": cash_revenue,
        "online_payments": sum(1 for b in bookings if _paid(b) and b.get("payment_method") == "online"),
        "cash_payments": sum(1 for b in bookings if _paid(b) and b.get("payment_method") == "cash"),
    }


def payment_stats(bookings: Iterable[Doc]) -> Dict[str, float]:
    stats = {"total": 0.0, "online": 0.0, "cash": 0.0, "pending": 0.0}
    for b in bookings:
        amount = _amount(b)
        if _paid(b):
            stats["total"] += amount
            if b.get("payment_method") in ("online", "cash"):
                stats[b["payment_method"]] += amount
        else:
            stats["pending"] += amount
    return stats


def driver_stats(rides: List[Doc]) -> Dict[str, Any]:
    completed = [r for r in rides if r.get("status") == "completed"]
    return {
        "total": len(rides),
        "completed": len(completed),
        "active": sum(1 for r in rides if r.get("status") in ACTIVE_STATUSES),
        "earnings": sum(_amount(r) for r in completed),
    }


def customer_stats(bookings: List[Doc]) -> Dict[str, Any]:
    return {
        "total": len(bookings),
        "upcoming": sum(1 for b in bookings if b.get("status") in ACTIVE_STATUSES),
        "completed": sum(1 for b in bookings if b.get("status") == "completed"),
        "cancelled": sum(1 for b in bookings if b.get("status") == "cancelled"),
        "spent": sum(_amount(b) for b in bookings if _paid(b)),
    }


def recent(bookings: Iterable[Doc], n: int = 5) -> List[Doc]:
    return filter_bookings(bookings, sort_field="created_at", direction="desc")[:n]
