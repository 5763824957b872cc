"""
Booking lifecycle rules.

Every function here checks a booking document against the rules and returns
the partial update to `$set` on it. Nothing is written when a rule rejects
the change.

    withDriver -> assigned --confirm--> confirmed
    selfDrive  -> confirmed
    assigned | confirmed --complete--> completed
    assigned | confirmed --cancel----> cancelled   (>= 2h before pickup)
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from schemas import BookingStatus, BookingType, CardDetails, PaymentMethod, PaymentStatus, Role

CANCELLATION_CUTOFF = timedelta(hours=2)
TERMINAL_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)
REVIEW_FIELDS = {"customer": "customer_review", "driver": "driver_review"}

Doc = Dict[str, Any]


class BookingError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class BookingRuleError(BookingError):
    """A business rule rejected the change."""


class PaymentValidationError(BookingError):
    pass


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def initial_status(booking_type: BookingType) -> BookingStatus:
    if BookingType(booking_type) == BookingType.WITH_DRIVER:
        return BookingStatus.ASSIGNED
    return BookingStatus.CONFIRMED


def pickup_datetime(booking: Doc) -> datetime:
    """Scheduled pickup, read as UTC."""
    try:
        pickup = datetime.strptime(f"{booking['pickup_date']}T{booking['pickup_time']}", "%Y-%m-%dT%H:%M")
    except (KeyError, TypeError, ValueError):
        raise BookingRuleError("invalid-pickup", "Booking has no valid pickup date and time")
    return pickup.replace(tzinfo=timezone.utc)


def _status(booking: Doc) -> BookingStatus:
    return BookingStatus(booking.get("status"))


def _ensure_open(booking: Doc, action: str) -> None:
    status = _status(booking)
    if status == BookingStatus.COMPLETED:
        raise BookingRuleError("already-completed", f"Completed bookings cannot be {action}")
    if status == BookingStatus.CANCELLED:
        raise BookingRuleError("already-cancelled", f"Cancelled bookings cannot be {action}")


def cancel(booking: Doc, now: Optional[datetime] = None) -> Doc:
    _ensure_open(booking, "cancelled")
    now = _now(now)
    if pickup_datetime(booking) - now < CANCELLATION_CUTOFF:
        raise BookingRuleError(
            "cancel-too-late",
            "Bookings can only be cancelled at least 2 hours before pickup time",
        )
    return {"status": BookingStatus.CANCELLED.value, "cancelled_at": now, "updated_at": now}


def _ensure_actor(booking: Doc, actor_id: str, actor_role: Role) -> None:
    if actor_role == Role.ADMIN:
        return
    if actor_role == Role.DRIVER and booking.get("driver_id") == actor_id:
        return
    raise BookingRuleError("not-assigned-driver", "Only the assigned driver can update this ride")


def confirm(booking: Doc, actor_id: str, actor_role: Role, now: Optional[datetime] = None) -> Doc:
    _ensure_open(booking, "confirmed")
    _ensure_actor(booking, actor_id, actor_role)
    if _status(booking) != BookingStatus.ASSIGNED:
        raise BookingRuleError("already-confirmed", "Booking is already confirmed")
    now = _now(now)
    return {"status": BookingStatus.CONFIRMED.value, "updated_at": now}


def complete(booking: Doc, actor_id: str, actor_role: Role, now: Optional[datetime] = None) -> Doc:
    _ensure_open(booking, "completed")
    _ensure_actor(booking, actor_id, actor_role)
    now = _now(now)
    return {"status": BookingStatus.COMPLETED.value, "completed_at": now, "updated_at": now}


def transition(booking: Doc, new_status: BookingStatus, actor_id: str, actor_role: Role, now: Optional[datetime] = None) -> Doc:
    new_status = BookingStatus(new_status)
    if new_status == BookingStatus.CANCELLED:
        return cancel(booking, now)
    if new_status == BookingStatus.COMPLETED:
        return complete(booking, actor_id, actor_role, now)
    if new_status == BookingStatus.CONFIRMED:
        return confirm(booking, actor_id, actor_role, now)
    raise BookingRuleError("invalid-transition", f"Bookings cannot move back to {new_status.value}")


# ---------- PAYMENTS ----------
def validate_card(card: Optional[CardDetails]) -> None:
    card = card or CardDetails()
    digits = (card.card_number or "").replace(" ", "")
    if len(digits) < 16 or not digits.isdigit():
        raise PaymentValidationError("invalid-card", "Please enter a valid card number")
    if not card.card_holder:
        raise PaymentValidationError("invalid-card", "Please enter the card holder name")
    if not card.expiry_date:
        raise PaymentValidationError("invalid-card", "Please enter the expiry date")
    if not card.cvv or len(card.cvv) < 3:
        raise PaymentValidationError("invalid-card", "Please enter a valid CVV")


def pay(booking: Doc, method: PaymentMethod, card: Optional[CardDetails] = None, now: Optional[datetime] = None) -> Doc:
    """Simulated checkout: online payments settle at once, cash waits for the driver."""
    method = PaymentMethod(method)
    if _status(booking) == BookingStatus.CANCELLED:
        raise BookingRuleError("already-cancelled", "Cancelled bookings cannot be paid")
    if booking.get("payment_status") == PaymentStatus.PAID.value:
        raise BookingRuleError("already-paid", "Booking is already paid")
    if method == PaymentMethod.ONLINE:
        validate_card(card)
    now = _now(now)
    paid = method == PaymentMethod.ONLINE
    return {
        "payment_method": method.value,
        "payment_status": (PaymentStatus.PAID if paid else PaymentStatus.PENDING).value,
        "paid_at": now if paid else None,
        "updated_at": now,
    }


def collect_cash(booking: Doc, actor_id: str, actor_role: Role, now: Optional[datetime] = None) -> Doc:
    _ensure_actor(booking, actor_id, actor_role)
    if _status(booking) == BookingStatus.CANCELLED:
        raise BookingRuleError("already-cancelled", "Cancelled bookings cannot be paid")
    if booking.get("payment_status") == PaymentStatus.PAID.value:
        raise BookingRuleError("already-paid", "Booking is already paid")
    now = _now(now)
    return {
        "payment_status": PaymentStatus.PAID.value,
        "payment_method": PaymentMethod.CASH.value,
        "paid_at": now,
        "updated_at": now,
    }


def set_payment_status(status: PaymentStatus, now: Optional[datetime] = None) -> Doc:
    status = PaymentStatus(status)
    now = _now(now)
    return {
        "payment_status": status.value,
        "paid_at": now if status == PaymentStatus.PAID else None,
        "updated_at": now,
    }


# ---------- REVIEWS ----------
def review(booking: Doc, side: str, rating: int, comment: Optional[str] = "", now: Optional[datetime] = None) -> Doc:
    field = REVIEW_FIELDS[side]
    if _status(booking) != BookingStatus.COMPLETED:
        raise BookingRuleError("not-completed", "Only completed bookings can be reviewed")
    if booking.get(field):
        raise BookingRuleError("already-reviewed", "This booking has already been reviewed")
    if not 1 <= rating <= 5:
        raise BookingRuleError("invalid-rating", "Please enter a valid rating between 1 and 5")
    now = _now(now)
    return {field: {"rating": rating, "comment": comment or "", "created_at": now}, "updated_at": now}
