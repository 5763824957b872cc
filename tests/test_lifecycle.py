from datetime import datetime, timedelta, timezone

import pytest

import lifecycle
from lifecycle import BookingRuleError, PaymentValidationError
from schemas import BookingStatus, BookingType, CardDetails, PaymentMethod, PaymentStatus, Role

PICKUP = datetime(2026, 11, 20, 10, 0, tzinfo=timezone.utc)
CARD = CardDetails(card_number="4242 4242 4242 4242", card_holder="Ada Lovelace", expiry_date="12/29", cvv="123")


def booking(**overrides):
    doc = {
        "status": "assigned",
        "booking_type": "withDriver",
        "driver_id": "driver-1",
        "customer_id": "customer-1",
        "pickup_date": "2026-11-20",
        "pickup_time": "10:00",
        "payment_status": "pending",
    }
    doc.update(overrides)
    return doc


def test_initial_status():
    assert lifecycle.initial_status(BookingType.WITH_DRIVER) == BookingStatus.ASSIGNED
    assert lifecycle.initial_status("selfDrive") == BookingStatus.CONFIRMED


def test_cancel_exactly_two_hours_before_pickup():
    now = PICKUP - timedelta(hours=2)
    update = lifecycle.cancel(booking(), now)
    assert update == {"status": "cancelled", "cancelled_at": now, "updated_at": now}


def test_cancel_inside_cutoff_is_rejected():
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.cancel(booking(), PICKUP - timedelta(hours=1, minutes=59))
    assert exc.value.code == "cancel-too-late"


def test_cancel_after_pickup_is_rejected():
    with pytest.raises(BookingRuleError):
        lifecycle.cancel(booking(), PICKUP + timedelta(days=1))


@pytest.mark.parametrize("now", [PICKUP - timedelta(days=30), PICKUP - timedelta(minutes=5)])
def test_cancel_completed_always_rejected(now):
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.cancel(booking(status="completed"), now)
    assert exc.value.code == "already-completed"


def test_cancel_cancelled_rejected():
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.cancel(booking(status="cancelled"), PICKUP - timedelta(days=1))
    assert exc.value.code == "already-cancelled"


def test_cancel_without_pickup_time():
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.cancel(booking(pickup_time=None), PICKUP - timedelta(days=1))
    assert exc.value.code == "invalid-pickup"


def test_complete_by_assigned_driver():
    update = lifecycle.complete(booking(status="confirmed"), "driver-1", Role.DRIVER, PICKUP)
    assert update["status"] == "completed"
    assert update["completed_at"] == PICKUP


def test_complete_by_other_driver_rejected():
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.complete(booking(), "driver-2", Role.DRIVER, PICKUP)
    assert exc.value.code == "not-assigned-driver"


def test_admin_completes_any_open_booking():
    assert lifecycle.complete(booking(driver_id=None, status="confirmed"), "admin-1", Role.ADMIN)["status"] == "completed"


@pytest.mark.parametrize("status", ["completed", "cancelled"])
def test_terminal_states_have_no_outgoing_transitions(status):
    for target in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED):
        with pytest.raises(BookingRuleError):
            lifecycle.transition(booking(status=status), target, "admin-1", Role.ADMIN, PICKUP - timedelta(days=1))


def test_confirm_assigned_ride():
    assert lifecycle.confirm(booking(), "driver-1", Role.DRIVER, PICKUP)["status"] == "confirmed"
    with pytest.raises(BookingRuleError):
        lifecycle.confirm(booking(status="confirmed"), "driver-1", Role.DRIVER, PICKUP)


def test_transition_back_to_assigned_rejected():
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.transition(booking(status="confirmed"), BookingStatus.ASSIGNED, "admin-1", Role.ADMIN)
    assert exc.value.code == "invalid-transition"


def test_transition_cancel_applies_cutoff():
    with pytest.raises(BookingRuleError):
        lifecycle.transition(booking(), BookingStatus.CANCELLED, "admin-1", Role.ADMIN, PICKUP - timedelta(hours=1))


def test_pay_online_marks_paid():
    update = lifecycle.pay(booking(), PaymentMethod.ONLINE, CARD, PICKUP)
    assert update["payment_status"] == "paid"
    assert update["payment_method"] == "online"
    assert update["paid_at"] == PICKUP


def test_pay_cash_stays_pending():
    update = lifecycle.pay(booking(), "cash", None, PICKUP)
    assert update["payment_status"] == "pending"
    assert update["paid_at"] is None


@pytest.mark.parametrize("card", [
    None,
    CardDetails(card_number="4242", card_holder="A", expiry_date="12/29", cvv="123"),
    CardDetails(card_number="4242424242424242", card_holder="", expiry_date="12/29", cvv="123"),
    CardDetails(card_number="4242424242424242", card_holder="A", expiry_date=None, cvv="123"),
    CardDetails(card_number="4242424242424242", card_holder="A", expiry_date="12/29", cvv="12"),
])
def test_online_payment_validates_card(card):
    with pytest.raises(PaymentValidationError):
        lifecycle.pay(booking(), PaymentMethod.ONLINE, card)


def test_pay_rejected_for_cancelled_or_paid():
    with pytest.raises(BookingRuleError):
        lifecycle.pay(booking(status="cancelled"), PaymentMethod.CASH)
    with pytest.raises(BookingRuleError):
        lifecycle.pay(booking(payment_status="paid"), PaymentMethod.ONLINE, CARD)


def test_collect_cash():
    update = lifecycle.collect_cash(booking(status="completed"), "driver-1", Role.DRIVER, PICKUP)
    assert update["payment_status"] == "paid"
    assert update["payment_method"] == "cash"
    with pytest.raises(BookingRuleError):
        lifecycle.collect_cash(booking(), "driver-9", Role.DRIVER)


def test_set_payment_status():
    assert lifecycle.set_payment_status(PaymentStatus.PAID, PICKUP)["paid_at"] == PICKUP
    assert lifecycle.set_payment_status("pending", PICKUP)["paid_at"] is None


def test_review_rules():
    update = lifecycle.review(booking(status="completed"), "customer", 4, "Smooth ride", PICKUP)
    assert update["customer_review"] == {"rating": 4, "comment": "Smooth ride", "created_at": PICKUP}

    with pytest.raises(BookingRuleError) as exc:
        lifecycle.review(booking(), "customer", 4)
    assert exc.value.code == "not-completed"

    reviewed = booking(status="completed", driver_review={"rating": 5})
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.review(reviewed, "driver", 3)
    assert exc.value.code == "already-reviewed"


def test_collect_cash_rejects_cancelled_booking():
    with pytest.raises(BookingRuleError) as exc:
        lifecycle.collect_cash(booking(status="cancelled"), "driver-1", Role.DRIVER, PICKUP)
    assert exc.value.code == "already-cancelled"
