import math
from typing import Any, Optional

from schemas import BookingType, PriceBreakdown

# Flat fee for booking a car with a driver
DRIVER_CHARGE = 50


def parse_distance(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        distance = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(distance):
        return None
    return distance


def compute_price(price_per_km: float, estimated_distance: Any, booking_type: BookingType, driver_selected: bool = False) -> PriceBreakdown:
    distance = parse_distance(estimated_distance)
    if distance is None:
        return PriceBreakdown()

    distance_charge = price_per_km * distance
    if not math.isfinite(distance_charge):
        return PriceBreakdown()
    driver_charge = 0
    if BookingType(booking_type) == BookingType.WITH_DRIVER and driver_selected:
        driver_charge = DRIVER_CHARGE

    return PriceBreakdown(
        distance_charge=distance_charge,
        driver_charge=driver_charge,
        total_amount=distance_charge + driver_charge,
    )


def format_amount(amount: Optional[float]) -> str:
    """Two-decimal display string; stored amounts are never rounded."""
    amount = amount or 0
    truncated = math.trunc(round(amount * 100, 6)) / 100
    return f"{truncated:.2f}"
