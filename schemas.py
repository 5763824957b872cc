"""
Database Schemas

Car booking collections using MongoDB with Pydantic models for validation.
Each Pydantic model name maps to a MongoDB collection with the lowercase name.

Collections:
- User: customers, drivers and admins with email login and hashed passwords (JWT auth)
- Car: the rental catalog, priced per kilometre
- Booking: trips booked by customers, optionally with a driver
- Notification: in-app notifications per user
"""

from enum import Enum
from typing import Optional, Literal, List, Union

from pydantic import BaseModel, Field, EmailStr, field_validator


class Role(str, Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class BookingType(str, Enum):
    WITH_DRIVER = "withDriver"
    SELF_DRIVE = "selfDrive"


class BookingStatus(str, Enum):
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    ONLINE = "online"
    CASH = "cash"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


PriceRange = Literal["all", "low", "medium", "high"]
SortBy = Literal["default", "priceLow", "priceHigh", "name"]


# ---------- USERS ----------
class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class UserOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Role = Role.CUSTOMER
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    experience: Optional[str] = None
    license_number: Optional[str] = None


class PasswordChange(BaseModel):
    new_password: str = Field(..., min_length=6)
    confirm_password: str


class Driver(BaseModel):
    """
    Driver accounts created by admins
    Collection name: "user" with role "driver"
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., min_length=1)
    license_number: str = Field(..., min_length=1)
    address: Optional[str] = None
    experience: Optional[str] = None
    is_available: bool = True


class UpdateDriver(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    address: Optional[str] = None
    experience: Optional[str] = None
    is_available: Optional[bool] = None


class DriverStatus(BaseModel):
    is_available: bool


# ---------- CARS ----------
def _split_features(v):
    if v is None:
        return []
    if isinstance(v, str):
        return [f.strip() for f in v.split(",") if f.strip()]
    return v


class Car(BaseModel):
    """
    Cars available for booking
    Collection name: "car"
    """
    name: str = Field(..., min_length=1, description="Display name, e.g. Toyota Camry")
    type: str = Field(..., min_length=1, description="Sedan, SUV, Truck, ...")
    price_per_km: float = Field(..., gt=0, allow_inf_nan=False, description="Rate per kilometre")
    is_available: bool = True
    features: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None

    @field_validator("features", mode="before")
    @classmethod
    def parse_features(cls, v):
        return _split_features(v)


class UpdateCar(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    price_per_km: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    is_available: Optional[bool] = None
    features: Optional[Union[List[str], str]] = None
    image_url: Optional[str] = None

    @field_validator("features", mode="before")
    @classmethod
    def parse_features(cls, v):
        if v is None:
            return None
        return _split_features(v)


# ---------- BOOKINGS ----------
class BookingRequest(BaseModel):
    car_id: str
    booking_type: BookingType = BookingType.WITH_DRIVER
    driver_id: Optional[str] = None
    pickup_location: str = Field(..., min_length=1)
    drop_location: str = Field(..., min_length=1)
    pickup_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="YYYY-MM-DD")
    pickup_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="HH:MM")
    return_date: Optional[str] = None
    return_time: Optional[str] = None
    estimated_distance: float = Field(..., gt=0, allow_inf_nan=False, description="Kilometres")
    special_requests: Optional[str] = None


class QuoteRequest(BaseModel):
    car_id: str
    booking_type: BookingType = BookingType.WITH_DRIVER
    driver_id: Optional[str] = None
    # non-numeric or non-finite distances quote as zero
    estimated_distance: Optional[Union[float, str]] = None


class PriceBreakdown(BaseModel):
    distance_charge: float = 0
    driver_charge: float = 0
    total_amount: float = 0


class StatusUpdate(BaseModel):
    status: BookingStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class CardDetails(BaseModel):
    card_number: Optional[str] = None
    card_holder: Optional[str] = None
    expiry_date: Optional[str] = None
    cvv: Optional[str] = None


class PaymentRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.ONLINE
    card: Optional[CardDetails] = None


class Review(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = ""


# ---------- NOTIFICATIONS ----------
class Notification(BaseModel):
    """
    In-app notifications
    Collection name: "notification"
    """
    user_id: str
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: Optional[str] = None
    link: Optional[str] = None
    read: bool = False
