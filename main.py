import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Query, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo import ASCENDING

import database
import dashboards
import lifecycle
import navigation
import notifications
import seed
from auth import (
    AuthError, Session, authenticate, create_access_token, get_session, hash_password,
    register_user, require_roles, require_session,
)
from catalog import available_cars, filter_bookings, filter_cars, filter_payments, filter_rides
from database import DatabaseUnavailable, serialize_doc
from lifecycle import BookingError, BookingRuleError, PaymentValidationError
from pricing import compute_price, format_amount
from schemas import (
    BookingRequest, BookingStatus, BookingType, Car, Driver, DriverStatus, LoginRequest,
    PasswordChange, PaymentRequest, PaymentStatus, PaymentStatusUpdate, PriceRange,
    ProfileUpdate, QuoteRequest, Review, Role, SortBy, StatusUpdate, UpdateCar, UpdateDriver,
    User, UserOut,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

SEED_SAMPLE_DATA = os.getenv("SEED_SAMPLE_DATA", "true").lower() in ("1", "true", "yes")


def startup_tasks():
    if database.db is None:
        logger.warning("DATABASE_URL not set, skipping startup tasks")
        return
    try:
        database.db["user"].create_index([("email", ASCENDING)], unique=True, sparse=True)
        database.db["booking"].create_index([("customer_id", ASCENDING)])
        database.db["booking"].create_index([("driver_id", ASCENDING)])
        database.db["notification"].create_index([("user_id", ASCENDING)])
    except Exception as e:
        logger.warning("Index creation failed: %s", e)
    try:
        seed.ensure_admin()
        if SEED_SAMPLE_DATA:
            seed.seed_cars()
    except Exception as e:
        logger.warning("Startup data setup failed (non-critical): %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    startup_tasks()
    yield


app = FastAPI(title="Car Booking API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

admin_only = require_roles(Role.ADMIN, confirm=True)
driver_only = require_roles(Role.DRIVER)
customer_only = require_roles(Role.CUSTOMER)


# ---------- ERRORS ----------
@app.exception_handler(AuthError)
async def handle_auth_error(request: Request, exc: AuthError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(BookingError)
async def handle_booking_error(request: Request, exc: BookingError):
    status_code = 400 if isinstance(exc, PaymentValidationError) else 409
    logger.info("Rejected booking change: %s", exc.code)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(DatabaseUnavailable)
async def handle_database_unavailable(request: Request, exc: DatabaseUnavailable):
    return JSONResponse(status_code=500, content={"detail": "Database not available"})


def _get_or_404(collection: str, doc_id: str, label: str) -> Dict[str, Any]:
    doc = database.get_document(collection, doc_id)
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def _update(collection: str, doc_id: str, fields: Dict[str, Any], label: str) -> Dict[str, Any]:
    if not database.update_document(collection, doc_id, fields):
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return serialize_doc(database.get_document(collection, doc_id))


def _now() -> datetime:
    return datetime.now(timezone.utc)


@app.get("/")
def read_root():
    return {"name": "Car Booking API", "status": "ok"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "❌ Not Set",
        "database_name": "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.db.name
            try:
                response["collections"] = database.db.list_collection_names()
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except Exception as e:
                response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Database not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:120]}"
    return response


# ---------- AUTH ----------
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
    redirect: str


def _user_out(doc: Dict[str, Any]) -> UserOut:
    return UserOut(
        id=str(doc["_id"]),
        name=doc.get("name"),
        email=doc.get("email"),
        role=doc.get("role") or Role.CUSTOMER,
        phone=doc.get("phone"),
    )


def _token_response(doc: Dict[str, Any]) -> Dict[str, Any]:
    user_out = _user_out(doc)
    token = create_access_token(user_out.id, user_out.role, name=user_out.name, email=user_out.email)
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": user_out,
        "redirect": navigation.landing_for(True, user_out.role),
    }


@app.post("/api/auth/register", response_model=TokenResponse)
def register(user: User):
    doc = register_user(user.name, user.email, user.password, role=Role.CUSTOMER, phone=user.phone)
    return _token_response(doc)


@app.post("/api/auth/login", response_model=TokenResponse)
def login(req: LoginRequest):
    return _token_response(authenticate(req.email, req.password))


@app.post("/api/auth/admin/login", response_model=TokenResponse)
def admin_login(req: LoginRequest):
    return _token_response(authenticate(req.email, req.password, role=Role.ADMIN))


@app.post("/api/auth/driver/login", response_model=TokenResponse)
def driver_login(req: LoginRequest):
    return _token_response(authenticate(req.email, req.password, role=Role.DRIVER))


@app.get("/api/auth/me", response_model=UserOut)
def me(session: Session = Depends(require_session)):
    doc = database.get_document("user", session.user_id)
    if not doc:
        raise AuthError("unauthenticated", "Please login to continue")
    return _user_out(doc)


@app.patch("/api/auth/me", response_model=UserOut)
def update_me(payload: ProfileUpdate, session: Session = Depends(require_session)):
    update = payload.model_dump(exclude_none=True)
    if update:
        database.update_document("user", session.user_id, update)
    return me(session)


@app.post("/api/auth/password")
def change_password(payload: PasswordChange, session: Session = Depends(require_session)):
    if payload.new_password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    database.update_document("user", session.user_id, {"hashed_password": hash_password(payload.new_password)})
    return {"updated": True}


@app.get("/api/navigation")
def resolve_navigation(path: str = Query(..., description="Client route being opened"), session: Session = Depends(get_session)):
    decision = navigation.resolve_path(session.authenticated, session.role, path)
    if isinstance(decision, navigation.Redirect):
        return {"action": "redirect", "target": decision.target}
    return {"action": "render", "target": decision.path}


# ---------- CATALOG ----------
@app.get("/api/cars")
def list_cars(
    type: str = Query("all", description="Car type or 'all'"),
    price_range: PriceRange = Query("all"),
    sort_by: SortBy = Query("default"),
):
    cars = available_cars(database.get_documents("car"))
    return [serialize_doc(c) for c in filter_cars(cars, type=type, price_range=price_range, sort_by=sort_by)]


@app.get("/api/cars/{car_id}")
def get_car(car_id: str):
    return serialize_doc(_get_or_404("car", car_id, "Car"))


@app.get("/api/drivers/available")
def list_available_drivers(session: Session = Depends(require_session)):
    drivers = database.get_documents("user", {"role": Role.DRIVER.value, "is_available": True})
    return [
        {"id": str(d["_id"]), "name": d.get("name"), "phone": d.get("phone"), "experience": d.get("experience")}
        for d in drivers
    ]


# ---------- BOOKINGS ----------
def _driver_for_booking(booking_type: BookingType, driver_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if booking_type != BookingType.WITH_DRIVER:
        return None
    if not driver_id:
        raise HTTPException(status_code=400, detail="Please select a driver")
    driver = database.get_document("user", driver_id)
    if not driver or driver.get("role") != Role.DRIVER.value:
        raise HTTPException(status_code=404, detail="Driver not found")
    if not driver.get("is_available", False):
        raise BookingRuleError("driver-unavailable", "Selected driver is not available")
    return driver


@app.post("/api/bookings/quote")
def quote_booking(req: QuoteRequest):
    car = _get_or_404("car", req.car_id, "Car")
    price = compute_price(car.get("price_per_km", 0), req.estimated_distance, req.booking_type, driver_selected=bool(req.driver_id))
    return price.model_dump()


@app.post("/api/bookings")
def create_booking(req: BookingRequest, session: Session = Depends(customer_only)):
    car = _get_or_404("car", req.car_id, "Car")
    if not car.get("is_available"):
        raise BookingRuleError("car-unavailable", "This car is not available for booking")
    driver = _driver_for_booking(req.booking_type, req.driver_id)
    driver_id = str(driver["_id"]) if driver else None

    price = compute_price(car["price_per_km"], req.estimated_distance, req.booking_type, driver_selected=driver is not None)
    if price.distance_charge <= 0:
        raise HTTPException(status_code=400, detail="Please enter a valid distance")
    data = req.model_dump(mode="json")
    data.update(price.model_dump())
    data.update({
        "driver_id": driver_id,
        "customer_id": session.user_id,
        "customer_name": session.name,
        "car_name": car.get("name"),
        "car_type": car.get("type"),
        "status": lifecycle.initial_status(req.booking_type).value,
        "payment_status": PaymentStatus.PENDING.value,
        "payment_method": None,
    })
    booking_id = database.create_document("booking", data)

    notifications.notify(session.user_id, "Booking created", f"Your booking for {car.get('name')} has been created. Total: ${format_amount(price.total_amount)}",
                         type="booking", link=f"/booking/{booking_id}")
    notifications.notify(driver_id, "New ride assigned", f"You have been assigned a ride from {req.pickup_location}.",
                         type="ride", link="/driver/rides")
    return serialize_doc(database.get_document("booking", booking_id))


def _customer_booking(booking_id: str, session: Session) -> Dict[str, Any]:
    booking = _get_or_404("booking", booking_id, "Booking")
    if booking.get("customer_id") != session.user_id:
        raise AuthError("permission-denied", "You do not have permission to view this booking")
    return booking


@app.get("/api/bookings/{booking_id}")
def get_booking(booking_id: str, session: Session = Depends(require_session)):
    booking = _get_or_404("booking", booking_id, "Booking")
    allowed = (
        session.role == Role.ADMIN
        or booking.get("customer_id") == session.user_id
        or booking.get("driver_id") == session.user_id
    )
    if not allowed:
        raise AuthError("permission-denied", "You do not have permission to view this booking")
    result = serialize_doc(booking)
    car = database.get_document("car", booking["car_id"]) if booking.get("car_id") else None
    driver = database.get_document("user", booking["driver_id"]) if booking.get("driver_id") else None
    result["car"] = serialize_doc(car)
    result["driver"] = serialize_doc(driver)
    return result


@app.post("/api/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: str, session: Session = Depends(customer_only)):
    booking = _customer_booking(booking_id, session)
    updated = _update("booking", booking_id, lifecycle.cancel(booking, _now()), "Booking")
    notifications.notify(booking.get("driver_id"), "Ride cancelled", "A ride assigned to you was cancelled by the customer.",
                         type="ride", link="/driver/rides")
    return updated


@app.post("/api/bookings/{booking_id}/pay")
def pay_booking(booking_id: str, req: PaymentRequest, session: Session = Depends(customer_only)):
    booking = _customer_booking(booking_id, session)
    updated = _update("booking", booking_id, lifecycle.pay(booking, req.payment_method, req.card, _now()), "Booking")
    if updated["payment_status"] == PaymentStatus.PAID.value:
        message = "Payment successful! Your booking is confirmed."
    else:
        message = "Booking confirmed! You will pay cash to the driver."
    notifications.notify(session.user_id, "Payment", message, type="payment", link=f"/booking/{booking_id}")
    return {"booking": updated, "message": message}


@app.post("/api/bookings/{booking_id}/review")
def review_booking(booking_id: str, payload: Review, session: Session = Depends(customer_only)):
    booking = _customer_booking(booking_id, session)
    return _update("booking", booking_id, lifecycle.review(booking, "customer", payload.rating, payload.comment, _now()), "Booking")


@app.get("/api/customer/dashboard")
def customer_dashboard(session: Session = Depends(customer_only)):
    bookings = database.get_documents("booking", {"customer_id": session.user_id})
    return {
        "stats": dashboards.customer_stats(bookings),
        "bookings": [serialize_doc(b) for b in filter_bookings(bookings)],
    }


# ---------- DRIVER ----------
def _driver_ride(booking_id: str, session: Session) -> Dict[str, Any]:
    booking = _get_or_404("booking", booking_id, "Ride")
    if booking.get("driver_id") != session.user_id:
        raise AuthError("permission-denied", "This ride is not assigned to you")
    return booking


def _driver_rides(session: Session):
    return database.get_documents("booking", {"driver_id": session.user_id})


@app.get("/api/driver/dashboard")
def driver_dashboard(session: Session = Depends(driver_only)):
    rides = _driver_rides(session)
    return {
        "stats": dashboards.driver_stats(rides),
        "active": [serialize_doc(r) for r in filter_rides(rides, "active")],
        "completed": [serialize_doc(r) for r in filter_rides(rides, "completed")],
    }


@app.get("/api/driver/rides")
def driver_rides(tab: str = Query("all", description="active|completed|all"), session: Session = Depends(driver_only)):
    rides = filter_bookings(_driver_rides(session), sort_field="pickup_date", direction="desc")
    return [serialize_doc(r) for r in filter_rides(rides, tab)]


@app.post("/api/driver/rides/{booking_id}/accept")
def accept_ride(booking_id: str, session: Session = Depends(driver_only)):
    booking = _driver_ride(booking_id, session)
    updated = _update("booking", booking_id, lifecycle.confirm(booking, session.user_id, Role.DRIVER, _now()), "Ride")
    notifications.notify(booking.get("customer_id"), "Driver confirmed", "Your driver has accepted the ride.",
                         type="booking", link=f"/booking/{booking_id}")
    return updated


@app.post("/api/driver/rides/{booking_id}/complete")
def complete_ride(booking_id: str, session: Session = Depends(driver_only)):
    booking = _driver_ride(booking_id, session)
    updated = _update("booking", booking_id, lifecycle.complete(booking, session.user_id, Role.DRIVER, _now()), "Ride")
    notifications.notify(booking.get("customer_id"), "Ride completed", "Your ride has been completed. Leave a review!",
                         type="booking", link=f"/booking/{booking_id}")
    return updated


@app.post("/api/driver/rides/{booking_id}/cash-collected")
def cash_collected(booking_id: str, session: Session = Depends(driver_only)):
    booking = _driver_ride(booking_id, session)
    return _update("booking", booking_id, lifecycle.collect_cash(booking, session.user_id, Role.DRIVER, _now()), "Ride")


@app.post("/api/driver/rides/{booking_id}/review")
def review_ride(booking_id: str, payload: Review, session: Session = Depends(driver_only)):
    booking = _driver_ride(booking_id, session)
    return _update("booking", booking_id, lifecycle.review(booking, "driver", payload.rating, payload.comment, _now()), "Ride")


@app.get("/api/driver/profile")
def driver_profile(session: Session = Depends(driver_only)):
    doc = database.get_document("user", session.user_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Driver profile not found")
    return serialize_doc(doc)


@app.patch("/api/driver/profile")
def update_driver_profile(payload: ProfileUpdate, session: Session = Depends(driver_only)):
    update = payload.model_dump(exclude_none=True)
    if not update:
        return driver_profile(session)
    return _update("user", session.user_id, update, "Driver profile")


@app.patch("/api/driver/status")
def update_driver_status(payload: DriverStatus, session: Session = Depends(driver_only)):
    return _update("user", session.user_id, {"is_available": payload.is_available}, "Driver profile")


# ---------- ADMIN ----------
def _drivers():
    return database.get_documents("user", {"role": Role.DRIVER.value})


@app.get("/api/admin/dashboard")
def admin_dashboard(session: Session = Depends(admin_only)):
    bookings = database.get_documents("booking")
    return {
        "stats": dashboards.admin_stats(bookings, database.get_documents("car"), _drivers()),
        "recent_bookings": [serialize_doc(b) for b in dashboards.recent(bookings)],
    }


@app.get("/api/admin/cars")
def admin_list_cars(session: Session = Depends(admin_only)):
    return [serialize_doc(c) for c in database.get_documents("car")]


@app.post("/api/admin/cars")
def admin_create_car(car: Car, session: Session = Depends(admin_only)):
    car_id = database.create_document("car", car)
    return serialize_doc(database.get_document("car", car_id))


@app.patch("/api/admin/cars/{car_id}")
def admin_update_car(car_id: str, payload: UpdateCar, session: Session = Depends(admin_only)):
    update = payload.model_dump(exclude_none=True)
    if not update:
        return serialize_doc(_get_or_404("car", car_id, "Car"))
    return _update("car", car_id, update, "Car")


@app.delete("/api/admin/cars/{car_id}")
def admin_delete_car(car_id: str, session: Session = Depends(admin_only)):
    if not database.delete_document("car", car_id):
        raise HTTPException(status_code=404, detail="Car not found")
    logger.info("Car %s deleted by %s", car_id, session.user_id)
    return {"deleted": True}


def _admin_driver(driver_id: str) -> Dict[str, Any]:
    driver = _get_or_404("user", driver_id, "Driver")
    if driver.get("role") != Role.DRIVER.value:
        raise HTTPException(status_code=404, detail="Driver not found")
    return driver


@app.get("/api/admin/drivers")
def admin_list_drivers(session: Session = Depends(admin_only)):
    return [serialize_doc(d) for d in _drivers()]


@app.post("/api/admin/drivers")
def admin_create_driver(driver: Driver, session: Session = Depends(admin_only)):
    extra = driver.model_dump(exclude={"name", "email", "password"})
    doc = register_user(driver.name, driver.email, driver.password, role=Role.DRIVER, **extra)
    return serialize_doc(doc)


@app.patch("/api/admin/drivers/{driver_id}")
def admin_update_driver(driver_id: str, payload: UpdateDriver, session: Session = Depends(admin_only)):
    driver = _admin_driver(driver_id)
    update = payload.model_dump(exclude_none=True)
    if not update:
        return serialize_doc(driver)
    return _update("user", driver_id, update, "Driver")


@app.delete("/api/admin/drivers/{driver_id}")
def admin_delete_driver(driver_id: str, session: Session = Depends(admin_only)):
    _admin_driver(driver_id)
    database.delete_document("user", driver_id)
    logger.info("Driver %s deleted by %s", driver_id, session.user_id)
    return {"deleted": True}


@app.get("/api/admin/bookings")
def admin_list_bookings(
    status: str = Query("all"),
    payment_status: str = Query("all"),
    sort_field: str = Query("created_at"),
    direction: str = Query("desc", description="asc|desc"),
    session: Session = Depends(admin_only),
):
    bookings = filter_bookings(database.get_documents("booking"), status, payment_status, sort_field, direction)
    return [serialize_doc(b) for b in bookings]


@app.post("/api/admin/bookings/{booking_id}/status")
def admin_update_booking_status(booking_id: str, payload: StatusUpdate, session: Session = Depends(admin_only)):
    booking = _get_or_404("booking", booking_id, "Booking")
    fields = lifecycle.transition(booking, payload.status, session.user_id, Role.ADMIN, _now())
    updated = _update("booking", booking_id, fields, "Booking")
    message = f"Booking status updated to {payload.status.value}"
    notifications.notify(booking.get("customer_id"), "Booking update", message, type="booking", link=f"/booking/{booking_id}")
    if payload.status == BookingStatus.CANCELLED:
        notifications.notify(booking.get("driver_id"), "Ride cancelled", "A ride assigned to you was cancelled.",
                             type="ride", link="/driver/rides")
    return updated


@app.post("/api/admin/bookings/{booking_id}/payment-status")
def admin_update_payment_status(booking_id: str, payload: PaymentStatusUpdate, session: Session = Depends(admin_only)):
    _get_or_404("booking", booking_id, "Booking")
    return _update("booking", booking_id, lifecycle.set_payment_status(payload.payment_status, _now()), "Booking")


@app.get("/api/admin/payments")
def admin_list_payments(
    status: str = Query("all", description="paid|pending|all"),
    method: str = Query("all", description="online|cash|all"),
    session: Session = Depends(admin_only),
):
    bookings = database.get_documents("booking")
    return {
        "stats": dashboards.payment_stats(bookings),
        "payments": [serialize_doc(b) for b in filter_payments(bookings, status, method)],
    }


# ---------- NOTIFICATIONS ----------
@app.get("/api/notifications")
def list_my_notifications(limit: int = Query(50, ge=1, le=200), session: Session = Depends(require_session)):
    return notifications.list_notifications(session.user_id, limit)


@app.get("/api/notifications/unread-count")
def my_unread_count(session: Session = Depends(require_session)):
    return {"count": notifications.unread_count(session.user_id)}


@app.post("/api/notifications/read-all")
def read_all_notifications(session: Session = Depends(require_session)):
    return {"updated": notifications.mark_all_read(session.user_id)}


@app.post("/api/notifications/{notification_id}/read")
def read_notification(notification_id: str, session: Session = Depends(require_session)):
    if not notifications.mark_read(session.user_id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"updated": True}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
