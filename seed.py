"""
Startup data: the sample car catalog and the bootstrap admin account.
"""

import os
import logging

import database
from auth import hash_password, register_user
from schemas import Car, Role

logger = logging.getLogger(__name__)

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin User")

SAMPLE_CARS = [
    Car(name="Toyota Camry", type="Sedan", price_per_km=0.85,
        features=["Air Conditioning", "Bluetooth", "Cruise Control", "Backup Camera"]),
    Car(name="Honda CR-V", type="SUV", price_per_km=1.2,
        features=["All-Wheel Drive", "Navigation System", "Heated Seats", "Sunroof"]),
    Car(name="Ford F-150", type="Truck", price_per_km=1.5,
        features=["4x4", "Towing Package", "Bedliner", "Large Cargo Space"]),
    Car(name="BMW 5 Series", type="Luxury", price_per_km=2.5,
        features=["Leather Seats", "Premium Sound System", "Adaptive Cruise Control", "Parking Assistant"]),
    Car(name="Tesla Model 3", type="Electric", price_per_km=2.0,
        features=["Autopilot", "All-Electric", "Touchscreen Display", "Long Range Battery"]),
    Car(name="Toyota Sienna", type="Van", price_per_km=1.3,
        features=["8 Passenger Seating", "Sliding Doors", "Rear Entertainment System", "Storage Space"]),
]


def seed_cars() -> int:
    if database.get_collection("car").count_documents({}) > 0:
        return 0
    for car in SAMPLE_CARS:
        database.create_document("car", car)
    logger.info("Seeded %d sample cars", len(SAMPLE_CARS))
    return len(SAMPLE_CARS)


def ensure_admin(email=ADMIN_EMAIL, password=ADMIN_PASSWORD, name=ADMIN_NAME):
    """Create the admin account, or promote an existing user with that email."""
    if not email or not password:
        return None
    email = email.lower()
    existing = database.get_documents("user", {"email": email}, 1)
    if existing:
        doc = existing[0]
        if doc.get("role") != Role.ADMIN.value:
            database.update_document("user", str(doc["_id"]), {"role": Role.ADMIN.value})
            logger.info("Promoted %s to admin", email)
        if not doc.get("hashed_password"):
            database.update_document("user", str(doc["_id"]), {"hashed_password": hash_password(password)})
        return str(doc["_id"])
    doc = register_user(name, email, password, role=Role.ADMIN)
    return str(doc["_id"])
