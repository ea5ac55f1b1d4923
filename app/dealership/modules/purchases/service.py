"""
Purchase service layer.

A purchase is one transaction: the car flips AVAILABLE → SOLD through a
conditional UPDATE, the Purchase row is inserted, and slots still held on the
car are cancelled. The caller commits; on any error the caller rolls back.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from app.dealership.audit import record_event
from app.dealership.utils import clean_str, digits_only

from app.dealership.modules.inventory.models import Car
from app.dealership.modules.test_drives.service import cancel_active_bookings_for_car

from .models import Purchase

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.dealership.models import User


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EXPIRY_RE = re.compile(r"^(\d{2})\s*/\s*(\d{2})$")

NOT_AVAILABLE_MESSAGE = "Car is no longer available for purchase"

CHECKOUT_FIELDS = (
    "full_name",
    "email",
    "phone",
    "address",
    "city",
    "state",
    "zip_code",
    "card_number",
    "expiry_date",
    "cvv",
    "card_name",
)


def _card_expired(expiry: str, today: date) -> bool | None:
    """None when unparseable; otherwise whether MM/YY lies before the current month."""
    m = EXPIRY_RE.match(expiry)
    if not m:
        return None
    month, year = int(m.group(1)), 2000 + int(m.group(2))
    if not 1 <= month <= 12:
        return None
    return (year, month) < (today.year, today.month)


def validate_checkout_payload(payload: dict, *, today: date | None = None) -> list[str]:
    """Validate the checkout form. Returns list of errors."""
    errors: list[str] = []
    today = today or date.today()

    def _min_len(key: str, n: int, message: str) -> None:
        if len(clean_str(payload.get(key))) < n:
            errors.append(message)

    _min_len("full_name", 2, "Full name is required.")
    if not EMAIL_RE.match(clean_str(payload.get("email"))):
        errors.append("Valid email is required.")
    if len(digits_only(payload.get("phone"))) < 10:
        errors.append("Valid phone number is required.")
    _min_len("address", 10, "Complete address is required.")
    _min_len("city", 2, "City is required.")
    _min_len("state", 2, "State is required.")
    _min_len("zip_code", 5, "Valid ZIP code is required.")

    card_raw = clean_str(payload.get("card_number")).replace(" ", "").replace("-", "")
    if not card_raw.isdigit() or not 13 <= len(card_raw) <= 19:
        errors.append("Valid card number is required.")
    expired = _card_expired(clean_str(payload.get("expiry_date")), today)
    if expired is None:
        errors.append("Valid expiry date is required (MM/YY).")
    elif expired:
        errors.append("Card has expired.")
    cvv = clean_str(payload.get("cvv"))
    if not cvv.isdigit() or len(cvv) not in (3, 4):
        errors.append("Valid CVV is required.")
    _min_len("card_name", 2, "Cardholder name is required.")

    return errors


def complete_purchase(
    s: "Session",
    user: "User",
    car_id: int,
    payload: dict,
    *,
    today: date | None = None,
) -> Purchase:
    """Sell the car to the user. Raises ValueError when the checkout is invalid or the car is gone."""
    errors = validate_checkout_payload(payload, today=today)
    if errors:
        raise ValueError(errors[0])

    car = s.get(Car, car_id)
    if not car:
        raise ValueError("Car not found")

    now = datetime.utcnow()
    updated = (
        s.query(Car)
        .filter(Car.id == car_id, Car.status == "AVAILABLE")
        .update(
            {Car.status: "SOLD", Car.updated_at: now, Car.updated_by_user_id: user.id},
            synchronize_session="fetch",
        )
    )
    if updated != 1:
        raise ValueError(NOT_AVAILABLE_MESSAGE)

    purchase = Purchase(
        car=car,
        user_id=user.id,
        price=car.price,
        full_name=clean_str(payload.get("full_name")),
        email=clean_str(payload.get("email")).lower(),
        phone=clean_str(payload.get("phone")),
        address=clean_str(payload.get("address")),
        city=clean_str(payload.get("city")),
        state=clean_str(payload.get("state")),
        zip_code=clean_str(payload.get("zip_code")),
        card_last4=digits_only(payload.get("card_number"))[-4:],
        created_at=now,
    )
    s.add(purchase)
    try:
        s.flush()
    except IntegrityError as e:
        raise ValueError(NOT_AVAILABLE_MESSAGE) from e

    cancelled = cancel_active_bookings_for_car(s, car, user)

    record_event(
        s,
        actor=user,
        action="purchase.complete",
        entity_type="Purchase",
        entity_id=str(purchase.id),
        metadata={
            "car_id": car.id,
            "title": car.title,
            "price": str(purchase.price),
            "cancelled_test_drives": cancelled,
        },
    )
    return purchase


def get_user_purchases(s: "Session", user: "User") -> list[Purchase]:
    return (
        s.query(Purchase)
        .filter(Purchase.user_id == user.id)
        .order_by(Purchase.created_at.desc(), Purchase.id.desc())
        .all()
    )


def user_purchased_car(s: "Session", user: "User | None", car_id: int) -> bool:
    if user is None:
        return False
    return (
        s.query(Purchase.id)
        .filter(Purchase.user_id == user.id, Purchase.car_id == car_id)
        .first()
        is not None
    )


def serialize_purchase(purchase: Purchase) -> dict[str, Any]:
    from app.dealership.modules.inventory.service import serialize_car

    return {
        "id": purchase.id,
        "car_id": purchase.car_id,
        "user_id": purchase.user_id,
        "car": serialize_car(purchase.car) if purchase.car else None,
        "price": float(purchase.price),
        "card_last4": purchase.card_last4,
        "created_at": purchase.created_at.isoformat() if purchase.created_at else None,
    }
