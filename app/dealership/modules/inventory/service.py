"""
Inventory service layer.
Public listing search, sold-car history, and admin CRUD for car listings.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.dealership.audit import record_event
from app.dealership.utils import clean_str, parse_bool, parse_decimal, parse_int

from .models import Car

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.dealership.models import User


CAR_STATUSES = ("AVAILABLE", "UNAVAILABLE", "SOLD")
FUEL_TYPES = ("Petrol", "Diesel", "Electric", "Hybrid", "Plug-in Hybrid")
TRANSMISSIONS = ("Automatic", "Manual", "Semi-Automatic")
BODY_TYPES = ("SUV", "Sedan", "Hatchback", "Convertible", "Coupe", "Wagon", "Pickup")

SORT_OPTIONS = {
    "newest": (Car.created_at.desc(), Car.id.desc()),
    "price_asc": (Car.price.asc(), Car.id.asc()),
    "price_desc": (Car.price.desc(), Car.id.desc()),
}

MIN_YEAR = 1900
MIN_DESCRIPTION_LENGTH = 10
SOLD_WITH_PURCHASE_MESSAGE = "Car has a completed purchase and must stay SOLD."


@dataclass
class CarSearchResult:
    cars: list[Car]
    total: int
    page: int
    per_page: int
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


def search_cars(
    s: "Session",
    *,
    q: str | None = None,
    make: str | None = None,
    body_type: str | None = None,
    fuel_type: str | None = None,
    transmission: str | None = None,
    min_price: Decimal | None = None,
    max_price: Decimal | None = None,
    sort: str = "newest",
    page: int = 1,
    per_page: int = 9,
) -> CarSearchResult:
    """Search AVAILABLE listings. Unknown sort keys fall back to newest first."""
    query = s.query(Car).filter(Car.status == "AVAILABLE")

    q = clean_str(q)
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Car.make.ilike(like),
                Car.model.ilike(like),
                Car.description.ilike(like),
            )
        )
    if make:
        query = query.filter(Car.make.ilike(make))
    if body_type:
        query = query.filter(Car.body_type == body_type)
    if fuel_type:
        query = query.filter(Car.fuel_type == fuel_type)
    if transmission:
        query = query.filter(Car.transmission == transmission)
    if min_price is not None:
        query = query.filter(Car.price >= min_price)
    if max_price is not None:
        query = query.filter(Car.price <= max_price)

    total = query.count()
    page = max(1, page)
    per_page = max(1, per_page)
    order_by = SORT_OPTIONS.get(sort) or SORT_OPTIONS["newest"]
    cars = query.order_by(*order_by).offset((page - 1) * per_page).limit(per_page).all()

    return CarSearchResult(
        cars=cars,
        total=total,
        page=page,
        per_page=per_page,
        filters={
            "q": q,
            "make": make or "",
            "body_type": body_type or "",
            "fuel_type": fuel_type or "",
            "transmission": transmission or "",
            "min_price": min_price,
            "max_price": max_price,
            "sort": sort if sort in SORT_OPTIONS else "newest",
        },
    )


def parse_search_args(args: Any) -> dict[str, Any]:
    """Turn request.args into search_cars kwargs; unparseable numbers are ignored."""

    def _money(key: str) -> Decimal | None:
        try:
            return parse_decimal(args.get(key))
        except ValueError:
            return None

    try:
        page = parse_int(args.get("page")) or 1
    except ValueError:
        page = 1

    return {
        "q": clean_str(args.get("q")) or None,
        "make": clean_str(args.get("make")) or None,
        "body_type": clean_str(args.get("body_type")) or None,
        "fuel_type": clean_str(args.get("fuel_type")) or None,
        "transmission": clean_str(args.get("transmission")) or None,
        "min_price": _money("min_price"),
        "max_price": _money("max_price"),
        "sort": clean_str(args.get("sort")) or "newest",
        "page": page,
    }


def car_filter_options(s: "Session") -> dict[str, list[str]]:
    """Distinct values among AVAILABLE cars for the filter dropdowns."""

    def _distinct(col) -> list[str]:
        rows = s.query(col).filter(Car.status == "AVAILABLE").distinct().all()
        return sorted(r[0] for r in rows if r[0])

    return {
        "makes": _distinct(Car.make),
        "body_types": _distinct(Car.body_type),
        "fuel_types": _distinct(Car.fuel_type),
        "transmissions": _distinct(Car.transmission),
    }


def get_featured_cars(s: "Session", limit: int = 3) -> list[Car]:
    return (
        s.query(Car)
        .filter(Car.status == "AVAILABLE", Car.featured.is_(True))
        .order_by(Car.created_at.desc(), Car.id.desc())
        .limit(limit)
        .all()
    )


def get_sold_cars(s: "Session") -> list[Car]:
    return s.query(Car).filter(Car.status == "SOLD").order_by(Car.updated_at.desc(), Car.id.desc()).all()


def get_sold_car(s: "Session", car_id: int) -> Car | None:
    return s.query(Car).filter(Car.id == car_id, Car.status == "SOLD").one_or_none()


def serialize_car(car: Car) -> dict[str, Any]:
    return {
        "id": car.id,
        "make": car.make,
        "model": car.model,
        "year": car.year,
        "price": float(car.price),
        "mileage": car.mileage,
        "color": car.color,
        "fuel_type": car.fuel_type,
        "transmission": car.transmission,
        "body_type": car.body_type,
        "seats": car.seats,
        "description": car.description,
        "status": car.status,
        "featured": car.featured,
        "created_at": car.created_at.isoformat() if car.created_at else None,
        "updated_at": car.updated_at.isoformat() if car.updated_at else None,
    }


# ---------- Admin CRUD ----------

def validate_car_payload(payload: dict, *, today: date | None = None) -> list[str]:
    """Validate car creation/update payload. Returns list of errors."""
    errors: list[str] = []
    today = today or date.today()

    for key, label in (
        ("make", "Make"),
        ("model", "Model"),
        ("color", "Color"),
    ):
        if not clean_str(payload.get(key)):
            errors.append(f"{label} is required.")

    fuel_type = clean_str(payload.get("fuel_type"))
    if fuel_type not in FUEL_TYPES:
        errors.append(f"Fuel type must be one of: {', '.join(FUEL_TYPES)}")
    transmission = clean_str(payload.get("transmission"))
    if transmission not in TRANSMISSIONS:
        errors.append(f"Transmission must be one of: {', '.join(TRANSMISSIONS)}")
    body_type = clean_str(payload.get("body_type"))
    if body_type not in BODY_TYPES:
        errors.append(f"Body type must be one of: {', '.join(BODY_TYPES)}")

    try:
        year = parse_int(payload.get("year"))
    except ValueError:
        year = None
    if year is None or year < MIN_YEAR or year > today.year + 1:
        errors.append(f"Valid year required ({MIN_YEAR}-{today.year + 1}).")

    try:
        price = parse_decimal(payload.get("price"))
    except ValueError:
        price = None
    if price is None or price <= 0:
        errors.append("Price must be a positive amount.")

    try:
        mileage = parse_int(payload.get("mileage"))
    except ValueError:
        mileage = None
    if mileage is None or mileage < 0:
        errors.append("Mileage must be a whole number of zero or more.")

    try:
        seats = parse_int(payload.get("seats"))
        if seats is not None and seats <= 0:
            errors.append("Seats must be a positive number.")
    except ValueError:
        errors.append("Seats must be a positive number.")

    if len(clean_str(payload.get("description"))) < MIN_DESCRIPTION_LENGTH:
        errors.append(f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters.")

    status = clean_str(payload.get("status"))
    if status and status not in CAR_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CAR_STATUSES)}")

    return errors


def _car_values(payload: dict, *, default_status: str = "AVAILABLE") -> dict[str, Any]:
    """Normalized column values from an already validated payload. A blank status keeps `default_status`."""
    return {
        "make": clean_str(payload.get("make")),
        "model": clean_str(payload.get("model")),
        "year": parse_int(payload.get("year")),
        "price": parse_decimal(payload.get("price")),
        "mileage": parse_int(payload.get("mileage")),
        "color": clean_str(payload.get("color")),
        "fuel_type": clean_str(payload.get("fuel_type")),
        "transmission": clean_str(payload.get("transmission")),
        "body_type": clean_str(payload.get("body_type")),
        "seats": parse_int(payload.get("seats")),
        "description": clean_str(payload.get("description")),
        "status": clean_str(payload.get("status")) or default_status,
        "featured": parse_bool(payload.get("featured")),
    }


def create_car(s: "Session", payload: dict, user: "User") -> Car:
    """Create a new listing."""
    errors = validate_car_payload(payload)
    if errors:
        raise ValueError(errors[0])

    now = datetime.utcnow()
    car = Car(
        **_car_values(payload),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(car)
    s.flush()

    record_event(
        s,
        actor=user,
        action="car.create",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"title": car.title, "price": str(car.price), "status": car.status},
    )
    return car


def update_car(s: "Session", car: Car, payload: dict, user: "User", reason: str | None = None) -> Car:
    """Update an existing listing; records field-level changes."""
    errors = validate_car_payload(payload)
    if errors:
        raise ValueError(errors[0])

    values = _car_values(payload, default_status=car.status)
    if car.purchase is not None and values["status"] != "SOLD":
        raise ValueError(SOLD_WITH_PURCHASE_MESSAGE)

    changes = {}
    for key, new in values.items():
        old = getattr(car, key)
        if old != new:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(car, key, new)

    car.updated_at = datetime.utcnow()
    car.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="car.edit",
        entity_type="Car",
        entity_id=str(car.id),
        reason=reason,
        metadata={"title": car.title, "changes": changes},
    )
    return car


def set_car_status(s: "Session", car: Car, status: str, user: "User") -> Car:
    if status not in CAR_STATUSES:
        raise ValueError(f"Invalid status: {status}")
    if car.status == status:
        return car
    if car.status == "SOLD" and car.purchase is not None:
        raise ValueError(SOLD_WITH_PURCHASE_MESSAGE)

    old_status = car.status
    car.status = status
    car.updated_at = datetime.utcnow()
    car.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="car.status",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"from": old_status, "to": status},
    )
    return car


def toggle_featured(s: "Session", car: Car, user: "User") -> Car:
    car.featured = not car.featured
    car.updated_at = datetime.utcnow()
    car.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="car.feature",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"featured": car.featured},
    )
    return car


def delete_car(s: "Session", car: Car, user: "User", reason: str | None = None) -> None:
    """Hard-delete a listing. Sold cars with a purchase record are kept for history."""
    if car.purchase is not None:
        raise ValueError("Cannot delete a car that has been purchased.")

    record_event(
        s,
        actor=user,
        action="car.delete",
        entity_type="Car",
        entity_id=str(car.id),
        reason=reason,
        metadata={"title": car.title},
    )
    s.delete(car)
