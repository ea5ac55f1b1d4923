"""
Test drive service layer.
Booking with slot collision check, customer cancellation, admin status workflow.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.dealership.audit import record_event
from app.dealership.rbac import user_has_permission
from app.dealership.utils import clean_str, parse_date

from app.dealership.modules.inventory.models import Car

from .models import TestDriveBooking

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.dealership.models import User


BOOKING_STATUSES = ("PENDING", "CONFIRMED", "CANCELLED", "COMPLETED")

# Bookings in these states hold their slot.
ACTIVE_STATUSES = ("PENDING", "CONFIRMED")

STATUS_TRANSITIONS = {
    "PENDING": {"CONFIRMED", "CANCELLED"},
    "CONFIRMED": {"COMPLETED", "CANCELLED"},
    "CANCELLED": set(),
    "COMPLETED": set(),
}

SLOT_TAKEN_MESSAGE = "This time slot is already booked. Please select another time."


def parse_slot_time(raw: object | None) -> str:
    """Normalize "9:30" / "09:30" to zero-padded "HH:MM"; raises ValueError otherwise."""
    s = clean_str(raw)
    try:
        t = datetime.strptime(s, "%H:%M").time()
    except ValueError as e:
        raise ValueError(f"Invalid time: {s or '(blank)'} (expected HH:MM)") from e
    return t.strftime("%H:%M")


def book_test_drive(
    s: "Session",
    user: "User",
    car_id: int,
    *,
    booking_date: date | str,
    start_time: str,
    end_time: str,
    notes: str | None = None,
    today: date | None = None,
) -> TestDriveBooking:
    """Book a PENDING test drive unless the car/date/start slot is already held."""
    car = s.query(Car).filter(Car.id == car_id, Car.status == "AVAILABLE").one_or_none()
    if not car:
        raise ValueError("Car not available for test drive")

    try:
        day = parse_date(booking_date)
    except ValueError as e:
        raise ValueError("Booking date must be YYYY-MM-DD.") from e
    if day is None:
        raise ValueError("Booking date is required.")
    if day < (today or date.today()):
        raise ValueError("Booking date cannot be in the past.")

    start = parse_slot_time(start_time)
    end = parse_slot_time(end_time)
    if end <= start:
        raise ValueError("End time must be after start time.")

    existing = (
        s.query(TestDriveBooking)
        .filter(TestDriveBooking.car_id == car.id)
        .filter(TestDriveBooking.booking_date == day)
        .filter(TestDriveBooking.start_time == start)
        .filter(TestDriveBooking.status.in_(ACTIVE_STATUSES))
        .first()
    )
    if existing:
        raise ValueError(SLOT_TAKEN_MESSAGE)

    now = datetime.utcnow()
    booking = TestDriveBooking(
        car_id=car.id,
        user_id=user.id,
        booking_date=day,
        start_time=start,
        end_time=end,
        notes=clean_str(notes) or None,
        status="PENDING",
        created_at=now,
        updated_at=now,
    )
    s.add(booking)
    s.flush()

    record_event(
        s,
        actor=user,
        action="test_drive.book",
        entity_type="TestDriveBooking",
        entity_id=str(booking.id),
        metadata={"car_id": car.id, "date": day.isoformat(), "start": start, "end": end},
    )
    return booking


def find_active_booking(s: "Session", user: "User | None", car_id: int) -> TestDriveBooking | None:
    """The user's upcoming (PENDING/CONFIRMED) booking for a car, if any."""
    if user is None:
        return None
    return (
        s.query(TestDriveBooking)
        .filter(TestDriveBooking.car_id == car_id)
        .filter(TestDriveBooking.user_id == user.id)
        .filter(TestDriveBooking.status.in_(ACTIVE_STATUSES))
        .order_by(TestDriveBooking.booking_date.asc(), TestDriveBooking.start_time.asc())
        .first()
    )


def get_user_test_drives(s: "Session", user: "User") -> list[TestDriveBooking]:
    return (
        s.query(TestDriveBooking)
        .filter(TestDriveBooking.user_id == user.id)
        .order_by(TestDriveBooking.booking_date.desc(), TestDriveBooking.start_time.desc())
        .all()
    )


def cancel_test_drive(s: "Session", user: "User", booking_id: int) -> TestDriveBooking:
    """Cancel a booking. Owners may cancel their own; test drive managers may cancel any."""
    booking = s.get(TestDriveBooking, booking_id)
    if not booking:
        raise ValueError("Booking not found")

    if booking.user_id != user.id and not user_has_permission(user, "test_drives.manage"):
        raise ValueError("Unauthorized to cancel this booking")

    if booking.status == "CANCELLED":
        raise ValueError("Booking is already cancelled")
    if booking.status == "COMPLETED":
        raise ValueError("Cannot cancel a completed booking")

    old_status = booking.status
    booking.status = "CANCELLED"
    booking.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="test_drive.cancel",
        entity_type="TestDriveBooking",
        entity_id=str(booking.id),
        metadata={"car_id": booking.car_id, "from": old_status},
    )
    return booking


def cancel_active_bookings_for_car(s: "Session", car: Car, user: "User") -> int:
    """Cancel every slot still held on a car (used when the car is sold)."""
    bookings = (
        s.query(TestDriveBooking)
        .filter(TestDriveBooking.car_id == car.id)
        .filter(TestDriveBooking.status.in_(ACTIVE_STATUSES))
        .all()
    )
    now = datetime.utcnow()
    for booking in bookings:
        booking.status = "CANCELLED"
        booking.updated_at = now
    if bookings:
        record_event(
            s,
            actor=user,
            action="test_drive.cancel_for_sale",
            entity_type="Car",
            entity_id=str(car.id),
            metadata={"booking_ids": [b.id for b in bookings]},
        )
    return len(bookings)


# ---------- Admin ----------

def list_test_drives(s: "Session", *, status: str | None = None, q: str | None = None) -> list[TestDriveBooking]:
    from app.dealership.models import User

    query = s.query(TestDriveBooking).join(Car, TestDriveBooking.car_id == Car.id).join(
        User, TestDriveBooking.user_id == User.id
    )
    if status:
        query = query.filter(TestDriveBooking.status == status)
    q = clean_str(q)
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Car.make.ilike(like),
                Car.model.ilike(like),
                User.email.ilike(like),
                User.name.ilike(like),
            )
        )
    return query.order_by(TestDriveBooking.booking_date.desc(), TestDriveBooking.start_time.asc()).all()


def update_test_drive_status(s: "Session", booking: TestDriveBooking, new_status: str, user: "User") -> TestDriveBooking:
    """Change booking status following STATUS_TRANSITIONS."""
    if new_status not in BOOKING_STATUSES:
        raise ValueError(f"Invalid status: {new_status}")

    allowed = STATUS_TRANSITIONS.get(booking.status, set())
    if new_status not in allowed:
        raise ValueError(f"Cannot change booking from {booking.status} to {new_status}")

    old_status = booking.status
    booking.status = new_status
    booking.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="test_drive.status",
        entity_type="TestDriveBooking",
        entity_id=str(booking.id),
        metadata={"from": old_status, "to": new_status, "car_id": booking.car_id},
    )
    return booking


def serialize_booking(booking: TestDriveBooking) -> dict[str, Any]:
    from app.dealership.modules.inventory.service import serialize_car

    return {
        "id": booking.id,
        "car_id": booking.car_id,
        "car": serialize_car(booking.car) if booking.car else None,
        "booking_date": booking.booking_date.isoformat(),
        "start_time": booking.start_time,
        "end_time": booking.end_time,
        "status": booking.status,
        "notes": booking.notes,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
        "updated_at": booking.updated_at.isoformat() if booking.updated_at else None,
    }
