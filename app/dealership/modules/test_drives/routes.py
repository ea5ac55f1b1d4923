from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.test_drives.service import (
    book_test_drive,
    cancel_test_drive,
    find_active_booking,
    get_user_test_drives,
)
from app.dealership.rbac import require_permission

bp = Blueprint("test_drives", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/test-drive/<int:car_id>")
@require_permission("test_drives.book")
def book_get(car_id: int):
    s = db_session()
    car = s.get(Car, car_id)
    if not car:
        abort(404)
    return render_template(
        "test_drives/book.html",
        car=car,
        active_booking=find_active_booking(s, _current_user(), car.id),
        today=date.today(),
        form={},
    )


@bp.post("/test-drive/<int:car_id>")
@require_permission("test_drives.book")
def book_post(car_id: int):
    s = db_session()
    u = _current_user()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    form = {
        "booking_date": request.form.get("booking_date"),
        "start_time": request.form.get("start_time"),
        "end_time": request.form.get("end_time"),
        "notes": request.form.get("notes"),
    }
    try:
        booking = book_test_drive(
            s,
            u,
            car.id,
            booking_date=form["booking_date"] or "",
            start_time=form["start_time"] or "",
            end_time=form["end_time"] or "",
            notes=form["notes"],
        )
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return render_template(
            "test_drives/book.html",
            car=car,
            active_booking=find_active_booking(s, u, car.id),
            today=date.today(),
            form=form,
        ), 400
    s.commit()

    flash(
        f"Test drive booked for {booking.booking_date.isoformat()} {booking.start_time}-{booking.end_time}. "
        "We'll confirm it shortly.",
        "success",
    )
    return redirect(url_for("test_drives.reservations"))


@bp.get("/reservations")
@require_permission("test_drives.book")
def reservations():
    s = db_session()
    bookings = get_user_test_drives(s, _current_user())
    upcoming = [b for b in bookings if b.status in ("PENDING", "CONFIRMED")]
    past = [b for b in bookings if b.status not in ("PENDING", "CONFIRMED")]
    return render_template("test_drives/reservations.html", upcoming=upcoming, past=past)


@bp.post("/reservations/<int:booking_id>/cancel")
@require_permission("test_drives.book")
def reservation_cancel(booking_id: int):
    s = db_session()
    try:
        cancel_test_drive(s, _current_user(), booking_id)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("test_drives.reservations"))
    s.commit()

    flash("Test drive cancelled successfully.", "success")
    return redirect(url_for("test_drives.reservations"))
