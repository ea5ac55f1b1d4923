from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.modules.test_drives.models import TestDriveBooking
from app.dealership.modules.test_drives.service import (
    BOOKING_STATUSES,
    STATUS_TRANSITIONS,
    list_test_drives,
    update_test_drive_status,
)
from app.dealership.rbac import require_permission

bp = Blueprint("test_drives_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/test-drives")
@require_permission("test_drives.manage")
def test_drives_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    search = (request.args.get("q") or "").strip()
    bookings = list_test_drives(s, status=status_filter or None, q=search or None)
    return render_template(
        "admin/test_drives/list.html",
        bookings=bookings,
        statuses=BOOKING_STATUSES,
        transitions=STATUS_TRANSITIONS,
        status_filter=status_filter,
        search=search,
    )


@bp.post("/test-drives/<int:booking_id>/status")
@require_permission("test_drives.manage")
def test_drive_status_post(booking_id: int):
    s = db_session()
    u = _current_user()
    booking = s.get(TestDriveBooking, booking_id)
    if not booking:
        abort(404)

    new_status = (request.form.get("status") or "").strip()
    try:
        update_test_drive_status(s, booking, new_status, u)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("test_drives_admin.test_drives_list"))
    s.commit()

    flash(f"Booking #{booking.id} marked {booking.status}.", "success")
    return redirect(url_for("test_drives_admin.test_drives_list", status=request.args.get("status") or None))
