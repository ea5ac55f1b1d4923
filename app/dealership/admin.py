from datetime import date

from flask import Blueprint, flash, render_template, request
from sqlalchemy import func

from app.dealership.audit import AuditFilter, event_metadata, list_events
from app.dealership.db import database_ok, db_session
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.inventory.service import CAR_STATUSES
from app.dealership.modules.purchases.models import Purchase
from app.dealership.modules.reviews.service import review_status_counts
from app.dealership.modules.test_drives.models import TestDriveBooking
from app.dealership.modules.test_drives.service import BOOKING_STATUSES
from app.dealership.rbac import require_permission

bp = Blueprint("admin", __name__)


def _date_arg(name: str) -> tuple[str, date | None]:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return raw, None
    try:
        return raw, date.fromisoformat(raw)
    except ValueError:
        flash(f"{name} must be YYYY-MM-DD", "danger")
        return raw, None


def _status_counts(s, col, statuses) -> dict[str, int]:
    counts = {st: 0 for st in statuses}
    counts.update({st: int(n) for st, n in s.query(col, func.count()).group_by(col).all()})
    return counts


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    db_ok = database_ok(s)

    sales_count, revenue = s.query(func.count(Purchase.id), func.coalesce(func.sum(Purchase.price), 0)).one()
    recent_sales = s.query(Purchase).order_by(Purchase.created_at.desc(), Purchase.id.desc()).limit(5).all()

    stats = {
        "db_connected": db_ok,
        "cars": _status_counts(s, Car.status, CAR_STATUSES),
        "test_drives": _status_counts(s, TestDriveBooking.status, BOOKING_STATUSES),
        "reviews": review_status_counts(s),
        "sales_count": int(sales_count or 0),
        "revenue": revenue or 0,
    }
    return render_template("admin/index.html", stats=stats, recent_sales=recent_sales)


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    raw_from, date_from = _date_arg("date_from")
    raw_to, date_to = _date_arg("date_to")
    flt = AuditFilter(
        action=(request.args.get("action") or "").strip(),
        actor_email=(request.args.get("actor_email") or "").strip(),
        date_from=date_from,
        date_to=date_to,
    )
    return render_template(
        "admin/audit/list.html",
        events=list_events(db_session(), flt),
        metadata=event_metadata,
        action=flt.action,
        actor_email=flt.actor_email,
        date_from=raw_from,
        date_to=raw_to,
    )
