from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.modules.reviews.models import Review
from app.dealership.modules.reviews.service import (
    REVIEW_STATUSES,
    list_reviews,
    moderate_review,
    review_status_counts,
)
from app.dealership.rbac import require_permission

bp = Blueprint("reviews_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/reviews")
@require_permission("reviews.moderate")
def reviews_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    if status_filter and status_filter not in REVIEW_STATUSES:
        flash(f"Unknown status filter: {status_filter}", "danger")
        status_filter = ""
    return render_template(
        "admin/reviews/list.html",
        reviews=list_reviews(s, status=status_filter or None),
        counts=review_status_counts(s),
        statuses=REVIEW_STATUSES,
        status_filter=status_filter,
    )


@bp.post("/reviews/<int:review_id>/moderate")
@require_permission("reviews.moderate")
def review_moderate(review_id: int):
    s = db_session()
    u = _current_user()
    review = s.get(Review, review_id)
    if not review:
        abort(404)

    status = (request.form.get("status") or "").strip()
    try:
        moderate_review(s, review, status, u, reason=(request.form.get("reason") or "").strip() or None)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("reviews_admin.reviews_list"))
    s.commit()

    flash(f"Review {status.lower()} successfully.", "success")
    return redirect(url_for("reviews_admin.reviews_list", status=request.form.get("status_filter") or None))
