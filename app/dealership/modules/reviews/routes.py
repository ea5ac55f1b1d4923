from __future__ import annotations

from flask import Blueprint, flash, g, redirect, request, url_for

from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.modules.reviews.service import add_review, validate_review_payload, vote_on_review
from app.dealership.rbac import require_permission
from app.dealership.security import safe_next_url
from app.dealership.utils import parse_bool

bp = Blueprint("reviews", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back(default: str) -> str:
    return safe_next_url(request.form.get("next"), default)


@bp.post("/cars/<int:car_id>/reviews")
@require_permission("reviews.write")
def review_create(car_id: int):
    s = db_session()
    u = _current_user()
    back = _back(url_for("cars.car_detail", car_id=car_id))

    payload = {
        "rating": request.form.get("rating"),
        "title": request.form.get("title"),
        "comment": request.form.get("comment"),
    }
    errors = validate_review_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(back)

    try:
        add_review(s, u, car_id, rating=payload["rating"], title=payload["title"], comment=payload["comment"])
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(back)
    s.commit()

    flash("Thanks! Your review was submitted and is awaiting moderation.", "success")
    return redirect(back)


@bp.post("/reviews/<int:review_id>/vote")
@require_permission("reviews.vote")
def review_vote(review_id: int):
    s = db_session()
    u = _current_user()
    is_helpful = parse_bool(request.form.get("is_helpful"))

    try:
        review = vote_on_review(s, u, review_id, is_helpful)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(_back(url_for("cars.cars_list")))
    s.commit()

    flash("Vote recorded.", "success")
    return redirect(_back(url_for("cars.car_detail", car_id=review.car_id)))
