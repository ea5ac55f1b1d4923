"""
JSON action endpoints.

Every endpoint answers with an action result:
    {"success": true, "data": ..., "message": ...}
    {"success": false, "error": "..."}
Expected failures (ValueError from the service layer) are logged as warnings;
anything else is logged with a stack trace and reported generically.
"""
from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request

from app.dealership.db import db_session
from app.dealership.modules.comparison.service import comparison_from_session
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.inventory.service import serialize_car
from app.dealership.modules.purchases.service import get_user_purchases, serialize_purchase
from app.dealership.modules.reviews.service import get_car_reviews, serialize_review, vote_on_review
from app.dealership.modules.test_drives.service import (
    book_test_drive,
    cancel_test_drive,
    get_user_test_drives,
    serialize_booking,
)
from app.dealership.rbac import require_api_permission
from app.dealership.utils import parse_bool, parse_int

bp = Blueprint("api", __name__)


def action(default_error: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a handler so failures roll back and come out as {"success": false, "error": ...}."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            s = db_session()
            try:
                return fn(*args, **kwargs)
            except ValueError as e:
                s.rollback()
                current_app.logger.warning(
                    "%s: %s (request_id=%s)", default_error, e, getattr(g, "request_id", None)
                )
                return jsonify({"success": False, "error": str(e) or default_error}), 400
            except Exception:
                s.rollback()
                current_app.logger.exception("%s (request_id=%s)", default_error, getattr(g, "request_id", None))
                return jsonify({"success": False, "error": default_error}), 500

        return wrapped

    return decorator


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _ok(data: Any = None, message: str | None = None, status: int = 200):
    out: dict[str, Any] = {"success": True}
    if data is not None:
        out["data"] = data
    if message:
        out["message"] = message
    return jsonify(out), status


# ---------- Cars ----------
@bp.get("/cars/<int:car_id>")
@action("Failed to fetch car")
def car_get(car_id: int):
    car = db_session().get(Car, car_id)
    if not car:
        raise ValueError("Car not found")
    return _ok(serialize_car(car))


@bp.get("/cars/<int:car_id>/reviews")
@action("Failed to fetch reviews")
def car_reviews(car_id: int):
    reviews, stats = get_car_reviews(db_session(), car_id)
    return _ok(
        {
            "reviews": [serialize_review(r) for r in reviews],
            "stats": {"average_rating": stats.average_rating, "total_reviews": stats.total_reviews},
        }
    )


# ---------- Test drives ----------
@bp.post("/test-drives")
@require_api_permission("test_drives.book")
@action("Failed to book test drive")
def test_drive_book():
    s = db_session()
    body = _json_body()
    try:
        car_id = parse_int(body.get("car_id"))
    except ValueError:
        car_id = None
    if car_id is None:
        raise ValueError("car_id is required")

    booking = book_test_drive(
        s,
        g.current_user,
        car_id,
        booking_date=body.get("booking_date") or "",
        start_time=body.get("start_time") or "",
        end_time=body.get("end_time") or "",
        notes=body.get("notes"),
    )
    s.commit()
    return _ok(serialize_booking(booking), status=201)


@bp.get("/test-drives")
@require_api_permission("test_drives.book")
@action("Failed to fetch test drives")
def test_drives_mine():
    bookings = get_user_test_drives(db_session(), g.current_user)
    return _ok([serialize_booking(b) for b in bookings])


@bp.post("/test-drives/<int:booking_id>/cancel")
@require_api_permission("test_drives.book")
@action("Failed to cancel test drive")
def test_drive_cancel(booking_id: int):
    s = db_session()
    cancel_test_drive(s, g.current_user, booking_id)
    s.commit()
    return _ok(message="Test drive cancelled successfully")


# ---------- Purchases ----------
@bp.get("/purchases")
@require_api_permission("purchases.create")
@action("Failed to fetch purchases")
def purchases_mine():
    purchases = get_user_purchases(db_session(), g.current_user)
    return _ok([serialize_purchase(p) for p in purchases])


# ---------- Reviews ----------
@bp.post("/reviews/<int:review_id>/vote")
@require_api_permission("reviews.vote")
@action("Failed to vote on review")
def review_vote(review_id: int):
    s = db_session()
    body = _json_body()
    if "is_helpful" not in body:
        raise ValueError("is_helpful is required")
    review = vote_on_review(s, g.current_user, review_id, parse_bool(body.get("is_helpful")))
    s.commit()
    return _ok(
        {"helpful_votes": review.helpful_votes, "unhelpful_votes": review.unhelpful_votes},
        message="Vote recorded successfully",
    )


# ---------- Comparison ----------
@bp.get("/compare")
@action("Failed to load comparison")
def compare_get():
    cars = comparison_from_session().load_cars(db_session())
    return _ok([serialize_car(c) for c in cars])


@bp.post("/compare/<int:car_id>")
@action("Failed to add car to comparison")
def compare_add(car_id: int):
    car = db_session().get(Car, car_id)
    if not car:
        raise ValueError("Car not found")
    comparison = comparison_from_session()
    comparison.add(car)
    return _ok(comparison.car_ids, message=f"{car.make} {car.model} added to comparison")


@bp.delete("/compare/<int:car_id>")
@action("Failed to remove car from comparison")
def compare_remove(car_id: int):
    comparison = comparison_from_session()
    comparison.remove(car_id)
    return _ok(comparison.car_ids, message="Car removed from comparison")


@bp.delete("/compare")
@action("Failed to clear comparison")
def compare_clear():
    comparison = comparison_from_session()
    comparison.clear()
    return _ok(comparison.car_ids, message="Comparison cleared")
