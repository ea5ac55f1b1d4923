"""
Review service layer.
Buyer-only reviews, helpful/unhelpful voting with tally refresh, moderation.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.dealership.audit import record_event
from app.dealership.utils import clean_str, parse_int

from app.dealership.modules.purchases.service import user_purchased_car

from .models import Review, ReviewVote

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.dealership.models import User


REVIEW_STATUSES = ("PENDING", "APPROVED", "REJECTED")

MIN_RATING = 1
MAX_RATING = 5
MIN_TITLE_LENGTH = 5
MIN_COMMENT_LENGTH = 20

ALREADY_REVIEWED_MESSAGE = "You have already reviewed this car"


@dataclass(frozen=True)
class ReviewStats:
    average_rating: float = 0.0
    total_reviews: int = 0


def validate_review_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    try:
        rating = parse_int(payload.get("rating"))
    except ValueError:
        rating = None
    if rating is None or not MIN_RATING <= rating <= MAX_RATING:
        errors.append(f"Please select a rating between {MIN_RATING} and {MAX_RATING}.")
    if len(clean_str(payload.get("title"))) < MIN_TITLE_LENGTH:
        errors.append(f"Title must be at least {MIN_TITLE_LENGTH} characters.")
    if len(clean_str(payload.get("comment"))) < MIN_COMMENT_LENGTH:
        errors.append(f"Review must be at least {MIN_COMMENT_LENGTH} characters.")
    return errors


def add_review(
    s: "Session",
    user: "User",
    car_id: int,
    *,
    rating: int | str,
    title: str,
    comment: str,
) -> Review:
    """Create a PENDING review. Only buyers of the car may review it, once."""
    errors = validate_review_payload({"rating": rating, "title": title, "comment": comment})
    if errors:
        raise ValueError(errors[0])

    if not user_purchased_car(s, user, car_id):
        raise ValueError("You can only review cars you have purchased")

    existing = (
        s.query(Review.id)
        .filter(Review.user_id == user.id, Review.car_id == car_id)
        .first()
    )
    if existing:
        raise ValueError(ALREADY_REVIEWED_MESSAGE)

    now = datetime.utcnow()
    review = Review(
        car_id=car_id,
        user_id=user.id,
        rating=parse_int(rating),
        title=clean_str(title),
        comment=clean_str(comment),
        status="PENDING",
        created_at=now,
        updated_at=now,
    )
    s.add(review)
    try:
        s.flush()
    except IntegrityError as e:
        raise ValueError(ALREADY_REVIEWED_MESSAGE) from e

    record_event(
        s,
        actor=user,
        action="review.create",
        entity_type="Review",
        entity_id=str(review.id),
        metadata={"car_id": car_id, "rating": review.rating},
    )
    return review


def get_car_reviews(s: "Session", car_id: int) -> tuple[list[Review], ReviewStats]:
    """Approved reviews for a car (newest first) with average rating and count."""
    reviews = (
        s.query(Review)
        .filter(Review.car_id == car_id, Review.status == "APPROVED")
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
    avg, count = (
        s.query(func.avg(Review.rating), func.count(Review.id))
        .filter(Review.car_id == car_id, Review.status == "APPROVED")
        .one()
    )
    return reviews, ReviewStats(
        average_rating=round(float(avg), 1) if avg is not None else 0.0,
        total_reviews=int(count or 0),
    )


def review_stats_by_car(s: "Session", car_ids: Iterable[int]) -> dict[int, ReviewStats]:
    """Approved review stats for many cars in one GROUP BY query."""
    ids = list(car_ids)
    if not ids:
        return {}
    rows = (
        s.query(Review.car_id, func.avg(Review.rating), func.count(Review.id))
        .filter(Review.car_id.in_(ids), Review.status == "APPROVED")
        .group_by(Review.car_id)
        .all()
    )
    stats = {car_id: ReviewStats() for car_id in ids}
    for car_id, avg, count in rows:
        stats[car_id] = ReviewStats(average_rating=round(float(avg), 1), total_reviews=int(count))
    return stats


def reviewed_car_ids(s: "Session", user: "User | None") -> set[int]:
    """Cars the user has written a review for (any status)."""
    if user is None:
        return set()
    return {row[0] for row in s.query(Review.car_id).filter(Review.user_id == user.id).all()}


def user_votes(s: "Session", user: "User | None", review_ids: Iterable[int]) -> dict[int, bool]:
    ids = list(review_ids)
    if user is None or not ids:
        return {}
    rows = (
        s.query(ReviewVote.review_id, ReviewVote.is_helpful)
        .filter(ReviewVote.user_id == user.id, ReviewVote.review_id.in_(ids))
        .all()
    )
    return {review_id: is_helpful for review_id, is_helpful in rows}


def refresh_vote_counts(s: "Session", review: Review) -> Review:
    """Recompute the denormalized helpful/unhelpful tallies from review_votes."""
    rows = (
        s.query(ReviewVote.is_helpful, func.count(ReviewVote.id))
        .filter(ReviewVote.review_id == review.id)
        .group_by(ReviewVote.is_helpful)
        .all()
    )
    counts = {bool(is_helpful): int(n) for is_helpful, n in rows}
    review.helpful_votes = counts.get(True, 0)
    review.unhelpful_votes = counts.get(False, 0)
    return review


def vote_on_review(s: "Session", user: "User", review_id: int, is_helpful: bool) -> Review:
    """Record (or change) the user's vote, then refresh the review's tallies."""
    review = s.get(Review, review_id)
    if not review or review.status != "APPROVED":
        raise ValueError("Review not found")
    if review.user_id == user.id:
        raise ValueError("You cannot vote on your own review")

    now = datetime.utcnow()
    vote = (
        s.query(ReviewVote)
        .filter(ReviewVote.user_id == user.id, ReviewVote.review_id == review.id)
        .one_or_none()
    )
    if vote:
        vote.is_helpful = bool(is_helpful)
        vote.updated_at = now
    else:
        vote = ReviewVote(
            review_id=review.id,
            user_id=user.id,
            is_helpful=bool(is_helpful),
            created_at=now,
            updated_at=now,
        )
        s.add(vote)
    # autoflush is off; the aggregate must see this vote
    s.flush()

    refresh_vote_counts(s, review)

    record_event(
        s,
        actor=user,
        action="review.vote",
        entity_type="Review",
        entity_id=str(review.id),
        metadata={"is_helpful": bool(is_helpful)},
    )
    return review


# ---------- Admin ----------

def list_reviews(s: "Session", *, status: str | None = None) -> list[Review]:
    query = s.query(Review)
    if status:
        query = query.filter(Review.status == status)
    return query.order_by(Review.created_at.desc(), Review.id.desc()).all()


def review_status_counts(s: "Session") -> dict[str, int]:
    rows = s.query(Review.status, func.count(Review.id)).group_by(Review.status).all()
    counts = {st: 0 for st in REVIEW_STATUSES}
    counts.update({st: int(n) for st, n in rows})
    return counts


def moderate_review(s: "Session", review: Review, status: str, user: "User", reason: str | None = None) -> Review:
    if status not in REVIEW_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(REVIEW_STATUSES)}")

    old_status = review.status
    now = datetime.utcnow()
    review.status = status
    review.moderated_by_user_id = user.id
    review.moderated_at = now
    review.updated_at = now

    record_event(
        s,
        actor=user,
        action="review.moderate",
        entity_type="Review",
        entity_id=str(review.id),
        reason=reason,
        metadata={"from": old_status, "to": status, "car_id": review.car_id},
    )
    return review


def serialize_review(review: Review) -> dict[str, Any]:
    return {
        "id": review.id,
        "car_id": review.car_id,
        "user_id": review.user_id,
        "user_name": review.user.display_name if review.user else None,
        "rating": review.rating,
        "title": review.title,
        "comment": review.comment,
        "status": review.status,
        "helpful_votes": review.helpful_votes,
        "unhelpful_votes": review.unhelpful_votes,
        "created_at": review.created_at.isoformat() if review.created_at else None,
        "updated_at": review.updated_at.isoformat() if review.updated_at else None,
    }
