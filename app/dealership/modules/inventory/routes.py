from __future__ import annotations

from flask import Blueprint, abort, current_app, g, render_template, request

from app.dealership.db import db_session
from app.dealership.modules.comparison.service import comparison_from_session
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.inventory.service import (
    SORT_OPTIONS,
    car_filter_options,
    get_sold_car,
    get_sold_cars,
    parse_search_args,
    search_cars,
)
from app.dealership.modules.purchases.service import user_purchased_car
from app.dealership.modules.reviews.service import (
    get_car_reviews,
    review_stats_by_car,
    reviewed_car_ids,
    user_votes,
)
from app.dealership.modules.test_drives.service import find_active_booking

bp = Blueprint("cars", __name__)


@bp.get("/cars")
def cars_list():
    s = db_session()
    args = parse_search_args(request.args)
    result = search_cars(s, per_page=current_app.config.get("CARS_PER_PAGE", 9), **args)
    return render_template(
        "cars/list.html",
        result=result,
        options=car_filter_options(s),
        sort_options=list(SORT_OPTIONS),
        comparison=comparison_from_session(),
    )


@bp.get("/cars/<int:car_id>")
def car_detail(car_id: int):
    s = db_session()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    user = getattr(g, "current_user", None)
    reviews, stats = get_car_reviews(s, car.id)
    can_review = user_purchased_car(s, user, car.id) and car.id not in reviewed_car_ids(s, user)

    return render_template(
        "cars/detail.html",
        car=car,
        reviews=reviews,
        stats=stats,
        my_votes=user_votes(s, user, [r.id for r in reviews]),
        active_booking=find_active_booking(s, user, car.id),
        can_review=can_review,
        comparison=comparison_from_session(),
    )


@bp.get("/sold-cars")
def sold_cars_list():
    s = db_session()
    cars = get_sold_cars(s)
    return render_template(
        "cars/sold_list.html",
        cars=cars,
        stats=review_stats_by_car(s, [c.id for c in cars]),
    )


@bp.get("/sold-cars/<int:car_id>")
def sold_car_detail(car_id: int):
    s = db_session()
    car = get_sold_car(s, car_id)
    if not car:
        abort(404)
    reviews, stats = get_car_reviews(s, car.id)
    return render_template("cars/sold_detail.html", car=car, reviews=reviews, stats=stats)
