from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.dealership.db import db_session
from app.dealership.modules.comparison.service import (
    COMPARISON_FIELDS,
    MAX_COMPARE,
    comparison_from_session,
    comparison_value,
)
from app.dealership.modules.inventory.models import Car
from app.dealership.security import safe_next_url

bp = Blueprint("comparison", __name__)


def _back() -> str:
    return safe_next_url(request.form.get("next"), url_for("comparison.compare"))


@bp.get("/compare")
def compare():
    s = db_session()
    cars = comparison_from_session().load_cars(s)
    return render_template(
        "compare/view.html",
        cars=cars,
        fields=COMPARISON_FIELDS,
        value=comparison_value,
        max_compare=MAX_COMPARE,
    )


@bp.post("/compare/add/<int:car_id>")
def compare_add(car_id: int):
    s = db_session()
    car = s.get(Car, car_id)
    if not car:
        abort(404)
    try:
        comparison_from_session().add(car)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(_back())
    flash(f"{car.make} {car.model} added to comparison", "success")
    return redirect(_back())


@bp.post("/compare/remove/<int:car_id>")
def compare_remove(car_id: int):
    comparison_from_session().remove(car_id)
    flash("Car removed from comparison", "success")
    return redirect(_back())


@bp.post("/compare/clear")
def compare_clear():
    comparison_from_session().clear()
    flash("Comparison cleared", "success")
    return redirect(_back())
