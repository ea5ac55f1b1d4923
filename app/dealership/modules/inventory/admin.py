from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from sqlalchemy import or_

from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.inventory.service import (
    BODY_TYPES,
    CAR_STATUSES,
    FUEL_TYPES,
    TRANSMISSIONS,
    create_car,
    delete_car,
    set_car_status,
    toggle_featured,
    update_car,
    validate_car_payload,
)
from app.dealership.rbac import require_permission

bp = Blueprint("cars_admin", __name__)

CAR_FORM_FIELDS = (
    "make",
    "model",
    "year",
    "price",
    "mileage",
    "color",
    "fuel_type",
    "transmission",
    "body_type",
    "seats",
    "description",
    "status",
)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _form_payload() -> dict:
    payload = {k: request.form.get(k) for k in CAR_FORM_FIELDS}
    payload["featured"] = request.form.get("featured")
    return payload


def _choices() -> dict:
    return {
        "fuel_types": FUEL_TYPES,
        "transmissions": TRANSMISSIONS,
        "body_types": BODY_TYPES,
        "statuses": CAR_STATUSES,
    }


# ---------- List ----------
@bp.get("/cars")
@require_permission("cars.edit")
def cars_list():
    s = db_session()

    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()

    q = s.query(Car)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Car.make.ilike(like), Car.model.ilike(like), Car.color.ilike(like)))
    if status_filter:
        q = q.filter(Car.status == status_filter)

    cars = q.order_by(Car.created_at.desc(), Car.id.desc()).all()
    return render_template(
        "admin/cars/list.html",
        cars=cars,
        search=search,
        status_filter=status_filter,
        statuses=CAR_STATUSES,
    )


# ---------- New ----------
@bp.get("/cars/new")
@require_permission("cars.create")
def cars_new_get():
    return render_template("admin/cars/form.html", car=None, form={}, **_choices())


@bp.post("/cars/new")
@require_permission("cars.create")
def cars_new_post():
    s = db_session()
    u = _current_user()
    payload = _form_payload()

    errors = validate_car_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("admin/cars/form.html", car=None, form=payload, **_choices()), 400

    car = create_car(s, payload, u)
    s.commit()

    flash(f"{car.title} added to inventory.", "success")
    return redirect(url_for("cars_admin.cars_list"))


# ---------- Edit ----------
@bp.get("/cars/<int:car_id>/edit")
@require_permission("cars.edit")
def car_edit_get(car_id: int):
    s = db_session()
    car = s.get(Car, car_id)
    if not car:
        abort(404)
    form = {k: getattr(car, k) for k in CAR_FORM_FIELDS}
    form["featured"] = car.featured
    return render_template("admin/cars/form.html", car=car, form=form, **_choices())


@bp.post("/cars/<int:car_id>/edit")
@require_permission("cars.edit")
def car_edit_post(car_id: int):
    s = db_session()
    u = _current_user()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    payload = _form_payload()
    errors = validate_car_payload(payload)
    if not errors:
        try:
            update_car(s, car, payload, u, reason=(request.form.get("reason") or "").strip() or None)
        except ValueError as e:
            s.rollback()
            errors.append(str(e))
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("admin/cars/form.html", car=car, form=payload, **_choices()), 400
    s.commit()

    flash("Car updated successfully.", "success")
    return redirect(url_for("cars_admin.cars_list"))


# ---------- Quick actions ----------
@bp.post("/cars/<int:car_id>/status")
@require_permission("cars.edit")
def car_status_post(car_id: int):
    s = db_session()
    u = _current_user()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    try:
        set_car_status(s, car, (request.form.get("status") or "").strip(), u)
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("cars_admin.cars_list"))
    s.commit()

    flash(f"{car.title} marked {car.status}.", "success")
    return redirect(url_for("cars_admin.cars_list"))


@bp.post("/cars/<int:car_id>/featured")
@require_permission("cars.edit")
def car_featured_post(car_id: int):
    s = db_session()
    u = _current_user()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    toggle_featured(s, car, u)
    s.commit()

    flash(f"{car.title} {'featured' if car.featured else 'removed from featured'}.", "success")
    return redirect(url_for("cars_admin.cars_list"))


@bp.post("/cars/<int:car_id>/delete")
@require_permission("cars.delete")
def car_delete_post(car_id: int):
    s = db_session()
    u = _current_user()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    title = car.title
    try:
        delete_car(s, car, u, reason=(request.form.get("reason") or "").strip() or None)
        s.commit()
    except ValueError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("cars_admin.cars_list"))

    flash(f"{title} deleted.", "success")
    return redirect(url_for("cars_admin.cars_list"))
