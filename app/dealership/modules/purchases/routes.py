from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.purchases.models import Purchase
from app.dealership.modules.purchases.service import (
    CHECKOUT_FIELDS,
    complete_purchase,
    get_user_purchases,
    validate_checkout_payload,
)
from app.dealership.modules.reviews.service import reviewed_car_ids
from app.dealership.rbac import require_permission

bp = Blueprint("purchases", __name__)

# Never echo these back into the re-rendered form.
_SENSITIVE_FIELDS = ("card_number", "cvv")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/purchase/<int:car_id>")
@require_permission("purchases.create")
def purchase_get(car_id: int):
    s = db_session()
    car = s.get(Car, car_id)
    if not car:
        abort(404)
    u = _current_user()
    form = {"full_name": u.name or "", "email": u.email, "phone": u.phone or ""}
    return render_template("purchases/checkout.html", car=car, form=form)


@bp.post("/purchase/<int:car_id>")
@require_permission("purchases.create")
def purchase_post(car_id: int):
    s = db_session()
    u = _current_user()
    car = s.get(Car, car_id)
    if not car:
        abort(404)

    payload = {k: request.form.get(k) for k in CHECKOUT_FIELDS}
    safe_form = {k: v for k, v in payload.items() if k not in _SENSITIVE_FIELDS}

    errors = validate_checkout_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("purchases/checkout.html", car=car, form=safe_form), 400

    try:
        purchase = complete_purchase(s, u, car.id, payload)
        s.commit()
    except ValueError as e:
        s.rollback()
        current_app.logger.warning("Purchase refused car_id=%s user_id=%s: %s", car_id, u.id, e)
        flash(str(e), "danger")
        return redirect(url_for("cars.car_detail", car_id=car_id))

    current_app.logger.info("Purchase completed purchase_id=%s car_id=%s user_id=%s", purchase.id, car_id, u.id)
    flash("Payment successful! The car is yours.", "success")
    return redirect(url_for("purchases.purchase_receipt", purchase_id=purchase.id))


@bp.get("/purchases/<int:purchase_id>")
@require_permission("purchases.create")
def purchase_receipt(purchase_id: int):
    s = db_session()
    purchase = s.get(Purchase, purchase_id)
    if not purchase or purchase.user_id != _current_user().id:
        abort(404)
    return render_template("purchases/receipt.html", purchase=purchase)


@bp.get("/purchase-history")
@require_permission("purchases.create")
def purchase_history():
    s = db_session()
    u = _current_user()
    return render_template(
        "purchases/history.html",
        purchases=get_user_purchases(s, u),
        reviewed=reviewed_car_ids(s, u),
    )
