from flask import Blueprint, render_template

from app.dealership.db import db_session
from app.dealership.modules.inventory.service import BODY_TYPES, car_filter_options, get_featured_cars

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    s = db_session()
    return render_template(
        "public/index.html",
        featured=get_featured_cars(s),
        options=car_filter_options(s),
        body_types=BODY_TYPES,
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access.
    """
    return "ok", 200
