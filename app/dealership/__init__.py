import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, render_template, request, session
from dotenv import load_dotenv

from app.dealership.config import load_config
from app.dealership.db import init_db, teardown_db_session
from app.dealership.routes import bp as routes_bp
from app.dealership.auth import bp as auth_bp, load_current_user
from app.dealership.admin import bp as admin_bp
from app.dealership.api import bp as api_bp
from app.dealership.modules.inventory.routes import bp as cars_bp
from app.dealership.modules.inventory.admin import bp as cars_admin_bp
from app.dealership.modules.test_drives.routes import bp as test_drives_bp
from app.dealership.modules.test_drives.admin import bp as test_drives_admin_bp
from app.dealership.modules.purchases.routes import bp as purchases_bp
from app.dealership.modules.reviews.routes import bp as reviews_bp
from app.dealership.modules.reviews.admin import bp as reviews_admin_bp
from app.dealership.modules.comparison.routes import bp as comparison_bp
from app.dealership.security import ensure_csrf_token, validate_csrf
from app.dealership.templating import init_templating

logger = logging.getLogger(__name__)

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")
_MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def _register_blueprints(app: Flask) -> None:
    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    for public_bp in (cars_bp, test_drives_bp, purchases_bp, reviews_bp, comparison_bp):
        app.register_blueprint(public_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
    for admin_area_bp in (admin_bp, cars_admin_bp, test_drives_admin_bp, reviews_admin_bp):
        app.register_blueprint(admin_area_bp, url_prefix="/admin")


def _register_request_hooks(app: Flask) -> None:
    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True) or request.method not in _MUTATING_METHODS:
            return None
        # login/logout/register post before a session exists
        if (request.endpoint or "").startswith("auth."):
            return None
        if validate_csrf(request):
            return None
        msg = "CSRF token missing or invalid."
        app.logger.warning("CSRF rejected %s %s (request_id=%s)", request.method, request.path, g.get("request_id"))
        if _wants_json():
            return jsonify({"success": False, "error": msg}), 400
        return render_template("errors/400.html", message=msg), 400

    @app.before_request
    def _load_user():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.teardown_appcontext(teardown_db_session)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"success": False, "error": "Bad request"}), 400
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = g.get("missing_permission")
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, g.get("request_id"))
        if _wants_json():
            return jsonify({"success": False, "error": "Forbidden"}), 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"success": False, "error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", g.get("request_id"))
        if _wants_json():
            return jsonify({"success": False, "error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn --preload forks after create_app(); pooled connections must not cross the fork
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child():
        engine = app.extensions.get("sqlalchemy_engine")
        if engine is not None:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=7)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    init_db(app)
    _dispose_engine_after_fork(app)

    init_templating(app)
    _register_request_hooks(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    logger.info("Dealership app ready (env=%s)", app.config["ENV"])
    return app
