"""
Customer accounts: registration, login/logout and the per-request user loader.

Passwords are stored as werkzeug hashes. The session cookie only carries the
user id; everything else is loaded fresh on each request.
"""
from __future__ import annotations

import re
import uuid
from collections import defaultdict, deque
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.dealership.audit import record_event
from app.dealership.db import db_session
from app.dealership.models import User
from app.dealership.rbac import ensure_role, user_has_permission
from app.dealership.security import end_user_session, safe_next_url, start_user_session

bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 8
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class LoginThrottle:
    """Sliding-window limit on login attempts per client address (process-local)."""

    def __init__(self, limit: int = 5, window: timedelta = timedelta(minutes=5)):
        self.limit = limit
        self.window = window
        self._hits: dict[str, deque[datetime]] = defaultdict(deque)

    def blocked(self, key: str) -> bool:
        hits = self._hits.get(key)
        if not hits:
            return False
        cutoff = datetime.utcnow() - self.window
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
            return False
        return len(hits) >= self.limit

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> None:
        self._hits[key].append(datetime.utcnow())

    def reset(self, key: str) -> None:
        self._hits.pop(key, None)

    def clear(self) -> None:
        self._hits.clear()


login_throttle = LoginThrottle()


def registration_errors(email: str, name: str, password: str, confirm: str) -> list[str]:
    errors = []
    if not _EMAIL_RE.match(email):
        errors.append("Valid email is required.")
    if not name:
        errors.append("Name is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if password != confirm:
        errors.append("Passwords do not match.")
    return errors


def _landing_for(user: User) -> str:
    return url_for("admin.index") if user_has_permission(user, "admin.view") else url_for("routes.index")


def load_current_user() -> None:
    g.request_id = g.get("request_id") or uuid.uuid4().hex
    g.current_user = None

    user_id = session.get("user_id")
    if not user_id:
        return
    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("Could not load user %s, dropping session: %s", user_id, e)
        end_user_session()
        return
    if user is None or not user.is_active:
        end_user_session()
        return
    g.current_user = user


@bp.get("/login")
def login_get():
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    client = request.remote_addr or "unknown"

    if login_throttle.blocked(client):
        current_app.logger.warning("Login throttled for %s", client)
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    login_throttle.hit(client)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    start_user_session(user.id)
    login_throttle.reset(client)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return redirect(safe_next_url(nxt) or _landing_for(user))


@bp.get("/register")
def register_get():
    return render_template("auth/register.html", next=(request.args.get("next") or "").strip(), form={})


@bp.post("/register")
def register_post():
    form = {
        "email": (request.form.get("email") or "").strip().lower(),
        "name": (request.form.get("name") or "").strip(),
        "phone": (request.form.get("phone") or "").strip(),
    }
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()

    s = db_session()
    errors = registration_errors(form["email"], form["name"], password, request.form.get("confirm_password") or "")
    if not errors and s.query(User.id).filter(User.email == form["email"]).first():
        errors.append("An account with this email already exists.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("auth/register.html", next=nxt, form=form), 400

    user = User(
        email=form["email"],
        name=form["name"],
        phone=form["phone"] or None,
        password_hash=generate_password_hash(password),
        is_active=True,
    )
    user.roles.append(ensure_role(s, "customer"))
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("New customer account %s", user.id)

    start_user_session(user.id)
    flash("Welcome! Your account has been created.", "success")
    return redirect(safe_next_url(nxt, url_for("routes.index")))


@bp.get("/logout")
def logout():
    user = g.get("current_user")
    if user is not None:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    end_user_session()
    return redirect(url_for("routes.index"))
