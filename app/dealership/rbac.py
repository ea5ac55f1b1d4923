from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify, redirect, request, url_for
from sqlalchemy.orm import Session

from app.dealership.constants import PERMISSIONS, ROLES
from app.dealership.models import Permission, Role, User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in user.permission_keys


def _access_status(permission_key: str) -> int:
    """200 when g.current_user may proceed, 401 when nobody is logged in, 403 otherwise."""
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return 401
    if not user_has_permission(user, permission_key):
        return 403
    return 200


def _login_redirect():
    nxt = request.full_path or request.path
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            status = _access_status(permission_key)
            if status == 401:
                return _login_redirect()
            if status == 403:
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_api_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Same check for /api: an action-result body with 401/403 instead of a redirect."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            status = _access_status(permission_key)
            if status != 200:
                error = "Unauthorized" if status == 401 else "Forbidden"
                return jsonify({"success": False, "error": error}), status
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def ensure_role(s: Session, role_key: str) -> Role:
    """Create the role and any missing permissions it grants. Safe to call repeatedly."""
    name, perm_keys = ROLES[role_key]

    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if not role:
        role = Role(key=role_key, name=name)
        s.add(role)

    have = {p.key for p in role.permissions}
    for key in perm_keys:
        if key in have:
            continue
        perm = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not perm:
            perm = Permission(key=key, name=PERMISSIONS[key])
            s.add(perm)
            # autoflush is off; the next role's lookup must see this row
            s.flush()
        role.permissions.append(perm)
    return role
