"""
Session-level protections: CSRF tokens, login session setup and local-only redirects.
"""
import secrets

from flask import Request, session

_CSRF_SESSION_KEY = "csrf_token"


def _new_token() -> str:
    return secrets.token_urlsafe(32)


def ensure_csrf_token() -> str:
    token = session.get(_CSRF_SESSION_KEY)
    if not token:
        token = _new_token()
        session[_CSRF_SESSION_KEY] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Accept the token from the X-CSRF-Token header, a form field, or a JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get(_CSRF_SESSION_KEY)
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get(_CSRF_SESSION_KEY)

    expected = session.get(_CSRF_SESSION_KEY)
    if not token or not expected:
        return False
    return secrets.compare_digest(str(token), str(expected))


def start_user_session(user_id: int) -> None:
    """Bind the signed cookie to a user. The CSRF token is reissued so a pre-login token stops working."""
    session["user_id"] = user_id
    session[_CSRF_SESSION_KEY] = _new_token()
    session.permanent = True


def end_user_session() -> None:
    # comparison list is anonymous state and survives logout
    session.pop("user_id", None)
    session.pop(_CSRF_SESSION_KEY, None)


def safe_next_url(nxt: str | None, default: str | None = None) -> str | None:
    """
    Return `nxt` only when it is a local path ("/cars/3"), else `default`.

    Protocol-relative ("//evil.example") and backslash variants are refused.
    """
    nxt = (nxt or "").strip()
    if nxt.startswith("/") and not nxt.startswith(("//", "/\\")):
        return nxt
    return default
