"""Jinja filters and globals shared by every page."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import Flask, g

PLACEHOLDER = "—"


def format_date(value, fmt: str = "%Y-%m-%d") -> str:
    if value is None:
        return PLACEHOLDER
    if hasattr(value, "strftime"):
        return value.strftime(fmt)
    return str(value)


def format_currency(value) -> str:
    if value is None or value == "":
        return PLACEHOLDER
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return str(value)
    return f"${amount:,.2f}"


def format_number(value) -> str:
    if value is None or value == "":
        return PLACEHOLDER
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return str(value)


def init_templating(app: Flask) -> None:
    from app.dealership.modules.comparison.service import comparison_from_session
    from app.dealership.rbac import user_has_permission
    from app.dealership.security import ensure_csrf_token

    app.add_template_filter(format_date, "dateformat")
    app.add_template_filter(format_currency, "currency")
    app.add_template_filter(format_number, "number")

    @app.context_processor
    def _page_globals() -> dict:
        user = getattr(g, "current_user", None)

        def has_perm(key: str) -> bool:
            return user_has_permission(user, key)

        return {
            "csrf_token": ensure_csrf_token(),
            "current_user": user,
            "has_perm": has_perm,
            "compare_count": len(comparison_from_session()),
        }
