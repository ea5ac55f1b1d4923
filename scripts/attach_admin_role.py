#!/usr/bin/env python3
"""Grant (or with --revoke, take away) the admin role for an existing account.

Usage:
  python scripts/attach_admin_role.py --email someone@example.com
  python scripts/attach_admin_role.py --email someone@example.com --revoke
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy.orm import Session

from app.dealership.audit import record_event
from app.dealership.models import User
from app.dealership.rbac import ensure_role
from scripts._db_utils import DEFAULT_DATABASE_URL, script_session


def set_admin_role(s: Session, email: str, *, grant: bool = True) -> str:
    user = s.query(User).filter(User.email == email.strip().lower()).one_or_none()
    if not user:
        raise ValueError(f"No account for {email}")

    if grant == user.has_role("admin"):
        return f"{user.email}: no change (admin={'yes' if grant else 'no'})"

    role = ensure_role(s, "admin")
    if grant:
        user.roles.append(role)
    else:
        user.roles.remove(role)
    record_event(
        s,
        actor=None,
        action="user.admin_granted" if grant else "user.admin_revoked",
        entity_type="User",
        entity_id=str(user.id),
        reason="attach_admin_role script",
    )
    return f"{user.email}: admin role {'granted' if grant else 'revoked'}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage the admin role of a dealership account.")
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--revoke", action="store_true", help="Remove the admin role instead of adding it")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()
    try:
        with script_session(db_url) as s:
            print(set_admin_role(s, args.email, grant=not args.revoke))
    except ValueError as e:
        print(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
