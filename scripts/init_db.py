"""
Seed roles, permissions and the admin user (idempotent).

Usage:
  python scripts/init_db.py            # roles + admin only
  python scripts/init_db.py --demo     # also add a small demo inventory when the cars table is empty

Existing users keep their passwords.
"""
import argparse
import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.dealership.constants import ROLES
from app.dealership.models import User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.inventory.service import create_car
from app.dealership.rbac import ensure_role
from scripts._db_utils import DEFAULT_DATABASE_URL, script_session

DEMO_CARS = (
    {
        "make": "Toyota",
        "model": "RAV4",
        "year": "2022",
        "price": "28500",
        "mileage": "18000",
        "color": "Silver",
        "fuel_type": "Hybrid",
        "transmission": "Automatic",
        "body_type": "SUV",
        "seats": "5",
        "description": "One owner, full service history, adaptive cruise control.",
        "featured": "1",
    },
    {
        "make": "Honda",
        "model": "Civic",
        "year": "2021",
        "price": "21900",
        "mileage": "24500",
        "color": "Blue",
        "fuel_type": "Petrol",
        "transmission": "Manual",
        "body_type": "Sedan",
        "seats": "5",
        "description": "Economical daily driver with Apple CarPlay and a new set of tyres.",
        "featured": "1",
    },
    {
        "make": "Tesla",
        "model": "Model 3",
        "year": "2023",
        "price": "39900",
        "mileage": "9000",
        "color": "White",
        "fuel_type": "Electric",
        "transmission": "Automatic",
        "body_type": "Sedan",
        "seats": "5",
        "description": "Long range, autopilot, premium interior, still under factory warranty.",
        "featured": "1",
    },
    {
        "make": "Ford",
        "model": "F-150",
        "year": "2020",
        "price": "34750",
        "mileage": "41000",
        "color": "Black",
        "fuel_type": "Petrol",
        "transmission": "Automatic",
        "body_type": "Pickup",
        "seats": "5",
        "description": "Crew cab with tow package and bed liner. Ready for work.",
    },
    {
        "make": "Volkswagen",
        "model": "Golf",
        "year": "2019",
        "price": "15400",
        "mileage": "52000",
        "color": "Red",
        "fuel_type": "Diesel",
        "transmission": "Manual",
        "body_type": "Hatchback",
        "seats": "5",
        "description": "Frugal TDI engine, heated seats, recent timing belt change.",
    },
)


def seed_only(*, database_url: str | None = None, demo: bool = False) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        roles = {key: ensure_role(s, key) for key in ROLES}

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                name="Administrator",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])
        s.flush()

        added = 0
        if demo and not s.query(Car.id).first():
            for payload in DEMO_CARS:
                create_car(s, dict(payload), user)
                added += 1

    print("Initialized database (seed_only).")
    print(f"Roles: {', '.join(sorted(ROLES))}")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    if demo:
        print(f"Demo cars added: {added}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--demo", action="store_true", help="Add demo inventory if no cars exist")
    args = parser.parse_args()
    seed_only(database_url=None, demo=args.demo)


if __name__ == "__main__":
    main()
