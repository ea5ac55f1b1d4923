"""Tests for the checkout flow and purchase history."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.dealership import auth, create_app
from app.dealership.db import session_scope
from app.dealership.models import AuditEvent, Base, User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.purchases.models import Purchase
from app.dealership.modules.purchases.service import (
    NOT_AVAILABLE_MESSAGE,
    complete_purchase,
    validate_checkout_payload,
)
from app.dealership.modules.test_drives.models import TestDriveBooking
from app.dealership.modules.test_drives.service import book_test_drive
from app.dealership.rbac import ensure_role

EXPIRY = f"12/{(date.today().year + 3) % 100:02d}"


def _checkout(**overrides):
    data = {
        "full_name": "Alice Buyer",
        "email": "Alice@Example.com",
        "phone": "(555) 123-4567",
        "address": "42 Long Street, Apt 3",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "card_number": "4242 4242 4242 4242",
        "expiry_date": EXPIRY,
        "cvv": "123",
        "card_name": "Alice Buyer",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "0")
    auth.login_throttle.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        customer = ensure_role(s, "customer")
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(ensure_role(s, "admin"))
        alice = User(email="alice@example.com", name="Alice", password_hash=generate_password_hash("pw"), is_active=True)
        alice.roles.append(customer)
        bob = User(email="bob@example.com", name="Bob", password_hash=generate_password_hash("pw"), is_active=True)
        bob.roles.append(customer)
        now = datetime.utcnow()
        s.add(
            Car(
                make="Mazda",
                model="MX-5",
                year=2021,
                price=Decimal("27999.00"),
                mileage=8000,
                color="Red",
                fuel_type="Petrol",
                transmission="Manual",
                body_type="Convertible",
                description="Roadster in great shape.",
                status="AVAILABLE",
                created_at=now,
                updated_at=now,
            )
        )
        s.add_all([admin, alice, bob])

    return app.test_client()


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)


def _ids(client):
    with session_scope(client.application) as s:
        users = {u.email.split("@")[0]: u.id for u in s.query(User).all()}
        car_id = s.query(Car.id).scalar()
    return users, car_id


def test_validate_checkout_payload():
    today = date(2026, 5, 15)
    assert validate_checkout_payload(_checkout(expiry_date="05/26"), today=today) == []

    errors = validate_checkout_payload(
        _checkout(email="nope", phone="123", zip_code="12", card_number="1234", expiry_date="04/26", cvv="12"),
        today=today,
    )
    assert "Valid email is required." in errors
    assert "Valid phone number is required." in errors
    assert "Valid ZIP code is required." in errors
    assert "Valid card number is required." in errors
    assert "Card has expired." in errors
    assert "Valid CVV is required." in errors

    assert "Valid expiry date is required (MM/YY)." in validate_checkout_payload(
        _checkout(expiry_date="13/30"), today=today
    )


def test_checkout_requires_login(client):
    _, car_id = _ids(client)
    r = client.get(f"/purchase/{car_id}")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_checkout_form_prefills_contact(client):
    _, car_id = _ids(client)
    _login(client, "alice@example.com")
    r = client.get(f"/purchase/{car_id}")
    assert r.status_code == 200
    assert b"alice@example.com" in r.data
    assert b"$27,999.00" in r.data


def test_purchase_flow(client):
    users, car_id = _ids(client)
    _login(client, "alice@example.com")

    r = client.post(f"/purchase/{car_id}", data=_checkout())
    assert r.status_code == 302
    assert "/purchases/" in r.headers["Location"]

    with session_scope(client.application) as s:
        car = s.get(Car, car_id)
        assert car.status == "SOLD"
        p = s.query(Purchase).one()
        assert p.user_id == users["alice"]
        assert p.price == Decimal("27999.00")
        assert p.card_last4 == "4242"
        assert p.email == "alice@example.com"
        assert s.query(AuditEvent).filter(AuditEvent.action == "purchase.complete").count() == 1

    r = client.get(r.headers["Location"])
    assert r.status_code == 200
    assert b"ending in 4242" in r.data
    # full card number is never stored or shown
    assert b"4242 4242 4242 4242" not in r.data

    r = client.get("/purchase-history")
    assert b"2021 Mazda MX-5" in r.data
    assert b"Write a review" in r.data

    # No longer listed for sale; shows up in sold history.
    assert b"MX-5" not in client.get("/cars").data
    assert b"MX-5" in client.get("/sold-cars").data


def test_second_purchase_is_refused(client):
    _, car_id = _ids(client)
    _login(client, "alice@example.com")
    client.post(f"/purchase/{car_id}", data=_checkout())
    client.get("/auth/logout")

    _login(client, "bob@example.com")
    r = client.post(f"/purchase/{car_id}", data=_checkout(full_name="Bob Buyer"), follow_redirects=True)
    assert NOT_AVAILABLE_MESSAGE.encode() in r.data

    with session_scope(client.application) as s:
        assert s.query(Purchase).count() == 1


def test_service_refuses_unavailable_car(client):
    users, car_id = _ids(client)
    with session_scope(client.application) as s:
        car = s.get(Car, car_id)
        car.status = "UNAVAILABLE"

    with session_scope(client.application) as s:
        alice = s.get(User, users["alice"])
        with pytest.raises(ValueError, match=NOT_AVAILABLE_MESSAGE):
            complete_purchase(s, alice, car_id, _checkout())
        with pytest.raises(ValueError, match="Car not found"):
            complete_purchase(s, alice, 99999, _checkout())
        s.rollback()
        assert s.query(Purchase).count() == 0


def test_purchase_cancels_active_test_drives(client):
    users, car_id = _ids(client)
    future = date.today() + timedelta(days=5)
    with session_scope(client.application) as s:
        bob = s.get(User, users["bob"])
        book_test_drive(s, bob, car_id, booking_date=future, start_time="10:00", end_time="11:00")

    with session_scope(client.application) as s:
        alice = s.get(User, users["alice"])
        complete_purchase(s, alice, car_id, _checkout())

    with session_scope(client.application) as s:
        b = s.query(TestDriveBooking).one()
        assert b.status == "CANCELLED"
        assert s.query(AuditEvent).filter(AuditEvent.action == "test_drive.cancel_for_sale").count() == 1


def test_invalid_checkout_rerenders_without_card_data(client):
    _, car_id = _ids(client)
    _login(client, "alice@example.com")
    r = client.post(f"/purchase/{car_id}", data=_checkout(cvv="9", card_number="4111111111111111", zip_code="1"))
    assert r.status_code == 400
    assert b"Valid CVV is required." in r.data
    assert b"4111111111111111" not in r.data
    assert b"Valid ZIP code is required." in r.data

    with session_scope(client.application) as s:
        assert s.get(Car, car_id).status == "AVAILABLE"


def test_receipt_is_private(client):
    _, car_id = _ids(client)
    _login(client, "alice@example.com")
    r = client.post(f"/purchase/{car_id}", data=_checkout())
    receipt_url = r.headers["Location"]
    client.get("/auth/logout")

    _login(client, "bob@example.com")
    assert client.get(receipt_url).status_code == 404


def test_admin_dashboard_shows_sales(client):
    _, car_id = _ids(client)
    _login(client, "alice@example.com")
    client.post(f"/purchase/{car_id}", data=_checkout())
    client.get("/auth/logout")

    _login(client, "admin@example.com")
    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"1 sold" in r.data
    assert b"$27,999.00" in r.data


def test_failed_insert_rolls_back_status_and_bookings(client):
    users, car_id = _ids(client)
    future = date.today() + timedelta(days=5)
    with session_scope(client.application) as s:
        bob = s.get(User, users["bob"])
        book_test_drive(s, bob, car_id, booking_date=future, start_time="10:00", end_time="11:00")
        # a stale sale row left on a car that is still listed
        s.add(
            Purchase(
                car_id=car_id,
                user_id=bob.id,
                price=Decimal("27999.00"),
                full_name="Bob Buyer",
                email="bob@example.com",
                phone="5551234567",
                address="7 Elm Street, Unit 2",
                city="Springfield",
                state="IL",
                zip_code="62701",
                card_last4="1111",
            )
        )

    _login(client, "alice@example.com")
    r = client.post(f"/purchase/{car_id}", data=_checkout(), follow_redirects=True)
    assert NOT_AVAILABLE_MESSAGE.encode() in r.data

    with session_scope(client.application) as s:
        assert s.get(Car, car_id).status == "AVAILABLE"
        assert s.query(Purchase).count() == 1
        assert s.query(Purchase).one().user_id == users["bob"]
        assert s.query(TestDriveBooking).one().status == "PENDING"
        assert s.query(AuditEvent).filter(AuditEvent.action == "purchase.complete").count() == 0
