"""Tests for the JSON action endpoints under /api."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.dealership import auth, create_app
from app.dealership.db import session_scope
from app.dealership.models import Base, User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.purchases.service import complete_purchase
from app.dealership.modules.reviews.models import Review
from app.dealership.modules.reviews.service import add_review, moderate_review
from app.dealership.rbac import ensure_role

FUTURE = (date.today() + timedelta(days=10)).isoformat()


def _make_app(tmp_path, monkeypatch, *, csrf: bool):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "1" if csrf else "0")
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
        cars = [
            Car(
                make="Kia",
                model=model,
                year=2023,
                price=Decimal(price),
                mileage=5000,
                color="Blue",
                fuel_type="Electric",
                transmission="Automatic",
                body_type="SUV",
                description="Electric crossover.",
                status="AVAILABLE",
                created_at=now,
                updated_at=now,
            )
            for model, price in (("EV6", "45000"), ("Niro", "33000"))
        ]
        s.add_all([admin, alice, bob, *cars])
        s.flush()

        complete_purchase(
            s,
            alice,
            cars[1].id,
            {
                "full_name": "Alice",
                "email": "alice@example.com",
                "phone": "5550001111",
                "address": "7 Harbour Road",
                "city": "Boston",
                "state": "MA",
                "zip_code": "02110",
                "card_number": "5555555555554444",
                "expiry_date": f"06/{(date.today().year + 2) % 100:02d}",
                "cvv": "999",
                "card_name": "Alice",
            },
        )
        review = add_review(
            s, alice, cars[1].id, rating=5, title="Silent and quick", comment="Range is better than advertised."
        )
        moderate_review(s, review, "APPROVED", admin)

    return app


@pytest.fixture()
def client(tmp_path, monkeypatch):
    return _make_app(tmp_path, monkeypatch, csrf=False).test_client()


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)


def _ids(app):
    with session_scope(app) as s:
        cars = {c.model: c.id for c in s.query(Car).all()}
        review_id = s.query(Review.id).scalar()
    return cars, review_id


def test_car_get(client):
    cars, _ = _ids(client.application)
    r = client.get(f"/api/cars/{cars['EV6']}")
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["data"]["model"] == "EV6"
    assert r.json["data"]["price"] == 45000.0

    r = client.get("/api/cars/99999")
    assert r.status_code == 400
    assert r.json == {"success": False, "error": "Car not found"}


def test_car_reviews(client):
    cars, _ = _ids(client.application)
    r = client.get(f"/api/cars/{cars['Niro']}/reviews")
    data = r.json["data"]
    assert data["stats"] == {"average_rating": 5.0, "total_reviews": 1}
    assert data["reviews"][0]["title"] == "Silent and quick"
    assert data["reviews"][0]["user_name"] == "Alice"


def test_auth_required_endpoints_return_401(client):
    assert client.get("/api/test-drives").status_code == 401
    assert client.get("/api/purchases").json == {"success": False, "error": "Unauthorized"}
    r = client.post("/api/test-drives", json={"car_id": 1})
    assert r.status_code == 401


def test_book_list_and_cancel_test_drive(client):
    cars, _ = _ids(client.application)
    _login(client, "bob@example.com")

    r = client.post(
        "/api/test-drives",
        json={"car_id": cars["EV6"], "booking_date": FUTURE, "start_time": "14:00", "end_time": "15:00"},
    )
    assert r.status_code == 201
    booking = r.json["data"]
    assert booking["status"] == "PENDING"
    assert booking["car"]["model"] == "EV6"

    r = client.post(
        "/api/test-drives",
        json={"car_id": cars["EV6"], "booking_date": FUTURE, "start_time": "14:00", "end_time": "14:30"},
    )
    assert r.status_code == 400
    assert r.json["success"] is False
    assert "already booked" in r.json["error"]

    r = client.get("/api/test-drives")
    assert [b["id"] for b in r.json["data"]] == [booking["id"]]

    r = client.post(f"/api/test-drives/{booking['id']}/cancel")
    assert r.json == {"success": True, "message": "Test drive cancelled successfully"}
    r = client.post(f"/api/test-drives/{booking['id']}/cancel")
    assert r.status_code == 400
    assert r.json["error"] == "Booking is already cancelled"


def test_book_requires_car_id(client):
    _login(client, "bob@example.com")
    r = client.post("/api/test-drives", json={"booking_date": FUTURE})
    assert r.status_code == 400
    assert r.json["error"] == "car_id is required"


def test_sold_car_cannot_be_booked(client):
    cars, _ = _ids(client.application)
    _login(client, "bob@example.com")
    r = client.post(
        "/api/test-drives",
        json={"car_id": cars["Niro"], "booking_date": FUTURE, "start_time": "10:00", "end_time": "11:00"},
    )
    assert r.status_code == 400
    assert r.json["error"] == "Car not available for test drive"


def test_purchases_list(client):
    _login(client, "alice@example.com")
    r = client.get("/api/purchases")
    assert r.status_code == 200
    (p,) = r.json["data"]
    assert p["car"]["model"] == "Niro"
    assert p["card_last4"] == "4444"
    assert "card_number" not in p


def test_review_vote(client):
    _, review_id = _ids(client.application)
    _login(client, "bob@example.com")
    r = client.post(f"/api/reviews/{review_id}/vote", json={"is_helpful": True})
    assert r.status_code == 200
    assert r.json["data"] == {"helpful_votes": 1, "unhelpful_votes": 0}

    r = client.post(f"/api/reviews/{review_id}/vote", json={"is_helpful": False})
    assert r.json["data"] == {"helpful_votes": 0, "unhelpful_votes": 1}

    r = client.post(f"/api/reviews/{review_id}/vote", json={})
    assert r.status_code == 400
    assert r.json["error"] == "is_helpful is required"


def test_own_review_vote_rejected(client):
    _, review_id = _ids(client.application)
    _login(client, "alice@example.com")
    r = client.post(f"/api/reviews/{review_id}/vote", json={"is_helpful": True})
    assert r.status_code == 400
    assert r.json["error"] == "You cannot vote on your own review"


def test_compare_endpoints(client):
    cars, _ = _ids(client.application)
    r = client.post(f"/api/compare/{cars['EV6']}")
    assert r.json["data"] == [cars["EV6"]]
    assert r.json["message"] == "Kia EV6 added to comparison"

    r = client.post(f"/api/compare/{cars['EV6']}")
    assert r.status_code == 400
    assert r.json["error"] == "Car is already in comparison"

    client.post(f"/api/compare/{cars['Niro']}")
    r = client.get("/api/compare")
    assert [c["model"] for c in r.json["data"]] == ["EV6", "Niro"]

    r = client.delete(f"/api/compare/{cars['EV6']}")
    assert r.json["data"] == [cars["Niro"]]
    r = client.delete("/api/compare")
    assert r.json["data"] == []


def test_csrf_enforced_when_enabled(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, csrf=True)
    client = app.test_client()
    cars, _ = _ids(app)

    r = client.post(f"/api/compare/{cars['EV6']}")
    assert r.status_code == 400
    assert r.json == {"success": False, "error": "CSRF token missing or invalid."}

    # Any page render issues the token; send it back in the header.
    client.get("/compare")
    with client.session_transaction() as sess:
        token = sess["csrf_token"]
    r = client.post(f"/api/compare/{cars['EV6']}", headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert r.json["success"] is True

    r = client.post("/compare/clear", data={"csrf_token": "wrong"})
    assert r.status_code == 400
    assert b"CSRF token missing or invalid." in r.data
