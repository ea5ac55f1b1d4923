"""Tests for the inventory module: public search, sold cars and admin CRUD."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.dealership import auth, create_app
from app.dealership.db import session_scope
from app.dealership.models import AuditEvent, Base, User
from app.dealership.modules.inventory.models import Car
from app.dealership.modules.inventory.service import (
    parse_search_args,
    search_cars,
    update_car,
    validate_car_payload,
)
from app.dealership.modules.purchases.models import Purchase
from app.dealership.rbac import ensure_role


def _car(make, model, price, *, days_old=0, **kw):
    now = datetime.utcnow() - timedelta(days=days_old)
    values = {
        "year": 2021,
        "mileage": 20000,
        "color": "Black",
        "fuel_type": "Petrol",
        "transmission": "Automatic",
        "body_type": "Sedan",
        "description": f"A well kept {make} {model}.",
        "status": "AVAILABLE",
        "created_at": now,
        "updated_at": now,
    }
    values.update(kw)
    return Car(make=make, model=model, price=Decimal(price), **values)


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "0")
    monkeypatch.setenv("CARS_PER_PAGE", "2")
    auth.login_throttle.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(ensure_role(s, "admin"))
        c = User(email="buyer@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        c.roles.append(ensure_role(s, "customer"))
        s.add_all([u, c])
        s.add_all(
            [
                _car("Toyota", "Corolla", "18000", days_old=3, fuel_type="Hybrid"),
                _car("Toyota", "RAV4", "29000", days_old=2, body_type="SUV", featured=True),
                _car("BMW", "X5", "52000", days_old=1, body_type="SUV", fuel_type="Diesel"),
                _car("Honda", "Jazz", "9000", status="UNAVAILABLE"),
                _car("Ford", "Focus", "11000", status="SOLD"),
            ]
        )

    return app.test_client()


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)


def _car_id(client, model):
    with session_scope(client.application) as s:
        return s.query(Car.id).filter(Car.model == model).scalar()


def _valid_form(**overrides):
    data = {
        "make": "Mazda",
        "model": "CX-5",
        "year": "2022",
        "price": "26,500",
        "mileage": "15000",
        "color": "Red",
        "fuel_type": "Petrol",
        "transmission": "Automatic",
        "body_type": "SUV",
        "seats": "5",
        "description": "Sporty crossover with a clean history.",
        "status": "AVAILABLE",
    }
    data.update(overrides)
    return data


# ---------- Public search ----------

def test_search_only_returns_available_cars(client):
    with session_scope(client.application) as s:
        result = search_cars(s, per_page=20)
        assert result.total == 3
        assert {c.model for c in result.cars} == {"Corolla", "RAV4", "X5"}


def test_search_filters_and_sorting(client):
    with session_scope(client.application) as s:
        assert [c.model for c in search_cars(s, q="toyota", sort="price_asc").cars] == ["Corolla", "RAV4"]
        assert [c.model for c in search_cars(s, body_type="SUV", sort="price_desc").cars] == ["X5", "RAV4"]
        assert [c.model for c in search_cars(s, fuel_type="Diesel").cars] == ["X5"]
        assert [c.model for c in search_cars(s, make="bmw").cars] == ["X5"]
        r = search_cars(s, min_price=Decimal("10000"), max_price=Decimal("30000"), sort="price_asc")
        assert [c.model for c in r.cars] == ["Corolla", "RAV4"]
        # newest first by default; unknown sort falls back to it
        assert [c.model for c in search_cars(s, sort="bogus").cars] == ["X5", "RAV4", "Corolla"]


def test_search_pagination(client):
    with session_scope(client.application) as s:
        page1 = search_cars(s, per_page=2, page=1)
        page2 = search_cars(s, per_page=2, page=2)
        assert page1.pages == 2
        assert page1.has_next and not page1.has_prev
        assert [c.model for c in page2.cars] == ["Corolla"]
        assert page2.has_prev and not page2.has_next


def test_parse_search_args_ignores_junk():
    args = parse_search_args({"min_price": "abc", "max_price": "$20,000", "page": "x", "q": "  golf "})
    assert args["min_price"] is None
    assert args["max_price"] == Decimal("20000")
    assert args["page"] == 1
    assert args["q"] == "golf"
    assert args["sort"] == "newest"


def test_cars_page_renders_results(client):
    r = client.get("/cars?body_type=SUV&sort=price_asc")
    assert r.status_code == 200
    assert b"Showing 2 of 2 cars" in r.data
    assert b"RAV4" in r.data and b"X5" in r.data
    assert b"Corolla" not in r.data


def test_cars_page_paginates(client):
    r = client.get("/cars")
    assert b"Page 1 of 2" in r.data
    r = client.get("/cars?page=2")
    assert b"Corolla" in r.data


def test_home_shows_featured(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"RAV4" in r.data
    assert b"X5" not in r.data


def test_car_detail_and_404(client):
    r = client.get(f"/cars/{_car_id(client, 'X5')}")
    assert r.status_code == 200
    assert b"2021 BMW X5" in r.data
    assert client.get("/cars/99999").status_code == 404


def test_sold_cars_listing(client):
    r = client.get("/sold-cars")
    assert r.status_code == 200
    assert b"Focus" in r.data
    assert b"Corolla" not in r.data

    assert client.get(f"/sold-cars/{_car_id(client, 'Focus')}").status_code == 200
    # Available cars are not part of the sold history.
    assert client.get(f"/sold-cars/{_car_id(client, 'Corolla')}").status_code == 404


# ---------- Validation ----------

def test_validate_car_payload_collects_errors():
    errors = validate_car_payload(
        {
            "make": "",
            "model": "X",
            "year": "1800",
            "price": "-5",
            "mileage": "abc",
            "color": "Blue",
            "fuel_type": "Steam",
            "transmission": "Automatic",
            "body_type": "SUV",
            "description": "short",
        },
        today=date(2026, 1, 1),
    )
    assert "Make is required." in errors
    assert any(e.startswith("Valid year required") for e in errors)
    assert "Price must be a positive amount." in errors
    assert any(e.startswith("Mileage") for e in errors)
    assert any(e.startswith("Fuel type must be one of") for e in errors)
    assert any(e.startswith("Description must be at least") for e in errors)


def test_validate_car_payload_accepts_next_model_year():
    assert validate_car_payload(_valid_form(year="2027"), today=date(2026, 6, 1)) == []
    assert validate_car_payload(_valid_form(year="2028"), today=date(2026, 6, 1)) != []


# ---------- Admin ----------

def test_admin_cars_requires_auth(client):
    r = client.get("/admin/cars")
    assert r.status_code in (302, 403)

    _login(client, "buyer@example.com")
    assert client.get("/admin/cars").status_code == 403


def test_admin_car_create(client):
    _login(client)
    r = client.post("/admin/cars/new", data=_valid_form(featured="1"), follow_redirects=True)
    assert r.status_code == 200
    assert b"2022 Mazda CX-5 added to inventory." in r.data

    with session_scope(client.application) as s:
        car = s.query(Car).filter(Car.model == "CX-5").one()
        assert car.price == Decimal("26500")
        assert car.featured is True
        assert car.created_by_user_id is not None
        assert s.query(AuditEvent).filter(AuditEvent.action == "car.create").count() == 1


def test_admin_car_create_invalid_rerenders(client):
    _login(client)
    r = client.post("/admin/cars/new", data=_valid_form(make="", price="free"))
    assert r.status_code == 400
    assert b"Make is required." in r.data
    with session_scope(client.application) as s:
        assert s.query(Car).filter(Car.model == "CX-5").count() == 0


def test_admin_car_edit_records_changes(client):
    _login(client)
    car_id = _car_id(client, "Corolla")
    r = client.get(f"/admin/cars/{car_id}/edit")
    assert r.status_code == 200

    form = _valid_form(make="Toyota", model="Corolla", price="17500", body_type="Sedan", fuel_type="Hybrid")
    r = client.post(f"/admin/cars/{car_id}/edit", data=form, follow_redirects=True)
    assert b"Car updated successfully." in r.data

    with session_scope(client.application) as s:
        car = s.get(Car, car_id)
        assert car.price == Decimal("17500")
        ev = s.query(AuditEvent).filter(AuditEvent.action == "car.edit").one()
        assert '"price"' in ev.metadata_json


def test_admin_status_and_featured_toggle(client):
    _login(client)
    car_id = _car_id(client, "X5")
    client.post(f"/admin/cars/{car_id}/status", data={"status": "UNAVAILABLE"}, follow_redirects=True)
    client.post(f"/admin/cars/{car_id}/featured", follow_redirects=True)

    with session_scope(client.application) as s:
        car = s.get(Car, car_id)
        assert car.status == "UNAVAILABLE"
        assert car.featured is True

    # No longer listed publicly.
    assert b"X5" not in client.get("/cars").data


def test_admin_delete_car(client):
    _login(client)
    car_id = _car_id(client, "Jazz")
    r = client.post(f"/admin/cars/{car_id}/delete", follow_redirects=True)
    assert b"deleted." in r.data
    with session_scope(client.application) as s:
        assert s.get(Car, car_id) is None


def test_admin_cannot_delete_or_reopen_purchased_car(client):
    car_id = _car_id(client, "Focus")
    with session_scope(client.application) as s:
        buyer = s.query(User).filter(User.email == "buyer@example.com").one()
        s.add(
            Purchase(
                car_id=car_id,
                user_id=buyer.id,
                price=Decimal("11000"),
                full_name="Buyer",
                email="buyer@example.com",
                phone="5551234567",
                address="1 Main Street",
                city="Springfield",
                state="IL",
                zip_code="62701",
                card_last4="4242",
            )
        )

    _login(client)
    r = client.post(f"/admin/cars/{car_id}/delete", follow_redirects=True)
    assert b"Cannot delete a car that has been purchased." in r.data

    r = client.post(f"/admin/cars/{car_id}/status", data={"status": "AVAILABLE"}, follow_redirects=True)
    assert b"must stay SOLD" in r.data

    with session_scope(client.application) as s:
        assert s.get(Car, car_id).status == "SOLD"


def _add_purchase(client, car_id, price="11000"):
    with session_scope(client.application) as s:
        buyer = s.query(User).filter(User.email == "buyer@example.com").one()
        s.add(
            Purchase(
                car_id=car_id,
                user_id=buyer.id,
                price=Decimal(price),
                full_name="Buyer",
                email="buyer@example.com",
                phone="5551234567",
                address="1 Main Street",
                city="Springfield",
                state="IL",
                zip_code="62701",
                card_last4="4242",
            )
        )


def test_edit_with_blank_status_keeps_purchased_car_sold(client):
    car_id = _car_id(client, "Focus")
    _add_purchase(client, car_id)

    _login(client)
    r = client.post(f"/admin/cars/{car_id}/edit", data=_valid_form(make="Ford", model="Focus", status=""))
    assert r.status_code == 302
    with session_scope(client.application) as s:
        assert s.get(Car, car_id).status == "SOLD"

    r = client.post(f"/admin/cars/{car_id}/edit", data=_valid_form(make="Ford", model="Focus", status="AVAILABLE"))
    assert r.status_code == 400
    assert b"must stay SOLD" in r.data
    with session_scope(client.application) as s:
        assert s.get(Car, car_id).status == "SOLD"


def test_edit_with_blank_status_keeps_current_status(client):
    car_id = _car_id(client, "Jazz")
    _login(client)
    r = client.post(
        f"/admin/cars/{car_id}/edit",
        data=_valid_form(make="Honda", model="Jazz", price="9500", status=""),
        follow_redirects=True,
    )
    assert b"Car updated successfully." in r.data
    with session_scope(client.application) as s:
        car = s.get(Car, car_id)
        assert car.status == "UNAVAILABLE"
        assert car.price == Decimal("9500")


def test_update_car_service_refuses_reopening_purchased_car(client):
    car_id = _car_id(client, "Focus")
    _add_purchase(client, car_id)
    with session_scope(client.application) as s, pytest.raises(ValueError, match="must stay SOLD"):
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        update_car(s, s.get(Car, car_id), _valid_form(make="Ford", model="Focus", status="UNAVAILABLE"), admin)
    with session_scope(client.application) as s:
        assert s.get(Car, car_id).status == "SOLD"
