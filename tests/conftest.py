"""
Shared fixtures: an app on in-memory SQLite, a test client, user factory and login helper.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from config import TestConfig
from orderflow import create_app
from orderflow.extensions import db
from orderflow.models import User

PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    class Config(TestConfig):
        UPLOAD_FOLDER = str(tmp_path / "uploads")
        LOG_DIR = str(tmp_path / "logs")

    app = create_app(Config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(username: str, role: str, **fields) -> User:
        user = User(
            username=username,
            full_name=fields.pop("full_name", username.title()),
            role=role,
            is_active=fields.pop("is_active", True),
            **fields,
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def login(client):
    """Log `user` in on the shared client (logging out whoever was logged in)."""

    def _login(user: User):
        client.post("/auth/logout")
        resp = client.post("/auth/login", json={"username": user.username, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login


@pytest.fixture
def admin(make_user):
    return make_user("admin", "admin")


@pytest.fixture
def sales(make_user):
    return make_user("sara", "sales")


def in_days(n: int) -> str:
    return (date.today() + timedelta(days=n)).isoformat()


def order_payload(number: str = "1001", **overrides) -> dict:
    payload = {
        "order_number": number,
        "customer_name": "Acme Stationers",
        "customer_phone": "9876543210",
        "delivery_date": in_days(10),
        "products": [
            {
                "name": "Wedding Card",
                "quantity": 200,
                "unit_price": "12.50",
                "specifications": {"paper": "300gsm matte", "size": "5x7"},
            }
        ],
    }
    payload.update(overrides)
    return payload
