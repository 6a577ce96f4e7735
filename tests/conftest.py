from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from notifications import NotificationSender
from schemas import User

OPERATOR_EMAIL = "orders@rythudipo.in"

ADDRESS = {
    "fullName": "Ravi Kumar",
    "address": "12 Market Road",
    "city": "Guntur",
    "state": "Andhra Pradesh",
    "pincode": "522001",
    "phone": "9876543210",
}

SEED = {"productId": "p1", "name": "Seed", "price": 100, "quantity": 2, "image": "img"}


class Clock:
    def __init__(self):
        # Mongo keeps millisecond precision; whole seconds round-trip exactly.
        self.now = datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingSender(NotificationSender):
    def __init__(self):
        self.sent = []

    def send(self, to, subject, template, data):
        self.sent.append({"to": to, "subject": subject, "template": template, "data": data})

    def last_otp(self, email):
        for message in reversed(self.sent):
            if message["template"] == "otp" and message["to"] == email:
                return message["data"]["otp"]
        raise AssertionError(f"no OTP sent to {email}")


class FailingSender(NotificationSender):
    def __init__(self):
        self.attempts = 0

    def send(self, to, subject, template, data):
        self.attempts += 1
        raise ConnectionError("SMTP server unavailable")


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        order_notification_email=OPERATOR_EMAIL,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["rythu_dipo_test"]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def app(settings, db, sender, clock):
    return create_app(settings, db=db, notifier=sender, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def accounts(app):
    return app.state.accounts


@pytest.fixture
def orders(app):
    return app.state.orders


@pytest.fixture
def customer():
    return User(id=str(ObjectId()), name="Ravi", email="ravi@x.com", phone="9876543210",
                is_verified=True)


def signup_payload(**overrides):
    payload = {"name": "Ravi", "email": "ravi@x.com", "password": "secret1", "phone": "9876543210"}
    payload.update(overrides)
    return payload


@pytest.fixture
def token(client, sender):
    client.post("/auth/signup", json=signup_payload())
    res = client.post("/auth/verify-otp", json={"email": "ravi@x.com", "otp": sender.last_otp("ravi@x.com")})
    return res.json()["data"]["token"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
