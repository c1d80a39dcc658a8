from pathlib import Path
from datetime import timedelta
from decimal import Decimal
import os
import sys
import tempfile

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

TEST_DB_DIR = tempfile.mkdtemp(prefix="registrations-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_DIR}/test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-more-than-32-characters"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ["APP_ENV"] = "test"
for prefix in ("SMTP_PRIMARY", "SMTP_SECONDARY"):
    for suffix in ("HOST", "PORT", "FROM"):
        os.environ.pop(f"{prefix}_{suffix}", None)

from fastapi.testclient import TestClient

import notifications
from auth import create_access_token, get_password_hash
from database import Base, SessionLocal, engine
from models import Accommodation, Event, EventStatus, User, UserRole
from payment_gateway import RazorpayConfig, RazorpayGateway, compute_signature, get_payment_gateway
from server import app
from time_utils import now_tz

GATEWAY_SECRET = "rzp_test_secret"
PASSWORD_HASH = get_password_hash("password123")


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeRazorpaySession:
    """Stands in for ``requests.Session`` and records the orders it was asked to create."""

    def __init__(self):
        self.orders = []
        self.fail = False

    def post(self, url, auth=None, json=None, timeout=None):
        if self.fail:
            return FakeResponse({"error": {"description": "gateway down"}}, status_code=503)
        order_id = f"order_test_{len(self.orders) + 1}"
        self.orders.append({"id": order_id, "url": url, "auth": auth, **json})
        return FakeResponse({"id": order_id, "amount": json["amount"], "currency": json["currency"]})


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway_session():
    return FakeRazorpaySession()


@pytest.fixture
def gateway(gateway_session):
    config = RazorpayConfig(
        key_id="rzp_test_key",
        key_secret=GATEWAY_SECRET,
        api_base="https://razorpay.test/v1",
        currency="INR",
        timeout=5,
    )
    return RazorpayGateway(config, session=gateway_session)


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send_email(to_email, subject, html, text):
        sent.append({"to": to_email, "subject": subject, "text": text})
        return f"<msg-{len(sent)}@test>"

    monkeypatch.setattr(notifications, "send_email", fake_send_email)
    return sent


@pytest.fixture
def client(gateway, sent_emails):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name=None, role=UserRole.STUDENT):
        counter["n"] += 1
        user = User(
            name=name or f"Student {counter['n']}",
            email=f"student{counter['n']}@example.com",
            role=role,
            hashed_password=PASSWORD_HASH,
            batch="2022",
            year=3,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_event(db):
    def _make(**overrides):
        now = now_tz()
        fields = dict(
            event_name="Hackathon",
            venue="Seminar Hall",
            status=EventStatus.ACTIVE,
            reg_start_time=now - timedelta(days=1),
            reg_end_time=now + timedelta(days=5),
            event_start_time=now + timedelta(days=7),
            event_end_time=now + timedelta(days=7, hours=6),
            fee_amount=Decimal("0"),
            min_team_size=1,
            max_team_size=1,
            max_registrations=None,
            team_name_required=False,
        )
        fields.update(overrides)
        event = Event(**fields)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make


@pytest.fixture
def make_accommodation(db):
    def _make(name="Boys hostel"):
        row = Accommodation(name=name)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
def sign():
    def _sign(order_id: str, payment_id: str) -> str:
        return compute_signature(GATEWAY_SECRET, order_id, payment_id)

    return _sign
