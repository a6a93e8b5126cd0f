"""
Shared fixtures.

Every test gets a fresh file-backed SQLite database (file-backed so worker
threads in the concurrency tests see the same data) and runs inside an
app context. Service calls pass an explicit ``now`` so hold deadlines and
cancellation cutoffs are deterministic.
"""
import re
import secrets
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.court import Court
from models.field import Field
from models.promotion import Promotion
from models.session import Session
from models.statuses import DiscountType, PromotionStatus
from models.user import User, Role
from security.session import hash_token
from utils.seed import seed_roles

NOW = datetime(2030, 1, 1, 8, 0, 0)
PLAY_DATE = "2030-01-02"
BASE_RATE = 100_000


def window(start, end, play_date=PLAY_DATE):
    return {"play_date": play_date, "start_time": start, "end_time": end}


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "test.db")
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "check_same_thread": False}}
        SEED_ROLES_ON_STARTUP = False
        SMTP_HOST = None
        CANCELLATION_DECISION_BASE_URL = "https://courtslot.test/cancellations/decision"
        CELERY_BROKER_URL = "memory://"
        CELERY_RESULT_BACKEND = "cache+memory://"

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, *role_names):
    user = User(email=email, full_name=email.split("@")[0].title())
    for name in role_names:
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def owner(app):
    return make_user("owner@example.com", "OWNER")


@pytest.fixture
def customer(app):
    return make_user("player@example.com", "CUSTOMER")


@pytest.fixture
def other_customer(app):
    return make_user("rival@example.com", "CUSTOMER")


@pytest.fixture
def admin(app):
    return make_user("admin@example.com", "ADMIN")


def make_field(owner, courts=1, rate=BASE_RATE):
    field = Field(name="Riverside Futsal", location="Kathmandu", owner_user_id=owner.id, price_per_slot=rate)
    db.session.add(field)
    db.session.flush()
    for number in range(1, courts + 1):
        db.session.add(Court(field_id=field.id, number=number, name=f"Court {number}"))
    db.session.commit()
    return field


@pytest.fixture
def field(owner):
    return make_field(owner)


@pytest.fixture
def two_court_field(owner):
    return make_field(owner, courts=2)


def make_promotion(owner, code="SAVE50K", **overrides):
    values = dict(
        owner_user_id=owner.id,
        code=code,
        title="Launch offer",
        discount_type=DiscountType.FIXED,
        discount_value=50_000,
        min_order_amount=200_000,
        usage_limit=None,
        usage_per_customer=1,
        start_at=NOW - timedelta(days=1),
        end_at=NOW + timedelta(days=30),
        status=PromotionStatus.ACTIVE,
    )
    values.update(overrides)
    promotion = Promotion(**values)
    db.session.add(promotion)
    db.session.commit()
    return promotion


@pytest.fixture
def outbox(monkeypatch):
    """Capture notifications instead of talking to SMTP."""
    sent = []

    def fake_send_email(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})
        return True, None

    monkeypatch.setattr("utils.emailer.send_email", fake_send_email)
    return sent


def decision_token(message, decision="approve"):
    match = re.search(r"token=([^&\s]+)&decision=" + decision, message["body"])
    assert match, message["body"]
    return match.group(1)


def login(client, user):
    """Mimic the auth service: store a hashed session and set its cookies."""
    raw = secrets.token_urlsafe(32)
    db.session.add(Session(
        user_id=user.id,
        token_hash=hash_token(raw),
        expires_at=datetime.utcnow() + timedelta(hours=8),
    ))
    db.session.commit()
    client.set_cookie(Config.AUTH_COOKIE_NAME, raw)
    client.set_cookie("csrf_token", "csrf-test-token")
    return {"X-CSRF-Token": "csrf-test-token"}
