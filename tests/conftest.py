"""Shared test fixtures and helpers."""

import os

# Settings are read at import time, so the test environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BUSINESS_TIMEZONE"] = "UTC"
os.environ.pop("REDIS_URL", None)
os.environ.pop("REDIS_HOST", None)
os.environ.pop("RESEND_API_KEY", None)

from datetime import date, datetime  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402

from northstar import models_icloud, models_invoice  # noqa: E402, F401
from northstar.database import Base, SessionLocal, engine  # noqa: E402
from northstar.domain.scheduling.schemas import ExternalBusyInterval  # noqa: E402
from northstar.models import User  # noqa: E402
from northstar.models_invoice import PendingService, ServiceSubscription  # noqa: E402
from northstar.security_utils import create_access_token  # noqa: E402

# 2025-03-10 is a Monday
MONDAY = date(2025, 3, 10)
FIXED_NOW = datetime(2025, 3, 1, 9, 0)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def make_user(db, email: str, role: str = "client", full_name: Optional[str] = None) -> User:
    user = User(email=email, role=role, full_name=full_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db):
    return make_user(db, "owner@northstar.example", role="admin", full_name="Nora Owner")


@pytest.fixture
def client_user(db):
    return make_user(db, "ada@client.example", full_name="Ada Client")


@pytest.fixture
def other_client(db):
    return make_user(db, "ben@client.example", full_name="Ben Client")


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


RECURRING_SERVICES = [
    {"description": "Monthly bookkeeping", "quantity": 1, "unit_price": 500.0, "amount": 500.0},
    {"description": "Payroll runs", "quantity": 2, "unit_price": 50.0, "amount": 100.0},
]


def make_subscription(
    db,
    user: User,
    billing_day: int = 1,
    status: str = "active",
    recurring_services: Optional[list[dict]] = None,
) -> ServiceSubscription:
    items = RECURRING_SERVICES if recurring_services is None else recurring_services
    subscription = ServiceSubscription(
        user_id=user.id,
        user_email=user.email,
        recurring_services=items,
        billing_day=billing_day,
        status=status,
        monthly_recurring_total=sum(i["amount"] for i in items),
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


def make_pending_service(
    db,
    user: User,
    description: str,
    amount: float,
    billing_month: str = "2025-03",
    quantity: float = 1,
    unit_price: Optional[float] = None,
) -> PendingService:
    service = PendingService(
        user_id=user.id,
        user_email=user.email,
        description=description,
        quantity=quantity,
        unit_price=amount if unit_price is None else unit_price,
        amount=amount,
        service_date=datetime(2025, 3, 5),
        billing_month=billing_month,
        invoiced=False,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


class RecordingNotifier:
    """Collects invoice emails instead of sending them"""

    def __init__(self):
        self.sent = []

    async def __call__(self, payload):
        self.sent.append(payload)
        return {"id": f"test-{len(self.sent)}"}


class FailingNotifier:
    async def __call__(self, payload):
        raise RuntimeError("mail provider unavailable")


@pytest.fixture
def notifier():
    return RecordingNotifier()


class StaticCalendarSource:
    """Calendar source returning fixed busy intervals"""

    def __init__(self, intervals: Optional[list[ExternalBusyInterval]] = None, accept: bool = True):
        self.intervals = intervals or []
        self.accept = accept
        self.calls = 0

    async def verify_credentials(self, session):
        return self.accept

    async def fetch_busy_intervals(self, session, day, tz):
        self.calls += 1
        return list(self.intervals)


class FailingCalendarSource:
    async def verify_credentials(self, session):
        raise RuntimeError("iCloud unreachable")

    async def fetch_busy_intervals(self, session, day, tz):
        raise RuntimeError("iCloud unreachable")


@pytest.fixture
def icloud_integration(db, admin):
    integration = models_icloud.ICloudIntegration(
        user_id=admin.id,
        apple_id="owner@icloud.com",
        app_password="abcd-efgh-ijkl-mnop",
        calendar_href="https://caldav.icloud.com/123/calendars/work/",
        busy_calendar_urls=["https://caldav.icloud.com/123/calendars/work/"],
    )
    db.add(integration)
    db.commit()
    return integration
