"""
Shared fixtures: an isolated SQLite database per test, an in-memory payment
gateway, and a recording audit sink.

Environment is set before any project module is imported because settings,
the JWT handler and the rate limiter read it at import time.
"""
import os

os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test-gateway-secret"
os.environ["OTEL_ENABLED"] = "false"
os.environ["VERIFY_RATE_LIMIT"] = "1000/minute"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import itertools
from decimal import Decimal
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from shared.config.database import SCHEMAS, Base
from services.audit_service.models import AuditLog  # noqa: F401
from services.auth_service.models import Entity, User
from services.donation_service.errors import GatewayError
from services.donation_service.models import Donation, DonationStatus
from services.donation_service.service import DonationService
from services.donation_service.signature import compute_signature

GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "test-gateway-secret"


class FakeGateway:
    """Hands out sequential order ids and serves payments registered by the test."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.created: List[Dict[str, Any]] = []
        self.fetched: List[str] = []
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.fail_create = False
        self.fail_fetch = False
        self.order_response: Dict[str, Any] | None = None

    async def create_order(self, amount_minor, currency, notes):
        if self.fail_create:
            raise GatewayError("payment gateway create_order failed")
        self.created.append({"amount": amount_minor, "currency": currency, "notes": notes})
        if self.order_response is not None:
            return self.order_response
        return {"id": f"order_{next(self._ids):04d}", "amount": amount_minor, "currency": currency}

    async def fetch_payment(self, payment_id):
        self.fetched.append(payment_id)
        if self.fail_fetch:
            raise GatewayError("payment gateway fetch_payment failed")
        return self.payments[payment_id]

    def add_payment(self, payment_id, amount=50000, status="captured", method="upi", **extra):
        payload = {"id": payment_id, "amount": amount, "status": status, **extra}
        if method is not None:
            payload["method"] = method
        self.payments[payment_id] = payload
        return payload


class RecordingAudit:

    def __init__(self):
        self.events: List[Dict[str, Any]] = []
        self.raise_on_log = False

    async def log_action(self, user_id, entity_id, action, details, ip_address, status):
        if self.raise_on_log:
            raise RuntimeError("audit store unavailable")
        self.events.append(
            {
                "user_id": user_id,
                "entity_id": entity_id,
                "action": action,
                "details": details,
                "ip_address": ip_address,
                "status": status,
            }
        )

    def actions(self) -> List[str]:
        return [e["action"] for e in self.events]

    def last(self) -> Dict[str, Any]:
        return self.events[-1]


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'donations.db'}",
        execution_options={"schema_translate_map": {schema: None for schema in SCHEMAS}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def service(gateway, audit):
    return DonationService(
        gateway=gateway,
        audit=audit,
        key_id=GATEWAY_KEY_ID,
        key_secret=GATEWAY_SECRET,
    )


@pytest.fixture
def sign():
    def _sign(order_id: str, payment_id: str) -> str:
        return compute_signature(GATEWAY_SECRET, order_id, payment_id)

    return _sign


@pytest.fixture
def load_donation(session_factory):
    """Reads a donation through a fresh session, bypassing any identity map."""

    async def _load(order_id: str) -> Donation:
        async with session_factory() as session:
            result = await session.execute(select(Donation).where(Donation.order_id == order_id))
            return result.scalar_one()

    return _load


@pytest_asyncio.fixture
async def temples(db):
    """Two temples, a devotee, a nameless devotee, and staff for temple 1."""
    db.add_all(
        [
            Entity(id=1, name="Sri Ranganatha Temple"),
            Entity(id=2, name="Meenakshi Amman Temple"),
            User(id=10, full_name="Asha Rao", email="asha@example.com",
                 hashed_password="x", role="devotee"),
            User(id=11, full_name="", email="ravi@example.com",
                 hashed_password="x", role="devotee"),
            User(id=20, full_name="Temple Admin", email="admin@example.com",
                 hashed_password="x", role="templeadmin", entity_id=1),
        ]
    )
    await db.commit()
    return {"entity": 1, "other_entity": 2, "devotee": 10, "nameless": 11, "admin": 20}


@pytest.fixture
def make_donation(db):
    counter = itertools.count(1)

    async def _make(
        user_id=10,
        entity_id=1,
        amount="500.00",
        status=DonationStatus.SUCCESS,
        donation_type="seva",
        method="upi",
        payment_id="auto",
        **extra,
    ) -> Donation:
        n = next(counter)
        donation = Donation(
            user_id=user_id,
            entity_id=entity_id,
            amount=Decimal(amount),
            donation_type=donation_type,
            order_id=f"order_seed_{n:03d}",
            payment_id=f"pay_seed_{n:03d}" if payment_id == "auto" else payment_id,
            method=method,
            status=status.value,
            **extra,
        )
        db.add(donation)
        await db.commit()
        await db.refresh(donation)
        return donation

    return _make
