"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services
(Stripe charges, SendGrid notifications, Redis locks).
"""
import os

os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from leadrouter.database import Base
from leadrouter.models import (
    AlternativeProviderSelection,
    Business,
    Lead,
    Proposal,
    ProviderProfile,
    ServiceRequest,
    SubscriptionPlan,
    User,
    UserSubscription,
)
from leadrouter.services import notifications
from leadrouter.services.payments import ChargeResult


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock for async Redis - locks always acquire, heartbeats succeed."""
    with patch("leadrouter.utils.redis.get_redis") as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.get = AsyncMock(return_value=None)
        redis_mock.ping = AsyncMock(return_value=True)
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock(return_value=None)
        redis_mock.lock = MagicMock(return_value=lock)
        mock.return_value = redis_mock
        yield redis_mock


class CapturingNotifier:
    """Records every notification instead of emailing."""

    def __init__(self):
        self.sent: list[tuple[Optional[str], str, dict]] = []

    async def send(self, to, template, data) -> bool:
        self.sent.append((to, template, data))
        return True

    def templates(self) -> list[str]:
        return [template for _to, template, _data in self.sent]


@pytest.fixture(autouse=True)
def notifier():
    """Capture notifications for every test. Await lead_events.drain() before asserting."""
    capturing = CapturingNotifier()
    notifications.set_notifier(capturing)
    yield capturing
    notifications.set_notifier(None)


class FakeChargeGateway:
    """In-memory charge gateway. Set `next_status` before calling accept."""

    def __init__(self, next_status: str = "succeeded", error: Optional[str] = None):
        self.next_status = next_status
        self.error = error
        self.raise_on_create: Optional[Exception] = None
        self.created: list[dict] = []
        self.intents: dict[str, ChargeResult] = {}

    async def create_and_confirm(self, amount_cents, currency, payment_method, metadata):
        if self.raise_on_create is not None:
            raise self.raise_on_create
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append({
            "amount_cents": amount_cents,
            "currency": currency,
            "payment_method": payment_method,
            "metadata": dict(metadata),
        })
        result = ChargeResult(
            status=self.next_status,
            id=intent_id,
            client_secret=f"{intent_id}_secret",
            error=self.error,
        )
        self.intents[intent_id] = result
        return result

    async def retrieve(self, charge_id):
        return self.intents[charge_id]

    def set_status(self, charge_id: str, status: str) -> None:
        current = self.intents[charge_id]
        self.intents[charge_id] = ChargeResult(
            status=status, id=charge_id, client_secret=current.client_secret,
        )


@pytest.fixture
def gateway():
    return FakeChargeGateway()


class Factory:
    """Builds committed rows for a marketplace scenario."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, *objs):
        self.db.add_all(objs)
        await self.db.commit()
        return objs[0]

    async def customer(self, first_name="Jane", last_name="Doe", email="jane@example.com", phone="+15125550100") -> User:
        return await self._save(User(
            first_name=first_name, last_name=last_name, email=email, phone=phone, role="customer",
        ))

    async def provider(self, name="Ace Plumbing", email=None, status="ACTIVE", with_business=True):
        """Provider user + profile (+ owned business). Returns (user, profile, business)."""
        user = User(name=name, email=email or f"{uuid.uuid4().hex[:8]}@provider.test", role="provider")
        self.db.add(user)
        await self.db.flush()
        profile = ProviderProfile(user_id=user.id, status=status)
        self.db.add(profile)
        business = None
        if with_business:
            business = Business(owner_id=user.id, name=name, city="Austin", state="TX", is_active=True)
            self.db.add(business)
        await self.db.commit()
        return user, profile, business

    async def service_request(self, customer: User, category_id=1, **kwargs) -> ServiceRequest:
        fields = dict(
            customer_id=customer.id,
            category_id=category_id,
            zip_code="78701",
            project_title="Fix leaking sink",
            project_description="Kitchen sink drips constantly",
            preferred_date="2026-11-01",
            preferred_time="morning",
            attachments=[],
        )
        fields.update(kwargs)
        return await self._save(ServiceRequest(**fields))

    async def lead(self, service_request: ServiceRequest, provider: User, status="submitted", **kwargs) -> Lead:
        fields = dict(
            service_request_id=service_request.id,
            customer_id=service_request.customer_id,
            provider_id=provider.id,
            category_id=service_request.category_id,
            status=status,
            extra_data=service_request.snapshot(),
        )
        fields.update(kwargs)
        return await self._save(Lead(**fields))

    async def alternatives(self, service_request: ServiceRequest, *profiles: ProviderProfile) -> None:
        for position, profile in enumerate(profiles, start=1):
            self.db.add(AlternativeProviderSelection(
                service_request_id=service_request.id, provider_id=profile.id, position=position,
            ))
        await self.db.commit()

    async def subscription(
        self,
        user: User,
        discount=0,
        max_leads=None,
        tier="PREMIUM",
        status="ACTIVE",
        current_period_end: Optional[datetime] = None,
    ) -> UserSubscription:
        plan = SubscriptionPlan(
            name=f"{tier.title()} plan", tier=tier,
            lead_discount_percent=Decimal(str(discount)), max_leads_per_month=max_leads,
        )
        self.db.add(plan)
        await self.db.flush()
        return await self._save(UserSubscription(
            user_id=user.id, plan_id=plan.id, status=status, current_period_end=current_period_end,
        ))

    async def proposal(self, service_request: ServiceRequest, profile: ProviderProfile, price="100.00", **kwargs) -> Proposal:
        fields = dict(
            service_request_id=service_request.id,
            provider_id=profile.id,
            details="Replace trap and seals",
            price=Decimal(price),
            payment_status="succeeded",
            paid_at=datetime.now(timezone.utc),
        )
        fields.update(kwargs)
        return await self._save(Proposal(**fields))


@pytest.fixture
def make(db):
    return Factory(db)
