"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""
import os

# Settings and the plan table are built at import time, so the Stripe price
# ids and database URL must be in place before any waveorder import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
for _plan in ("STARTER", "PRO", "BUSINESS"):
    os.environ.setdefault(f"STRIPE_{_plan}_PRICE_ID", f"price_{_plan.lower()}_monthly")
    os.environ.setdefault(f"STRIPE_{_plan}_ANNUAL_PRICE_ID", f"price_{_plan.lower()}_yearly")
    os.environ.setdefault(f"STRIPE_{_plan}_FREE_PRICE_ID", f"price_{_plan.lower()}_free")

import pytest
from datetime import datetime, timedelta
from typing import AsyncGenerator, Dict, List, Optional, Set
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from waveorder.main import app
from waveorder.api.dependencies import get_stripe_client
from waveorder.core.exceptions import CustomerMissingError, ProcessorError
from waveorder.core.result import Result
from waveorder.core.security import create_access_token
from waveorder.db.base import Base
from waveorder.db.models import Business, BusinessUser, Subscription, User
from waveorder.db.session import get_db
from waveorder.services.stripe_client import ChargeSummary, ExternalSubscription


class FakeStripeClient:
    """In-memory stand-in for StripeClient"""

    def __init__(self):
        self.subscriptions: Dict[str, List[ExternalSubscription]] = {}
        self.missing_customers: Set[str] = set()
        self.failing_customers: Set[str] = set()
        self.failing_cancels: Set[str] = set()
        self.canceled: List[str] = []
        self.payment_methods: Dict[str, bool] = {}
        self.charges: Dict[str, ChargeSummary] = {}
        self.list_all_error: Optional[Exception] = None

    def add_subscription(
        self,
        customer_id: str,
        subscription_id: str,
        price_id: str,
        status: str = "active",
        created: Optional[datetime] = None,
        unit_amount: int = 3900,
        interval: str = "month",
        canceled_at: Optional[datetime] = None,
    ) -> ExternalSubscription:
        sub = ExternalSubscription(
            id=subscription_id,
            status=status,
            price_id=price_id,
            created=created or datetime.utcnow() - timedelta(days=10),
            current_period_end=datetime.utcnow() + timedelta(days=20),
            subscription_item_id=f"si_{subscription_id}",
            unit_amount=unit_amount,
            interval=interval,
            canceled_at=canceled_at,
        )
        self.subscriptions.setdefault(customer_id, []).append(sub)
        return sub

    async def list_subscriptions(self, customer_id: str, limit: Optional[int] = None) -> List[ExternalSubscription]:
        if customer_id in self.missing_customers:
            raise CustomerMissingError(f"No such customer: '{customer_id}'")
        if customer_id in self.failing_customers:
            raise ProcessorError("Stripe is unavailable")
        # Stripe leaves canceled subscriptions out unless asked for them
        return [s for s in self.subscriptions.get(customer_id, []) if s.status != "canceled"]

    async def list_all_subscriptions(self, status: str = "all") -> List[ExternalSubscription]:
        if self.list_all_error is not None:
            raise self.list_all_error
        return [s for subs in self.subscriptions.values() for s in subs]

    async def cancel_subscription(self, subscription_id: str) -> None:
        if subscription_id in self.failing_cancels:
            raise ProcessorError(f"Cannot cancel {subscription_id}")
        for subs in self.subscriptions.values():
            for sub in subs:
                if sub.id == subscription_id:
                    sub.status = "canceled"
                    sub.canceled_at = datetime.utcnow()
        self.canceled.append(subscription_id)

    async def has_payment_method(self, customer_id: str) -> Result[bool]:
        return Result.ok(self.payment_methods.get(customer_id, False))

    async def last_charge(self, customer_id: str) -> Result[Optional[ChargeSummary]]:
        return Result.ok(self.charges.get(customer_id))


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database for each test"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def stripe_fake() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
async def client(db_session: AsyncSession, stripe_fake: FakeStripeClient) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with database and Stripe overridden"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: stripe_fake

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(role: str = "SUPER_ADMIN", business_ids: Optional[List[str]] = None, email: str = "admin@waveorder.test") -> Dict[str, str]:
    token = create_access_token({
        "sub": "user-1",
        "email": email,
        "role": role,
        "business_ids": business_ids or [],
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def superadmin_headers() -> Dict[str, str]:
    return auth_headers()


@pytest.fixture
def headers_for():
    """Build bearer headers for an arbitrary role/business membership"""
    return auth_headers


@pytest.fixture
def make_business(db_session: AsyncSession):
    """Factory: business with an owner user and optional local subscription"""
    counter = {"n": 0}

    async def _make(
        plan: str = "STARTER",
        status: str = "ACTIVE",
        customer_id: Optional[str] = None,
        local_stripe_id: Optional[str] = None,
        local_price_id: Optional[str] = None,
        local_status: str = "active",
        **business_fields,
    ) -> Business:
        counter["n"] += 1
        n = counter["n"]

        subscription = None
        if local_stripe_id:
            subscription = Subscription(
                stripe_id=local_stripe_id,
                status=local_status,
                price_id=local_price_id or "price_pro_monthly",
                plan=plan,
            )
            db_session.add(subscription)
            await db_session.flush()

        owner = User(
            email=f"owner{n}@example.com",
            name=f"Owner {n}",
            stripe_customer_id=customer_id,
            subscription_id=subscription.id if subscription else None,
            plan=plan,
        )
        business = Business(
            name=business_fields.pop("name", f"Business {n}"),
            subscription_plan=plan,
            subscription_status=status,
            **business_fields,
        )
        db_session.add_all([owner, business])
        await db_session.flush()
        db_session.add(BusinessUser(business_id=business.id, user_id=owner.id, role="OWNER"))
        await db_session.commit()
        return business

    return _make
