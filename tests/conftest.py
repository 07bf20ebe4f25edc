import asyncio
from collections.abc import AsyncGenerator
from datetime import date, datetime
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from slot_alerts.core.engine_config import EngineConfig
from slot_alerts.core.redis_client import get_redis_client
from slot_alerts.core.timeutils import utcnow
from slot_alerts.database import get_db
from slot_alerts.dependencies import get_email_sender, get_engine_config, get_push_sender
from slot_alerts.main import app
from slot_alerts.models import (
    metadata,
    notification_subscriptions,
    push_subscriptions,
    users,
)
from slot_alerts.schemas.notifications import (
    DeliveryTarget,
    EmailTemplateData,
    PushPayload,
    PushResult,
)
from slot_alerts.services.engine import NotificationEngine
from slot_alerts.services.store import NotificationStore


class FakeEmailSender:
    """Direct message sender recording every call."""

    def __init__(self, result: bool = True, delay: float = 0.0):
        self.result = result
        self.delay = delay
        self.sent: list[tuple[str, EmailTemplateData]] = []

    async def send(self, to: str, template_data: EmailTemplateData) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append((to, template_data))
        return self.result


class FakePushSender:
    """Push sender answering with a fixed result, or per target."""

    def __init__(self, result: PushResult | None = None):
        self.result = result or PushResult(delivered=True, status_code=201)
        self.by_target: dict[UUID, PushResult] = {}
        self.sent: list[tuple[DeliveryTarget, PushPayload]] = []

    async def send(self, target: DeliveryTarget, notification: PushPayload) -> PushResult:
        self.sent.append((target, notification))
        return self.by_target.get(target.id, self.result)


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine, so separate sessions use separate connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> NotificationStore:
    """Store over the test session."""
    return NotificationStore(db_session)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine configuration with a short send timeout."""
    return EngineConfig(send_timeout_seconds=0.5)


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def push_sender() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def notification_engine(
    db_session, email_sender, push_sender, engine_config
) -> NotificationEngine:
    """Engine wired with fake channel senders."""
    return NotificationEngine(db_session, email_sender, push_sender, engine_config)


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> dict[str, Any]:
    """Create a test user in the database."""
    user_id = uuid4()
    await db_session.execute(
        insert(users).values(id=user_id, email=f"user-{user_id.hex[:8]}@example.com")
    )
    await db_session.commit()
    return {"id": user_id, "email": f"user-{user_id.hex[:8]}@example.com"}


@pytest.fixture
def make_subscription(db_session: AsyncSession, test_user):
    """Factory inserting an availability subscription for the test user."""

    async def _make(
        method: str = "email",
        is_active: bool = True,
        subscription_date: date | None = date(2026, 11, 2),
        date_range_end: date | None = None,
    ) -> UUID:
        subscription_id = uuid4()
        now = utcnow()
        await db_session.execute(
            insert(notification_subscriptions).values(
                id=subscription_id,
                user_id=test_user["id"],
                subscription_date=subscription_date if date_range_end is None else None,
                date_range_start=None if date_range_end is None else subscription_date,
                date_range_end=date_range_end,
                notification_method=method,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
        )
        await db_session.commit()
        return subscription_id

    return _make


@pytest.fixture
def make_target(db_session: AsyncSession, test_user):
    """Factory inserting a push delivery target for the test user."""

    async def _make(
        fcm_token: str | None = "fcm-token",
        is_active: bool = True,
        consecutive_failures: int = 0,
        created_at: datetime | None = None,
    ) -> UUID:
        target_id = uuid4()
        await db_session.execute(
            insert(push_subscriptions).values(
                id=target_id,
                user_id=test_user["id"],
                fcm_token=fcm_token,
                device_type="android" if fcm_token else "web",
                is_active=is_active,
                consecutive_failures=consecutive_failures,
                created_at=created_at or utcnow(),
            )
        )
        await db_session.commit()
        return target_id

    return _make


@pytest.fixture
def mock_redis() -> MagicMock:
    """Redis client whose rate limit pipeline reports a first request."""
    client = MagicMock()
    client.pipeline.return_value.execute.return_value = [True, 1]
    return client


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    email_sender: FakeEmailSender,
    push_sender: FakePushSender,
    engine_config: EngineConfig,
    mock_redis: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_push_sender] = lambda: push_sender
    app.dependency_overrides[get_engine_config] = lambda: engine_config
    app.dependency_overrides[get_redis_client] = lambda: mock_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
