from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from offerwheel_api.api.dependencies.notifications import get_notification_dispatcher
from offerwheel_api.app import create_app
from offerwheel_api.db.base import Base
from offerwheel_api.db.session import get_session
from offerwheel_api.models import (
    Campaign,
    EndUser,
    Manager,
    Prize,
    SocialTask,
    Spin,
    Tenant,
)
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.notifications import InMemoryWhatsAppBackend, NotificationDispatcher


async def no_sleep(_: float) -> None:
    return None


class UnreachableWhatsAppBackend:
    """Transport that never delivers."""

    def __init__(self) -> None:
        self.calls = 0

    async def send_raw(self, phone, message, config):
        self.calls += 1
        return None


class Seeder:
    """Insert fixture rows through committed sessions and hand back detached instances."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory
        self._phone_seq = 0

    async def add(self, instance: Any) -> Any:
        async with self._session_factory() as session:
            session.add(instance)
            await session.commit()
        return instance

    async def tenant(self, slug: str = "cafe-aroma", **overrides: Any) -> Tenant:
        return await self.add(Tenant(slug=slug, name=overrides.pop("name", slug.title()), **overrides))

    async def campaign(self, tenant: Tenant, **overrides: Any) -> Campaign:
        now = datetime.now(timezone.utc)
        values = {
            "name": "Festive Wheel",
            "spin_limit": 1,
            "spin_cooldown": 24,
            "referrals_required_for_spin": 0,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
            "is_active": True,
        }
        values.update(overrides)
        return await self.add(Campaign(tenant_id=tenant.id, **values))

    async def prize(self, campaign: Campaign, name: str, probability: float, **overrides: Any) -> Prize:
        values = {"position": 0, "voucher_validity_days": 0, "voucher_redemption_limit": 1}
        values.update(overrides)
        return await self.add(Prize(campaign_id=campaign.id, name=name, probability=probability, **values))

    async def user(self, tenant: Tenant, phone: str | None = None, **overrides: Any) -> EndUser:
        if phone is None:
            self._phone_seq += 1
            phone = f"98765{self._phone_seq:05d}"
        return await self.add(EndUser(tenant_id=tenant.id, phone=phone, **overrides))

    async def manager(self, tenant: Tenant, **overrides: Any) -> Manager:
        values = {"name": "Front Desk", "max_spins_per_user": 5, "max_bonus_spins_per_approval": 10}
        values.update(overrides)
        return await self.add(Manager(tenant_id=tenant.id, **values))

    async def spin(
        self,
        user: EndUser,
        campaign: Campaign,
        *,
        created_at: datetime | None = None,
        bonus: bool = False,
        prize_id: UUID | None = None,
    ) -> Spin:
        return await self.add(
            Spin(
                tenant_id=campaign.tenant_id,
                user_id=user.id,
                campaign_id=campaign.id,
                prize_id=prize_id,
                won_prize=prize_id is not None,
                is_referral_bonus=bonus,
                created_at=created_at or datetime.now(timezone.utc),
            )
        )

    async def social_task(self, campaign: Campaign, **overrides: Any) -> SocialTask:
        values = {
            "title": "Follow us",
            "platform": "instagram",
            "action_type": "follow",
            "target_url": "https://instagram.com/cafe-aroma",
            "spins_reward": 2,
        }
        values.update(overrides)
        return await self.add(SocialTask(tenant_id=campaign.tenant_id, campaign_id=campaign.id, **values))


@pytest.fixture(autouse=True)
def reset_spin_store():
    get_spin_store().reset()
    yield
    get_spin_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections to one database file, for concurrent writers."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'offerwheel.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def file_seed(file_session_factory) -> Seeder:
    return Seeder(file_session_factory)


@pytest.fixture
def whatsapp_backend() -> InMemoryWhatsAppBackend:
    return InMemoryWhatsAppBackend()


@pytest.fixture
def dispatcher(session_factory, whatsapp_backend) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, whatsapp_backend, sleep=no_sleep)


@pytest.fixture
def unreachable_backend() -> UnreachableWhatsAppBackend:
    return UnreachableWhatsAppBackend()


@pytest.fixture
def failing_dispatcher(session_factory, unreachable_backend) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, unreachable_backend, sleep=no_sleep)


@pytest_asyncio.fixture
async def app_with_db(session_factory, dispatcher):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
