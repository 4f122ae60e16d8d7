"""Seed a demo tenant with a running campaign, prizes, a manager and a customer."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from offerwheel_api.core.settings import settings
from offerwheel_api.models import Campaign, EndUser, Manager, Prize, SocialTask, Tenant


class SeedPrize(TypedDict):
    name: str
    probability: float
    daily_limit: int | None
    voucher_validity_days: int
    show_try_again_message: bool


DEMO_SLUG = os.getenv("DEMO_TENANT_SLUG", "demo-cafe").lower()
DEMO_CUSTOMER_PHONE = os.getenv("DEMO_CUSTOMER_PHONE", "919800000000")

DEMO_PRIZES: list[SeedPrize] = [
    {"name": "Free Coffee", "probability": 10, "daily_limit": 5, "voucher_validity_days": 7, "show_try_again_message": False},
    {"name": "10% Off", "probability": 30, "daily_limit": None, "voucher_validity_days": 14, "show_try_again_message": False},
    {"name": "Sticker Pack", "probability": 20, "daily_limit": None, "voucher_validity_days": 0, "show_try_again_message": False},
    {"name": "Better Luck Next Time", "probability": 40, "daily_limit": None, "voucher_validity_days": 0, "show_try_again_message": True},
]


async def seed_demo(session: AsyncSession) -> Tenant:
    """Create the demo rows once; re-running leaves existing rows untouched."""

    tenant = (await session.execute(select(Tenant).where(Tenant.slug == DEMO_SLUG))).scalar_one_or_none()
    if tenant is not None:
        return tenant

    now = datetime.now(timezone.utc)
    tenant = Tenant(slug=DEMO_SLUG, name="Demo Cafe")
    session.add(tenant)
    await session.flush()

    campaign = Campaign(
        tenant_id=tenant.id,
        name="Grand Opening Wheel",
        spin_limit=1,
        spin_cooldown=24,
        referrals_required_for_spin=3,
        start_date=now - timedelta(minutes=5),
        end_date=now + timedelta(days=30),
    )
    session.add(campaign)
    await session.flush()

    for position, prize in enumerate(DEMO_PRIZES):
        session.add(Prize(campaign_id=campaign.id, position=position, **prize))
    session.add(
        SocialTask(
            tenant_id=tenant.id,
            campaign_id=campaign.id,
            title="Follow us on Instagram",
            platform="instagram",
            action_type="follow",
            target_url="https://instagram.com/demo-cafe",
            spins_reward=1,
        )
    )
    session.add(Manager(tenant_id=tenant.id, name="Demo Manager", username=f"{DEMO_SLUG}-manager"))
    session.add(EndUser(tenant_id=tenant.id, phone=DEMO_CUSTOMER_PHONE, name="Demo Customer"))
    await session.commit()
    return tenant


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            tenant = await seed_demo(session)
        print(f"Demo tenant '{tenant.slug}' ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
