from uuid import uuid4

import pytest
from sqlalchemy import select

from offerwheel_api.models import BonusSpinGrant, BonusSpinSource, EndUser
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.bonus import BonusSpinService
from offerwheel_api.services.bonus.grant_service import NO_PRIOR_SPIN_MESSAGE


@pytest.mark.asyncio
async def test_grant_requires_a_prior_spin(session_factory, seed) -> None:
    tenant = await seed.tenant()
    user = await seed.user(tenant)

    async with session_factory() as session:
        result = await BonusSpinService(session).grant_bonus_spins(user.id, 2, "Welcome bonus", "ops")

    assert result.success is False
    assert result.error == NO_PRIOR_SPIN_MESSAGE
    assert result.error_code == "no_prior_spin"

    async with session_factory() as session:
        stored = await session.get(EndUser, user.id)
        grants = (await session.execute(select(BonusSpinGrant))).scalars().all()
    assert stored.bonus_spins_earned == 0
    assert grants == []
    assert get_spin_store().snapshot().grants["outcomes"] == {"failed:no_prior_spin": 1}


@pytest.mark.asyncio
async def test_grant_increments_balance_and_writes_ledger(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    user = await seed.user(tenant, bonus_spins_earned=1)
    await seed.spin(user, campaign)

    async with session_factory() as session:
        service = BonusSpinService(session)
        first = await service.grant_bonus_spins(user.id, 2, "Instagram follow", "manager-1")
        second = await service.grant_bonus_spins(
            user.id, 1, "Referral milestone", "referral", source=BonusSpinSource.REFERRAL
        )

    assert first.success is True
    assert first.new_spin_count == 3
    assert second.new_spin_count == 4

    async with session_factory() as session:
        stored = await session.get(EndUser, user.id)
        grants = (
            await session.execute(select(BonusSpinGrant).order_by(BonusSpinGrant.amount.desc()))
        ).scalars().all()
    assert stored.bonus_spins_earned == 4
    assert [(grant.amount, grant.source) for grant in grants] == [
        (2, BonusSpinSource.MANUAL),
        (1, BonusSpinSource.REFERRAL),
    ]
    assert grants[0].tenant_id == tenant.id
    assert get_spin_store().snapshot().grants["by_source"] == {"manual": 1, "referral": 1}


@pytest.mark.asyncio
async def test_grant_rejects_non_positive_amounts_and_unknown_customers(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    user = await seed.user(tenant)
    await seed.spin(user, campaign)

    async with session_factory() as session:
        service = BonusSpinService(session)
        zero = await service.grant_bonus_spins(user.id, 0, "Oops", "ops")
        missing = await service.grant_bonus_spins(uuid4(), 1, "Ghost", "ops")

    assert zero.success is False
    assert zero.error_code == "invalid_amount"
    assert missing.success is False
    assert missing.error_code == "customer_not_found"
