from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from offerwheel_api.services.errors import NotFoundError
from offerwheel_api.services.spins import EligibilityEvaluator


@pytest.mark.asyncio
async def test_cooldown_blocks_until_window_elapses(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, spin_limit=1, spin_cooldown=24)
    user = await seed.user(tenant)
    now = datetime.now(timezone.utc)
    await seed.spin(user, campaign, created_at=now - timedelta(hours=1))

    async with session_factory() as session:
        status = await EligibilityEvaluator(session).get_status(user.id, campaign.id, now=now)

    assert status.can_spin is False
    assert status.base_spins_available == 0
    assert status.bonus_spins_available == 0
    assert status.next_spin_in_hours == 23
    assert status.reason == "cooldown"
    assert "23 hours" in status.user_message()

    async with session_factory() as session:
        later = await EligibilityEvaluator(session).get_status(
            user.id, campaign.id, now=now + timedelta(hours=24, minutes=1)
        )

    assert later.can_spin is True
    assert later.base_spins_available == 1
    assert later.next_spin_in_hours == 0


@pytest.mark.asyncio
async def test_spin_older_than_cooldown_restores_allowance(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, spin_limit=1, spin_cooldown=24)
    user = await seed.user(tenant)
    now = datetime.now(timezone.utc)
    await seed.spin(user, campaign, created_at=now - timedelta(hours=25))

    async with session_factory() as session:
        status = await EligibilityEvaluator(session).get_status(user.id, campaign.id, now=now)

    assert status.can_spin is True
    assert status.base_spins_available == 1
    assert status.total_available == 1
    assert status.reason is None


@pytest.mark.asyncio
async def test_rolling_window_reports_oldest_slot_to_free(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, spin_limit=2, spin_cooldown=10)
    user = await seed.user(tenant)
    now = datetime.now(timezone.utc)
    await seed.spin(user, campaign, created_at=now - timedelta(hours=7, minutes=30))
    await seed.spin(user, campaign, created_at=now - timedelta(hours=1))

    async with session_factory() as session:
        status = await EligibilityEvaluator(session).get_status(user.id, campaign.id, now=now)

    assert status.base_spins_available == 0
    # Oldest spin frees its slot in 2h30m, rounded up.
    assert status.next_spin_in_hours == 3


@pytest.mark.asyncio
async def test_zero_cooldown_is_a_lifetime_limit(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, spin_limit=2, spin_cooldown=0)
    user = await seed.user(tenant)
    now = datetime.now(timezone.utc)
    await seed.spin(user, campaign, created_at=now - timedelta(days=20))
    await seed.spin(user, campaign, created_at=now - timedelta(days=10))

    async with session_factory() as session:
        status = await EligibilityEvaluator(session).get_status(user.id, campaign.id, now=now)

    assert status.can_spin is False
    assert status.next_spin_in_hours == 0
    assert status.reason == "no_spins_remaining"


@pytest.mark.asyncio
async def test_bonus_spins_remain_available_during_cooldown(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    user = await seed.user(tenant, bonus_spins_earned=3)
    now = datetime.now(timezone.utc)
    await seed.spin(user, campaign, created_at=now - timedelta(hours=2))
    await seed.spin(user, campaign, created_at=now - timedelta(hours=1), bonus=True)

    async with session_factory() as session:
        status = await EligibilityEvaluator(session).get_status(user.id, campaign.id, now=now)

    assert status.can_spin is True
    assert status.base_spins_available == 0
    assert status.bonus_spins_available == 2
    assert status.total_available == 2
    assert status.uses_bonus_pool is True


@pytest.mark.asyncio
async def test_referral_progress_wraps_at_requirement(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, referrals_required_for_spin=3)
    referrer = await seed.user(tenant)
    for _ in range(4):
        await seed.user(tenant, referred_by_id=referrer.id)

    async with session_factory() as session:
        status = await EligibilityEvaluator(session).get_status(referrer.id, campaign.id)

    assert status.total_referrals == 4
    assert status.referrals_required == 3
    assert status.referrals_progress == 1


@pytest.mark.asyncio
async def test_inactive_or_expired_campaign_cannot_spin(session_factory, seed) -> None:
    tenant = await seed.tenant()
    now = datetime.now(timezone.utc)
    ended = await seed.campaign(tenant, start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
    paused = await seed.campaign(tenant, is_active=False)
    user = await seed.user(tenant)

    async with session_factory() as session:
        evaluator = EligibilityEvaluator(session)
        ended_status = await evaluator.get_status(user.id, ended.id, now=now)
        paused_status = await evaluator.get_status(user.id, paused.id, now=now)

    for status in (ended_status, paused_status):
        assert status.can_spin is False
        assert status.reason == "campaign_inactive"
        assert status.base_spins_available == 1


@pytest.mark.asyncio
async def test_cross_tenant_lookup_is_not_found(session_factory, seed) -> None:
    tenant = await seed.tenant()
    other = await seed.tenant("juice-bar")
    campaign = await seed.campaign(other)
    user = await seed.user(tenant)

    async with session_factory() as session:
        evaluator = EligibilityEvaluator(session)
        with pytest.raises(NotFoundError):
            await evaluator.get_status(user.id, campaign.id)
        with pytest.raises(NotFoundError):
            await evaluator.get_status(uuid4(), campaign.id)
