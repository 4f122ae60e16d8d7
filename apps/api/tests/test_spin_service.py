import random
from datetime import datetime, timedelta, timezone
from itertools import repeat

import pytest
from sqlalchemy import func, select

from offerwheel_api.models import Spin, Voucher
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.errors import NotEligibleError
from offerwheel_api.services.notifications import PrizeWinMessage, VoucherMessage
from offerwheel_api.services.spins import SpinService
from offerwheel_api.services.vouchers import VoucherService


@pytest.mark.asyncio
async def test_spin_consumes_base_then_bonus_pool(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, spin_limit=1, spin_cooldown=24)
    await seed.prize(campaign, "Sticker", 100)
    user = await seed.user(tenant, bonus_spins_earned=1)

    async with session_factory() as session:
        service = SpinService(session, rng=random.Random(4))
        first = await service.spin(user.id, campaign.id)
        second = await service.spin(user.id, campaign.id)
        with pytest.raises(NotEligibleError) as excinfo:
            await service.spin(user.id, campaign.id)

    assert first.is_bonus_spin is False
    assert first.won_prize is True
    assert first.message == "Congratulations! You won Sticker!"
    assert first.status.base_spins_available == 0
    assert first.status.bonus_spins_available == 1

    assert second.is_bonus_spin is True
    assert second.status.total_available == 0
    assert second.status.reason == "cooldown"

    assert excinfo.value.code == "cooldown"
    assert excinfo.value.status_code == 429
    assert get_spin_store().snapshot().spins == {"total": 2, "pool:base": 1, "pool:bonus": 1, "won": 2}


@pytest.mark.asyncio
async def test_repeated_idempotency_key_replays_the_first_spin(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, spin_limit=3)
    await seed.prize(campaign, "Free Latte", 100, voucher_validity_days=5)
    user = await seed.user(tenant)

    async with session_factory() as session:
        service = SpinService(session, rng=random.Random(8))
        first = await service.spin(user.id, campaign.id, idempotency_key="tap-1")
        replay = await service.spin(user.id, campaign.id, idempotency_key="tap-1")

    assert replay.replayed is True
    assert replay.spin_id == first.spin_id
    assert replay.voucher.code == first.voucher.code
    assert replay.notification is None
    assert replay.status.base_spins_available == 2

    async with session_factory() as session:
        spins = await session.scalar(select(func.count(Spin.id)).where(Spin.user_id == user.id))
    assert spins == 1


@pytest.mark.asyncio
async def test_winning_voucher_prize_issues_voucher_and_notification(session_factory, seed) -> None:
    tenant = await seed.tenant("cafe-aroma")
    campaign = await seed.campaign(tenant)
    prize = await seed.prize(campaign, "Free Latte", 100, voucher_validity_days=10, generate_qr=True)
    user = await seed.user(tenant)

    async with session_factory() as session:
        outcome = await SpinService(session, rng=random.Random(1)).spin(user.id, campaign.id, tenant_id=tenant.id)

    assert outcome.won_prize is True
    assert outcome.prize_id == prize.id
    assert outcome.voucher.code.startswith("CAFE-")
    assert outcome.voucher.qr_image_url is not None
    assert isinstance(outcome.notification.message, VoucherMessage)
    assert outcome.notification.user_id == user.id
    assert outcome.notification.tenant_id == tenant.id

    async with session_factory() as session:
        voucher = await session.scalar(select(Voucher).where(Voucher.spin_id == outcome.spin_id))
    assert voucher.code == outcome.voucher.code


@pytest.mark.asyncio
async def test_prize_without_voucher_notifies_plain_win(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    await seed.prize(campaign, "Sticker", 100)
    user = await seed.user(tenant)

    async with session_factory() as session:
        outcome = await SpinService(session, rng=random.Random(1)).spin(user.id, campaign.id)

    assert outcome.voucher is None
    assert outcome.notification.message == PrizeWinMessage(prize_name="Sticker")


@pytest.mark.asyncio
async def test_try_again_outcome_sends_nothing(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    user = await seed.user(tenant)

    async with session_factory() as session:
        outcome = await SpinService(session, rng=random.Random(1)).spin(user.id, campaign.id)

    assert outcome.try_again is True
    assert outcome.prize_id is None
    assert outcome.message == "Sorry, try again in some time"
    assert outcome.notification is None


@pytest.mark.asyncio
async def test_explicit_clock_drives_cooldown(session_factory, seed) -> None:
    tenant = await seed.tenant()
    now = datetime.now(timezone.utc)
    campaign = await seed.campaign(tenant, start_date=now - timedelta(days=3))
    user = await seed.user(tenant)

    async with session_factory() as session:
        service = SpinService(session, rng=random.Random(1))
        await service.spin(user.id, campaign.id, now=now - timedelta(hours=30))
        later = await service.spin(user.id, campaign.id, now=now)

    assert later.status.can_spin is False
    assert later.status.next_spin_in_hours == 24


@pytest.mark.asyncio
async def test_win_stands_when_voucher_issuance_fails(session_factory, seed) -> None:
    tenant = await seed.tenant("cafe-aroma")
    campaign = await seed.campaign(tenant)
    prize = await seed.prize(campaign, "Free Latte", 100, voucher_validity_days=7)
    holder = await seed.user(tenant)
    held_spin = await seed.spin(holder, campaign, prize_id=prize.id)
    await seed.add(
        Voucher(
            code="CAFE-444444444444",
            tenant_id=tenant.id,
            spin_id=held_spin.id,
            prize_id=prize.id,
            user_id=holder.id,
            expires_at=datetime.now(timezone.utc) + timedelta(days=7),
            redemption_limit=1,
        )
    )
    user = await seed.user(tenant)
    codes = repeat("CAFE-444444444444")

    async with session_factory() as session:
        vouchers = VoucherService(session, code_generator=lambda slug: next(codes))
        outcome = await SpinService(session, rng=random.Random(1), vouchers=vouchers).spin(user.id, campaign.id)

    assert outcome.won_prize is True
    assert outcome.prize_id == prize.id
    assert outcome.voucher is None
    assert outcome.notification.message == PrizeWinMessage(prize_name="Free Latte")
    assert outcome.status.base_spins_available == 0
    assert get_spin_store().snapshot().vouchers == {"failed": 1}

    async with session_factory() as session:
        stored = await session.get(Spin, outcome.spin_id)
        issued = await session.scalar(select(Voucher).where(Voucher.spin_id == outcome.spin_id))
    assert stored.won_prize is True
    assert stored.prize_id == prize.id
    assert issued is None
