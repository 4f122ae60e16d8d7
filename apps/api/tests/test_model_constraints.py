import pytest
from sqlalchemy.exc import IntegrityError

from offerwheel_api.models import BonusSpinGrant, BonusSpinSource


@pytest.mark.asyncio
async def test_prizes_refuse_negative_probability_and_stock(seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)

    with pytest.raises(IntegrityError):
        await seed.prize(campaign, "Broken Odds", -5)
    with pytest.raises(IntegrityError):
        await seed.prize(campaign, "Oversold Mug", 10, current_stock=-1)

    unlimited = await seed.prize(campaign, "Free Refill", 10, current_stock=None)
    assert unlimited.id is not None


@pytest.mark.asyncio
async def test_tasks_and_grants_refuse_negative_spins(seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    user = await seed.user(tenant)

    with pytest.raises(IntegrityError):
        await seed.social_task(campaign, spins_reward=-1)
    with pytest.raises(IntegrityError):
        await seed.add(
            BonusSpinGrant(
                tenant_id=tenant.id,
                user_id=user.id,
                amount=0,
                source=BonusSpinSource.MANUAL,
                reason="Empty grant",
                granted_by="front-desk",
            )
        )

    free_task = await seed.social_task(campaign, spins_reward=0)
    assert free_task.spins_reward == 0
