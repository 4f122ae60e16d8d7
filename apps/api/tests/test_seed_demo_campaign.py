import importlib.util
from pathlib import Path

import pytest
from sqlalchemy import func, select

from offerwheel_api.models import Campaign, EndUser, Prize
from offerwheel_api.services.spins import EligibilityEvaluator

SCRIPT = Path(__file__).resolve().parents[1] / "tooling" / "seed_demo_campaign.py"


def _load_seed_module():
    spec = importlib.util.spec_from_file_location("seed_demo_campaign", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.asyncio
async def test_seed_demo_is_idempotent_and_spinnable(session_factory) -> None:
    seed_module = _load_seed_module()

    async with session_factory() as session:
        tenant = await seed_module.seed_demo(session)
        again = await seed_module.seed_demo(session)
        prize_total = await session.scalar(select(func.sum(Prize.probability)))
        campaign = await session.scalar(select(Campaign).where(Campaign.tenant_id == tenant.id))
        customer = await session.scalar(
            select(EndUser).where(EndUser.phone == seed_module.DEMO_CUSTOMER_PHONE)
        )
        status = await EligibilityEvaluator(session).get_status(customer.id, campaign.id)

    assert again.id == tenant.id
    assert prize_total == 100
    assert status.can_spin is True
