import pytest
from sqlalchemy import select

from offerwheel_api.api.errors import result_http_error
from offerwheel_api.models import DirectSpinGrant, EndUser, ManagerAuditAction, ManagerAuditLog
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.bonus import DirectGrantService
from offerwheel_api.services.errors import LimitReachedError


@pytest.mark.asyncio
async def test_direct_grant_counts_down_to_the_per_customer_cap(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    manager = await seed.manager(tenant, max_spins_per_user=3)
    user = await seed.user(tenant)
    await seed.spin(user, campaign)

    results = []
    async with session_factory() as session:
        service = DirectGrantService(session)
        for _ in range(4):
            results.append(await service.grant_direct_spin(manager.id, user.id, "Birthday visit"))

    assert [result.success for result in results] == [True, True, True, False]
    assert [result.remaining_limit for result in results] == [2, 1, 0, 0]
    assert [result.total_granted_to_user for result in results] == [1, 2, 3, 3]

    refused = results[-1]
    assert refused.error_code == LimitReachedError.code
    assert result_http_error(refused.error_code, refused.error).status_code == LimitReachedError.status_code == 429
    assert get_spin_store().snapshot().grants["outcomes"]["failed:limit_reached"] == 1
    assert refused.spins_granted == 0
    assert "already granted 3 spins" in refused.error
    assert "(max: 3)" in refused.error

    async with session_factory() as session:
        stored = await session.get(EndUser, user.id)
        grants = (await session.execute(select(DirectSpinGrant))).scalars().all()
        audits = (await session.execute(select(ManagerAuditLog))).scalars().all()
    assert stored.bonus_spins_earned == 3
    assert len(grants) == 3
    assert {audit.action for audit in audits} == {ManagerAuditAction.DIRECT_SPIN_GRANT}
    assert len(audits) == 3


@pytest.mark.asyncio
async def test_direct_grant_caps_are_per_manager(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    first = await seed.manager(tenant, name="Morning", max_spins_per_user=1)
    second = await seed.manager(tenant, name="Evening", max_spins_per_user=1)
    user = await seed.user(tenant)
    await seed.spin(user, campaign)

    async with session_factory() as session:
        service = DirectGrantService(session)
        assert (await service.grant_direct_spin(first.id, user.id)).success is True
        assert (await service.grant_direct_spin(first.id, user.id)).success is False
        assert (await service.grant_direct_spin(second.id, user.id)).success is True


@pytest.mark.asyncio
async def test_direct_grant_requires_prior_spin_and_same_tenant(session_factory, seed) -> None:
    tenant = await seed.tenant()
    other = await seed.tenant("juice-bar")
    manager = await seed.manager(tenant)
    newcomer = await seed.user(tenant)
    outsider = await seed.user(other)

    async with session_factory() as session:
        service = DirectGrantService(session)
        no_spin = await service.grant_direct_spin(manager.id, newcomer.id)
        foreign = await service.grant_direct_spin(manager.id, outsider.id)

    assert no_spin.success is False
    assert no_spin.error_code == "no_prior_spin"
    assert no_spin.remaining_limit == 5
    assert foreign.success is False
    assert foreign.error_code == "tenant_mismatch"

    async with session_factory() as session:
        grants = (await session.execute(select(DirectSpinGrant))).scalars().all()
    assert grants == []


@pytest.mark.asyncio
async def test_inactive_manager_cannot_grant(session_factory, seed) -> None:
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    manager = await seed.manager(tenant, is_active=False)
    user = await seed.user(tenant)
    await seed.spin(user, campaign)

    async with session_factory() as session:
        result = await DirectGrantService(session).grant_direct_spin(manager.id, user.id)

    assert result.success is False
    assert result.error_code == "manager_inactive"


@pytest.mark.asyncio
async def test_search_matches_phone_variants_and_name(session_factory, seed) -> None:
    tenant = await seed.tenant()
    other = await seed.tenant("juice-bar")
    campaign = await seed.campaign(tenant)
    manager = await seed.manager(tenant, max_spins_per_user=2)
    priya = await seed.user(tenant, phone="919812345678", name="Priya Sharma")
    await seed.user(tenant, phone="919900011122", name="Arjun Rao")
    await seed.user(other, phone="919812345678", name="Priya Elsewhere")
    await seed.spin(priya, campaign)

    async with session_factory() as session:
        service = DirectGrantService(session)
        await service.grant_direct_spin(manager.id, priya.id)
        by_formatted_phone = await service.search_customers(manager.id, "98123 45678")
        by_full_number = await service.search_customers(manager.id, "+91 98123-45678")
        by_name = await service.search_customers(manager.id, "priya")
        blank = await service.search_customers(manager.id, "   ")

    assert [result.id for result in by_formatted_phone] == [priya.id]
    assert [result.id for result in by_full_number] == [priya.id]
    assert [result.id for result in by_name] == [priya.id]
    assert by_name[0].total_spins_granted == 1
    assert by_name[0].remaining_limit == 1
    assert blank == []
