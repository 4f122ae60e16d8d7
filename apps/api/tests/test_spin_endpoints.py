from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from offerwheel_api.api.dependencies.notifications import get_notification_dispatcher
from offerwheel_api.models import NotificationDelivery, NotificationStatusEnum, Spin


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_status_and_spin_flow(app_with_db, seed, whatsapp_backend) -> None:
    app, session_factory = app_with_db
    tenant = await seed.tenant("cafe-aroma")
    campaign = await seed.campaign(tenant)
    await seed.prize(campaign, "Free Latte", 100, voucher_validity_days=3)
    user = await seed.user(tenant, phone="9812345678")
    headers = {"X-Session-User": str(user.id)}

    async with _client(app) as client:
        status_before = await client.get(f"/api/v1/campaigns/{campaign.id}/status", headers=headers)
        spin = await client.post(
            f"/api/v1/campaigns/{campaign.id}/spins",
            headers={**headers, "Idempotency-Key": "tap-42"},
        )
        replay = await client.post(
            f"/api/v1/campaigns/{campaign.id}/spins",
            headers={**headers, "Idempotency-Key": "tap-42"},
        )
        blocked = await client.post(f"/api/v1/campaigns/{campaign.id}/spins", headers=headers)

    assert status_before.status_code == 200
    assert status_before.json()["canSpin"] is True
    assert status_before.json()["baseSpinsAvailable"] == 1

    assert spin.status_code == 201
    body = spin.json()
    assert body["wonPrize"] is True
    assert body["prize"]["name"] == "Free Latte"
    assert body["voucher"]["code"].startswith("CAFE-")
    assert body["status"]["canSpin"] is False
    assert body["status"]["nextSpinInHours"] == 24

    assert replay.status_code == 201
    assert replay.json()["replayed"] is True
    assert replay.json()["spinId"] == body["spinId"]

    assert blocked.status_code == 429
    assert "Come back in 24 hours" in blocked.json()["detail"]

    # Background dispatch runs before the client receives the response.
    assert len(whatsapp_backend.sent_messages) == 1
    assert body["voucher"]["code"] in whatsapp_backend.sent_messages[0][1]
    async with session_factory() as session:
        deliveries = (await session.execute(select(NotificationDelivery))).scalars().all()
    assert len(deliveries) == 1


@pytest.mark.asyncio
async def test_spin_requires_known_session_and_same_tenant(app_with_db, seed) -> None:
    app, _ = app_with_db
    tenant = await seed.tenant()
    other = await seed.tenant("juice-bar")
    foreign_campaign = await seed.campaign(other)
    user = await seed.user(tenant)

    async with _client(app) as client:
        missing_header = await client.get(f"/api/v1/campaigns/{foreign_campaign.id}/status")
        malformed = await client.get(
            f"/api/v1/campaigns/{foreign_campaign.id}/status", headers={"X-Session-User": "not-a-uuid"}
        )
        unknown = await client.get(
            f"/api/v1/campaigns/{foreign_campaign.id}/status", headers={"X-Session-User": str(uuid4())}
        )
        cross_tenant = await client.post(
            f"/api/v1/campaigns/{foreign_campaign.id}/spins", headers={"X-Session-User": str(user.id)}
        )

    assert missing_header.status_code == 401
    assert malformed.status_code == 400
    assert unknown.status_code == 404
    assert cross_tenant.status_code == 404


@pytest.mark.asyncio
async def test_referral_and_task_claim_endpoints(app_with_db, seed) -> None:
    app, _ = app_with_db
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant, referrals_required_for_spin=1)
    task = await seed.social_task(campaign)
    referrer = await seed.user(tenant)
    await seed.spin(referrer, campaign)
    friend = await seed.user(tenant)
    headers = {"X-Session-User": str(friend.id)}

    async with _client(app) as client:
        referral = await client.post(
            "/api/v1/referrals",
            headers=headers,
            json={"referralCode": referrer.referral_code, "campaignId": str(campaign.id)},
        )
        duplicate = await client.post("/api/v1/referrals", headers=headers, json={"referralCode": referrer.referral_code})
        claim = await client.post(f"/api/v1/social-tasks/{task.id}/claim", headers=headers)
        missing_task = await client.post(f"/api/v1/social-tasks/{uuid4()}/claim", headers=headers)

    assert referral.status_code == 201
    assert referral.json() == {
        "referrerId": str(referrer.id),
        "totalReferrals": 1,
        "milestoneReached": True,
        "bonusSpinsGranted": 1,
    }
    assert duplicate.status_code == 403
    assert claim.status_code == 202
    assert claim.json()["status"] == "pending"
    assert missing_task.status_code == 404


@pytest.mark.asyncio
async def test_forwarded_tenant_slug_must_match_the_session_user(app_with_db, seed) -> None:
    app, _ = app_with_db
    tenant = await seed.tenant("cafe-aroma")
    await seed.tenant("juice-bar")
    campaign = await seed.campaign(tenant)
    user = await seed.user(tenant)
    session = {"X-Session-User": str(user.id)}

    async with _client(app) as client:
        matching = await client.get(
            f"/api/v1/campaigns/{campaign.id}/status", headers={**session, "X-Tenant-Slug": " Cafe-Aroma "}
        )
        mismatched = await client.get(
            f"/api/v1/campaigns/{campaign.id}/status", headers={**session, "X-Tenant-Slug": "juice-bar"}
        )

    assert matching.status_code == 200
    assert mismatched.status_code == 404
    assert mismatched.json()["detail"] == "Session user not found"


@pytest.mark.asyncio
async def test_spin_succeeds_when_whatsapp_is_unreachable(
    app_with_db, seed, failing_dispatcher, unreachable_backend
) -> None:
    app, session_factory = app_with_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: failing_dispatcher
    tenant = await seed.tenant()
    campaign = await seed.campaign(tenant)
    await seed.prize(campaign, "Free Latte", 100)
    user = await seed.user(tenant)

    async with _client(app) as client:
        spin = await client.post(
            f"/api/v1/campaigns/{campaign.id}/spins", headers={"X-Session-User": str(user.id)}
        )

    assert spin.status_code == 201
    assert spin.json()["wonPrize"] is True
    assert unreachable_backend.calls == 3
    async with session_factory() as session:
        stored = await session.scalar(select(Spin))
        delivery = await session.scalar(select(NotificationDelivery))
    assert stored.won_prize is True
    assert delivery.status == NotificationStatusEnum.FAILED
    assert delivery.attempts == 3
