import pytest
from httpx import ASGITransport, AsyncClient

from offerwheel_api.observability.spins import SpinObservabilityStore, get_spin_store


def test_store_snapshot_and_reset() -> None:
    store = SpinObservabilityStore()
    store.record_spin(pool="base", won=True)
    store.record_spin(pool="bonus", won=False)
    store.record_reservation_loss()
    store.record_grant("referral", success=True)
    store.record_grant("direct_grant", success=False, error_code="limit_reached")
    store.record_voucher("issued")
    store.record_notification("voucher", delivered=False, attempts=3)

    snapshot = store.snapshot().as_dict()
    assert snapshot["spins"] == {"total": 2, "pool:base": 1, "pool:bonus": 1, "won": 1, "try_again": 1}
    assert snapshot["prizes"] == {"reservation_lost": 1}
    assert snapshot["grants"] == {
        "by_source": {"referral": 1},
        "outcomes": {"success": 1, "failed:limit_reached": 1},
    }
    assert snapshot["vouchers"] == {"issued": 1}
    assert snapshot["notifications"] == {
        "outcomes": {"failed": 1, "attempts": 3},
        "by_category": {"voucher": 1},
    }

    store.reset()
    assert store.snapshot().spins == {}


@pytest.mark.asyncio
async def test_observability_endpoints_require_manager(app_with_db, seed) -> None:
    app, _ = app_with_db
    tenant = await seed.tenant()
    manager = await seed.manager(tenant)
    get_spin_store().record_spin(pool="base", won=True)
    headers = {"X-Manager-Id": str(manager.id)}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        anonymous = await client.get("/api/v1/observability/spins")
        snapshot = await client.get("/api/v1/observability/spins", headers=headers)
        prometheus = await client.get("/api/v1/observability/prometheus", headers=headers)

    assert anonymous.status_code == 401
    assert snapshot.json()["spins"]["total"] == 1
    assert prometheus.status_code == 200
    assert "offerwheel_spins_total 1" in prometheus.text
    assert 'offerwheel_spins_by_pool_total{pool="base"} 1' in prometheus.text


@pytest.mark.asyncio
async def test_health_and_readiness(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        health = await client.get("/healthz")
        versioned = await client.get("/api/v1/healthz")
        ready = await client.get("/api/v1/readyz")

    assert health.json()["status"] == "ok"
    assert versioned.json() == {"status": "ok"}
    assert ready.status_code == 200
    assert ready.json()["status"] == "ready"
    assert ready.json()["components"]["database"]["status"] == "ready"


@pytest.mark.asyncio
async def test_configure_tracing_records_request_spans(app_with_db) -> None:
    from opentelemetry import trace
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

    from offerwheel_api.observability.tracing import configure_tracing

    app, _ = app_with_db
    exporter = InMemorySpanExporter()
    configure_tracing(
        app,
        service_name="offerwheel-api-test",
        service_version="0.0.0",
        environment="test",
        exporter=exporter,
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/healthz")
    assert response.status_code == 200

    trace.get_tracer_provider().force_flush()
    assert any("/healthz" in span.name for span in exporter.get_finished_spans())
