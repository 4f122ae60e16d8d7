"""Observability endpoints for spin engine telemetry."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from offerwheel_api.api.dependencies.session import require_manager_session
from offerwheel_api.observability.spins import get_spin_store


router = APIRouter(prefix="/observability", tags=["Observability"])


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/spins",
    dependencies=[Depends(require_manager_session)],
    summary="Spin engine observability snapshot",
)
async def get_spin_snapshot() -> dict[str, object]:
    return get_spin_store().snapshot().as_dict()


@router.get(
    "/prometheus",
    dependencies=[Depends(require_manager_session)],
    summary="Prometheus-formatted spin engine metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_spin_store().snapshot()
    lines: list[str] = []

    lines.extend(_format_metric("offerwheel_spins_total", "Spins consumed", snapshot.spins.get("total", 0)))
    lines.extend(_format_metric("offerwheel_spins_won_total", "Spins that awarded a prize", snapshot.spins.get("won", 0)))
    lines.extend(
        _format_metric(
            "offerwheel_spins_try_again_total",
            "Spins that landed on a try-again outcome",
            snapshot.spins.get("try_again", 0),
        )
    )
    for key, value in snapshot.spins.items():
        if key.startswith("pool:"):
            lines.extend(
                _format_metric(
                    "offerwheel_spins_by_pool_total",
                    "Spins grouped by the pool they consumed",
                    value,
                    labels={"pool": key.split(":", 1)[1]},
                )
            )

    lines.extend(
        _format_metric(
            "offerwheel_prize_reservation_lost_total",
            "Prize draws rerolled after losing a stock or daily limit race",
            snapshot.prizes.get("reservation_lost", 0),
        )
    )

    for source, value in snapshot.grants.get("by_source", {}).items():
        lines.extend(
            _format_metric(
                "offerwheel_bonus_grants_total",
                "Bonus spin grants grouped by source",
                value,
                labels={"source": source},
            )
        )
    for outcome, value in snapshot.grants.get("outcomes", {}).items():
        lines.extend(
            _format_metric(
                "offerwheel_bonus_grant_outcomes_total",
                "Bonus spin grant attempts grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )

    for outcome, value in snapshot.vouchers.items():
        lines.extend(
            _format_metric(
                "offerwheel_vouchers_total",
                "Voucher issuance grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )

    outcomes = snapshot.notifications.get("outcomes", {})
    lines.extend(
        _format_metric(
            "offerwheel_notifications_delivered_total",
            "WhatsApp notifications delivered",
            outcomes.get("delivered", 0),
        )
    )
    lines.extend(
        _format_metric(
            "offerwheel_notifications_failed_total",
            "WhatsApp notifications that exhausted every attempt",
            outcomes.get("failed", 0),
        )
    )
    lines.extend(
        _format_metric(
            "offerwheel_notification_attempts_total",
            "WhatsApp send attempts including retries",
            outcomes.get("attempts", 0),
        )
    )
    for category, value in snapshot.notifications.get("by_category", {}).items():
        lines.extend(
            _format_metric(
                "offerwheel_notifications_by_category_total",
                "WhatsApp notifications grouped by category",
                value,
                labels={"category": category},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
