from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class SpinEngineSnapshot:
    spins: Dict[str, int]
    prizes: Dict[str, int]
    grants: Dict[str, Dict[str, int]]
    vouchers: Dict[str, int]
    notifications: Dict[str, Dict[str, int]]

    def as_dict(self) -> Dict[str, object]:
        return {
            "spins": dict(self.spins),
            "prizes": dict(self.prizes),
            "grants": {key: dict(value) for key, value in self.grants.items()},
            "vouchers": dict(self.vouchers),
            "notifications": {key: dict(value) for key, value in self.notifications.items()},
        }


class SpinObservabilityStore:
    """Collect spin engine telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._spins: Dict[str, int] = defaultdict(int)
        self._prizes: Dict[str, int] = defaultdict(int)
        self._grants_by_source: Dict[str, int] = defaultdict(int)
        self._grant_outcomes: Dict[str, int] = defaultdict(int)
        self._vouchers: Dict[str, int] = defaultdict(int)
        self._notification_outcomes: Dict[str, int] = defaultdict(int)
        self._notification_categories: Dict[str, int] = defaultdict(int)

    def record_spin(self, *, pool: str, won: bool) -> None:
        with self._lock:
            self._spins["total"] += 1
            self._spins[f"pool:{pool}"] += 1
            self._spins["won" if won else "try_again"] += 1

    def record_reservation_loss(self) -> None:
        with self._lock:
            self._prizes["reservation_lost"] += 1

    def record_grant(self, source: str, *, success: bool, error_code: str | None = None) -> None:
        with self._lock:
            if success:
                self._grants_by_source[source] += 1
                self._grant_outcomes["success"] += 1
            else:
                self._grant_outcomes[f"failed:{error_code or 'unknown'}"] += 1

    def record_voucher(self, outcome: str) -> None:
        with self._lock:
            self._vouchers[outcome] += 1

    def record_notification(self, category: str, *, delivered: bool, attempts: int) -> None:
        with self._lock:
            self._notification_categories[category] += 1
            self._notification_outcomes["delivered" if delivered else "failed"] += 1
            self._notification_outcomes["attempts"] += attempts

    def snapshot(self) -> SpinEngineSnapshot:
        with self._lock:
            return SpinEngineSnapshot(
                spins=dict(self._spins),
                prizes=dict(self._prizes),
                grants={
                    "by_source": dict(self._grants_by_source),
                    "outcomes": dict(self._grant_outcomes),
                },
                vouchers=dict(self._vouchers),
                notifications={
                    "outcomes": dict(self._notification_outcomes),
                    "by_category": dict(self._notification_categories),
                },
            )

    def reset(self) -> None:
        with self._lock:
            for bucket in (
                self._spins,
                self._prizes,
                self._grants_by_source,
                self._grant_outcomes,
                self._vouchers,
                self._notification_outcomes,
                self._notification_categories,
            ):
                bucket.clear()


_STORE = SpinObservabilityStore()


def get_spin_store() -> SpinObservabilityStore:
    return _STORE


__all__ = ["get_spin_store", "SpinObservabilityStore", "SpinEngineSnapshot"]
