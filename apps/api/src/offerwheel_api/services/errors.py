"""Typed failures raised by the promotion engine."""

from __future__ import annotations

from fastapi import status


class PromotionError(Exception):
    """Base class carrying a stable machine code and the HTTP status it maps to."""

    code = "promotion_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(PromotionError):
    """Campaign, customer, manager, voucher or task is absent or owned by another tenant."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class NotEligibleError(PromotionError):
    code = "not_eligible"
    status_code = status.HTTP_403_FORBIDDEN

    # Reasons the customer can fix by waiting or inviting friends.
    _THROTTLED = frozenset({"cooldown", "no_spins_remaining"})

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message, code=reason)
        self.reason = reason
        if reason in self._THROTTLED:
            self.status_code = status.HTTP_429_TOO_MANY_REQUESTS


class LimitReachedError(PromotionError):
    code = "limit_reached"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class TransientInfraError(PromotionError):
    """Database or provider failure that may succeed on retry."""

    code = "transient_infra"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


__all__ = [
    "LimitReachedError",
    "NotEligibleError",
    "NotFoundError",
    "PromotionError",
    "TransientInfraError",
]
