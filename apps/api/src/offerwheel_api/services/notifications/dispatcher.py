"""Best-effort WhatsApp delivery with bounded retry and an audit trail."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.settings import settings
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.notification import NotificationDelivery, NotificationStatusEnum
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.notifications.backend import HttpWhatsAppBackend, WhatsAppBackend, mask_phone
from offerwheel_api.services.notifications.config import WhatsAppConfig, resolve_whatsapp_config
from offerwheel_api.services.notifications.templates import (
    ApprovalMessage,
    OtpMessage,
    OutboundMessage,
    PrizeWinMessage,
    RejectionMessage,
    VoucherMessage,
    message_category,
    render_message,
)

SessionFactory = Callable[[], AsyncSession]
Sleeper = Callable[[float], Awaitable[Any]]


@dataclass
class NotificationResult:
    success: bool
    attempts: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class NotificationRequest:
    """A message queued by a service for delivery after its transaction commits."""

    user_id: UUID
    tenant_id: UUID
    message: OutboundMessage


class NotificationDispatcher:
    """Deliver outcome messages to customers; never raises.

    Each send is attempted up to ``max_attempts`` times, waiting
    ``base_delay * 2 ** (attempt - 1)`` seconds between attempts. Failures are
    logged and recorded but are never reported as the caller's failure.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        backend: WhatsAppBackend | None = None,
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._backend = backend or HttpWhatsAppBackend()
        self._max_attempts = max(max_attempts or settings.notification_max_attempts, 1)
        self._base_delay = settings.notification_backoff_seconds if base_delay is None else base_delay
        self._sleep = sleep

    async def dispatch(self, request: NotificationRequest) -> NotificationResult:
        return await self.notify_customer(request.user_id, request.message, request.tenant_id)

    async def notify_customer(self, user_id: UUID, message: OutboundMessage, tenant_id: UUID) -> NotificationResult:
        try:
            async with self._session_factory() as session:
                phone = await session.scalar(
                    select(EndUser.phone).where(EndUser.id == user_id, EndUser.tenant_id == tenant_id)
                )
        except SQLAlchemyError as exc:
            logger.error("Notification lookup failed", user_id=str(user_id), tenant_id=str(tenant_id), error=str(exc))
            return NotificationResult(success=False, error="Customer lookup failed")

        if not phone:
            logger.error(
                "Notification skipped: customer not found",
                user_id=str(user_id),
                tenant_id=str(tenant_id),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            return NotificationResult(success=False, error="Customer not found")

        return await self.notify_phone(phone, message, tenant_id, user_id=user_id)

    async def notify_phone(
        self,
        phone: str,
        message: OutboundMessage,
        tenant_id: UUID | None = None,
        *,
        user_id: UUID | None = None,
    ) -> NotificationResult:
        text = render_message(message)
        category = message_category(message)
        masked = mask_phone(phone)
        context = {
            "user_id": str(user_id) if user_id else None,
            "tenant_id": str(tenant_id) if tenant_id else None,
            "phone": masked,
            "category": category.value,
        }

        try:
            async with self._session_factory() as session:
                config = await resolve_whatsapp_config(session, tenant_id)
        except SQLAlchemyError as exc:
            logger.error("WhatsApp configuration lookup failed", error=str(exc), **context)
            return NotificationResult(success=False, error="WhatsApp configuration unavailable")

        result = await self._deliver(phone, text, config, context)

        await self._record_delivery(
            tenant_id=tenant_id,
            user_id=user_id,
            phone_masked=masked,
            message=message,
            body=text,
            config=config,
            result=result,
        )
        get_spin_store().record_notification(category.value, delivered=result.success, attempts=result.attempts)
        return result

    async def _deliver(self, phone: str, text: str, config: WhatsAppConfig, context: dict) -> NotificationResult:
        last_error: str | None = None
        for attempt in range(1, self._max_attempts + 1):
            logger.info(
                "Sending WhatsApp notification",
                attempt=attempt,
                max_attempts=self._max_attempts,
                **context,
            )
            try:
                response = await self._backend.send_raw(phone, text, config)
            except Exception as exc:  # transports may raise instead of returning None
                response = None
                last_error = str(exc) or exc.__class__.__name__
            else:
                last_error = None if response else "Provider returned no result"

            if response:
                logger.info("WhatsApp notification delivered", attempt=attempt, **context)
                return NotificationResult(success=True, attempts=attempt)

            if attempt < self._max_attempts:
                delay = self._base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "WhatsApp notification failed; retrying",
                    attempt=attempt,
                    delay_seconds=delay,
                    error=last_error,
                    **context,
                )
                await self._sleep(delay)

        logger.error(
            "WhatsApp notification failed after retries",
            attempts=self._max_attempts,
            error=last_error,
            timestamp=datetime.now(timezone.utc).isoformat(),
            **context,
        )
        return NotificationResult(success=False, attempts=self._max_attempts, error=last_error)

    async def _record_delivery(
        self,
        *,
        tenant_id: UUID | None,
        user_id: UUID | None,
        phone_masked: str,
        message: OutboundMessage,
        body: str,
        config: WhatsAppConfig,
        result: NotificationResult,
    ) -> None:
        store_body = getattr(message, "store_body", True)
        delivery = NotificationDelivery(
            tenant_id=tenant_id,
            user_id=user_id,
            phone_masked=phone_masked,
            category=message_category(message),
            status=NotificationStatusEnum.SENT if result.success else NotificationStatusEnum.FAILED,
            attempts=result.attempts,
            config_source=config.source,
            body=body if store_body else None,
            error=result.error,
            delivered_at=datetime.now(timezone.utc) if result.success else None,
        )
        try:
            async with self._session_factory() as session:
                session.add(delivery)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to record notification delivery",
                error=str(exc),
                phone=phone_masked,
                delivered=result.success,
            )

    async def send_approval_notification(
        self, user_id: UUID, tenant_id: UUID, task_type: str, spins: int
    ) -> NotificationResult:
        return await self.notify_customer(user_id, ApprovalMessage(task_type=task_type, spins=spins), tenant_id)

    async def send_rejection_notification(
        self, user_id: UUID, tenant_id: UUID, task_type: str, reason: str
    ) -> NotificationResult:
        return await self.notify_customer(user_id, RejectionMessage(task_type=task_type, reason=reason), tenant_id)

    async def send_voucher_notification(
        self,
        user_id: UUID,
        tenant_id: UUID,
        *,
        code: str,
        prize_name: str,
        expires_at: datetime,
        qr_image_url: str | None = None,
    ) -> NotificationResult:
        message = VoucherMessage(code=code, prize_name=prize_name, expires_at=expires_at, qr_image_url=qr_image_url)
        return await self.notify_customer(user_id, message, tenant_id)

    async def send_prize_notification(
        self, user_id: UUID, tenant_id: UUID, prize_name: str, coupon_code: str | None = None
    ) -> NotificationResult:
        return await self.notify_customer(user_id, PrizeWinMessage(prize_name=prize_name, coupon_code=coupon_code), tenant_id)

    async def send_otp(self, phone: str, code: str, tenant_id: UUID | None = None) -> NotificationResult:
        return await self.notify_phone(phone, OtpMessage(code=code), tenant_id)


__all__ = ["NotificationDispatcher", "NotificationRequest", "NotificationResult"]
