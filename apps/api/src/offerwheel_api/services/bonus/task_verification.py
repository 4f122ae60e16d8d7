"""Social task claims and manager review."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.models.bonus import BonusSpinSource
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.manager import Manager, ManagerAuditAction, ManagerAuditLog
from offerwheel_api.models.social_task import SocialTask, SocialTaskCompletion, TaskCompletionStatus
from offerwheel_api.models.spin import Spin
from offerwheel_api.services.bonus.grant_service import BonusSpinService, log_grant_failure
from offerwheel_api.services.errors import NotEligibleError, NotFoundError, PromotionError, TransientInfraError
from offerwheel_api.services.notifications.dispatcher import NotificationRequest
from offerwheel_api.services.notifications.templates import ApprovalMessage, RejectionMessage


@dataclass
class PendingTask:
    id: UUID
    task_id: UUID
    task_type: str
    target_url: Optional[str]
    status: TaskCompletionStatus
    submitted_at: datetime
    customer_id: UUID
    phone_last4: str


@dataclass
class TaskReviewResult:
    success: bool
    spins_granted: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    notification: Optional[NotificationRequest] = None


def task_type_label(task: SocialTask) -> str:
    return f"{task.platform} - {task.action_type}"


def phone_last4(phone: str) -> str:
    return phone[-4:] if phone and len(phone) >= 4 else phone or ""


class TaskVerificationService:
    """Review queue for social task completions.

    Approval updates the completion, writes the audit row and grants the
    bonus spins in a single transaction.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._ledger = BonusSpinService(db_session)

    async def claim_task(self, user_id: UUID, task_id: UUID) -> SocialTaskCompletion:
        user = await self._db.get(EndUser, user_id)
        task = await self._db.get(SocialTask, task_id)
        if user is None:
            raise NotFoundError("Customer not found", code="customer_not_found")
        if task is None or task.tenant_id != user.tenant_id or not task.is_active:
            raise NotFoundError("Task not found", code="task_not_found")

        completion = await self._completion_for(task_id, user_id)
        if completion is not None:
            if completion.status == TaskCompletionStatus.REJECTED:
                completion.status = TaskCompletionStatus.PENDING
                completion.review_comment = None
                completion.reviewed_at = None
                completion.reviewed_by_id = None
                completion.claimed_at = datetime.now(timezone.utc)
                await self._db.commit()
            return completion

        completion = SocialTaskCompletion(tenant_id=task.tenant_id, task_id=task_id, user_id=user_id)
        self._db.add(completion)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            existing = await self._completion_for(task_id, user_id)
            if existing is None:
                raise
            return existing
        return completion

    async def list_pending_tasks(
        self,
        manager_id: UUID,
        *,
        status: TaskCompletionStatus | None = TaskCompletionStatus.PENDING,
        page: int = 1,
        limit: int = 50,
    ) -> list[PendingTask]:
        manager = await self._active_manager(manager_id)
        has_spun = exists().where(Spin.user_id == SocialTaskCompletion.user_id)
        stmt = (
            select(SocialTaskCompletion, SocialTask, EndUser.phone)
            .join(SocialTask, SocialTask.id == SocialTaskCompletion.task_id)
            .join(EndUser, EndUser.id == SocialTaskCompletion.user_id)
            .where(SocialTaskCompletion.tenant_id == manager.tenant_id, has_spun)
            .order_by(SocialTaskCompletion.claimed_at.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        )
        if status is not None:
            stmt = stmt.where(SocialTaskCompletion.status == status)

        return [
            PendingTask(
                id=completion.id,
                task_id=task.id,
                task_type=task_type_label(task),
                target_url=task.target_url,
                status=completion.status,
                submitted_at=completion.claimed_at,
                customer_id=completion.user_id,
                phone_last4=phone_last4(phone),
            )
            for completion, task, phone in (await self._db.execute(stmt)).all()
        ]

    async def approve_task(self, manager_id: UUID, completion_id: UUID, comment: str) -> TaskReviewResult:
        comment = (comment or "").strip()
        if not comment:
            return TaskReviewResult(False, error="Comment is required for task verification", error_code="comment_required")

        user_id: UUID | None = None
        spins = 0
        reason = "Task approval"
        try:
            manager = await self._active_manager(manager_id, lock=True)
            completion, task = await self._completion_in_tenant(completion_id, manager.tenant_id)
            if completion.status == TaskCompletionStatus.VERIFIED:
                raise NotEligibleError("Task has already been verified", reason="already_verified")

            user_id = completion.user_id
            tenant_id = manager.tenant_id
            task_type = task_type_label(task)
            reason = f"Task approval: {task_type}"
            spins = min(task.spins_reward, manager.max_bonus_spins_per_approval)
            if spins < task.spins_reward:
                logger.warning(
                    "Bonus spins capped by manager approval limit",
                    configured=task.spins_reward,
                    manager_limit=manager.max_bonus_spins_per_approval,
                    granted=spins,
                )

            completion.status = TaskCompletionStatus.VERIFIED
            completion.spins_awarded = spins
            completion.reviewed_by_id = manager_id
            completion.reviewed_at = datetime.now(timezone.utc)
            completion.review_comment = comment
            self._db.add(
                ManagerAuditLog(
                    tenant_id=tenant_id,
                    manager_id=manager_id,
                    action=ManagerAuditAction.TASK_APPROVED,
                    target_user_id=user_id,
                    task_completion_id=completion_id,
                    spins_granted=spins,
                    comment=comment,
                )
            )
            if spins > 0:
                await self._ledger.apply_grant(
                    user_id, spins, reason, str(manager_id), source=BonusSpinSource.TASK_APPROVAL
                )
            await self._db.commit()
        except PromotionError as exc:
            await self._db.rollback()
            return self._failed_review(exc.message, exc.code, manager_id, completion_id, user_id, spins, reason)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            return self._failed_review(str(exc), TransientInfraError.code, manager_id, completion_id, user_id, spins, reason)

        logger.info(
            "Task approved",
            completion_id=str(completion_id),
            manager_id=str(manager_id),
            user_id=str(user_id),
            spins_granted=spins,
        )
        return TaskReviewResult(
            success=True,
            spins_granted=spins,
            notification=NotificationRequest(
                user_id=user_id,
                tenant_id=tenant_id,
                message=ApprovalMessage(task_type=task_type, spins=spins),
            ),
        )

    async def reject_task(self, manager_id: UUID, completion_id: UUID, comment: str) -> TaskReviewResult:
        comment = (comment or "").strip()
        if not comment:
            return TaskReviewResult(False, error="Comment is required for task verification", error_code="comment_required")

        try:
            manager = await self._active_manager(manager_id)
            completion, task = await self._completion_in_tenant(completion_id, manager.tenant_id)
            if completion.status != TaskCompletionStatus.PENDING:
                raise NotEligibleError("Task has already been reviewed", reason="already_verified")

            user_id = completion.user_id
            tenant_id = manager.tenant_id
            task_type = task_type_label(task)
            completion.status = TaskCompletionStatus.REJECTED
            completion.reviewed_by_id = manager_id
            completion.reviewed_at = datetime.now(timezone.utc)
            completion.review_comment = comment
            self._db.add(
                ManagerAuditLog(
                    tenant_id=tenant_id,
                    manager_id=manager_id,
                    action=ManagerAuditAction.TASK_REJECTED,
                    target_user_id=user_id,
                    task_completion_id=completion_id,
                    comment=comment,
                )
            )
            await self._db.commit()
        except PromotionError as exc:
            await self._db.rollback()
            return self._failed_rejection(exc.message, exc.code, manager_id, completion_id)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            return self._failed_rejection(str(exc), TransientInfraError.code, manager_id, completion_id)

        logger.info("Task rejected", completion_id=str(completion_id), manager_id=str(manager_id))
        return TaskReviewResult(
            success=True,
            notification=NotificationRequest(
                user_id=user_id,
                tenant_id=tenant_id,
                message=RejectionMessage(task_type=task_type, reason=comment),
            ),
        )

    async def _active_manager(self, manager_id: UUID, *, lock: bool = False) -> Manager:
        stmt = select(Manager).where(Manager.id == manager_id)
        if lock:
            stmt = stmt.with_for_update()
        manager = (await self._db.execute(stmt)).scalar_one_or_none()
        if manager is None:
            raise NotFoundError("Manager not found", code="manager_not_found")
        if not manager.is_active:
            raise NotEligibleError("Manager account is inactive", reason="manager_inactive")
        return manager

    async def _completion_in_tenant(
        self, completion_id: UUID, tenant_id: UUID
    ) -> tuple[SocialTaskCompletion, SocialTask]:
        row = (
            await self._db.execute(
                select(SocialTaskCompletion, SocialTask)
                .join(SocialTask, SocialTask.id == SocialTaskCompletion.task_id)
                .where(SocialTaskCompletion.id == completion_id)
                .with_for_update()
            )
        ).first()
        if row is None:
            raise NotFoundError("Task completion not found", code="task_not_found")
        completion, task = row
        if task.tenant_id != tenant_id:
            raise NotFoundError("Task completion not found", code="task_not_found")
        return completion, task

    async def _completion_for(self, task_id: UUID, user_id: UUID) -> SocialTaskCompletion | None:
        return await self._db.scalar(
            select(SocialTaskCompletion).where(
                SocialTaskCompletion.task_id == task_id,
                SocialTaskCompletion.user_id == user_id,
            )
        )

    @staticmethod
    def _failed_rejection(error: str, code: str, manager_id: UUID, completion_id: UUID) -> TaskReviewResult:
        logger.warning(
            "Task rejection failed",
            completion_id=str(completion_id),
            manager_id=str(manager_id),
            error=error,
        )
        return TaskReviewResult(False, error=error, error_code=code)

    @staticmethod
    def _failed_review(
        error: str,
        code: str,
        manager_id: UUID,
        completion_id: UUID,
        user_id: UUID | None,
        spins: int,
        reason: str,
    ) -> TaskReviewResult:
        if user_id is not None:
            log_grant_failure(
                error,
                user_id=user_id,
                amount=spins,
                reason=reason,
                granted_by=str(manager_id),
                source=BonusSpinSource.TASK_APPROVAL,
            )
        else:
            logger.warning(
                "Task approval failed",
                completion_id=str(completion_id),
                manager_id=str(manager_id),
                error=error,
            )
        return TaskReviewResult(False, error=error, error_code=code)


__all__ = ["PendingTask", "TaskReviewResult", "TaskVerificationService", "phone_last4", "task_type_label"]
