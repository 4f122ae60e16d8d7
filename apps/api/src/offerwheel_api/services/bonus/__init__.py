"""Bonus spin ledger services."""

from .grant_service import BonusSpinService, GrantResult  # noqa: F401
from .direct_grant import CustomerSearchResult, DirectGrantResult, DirectGrantService  # noqa: F401
from .referrals import ReferralResult, ReferralService  # noqa: F401
from .task_verification import PendingTask, TaskReviewResult, TaskVerificationService  # noqa: F401
