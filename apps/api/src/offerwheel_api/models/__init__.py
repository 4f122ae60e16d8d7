"""SQLAlchemy models package."""

from .tenant import PlatformSetting, Tenant  # noqa: F401
from .end_user import EndUser, generate_referral_code  # noqa: F401
from .campaign import Campaign, Prize, PrizeDailyCounter  # noqa: F401
from .spin import Spin  # noqa: F401
from .voucher import Voucher  # noqa: F401
from .social_task import SocialTask, SocialTaskCompletion, TaskCompletionStatus  # noqa: F401
from .manager import DirectSpinGrant, Manager, ManagerAuditAction, ManagerAuditLog  # noqa: F401
from .bonus import BonusSpinGrant, BonusSpinSource  # noqa: F401
from .notification import (  # noqa: F401
    NotificationCategoryEnum,
    NotificationDelivery,
    NotificationStatusEnum,
)
