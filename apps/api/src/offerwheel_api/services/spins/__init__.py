"""Spin eligibility, prize selection and orchestration."""

from .eligibility import EligibilityEvaluator, SpinStatus  # noqa: F401
from .prize_selector import PrizeSelection, PrizeSelector, draw_weighted  # noqa: F401
from .spin_service import IssuedVoucher, SpinOutcome, SpinService  # noqa: F401
