"""Weighted prize selection with atomic daily-limit and stock reservation."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Protocol, Sequence
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.settings import settings
from offerwheel_api.models.campaign import Prize, PrizeDailyCounter
from offerwheel_api.observability.spins import get_spin_store

GENERIC_TRY_AGAIN_MESSAGE = "Sorry, try again in some time"
_NON_WINNING_NAME_MARKERS = ("no prize", "no offer")
# Weights below this total leave the remainder to an implicit "try again" bucket.
WEIGHT_SCALE = 100.0


class WeightedSlice(Protocol):
    id: UUID
    probability: float
    position: int


def is_try_again_slice(prize: Prize) -> bool:
    """Slices drawn like prizes but never awarded."""

    if prize.show_try_again_message:
        return True
    name = (prize.name or "").lower()
    return any(marker in name for marker in _NON_WINNING_NAME_MARKERS)


def draw_weighted(slices: Iterable[WeightedSlice], rng: random.Random) -> Optional[WeightedSlice]:
    """Pick one slice by relative weight, or ``None`` for the implicit remainder.

    Slices are walked in ascending ``position`` so equal weights resolve to the
    lower position. When weights sum below 100 the draw spans [0, 100) and the
    uncovered remainder means "try again"; otherwise it spans [0, total).
    """

    ordered = sorted(
        (item for item in slices if (item.probability or 0) > 0),
        key=lambda item: item.position or 0,
    )
    total = sum(float(item.probability) for item in ordered)
    if total <= 0:
        return None

    span = max(total, WEIGHT_SCALE)
    draw = rng.random() * span
    cumulative = 0.0
    for item in ordered:
        cumulative += float(item.probability)
        if draw < cumulative:
            return item
    if total >= WEIGHT_SCALE:
        # Float rounding in the cumulative sum must not leak into a try-again.
        return ordered[-1]
    return None


@dataclass
class PrizeSelection:
    """Outcome of one draw."""

    prize_id: Optional[UUID]
    won_prize: bool
    prize: Optional[Prize]
    message: Optional[str] = None
    rerolls: int = 0

    @property
    def try_again(self) -> bool:
        return not self.won_prize


class PrizeSelector:
    """Resolve a consumed spin into a prize or a try-again outcome.

    Selection never raises for an empty or exhausted pool; both resolve to
    try again. A prize is only returned as won after its stock and today's
    counter were reserved with conditional updates.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rng: random.Random | None = None,
        max_rerolls: int | None = None,
        day_timezone: str | None = None,
    ) -> None:
        self._db = db_session
        self._rng = rng or random.SystemRandom()
        self._max_rerolls = settings.prize_reservation_max_rerolls if max_rerolls is None else max_rerolls
        self._zone = ZoneInfo(day_timezone or settings.prize_day_timezone)

    def award_day(self, now: datetime | None = None) -> date:
        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self._zone).date()

    async def select_prize(self, campaign_id: UUID, *, now: datetime | None = None) -> PrizeSelection:
        day = self.award_day(now)
        candidates = await self._eligible_prizes(campaign_id, day)
        excluded: set[UUID] = set()
        rerolls = 0

        while True:
            remaining = [prize for prize in candidates if prize.id not in excluded]
            drawn = draw_weighted(remaining, self._rng)
            if drawn is None:
                return PrizeSelection(None, False, None, GENERIC_TRY_AGAIN_MESSAGE, rerolls)

            prize: Prize = drawn  # type: ignore[assignment]
            if is_try_again_slice(prize):
                message = prize.try_again_message or GENERIC_TRY_AGAIN_MESSAGE
                return PrizeSelection(prize.id, False, prize, message, rerolls)

            if await self.reserve(prize, day):
                return PrizeSelection(prize.id, True, prize, None, rerolls)

            get_spin_store().record_reservation_loss()
            logger.info(
                "Prize reservation lost; re-rolling",
                campaign_id=str(campaign_id),
                prize_id=str(prize.id),
                attempt=rerolls + 1,
            )
            excluded.add(prize.id)
            rerolls += 1
            if rerolls >= self._max_rerolls:
                logger.info(
                    "Prize re-roll budget exhausted; resolving to try again",
                    campaign_id=str(campaign_id),
                    rerolls=rerolls,
                )
                return PrizeSelection(None, False, None, GENERIC_TRY_AGAIN_MESSAGE, rerolls)

    async def reserve(self, prize: Prize, day: date) -> bool:
        """Take one unit of stock and one slot of today's limit, or neither."""

        took_stock = False
        if prize.current_stock is not None:
            result = await self._db.execute(
                update(Prize)
                .where(Prize.id == prize.id, Prize.current_stock > 0)
                .values(current_stock=Prize.current_stock - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False
            took_stock = True

        await self._ensure_counter(prize.id, day)
        counter_update = update(PrizeDailyCounter).where(
            PrizeDailyCounter.prize_id == prize.id,
            PrizeDailyCounter.day == day,
        )
        if prize.daily_limit is not None:
            counter_update = counter_update.where(PrizeDailyCounter.awarded_count < prize.daily_limit)
        result = await self._db.execute(
            counter_update.values(awarded_count=PrizeDailyCounter.awarded_count + 1).execution_options(
                synchronize_session=False
            )
        )
        if result.rowcount != 1:
            if took_stock:
                await self._db.execute(
                    update(Prize)
                    .where(Prize.id == prize.id)
                    .values(current_stock=Prize.current_stock + 1)
                    .execution_options(synchronize_session=False)
                )
            return False

        if took_stock:
            await self._warn_low_stock(prize)
        return True

    async def _eligible_prizes(self, campaign_id: UUID, day: date) -> Sequence[Prize]:
        stmt = (
            select(Prize)
            .where(Prize.campaign_id == campaign_id, Prize.is_active.is_(True))
            .order_by(Prize.position.asc(), Prize.created_at.asc())
            .execution_options(populate_existing=True)
        )
        prizes = [
            prize
            for prize in (await self._db.execute(stmt)).scalars().all()
            if prize.current_stock is None or prize.current_stock > 0
        ]
        if not prizes:
            return prizes

        counters_stmt = select(PrizeDailyCounter.prize_id, PrizeDailyCounter.awarded_count).where(
            PrizeDailyCounter.prize_id.in_([prize.id for prize in prizes]),
            PrizeDailyCounter.day == day,
        )
        awarded_today = {prize_id: count for prize_id, count in (await self._db.execute(counters_stmt)).all()}

        return [
            prize
            for prize in prizes
            if is_try_again_slice(prize)
            or prize.daily_limit is None
            or awarded_today.get(prize.id, 0) < prize.daily_limit
        ]

    async def _ensure_counter(self, prize_id: UUID, day: date) -> None:
        dialect = self._db.get_bind().dialect.name
        values = {"id": uuid4(), "prize_id": prize_id, "day": day, "awarded_count": 0}
        if dialect == "postgresql":
            stmt = postgresql.insert(PrizeDailyCounter).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite.insert(PrizeDailyCounter).values(**values)
        else:
            existing = await self._db.scalar(
                select(PrizeDailyCounter.id).where(
                    PrizeDailyCounter.prize_id == prize_id,
                    PrizeDailyCounter.day == day,
                )
            )
            if existing is None:
                self._db.add(PrizeDailyCounter(**values))
                await self._db.flush()
            return
        await self._db.execute(stmt.on_conflict_do_nothing(index_elements=["prize_id", "day"]))

    async def _warn_low_stock(self, prize: Prize) -> None:
        if prize.low_stock_alert is None:
            return
        stock = await self._db.scalar(select(Prize.current_stock).where(Prize.id == prize.id))
        if stock is not None and stock <= prize.low_stock_alert:
            logger.warning(
                "Prize stock low",
                prize_id=str(prize.id),
                campaign_id=str(prize.campaign_id),
                current_stock=stock,
                low_stock_alert=prize.low_stock_alert,
            )


__all__ = [
    "GENERIC_TRY_AGAIN_MESSAGE",
    "PrizeSelection",
    "PrizeSelector",
    "draw_weighted",
    "is_try_again_slice",
]
