# src/verdict/engine.py
import logging
import time
from collections.abc import Callable, Sequence

from src.storage.database import Database
from src.storage.models import HandleVerdict, SignalOutcome

logger = logging.getLogger(__name__)

ULTRA_EARLY_SECONDS = 3600  # 1 小时
EARLY_SECONDS = 2 * 3600
LATE_SECONDS = 24 * 3600


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def effective_roi(outcome: SignalOutcome) -> float:
    """ATH 收益为正取 ATH，否则取 ATL"""
    window = outcome.window
    return window.ath_roi if window.ath_roi > 0 else window.atl_roi


def determine_verdict(
    win_rate: float,
    rug_rate: float,
    median_roi: float,
    avg_time_to_ath: float | None,
) -> str:
    if rug_rate > 50:
        return "Serial Rugger Promoter"
    if rug_rate > 25:
        return "High Risk - Many Rugs"

    if win_rate >= 80:
        if avg_time_to_ath is not None and avg_time_to_ath < ULTRA_EARLY_SECONDS:
            return "God Tier - Ultra Early"
        return "God Tier"

    if win_rate >= 60:
        if avg_time_to_ath is not None and avg_time_to_ath < EARLY_SECONDS:
            return "Excellent - Early Signals"
        return "Excellent"

    if win_rate >= 50:
        if median_roi > 100:
            return "Good - High Upside"
        return "Good"

    if win_rate >= 30:
        if avg_time_to_ath is not None and avg_time_to_ath > LATE_SECONDS:
            return "Average - Late Signals"
        return "Average"

    if median_roi < -50:
        return "Worst - Heavy Losses"
    return "Worst"


def compute_verdict(
    handle_id: int, outcomes: Sequence[SignalOutcome], now: int
) -> HandleVerdict | None:
    """
    将 handle 的所有信号结果汇总为一个判定

    Returns:
        判定快照；没有任何已追踪信号时返回 None
    """
    if not outcomes:
        return None

    total = len(outcomes)
    windows = [o.window for o in outcomes]
    completed = [o for o in outcomes if o.window.lifecycle_complete]

    wins = sum(1 for w in windows if w.ath_roi > 0)
    rois = [effective_roi(o) for o in outcomes]

    times_to_ath = [
        o.window.ath_timestamp - o.mention_timestamp
        for o in outcomes
        if o.window.ath_timestamp is not None and o.window.ath_roi > 0
    ]
    times_to_death = [
        o.window.death_timestamp - o.mention_timestamp
        for o in completed
        if o.window.is_dead and o.window.death_timestamp is not None
    ]
    market_caps = [w.mention_market_cap for w in windows if w.mention_market_cap > 0]

    win_rate = wins / total * 100
    rug_rate = sum(1 for w in windows if w.is_rug) / total * 100
    median_roi = median(rois)
    avg_time_to_ath = _mean(times_to_ath)

    return HandleVerdict(
        id=None,
        handle_id=handle_id,
        total_calls=total,
        completed_calls=len(completed),
        win_rate=win_rate,
        median_roi=median_roi,
        avg_roi=sum(rois) / total,
        avg_time_to_ath=avg_time_to_ath,
        avg_time_to_death=_mean(times_to_death),
        rug_rate=rug_rate,
        death_rate=sum(1 for w in windows if w.is_dead) / total * 100,
        avg_mention_market_cap=_mean(market_caps),
        verdict_label=determine_verdict(win_rate, rug_rate, median_roi, avg_time_to_ath),
        last_calculated=now,
    )


class VerdictEngine:
    """handle 判定计算与存储"""

    def __init__(self, db: Database, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock

    async def calculate_for_handle(self, handle_id: int) -> HandleVerdict | None:
        outcomes = await self.db.get_signal_outcomes(handle_id)
        verdict = compute_verdict(handle_id, outcomes, int(self.clock()))
        if verdict is None:
            await self.db.delete_handle_verdict(handle_id)
            return None
        await self.db.upsert_handle_verdict(verdict)
        return verdict

    async def recalculate_all(self) -> dict[str, HandleVerdict]:
        """
        重新计算所有 handle 的判定

        Returns:
            {用户名: 判定}，只包含有判定的 handle
        """
        verdicts: dict[str, HandleVerdict] = {}
        for handle in await self.db.get_handles():
            assert handle.id is not None
            try:
                verdict = await self.calculate_for_handle(handle.id)
            except Exception as e:
                logger.error(f"Failed to calculate verdict for @{handle.username}: {e}")
                continue
            if verdict is not None:
                verdicts[handle.username] = verdict
                logger.info(
                    f"@{handle.username}: {verdict.verdict_label} "
                    f"(win {verdict.win_rate:.1f}%, median {verdict.median_roi:.1f}%, "
                    f"rug {verdict.rug_rate:.1f}%)"
                )
        return verdicts

    async def get_verdict(self, handle_id: int) -> HandleVerdict | None:
        return await self.db.get_handle_verdict(handle_id)

    async def get_all_verdicts(self) -> list[HandleVerdict]:
        return await self.db.get_handle_verdicts()
