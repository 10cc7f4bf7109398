# src/tracker/lifecycle.py
from dataclasses import dataclass, replace
from enum import Enum

from src.client.models import PriceSnapshot
from src.storage.models import DeathReason, EventType, PerformanceWindow, PriceObservation


class TrackerError(Exception):
    """表现追踪的数据/程序错误"""


class MissingPerformanceWindowError(TrackerError):
    def __init__(self, signal_id: int):
        self.signal_id = signal_id
        super().__init__(f"No performance window for signal {signal_id}")


class InvalidMentionPriceError(TrackerError):
    def __init__(self, signal_id: int, price: float):
        self.signal_id = signal_id
        self.price = price
        super().__init__(f"Invalid mention price for signal {signal_id}: {price}")


class InvalidObservationError(TrackerError):
    def __init__(self, signal_id: int, price: float):
        self.signal_id = signal_id
        self.price = price
        super().__init__(f"Invalid observed price for signal {signal_id}: {price}")


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass(frozen=True)
class LifecycleRules:
    init_delay_seconds: int = 60
    liquidity_floor_usd: float = 5000
    dump_threshold_pct: float = 70
    rug_threshold_pct: float = 90
    window_seconds: int = 48 * 3600


def lifecycle_state(window: PerformanceWindow | None) -> LifecycleState:
    if window is None:
        return LifecycleState.UNINITIALIZED
    if window.lifecycle_complete:
        return LifecycleState.COMPLETE
    return LifecycleState.ACTIVE


def roi(price: float, mention_price: float) -> float:
    return (price - mention_price) / mention_price * 100


def _observation(
    signal_id: int, snapshot: PriceSnapshot, timestamp: int, event_type: EventType
) -> PriceObservation:
    return PriceObservation(
        id=None,
        signal_id=signal_id,
        price=snapshot.price,
        market_cap=snapshot.market_cap,
        liquidity=snapshot.liquidity,
        volume_24h=snapshot.volume_24h,
        timestamp=timestamp,
        event_type=event_type,
    )


def seed_window(
    signal_id: int, snapshot: PriceSnapshot, now: int
) -> tuple[PerformanceWindow, PriceObservation]:
    """用首个观测建立表现窗口：mention = ath = atl = current"""
    if not snapshot.price > 0:
        raise InvalidObservationError(signal_id, snapshot.price)

    window = PerformanceWindow(
        id=None,
        signal_id=signal_id,
        mention_price=snapshot.price,
        mention_market_cap=snapshot.market_cap,
        mention_liquidity=snapshot.liquidity,
        ath_price=snapshot.price,
        ath_timestamp=None,
        ath_roi=0.0,
        atl_price=snapshot.price,
        atl_timestamp=None,
        atl_roi=0.0,
        current_price=snapshot.price,
        current_roi=0.0,
        is_dead=False,
        death_timestamp=None,
        death_reason=DeathReason.NONE,
        is_rug=False,
        rug_timestamp=None,
        lifecycle_complete=False,
        last_updated=now,
    )
    return window, _observation(signal_id, snapshot, snapshot.timestamp, EventType.MENTION)


def advance_window(
    window: PerformanceWindow,
    snapshot: PriceSnapshot,
    mention_timestamp: int,
    now: int,
    rules: LifecycleRules,
) -> tuple[PerformanceWindow, list[PriceObservation]]:
    """
    用一次新观测推进状态机

    不修改传入的 window；已结束的窗口原样返回。

    Returns:
        (新窗口, 本轮新增的观测事件)
    """
    if window.lifecycle_complete:
        return window, []
    if not window.mention_price > 0:
        raise InvalidMentionPriceError(window.signal_id, window.mention_price)

    mention_price = window.mention_price
    price = snapshot.price
    observations: list[PriceObservation] = []

    updated = replace(
        window,
        current_price=price,
        current_roi=roi(price, mention_price),
        last_updated=now,
    )

    if price > window.ath_price:
        updated = replace(
            updated, ath_price=price, ath_timestamp=now, ath_roi=roi(price, mention_price)
        )
        observations.append(_observation(window.signal_id, snapshot, now, EventType.ATH))

    if price < window.atl_price:
        updated = replace(
            updated, atl_price=price, atl_timestamp=now, atl_roi=roi(price, mention_price)
        )

    in_window = now - mention_timestamp <= rules.window_seconds
    death_reason = DeathReason.NONE

    if snapshot.liquidity < rules.liquidity_floor_usd:
        death_reason = DeathReason.LOW_LIQUIDITY
    elif in_window:
        drop_from_ath = (updated.ath_price - price) / updated.ath_price * 100
        if drop_from_ath > rules.dump_threshold_pct:
            death_reason = DeathReason.PRICE_DUMP_70

    is_rug = in_window and (mention_price - price) / mention_price * 100 > rules.rug_threshold_pct
    if is_rug:
        death_reason = DeathReason.RUG

    if death_reason is not DeathReason.NONE:
        updated = replace(
            updated,
            is_dead=True,
            death_timestamp=now,
            death_reason=death_reason,
            is_rug=is_rug,
            rug_timestamp=now if is_rug else None,
            lifecycle_complete=True,
        )
        observations.append(_observation(window.signal_id, snapshot, now, EventType.DEATH))

    return updated, observations
