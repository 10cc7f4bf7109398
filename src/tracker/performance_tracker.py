# src/tracker/performance_tracker.py
import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import aiohttp

from src.client.dexscreener import DexscreenerAPIError
from src.client.models import PriceSnapshot
from src.storage.database import Database
from src.storage.models import PerformanceWindow, Signal
from src.tracker.lifecycle import (
    LifecycleRules,
    MissingPerformanceWindowError,
    advance_window,
    seed_window,
)

if TYPE_CHECKING:
    from src.client.dexscreener import DexscreenerClient

logger = logging.getLogger(__name__)


class PerformanceTracker:
    """驱动每个信号的表现窗口状态机"""

    def __init__(
        self,
        db: Database,
        client: "DexscreenerClient",
        rules: LifecycleRules | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.client = client
        self.rules = rules or LifecycleRules()
        self.clock = clock

    def now(self) -> int:
        return int(self.clock())

    def initialize_due_at(self, signal: Signal) -> int:
        return signal.mention_timestamp + self.rules.init_delay_seconds

    async def _observe(self, ca: str) -> PriceSnapshot | None:
        """获取一次行情，临时失败记录后返回 None"""
        try:
            return await self.client.get_current_price(ca)
        except (DexscreenerAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to get price for {ca}: {e}")
            return None

    async def initialize(self, signal: Signal) -> PerformanceWindow | None:
        """
        建立信号的表现窗口

        Returns:
            表现窗口；未到时间或暂时拿不到价格时返回 None（下轮再试）
        """
        assert signal.id is not None
        existing = await self.db.get_performance_window(signal.id)
        if existing is not None:
            return existing

        if signal.ca is None:
            return None

        if self.now() < self.initialize_due_at(signal):
            logger.debug(f"Signal {signal.id} not due for initialization yet")
            return None

        snapshot = await self._observe(signal.ca)
        if snapshot is None:
            logger.info(f"No price for {signal.ca}, deferring signal {signal.id}")
            return None

        window, observation = seed_window(signal.id, snapshot, self.now())
        window.id = await self.db.create_performance_window(window, observation)
        logger.info(f"Initialized tracking for signal {signal.id} at ${snapshot.price}")
        return window

    async def update(self, signal: Signal) -> PerformanceWindow | None:
        """
        用最新行情推进表现窗口

        Returns:
            更新后的窗口；已结束则原样返回；拿不到价格时返回 None
        """
        assert signal.id is not None
        window = await self.db.get_performance_window(signal.id)
        if window is None:
            raise MissingPerformanceWindowError(signal.id)
        if window.lifecycle_complete:
            return window

        assert signal.ca is not None
        snapshot = await self._observe(signal.ca)
        if snapshot is None:
            return None

        updated, observations = advance_window(
            window, snapshot, signal.mention_timestamp, self.now(), self.rules
        )
        saved = await self.db.save_performance_update(updated, observations)
        if not saved:
            # 并发下已被其他更新推进到终态
            return await self.db.get_performance_window(signal.id)

        if updated.lifecycle_complete:
            logger.info(
                f"Signal {signal.id} lifecycle complete: {updated.death_reason.value} "
                f"(ROI {updated.current_roi:+.2f}%)"
            )
        else:
            logger.debug(
                f"Updated signal {signal.id}: ${updated.current_price:.8f} "
                f"({updated.current_roi:+.2f}%)"
            )
        return updated

    async def list_active(self) -> list[Signal]:
        return await self.db.get_active_signals()

    async def list_uninitialized(self) -> list[Signal]:
        """待初始化的信号；喊单超过追踪窗口仍拿不到价格的不再重试"""
        return await self.db.get_uninitialized_signals(self.now() - self.rules.window_seconds)
