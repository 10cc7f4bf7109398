# src/tracker/sweep.py
import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from src.storage.models import PerformanceWindow, Signal
from src.tracker.performance_tracker import PerformanceTracker

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    initialized: int = 0
    deferred: int = 0
    scheduled: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    completed: list[PerformanceWindow] = field(default_factory=list)


class TrackingSweep:
    """
    一轮批量追踪：初始化到期信号、更新所有活跃信号

    不同信号并发处理，唯一的串行点是行情客户端的限速器。
    同一信号的 initialize 一定先于 update 完成。
    """

    def __init__(
        self,
        tracker: PerformanceTracker,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tracker = tracker
        self._sleep = sleep
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._scheduled: dict[int, asyncio.Task[PerformanceWindow | None]] = {}

    @property
    def scheduled_ids(self) -> set[int]:
        return set(self._scheduled)

    async def run(self, wait_scheduled: bool = False) -> SweepResult:
        result = SweepResult()
        now = self.tracker.now()

        due: list[Signal] = []
        for signal in await self.tracker.list_uninitialized():
            assert signal.id is not None
            due_at = self.tracker.initialize_due_at(signal)
            if due_at <= now:
                due.append(signal)
            elif signal.id not in self._scheduled:
                self._schedule(signal, due_at - now)
                result.scheduled += 1

        await asyncio.gather(*(self._initialize(s, result) for s in due))

        active = await self.tracker.list_active()
        await asyncio.gather(*(self._update(s, result) for s in active))

        if wait_scheduled:
            await self.wait_scheduled()
        self._prune_locks()

        logger.info(
            f"Sweep done: initialized={result.initialized} deferred={result.deferred} "
            f"scheduled={result.scheduled} updated={result.updated} "
            f"completed={len(result.completed)} failed={result.failed}"
        )
        return result

    def _prune_locks(self) -> None:
        """释放已结束信号的锁，只保留待初始化或正在处理的"""
        for signal_id in list(self._locks):
            if signal_id not in self._scheduled and not self._locks[signal_id].locked():
                del self._locks[signal_id]

    def _schedule(self, signal: Signal, delay: float) -> None:
        """延迟初始化作为独立任务，不阻塞其他信号"""
        assert signal.id is not None
        signal_id = signal.id
        task = asyncio.create_task(self._initialize_later(signal, delay))
        self._scheduled[signal_id] = task
        task.add_done_callback(lambda _: self._scheduled.pop(signal_id, None))
        logger.debug(f"Scheduled initialization of signal {signal_id} in {delay:.0f}s")

    async def _initialize_later(self, signal: Signal, delay: float) -> PerformanceWindow | None:
        await self._sleep(delay)
        return await self._initialize(signal, SweepResult())

    async def _initialize(self, signal: Signal, result: SweepResult) -> PerformanceWindow | None:
        assert signal.id is not None
        async with self._locks[signal.id]:
            try:
                window = await self.tracker.initialize(signal)
            except Exception as e:
                logger.error(f"Failed to initialize signal {signal.id}: {e}")
                result.failed += 1
                return None

        if window is None:
            result.deferred += 1
        else:
            result.initialized += 1
        return window

    async def _update(self, signal: Signal, result: SweepResult) -> None:
        assert signal.id is not None
        async with self._locks[signal.id]:
            try:
                window = await self.tracker.update(signal)
            except Exception as e:
                logger.error(f"Failed to update signal {signal.id}: {e}")
                result.failed += 1
                return

        if window is None:
            result.skipped += 1
            return
        result.updated += 1
        if window.lifecycle_complete:
            result.completed.append(window)

    async def wait_scheduled(self) -> None:
        if self._scheduled:
            await asyncio.gather(*list(self._scheduled.values()))

    def cancel_scheduled(self) -> None:
        for task in list(self._scheduled.values()):
            task.cancel()
        self._scheduled.clear()
