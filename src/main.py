# src/main.py
import argparse
import asyncio
import logging
import signal
from collections.abc import Sequence
from pathlib import Path

from src.client.dexscreener import DexscreenerClient
from src.client.rate_limiter import RateLimiter
from src.config import Config, load_config
from src.notifier.formatter import (
    format_lifecycle_alert,
    format_verdict_change,
    format_verdict_report,
)
from src.notifier.telegram import TelegramNotifier
from src.storage.database import Database
from src.storage.models import HandleVerdict, PerformanceWindow
from src.tracker.performance_tracker import PerformanceTracker
from src.tracker.sweep import SweepResult, TrackingSweep
from src.verdict.engine import VerdictEngine

logger = logging.getLogger(__name__)


class CTTracker:
    def __init__(self, config: Config):
        self.config = config
        self.db = Database(config.database.path)
        self.client = DexscreenerClient(
            base_url=config.market_data.base_url,
            chain=config.market_data.chain,
            timeout_seconds=config.market_data.timeout_seconds,
            rate_limiter=RateLimiter(config.market_data.min_request_interval_seconds),
        )
        self.tracker = PerformanceTracker(self.db, self.client, rules=config.tracker.rules())
        self.sweep = TrackingSweep(self.tracker)
        self.verdicts = VerdictEngine(self.db)
        self.notifier: TelegramNotifier | None = None
        if config.telegram is not None:
            self.notifier = TelegramNotifier(config.telegram.bot_token, config.telegram.chat_id)
        self._last_labels: dict[str, str] = {}
        self.running = False

    async def init(self) -> None:
        Path(self.config.database.path).parent.mkdir(parents=True, exist_ok=True)
        await self.db.init()
        await self.client.init()

        # 启动时的已有评级不算变化
        for verdict in await self.verdicts.get_all_verdicts():
            handle = await self.db.get_handle(verdict.handle_id)
            if handle is not None:
                self._last_labels[handle.username] = verdict.verdict_label

    async def close(self) -> None:
        self.sweep.cancel_scheduled()
        await self.client.close()
        await self.db.close()

    async def run_sweep(self, wait_scheduled: bool = False) -> SweepResult:
        """一轮追踪，随后重算评级并发送通知"""
        result = await self.sweep.run(wait_scheduled=wait_scheduled)
        for window in result.completed:
            await self._notify_lifecycle(window)

        verdicts = await self.verdicts.recalculate_all()
        await self._notify_verdict_changes(verdicts)
        return result

    async def _notify_lifecycle(self, window: PerformanceWindow) -> None:
        if self.notifier is None:
            return
        notifications = self.config.notifications
        if window.is_rug and not notifications.rug_alerts:
            return
        if not window.is_rug and not notifications.death_alerts:
            return

        tracked_signal = await self.db.get_signal(window.signal_id)
        handle = await self.db.get_handle_for_signal(window.signal_id)
        if tracked_signal is None or handle is None:
            return
        await self.notifier.safe_send(
            format_lifecycle_alert(handle.username, tracked_signal, window)
        )

    async def _notify_verdict_changes(self, verdicts: dict[str, HandleVerdict]) -> None:
        for username, verdict in verdicts.items():
            previous = self._last_labels.get(username)
            self._last_labels[username] = verdict.verdict_label
            if previous == verdict.verdict_label:
                continue
            logger.info(f"@{username} verdict changed: {previous} -> {verdict.verdict_label}")
            if self.notifier is not None and self.config.notifications.verdict_changes:
                await self.notifier.safe_send(format_verdict_change(username, previous, verdict))

    async def verdict_report(self) -> str:
        rows = []
        for verdict in await self.verdicts.get_all_verdicts():
            handle = await self.db.get_handle(verdict.handle_id)
            if handle is not None:
                rows.append((handle.username, verdict))
        return format_verdict_report(rows)

    async def _track_loop(self) -> None:
        """定时批量追踪"""
        interval = self.config.tracker.sweep_interval_minutes * 60

        while self.running:
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error(f"Sweep failed: {e}")
            await asyncio.sleep(interval)

    async def run(self) -> None:
        await self.init()
        self.running = True

        task = asyncio.create_task(self._track_loop())
        logger.info("CT Tracker started")

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await stop_event.wait()

        self.running = False
        task.cancel()
        await self.close()

        logger.info("CT Tracker stopped")


def parse_args(args: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="喊单追踪服务")
    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="配置文件路径 (默认: config.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="只执行一轮追踪后退出",
    )
    return parser.parse_args(args)


async def main() -> None:
    args = parse_args()
    config = load_config(Path(args.config))
    app = CTTracker(config)

    if args.once:
        await app.init()
        try:
            await app.run_sweep(wait_scheduled=True)
            report = await app.verdict_report()
            logger.info(f"Verdicts:\n{report}")
            if app.notifier is not None:
                await app.notifier.safe_send(report)
        finally:
            await app.close()
        return

    await app.run()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(main())
