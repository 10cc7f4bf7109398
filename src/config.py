# src/config.py
from pathlib import Path

import yaml
from pydantic import BaseModel

from src.tracker.lifecycle import LifecycleRules


class DatabaseConfig(BaseModel):
    path: str = "data/ct-tracker.db"


class MarketDataConfig(BaseModel):
    base_url: str = "https://api.dexscreener.com"
    chain: str = "solana"
    min_request_interval_seconds: float = 1.0
    timeout_seconds: float = 10.0


class TrackerConfig(BaseModel):
    init_delay_seconds: int = 60
    liquidity_floor_usd: float = 5000
    dump_threshold_pct: float = 70
    rug_threshold_pct: float = 90
    window_hours: int = 48
    sweep_interval_minutes: int = 5

    def rules(self) -> LifecycleRules:
        return LifecycleRules(
            init_delay_seconds=self.init_delay_seconds,
            liquidity_floor_usd=self.liquidity_floor_usd,
            dump_threshold_pct=self.dump_threshold_pct,
            rug_threshold_pct=self.rug_threshold_pct,
            window_seconds=self.window_hours * 3600,
        )


class TelegramConfig(BaseModel):
    bot_token: str
    chat_id: str


class NotificationsConfig(BaseModel):
    rug_alerts: bool = True
    death_alerts: bool = False
    verdict_changes: bool = True


class Config(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    market_data: MarketDataConfig = MarketDataConfig()
    tracker: TrackerConfig = TrackerConfig()
    telegram: TelegramConfig | None = None
    notifications: NotificationsConfig = NotificationsConfig()


def load_config(path: Path) -> Config:
    with open(path) as f:
        data = yaml.safe_load(f)
    return Config(**(data or {}))
