# src/storage/models.py
from dataclasses import dataclass
from enum import Enum


class SignalType(Enum):
    CA = "ca"
    DEX_LINK = "dex_link"
    TICKER = "ticker"


class Confidence(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DeathReason(Enum):
    NONE = "none"
    LOW_LIQUIDITY = "low_liquidity"
    PRICE_DUMP_70 = "price_dump_70"
    RUG = "rug"


class EventType(Enum):
    MENTION = "mention"
    ATH = "ath"
    DEATH = "death"


@dataclass
class Handle:
    id: int | None
    username: str
    display_name: str | None
    status: str  # active / paused
    first_seen: int
    last_ingested: int | None
    total_posts_ingested: int


@dataclass
class Post:
    id: int | None
    handle_id: int
    post_id: str  # 外部帖子 ID
    text: str
    timestamp: int  # 发帖时间 (s)，即喊单时间


@dataclass
class Signal:
    id: int | None
    post_id: int  # posts.id
    ca: str | None  # 仅 ticker 的信号没有地址
    ticker: str | None
    signal_type: SignalType
    confidence: Confidence
    dex_link: str | None
    extracted_at: int
    mention_timestamp: int  # 来自 posts.timestamp


@dataclass
class Token:
    id: int | None
    ca: str
    chain: str
    name: str | None
    symbol: str | None
    first_seen: int


@dataclass
class PerformanceWindow:
    id: int | None
    signal_id: int
    mention_price: float
    mention_market_cap: float
    mention_liquidity: float
    ath_price: float
    ath_timestamp: int | None
    ath_roi: float
    atl_price: float
    atl_timestamp: int | None
    atl_roi: float
    current_price: float
    current_roi: float
    is_dead: bool
    death_timestamp: int | None
    death_reason: DeathReason
    is_rug: bool
    rug_timestamp: int | None
    lifecycle_complete: bool
    last_updated: int


@dataclass
class PriceObservation:
    id: int | None
    signal_id: int
    price: float
    market_cap: float
    liquidity: float
    volume_24h: float
    timestamp: int
    event_type: EventType


@dataclass
class SignalOutcome:
    """判定输入：一个信号的表现窗口及其喊单时间"""

    window: PerformanceWindow
    mention_timestamp: int


@dataclass
class HandleVerdict:
    id: int | None
    handle_id: int
    total_calls: int
    completed_calls: int
    win_rate: float
    median_roi: float
    avg_roi: float
    avg_time_to_ath: float | None  # 秒
    avg_time_to_death: float | None  # 秒
    rug_rate: float
    death_rate: float
    avg_mention_market_cap: float | None
    verdict_label: str
    last_calculated: int
