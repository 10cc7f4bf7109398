"""Dexscreener API 数据模型"""

from dataclasses import dataclass


@dataclass
class TokenPair:
    """交易对"""

    chain_id: str
    dex_id: str
    pair_address: str
    base_address: str
    base_name: str
    base_symbol: str
    price_usd: float | None
    liquidity_usd: float
    market_cap: float
    fdv: float
    volume_24h: float


@dataclass
class PriceSnapshot:
    """一次行情观测"""

    price: float
    market_cap: float
    liquidity: float
    volume_24h: float
    timestamp: int


@dataclass
class TokenInfo:
    """代币基本信息"""

    name: str
    symbol: str
