"""Dexscreener API 客户端"""

import json
import time
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from src.client.models import PriceSnapshot, TokenInfo, TokenPair
from src.client.rate_limiter import RateLimiter


class DexscreenerAPIError(Exception):
    """Dexscreener API 错误"""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(message)


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_pair(data: dict[str, Any]) -> TokenPair:
    base = data.get("baseToken") or {}
    return TokenPair(
        chain_id=data.get("chainId", ""),
        dex_id=data.get("dexId", ""),
        pair_address=data.get("pairAddress", ""),
        base_address=base.get("address", ""),
        base_name=base.get("name", ""),
        base_symbol=base.get("symbol", ""),
        price_usd=_to_float(data.get("priceUsd")),
        liquidity_usd=float((data.get("liquidity") or {}).get("usd") or 0),
        market_cap=float(data.get("marketCap") or 0),
        fdv=float(data.get("fdv") or 0),
        volume_24h=float((data.get("volume") or {}).get("h24") or 0),
    )


@dataclass
class DexscreenerClient:
    """Dexscreener 行情客户端，所有请求都经过注入的限速器"""

    base_url: str = "https://api.dexscreener.com"
    chain: str = "solana"
    timeout_seconds: float = 10.0
    rate_limiter: RateLimiter = field(default_factory=RateLimiter)
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"Accept": "application/json", "User-Agent": "CT-Tracker/1.0"},
            )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "DexscreenerClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """发送 GET 请求，404 返回 None"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context.")

        await self.rate_limiter.acquire()
        response = await self._session.get(f"{self.base_url}{endpoint}", params=params)

        if response.status == 404:
            return None
        if response.status != 200:
            error_text = await response.text()
            try:
                error_data = json.loads(error_text)
                raise DexscreenerAPIError(response.status, error_data.get("message", error_text))
            except json.JSONDecodeError:
                raise DexscreenerAPIError(response.status, error_text)

        return await response.json()

    async def get_token_pairs(self, ca: str) -> list[TokenPair]:
        """获取代币在当前链上、有流动性的交易对"""
        data = await self._request(f"/latest/dex/tokens/{ca}")
        if not data or not data.get("pairs"):
            return []
        pairs = [parse_pair(p) for p in data["pairs"]]
        return [p for p in pairs if p.chain_id == self.chain and p.liquidity_usd > 0]

    async def get_best_pair(self, ca: str) -> TokenPair | None:
        """流动性最高的交易对"""
        pairs = await self.get_token_pairs(ca)
        if not pairs:
            return None
        return max(pairs, key=lambda p: p.liquidity_usd)

    async def get_current_price(self, ca: str) -> PriceSnapshot | None:
        """获取当前行情，价格不可用时返回 None"""
        pair = await self.get_best_pair(ca)
        if pair is None or pair.price_usd is None or not pair.price_usd > 0:
            return None
        return PriceSnapshot(
            price=pair.price_usd,
            market_cap=pair.market_cap or pair.fdv or 0.0,
            liquidity=pair.liquidity_usd,
            volume_24h=pair.volume_24h,
            timestamp=int(time.time()),
        )

    async def get_token_info(self, ca: str) -> TokenInfo | None:
        pair = await self.get_best_pair(ca)
        if pair is None:
            return None
        return TokenInfo(name=pair.base_name, symbol=pair.base_symbol)
