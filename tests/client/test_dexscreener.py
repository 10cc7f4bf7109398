# tests/client/test_dexscreener.py
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.client.dexscreener import DexscreenerAPIError, DexscreenerClient, parse_pair

CA = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"


def make_pair(
    liquidity: float,
    price: str | None = "0.0012",
    chain: str = "solana",
    market_cap: float | None = 1_200_000,
    fdv: float | None = 1_500_000,
) -> dict:
    return {
        "chainId": chain,
        "dexId": "raydium",
        "pairAddress": f"pair-{liquidity}",
        "baseToken": {"address": CA, "name": "Test Token", "symbol": "TEST"},
        "priceUsd": price,
        "liquidity": {"usd": liquidity},
        "marketCap": market_cap,
        "fdv": fdv,
        "volume": {"h24": 250_000},
    }


def make_client(status: int = 200, payload=None, text: str = "") -> DexscreenerClient:
    limiter = MagicMock()
    limiter.acquire = AsyncMock()
    client = DexscreenerClient(rate_limiter=limiter)

    mock_response = MagicMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=payload)
    mock_response.text = AsyncMock(return_value=text)

    mock_session = MagicMock()
    mock_session.get = AsyncMock(return_value=mock_response)
    client._session = mock_session
    return client


def test_client_defaults():
    client = DexscreenerClient()
    assert client.base_url == "https://api.dexscreener.com"
    assert client.chain == "solana"


def test_parse_pair():
    pair = parse_pair(make_pair(80_000))

    assert pair.base_symbol == "TEST"
    assert pair.price_usd == 0.0012
    assert pair.liquidity_usd == 80_000
    assert pair.volume_24h == 250_000


def test_parse_pair_with_missing_fields():
    pair = parse_pair({"chainId": "solana"})

    assert pair.price_usd is None
    assert pair.liquidity_usd == 0
    assert pair.market_cap == 0


async def test_request_requires_session():
    client = DexscreenerClient()

    with pytest.raises(RuntimeError):
        await client._request("/latest/dex/tokens/x")


async def test_request_goes_through_rate_limiter():
    client = make_client(payload={"pairs": []})

    await client._request(f"/latest/dex/tokens/{CA}")

    client.rate_limiter.acquire.assert_awaited_once()
    client._session.get.assert_called_once_with(
        f"https://api.dexscreener.com/latest/dex/tokens/{CA}", params=None
    )


async def test_request_404_returns_none():
    client = make_client(status=404)

    assert await client._request("/latest/dex/tokens/x") is None


async def test_request_error_with_json_message():
    client = make_client(status=429, text='{"message": "Rate limit exceeded"}')

    with pytest.raises(DexscreenerAPIError, match="Rate limit exceeded") as exc_info:
        await client._request("/latest/dex/tokens/x")
    assert exc_info.value.status == 429


async def test_request_error_with_plain_text():
    client = make_client(status=502, text="Bad Gateway")

    with pytest.raises(DexscreenerAPIError, match="Bad Gateway"):
        await client._request("/latest/dex/tokens/x")


async def test_get_token_pairs_filters_chain_and_liquidity():
    client = make_client(
        payload={
            "pairs": [
                make_pair(50_000),
                make_pair(90_000, chain="ethereum"),
                make_pair(0),
            ]
        }
    )

    pairs = await client.get_token_pairs(CA)

    assert len(pairs) == 1
    assert pairs[0].liquidity_usd == 50_000


async def test_get_best_pair_picks_highest_liquidity():
    client = make_client(payload={"pairs": [make_pair(20_000), make_pair(75_000)]})

    pair = await client.get_best_pair(CA)

    assert pair is not None
    assert pair.liquidity_usd == 75_000


async def test_get_current_price():
    client = make_client(payload={"pairs": [make_pair(60_000)]})

    snapshot = await client.get_current_price(CA)

    assert snapshot is not None
    assert snapshot.price == 0.0012
    assert snapshot.market_cap == 1_200_000
    assert snapshot.liquidity == 60_000
    assert snapshot.volume_24h == 250_000
    assert snapshot.timestamp > 0


async def test_get_current_price_falls_back_to_fdv():
    client = make_client(payload={"pairs": [make_pair(60_000, market_cap=None)]})

    snapshot = await client.get_current_price(CA)

    assert snapshot is not None
    assert snapshot.market_cap == 1_500_000


async def test_get_current_price_without_usable_price():
    for price in (None, "0", "not-a-number"):
        client = make_client(payload={"pairs": [make_pair(60_000, price=price)]})
        assert await client.get_current_price(CA) is None


async def test_get_current_price_unknown_token():
    assert await make_client(payload={"pairs": None}).get_current_price(CA) is None
    assert await make_client(status=404).get_current_price(CA) is None


async def test_get_token_info():
    client = make_client(payload={"pairs": [make_pair(60_000)]})

    info = await client.get_token_info(CA)

    assert info is not None
    assert info.name == "Test Token"
    assert info.symbol == "TEST"
