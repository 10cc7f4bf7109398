# tests/tracker/test_performance_tracker.py
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from src.client.dexscreener import DexscreenerAPIError
from src.client.models import PriceSnapshot
from src.storage.database import Database
from src.storage.models import Confidence, DeathReason, EventType, Post, Signal, SignalType
from src.tracker.lifecycle import MissingPerformanceWindowError
from src.tracker.performance_tracker import PerformanceTracker

CA = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
T0 = 1_700_000_000
HOUR = 3600


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
async def db(tmp_path):
    db_path = tmp_path / "test.db"
    database = Database(str(db_path))
    await database.init()
    yield database
    await database.close()


@pytest.fixture
def client():
    client = MagicMock()
    client.get_current_price = AsyncMock()
    return client


@pytest.fixture
def clock():
    return FakeClock(T0 + 60)


@pytest.fixture
def tracker(db, client, clock):
    return PerformanceTracker(db, client, clock=clock)


def snap(price: float, liquidity: float = 50_000) -> PriceSnapshot:
    return PriceSnapshot(
        price=price,
        market_cap=price * 1_000_000,
        liquidity=liquidity,
        volume_24h=20_000,
        timestamp=T0 + 60,
    )


async def add_signal(db: Database, post_id: str = "p1", ca: str | None = CA) -> Signal:
    handle = await db.upsert_handle("caller")
    row_id = await db.insert_post(
        Post(id=None, handle_id=handle.id, post_id=post_id, text="text", timestamp=T0)
    )
    signal_id = await db.insert_signal(
        Signal(
            id=None,
            post_id=row_id,
            ca=ca,
            ticker=None,
            signal_type=SignalType.CA,
            confidence=Confidence.HIGH,
            dex_link=None,
            extracted_at=T0,
            mention_timestamp=T0,
        )
    )
    return await db.get_signal(signal_id)


async def test_initialize_creates_window(db, client, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = snap(1.0)

    window = await tracker.initialize(signal)

    assert window is not None
    assert window.id is not None
    assert window.mention_price == 1.0
    stored = await db.get_performance_window(signal.id)
    assert stored.mention_price == 1.0
    observations = await db.get_price_observations(signal.id)
    assert [o.event_type for o in observations] == [EventType.MENTION]
    client.get_current_price.assert_awaited_once_with(CA)


async def test_initialize_is_idempotent(db, client, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = snap(1.0)

    first = await tracker.initialize(signal)
    client.get_current_price.return_value = snap(5.0)
    second = await tracker.initialize(signal)

    assert second.mention_price == first.mention_price == 1.0
    assert client.get_current_price.await_count == 1


async def test_initialize_waits_for_delay(db, client, clock, tracker):
    signal = await add_signal(db)
    clock.now = T0 + 30

    assert await tracker.initialize(signal) is None
    client.get_current_price.assert_not_awaited()
    assert tracker.initialize_due_at(signal) == T0 + 60


async def test_initialize_defers_without_price(db, client, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = None

    assert await tracker.initialize(signal) is None
    assert await db.get_performance_window(signal.id) is None


async def test_initialize_skips_ticker_only_signal(db, client, tracker):
    signal = await add_signal(db, ca=None)

    assert await tracker.initialize(signal) is None
    client.get_current_price.assert_not_awaited()


@pytest.mark.parametrize(
    "error",
    [
        DexscreenerAPIError(500, "boom"),
        aiohttp.ClientError("connection reset"),
        TimeoutError(),
    ],
)
async def test_transient_failures_are_skipped(db, client, tracker, error):
    signal = await add_signal(db)
    client.get_current_price.side_effect = error

    assert await tracker.initialize(signal) is None
    assert await db.get_performance_window(signal.id) is None


async def test_update_without_window_raises(db, tracker):
    signal = await add_signal(db)

    with pytest.raises(MissingPerformanceWindowError):
        await tracker.update(signal)


async def test_update_without_price_leaves_window(db, client, clock, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = snap(1.0)
    await tracker.initialize(signal)

    clock.now = T0 + HOUR
    client.get_current_price.return_value = None

    assert await tracker.update(signal) is None
    stored = await db.get_performance_window(signal.id)
    assert stored.last_updated == T0 + 60


async def test_end_to_end_rug(db, client, clock, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = snap(1.0)
    await tracker.initialize(signal)

    clock.now = T0 + 2 * HOUR
    client.get_current_price.return_value = snap(3.0)
    window = await tracker.update(signal)
    assert window.ath_roi == 200.0
    assert window.lifecycle_complete is False

    clock.now = T0 + 10 * HOUR
    client.get_current_price.return_value = snap(0.05)
    window = await tracker.update(signal)

    assert window.ath_roi == 200.0
    assert window.ath_timestamp == T0 + 2 * HOUR
    assert window.atl_roi == pytest.approx(-95.0)
    assert window.current_roi == pytest.approx(-95.0)
    assert window.is_rug is True
    assert window.is_dead is True
    assert window.death_reason == DeathReason.RUG
    assert window.death_timestamp == T0 + 10 * HOUR
    assert window.lifecycle_complete is True

    stored = await db.get_performance_window(signal.id)
    assert stored.death_reason == DeathReason.RUG
    assert await db.get_active_signals() == []
    events = [o.event_type for o in await db.get_price_observations(signal.id)]
    assert events == [EventType.MENTION, EventType.ATH, EventType.DEATH]


async def test_terminal_state_is_sticky(db, client, clock, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = snap(1.0)
    await tracker.initialize(signal)

    clock.now = T0 + HOUR
    client.get_current_price.return_value = snap(1.2, liquidity=1_000)
    dead = await tracker.update(signal)
    assert dead.death_reason == DeathReason.LOW_LIQUIDITY
    observations_before = await db.get_price_observations(signal.id)
    calls_before = client.get_current_price.await_count

    clock.now = T0 + 2 * HOUR
    client.get_current_price.return_value = snap(9.0)
    again = await tracker.update(signal)

    assert again == dead
    assert await db.get_performance_window(signal.id) == dead
    assert await db.get_price_observations(signal.id) == observations_before
    assert client.get_current_price.await_count == calls_before


async def test_ath_and_atl_are_monotonic(db, client, clock, tracker):
    signal = await add_signal(db)
    client.get_current_price.return_value = snap(1.0)
    await tracker.initialize(signal)

    last_ath, last_atl = 1.0, 1.0
    for hour, price in enumerate([1.5, 1.2, 0.8, 0.9, 1.4, 0.85], start=1):
        clock.now = T0 + hour * HOUR
        client.get_current_price.return_value = snap(price)
        window = await tracker.update(signal)

        assert window.ath_price >= last_ath
        assert window.atl_price <= last_atl
        assert window.current_price == price
        last_ath, last_atl = window.ath_price, window.atl_price

    assert last_ath == 1.5
    assert last_atl == 0.8
    assert window.lifecycle_complete is False


async def test_rug_boundary_at_48_hours(db, client, clock, tracker):
    at_boundary = await add_signal(db, post_id="p1")
    after_boundary = await add_signal(db, post_id="p2")
    client.get_current_price.return_value = snap(1.0)
    await tracker.initialize(at_boundary)
    await tracker.initialize(after_boundary)

    client.get_current_price.return_value = snap(0.05)
    clock.now = T0 + 48 * HOUR
    window = await tracker.update(at_boundary)
    assert window.death_reason == DeathReason.RUG

    clock.now = T0 + 48 * HOUR + 1
    window = await tracker.update(after_boundary)
    assert window.is_dead is False
    assert window.current_roi == pytest.approx(-95.0)


async def test_list_active_and_uninitialized(db, client, tracker):
    first = await add_signal(db, post_id="p1")
    second = await add_signal(db, post_id="p2")
    client.get_current_price.return_value = snap(1.0)
    await tracker.initialize(first)

    assert [s.id for s in await tracker.list_active()] == [first.id]
    assert [s.id for s in await tracker.list_uninitialized()] == [second.id]
