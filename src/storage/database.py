# src/storage/database.py
import asyncio
import time
from collections.abc import Sequence
from typing import Any

import aiosqlite

from .models import (
    Confidence,
    DeathReason,
    EventType,
    Handle,
    HandleVerdict,
    PerformanceWindow,
    Post,
    PriceObservation,
    Signal,
    SignalOutcome,
    SignalType,
    Token,
)

HANDLE_COLUMNS = """id, username, display_name, status, first_seen, last_ingested,
                    total_posts_ingested"""

SIGNAL_COLUMNS = """s.id, s.post_id, s.ca, s.ticker, s.signal_type, s.confidence,
                    s.dex_link, s.extracted_at, p.timestamp"""

WINDOW_COLUMNS = """pw.id, pw.signal_id, pw.mention_price, pw.mention_market_cap,
                    pw.mention_liquidity, pw.ath_price, pw.ath_timestamp, pw.ath_roi,
                    pw.atl_price, pw.atl_timestamp, pw.atl_roi, pw.current_price,
                    pw.current_roi, pw.is_dead, pw.death_timestamp, pw.death_reason,
                    pw.is_rug, pw.rug_timestamp, pw.lifecycle_complete, pw.last_updated"""

VERDICT_COLUMNS = """id, handle_id, total_calls, completed_calls, win_rate, median_roi,
                     avg_roi, avg_time_to_ath, avg_time_to_death, rug_rate, death_rate,
                     avg_mention_market_cap, verdict_label, last_calculated"""


def _row_to_signal(row: Sequence[Any]) -> Signal:
    return Signal(
        id=row[0],
        post_id=row[1],
        ca=row[2],
        ticker=row[3],
        signal_type=SignalType(row[4]),
        confidence=Confidence(row[5]),
        dex_link=row[6],
        extracted_at=row[7],
        mention_timestamp=row[8],
    )


def _row_to_window(row: Sequence[Any]) -> PerformanceWindow:
    return PerformanceWindow(
        id=row[0],
        signal_id=row[1],
        mention_price=row[2],
        mention_market_cap=row[3],
        mention_liquidity=row[4],
        ath_price=row[5],
        ath_timestamp=row[6],
        ath_roi=row[7],
        atl_price=row[8],
        atl_timestamp=row[9],
        atl_roi=row[10],
        current_price=row[11],
        current_roi=row[12],
        is_dead=bool(row[13]),
        death_timestamp=row[14],
        death_reason=DeathReason(row[15]),
        is_rug=bool(row[16]),
        rug_timestamp=row[17],
        lifecycle_complete=bool(row[18]),
        last_updated=row[19],
    )


def _window_values(window: PerformanceWindow) -> tuple[Any, ...]:
    return (
        window.mention_price,
        window.mention_market_cap,
        window.mention_liquidity,
        window.ath_price,
        window.ath_timestamp,
        window.ath_roi,
        window.atl_price,
        window.atl_timestamp,
        window.atl_roi,
        window.current_price,
        window.current_roi,
        int(window.is_dead),
        window.death_timestamp,
        window.death_reason.value,
        int(window.is_rug),
        window.rug_timestamp,
        int(window.lifecycle_complete),
        window.last_updated,
    )


class Database:
    def __init__(self, path: str):
        self.path = path
        self.conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def init(self) -> None:
        self.conn = await aiosqlite.connect(self.path)
        await self.conn.execute("PRAGMA foreign_keys = ON")
        await self._create_tables()

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()

    async def _create_tables(self) -> None:
        assert self.conn is not None
        await self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS handles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT UNIQUE NOT NULL,
                display_name TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                first_seen INTEGER NOT NULL,
                last_ingested INTEGER,
                total_posts_ingested INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS posts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                handle_id INTEGER NOT NULL,
                post_id TEXT UNIQUE NOT NULL,
                text TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (handle_id) REFERENCES handles(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_posts_handle_time ON posts(handle_id, timestamp);

            CREATE TABLE IF NOT EXISTS signals (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                post_id INTEGER NOT NULL,
                ca TEXT,
                ticker TEXT,
                signal_type TEXT NOT NULL,
                confidence TEXT NOT NULL,
                dex_link TEXT,
                extracted_at INTEGER NOT NULL,
                FOREIGN KEY (post_id) REFERENCES posts(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_signals_post ON signals(post_id);
            CREATE INDEX IF NOT EXISTS idx_signals_ca ON signals(ca);

            CREATE TABLE IF NOT EXISTS tokens (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ca TEXT UNIQUE NOT NULL,
                chain TEXT NOT NULL DEFAULT 'solana',
                name TEXT,
                symbol TEXT,
                first_seen INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS performance_windows (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                signal_id INTEGER UNIQUE NOT NULL,
                mention_price REAL NOT NULL,
                mention_market_cap REAL NOT NULL,
                mention_liquidity REAL NOT NULL,
                ath_price REAL NOT NULL,
                ath_timestamp INTEGER,
                ath_roi REAL NOT NULL DEFAULT 0,
                atl_price REAL NOT NULL,
                atl_timestamp INTEGER,
                atl_roi REAL NOT NULL DEFAULT 0,
                current_price REAL NOT NULL,
                current_roi REAL NOT NULL DEFAULT 0,
                is_dead INTEGER NOT NULL DEFAULT 0,
                death_timestamp INTEGER,
                death_reason TEXT NOT NULL DEFAULT 'none',
                is_rug INTEGER NOT NULL DEFAULT 0,
                rug_timestamp INTEGER,
                lifecycle_complete INTEGER NOT NULL DEFAULT 0,
                last_updated INTEGER NOT NULL,
                FOREIGN KEY (signal_id) REFERENCES signals(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_performance_complete
                ON performance_windows(lifecycle_complete);

            CREATE TABLE IF NOT EXISTS price_observations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                signal_id INTEGER NOT NULL,
                price REAL NOT NULL,
                market_cap REAL NOT NULL,
                liquidity REAL NOT NULL,
                volume_24h REAL NOT NULL,
                timestamp INTEGER NOT NULL,
                event_type TEXT NOT NULL,
                FOREIGN KEY (signal_id) REFERENCES signals(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_observations_signal
                ON price_observations(signal_id, timestamp);

            CREATE TABLE IF NOT EXISTS handle_verdicts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                handle_id INTEGER UNIQUE NOT NULL,
                total_calls INTEGER NOT NULL DEFAULT 0,
                completed_calls INTEGER NOT NULL DEFAULT 0,
                win_rate REAL NOT NULL DEFAULT 0,
                median_roi REAL NOT NULL DEFAULT 0,
                avg_roi REAL NOT NULL DEFAULT 0,
                avg_time_to_ath REAL,
                avg_time_to_death REAL,
                rug_rate REAL NOT NULL DEFAULT 0,
                death_rate REAL NOT NULL DEFAULT 0,
                avg_mention_market_cap REAL,
                verdict_label TEXT NOT NULL,
                last_calculated INTEGER NOT NULL,
                FOREIGN KEY (handle_id) REFERENCES handles(id) ON DELETE CASCADE
            );
        """)
        await self.conn.commit()

    async def _write(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Cursor:
        """单语句写入；所有写入共用一把锁，失败时回滚"""
        assert self.conn is not None
        async with self._write_lock:
            try:
                cursor = await self.conn.execute(sql, params)
                await self.conn.commit()
            except Exception:
                await self.conn.rollback()
                raise
        return cursor

    # --- handles / posts -------------------------------------------------

    async def upsert_handle(self, username: str, display_name: str | None = None) -> Handle:
        """获取或创建 handle（用户名去掉 @）"""
        username = username.lstrip("@")
        await self._write(
            """INSERT OR IGNORE INTO handles (username, display_name, first_seen)
               VALUES (?, ?, ?)""",
            (username, display_name, int(time.time())),
        )
        handle = await self.get_handle_by_username(username)
        assert handle is not None
        return handle

    async def get_handle_by_username(self, username: str) -> Handle | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"SELECT {HANDLE_COLUMNS} FROM handles WHERE username = ?",
            (username.lstrip("@"),),
        )
        row = await cursor.fetchone()
        return Handle(*row) if row else None

    async def get_handle(self, handle_id: int) -> Handle | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"SELECT {HANDLE_COLUMNS} FROM handles WHERE id = ?", (handle_id,)
        )
        row = await cursor.fetchone()
        return Handle(*row) if row else None

    async def get_handles(self, status: str | None = None) -> list[Handle]:
        assert self.conn is not None
        query = f"SELECT {HANDLE_COLUMNS} FROM handles"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status,)
        cursor = await self.conn.execute(query + " ORDER BY id", params)
        rows = await cursor.fetchall()
        return [Handle(*row) for row in rows]

    async def get_handle_for_signal(self, signal_id: int) -> Handle | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT h.id, h.username, h.display_name, h.status, h.first_seen,
                      h.last_ingested, h.total_posts_ingested
               FROM handles h
               JOIN posts p ON p.handle_id = h.id
               JOIN signals s ON s.post_id = p.id
               WHERE s.id = ?""",
            (signal_id,),
        )
        row = await cursor.fetchone()
        return Handle(*row) if row else None

    async def record_ingestion(self, handle_id: int, new_posts: int, timestamp: int) -> None:
        await self._write(
            """UPDATE handles
               SET total_posts_ingested = total_posts_ingested + ?, last_ingested = ?
               WHERE id = ?""",
            (new_posts, timestamp, handle_id),
        )

    async def insert_post(self, post: Post) -> int | None:
        """插入帖子，外部 post_id 重复时返回 None"""
        cursor = await self._write(
            """INSERT OR IGNORE INTO posts (handle_id, post_id, text, timestamp)
               VALUES (?, ?, ?, ?)""",
            (post.handle_id, post.post_id, post.text, post.timestamp),
        )
        if cursor.rowcount == 0:
            return None
        return cursor.lastrowid

    async def get_posts(self, handle_id: int) -> list[Post]:
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT id, handle_id, post_id, text, timestamp
               FROM posts WHERE handle_id = ? ORDER BY timestamp DESC""",
            (handle_id,),
        )
        rows = await cursor.fetchall()
        return [Post(*row) for row in rows]

    # --- signals / tokens ------------------------------------------------

    async def insert_signal(self, signal: Signal) -> int:
        cursor = await self._write(
            """INSERT INTO signals
               (post_id, ca, ticker, signal_type, confidence, dex_link, extracted_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                signal.post_id,
                signal.ca,
                signal.ticker,
                signal.signal_type.value,
                signal.confidence.value,
                signal.dex_link,
                signal.extracted_at,
            ),
        )
        return cursor.lastrowid or 0

    async def get_signal(self, signal_id: int) -> Signal | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"""SELECT {SIGNAL_COLUMNS}
                FROM signals s JOIN posts p ON s.post_id = p.id
                WHERE s.id = ?""",
            (signal_id,),
        )
        row = await cursor.fetchone()
        return _row_to_signal(row) if row else None

    async def get_signals_for_post(self, post_id: int) -> list[Signal]:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"""SELECT {SIGNAL_COLUMNS}
                FROM signals s JOIN posts p ON s.post_id = p.id
                WHERE s.post_id = ? ORDER BY s.id""",
            (post_id,),
        )
        rows = await cursor.fetchall()
        return [_row_to_signal(row) for row in rows]

    async def delete_signal(self, signal_id: int) -> None:
        """删除信号，表现窗口和价格观测随之级联删除"""
        await self._write("DELETE FROM signals WHERE id = ?", (signal_id,))

    async def get_uninitialized_signals(self, mentioned_since: int | None = None) -> list[Signal]:
        """
        有地址但尚未建立表现窗口的信号

        Args:
            mentioned_since: 只返回此时间 (s) 之后喊单的信号；None 表示不限
        """
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"""SELECT {SIGNAL_COLUMNS}
                FROM signals s JOIN posts p ON s.post_id = p.id
                WHERE s.ca IS NOT NULL
                  AND s.id NOT IN (SELECT signal_id FROM performance_windows)
                  AND (? IS NULL OR p.timestamp >= ?)
                ORDER BY p.timestamp ASC, s.id ASC""",
            (mentioned_since, mentioned_since),
        )
        rows = await cursor.fetchall()
        return [_row_to_signal(row) for row in rows]

    async def get_active_signals(self) -> list[Signal]:
        """表现窗口尚未结束的信号"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"""SELECT {SIGNAL_COLUMNS}
                FROM signals s
                JOIN posts p ON s.post_id = p.id
                JOIN performance_windows pw ON pw.signal_id = s.id
                WHERE pw.lifecycle_complete = 0
                ORDER BY p.timestamp ASC, s.id ASC"""
        )
        rows = await cursor.fetchall()
        return [_row_to_signal(row) for row in rows]

    async def upsert_token(self, token: Token) -> None:
        await self._write(
            """INSERT OR IGNORE INTO tokens (ca, chain, name, symbol, first_seen)
               VALUES (?, ?, ?, ?, ?)""",
            (token.ca, token.chain, token.name, token.symbol, token.first_seen),
        )

    async def get_token(self, ca: str) -> Token | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            "SELECT id, ca, chain, name, symbol, first_seen FROM tokens WHERE ca = ?",
            (ca,),
        )
        row = await cursor.fetchone()
        return Token(*row) if row else None

    # --- performance windows ---------------------------------------------

    async def create_performance_window(
        self, window: PerformanceWindow, observation: PriceObservation
    ) -> int:
        """在同一事务中创建表现窗口并写入 mention 观测"""
        assert self.conn is not None
        async with self._write_lock:
            try:
                cursor = await self.conn.execute(
                    """INSERT INTO performance_windows
                       (signal_id, mention_price, mention_market_cap, mention_liquidity,
                        ath_price, ath_timestamp, ath_roi, atl_price, atl_timestamp, atl_roi,
                        current_price, current_roi, is_dead, death_timestamp, death_reason,
                        is_rug, rug_timestamp, lifecycle_complete, last_updated)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (window.signal_id, *_window_values(window)),
                )
                await self._insert_observation(observation)
                await self.conn.commit()
            except Exception:
                await self.conn.rollback()
                raise
        return cursor.lastrowid or 0

    async def get_performance_window(self, signal_id: int) -> PerformanceWindow | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"SELECT {WINDOW_COLUMNS} FROM performance_windows pw WHERE pw.signal_id = ?",
            (signal_id,),
        )
        row = await cursor.fetchone()
        return _row_to_window(row) if row else None

    async def save_performance_update(
        self, window: PerformanceWindow, observations: Sequence[PriceObservation]
    ) -> bool:
        """
        写回一次更新及其观测事件

        已结束的窗口不会被改写。

        Returns:
            是否写入
        """
        assert self.conn is not None
        async with self._write_lock:
            try:
                cursor = await self.conn.execute(
                    """UPDATE performance_windows SET
                           mention_price = ?, mention_market_cap = ?, mention_liquidity = ?,
                           ath_price = ?, ath_timestamp = ?, ath_roi = ?,
                           atl_price = ?, atl_timestamp = ?, atl_roi = ?,
                           current_price = ?, current_roi = ?,
                           is_dead = ?, death_timestamp = ?, death_reason = ?,
                           is_rug = ?, rug_timestamp = ?, lifecycle_complete = ?,
                           last_updated = ?
                       WHERE signal_id = ? AND lifecycle_complete = 0""",
                    (*_window_values(window), window.signal_id),
                )
                if cursor.rowcount == 0:
                    await self.conn.rollback()
                    return False
                for observation in observations:
                    await self._insert_observation(observation)
                await self.conn.commit()
            except Exception:
                await self.conn.rollback()
                raise
        return True

    async def _insert_observation(self, observation: PriceObservation) -> None:
        assert self.conn is not None
        await self.conn.execute(
            """INSERT INTO price_observations
               (signal_id, price, market_cap, liquidity, volume_24h, timestamp, event_type)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                observation.signal_id,
                observation.price,
                observation.market_cap,
                observation.liquidity,
                observation.volume_24h,
                observation.timestamp,
                observation.event_type.value,
            ),
        )

    async def get_price_observations(self, signal_id: int) -> list[PriceObservation]:
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT id, signal_id, price, market_cap, liquidity, volume_24h,
                      timestamp, event_type
               FROM price_observations WHERE signal_id = ?
               ORDER BY id ASC""",
            (signal_id,),
        )
        rows = await cursor.fetchall()
        return [PriceObservation(*row[:7], event_type=EventType(row[7])) for row in rows]

    # --- verdicts --------------------------------------------------------

    async def get_signal_outcomes(self, handle_id: int) -> list[SignalOutcome]:
        """获取 handle 下所有已建立表现窗口的信号"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"""SELECT {WINDOW_COLUMNS}, p.timestamp
                FROM performance_windows pw
                JOIN signals s ON pw.signal_id = s.id
                JOIN posts p ON s.post_id = p.id
                WHERE p.handle_id = ? AND pw.mention_price IS NOT NULL
                ORDER BY p.timestamp ASC, s.id ASC""",
            (handle_id,),
        )
        rows = await cursor.fetchall()
        return [
            SignalOutcome(window=_row_to_window(row[:20]), mention_timestamp=row[20])
            for row in rows
        ]

    async def upsert_handle_verdict(self, verdict: HandleVerdict) -> None:
        await self._write(
            """INSERT INTO handle_verdicts
               (handle_id, total_calls, completed_calls, win_rate, median_roi, avg_roi,
                avg_time_to_ath, avg_time_to_death, rug_rate, death_rate,
                avg_mention_market_cap, verdict_label, last_calculated)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(handle_id) DO UPDATE SET
                   total_calls = excluded.total_calls,
                   completed_calls = excluded.completed_calls,
                   win_rate = excluded.win_rate,
                   median_roi = excluded.median_roi,
                   avg_roi = excluded.avg_roi,
                   avg_time_to_ath = excluded.avg_time_to_ath,
                   avg_time_to_death = excluded.avg_time_to_death,
                   rug_rate = excluded.rug_rate,
                   death_rate = excluded.death_rate,
                   avg_mention_market_cap = excluded.avg_mention_market_cap,
                   verdict_label = excluded.verdict_label,
                   last_calculated = excluded.last_calculated""",
            (
                verdict.handle_id,
                verdict.total_calls,
                verdict.completed_calls,
                verdict.win_rate,
                verdict.median_roi,
                verdict.avg_roi,
                verdict.avg_time_to_ath,
                verdict.avg_time_to_death,
                verdict.rug_rate,
                verdict.death_rate,
                verdict.avg_mention_market_cap,
                verdict.verdict_label,
                verdict.last_calculated,
            ),
        )

    async def delete_handle_verdict(self, handle_id: int) -> None:
        """没有可评分的信号时清除旧快照"""
        await self._write("DELETE FROM handle_verdicts WHERE handle_id = ?", (handle_id,))

    async def get_handle_verdict(self, handle_id: int) -> HandleVerdict | None:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"SELECT {VERDICT_COLUMNS} FROM handle_verdicts WHERE handle_id = ?",
            (handle_id,),
        )
        row = await cursor.fetchone()
        return HandleVerdict(*row) if row else None

    async def get_handle_verdicts(self) -> list[HandleVerdict]:
        assert self.conn is not None
        cursor = await self.conn.execute(
            f"SELECT {VERDICT_COLUMNS} FROM handle_verdicts ORDER BY win_rate DESC"
        )
        rows = await cursor.fetchall()
        return [HandleVerdict(*row) for row in rows]
