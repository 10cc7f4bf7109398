# src/ingest/ingestor.py
import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp

from src.client.dexscreener import DexscreenerAPIError
from src.extractor.signals import extract_signals
from src.storage.database import Database
from src.storage.models import Post, Signal, Token

if TYPE_CHECKING:
    from src.client.dexscreener import DexscreenerClient

logger = logging.getLogger(__name__)


@dataclass
class RawPost:
    username: str
    post_id: str
    text: str
    timestamp: int


@dataclass
class IngestResult:
    posts: int = 0
    new_posts: int = 0
    signals: int = 0


class PostIngestor:
    """帖子入库并提取信号"""

    def __init__(
        self,
        db: Database,
        client: "DexscreenerClient | None" = None,
        chain: str = "solana",
    ):
        self.db = db
        self.client = client
        self.chain = chain

    async def ingest_post(
        self, username: str, post_id: str, text: str, timestamp: int
    ) -> list[int]:
        """
        写入一条帖子并保存其中的信号

        Returns:
            新信号 ID 列表；帖子已存在时为空
        """
        _, signal_ids = await self._ingest(username, post_id, text, timestamp)
        return signal_ids

    async def _ingest(
        self, username: str, post_id: str, text: str, timestamp: int
    ) -> tuple[bool, list[int]]:
        handle = await self.db.upsert_handle(username)
        assert handle.id is not None

        row_id = await self.db.insert_post(
            Post(id=None, handle_id=handle.id, post_id=post_id, text=text, timestamp=timestamp)
        )
        if row_id is None:
            logger.debug(f"Post {post_id} already ingested")
            return False, []

        now = int(time.time())
        signal_ids = []
        for extracted in extract_signals(text):
            signal_id = await self.db.insert_signal(
                Signal(
                    id=None,
                    post_id=row_id,
                    ca=extracted.ca,
                    ticker=extracted.ticker,
                    signal_type=extracted.signal_type,
                    confidence=extracted.confidence,
                    dex_link=extracted.dex_link,
                    extracted_at=now,
                    mention_timestamp=timestamp,
                )
            )
            signal_ids.append(signal_id)
            if extracted.ca is not None:
                await self._record_token(extracted.ca)

        if signal_ids:
            logger.info(f"@{handle.username} post {post_id}: {len(signal_ids)} signals")
        return True, signal_ids

    async def _record_token(self, ca: str) -> None:
        if self.client is None or await self.db.get_token(ca) is not None:
            return
        try:
            info = await self.client.get_token_info(ca)
        except (DexscreenerAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to get token info for {ca}: {e}")
            return
        if info is None:
            return
        await self.db.upsert_token(
            Token(
                id=None,
                ca=ca,
                chain=self.chain,
                name=info.name,
                symbol=info.symbol,
                first_seen=int(time.time()),
            )
        )

    async def ingest_many(self, posts: Iterable[RawPost]) -> IngestResult:
        result = IngestResult()
        new_by_handle: dict[str, int] = {}

        for post in posts:
            result.posts += 1
            is_new, signal_ids = await self._ingest(
                post.username, post.post_id, post.text, post.timestamp
            )
            result.signals += len(signal_ids)
            if is_new:
                username = post.username.lstrip("@")
                new_by_handle[username] = new_by_handle.get(username, 0) + 1

        now = int(time.time())
        for username, count in new_by_handle.items():
            handle = await self.db.get_handle_by_username(username)
            if handle and handle.id is not None:
                await self.db.record_ingestion(handle.id, count, now)
            result.new_posts += count

        return result
