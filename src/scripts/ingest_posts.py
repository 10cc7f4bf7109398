"""
帖子导入脚本

从 JSON lines 文件导入帖子并提取喊单信号，每行格式:
    {"username": "...", "post_id": "...", "text": "...", "timestamp": 1700000000}

用法:
    uv run python -m src.scripts.ingest_posts posts.jsonl
    uv run python -m src.scripts.ingest_posts posts.jsonl --db-path data/ct-tracker.db
    uv run python -m src.scripts.ingest_posts posts.jsonl --skip-token-info
"""

import argparse
import asyncio
import json
import logging
from collections.abc import Iterator, Sequence
from pathlib import Path

from src.client.dexscreener import DexscreenerClient
from src.client.rate_limiter import RateLimiter
from src.config import Config, load_config
from src.ingest.ingestor import IngestResult, PostIngestor, RawPost
from src.storage.database import Database

logger = logging.getLogger(__name__)


def parse_args(args: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="导入帖子并提取信号")
    parser.add_argument(
        "path",
        type=str,
        help="JSON lines 帖子文件",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="配置文件路径 (默认: 不读取，使用内置默认值)",
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="数据库路径 (覆盖配置文件)",
    )
    parser.add_argument(
        "--skip-token-info",
        action="store_true",
        help="不请求代币名称/符号",
    )
    return parser.parse_args(args)


def read_posts(path: Path) -> Iterator[RawPost]:
    """逐行读取帖子，格式错误的行记录后跳过"""
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                yield RawPost(
                    username=str(data["username"]),
                    post_id=str(data["post_id"]),
                    text=str(data["text"]),
                    timestamp=int(data["timestamp"]),
                )
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping line {line_no}: {e}")


async def run_ingest(
    path: Path,
    db_path: str,
    client: DexscreenerClient | None = None,
    chain: str = "solana",
) -> IngestResult:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    db = Database(db_path)
    await db.init()
    try:
        ingestor = PostIngestor(db, client=client, chain=chain)
        return await ingestor.ingest_many(read_posts(path))
    finally:
        await db.close()


async def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)

    config = load_config(Path(args.config)) if args.config else Config()
    db_path = args.db_path or config.database.path

    client = None
    if not args.skip_token_info:
        client = DexscreenerClient(
            base_url=config.market_data.base_url,
            chain=config.market_data.chain,
            timeout_seconds=config.market_data.timeout_seconds,
            rate_limiter=RateLimiter(config.market_data.min_request_interval_seconds),
        )
        await client.init()

    try:
        result = await run_ingest(Path(args.path), db_path, client, config.market_data.chain)
    finally:
        if client is not None:
            await client.close()

    logger.info(
        f"导入完成: {result.posts} 条帖子, {result.new_posts} 条新帖, {result.signals} 个信号"
    )


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(main())
