# src/extractor/signals.py
import re
from dataclasses import dataclass

from src.extractor.patterns import (
    ADDRESS_PATTERN,
    BARE_ADDRESS_REGEX,
    FALSE_POSITIVE_ADDRESSES,
    LINK_PATTERNS,
    MAJOR_TICKERS,
    MIN_DISTINCT_CHARS,
    TICKER_REGEX,
    WORD_BLACKLIST,
)
from src.storage.models import Confidence, SignalType

_FULL_ADDRESS_REGEX = re.compile(ADDRESS_PATTERN)


@dataclass(frozen=True)
class ExtractedSignal:
    signal_type: SignalType
    confidence: Confidence
    ca: str | None = None
    ticker: str | None = None
    dex_link: str | None = None


def extract_signals(text: str) -> list[ExtractedSignal]:
    """
    从一段文本中提取喊单信号

    先提取地址类信号（链接 > 裸地址），只有在没有任何地址时才回退到 ticker。

    Returns:
        去重后的信号列表，顺序即提取顺序
    """
    signals = _extract_address_signals(text)
    if signals:
        return signals
    return _extract_ticker_signals(text)


def _extract_address_signals(text: str) -> list[ExtractedSignal]:
    signals: list[ExtractedSignal] = []
    seen: set[str] = set()

    # 1. 行情站链接 (MEDIUM)
    for link in LINK_PATTERNS:
        for match in link.regex.finditer(text):
            ca = match.group(1)
            if ca in seen or ca in FALSE_POSITIVE_ADDRESSES:
                continue
            signals.append(
                ExtractedSignal(
                    signal_type=SignalType.DEX_LINK,
                    confidence=Confidence.MEDIUM,
                    ca=ca,
                    dex_link=match.group(0),
                )
            )
            seen.add(ca)

    # 2. 裸地址 (HIGH)
    for match in BARE_ADDRESS_REGEX.finditer(text):
        ca = match.group(1)
        if ca in seen or ca in FALSE_POSITIVE_ADDRESSES or ca.upper() in WORD_BLACKLIST:
            continue
        if len(set(ca)) < MIN_DISTINCT_CHARS:
            continue
        signals.append(
            ExtractedSignal(signal_type=SignalType.CA, confidence=Confidence.HIGH, ca=ca)
        )
        seen.add(ca)

    return signals


def _extract_ticker_signals(text: str) -> list[ExtractedSignal]:
    # 3. ticker (LOW)，只取第一个非主流资产
    for match in TICKER_REGEX.finditer(text):
        ticker = match.group(1)
        if ticker in MAJOR_TICKERS:
            continue
        return [
            ExtractedSignal(signal_type=SignalType.TICKER, confidence=Confidence.LOW, ticker=ticker)
        ]
    return []


def is_valid_address(ca: str) -> bool:
    if not _FULL_ADDRESS_REGEX.fullmatch(ca):
        return False
    if len(set(ca)) < MIN_DISTINCT_CHARS:
        return False
    return ca not in FALSE_POSITIVE_ADDRESSES


def extract_address_from_url(url: str) -> str | None:
    """从行情站 URL 中提取地址"""
    for link in LINK_PATTERNS:
        match = link.regex.search(url)
        if match:
            return match.group(1)
    return None
