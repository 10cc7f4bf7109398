"""信号提取配置常量"""

import re
from dataclasses import dataclass

# base58 字母表，去掉易混淆的 0 O I l
ADDRESS_CHARS = "[1-9A-HJ-NP-Za-km-z]"
ADDRESS_PATTERN = f"{ADDRESS_CHARS}{{32,44}}"

# 地址最少不同字符数
MIN_DISTINCT_CHARS = 10

# 裸地址（ASCII 词边界，紧贴中文时也能识别）
BARE_ADDRESS_REGEX = re.compile(rf"\b({ADDRESS_PATTERN})\b", re.ASCII)

# ticker 必须以 $ 开头
TICKER_REGEX = re.compile(r"\$([A-Z]{2,10})\b", re.ASCII)


@dataclass(frozen=True)
class LinkPattern:
    name: str
    regex: re.Pattern[str]


def _link(name: str, host_path: str) -> LinkPattern:
    # 域名部分忽略大小写，地址部分区分大小写
    return LinkPattern(
        name=name,
        regex=re.compile(rf"(?i:(?:https?://)?(?:www\.)?{host_path})({ADDRESS_PATTERN})"),
    )


# 行情聚合站链接，按优先级排列
LINK_PATTERNS = [
    _link("dexscreener", r"dexscreener\.com/solana/"),
    _link("birdeye", r"birdeye\.so/token/"),
    _link("pumpfun", r"pump\.fun/"),
    _link("jupiter", r"jup\.ag/swap/[a-z]+-"),
]

# 已知非喊单地址：Wrapped SOL / USDC / USDT
FALSE_POSITIVE_ADDRESSES = frozenset(
    {
        "So11111111111111111111111111111111111111112",
        "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
    }
)

# 形似地址的全大写单词
WORD_BLACKLIST = frozenset({"BREAKING", "THREAD", "UPDATE", "IMPORTANT", "ATTENTION"})

# 主流资产 ticker，不算喊单
MAJOR_TICKERS = frozenset({"SOL", "USDC", "USDT", "BTC", "ETH"})
