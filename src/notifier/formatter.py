# src/notifier/formatter.py
from collections.abc import Sequence
from datetime import UTC, datetime

from src.storage.models import DeathReason, HandleVerdict, PerformanceWindow, Signal

DEATH_REASON_TEXT = {
    DeathReason.LOW_LIQUIDITY: "流动性枯竭",
    DeathReason.PRICE_DUMP_70: "高点回撤超 70%",
    DeathReason.RUG: "Rug (较喊单价跌超 90%)",
}


def _format_usd(value: float) -> str:
    if abs(value) >= 1_000_000_000:
        return f"${value / 1_000_000_000:.1f}B"
    elif abs(value) >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    elif abs(value) >= 1_000:
        return f"${value / 1_000:.1f}K"
    else:
        return f"${value:,.0f}"


def _format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    if seconds < 3600:
        return f"{seconds / 60:.0f}m"
    if seconds < 86400:
        return f"{seconds / 3600:.1f}h"
    return f"{seconds / 86400:.1f}d"


def _short_ca(ca: str | None) -> str:
    if not ca:
        return "?"
    return f"{ca[:4]}…{ca[-4:]}"


def format_lifecycle_alert(username: str, signal: Signal, window: PerformanceWindow) -> str:
    icon = "💀" if window.is_rug else "⚰️"
    reason = DEATH_REASON_TEXT.get(window.death_reason, window.death_reason.value)
    lived = None
    if window.death_timestamp is not None:
        lived = window.death_timestamp - signal.mention_timestamp

    return f"""{icon} <b>信号结束</b> @{username}

代币: <code>{_short_ca(signal.ca)}</code>
原因: {reason}
喊单价: ${window.mention_price:.8g} (市值 {_format_usd(window.mention_market_cap)})
最高: {window.ath_roi:+.1f}%  最低: {window.atl_roi:+.1f}%
存活: {_format_duration(lived)}"""


def format_verdict_change(username: str, previous: str | None, verdict: HandleVerdict) -> str:
    change = f"{previous} → {verdict.verdict_label}" if previous else verdict.verdict_label
    return f"""🏷 <b>评级变化</b> @{username}

{change}
胜率: {verdict.win_rate:.1f}%  中位收益: {verdict.median_roi:+.1f}%
Rug 率: {verdict.rug_rate:.1f}%  喊单数: {verdict.total_calls}"""


def format_verdict_report(verdicts: Sequence[tuple[str, HandleVerdict]]) -> str:
    now = datetime.now(UTC).strftime("%Y-%m-%d %H:%M UTC")
    if not verdicts:
        return f"📊 <b>喊单评级</b> | {now}\n\n暂无数据"

    lines = [f"📊 <b>喊单评级</b> | {now}", ""]
    for username, v in verdicts:
        lines.append(f"@{username}: <b>{v.verdict_label}</b>")
        lines.append(
            f"  胜率 {v.win_rate:.0f}% | 中位 {v.median_roi:+.0f}% | "
            f"Rug {v.rug_rate:.0f}% | 到顶 {_format_duration(v.avg_time_to_ath)} | "
            f"{v.completed_calls}/{v.total_calls}"
        )
    return "\n".join(lines)
