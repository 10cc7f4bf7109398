# tests/extractor/test_signals.py
from src.extractor.signals import (
    extract_address_from_url,
    extract_signals,
    is_valid_address,
)
from src.storage.models import Confidence, SignalType

CA_A = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
CA_B = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
WSOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def test_bare_address_is_high_confidence():
    signals = extract_signals(f"aping this one {CA_A} lfg")

    assert len(signals) == 1
    assert signals[0].signal_type == SignalType.CA
    assert signals[0].confidence == Confidence.HIGH
    assert signals[0].ca == CA_A
    assert signals[0].dex_link is None


def test_link_and_bare_address_yield_one_medium_signal():
    text = f"CA: {CA_A}\nchart https://dexscreener.com/solana/{CA_A}"
    signals = extract_signals(text)

    assert len(signals) == 1
    assert signals[0].signal_type == SignalType.DEX_LINK
    assert signals[0].confidence == Confidence.MEDIUM
    assert signals[0].ca == CA_A
    assert signals[0].dex_link == f"https://dexscreener.com/solana/{CA_A}"


def test_each_link_site_is_recognized():
    texts = [
        f"https://dexscreener.com/solana/{CA_A}",
        f"birdeye.so/token/{CA_A}?chain=solana",
        f"https://pump.fun/{CA_A}",
        f"https://jup.ag/swap/SOL-{CA_A}",
    ]
    for text in texts:
        signals = extract_signals(text)
        assert [s.ca for s in signals] == [CA_A], text
        assert signals[0].signal_type == SignalType.DEX_LINK


def test_link_host_is_case_insensitive():
    signals = extract_signals(f"HTTPS://DexScreener.com/solana/{CA_A}")

    assert len(signals) == 1
    assert signals[0].confidence == Confidence.MEDIUM


def test_multiple_addresses_keep_order():
    signals = extract_signals(f"{CA_B} and also {CA_A} and again {CA_B}")

    assert [s.ca for s in signals] == [CA_B, CA_A]


def test_links_are_extracted_before_bare_addresses():
    signals = extract_signals(f"{CA_B} chart: https://pump.fun/{CA_A}")

    assert [s.ca for s in signals] == [CA_A, CA_B]
    assert signals[0].confidence == Confidence.MEDIUM
    assert signals[1].confidence == Confidence.HIGH


def test_known_base_assets_are_ignored():
    assert extract_signals(f"swap {WSOL} for {USDC}") == []
    assert extract_signals(f"https://dexscreener.com/solana/{USDC}") == []


def test_low_entropy_string_is_not_an_address():
    assert extract_signals("A" * 40) == []
    assert extract_signals("ABCDEFGHABCDEFGHABCDEFGHABCDEFGHABCD") == []


def test_ticker_fallback_when_no_address():
    signals = extract_signals("loading up on $BONK before it runs")

    assert len(signals) == 1
    assert signals[0].signal_type == SignalType.TICKER
    assert signals[0].confidence == Confidence.LOW
    assert signals[0].ticker == "BONK"
    assert signals[0].ca is None


def test_major_tickers_are_skipped():
    assert extract_signals("$SOL and $BTC looking strong") == []

    signals = extract_signals("$SOL pumping, rotating into $WIF and $POPCAT")
    assert [s.ticker for s in signals] == ["WIF"]


def test_ticker_ignored_when_address_present():
    signals = extract_signals(f"$BONK {CA_A}")

    assert len(signals) == 1
    assert signals[0].ca == CA_A
    assert all(s.signal_type != SignalType.TICKER for s in signals)


def test_lowercase_or_short_tickers_are_ignored():
    assert extract_signals("$bonk $A gm") == []


def test_signal_less_text():
    assert extract_signals("") == []
    assert extract_signals("gm frens, market is cooked") == []


def test_is_valid_address():
    assert is_valid_address(CA_A)
    assert not is_valid_address(USDC)
    assert not is_valid_address("A" * 40)
    assert not is_valid_address(CA_A + "0")
    assert not is_valid_address("short")


def test_extract_address_from_url():
    assert extract_address_from_url(f"https://birdeye.so/token/{CA_B}") == CA_B
    assert extract_address_from_url("https://example.com/nothing") is None


def test_address_next_to_chinese_text():
    signals = extract_signals(f"合约{CA_A}冲")

    assert len(signals) == 1
    assert signals[0].confidence == Confidence.HIGH
    assert signals[0].ca == CA_A


def test_ticker_next_to_chinese_text():
    signals = extract_signals("$PEPE来了")

    assert len(signals) == 1
    assert signals[0].signal_type == SignalType.TICKER
    assert signals[0].ticker == "PEPE"
