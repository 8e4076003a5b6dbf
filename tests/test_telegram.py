"""Tests for alert rendering and the Telegram notifier."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import TelegramError

from chartwatch.services.analysis import AnalysisResult, TradeSetup
from chartwatch.services.telegram_bot import (
    TelegramNotifier,
    confidence_gauge,
    format_price,
    render_error_message,
    render_signal_message,
)

SENT_AT = datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# 1. Message rendering
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("confidence,gauge", [
    (95, "🟢🟢🟢"),
    (70, "🟢🟢⚪"),
    (50, "🟢⚪⚪"),
    (30, "🟡⚪⚪"),
    (29, "🔴⚪⚪"),
])
def test_confidence_gauge(confidence, gauge):
    assert confidence_gauge(confidence) == gauge


def test_render_includes_core_fields():
    result = AnalysisResult(action="BUY", confidence=82, analysis_id="an-9", reasons=["Higher lows on 4h"])
    text = render_signal_message("EURUSD 1h", result, app_url="https://app.test/", sent_at=SENT_AT)

    assert "*EURUSD 1h*" in text
    assert "📈 BUY" in text
    assert "82% 🟢🟢⚪" in text
    assert "Higher lows on 4h" in text
    assert "2026-10-19 14:30 UTC" in text
    assert "(https://app.test/analysis/an-9)" in text


def test_render_truncates_long_reason():
    result = AnalysisResult(action="SELL", confidence=60, reasons=["x" * 400])
    text = render_signal_message("GOLD 4h", result, sent_at=SENT_AT)

    assert "x" * 150 + "..." in text
    assert "x" * 151 not in text


def test_render_economic_context_toggle():
    result = AnalysisResult(
        action="SELL", confidence=60,
        economic_context={"immediateRisk": "HIGH", "weeklyOutlook": "NEUTRAL"},
    )
    with_econ = render_signal_message("GOLD 4h", result, include_economic=True, sent_at=SENT_AT)
    without = render_signal_message("GOLD 4h", result, include_economic=False, sent_at=SENT_AT)

    assert "Economic Risk:* HIGH" in with_econ
    assert "Weekly Outlook" not in with_econ
    assert "Economic Risk" not in without


def test_render_without_analysis_id_has_no_link():
    result = AnalysisResult(action="HOLD", confidence=40)
    assert "View Full Analysis" not in render_signal_message("BTC 1d", result, sent_at=SENT_AT)


def test_render_escapes_markdown_in_label_and_reason():
    result = AnalysisResult(action="BUY", confidence=75, reasons=["RSI_14 broke *above* 70"])
    text = render_signal_message("EUR_USD [main]", result, sent_at=SENT_AT)

    assert "*EUR\\_USD \\[main]*" in text
    assert "RSI\\_14 broke \\*above\\* 70" in text


@pytest.mark.parametrize("price,formatted", [
    (1.08456, "1.08456"),
    (187.5, "187.500"),
    (2345.678, "2345.68"),
    (64250.0, "64250.00"),
])
def test_format_price(price, formatted):
    assert format_price(price) == formatted


def test_render_trade_setup_for_directional_signal():
    setup = TradeSetup(
        quality="A", entry_price=1.1, stop_loss=1.09, target_price=1.13,
        reasons=["Trend", "Support", "Volume", "Ignored"],
    )
    result = AnalysisResult(action="BUY", confidence=80, trade_setup=setup)
    text = render_signal_message("EURUSD 1h", result, sent_at=SENT_AT)

    assert "💼 *Trade Setup* (A)" in text
    assert "Entry: `1.10000`" in text
    assert "Stop Loss: `1.09000`" in text
    assert "Target: `1.13000`" in text
    assert "R:R Ratio: `1:3.00`" in text
    assert "3. Volume" in text
    assert "Ignored" not in text


def test_render_skips_trade_setup_on_hold_or_incomplete_levels():
    full = TradeSetup(quality="B", entry_price=1.1, stop_loss=1.09, target_price=1.13)
    partial = TradeSetup(quality="B", entry_price=1.1, stop_loss=None, target_price=1.13)

    hold = render_signal_message("X", AnalysisResult(action="HOLD", confidence=80, trade_setup=full), sent_at=SENT_AT)
    incomplete = render_signal_message(
        "X", AnalysisResult(action="SELL", confidence=80, trade_setup=partial), sent_at=SENT_AT
    )
    assert "Trade Setup" not in hold
    assert "Trade Setup" not in incomplete


def test_render_error_message():
    text = render_error_message("GOLD_4h", "HTTP 503: upstream_timeout", sent_at=SENT_AT)

    assert text.startswith("⚠️ *Automation Error*")
    assert "Layout: GOLD\\_4h" in text
    assert "Error: HTTP 503: upstream\\_timeout" in text
    assert "2026-10-19 14:30 UTC" in text


# ---------------------------------------------------------------------------
# 2. Notifier
# ---------------------------------------------------------------------------

def _mock_bot():
    bot = MagicMock()
    bot.initialize = AsyncMock()
    bot.shutdown = AsyncMock()
    bot.send_message = AsyncMock()
    return bot


@pytest.mark.asyncio
async def test_send_success():
    bot = _mock_bot()
    with patch("chartwatch.services.telegram_bot.Bot", return_value=bot):
        notifier = TelegramNotifier(token="123:abc")
        result = await notifier.send("42", "hello")
        await notifier.send("42", "again")
        await notifier.close()

    assert result.success is True
    assert result.error is None
    bot.initialize.assert_awaited_once()
    assert bot.send_message.await_count == 2
    assert bot.send_message.call_args.kwargs["chat_id"] == "42"
    bot.shutdown.assert_awaited_once()


@pytest.mark.asyncio
async def test_send_failure_returns_error():
    bot = _mock_bot()
    bot.send_message.side_effect = TelegramError("Chat not found")
    with patch("chartwatch.services.telegram_bot.Bot", return_value=bot):
        result = await TelegramNotifier(token="123:abc").send("42", "hello")

    assert result.success is False
    assert "Chat not found" in result.error


@pytest.mark.asyncio
async def test_send_without_token():
    result = await TelegramNotifier(token="").send("42", "hello")
    assert result.success is False
    assert "token" in result.error


@pytest.mark.asyncio
async def test_connection_message():
    bot = _mock_bot()
    with patch("chartwatch.services.telegram_bot.Bot", return_value=bot):
        result = await TelegramNotifier(token="123:abc").test_connection("42")

    assert result.success is True
    assert "Connection Successful" in bot.send_message.call_args.kwargs["text"]
