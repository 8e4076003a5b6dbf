"""Telegram notifications for automation results."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from chartwatch.config import settings
from chartwatch.models.types import utcnow
from chartwatch.services.analysis import AnalysisResult, TradeSetup
from chartwatch.utils.constants import SignalAction

logger = logging.getLogger(__name__)

REASON_PREVIEW_CHARS = 150

ACTION_LABELS = {
    "BUY": "📈 BUY",
    "SELL": "📉 SELL",
    "HOLD": "⏸️ HOLD",
}


@dataclass
class NotificationResult:
    success: bool
    error: str | None = None


class Notifier(Protocol):
    async def send(self, chat_id: str, message: str) -> NotificationResult: ...


def confidence_gauge(confidence: int) -> str:
    if confidence >= 90:
        return "🟢🟢🟢"
    if confidence >= 70:
        return "🟢🟢⚪"
    if confidence >= 50:
        return "🟢⚪⚪"
    if confidence >= 30:
        return "🟡⚪⚪"
    return "🔴⚪⚪"


def format_price(price: float) -> str:
    # FX quotes need pip precision
    if price < 10:
        return f"{price:.5f}"
    if price < 1000:
        return f"{price:.3f}"
    return f"{price:.2f}"


def _md(text) -> str:
    return escape_markdown(str(text), version=1)


def _trade_setup_lines(setup: TradeSetup) -> list[str]:
    if not (setup.entry_price and setup.stop_loss and setup.target_price):
        return []

    lines = [
        f"💼 *Trade Setup* ({_md(setup.quality or '-')})",
        f"Entry: `{format_price(setup.entry_price)}`",
        f"Stop Loss: `{format_price(setup.stop_loss)}`",
        f"Target: `{format_price(setup.target_price)}`",
    ]
    if setup.risk_reward is not None:
        lines.append(f"R:R Ratio: `1:{setup.risk_reward:.2f}`")
    lines.append("")

    if setup.reasons:
        lines.append("*Key Reasons:*")
        lines += [f"{i}. {_md(reason)}" for i, reason in enumerate(setup.reasons[:3], start=1)]
        lines.append("")
    return lines


def render_signal_message(
    label: str,
    result: AnalysisResult,
    include_economic: bool = True,
    app_url: str | None = None,
    sent_at: datetime | None = None,
) -> str:
    """Build the Markdown alert for an analysis result.

    User and model supplied text is escaped, so a stray ``_`` cannot make
    Telegram reject the message.
    """
    sent_at = sent_at or utcnow()
    action_label = ACTION_LABELS.get(result.action, result.action)

    lines = [
        "🤖 *Trade Analysis Alert*",
        "",
        f"📊 *{_md(label)}*",
        f"⏰ {sent_at:%Y-%m-%d %H:%M} UTC",
        "",
        f"*Action:* {action_label}",
        f"*Confidence:* {result.confidence}% {confidence_gauge(result.confidence)}",
        "",
    ]

    if result.trade_setup and result.action != SignalAction.HOLD.value:
        lines += _trade_setup_lines(result.trade_setup)

    if result.reasons:
        first = result.reasons[0]
        suffix = "..." if len(first) > REASON_PREVIEW_CHARS else ""
        lines += [f"📝 *Analysis:* {_md(first[:REASON_PREVIEW_CHARS])}{suffix}", ""]

    ec = result.economic_context
    if include_economic and ec:
        risk = ec.get("immediateRisk")
        outlook = ec.get("weeklyOutlook")
        if risk and risk != "NONE":
            lines.append(f"⚠️ *Economic Risk:* {_md(risk)}")
        if outlook and outlook != "NEUTRAL":
            lines.append(f"📊 *Weekly Outlook:* {_md(outlook)}")
        lines.append("")

    if result.analysis_id:
        base = (app_url or settings.app_url).rstrip("/")
        lines.append(f"🔗 [View Full Analysis]({base}/analysis/{result.analysis_id})")

    return "\n".join(lines).rstrip()


def render_error_message(label: str, error: str, sent_at: datetime | None = None) -> str:
    """Alert for a failed run."""
    sent_at = sent_at or utcnow()
    return (
        "⚠️ *Automation Error*\n\n"
        f"📊 Layout: {_md(label)}\n"
        f"❌ Error: {_md(error)}\n\n"
        f"⏰ {sent_at:%Y-%m-%d %H:%M} UTC"
    )


class TelegramNotifier:
    """Sends messages through the Telegram Bot API.

    The bot is created lazily on first use and shared across runs.
    """

    def __init__(self, token: str | None = None):
        self.token = token if token is not None else settings.telegram_bot_token
        self._bot: Optional[Bot] = None

    async def _get_bot(self) -> Bot:
        if self._bot is None:
            bot = Bot(self.token)
            await bot.initialize()
            self._bot = bot
        return self._bot

    async def send(self, chat_id: str, message: str) -> NotificationResult:
        if not self.token:
            return NotificationResult(success=False, error="telegram bot token not configured")
        try:
            bot = await self._get_bot()
            await bot.send_message(
                chat_id=chat_id,
                text=message,
                parse_mode=ParseMode.MARKDOWN,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except TelegramError as e:
            logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")
            return NotificationResult(success=False, error=str(e) or type(e).__name__)
        logger.info(f"Telegram alert sent to {chat_id}")
        return NotificationResult(success=True)

    async def test_connection(self, chat_id: str) -> NotificationResult:
        """Send a confirmation message to verify the chat id."""
        return await self.send(
            chat_id,
            "✅ *Telegram Connection Successful!*\n\n"
            "Your trading alerts will be sent to this chat.\n\n"
            "🤖 Automation is now active!",
        )

    async def close(self):
        if self._bot is not None:
            await self._bot.shutdown()
            self._bot = None
