"""Analysis provider: produces a trading signal for a chart target.

The AI analysis itself (snapshot capture, prompting, model choice) lives in the
main web application. The engine only needs its verdict, fetched over HTTP.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from chartwatch.config import settings
from chartwatch.utils.constants import SignalAction

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """The analysis could not be produced."""


@dataclass
class TradeSetup:
    quality: str | None = None  # "A", "B", "C"
    entry_price: float | None = None
    stop_loss: float | None = None
    target_price: float | None = None
    reasons: list[str] = field(default_factory=list)

    @property
    def risk_reward(self) -> float | None:
        """Reward per unit of risk, or None when the levels are incomplete."""
        if not (self.entry_price and self.stop_loss and self.target_price):
            return None
        risk = self.entry_price - self.stop_loss
        if risk == 0:
            return None
        return (self.target_price - self.entry_price) / risk


@dataclass
class AnalysisResult:
    action: str  # "BUY", "SELL", "HOLD"
    confidence: int  # 0-100
    analysis_id: str | None = None
    reasons: list[str] = field(default_factory=list)
    economic_context: dict[str, Any] | None = None
    trade_setup: TradeSetup | None = None


class AnalysisProvider(Protocol):
    async def analyze(self, target_ref: str) -> AnalysisResult: ...


def _price(value) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_trade_setup(raw) -> TradeSetup | None:
    """Optional trade levels. Malformed prices are dropped rather than failing the run."""
    if not isinstance(raw, dict):
        return None
    quality = raw.get("quality")
    return TradeSetup(
        quality=str(quality) if quality is not None else None,
        entry_price=_price(raw.get("entryPrice")),
        stop_loss=_price(raw.get("stopLoss")),
        target_price=_price(raw.get("targetPrice")),
        reasons=[str(r) for r in raw.get("reasons") or []],
    )


def parse_analysis(payload: dict) -> AnalysisResult:
    """Validate a provider response into an AnalysisResult."""
    if not isinstance(payload, dict):
        raise AnalysisError("Analysis response is not an object")

    action = str(payload.get("action", "")).upper()
    if action not in {a.value for a in SignalAction}:
        raise AnalysisError(f"Invalid action in analysis response: {payload.get('action')!r}")

    try:
        confidence = int(round(float(payload.get("confidence"))))
    except (TypeError, ValueError):
        raise AnalysisError(f"Invalid confidence in analysis response: {payload.get('confidence')!r}")
    if not 0 <= confidence <= 100:
        raise AnalysisError(f"Confidence out of range: {confidence}")

    analysis_id = payload.get("id", payload.get("analysisId"))
    reasons = payload.get("reasons") or []

    return AnalysisResult(
        action=action,
        confidence=confidence,
        analysis_id=str(analysis_id) if analysis_id is not None else None,
        reasons=[str(r) for r in reasons],
        economic_context=payload.get("economicContext"),
        trade_setup=parse_trade_setup(payload.get("tradeSetup")),
    )


class HttpAnalysisProvider:
    """Requests an analysis from the web application's analyze endpoint."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or settings.analysis_api_url
        self.api_key = api_key if api_key is not None else settings.analysis_api_key
        self.timeout = timeout if timeout is not None else settings.analysis_timeout_seconds
        self._transport = transport

    async def analyze(self, target_ref: str) -> AnalysisResult:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    json={"targetRef": target_ref, "source": "automation"},
                    headers=headers,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AnalysisError(
                f"Analysis request failed with HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise AnalysisError(f"Analysis request failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise AnalysisError(f"Analysis response is not JSON: {e}") from e

        result = parse_analysis(payload)
        logger.info(f"Analysis for {target_ref}: {result.action} ({result.confidence}%)")
        return result
