"""Tests for the HTTP analysis provider and response validation."""

import json

import httpx
import pytest

from chartwatch.services.analysis import AnalysisError, HttpAnalysisProvider, parse_analysis


# ---------------------------------------------------------------------------
# 1. Response validation
# ---------------------------------------------------------------------------

class TestParseAnalysis:
    def test_valid_payload(self):
        result = parse_analysis({
            "id": "an-7",
            "action": "buy",
            "confidence": 72.6,
            "reasons": ["Breakout above resistance", "RSI rising"],
            "economicContext": {"immediateRisk": "HIGH"},
        })
        assert result.action == "BUY"
        assert result.confidence == 73
        assert result.analysis_id == "an-7"
        assert result.reasons[0] == "Breakout above resistance"
        assert result.economic_context == {"immediateRisk": "HIGH"}

    def test_analysis_id_alias(self):
        assert parse_analysis({"analysisId": 12, "action": "SELL", "confidence": 50}).analysis_id == "12"

    def test_missing_id_is_allowed(self):
        assert parse_analysis({"action": "HOLD", "confidence": 0}).analysis_id is None

    def test_trade_setup_parsed(self):
        result = parse_analysis({
            "action": "SELL",
            "confidence": 64,
            "tradeSetup": {
                "quality": "B",
                "entryPrice": "2350.5",
                "stopLoss": 2365.5,
                "targetPrice": 2305.5,
                "reasons": ["Lower highs"],
            },
        })
        setup = result.trade_setup
        assert setup.quality == "B"
        assert setup.entry_price == 2350.5
        assert setup.reasons == ["Lower highs"]
        assert setup.risk_reward == pytest.approx(3.0)

    def test_malformed_trade_setup_is_tolerated(self):
        result = parse_analysis({
            "action": "BUY",
            "confidence": 64,
            "tradeSetup": {"entryPrice": "n/a", "stopLoss": 1.0, "targetPrice": 2.0},
        })
        assert result.trade_setup.entry_price is None
        assert result.trade_setup.risk_reward is None
        assert parse_analysis({"action": "BUY", "confidence": 64, "tradeSetup": None}).trade_setup is None

    @pytest.mark.parametrize("payload", [
        {"action": "STRONG_BUY", "confidence": 80},
        {"action": "BUY"},
        {"action": "BUY", "confidence": "high"},
        {"action": "BUY", "confidence": 101},
        {"action": "SELL", "confidence": -1},
        ["BUY", 80],
    ])
    def test_invalid_payload_rejected(self, payload):
        with pytest.raises(AnalysisError):
            parse_analysis(payload)


# ---------------------------------------------------------------------------
# 2. HTTP provider
# ---------------------------------------------------------------------------

def _provider(handler) -> HttpAnalysisProvider:
    return HttpAnalysisProvider(
        url="http://app.test/api/analyze",
        api_key="secret",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_analyze_posts_target_and_parses_result():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "an-1", "action": "SELL", "confidence": 64})

    result = await _provider(handler).analyze("layout-eurusd")

    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"targetRef": "layout-eurusd", "source": "automation"}
    assert result.action == "SELL"
    assert result.confidence == 64


@pytest.mark.asyncio
async def test_http_error_becomes_analysis_error():
    def handler(request):
        return httpx.Response(429, text="rate limited")

    with pytest.raises(AnalysisError, match="HTTP 429"):
        await _provider(handler).analyze("layout-eurusd")


@pytest.mark.asyncio
async def test_transport_error_becomes_analysis_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AnalysisError, match="ConnectError"):
        await _provider(handler).analyze("layout-eurusd")


@pytest.mark.asyncio
async def test_non_json_body_becomes_analysis_error():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(AnalysisError, match="not JSON"):
        await _provider(handler).analyze("layout-eurusd")
