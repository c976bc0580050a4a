import pytest
from fastapi.testclient import TestClient

from backend.main import app
from backend.routers import analyze as analyze_routes
from backend.routers import market_data as market_routes
from marketdesk.analysis import MarketAnalysis, MalformedAnalysisError, ModelNotFoundError
from marketdesk.analysis.gemini_client import StockPick
from marketdesk.websocket import FeedManager
from marketdesk.websocket.gateway_config import GatewayConfig
from marketdesk.websocket.market_data_store import MarketDataStore


class StubAnalyst:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def analyze(self, api_key, topic=None):
        self.calls.append((api_key, topic))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def feed(monkeypatch):
    manager = FeedManager(config=GatewayConfig(), store=MarketDataStore())
    watched = []
    monkeypatch.setattr(manager, "init_watch", lambda codes: watched.append(codes) or True)
    manager.watched_calls = watched
    monkeypatch.setattr(market_routes, "get_feed", lambda: manager)
    monkeypatch.setattr(analyze_routes, "get_feed", lambda: manager)
    return manager


@pytest.fixture
def client():
    # No context manager: the lifespan would open a real gateway connection
    return TestClient(app)


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert body["endpoints"]["analyze"] == "POST /api/analyze"


def test_quotes_reflect_store(client, feed):
    feed.store.merge_snapshot({"code": "AAPL.US", "price": "189.3"})
    feed.store.merge_trend("AAPL.US", [{"close": "188"}, {"close": "189.3"}])

    body = client.get("/api/market/quotes").json()
    assert body["count"] == 1
    assert body["data"]["AAPL.US"]["price"] == 189.3

    quote = client.get("/api/market/quote/AAPL.US").json()
    assert quote["data"]["history"] == [188.0, 189.3]


def test_unknown_quote_is_empty(client, feed):
    body = client.get("/api/market/quote/ZZZ.US").json()
    assert body["data"] is None
    assert body["error"]


def test_status_when_stopped(client, feed):
    body = client.get("/api/market/status").json()
    assert body["running"] is False
    assert body["connected"] is False
    assert body["state"] == "disconnected"


def test_subscribe_rejected_when_feed_stopped(client, feed):
    body = client.post("/api/market/subscribe", json={"codes": ["AAPL.US"]}).json()
    assert body["success"] is False

    logs = client.get("/api/market/logs", params={"severity": "warning"}).json()
    assert logs["count"] == 1
    assert "feed not running" in logs["entries"][0]["message"]
    assert logs["capacity"] == 50


def test_subscribe_requires_codes(client, feed):
    assert client.post("/api/market/subscribe", json={"codes": []}).status_code == 422


def test_watch_forwards_codes(client, feed):
    body = client.post("/api/market/watch", json={"codes": ["AAPL.US", "2330.TW"]}).json()
    assert body["success"] is True
    assert feed.watched_calls == [["AAPL.US", "2330.TW"]]


def test_analyze_watches_picks(client, feed, monkeypatch):
    analyst = StubAnalyst(result=MarketAnalysis(
        summary="s",
        hot_sector="Semiconductors",
        stocks=[StockPick("NVDA.US", "Nvidia", "demand"), StockPick("AMD.US")]
    ))
    monkeypatch.setattr(analyze_routes, "get_analyst", lambda: analyst)

    response = client.post("/api/analyze", json={"apiKey": "KEY", "promptContext": "AI chips"})

    assert response.status_code == 200
    body = response.json()
    assert body["hot_sector"] == "Semiconductors"
    assert [s["symbol"] for s in body["stocks"]] == ["NVDA.US", "AMD.US"]
    assert body["watching"] is True
    assert analyst.calls == [("KEY", "AI chips")]
    assert feed.watched_calls == [["NVDA.US", "AMD.US"]]


def test_analyze_without_auto_watch(client, feed, monkeypatch):
    analyst = StubAnalyst(result=MarketAnalysis(stocks=[StockPick("NVDA.US")]))
    monkeypatch.setattr(analyze_routes, "get_analyst", lambda: analyst)

    body = client.post("/api/analyze", json={"apiKey": "KEY", "autoWatch": False}).json()

    assert body["watching"] is False
    assert feed.watched_calls == []


def test_analyze_malformed_answer(client, feed, monkeypatch):
    error = MalformedAnalysisError("bad json", "not json")
    monkeypatch.setattr(analyze_routes, "get_analyst", lambda: StubAnalyst(error=error))

    response = client.post("/api/analyze", json={"apiKey": "KEY"})

    assert response.status_code == 500
    assert response.json() == {"error": "AI response format error", "rawText": "not json"}


def test_analyze_model_not_found(client, feed, monkeypatch):
    error = ModelNotFoundError("no access")
    monkeypatch.setattr(analyze_routes, "get_analyst", lambda: StubAnalyst(error=error))

    response = client.post("/api/analyze", json={"apiKey": "KEY"})

    assert response.status_code == 404
    assert response.json() == {"error": "no access"}
