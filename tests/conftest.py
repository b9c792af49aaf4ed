"""
Pytest configuration and shared fixtures.

This module provides fixtures for:
- A fake upstream (KV store, price providers, push gateway) behind httpx.MockTransport
- Bar and provider payload builders
- Wired services (KV store, device store, data providers, push, signal checker)
- FastAPI test client
"""

import calendar
import json
import os
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import AsyncGenerator, Dict, List
from urllib.parse import unquote

import httpx
import pytest
from httpx import AsyncClient, ASGITransport

# Set testing environment before importing crosswatch modules
os.environ["LOG_LEVEL"] = "ERROR"
os.environ["CRON_SECRET"] = "test-secret"

from crosswatch.core.config import Settings  # noqa: E402
from crosswatch.core.kv_store import KVStore  # noqa: E402
from crosswatch.services.data_provider.base import Bar  # noqa: E402
from crosswatch.services.data_provider.service import DataProviderService  # noqa: E402
from crosswatch.services.device_store import DeviceStore, device_key_for  # noqa: E402
from crosswatch.services.push import ExpoPushClient  # noqa: E402
from crosswatch.services.scanner import MACrossoverDetector  # noqa: E402
from crosswatch.services.signal_checker import SignalChecker  # noqa: E402

KV_URL = "https://kv.test"
KV_TOKEN = "kv-token"
START = date(2024, 1, 1)


# ─────────────────────────────────────────────────────────────────────────────
# Payload Builders
# ─────────────────────────────────────────────────────────────────────────────

def day(i: int, start: date = START) -> str:
    return (start + timedelta(days=i)).isoformat()


def chart_payload(closes: List[float], start: date = START, name: str = "Test Inc") -> dict:
    """Yahoo v8 chart response; timestamps at the New York open."""
    timestamps = [
        calendar.timegm(datetime(d.year, d.month, d.day, 14, 30).timetuple())
        for d in (start + timedelta(days=i) for i in range(len(closes)))
    ]
    return {
        "chart": {
            "result": [{
                "meta": {
                    "currency": "USD",
                    "exchangeName": "NMS",
                    "exchangeTimezoneName": "America/New_York",
                    "shortName": name,
                },
                "timestamp": timestamps,
                "indicators": {"quote": [{
                    "open": list(closes),
                    "high": [c + 0.5 for c in closes],
                    "low": [c - 0.5 for c in closes],
                    "close": list(closes),
                    "volume": [1000] * len(closes),
                }]},
            }],
            "error": None,
        }
    }


def av_payload(closes: List[float], start: date = START) -> dict:
    """Alpha Vantage TIME_SERIES_DAILY, newest first like the real API."""
    series = {
        day(i, start): {
            "1. open": str(c),
            "2. high": str(c + 0.5),
            "3. low": str(c - 0.5),
            "4. close": str(c),
            "5. volume": "1000",
        }
        for i, c in enumerate(closes)
    }
    return {"Time Series (Daily)": dict(reversed(list(series.items())))}


def fmp_payload(symbol: str, closes: List[float], start: date = START) -> dict:
    historical = [
        {"date": day(i, start), "open": c, "high": c + 0.5, "low": c - 0.5, "close": c, "volume": 1000}
        for i, c in enumerate(closes)
    ]
    return {"symbol": symbol, "historical": list(reversed(historical))}


# ─────────────────────────────────────────────────────────────────────────────
# Fake Upstream
# ─────────────────────────────────────────────────────────────────────────────

class FakeUpstream:
    """In-memory stand-in for every external HTTP service.

    Unknown symbols fail on every provider. Calls are recorded per service
    under: kv, yahoo, alphavantage, fmp, push.
    """

    def __init__(self):
        self.kv: Dict[str, str] = {}
        self.sets: Dict[str, Dict[str, None]] = defaultdict(dict)
        self.charts: Dict[str, object] = {}
        self.av_series: Dict[str, dict] = {}
        self.fmp_history: Dict[str, dict] = {}
        self.yahoo_quotes = None
        self.fmp_quotes = None
        self.av_quotes: Dict[str, dict] = {}
        self.failing_tokens = set()
        self.pushes: List[dict] = []
        self.calls: Dict[str, List[httpx.URL]] = defaultdict(list)

    # Test setup helpers

    def add_device(self, push_token: str, watchlist: List[str], **extra) -> str:
        key = device_key_for(push_token)
        record = {"pushToken": push_token, "watchlist": watchlist, **extra}
        self.kv[key] = json.dumps(record)
        self.sets["device_index"][key] = None
        return key

    def device_record(self, push_token: str) -> dict:
        return json.loads(self.kv[device_key_for(push_token)])

    def set_history(self, symbol: str, closes: List[float], start: date = START, name: str = "Test Inc"):
        """Yahoo chart data, keyed by the Yahoo symbol (005930.KS)."""
        self.charts[symbol] = chart_payload(closes, start, name)

    def set_av_history(self, symbol: str, closes: List[float], start: date = START):
        self.av_series[symbol] = av_payload(closes, start)

    def set_fmp_history(self, symbol: str, closes: List[float], start: date = START):
        self.fmp_history[symbol] = fmp_payload(symbol, closes, start)

    # Transport

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "kv.test":
            return self._kv(request)
        if host == "query1.finance.yahoo.com":
            return self._yahoo(request)
        if host == "www.alphavantage.co":
            return self._alphavantage(request)
        if host == "financialmodelingprep.com":
            return self._fmp(request)
        if host == "exp.host":
            return self._push(request)
        return httpx.Response(404)

    def _kv(self, request: httpx.Request) -> httpx.Response:
        self.calls["kv"].append(request.url)
        if request.headers.get("Authorization") != f"Bearer {KV_TOKEN}":
            return httpx.Response(401, json={"error": "Unauthorized"})

        raw_path = request.url.raw_path.split(b"?")[0].decode()
        command, *args = [unquote(p) for p in raw_path.strip("/").split("/")]
        if command == "get":
            return httpx.Response(200, json={"result": self.kv.get(args[0])})
        if command == "set":
            self.kv[args[0]] = request.content.decode()
            return httpx.Response(200, json={"result": "OK"})
        if command == "sadd":
            members = self.sets[args[0]]
            added = args[1] not in members
            members[args[1]] = None
            return httpx.Response(200, json={"result": int(added)})
        if command == "smembers":
            return httpx.Response(200, json={"result": list(self.sets.get(args[0], {}))})
        return httpx.Response(400, json={"error": f"ERR unknown command '{command}'"})

    def _yahoo(self, request: httpx.Request) -> httpx.Response:
        self.calls["yahoo"].append(request.url)
        if request.url.path.startswith("/v7/finance/quote"):
            if self.yahoo_quotes is None:
                return httpx.Response(500)
            return httpx.Response(200, json=self.yahoo_quotes)

        symbol = unquote(request.url.path.rsplit("/", 1)[-1])
        payload = self.charts.get(symbol)
        if payload is None:
            return httpx.Response(404, json={"chart": {"result": None, "error": {"code": "Not Found"}}})
        if isinstance(payload, str):
            return httpx.Response(200, text=payload)
        return httpx.Response(200, json=payload)

    def _alphavantage(self, request: httpx.Request) -> httpx.Response:
        self.calls["alphavantage"].append(request.url)
        params = request.url.params
        symbol = params.get("symbol")
        if params.get("function") == "GLOBAL_QUOTE":
            quote = self.av_quotes.get(symbol)
            return httpx.Response(200, json={"Global Quote": quote} if quote else {"Global Quote": {}})
        payload = self.av_series.get(symbol)
        return httpx.Response(200, json=payload or {"Error Message": "Invalid API call."})

    def _fmp(self, request: httpx.Request) -> httpx.Response:
        self.calls["fmp"].append(request.url)
        path = unquote(request.url.path)
        if path.startswith("/api/v3/quote/"):
            if self.fmp_quotes is None:
                return httpx.Response(200, json={"Error Message": "Limit Reach"})
            return httpx.Response(200, json=self.fmp_quotes)
        symbol = path.rsplit("/", 1)[-1]
        payload = self.fmp_history.get(symbol)
        return httpx.Response(200, json=payload or {})

    def _push(self, request: httpx.Request) -> httpx.Response:
        self.calls["push"].append(request.url)
        message = json.loads(request.content)
        self.pushes.append(message)
        if message["to"] in self.failing_tokens:
            return httpx.Response(200, json={"data": {
                "status": "error",
                "message": "\"ExponentPushToken[x]\" is not a registered push notification recipient",
                "details": {"error": "DeviceNotRegistered"},
            }})
        return httpx.Response(200, json={"data": {"status": "ok", "id": f"ticket-{len(self.pushes)}"}})


# ─────────────────────────────────────────────────────────────────────────────
# Bar Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_bars():
    """Factory: closes -> consecutive daily Bars from 2024-01-01."""
    def _make(closes: List[float], start: date = START) -> List[Bar]:
        return [
            Bar(date=day(i, start), open=c, high=c, low=c, close=c, volume=1000)
            for i, c in enumerate(closes)
        ]
    return _make


@pytest.fixture
def crossing_up_closes():
    """12 days; close jumps above MA10 on index 10 (ma10 10.2) and stays."""
    return [10.0] * 10 + [12.0, 12.0]


# ─────────────────────────────────────────────────────────────────────────────
# Service Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
async def http_client(upstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handle)) as client:
        yield client


@pytest.fixture
def kv_store(http_client):
    return KVStore(http_client, KV_URL, KV_TOKEN)


@pytest.fixture
def device_store(kv_store):
    return DeviceStore(kv_store)


@pytest.fixture
def data_service(http_client):
    return DataProviderService.create(http_client, alpha_vantage_key="av-key", fmp_key="fmp-key")


@pytest.fixture
def push_client(http_client):
    return ExpoPushClient(http_client)


@pytest.fixture
def signal_checker(device_store, data_service, push_client):
    return SignalChecker(device_store, data_service, push_client, detector=MACrossoverDetector())


@pytest.fixture
def test_settings():
    return Settings(
        CRON_SECRET="test-secret",
        KV_REST_API_URL=KV_URL,
        KV_REST_API_TOKEN=KV_TOKEN,
        ALPHA_VANTAGE_KEY="av-key",
        FMP_KEY="fmp-key",
    )


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI Test Client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
async def app(http_client, test_settings):
    """FastAPI app wired to the fake upstream (lifespan is not run by ASGITransport)."""
    from crosswatch.main import app as fastapi_app, build_services
    build_services(fastapi_app, http_client, test_settings)
    return fastapi_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing API endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Authorization header carrying the cron secret."""
    return {"Authorization": "Bearer test-secret"}
