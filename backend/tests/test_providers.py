import json

from app.config.settings import settings
from app.providers import generative, yahoo
from app.providers.markets import provider_symbol


class FakeResponse:
    def __init__(self, payload) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        return None


class ScriptedOpener:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.urls: list[str] = []

    def __call__(self, request, timeout=None):
        self.urls.append(request.full_url)
        return FakeResponse(self.outcomes.pop(0))


def _chat(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_provider_symbol_applies_market_suffix() -> None:
    assert provider_symbol("reliance", "nse") == "RELIANCE.NS"
    assert provider_symbol("RELIANCE.NS", "NSE") == "RELIANCE.NS"
    assert provider_symbol("AAPL", "NASDAQ") == "AAPL"
    assert provider_symbol("VOD", "LSE") == "VOD.L"
    assert provider_symbol("XYZ", "UNLISTED") == "XYZ"


def test_strip_code_fences() -> None:
    assert generative.strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert generative.strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert generative.strip_code_fences(' {"a": 1} ') == '{"a": 1}'


def test_complete_json_parses_fenced_object(monkeypatch) -> None:
    monkeypatch.setattr(settings.providers, "ai_gateway_api_key", "key")
    body = {"large_cap": ["TCS", "INFY"]}
    opener = ScriptedOpener([_chat(f"```json\n{json.dumps(body)}\n```")])

    snapshot = generative.complete_json("rank-lists:NSE", "prompt", open_url=opener)

    assert snapshot.ok
    assert snapshot.payload == body
    assert opener.urls == [settings.providers.ai_gateway_url]


def test_complete_json_rejects_non_object(monkeypatch) -> None:
    monkeypatch.setattr(settings.providers, "ai_gateway_api_key", "key")
    opener = ScriptedOpener([_chat('["TCS"]')])

    snapshot = generative.complete_json("attributes", "prompt", open_url=opener)

    assert snapshot.status == "error"
    assert snapshot.payload == {}


def test_complete_json_unparseable_and_empty(monkeypatch) -> None:
    monkeypatch.setattr(settings.providers, "ai_gateway_api_key", "key")
    opener = ScriptedOpener([_chat("I am not sure."), _chat("")])

    unparseable = generative.complete_json("attributes", "prompt", open_url=opener)
    empty = generative.complete_json("attributes", "prompt", open_url=opener)

    assert unparseable.status == "error"
    assert empty.status == "empty"


def test_complete_json_without_key_skips_network(monkeypatch) -> None:
    monkeypatch.setattr(settings.providers, "ai_gateway_api_key", None)
    opener = ScriptedOpener([])

    snapshot = generative.complete_json("attributes", "prompt", open_url=opener)

    assert snapshot.status == "missing_key"
    assert opener.urls == []


def test_yahoo_profile_unwraps_summary() -> None:
    payload = {
        "quoteSummary": {
            "result": [
                {
                    "summaryProfile": {"sector": "Technology", "industry": "Software - Infrastructure"},
                    "price": {"marketCap": {"raw": 3.1e12, "fmt": "3.1T"}},
                }
            ]
        }
    }
    opener = ScriptedOpener([payload, {"quoteSummary": {"result": []}}])

    snapshot = yahoo.fetch_profile("MSFT", open_url=opener)
    missing = yahoo.fetch_profile("NOPE", open_url=opener)

    assert snapshot.ok
    profile = yahoo.parse_profile(snapshot.payload)
    assert profile.sector == "Technology"
    assert profile.industry == "Software - Infrastructure"
    assert profile.market_cap == 3.1e12
    assert "MSFT" in opener.urls[0]
    assert missing.status == "empty"


def test_yahoo_profile_ignores_invalid_market_cap() -> None:
    profile = yahoo.parse_profile({"summaryProfile": {"sector": " "}, "price": {"marketCap": 0}})

    assert profile.sector is None
    assert profile.market_cap is None
