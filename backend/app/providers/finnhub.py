from __future__ import annotations

import datetime
import time
from typing import Any, Callable
from urllib.parse import urlencode

from app.config.settings import settings
from app.providers.http import request_json
from app.schemas.provider import ProviderSnapshot
from app.schemas.quotes import QuoteObservation


_QUOTE_PATH = "/api/v1/quote"


def _build_url(path: str, params: dict[str, str]) -> str:
    base_url = settings.providers.finnhub_base_url.rstrip("/")
    return f"{base_url}{path}?{urlencode(params)}"


def fetch_quote(
    symbol: str,
    *,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    api_key = settings.providers.finnhub_api_key
    if not api_key:
        return ProviderSnapshot(provider="finnhub", symbol=symbol, status="missing_key")

    url = _build_url(_QUOTE_PATH, {"symbol": symbol, "token": api_key})
    return request_json(
        "finnhub",
        symbol,
        url,
        max_retries=settings.quotes.max_retries,
        backoff_base=settings.quotes.backoff_base_seconds,
        timeout=settings.quotes.request_timeout_seconds,
        open_url=open_url,
        sleep=sleep,
    )


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def observation_from_payload(payload: dict) -> QuoteObservation:
    # c = current, d = change, dp = change percent, pc = previous close, t = unix time
    observed_at = None
    timestamp = _number(payload.get("t"))
    if timestamp is not None and timestamp > 0:
        observed_at = datetime.datetime.fromtimestamp(int(timestamp), tz=datetime.UTC)
    return QuoteObservation(
        current_price=_number(payload.get("c")),
        previous_close=_number(payload.get("pc")),
        api_change=_number(payload.get("d")),
        api_change_percent=_number(payload.get("dp")),
        observed_at=observed_at,
    )
