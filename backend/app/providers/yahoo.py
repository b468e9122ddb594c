from __future__ import annotations

import time
from typing import Any, Callable
from urllib.parse import quote, urlencode

from pydantic import BaseModel

from app.config.settings import settings
from app.providers.http import request_json
from app.schemas.provider import ProviderSnapshot


_SUMMARY_PATH = "/v10/finance/quoteSummary/"
_MODULES = "summaryProfile,summaryDetail,price"


class CompanyProfile(BaseModel):
    sector: str | None = None
    industry: str | None = None
    market_cap: float | None = None


def _build_url(symbol: str) -> str:
    base_url = settings.providers.yahoo_base_url.rstrip("/")
    return f"{base_url}{_SUMMARY_PATH}{quote(symbol)}?{urlencode({'modules': _MODULES})}"


def fetch_profile(
    symbol: str,
    *,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    snapshot = request_json(
        "yahoo",
        symbol,
        _build_url(symbol),
        headers={"User-Agent": settings.providers.user_agent},
        open_url=open_url,
        sleep=sleep,
    )
    if not snapshot.ok:
        return snapshot
    result = (snapshot.payload.get("quoteSummary") or {}).get("result") or []
    if not result or not isinstance(result[0], dict):
        return snapshot.model_copy(update={"status": "empty", "payload": {}})
    return snapshot.model_copy(update={"payload": result[0]})


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_profile(payload: dict) -> CompanyProfile:
    profile = payload.get("summaryProfile") or {}
    price = payload.get("price") or {}
    market_cap = price.get("marketCap")
    if isinstance(market_cap, dict):
        market_cap = market_cap.get("raw")
    if isinstance(market_cap, bool) or not isinstance(market_cap, (int, float)) or market_cap <= 0:
        market_cap = None
    return CompanyProfile(
        sector=_text(profile.get("sector")) or _text(price.get("sector")),
        industry=_text(profile.get("industry")),
        market_cap=float(market_cap) if market_cap is not None else None,
    )
