from __future__ import annotations

import csv
import io
import time
from typing import Any, Callable

from app.config.settings import settings
from app.providers.http import request_json, request_text
from app.providers.markets import MARKET_SUFFIXES
from app.schemas.listings import Listing
from app.schemas.provider import ProviderSnapshot


SCREENER_REGIONS: dict[str, str] = {
    "NYSE": "us",
    "NASDAQ": "us",
    "NSE": "in",
    "BSE": "in",
    "LSE": "gb",
    "TSX": "ca",
    "ASX": "au",
    "HKEX": "hk",
    "TSE": "jp",
    "XETRA": "de",
    "EURONEXT": "fr",
}

# The "us" region mixes both US exchanges.
SCREENER_EXCHANGES: dict[str, set[str]] = {
    "NYSE": {"NYQ"},
    "NASDAQ": {"NMS", "NGM", "NCM"},
}

_EQUITY_SERIES = {"EQ", "BE", "BZ", "SM", "ST", "MF", ""}


def _headers(referer: str | None = None) -> dict[str, str]:
    headers = {
        "User-Agent": settings.providers.user_agent,
        "Accept-Language": "en-US,en;q=0.9",
    }
    if referer:
        headers["Referer"] = referer
    return headers


def _retry_options() -> dict[str, float]:
    return {
        "max_retries": settings.universe.max_retries,
        "backoff_base": settings.universe.backoff_base_seconds,
    }


def _with_listings(snapshot: ProviderSnapshot, listings: list[Listing]) -> ProviderSnapshot:
    if not listings:
        return snapshot.model_copy(update={"status": "empty", "payload": {}})
    return snapshot.model_copy(
        update={"payload": {"listings": [listing.model_dump() for listing in listings]}}
    )


def parse_equity_csv(market: str, text: str) -> list[Listing]:
    """Parse an exchange equity master CSV (``SYMBOL``, ``NAME OF COMPANY``, ``SERIES``)."""
    rows = [row for row in csv.reader(io.StringIO(text.strip())) if row]
    if not rows:
        return []

    header_index = None
    for index, row in enumerate(rows[:5]):
        cells = [cell.strip().upper() for cell in row]
        if "SYMBOL" in cells:
            header_index = index
            break

    if header_index is None:
        symbol_col, name_col, series_col = 0, 1, None
        body = rows
    else:
        cells = [cell.strip().upper() for cell in rows[header_index]]
        symbol_col = cells.index("SYMBOL")
        name_col = next(
            (i for i, cell in enumerate(cells) if "NAME" in cell and "COMPANY" in cell),
            cells.index("NAME") if "NAME" in cells else None,
        )
        series_col = cells.index("SERIES") if "SERIES" in cells else None
        body = rows[header_index + 1 :]

    listings: dict[str, Listing] = {}
    for row in body:
        if len(row) <= symbol_col:
            continue
        symbol = row[symbol_col].strip().upper()
        if not symbol or symbol == "SYMBOL":
            continue
        if series_col is not None and len(row) > series_col:
            if row[series_col].strip().upper() not in _EQUITY_SERIES:
                continue
        name = row[name_col].strip() if name_col is not None and len(row) > name_col else ""
        listings.setdefault(symbol, Listing(symbol=symbol, market=market, company_name=name or symbol))
    return list(listings.values())


def parse_bse_scrips(payload: dict) -> list[Listing]:
    rows = payload.get("Table")
    if not isinstance(rows, list):
        return []
    listings: dict[str, Listing] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        symbol = str(
            row.get("scripsname") or row.get("SCRIP_NAME") or row.get("Scripname") or ""
        ).strip().upper()
        if not symbol:
            continue
        name = str(row.get("LONG_NAME") or row.get("LongName") or row.get("long_name") or "").strip()
        listings.setdefault(symbol, Listing(symbol=symbol, market="BSE", company_name=name or symbol))
    return list(listings.values())


def build_screener_query(region: str, offset: int, size: int) -> dict[str, Any]:
    return {
        "size": size,
        "offset": offset,
        "sortField": "intradaymarketcap",
        "sortType": "DESC",
        "quoteType": "EQUITY",
        "query": {
            "operator": "AND",
            "operands": [{"operator": "eq", "operands": ["region", region]}],
        },
        "userId": "",
        "userIdType": "guid",
    }


def _raw_number(value: Any) -> float | None:
    if isinstance(value, dict):
        value = value.get("raw")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    return float(value)


def parse_screener(market: str, payload: dict) -> list[Listing]:
    results = (payload.get("finance") or {}).get("result") or []
    if not results or not isinstance(results[0], dict):
        return []
    suffix = MARKET_SUFFIXES.get(market, "")
    exchanges = SCREENER_EXCHANGES.get(market)

    listings: dict[str, Listing] = {}
    for quote in results[0].get("quotes") or []:
        if not isinstance(quote, dict):
            continue
        if exchanges and quote.get("exchange") not in exchanges:
            continue
        symbol = str(quote.get("symbol") or "").strip().upper()
        if suffix:
            if not symbol.endswith(suffix):
                continue
            symbol = symbol[: -len(suffix)]
        if not symbol:
            continue
        name = quote.get("shortName") or quote.get("longName") or symbol
        listings.setdefault(
            symbol,
            Listing(
                symbol=symbol,
                market=market,
                company_name=str(name).strip(),
                market_cap=_raw_number(quote.get("marketCap")),
            ),
        )
    return list(listings.values())


def fetch_nse_equity_list(
    *,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    snapshot = request_text(
        "nse-equity-list",
        "NSE",
        settings.providers.nse_equity_list_url,
        headers=_headers(referer=f"{settings.providers.nse_base_url.rstrip('/')}/"),
        open_url=open_url,
        sleep=sleep,
        **_retry_options(),
    )
    if not snapshot.ok:
        return snapshot
    return _with_listings(snapshot, parse_equity_csv("NSE", snapshot.payload["text"]))


def fetch_bse_scrips(
    *,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    snapshot = request_json(
        "bse-scrip-list",
        "BSE",
        settings.providers.bse_scrip_list_url,
        headers=_headers(referer="https://www.bseindia.com/"),
        open_url=open_url,
        sleep=sleep,
        **_retry_options(),
    )
    if not snapshot.ok:
        return snapshot
    return _with_listings(snapshot, parse_bse_scrips(snapshot.payload))


def fetch_screener(
    market: str,
    *,
    offset: int = 0,
    size: int | None = None,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    region = SCREENER_REGIONS.get(market)
    if region is None:
        return ProviderSnapshot(provider="yahoo-screener", symbol=market, status="empty")
    snapshot = request_json(
        "yahoo-screener",
        market,
        settings.providers.yahoo_screener_url,
        headers=_headers(),
        body=build_screener_query(region, offset, size or settings.universe.screener_page_size),
        open_url=open_url,
        sleep=sleep,
        **_retry_options(),
    )
    if not snapshot.ok:
        return snapshot
    return _with_listings(snapshot, parse_screener(market, snapshot.payload))


def fetch_market_listings(
    market: str,
    *,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    """Fetch the listed equities for ``market`` from its best available source.

    The snapshot's ``provider`` names the source; the payload holds
    ``{"listings": [...]}`` on success.
    """
    market = market.strip().upper()
    if market == "NSE":
        return fetch_nse_equity_list(open_url=open_url, sleep=sleep)
    if market == "BSE":
        return fetch_bse_scrips(open_url=open_url, sleep=sleep)
    return fetch_screener(market, open_url=open_url, sleep=sleep)
