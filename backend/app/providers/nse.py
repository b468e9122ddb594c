from __future__ import annotations

import logging
import time
from http.cookiejar import CookieJar
from typing import Callable
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import HTTPCookieProcessor, OpenerDirector, Request, build_opener

from app.config.settings import settings
from app.providers.http import request_json
from app.schemas.provider import ProviderSnapshot

logger = logging.getLogger(__name__)

_INDEX_PATH = "/api/equity-stockIndices"


def _headers() -> dict[str, str]:
    return {
        "User-Agent": settings.providers.user_agent,
        "Accept-Language": "en-US,en;q=0.9",
        "Referer": f"{settings.providers.nse_base_url.rstrip('/')}/",
    }


def build_session_opener() -> OpenerDirector:
    return build_opener(HTTPCookieProcessor(CookieJar()))


def _handshake(opener: OpenerDirector) -> None:
    # The index API rejects requests that lack the cookies set by the home page.
    request = Request(settings.providers.nse_base_url, headers=_headers())
    try:
        with opener.open(request, timeout=settings.quotes.request_timeout_seconds) as response:
            response.read()
    except (URLError, TimeoutError, OSError) as exc:
        logger.warning("NSE session handshake failed: %s", exc)


def parse_constituents(index_name: str, payload: dict) -> list[str]:
    rows = payload.get("data")
    if not isinstance(rows, list):
        return []
    index_label = index_name.strip().upper()
    members: set[str] = set()
    for row in rows:
        if not isinstance(row, dict):
            continue
        symbol = str(row.get("symbol") or "").strip().upper()
        if not symbol or symbol == index_label:
            continue
        members.add(symbol)
    return sorted(members)


def fetch_index_constituents(
    index_name: str,
    *,
    opener: OpenerDirector | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    session = opener or build_session_opener()
    _handshake(session)

    url = f"{settings.providers.nse_base_url.rstrip('/')}{_INDEX_PATH}?{urlencode({'index': index_name})}"
    snapshot = request_json(
        "nse",
        index_name,
        url,
        headers=_headers(),
        open_url=session.open,
        sleep=sleep,
    )
    if not snapshot.ok:
        return snapshot

    members = parse_constituents(index_name, snapshot.payload)
    if not members:
        return snapshot.model_copy(update={"status": "empty", "payload": {"members": []}})
    return snapshot.model_copy(update={"payload": {"members": members}})
