from __future__ import annotations

import http.client
import json
import logging
import socket
import time
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from app.config.settings import settings
from app.schemas.provider import ProviderSnapshot

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (
    URLError,
    TimeoutError,
    socket.timeout,
    ConnectionError,
    http.client.HTTPException,
)


def _parse_json_object(raw: str) -> dict:
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("unexpected payload shape")
    return payload


def _wrap_text(raw: str) -> dict:
    if not raw.strip():
        raise ValueError("empty body")
    return {"text": raw}


def request_json(
    provider: str,
    symbol: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
    max_retries: int | None = None,
    backoff_base: float | None = None,
    timeout: float | None = None,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    """Call a JSON endpoint with bounded retries.

    Attempts are strictly sequential; attempt ``n`` waits ``backoff_base * 2**n``
    before the next one starts. The final failure is returned as a snapshot with
    a non-ok status, never raised.
    """
    return _request(
        provider,
        symbol,
        url,
        _parse_json_object,
        accept="application/json",
        headers=headers,
        body=body,
        max_retries=max_retries,
        backoff_base=backoff_base,
        timeout=timeout,
        open_url=open_url,
        sleep=sleep,
    )


def request_text(
    provider: str,
    symbol: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    max_retries: int | None = None,
    backoff_base: float | None = None,
    timeout: float | None = None,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    """Like ``request_json`` for plain-text bodies; the text lands in ``payload["text"]``."""
    return _request(
        provider,
        symbol,
        url,
        _wrap_text,
        accept="text/csv,text/plain,*/*",
        headers=headers,
        max_retries=max_retries,
        backoff_base=backoff_base,
        timeout=timeout,
        open_url=open_url,
        sleep=sleep,
    )


def _request(
    provider: str,
    symbol: str,
    url: str,
    parse: Callable[[str], dict],
    *,
    accept: str,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
    max_retries: int | None = None,
    backoff_base: float | None = None,
    timeout: float | None = None,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    attempts_allowed = max(1, max_retries if max_retries is not None else settings.quotes.max_retries)
    base = backoff_base if backoff_base is not None else settings.quotes.backoff_base_seconds
    timeout_seconds = timeout if timeout is not None else settings.quotes.request_timeout_seconds
    opener = open_url or urlopen

    data = json.dumps(body).encode("utf-8") if body is not None else None
    request_headers = {"Accept": accept, **(headers or {})}
    if data is not None:
        request_headers["Content-Type"] = "application/json"

    status = "error"
    detail: str | None = None
    for attempt in range(attempts_allowed):
        request = Request(url, data=data, headers=request_headers)
        try:
            with opener(request, timeout=timeout_seconds) as response:
                raw = response.read().decode("utf-8")
            payload = parse(raw)
        except HTTPError as exc:
            status = "rate_limited" if exc.code == 429 else "error"
            detail = f"HTTP {exc.code}"
        except (*_TRANSPORT_ERRORS, ValueError) as exc:
            status = "error"
            detail = str(exc) or exc.__class__.__name__
        else:
            return ProviderSnapshot(
                provider=provider,
                symbol=symbol,
                payload=payload,
                status="ok",
                attempts=attempt + 1,
            )

        if attempt < attempts_allowed - 1:
            wait_time = base * (2**attempt)
            logger.warning(
                "%s request for %s failed (%s), retrying in %.2fs",
                provider,
                symbol,
                detail,
                wait_time,
            )
            sleep(wait_time)

    logger.warning(
        "%s request for %s failed after %d attempts: %s",
        provider,
        symbol,
        attempts_allowed,
        detail,
    )
    return ProviderSnapshot(
        provider=provider,
        symbol=symbol,
        status=status,
        attempts=attempts_allowed,
        detail=detail,
    )
