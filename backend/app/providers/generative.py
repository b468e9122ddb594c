from __future__ import annotations

import json
import re
import time
from typing import Any, Callable

from app.config.settings import settings
from app.providers.http import request_json
from app.schemas.provider import ProviderSnapshot


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_code_fences(content: str) -> str:
    return _FENCE_RE.sub("", content.strip()).strip()


def _message_content(payload: dict) -> str:
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content")
    return content if isinstance(content, str) else ""


def complete_json(
    purpose: str,
    prompt: str,
    *,
    open_url: Callable[..., Any] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderSnapshot:
    """Ask the generative classifier for a JSON object.

    The parsed object is returned as the snapshot payload. Responses that are
    not a JSON object come back with status ``error``.
    """
    api_key = settings.providers.ai_gateway_api_key
    if not api_key:
        return ProviderSnapshot(provider="generative", symbol=purpose, status="missing_key")

    snapshot = request_json(
        "generative",
        purpose,
        settings.providers.ai_gateway_url,
        headers={"Authorization": f"Bearer {api_key}"},
        body={
            "model": settings.providers.ai_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.1,
        },
        max_retries=1,
        timeout=max(settings.quotes.request_timeout_seconds, 30.0),
        open_url=open_url,
        sleep=sleep,
    )
    if not snapshot.ok:
        return snapshot

    content = strip_code_fences(_message_content(snapshot.payload))
    if not content:
        return snapshot.model_copy(update={"status": "empty", "payload": {}})
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return snapshot.model_copy(
            update={"status": "error", "payload": {}, "detail": "unparseable response"}
        )
    if not isinstance(parsed, dict):
        return snapshot.model_copy(
            update={"status": "error", "payload": {}, "detail": "response is not an object"}
        )
    return snapshot.model_copy(update={"payload": parsed})
