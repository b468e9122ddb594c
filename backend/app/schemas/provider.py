from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ProviderStatus = Literal["ok", "error", "rate_limited", "missing_key", "empty"]


class ProviderSnapshot(BaseModel):
    provider: str
    symbol: str
    payload: dict = Field(default_factory=dict)
    status: ProviderStatus = "error"
    attempts: int = 0
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"
