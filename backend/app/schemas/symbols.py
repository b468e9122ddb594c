from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class CapTier(str, Enum):
    LARGE = "Large Cap"
    MID = "Mid Cap"
    SMALL = "Small Cap"
    UNKNOWN = "Unknown"


class CapSource(str, Enum):
    RANK_BASED = "rank-based"
    THRESHOLD = "threshold"
    GENERATIVE = "generative"
    UNKNOWN = "unknown"


class SymbolKey(BaseModel):
    """(ticker, market) pair; tickers alone are not unique across markets."""

    model_config = ConfigDict(frozen=True)

    ticker: str
    market: str

    @field_validator("ticker", "market")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def cache_key(self) -> str:
        return f"{self.market}:{self.ticker}"


class TierAssignment(BaseModel):
    ticker: str
    market: str
    tier: CapTier
    source: CapSource
