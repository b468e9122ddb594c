from __future__ import annotations

import datetime

from pydantic import BaseModel, Field


class QuoteObservation(BaseModel):
    current_price: float | None = None
    previous_close: float | None = None
    api_change: float | None = None
    api_change_percent: float | None = None
    observed_at: datetime.datetime | None = None


class QuoteRecord(BaseModel):
    price: float
    change: float
    change_percent: float
    previous_close: float | None = None
    is_market_closed: bool
    last_updated_at: datetime.datetime


class SymbolRequest(BaseModel):
    symbol: str
    market: str = "NYSE"


class QuoteRequest(BaseModel):
    symbols: list[SymbolRequest] = Field(default_factory=list)


class QuoteResponse(BaseModel):
    version: str = "v1"
    prices: dict[str, QuoteRecord] = Field(default_factory=dict)
