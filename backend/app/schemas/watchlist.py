from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from app.schemas.symbols import CapSource, CapTier


class EnrichItem(BaseModel):
    symbol: str
    market: str = "NYSE"
    id: uuid.UUID | None = None
    company_name: str | None = None


class EnrichRequest(BaseModel):
    symbols: list[EnrichItem] = Field(default_factory=list)
    update_database: bool = False


class AttributeMetadata(BaseModel):
    symbol: str
    market: str
    sector: str | None = None
    industry: str | None = None
    market_cap: float | None = None
    cap_tier: CapTier = CapTier.UNKNOWN
    cap_source: CapSource = CapSource.UNKNOWN


class EnrichResponse(BaseModel):
    version: str = "v1"
    metadata: dict[str, AttributeMetadata] = Field(default_factory=dict)
