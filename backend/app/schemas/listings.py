from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class Listing(BaseModel):
    symbol: str
    market: str
    company_name: str | None = None
    market_cap: float | None = None

    @field_validator("symbol", "market")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return value.strip().upper()


class UniverseSyncReport(BaseModel):
    market: str
    source: str
    fetched: int = 0
    upserted: int = 0
    failed: int = 0
    failed_chunks: int = 0


class UniverseSyncRequest(BaseModel):
    markets: list[str] = Field(default_factory=list)


class UniverseSyncResponse(BaseModel):
    markets: list[str]
    job_id: str
    status: str = "queued"
