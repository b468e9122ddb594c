from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.symbols import CapTier

Provenance = Literal["official", "generative-fallback"]


class TierList(BaseModel):
    tier: CapTier
    index_name: str
    members: set[str] = Field(default_factory=set)
    provenance: Provenance = "official"


class RankListResult(BaseModel):
    market: str
    status: Literal["ok", "insufficient_data"]
    large: TierList
    mid: TierList

    @property
    def is_official(self) -> bool:
        return self.large.provenance == "official" and self.mid.provenance == "official"


class ClassificationReport(BaseModel):
    market: str
    large: int = 0
    mid: int = 0
    small: int = 0
    total: int = 0
    updated: int = 0
    failed: int = 0
    failed_chunks: int = 0


class RankRefreshResponse(BaseModel):
    market: str
    job_id: str
    status: str = "queued"
