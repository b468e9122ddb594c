from __future__ import annotations

import asyncio
import datetime
import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Awaitable, Callable, Iterable

from pydantic import BaseModel

from app.cache import RetryLedger
from app.config.settings import settings
from app.enrichment.sectors import (
    SECTORS,
    sector_from_industry,
    sector_from_provider,
    tier_from_market_cap,
)
from app.providers import generative
from app.providers.yahoo import CompanyProfile
from app.schemas.provider import ProviderSnapshot
from app.schemas.symbols import CapSource, CapTier, SymbolKey, TierAssignment

logger = logging.getLogger(__name__)

SECTOR = "sector"
TIER = "tier"

TierLookup = Callable[[list[SymbolKey]], Awaitable[dict[SymbolKey, TierAssignment]]]
GenerativeClassifier = Callable[[str, str], ProviderSnapshot]


class Confidence(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


class SymbolContext(BaseModel):
    key: SymbolKey
    display_name: str | None = None
    profile: CompanyProfile | None = None


class Classification(BaseModel):
    sector: str | None = None
    industry: str | None = None
    cap_tier: CapTier | None = None
    cap_source: CapSource | None = None


class ClassificationStrategy(ABC):
    """One source of sector and/or tier information.

    ``attributes`` names what the strategy can supply; ``confidence`` is
    compared against the minimum the reconciler requires for each symbol.
    """

    name: str = "strategy"
    confidence: Confidence = Confidence.LOW
    attributes: frozenset[str] = frozenset()

    @abstractmethod
    async def classify(self, contexts: list[SymbolContext]) -> dict[SymbolKey, Classification]:
        raise NotImplementedError


class RankBasedTierStrategy(ClassificationStrategy):
    name = "rank-based"
    confidence = Confidence.HIGH
    attributes = frozenset({TIER})

    def __init__(self, lookup: TierLookup) -> None:
        self.lookup = lookup

    async def classify(self, contexts: list[SymbolContext]) -> dict[SymbolKey, Classification]:
        stored = await self.lookup([context.key for context in contexts])
        return {
            key: Classification(cap_tier=assignment.tier, cap_source=CapSource.RANK_BASED)
            for key, assignment in stored.items()
            if assignment.source is CapSource.RANK_BASED
        }


class IndustrySectorStrategy(ClassificationStrategy):
    name = "industry-table"
    confidence = Confidence.HIGH
    attributes = frozenset({SECTOR})

    async def classify(self, contexts: list[SymbolContext]) -> dict[SymbolKey, Classification]:
        results: dict[SymbolKey, Classification] = {}
        for context in contexts:
            if context.profile is None:
                continue
            sector = sector_from_industry(context.profile.industry)
            if sector:
                results[context.key] = Classification(sector=sector, industry=context.profile.industry)
        return results


class ProviderSectorStrategy(ClassificationStrategy):
    name = "provider-sector"
    confidence = Confidence.MEDIUM
    attributes = frozenset({SECTOR})

    async def classify(self, contexts: list[SymbolContext]) -> dict[SymbolKey, Classification]:
        results: dict[SymbolKey, Classification] = {}
        for context in contexts:
            if context.profile is None:
                continue
            sector = sector_from_provider(context.profile.sector)
            if sector:
                results[context.key] = Classification(sector=sector, industry=context.profile.industry)
        return results


class ThresholdTierStrategy(ClassificationStrategy):
    name = "threshold"
    confidence = Confidence.MEDIUM
    attributes = frozenset({TIER})

    def __init__(self, large_threshold: float | None = None, mid_threshold: float | None = None) -> None:
        self.large_threshold = large_threshold or settings.enrichment.large_cap_threshold
        self.mid_threshold = mid_threshold or settings.enrichment.mid_cap_threshold

    async def classify(self, contexts: list[SymbolContext]) -> dict[SymbolKey, Classification]:
        results: dict[SymbolKey, Classification] = {}
        for context in contexts:
            if context.profile is None:
                continue
            tier = tier_from_market_cap(
                context.profile.market_cap, self.large_threshold, self.mid_threshold
            )
            if tier is not None:
                results[context.key] = Classification(cap_tier=tier, cap_source=CapSource.THRESHOLD)
        return results


def build_generative_prompt(contexts: Iterable[SymbolContext]) -> str:
    lines = []
    for context in contexts:
        name = f" ({context.display_name})" if context.display_name else ""
        lines.append(f"- {context.key.cache_key}{name}")
    tiers = ", ".join(tier.value for tier in (CapTier.LARGE, CapTier.MID, CapTier.SMALL))
    return (
        "Classify the following listed companies. Each line is MARKET:SYMBOL "
        "followed by the company name when known.\n"
        + "\n".join(lines)
        + "\n\nRespond ONLY with a JSON object mapping each MARKET:SYMBOL exactly as "
        'given to an object {"sector": ..., "industry": ..., "cap_tier": ...}. '
        f"Use one of these sectors where possible: {', '.join(SECTORS)}. "
        f"cap_tier must be one of: {tiers}. Use null for anything you do not know."
    )


def _parse_entry(entry: object) -> Classification | None:
    if not isinstance(entry, dict):
        return None
    sector = entry.get("sector")
    industry = entry.get("industry")
    try:
        cap_tier: CapTier | None = CapTier(entry.get("cap_tier"))
    except ValueError:
        cap_tier = None
    if cap_tier is CapTier.UNKNOWN:
        cap_tier = None
    classification = Classification(
        sector=sector.strip() if isinstance(sector, str) and sector.strip() else None,
        industry=industry.strip() if isinstance(industry, str) and industry.strip() else None,
        cap_tier=cap_tier,
        cap_source=CapSource.GENERATIVE if cap_tier is not None else None,
    )
    if classification.sector is None and classification.cap_tier is None:
        return None
    return classification


class GenerativeStrategy(ClassificationStrategy):
    """Last-resort batched classifier call for whatever is still unresolved.

    Symbols the classifier could not answer are deferred in the retry ledger
    so repeated requests do not re-ask for them until the delay passes.
    """

    name = "generative"
    confidence = Confidence.LOW
    attributes = frozenset({SECTOR, TIER})

    def __init__(
        self,
        classifier: GenerativeClassifier | None = None,
        ledger: RetryLedger | None = None,
        retry_after: datetime.timedelta | None = None,
    ) -> None:
        self.classifier = classifier
        self.ledger = ledger
        self.retry_after = retry_after or datetime.timedelta(
            seconds=settings.enrichment.generative_retry_after_seconds
        )

    def _ledger_key(self, key: SymbolKey) -> str:
        return f"generative:{key.cache_key}"

    async def classify(self, contexts: list[SymbolContext]) -> dict[SymbolKey, Classification]:
        ready = [
            context
            for context in contexts
            if self.ledger is None or self.ledger.ready(self._ledger_key(context.key))
        ]
        if not ready:
            return {}

        classify = self.classifier or generative.complete_json
        response = await asyncio.to_thread(classify, "attributes", build_generative_prompt(ready))
        if not response.ok:
            logger.warning(
                "Generative classification for %d symbols unavailable: %s",
                len(ready),
                response.status,
            )
            return {}

        answers = {str(label).strip().upper(): entry for label, entry in response.payload.items()}
        results: dict[SymbolKey, Classification] = {}
        for context in ready:
            classification = _parse_entry(answers.get(context.key.cache_key))
            if classification is not None:
                results[context.key] = classification
                if self.ledger is not None:
                    self.ledger.clear(self._ledger_key(context.key))
            elif self.ledger is not None:
                self.ledger.defer(self._ledger_key(context.key), self.retry_after)
        return results
