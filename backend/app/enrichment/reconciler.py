from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import Callable, Protocol

from app.cache import RetryLedger
from app.config.settings import settings
from app.enrichment.strategies import (
    SECTOR,
    TIER,
    Classification,
    ClassificationStrategy,
    Confidence,
    GenerativeClassifier,
    GenerativeStrategy,
    IndustrySectorStrategy,
    ProviderSectorStrategy,
    RankBasedTierStrategy,
    SymbolContext,
    ThresholdTierStrategy,
    TierLookup,
)
from app.providers import yahoo
from app.providers.markets import provider_symbol
from app.schemas.provider import ProviderSnapshot
from app.schemas.symbols import CapSource, CapTier, SymbolKey
from app.schemas.watchlist import AttributeMetadata, EnrichItem

logger = logging.getLogger(__name__)

ProfileFetcher = Callable[[str], ProviderSnapshot]


class WatchlistWriter(Protocol):
    async def update_enrichment(self, item_id: uuid.UUID, sector: str | None, cap_tier: CapTier) -> bool: ...


def default_strategies(
    tier_lookup: TierLookup,
    *,
    classifier: GenerativeClassifier | None = None,
    ledger: RetryLedger | None = None,
) -> list[ClassificationStrategy]:
    """Strategies in precedence order; earlier entries are never overridden."""
    return [
        RankBasedTierStrategy(tier_lookup),
        IndustrySectorStrategy(),
        ProviderSectorStrategy(),
        ThresholdTierStrategy(),
        GenerativeStrategy(classifier=classifier, ledger=ledger),
    ]


class AttributeReconciler:
    """Merges sector, industry and cap tier from sources of differing confidence.

    Strategies are folded in order. An attribute, once resolved, is never
    replaced by a later strategy, and a strategy only sees symbols whose
    required confidence it meets. Markets with a rank-based source require at
    least ``Confidence.MEDIUM`` for the tier, which keeps the generative
    classifier from ever assigning tiers there.
    """

    def __init__(
        self,
        strategies: Sequence[ClassificationStrategy],
        *,
        rank_markets: Iterable[str] | None = None,
        profile_fetcher: ProfileFetcher = yahoo.fetch_profile,
        concurrency: int | None = None,
    ) -> None:
        self.strategies = list(strategies)
        markets = rank_markets if rank_markets is not None else settings.rankings.indices.keys()
        self.rank_markets = {market.strip().upper() for market in markets}
        self.profile_fetcher = profile_fetcher
        self.concurrency = concurrency or settings.enrichment.concurrency

    def required_confidence(self, key: SymbolKey, attribute: str) -> Confidence:
        """Minimum strategy confidence allowed to set ``attribute`` for ``key``.

        In markets with a rank-based source the tier needs MEDIUM, so a stored
        rank-based row (HIGH) wins and the generative classifier (LOW) never
        applies. Symbols in those markets that have no stored rank row yet
        still take a threshold tier (MEDIUM) until the next ranking refresh
        assigns one.
        """
        if attribute == TIER and key.market in self.rank_markets:
            return Confidence.MEDIUM
        return Confidence.LOW

    async def reconcile(
        self,
        items: Sequence[EnrichItem],
        *,
        authorized: bool = False,
        watchlist: WatchlistWriter | None = None,
    ) -> dict[SymbolKey, AttributeMetadata]:
        contexts: dict[SymbolKey, SymbolContext] = {}
        for item in items:
            key = SymbolKey(ticker=item.symbol, market=item.market)
            if key not in contexts:
                contexts[key] = SymbolContext(key=key, display_name=item.company_name)

        await self._load_profiles(list(contexts.values()))
        resolved = await self._fold(list(contexts.values()))

        metadata: dict[SymbolKey, AttributeMetadata] = {}
        for key, context in contexts.items():
            attributes = resolved[key]
            sector = attributes.get(SECTOR)
            tier = attributes.get(TIER)
            industry = context.profile.industry if context.profile else None
            metadata[key] = AttributeMetadata(
                symbol=key.ticker,
                market=key.market,
                sector=sector.sector if sector else None,
                industry=industry or (sector.industry if sector else None),
                market_cap=context.profile.market_cap if context.profile else None,
                cap_tier=tier.cap_tier if tier and tier.cap_tier else CapTier.UNKNOWN,
                cap_source=tier.cap_source if tier and tier.cap_source else CapSource.UNKNOWN,
            )

        if authorized and watchlist is not None:
            await self._persist(items, metadata, watchlist)
        return metadata

    async def _load_profiles(self, contexts: list[SymbolContext]) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def load(context: SymbolContext) -> None:
            async with semaphore:
                snapshot = await asyncio.to_thread(
                    self.profile_fetcher, provider_symbol(context.key.ticker, context.key.market)
                )
            if snapshot.ok:
                context.profile = yahoo.parse_profile(snapshot.payload)
            else:
                logger.info("No profile for %s (%s)", context.key.cache_key, snapshot.status)

        await asyncio.gather(*(load(context) for context in contexts))

    def _wants(
        self,
        strategy: ClassificationStrategy,
        key: SymbolKey,
        attribute: str,
        resolved: dict[str, Classification],
    ) -> bool:
        return (
            attribute in strategy.attributes
            and attribute not in resolved
            and strategy.confidence >= self.required_confidence(key, attribute)
        )

    async def _fold(
        self, contexts: list[SymbolContext]
    ) -> dict[SymbolKey, dict[str, Classification]]:
        resolved: dict[SymbolKey, dict[str, Classification]] = {
            context.key: {} for context in contexts
        }
        for strategy in self.strategies:
            eligible = [
                context
                for context in contexts
                if any(
                    self._wants(strategy, context.key, attribute, resolved[context.key])
                    for attribute in (SECTOR, TIER)
                )
            ]
            if not eligible:
                continue
            results = await strategy.classify(eligible)
            for context in eligible:
                classification = results.get(context.key)
                if classification is None:
                    continue
                current = resolved[context.key]
                if classification.sector and self._wants(strategy, context.key, SECTOR, current):
                    current[SECTOR] = classification
                if classification.cap_tier and self._wants(strategy, context.key, TIER, current):
                    current[TIER] = classification
        return resolved

    async def _persist(
        self,
        items: Sequence[EnrichItem],
        metadata: dict[SymbolKey, AttributeMetadata],
        watchlist: WatchlistWriter,
    ) -> None:
        for item in items:
            if item.id is None:
                continue
            meta = metadata.get(SymbolKey(ticker=item.symbol, market=item.market))
            if meta is None or (not meta.sector and meta.cap_tier is CapTier.UNKNOWN):
                continue
            try:
                await watchlist.update_enrichment(item.id, meta.sector, meta.cap_tier)
            except Exception as exc:
                logger.warning("Watchlist update for %s (%s) failed: %s", item.symbol, item.id, exc)
