from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Callable, Iterable

from app.cache import QuoteCache
from app.config.settings import settings
from app.providers import finnhub
from app.providers.markets import provider_symbol
from app.quotes.market_status import classify_quote
from app.schemas.provider import ProviderSnapshot
from app.schemas.quotes import QuoteRecord, SymbolRequest
from app.schemas.symbols import SymbolKey

logger = logging.getLogger(__name__)

QuoteFetcher = Callable[[str], ProviderSnapshot]


class QuoteService:
    """Resolves quotes for a batch of symbols from cache or upstream.

    Upstream calls run with bounded parallelism per request. A symbol whose
    fetch fails falls back to its last cached quote, flagged as closed; a
    symbol that was never priced is left out of the result.
    """

    def __init__(
        self,
        cache: QuoteCache,
        fetcher: QuoteFetcher = finnhub.fetch_quote,
        *,
        concurrency: int | None = None,
        stale_after: datetime.timedelta | None = None,
        batch_timeout: float | None = None,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.concurrency = concurrency or settings.quotes.concurrency
        self.stale_after = stale_after or datetime.timedelta(
            seconds=settings.quotes.stale_after_seconds
        )
        self.batch_timeout = (
            batch_timeout if batch_timeout is not None else settings.quotes.batch_timeout_seconds
        )

    async def get_quotes(
        self,
        symbols: Iterable[SymbolRequest | SymbolKey],
        timeout: float | None = None,
    ) -> dict[str, QuoteRecord]:
        keys = list(dict.fromkeys(_to_key(item) for item in symbols))
        if not keys:
            return {}

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = {key: asyncio.create_task(self._resolve(key, semaphore)) for key in keys}
        wait_for = timeout if timeout is not None else self.batch_timeout
        _, pending = await asyncio.wait(tasks.values(), timeout=wait_for)
        if pending:
            logger.warning("Quote batch timed out with %d of %d symbols pending", len(pending), len(keys))
            for task in pending:
                task.cancel()

        prices: dict[str, QuoteRecord] = {}
        for key, task in tasks.items():
            if task in pending or task.cancelled():
                fallback = self._last_known(key)
                if fallback is not None:
                    prices[key.ticker] = fallback
                continue
            exc = task.exception()
            if exc is not None:
                logger.warning("Quote resolution for %s raised: %r", key.cache_key, exc)
                continue
            record = task.result()
            if record is not None:
                prices[key.ticker] = record
        return prices

    async def _resolve(self, key: SymbolKey, semaphore: asyncio.Semaphore) -> QuoteRecord | None:
        entry = self.cache.get(key.cache_key)
        if entry is not None and self.cache.is_fresh(entry):
            logger.debug("Quote cache hit for %s", key.cache_key)
            return entry.data

        async with semaphore:
            snapshot = await asyncio.to_thread(
                self.fetcher, provider_symbol(key.ticker, key.market)
            )

        record = None
        if snapshot.ok:
            observation = finnhub.observation_from_payload(snapshot.payload)
            record = classify_quote(observation, self.cache.clock(), self.stale_after)
        if record is not None:
            self.cache.put(key.cache_key, record)
            return record

        if entry is not None:
            logger.info(
                "Serving last known quote for %s (fetch status %s)", key.cache_key, snapshot.status
            )
            return entry.data.model_copy(update={"is_market_closed": True})
        return None

    def _last_known(self, key: SymbolKey) -> QuoteRecord | None:
        entry = self.cache.get(key.cache_key)
        if entry is None:
            return None
        logger.info("Serving last known quote for %s after batch timeout", key.cache_key)
        return entry.data.model_copy(update={"is_market_closed": True})


def _to_key(item: SymbolRequest | SymbolKey) -> SymbolKey:
    if isinstance(item, SymbolKey):
        return item
    return SymbolKey(ticker=item.symbol, market=item.market)
