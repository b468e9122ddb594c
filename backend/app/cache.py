from __future__ import annotations

import datetime
import logging
import threading
import zlib
from typing import Callable, MutableMapping, Protocol

from cachetools import LRUCache
from pydantic import BaseModel, ValidationError
from redis import Redis
from redis.exceptions import RedisError

from app.config.settings import settings
from app.schemas.quotes import QuoteRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class CacheEntry(BaseModel):
    key: str
    data: QuoteRecord
    stored_at: datetime.datetime


class QuoteStore(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, entry: CacheEntry) -> None: ...


class MemoryQuoteStore:
    """Process-local entry map split into independently locked shards.

    Writes to different keys only contend when the keys hash to the same
    shard. With ``max_entries`` set, each shard evicts least recently used
    entries once it holds its share of the bound.
    """

    def __init__(self, max_entries: int | None = None, shards: int = 16) -> None:
        self._locks = [threading.Lock() for _ in range(shards)]
        self._shards: list[MutableMapping[str, CacheEntry]]
        if max_entries:
            per_shard = max(1, -(-max_entries // shards))
            self._shards = [LRUCache(maxsize=per_shard) for _ in range(shards)]
        else:
            self._shards = [{} for _ in range(shards)]

    def _index(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._shards)

    def get(self, key: str) -> CacheEntry | None:
        index = self._index(key)
        with self._locks[index]:
            return self._shards[index].get(key)

    def set(self, entry: CacheEntry) -> None:
        index = self._index(entry.key)
        with self._locks[index]:
            self._shards[index][entry.key] = entry

    def __len__(self) -> int:
        return sum(len(shard) for shard in self._shards)


class RedisQuoteStore:
    def __init__(self, client: Redis | None = None, prefix: str = "quote:") -> None:
        self._client = client
        self._prefix = prefix

    def _get_client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(settings.redis_url)
        return self._client

    def get(self, key: str) -> CacheEntry | None:
        try:
            raw = self._get_client().get(f"{self._prefix}{key}")
        except RedisError as exc:
            logger.warning("Quote cache read failed for %s: %s", key, exc)
            return None

        if not raw:
            return None

        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            return None

    def set(self, entry: CacheEntry) -> None:
        try:
            self._get_client().set(f"{self._prefix}{entry.key}", entry.model_dump_json())
        except RedisError as exc:
            logger.warning("Quote cache write failed for %s: %s", entry.key, exc)


class QuoteCache:
    """Last known good quote per symbol key.

    Freshness depends on the cached quote itself: closed-market entries stay
    fresh for ``closed_ttl``, live entries only for ``live_ttl``. Entries are
    never removed on expiry so they remain available for degraded reads.
    """

    def __init__(
        self,
        store: QuoteStore | None = None,
        clock: Clock = utc_now,
        live_ttl: datetime.timedelta | None = None,
        closed_ttl: datetime.timedelta | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryQuoteStore()
        self.clock = clock
        self.live_ttl = live_ttl or datetime.timedelta(seconds=settings.quotes.live_ttl_seconds)
        self.closed_ttl = closed_ttl or datetime.timedelta(
            seconds=settings.quotes.closed_ttl_seconds
        )

    def get(self, key: str) -> CacheEntry | None:
        return self.store.get(key)

    def put(self, key: str, quote: QuoteRecord) -> CacheEntry:
        entry = CacheEntry(key=key, data=quote, stored_at=self.clock())
        self.store.set(entry)
        return entry

    def freshness_window(self, entry: CacheEntry) -> datetime.timedelta:
        return self.closed_ttl if entry.data.is_market_closed else self.live_ttl

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.stored_at < self.freshness_window(entry)


class RetryLedger:
    """Per-key "do not retry before" timestamps."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self.clock = clock
        self._lock = threading.Lock()
        self._not_before: dict[str, datetime.datetime] = {}

    def ready(self, key: str) -> bool:
        with self._lock:
            not_before = self._not_before.get(key)
        return not_before is None or self.clock() >= not_before

    def defer(self, key: str, delay: datetime.timedelta) -> None:
        with self._lock:
            self._not_before[key] = self.clock() + delay

    def clear(self, key: str) -> None:
        with self._lock:
            self._not_before.pop(key, None)


def build_quote_cache(clock: Clock = utc_now) -> QuoteCache:
    if settings.quotes.cache_backend == "redis":
        store: QuoteStore = RedisQuoteStore()
    else:
        store = MemoryQuoteStore(max_entries=settings.quotes.cache_max_entries)
    return QuoteCache(store=store, clock=clock)
