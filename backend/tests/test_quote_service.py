import asyncio
import datetime
import threading
import time

from app.cache import QuoteCache
from app.quotes.service import QuoteService
from app.schemas.provider import ProviderSnapshot
from app.schemas.quotes import QuoteRecord, SymbolRequest

NOW = datetime.datetime(2026, 3, 2, 15, 0, tzinfo=datetime.UTC)


class FakeClock:
    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


class RecordingFetcher:
    def __init__(self, responses: dict[str, ProviderSnapshot] | None = None, delay: float = 0.0) -> None:
        self.responses = responses or {}
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, symbol: str) -> ProviderSnapshot:
        with self._lock:
            self.calls.append(symbol)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.responses.get(symbol) or _ok(symbol, 100.0, 99.0)
        finally:
            with self._lock:
                self.active -= 1


def _ok(symbol: str, current: float, previous: float) -> ProviderSnapshot:
    return ProviderSnapshot(
        provider="finnhub",
        symbol=symbol,
        status="ok",
        payload={
            "c": current,
            "pc": previous,
            "d": current - previous,
            "dp": (current - previous) / previous * 100,
            "t": int(NOW.timestamp()) - 60,
        },
    )


def _failed(symbol: str) -> ProviderSnapshot:
    return ProviderSnapshot(provider="finnhub", symbol=symbol, status="error", attempts=2)


def _record(price: float, closed: bool) -> QuoteRecord:
    return QuoteRecord(
        price=price,
        change=1.0,
        change_percent=0.5,
        previous_close=price - 1.0,
        is_market_closed=closed,
        last_updated_at=NOW,
    )


def _service(fetcher, clock: FakeClock, **kwargs) -> tuple[QuoteService, QuoteCache]:
    cache = QuoteCache(
        clock=clock,
        live_ttl=datetime.timedelta(seconds=30),
        closed_ttl=datetime.timedelta(hours=24),
    )
    service = QuoteService(
        cache,
        fetcher,
        concurrency=kwargs.get("concurrency", 5),
        stale_after=datetime.timedelta(hours=1),
        batch_timeout=kwargs.get("batch_timeout", 10.0),
    )
    return service, cache


def test_fresh_cache_entries_skip_the_network() -> None:
    clock = FakeClock(NOW)
    fetcher = RecordingFetcher()
    service, cache = _service(fetcher, clock)
    cached = _record(190.0, closed=False)
    cache.put("NYSE:AAPL", cached)
    cache.put("NSE:TCS", _record(4100.0, closed=True))
    clock.now = NOW + datetime.timedelta(hours=2)
    cache.put("NYSE:AAPL", cached)

    prices = asyncio.run(
        service.get_quotes(
            [SymbolRequest(symbol="AAPL", market="NYSE"), SymbolRequest(symbol="TCS", market="NSE")]
        )
    )

    assert fetcher.calls == []
    assert prices["AAPL"] == cached
    assert prices["TCS"].price == 4100.0


def test_successful_fetch_is_classified_and_cached() -> None:
    clock = FakeClock(NOW)
    fetcher = RecordingFetcher({"RELIANCE.NS": _ok("RELIANCE.NS", 2950.0, 2900.0)})
    service, cache = _service(fetcher, clock)

    prices = asyncio.run(service.get_quotes([SymbolRequest(symbol="reliance", market="NSE")]))

    assert fetcher.calls == ["RELIANCE.NS"]
    assert prices["RELIANCE"].price == 2950.0
    assert prices["RELIANCE"].is_market_closed is False
    entry = cache.get("NSE:RELIANCE")
    assert entry is not None
    assert entry.data == prices["RELIANCE"]


def test_failed_fetch_serves_last_known_price_as_closed() -> None:
    clock = FakeClock(NOW)
    fetcher = RecordingFetcher({"AAPL": _failed("AAPL")})
    service, cache = _service(fetcher, clock)
    cache.put("NYSE:AAPL", _record(190.0, closed=False))
    clock.now = NOW + datetime.timedelta(minutes=5)

    prices = asyncio.run(service.get_quotes([SymbolRequest(symbol="AAPL", market="NYSE")]))

    assert fetcher.calls == ["AAPL"]
    assert prices["AAPL"].price == 190.0
    assert prices["AAPL"].is_market_closed is True
    entry = cache.get("NYSE:AAPL")
    assert entry is not None
    assert entry.data.is_market_closed is False


def test_no_data_response_falls_back_to_cache() -> None:
    clock = FakeClock(NOW)
    empty = ProviderSnapshot(provider="finnhub", symbol="VOD.L", status="ok", payload={"c": 0, "pc": 0})
    fetcher = RecordingFetcher({"VOD.L": empty})
    service, cache = _service(fetcher, clock)
    cache.put("LSE:VOD", _record(72.0, closed=False))
    clock.now = NOW + datetime.timedelta(minutes=1)

    prices = asyncio.run(service.get_quotes([SymbolRequest(symbol="VOD", market="LSE")]))

    assert prices["VOD"].price == 72.0
    assert prices["VOD"].is_market_closed is True


def test_symbol_without_any_data_is_omitted() -> None:
    clock = FakeClock(NOW)
    fetcher = RecordingFetcher({"NEWCO": _failed("NEWCO"), "AAPL": _ok("AAPL", 191.0, 190.0)})
    service, _ = _service(fetcher, clock)

    prices = asyncio.run(
        service.get_quotes(
            [SymbolRequest(symbol="NEWCO", market="NYSE"), SymbolRequest(symbol="AAPL", market="NYSE")]
        )
    )

    assert "NEWCO" not in prices
    assert prices["AAPL"].price == 191.0


def test_batch_respects_concurrency_limit() -> None:
    clock = FakeClock(NOW)
    fetcher = RecordingFetcher(delay=0.1)
    service, _ = _service(fetcher, clock, concurrency=5)
    symbols = [SymbolRequest(symbol=f"SYM{index}", market="NYSE") for index in range(12)]

    started = time.monotonic()
    prices = asyncio.run(service.get_quotes(symbols))
    elapsed = time.monotonic() - started

    assert len(prices) == 12
    assert len(fetcher.calls) == 12
    assert 1 < fetcher.max_active <= 5
    # 12 fetches at 5 at a time complete in three rounds.
    assert elapsed < 3 * fetcher.delay + 0.4


def test_batch_timeout_returns_partial_results() -> None:
    clock = FakeClock(NOW)

    def fetcher(symbol: str) -> ProviderSnapshot:
        if symbol == "SLOW":
            time.sleep(0.5)
        return _ok(symbol, 10.0, 9.0)

    service, cache = _service(fetcher, clock, batch_timeout=0.1)
    cache.put("NYSE:CACHED", _record(50.0, closed=True))

    prices = asyncio.run(
        service.get_quotes(
            [
                SymbolRequest(symbol="CACHED", market="NYSE"),
                SymbolRequest(symbol="FAST", market="NYSE"),
                SymbolRequest(symbol="SLOW", market="NYSE"),
            ]
        )
    )

    assert prices["CACHED"].price == 50.0
    assert prices["FAST"].price == 10.0
    assert "SLOW" not in prices


def test_batch_timeout_serves_expired_cache_as_closed() -> None:
    clock = FakeClock(NOW)

    def fetcher(symbol: str) -> ProviderSnapshot:
        time.sleep(0.5)
        return _ok(symbol, 10.0, 9.0)

    service, cache = _service(fetcher, clock, batch_timeout=0.1)
    cache.put("NYSE:SLOW", _record(42.0, closed=False))
    clock.now = NOW + datetime.timedelta(minutes=5)

    prices = asyncio.run(
        service.get_quotes(
            [SymbolRequest(symbol="SLOW", market="NYSE"), SymbolRequest(symbol="NEVER", market="NYSE")]
        )
    )

    assert prices["SLOW"].price == 42.0
    assert prices["SLOW"].is_market_closed is True
    assert "NEVER" not in prices


def test_duplicate_symbols_fetch_once() -> None:
    clock = FakeClock(NOW)
    fetcher = RecordingFetcher()
    service, _ = _service(fetcher, clock)

    asyncio.run(
        service.get_quotes(
            [SymbolRequest(symbol="AAPL", market="NYSE"), SymbolRequest(symbol="aapl", market="nyse")]
        )
    )

    assert fetcher.calls == ["AAPL"]
