import asyncio
import datetime
import uuid
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi import HTTPException

from app.api.routes import (
    health,
    metadata_endpoint,
    quotes_endpoint,
    rankings_refresh_endpoint,
    universe_sync_endpoint,
)
from app.cache import RetryLedger
from app.schemas.listings import UniverseSyncRequest
from app.schemas.quotes import QuoteRecord, QuoteRequest
from app.schemas.symbols import CapSource, CapTier, SymbolKey
from app.schemas.watchlist import AttributeMetadata, EnrichRequest


class FakeQuoteService:
    def __init__(self, prices: dict[str, QuoteRecord]) -> None:
        self.prices = prices
        self.requests: list = []

    async def get_quotes(self, symbols):
        self.requests.append(list(symbols))
        return self.prices


def _record() -> QuoteRecord:
    return QuoteRecord(
        price=101.0,
        change=1.0,
        change_percent=1.0,
        previous_close=100.0,
        is_market_closed=False,
        last_updated_at=datetime.datetime(2026, 3, 2, 15, 0, tzinfo=datetime.UTC),
    )


def _metadata() -> dict[SymbolKey, AttributeMetadata]:
    return {
        SymbolKey(ticker="TCS", market="NSE"): AttributeMetadata(
            symbol="TCS",
            market="NSE",
            sector="IT",
            cap_tier=CapTier.LARGE,
            cap_source=CapSource.RANK_BASED,
        )
    }


def test_health() -> None:
    assert health() == {"status": "ok"}


def test_quotes_endpoint_returns_service_prices() -> None:
    service = FakeQuoteService({"AAPL": _record()})
    payload = QuoteRequest(symbols=[{"symbol": "AAPL"}, {"symbol": "MISSING", "market": "NASDAQ"}])

    result = asyncio.run(quotes_endpoint(payload, service=service))

    assert result.version == "v1"
    assert set(result.prices) == {"AAPL"}
    assert result.prices["AAPL"].price == 101.0
    assert [item.symbol for item in service.requests[0]] == ["AAPL", "MISSING"]


def test_quotes_endpoint_empty_request_skips_service() -> None:
    service = FakeQuoteService({})

    result = asyncio.run(quotes_endpoint(QuoteRequest(), service=service))

    assert result.prices == {}
    assert service.requests == []


@pytest.mark.parametrize(
    ("update_database", "authorization", "expected"),
    [
        (True, "Bearer session-token", True),
        (True, None, False),
        (True, "Bearer ", False),
        (False, "Bearer session-token", False),
    ],
)
def test_metadata_persists_only_when_authorized(update_database, authorization, expected) -> None:
    reconciler = Mock()
    reconciler.reconcile = AsyncMock(return_value=_metadata())
    payload = EnrichRequest(
        symbols=[{"symbol": "TCS", "market": "NSE", "id": str(uuid.uuid4())}],
        update_database=update_database,
    )

    with patch("app.api.routes.AttributeReconciler", return_value=reconciler):
        result = asyncio.run(
            metadata_endpoint(payload, authorization=authorization, db=Mock(), ledger=RetryLedger())
        )

    assert result.metadata["TCS"].cap_tier is CapTier.LARGE
    kwargs = reconciler.reconcile.call_args.kwargs
    assert kwargs["authorized"] is expected


def test_rankings_refresh_enqueues_job() -> None:
    job = Mock()
    job.id = "job-123"

    with patch("app.api.routes.enqueue_rank_refresh", return_value=job) as enqueue_mock:
        result = rankings_refresh_endpoint(" nse ")

    enqueue_mock.assert_called_once_with("NSE")
    assert result.market == "NSE"
    assert result.job_id == "job-123"
    assert result.status == "queued"


def test_rankings_refresh_rejects_unconfigured_market() -> None:
    with patch("app.api.routes.enqueue_rank_refresh") as enqueue_mock:
        with pytest.raises(HTTPException) as excinfo:
            rankings_refresh_endpoint("NYSE")

    assert excinfo.value.status_code == 400
    enqueue_mock.assert_not_called()


def test_universe_sync_enqueues_requested_markets() -> None:
    job = Mock()
    job.id = "job-456"

    with patch("app.api.routes.enqueue_universe_sync", return_value=job) as enqueue_mock:
        result = universe_sync_endpoint(UniverseSyncRequest(markets=["nse", " lse "]))

    enqueue_mock.assert_called_once_with(["NSE", "LSE"])
    assert result.markets == ["NSE", "LSE"]
    assert result.job_id == "job-456"


def test_universe_sync_defaults_and_rejects_unknown_markets() -> None:
    job = Mock()
    job.id = "job-789"

    with patch("app.api.routes.enqueue_universe_sync", return_value=job) as enqueue_mock:
        result = universe_sync_endpoint(UniverseSyncRequest())
        with pytest.raises(HTTPException) as excinfo:
            universe_sync_endpoint(UniverseSyncRequest(markets=["NSE", "MARS"]))

    assert result.markets == ["NSE", "BSE", "NYSE", "NASDAQ"]
    enqueue_mock.assert_called_once_with(["NSE", "BSE", "NYSE", "NASDAQ"])
    assert excinfo.value.status_code == 400
