from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import RetryLedger
from app.config.settings import settings
from app.db.repository import SymbolRepository, WatchlistRepository
from app.db.session import get_session
from app.enrichment.reconciler import AttributeReconciler, default_strategies
from app.jobs.queue import enqueue_rank_refresh, enqueue_universe_sync
from app.providers.markets import MARKET_SUFFIXES
from app.quotes.service import QuoteService
from app.schemas.listings import UniverseSyncRequest, UniverseSyncResponse
from app.schemas.quotes import QuoteRequest, QuoteResponse
from app.schemas.rankings import RankRefreshResponse
from app.schemas.watchlist import EnrichRequest, EnrichResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_quote_service(request: Request) -> QuoteService:
    return request.app.state.quote_service


def get_retry_ledger(request: Request) -> RetryLedger:
    return request.app.state.retry_ledger


def _has_bearer_token(authorization: str | None) -> bool:
    if not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    return scheme.lower() == "bearer" and bool(token.strip())


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.post("/quotes", response_model=QuoteResponse)
async def quotes_endpoint(
    payload: QuoteRequest, service: QuoteService = Depends(get_quote_service)
) -> QuoteResponse:
    if not payload.symbols:
        return QuoteResponse()
    prices = await service.get_quotes(payload.symbols)
    return QuoteResponse(prices=prices)


@router.post("/metadata", response_model=EnrichResponse)
async def metadata_endpoint(
    payload: EnrichRequest,
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_session),
    ledger: RetryLedger = Depends(get_retry_ledger),
) -> EnrichResponse:
    if not payload.symbols:
        return EnrichResponse()

    symbols = SymbolRepository(db)
    reconciler = AttributeReconciler(default_strategies(symbols.get_assignments, ledger=ledger))
    authorized = payload.update_database and _has_bearer_token(authorization)
    if payload.update_database and not authorized:
        logger.info("Metadata persistence requested without a session; returning results only")

    metadata = await reconciler.reconcile(
        payload.symbols,
        authorized=authorized,
        watchlist=WatchlistRepository(db),
    )
    return EnrichResponse(metadata={key.ticker: meta for key, meta in metadata.items()})


@router.post("/rankings/{market}/refresh", response_model=RankRefreshResponse)
def rankings_refresh_endpoint(market: str) -> RankRefreshResponse:
    normalized = market.strip().upper()
    if normalized not in settings.rankings.indices:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": f"No rank-based classification is configured for {normalized}."},
        )
    job = enqueue_rank_refresh(normalized)
    return RankRefreshResponse(market=normalized, job_id=job.id)


@router.post("/universe/sync", response_model=UniverseSyncResponse)
def universe_sync_endpoint(payload: UniverseSyncRequest) -> UniverseSyncResponse:
    markets = [market.strip().upper() for market in payload.markets if market.strip()]
    unknown = [market for market in markets if market not in MARKET_SUFFIXES]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Unsupported markets.", "markets": unknown},
        )
    targets = markets or list(settings.universe.default_markets)
    job = enqueue_universe_sync(targets)
    return UniverseSyncResponse(markets=targets, job_id=job.id)
