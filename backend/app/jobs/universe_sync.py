from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import settings
from app.db.repository import SymbolRepository
from app.db.session import AsyncSessionLocal
from app.universe.sync import ListingFetcher, sync_universe

logger = logging.getLogger(__name__)


async def refresh_universe(
    markets: list[str] | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    fetcher: ListingFetcher | None = None,
) -> dict:
    targets = [market.strip().upper() for market in (markets or settings.universe.default_markets)]
    factory = session_factory or AsyncSessionLocal

    results: dict[str, dict] = {}
    async with factory() as session:
        repository = SymbolRepository(session)
        for market in targets:
            report = await sync_universe(market, repository, fetcher=fetcher)
            results[market] = report.model_dump(exclude={"market"})

    upserted = sum(result["upserted"] for result in results.values())
    failed = sum(result["failed"] for result in results.values())
    status = "universe_complete" if failed == 0 else ("partial" if upserted else "error")
    logger.info("Universe sync finished (%s): %d upserted, %d failed", status, upserted, failed)
    return {"status": status, "upserted": upserted, "failed": failed, "markets": results}


def run_universe_sync(markets: list[str] | None = None) -> dict:
    return asyncio.run(refresh_universe(markets))
