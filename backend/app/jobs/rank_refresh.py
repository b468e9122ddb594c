from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.repository import SymbolRepository
from app.db.session import AsyncSessionLocal
from app.rankings.builder import build_rank_lists
from app.rankings.writer import write_classification
from app.schemas.rankings import RankListResult

logger = logging.getLogger(__name__)


async def refresh_rankings(
    market: str,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    builder: Callable[[str], Awaitable[RankListResult]] = build_rank_lists,
) -> dict:
    rank_lists = await builder(market)
    summary = {
        "market": rank_lists.market,
        "official": rank_lists.is_official,
        "large_source": rank_lists.large.provenance,
        "mid_source": rank_lists.mid.provenance,
    }
    if rank_lists.status != "ok":
        # Keep the previously persisted tiers rather than overwrite them from a short list.
        logger.warning("Skipping tier write for %s: insufficient rank data", rank_lists.market)
        return {
            **summary,
            "status": "insufficient_data",
            "large_members": len(rank_lists.large.members),
            "mid_members": len(rank_lists.mid.members),
        }

    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        repository = SymbolRepository(session)
        universe = await repository.load_universe(rank_lists.market)
        report = await write_classification(
            rank_lists.market,
            rank_lists.large.members,
            rank_lists.mid.members,
            universe,
            repository,
        )
    return {**summary, "status": "rankings_complete", **report.model_dump()}


def run_rank_refresh(market: str) -> dict:
    return asyncio.run(refresh_rankings(market))
