from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from app.config.settings import settings
from app.schemas.rankings import ClassificationReport
from app.schemas.symbols import CapSource, CapTier, TierAssignment

logger = logging.getLogger(__name__)


class TierWriter(Protocol):
    async def write_tiers(self, market: str, rows: list[TierAssignment]) -> int: ...


def partition_universe(
    large: Iterable[str], mid: Iterable[str], universe: Iterable[str]
) -> dict[str, CapTier]:
    large_set = {symbol.strip().upper() for symbol in large}
    mid_set = {symbol.strip().upper() for symbol in mid} - large_set

    tiers: dict[str, CapTier] = {}
    for symbol in universe:
        ticker = symbol.strip().upper()
        if not ticker:
            continue
        if ticker in large_set:
            tiers[ticker] = CapTier.LARGE
        elif ticker in mid_set:
            tiers[ticker] = CapTier.MID
        else:
            tiers[ticker] = CapTier.SMALL
    return tiers


async def write_classification(
    market: str,
    large: Iterable[str],
    mid: Iterable[str],
    universe: Iterable[str],
    writer: TierWriter,
    chunk_size: int | None = None,
) -> ClassificationReport:
    """Assign every universe symbol a rank-based tier and persist in chunks.

    Chunks are written independently: a failing chunk is logged and counted
    while the remaining chunks still commit.
    """
    size = chunk_size or settings.rankings.write_chunk_size
    tiers = partition_universe(large, mid, universe)
    rows = [
        TierAssignment(ticker=ticker, market=market, tier=tier, source=CapSource.RANK_BASED)
        for ticker, tier in sorted(tiers.items())
    ]

    report = ClassificationReport(
        market=market,
        large=sum(1 for tier in tiers.values() if tier is CapTier.LARGE),
        mid=sum(1 for tier in tiers.values() if tier is CapTier.MID),
        small=sum(1 for tier in tiers.values() if tier is CapTier.SMALL),
        total=len(rows),
    )

    for start in range(0, len(rows), size):
        chunk = rows[start : start + size]
        try:
            await writer.write_tiers(market, chunk)
        except Exception as exc:
            report.failed += len(chunk)
            report.failed_chunks += 1
            logger.warning(
                "Tier write for %s chunk at offset %d (%d rows) failed: %s",
                market,
                start,
                len(chunk),
                exc,
            )
            continue
        report.updated += len(chunk)

    logger.info(
        "Rankings for %s: %d Large, %d Mid, %d Small (%d updated, %d failed)",
        market,
        report.large,
        report.mid,
        report.small,
        report.updated,
        report.failed,
    )
    return report
