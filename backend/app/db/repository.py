from __future__ import annotations

import datetime
import uuid
from collections.abc import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import StockSymbol, WatchlistItem
from app.schemas.listings import Listing
from app.schemas.symbols import CapSource, CapTier, SymbolKey, TierAssignment


class SymbolRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_universe(self, market: str) -> list[str]:
        result = await self.session.execute(
            select(StockSymbol.symbol).where(StockSymbol.market == market).order_by(StockSymbol.symbol)
        )
        return [symbol.strip().upper() for symbol in result.scalars().all() if symbol]

    async def get_assignments(self, keys: Iterable[SymbolKey]) -> dict[SymbolKey, TierAssignment]:
        wanted = set(keys)
        if not wanted:
            return {}
        result = await self.session.execute(
            select(StockSymbol.symbol, StockSymbol.market, StockSymbol.cap_category, StockSymbol.cap_source)
            .where(StockSymbol.market.in_({key.market for key in wanted}))
            .where(StockSymbol.symbol.in_({key.ticker for key in wanted}))
            .where(StockSymbol.cap_category.is_not(None))
        )
        assignments: dict[SymbolKey, TierAssignment] = {}
        for symbol, market, cap_category, cap_source in result.all():
            key = SymbolKey(ticker=symbol, market=market)
            if key not in wanted:
                continue
            try:
                tier = CapTier(cap_category)
                source = CapSource(cap_source or CapSource.UNKNOWN.value)
            except ValueError:
                continue
            assignments[key] = TierAssignment(
                ticker=key.ticker, market=key.market, tier=tier, source=source
            )
        return assignments

    async def write_tiers(self, market: str, rows: list[TierAssignment]) -> int:
        if not rows:
            return 0
        now = datetime.datetime.now(datetime.UTC)
        values = [
            {
                "id": uuid.uuid4(),
                "symbol": row.ticker,
                "market": market,
                "cap_category": row.tier.value,
                "cap_source": row.source.value,
                "updated_at": now,
            }
            for row in rows
        ]
        stmt = insert(StockSymbol).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol", "market"],
            set_={
                "cap_category": stmt.excluded.cap_category,
                "cap_source": stmt.excluded.cap_source,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return len(rows)

    async def upsert_listings(self, market: str, listings: list[Listing]) -> int:
        if not listings:
            return 0
        now = datetime.datetime.now(datetime.UTC)
        values = [
            {
                "id": uuid.uuid4(),
                "symbol": listing.symbol,
                "market": market,
                "company_name": listing.company_name,
                "market_cap": listing.market_cap,
                "updated_at": now,
            }
            for listing in listings
        ]
        stmt = insert(StockSymbol).values(values)
        # Tier columns belong to the ranking refresh and are left untouched.
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol", "market"],
            set_={
                "company_name": func.coalesce(stmt.excluded.company_name, StockSymbol.company_name),
                "market_cap": func.coalesce(stmt.excluded.market_cap, StockSymbol.market_cap),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return len(listings)


class WatchlistRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def update_enrichment(self, item_id: uuid.UUID, sector: str | None, cap_tier: CapTier) -> bool:
        stmt = (
            update(WatchlistItem)
            .where(WatchlistItem.id == item_id)
            .values(sector=sector, market_cap_category=cap_tier.value)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return bool(result.rowcount)
