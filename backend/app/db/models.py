# backend/app/db/models.py

import datetime
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StockSymbol(Base):
    __tablename__ = "stock_symbols"
    __table_args__ = (UniqueConstraint("symbol", "market", name="uq_stock_symbols_symbol_market"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    symbol = Column(String, nullable=False, index=True)
    market = Column(String, nullable=False, index=True)
    company_name = Column(Text)
    market_cap = Column(Numeric)

    # Tier assignment; rows with cap_source "rank-based" are authoritative
    cap_category = Column(String, index=True)
    cap_source = Column(String, default="unknown", nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.datetime.now(datetime.UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.datetime.now(datetime.UTC),
        onupdate=lambda: datetime.datetime.now(datetime.UTC),
    )

    def __repr__(self):
        return f"<StockSymbol(symbol='{self.symbol}', market='{self.market}', cap='{self.cap_category}')>"


class WatchlistItem(Base):
    __tablename__ = "watchlists"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    symbol = Column(String, nullable=False)
    market = Column(String, nullable=False, default="NYSE", index=True)
    company_name = Column(Text)
    notes = Column(Text)
    target_price = Column(Numeric(12, 2))

    # Enrichment fields written by the attribute reconciler
    sector = Column(String)
    market_cap_category = Column(String)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.datetime.now(datetime.UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.datetime.now(datetime.UTC),
        onupdate=lambda: datetime.datetime.now(datetime.UTC),
    )

    def __repr__(self):
        return f"<WatchlistItem(symbol='{self.symbol}', market='{self.market}')>"
