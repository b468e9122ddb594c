from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from app.config.settings import settings
from app.providers import listings as listing_sources
from app.schemas.listings import Listing, UniverseSyncReport
from app.schemas.provider import ProviderSnapshot

logger = logging.getLogger(__name__)

ListingFetcher = Callable[[str], ProviderSnapshot]

_INDIAN_SEED = [
    ("RELIANCE", "Reliance Industries Ltd"),
    ("TCS", "Tata Consultancy Services Ltd"),
    ("HDFCBANK", "HDFC Bank Ltd"),
    ("INFY", "Infosys Ltd"),
    ("ICICIBANK", "ICICI Bank Ltd"),
    ("HINDUNILVR", "Hindustan Unilever Ltd"),
    ("SBIN", "State Bank of India"),
    ("BHARTIARTL", "Bharti Airtel Ltd"),
    ("ITC", "ITC Ltd"),
    ("KOTAKBANK", "Kotak Mahindra Bank Ltd"),
    ("LT", "Larsen & Toubro Ltd"),
    ("AXISBANK", "Axis Bank Ltd"),
    ("BAJFINANCE", "Bajaj Finance Ltd"),
    ("MARUTI", "Maruti Suzuki India Ltd"),
    ("WIPRO", "Wipro Ltd"),
    ("HCLTECH", "HCL Technologies Ltd"),
    ("ASIANPAINT", "Asian Paints Ltd"),
    ("SUNPHARMA", "Sun Pharmaceutical Industries Ltd"),
    ("TITAN", "Titan Company Ltd"),
    ("ULTRACEMCO", "UltraTech Cement Ltd"),
    ("NTPC", "NTPC Ltd"),
    ("ONGC", "Oil and Natural Gas Corporation Ltd"),
    ("TATASTEEL", "Tata Steel Ltd"),
    ("M&M", "Mahindra & Mahindra Ltd"),
    ("COALINDIA", "Coal India Ltd"),
    ("HAL", "Hindustan Aeronautics Ltd"),
    ("BEL", "Bharat Electronics Ltd"),
    ("IRCTC", "Indian Railway Catering and Tourism Corporation Ltd"),
    ("VOLTAS", "Voltas Ltd"),
    ("POLYCAB", "Polycab India Ltd"),
    ("AUBANK", "AU Small Finance Bank Ltd"),
    ("LUPIN", "Lupin Ltd"),
    ("PERSISTENT", "Persistent Systems Ltd"),
    ("COFORGE", "Coforge Ltd"),
    ("MRF", "MRF Ltd"),
    ("DIXON", "Dixon Technologies (India) Ltd"),
    ("JUBLFOOD", "Jubilant FoodWorks Ltd"),
    ("CAMPUS", "Campus Activewear Ltd"),
    ("ROUTE", "Route Mobile Ltd"),
    ("MASTEK", "Mastek Ltd"),
]

SEED_LISTINGS: dict[str, list[tuple[str, str]]] = {
    "NSE": _INDIAN_SEED,
    "BSE": _INDIAN_SEED,
    "NYSE": [
        ("BRK.B", "Berkshire Hathaway Inc."),
        ("JPM", "JPMorgan Chase & Co."),
        ("V", "Visa Inc."),
        ("JNJ", "Johnson & Johnson"),
        ("WMT", "Walmart Inc."),
        ("MA", "Mastercard Incorporated"),
        ("PG", "The Procter & Gamble Company"),
        ("HD", "The Home Depot Inc."),
        ("XOM", "Exxon Mobil Corporation"),
        ("CVX", "Chevron Corporation"),
        ("KO", "The Coca-Cola Company"),
        ("BAC", "Bank of America Corporation"),
        ("CRM", "Salesforce Inc."),
    ],
    "NASDAQ": [
        ("AAPL", "Apple Inc."),
        ("MSFT", "Microsoft Corporation"),
        ("GOOGL", "Alphabet Inc."),
        ("AMZN", "Amazon.com Inc."),
        ("NVDA", "NVIDIA Corporation"),
        ("META", "Meta Platforms Inc."),
        ("TSLA", "Tesla Inc."),
        ("AVGO", "Broadcom Inc."),
        ("COST", "Costco Wholesale Corporation"),
        ("PEP", "PepsiCo Inc."),
        ("CSCO", "Cisco Systems Inc."),
        ("ADBE", "Adobe Inc."),
        ("NFLX", "Netflix Inc."),
    ],
}


class ListingWriter(Protocol):
    async def upsert_listings(self, market: str, listings: list[Listing]) -> int: ...


def seed_listings(market: str) -> list[Listing]:
    return [
        Listing(symbol=symbol, market=market, company_name=name)
        for symbol, name in SEED_LISTINGS.get(market, [])
    ]


async def collect_listings(
    market: str, *, fetcher: ListingFetcher | None = None
) -> tuple[str, list[Listing]]:
    """Fetch the listings for ``market``, falling back to the seed list."""
    market = market.strip().upper()
    fetch = fetcher or listing_sources.fetch_market_listings
    snapshot = await asyncio.to_thread(fetch, market)

    if snapshot.ok:
        fetched = [
            Listing.model_validate({**row, "market": market})
            for row in snapshot.payload.get("listings", [])
        ]
        if fetched:
            logger.info("Fetched %d %s listings from %s", len(fetched), market, snapshot.provider)
            return snapshot.provider, fetched

    logger.warning(
        "Listing source %s for %s unavailable (%s); using seed list",
        snapshot.provider,
        market,
        snapshot.status,
    )
    return "seed", seed_listings(market)


async def sync_universe(
    market: str,
    writer: ListingWriter,
    *,
    fetcher: ListingFetcher | None = None,
    chunk_size: int | None = None,
) -> UniverseSyncReport:
    """Upsert the listed symbols of ``market`` in independent chunks."""
    market = market.strip().upper()
    size = chunk_size or settings.universe.write_chunk_size
    source, listings = await collect_listings(market, fetcher=fetcher)
    rows = sorted({listing.symbol: listing for listing in listings}.values(), key=lambda row: row.symbol)

    report = UniverseSyncReport(market=market, source=source, fetched=len(rows))
    for start in range(0, len(rows), size):
        chunk = rows[start : start + size]
        try:
            await writer.upsert_listings(market, chunk)
        except Exception as exc:
            report.failed += len(chunk)
            report.failed_chunks += 1
            logger.warning(
                "Listing upsert for %s chunk at offset %d (%d rows) failed: %s",
                market,
                start,
                len(chunk),
                exc,
            )
            continue
        report.upserted += len(chunk)

    logger.info(
        "Universe sync for %s from %s: %d fetched, %d upserted, %d failed",
        market,
        source,
        report.fetched,
        report.upserted,
        report.failed,
    )
    return report
