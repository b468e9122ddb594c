from __future__ import annotations

import asyncio
import logging
from typing import Callable

from app.config.settings import RankIndexPair, settings
from app.providers import generative, nse
from app.schemas.provider import ProviderSnapshot
from app.schemas.rankings import RankListResult, TierList
from app.schemas.symbols import CapTier

logger = logging.getLogger(__name__)

IndexFetcher = Callable[[str], ProviderSnapshot]
GenerativeClassifier = Callable[[str, str], ProviderSnapshot]

LARGE_CAP_ANCHORS = [
    "RELIANCE", "TCS", "HDFCBANK", "ICICIBANK", "BHARTIARTL", "INFY", "SBIN",
    "HINDUNILVR", "ITC", "LT", "BAJFINANCE", "KOTAKBANK", "HCLTECH", "MARUTI",
    "SUNPHARMA", "AXISBANK", "ULTRACEMCO", "TITAN", "NTPC", "ONGC",
    "ASIANPAINT", "WIPRO", "POWERGRID", "ADANIENT", "M&M", "TATAMOTORS",
    "COALINDIA", "JSWSTEEL", "NESTLEIND", "TATASTEEL", "BAJAJFINSV", "DMART",
    "SIEMENS", "PIDILITIND", "HAL", "BEL", "DLF", "VEDL",
]

MID_CAP_ANCHORS = [
    "PERSISTENT", "COFORGE", "MPHASIS", "VOLTAS", "POLYCAB", "AUBANK",
    "FEDERALBNK", "IDFCFIRSTB", "LUPIN", "AUROPHARMA", "ALKEM", "CUMMINSIND",
    "ASHOKLEY", "TATACOMM", "MFSL", "PAGEIND", "OBEROIRLTY", "GODREJPROP",
    "PHOENIXLTD", "SUPREMEIND", "ASTRAL", "BHARATFORG", "MRF", "BALKRISIND",
    "SAIL", "NMDC", "PETRONET", "INDHOTEL", "JUBLFOOD", "DIXON",
]


def build_fallback_prompt(market: str, indices: RankIndexPair, tiers: list[CapTier]) -> str:
    sections: list[str] = []
    keys: list[str] = []
    if CapTier.LARGE in tiers:
        keys.append('"large_cap"')
        sections.append(
            f'"large_cap": every constituent of the {indices.large} index, i.e. the '
            "companies ranked 1-100 by full market capitalisation. "
            f"Known members include: {', '.join(LARGE_CAP_ANCHORS)}."
        )
    if CapTier.MID in tiers:
        keys.append('"mid_cap"')
        sections.append(
            f'"mid_cap": every constituent of the {indices.mid} index, i.e. the '
            "companies ranked 101-250 by full market capitalisation. "
            f"Known members include: {', '.join(MID_CAP_ANCHORS)}."
        )
    key_list = ", ".join(keys)
    return (
        f"You are classifying listed companies on the {market} exchange by the "
        "official rank-based market capitalisation scheme.\n"
        "Return the complete, current member lists for:\n- "
        + "\n- ".join(sections)
        + f"\n\nRespond ONLY with a JSON object with the keys {key_list}, each mapping "
        f"to an array of {market} trading symbols in upper case. Do not include "
        "the index name itself, explanations, or symbols you are unsure about. "
        "A company must not appear in both lists."
    )


def _members(snapshot: ProviderSnapshot) -> set[str]:
    if not snapshot.ok:
        return set()
    return {str(symbol).strip().upper() for symbol in snapshot.payload.get("members", []) if symbol}


def _fallback_members(payload: dict, key: str) -> set[str]:
    values = payload.get(key)
    if not isinstance(values, list):
        return set()
    return {value.strip().upper() for value in values if isinstance(value, str) and value.strip()}


async def build_rank_lists(
    market: str,
    *,
    index_fetcher: IndexFetcher | None = None,
    classifier: GenerativeClassifier | None = None,
    min_members: int | None = None,
) -> RankListResult:
    """Build the disjoint Large and Mid member sets for ``market``.

    Each tier is fetched from the official index source; a tier with fewer
    than ``min_members`` members is re-requested from the generative
    classifier. If either tier is still short afterwards the result status is
    ``insufficient_data`` and it must not be written.
    """
    market = market.strip().upper()
    indices = settings.rankings.indices.get(market)
    if indices is None:
        raise ValueError(f"No rank indices configured for market {market}")

    fetch = index_fetcher or nse.fetch_index_constituents
    classify = classifier or generative.complete_json
    threshold = min_members if min_members is not None else settings.rankings.min_tier_members

    large_snapshot, mid_snapshot = await asyncio.gather(
        asyncio.to_thread(fetch, indices.large),
        asyncio.to_thread(fetch, indices.mid),
    )
    large = TierList(tier=CapTier.LARGE, index_name=indices.large, members=_members(large_snapshot))
    mid = TierList(tier=CapTier.MID, index_name=indices.mid, members=_members(mid_snapshot))
    logger.info(
        "Official %s index lists: %s=%d (%s), %s=%d (%s)",
        market,
        indices.large,
        len(large.members),
        large_snapshot.status,
        indices.mid,
        len(mid.members),
        mid_snapshot.status,
    )

    failed = [tier_list for tier_list in (large, mid) if len(tier_list.members) < threshold]
    if failed:
        prompt = build_fallback_prompt(market, indices, [tier_list.tier for tier_list in failed])
        response = await asyncio.to_thread(classify, f"rank-lists:{market}", prompt)
        if response.ok:
            for tier_list in failed:
                key = "large_cap" if tier_list.tier is CapTier.LARGE else "mid_cap"
                members = _fallback_members(response.payload, key)
                if members:
                    tier_list.members = members
                    tier_list.provenance = "generative-fallback"
        else:
            logger.warning(
                "Generative rank fallback for %s unavailable: %s", market, response.status
            )

    mid.members = mid.members - large.members

    status = "ok"
    if len(large.members) < threshold or len(mid.members) < threshold:
        status = "insufficient_data"
        logger.warning(
            "Rank lists for %s below %d members (large=%d, mid=%d)",
            market,
            threshold,
            len(large.members),
            len(mid.members),
        )
    return RankListResult(market=market, status=status, large=large, mid=mid)
