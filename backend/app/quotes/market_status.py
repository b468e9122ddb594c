from __future__ import annotations

import datetime

from app.schemas.quotes import QuoteObservation, QuoteRecord


def _positive(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value


def classify_quote(
    observation: QuoteObservation,
    now: datetime.datetime,
    stale_after: datetime.timedelta,
) -> QuoteRecord | None:
    """Turn a raw quote observation into a quote record.

    Returns ``None`` when neither the current price nor the previous close is
    usable; the caller falls back to its cache in that case.

    Staleness is checked even when a current price is present, because the
    provider may hand back the previous session's figure without saying so.
    """
    current = _positive(observation.current_price)
    previous_close = _positive(observation.previous_close)
    if current is None and previous_close is None:
        return None

    display_price = current if current is not None else previous_close

    observed_at = observation.observed_at
    is_stale = observed_at is not None and now - observed_at > stale_after
    is_unchanged = observation.api_change == 0 and observation.api_change_percent == 0
    is_market_closed = (
        current is None
        or is_stale
        or (current == previous_close and is_unchanged)
    )

    if current is not None and previous_close is not None:
        change = observation.api_change
        if change is None:
            change = current - previous_close
        change_percent = observation.api_change_percent
        if change_percent is None:
            change_percent = change / previous_close * 100
    elif current is not None:
        change = observation.api_change or 0.0
        change_percent = observation.api_change_percent or 0.0
    else:
        change = 0.0
        change_percent = 0.0

    return QuoteRecord(
        price=display_price,
        change=change,
        change_percent=change_percent,
        previous_close=previous_close,
        is_market_closed=is_market_closed,
        last_updated_at=observed_at or now,
    )
