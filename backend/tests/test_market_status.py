import datetime

from app.quotes.market_status import classify_quote
from app.schemas.quotes import QuoteObservation

NOW = datetime.datetime(2026, 3, 2, 15, 0, tzinfo=datetime.UTC)
STALE_AFTER = datetime.timedelta(hours=1)


def test_no_usable_prices_yields_no_record() -> None:
    observation = QuoteObservation(current_price=0, previous_close=0, observed_at=NOW)
    assert classify_quote(observation, NOW, STALE_AFTER) is None
    assert classify_quote(QuoteObservation(), NOW, STALE_AFTER) is None


def test_live_quote_prefers_upstream_change() -> None:
    observation = QuoteObservation(
        current_price=101.0,
        previous_close=100.0,
        api_change=1.2,
        api_change_percent=1.2,
        observed_at=NOW - datetime.timedelta(minutes=5),
    )
    record = classify_quote(observation, NOW, STALE_AFTER)

    assert record is not None
    assert record.price == 101.0
    assert record.change == 1.2
    assert record.change_percent == 1.2
    assert record.is_market_closed is False


def test_change_is_computed_when_upstream_omits_it() -> None:
    observation = QuoteObservation(current_price=110.0, previous_close=100.0, observed_at=NOW)
    record = classify_quote(observation, NOW, STALE_AFTER)

    assert record is not None
    assert record.change == 10.0
    assert record.change_percent == 10.0


def test_unchanged_price_means_market_closed() -> None:
    observation = QuoteObservation(
        current_price=100.0,
        previous_close=100.0,
        api_change=0,
        api_change_percent=0,
        observed_at=NOW,
    )
    record = classify_quote(observation, NOW, STALE_AFTER)

    assert record is not None
    assert record.is_market_closed is True


def test_stale_observation_is_closed_even_with_movement() -> None:
    observation = QuoteObservation(
        current_price=105.0,
        previous_close=100.0,
        api_change=5.0,
        api_change_percent=5.0,
        observed_at=NOW - datetime.timedelta(hours=3),
    )
    record = classify_quote(observation, NOW, STALE_AFTER)

    assert record is not None
    assert record.is_market_closed is True
    assert record.price == 105.0
    assert record.change == 5.0


def test_previous_close_only_reports_zero_change() -> None:
    observation = QuoteObservation(
        current_price=None,
        previous_close=250.5,
        api_change=3.0,
        api_change_percent=1.1,
        observed_at=NOW,
    )
    record = classify_quote(observation, NOW, STALE_AFTER)

    assert record is not None
    assert record.price == 250.5
    assert record.change == 0.0
    assert record.change_percent == 0.0
    assert record.is_market_closed is True
