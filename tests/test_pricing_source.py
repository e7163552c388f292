"""
test_pricing_source.py - Unit tests for pricing_source.py

Tests:
- StaticPriceFeed: static prices, updates, raw answers
- TimeSeriesPriceFeed: time-varying prices (incremental and batch initialization)
- stale_check_latest_price: staleness, invalid answers, feed failures
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from cdp import (
    PriceQuote,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    stale_check_latest_price,
    StalePrice,
    OracleUnavailable,
    InvalidPrice,
    OracleError,
    ORACLE_TIMEOUT,
)
from tests.fakes import FailingPriceFeed, FixedAnswerFeed


T0 = datetime(2025, 1, 1)


class TestStaticPriceFeed:
    """Tests for StaticPriceFeed."""

    def test_create_static_feed(self):
        feed = StaticPriceFeed({'WETH': '2000', 'WBTC': '30000'})
        assert feed.decimals == 8

    def test_create_with_custom_decimals(self):
        feed = StaticPriceFeed({'WETH': '2000'}, decimals=18)
        assert feed.latest_price('WETH').price == 2000 * 10**18

    def test_latest_price_is_scaled(self):
        feed = StaticPriceFeed({'WETH': '2000', 'WBTC': Decimal('30000.5')}, updated_at=T0)
        assert feed.latest_price('WETH') == PriceQuote(2000 * 10**8, T0)
        assert feed.latest_price('WBTC').price == 3000050000000

    def test_default_update_time_is_epoch(self):
        feed = StaticPriceFeed({'WETH': 2000})
        assert feed.latest_price('WETH').updated_at == datetime(1970, 1, 1)

    def test_unknown_asset_raises(self):
        feed = StaticPriceFeed({'WETH': '2000'})
        with pytest.raises(KeyError):
            feed.latest_price('UNKNOWN')

    def test_float_prices_rejected(self):
        with pytest.raises(TypeError):
            StaticPriceFeed({'WETH': 2000.0})

    def test_update_price_keeps_previous_timestamp(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        feed.update_price('WETH', '15')
        assert feed.latest_price('WETH') == PriceQuote(15 * 10**8, T0)

    def test_update_price_with_timestamp(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        t1 = T0 + timedelta(hours=5)
        feed.update_price('WETH', '1800', updated_at=t1)
        assert feed.latest_price('WETH') == PriceQuote(1800 * 10**8, t1)

    def test_update_price_adds_new_asset(self):
        feed = StaticPriceFeed(updated_at=T0)
        feed.update_price('LINK', '12.5')
        assert feed.latest_price('LINK') == PriceQuote(1250000000, T0)

    def test_update_answer_sets_raw_value(self):
        feed = StaticPriceFeed()
        feed.update_answer('WETH', -1, T0)
        assert feed.latest_price('WETH') == PriceQuote(-1, T0)

    def test_repr(self):
        feed = StaticPriceFeed({'WETH': '2000', 'WBTC': '30000'})
        assert 'StaticPriceFeed' in repr(feed)
        assert '2 prices' in repr(feed)


class TestTimeSeriesPriceFeed:
    """Tests for TimeSeriesPriceFeed."""

    def test_create_empty_feed(self):
        feed = TimeSeriesPriceFeed()
        assert feed.price_history == {}
        assert feed.as_of is None

    def test_add_price(self):
        feed = TimeSeriesPriceFeed()
        feed.add_price('WETH', T0, '2000')
        assert feed.latest_price('WETH') == PriceQuote(2000 * 10**8, T0)

    def test_add_price_keeps_history_sorted(self):
        feed = TimeSeriesPriceFeed()
        t1 = T0 + timedelta(days=1)
        feed.add_price('WETH', t1, '1800')
        feed.add_price('WETH', T0, '2000')
        assert feed.get_all_timestamps('WETH') == [T0, t1]

    def test_no_cursor_returns_last_observation(self):
        t1 = T0 + timedelta(days=1)
        feed = TimeSeriesPriceFeed({'WETH': [(T0, '2000'), (t1, '1800')]})
        assert feed.latest_price('WETH') == PriceQuote(1800 * 10**8, t1)

    def test_cursor_selects_observation_at_or_before(self):
        t1 = T0 + timedelta(days=1)
        t2 = T0 + timedelta(days=2)
        feed = TimeSeriesPriceFeed(
            {'WETH': [(T0, '2000'), (t1, '1800'), (t2, '1500')]},
            as_of=T0 + timedelta(hours=12),
        )
        assert feed.latest_price('WETH') == PriceQuote(2000 * 10**8, T0)

        feed.advance_to(t1)
        assert feed.latest_price('WETH') == PriceQuote(1800 * 10**8, t1)

        feed.advance_to(t2 + timedelta(days=30))
        # Quote keeps its own timestamp, so it goes stale
        assert feed.latest_price('WETH').updated_at == t2

    def test_cursor_before_first_observation(self):
        feed = TimeSeriesPriceFeed({'WETH': [(T0, '2000')]}, as_of=T0 - timedelta(days=1))
        with pytest.raises(KeyError):
            feed.latest_price('WETH')

    def test_unknown_asset_raises(self):
        feed = TimeSeriesPriceFeed({'WETH': [(T0, '2000')]})
        with pytest.raises(KeyError):
            feed.latest_price('WBTC')

    def test_empty_path_ignored(self):
        feed = TimeSeriesPriceFeed({'WETH': []})
        assert 'WETH' not in feed.price_history

    def test_advance_to_cannot_go_backwards(self):
        feed = TimeSeriesPriceFeed(as_of=T0)
        with pytest.raises(ValueError, match="backwards"):
            feed.advance_to(T0 - timedelta(seconds=1))

    def test_get_all_timestamps_union(self):
        t1 = T0 + timedelta(days=1)
        feed = TimeSeriesPriceFeed({
            'WETH': [(T0, '2000'), (t1, '1800')],
            'WBTC': [(t1, '30000')],
        })
        assert feed.get_all_timestamps() == [T0, t1]
        assert feed.get_all_timestamps('WBTC') == [t1]

    def test_repr(self):
        feed = TimeSeriesPriceFeed({'WETH': [(T0, '2000'), (T0 + timedelta(days=1), '1800')]})
        assert '1 assets' in repr(feed)
        assert '2 observations' in repr(feed)


class TestStaleCheckLatestPrice:
    """Tests for the fail-closed oracle read."""

    def test_fresh_quote_returned(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        quote = stale_check_latest_price(feed, 'WETH', T0 + timedelta(hours=1))
        assert quote == PriceQuote(2000 * 10**8, T0)

    def test_quote_exactly_at_timeout_accepted(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        quote = stale_check_latest_price(feed, 'WETH', T0 + ORACLE_TIMEOUT)
        assert quote.price == 2000 * 10**8

    def test_quote_past_timeout_is_stale(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        now = T0 + ORACLE_TIMEOUT + timedelta(seconds=1)
        with pytest.raises(StalePrice) as exc_info:
            stale_check_latest_price(feed, 'WETH', now)
        assert exc_info.value.asset == 'WETH'
        assert exc_info.value.updated_at == T0
        assert exc_info.value.now == now

    def test_custom_timeout(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        with pytest.raises(StalePrice):
            stale_check_latest_price(feed, 'WETH', T0 + timedelta(minutes=2), timedelta(minutes=1))

    def test_future_timestamp_accepted(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0 + timedelta(hours=1))
        assert stale_check_latest_price(feed, 'WETH', T0).price == 2000 * 10**8

    @pytest.mark.parametrize("answer", [0, -1, -2000 * 10**8])
    def test_non_positive_price_rejected(self, answer):
        feed = FixedAnswerFeed(answer, T0)
        with pytest.raises(InvalidPrice) as exc_info:
            stale_check_latest_price(feed, 'WETH', T0)
        assert exc_info.value.price == answer

    def test_feed_exception_becomes_unavailable(self):
        feed = FailingPriceFeed(ConnectionError("timeout"))
        with pytest.raises(OracleUnavailable) as exc_info:
            stale_check_latest_price(feed, 'WETH', T0)
        assert 'ConnectionError' in exc_info.value.reason
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_unknown_asset_becomes_unavailable(self):
        feed = StaticPriceFeed({'WETH': '2000'}, updated_at=T0)
        with pytest.raises(OracleUnavailable):
            stale_check_latest_price(feed, 'WBTC', T0)

    def test_malformed_answer_becomes_unavailable(self):
        feed = FixedAnswerFeed((2000, T0), T0)
        with pytest.raises(OracleUnavailable, match="unexpected answer"):
            stale_check_latest_price(feed, 'WETH', T0)

    def test_all_oracle_failures_share_a_base(self):
        assert issubclass(StalePrice, OracleError)
        assert issubclass(OracleUnavailable, OracleError)
        assert issubclass(InvalidPrice, OracleError)
