"""
Bitso Response Normalization Tests.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from broker_gateway import OrderState, Pair
from broker_gateway.adapters import (
    BITSO_STATUS_MAP,
    BitsoNormalizer,
    ErrorCategory,
    ExchangeException,
)
from broker_gateway.adapters.normalizer import parse_decimal, parse_timestamp, to_unix


@pytest.fixture
def normalizer():
    return BitsoNormalizer(Pair("BTC", "MXN"))


def envelope(payload):
    return {"success": True, "payload": payload}


# ============================================================
# VALUE PARSING
# ============================================================

class TestValueParsing:
    """Tests for parse helpers."""

    def test_parse_decimal(self):
        assert parse_decimal("0.1234") == Decimal("0.1234")
        assert parse_decimal(5) == Decimal("5")

    @pytest.mark.parametrize("value", [None, "", "abc", "NaN", float("nan"), True])
    def test_parse_decimal_invalid_is_zero(self, value):
        assert parse_decimal(value) == Decimal("0")

    def test_parse_bitso_timestamp(self):
        parsed = parse_timestamp("2016-04-08T17:52:31.000+0000")

        assert parsed == datetime(2016, 4, 8, 17, 52, 31, tzinfo=timezone.utc)

    def test_parse_timestamp_without_fraction(self):
        assert to_unix("1970-01-01T00:01:00+00:00") == 60

    def test_parse_naive_iso_is_utc(self):
        assert to_unix("1970-01-01T00:00:10") == 10

    def test_unparseable_timestamp_fatal(self):
        with pytest.raises(ExchangeException):
            parse_timestamp("yesterday")


# ============================================================
# MARKET DATA
# ============================================================

class TestTrades:
    """Tests for trade normalization."""

    RAW = envelope([
        {"book": "btc_mxn", "created_at": "1970-01-01T00:00:10+0000",
         "amount": "0.02", "maker_side": "buy", "price": "5545.01", "tid": 55845},
        {"book": "btc_mxn", "created_at": "1970-01-01T00:00:20+0000",
         "amount": "0.10", "maker_side": "sell", "price": "5550.00", "tid": 55846},
    ])

    def test_ascending_default(self, normalizer):
        trades = normalizer.trades(self.RAW)

        assert [t.tid for t in trades] == ["55845", "55846"]
        assert trades[0].timestamp == 10
        assert trades[0].price == Decimal("5545.01")
        assert trades[1].amount == Decimal("0.10")

    def test_descending(self, normalizer):
        trades = normalizer.trades(self.RAW, descending=True)

        assert [t.tid for t in trades] == ["55846", "55845"]

    def test_empty(self, normalizer):
        assert normalizer.trades(envelope([])) == []


class TestTicker:
    """Tests for ticker normalization."""

    def test_ticker(self, normalizer):
        ticker = normalizer.ticker(envelope({"book": "btc_mxn", "ask": "100.5", "bid": "99.5"}))

        assert ticker.ask == Decimal("100.5")
        assert ticker.bid == Decimal("99.5")

    def test_ticker_from_list(self, normalizer):
        ticker = normalizer.ticker(envelope([
            {"book": "eth_mxn", "ask": "1", "bid": "1"},
            {"book": "btc_mxn", "ask": "2", "bid": "3"},
        ]))

        assert ticker.ask == Decimal("2")

    @pytest.mark.parametrize("payload", [None, {}, [{"book": "eth_mxn", "ask": "1", "bid": "1"}]])
    def test_missing_market(self, normalizer, payload):
        with pytest.raises(ExchangeException) as exc_info:
            normalizer.ticker(envelope(payload))

        assert exc_info.value.category == ErrorCategory.MARKET_NOT_FOUND
        assert "btc_mxn" in str(exc_info.value)


# ============================================================
# ACCOUNT
# ============================================================

class TestPortfolio:
    """Tests for portfolio normalization."""

    def test_portfolio(self, normalizer):
        portfolio = normalizer.portfolio(envelope({"balances": [
            {"currency": "mxn", "available": "1500.25", "total": "2000"},
            {"currency": "btc", "available": "0.5", "total": "0.5"},
        ]}))

        assert [p.name for p in portfolio] == ["BTC", "MXN"]
        assert portfolio[0].amount == Decimal("0.5")
        assert portfolio[1].amount == Decimal("1500.25")

    def test_case_insensitive_match(self, normalizer):
        portfolio = normalizer.portfolio(envelope({"balances": [
            {"currency": "BTC", "available": "1"},
        ]}))

        assert portfolio[0].amount == Decimal("1")

    def test_missing_entry_is_zero(self, normalizer):
        portfolio = normalizer.portfolio(envelope({"balances": [
            {"currency": "mxn", "available": "10"},
        ]}))

        assert portfolio[0].name == "BTC"
        assert portfolio[0].amount == Decimal("0")

    def test_invalid_amount_is_zero(self, normalizer):
        portfolio = normalizer.portfolio(envelope({"balances": [
            {"currency": "btc", "available": "NaN"},
            {"currency": "mxn", "available": None},
        ]}))

        assert portfolio[0].amount == Decimal("0")
        assert portfolio[1].amount == Decimal("0")


class TestFee:
    """Tests for fee normalization."""

    def test_maker_fee_decimal(self, normalizer):
        fee = normalizer.fee(envelope({"fees": [
            {"book": "eth_mxn", "maker_fee_decimal": "0.0075"},
            {"book": "btc_mxn", "maker_fee_decimal": "0.0065", "maker_fee_percent": "0.65"},
        ]}))

        assert fee == Decimal("0.0065")

    def test_missing_book(self, normalizer):
        with pytest.raises(ExchangeException) as exc_info:
            normalizer.fee(envelope({"fees": []}))

        assert exc_info.value.category == ErrorCategory.MARKET_NOT_FOUND


# ============================================================
# ORDERS
# ============================================================

class TestOrderId:
    """Tests for order placement normalization."""

    def test_order_id(self, normalizer):
        assert normalizer.order_id(envelope({"oid": "qlbga6b600n3xta7"})) == "qlbga6b600n3xta7"

    def test_missing_order_id(self, normalizer):
        with pytest.raises(ExchangeException):
            normalizer.order_id(envelope({}))


class TestFillAggregation:
    """Tests for aggregate_fills."""

    FILLS = envelope([
        {"oid": "abc", "side": "buy", "major": "1", "price": "10",
         "fees_currency": "btc", "fees_amount": "0.001",
         "created_at": "1970-01-01T00:00:10+0000"},
        {"oid": "other", "side": "buy", "major": "5", "price": "1",
         "fees_currency": "btc", "fees_amount": "1"},
        {"oid": "abc", "side": "sell", "major": "-0.5", "price": "12",
         "fees_currency": "mxn", "fees_amount": "0.06",
         "created_at": "1970-01-01T00:00:20+0000"},
    ])

    def test_net_amount_and_weighted_price(self, normalizer):
        fills = normalizer.aggregate_fills(self.FILLS, "abc")

        assert fills.amount == Decimal("0.5")
        # (1 * 10 + 0.5 * 12) / 1.5
        assert fills.price.quantize(Decimal("0.0001")) == Decimal("10.6667")

    def test_fee_map(self, normalizer):
        fills = normalizer.aggregate_fills(self.FILLS, "abc")

        assert fills.fees == {"btc": Decimal("0.001"), "mxn": Decimal("0.06")}

    def test_last_fill_date(self, normalizer):
        fills = normalizer.aggregate_fills(self.FILLS, "abc", fee_percent=Decimal("0.005"))

        assert int(fills.date.timestamp()) == 20
        assert fills.fee_percent == Decimal("0.005")

    def test_numeric_order_id_matches_string(self, normalizer):
        fills = normalizer.aggregate_fills(
            envelope([{"oid": 123, "side": "buy", "major": "2", "price": "3"}]),
            "123",
        )

        assert fills.amount == Decimal("2")
        assert fills.price == Decimal("3")

    def test_no_matching_fills(self, normalizer):
        assert normalizer.aggregate_fills(self.FILLS, "missing") is None
        assert normalizer.aggregate_fills(envelope([]), "abc") is None


class TestOrderStatus:
    """Tests for order_status."""

    @pytest.mark.parametrize("raw, state", [
        ("open", OrderState.OPEN),
        ("queued", OrderState.OPEN),
        ("partial-fill", OrderState.PARTIALLY_FILLED),
        ("partially filled", OrderState.PARTIALLY_FILLED),
        ("completed", OrderState.FILLED),
        ("closed", OrderState.FILLED),
        ("cancelled", OrderState.CANCELLED),
        ("REJECTED", OrderState.CANCELLED),
        ("EXPIRED", OrderState.CANCELLED),
    ])
    def test_status_mapping(self, normalizer, raw, state):
        status = normalizer.order_status(envelope([{"oid": "abc", "status": raw}]), "abc")

        assert status.state == state
        assert status.raw_status == raw

    def test_open_reports_filled_amount(self, normalizer):
        status = normalizer.order_status(envelope([{
            "oid": "abc", "status": "partial-fill",
            "original_amount": "1.5", "unfilled_amount": "0.5",
        }]), "abc")

        assert status.open
        assert not status.executed
        assert status.filled_amount == Decimal("1.0")

    def test_filled(self, normalizer):
        status = normalizer.order_status(envelope([{"oid": "abc", "status": "completed"}]), "abc")

        assert status.executed
        assert not status.open
        assert status.filled_amount is None

    def test_dict_payload(self, normalizer):
        status = normalizer.order_status(envelope({"oid": "abc", "status": "open"}), "abc")

        assert status.state == OrderState.OPEN

    def test_unknown_status_is_unexpected_state(self, normalizer):
        with pytest.raises(ExchangeException) as exc_info:
            normalizer.order_status(envelope([{"oid": "abc", "status": "frozen"}]), "abc")

        assert exc_info.value.category == ErrorCategory.UNEXPECTED_STATE
        assert not exc_info.value.recoverable

    def test_custom_status_map(self):
        normalizer = BitsoNormalizer(
            Pair("BTC", "MXN"),
            status_map={**BITSO_STATUS_MAP, "FROZEN": OrderState.OPEN},
        )

        status = normalizer.order_status(envelope([{"oid": "abc", "status": "frozen"}]), "abc")
        assert status.state == OrderState.OPEN


class TestCancelResult:
    """Tests for cancel_result."""

    def test_synthetic_filled(self, normalizer):
        assert normalizer.cancel_result({"filled": True}, "abc").filled

    def test_cancelled(self, normalizer):
        result = normalizer.cancel_result(envelope(["abc"]), "abc")

        assert not result.filled
        assert result.to_dict() == {"order_id": "abc", "filled": False}
