"""
Error Classification Tests.

============================================================
PURPOSE
============================================================
Rule-table classification of transport and exchange failures.

TEST CATEGORIES:
- Transient infra errors: recoverable for every operation
- Operation overrides: cancel, check, place
- Fatal fallback
- Envelope errors

============================================================
"""

import pytest

from broker_gateway.adapters import (
    BITSO_RULES,
    RECOVERABLE_ERRORS,
    ClassificationRule,
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    ExchangeException,
    TransportError,
    create_market_not_found_error,
    create_unexpected_state_error,
    error_from_envelope,
)


@pytest.fixture
def classifier():
    return ErrorClassifier()


# ============================================================
# TRANSIENT ERRORS
# ============================================================

class TestTransientErrors:
    """Generic recoverable errors."""

    @pytest.mark.parametrize("operation", [
        "get_ticker", "get_portfolio", "place_order", "cancel_order", "check_order",
    ])
    def test_etimedout_recoverable_for_any_operation(self, classifier, operation):
        verdict = classifier.classify(operation, TransportError("ETIMEDOUT: GET /v3/ticker/ timed out"))

        assert verdict.recoverable
        assert verdict.category == ErrorCategory.TRANSIENT_INFRA
        assert verdict.retry_override is None

    @pytest.mark.parametrize("message", [
        "ECONNRESET: server disconnected",
        "ECONNREFUSED: Cannot connect to host",
        "EAI_AGAIN: getaddrinfo failed",
        "EHOSTUNREACH",
        "ENETUNREACH",
        "Response code 429",
        "Response code 502: Error None: None",
        "Response code 403",
        "Error -1021: Timestamp outside recvWindow",
    ])
    def test_recoverable_substrings(self, classifier, message):
        assert classifier.classify("get_fee", TransportError(message)).recoverable

    def test_plain_exception_message(self, classifier):
        verdict = classifier.classify("get_ticker", ConnectionError("socket ETIMEDOUT"))

        assert verdict.recoverable

    def test_transient_wins_over_override(self, classifier):
        """Generic check runs first."""
        verdict = classifier.classify("cancel_order", TransportError("ETIMEDOUT UNKNOWN_ORDER"))

        assert verdict.category == ErrorCategory.TRANSIENT_INFRA
        assert not verdict.has_synthetic_result

    def test_table_lists_all_substrings(self):
        assert "ETIMEDOUT" in RECOVERABLE_ERRORS
        assert "Response code 5" in RECOVERABLE_ERRORS


# ============================================================
# OPERATION OVERRIDES
# ============================================================

class TestOperationOverrides:
    """Operation-specific verdicts."""

    def test_cancel_unknown_order_is_synthetic_success(self, classifier):
        verdict = classifier.classify("cancel_order", TransportError("Error 0303: UNKNOWN_ORDER"))

        assert verdict.category == ErrorCategory.DOMAIN_SYNTHETIC
        assert verdict.synthetic_result == {"filled": True}

    def test_synthetic_result_is_a_copy(self, classifier):
        first = classifier.classify("cancel_order", TransportError("UNKNOWN_ORDER"))
        first.synthetic_result["filled"] = False

        second = classifier.classify("cancel_order", TransportError("UNKNOWN_ORDER"))
        assert second.synthetic_result == {"filled": True}

    def test_unknown_order_outside_cancel_is_fatal(self, classifier):
        verdict = classifier.classify("check_order", TransportError("UNKNOWN_ORDER"))

        assert verdict.category == ErrorCategory.FATAL
        assert not verdict.recoverable

    def test_check_order_not_visible(self, classifier):
        verdict = classifier.classify("check_order", TransportError("Order does not exist."))

        assert verdict.category == ErrorCategory.EVENTUAL_CONSISTENCY
        assert verdict.recoverable
        assert verdict.retry_override == 10

    def test_place_order_insufficient_funds(self, classifier):
        error = TransportError("Error 0379: Order amount exceeds available balance")
        verdict = classifier.classify("place_order", error)

        assert verdict.category == ErrorCategory.RACE_WINDOW
        assert verdict.recoverable
        assert verdict.retry_override == 2
        assert verdict.backoff_override_ms == 1000

    @pytest.mark.parametrize("operation", ["get_ticker", "get_fee", "place_order"])
    def test_unknown_book_is_market_not_found(self, classifier, operation):
        error = TransportError("Response code 400: Error 0301: Unknown OrderBook doge_mxn", http_status=400)
        verdict = classifier.classify(operation, error)

        assert verdict.category == ErrorCategory.MARKET_NOT_FOUND
        assert not verdict.recoverable
        assert verdict.http_status == 400

    def test_insufficient_funds_outside_place_is_fatal(self, classifier):
        verdict = classifier.classify("get_portfolio", TransportError("exceeds available"))

        assert verdict.category == ErrorCategory.FATAL


# ============================================================
# FATAL FALLBACK
# ============================================================

class TestFatalFallback:
    """Non-matching errors."""

    def test_message_verbatim(self, classifier):
        error = TransportError("Error 0201: Invalid Nonce or Invalid Credentials", code="0201")
        verdict = classifier.classify("get_fee", error)

        assert verdict.category == ErrorCategory.FATAL
        assert verdict.message == "Error 0201: Invalid Nonce or Invalid Credentials"
        assert verdict.exchange_code == "0201"
        assert verdict.operation == "get_fee"

    def test_http_status_kept(self, classifier):
        verdict = classifier.classify("get_fee", TransportError("Response code 401", http_status=401))

        assert verdict.http_status == 401
        assert not verdict.recoverable

    def test_already_classified_passes_through(self, classifier):
        exc = create_market_not_found_error("doge_mxn")

        assert classifier.classify("get_ticker", exc) is exc.error


# ============================================================
# CUSTOM TABLES
# ============================================================

class TestCustomRules:
    """Exchanges can supply their own table."""

    def test_custom_table(self):
        rules = [
            ClassificationRule(
                name="maintenance",
                patterns=("MAINTENANCE",),
                category=ErrorCategory.TRANSIENT_INFRA,
                recoverable=True,
                retry_override=3,
            ),
        ]
        classifier = ErrorClassifier(rules=rules, exchange_id="other")

        assert classifier.classify("get_ticker", TransportError("MAINTENANCE")).retry_override == 3
        assert not classifier.classify("get_ticker", TransportError("ETIMEDOUT")).recoverable

    def test_first_match_wins(self):
        rules = [
            ClassificationRule(name="a", patterns=("X",), category=ErrorCategory.FATAL),
            ClassificationRule(name="b", patterns=("X",), category=ErrorCategory.TRANSIENT_INFRA, recoverable=True),
        ]

        verdict = ErrorClassifier(rules=rules).classify("op", TransportError("X"))
        assert verdict.category == ErrorCategory.FATAL

    def test_default_table(self):
        assert ErrorClassifier().rules == BITSO_RULES


# ============================================================
# ENVELOPES AND HELPERS
# ============================================================

class TestEnvelopeErrors:
    """Errors embedded in success envelopes."""

    def test_success_false(self):
        error = error_from_envelope({
            "success": False,
            "error": {"code": "0303", "message": "Order does not exist."},
        })

        assert isinstance(error, TransportError)
        assert error.message == "Error 0303: Order does not exist."
        assert error.code == "0303"

    def test_payload_with_code(self):
        error = error_from_envelope({"success": True, "payload": {"code": "0101", "message": "Unknown"}})

        assert error.message == "Error 0101: Unknown"

    def test_real_success(self):
        assert error_from_envelope({"success": True, "payload": {"oid": "abc"}}) is None
        assert error_from_envelope({"success": True, "payload": [{"code": 1}]}) is None
        assert error_from_envelope(None) is None


class TestErrorHelpers:
    """Tests for error factories."""

    def test_market_not_found(self):
        exc = create_market_not_found_error("doge_mxn", operation="get_ticker")

        assert isinstance(exc, ExchangeException)
        assert exc.category == ErrorCategory.MARKET_NOT_FOUND
        assert "doge_mxn not found" in str(exc)
        assert not exc.recoverable

    def test_unexpected_state(self):
        exc = create_unexpected_state_error("weird", "oid1")

        assert exc.category == ErrorCategory.UNEXPECTED_STATE
        assert "'weird'" in str(exc)

    def test_to_dict(self):
        data = ClassifiedError(message="m", category=ErrorCategory.FATAL).to_dict()

        assert data["category"] == "FATAL"
        assert data["recoverable"] is False
