"""
Error handling and edge case tests.

WHAT: Test exception codes, details and their HTTP status mapping
WHY: Each broadcast failure needs its own status and remediation text
HOW: Construct exceptions directly and map them with status_code_for
"""

import pytest

from setu.middleware.error_handler import status_code_for
from setu.models.broadcast import BroadcastEvent, BroadcastOutcome
from setu.utils.exceptions import (
    BusinessException,
    ExtractionFailedError,
    GatewayTimeoutError,
    InvalidTransitionError,
    LearnerCorruptionError,
    ListingNotFoundError,
    ListingStatusError,
    NetworkError,
    NoSellersFoundError,
    RateLimitedError,
    SessionClosedError,
    SessionNotFoundError,
    UnsupportedLanguageError,
)


@pytest.mark.unit
@pytest.mark.parametrize("exc,expected", [
    (UnsupportedLanguageError("xyz"), 400),
    (SessionNotFoundError("s-1"), 404),
    (ListingNotFoundError("l-1"), 404),
    (SessionClosedError("s-1", "success"), 409),
    (InvalidTransitionError("greeting", "success"), 409),
    (ListingStatusError("l-1", "sold", "broadcast"), 409),
    (ExtractionFailedError("bad json"), 502),
    (NetworkError(), 502),
    (GatewayTimeoutError(), 504),
    (NoSellersFoundError(), 404),
    (RateLimitedError(), 429),
    (LearnerCorruptionError("onion", "nan"), 400),
    (BusinessException("generic", "GENERIC"), 400),
])
def test_status_code_mapping(exc, expected):
    """Test every business exception maps to its HTTP status."""
    assert status_code_for(exc) == expected


@pytest.mark.unit
def test_broadcast_errors_are_distinct():
    """Test each broadcast failure has its own code and action."""
    errors = [NetworkError(), GatewayTimeoutError(), NoSellersFoundError(), RateLimitedError()]
    assert len({e.code for e in errors}) == 4
    assert len({e.details["action"] for e in errors}) == 4


@pytest.mark.unit
def test_broadcast_error_carries_event():
    """Test the failed event's ids and phase end up in the details."""
    event = BroadcastEvent(
        listing_id="l-1",
        outcome=BroadcastOutcome.TIMEOUT,
        failed_phase="fan_out",
        error="GATEWAY_TIMEOUT",
    )
    error = GatewayTimeoutError(event)

    assert error.event is event
    assert error.details["transaction_id"] == event.transaction_id
    assert error.details["listing_id"] == "l-1"
    assert error.details["failed_phase"] == "fan_out"
    assert error.message == "The network gateway timed out"


@pytest.mark.unit
def test_broadcast_error_without_event():
    """Test a caller-side timeout has no event but keeps its action text."""
    error = GatewayTimeoutError(message="Broadcast still running after 5s")
    assert error.event is None
    assert error.details["transaction_id"] is None
    assert error.message == "Broadcast still running after 5s"
    assert error.details["action"]


@pytest.mark.unit
def test_unsupported_language_message():
    error = UnsupportedLanguageError("xyz")
    assert "xyz" in error.message
    assert error.code == "UNSUPPORTED_LANGUAGE"
