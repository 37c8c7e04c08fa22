"""
Custom business exceptions for the gateway core.

WHAT: Domain-specific exceptions that map to HTTP status codes
WHY: Every call into the core ends in a success or a specifically-typed failure
HOW: Custom exception classes with error codes, messages and details
"""

from typing import Optional, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.broadcast import BroadcastEvent


class BusinessException(Exception):
    """Base class for business logic exceptions."""

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class UnsupportedLanguageError(BusinessException):
    """Raised when a language code has no registered profile. No session is created."""

    def __init__(self, language_code: str):
        super().__init__(
            message=f"Unsupported language: {language_code}",
            code="UNSUPPORTED_LANGUAGE",
            details={"language_code": language_code}
        )


class ExtractionFailedError(BusinessException):
    """Raised when the completion service fails or returns an unparsable slot payload."""

    def __init__(self, reason: str, attempts: int = 1):
        super().__init__(
            message=f"Slot extraction failed: {reason}",
            code="EXTRACTION_FAILED",
            details={"reason": reason, "attempts": attempts}
        )
        self.attempts = attempts


class SessionNotFoundError(BusinessException):
    """Raised when a dialogue session is not found."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id}
        )


class ListingNotFoundError(BusinessException):
    """Raised when a listing is not found."""

    def __init__(self, listing_id: str):
        super().__init__(
            message=f"Listing not found: {listing_id}",
            code="LISTING_NOT_FOUND",
            details={"listing_id": listing_id}
        )


class SessionClosedError(BusinessException):
    """Raised when a turn is sent to a session in a terminal stage."""

    def __init__(self, session_id: str, stage: str):
        super().__init__(
            message=f"Session {session_id} is closed (stage: {stage})",
            code="SESSION_CLOSED",
            details={"session_id": session_id, "stage": stage}
        )


class InvalidTransitionError(BusinessException):
    """Raised when a stage change is not an edge of the transition table."""

    def __init__(self, from_stage: str, to_stage: str):
        super().__init__(
            message=f"Invalid stage transition: {from_stage} -> {to_stage}",
            code="INVALID_TRANSITION",
            details={"from_stage": from_stage, "to_stage": to_stage}
        )


class ListingStatusError(BusinessException):
    """Raised when a listing status would move backwards or the listing is already sold."""

    def __init__(self, listing_id: str, current_status: str, requested_status: str):
        super().__init__(
            message=f"Listing {listing_id} cannot move from {current_status} to {requested_status}",
            code="LISTING_STATUS_CONFLICT",
            details={
                "listing_id": listing_id,
                "current_status": current_status,
                "requested_status": requested_status
            }
        )


class LearnerCorruptionError(BusinessException):
    """Raised internally when a pricing statistic fails its sanity checks."""

    def __init__(self, commodity: str, reason: str):
        super().__init__(
            message=f"Pricing statistic for {commodity} is corrupt: {reason}",
            code="LEARNER_CORRUPTION",
            details={"commodity": commodity, "reason": reason}
        )
        self.commodity = commodity


class BroadcastError(BusinessException):
    """Base class for the distinct broadcast failure outcomes."""

    default_code = "BROADCAST_FAILED"
    default_message = "Broadcast failed"
    action = "Please try again"

    def __init__(self, event: Optional["BroadcastEvent"] = None, message: Optional[str] = None):
        super().__init__(
            message=message or self.default_message,
            code=self.default_code,
            details={
                "transaction_id": event.transaction_id if event else None,
                "listing_id": event.listing_id if event else None,
                "failed_phase": event.failed_phase if event else None,
                "action": self.action
            }
        )
        self.event = event


class NetworkError(BroadcastError):
    """The commerce network could not be reached."""

    default_code = "NETWORK_ERROR"
    default_message = "Could not reach the buyer network"
    action = "Check your connection and broadcast again"


class GatewayTimeoutError(BroadcastError):
    """The gateway did not answer within its deadline."""

    default_code = "GATEWAY_TIMEOUT"
    default_message = "The network gateway timed out"
    action = "The network is busy. Wait a minute and broadcast again"


class NoSellersFoundError(BroadcastError):
    """No verified counterparty responded to the listing."""

    default_code = "NO_SELLERS_FOUND"
    default_message = "No buyers responded to this listing"
    action = "Try a different price or broadcast again later"


class RateLimitedError(BroadcastError):
    """The gateway rejected the broadcast for exceeding its request rate."""

    default_code = "RATE_LIMITED"
    default_message = "Too many broadcasts in a short time"
    action = "Wait a few minutes before broadcasting again"
