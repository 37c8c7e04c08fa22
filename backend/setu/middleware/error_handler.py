"""
Global error handling middleware.

WHAT: Translate exceptions to appropriate HTTP responses
WHY: Callers must see a specific failure, with the remediation text for broadcasts
HOW: FastAPI exception handlers for business and provider exceptions
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime

from ..llm.types import (
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderDisabledError,
    ProviderResponseError,
)
from ..utils.exceptions import (
    BusinessException,
    UnsupportedLanguageError,
    ExtractionFailedError,
    SessionNotFoundError,
    ListingNotFoundError,
    SessionClosedError,
    InvalidTransitionError,
    ListingStatusError,
    NetworkError,
    GatewayTimeoutError,
    NoSellersFoundError,
    RateLimitedError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Most specific first; first isinstance match wins
STATUS_CODES: tuple[tuple[type[BusinessException], int], ...] = (
    (UnsupportedLanguageError, status.HTTP_400_BAD_REQUEST),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (ListingNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionClosedError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ListingStatusError, status.HTTP_409_CONFLICT),
    (ExtractionFailedError, status.HTTP_502_BAD_GATEWAY),
    (NetworkError, status.HTTP_502_BAD_GATEWAY),
    (GatewayTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (NoSellersFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
)


def status_code_for(exc: BusinessException) -> int:
    """HTTP status for a business exception (400 when unmapped)."""
    for exc_type, code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def _error_body(error: str, message: str, details=None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details,
        "timestamp": datetime.now().isoformat()
    }


async def provider_disabled_handler(request: Request, exc: ProviderDisabledError):
    """
    Handle ProviderDisabledError.

    WHAT: Provider is disabled in config
    WHY: User needs to enable provider or switch to another
    HOW: Return 400 with clear error code
    """
    logger.warning(f"Provider disabled: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("LLM_PROVIDER_DISABLED", str(exc), "Check LLM provider configuration")
    )


async def provider_timeout_handler(request: Request, exc: ProviderTimeoutError):
    """LLM request timed out: 503."""
    logger.error(f"Provider timeout: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body("LLM_TIMEOUT", str(exc), "LLM provider request timed out")
    )


async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError):
    """Provider not reachable: 503."""
    logger.error(f"Provider unavailable: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(
            "LLM_UNAVAILABLE",
            str(exc),
            "LLM provider is not reachable. Check that LM Studio is running."
        )
    )


async def provider_response_error_handler(request: Request, exc: ProviderResponseError):
    """Provider returned an invalid or error response: 502."""
    logger.error(f"Provider response error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body("LLM_BAD_GATEWAY", str(exc), "LLM provider returned an invalid response")
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request validation failed
    WHY: Invalid request payload
    HOW: Return 400 with field errors
    """
    logger.warning(f"Validation error: {exc.errors()}")

    # Clean up error details to be JSON serializable
    cleaned_errors = []
    for error in exc.errors():
        cleaned_error = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": error.get("input")
        }
        if "ctx" in error:
            cleaned_error["ctx"] = {
                k: str(v) if isinstance(v, Exception) else v
                for k, v in error["ctx"].items()
            }
        cleaned_errors.append(cleaned_error)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("VALIDATION_ERROR", "Request validation failed", cleaned_errors)
    )


async def business_exception_handler(request: Request, exc: BusinessException):
    """
    Handle BusinessException and its subclasses.

    WHAT: Domain failure with a code and details
    WHY: Broadcast outcomes need distinct statuses so clients show distinct remediation
    HOW: Status from STATUS_CODES, body {error, message, details, timestamp}
    """
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Business exception: {exc.code} - {exc.message}")
    else:
        logger.warning(f"Business exception: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, exc.message, exc.details)
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    # LLM Provider exceptions
    app.add_exception_handler(ProviderDisabledError, provider_disabled_handler)
    app.add_exception_handler(ProviderTimeoutError, provider_timeout_handler)
    app.add_exception_handler(ProviderUnavailableError, provider_unavailable_handler)
    app.add_exception_handler(ProviderResponseError, provider_response_error_handler)

    # Request and business exceptions
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(BusinessException, business_exception_handler)

    logger.info("Exception handlers registered")
