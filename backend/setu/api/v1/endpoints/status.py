"""
Status, catalog and health check endpoints.

WHAT: Health monitoring, supported languages, learned pricing, market estimates
WHY: Quick diagnostics for voice clients and ops
HOW: FastAPI endpoints calling provider ping, DB ping and the read-only services
"""

from typing import Optional

from fastapi import APIRouter

from ....llm.provider_factory import get_provider
from ....llm.types import ProviderDisabledError
from ....core.database import ping_database
from ....core.config import settings
from ....models.api_schemas import (
    LanguageInfo,
    LanguagesResponse,
    PricingStatisticInfo,
    PricingStatsResponse,
)
from ....models.market import MarketQuote
from ....services.language_registry import list_all
from ....services.market_oracle import market_oracle
from ....services.pricing_learner import pricing_learner
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _llm_status() -> dict:
    try:
        provider = get_provider()
        llm_status = await provider.ping()
        return {
            "available": llm_status.available,
            "base_url": llm_status.base_url,
            "models": llm_status.models,
            "error": llm_status.error
        }
    except (ProviderDisabledError, ValueError) as e:
        logger.error(f"Failed to get LLM status: {e}")
        return {
            "available": False,
            "base_url": "unknown",
            "models": None,
            "error": str(e)
        }


@router.get("/llm/status")
async def llm_status():
    """
    Check LLM provider status.

    WHAT: Health of the configured extraction provider and database
    WHY: Clients can check before starting a dialogue
    HOW: Call provider.ping() and database.ping_database()
    """
    return {
        "llm": await _llm_status(),
        "database": ping_database()
    }


@router.get("/health")
async def health_check():
    """
    Overall application health check.

    Healthy when both the LLM provider and the database are reachable.
    """
    llm_available = (await _llm_status())["available"]
    db_available = ping_database()["available"]
    healthy = llm_available and db_available

    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.APP_VERSION,
        "app_name": settings.APP_NAME,
        "components": {
            "llm": {
                "available": llm_available,
                "provider": settings.LLM_PROVIDER
            },
            "database": {
                "available": db_available
            }
        }
    }


@router.get("/languages", response_model=LanguagesResponse)
async def list_languages():
    """Supported languages with their greetings."""
    return LanguagesResponse(languages=[
        LanguageInfo(
            code=profile.code,
            name=profile.name,
            english_name=profile.english_name,
            speech_code=profile.speech_code,
            greeting=profile.greeting,
        )
        for profile in list_all()
    ])


@router.get("/pricing/stats", response_model=PricingStatsResponse)
async def pricing_stats():
    """Learned bid ratio per commodity."""
    snapshot = pricing_learner.snapshot()
    return PricingStatsResponse(statistics=[
        PricingStatisticInfo(
            commodity=commodity,
            average_ratio=stat.average_ratio,
            sample_count=stat.sample_count,
        )
        for commodity, stat in sorted(snapshot.items())
    ])


@router.get("/market/{commodity}", response_model=MarketQuote)
async def market_estimate(commodity: str, location: Optional[str] = None):
    """Market price estimate (per kg) for a commodity; never fails, falls back to an estimate."""
    return await market_oracle.lookup(commodity, location=location)
