"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import Literal
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "Setu Voice Gateway"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./data/setu.db"

    # LLM Provider Selection
    LLM_PROVIDER: Literal["lm_studio", "openrouter"] = "lm_studio"

    # LM Studio Configuration
    LM_STUDIO_BASE_URL: str = "http://localhost:1234/v1"
    LM_STUDIO_DEFAULT_MODEL: str = "qwen/qwen3-1.7b"
    LM_STUDIO_TIMEOUT: int = 30  # seconds

    # LLM Request Configuration
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_DELAY: float = 2  # seconds, base for exponential backoff
    LLM_DEFAULT_TEMPERATURE: float = 0.0  # extraction must be repeatable
    LLM_DEFAULT_MAX_TOKENS: int = 512

    # OpenRouter Configuration
    LLM_ENABLE_OPENROUTER: bool = False
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_DEFAULT_MODEL: str = "google/gemini-2.5-flash-lite"

    # Slot extraction
    EXTRACTION_MAX_ATTEMPTS: int = 3
    EXTRACTION_RETRY_DELAY: float = 0.5  # seconds, doubled per attempt

    # Listings
    DEFAULT_CURRENCY: str = "INR"

    # Market price oracle (data.gov.in AGMARKNET)
    MARKET_API_BASE_URL: str = "https://api.data.gov.in/resource/9ef84268-d588-465a-a308-a864a43d0070"
    MARKET_API_KEY: str = ""
    MARKET_API_TIMEOUT: float = 5.0  # seconds

    # Broadcast simulator: phase duration ranges in seconds (sum: 6s - 25s)
    PHASE_GATEWAY_HANDSHAKE: tuple[float, float] = (1.0, 3.0)
    PHASE_AUTHENTICATION: tuple[float, float] = (0.5, 2.0)
    PHASE_FAN_OUT: tuple[float, float] = (2.0, 6.0)
    PHASE_MATCHING: tuple[float, float] = (1.5, 7.0)
    PHASE_BIDDING: tuple[float, float] = (1.0, 7.0)

    # Broadcast simulator: chaos probabilities, checked in this order
    CHAOS_NETWORK_ERROR: float = 0.01
    CHAOS_GATEWAY_TIMEOUT: float = 0.03
    CHAOS_NO_SELLERS: float = 0.02
    CHAOS_RATE_LIMITED: float = 0.01
    SIMULATOR_SEED: int | None = None

    # Adaptive pricing
    BID_RATIO_MIN: float = 0.8
    BID_RATIO_MAX: float = 1.2
    PRICING_ALPHA: float = 0.2
    PRICING_WARMUP_THRESHOLD: int = 5
    PRICING_WARMUP_NOISE: float = 0.10  # neutral ratio randomized +/- 10%
    PRICING_SETTLED_NOISE: float = 0.05  # counterparty spread around the learned ratio
    PRICING_SATURATION_CAP: int = 50

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    @field_validator(
        "CHAOS_NETWORK_ERROR", "CHAOS_GATEWAY_TIMEOUT", "CHAOS_NO_SELLERS", "CHAOS_RATE_LIMITED"
    )
    @classmethod
    def validate_probability(cls, v: float) -> float:
        """Each chaos probability must be a probability."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"chaos probability must be within [0, 1], got {v}")
        return v

    @model_validator(mode="after")
    def validate_simulator(self):
        """Chaos mass must leave room for success; ratio band must be ordered."""
        total = (
            self.CHAOS_NETWORK_ERROR
            + self.CHAOS_GATEWAY_TIMEOUT
            + self.CHAOS_NO_SELLERS
            + self.CHAOS_RATE_LIMITED
        )
        if total > 1.0:
            raise ValueError(f"chaos probabilities sum to {total:.3f}, must be <= 1")
        if self.BID_RATIO_MIN >= self.BID_RATIO_MAX:
            raise ValueError("BID_RATIO_MIN must be < BID_RATIO_MAX")
        if len(self.DEFAULT_CURRENCY) != 3:
            raise ValueError("DEFAULT_CURRENCY must be a 3-letter code")
        return self

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/app.log"

    class Config:
        # Look for .env in project root first, then backend/.env
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True


# Singleton instance
settings = Settings()
