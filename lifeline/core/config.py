"""Configuration management for Lifeline."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class GlobalConfig(BaseModel):
    """Global runtime configuration."""

    # Circuit Breaker Defaults
    breaker_failure_threshold: int = Field(
        default_factory=lambda: int(
            os.getenv("LIFELINE_BREAKER_FAILURE_THRESHOLD", "5")
        )
    )
    breaker_success_threshold: int = Field(
        default_factory=lambda: int(
            os.getenv("LIFELINE_BREAKER_SUCCESS_THRESHOLD", "2")
        )
    )
    breaker_timeout: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_BREAKER_TIMEOUT", "60"))
    )
    breaker_monitoring_period: float = Field(
        default_factory=lambda: float(
            os.getenv("LIFELINE_BREAKER_MONITORING_PERIOD", "60")
        )
    )
    breaker_volume_threshold: int = Field(
        default_factory=lambda: int(
            os.getenv("LIFELINE_BREAKER_VOLUME_THRESHOLD", "10")
        )
    )
    breaker_error_percentage: float = Field(
        default_factory=lambda: float(
            os.getenv("LIFELINE_BREAKER_ERROR_PERCENTAGE", "50")
        )
    )

    # Retry Defaults
    retry_max_retries: int = Field(
        default_factory=lambda: int(os.getenv("LIFELINE_RETRY_MAX_RETRIES", "3"))
    )
    retry_initial_delay: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_RETRY_INITIAL_DELAY", "1.0"))
    )
    retry_max_delay: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_RETRY_MAX_DELAY", "30.0"))
    )
    retry_backoff_multiplier: float = Field(
        default_factory=lambda: float(
            os.getenv("LIFELINE_RETRY_BACKOFF_MULTIPLIER", "2.0")
        )
    )
    retry_jitter_ratio: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_RETRY_JITTER_RATIO", "0.25"))
    )

    # Transactions and idempotency
    transaction_timeout: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_TRANSACTION_TIMEOUT", "30"))
    )
    idempotency_ttl: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_IDEMPOTENCY_TTL", "86400"))
    )

    # Fallback and failed-operation queue
    fallback_cache_ttl: float = Field(
        default_factory=lambda: float(os.getenv("LIFELINE_FALLBACK_CACHE_TTL", "300"))
    )
    queue_max_retries: int = Field(
        default_factory=lambda: int(os.getenv("LIFELINE_QUEUE_MAX_RETRIES", "3"))
    )

    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("LIFELINE_LOG_LEVEL", "INFO")
    )
    log_format: str = Field(
        default_factory=lambda: os.getenv(
            "LIFELINE_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )


# Global configuration instance
config = GlobalConfig()


def get_config() -> GlobalConfig:
    """Get global configuration instance."""
    return config


def reload_config() -> GlobalConfig:
    """Reload configuration from environment."""
    load_dotenv(override=True)
    global config
    config = GlobalConfig()
    return config


def configure_logging(cfg: Optional[GlobalConfig] = None) -> None:
    """Apply configured log level and format to the root logger."""
    cfg = cfg or get_config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format=cfg.log_format,
    )
