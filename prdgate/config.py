"""
prdgate Configuration

Pydantic-backed configuration loaded from environment variables.
Uses PRDGATE_ prefix for all environment variables.
"""

import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


TIERS = ("T1", "T2", "T3", "T4", "prdAnalysis", "entityExtraction")

DEFAULT_TIER_MODELS: Dict[str, str] = {
    "T1": "anthropic/claude-3.5-sonnet",
    "T2": "anthropic/claude-3.5-sonnet",
    "T3": "openai/gpt-4o-mini",
    "T4": "openai/gpt-4o-mini",
    "prdAnalysis": "anthropic/claude-3.5-sonnet",
    "entityExtraction": "anthropic/claude-3.5-sonnet",
}


class Config(BaseModel):
    """
    Pydantic-backed configuration loaded from environment variables.

    Key env vars:
    - PRDGATE_DB_PATH (default: .prdgate.sqlite)
    - PRDGATE_ENV (default: local)
    - PRDGATE_LOG_LEVEL (default: INFO), PRDGATE_LOG_JSON
    - PRDGATE_LLM_BASE_URL / PRDGATE_LLM_API_KEY (OpenAI-compatible endpoint)
    - PRDGATE_LLM_MAX_RETRIES / PRDGATE_LLM_BACKOFF_SECONDS / PRDGATE_LLM_TIMEOUT
    - PRDGATE_MODEL_<TIER> (e.g. PRDGATE_MODEL_PRDANALYSIS)
    - PRDGATE_DISABLED_TIERS (comma separated)
    """

    # Database
    db_path: Path = Field(default=Path(".prdgate.sqlite"))

    # Environment
    environment: str = Field(default="local")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # LLM gateway
    llm_base_url: str = Field(default="https://openrouter.ai/api/v1")
    llm_api_key: Optional[str] = Field(default=None)
    llm_timeout_seconds: float = Field(default=120.0)
    llm_max_retries: int = Field(default=3)
    llm_backoff_seconds: float = Field(default=1.0)
    tier_models: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_TIER_MODELS))
    disabled_tiers: List[str] = Field(default_factory=list)

    # Persistence
    recent_projects_limit: int = Field(default=10)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_for_tier(self, tier: str) -> Optional[str]:
        """Return the configured model for a tier, if any."""
        return self.tier_models.get(tier)

    def tier_enabled(self, tier: str) -> bool:
        return tier not in self.disabled_tiers

    @property
    def llm_enabled(self) -> bool:
        """Check if an API key is configured for the gateway."""
        return bool(self.llm_api_key)


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _parse_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _load_tier_models() -> Dict[str, str]:
    models = dict(DEFAULT_TIER_MODELS)
    for tier in TIERS:
        override = os.environ.get(f"PRDGATE_MODEL_{tier.upper()}")
        if override:
            models[tier] = override
    return models


def load_config() -> Config:
    """
    Load prdgate configuration from environment.

    Environment variables use the PRDGATE_ prefix.
    """
    return Config(
        # Database
        db_path=Path(os.environ.get("PRDGATE_DB_PATH", ".prdgate.sqlite")).expanduser(),

        # Environment
        environment=os.environ.get("PRDGATE_ENV", "local"),
        log_level=os.environ.get("PRDGATE_LOG_LEVEL", "INFO"),
        log_json=_parse_bool(os.environ.get("PRDGATE_LOG_JSON")),

        # LLM
        llm_base_url=os.environ.get("PRDGATE_LLM_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/"),
        llm_api_key=os.environ.get("PRDGATE_LLM_API_KEY") or None,
        llm_timeout_seconds=float(os.environ.get("PRDGATE_LLM_TIMEOUT", "120")),
        llm_max_retries=int(os.environ.get("PRDGATE_LLM_MAX_RETRIES", "3")),
        llm_backoff_seconds=float(os.environ.get("PRDGATE_LLM_BACKOFF_SECONDS", "1.0")),
        tier_models=_load_tier_models(),
        disabled_tiers=_parse_csv(os.environ.get("PRDGATE_DISABLED_TIERS")),

        # Persistence
        recent_projects_limit=int(os.environ.get("PRDGATE_RECENT_PROJECTS_LIMIT", "10")),
    )


# Singleton config instance (lazy loaded)
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get or create the singleton config instance."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def _reset_config_for_tests() -> None:
    """Reset the global config cache (tests only)."""
    global _config
    with _config_lock:
        _config = None
