"""
Shared configuration management for the Feature Access SDK.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


FEATURES_EXPIRE_MS = 30 * 24 * 60 * 60 * 1000  # expire entirely after 30 days


class FallbackConfig(BaseModel):
    """Fixed config served with a fallback feature."""

    key: str
    payload: Any = None


FallbackEntry = Union[bool, FallbackConfig]


class FeaturesConfig(BaseSettings):
    """SDK configuration, overridable through ``FEATURES_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FEATURES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Identity
    publishable_key: str = ""
    api_base_url: str = "https://front.features.local"

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Resolution
    fallback_features: Dict[str, FallbackEntry] = Field(default_factory=dict)
    timeout_ms: int = Field(default=5000, gt=0)
    stale_while_revalidate: bool = False
    stale_time_ms: int = Field(default=0, ge=0)
    expire_time_ms: int = Field(default=FEATURES_EXPIRE_MS, gt=0)
    failure_retry_attempts: Optional[int] = Field(default=None, ge=0)
    offline: bool = False

    # Analytics
    events_per_minute: int = Field(default=1, gt=0)
    direct_feature_events: bool = False

    # Batch delivery
    batch_max_size: int = Field(default=100, gt=0)
    batch_interval_ms: int = Field(default=10_000, gt=0)
    batch_retry_interval_ms: int = Field(default=60_000, gt=0)
    batch_max_retries: int = Field(default=3, gt=0)
    batch_failure_policy: Literal["retry", "discard"] = "retry"

    # Persistence
    storage_backend: Literal["memory", "file", "redis"] = "memory"
    storage_path: str = ".features-cache"
    redis_url: str = "redis://localhost:6379/0"

    @field_validator("fallback_features", mode="before")
    @classmethod
    def _normalize_fallback_features(cls, value: Any) -> Any:
        """Accept a list of keys as shorthand for ``{key: True}``."""
        if value is None:
            return {}
        if isinstance(value, (list, tuple, set)):
            return {str(key): True for key in value}
        return value

    def fallback_keys(self) -> List[str]:
        return [key for key, entry in self.fallback_features.items() if entry]


def get_config(**overrides: Any) -> FeaturesConfig:
    """Get SDK configuration, with explicit keyword overrides winning over env."""
    return FeaturesConfig(**overrides)
