"""Application configuration.

Pydantic-settings based configuration read from the environment (prefix
``PIXPROOF_``) or a ``.env`` file.

Environment Variables:
- PIXPROOF_AUTO_MATCH_THRESHOLD: Minimum score for auto-matching (default: 70)
- PIXPROOF_MANUAL_REVIEW_THRESHOLD: Minimum score for manual review (default: 15)
- PIXPROOF_ENABLE_LEARNING: Apply feedback-driven score adjustments (default: true)
- PIXPROOF_STRICT_MODE: Require amount agreement for any match (default: false)
- PIXPROOF_ASSIGNMENT_STRATEGY: greedy or optimal (default: greedy)
- PIXPROOF_BATCH_WORKERS: Number of batch worker tasks (default: 2)
- PIXPROOF_JOB_MAX_AGE_HOURS: Age after which finished jobs are evicted (default: 24)
- PIXPROOF_CLEANUP_INTERVAL_SECONDS: Sweeper interval, 0 disables it (default: 3600)
- PIXPROOF_LOG_LEVEL / PIXPROOF_JSON_LOGS / PIXPROOF_DEBUG
- PIXPROOF_METRICS_ENABLED / PIXPROOF_METRICS_PORT
"""

from pydantic import Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError


class Settings(BaseSettings):
    """PixProof application settings.

    Example:
        >>> settings = get_settings()
        >>> settings.auto_match_threshold
        70.0
    """

    model_config = SettingsConfigDict(
        env_prefix="PIXPROOF_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Matching thresholds
    auto_match_threshold: float = Field(
        default=70.0,
        ge=0,
        le=100,
        description="Minimum confidence for a match to be auto-confirmed",
    )
    manual_review_threshold: float = Field(
        default=15.0,
        ge=0,
        le=100,
        description="Minimum confidence for a match to be proposed for review",
    )
    enable_learning: bool = Field(
        default=True,
        description="Apply learned score offsets from user feedback",
    )
    strict_mode: bool = Field(
        default=False,
        description="Reject pairs whose amounts do not agree",
    )
    assignment_strategy: str = Field(
        default="greedy",
        description="Assignment algorithm (greedy, optimal)",
    )

    # Batch processing
    batch_workers: int = Field(default=2, ge=1, le=16)
    job_max_age_hours: float = Field(default=24.0, gt=0)
    cleanup_interval_seconds: float = Field(
        default=3600.0,
        ge=0,
        description="Seconds between stale job sweeps (0 disables the sweeper)",
    )

    # Logging
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    debug: bool = Field(default=False)

    # Metrics
    metrics_enabled: bool = Field(default=False)
    metrics_port: int = Field(default=8000, ge=1, le=65535)

    @field_validator("assignment_strategy")
    @classmethod
    def validate_assignment_strategy(cls, v: str) -> str:
        """Validate assignment strategy choice."""
        allowed = ["greedy", "optimal"]
        if v.lower() not in allowed:
            raise ValueError(f"assignment_strategy must be one of {allowed}, got {v}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v}")
        return v.upper()

    @model_validator(mode="after")
    def check_threshold_order(self) -> "Settings":
        if self.manual_review_threshold > self.auto_match_threshold:
            raise ValueError(
                "manual_review_threshold must not exceed auto_match_threshold "
                f"({self.manual_review_threshold} > {self.auto_match_threshold})"
            )
        return self


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def _load() -> Settings:
    try:
        return Settings()
    except PydanticValidationError as e:
        error = e.errors()[0]
        setting = ".".join(str(part) for part in error["loc"]) or None
        raise ConfigurationError(
            f"Invalid PIXPROOF_ settings: {error['msg']}",
            setting=setting,
            original_error=e,
        ) from e


def get_settings() -> Settings:
    """Get or create the cached settings instance.

    Raises:
        ConfigurationError: If the environment holds invalid values
    """
    global _settings

    if _settings is None:
        _settings = _load()

    return _settings


def reload_settings() -> Settings:
    """Rebuild settings from the current environment."""
    global _settings
    _settings = _load()
    return _settings
