"""Service configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Service environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Service settings with validation.

    Read from environment variables (and ``.env``). Repository-level
    behaviour lives in ``.pagesmith.json`` instead; see
    ``schemas.site_config``.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Service environment (development/production)"
    )

    # Webhook Configuration
    # HMAC secret for validating GitHub webhook signatures
    # Set via GITHUB_WEBHOOK_SECRET env var; leave empty to skip verification (dev only)
    github_webhook_secret: str = Field(
        default="",
        description="GitHub webhook secret for HMAC signature verification"
    )

    # GitHub API
    github_token: str = Field(
        default="",
        description="Token used for repository reads, comments and pull requests"
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL (override for GitHub Enterprise)"
    )
    github_api_timeout: float = Field(
        default=30.0,
        description="Per-request timeout for GitHub API calls, in seconds"
    )

    # Comment commands are only recognised behind this mention, e.g. "@pagesmith generate"
    command_mention: str = Field(
        default="@pagesmith",
        description="Mention prefix for comment commands"
    )

    # Text generation (LiteLLM model string, e.g. "anthropic/claude-sonnet-4-20250514")
    llm_model: str = Field(
        default="",
        description="LiteLLM model string used for every generation call"
    )
    llm_api_key: str = Field(
        default="",
        description="API key for the text-generation provider"
    )
    llm_api_base: str = Field(
        default="",
        description="Base URL for the text-generation provider (optional)"
    )
    llm_timeout: float = Field(
        default=120.0,
        description="Seconds before a single generation call is abandoned"
    )
    llm_max_tokens: int = Field(
        default=8192,
        description="Default completion token cap for full-page generation"
    )

    # Pipeline tuning
    section_concurrency: int = Field(
        default=6,
        description="Maximum section generation calls in flight at once"
    )
    refine_max_iterations: int = Field(
        default=3,
        description="Refinement iterations allowed after the initial evaluation"
    )
    refine_target_score: int = Field(
        default=8,
        description="Evaluation score (1-10) at which refinement stops"
    )

    # Deployment guard
    deployment_environment: str = Field(
        default="github-pages",
        description="Deployment environment polled before publishing"
    )
    deployment_poll_interval: float = Field(
        default=10.0,
        description="Seconds between deployment status polls"
    )
    deployment_max_wait: float = Field(
        default=300.0,
        description="Seconds to wait for a running deployment before proceeding anyway"
    )

    # GitHub's API is eventually consistent right after a push.
    push_sync_delay: float = Field(
        default=2.0,
        description="Seconds to wait after a push before reading repository content"
    )

    # Rate Limiting
    # RATE_LIMIT_PER_MINUTE: max requests per client per minute.
    rate_limit_per_minute: int = Field(
        default=120,
        description="Maximum requests per client per minute"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('refine_target_score')
    @classmethod
    def validate_target_score(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("refine_target_score must be between 1 and 10")
        return v

    def missing_production_settings(self) -> List[str]:
        """Return human-readable problems that block a production start."""
        errors: list[str] = []

        if not self.github_webhook_secret:
            errors.append(
                "GITHUB_WEBHOOK_SECRET is empty. "
                "Webhook signature verification would be disabled."
            )
        if not self.github_token:
            errors.append("GITHUB_TOKEN is empty. Repository reads and publishing will fail.")
        if not self.llm_model:
            errors.append("LLM_MODEL is empty. No text-generation provider is configured.")

        return errors

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if required settings are missing.
        In development, returns quietly; main.py logs the warnings.

        Raises:
            ConfigurationError: If production config is incomplete.
        """
        from ..exceptions import ConfigurationError

        errors = self.missing_production_settings()
        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is incomplete:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        # Allow reading from environment variables with different case
        case_sensitive = False


# Global settings instance
settings = Settings()
