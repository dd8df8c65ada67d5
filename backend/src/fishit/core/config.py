"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fishit.services.exceptions import ConfigurationError

IMAGE_PROVIDERS = ("pollinations", "replicate")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file="../.env", env_file_encoding="utf-8", extra="ignore")

    # Database Configuration
    database_url: str = Field(alias="DATABASE_URL")
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    db_auto_create: bool = Field(default=False, alias="DB_AUTO_CREATE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration (game frontend reads mint status)
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Chain connection
    rpc_url: str = Field(default="", alias="RPC_URL")
    fish_nft_address: str = Field(default="", alias="FISH_NFT_ADDRESS")
    fishing_game_address: str = Field(default="", alias="FISHING_GAME_ADDRESS")
    backend_signer_private_key: str = Field(default="", alias="BACKEND_SIGNER_PRIVATE_KEY")

    # Image generation
    image_provider: str = Field(default="pollinations", alias="IMAGE_PROVIDER")
    pollinations_base_url: str = Field(
        default="https://image.pollinations.ai", alias="POLLINATIONS_BASE_URL"
    )
    image_size: int = Field(default=1024, alias="IMAGE_SIZE")
    image_timeout_seconds: float = Field(default=120.0, alias="IMAGE_TIMEOUT_SECONDS")
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_model_version: str = Field(
        default="black-forest-labs/flux-schnell", alias="REPLICATE_MODEL_VERSION"
    )

    # IPFS Upload (Pinata)
    pinata_jwt: str = Field(default="", alias="PINATA_JWT")
    pinata_gateway: str = Field(default="gateway.pinata.cloud", alias="PINATA_GATEWAY")

    # Chain finalization (setTokenURI)
    gas_multiplier: float = Field(default=1.2, alias="GAS_MULTIPLIER")
    block_confirmations: int = Field(default=2, alias="BLOCK_CONFIRMATIONS")
    transaction_timeout_seconds: int = Field(default=180, alias="TRANSACTION_TIMEOUT_SECONDS")

    # Event watcher
    confirmation_lag_blocks: int = Field(default=5, alias="CONFIRMATION_LAG_BLOCKS")
    event_poll_interval_seconds: float = Field(default=15.0, alias="EVENT_POLL_INTERVAL_SECONDS")
    backfill_blocks: int = Field(default=1000, alias="BACKFILL_BLOCKS")
    log_batch_size: int = Field(default=1000, alias="LOG_BATCH_SIZE")
    max_blocks_per_poll: int = Field(default=10000, alias="MAX_BLOCKS_PER_POLL")

    # Retry scheduler
    retry_interval_minutes: float = Field(default=5.0, alias="RETRY_INTERVAL_MINUTES")
    max_retry_attempts: int = Field(default=5, alias="MAX_RETRY_ATTEMPTS")
    max_concurrent_generations: int = Field(default=3, alias="MAX_CONCURRENT_GENERATIONS")
    retry_window_hours: float = Field(default=24.0, alias="RETRY_WINDOW_HOURS")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Ensures ALL required environment variables are set for the pipeline to function.
        Fails fast with clear error messages if configuration is incomplete.

        Validation is skipped in test environments to avoid breaking tests.
        """
        if self.image_provider not in IMAGE_PROVIDERS:
            raise ValueError(
                f"IMAGE_PROVIDER must be one of {', '.join(IMAGE_PROVIDERS)} "
                f"(got {self.image_provider!r})"
            )

        # Skip validation in test environments
        if self.app_env in ("test", "testing"):
            return self

        # Collect all missing required variables
        missing = []

        if not self.rpc_url:
            missing.append("RPC_URL: JSON-RPC endpoint of the Mantle network")

        if not self.fishing_game_address:
            missing.append("FISHING_GAME_ADDRESS: Contract emitting FishCaught events")

        if not self.fish_nft_address:
            missing.append("FISH_NFT_ADDRESS: Contract receiving setTokenURI calls")

        if not self.backend_signer_private_key:
            missing.append(
                "BACKEND_SIGNER_PRIVATE_KEY: Backend signer wallet, fund it with MNT for gas"
            )

        if not self.pinata_jwt:
            missing.append("PINATA_JWT: Get your JWT token from https://pinata.cloud")

        if self.image_provider == "replicate" and not self.replicate_api_token:
            missing.append(
                "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
            )

        # If any required variables are missing, fail fast
        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe pipeline cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def load_settings() -> Settings:
    """Load settings, converting validation failures into ConfigurationError."""
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        # JSON output for production (log aggregation)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        # Console output for development (human-readable)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
