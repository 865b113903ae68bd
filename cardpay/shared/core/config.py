from functools import lru_cache
from threading import Lock
import re
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator

PRICE_PATTERN = re.compile(r"^\d+(\.\d{1,8})?$")
DEFAULT_CYCLE_SECONDS = 30 * 24 * 3600


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for the card billing service.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "cardpay"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    TESTING: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./database.db"
    DB_ECHO: bool = False

    # Coin bank upstream
    COIN_API_URL: str = "https://bank.foxsrv.net/"
    COIN_API_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)

    # Card that receives every tenant-level payment
    MASTER_RECEIVER_CARD: str = ""
    DEFAULT_TENANT_PRICE: str = "0.00001000"

    # Billing cadence
    CYCLE_SECONDS: int = Field(default=DEFAULT_CYCLE_SECONDS, ge=1)
    CHECK_INTERVAL_SECONDS: int = Field(default=300, ge=1)
    INITIAL_SWEEP_DELAY_SECONDS: float = Field(default=5.0, ge=0)
    SUBSCRIBER_CHARGE_DELAY_SECONDS: float = Field(default=0.3, ge=0)
    TENANT_SWEEP_CONCURRENCY: int = Field(default=1, ge=1)

    # Outbound notices
    NOTIFICATION_DELAY_SECONDS: float = Field(default=2.0, ge=0)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Validates billing primitives; the receiver card is only optional in tests."""
        if not PRICE_PATTERN.match(self.DEFAULT_TENANT_PRICE.strip()):
            raise ValueError(
                "DEFAULT_TENANT_PRICE must be a decimal with up to 8 fractional digits."
            )
        if self.TESTING:
            return self

        if not self.MASTER_RECEIVER_CARD.strip():
            raise ValueError(
                "MASTER_RECEIVER_CARD must be set to the card that receives tenant payments."
            )
        if not self.COIN_API_URL.strip():
            raise ValueError("COIN_API_URL must be set.")
        return self

    @property
    def coin_api_base_url(self) -> str:
        """COIN_API_URL without trailing slashes, always ending in ``/api``."""
        base = self.COIN_API_URL.strip().rstrip("/")
        if not base:
            return ""
        if base.lower().endswith("/api"):
            return base
        return f"{base}/api"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
