"""Service configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

from app.errors import ConfigurationMissing


class Settings(BaseSettings):
    """Settings read from the environment (or a local .env file)."""

    # Payment gateway
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_webhook_secret: Optional[str] = None
    razorpay_api_base: str = "https://api.razorpay.com"
    gateway_timeout_seconds: float = 30.0

    # Ledger
    database_url: str = "sqlite:///./marketplace.db"
    default_currency: str = "INR"
    price_tolerance: float = 0.01

    # Notification channels (both optional)
    slack_webhook_url: Optional[str] = None
    email_dispatch_url: Optional[str] = None
    email_dispatch_token: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"

    seed_demo_data: bool = True

    @property
    def webhook_secret(self) -> Optional[str]:
        """Dedicated webhook secret, falling back to the API key secret."""
        return self.razorpay_webhook_secret or self.razorpay_key_secret

    def require(self, *names: str) -> None:
        """Raise ConfigurationMissing unless every named setting is non-empty."""
        missing = [n for n in names if not getattr(self, n, None)]
        if missing:
            raise ConfigurationMissing(
                "Required configuration missing: " + ", ".join(n.upper() for n in missing)
            )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
