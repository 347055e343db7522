"""
Client SDK Configuration - Pydantic Settings for the LeadHub client.

NO DICTIONARIES - All configuration is strongly typed.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Client settings loaded from LEADHUB_* environment variables."""

    base_url: str = "http://localhost:8000"
    request_timeout: float = 15.0  # seconds, per request
    max_retries: int = 3  # 429 retries for payment session creation

    # Verification loop timing (seconds)
    verification_initial_delay: float = 5.0
    poll_interval: float = 5.0
    auto_close_delay: float = 3.0
    max_consecutive_errors: int = 3

    # Where the pending payment session id survives restarts; None keeps it in memory
    pending_state_path: str | None = None

    # Browser-side key of the original frontend; the SDK never calls Stripe
    stripe_public_key: str = Field(
        default="",
        validation_alias=AliasChoices("LEADHUB_STRIPE_PUBLIC_KEY", "VITE_STRIPE_PUBLIC_KEY"),
    )

    model_config = SettingsConfigDict(
        env_prefix="LEADHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )
