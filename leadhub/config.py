"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "LeadHub API"
    api_version: str = "0.1.0"
    api_description: str = "Lead marketplace with LeadCoin subscriptions"
    cors_allow_origins: list[str] = ["http://localhost:5000"]

    # Sessions (HS256 JWT in an httpOnly cookie)
    session_secret: str = ""
    session_cookie_name: str = "leadhub_session"
    session_ttl_hours: int = 24
    session_remember_me_days: int = 30
    session_cookie_secure: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "leadhub-api"
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    # Payment Provider - Stripe
    stripe_api_key: str = ""  # sk_test_... or sk_live_...
    stripe_webhook_secret: str = ""  # whsec_...
    stripe_publishable_key: str = ""  # pk_test_... or pk_live_...
    stripe_currency: str = "usd"
    checkout_return_url: str = "http://localhost:5000"
    payment_session_ttl_minutes: int = 30

    # LeadCoin economy
    signup_bonus_lead_coins: int = 20
    low_balance_notification_thresholds: list[int] = [10, 5, 0]
    default_contact_info_cost: int = 5
    default_detailed_info_cost: int = 10
    default_full_access_cost: int = 15

    # Account email (verification codes, password reset links)
    email_verification_required: bool = False
    email_mode: str = "log"  # log or smtp
    email_from: str = "LeadHub <no-reply@leadhub.local>"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    password_reset_ttl_minutes: int = 60
    password_reset_url: str = "http://localhost:5000/set-new-password"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.session_secret:
            errors.append("SESSION_SECRET is required to sign session tokens")
        elif len(self.session_secret) < 32:
            errors.append("SESSION_SECRET must be at least 32 characters")

        if self.payment_session_ttl_minutes <= 0:
            errors.append("PAYMENT_SESSION_TTL_MINUTES must be positive")

        if self.email_mode not in ("log", "smtp"):
            errors.append(f"EMAIL_MODE must be log or smtp, got: {self.email_mode}")
        elif self.email_mode == "smtp" and not self.smtp_host:
            errors.append("SMTP_HOST is required when EMAIL_MODE=smtp")

        if self.password_reset_ttl_minutes <= 0:
            errors.append("PASSWORD_RESET_TTL_MINUTES must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def stripe_configured(self) -> bool:
        """Whether Stripe credentials are present."""
        return bool(self.stripe_api_key)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
