"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Provider credentials default to empty strings so the service can boot
    with the in-memory backend; the matching integration fails loudly on use.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-core", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Storage
    storage_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Where orders and inventory live (memory is for local runs and tests)",
    )

    # Supabase
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_secret_key: str = Field(default="", description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(default="", description="Public JWK, or JWKS with kids, that admin JWTs are verified against")

    # Admin access
    admin_roles: str = Field(
        default="admin,subadmin",
        description="Comma-separated JWT roles allowed to use admin endpoints",
    )

    # Payments
    payment_provider: Literal["stripe", "square"] = Field(default="stripe", description="Active payment gateway")
    payment_timeout_seconds: float = Field(default=30.0, description="Upper bound on a single charge call")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")

    # Square
    square_access_token: str = Field(default="", description="Square access token")
    square_location_id: str = Field(default="", description="Square location ID")
    square_application_id: str = Field(default="", description="Square application ID (for frontend)")
    square_environment: Literal["sandbox", "production"] = Field(default="sandbox", description="Square environment")
    square_api_version: str = Field(default="2023-10-18", description="Square-Version header")
    square_webhook_signature_key: str = Field(default="", description="Square webhook subscription signature key")
    square_webhook_url: str = Field(
        default="",
        description="Notification URL registered with Square; signatures cover it. Defaults to the request URL",
    )

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Storefront <orders@example.com>",
        description="From address for transactional emails",
    )
    admin_alert_email: str = Field(default="", description="Where post-charge incidents are reported")

    # Frontend
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for email links")

    # Shipping origin
    shipping_origin_street: str = Field(default="123 Main St", description="Warehouse street")
    shipping_origin_city: str = Field(default="New York", description="Warehouse city")
    shipping_origin_state: str = Field(default="NY", description="Warehouse state")
    shipping_origin_zip: str = Field(default="10001", description="Warehouse ZIP")
    shipping_origin_country: Literal["US", "CA", "MX"] = Field(default="US", description="Warehouse country")

    # Currency conversion from USD
    exchange_rate_cad: float = Field(default=1.35, description="CAD per USD")
    exchange_rate_mxn: float = Field(default=17.50, description="MXN per USD")

    # Rate limiting
    checkout_rate_limit_requests: int = Field(default=10, description="Checkout submissions per window per client")
    checkout_rate_limit_window_seconds: int = Field(default=60, description="Checkout rate limit window")

    @model_validator(mode="after")
    def check_supabase_credentials(self) -> "Settings":
        """Require Supabase credentials when Supabase is the storage backend."""
        if self.storage_backend == "supabase" and self.is_production:
            if not self.supabase_url or not self.supabase_secret_key:
                raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY are required in production")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def admin_roles_list(self) -> list[str]:
        """Parse admin roles string into a list."""
        return [role.strip() for role in self.admin_roles.split(",") if role.strip()]

    @property
    def exchange_rates(self) -> dict[str, float]:
        """Units of each supported currency per US dollar."""
        return {"USD": 1.0, "CAD": self.exchange_rate_cad, "MXN": self.exchange_rate_mxn}

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
