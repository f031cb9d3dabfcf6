"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="notebookforu-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,https://notebookforu.in",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_jwt_secret: str = Field(..., description="Supabase JWT secret for bearer token verification")
    supabase_timeout_seconds: float = Field(default=10.0, description="Timeout for each Supabase (PostgREST) request")

    # Admins
    admin_user_ids: str = Field(default="", description="Comma-separated user IDs allowed to administer orders")

    # Razorpay
    razorpay_key_id: str = Field(default="", description="Razorpay key ID")
    razorpay_key_secret: str = Field(default="", description="Razorpay key secret (also signs payments)")
    razorpay_currency: str = Field(default="INR", description="Currency for gateway orders")
    razorpay_timeout_seconds: float = Field(default=10.0, description="Timeout for each Razorpay API request")

    # Order policy
    max_order_items: int = Field(default=20, description="Maximum line items per order")
    max_item_quantity: int = Field(default=10, description="Maximum quantity per line item")
    max_order_value: float = Field(default=100000.0, description="Maximum order subtotal in rupees")
    max_address_length: int = Field(default=500, description="Maximum shipping address length")
    free_shipping_threshold: float = Field(default=499.0, description="Subtotal above which shipping is free")
    allow_guest_checkout: bool = Field(default=True, description="Allow orders without a bearer token")
    order_create_max_attempts: int = Field(default=3, description="Store write attempts when creating an order")
    order_create_backoff_seconds: float = Field(default=0.5, description="Linear backoff step between attempts")

    # Shipping
    sender_district: str = Field(default="GORAKHPUR", description="District parcels are shipped from")
    sender_state: str = Field(default="UTTAR PRADESH", description="State parcels are shipped from")
    pincode_data_path: str = Field(
        default="",
        description="Path to the pincode directory JSON (bundled sample used when empty)",
    )

    # Request limits
    max_request_body_size: int = Field(default=10240, description="Maximum request body size in bytes")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def admin_user_ids_list(self) -> list[str]:
        """Parse admin user IDs string into a list."""
        return [uid.strip() for uid in self.admin_user_ids.split(",") if uid.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_razorpay_test_mode(self) -> bool:
        """Check if using Razorpay test keys."""
        return self.razorpay_key_id.startswith("rzp_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
