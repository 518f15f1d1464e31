"""
Configuration management for the storefront backend
"""
from pydantic import model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional, Tuple


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Storefront API"
    store_name: str = "Bold & Brew"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4

    # Database
    database_url: str = "sqlite:///./storefront.db"

    # Razorpay (payment gateway)
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_api_base_url: str = "https://api.razorpay.com/v1"
    default_currency: str = "INR"

    # Shiprocket (logistics carrier)
    shiprocket_email: Optional[str] = None
    shiprocket_password: Optional[str] = None
    shiprocket_api_base_url: str = "https://apiv2.shiprocket.in/v1/external"
    shiprocket_pickup_name: Optional[str] = None  # Overrides pickup_location on every booking
    shiprocket_allowed_pickups: str = "Home"  # Comma-separated pickup nicknames
    shiprocket_default_pickup_pincode: str = "110019"
    shiprocket_token_validity_hours: int = 240
    shiprocket_token_refresh_threshold_hours: int = 10
    outbound_timeout_seconds: Optional[float] = None  # None = aiohttp default

    # Shipment address defaults
    shipment_default_email: str = "no-reply@example.com"

    # Order confirmation read-back (seconds before each attempt)
    confirmation_read_delays: str = "0.5,2.0"

    # Checkout
    # Client-only order write without signature verification. Development only.
    allow_unverified_checkout: bool = False
    # Presentation: customers see "InProcess" in place of "Completed"
    hide_completed_status: bool = True

    # Authentication
    initial_admin_email: str = ""
    initial_admin_password: str = ""
    session_duration_hours: int = 72

    # Basic Auth gate for staff paths (/admin, /auth, API docs)
    dash_user: str = ""
    dash_pass: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = False

    @model_validator(mode="after")
    def _unverified_checkout_not_in_production(self):
        if self.allow_unverified_checkout and self.environment.lower() == "production":
            raise ValueError(
                "allow_unverified_checkout cannot be enabled when environment is production"
            )
        return self

    @property
    def pickup_allowlist(self) -> Tuple[str, ...]:
        return tuple(p.strip() for p in self.shiprocket_allowed_pickups.split(",") if p.strip())

    @property
    def read_delays(self) -> Tuple[float, ...]:
        return tuple(float(d) for d in self.confirmation_read_delays.split(",") if d.strip())


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
