"""Application settings, read from the environment or a .env file"""
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Booking engine settings"""

    APP_NAME: str = "Hotel Booking Engine"
    LOG_LEVEL: str = "INFO"

    # JWT
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Pricing
    TAX_RATE: Decimal = Decimal("0.12")
    CURRENCY: str = "USD"
    SEASONAL_RATE_BASIS: Literal["booking_time", "check_in"] = "booking_time"

    # Booking codes
    BOOKING_NUMBER_PREFIX: str = "OVH"
    CODE_GENERATION_MAX_ATTEMPTS: int = 5

    # Payment processor
    PAYMENT_TIMEOUT_SECONDS: float = 10.0

    # Guests may cancel Confirmed bookings only while more than this many hours remain
    CANCELLATION_CUTOFF_HOURS: float = 24

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
