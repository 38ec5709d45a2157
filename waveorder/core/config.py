# waveorder/core/config.py
from typing import List, Optional, Union
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "WaveOrder"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./waveorder.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # CORS
    BACKEND_CORS_ORIGINS: Union[List[str], str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_API_VERSION: Optional[str] = None
    STRIPE_SUBSCRIPTION_PAGE_SIZE: int = 20

    STRIPE_STARTER_PRICE_ID: str = ""
    STRIPE_STARTER_ANNUAL_PRICE_ID: str = ""
    STRIPE_STARTER_FREE_PRICE_ID: str = ""
    STRIPE_PRO_PRICE_ID: str = ""
    STRIPE_PRO_ANNUAL_PRICE_ID: str = ""
    STRIPE_PRO_FREE_PRICE_ID: str = ""
    STRIPE_BUSINESS_PRICE_ID: str = ""
    STRIPE_BUSINESS_ANNUAL_PRICE_ID: str = ""
    STRIPE_BUSINESS_FREE_PRICE_ID: str = ""

    # Per-business reconciliation lock
    STRIPE_SYNC_LOCK_SECONDS: int = 120


settings = Settings()
