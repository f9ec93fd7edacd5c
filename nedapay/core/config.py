from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), case_sensitive=False, extra="ignore")

    APP_NAME: str = "NedaPay Backend"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_PREFIX: str = "/api"
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000

    DATABASE_URL: str = "sqlite:///./nedapay.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    REDIS_URL: str = "redis://localhost:6379/0"

    CORS_ORIGINS: str = (
        "http://localhost:3000,"
        "http://127.0.0.1:3000,"
        "https://nedapay.xyz,"
        "https://www.nedapay.xyz"
    )
    APP_BASE_URL: str = "https://nedapay.xyz"

    # Privy access tokens. Without a verification key the claims are read unverified.
    PRIVY_APP_ID: str = ""
    PRIVY_VERIFICATION_KEY: str = ""
    PRIVY_ISSUER: str = "privy.io"

    # Admin dashboard key, sent as the x-admin-access-key header.
    NEXT_PUBLIC_APP_ACCESS: str = ""

    PAYCREST_CLIENT_SECRET: str = ""
    HMAC_SECRET: str = ""

    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    REFERRAL_COMMISSION_RATE: float = 0.1

    KOTANI_API_BASE: str = "https://sandbox-api.kotanipay.io/v3"
    KOTANI_USERNAME: str = ""
    KOTANI_PASSWORD: str = ""
    KOTANI_TOKEN_TTL_SECONDS: int = 23 * 60 * 60

    SUMSUB_APP_TOKEN: str = ""
    SUMSUB_SECRET_KEY: str = ""
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    @property
    def cors_origins(self) -> List[str]:
        origins: list[str] = []
        for raw in self.CORS_ORIGINS.split(","):
            value = raw.strip()
            if not value:
                continue
            parsed = urlparse(value)
            if parsed.scheme and parsed.netloc:
                value = f"{parsed.scheme}://{parsed.netloc}"
            origins.append(value.rstrip("/"))
        return origins

    @property
    def admin_access_key(self) -> str:
        return self.NEXT_PUBLIC_APP_ACCESS.strip()


@lru_cache
def get_settings() -> Settings:
    return Settings()
