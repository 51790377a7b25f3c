from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    # Stripe (international currencies)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_VERSION: str = "2024-06-20"
    STRIPE_PLATFORM_ACCOUNT_ID: str = ""

    # Paystack (African currencies)
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"

    # Resend transactional email
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "noreply@chainfundit.com"
    RESEND_BASE_URL: str = "https://api.resend.com"
    ADMIN_ALERT_EMAIL: str = ""

    # Shared secret for the external cron caller
    CRON_SECRET: str = ""

    PAYOUT_MAX_RETRIES: int = 3
    PAYOUT_RETRY_DELAY_MINUTES: int = 60
    PAYOUT_SWEEP_INTERVAL_MINUTES: int = 30
    NOTIFICATION_DISPATCH_INTERVAL_SECONDS: int = 60

    EXCHANGE_RATE_API_URL: str = "https://api.exchangerate-api.com/v4/latest"
    EXCHANGE_RATE_TIMEOUT: float = 5.0
    GEOLOCATION_API_URL: str = "https://ipapi.co"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v):
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()] or ["http://localhost:3000"]

settings = Settings()
