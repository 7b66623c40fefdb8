from typing import Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "marketplace"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # full URL wins over the postgres_* parts when set (sqlite in tests)
    DATABASE_URL: Optional[str] = None

    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    DEFAULT_CURRENCY: str = "XOF"
    PAYMENT_EXPIRY_HOURS: int = 24
    MAX_PAYMENT_ATTEMPTS: Optional[int] = None
    RESTOCK_ON_REFUND: bool = False
    PAYMENT_WEBHOOK_SECRET: Optional[str] = None

    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_MAX_RETRIES: int = 3
    ESTIMATED_DELIVERY_DAYS: int = 7

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
