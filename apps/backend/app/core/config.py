from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "SpendWise Backend"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # apps/backend/db.sqlite3 as an absolute path so the CWD does not matter
    _default_db_path = Path(__file__).resolve().parents[2] / "db.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "Asia/Kolkata"
    APP_URL: str = "http://localhost:3000"
    CURRENCY_SYMBOL: str = "INR"

    # SMTP transport for report emails
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "SpendWise Reports <reports@spendwise.local>"

    # Bearer token expected by the cron endpoint in production
    CRON_SECRET: str | None = None

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="SPENDWISE_", case_sensitive=False)


settings = Settings()
