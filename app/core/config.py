from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "TourDesk API"
    # Comma-separated origins for CORS (e.g. https://tourdesk.lk,https://admin.tourdesk.lk). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    EMAIL_VERIFY_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "no-reply@tourdesk.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    API_PUBLIC_URL: str = ""  # e.g. https://api.tourdesk.lk - prefix for local document links
    APP_PUBLIC_URL: str = ""  # frontend origin for password reset links

    # Guide document storage
    DOCUMENT_LOCAL_DIR: str = "./data/guide-documents"
    GCS_BUCKET_NAME: str = ""
    GOOGLE_APPLICATION_CREDENTIALS: str = ""
    DOCUMENT_URL_TTL_SECONDS: int = 3600
    MAX_DOCUMENT_BYTES: int = 10 * 1024 * 1024

    SEED_ADMIN_EMAIL: str = "admin@tourdesk.local"
    SEED_ADMIN_PASSWORD: str = "admin12345"


settings = Settings()
