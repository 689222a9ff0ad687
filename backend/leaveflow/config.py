from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    SESSION_IDLE_TIMEOUT_MINUTES: int = 30

    # Email is skipped entirely when SMTP_HOST is not configured.
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str = "leave-notifications@localhost"

    LEAVE_PORTAL_URL: str = "http://localhost:3000"
    DEFAULT_HOLIDAY_LOCATION: str = "global"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]

    class Config:
        env_file = ".env"

settings = Settings()
