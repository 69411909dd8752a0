from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    APP_NAME: str = "casenotify"
    APP_VERSION: str = "0.1.0"
    APP_DATABASE_DSN: str = "sqlite:////tmp/casenotify.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Bearer tokens issued by the authentication service
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Email channel (SMTP)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_FROM_EMAIL: str = "no-reply@example.com"
    SMTP_FROM_NAME: str = "Social Assistance System"

    # SMS and push gateways
    SMS_GATEWAY_URL: str = ""
    SMS_GATEWAY_TOKEN: str = ""
    PUSH_GATEWAY_URL: str = ""
    PUSH_GATEWAY_TOKEN: str = ""
    CHANNEL_TIMEOUT_SECONDS: float = 10.0

    # Batch sizes and retry policy
    BULK_CHUNK_SIZE: int = 100
    SCHEDULED_BATCH_SIZE: int = 100
    DEFAULT_MAX_RETRIES: int = 3


settings = Settings()
