# leadflow/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    AUTH_SECRET_KEY: str
    AUTH_TOKEN_EXPIRE_MINUTES: int = 720    # 12 часов
    PASSWORD_HASH_ROUNDS: int = 535000

    DATABASE_URL: str                       # async URL базы
    GOOGLE_CLIENT_ID: str = ""

    ENVIRONMENT: str = "development"        # production скрывает детали ошибок
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["*"]
    UPLOAD_DIR: str = "uploads"             # аватарки пользователей

    # первый super-admin при пустой базе
    SEED_ADMIN_EMAIL: str = "admin@example.com"
    SEED_ADMIN_PASSWORD: str = "admin123"
    SEED_ADMIN_NAME: str = "Super Admin"

    LEADS_PAGE_SIZE: int = 10
    LEADS_MAX_PAGE_SIZE: int = 100
    ACTIVITY_LOG_LIMIT: int = 100
    STATS_RECENT_LIMIT: int = 5
    USER_ACTIVE_WINDOW_MINUTES: int = 10

    LOG_DIR: str = "leadflow/log"
    LOG_PRINT: str = "1"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
