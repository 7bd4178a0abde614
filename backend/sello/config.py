from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./sello.db"
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    N8N_BASE_URL: str = "https://n8n.sell-o.shop"
    N8N_ADMIN_KEY: str = ""
    N8N_TIMEOUT: float = 30.0
    N8N_PROMPT_GENERATION_WEBHOOK: str = ""
    TELEGRAM_API_URL: str = "https://api.telegram.org"

    # 32 bytes, hex encoded (64 chars)
    ENCRYPTION_KEY: str = ""

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
