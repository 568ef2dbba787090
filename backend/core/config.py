from typing import List, Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = "Consultation History Backend"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/app.db"
    DB_BUSY_TIMEOUT_SECONDS: float = 30.0

    # Auth
    BCRYPT_ROUNDS: int = 12
    AUTH_TOKEN_TTL_DAYS: int = 30

    # Login throttling
    LOGIN_RATE_LIMIT_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60 # 15 minutes
    RATE_LIMIT_REDIS_URL: Optional[str] = None

    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
