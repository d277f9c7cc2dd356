import os
from typing import List
from pydantic import BaseModel, Field

class Settings(BaseModel):
    DATABASE_URL: str
    SECRET_KEY: str
    CORS_ORIGINS: List[str]
    REDIS_URL: str = "redis://localhost:6379/0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: str = "logs/app.log"

    # Single broadcast channel shared by every publisher and SSE subscriber
    QUEUE_CHANNEL: str = "queue_updates"
    SERVICE_MINUTES_PER_TICKET: int = Field(default=5, ge=1)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=1440, ge=1)
    CLAIM_RATE_LIMIT: str = "30/minute"
    SSE_KEEPALIVE_SECONDS: float = Field(default=15.0, gt=0)

    @classmethod
    def load_from_env(cls):
        database_url = os.getenv("DATABASE_URL")
        secret_key = os.getenv("SECRET_KEY")
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        environment = os.getenv("ENVIRONMENT", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        log_file_path = os.getenv("LOG_FILE_PATH", "logs/app.log")

        cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000")
        cors_origins = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]

        # Validate required fields
        missing = []
        if not database_url:
            missing.append("DATABASE_URL")
        if not secret_key:
            missing.append("SECRET_KEY")

        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        return cls(
            DATABASE_URL=database_url,
            SECRET_KEY=secret_key,
            CORS_ORIGINS=cors_origins,
            REDIS_URL=redis_url,
            ENVIRONMENT=environment,
            LOG_LEVEL=log_level,
            LOG_FILE_PATH=log_file_path,
            QUEUE_CHANNEL=os.getenv("QUEUE_CHANNEL", "queue_updates"),
            SERVICE_MINUTES_PER_TICKET=int(os.getenv("SERVICE_MINUTES_PER_TICKET", "5")),
            ACCESS_TOKEN_EXPIRE_MINUTES=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440")),
            CLAIM_RATE_LIMIT=os.getenv("CLAIM_RATE_LIMIT", "30/minute"),
            SSE_KEEPALIVE_SECONDS=float(os.getenv("SSE_KEEPALIVE_SECONDS", "15")),
        )

# Load settings immediately. This ensures fail-fast behavior at startup/import time.
# Tests must opt in with TEST_MODE=true to get the throwaway fallback below.
_is_test_mode = os.getenv("TEST_MODE", "").lower() == "true" or os.getenv("PYTEST_CURRENT_TEST") is not None

try:
    settings = Settings.load_from_env()
except ValueError as e:
    if _is_test_mode:
        import secrets
        settings = Settings(
            DATABASE_URL=os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_counter_queue.db"),
            SECRET_KEY=os.getenv("TEST_SECRET_KEY") or secrets.token_urlsafe(32),
            CORS_ORIGINS=["http://localhost:3000"],
            ENVIRONMENT="test"
        )
    else:
        # Production/Development: fail fast with clear error
        print(f"CRITICAL: Configuration Error: {e}")
        print("Please set the required environment variables: DATABASE_URL, SECRET_KEY")
        raise e
