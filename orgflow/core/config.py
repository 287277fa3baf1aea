from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):

    DATABASE_URL: str = "sqlite:///./orgflow.db"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Email
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "no-reply@orgflow.local"
    MAIL_PORT: int = 587
    MAIL_SERVER: str = "localhost"
    MAIL_TIMEOUT_SECONDS: float = 10.0
    VERIFICATION_CODE_EXPIRE_HOUR: int = 24

    # Invitations
    INVITATION_BASE_URL: str = "http://localhost:8000/api"
    INVITATION_TTL_DAYS: int = 7
    INVITATION_TOKEN_LENGTH: int = 32
    TEMPLATES_DIR: str = ""

    # Delivery
    DISPATCHER_WORKERS: int = 2
    DELIVERY_MAX_ATTEMPTS: int = 5
    DELIVERY_BACKOFF_BASE_SECONDS: float = 1.0
    DELIVERY_BACKOFF_MAX_SECONDS: float = 60.0
    DELIVERY_POP_TIMEOUT_SECONDS: int = 1

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache
def get_settings():
    return Settings()
