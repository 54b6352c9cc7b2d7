from pydantic import BaseModel
import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "fallback-secret-for-development-only")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///moderation.db")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # External collaborators
    CONTENT_SERVICE_URL: str | None = os.getenv("CONTENT_SERVICE_URL")
    CONTENT_SERVICE_TIMEOUT_SECONDS: float = float(os.getenv("CONTENT_SERVICE_TIMEOUT_SECONDS", "5"))
    NOTIFICATION_SERVICE_URL: str | None = os.getenv("NOTIFICATION_SERVICE_URL")
    NOTIFICATION_TIMEOUT_SECONDS: float = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5"))
    NOTIFICATION_RETRY_ATTEMPTS: int = int(os.getenv("NOTIFICATION_RETRY_ATTEMPTS", "3"))
    NOTIFY_ASYNC: bool = _env_flag("NOTIFY_ASYNC", "true")

    # Queue
    QUEUE_PAGE_SIZE: int = int(os.getenv("QUEUE_PAGE_SIZE", "20"))
    QUEUE_MAX_PAGE_SIZE: int = int(os.getenv("QUEUE_MAX_PAGE_SIZE", "100"))

    TESTING: bool = False


class TestingSettings(Settings):
    DATABASE_URL: str = "sqlite:///:memory:"
    CONTENT_SERVICE_URL: str | None = None
    NOTIFICATION_SERVICE_URL: str | None = None
    NOTIFY_ASYNC: bool = False
    TESTING: bool = True
