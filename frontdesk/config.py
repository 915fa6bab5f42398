"""Application settings read from the environment."""
import os

from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    # Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
    url = os.getenv("DATABASE_URL", "sqlite:///./frontdesk.db")

    # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Settings:
    """Flat settings object; values are resolved once at import time."""

    def __init__(self):
        self.DATABASE_URL = _database_url()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "readable")
        self.CORS_ORIGINS = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

        # Workflow limits
        self.MIN_REASON_LENGTH = int(os.getenv("MIN_REASON_LENGTH", "10"))
        self.MIN_REJECTION_REASON_LENGTH = int(os.getenv("MIN_REJECTION_REASON_LENGTH", "5"))
        self.BATCH_STATUS_MAX_IDS = int(os.getenv("BATCH_STATUS_MAX_IDS", "100"))

        # Optional bootstrap admin created when the users table is empty
        self.SEED_ADMIN_NAME = os.getenv("SEED_ADMIN_NAME")
        self.SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL")


settings = Settings()
