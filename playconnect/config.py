import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Settings:
    # -------------------------------------------------------
    # Project
    # -------------------------------------------------------
    PROJECT_NAME: str = "PlayConnect API"
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # -------------------------------------------------------
    # Database
    # -------------------------------------------------------
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./playconnect.db"
    )

    # Heroku/Render use postgres:// but SQLAlchemy needs postgresql://
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "300"))

    # -------------------------------------------------------
    # Authentication (Supabase-issued JWTs)
    # -------------------------------------------------------
    SUPABASE_JWT_SECRET: str | None = os.getenv("SUPABASE_JWT_SECRET")
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "authenticated")

    # Parent UUIDs allowed to run maintenance endpoints
    ADMIN_PARENT_UUIDS: set[str] = {
        value.strip()
        for value in os.getenv("ADMIN_PARENT_UUIDS", "").split(",")
        if value.strip()
    }

    # -------------------------------------------------------
    # Invitation propagation
    # -------------------------------------------------------
    # How far ahead auto-notify looks for a host's upcoming activities
    AUTO_NOTIFY_WINDOW_DAYS: int = int(os.getenv("AUTO_NOTIFY_WINDOW_DAYS", "365"))


# Single instance that is imported everywhere
settings = Settings()
