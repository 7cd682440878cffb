import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./rollup.db")
    SQL_ECHO: bool = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")
    # Seconds a SQLite writer waits on a locked database before failing
    DB_BUSY_TIMEOUT_SECONDS: float = float(os.getenv("DB_BUSY_TIMEOUT_SECONDS", "15"))

    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Only used to grant the very first admin role
    ADMIN_SECRET: str = os.getenv("ADMIN_SECRET", "rollup-admin-2026")

    # Content limits
    MAX_COMMENT_LENGTH: int = int(os.getenv("MAX_COMMENT_LENGTH", "2000"))
    MAX_REPORT_DESCRIPTION_LENGTH: int = int(os.getenv("MAX_REPORT_DESCRIPTION_LENGTH", "2000"))
    MAX_WARNING_MESSAGE_LENGTH: int = int(os.getenv("MAX_WARNING_MESSAGE_LENGTH", "1000"))

    # Ratings (skate spots)
    RATING_MIN: int = 1
    RATING_MAX: int = 5

    # Promotions
    BOOST_LEVEL_MIN: int = 1
    BOOST_LEVEL_MAX: int = 5
    PROMOTABLE_PAGES: list = [
        "dashboard",
        "skaters-street",
        "groovist",
        "roll-up",
        "stance",
        "commute-alerts",
    ]

    # Moderation
    SUSPENSION_DAYS: int = int(os.getenv("SUSPENSION_DAYS", "7"))

    # Feeds and queues
    FEED_PAGE_SIZE_MAX: int = int(os.getenv("FEED_PAGE_SIZE_MAX", "100"))
    MODERATION_QUEUE_LIMIT: int = int(os.getenv("MODERATION_QUEUE_LIMIT", "100"))


settings = Settings()
