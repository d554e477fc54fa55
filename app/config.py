"""
Service configuration
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Scoring service settings from environment variables"""

    # Storage
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "club_scoring.db")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Snapshot writes for selection-only changes are coalesced within this window
    SNAPSHOT_DEBOUNCE_SECONDS: float = float(os.getenv("SNAPSHOT_DEBOUNCE_SECONDS", "2.0"))

    # DLS Standard Edition average 50-over score
    DLS_G50: int = int(os.getenv("DLS_G50", "245"))

    # Rule profile used when a match is started without one
    DEFAULT_PROFILE: str = os.getenv("DEFAULT_PROFILE", "t20")


settings = Settings()
