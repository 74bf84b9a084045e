from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# ================== SETTINGS ==================
class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./parking.db"
    # legacy layout lives in the same database unless pointed elsewhere
    LEGACY_DATABASE_URL: Optional[str] = None

    SLOT_PREFIX: str = "A"
    SLOT_COUNT: int = 20
    PREOCCUPIED_SLOTS: int = 5

    CURRENCY_SYMBOL: str = "₹"
    MAX_DURATION_HOURS: int = 72

    SCAN_INTERVAL: float = 0.1
    SCAN_TIMEOUT: float = 30.0
    CAMERA_INDEX: int = 0

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow"
    )


settings = Settings()
