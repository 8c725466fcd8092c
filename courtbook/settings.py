from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="COURTBOOK_"
    )

    database_url: str = "sqlite:///./courtbook.db"
    sqlite_busy_timeout: float = 30.0
    log_level: str = "INFO"

    # Club wall-clock zone used for peak/weekend pricing and the daily slot grid.
    timezone: str = "UTC"

    booking_reference_prefix: str = "BK"

    indoor_multiplier: Decimal = Decimal("1.2")
    peak_multiplier: Decimal = Decimal("1.5")
    weekend_multiplier: Decimal = Decimal("1.3")
    peak_start_hour: int = 18
    peak_end_hour: int = 21

    slot_day_start_hour: int = 9
    slot_day_end_hour: int = 22


settings = Settings()
