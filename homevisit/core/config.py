# homevisit/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

from homevisit.schemas.patient import HomeBase


class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Day grid ---
    DAY_START_MINUTES: int = 7 * 60 + 30  # 7:30 AM
    DAY_END_MINUTES: int = 20 * 60        # 8:00 PM
    SLOT_MINUTES: int = 15
    SLOT_HEIGHT_PX: int = 48
    MIN_DURATION_MINUTES: int = 15
    MAX_DURATION_MINUTES: int = 240
    BLOCK_INSET_PX: int = 1

    # --- Routing ---
    OPTIMIZE_START_MINUTES: int = 9 * 60  # optimized routes start at 9:00 AM
    AVERAGE_DRIVE_SPEED_MPH: float = 30.0
    ROUTE_ORDERING: str = "nearest_neighbor"  # or "farthest_first"
    HOME_BASE_ADDRESS: str = ""
    HOME_BASE_LAT: float = 0.0
    HOME_BASE_LNG: float = 0.0

    # --- Google Maps ---
    GOOGLE_MAPS_API_KEY: str | None = None
    GEOCODE_TIMEOUT_SECONDS: float = 10.0
    DISTANCE_MATRIX_TIMEOUT_SECONDS: float = 15.0

    # --- Google Calendar (remote store) ---
    GOOGLE_CALENDAR_ENABLED: bool = False
    GOOGLE_SERVICE_ACCOUNT_JSON: str | None = None
    GOOGLE_CALENDAR_ID: str = "primary"
    CALENDAR_TIMEZONE: str = "America/New_York"

    # --- Gestures ---
    LONG_PRESS_MS: int = 400
    RESIZE_LONG_PRESS_MS: int = 300
    TOUCH_DRAG_HOLD_MS: int = 200
    TOUCH_DRAG_CANCEL_PX: float = 10.0
    CREATE_ON_SLOT_CLICK: bool = False

    # --- Sync ---
    SYNC_MAX_BATCH_SIZE: int = 5
    SYNC_BATCH_DELAY_MS: int = 2500

    # --- Storage ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./homevisit.db"

    # --- Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    MAX_LOG_LENGTH: int = 200

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @property
    def home_base(self) -> HomeBase | None:
        """Configured home base, or None when neither coordinates nor an address are set."""
        if not self.HOME_BASE_ADDRESS and self.HOME_BASE_LAT == 0 and self.HOME_BASE_LNG == 0:
            return None
        return HomeBase(
            address=self.HOME_BASE_ADDRESS,
            lat=self.HOME_BASE_LAT,
            lng=self.HOME_BASE_LNG,
        )


# Singleton
settings = Settings()
