# ─────────────────────────────────────────────────────────────────
# config.py - Service Settings
#
# Every tunable threshold lives here. Values are read from
# environment variables prefixed with SAFETY_PULSE_ (or a .env file)
# e.g. SAFETY_PULSE_OFFLINE_THRESHOLD_SECONDS=300
# ─────────────────────────────────────────────────────────────────

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # A device is offline once it has been silent this long
    offline_threshold_seconds: int = 120

    # status.noSensorReadings flips to true after this much sensor silence
    sensor_stale_threshold_seconds: int = 600

    # How often the online/offline sweep runs
    sweep_interval_seconds: int = 60

    # Alert history entries kept per device
    alert_history_limit: int = 5

    # Numeric smoke policy: analog readings above this count as smoke
    smoke_analog_threshold: float = 1500

    # Maximum points returned for a device's chart history
    chart_history_limit: int = 200

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SAFETY_PULSE_",
        env_file=".env",
        case_sensitive=False,
    )


settings = Settings()
