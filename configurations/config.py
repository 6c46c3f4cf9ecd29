"""Configuration settings for the waste collection dispatch engine."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Database settings (empty = in-memory store)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Grouping settings
    PROXIMITY_RADIUS_KM: float = float(os.getenv("PROXIMITY_RADIUS_KM", "1.0"))
    REPORT_THRESHOLD: int = int(os.getenv("REPORT_THRESHOLD", "10"))
    TIME_LIMIT_DAYS: int = int(os.getenv("TIME_LIMIT_DAYS", "3"))

    # Progress / ETA
    ASSUMED_SPEED_KMH: float = 30.0

    # Maturity sweep
    SWEEP_INTERVAL_SECONDS: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))
    SWEEP_ENABLED: bool = _env_bool("SWEEP_ENABLED", "true")

    # External route optimizer
    OSRM_URL: str = os.getenv("OSRM_URL", "http://router.project-osrm.org")
    OSRM_ENABLED: bool = _env_bool("OSRM_ENABLED", "true")
    OSRM_TIMEOUT_SECONDS: float = float(os.getenv("OSRM_TIMEOUT_SECONDS", "5"))

    # Notifications
    NOTIFICATION_WORKERS: int = int(os.getenv("NOTIFICATION_WORKERS", "4"))
    WEBHOOK_URL: str = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_SENDER: str = os.getenv("SMTP_SENDER", "no-reply@swm.local")

    # Export settings
    EXPORT_DIR: str = os.getenv("EXPORT_DIR", "output")

    # API settings
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8080

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
