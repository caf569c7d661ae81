"""Configuration module for the AxleNote service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for the AxleNote service.

    All settings can be overridden via environment variables.
    Example: export NOTIFY_ENABLED=true
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./axlenote.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 3000
    """API server port"""

    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]
    """Frontend origins allowed by CORS"""

    APP_CURRENCY: str = "₹"
    """Currency symbol reported to the frontend"""

    # Logging Configuration
    LOG_DIR: str = "logs"
    """Directory for rotating log files; relative paths resolve against the project root"""

    LOG_LEVEL: str = "INFO"
    """Level for project loggers and their handlers (DEBUG, INFO, WARNING, ...)"""

    LOG_MAX_BYTES: int = Field(10 * 1024 * 1024, gt=0)
    """Size at which a log file is rotated"""

    LOG_BACKUP_COUNT: int = Field(5, ge=0)
    """Number of rotated log files kept per component"""

    # Background Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the reminder evaluation worker"""

    REMINDER_CHECK_INTERVAL: int = Field(3600, gt=0)
    """Interval in seconds between reminder sweeps (default: one hour)"""

    ODOMETER_FAILURE_SKIPS_VEHICLE: bool = False
    """Skip a vehicle when its odometer cannot be read, instead of assuming 0 km"""

    # Notification Configuration
    NOTIFY_ENABLED: bool = False
    """Enable/disable outbound notifications"""

    NOTIFY_BASE_URL: str = "https://ntfy.sh"
    """Base URL of the notification server"""

    NOTIFY_TOPIC: str = "axlenote"
    """Topic (channel) notifications are published to"""

    NOTIFY_TAGS: str = "car,warning"
    """Tags header sent with every notification"""

    NOTIFY_TIMEOUT: float = 30.0
    """Timeout in seconds for a single delivery attempt"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
