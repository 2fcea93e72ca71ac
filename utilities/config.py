"""
Configuration management using environment variables.
Handles watcher runner settings with proper validation and defaults.
"""

from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings

from watcher.models import LOG_LEVELS, LogLevel, WatchOptions

# standard logging names accepted for LOG_LEVEL
STDLIB_ALIASES = {"warning": "warn", "critical": "error"}


class WatchSettings(BaseSettings):
    """
    Configuration class for the watch runner.
    Uses pydantic BaseSettings for environment variable management.
    """

    # Source Configuration
    watch_url: Optional[str] = Field(default=None, env="WATCH_URL")
    items_path: Optional[str] = Field(default=None, env="ITEMS_PATH")
    request_timeout: int = Field(default=30, env="REQUEST_TIMEOUT")
    retry_attempts: int = Field(default=3, env="RETRY_ATTEMPTS")
    retry_delay: float = Field(default=1.0, env="RETRY_DELAY")

    # Schedule Configuration
    watch_schedule: str = Field(default="*/5 * * * *", env="WATCH_SCHEDULE")
    timezone: str = Field(default="UTC", env="TIMEZONE")
    dithering_ms: float = Field(default=0.0, env="DITHERING_MS")
    push_changes_on_first_run: bool = Field(default=False, env="PUSH_CHANGES_ON_FIRST_RUN")
    ignore_failures: bool = Field(default=False, env="IGNORE_FAILURES")

    # Logging Configuration
    log_level: str = Field(default="info", env="LOG_LEVEL")
    log_format: str = Field(default="console", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    # Development
    debug: bool = Field(default=False, env="DEBUG")

    @validator('request_timeout')
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 1 or v > 300:
            raise ValueError('request_timeout must be between 1 and 300 seconds')
        return v

    @validator('retry_attempts')
    def validate_retry_attempts(cls, v):
        """Ensure retry attempts is reasonable."""
        if v < 0 or v > 10:
            raise ValueError('retry_attempts must be between 0 and 10')
        return v

    @validator('dithering_ms')
    def validate_dithering(cls, v):
        """Ensure dithering is not negative."""
        if v < 0:
            raise ValueError('dithering_ms must be >= 0')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is one of the watcher levels."""
        valid_levels = [level.value for level in LOG_LEVELS]
        level = STDLIB_ALIASES.get(v.lower(), v.lower())
        if level not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return level

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def get_log_level(self) -> LogLevel:
        """Get log level as LogLevel."""
        return LogLevel(self.log_level)

    def get_headers(self) -> dict:
        """Get default headers for HTTP requests."""
        return {
            "User-Agent": "cronwatch/1.0",
            "Accept": "application/json",
        }

    def to_watch_options(self) -> WatchOptions:
        """Build watch options from these settings."""
        return WatchOptions(
            dithering=self.dithering_ms,
            log_level=self.get_log_level(),
            push_changes_on_first_run=self.push_changes_on_first_run,
            ignore_failures=self.ignore_failures,
            timezone=self.timezone
        )


# Global configuration instance
config = WatchSettings()
