from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class SettingsError(RuntimeError):
    pass


class Settings(BaseSettings):
    bot_token: str = Field(alias="BOT_TOKEN")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Paths
    videos_dir: Path = Field(default=Path("./videos"), alias="VIDEOS_DIR")
    auth_dir: Path = Field(default=Path("./auth_info"), alias="AUTH_DIR")

    # Video
    default_video_title: str = Field(default="video", alias="DEFAULT_VIDEO_TITLE")
    ytdlp_path: str = Field(default="yt-dlp", alias="YTDLP_PATH")
    platform_domain: str = Field(default="tiktok.com", alias="PLATFORM_DOMAIN")
    allowed_domains: list[str] = Field(
        default_factory=lambda: ["tiktok.com", "www.tiktok.com", "vm.tiktok.com", "m.tiktok.com"],
        alias="ALLOWED_DOMAINS",
    )

    # Rate limiting
    rate_limit_window_sec: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW_SEC")
    rate_limit_max_requests: int = Field(default=5, alias="RATE_LIMIT_MAX_REQUESTS")

    # File cleanup
    delivery_delete_delay_sec: float = Field(default=2.0, alias="DELIVERY_DELETE_DELAY_SEC")
    failsafe_delete_delay_sec: float = Field(default=30.0, alias="FAILSAFE_DELETE_DELAY_SEC")
    sweep_interval_sec: float = Field(default=1800.0, alias="SWEEP_INTERVAL_SEC")
    sweep_max_age_sec: float = Field(default=3600.0, alias="SWEEP_MAX_AGE_SEC")

    # Downloads
    max_concurrent_downloads: int = Field(default=2, alias="MAX_CONCURRENT_DOWNLOADS")

    # Session
    ignore_own_messages: bool = Field(default=False, alias="IGNORE_OWN_MESSAGES")
    reconnect_base_delay_sec: float = Field(default=1.0, alias="RECONNECT_BASE_DELAY_SEC")
    reconnect_max_delay_sec: float = Field(default=30.0, alias="RECONNECT_MAX_DELAY_SEC")
    reconnect_max_attempts: int = Field(default=5, alias="RECONNECT_MAX_ATTEMPTS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def validate_limits(self) -> None:
        allowed_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "TRACE"}
        if self.log_level.upper() not in allowed_levels:
            raise SettingsError(f"Invalid LOG_LEVEL={self.log_level!r}. Allowed: {sorted(allowed_levels)}")
        if not self.bot_token or ":" not in self.bot_token:
            raise SettingsError("BOT_TOKEN looks invalid (expected Telegram token format)")

        if self.rate_limit_window_sec <= 0:
            raise SettingsError("RATE_LIMIT_WINDOW_SEC must be > 0")
        if self.rate_limit_max_requests < 1:
            raise SettingsError("RATE_LIMIT_MAX_REQUESTS must be >= 1")
        if self.max_concurrent_downloads < 1:
            raise SettingsError("MAX_CONCURRENT_DOWNLOADS must be >= 1")

        if self.delivery_delete_delay_sec < 0:
            raise SettingsError("DELIVERY_DELETE_DELAY_SEC must be >= 0")
        if self.failsafe_delete_delay_sec <= self.delivery_delete_delay_sec:
            raise SettingsError("FAILSAFE_DELETE_DELAY_SEC must be > DELIVERY_DELETE_DELAY_SEC")
        if self.sweep_interval_sec <= 0 or self.sweep_max_age_sec <= 0:
            raise SettingsError("SWEEP_INTERVAL_SEC and SWEEP_MAX_AGE_SEC must be > 0")

        if not self.allowed_domains:
            raise SettingsError("ALLOWED_DOMAINS must not be empty")
        if not self.platform_domain:
            raise SettingsError("PLATFORM_DOMAIN must not be empty")
        if self.reconnect_max_attempts < 0:
            raise SettingsError("RECONNECT_MAX_ATTEMPTS must be >= 0")
        if self.reconnect_base_delay_sec <= 0 or self.reconnect_max_delay_sec < self.reconnect_base_delay_sec:
            raise SettingsError("RECONNECT_MAX_DELAY_SEC must be >= RECONNECT_BASE_DELAY_SEC > 0")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    try:
        settings = Settings()
    except ValidationError as exc:
        raise SettingsError(f"Invalid settings: {exc}") from exc
    settings.validate_limits()
    return settings
