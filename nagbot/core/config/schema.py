"""nagbot configuration schema: YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class ConfigError(ValueError):
    """Raised when the loaded configuration cannot be used."""


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class NotificationsConfig(BaseModel):
    """Due-event generation and delivery loops (notifications.*)."""

    enabled: bool = False
    poll_interval_s: int = Field(default=60, ge=1)
    dispatch_interval_s: int = Field(default=15, ge=1)
    max_attempts: int = Field(default=5, ge=1)
    batch_size: int = Field(default=50, ge=1)
    channels: list[str] = Field(default_factory=lambda: ["telegram"])


# Channels
class TelegramChannelConfig(BaseModel):
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""
    callback_mode: Literal["polling", "webhook"] = "polling"
    webhook_secret: str = ""
    poll_timeout_s: int = Field(default=30, ge=0)
    request_timeout_s: float = Field(default=30.0, gt=0)

    @field_validator("chat_id", mode="before")
    @classmethod
    def _chat_id_as_str(cls, v):
        # YAML reads numeric chat ids as int
        return str(v) if isinstance(v, int) else v


class ChannelsConfig(BaseModel):
    telegram: TelegramChannelConfig = Field(default_factory=TelegramChannelConfig)


# Database
class DatabaseConfig(BaseModel):
    path: str = "data/nagbot.db"


# Logging
class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_logs: bool = False


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings, env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        NAGBOT_NOTIFICATIONS__ENABLED=true
        NAGBOT_DATABASE__PATH=data/prod.db
        NAGBOT_CHANNELS__TELEGRAM__BOT_TOKEN=123:abc
    """

    model_config = SettingsConfigDict(
        env_prefix="NAGBOT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; env must win over it
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # ── Computed properties ─────────────────────────────────

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)

    @property
    def telegram_enabled(self) -> bool:
        """True when Telegram is both enabled and one of the notification channels."""
        return (
            self.channels.telegram.enabled
            and "telegram" in self.notifications.channels
        )

    # ── Validation ──────────────────────────────────────────

    def validate_notifications(self) -> None:
        """Check that every configured notification channel has its credentials.

        No-op when notifications are disabled.
        """
        if not self.notifications.enabled:
            return

        if "telegram" not in self.notifications.channels:
            return

        tg = self.channels.telegram
        missing = [
            name
            for is_missing, name in [
                (not tg.bot_token, "NAGBOT_CHANNELS__TELEGRAM__BOT_TOKEN"),
                (not tg.chat_id, "NAGBOT_CHANNELS__TELEGRAM__CHAT_ID"),
            ]
            if is_missing
        ]
        if missing:
            raise ConfigError(
                "Notifications are enabled but the following settings are not set: "
                + ", ".join(missing)
            )

        try:
            int(tg.chat_id)
        except ValueError:
            raise ConfigError(
                f"Invalid telegram chat_id '{tg.chat_id}': expected numeric chat id"
            ) from None
