"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from stockwatch.data.calendar import HOLIDAY_API_URL, TradingSession

PROVIDERS = ("tencent", "yahoo_finance")


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/stockwatch.db"


@dataclass
class DataSourceConfig:
    """Quote source configuration."""

    provider: str = "tencent"
    base_url: str = "https://qt.gtimg.cn/q="
    timeout_seconds: float = 10.0


@dataclass
class CalendarConfig:
    """Trading calendar configuration."""

    timezone: str = "Asia/Shanghai"
    sessions: list[str] = field(default_factory=lambda: ["09:30-11:30", "13:00-15:00"])
    holiday_api_url: str = HOLIDAY_API_URL
    holiday_timeout_seconds: float = 10.0

    def trading_sessions(self) -> list[TradingSession]:
        return [TradingSession.parse(s) for s in self.sessions]


@dataclass
class ScheduleConfig:
    """Polling schedule configuration."""

    owner_id: str = "default"
    update_interval_seconds: float = 10.0


@dataclass
class DesktopNotificationConfig:
    """Desktop notification settings."""

    enabled: bool = True
    app_name: str = "stockwatch"


@dataclass
class DiscordNotificationConfig:
    """Discord notification settings."""

    webhook_url: str = ""
    mention_on_trigger: bool = False


@dataclass
class EmailNotificationConfig:
    """Email notification settings."""

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_address: str = ""
    to_addresses: list[str] = field(default_factory=list)


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    desktop: DesktopNotificationConfig = field(default_factory=DesktopNotificationConfig)
    discord: DiscordNotificationConfig = field(
        default_factory=DiscordNotificationConfig
    )
    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)

    def notifier_configs(self) -> list[dict[str, Any]]:
        """Notifier factory configs for every configured channel."""
        configs: list[dict[str, Any]] = []
        if self.desktop.enabled:
            configs.append({"type": "desktop", **self.desktop.__dict__})
        if self.discord.webhook_url:
            configs.append({"type": "discord", **self.discord.__dict__})
        if self.email.smtp_user and self.email.to_addresses:
            configs.append({"type": "email", **self.email.__dict__})
        return configs


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    call_timeout_seconds: float = 10.0
    max_retries: int = 2
    retry_delay_seconds: float = 0.5


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_timezone(timezone: str) -> None:
    """Validate timezone string."""
    if not timezone:
        raise ConfigValidationError("Timezone cannot be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigValidationError(f"Unknown timezone: {timezone}")


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    # Check database path is provided
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    ds = config_dict.get("data_source") or {}
    provider = ds.get("provider", DataSourceConfig.provider)
    if provider not in PROVIDERS:
        raise ConfigValidationError(f"Unknown quote provider: {provider}")

    calendar = config_dict.get("calendar") or {}
    _validate_timezone(calendar.get("timezone", CalendarConfig.timezone))
    for session in calendar.get("sessions") or []:
        try:
            TradingSession.parse(str(session))
        except ValueError as e:
            raise ConfigValidationError(str(e))

    schedule = config_dict.get("schedule") or {}
    interval = schedule.get("update_interval_seconds")
    if interval is not None and (not isinstance(interval, (int, float)) or interval <= 0):
        raise ConfigValidationError("schedule.update_interval_seconds must be a positive number")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    # Validate
    _validate_config(config_dict)

    try:
        database = DatabaseConfig(**(config_dict.get("database") or {}))
        data_source = DataSourceConfig(**(config_dict.get("data_source") or {}))
        calendar = CalendarConfig(**(config_dict.get("calendar") or {}))
        schedule = ScheduleConfig(**(config_dict.get("schedule") or {}))

        # Notifications
        notif_dict = config_dict.get("notifications") or {}
        notifications = NotificationsConfig(
            desktop=DesktopNotificationConfig(**(notif_dict.get("desktop") or {})),
            discord=DiscordNotificationConfig(**(notif_dict.get("discord") or {})),
            email=EmailNotificationConfig(**(notif_dict.get("email") or {})),
        )

        advanced = AdvancedConfig(**(config_dict.get("advanced") or {}))
    except TypeError as e:
        raise ConfigValidationError(f"Unknown configuration key: {e}")

    return AppConfig(
        database=database,
        data_source=data_source,
        calendar=calendar,
        schedule=schedule,
        notifications=notifications,
        advanced=advanced,
    )
