"""
Configuration dataclasses for the appointment watcher.

This module defines all configuration structures used throughout the system:
the upstream endpoint, the relay list, poll timing, alerting, notification
channels and logging. Configuration is read from a JSON file and/or from
environment variables (a ``.env`` file is honoured via python-dotenv).
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .enums import AlertPolicy, LogLevel
from .exceptions import ConfigError


DEFAULT_BASE_URL = (
    "https://www48.muenchen.de/buergeransicht/api/backend/available-appointments"
)

DEFAULT_RELAYS = [
    "https://corsproxy.io/?",
    "https://cors-anywhere.herokuapp.com/",
    "https://api.allorigins.win/raw?url=",
]

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "de,en-US;q=0.7,en;q=0.3",
    "X-Requested-With": "XMLHttpRequest",
}

DEFAULT_POLL_INTERVAL_SECONDS = 180
DEFAULT_ALERT_TITLE = "You have a new message!"
DEFAULT_MARKER_TITLE = "🔔 New Notification!"
SUPPORTED_OUTPUT_FORMATS = ("json", "text", "both")


@dataclass
class EndpointConfig:
    """Query parameters of the upstream availability endpoint."""

    base_url: str = DEFAULT_BASE_URL
    date: str = "Invalid date"
    office_id: str = "10187259"
    service_id: str = "10339027"
    service_count: int = 1


@dataclass
class RelayConfig:
    """Forwarding relays and the request settings used against them."""

    relays: list[str] = field(default_factory=lambda: list(DEFAULT_RELAYS))
    timeout_seconds: float = 15.0
    headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))


@dataclass
class PollerConfig:
    """Poll timing."""

    interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    tick_seconds: float = 1.0


@dataclass
class AlertConfig:
    """How a detected availability is signalled."""

    policy: str = AlertPolicy.LEVEL.value  # 'level' or 'edge'
    title: str = DEFAULT_ALERT_TITLE
    marker_title: str = DEFAULT_MARKER_TITLE
    sound: bool = True


@dataclass
class RetryConfig:
    """Retry behaviour for notification delivery."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class TelegramConfig:
    """Telegram notification channel configuration."""

    bot_token: str
    chat_id: str


@dataclass
class DiscordConfig:
    """Discord notification channel configuration."""

    webhook_url: str


@dataclass
class WebhookConfig:
    """Generic webhook notification channel configuration."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class NotificationConfig:
    """Notification channels configuration."""

    telegram: Optional[TelegramConfig] = None
    discord: Optional[DiscordConfig] = None
    webhook: Optional[WebhookConfig] = None
    console: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    endpoint: EndpointConfig = field(default_factory=EndpointConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)
    alert: AlertConfig = field(default_factory=AlertConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    language: str = "en"  # 'en', 'de' or 'ru'


def parse_relays(raw: str) -> list[str]:
    """
    Parse a comma/whitespace separated relay list, keeping order.

    Duplicates and ``#`` comments are dropped.
    """
    if not raw:
        return []
    parts = [p.strip() for chunk in raw.replace(";", ",").split(",") for p in chunk.split()]
    seen, out = set(), []
    for relay in parts:
        if not relay or relay.startswith("#"):
            continue
        if relay not in seen:
            out.append(relay)
            seen.add(relay)
    return out


def _url_scheme(url: str) -> Optional[str]:
    """Lower-cased scheme of ``url``, or None if it cannot be parsed."""
    try:
        return urlparse(url).scheme.lower()
    except ValueError:
        return None


def validate_config(config: SystemConfig) -> list[str]:
    """
    Validate a system configuration.

    Returns:
        A list of human-readable problems; empty if the configuration is usable.
    """
    from .i18n import SUPPORTED_LANGUAGES

    errors: list[str] = []

    if not config.relay.relays:
        errors.append("No relays configured")
    for relay in config.relay.relays:
        if _url_scheme(relay) not in ("http", "https"):
            errors.append(f"Relay must be an http(s) URL prefix: {relay}")

    if _url_scheme(config.endpoint.base_url) not in ("http", "https"):
        errors.append(f"Endpoint base URL must be http(s): {config.endpoint.base_url}")
    if config.endpoint.service_count < 1:
        errors.append("service_count must be at least 1")

    if config.relay.timeout_seconds <= 0:
        errors.append("Relay timeout must be positive")
    if config.poller.interval_seconds < 1:
        errors.append("Poll interval must be at least 1 second")
    if config.poller.tick_seconds <= 0:
        errors.append("Tick length must be positive")

    if config.alert.policy not in {p.value for p in AlertPolicy}:
        errors.append(f"Unknown alert policy: {config.alert.policy}")
    if config.retry.max_retries < 0:
        errors.append("max_retries must not be negative")
    if config.language not in SUPPORTED_LANGUAGES:
        errors.append(f"Unsupported language: {config.language}")
    if config.logging.level not in {level.value for level in LogLevel}:
        errors.append(f"Unknown log level: {config.logging.level}")
    if config.logging.output_format not in SUPPORTED_OUTPUT_FORMATS:
        errors.append(f"Unknown log output format: {config.logging.output_format}")

    return errors


def config_from_dict(data: dict) -> SystemConfig:
    """
    Build a SystemConfig from a decoded JSON document.

    Missing sections fall back to their defaults.

    Raises:
        ConfigError: If a section has the wrong shape
    """
    try:
        endpoint_data = data.get("endpoint", {})
        endpoint = EndpointConfig(
            base_url=endpoint_data.get("base_url", DEFAULT_BASE_URL),
            date=endpoint_data.get("date", "Invalid date"),
            office_id=str(endpoint_data.get("office_id", EndpointConfig.office_id)),
            service_id=str(endpoint_data.get("service_id", EndpointConfig.service_id)),
            service_count=int(endpoint_data.get("service_count", 1)),
        )

        relay_data = data.get("relay", {})
        relay = RelayConfig(
            relays=list(relay_data.get("relays", DEFAULT_RELAYS)),
            timeout_seconds=float(relay_data.get("timeout_seconds", 15.0)),
            headers=dict(relay_data.get("headers", DEFAULT_HEADERS)),
        )

        poller_data = data.get("poller", {})
        poller = PollerConfig(
            interval_seconds=int(
                poller_data.get("interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS)
            ),
            tick_seconds=float(poller_data.get("tick_seconds", 1.0)),
        )

        alert_data = data.get("alert", {})
        alert = AlertConfig(
            policy=alert_data.get("policy", AlertPolicy.LEVEL.value),
            title=alert_data.get("title", DEFAULT_ALERT_TITLE),
            marker_title=alert_data.get("marker_title", DEFAULT_MARKER_TITLE),
            sound=bool(alert_data.get("sound", True)),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=int(retry_data.get("max_retries", 2)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 30.0)),
        )

        notifications_data = data.get("notifications", {})
        notifications = NotificationConfig(
            console=bool(notifications_data.get("console", True)),
        )

        telegram_data = notifications_data.get("telegram", {})
        if telegram_data.get("enabled") and telegram_data.get("bot_token") and telegram_data.get("chat_id"):
            notifications.telegram = TelegramConfig(
                bot_token=telegram_data["bot_token"],
                chat_id=str(telegram_data["chat_id"]),
            )

        discord_data = notifications_data.get("discord", {})
        if discord_data.get("enabled") and discord_data.get("webhook_url"):
            notifications.discord = DiscordConfig(
                webhook_url=discord_data["webhook_url"],
            )

        webhook_data = notifications_data.get("webhook", {})
        if webhook_data.get("enabled") and webhook_data.get("url"):
            notifications.webhook = WebhookConfig(
                url=webhook_data["url"],
                headers=dict(webhook_data.get("headers", {})),
            )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    return SystemConfig(
        endpoint=endpoint,
        relay=relay,
        poller=poller,
        alert=alert,
        retry=retry,
        notifications=notifications,
        logging=logging_config,
        language=data.get("language", "en"),
    )


def config_to_dict(config: SystemConfig) -> dict:
    """Serialize a SystemConfig into the JSON document read by config_from_dict."""
    notifications = config.notifications
    return {
        "endpoint": {
            "base_url": config.endpoint.base_url,
            "date": config.endpoint.date,
            "office_id": config.endpoint.office_id,
            "service_id": config.endpoint.service_id,
            "service_count": config.endpoint.service_count,
        },
        "relay": {
            "relays": list(config.relay.relays),
            "timeout_seconds": config.relay.timeout_seconds,
            "headers": dict(config.relay.headers),
        },
        "poller": {
            "interval_seconds": config.poller.interval_seconds,
            "tick_seconds": config.poller.tick_seconds,
        },
        "alert": {
            "policy": config.alert.policy,
            "title": config.alert.title,
            "marker_title": config.alert.marker_title,
            "sound": config.alert.sound,
        },
        "retry": {
            "max_retries": config.retry.max_retries,
            "base_delay_seconds": config.retry.base_delay_seconds,
            "max_delay_seconds": config.retry.max_delay_seconds,
        },
        "notifications": {
            "console": notifications.console,
            "telegram": {
                "enabled": True,
                "bot_token": notifications.telegram.bot_token,
                "chat_id": notifications.telegram.chat_id,
            } if notifications.telegram else {"enabled": False},
            "discord": {
                "enabled": True,
                "webhook_url": notifications.discord.webhook_url,
            } if notifications.discord else {"enabled": False},
            "webhook": {
                "enabled": True,
                "url": notifications.webhook.url,
                "headers": dict(notifications.webhook.headers),
            } if notifications.webhook else {"enabled": False},
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "language": config.language,
    }


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if the file exists, None otherwise

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(
            f"Could not read configuration from {config_path}: {e}",
            details={"path": str(config_path)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigError(
            "Configuration root must be a JSON object",
            details={"path": str(config_path)},
        )
    return config_from_dict(data)


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)
        return True
    except OSError:
        return False


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def load_config_from_env(
    base: Optional[SystemConfig] = None,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Overlay environment variables on a configuration.

    A ``.env`` file is loaded first (without overriding variables that are
    already set in the process environment).

    Args:
        base: Configuration to start from (defaults to SystemConfig())
        dotenv_path: Explicit .env file; python-dotenv searches upwards if None

    Returns:
        A new SystemConfig; ``base`` is not modified
    """
    load_dotenv(dotenv_path=dotenv_path)
    data = config_to_dict(base or SystemConfig())

    relays = parse_relays(os.getenv("WATCHER_RELAYS", ""))
    if relays:
        data["relay"]["relays"] = relays
    data["relay"]["timeout_seconds"] = _float_env(
        "WATCHER_HTTP_TIMEOUT", data["relay"]["timeout_seconds"]
    )

    if os.getenv("WATCHER_BASE_URL"):
        data["endpoint"]["base_url"] = os.environ["WATCHER_BASE_URL"].strip()
    for env_name, key in (
        ("WATCHER_DATE", "date"),
        ("WATCHER_OFFICE_ID", "office_id"),
        ("WATCHER_SERVICE_ID", "service_id"),
    ):
        if os.getenv(env_name):
            data["endpoint"][key] = os.environ[env_name].strip()
    data["endpoint"]["service_count"] = _int_env(
        "WATCHER_SERVICE_COUNT", data["endpoint"]["service_count"]
    )

    data["poller"]["interval_seconds"] = _int_env(
        "WATCHER_INTERVAL_SECONDS", data["poller"]["interval_seconds"]
    )

    if os.getenv("WATCHER_ALERT_POLICY"):
        data["alert"]["policy"] = os.environ["WATCHER_ALERT_POLICY"].strip().lower()
    if os.getenv("WATCHER_SOUND"):
        data["alert"]["sound"] = os.environ["WATCHER_SOUND"].strip() == "1"

    token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    chat_id = os.getenv("TELEGRAM_CHAT_ID", "").strip()
    if token and chat_id:
        data["notifications"]["telegram"] = {
            "enabled": True,
            "bot_token": token,
            "chat_id": chat_id,
        }
    discord_url = os.getenv("DISCORD_WEBHOOK_URL", "").strip()
    if discord_url:
        data["notifications"]["discord"] = {"enabled": True, "webhook_url": discord_url}
    webhook_url = os.getenv("WEBHOOK_URL", "").strip()
    if webhook_url:
        data["notifications"]["webhook"] = {"enabled": True, "url": webhook_url}

    if os.getenv("WATCHER_LANG"):
        data["language"] = os.environ["WATCHER_LANG"].strip().lower()
    if os.getenv("WATCHER_LOG_LEVEL"):
        data["logging"]["level"] = os.environ["WATCHER_LOG_LEVEL"].strip().lower()
    if os.getenv("WATCHER_LOG_FORMAT"):
        data["logging"]["output_format"] = os.environ["WATCHER_LOG_FORMAT"].strip().lower()

    return config_from_dict(data)
