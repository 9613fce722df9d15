"""
Appointment Watcher - polls an appointment availability endpoint through
forwarding relays and alerts as soon as free slots appear.
"""

__version__ = "0.1.0"
__author__ = "Appointment Watcher Team"

from appointment_watcher.exceptions import (
    AppointmentWatcherError,
    TransportError,
    RelayExhaustedError,
    MalformedResponseError,
    NotificationError,
    ConfigError,
)
from appointment_watcher.enums import (
    ResultKind,
    Permission,
    AlertPolicy,
    LogLevel,
)
from appointment_watcher.config import (
    EndpointConfig,
    RelayConfig,
    PollerConfig,
    AlertConfig,
    RetryConfig,
    TelegramConfig,
    DiscordConfig,
    WebhookConfig,
    NotificationConfig,
    LoggingConfig,
    SystemConfig,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
    validate_config,
)
from appointment_watcher.models import (
    PollTarget,
    ErrorResult,
    EmptyResult,
    AvailableResult,
    AppointmentResult,
    PollState,
    RelayAttempt,
    RelayResult,
)
from appointment_watcher.formatter import (
    classify,
    format_timestamp,
    format_countdown,
)
from appointment_watcher.relay_requester import (
    RelayRequester,
    build_relay_url,
)
from appointment_watcher.event_log import (
    EventLogger,
    LogEntry,
)
from appointment_watcher.notifications import (
    AlertPayload,
    DeliveryResult,
    NotificationChannel,
    ConsoleChannel,
    TelegramChannel,
    DiscordChannel,
    WebhookChannel,
    NotificationRouter,
)
from appointment_watcher.alerts import (
    AlertDispatcher,
    TerminalBell,
    SilentCue,
    TerminalTitleMarker,
)
from appointment_watcher.poller import (
    AvailabilityPoller,
    CancellationHandle,
    compose_error_message,
)
from appointment_watcher.display import render_state
from appointment_watcher.cli import main as cli_main

__all__ = [
    # Exceptions
    "AppointmentWatcherError",
    "TransportError",
    "RelayExhaustedError",
    "MalformedResponseError",
    "NotificationError",
    "ConfigError",
    # Enums
    "ResultKind",
    "Permission",
    "AlertPolicy",
    "LogLevel",
    # Configuration
    "EndpointConfig",
    "RelayConfig",
    "PollerConfig",
    "AlertConfig",
    "RetryConfig",
    "TelegramConfig",
    "DiscordConfig",
    "WebhookConfig",
    "NotificationConfig",
    "LoggingConfig",
    "SystemConfig",
    "load_config_from_env",
    "load_config_from_file",
    "save_config_to_file",
    "validate_config",
    # Models
    "PollTarget",
    "ErrorResult",
    "EmptyResult",
    "AvailableResult",
    "AppointmentResult",
    "PollState",
    "RelayAttempt",
    "RelayResult",
    # Formatting
    "classify",
    "format_timestamp",
    "format_countdown",
    # Relays
    "RelayRequester",
    "build_relay_url",
    # Logging
    "EventLogger",
    "LogEntry",
    # Notifications
    "AlertPayload",
    "DeliveryResult",
    "NotificationChannel",
    "ConsoleChannel",
    "TelegramChannel",
    "DiscordChannel",
    "WebhookChannel",
    "NotificationRouter",
    # Alerts
    "AlertDispatcher",
    "TerminalBell",
    "SilentCue",
    "TerminalTitleMarker",
    # Poller
    "AvailabilityPoller",
    "CancellationHandle",
    "compose_error_message",
    # Display / CLI
    "render_state",
    "cli_main",
]
