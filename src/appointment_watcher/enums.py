"""
Enumeration types for the appointment watcher.

These enums provide type-safe constants for result kinds, notification
permissions, alert policies and log levels.
"""

from enum import Enum


class ResultKind(Enum):
    """Classification of a parsed availability response."""

    ERROR = "error"
    EMPTY = "empty"
    AVAILABLE = "available"


class Permission(Enum):
    """Whether a notification channel may deliver alerts."""

    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class AlertPolicy(Enum):
    """When the alert dispatcher fires."""

    LEVEL = "level"  # every poll that finds slots
    EDGE = "edge"  # only on the transition into "slots available"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}
