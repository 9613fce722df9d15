"""
Exception classes for the appointment watcher.

All exceptions inherit from AppointmentWatcherError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class AppointmentWatcherError(Exception):
    """Base exception for all appointment watcher errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class TransportError(AppointmentWatcherError):
    """Raised when a single relay request fails (transport error or bad status)."""

    def __init__(
        self,
        relay: str,
        reason: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.relay = relay
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            code="transport_error",
            message=reason,
            details={"relay": relay, "status_code": status_code},
        )


class RelayExhaustedError(AppointmentWatcherError):
    """Raised when every configured relay failed for one fetch."""

    def __init__(self, reason: str, attempts: int) -> None:
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            code="relay_exhausted",
            message=reason,
            details={"attempts": attempts},
        )


class MalformedResponseError(AppointmentWatcherError):
    """Raised when a response body does not have the expected JSON shape."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(code="malformed_response", message=message, details=details)


class NotificationError(AppointmentWatcherError):
    """Raised when a notification channel rejects a delivery."""

    def __init__(
        self,
        channel: str,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.channel = channel
        self.status_code = status_code
        super().__init__(
            code="notification_error",
            message=message,
            details={"channel": channel, "status_code": status_code},
        )


class ConfigError(AppointmentWatcherError):
    """Raised when configuration cannot be loaded or is invalid."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(code="config_error", message=message, details=details)
