"""
Data models for the appointment watcher.

This module defines the poll target, the classified appointment results,
the poller's published state and the per-relay attempt records.
"""

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Optional, Union
from urllib.parse import urlencode

from .enums import ResultKind

if TYPE_CHECKING:
    from .config import EndpointConfig
    from .exceptions import RelayExhaustedError


@dataclass(frozen=True)
class PollTarget:
    """The upstream URL and the ordered relays used to reach it."""

    url: str
    relays: tuple[str, ...]

    @classmethod
    def for_endpoint(cls, endpoint: "EndpointConfig", relays) -> "PollTarget":
        """Build a target for the availability endpoint described by ``endpoint``."""
        query = urlencode({
            "date": endpoint.date,
            "officeId": endpoint.office_id,
            "serviceId": endpoint.service_id,
            "serviceCount": endpoint.service_count,
        })
        return cls(url=f"{endpoint.base_url}?{query}", relays=tuple(relays))


@dataclass(frozen=True)
class ErrorResult:
    """The endpoint answered with an error code."""

    code: str
    message: str
    last_modified: Optional[str] = None

    @property
    def kind(self) -> ResultKind:
        return ResultKind.ERROR


@dataclass(frozen=True)
class EmptyResult:
    """The endpoint answered without any appointment."""

    @property
    def kind(self) -> ResultKind:
        return ResultKind.EMPTY


@dataclass(frozen=True)
class AvailableResult:
    """The endpoint reported at least one free appointment."""

    timestamps: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.timestamps:
            raise ValueError("AvailableResult requires at least one timestamp")

    @property
    def kind(self) -> ResultKind:
        return ResultKind.AVAILABLE


AppointmentResult = Union[ErrorResult, EmptyResult, AvailableResult]


@dataclass
class PollState:
    """
    State published by the poller after every change.

    ``is_loading`` is true while at least one poll is between dispatch and
    resolution. Subscribers receive snapshots, never this object itself.
    """

    is_loading: bool = False
    last_result: Optional[AppointmentResult] = None
    last_error: Optional[str] = None
    seconds_until_next_poll: int = 0
    polls_started: int = 0
    polls_completed: int = 0
    last_completed_at: Optional[str] = None

    def snapshot(self) -> "PollState":
        """Return an independent copy of this state."""
        return replace(self)

    @property
    def has_slots(self) -> bool:
        return isinstance(self.last_result, AvailableResult)


@dataclass
class RelayAttempt:
    """Outcome of contacting one relay."""

    relay: str
    success: bool
    reason: Optional[str] = None
    status_code: Optional[int] = None
    response_time_ms: float = 0.0


@dataclass
class RelayResult:
    """Outcome of one sweep over the relay list."""

    success: bool
    body: Optional[str] = None
    relay: Optional[str] = None
    attempts: int = 0
    failure: Optional["RelayExhaustedError"] = None
