"""
Alert dispatcher for the appointment watcher.

Inspects every resolved poll result and, when slots are available, plays an
audio cue, sets a visual activity marker and hands an alert to the
notification router. Delivery runs in the background so that the polling
loop is never blocked.
"""

import asyncio
import sys
from typing import Optional, Protocol, TextIO

from .enums import AlertPolicy, LogLevel
from .event_log import EventLogger
from .i18n import get_message
from .formatter import format_timestamp
from .models import AppointmentResult, AvailableResult
from .notifications import AlertPayload, DeliveryResult, NotificationRouter


class AudioCue(Protocol):
    def play(self) -> None:
        ...


class ActivityMarker(Protocol):
    def set(self, title: str) -> None:
        ...

    def clear(self) -> None:
        ...


class TerminalBell:
    """Rings the terminal bell."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def play(self) -> None:
        stream = self._stream or sys.stdout
        stream.write("\a")
        stream.flush()


class SilentCue:
    """Audio cue used when sound is disabled."""

    def play(self) -> None:
        pass


class TerminalTitleMarker:
    """Shows new activity in the terminal window title (OSC 0)."""

    def __init__(self, stream: Optional[TextIO] = None, idle_title: str = "") -> None:
        self._stream = stream
        self._idle_title = idle_title
        self.current: Optional[str] = None

    def set(self, title: str) -> None:
        self.current = title
        self._write(title)

    def clear(self) -> None:
        if self.current is None:
            return
        self.current = None
        self._write(self._idle_title)

    def _write(self, title: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(f"\x1b]0;{title}\x07")
        stream.flush()


class AlertDispatcher:
    """
    Fires an alert for poll results that contain slots.

    With the level policy every such result fires, including consecutive
    ones. With the edge policy only the transition from "no slots" to
    "slots" fires; the single latched flag is updated on every result
    except failed polls.
    """

    def __init__(
        self,
        router: Optional[NotificationRouter] = None,
        audio: Optional[AudioCue] = None,
        marker: Optional[ActivityMarker] = None,
        policy: AlertPolicy = AlertPolicy.LEVEL,
        title: str = "You have a new message!",
        marker_title: str = "🔔 New Notification!",
        language: str = "en",
        logger: Optional[EventLogger] = None,
    ) -> None:
        self._router = router
        self._audio = audio or SilentCue()
        self._marker = marker
        self._policy = policy
        self._title = title
        self._marker_title = marker_title
        self._language = language
        self._logger = logger
        self._had_slots = False
        self._pending: set[asyncio.Task] = set()
        self.fired_count = 0

    @property
    def policy(self) -> AlertPolicy:
        return self._policy

    @property
    def had_slots(self) -> bool:
        return self._had_slots

    def should_fire(self, result: Optional[AppointmentResult]) -> bool:
        """Decide whether ``result`` triggers an alert under the current policy."""
        available = isinstance(result, AvailableResult) and bool(result.timestamps)
        if not available:
            return False
        if self._policy is AlertPolicy.EDGE:
            return not self._had_slots
        return True

    def on_result(self, result: Optional[AppointmentResult]) -> bool:
        """
        Handle one resolved poll. ``None`` stands for a failed poll.

        Returns:
            True if an alert was fired
        """
        fire = self.should_fire(result)
        # A failed poll says nothing about slots; keep the latched flag.
        if result is not None:
            self._had_slots = isinstance(result, AvailableResult)
        if not fire:
            return False

        self.fired_count += 1
        self._log(
            LogLevel.INFO,
            "Appointments available, firing alert",
            {"count": len(result.timestamps), "policy": self._policy.value},
        )

        try:
            self._audio.play()
        except Exception as e:
            self._log(LogLevel.WARN, "Audio cue failed", {"error": str(e)})

        if self._marker is not None:
            try:
                self._marker.set(self._marker_title)
            except Exception as e:
                self._log(LogLevel.WARN, "Activity marker failed", {"error": str(e)})

        if self._router is not None and self._router.channels:
            self._schedule_delivery(self._build_payload(result))

        return True

    def clear_marker(self) -> None:
        """Reset the visual activity marker, e.g. after the user looked."""
        if self._marker is not None:
            self._marker.clear()

    async def drain(self) -> None:
        """Wait for all pending deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _build_payload(self, result: AvailableResult) -> AlertPayload:
        formatted = [format_timestamp(ts) for ts in result.timestamps]
        return AlertPayload(
            title=self._title,
            body=get_message(
                "alert.body",
                self._language,
                count=len(formatted),
                first=formatted[0],
            ),
            timestamps=formatted,
        )

    def _schedule_delivery(self, payload: AlertPayload) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(payload))
        except RuntimeError:
            self._log(LogLevel.WARN, "No running event loop, notification skipped", {})
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, payload: AlertPayload) -> list[DeliveryResult]:
        try:
            results = await self._router.deliver_all(payload)
        except Exception as e:
            if self._logger is not None:
                self._logger.log_error("AlertDispatcher", "Notification delivery failed", error=e)
            return []
        for result in results:
            self._log(
                LogLevel.DEBUG,
                f"Delivery to '{result.channel}' finished",
                {"channel": result.channel, "success": result.success,
                 "permission": result.permission.value, "attempts": result.attempts},
            )
        return results

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, "AlertDispatcher", message, data)
