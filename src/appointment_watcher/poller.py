"""
Availability poller for the appointment watcher.

Owns the poll state and a repeating one-second tick. Every tick decrements
the countdown; when it reaches zero a poll cycle is dispatched and the
countdown restarts from the full interval. A poll cycle is also dispatched
immediately on start.

Overlap policy: ticks never wait for an in-flight poll, so a slow poll can
overlap the next one. No guard is applied; whichever poll resolves last
determines the published result.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from .alerts import AlertDispatcher
from .config import DEFAULT_POLL_INTERVAL_SECONDS
from .enums import LogLevel
from .event_log import EventLogger
from .exceptions import MalformedResponseError
from .formatter import classify
from .models import AppointmentResult, PollState, PollTarget
from .relay_requester import RelayRequester


StateCallback = Callable[[PollState], None]


def compose_error_message(reason: str) -> str:
    """Turn a low-level failure reason into the message shown to the user."""
    return (
        f"Failed to fetch appointments: {reason}. "
        "This is likely caused by a cross-origin restriction; please try again later."
    )


class CancellationHandle:
    """Returned by AvailabilityPoller.start(); cancelling stops the ticks."""

    def __init__(self, poller: "AvailabilityPoller", task: asyncio.Task) -> None:
        self._poller = poller
        self._task = task

    def cancel(self) -> None:
        self._poller.stop()

    @property
    def cancelled(self) -> bool:
        return self._task.done()

    async def wait(self) -> None:
        """
        Wait until the tick loop has finished.

        Stopping the poller ends the wait normally; cancelling the waiting
        task still raises CancelledError.
        """
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class AvailabilityPoller:
    """
    Scheduler and single owner of PollState.

    State is published to the subscriber passed to ``start`` as a snapshot
    on every change. Results of polls that resolve after ``stop`` are
    discarded.
    """

    def __init__(
        self,
        target: PollTarget,
        requester: RelayRequester,
        dispatcher: Optional[AlertDispatcher] = None,
        interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS,
        tick_seconds: float = 1.0,
        logger: Optional[EventLogger] = None,
    ) -> None:
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be at least 1")
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")

        self._target = target
        self._requester = requester
        self._dispatcher = dispatcher
        self._interval = interval_seconds
        self._tick_seconds = tick_seconds
        self._logger = logger

        self._state = PollState(seconds_until_next_poll=interval_seconds)
        self._on_update: Optional[StateCallback] = None
        self._in_flight = 0
        self._generation = 0
        self._running = False
        self._tick_task: Optional[asyncio.Task] = None
        self._poll_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> PollState:
        """Snapshot of the current state."""
        return self._state.snapshot()

    @property
    def interval_seconds(self) -> int:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, on_update: Optional[StateCallback] = None) -> CancellationHandle:
        """
        Start polling on the running event loop.

        An immediate poll is dispatched before the first tick.

        Raises:
            RuntimeError: If the poller is already running or no loop is running
        """
        if self._running:
            raise RuntimeError("Poller is already running")
        loop = asyncio.get_running_loop()

        self._on_update = on_update
        self._running = True
        self._state.seconds_until_next_poll = self._interval
        self._log(
            LogLevel.INFO,
            "Poller started",
            {"url": self._target.url, "relays": len(self._target.relays),
             "interval_seconds": self._interval},
        )

        self.dispatch_poll()
        self._tick_task = loop.create_task(self._run_ticks())
        return CancellationHandle(self, self._tick_task)

    def stop(self) -> None:
        """Stop ticking. In-flight polls are left to finish and then ignored."""
        if not self._running:
            return
        self._running = False
        self._generation += 1
        self._in_flight = 0
        self._state.is_loading = False
        if self._tick_task is not None:
            self._tick_task.cancel()
        self._log(LogLevel.INFO, "Poller stopped", {"abandoned_polls": len(self._poll_tasks)})
        self._publish()

    async def drain(self) -> None:
        """Wait for dispatched polls and pending alert deliveries."""
        while self._poll_tasks:
            await asyncio.gather(*list(self._poll_tasks), return_exceptions=True)
        if self._dispatcher is not None:
            await self._dispatcher.drain()

    def tick(self) -> None:
        """
        Advance the countdown by one tick.

        At zero a poll is dispatched (without waiting for it) and the
        countdown is reset to the full interval.
        """
        remaining = self._state.seconds_until_next_poll - 1
        if remaining <= 0:
            self.dispatch_poll()
            return
        self._state.seconds_until_next_poll = remaining
        self._publish()

    def dispatch_poll(self) -> asyncio.Task:
        """Enter Loading now and resolve the poll in a background task."""
        generation = self._begin_cycle()
        task = asyncio.get_running_loop().create_task(self._complete_cycle(generation))
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        return task

    async def poll_once(self) -> None:
        """Run one complete poll cycle and wait for its resolution."""
        generation = self._begin_cycle()
        await self._complete_cycle(generation)

    def _begin_cycle(self) -> int:
        self._in_flight += 1
        self._state.is_loading = True
        self._state.last_error = None
        self._state.last_result = None
        self._state.seconds_until_next_poll = self._interval
        self._state.polls_started += 1
        self._publish()
        return self._generation

    async def _complete_cycle(self, generation: int) -> None:
        result: Optional[AppointmentResult] = None
        error: Optional[str] = None
        try:
            fetched = await self._requester.fetch_via_relays(self._target)
            if fetched.success:
                result = classify(fetched.body)
            else:
                error = compose_error_message(fetched.failure.reason)
        except MalformedResponseError as e:
            error = compose_error_message(f"malformed response ({e.message})")
        except Exception as e:
            if self._logger is not None:
                self._logger.log_error("AvailabilityPoller", "Unexpected error during poll", error=e)
            error = compose_error_message(str(e) or type(e).__name__)
        finally:
            if generation == self._generation:
                self._in_flight = max(0, self._in_flight - 1)
                self._state.is_loading = self._in_flight > 0

        if generation != self._generation:
            self._log(LogLevel.DEBUG, "Dropping result of a poll resolved after stop", {})
            return

        self._state.last_result = result
        self._state.last_error = error
        self._state.polls_completed += 1
        self._state.last_completed_at = datetime.now(timezone.utc).isoformat()

        if error is not None:
            self._log(LogLevel.WARN, "Poll failed", {"error": error})
        else:
            self._log(LogLevel.INFO, "Poll resolved", {"result": result.kind.value})

        self._publish()

        if self._dispatcher is not None:
            try:
                self._dispatcher.on_result(result)
            except Exception as e:
                if self._logger is not None:
                    self._logger.log_error("AvailabilityPoller", "Alert dispatch failed", error=e)

    async def _run_ticks(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while self._running:
            # Deadlines are absolute so sleep jitter does not accumulate.
            deadline += self._tick_seconds
            now = loop.time()
            if deadline < now:
                # Behind by more than a tick after a stall: skip the missed ticks.
                deadline = now + self._tick_seconds
            await asyncio.sleep(deadline - now)
            if not self._running:
                break
            try:
                self.tick()
            except Exception as e:
                if self._logger is not None:
                    self._logger.log_error("AvailabilityPoller", "Tick failed", error=e)

    def _publish(self) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(self._state.snapshot())
        except Exception as e:
            if self._logger is not None:
                self._logger.log_error("AvailabilityPoller", "State subscriber failed", error=e)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, "AvailabilityPoller", message, data)
