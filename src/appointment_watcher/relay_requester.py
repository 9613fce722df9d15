"""
Relay requester for the appointment watcher.

The upstream endpoint is not reliably reachable directly, so every request is
routed through a forwarding relay: the percent-encoded target URL is appended
to the relay prefix. Relays are tried in order and the first successful
response wins.
"""

import time
from typing import Optional
from urllib.parse import quote

import httpx

from .config import DEFAULT_HEADERS
from .enums import LogLevel
from .event_log import EventLogger
from .exceptions import RelayExhaustedError, TransportError
from .models import PollTarget, RelayAttempt, RelayResult


# Characters encodeURIComponent leaves untouched besides the ones quote()
# never escapes.
_URI_COMPONENT_SAFE = "!*'()"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


def build_relay_url(relay: str, target_url: str) -> str:
    """Return the forwarding URL for ``target_url`` through ``relay``."""
    return relay + quote(target_url, safe=_URI_COMPONENT_SAFE)


class RelayRequester:
    """
    Async GET through an ordered list of forwarding relays.

    Each invocation makes a single sweep over the relays; repeating the
    sweep is the poller's job.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        headers: Optional[dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize the relay requester.

        Args:
            timeout: Per-relay request timeout in seconds
            headers: Request headers; defaults to the browser-like header set
            client: Optional pre-built client; it is not closed by this object
            logger: Optional event logger
        """
        self._timeout = timeout
        self._headers = dict(headers if headers is not None else DEFAULT_HEADERS)
        self._headers.update(NO_CACHE_HEADERS)
        self._client = client
        self._owns_client = client is None
        self._logger = logger

    @classmethod
    def from_config(cls, config, logger: Optional[EventLogger] = None) -> "RelayRequester":
        """Create a requester from a RelayConfig."""
        return cls(timeout=config.timeout_seconds, headers=config.headers, logger=logger)

    async def __aenter__(self) -> "RelayRequester":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def _attempt(self, relay: str, target_url: str) -> tuple[RelayAttempt, Optional[str]]:
        """
        Contact one relay.

        Returns:
            The attempt record and, on success, the response body
        """
        url = build_relay_url(relay, target_url)
        start_time = time.perf_counter()
        try:
            try:
                response = await self._get_client().get(url, headers=self._headers)
            except httpx.HTTPError as e:
                raise TransportError(relay=relay, reason=str(e) or type(e).__name__) from e

            if not response.is_success:
                raise TransportError(
                    relay=relay,
                    reason=f"Relay returned status: {response.status_code}",
                    status_code=response.status_code,
                )
        except TransportError as e:
            self._log(
                LogLevel.WARN,
                f"Relay failed: {relay}",
                {"relay": relay, "reason": e.reason, "status_code": e.status_code},
            )
            return RelayAttempt(
                relay=relay,
                success=False,
                reason=e.reason,
                status_code=e.status_code,
                response_time_ms=self._elapsed_ms(start_time),
            ), None

        return RelayAttempt(
            relay=relay,
            success=True,
            status_code=response.status_code,
            response_time_ms=self._elapsed_ms(start_time),
        ), response.text

    async def fetch_via_relays(self, target: PollTarget) -> RelayResult:
        """
        Fetch ``target.url`` through the first relay that answers successfully.

        Transport errors and non-2xx statuses move on to the next relay. If
        every relay fails, the result carries a RelayExhaustedError with the
        most recent failure reason only.
        """
        reason = "All relays failed"
        attempts = 0

        for relay in target.relays:
            attempts += 1
            attempt, body = await self._attempt(relay, target.url)
            if attempt.success:
                self._log(
                    LogLevel.DEBUG,
                    f"Relay succeeded: {relay}",
                    {"relay": relay, "attempts": attempts,
                     "response_time_ms": round(attempt.response_time_ms, 1)},
                )
                return RelayResult(
                    success=True,
                    body=body,
                    relay=relay,
                    attempts=attempts,
                )
            reason = attempt.reason or reason

        return RelayResult(
            success=False,
            attempts=attempts,
            failure=RelayExhaustedError(reason=reason, attempts=attempts),
        )

    async def probe_relays(self, target: PollTarget) -> list[RelayAttempt]:
        """Contact every relay once, without stopping at the first success."""
        results = []
        for relay in target.relays:
            attempt, _ = await self._attempt(relay, target.url)
            results.append(attempt)
        return results

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, "RelayRequester", message, data)

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client if this requester created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
