"""
Response classification and display formatting.

``classify`` turns a raw response body into an AppointmentResult;
``format_timestamp`` renders upstream timestamps in a fixed zone;
``format_countdown`` renders the seconds until the next poll.
"""

import json
from datetime import datetime, timezone
from typing import Union
from zoneinfo import ZoneInfo

from .exceptions import MalformedResponseError
from .models import AppointmentResult, AvailableResult, EmptyResult, ErrorResult


DEFAULT_TARGET_ZONE = "Europe/Berlin"
INVALID_DATE = "Invalid date"
FORMATTING_ERROR = "Error formatting date"

RawBody = Union[str, bytes, dict]


def _decode(body: RawBody) -> dict:
    if isinstance(body, dict):
        return body
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(
            f"Response is not valid JSON: {e}",
            details={"body_preview": str(body)[:200]},
        ) from e
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}",
        )
    return data


def classify(body: RawBody) -> AppointmentResult:
    """
    Classify a response body.

    A non-empty ``errorCode`` wins over everything else; otherwise a non-empty
    ``appointmentTimestamps`` list means slots are available; anything else is
    empty.

    Raises:
        MalformedResponseError: If the body is not a JSON object of the
            expected shape
    """
    data = _decode(body)

    error_code = data.get("errorCode")
    if error_code:
        last_modified = data.get("lastModified")
        return ErrorResult(
            code=str(error_code),
            message=str(data.get("errorMessage") or ""),
            last_modified=str(last_modified) if last_modified else None,
        )

    timestamps = data.get("appointmentTimestamps")
    if timestamps is None:
        return EmptyResult()
    if not isinstance(timestamps, list):
        raise MalformedResponseError(
            "appointmentTimestamps must be a list",
            details={"type": type(timestamps).__name__},
        )
    if timestamps:
        return AvailableResult(timestamps=tuple(str(ts) for ts in timestamps))
    return EmptyResult()


def parse_timestamp(raw: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Values without an offset are taken as UTC.

    Raises:
        ValueError: If ``raw`` is not an ISO-8601 date or date-time
    """
    if not isinstance(raw, str):
        raise ValueError(f"Expected a string, got {type(raw).__name__}")
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(raw: str, target_zone: str = DEFAULT_TARGET_ZONE) -> str:
    """
    Format a timestamp as ``DD.MM.YYYY HH:MM:SS`` in ``target_zone``.

    Never raises: unparsable input yields ``"Invalid date"`` and any other
    failure yields ``"Error formatting date"``.
    """
    try:
        try:
            dt = parse_timestamp(raw)
        except (ValueError, OverflowError):
            return INVALID_DATE
        return dt.astimezone(ZoneInfo(target_zone)).strftime("%d.%m.%Y %H:%M:%S")
    except Exception:
        return FORMATTING_ERROR


def format_countdown(seconds: int) -> str:
    """Render a number of seconds as ``M:SS``."""
    seconds = max(0, int(seconds))
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes}:{remaining:02d}"
