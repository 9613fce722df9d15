"""
Property-based tests for response classification and formatting.

Uses Hypothesis to check that classification is total and that timestamp
formatting never raises.
"""

import json
import string
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from appointment_watcher.enums import ResultKind
from appointment_watcher.exceptions import MalformedResponseError
from appointment_watcher.formatter import (
    FORMATTING_ERROR,
    INVALID_DATE,
    classify,
    format_countdown,
    format_timestamp,
)
from appointment_watcher.models import AvailableResult, EmptyResult, ErrorResult


@st.composite
def iso_timestamp_strategy(draw) -> str:
    """Generate ISO-8601 UTC timestamps as the endpoint sends them."""
    dt = draw(st.datetimes(
        min_value=datetime(2000, 1, 1),
        max_value=datetime(2099, 12, 31),
        timezones=st.just(timezone.utc),
    ))
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")


@st.composite
def response_body_strategy(draw) -> dict:
    """Generate response documents with any combination of the known fields."""
    body: dict = {}
    if draw(st.booleans()):
        body["errorCode"] = draw(st.one_of(st.just(""), st.text(min_size=1, max_size=20)))
    if draw(st.booleans()):
        body["errorMessage"] = draw(st.text(max_size=50))
    if draw(st.booleans()):
        body["lastModified"] = draw(iso_timestamp_strategy())
    if draw(st.booleans()):
        body["appointmentTimestamps"] = draw(
            st.lists(iso_timestamp_strategy(), max_size=5)
        )
    return body


class TestClassifyProperty:
    """Classification always yields exactly one variant."""

    @given(body=response_body_strategy())
    @settings(max_examples=200)
    def test_classify_is_total(self, body: dict) -> None:
        result = classify(body)

        assert isinstance(result, (ErrorResult, EmptyResult, AvailableResult))
        assert result.kind in (ResultKind.ERROR, ResultKind.EMPTY, ResultKind.AVAILABLE)

        if body.get("errorCode"):
            assert isinstance(result, ErrorResult), "errorCode must take precedence"
            assert result.code == body["errorCode"]
        elif body.get("appointmentTimestamps"):
            assert isinstance(result, AvailableResult)
            assert list(result.timestamps) == body["appointmentTimestamps"]
        else:
            assert isinstance(result, EmptyResult)

    @given(body=response_body_strategy())
    @settings(max_examples=100)
    def test_available_implies_non_empty(self, body: dict) -> None:
        result = classify(body)
        if isinstance(result, AvailableResult):
            assert len(result.timestamps) > 0

    @given(body=response_body_strategy())
    @settings(max_examples=100)
    def test_json_text_and_dict_agree(self, body: dict) -> None:
        text = json.dumps(body)
        assert classify(text) == classify(body)
        assert classify(text.encode("utf-8")) == classify(body)

    def test_error_result_carries_message_and_last_modified(self) -> None:
        result = classify({
            "errorCode": "noAppointmentForThisDay",
            "errorMessage": "Kein Termin verfügbar",
            "lastModified": "2025-04-17T08:00:00Z",
            "appointmentTimestamps": ["2025-05-01T10:00:00Z"],
        })

        assert result == ErrorResult(
            code="noAppointmentForThisDay",
            message="Kein Termin verfügbar",
            last_modified="2025-04-17T08:00:00Z",
        )

    def test_error_without_last_modified(self) -> None:
        result = classify({"errorCode": "x"})
        assert isinstance(result, ErrorResult)
        assert result.message == ""
        assert result.last_modified is None

    def test_empty_timestamp_list_is_empty(self) -> None:
        assert isinstance(classify({"appointmentTimestamps": []}), EmptyResult)
        assert isinstance(classify("{}"), EmptyResult)

    @pytest.mark.parametrize("body", [
        "not json at all",
        "<html>Too many requests</html>",
        "[1, 2, 3]",
        "null",
        '{"appointmentTimestamps": "2025-05-01T10:00:00Z"}',
        b"\xff\xfe",
    ])
    def test_malformed_bodies_raise(self, body) -> None:
        with pytest.raises(MalformedResponseError) as exc_info:
            classify(body)
        assert exc_info.value.code == "malformed_response"

    def test_available_result_rejects_empty_tuple(self) -> None:
        with pytest.raises(ValueError):
            AvailableResult(timestamps=())


class TestFormatTimestampProperty:
    """Timestamp formatting is deterministic and never raises."""

    @given(raw=iso_timestamp_strategy())
    @settings(max_examples=200)
    def test_renders_in_berlin_time(self, raw: str) -> None:
        expected = (
            datetime.fromisoformat(raw.replace("Z", "+00:00"))
            .astimezone(ZoneInfo("Europe/Berlin"))
            .strftime("%d.%m.%Y %H:%M:%S")
        )
        assert format_timestamp(raw) == expected

    @given(raw=st.text(alphabet=string.ascii_letters + " -:./", max_size=30))
    @settings(max_examples=200)
    def test_text_without_digits_is_invalid_date(self, raw: str) -> None:
        assert format_timestamp(raw) == INVALID_DATE

    @given(raw=st.text(max_size=40))
    @settings(max_examples=200)
    def test_never_raises(self, raw: str) -> None:
        formatted = format_timestamp(raw)
        assert isinstance(formatted, str)

    @pytest.mark.parametrize("raw, expected", [
        ("2025-05-01T10:00:00Z", "01.05.2025 12:00:00"),
        ("2025-01-15T10:00:00Z", "15.01.2025 11:00:00"),
        ("2025-05-01T10:00:00+02:00", "01.05.2025 10:00:00"),
        ("2025-05-01T10:00:00", "01.05.2025 12:00:00"),
        ("2025-12-31T23:30:00Z", "01.01.2026 00:30:00"),
    ])
    def test_known_values(self, raw: str, expected: str) -> None:
        assert format_timestamp(raw) == expected

    def test_other_target_zone(self) -> None:
        assert format_timestamp("2025-05-01T10:00:00Z", "UTC") == "01.05.2025 10:00:00"

    def test_unknown_zone_degrades_to_sentinel(self) -> None:
        assert format_timestamp("2025-05-01T10:00:00Z", "Nowhere/Atlantis") == FORMATTING_ERROR

    @pytest.mark.parametrize("raw", [None, 12345, "", "Invalid date", "2025-13-45T99:99:99Z"])
    def test_unparsable_inputs(self, raw) -> None:
        assert format_timestamp(raw) == INVALID_DATE


class TestFormatCountdownProperty:
    """Countdown rendering as M:SS."""

    @given(seconds=st.integers(min_value=0, max_value=10_000))
    @settings(max_examples=200)
    def test_countdown_round_trips_to_seconds(self, seconds: int) -> None:
        text = format_countdown(seconds)
        minutes, secs = text.split(":")

        assert len(secs) == 2
        assert int(minutes) * 60 + int(secs) == seconds

    @pytest.mark.parametrize("seconds, expected", [
        (180, "3:00"),
        (179, "2:59"),
        (65, "1:05"),
        (9, "0:09"),
        (0, "0:00"),
        (-5, "0:00"),
    ])
    def test_known_values(self, seconds: int, expected: str) -> None:
        assert format_countdown(seconds) == expected
