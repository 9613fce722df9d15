"""
Plain-text rendering of the poll state for the terminal.
"""

from .formatter import format_countdown, format_timestamp
from .i18n import get_message
from .models import AvailableResult, ErrorResult, PollState


def render_result_lines(state: PollState, language: str, target_zone: str) -> list[str]:
    result = state.last_result
    if result is None:
        return []

    if isinstance(result, ErrorResult):
        lines = [get_message("display.error_heading", language), f"  {result.message}"]
        if result.last_modified:
            lines.append("  " + get_message(
                "display.last_modified",
                language,
                timestamp=format_timestamp(result.last_modified, target_zone),
            ))
        return lines

    if isinstance(result, AvailableResult):
        lines = [get_message("display.available_heading", language)]
        # Each timestamp is formatted on its own so one bad value
        # does not hide the others.
        lines.extend(f"  - {format_timestamp(ts, target_zone)}" for ts in result.timestamps)
        return lines

    return [get_message("display.no_appointments", language)]


def render_state(
    state: PollState,
    language: str = "en",
    target_zone: str = "Europe/Berlin",
) -> str:
    """
    Render the countdown, loading marker, error text and result block.

    The error text is passed through unchanged.
    """
    lines = [
        get_message("display.title", language),
        get_message(
            "display.next_check",
            language,
            countdown=format_countdown(state.seconds_until_next_poll),
        ),
    ]
    if state.is_loading:
        lines.append(get_message("display.loading", language))
    if state.last_error:
        lines.append(state.last_error)
    lines.extend(render_result_lines(state, language, target_zone))
    return "\n".join(lines)
