"""
Command-line interface for the appointment watcher.

Commands:
- watch: poll the availability endpoint until interrupted (or once)
- check-relays: report which relays currently forward requests
- config: configuration management
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, TextIO

from . import __version__
from .alerts import AlertDispatcher, SilentCue, TerminalBell, TerminalTitleMarker
from .config import (
    SystemConfig,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
    validate_config,
)
from .display import render_state
from .enums import AlertPolicy, LogLevel
from .event_log import EventLogger
from .exceptions import ConfigError
from .formatter import format_countdown
from .i18n import SUPPORTED_LANGUAGES, get_message
from .models import PollState, PollTarget
from .notifications import (
    ConsoleChannel,
    DiscordChannel,
    NotificationRouter,
    TelegramChannel,
    WebhookChannel,
)
from .poller import AvailabilityPoller
from .relay_requester import RelayRequester


DEFAULT_CONFIG_PATH = Path.home() / ".appointment_watcher" / "config.json"


def create_notification_router(
    config: SystemConfig,
    logger: Optional[EventLogger] = None,
    stream: Optional[TextIO] = None,
) -> NotificationRouter:
    """Create a notification router with every configured channel registered."""
    notifications = config.notifications
    router = NotificationRouter(retry_config=config.retry, logger=logger)

    if notifications.console:
        router.register_channel(ConsoleChannel(stream=stream))
    if notifications.telegram:
        router.register_channel(TelegramChannel(config=notifications.telegram))
    if notifications.discord:
        router.register_channel(DiscordChannel(config=notifications.discord))
    if notifications.webhook:
        router.register_channel(WebhookChannel(config=notifications.webhook))

    return router


def create_dispatcher(
    config: SystemConfig,
    logger: Optional[EventLogger] = None,
    stream: Optional[TextIO] = None,
) -> AlertDispatcher:
    """Create the alert dispatcher for a configuration."""
    return AlertDispatcher(
        router=create_notification_router(config, logger, stream),
        audio=TerminalBell(stream) if config.alert.sound else SilentCue(),
        marker=TerminalTitleMarker(stream),
        policy=AlertPolicy(config.alert.policy),
        title=config.alert.title,
        marker_title=config.alert.marker_title,
        language=config.language,
        logger=logger,
    )


def create_target(config: SystemConfig) -> PollTarget:
    return PollTarget.for_endpoint(config.endpoint, config.relay.relays)


class TerminalView:
    """
    Prints the poll state.

    Countdown-only changes rewrite the countdown line in place; every other
    change prints the full state block.
    """

    def __init__(self, language: str, stream: Optional[TextIO] = None) -> None:
        self._language = language
        self._stream = stream or sys.stdout
        self._previous: Optional[PollState] = None

    def update(self, state: PollState) -> None:
        if self._previous is not None and self._only_countdown_changed(state):
            line = get_message(
                "display.next_check",
                self._language,
                countdown=format_countdown(state.seconds_until_next_poll),
            )
            self._stream.write(f"\r{line}   ")
        else:
            if self._previous is not None:
                self._stream.write("\n")
            self._stream.write(render_state(state, self._language) + "\n")
        self._stream.flush()
        self._previous = state

    def _only_countdown_changed(self, state: PollState) -> bool:
        previous = replace(self._previous, seconds_until_next_poll=state.seconds_until_next_poll)
        return previous == state


def attach_manual_trigger(
    poller: AvailabilityPoller,
    input_stream: TextIO,
    logger: Optional[EventLogger] = None,
) -> Optional[Callable[[], None]]:
    """
    Dispatch a poll whenever a line is entered on ``input_stream``.

    Returns:
        A function that detaches the trigger, or None if the running loop
        cannot watch the stream (e.g. the Windows proactor loop)
    """
    loop = asyncio.get_running_loop()

    def on_input() -> None:
        if not input_stream.readline():
            loop.remove_reader(input_stream)
            return
        if poller.is_running:
            poller.dispatch_poll()

    try:
        loop.add_reader(input_stream, on_input)
    except (NotImplementedError, ValueError, OSError) as e:
        if logger is not None:
            logger.log(LogLevel.DEBUG, "CLI", "Manual check unavailable", {"error": str(e)})
        return None
    return lambda: loop.remove_reader(input_stream)


def resolve_config(
    config_path: Optional[str],
    language: Optional[str] = None,
    interval: Optional[int] = None,
) -> SystemConfig:
    """
    Load the configuration file (if any), overlay the environment and
    command-line overrides, and validate the result.

    Raises:
        ConfigError: If the file is unreadable or the result is invalid
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    config = load_config_from_file(path)
    if config is None and config_path:
        raise ConfigError(f"Configuration file not found: {path}")

    config = load_config_from_env(base=config)
    if language:
        config.language = language
    if interval is not None:
        config.poller.interval_seconds = interval

    problems = validate_config(config)
    if problems:
        raise ConfigError("; ".join(problems), details={"problems": problems})
    return config


def _create_logger(config: SystemConfig, verbose: bool) -> EventLogger:
    min_level = LogLevel.DEBUG if verbose else LogLevel(config.logging.level)
    return EventLogger(output_format=config.logging.output_format, min_level=min_level)


async def watch(
    config: SystemConfig,
    logger: EventLogger,
    stream: Optional[TextIO] = None,
    input_stream: Optional[TextIO] = None,
) -> int:
    """
    Poll until cancelled.

    A line entered on ``input_stream`` triggers an immediate check.
    """
    out = stream or sys.stdout
    target = create_target(config)
    out.write(get_message(
        "cli.watching",
        config.language,
        url=target.url,
        count=len(target.relays),
        interval=config.poller.interval_seconds,
    ) + "\n")

    dispatcher = create_dispatcher(config, logger, out)
    view = TerminalView(config.language, out)

    async with RelayRequester.from_config(config.relay, logger=logger) as requester:
        poller = AvailabilityPoller(
            target=target,
            requester=requester,
            dispatcher=dispatcher,
            interval_seconds=config.poller.interval_seconds,
            tick_seconds=config.poller.tick_seconds,
            logger=logger,
        )
        detach = None
        if input_stream is not None:
            detach = attach_manual_trigger(poller, input_stream, logger)
            if detach is not None:
                out.write(get_message("cli.manual_hint", config.language) + "\n")
        handle = poller.start(view.update)
        try:
            await handle.wait()
        finally:
            if detach is not None:
                detach()
            handle.cancel()
            await dispatcher.drain()
    return 0


async def watch_once(config: SystemConfig, logger: EventLogger, stream: Optional[TextIO] = None) -> int:
    """
    Run a single poll cycle and print the result.

    Returns:
        0 if appointments are available, 1 otherwise
    """
    out = stream or sys.stdout
    dispatcher = create_dispatcher(config, logger, out)

    async with RelayRequester.from_config(config.relay, logger=logger) as requester:
        poller = AvailabilityPoller(
            target=create_target(config),
            requester=requester,
            dispatcher=dispatcher,
            interval_seconds=config.poller.interval_seconds,
            logger=logger,
        )
        await poller.poll_once()
        await dispatcher.drain()

    state = poller.state
    out.write(render_state(state, config.language) + "\n")
    return 0 if state.has_slots else 1


async def check_relays(config: SystemConfig, logger: EventLogger, stream: Optional[TextIO] = None) -> int:
    """
    Probe every relay once.

    Returns:
        0 if at least one relay works, 1 otherwise
    """
    out = stream or sys.stdout
    async with RelayRequester.from_config(config.relay, logger=logger) as requester:
        attempts = await requester.probe_relays(create_target(config))

    for attempt in attempts:
        if attempt.success:
            out.write(get_message(
                "cli.relay_ok",
                config.language,
                relay=attempt.relay,
                status=attempt.status_code,
                ms=attempt.response_time_ms,
            ) + "\n")
        else:
            out.write(get_message(
                "cli.relay_failed",
                config.language,
                relay=attempt.relay,
                reason=attempt.reason,
            ) + "\n")

    return 0 if any(a.success for a in attempts) else 1


def _report_config_error(error: ConfigError, language: str) -> int:
    print(get_message("cli.config_invalid", language), file=sys.stderr)
    for problem in error.details.get("problems", [error.message]):
        print(f"  - {problem}", file=sys.stderr)
    return 2


def cmd_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command."""
    try:
        config = resolve_config(args.config, args.language, args.interval)
    except ConfigError as e:
        return _report_config_error(e, args.language or "en")

    logger = _create_logger(config, args.verbose)

    if args.once:
        return asyncio.run(watch_once(config, logger))

    try:
        keys = sys.stdin if sys.stdin is not None and sys.stdin.isatty() else None
        return asyncio.run(watch(config, logger, input_stream=keys))
    except KeyboardInterrupt:
        print("\n" + get_message("cli.stopped", config.language))
        return 0


def cmd_check_relays(args: argparse.Namespace) -> int:
    """Handle the 'check-relays' command."""
    try:
        config = resolve_config(args.config, args.language)
    except ConfigError as e:
        return _report_config_error(e, args.language or "en")

    return asyncio.run(check_relays(config, _create_logger(config, args.verbose)))


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = SystemConfig(language=args.language or "en")
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        print(f"Error: Could not write configuration to {config_path}", file=sys.stderr)
        return 1

    try:
        config = load_config_from_file(config_path)
    except ConfigError as e:
        return _report_config_error(e, args.language or "en")

    if config is None:
        print(f"No configuration found at: {config_path}")
        print("Use 'config init' to create a default configuration.")
        return 1

    if args.action == "show":
        channels = [ch.get_name() for ch in create_notification_router(config).channels]
        print(f"Configuration from: {config_path}")
        print(f"  Endpoint: {create_target(config).url}")
        print(f"  Relays: {', '.join(config.relay.relays) or '(none)'}")
        print(f"  Interval: {config.poller.interval_seconds}s")
        print(f"  Alert policy: {config.alert.policy}")
        print(f"  Channels: {', '.join(channels) or '(none)'}")
        print(f"  Language: {config.language}")
        print(f"  Log level: {config.logging.level}")
        return 0

    problems = validate_config(config)
    if problems:
        return _report_config_error(
            ConfigError("; ".join(problems), details={"problems": problems}),
            config.language,
        )
    print(f"Configuration at {config_path} is valid.")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    languages = sorted(SUPPORTED_LANGUAGES)

    parser = argparse.ArgumentParser(
        prog="appointment-watcher",
        description="Watch an appointment endpoint through forwarding relays and alert on free slots",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    watch_parser = subparsers.add_parser(
        "watch",
        help="Poll for free appointments until interrupted",
    )
    watch_parser.add_argument(
        "--once",
        action="store_true",
        help="Poll a single time and exit (exit code 0 if slots are available)",
    )
    watch_parser.add_argument(
        "--interval", "-i",
        type=int,
        help="Seconds between polls (default: 180)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    relays_parser = subparsers.add_parser(
        "check-relays",
        help="Probe every configured relay once",
    )
    relays_parser.set_defaults(func=cmd_check_relays)

    for sub in (watch_parser, relays_parser):
        sub.add_argument(
            "--config", "-c",
            help="Path to configuration file",
        )
        sub.add_argument(
            "--language", "-l",
            choices=languages,
            help="Output language",
        )
        sub.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Enable debug logging",
        )

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.add_argument(
        "--language", "-l",
        choices=languages,
        help="Default language for new configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
