"""
Property-based tests for the configuration module.

Covers JSON serialization, validation, file loading and the environment
overlay (including ``.env`` files read through python-dotenv).
"""

import json
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from appointment_watcher.config import (
    DEFAULT_RELAYS,
    AlertConfig,
    DiscordConfig,
    EndpointConfig,
    LoggingConfig,
    NotificationConfig,
    PollerConfig,
    RelayConfig,
    RetryConfig,
    SystemConfig,
    TelegramConfig,
    WebhookConfig,
    config_from_dict,
    config_to_dict,
    load_config_from_env,
    load_config_from_file,
    parse_relays,
    save_config_to_file,
    validate_config,
)
from appointment_watcher.exceptions import ConfigError


ENV_NAMES = (
    "WATCHER_RELAYS", "WATCHER_HTTP_TIMEOUT", "WATCHER_BASE_URL", "WATCHER_DATE",
    "WATCHER_OFFICE_ID", "WATCHER_SERVICE_ID", "WATCHER_SERVICE_COUNT",
    "WATCHER_INTERVAL_SECONDS", "WATCHER_ALERT_POLICY", "WATCHER_SOUND",
    "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "DISCORD_WEBHOOK_URL", "WEBHOOK_URL",
    "WATCHER_LANG", "WATCHER_LOG_LEVEL", "WATCHER_LOG_FORMAT",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove watcher variables; anything a .env file adds is undone afterwards."""
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


# Strategies for generating valid configuration objects

relay_strategy = st.sampled_from(DEFAULT_RELAYS + [
    "https://relay.example/fetch?url=",
    "http://localhost:8080/",
])

token_text = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789:_-"),
    min_size=1,
    max_size=30,
)


@st.composite
def notification_config_strategy(draw) -> NotificationConfig:
    return NotificationConfig(
        console=draw(st.booleans()),
        telegram=draw(st.one_of(st.none(), st.builds(
            TelegramConfig, bot_token=token_text, chat_id=token_text,
        ))),
        discord=draw(st.one_of(st.none(), token_text.map(
            lambda s: DiscordConfig(webhook_url=f"https://discord.example/api/webhooks/{s}")
        ))),
        webhook=draw(st.one_of(st.none(), token_text.map(
            lambda s: WebhookConfig(url=f"https://hooks.example/{s}", headers={"X-Key": s})
        ))),
    )


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    base_delay = draw(st.floats(min_value=0.1, max_value=5.0))
    return SystemConfig(
        endpoint=EndpointConfig(
            date=draw(st.sampled_from(["Invalid date", "2025-05-01"])),
            office_id=draw(st.integers(min_value=1, max_value=99999999).map(str)),
            service_id=draw(st.integers(min_value=1, max_value=99999999).map(str)),
            service_count=draw(st.integers(min_value=1, max_value=5)),
        ),
        relay=RelayConfig(
            relays=draw(st.lists(relay_strategy, min_size=1, max_size=4, unique=True)),
            timeout_seconds=draw(st.floats(min_value=1.0, max_value=60.0)),
        ),
        poller=PollerConfig(interval_seconds=draw(st.integers(min_value=1, max_value=3600))),
        alert=AlertConfig(
            policy=draw(st.sampled_from(["level", "edge"])),
            sound=draw(st.booleans()),
        ),
        retry=RetryConfig(
            max_retries=draw(st.integers(min_value=0, max_value=5)),
            base_delay_seconds=base_delay,
            max_delay_seconds=draw(st.floats(min_value=base_delay, max_value=60.0)),
        ),
        notifications=draw(notification_config_strategy()),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
        language=draw(st.sampled_from(["en", "de", "ru"])),
    )


class TestConfigurationRoundTripProperty:
    """A configuration survives serialization to JSON and back."""

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_config_round_trip_preserves_data(self, config: SystemConfig) -> None:
        text = json.dumps(config_to_dict(config))
        assert config_from_dict(json.loads(text)) == config

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_generated_configs_are_valid(self, config: SystemConfig) -> None:
        assert validate_config(config) == []


class TestConfigDefaults:
    """Defaults match the municipal endpoint and three public relays."""

    def test_defaults(self) -> None:
        config = SystemConfig()

        assert config.relay.relays == DEFAULT_RELAYS
        assert config.relay.relays[0] == "https://corsproxy.io/?"
        assert config.poller.interval_seconds == 180
        assert config.alert.policy == "level"
        assert config.alert.title == "You have a new message!"
        assert config.notifications.console is True
        assert validate_config(config) == []

    def test_empty_document_gives_defaults(self) -> None:
        assert config_from_dict({}) == SystemConfig()

    def test_relay_lists_are_not_shared(self) -> None:
        first, second = SystemConfig(), SystemConfig()
        first.relay.relays.append("https://extra.example/?")
        assert second.relay.relays == DEFAULT_RELAYS

    def test_disabled_channel_is_ignored(self) -> None:
        config = config_from_dict({
            "notifications": {"telegram": {"enabled": False, "bot_token": "t", "chat_id": "1"}},
        })
        assert config.notifications.telegram is None

    @pytest.mark.parametrize("data", [
        {"endpoint": "not a section"},
        {"poller": {"interval_seconds": "often"}},
        {"relay": {"timeout_seconds": [1, 2]}},
    ])
    def test_wrong_shape_raises(self, data: dict) -> None:
        with pytest.raises(ConfigError) as exc_info:
            config_from_dict(data)
        assert exc_info.value.code == "config_error"


class TestValidateConfig:
    """validate_config lists every problem it finds."""

    @pytest.mark.parametrize("mutate, fragment", [
        (lambda c: setattr(c.relay, "relays", []), "No relays configured"),
        (lambda c: setattr(c.relay, "relays", ["ftp://relay.example/"]), "http(s) URL prefix"),
        (lambda c: setattr(c.poller, "interval_seconds", 0), "Poll interval"),
        (lambda c: setattr(c.poller, "tick_seconds", 0), "Tick length"),
        (lambda c: setattr(c.relay, "timeout_seconds", -1), "timeout"),
        (lambda c: setattr(c.alert, "policy", "sometimes"), "Unknown alert policy"),
        (lambda c: setattr(c, "language", "fr"), "Unsupported language"),
        (lambda c: setattr(c.logging, "level", "trace"), "Unknown log level"),
        (lambda c: setattr(c.logging, "output_format", "xml"), "Unknown log output format"),
        (lambda c: setattr(c.endpoint, "service_count", 0), "service_count"),
        (lambda c: setattr(c.endpoint, "base_url", "file:///etc/passwd"), "Endpoint base URL"),
        (lambda c: setattr(c.relay, "relays", ["https://[bad/?"]), "http(s) URL prefix"),
        (lambda c: setattr(c.endpoint, "base_url", "https://[bad"), "Endpoint base URL"),
    ])
    def test_single_problem_reported(self, mutate, fragment: str) -> None:
        config = SystemConfig()
        mutate(config)

        problems = validate_config(config)

        assert len(problems) == 1
        assert fragment in problems[0]

    def test_multiple_problems_reported(self) -> None:
        config = SystemConfig(language="xx")
        config.poller.interval_seconds = 0
        assert len(validate_config(config)) == 2


class TestParseRelays:

    @pytest.mark.parametrize("raw, expected", [
        ("", []),
        ("https://a.example/?", ["https://a.example/?"]),
        ("https://a.example/?, https://b.example/?", ["https://a.example/?", "https://b.example/?"]),
        ("https://a.example/?;https://b.example/? https://a.example/?", ["https://a.example/?", "https://b.example/?"]),
        ("https://a.example/? #https://disabled.example/", ["https://a.example/?"]),
    ])
    def test_parse(self, raw: str, expected: list[str]) -> None:
        assert parse_relays(raw) == expected

    @given(relays=st.lists(relay_strategy, max_size=6))
    @settings(max_examples=100)
    def test_order_kept_and_duplicates_dropped(self, relays: list[str]) -> None:
        parsed = parse_relays(", ".join(relays))
        assert parsed == list(dict.fromkeys(relays))


class TestConfigFiles:

    def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        assert load_config_from_file(tmp_path / "nope.json") is None

    def test_save_then_load(self, tmp_path: Path) -> None:
        config = SystemConfig(language="de")
        config.notifications.discord = DiscordConfig(webhook_url="https://discord.example/x")
        path = tmp_path / "nested" / "config.json"

        assert save_config_to_file(config, path) is True
        assert load_config_from_file(path) == config

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]", '"text"'])
    def test_unreadable_file_raises(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "config.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_config_from_file(path)
        assert exc_info.value.details["path"] == str(path)


class TestEnvironmentOverlay:
    """Environment variables and .env files override the base configuration."""

    def test_no_variables_keeps_base(self, clean_env, tmp_path: Path) -> None:
        base = SystemConfig(language="de")
        config = load_config_from_env(base=base, dotenv_path=tmp_path / "missing.env")

        assert config == base
        assert config is not base

    def test_variables_applied(self, clean_env, tmp_path: Path) -> None:
        clean_env.setenv("WATCHER_RELAYS", "https://one.example/?, https://two.example/?")
        clean_env.setenv("WATCHER_INTERVAL_SECONDS", "60")
        clean_env.setenv("WATCHER_ALERT_POLICY", "EDGE")
        clean_env.setenv("WATCHER_SOUND", "0")
        clean_env.setenv("WATCHER_OFFICE_ID", "42")
        clean_env.setenv("WATCHER_LANG", "ru")
        clean_env.setenv("WATCHER_LOG_LEVEL", "DEBUG")

        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")

        assert config.relay.relays == ["https://one.example/?", "https://two.example/?"]
        assert config.poller.interval_seconds == 60
        assert config.alert.policy == "edge"
        assert config.alert.sound is False
        assert config.endpoint.office_id == "42"
        assert config.language == "ru"
        assert config.logging.level == "debug"

    def test_invalid_numbers_fall_back(self, clean_env, tmp_path: Path) -> None:
        clean_env.setenv("WATCHER_INTERVAL_SECONDS", "soon")
        clean_env.setenv("WATCHER_HTTP_TIMEOUT", "")

        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")

        assert config.poller.interval_seconds == 180
        assert config.relay.timeout_seconds == 15.0

    def test_telegram_needs_token_and_chat(self, clean_env, tmp_path: Path) -> None:
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")
        assert config.notifications.telegram is None

        clean_env.setenv("TELEGRAM_CHAT_ID", "99")
        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")
        assert config.notifications.telegram == TelegramConfig(bot_token="123:abc", chat_id="99")

    def test_dotenv_file_is_read(self, clean_env, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "WATCHER_INTERVAL_SECONDS=90\n"
            "DISCORD_WEBHOOK_URL=https://discord.example/api/webhooks/1/t\n",
            encoding="utf-8",
        )

        config = load_config_from_env(dotenv_path=env_file)

        assert config.poller.interval_seconds == 90
        assert config.notifications.discord == DiscordConfig(
            webhook_url="https://discord.example/api/webhooks/1/t"
        )

    def test_process_environment_wins_over_dotenv(self, clean_env, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("WATCHER_INTERVAL_SECONDS=90\n", encoding="utf-8")
        clean_env.setenv("WATCHER_INTERVAL_SECONDS", "30")

        config = load_config_from_env(dotenv_path=env_file)

        assert config.poller.interval_seconds == 30
