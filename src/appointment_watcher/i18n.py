"""
Internationalization (i18n) module for the appointment watcher.

Provides translations for all user-facing display strings in English (en),
German (de) and Russian (ru).
"""

from typing import Optional


SUPPORTED_LANGUAGES = frozenset({"en", "de", "ru"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    "display.title": {
        "en": "Checking available appointments",
        "de": "Prüfung verfügbarer Termine",
        "ru": "Проверка доступных записей",
    },
    "display.next_check": {
        "en": "Next check in: {countdown}",
        "de": "Nächste Prüfung in: {countdown}",
        "ru": "Следующая проверка через: {countdown}",
    },
    "display.loading": {
        "en": "Loading...",
        "de": "Wird geladen...",
        "ru": "Загрузка...",
    },
    "display.error_heading": {
        "en": "Error:",
        "de": "Fehler:",
        "ru": "Ошибка:",
    },
    "display.last_modified": {
        "en": "Last updated: {timestamp}",
        "de": "Zuletzt aktualisiert: {timestamp}",
        "ru": "Последнее обновление: {timestamp}",
    },
    "display.available_heading": {
        "en": "Available appointments:",
        "de": "Verfügbare Termine:",
        "ru": "Доступные записи:",
    },
    "display.no_appointments": {
        "en": "No available appointments.",
        "de": "Keine verfügbaren Termine.",
        "ru": "Нет доступных записей.",
    },

    "alert.body": {
        "en": "{count} appointment(s) available, first: {first}",
        "de": "{count} Termin(e) verfügbar, erster: {first}",
        "ru": "Доступно записей: {count}, первая: {first}",
    },

    "cli.watching": {
        "en": "Watching {url} via {count} relay(s), every {interval}s. Press Ctrl+C to stop.",
        "de": "Überwache {url} über {count} Relay(s), alle {interval}s. Strg+C zum Beenden.",
        "ru": "Наблюдение за {url} через {count} ретранслятор(а), каждые {interval} с. Ctrl+C для выхода.",
    },
    "cli.manual_hint": {
        "en": "Press Enter to check now.",
        "de": "Enter drücken, um sofort zu prüfen.",
        "ru": "Нажмите Enter, чтобы проверить сейчас.",
    },
    "cli.stopped": {
        "en": "Stopped.",
        "de": "Beendet.",
        "ru": "Остановлено.",
    },
    "cli.relay_ok": {
        "en": "OK    {relay} ({status}, {ms:.0f} ms)",
        "de": "OK    {relay} ({status}, {ms:.0f} ms)",
        "ru": "OK    {relay} ({status}, {ms:.0f} мс)",
    },
    "cli.relay_failed": {
        "en": "FAIL  {relay}: {reason}",
        "de": "FEHL  {relay}: {reason}",
        "ru": "ОШИБ  {relay}: {reason}",
    },
    "cli.config_invalid": {
        "en": "Invalid configuration:",
        "de": "Ungültige Konfiguration:",
        "ru": "Неверная конфигурация:",
    },
}


def get_message(key: str, language: str = DEFAULT_LANGUAGE, **kwargs) -> str:
    """
    Get a translated message by key.

    Falls back to the default language when the requested one is missing,
    and to the key itself when the message is unknown.

    Args:
        key: Message key (e.g. 'display.loading')
        language: Language code
        **kwargs: Format parameters for the message
    """
    if language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language) or translations.get(DEFAULT_LANGUAGE, key)

    if kwargs:
        try:
            return message.format(**kwargs)
        except (KeyError, IndexError, ValueError):
            return message
    return message


def has_translation(key: str, language: str) -> bool:
    """Check if a translation exists for a key in a specific language."""
    return language in TRANSLATIONS.get(key, {})


def get_missing_translations(language: Optional[str] = None) -> dict[str, list[str]]:
    """
    Find keys with missing translations.

    Returns:
        Mapping of language to the list of keys lacking a translation
    """
    languages = [language] if language else sorted(SUPPORTED_LANGUAGES)
    missing: dict[str, list[str]] = {}
    for lang in languages:
        keys = [key for key, values in TRANSLATIONS.items() if lang not in values]
        if keys:
            missing[lang] = keys
    return missing
