"""Translated interface strings for page templates."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .logging import get_logger

logger = get_logger("i18n")

LOCALE_SUFFIXES = (".yml", ".yaml")

# Shipped English strings; locale files and config overrides are merged over them.
DEFAULT_STRINGS: Dict[str, str] = {
    "search_placeholder": "Search...",
    "on_this_page": "On this page",
    "previous": "Previous",
    "next": "Next",
    "language": "Language",
    "skip_to_content": "Skip to content",
    "page_not_found": "Page not found",
    "back_to_home": "Back to home",
    "fallback_notice": "This page is not yet available in your language.",
}


class LocaleStrings:
    """Per-locale string tables with default-locale fallback.

    A lookup for locale X resolves, from lowest to highest priority:
    the shipped defaults, the default locale's table, then X's table.
    Tables come from `<locales_dir>/<locale>.yml` files and from
    `language.strings` in sitegen.yml, the latter winning.
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Mapping[str, str]]] = None,
        default_locale: str = "en",
    ) -> None:
        self.default_locale = default_locale
        self._tables: Dict[str, Dict[str, str]] = {
            locale: dict(table) for locale, table in (tables or {}).items()
        }

    @classmethod
    def load(
        cls,
        locales_dir: Path,
        default_locale: str = "en",
        overrides: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> "LocaleStrings":
        tables: Dict[str, Dict[str, str]] = {}
        if locales_dir.is_dir():
            for path in sorted(locales_dir.iterdir()):
                if path.suffix.lower() not in LOCALE_SUFFIXES or not path.is_file():
                    continue
                table = _read_table(path)
                if table is not None:
                    tables.setdefault(path.stem, {}).update(table)
                    logger.debug("Loaded %d string(s) for locale %s", len(table), path.stem)
        for locale, table in (overrides or {}).items():
            tables.setdefault(locale, {}).update(table)
        if tables:
            logger.info("Loaded interface strings for %d locale(s)", len(tables))
        return cls(tables, default_locale)

    @property
    def locales(self) -> List[str]:
        return sorted(self._tables)

    def has_locale(self, locale: str) -> bool:
        return locale in self._tables

    def strings_for(self, locale: str) -> Dict[str, str]:
        strings = dict(DEFAULT_STRINGS)
        strings.update(self._tables.get(self.default_locale, {}))
        if locale != self.default_locale:
            strings.update(self._tables.get(locale, {}))
        return strings

    def get(self, key: str, locale: str) -> str:
        """Translated `key`, or the key itself when no table defines it."""
        return self.strings_for(locale).get(key, key)

    def placeholders(self, locale: str) -> Dict[str, str]:
        """`I18N_<KEY>` names for plain-text substitution outside Jinja."""
        return {f"I18N_{key.upper()}": value for key, value in self.strings_for(locale).items()}

    def translator(self, locale: str) -> "Translator":
        return Translator(self.strings_for(locale))


class Translator:
    """Template helper: ``t("next")`` or ``t("greeting", name=page.title)``."""

    def __init__(self, strings: Mapping[str, str]) -> None:
        self._strings = dict(strings)

    def __call__(self, key: str, default: Optional[str] = None, **values: Any) -> str:
        text = self._strings.get(key, default if default is not None else key)
        if values:
            try:
                return text.format(**values)
            except (KeyError, IndexError, ValueError):
                logger.warning("Could not format string %r with %s", key, sorted(values))
        return text


def _read_table(path: Path) -> Optional[Dict[str, str]]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to load locale file %s: %s", path.name, exc)
        return None
    if data is None:
        return {}
    if isinstance(data, dict) and isinstance(data.get("strings"), dict):
        data = data["strings"]
    if not isinstance(data, dict):
        logger.warning("Locale file %s must contain a mapping; skipping", path.name)
        return None
    return {str(key): str(value) for key, value in data.items() if value is not None}


__all__ = ["DEFAULT_STRINGS", "LocaleStrings", "Translator"]
