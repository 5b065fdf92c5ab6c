"""Locale tables: relay framing templates and name translations.

Templates use ``str.format`` fields:

- ``relay`` / ``generic``: ``{group}``, ``{sender}``, ``{message}``
- ``confirm_number`` / ``confirm_name``: ``{target}``
- ``not_found``: ``{name}``

Extra locales, or extra names for the built-in ones, come from a JSON file
shaped like ``{"bn": {"names": {"RAFI": "রাফি"}}, "fr": {...}}``. Fields a
file leaves out are taken from the built-in table of the same language, or
from English for a new language.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("herald.locale")

DEFAULT_LANGUAGE = "en"

NOT_FOUND_NOTICE = (
    "I couldn't find a phone number for {name}. "
    "Make sure they have chatted with me before."
)


class LocaleTable(BaseModel):
    language: str
    relay: str
    generic: str
    confirm_number: str
    confirm_name: str
    not_found: str = NOT_FOUND_NOTICE
    greeting: str
    group_fallback: str
    names: dict[str, str] = Field(default_factory=dict)

    def translate_name(self, name: str) -> str:
        """Dictionary translation, keyed case-insensitively; unknown names pass through."""
        if not name:
            return name
        return self.names.get(name.strip().upper(), name)


BENGALI = LocaleTable(
    language="bn",
    relay='{group} থেকে {sender} আপনাকে এই বার্তা পাঠাতে বলেছে:\n\n"{message}"',
    generic='{group} থেকে {sender} আপনাকে বলেছে:\n\n"{message}"',
    confirm_number="✅ মেসেজ পাঠানো হয়েছে: {target} নম্বরে আপনার বার্তা পৌঁছে গেছে",
    confirm_name="✅ বার্তা পাঠানো হয়েছে: {target} কে আপনার বার্তা পৌঁছে গেছে",
    greeting="হ্যালো",
    group_fallback="একটি গ্রুপ",
    names={
        "SIHAB": "শিহাব",
        "SIHAB BHAI": "শিহাব ভাই",
        "RAHIM": "রহিম",
        "RAHIM KHAN": "রহিম খান",
        "KARIM": "করিম",
        "JOHN": "জন",
        "SARAH": "সারা",
        "ADMIN": "অ্যাডমিন",
        "BHAI": "ভাই",
        "AUNTIE": "আন্টি",
        "UNCLE": "আংকেল",
        "SIR": "স্যার",
        "MADAM": "ম্যাডাম",
    },
)

ENGLISH = LocaleTable(
    language="en",
    relay='{sender} from {group} asked me to pass this on to you:\n\n"{message}"',
    generic='{sender} from {group} told you:\n\n"{message}"',
    confirm_number="✅ Message sent: your message reached {target}",
    confirm_name="✅ Message sent: your message reached {target}",
    greeting="Hello",
    group_fallback="a group",
)

BUILTIN_LOCALES = {"bn": BENGALI, "en": ENGLISH}


def load_locales(locale_file: Optional[str] = None) -> dict[str, LocaleTable]:
    """Built-in tables, extended by ``locale_file`` when given.

    A missing or malformed file is logged and ignored.
    """
    locales = {lang: table.model_copy(deep=True) for lang, table in BUILTIN_LOCALES.items()}
    if not locale_file:
        return locales

    path = Path(locale_file)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read locale file {path}: {e}")
        return locales
    if not isinstance(data, dict):
        logger.warning(f"Locale file {path} must hold a JSON object")
        return locales

    for lang, overrides in data.items():
        if not isinstance(overrides, dict):
            logger.warning(f"Skipping locale '{lang}': expected an object")
            continue
        base = locales.get(lang) or locales[DEFAULT_LANGUAGE]
        merged = base.model_dump()
        extra_names = {str(k).upper(): v for k, v in (overrides.get("names") or {}).items()}
        merged.update({k: v for k, v in overrides.items() if k != "names"})
        merged["names"] = {**(merged.get("names") or {}), **extra_names} if lang in locales else extra_names
        merged["language"] = lang
        try:
            locales[lang] = LocaleTable.model_validate(merged)
        except ValueError as e:
            logger.warning(f"Skipping locale '{lang}': {e}")
    logger.info(f"Loaded locales: {', '.join(sorted(locales))}")
    return locales


def pick_locale(locales: dict[str, LocaleTable], language: str) -> LocaleTable:
    return locales.get(language) or locales.get(DEFAULT_LANGUAGE) or ENGLISH
