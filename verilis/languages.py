"""Known target languages and soft validation against them."""
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

# The most widely used languages, keyed by the identifier that also names
# the snapshot file on disk.
DEFAULT_LANGUAGES: Mapping[str, str] = MappingProxyType({
    "en": "English",
    "zh-CN": "Chinese (Simplified)",
    "zh-TW": "Chinese (Traditional)",
    "es": "Spanish",
    "ar": "Arabic",
    "hi": "Hindi",
    "fr": "French",
    "ru": "Russian",
    "pt": "Portuguese",
    "id": "Indonesian",
    "de": "German",
    "ja": "Japanese",
    "bn": "Bengali",
    "ur": "Urdu",
    "tr": "Turkish",
    "it": "Italian",
    "ko": "Korean",
    "vi": "Vietnamese",
    "pl": "Polish",
    "nl": "Dutch",
    "th": "Thai",
})


def build_language_table(locales_list: Optional[List[Dict[str, str]]] = None) -> Mapping[str, str]:
    """
    Build the read-only language table used for a run.

    Entries from ``supported_locales`` in the configuration extend or override
    the defaults. Entries without both ``code`` and ``name`` are ignored.

    Args:
        locales_list: A list of ``{"code": ..., "name": ...}`` dictionaries.

    Returns:
        An immutable mapping of language id to display name.
    """
    table: Dict[str, str] = dict(DEFAULT_LANGUAGES)
    for locale in locales_list or []:
        code = locale.get('code')
        name = locale.get('name')
        if code and name:
            table[code] = name
    return MappingProxyType(table)


def language_code_to_name(language_code: str, language_table: Mapping[str, str]) -> Optional[str]:
    """Return the display name for a language id, or None if it is not in the table."""
    return language_table.get(language_code)


def display_name(language_code: str, language_table: Mapping[str, str]) -> str:
    """Display name sent to the provider; unknown ids are passed through as-is."""
    return language_code_to_name(language_code, language_table) or language_code


def find_unsupported_languages(languages: Iterable[str], language_table: Mapping[str, str]) -> List[str]:
    """Return the configured languages missing from the table, in configuration order."""
    return [lang for lang in languages if language_code_to_name(lang, language_table) is None]


def dedupe_languages(languages: Iterable[str]) -> List[str]:
    """Drop repeated language ids, keeping the first occurrence."""
    return list(dict.fromkeys(languages))
