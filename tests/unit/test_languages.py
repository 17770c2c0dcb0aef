import pytest

from verilis.languages import (
    DEFAULT_LANGUAGES,
    build_language_table,
    dedupe_languages,
    display_name,
    find_unsupported_languages,
    language_code_to_name
)


def test_default_table_has_the_common_languages():
    assert DEFAULT_LANGUAGES["zh-CN"] == "Chinese (Simplified)"
    assert DEFAULT_LANGUAGES["de"] == "German"
    assert len(DEFAULT_LANGUAGES) == 21


def test_language_table_is_read_only():
    table = build_language_table()
    with pytest.raises(TypeError):
        table["xx"] = "Klingon"
    with pytest.raises(TypeError):
        DEFAULT_LANGUAGES["xx"] = "Klingon"


def test_configured_locales_extend_and_override_defaults():
    table = build_language_table([
        {"code": "pt-BR", "name": "Brazilian Portuguese"},
        {"code": "de", "name": "Deutsch"},
        {"code": "incomplete"},
    ])
    assert table["pt-BR"] == "Brazilian Portuguese"
    assert table["de"] == "Deutsch"
    assert "incomplete" not in table
    assert DEFAULT_LANGUAGES["de"] == "German"


def test_unknown_languages_are_flagged_not_rejected():
    table = build_language_table()
    assert find_unsupported_languages(["de", "tlh", "fr", "xx"], table) == ["tlh", "xx"]
    assert language_code_to_name("tlh", table) is None
    assert display_name("tlh", table) == "tlh"
    assert display_name("fr", table) == "French"


def test_dedupe_keeps_first_occurrence():
    assert dedupe_languages(["de", "fr", "de", "ja"]) == ["de", "fr", "ja"]
