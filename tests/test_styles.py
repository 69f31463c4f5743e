"""
Tests for the style catalog.
"""

import pytest

from chatrelay.styles import BASE_INSTRUCTION, DEFAULT_STYLES, StyleCatalog


def test_known_styles_resolve():
    catalog = StyleCatalog()
    for key, text in DEFAULT_STYLES.items():
        assert catalog.instruction_for(key) == text


@pytest.mark.parametrize("style", ["poetic", "", None, "EXPLAIN", ["creative"], {"a": 1}, 7])
def test_unknown_style_falls_back_to_default(style):
    catalog = StyleCatalog()
    assert catalog.instruction_for(style) == catalog.instruction_for("explain")


def test_system_instruction_prefix():
    catalog = StyleCatalog()
    assert catalog.system_instruction("creative") == f"{BASE_INSTRUCTION} {DEFAULT_STYLES['creative']}"
    assert catalog.system_instruction("nope").startswith("You are a helpful assistant. ")


def test_from_config_overrides_table():
    catalog = StyleCatalog.from_config({
        "styles": {"default": "terse", "instructions": {"terse": "Be brief.", "loud": "SHOUT."}},
    })
    assert catalog.keys() == ["terse", "loud"]
    assert catalog.instruction_for("missing") == "Be brief."


def test_from_config_without_section_uses_builtins():
    catalog = StyleCatalog.from_config({})
    assert catalog.default == "explain"
    assert set(catalog.keys()) == {"explain", "deterministic", "creative"}


def test_default_must_exist():
    with pytest.raises(ValueError):
        StyleCatalog({"a": "x"}, default="b")
