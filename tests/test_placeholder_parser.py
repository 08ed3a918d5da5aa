from __future__ import annotations

import pytest

from core.config.models import FallbackImageSettings
from core.templates.placeholder_parser import (
    apply_asset_overrides,
    apply_fallbacks,
    fallback_url,
    list_placeholders,
    make_placeholder,
    placeholder_name,
)


def test_list_placeholders_returns_distinct_tokens_in_first_seen_order() -> None:
    markup = (
        '<img src="{{ASSET_ID_HERO}}"><img src="{{ASSET_ID_LOGO}}">'
        '<div style="background:url({{ASSET_ID_HERO}})"></div>'
    )

    assert list_placeholders(markup) == ["{{ASSET_ID_HERO}}", "{{ASSET_ID_LOGO}}"]


def test_list_placeholders_handles_empty_and_token_free_markup() -> None:
    assert list_placeholders("") == []
    assert list_placeholders("<p>No assets here {{NOT_AN_ASSET}}</p>") == []


def test_list_placeholders_ignores_unclosed_tokens() -> None:
    assert list_placeholders("{{ASSET_ID_BROKEN} and {{ASSET_ID_}}") == []


def test_placeholder_name_round_trips_with_make_placeholder() -> None:
    token = make_placeholder("team photo 1")

    assert token == "{{ASSET_ID_team photo 1}}"
    assert placeholder_name(token) == "team photo 1"


def test_placeholder_name_rejects_partial_tokens() -> None:
    with pytest.raises(ValueError):
        placeholder_name("{{ASSET_ID_HERO}} trailing")


def test_fallback_url_uses_defaults_and_percent_encodes_name() -> None:
    assert fallback_url("HERO") == "https://placehold.co/800x600/1e293b/6366f1?text=HERO"
    assert fallback_url("a b/c") == "https://placehold.co/800x600/1e293b/6366f1?text=a%20b%2Fc"


def test_fallback_url_respects_settings() -> None:
    settings = FallbackImageSettings(
        host="img.example", width=10, height=20, background="000", foreground="fff"
    )

    assert fallback_url("X", settings) == "https://img.example/10x20/000/fff?text=X"


def test_asset_override_never_matches_a_longer_token_by_prefix() -> None:
    markup = "{{ASSET_ID_A}} {{ASSET_ID_AB}}"

    result, replaced = apply_asset_overrides(markup, {"{{ASSET_ID_A}}": "u1"})

    assert result == "u1 {{ASSET_ID_AB}}"
    assert replaced == ["{{ASSET_ID_A}}"]


def test_asset_override_inserts_values_literally() -> None:
    markup = '<img src="{{ASSET_ID_X}}">'
    value = r"https://cdn.example/a\1$&.png"

    result, _ = apply_asset_overrides(markup, {"{{ASSET_ID_X}}": value})

    assert result == f'<img src="{value}">'


def test_asset_override_keys_with_pattern_metacharacters_are_inert() -> None:
    markup = "{{ASSET_ID_X}}"

    result, replaced = apply_asset_overrides(markup, {"{{ASSET_ID_.*}}": "u", "(": "v"})

    assert result == markup
    assert replaced == []


def test_apply_fallbacks_resolves_every_remaining_token() -> None:
    markup = "{{ASSET_ID_A}}|{{ASSET_ID_B}}|{{ASSET_ID_A}}"

    result, resolved = apply_fallbacks(markup)

    assert "{{ASSET_ID_" not in result
    assert result.count("?text=A") == 2
    assert resolved == ["{{ASSET_ID_A}}", "{{ASSET_ID_B}}"]
