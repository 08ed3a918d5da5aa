from __future__ import annotations

from core.templates.text_fragments import (
    list_text_fragments,
    parse_markup,
    serialize_fragment,
    split_surrounding_whitespace,
)


def test_fragments_are_trimmed_distinct_and_in_document_order() -> None:
    markup = (
        "<section><h2>  Our Team  </h2><p>Meet us</p>"
        "<div><span>Our Team</span><b>x</b></div></section>"
    )

    assert list_text_fragments(markup) == ["Our Team", "Meet us"]


def test_fragments_skip_whitespace_only_and_single_character_leaves() -> None:
    markup = "<ul>\n  <li>A</li>\n  <li>Go</li>\n</ul>"

    assert list_text_fragments(markup) == ["Go"]


def test_fragments_exclude_script_style_and_comments() -> None:
    markup = (
        "<style>.a { color: red; }</style>"
        "<!-- hidden note -->"
        "<p>Visible copy</p>"
        "<script>console.log('hi there');</script>"
        "<template><p>Not yet</p></template>"
    )

    assert list_text_fragments(markup) == ["Visible copy"]


def test_fragments_of_empty_markup() -> None:
    assert list_text_fragments("") == []


def test_fragments_tolerate_malformed_markup() -> None:
    fragments = list_text_fragments("<div><p>Unclosed paragraph<div>Second</span>")

    assert "Unclosed paragraph" in fragments
    assert "Second" in fragments


def test_split_surrounding_whitespace() -> None:
    assert split_surrounding_whitespace("\n  Hello world \t") == ("\n  ", "Hello world", " \t")
    assert split_surrounding_whitespace("   ") == ("   ", "", "")
    assert split_surrounding_whitespace("tight") == ("", "tight", "")


def test_unclosed_paragraphs_yield_separate_fragments() -> None:
    assert list_text_fragments("<p>Hello<p>World") == ["Hello", "World"]


def test_serialize_fragment_drops_parser_wrappers() -> None:
    markup = '<section class="s"><h2>Tom &amp; Jerry</h2></section>'

    assert serialize_fragment(parse_markup(markup)) == markup
    assert serialize_fragment(parse_markup("")) == ""
