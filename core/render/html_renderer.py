"""Markup renderer applying asset and text overrides."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping

from bs4 import NavigableString, ParserRejectedMarkup

from core.config.models import FallbackImageSettings
from core.render.models import (
    RenderOutput,
    SubstitutionLogEntry,
    SubstitutionReport,
    SubstitutionSummary,
)
from core.templates.placeholder_parser import (
    PLACEHOLDER_RE,
    apply_asset_overrides,
    apply_fallbacks,
    list_placeholders,
)
from core.templates.text_fragments import (
    iter_text_leaves,
    parse_markup,
    serialize_fragment,
    split_surrounding_whitespace,
)


def render(
    markup: str,
    asset_overrides: Mapping[str, str] | None = None,
    text_overrides: Mapping[str, str] | None = None,
    fallback: FallbackImageSettings | None = None,
) -> str:
    """Return the final renderable document for ``markup``."""

    return render_document(markup, asset_overrides, text_overrides, fallback).document


def render_document(
    markup: str,
    asset_overrides: Mapping[str, str] | None = None,
    text_overrides: Mapping[str, str] | None = None,
    fallback: FallbackImageSettings | None = None,
) -> RenderOutput:
    """Render markup and report every substitution.

    Steps:
    - tokens with an explicit asset override are replaced by its URL;
    - every remaining token becomes a fallback placeholder-image URL;
    - when text overrides exist, text leaves whose trimmed content equals a
      key get the override value, keeping their surrounding whitespace.

    Unmatched overrides are inert. Never raises for malformed markup.
    """

    asset_overrides = asset_overrides or {}
    text_overrides = text_overrides or {}

    placeholders = list_placeholders(markup)
    token_counts = Counter(match.group(0) for match in PLACEHOLDER_RE.finditer(markup))
    entries: list[SubstitutionLogEntry] = []

    document, replaced_tokens = apply_asset_overrides(markup, asset_overrides)
    for token in replaced_tokens:
        entries.append(
            SubstitutionLogEntry(
                status="asset_replaced",
                kind="asset",
                original_text=token,
                new_text=str(asset_overrides[token]),
                occurrences=token_counts[token],
            )
        )
    for token in asset_overrides:
        if token not in token_counts:
            entries.append(SubstitutionLogEntry(status="inert", kind="asset", original_text=token))

    remaining_counts = Counter(match.group(0) for match in PLACEHOLDER_RE.finditer(document))
    document, fallback_tokens = apply_fallbacks(document, fallback)
    for token in fallback_tokens:
        entries.append(
            SubstitutionLogEntry(
                status="asset_fallback",
                kind="asset",
                original_text=token,
                occurrences=remaining_counts[token],
            )
        )

    structural_pass = False
    text_replaced = 0
    if text_overrides:
        document, text_counts, structural_pass = _apply_text_overrides(document, text_overrides)
        for original, value in text_overrides.items():
            count = text_counts.get(original, 0)
            if count:
                text_replaced += count
                entries.append(
                    SubstitutionLogEntry(
                        status="text_replaced",
                        kind="text",
                        original_text=original,
                        new_text=value,
                        occurrences=count,
                    )
                )
            else:
                entries.append(
                    SubstitutionLogEntry(status="inert", kind="text", original_text=original)
                )

    summary = SubstitutionSummary(
        total_placeholders=len(placeholders),
        replaced_count=len(replaced_tokens),
        fallback_count=len(fallback_tokens),
        text_replaced_count=text_replaced,
        inert_count=sum(1 for entry in entries if entry.status == "inert"),
        structural_pass=structural_pass,
    )
    return RenderOutput(
        document=document,
        placeholders=placeholders,
        report=SubstitutionReport(entries=entries, summary=summary),
    )


def _apply_text_overrides(
    document: str, text_overrides: Mapping[str, str]
) -> tuple[str, Counter[str], bool]:
    try:
        root = parse_markup(document)
    except ParserRejectedMarkup:
        return document, Counter(), False

    counts: Counter[str] = Counter()
    for leaf in iter_text_leaves(root):
        leading, core, trailing = split_surrounding_whitespace(str(leaf))
        if not core or core not in text_overrides:
            continue
        leaf.replace_with(NavigableString(f"{leading}{text_overrides[core]}{trailing}"))
        counts[core] += 1

    return serialize_fragment(root), counts, True
