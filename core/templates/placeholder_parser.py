"""Asset placeholder scanner for generated markup.

Supported placeholder format is exactly ``{{ASSET_ID_<name>}}`` where
``<name>`` is any run of characters other than ``}``. Tokens are always
matched as complete bracketed units.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from urllib.parse import quote

from core.config.models import FallbackImageSettings

PLACEHOLDER_RE = re.compile(r"\{\{ASSET_ID_([^}]+)\}\}")
_TOKEN_PREFIX = "{{ASSET_ID_"
_TOKEN_SUFFIX = "}}"


def list_placeholders(markup: str) -> list[str]:
    """Return distinct placeholder tokens in first-seen order."""

    if not markup:
        return []

    seen: dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(markup):
        seen.setdefault(match.group(0), None)
    return list(seen)


def placeholder_name(token: str) -> str:
    """Extract ``<name>`` from a complete placeholder token."""

    match = PLACEHOLDER_RE.fullmatch(token)
    if match is None:
        raise ValueError(f"Not a placeholder token: {token!r}")
    return match.group(1)


def make_placeholder(name: str) -> str:
    return f"{_TOKEN_PREFIX}{name}{_TOKEN_SUFFIX}"


def fallback_url(name: str, settings: FallbackImageSettings | None = None) -> str:
    """Build the deterministic placeholder-image URL for a token name.

    The name is percent-encoded as the ``text`` query value, so names with
    spaces or reserved characters appear encoded rather than verbatim.
    """

    image = settings or FallbackImageSettings()
    return (
        f"https://{image.host}/{image.width}x{image.height}/"
        f"{image.background}/{image.foreground}?text={quote(name, safe='')}"
    )


def substitute_placeholders(
    markup: str,
    replacement_for: Callable[[re.Match[str]], str],
) -> str:
    """Replace every complete token unit with ``replacement_for(match)``."""

    return PLACEHOLDER_RE.sub(replacement_for, markup)


def apply_asset_overrides(markup: str, overrides: Mapping[str, str]) -> tuple[str, list[str]]:
    """Replace tokens that have an explicit override.

    Returns the new markup and the tokens that were replaced, in first-seen
    order. Override values are inserted literally.
    """

    if not overrides:
        return markup, []

    replaced: dict[str, None] = {}

    def _replace(match: re.Match[str]) -> str:
        token = match.group(0)
        url = overrides.get(token)
        if url is None:
            return token
        replaced.setdefault(token, None)
        return str(url)

    return substitute_placeholders(markup, _replace), list(replaced)


def apply_fallbacks(
    markup: str, settings: FallbackImageSettings | None = None
) -> tuple[str, list[str]]:
    """Resolve every remaining token to its fallback image URL."""

    resolved: dict[str, None] = {}

    def _fallback(match: re.Match[str]) -> str:
        resolved.setdefault(match.group(0), None)
        return fallback_url(match.group(1), settings)

    return substitute_placeholders(markup, _fallback), list(resolved)
