"""Structural walking of human-visible text leaves in generated markup."""

from __future__ import annotations

from collections.abc import Iterator

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag

# Text under these tags is not human-visible content.
_INVISIBLE_PARENTS = frozenset({"script", "style", "template", "noscript"})
_MIN_FRAGMENT_LENGTH = 2


def parse_markup(markup: str) -> BeautifulSoup:
    """Parse markup with HTML5 tree construction, as a browser would.

    Unclosed elements such as ``<p>`` and ``<li>`` are closed by the elements that
    follow them instead of nesting. The parser adds html/head/body wrappers;
    use :func:`serialize_fragment` to get the fragment back without them.
    """

    return BeautifulSoup(markup, "html5lib")


def serialize_fragment(root: BeautifulSoup) -> str:
    """Serialize a parsed fragment without the document wrappers."""

    parts: list[str] = []
    for node in root.contents:
        if isinstance(node, Tag) and node.name == "html":
            for section in node.contents:
                if isinstance(section, Tag) and section.name in {"head", "body"}:
                    parts.append(section.decode_contents())
                else:
                    parts.append(_serialize_node(section))
        else:
            parts.append(_serialize_node(node))
    return "".join(parts)


def iter_text_leaves(root: BeautifulSoup) -> Iterator[NavigableString]:
    """Yield plain text leaves in document order.

    Comments, doctype, CDATA and other ``NavigableString`` subclasses are
    skipped, as is text inside script/style/template/noscript.
    """

    for node in list(root.descendants):
        if type(node) is not NavigableString:
            continue
        if _has_invisible_ancestor(node):
            continue
        yield node


def list_text_fragments(markup: str) -> list[str]:
    """Return distinct trimmed text fragments in first-appearance order."""

    if not markup:
        return []

    seen: dict[str, None] = {}
    for leaf in iter_text_leaves(parse_markup(markup)):
        content = str(leaf).strip()
        if len(content) < _MIN_FRAGMENT_LENGTH:
            continue
        seen.setdefault(content, None)
    return list(seen)


def split_surrounding_whitespace(text: str) -> tuple[str, str, str]:
    """Split text into (leading whitespace, trimmed core, trailing whitespace)."""

    core = text.strip()
    if not core:
        return text, "", ""
    start = text.find(core)
    return text[:start], core, text[start + len(core) :]


def _has_invisible_ancestor(node: NavigableString) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.name in _INVISIBLE_PARENTS:
            return True
        parent = parent.parent
    return False


def _serialize_node(node: PageElement) -> str:
    if isinstance(node, Tag):
        return node.decode()
    return node.output_ready()
