"""
Allow-list HTML sanitizer.

Output never contains a tag or attribute outside the supplied allow-list. Disallowed
tags are dropped but their text is kept, except for script-like containers whose
content is dropped too. Text and attribute values are re-escaped on output.
"""

import logging
from dataclasses import dataclass
from html import escape
from html.parser import HTMLParser
from urllib.parse import urlparse

from research_assistant.schemas.papers import Intent

logger = logging.getLogger(__name__)

_DROP_CONTENT = frozenset({"script", "style", "iframe", "object", "embed", "template", "noscript", "svg", "math"})
_VOID_TAGS = frozenset({"br", "hr", "img", "wbr"})
_URL_ATTRS = frozenset({"href", "src"})
_SAFE_SCHEMES = frozenset({"", "http", "https", "mailto"})
# legacy citation spellings, rewritten to the canonical marker
_ATTR_ALIASES = {"data-id": "data-paper-id", "identifier": "data-paper-id"}


@dataclass(frozen=True)
class SanitizePolicy:
    tags: frozenset[str]
    attrs: frozenset[str]


RICH_POLICY = SanitizePolicy(
    tags=frozenset({
        "div", "h2", "h3", "h4", "p", "ul", "ol", "li", "span", "a",
        "strong", "em", "b", "i", "code", "pre", "blockquote", "br",
    }),
    attrs=frozenset({"class", "data-paper-id", "href", "title", "target", "rel"}),
)

CARD_POLICY = SanitizePolicy(
    tags=frozenset({"div", "h2", "h3", "p", "ul", "ol", "li", "span", "a", "strong", "em", "br"}),
    attrs=frozenset({"class", "data-paper-id", "href", "target", "rel"}),
)

MINIMAL_POLICY = SanitizePolicy(
    tags=frozenset({"p", "ul", "ol", "li", "strong", "em", "br"}),
    attrs=frozenset({"class"}),
)

ERROR_POLICY = MINIMAL_POLICY

_INTENT_POLICIES: dict[Intent, SanitizePolicy] = {
    Intent.SEARCH: RICH_POLICY,
    Intent.EXPLAIN: RICH_POLICY,
    Intent.FOLLOW_UP: RICH_POLICY,
    Intent.COMPARISON: RICH_POLICY,
    Intent.IMPLEMENTATION: RICH_POLICY,
    Intent.SPECIFIC_SECTIONS: RICH_POLICY,
    Intent.SPECIFIC_PAPER: CARD_POLICY,
    Intent.PAPER_NUMBER_REFERENCE: CARD_POLICY,
    Intent.FULL_PAPER: CARD_POLICY,
    Intent.CLARIFICATION_NEEDED: MINIMAL_POLICY,
    Intent.OUT_OF_SCOPE: MINIMAL_POLICY,
}


def policy_for(intent: Intent) -> SanitizePolicy:
    return _INTENT_POLICIES.get(intent, MINIMAL_POLICY)


def _safe_url(value: str) -> bool:
    cleaned = "".join(ch for ch in value if ch > " ").lower()
    try:
        scheme = urlparse(cleaned).scheme
    except ValueError:
        return False
    return scheme in _SAFE_SCHEMES


class _AllowListParser(HTMLParser):
    def __init__(self, allowed_tags: frozenset[str], allowed_attrs: frozenset[str]) -> None:
        super().__init__(convert_charrefs=True)
        self.allowed_tags = allowed_tags
        self.allowed_attrs = allowed_attrs
        self.out: list[str] = []
        self._drop_depth = 0
        self._open: list[str] = []

    def _attrs(self, attrs: list[tuple[str, str | None]]) -> str:
        parts = []
        seen: set[str] = set()
        for name, value in attrs:
            name = name.lower()
            name = _ATTR_ALIASES.get(name, name)
            if name not in self.allowed_attrs or name.startswith("on") or name in seen:
                continue
            seen.add(name)
            value = value or ""
            if name in _URL_ATTRS and not _safe_url(value):
                continue
            parts.append(f' {name}="{escape(value, quote=True)}"')
        return "".join(parts)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        tag = tag.lower()
        if tag in _DROP_CONTENT:
            self._drop_depth += 1
            return
        if self._drop_depth or tag not in self.allowed_tags:
            return
        self.out.append(f"<{tag}{self._attrs(attrs)}>")
        if tag not in _VOID_TAGS:
            self._open.append(tag)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        tag = tag.lower()
        if self._drop_depth or tag in _DROP_CONTENT or tag not in self.allowed_tags:
            return
        self.out.append(f"<{tag}{self._attrs(attrs)}>")

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        if tag in _DROP_CONTENT:
            self._drop_depth = max(0, self._drop_depth - 1)
            return
        if self._drop_depth or tag not in self.allowed_tags or tag in _VOID_TAGS:
            return
        if tag not in self._open:
            return
        # close anything left open inside this element
        while self._open:
            top = self._open.pop()
            self.out.append(f"</{top}>")
            if top == tag:
                break

    def handle_data(self, data: str) -> None:
        if not self._drop_depth:
            self.out.append(escape(data, quote=False))

    def close_all(self) -> str:
        while self._open:
            self.out.append(f"</{self._open.pop()}>")
        return "".join(self.out)


def sanitize(html: str, allowed_tags: frozenset[str] | set[str], allowed_attrs: frozenset[str] | set[str]) -> str:
    """Strip everything outside the allow-list from html."""
    if not html:
        return ""
    parser = _AllowListParser(frozenset(t.lower() for t in allowed_tags), frozenset(a.lower() for a in allowed_attrs))
    parser.feed(html)
    parser.close()
    out = parser.close_all()
    logger.debug("[sanitizer] IN len=%d OUT len=%d", len(html), len(out))
    return out


def sanitize_with(html: str, policy: SanitizePolicy) -> str:
    return sanitize(html, policy.tags, policy.attrs)
