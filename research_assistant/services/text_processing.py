"""
Text processing for paper full text: cleaning, tag stripping, and section extraction.

Section extraction is best-effort: it looks for a heading line that names the
section (optionally numbered, e.g. "3. Methodology" or "III. RESULTS") and takes
everything up to the next heading-like line.
"""

import re
import unicodedata

SECTION_ALIASES: dict[str, str] = {
    "abstract": "abstract",
    "summary": "abstract",
    "introduction": "introduction",
    "intro": "introduction",
    "background": "introduction",
    "methodology": "methodology",
    "methodologies": "methodology",
    "method": "methodology",
    "methods": "methodology",
    "approach": "methodology",
    "results": "results",
    "result": "results",
    "findings": "results",
    "experiments": "results",
    "evaluation": "results",
    "discussion": "discussion",
    "conclusion": "conclusion",
    "conclusions": "conclusion",
    "concluding remarks": "conclusion",
}

# heading words that count as the same section when scanning text
SECTION_HEADINGS: dict[str, tuple[str, ...]] = {
    "abstract": ("abstract", "summary"),
    "introduction": ("introduction", "background"),
    "methodology": ("methodology", "methodologies", "methods", "method", "materials and methods", "approach"),
    "results": ("results", "findings", "experiments", "experimental results", "evaluation"),
    "discussion": ("discussion", "results and discussion"),
    "conclusion": ("conclusions", "conclusion", "concluding remarks", "summary and conclusions"),
}

_OTHER_HEADINGS = ("references", "acknowledgements", "acknowledgments", "related work", "appendix", "bibliography")
_NUMBERING = r"(?:(?:\d+(?:\.\d+)*|[IVXLC]+)[.)]?\s+)?"


def _heading_re(headings) -> re.Pattern[str]:
    alternation = "|".join(re.escape(h) for h in sorted(set(headings), key=len, reverse=True))
    return re.compile(rf"^\s*{_NUMBERING}(?:{alternation})\s*:?\s*$", re.IGNORECASE | re.MULTILINE)


_ANY_HEADING_RE = _heading_re([h for hs in SECTION_HEADINGS.values() for h in hs] + list(_OTHER_HEADINGS))
_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)


def clean_text(text: str) -> str:
    """
    Normalize raw paper text: NFKC, trimmed lines, consecutive duplicate lines dropped,
    runs of blank lines collapsed to one.
    """
    if not text or not text.strip():
        return ""
    text = unicodedata.normalize("NFKC", text)
    lines = [line.strip() for line in text.splitlines()]
    deduped: list[str] = []
    for line in lines:
        if deduped and deduped[-1] == line:
            continue
        deduped.append(line)
    result: list[str] = []
    for line in deduped:
        if line == "":
            if result and result[-1] != "":
                result.append("")
        else:
            result.append(line)
    return "\n".join(result).strip()


def strip_tags(html: str) -> str:
    """Plain text from HTML: script/style bodies dropped, tags removed."""
    if not html:
        return ""
    text = _SCRIPT_RE.sub("", html)
    text = re.sub(r"<br\s*/?>|</p>|</div>|</h[1-6]>|</li>", "\n", text, flags=re.IGNORECASE)
    return _TAG_RE.sub("", text)


def normalize_section(name: str | None) -> str | None:
    if not name:
        return None
    return SECTION_ALIASES.get(name.strip().lower())


def find_section_name(message: str) -> str | None:
    """First recognized section name mentioned in a user message."""
    lowered = (message or "").lower()
    best: tuple[int, str] | None = None
    for alias, canonical in SECTION_ALIASES.items():
        m = re.search(rf"\b{re.escape(alias)}\b", lowered)
        if m and (best is None or m.start() < best[0]):
            best = (m.start(), canonical)
    return best[1] if best else None


def extract_section(text: str, section: str, max_chars: int | None = None) -> str | None:
    """Body of the named section, or None when no matching heading is found."""
    canonical = normalize_section(section) or section
    headings = SECTION_HEADINGS.get(canonical)
    if not text or not headings:
        return None
    start = _heading_re(headings).search(text)
    if not start:
        alternation = "|".join(re.escape(h) for h in sorted(headings, key=len, reverse=True))
        # inline form: "Abstract: text..." on one line
        inline = re.search(rf"^\s*{_NUMBERING}(?:{alternation})\s*[:.—-]\s+(.+)$", text, re.IGNORECASE | re.MULTILINE)
        if not inline:
            return None
        body_start = inline.start(1)
    else:
        body_start = start.end()
    rest = text[body_start:]
    nxt = _ANY_HEADING_RE.search(rest)
    body = rest[: nxt.start()] if nxt else rest
    body = body.strip()
    if not body:
        return None
    if max_chars and len(body) > max_chars:
        body = body[:max_chars].rsplit(" ", 1)[0] + " …"
    return body


def truncate(text: str | None, max_chars: int) -> str:
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rsplit(" ", 1)[0] + " …"
