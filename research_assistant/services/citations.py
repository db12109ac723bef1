"""
Citation markers embedded in generated markup.

A cited paper is marked with an attribute-like token, e.g. data-paper-id="123".
The legacy data-id and plain identifier spellings are accepted too; the sanitizer
rewrites them to data-paper-id.
"""

import re

from research_assistant.schemas.papers import Paper

CITATION_MARKER_RE = re.compile(r'(?:data-paper-id|data-id|identifier)\s*=\s*"([^"]+)"')


def extract_citation_ids(text: str) -> list[str]:
    """Ids in order of first appearance, duplicates removed."""
    seen: set[str] = set()
    ids: list[str] = []
    for match in CITATION_MARKER_RE.finditer(text or ""):
        pid = match.group(1).strip()
        if pid and pid not in seen:
            seen.add(pid)
            ids.append(pid)
    return ids


def extract_cited_papers(text: str, papers: list[Paper]) -> list[Paper]:
    """Supplied papers whose id is cited in text, in first-appearance order."""
    by_id: dict[str, Paper] = {}
    for p in papers:
        by_id.setdefault(p.id, p)
    return [by_id[pid] for pid in extract_citation_ids(text) if pid in by_id]


def render_markers(papers: list[Paper]) -> str:
    return " ".join(f'<span data-paper-id="{p.id}"></span>' for p in papers)
