"""Domain records shared by the classifier, generators, and API."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    SEARCH = "search"
    SPECIFIC_PAPER = "specific_paper"
    EXPLAIN = "explain"
    FOLLOW_UP = "follow_up"
    PAPER_NUMBER_REFERENCE = "paper_number_reference"
    FULL_PAPER = "full_paper"
    CLARIFICATION_NEEDED = "clarification_needed"
    OUT_OF_SCOPE = "out_of_scope"
    COMPARISON = "comparison"
    SPECIFIC_SECTIONS = "specific_sections"
    IMPLEMENTATION = "implementation"

    @classmethod
    def from_label(cls, label: str | None) -> "Intent":
        """Map a model label to an Intent. Unknown or empty labels become SEARCH."""
        if not label:
            return cls.SEARCH
        first = label.strip().splitlines()[0] if label.strip() else ""
        if ":" in first:
            first = first.rsplit(":", 1)[1]
        key = re.sub(r"[\s\-]+", "_", first.strip().strip("\"'`.:*").lower())
        key = re.sub(r"[^a-z_]", "", key)
        try:
            return cls(key)
        except ValueError:
            return cls.SEARCH


class Paper(BaseModel):
    """Cached summary of a search hit. Immutable; enrichment produces a copy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    download_url: str = Field("", alias="downloadUrl")
    abstract: str | None = None
    full_text: str | None = Field(None, alias="fullText")

    @classmethod
    def from_core(cls, item: dict) -> "Paper":
        """Build from a CORE API work (ids may be numeric)."""
        return cls(
            id=str(item.get("id", "")),
            title=(item.get("title") or "Untitled").strip(),
            download_url=item.get("downloadUrl") or "",
            abstract=(item.get("abstract") or None),
        )


class PaperDetail(BaseModel):
    """Richer record fetched on demand; not cached unless merged into a Paper."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    abstract: str | None = None
    authors: list[str] = Field(default_factory=list)
    published_date: str | None = Field(None, alias="publishedDate")
    full_text_url: str | None = Field(None, alias="fullTextUrl")
    download_url: str | None = Field(None, alias="downloadUrl")


class GenerationResult(BaseModel):
    intent: Intent
    text: str
    html: str = ""
    cited_papers: list[Paper] = Field(default_factory=list)
