"""
Response generators: one coroutine per intent.

Each generator takes (message, history, context) and returns a GenerationResult whose
html has already been rendered from content nodes and passed through the intent's
sanitizer policy. Provider calls go through the schedulers; search/detail/full-text
calls go straight to their collaborators.

The context is only written after every call that can fail has succeeded, so a failed
request leaves the cache as it was. Detail and full-text failures are not fatal: the
generator falls back to the cached summary or abstract.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from typing import Protocol

from research_assistant.agent import prompts
from research_assistant.agent.intent import extract_paper_number, extract_paper_numbers
from research_assistant.agent.llm import LLMProvider, strip_code_fences
from research_assistant.agent.scheduler import RateLimitedScheduler
from research_assistant.core.config import GENERATE_MAX_TOKENS, QUERY_MAX_TOKENS, SECTION_MAX_CHARS
from research_assistant.core.context import ConversationContext
from research_assistant.core.errors import (
    InsufficientComparisonSet,
    NoContext,
    NoResultsFound,
    ProviderError,
    ReferenceOutOfRange,
    SectionNotFound,
    TransientProviderError,
)
from research_assistant.schemas.papers import GenerationResult, Intent, Paper, PaperDetail
from research_assistant.services import content
from research_assistant.services.citations import extract_cited_papers
from research_assistant.services.sanitizer import MINIMAL_POLICY, SanitizePolicy, policy_for, sanitize_with
from research_assistant.services.text_processing import extract_section, find_section_name, strip_tags

logger = logging.getLogger(__name__)


class SearchClient(Protocol):
    async def search(self, query: str) -> list[Paper]: ...

    async def fetch_detail(self, paper_id: str) -> PaperDetail: ...


class FullTextFetcher(Protocol):
    async def fetch_full_text(self, url: str) -> str: ...


Generator = Callable[[str, list, ConversationContext], Awaitable[GenerationResult]]


def build_result(
    intent: Intent,
    nodes: list[content.Node],
    cited: list[Paper] | None = None,
    policy: SanitizePolicy | None = None,
) -> GenerationResult:
    """Render nodes once and sanitize with the intent's policy (or an explicit one)."""
    html = sanitize_with(content.render_html(nodes), policy or policy_for(intent))
    return GenerationResult(intent=intent, text=content.render_text(nodes), html=html, cited_papers=cited or [])


class ResponseGenerators:
    def __init__(
        self,
        provider: LLMProvider,
        classify_scheduler: RateLimitedScheduler,
        generate_scheduler: RateLimitedScheduler,
        search_client: SearchClient,
        full_text_client: FullTextFetcher,
    ) -> None:
        self.provider = provider
        self.classify_scheduler = classify_scheduler
        self.generate_scheduler = generate_scheduler
        self.search_client = search_client
        self.full_text_client = full_text_client
        self._generators: dict[Intent, Generator] = {
            Intent.SEARCH: self.search,
            Intent.SPECIFIC_PAPER: self.specific_paper,
            Intent.EXPLAIN: self.explain,
            Intent.FOLLOW_UP: self.follow_up,
            Intent.PAPER_NUMBER_REFERENCE: self.paper_number_reference,
            Intent.FULL_PAPER: self.full_paper,
            Intent.CLARIFICATION_NEEDED: self.clarification_needed,
            Intent.OUT_OF_SCOPE: self.out_of_scope,
            Intent.COMPARISON: self.comparison,
            Intent.SPECIFIC_SECTIONS: self.specific_sections,
            Intent.IMPLEMENTATION: self.implementation,
        }

    async def generate(self, intent: Intent, message: str, history: list, context: ConversationContext) -> GenerationResult:
        generator = self._generators.get(intent, self.search)
        logger.info("[generators] IN  intent=%s cached=%d focus=%s", intent.value, len(context), context.focused_index)
        result = await generator(message, history, context)
        logger.info("[generators] OUT intent=%s text_len=%d cited=%d", result.intent.value, len(result.text), len(result.cited_papers))
        return result

    # --- provider helpers ---

    async def _generate_text(self, prompt: str) -> str:
        text = await self.generate_scheduler.schedule(
            lambda: self.provider.generate(prompt, max_tokens=GENERATE_MAX_TOKENS)
        )
        return strip_code_fences(text)

    async def _narrative(self, intent: Intent, template: str, message: str, history: list, papers: list[Paper]) -> GenerationResult:
        markup = await self._generate_text(prompts.build_paper_prompt(template, message, history, papers))
        cited = extract_cited_papers(markup, papers)
        return build_result(intent, [content.Markup(markup, strip_tags(markup).strip())], cited)

    async def _optimized_query(self, message: str, history: list) -> str:
        prompt = prompts.build_search_query_prompt(message, history)
        query = await self.classify_scheduler.schedule(
            lambda: self.provider.generate(prompt, max_tokens=QUERY_MAX_TOKENS)
        )
        query = strip_code_fences(query).splitlines()[0].strip().strip("\"'") if query and query.strip() else ""
        return query or message

    # --- generators ---

    async def search(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        query = await self._optimized_query(message, history)
        logger.info("[generators:search] query=%r", query)
        papers = await self.search_client.search(query)
        if not papers:
            raise NoResultsFound()
        result = await self._narrative(Intent.SEARCH, prompts.SEARCH_RESPONSE_PROMPT, message, history, papers)
        context.replace_papers(papers)
        return result

    async def specific_paper(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        papers = await self.search_client.search(message)
        if not papers:
            raise NoResultsFound("I couldn't find a paper with that title. Please try refining your query or provide more details.")
        top = papers[0]
        context.replace_papers([top])
        context.focus(0)
        nodes: list[content.Node] = [content.PaperCard(top)]
        return build_result(Intent.SPECIFIC_PAPER, nodes, [top])

    async def paper_number_reference(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        index = extract_paper_number(message, len(context))
        if index is None:
            raise ReferenceOutOfRange(_first_number(message, len(context)), len(context))
        paper = context.paper_at(index)
        detail: PaperDetail | None = None
        try:
            detail = await self.search_client.fetch_detail(paper.id)
        except (ProviderError, TransientProviderError) as e:
            logger.warning("[generators:paper_number_reference] detail fetch failed id=%s: %s", paper.id, e)
        context.focus(index)
        if detail is None:
            card = content.PaperCard(paper, note="Showing the cached summary; full details are unavailable right now.")
            return build_result(Intent.PAPER_NUMBER_REFERENCE, [content.Heading(f"Paper {index + 1}", 2), card], [paper])
        if detail.abstract and not paper.abstract:
            paper = context.enrich(index, abstract=detail.abstract)
        if not paper.download_url and (detail.download_url or detail.full_text_url):
            paper = context.enrich(index, download_url=detail.download_url or detail.full_text_url)
        card = content.PaperCard(
            paper,
            body=detail.abstract or paper.abstract or "No abstract available.",
            authors=detail.authors,
            published=detail.published_date,
        )
        return build_result(Intent.PAPER_NUMBER_REFERENCE, [content.Heading(f"Paper {index + 1}", 2), card], [paper])

    async def full_paper(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        paper = context.focused_paper()
        if paper is None:
            return self._disambiguation(context.require_papers())
        card = content.PaperCard(paper, link_text="Open full paper (PDF)")
        if not paper.download_url:
            card.note = "No downloadable full text is available for this paper."
        return build_result(Intent.FULL_PAPER, [card], [paper])

    def _disambiguation(self, papers: list[Paper]) -> GenerationResult:
        items: list[content.Paragraph | content.Link | str] = [p.title for p in papers]
        nodes: list[content.Node] = [
            content.Paragraph("Which paper would you like to open? Reply with its number, e.g. \"paper 2\"."),
            content.BulletList(items, ordered=True),
        ]
        return build_result(Intent.FULL_PAPER, nodes, policy=MINIMAL_POLICY)

    async def explain(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        return await self._narrative(Intent.EXPLAIN, prompts.EXPLAIN_PROMPT, message, history, context.cached_papers)

    async def follow_up(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        papers = context.require_papers()
        return await self._narrative(Intent.FOLLOW_UP, prompts.FOLLOW_UP_PROMPT, message, history, papers)

    async def comparison(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        if len(context) < 2:
            raise InsufficientComparisonSet()
        papers = context.cached_papers
        named = extract_paper_numbers(message, len(papers))
        if len(named) >= 2:
            papers = [papers[i] for i in named]
        return await self._narrative(Intent.COMPARISON, prompts.COMPARISON_PROMPT, message, history, papers)

    async def specific_sections(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        index = context.focused_index if context.focused_paper() is not None else None
        if index is None:
            context.require_papers()
            if len(context) != 1:
                raise NoContext("Which paper do you mean? Pick one by number first, e.g. \"paper 2\".")
            index = 0
        paper = context.paper_at(index)
        section = find_section_name(message)
        try:
            if section is None:
                raise SectionNotFound(None)
            paper = await self._with_full_text(context, index, paper)
            section_text = extract_section(paper.full_text or "", section, SECTION_MAX_CHARS)
            if section_text is None:
                raise SectionNotFound(section)
            is_abstract = False
        except SectionNotFound as e:
            logger.info("[generators:specific_sections] fallback to abstract: %s", e)
            section_text = paper.abstract or ""
            is_abstract = True
        if not section_text:
            note = f"I couldn't find the {section or 'requested'} section, and no abstract is available for this paper."
            return build_result(Intent.SPECIFIC_SECTIONS, [content.PaperCard(paper, body="", note=note)], [paper])
        prompt = prompts.build_section_prompt(message, paper, section or "requested section", section_text, is_abstract)
        markup = await self._generate_text(prompt)
        nodes: list[content.Node] = [content.Heading(paper.title, 3)]
        if is_abstract:
            label = f"the {section} section" if section else "that section"
            nodes.append(content.Paragraph(f"I couldn't locate {label} in the full text, so this is based on the abstract.", "note"))
        nodes.append(content.Markup(markup, strip_tags(markup).strip()))
        return build_result(Intent.SPECIFIC_SECTIONS, nodes, [paper])

    async def _with_full_text(self, context: ConversationContext, index: int, paper: Paper) -> Paper:
        if paper.full_text:
            return paper
        if not paper.download_url:
            raise SectionNotFound(None)
        try:
            text = await self.full_text_client.fetch_full_text(paper.download_url)
        except (ProviderError, TransientProviderError) as e:
            logger.warning("[generators:specific_sections] full text unavailable id=%s: %s", paper.id, e)
            raise SectionNotFound(None) from e
        return context.enrich(index, full_text=text)

    async def implementation(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        focused = context.focused_paper()
        papers = [focused] if focused is not None else context.cached_papers
        return await self._narrative(Intent.IMPLEMENTATION, prompts.IMPLEMENTATION_PROMPT, message, history, papers)

    async def clarification_needed(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        markup = await self._generate_text(prompts.build_simple_prompt(prompts.CLARIFICATION_PROMPT, message, history))
        return build_result(Intent.CLARIFICATION_NEEDED, [content.Markup(markup, strip_tags(markup).strip())])

    async def out_of_scope(self, message: str, history: list, context: ConversationContext) -> GenerationResult:
        markup = await self._generate_text(prompts.build_simple_prompt(prompts.OUT_OF_SCOPE_PROMPT, message, history))
        return build_result(Intent.OUT_OF_SCOPE, [content.Markup(markup, strip_tags(markup).strip())])


def _first_number(message: str, size: int) -> int:
    m = re.search(r"\d+", message or "")
    return int(m.group(0)) - 1 if m else size
