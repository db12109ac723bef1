"""
Prompt templates, one per call site.

Generated markup must mark each cited paper with data-paper-id="<id>" so citations
can be extracted from the response.
"""

import json

from research_assistant.core.config import ABSTRACT_MAX_CHARS, HISTORY_MAX_MESSAGES
from research_assistant.schemas.papers import Paper
from research_assistant.services.text_processing import truncate

_HTML_RULES = """Format the answer as an HTML fragment (no <html>, <head> or <body>, no markdown, no code fences).
Use only these tags: div, h2, h3, p, ul, ol, li, span, a, strong, em, code, pre, blockquote.
Whenever you mention one of the papers, wrap its title in <span class="paper-ref" data-paper-id="PAPER_ID">...</span>
using the exact id given below."""

CLASSIFY_PROMPT = """Classify the user's intent for a research-paper assistant into exactly one of these categories:
search, specific_paper, explain, follow_up, paper_number_reference, full_paper, clarification_needed,
out_of_scope, comparison, specific_sections, implementation.

- search: the user wants papers on a topic.
- specific_paper: the user names one particular paper by its title.
- explain: the user wants a concept explained.
- follow_up: the user asks more about the papers already shown.
- clarification_needed: the message is too vague to act on.
- out_of_scope: the message has nothing to do with research papers.
Return only the category name.

{history}{papers}User Input: {message}
Intent:"""

SEARCH_QUERY_PROMPT = """Generate an optimized academic search query based on the user's question.
Use noun-heavy keywords, 3-8 words, no boolean operators, no quotes. Return only the search query.

{history}User Input: {message}
Search Query:"""

SEARCH_RESPONSE_PROMPT = """You are a research assistant. Answer the user's query using the provided papers.
Summarize the most relevant papers, say briefly why each one matters, and point out common themes.
{html_rules}

{history}User Input: {message}
Papers:
{papers}
Response:"""

EXPLAIN_PROMPT = """You are a research assistant. Explain the concept the user asks about clearly, for a reader
who knows the field only in broad strokes. Use the papers below where they help and cite them.
{html_rules}

{history}User Input: {message}
Papers:
{papers}
Response:"""

FOLLOW_UP_PROMPT = """You are a research assistant continuing a conversation about the papers below.
Answer the user's follow-up question using these papers only, and cite the ones you rely on.
{html_rules}

{history}User Input: {message}
Papers:
{papers}
Response:"""

COMPARISON_PROMPT = """You are a research assistant. Compare the papers below for the user: research question,
method, data, main results, and limitations. End with a short recommendation on which paper fits which need.
{html_rules}

{history}User Input: {message}
Papers:
{papers}
Response:"""

SECTION_PROMPT = """You are a research assistant. The user asked about the {section} of the paper "{title}".
Summarize the text below faithfully. If the text is only the abstract, say so in one sentence.
{html_rules}

User Input: {message}
Paper id: {paper_id}
{section_label}:
{section_text}
Response:"""

IMPLEMENTATION_PROMPT = """You are a research engineer. Describe how to implement the approach of the paper(s) below:
main components, the core algorithm as numbered steps, a short Python sketch in <pre><code>, and practical pitfalls.
Do not invent results the papers do not report.
{html_rules}

{history}User Input: {message}
Papers:
{papers}
Response:"""

CLARIFICATION_PROMPT = """You are a research assistant. The user's request is ambiguous. Ask one or two short
questions that would let you find the right papers (topic, field, time range, or type of paper).
Format the answer as plain HTML paragraphs (<p>) only.

{history}User Input: {message}
Response:"""

OUT_OF_SCOPE_PROMPT = """You are a research assistant that helps people find and understand academic papers.
The user's message is outside that scope. Reply politely in one or two sentences and suggest how you can help
with research papers instead. Format the answer as plain HTML paragraphs (<p>) only.

User Input: {message}
Response:"""


def format_history(history: list, max_messages: int = HISTORY_MAX_MESSAGES) -> str:
    """Format last N messages for inclusion in prompts."""
    if not history:
        return ""
    recent = history[-max_messages:] if len(history) > max_messages else history
    lines = []
    for m in recent:
        role = (m.get("role") or "user").strip().lower()
        content = (m.get("content") or "").strip()
        if not content:
            continue
        label = "User" if role == "user" else "Bot"
        lines.append(f"{label}: {content}")
    if not lines:
        return ""
    return "Conversation History:\n" + "\n".join(lines) + "\n\n"


def format_papers(papers: list[Paper]) -> str:
    """JSON list of papers (id, title, abstract) for generation prompts."""
    items = [
        {
            "id": p.id,
            "title": p.title,
            "abstract": truncate(p.abstract, ABSTRACT_MAX_CHARS) or None,
            "downloadUrl": p.download_url or None,
        }
        for p in papers
    ]
    return json.dumps(items, ensure_ascii=False, indent=1)


def format_titles(papers: list[Paper]) -> str:
    if not papers:
        return ""
    lines = [f"{i}. {p.title}" for i, p in enumerate(papers, 1)]
    return "Papers currently shown:\n" + "\n".join(lines) + "\n\n"


def build_classify_prompt(message: str, history: list, papers: list[Paper]) -> str:
    return CLASSIFY_PROMPT.format(history=format_history(history), papers=format_titles(papers), message=message)


def build_search_query_prompt(message: str, history: list) -> str:
    return SEARCH_QUERY_PROMPT.format(history=format_history(history), message=message)


def build_paper_prompt(template: str, message: str, history: list, papers: list[Paper]) -> str:
    return template.format(
        html_rules=_HTML_RULES,
        history=format_history(history),
        message=message,
        papers=format_papers(papers),
    )


def build_section_prompt(message: str, paper: Paper, section: str, section_text: str, is_abstract: bool) -> str:
    return SECTION_PROMPT.format(
        html_rules=_HTML_RULES,
        section=section,
        title=paper.title,
        message=message,
        paper_id=paper.id,
        section_label="Abstract" if is_abstract else f"{section.capitalize()} section",
        section_text=section_text,
    )


def build_simple_prompt(template: str, message: str, history: list) -> str:
    return template.format(history=format_history(history), message=message)
