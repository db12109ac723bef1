"""
Intent classifier: ordered deterministic rules first, model call only as a fallback.

The rules are plain (message, cached_papers) -> bool predicates so they can be tested
without a model. The first matching rule wins; when none match, the classification
prompt goes through the classify scheduler and the returned label is mapped onto
Intent (unknown labels become search).
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from research_assistant.agent.llm import LLMProvider
from research_assistant.agent.prompts import build_classify_prompt
from research_assistant.agent.scheduler import RateLimitedScheduler
from research_assistant.core.config import CLASSIFY_MAX_TOKENS
from research_assistant.schemas.papers import Intent, Paper

logger = logging.getLogger(__name__)

_ORDINALS = {
    "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9, "tenth": 10,
    "last": -1,
}
_NOUNS = r"(?:paper|article|study|result|one|item|option)"

_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:paper|article|study|result|number|no\.|item|option)\s*#?\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"(?:^|\s)#\s*(\d+)\b"),
    re.compile(
        r"\b(?:more\s+(?:about|on)|tell\s+me\s+(?:more\s+)?about|details?\s+(?:of|on|about)|about)\s+(?:the\s+)?#?(\d+)\b",
        re.IGNORECASE,
    ),
    re.compile(rf"\b(\d+)(?:st|nd|rd|th)\s+{_NOUNS}\b", re.IGNORECASE),
    re.compile(r"^\s*#?(\d+)\s*[.!?]?\s*$"),
)
_ORDINAL_RE = re.compile(rf"\b({'|'.join(_ORDINALS)})\s+{_NOUNS}\b", re.IGNORECASE)

_FULL_PAPER_RE = re.compile(
    r"\b(?:full|open|download|view|read|show)\s+(?:me\s+)?(?:the\s+|this\s+|that\s+|it\s+)?(?:full\s+)?(?:paper|article|text|pdf)\b"
    r"|\bpdf\b|\bfull[\s-]text\b",
    re.IGNORECASE,
)
_COMPARISON_RE = re.compile(
    r"\b(?:compare|compared|comparing|comparison|versus|vs\.?|contrast|differences?|differ)\b",
    re.IGNORECASE,
)
_SECTION_RE = re.compile(
    r"\b(?:methodology|methods|results|conclusions?|introduction|discussion|abstract)\b",
    re.IGNORECASE,
)
_IMPLEMENTATION_RE = re.compile(
    r"\b(?:implementation|implement|implementing|algorithms?|code|pseudo-?code)\b",
    re.IGNORECASE,
)


def extract_paper_number(message: str, cache_size: int) -> int | None:
    """Zero-based index referenced by the message (1-based in text), or None when absent/out of range."""
    if not message or cache_size <= 0:
        return None
    number: int | None = None
    for pattern in _NUMBER_PATTERNS:
        m = pattern.search(message)
        if m:
            number = int(m.group(1))
            break
    if number is None:
        m = _ORDINAL_RE.search(message)
        if m:
            number = _ORDINALS[m.group(1).lower()]
            if number == -1:
                number = cache_size
    if number is None:
        return None
    index = number - 1
    if not 0 <= index < cache_size:
        logger.info("[intent:extract_paper_number] number=%d out of range cache_size=%d", number, cache_size)
        return None
    return index


def extract_paper_numbers(message: str, cache_size: int) -> list[int]:
    """All in-range zero-based indexes mentioned as 'paper N' / '#N' / 'N and M', in order, deduplicated."""
    found: list[int] = []
    for m in re.finditer(r"(?:\b(?:paper|article|study|papers|and|vs\.?|versus|with)\s*#?|#)\s*(\d+)\b", message or "", re.IGNORECASE):
        idx = int(m.group(1)) - 1
        if 0 <= idx < cache_size and idx not in found:
            found.append(idx)
    return found


@dataclass(frozen=True)
class IntentRule:
    name: str
    intent: Intent
    predicate: Callable[[str, list[Paper]], bool]


def _single_paper_reference(message: str, papers: list[Paper]) -> bool:
    # "compare paper 1 and paper 2" names two papers and falls through to the comparison rule
    if extract_paper_number(message, len(papers)) is None:
        return False
    return len(extract_paper_numbers(message, len(papers))) < 2


RULES: list[IntentRule] = [
    IntentRule("paper_number", Intent.PAPER_NUMBER_REFERENCE, _single_paper_reference),
    IntentRule("full_paper", Intent.FULL_PAPER, lambda message, papers: bool(_FULL_PAPER_RE.search(message))),
    IntentRule("comparison", Intent.COMPARISON, lambda message, papers: bool(_COMPARISON_RE.search(message))),
    IntentRule("section", Intent.SPECIFIC_SECTIONS, lambda message, papers: bool(_SECTION_RE.search(message))),
    IntentRule("implementation", Intent.IMPLEMENTATION, lambda message, papers: bool(_IMPLEMENTATION_RE.search(message))),
]


def match_rules(message: str, cached_papers: list[Paper], rules: list[IntentRule] | None = None) -> Intent | None:
    """First rule that matches, or None when the model has to decide."""
    for rule in rules if rules is not None else RULES:
        if rule.predicate(message, cached_papers):
            logger.info("[intent:match_rules] rule=%s -> %s", rule.name, rule.intent.value)
            return rule.intent
    return None


class IntentClassifier:
    def __init__(self, provider: LLMProvider, scheduler: RateLimitedScheduler, rules: list[IntentRule] | None = None) -> None:
        self.provider = provider
        self.scheduler = scheduler
        self.rules = rules if rules is not None else RULES

    async def classify(self, message: str, history: list, cached_papers: list[Paper]) -> Intent:
        message = (message or "").strip()
        logger.info("[intent:classify] IN  message=%r history_len=%d cached=%d", message, len(history), len(cached_papers))
        intent = match_rules(message, cached_papers, self.rules)
        if intent is not None:
            return intent

        prompt = build_classify_prompt(message, history, cached_papers)
        label = await self.scheduler.schedule(
            lambda: self.provider.generate(prompt, max_tokens=CLASSIFY_MAX_TOKENS)
        )
        intent = Intent.from_label(label)
        if intent is Intent.PAPER_NUMBER_REFERENCE:
            # only the numeric rule can vouch for a valid index
            intent = Intent.FOLLOW_UP if cached_papers else Intent.SEARCH
        logger.info("[intent:classify] OUT llm_raw=%r intent=%s", label, intent.value)
        return intent
