"""
Shared fakes for agent tests: a scripted provider, search client and full-text client.
"""

import pytest

from research_assistant.agent.backoff import BackoffExecutor
from research_assistant.agent.generators import ResponseGenerators
from research_assistant.agent.scheduler import DailyQuota, RateLimitedScheduler
from research_assistant.schemas.papers import Paper, PaperDetail


class FakeProvider:
    """Returns scripted replies in order (the last one repeats); records every prompt."""

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies) or ["<p>ok</p>"]
        self.prompts: list[str] = []
        self.max_tokens: list[int] = []

    async def generate(self, prompt: str, *, max_tokens: int = 256) -> str:
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class FakeSearchClient:
    def __init__(self, results: list[Paper] | None = None) -> None:
        self.results = list(results or [])
        self.details: dict[str, PaperDetail] = {}
        self.detail_error: Exception | None = None
        self.queries: list[str] = []
        self.detail_calls: list[str] = []

    async def search(self, query: str) -> list[Paper]:
        self.queries.append(query)
        return list(self.results)

    async def fetch_detail(self, paper_id: str) -> PaperDetail:
        self.detail_calls.append(paper_id)
        if self.detail_error is not None:
            raise self.detail_error
        return self.details[paper_id]


class FakeFullTextClient:
    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.urls: list[str] = []

    async def fetch_full_text(self, url: str) -> str:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.text


def make_test_scheduler(name: str, quota: DailyQuota | None = None) -> RateLimitedScheduler:
    return RateLimitedScheduler(
        name=name,
        capacity=100,
        refresh_interval=60.0,
        max_concurrent=1,
        quota=quota or DailyQuota(limit=1000),
        executor=BackoffExecutor(retries=0),
    )


@pytest.fixture
def papers() -> list[Paper]:
    return [
        Paper(id="101", title="Attention Is All You Need", download_url="https://example.org/101.pdf", abstract="Transformers."),
        Paper(id="102", title="BERT: Pre-training of Deep Bidirectional Transformers", download_url="", abstract="Masked LM."),
        Paper(id="103", title="Graph Attention Networks", download_url="https://example.org/103.pdf", abstract="GAT."),
    ]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def search_client() -> FakeSearchClient:
    return FakeSearchClient()


@pytest.fixture
def full_text_client() -> FakeFullTextClient:
    return FakeFullTextClient()


@pytest.fixture
def quota() -> DailyQuota:
    return DailyQuota(limit=1000)


@pytest.fixture
def classify_scheduler(quota: DailyQuota) -> RateLimitedScheduler:
    return make_test_scheduler("classify", quota)


@pytest.fixture
def generate_scheduler(quota: DailyQuota) -> RateLimitedScheduler:
    return make_test_scheduler("generate", quota)


@pytest.fixture
def generators(provider, classify_scheduler, generate_scheduler, search_client, full_text_client) -> ResponseGenerators:
    return ResponseGenerators(provider, classify_scheduler, generate_scheduler, search_client, full_text_client)
