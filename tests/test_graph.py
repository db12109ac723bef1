"""
Tests for the LangGraph pipeline: classification routes to the matching generator.
"""

import pytest

from research_assistant.agent.graph import ResearchAssistant
from research_assistant.core.context import ConversationContext
from research_assistant.core.errors import NoResultsFound
from research_assistant.schemas.papers import Intent, PaperDetail


@pytest.fixture
def assistant(provider, classify_scheduler, generate_scheduler, search_client, full_text_client) -> ResearchAssistant:
    return ResearchAssistant(
        provider=provider,
        classify_scheduler=classify_scheduler,
        generate_scheduler=generate_scheduler,
        search_client=search_client,
        full_text_client=full_text_client,
    )


@pytest.mark.asyncio
async def test_model_routed_search(assistant, provider, search_client, papers) -> None:
    provider.replies = ["search", "graph attention", '<p><span data-paper-id="101">Transformer</span></p>']
    search_client.results = papers
    context = ConversationContext()

    result = await assistant.run("find papers on graph attention", history=[], context=context)

    assert result.intent is Intent.SEARCH
    assert [p.id for p in result.cited_papers] == ["101"]
    assert len(context) == 3
    assert assistant.classify_scheduler.quota.used == 3


@pytest.mark.asyncio
async def test_rule_routed_reference(assistant, provider, search_client, papers) -> None:
    search_client.details["103"] = PaperDetail(id="103", title=papers[2].title, abstract="Graph attention layers.")
    context = ConversationContext(papers)

    result = await assistant.run("tell me about paper 3", context=context)

    assert result.intent is Intent.PAPER_NUMBER_REFERENCE
    assert context.focused_index == 2
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_generator_errors_propagate(assistant, provider, search_client) -> None:
    provider.replies = ["search", "nothing"]
    with pytest.raises(NoResultsFound):
        await assistant.run("find papers on unobtainium", context=ConversationContext())


@pytest.mark.asyncio
async def test_empty_message_rejected(assistant) -> None:
    with pytest.raises(ValueError):
        await assistant.run("   ")
