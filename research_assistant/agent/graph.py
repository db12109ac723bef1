"""
LangGraph pipeline: classify intent → intent-specific generator → END.

One node per intent; the conditional edge after classification routes on the intent
value. Generator errors propagate out of ainvoke unchanged so the API layer can turn
them into error notices.
"""

import logging
from typing import TypedDict

from langgraph.graph import END, StateGraph

from research_assistant.agent.generators import ResponseGenerators
from research_assistant.agent.intent import IntentClassifier
from research_assistant.agent.llm import ChatCompletionProvider, LLMProvider
from research_assistant.agent.scheduler import RateLimitedScheduler, build_schedulers
from research_assistant.core.context import ConversationContext
from research_assistant.schemas.papers import GenerationResult, Intent
from research_assistant.services.full_text import FullTextClient
from research_assistant.services.paper_search import CoreSearchClient

logger = logging.getLogger(__name__)


class AssistantState(TypedDict, total=False):
    message: str
    history: list  # list of {"role": "user"|"assistant", "content": str}
    context: ConversationContext
    intent: Intent
    result: GenerationResult


class ResearchAssistant:
    """Owns the provider, both schedulers, the classifier, the generators and the compiled graph."""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        classify_scheduler: RateLimitedScheduler | None = None,
        generate_scheduler: RateLimitedScheduler | None = None,
        search_client=None,
        full_text_client=None,
    ) -> None:
        if classify_scheduler is None or generate_scheduler is None:
            default_classify, default_generate = build_schedulers()
            classify_scheduler = classify_scheduler or default_classify
            generate_scheduler = generate_scheduler or default_generate
        self.provider = provider or ChatCompletionProvider()
        self.classify_scheduler = classify_scheduler
        self.generate_scheduler = generate_scheduler
        self.classifier = IntentClassifier(self.provider, classify_scheduler)
        self.generators = ResponseGenerators(
            self.provider,
            classify_scheduler,
            generate_scheduler,
            search_client or CoreSearchClient(),
            full_text_client or FullTextClient(),
        )
        self.graph = self._build_graph()

    async def _classify(self, state: AssistantState) -> dict:
        context = state["context"]
        intent = await self.classifier.classify(state["message"], state.get("history") or [], context.cached_papers)
        logger.info("[graph:classify] OUT intent=%s", intent.value)
        return {"intent": intent}

    def _generator_node(self, intent: Intent):
        async def node(state: AssistantState) -> dict:
            result = await self.generators.generate(intent, state["message"], state.get("history") or [], state["context"])
            return {"result": result}

        node.__name__ = f"generate_{intent.value}"
        return node

    @staticmethod
    def _route_after_classify(state: AssistantState) -> str:
        return state["intent"].value

    def _build_graph(self):
        graph = StateGraph(AssistantState)
        graph.add_node("classify", self._classify)
        for intent in Intent:
            graph.add_node(intent.value, self._generator_node(intent))
            graph.add_edge(intent.value, END)
        graph.set_entry_point("classify")
        graph.add_conditional_edges("classify", self._route_after_classify, {i.value: i.value for i in Intent})
        return graph.compile()

    async def run(self, message: str, history: list | None = None, context: ConversationContext | None = None) -> GenerationResult:
        """
        Classify and answer one message. The context is read and updated in place;
        callers must not run two messages of the same conversation concurrently.
        """
        if not message or not str(message).strip():
            raise ValueError("message is required")
        q = str(message).strip()
        hist = history if history is not None else []
        ctx = context if context is not None else ConversationContext()
        logger.info("[run_assistant] START message=%r history_len=%d cached=%d", q, len(hist), len(ctx))
        final = await self.graph.ainvoke({"message": q, "history": hist, "context": ctx})
        result: GenerationResult = final["result"]
        logger.info("[run_assistant] END intent=%s cited=%d", result.intent.value, len(result.cited_papers))
        return result
