"""
Tests for the generation provider (Hugging Face router path mocked with respx).
"""

import pytest
from httpx import Response

from research_assistant.agent.llm import ChatCompletionProvider, strip_code_fences
from research_assistant.core.config import HF_CHAT_URL
from research_assistant.core.errors import ProviderError, ServiceUnavailableError, TransientProviderError


def hf_provider() -> ChatCompletionProvider:
    return ChatCompletionProvider(openai_api_key="", hf_api_key="hf-test", hf_model="test-model", timeout=5)


def test_strip_code_fences() -> None:
    assert strip_code_fences("```html\n<p>x</p>\n```") == "<p>x</p>"
    assert strip_code_fences("<p>plain</p>") == "<p>plain</p>"
    assert strip_code_fences("") == ""


def test_backend_selection() -> None:
    assert ChatCompletionProvider(openai_api_key="sk", hf_api_key="hf").backend == "openai"
    assert hf_provider().backend == "hf"
    assert ChatCompletionProvider(openai_api_key="", hf_api_key="").backend == "none"


@pytest.mark.asyncio
async def test_no_backend_configured() -> None:
    with pytest.raises(ServiceUnavailableError):
        await ChatCompletionProvider(openai_api_key="", hf_api_key="").generate("hi")


@pytest.mark.asyncio
async def test_hf_success(respx_mock) -> None:
    route = respx_mock.post(HF_CHAT_URL).mock(
        return_value=Response(200, json={"choices": [{"message": {"content": "  search  "}}]})
    )
    assert await hf_provider().generate("classify this", max_tokens=12) == "search"
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer hf-test"
    assert b"test-model" in request.content


@pytest.mark.asyncio
async def test_hf_rate_limit_is_transient(respx_mock) -> None:
    respx_mock.post(HF_CHAT_URL).mock(return_value=Response(429, text="slow down"))
    with pytest.raises(TransientProviderError):
        await hf_provider().generate("x")


@pytest.mark.asyncio
async def test_hf_empty_reply_is_error(respx_mock) -> None:
    respx_mock.post(HF_CHAT_URL).mock(return_value=Response(200, json={"choices": []}))
    with pytest.raises(ProviderError):
        await hf_provider().generate("x")
