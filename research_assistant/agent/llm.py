"""
Generation provider: OpenAI (primary) or Hugging Face router (fallback).
When OPENAI_API_KEY is set, uses OpenAI chat completions; otherwise uses HF router.

Rate-limit and connection-reset failures surface as TransientProviderError so the
backoff executor can retry them. Callers go through a RateLimitedScheduler.
"""

import logging
import re
from typing import Protocol

import httpx
import openai
from openai import AsyncOpenAI

from research_assistant.core.config import (
    HF_API_KEY,
    HF_CHAT_URL,
    HF_LLM_MODEL,
    LLM_API_TIMEOUT,
    LLM_TEMPERATURE,
    OPENAI_API_KEY,
    OPENAI_LLM_MODEL,
)
from research_assistant.core.errors import ProviderError, ServiceUnavailableError, TransientProviderError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:html)?", re.IGNORECASE)


class LLMProvider(Protocol):
    async def generate(self, prompt: str, *, max_tokens: int = 256) -> str: ...


def strip_code_fences(text: str) -> str:
    """Remove ```html / ``` fences models wrap around markup."""
    return _FENCE_RE.sub("", text or "").strip()


class ChatCompletionProvider:
    """Single-prompt chat completion against OpenAI or the HF router."""

    def __init__(
        self,
        openai_api_key: str = OPENAI_API_KEY,
        openai_model: str = OPENAI_LLM_MODEL,
        hf_api_key: str = HF_API_KEY,
        hf_model: str = HF_LLM_MODEL,
        temperature: float = LLM_TEMPERATURE,
        timeout: float = LLM_API_TIMEOUT,
    ) -> None:
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model
        self.hf_api_key = hf_api_key
        self.hf_model = hf_model
        self.temperature = temperature
        self.timeout = timeout
        self._openai: AsyncOpenAI | None = None

    @property
    def backend(self) -> str:
        if self.openai_api_key:
            return "openai"
        if self.hf_api_key:
            return "hf"
        return "none"

    async def generate(self, prompt: str, *, max_tokens: int = 256) -> str:
        logger.info("[llm] IN  backend=%s prompt_len=%d max_tokens=%d", self.backend, len(prompt), max_tokens)
        logger.debug("[llm] prompt_sample=%r", prompt[:500])
        if self.openai_api_key:
            return await self._call_openai(prompt, max_tokens)
        if self.hf_api_key:
            return await self._call_hf(prompt, max_tokens)
        raise ServiceUnavailableError("No generation provider configured: set OPENAI_API_KEY or HF_API_KEY.")

    async def _call_openai(self, prompt: str, max_tokens: int) -> str:
        if self._openai is None:
            self._openai = AsyncOpenAI(api_key=self.openai_api_key, timeout=self.timeout, max_retries=0)
        try:
            response = await self._openai.chat.completions.create(
                model=self.openai_model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=self.temperature,
            )
        except (openai.RateLimitError, openai.APIConnectionError) as e:
            raise TransientProviderError(f"OpenAI transient error: {e}", getattr(e, "status_code", None)) from e
        except openai.APIStatusError as e:
            raise ProviderError(f"OpenAI error {e.status_code}: {e.message}") from e
        msg = response.choices[0].message if response.choices else None
        out = ((msg.content if msg else None) or "").strip()
        if not out:
            raise ProviderError("OpenAI returned an empty response")
        logger.info("[llm:openai] OUT response_len=%d", len(out))
        return out

    async def _call_hf(self, prompt: str, max_tokens: int) -> str:
        headers = {"Authorization": f"Bearer {self.hf_api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.hf_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(HF_CHAT_URL, json=payload, headers=headers)
        except (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError, httpx.TimeoutException) as e:
            raise TransientProviderError(f"HF connection error: {e}") from e
        if response.status_code == 429:
            raise TransientProviderError("HF rate limit exceeded", 429)
        if response.status_code != 200:
            logger.warning("[llm:hf] HF LLM error %s: %s", response.status_code, response.text[:200])
            raise ProviderError(f"HF error {response.status_code}")
        data = response.json()
        choices = data.get("choices") or []
        out = ""
        if choices and isinstance(choices[0], dict):
            out = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not out:
            raise ProviderError("HF returned an empty response")
        logger.info("[llm:hf] OUT response_len=%d", len(out))
        return out
