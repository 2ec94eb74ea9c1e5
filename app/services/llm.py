# =============================================================================
# Multi-Provider LLM Abstraction — External Model Endpoint
# =============================================================================
#
# Provides a common interface for "send a prompt, get text back", with
# concrete implementations for Anthropic (Claude) and OpenAI-compatible APIs
# (OpenAI, DeepSeek, Qwen, local gateways).
#
# Providers make exactly ONE request per call. Retrying is the model
# invoker's job (services/invoker.py); the SDK clients are built with
# max_retries=0 so the two retry layers never stack.
#
# ERROR MAPPING:
#   HTTP 429 (rate limited) / 503 (unavailable) → TransientModelError
#   any other SDK failure                       → ModelInvocationError
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API
#   └── get_llm_provider()       — Singleton factory, reads from config
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from anthropic import APIError as AnthropicAPIError
from anthropic import AsyncAnthropic
from openai import APIError as OpenAIAPIError
from openai import AsyncOpenAI

from app.config import settings
from app.exceptions import ModelInvocationError, TransientModelError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 503})


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises the different response formats (Anthropic vs OpenAI)
    into a single structure that downstream code can consume.
    """

    content: str           # The generated text
    model: str             # Model identifier
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the model endpoint interface.

    Implementations raise TransientModelError for retryable failures and
    ModelInvocationError for everything else.
    """

    async def complete(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
    ) -> LLMResponse:
        """
        Send a single-turn user prompt and return the generated text.

        Args:
            model: Provider-specific model identifier.
            prompt: User message content.
            max_tokens: Maximum output tokens.
            temperature: Sampling temperature.
            top_p: Nucleus sampling mass.
        """
        ...


def _map_sdk_error(exc: Exception, provider: str) -> ModelInvocationError:
    status_code = getattr(exc, "status_code", None)
    message = f"{provider} request failed: {exc}"
    if status_code in TRANSIENT_STATUS_CODES:
        return TransientModelError(message, status_code=status_code)
    return ModelInvocationError(message, status_code=status_code)


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Anthropic Claude provider using the native async SDK."""

    def __init__(self, api_key: str | None = None) -> None:
        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key, max_retries=0)
        logger.info("Initialized AnthropicProvider")

    async def complete(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
    ) -> LLMResponse:
        """
        Generate a completion using Claude.

        top_p is accepted for interface parity but not sent: current Claude
        models reject requests that set both temperature and top_p.
        """
        try:
            response = await self._client.messages.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except AnthropicAPIError as exc:
            raise _map_sdk_error(exc, "anthropic") from exc

        # First text block carries the answer
        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI chat completions API.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        CLASSIFICATION_MODEL_ID=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key, "max_retries": 0}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)

        logger.info(
            "Initialized OpenAICompatibleProvider (base_url=%s)",
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
                top_p=top_p,
            )
        except OpenAIAPIError as exc:
            raise _map_sdk_error(exc, "openai_compatible") from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        # Token counts: OpenAI uses different field names than Anthropic
        usage = response.usage
        return LLMResponse(
            content=content,
            model=response.model or model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

# Lazy singleton — avoid re-creating the client on every call
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Factory that returns the configured LLM provider.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicProvider (Claude)
    - "openai_compatible" → OpenAICompatibleProvider

    Raises:
        ValueError: If the selected provider has no API key configured.
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider
