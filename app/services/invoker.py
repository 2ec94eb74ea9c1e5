# =============================================================================
# Model Invoker — Retry With Linear Backoff Around the Model Endpoint
# =============================================================================
#
# invoke(model_id, prompt) -> text
#
# RETRY POLICY:
#   - Up to `max_retries` attempts in total (default 3).
#   - Only TransientModelError (429 / 503) is retried. Any other failure
#     propagates on the first occurrence.
#   - Linear backoff: after failed attempt N (1-based) wait
#     retry_delay_ms * N before the next one → 1s, 2s, 3s, ...
#   - Exhaustion raises ModelRetriesExhaustedError, a fatal
#     ModelInvocationError, chained to the last transient error.
#
# Model parameters (max tokens, temperature, top-p) are fixed at
# construction and identical for every attempt.
#
# CANCELLATION: asyncio.CancelledError is never caught here, so cancelling
# the worker task aborts an in-flight request or backoff sleep immediately.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from app.config import settings
from app.exceptions import ModelRetriesExhaustedError, TransientModelError
from app.services.llm import LLMProvider, get_llm_provider

logger = logging.getLogger(__name__)


class ModelInvoker:
    """
    Sends prompts to the configured model endpoint with transient-error retry.

    The provider is resolved lazily on the first call, so a missing API key
    surfaces as an invocation failure (and a degraded enrichment result)
    instead of preventing the service from starting.
    """

    def __init__(
        self,
        provider: LLMProvider | None = None,
        max_retries: int | None = None,
        retry_delay_ms: int | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._max_retries = settings.llm_max_retries if max_retries is None else max_retries
        self._retry_delay_ms = (
            settings.llm_retry_delay_ms if retry_delay_ms is None else retry_delay_ms
        )
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = settings.llm_temperature if temperature is None else temperature
        self._top_p = settings.llm_top_p if top_p is None else top_p
        self._sleep = sleep

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider()
        return self._provider

    def backoff_seconds(self, attempt: int) -> float:
        """Delay after failed attempt `attempt` (1-based)."""
        return self._retry_delay_ms * attempt / 1000

    async def invoke(self, model_id: str, prompt: str) -> str:
        """
        Send `prompt` to `model_id` and return the generated text.

        Raises:
            ModelRetriesExhaustedError: Every attempt was rate limited or
                hit an unavailable service.
            ModelInvocationError: Any non-transient failure (not retried).
            ValueError: No API key configured for the provider.
        """
        provider = self.provider
        last_error: TransientModelError | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                response = await provider.complete(
                    model=model_id,
                    prompt=prompt,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                    top_p=self._top_p,
                )
            except TransientModelError as exc:
                last_error = exc
                if attempt >= self._max_retries:
                    break
                delay = self.backoff_seconds(attempt)
                logger.warning(
                    "Transient model error | model=%s attempt=%d/%d status=%s "
                    "retrying in %.1fs",
                    model_id, attempt, self._max_retries, exc.status_code, delay,
                )
                await self._sleep(delay)
                continue

            logger.debug(
                "Model call succeeded | model=%s attempt=%d in=%d out=%d",
                model_id, attempt, response.input_tokens, response.output_tokens,
            )
            return response.content

        logger.error(
            "Model %s failed after %d attempts", model_id, self._max_retries
        )
        raise ModelRetriesExhaustedError(model_id, self._max_retries) from last_error
