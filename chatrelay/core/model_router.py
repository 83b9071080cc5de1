"""Model router: completion calls through LiteLLM.

Talks to OpenAI (or any OpenAI-compatible server via ``base_url``), with a
per-attempt deadline and bounded retries on transient failures.
"""

from __future__ import annotations

import asyncio
from typing import Any

import litellm
import structlog

from chatrelay.config import OpenAIConfig
from chatrelay.core.errors import ProviderError
from chatrelay.core.types import ModelResponse

logger = structlog.get_logger()

# Suppress LiteLLM's verbose logging
litellm.suppress_debug_info = True

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


class ModelRouter:
    """Sends chat completion requests to the configured model."""

    def __init__(self, config: OpenAIConfig) -> None:
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model

    def _retry_delay(self, attempt: int) -> float:
        return min(self.config.retry_base_delay * (2 ** attempt), self.config.retry_max_delay)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        max_tokens: int | None = None,
        user: str | None = None,
    ) -> ModelResponse:
        """Send a completion request and return the parsed response.

        Transient errors are retried up to ``max_retries`` times with
        exponential backoff; anything else, or running out of attempts,
        raises ProviderError.
        """
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "timeout": self.config.timeout,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if user:
            kwargs["user"] = user
        api_key = self.config.get_api_key()
        if api_key:
            kwargs["api_key"] = api_key
        if self.config.base_url:
            kwargs["api_base"] = self.config.base_url

        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            try:
                logger.debug("model_request", model=self.config.model, attempt=attempt + 1)
                response = await asyncio.wait_for(
                    litellm.acompletion(**kwargs),
                    timeout=self.config.timeout,
                )
                return self._parse_response(response)

            except TRANSIENT_ERRORS as e:
                if attempt + 1 >= attempts:
                    raise ProviderError(
                        f"Model {self.config.model} failed after {attempts} attempts: {e}"
                    ) from e
                delay = self._retry_delay(attempt)
                logger.warning(
                    "model_retry",
                    model=self.config.model,
                    attempt=attempt + 1,
                    delay=delay,
                    error=str(e) or type(e).__name__,
                )
                await asyncio.sleep(delay)

            except Exception as e:
                raise ProviderError(f"Model {self.config.model} failed: {e}") from e

        raise ProviderError(f"Model {self.config.model} was never called")

    def _parse_response(self, response: Any) -> ModelResponse:
        """Parse LiteLLM response into ModelResponse."""
        choice = response.choices[0] if response.choices else None
        if not choice:
            return ModelResponse(model=self.config.model)

        prompt_tokens = completion_tokens = None
        usage = getattr(response, "usage", None)
        if usage:
            prompt_tokens = getattr(usage, "prompt_tokens", None)
            completion_tokens = getattr(usage, "completion_tokens", None)

        return ModelResponse(
            content=choice.message.content,
            model=self.config.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            finish_reason=getattr(choice, "finish_reason", "") or "",
        )
