"""Token cost strategies for turns stored in the window.

Two strategies are available, picked by ``cost_strategy`` in the config:

- ``usage``: use the usage figures the provider reports for each call, and
  fall back to the character estimate when a response carries none.
- ``estimate``: always use the character estimate (length / 3), plus a fixed
  per-image figure for photos, which are re-sent with every request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from chatrelay.core.types import CompletionRequest, Content, ImageContent, ImageDetail, ModelResponse

CHARS_PER_TOKEN = 3

# Provider image pricing: a flat 85 tokens at low detail, ~765 for a typical photo at high detail
IMAGE_TOKENS = {ImageDetail.LOW: 85, ImageDetail.HIGH: 765}


def estimate_tokens(text: str) -> int:
    """Rough token count for a piece of text, never below 1."""
    return max(1, len(text) // CHARS_PER_TOKEN)


def estimate_content_tokens(content: Content) -> int:
    if isinstance(content, ImageContent):
        return estimate_tokens(content.caption) + IMAGE_TOKENS[content.detail]
    return estimate_tokens(content.text)


class CostStrategy(ABC):
    name: str = "base"

    @abstractmethod
    def system_cost(self, prompt: str, response: ModelResponse | None) -> int:
        """Cost of the system prompt, from the priming call."""

    @abstractmethod
    def user_cost(self, request: CompletionRequest, response: ModelResponse) -> int:
        """Cost of the user turn submitted with ``request``."""

    @abstractmethod
    def assistant_cost(self, text: str, response: ModelResponse) -> int:
        """Cost of the assistant turn holding ``text``."""


class EstimatedCost(CostStrategy):
    name = "estimate"

    def system_cost(self, prompt: str, response: ModelResponse | None) -> int:
        return estimate_tokens(prompt)

    def user_cost(self, request: CompletionRequest, response: ModelResponse) -> int:
        return estimate_content_tokens(request.content)

    def assistant_cost(self, text: str, response: ModelResponse) -> int:
        return estimate_tokens(text)


class UsageCost(EstimatedCost):
    """Provider-reported usage, with the estimate as fallback.

    The prompt of each call contains the whole window, so the new user turn
    costs what the prompt cost beyond the tokens already in the window.
    """

    name = "usage"

    def system_cost(self, prompt: str, response: ModelResponse | None) -> int:
        if response is not None and response.prompt_tokens:
            return response.prompt_tokens
        return super().system_cost(prompt, response)

    def user_cost(self, request: CompletionRequest, response: ModelResponse) -> int:
        if response.prompt_tokens:
            delta = response.prompt_tokens - request.context_tokens
            if delta > 0:
                return delta
        return super().user_cost(request, response)

    def assistant_cost(self, text: str, response: ModelResponse) -> int:
        if response.completion_tokens:
            return response.completion_tokens
        return super().assistant_cost(text, response)


_STRATEGIES: dict[str, type[CostStrategy]] = {
    UsageCost.name: UsageCost,
    EstimatedCost.name: EstimatedCost,
}


def get_cost_strategy(name: str) -> CostStrategy:
    try:
        return _STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"Unknown cost strategy: {name}") from None
