"""Response ingester: commit a completed exchange to the window."""

from __future__ import annotations

import structlog

from chatrelay.core.composer import speaker_prefix
from chatrelay.core.costs import CostStrategy
from chatrelay.core.types import CompletionRequest, ModelResponse, Role, TextContent, Turn, utcnow
from chatrelay.core.window import Window

logger = structlog.get_logger()

FALLBACK_REPLY = "Sorry, I do not know an answer to this. Perhaps try asking differently."
FALLBACK_TOKENS = 16


def clean_answer(text: str, personality_name: str) -> str:
    """Trim the answer and drop a leading "<name> says: " echo."""
    answer = text.strip()
    prefix = speaker_prefix(personality_name)
    if personality_name and answer.startswith(prefix):
        answer = answer[len(prefix):].strip()
    return answer


def ingest(
    window: Window,
    request: CompletionRequest,
    response: ModelResponse,
    costs: CostStrategy,
    personality_name: str,
) -> str:
    """Append the user turn and the answer to the window.

    An empty completion is replaced by a fixed fallback text, which is still
    committed so the conversation stays continuous. Returns the text to send.
    """
    answer = clean_answer(response.content or "", personality_name)

    if answer:
        assistant_tokens = costs.assistant_cost(answer, response)
    else:
        logger.warning("empty_completion", model=response.model, finish_reason=response.finish_reason)
        answer = FALLBACK_REPLY
        assistant_tokens = FALLBACK_TOKENS

    user_turn = Turn(
        role=Role.USER,
        content=request.content,
        tokens=costs.user_cost(request, response),
        timestamp=request.created_at,
    )
    assistant_turn = Turn(
        role=Role.ASSISTANT,
        content=TextContent(answer),
        tokens=assistant_tokens,
        timestamp=utcnow(),
    )
    window.append(user_turn)
    window.append(assistant_turn)
    return answer
