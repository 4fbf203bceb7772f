"""Abstract LLM provider interface.

Messages passed to providers use one neutral shape, converted to each SDK's
native format inside the provider:

    {"role": "user" | "assistant" | "system", "content": str}
    {"role": "assistant", "content": str,
     "tool_calls": [{"id": str, "name": str, "arguments": dict}]}
    {"role": "tool", "tool_call_id": str, "name": str, "content": str}

``system`` entries inside the message list are folded into the system prompt.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exception class names and HTTP statuses both SDKs use for overload / rate limit
_RETRYABLE_NAMES = frozenset({"OverloadedError", "RateLimitError"})
_RETRYABLE_STATUSES = frozenset({429, 529})
_RETRYABLE_BODY_TYPES = frozenset({"overloaded_error", "rate_limit_error"})


@dataclass
class LLMResponse:
    """What one provider round trip produced.

    ``tool_calls`` is ``[{id, name, arguments}]``; empty when the model only
    wrote text. ``usage`` holds prompt/completion/total token counts when the
    SDK reports them; ``metadata`` carries extras such as the stop reason.
    """

    content: str
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    raw_response: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def split_system_messages(
    messages: List[Dict[str, Any]],
    system: Optional[str],
) -> tuple[str, List[Dict[str, Any]]]:
    """Fold inline system messages into the system prompt."""
    parts = [system] if system else []
    parts += [str(m["content"]) for m in messages if m.get("role") == "system" and m.get("content")]
    return "\n\n".join(parts), [m for m in messages if m.get("role") != "system"]


# Stands in for turns compressed out of a history whose tail opens mid-exchange
CONTINUATION_PROMPT = "(Earlier turns are summarized in the system prompt. Continue the story.)"


def lead_with_user(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Prepend a user turn when the history opens on anything else.

    Anthropic and Gemini reject a conversation whose first turn is not the user's.
    """
    if messages and messages[0].get("role") != "user":
        return [{"role": "user", "content": CONTINUATION_PROMPT}, *messages]
    return messages


class LLMProvider(ABC):
    """Base for the Anthropic, OpenAI and Google providers.

    Two entry points: ``complete`` for plain text (Director, summarizer) and
    ``tool_step`` for one round of the Storyteller loop. SDK clients are
    created lazily on first use.
    """

    def __init__(self, api_key: str, default_model: Optional[str] = None):
        self.api_key = api_key
        self.default_model = default_model or self.get_default_model()
        self._client = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name ('anthropic', 'google', 'openai')."""

    @abstractmethod
    def get_default_model(self) -> str: ...

    @abstractmethod
    def get_fast_model(self) -> str:
        """Cheap tier: the history summarizer."""

    @abstractmethod
    def get_creative_model(self) -> str:
        """Quality tier: Director and Storyteller."""

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a text completion. ``model`` defaults to the provider default."""

    @abstractmethod
    async def tool_step(
        self,
        messages: List[Dict[str, Any]],
        tools: Any,  # ToolRegistry; typed loosely to keep llm.tools import-free here
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Run exactly one model round trip with tools available.

        Tools are NOT executed here; the caller owns the loop. The response
        carries any text plus ``tool_calls`` as ``[{id, name, arguments}]``.
        """

    # ── Retry ─────────────────────────────────────────────────────

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        """True for transient overload / rate-limit errors from either SDK."""
        if type(exc).__name__ in _RETRYABLE_NAMES:
            return True
        if getattr(exc, "status_code", None) in _RETRYABLE_STATUSES:
            return True
        body = getattr(exc, "body", None)
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("type") in _RETRYABLE_BODY_TYPES:
                return True
        return False

    async def _run_with_retry(
        self,
        sync_fn: Callable[..., T],
        max_retries: int = 3,
        base_delay: float = 2.0,
    ) -> T:
        """Run a blocking SDK call in the default executor, backing off on overload.

        Non-retryable errors, and the last retryable one, propagate.
        """
        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            try:
                return await loop.run_in_executor(None, sync_fn)
            except Exception as exc:
                if attempt >= max_retries or not self._is_retryable(exc):
                    raise
                attempt += 1
                delay = base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"[{self.name}] {type(exc).__name__}, retry {attempt}/{max_retries} in {delay:.0f}s"
                )
                await asyncio.sleep(delay)

    # ── Client lifecycle ─────────────────────────────────────────

    def _ensure_client(self):
        if self._client is None:
            self._init_client()

    @abstractmethod
    def _init_client(self):
        """Create the SDK client."""
