"""Base agent class for all Taleweave agents."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..llm import LLMProvider, LLMResponse, get_llm_manager

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).parent.parent / "prompts"


class BaseAgent(ABC):
    """Shared plumbing for the Director, Storyteller and Context Compressor.

    The provider is looked up from the LLM manager on every call, so a
    manager swapped in at runtime (or patched in tests) takes effect at once.
    """

    agent_name: str = "unknown"

    def __init__(self, model_override: str | None = None):
        self._model_override = model_override

    @staticmethod
    def _load_prompt_file(filename: str, fallback: str = "") -> str:
        """Text of ``prompts/<filename>``, or ``fallback`` when it is missing."""
        path = _PROMPTS_DIR / filename
        if not path.exists():
            logger.warning(f"[Agent] prompt file {filename} missing, using built-in fallback")
            return fallback
        return path.read_text(encoding="utf-8").strip()

    def _get_provider_and_model(self) -> tuple[LLMProvider, str]:
        manager = get_llm_manager()
        if self._model_override:
            return manager.get_provider(), self._model_override
        return manager.get_provider_for_agent(self.agent_name)

    @property
    @abstractmethod
    def system_prompt(self) -> str: ...

    async def complete_text(
        self,
        user_message: str,
        system_prompt_override: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """One free-form completion with this agent's provider and model."""
        provider, model = self._get_provider_and_model()
        system = self.system_prompt if system_prompt_override is None else system_prompt_override
        return await provider.complete(
            messages=[{"role": "user", "content": user_message}],
            system=system,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    @staticmethod
    def _build_message(sections: dict[str, Any]) -> str:
        """Join titled prompt sections, skipping empty ones."""
        return "\n\n".join(
            f"═══ {title} ═══\n{body}"
            for title, body in sections.items()
            if body is not None and body != ""
        )
