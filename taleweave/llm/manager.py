"""LLM Manager - picks the provider and the model tier for each agent."""

import os
from enum import StrEnum
from typing import Dict, List, Optional, Tuple

from ..config import Config
from .anthropic_provider import AnthropicProvider
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider
from .provider import LLMProvider


class ProviderType(StrEnum):
    GOOGLE = "google"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


_PROVIDER_CLASSES = {
    ProviderType.GOOGLE: GoogleProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.OPENAI: OpenAIProvider,
}

_KEY_ENV_VARS = {
    ProviderType.GOOGLE: "GOOGLE_API_KEY",
    ProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderType.OPENAI: "OPENAI_API_KEY",
}

# Auto-detect order when no provider is requested
_DETECT_ORDER = (ProviderType.GOOGLE, ProviderType.ANTHROPIC, ProviderType.OPENAI)

# Agents on the fast tier; everyone else gets the creative model
_FAST_AGENTS = {"context_compressor"}


class LLMManager:
    """Holds API keys, resolves one primary provider, and caches provider instances.

    Args:
        primary_provider: 'google', 'anthropic' or 'openai'. Ignored when that
            provider has no key; ``LLM_PROVIDER`` and then auto-detection apply.
        google_api_key / anthropic_api_key / openai_api_key: Override the
            matching environment variable.
    """

    def __init__(
        self,
        primary_provider: Optional[str] = None,
        google_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
    ):
        overrides = {
            ProviderType.GOOGLE: google_api_key,
            ProviderType.ANTHROPIC: anthropic_api_key,
            ProviderType.OPENAI: openai_api_key,
        }
        self._keys: Dict[ProviderType, str] = {
            kind: overrides[kind] or os.getenv(env_var, "")
            for kind, env_var in _KEY_ENV_VARS.items()
        }
        self._primary = self._resolve_primary(primary_provider)
        self._providers: Dict[str, LLMProvider] = {}

    def _resolve_primary(self, requested: Optional[str]) -> str:
        for candidate in (requested, os.getenv("LLM_PROVIDER", Config.LLM_PROVIDER)):
            if candidate and self._keys.get(candidate.lower()):
                return candidate.lower()
        for kind in _DETECT_ORDER:
            if self._keys[kind]:
                return str(kind)
        raise ValueError(
            "No LLM API keys configured. Set one of: "
            "GOOGLE_API_KEY, ANTHROPIC_API_KEY, or OPENAI_API_KEY"
        )

    @property
    def primary_provider(self) -> str:
        return self._primary

    def get_provider(self, provider_name: Optional[str] = None) -> LLMProvider:
        """Provider instance for ``provider_name`` (default: primary), created once."""
        name = (provider_name or self._primary).lower()
        provider = self._providers.get(name)
        if provider is None:
            if name not in _PROVIDER_CLASSES:
                raise ValueError(f"Unknown provider: {name}")
            key = self._keys.get(name)
            if not key:
                raise ValueError(f"{name.title()} API key not configured")
            provider = _PROVIDER_CLASSES[name](api_key=key)
            self._providers[name] = provider
        return provider

    def get_provider_for_agent(self, agent_name: str) -> Tuple[LLMProvider, str]:
        """(provider, model) for an agent; config overrides win over provider defaults."""
        provider = self.get_provider()
        if agent_name in _FAST_AGENTS:
            return provider, Config.FAST_MODEL or provider.get_fast_model()
        return provider, Config.CREATIVE_MODEL or provider.get_creative_model()

    def list_available_providers(self) -> List[str]:
        return [str(kind) for kind, key in self._keys.items() if key]


_manager: Optional[LLMManager] = None


def get_llm_manager() -> LLMManager:
    """Process-wide manager, built from the environment on first use."""
    global _manager
    if _manager is None:
        _manager = LLMManager()
    return _manager
