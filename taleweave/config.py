"""Configuration management for Taleweave."""

import os
from pathlib import Path

from dotenv import load_dotenv


# Load environment variables from .env file
def _find_env_file() -> Path | None:
    """Find the .env file, searching up the directory tree."""
    current = Path(__file__).parent
    for _ in range(5):  # Search up to 5 levels
        env_path = current / ".env"
        if env_path.exists():
            return env_path
        current = current.parent
    return None


_env_file = _find_env_file()
if _env_file:
    load_dotenv(_env_file)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


class Config:
    """Application configuration from environment variables."""

    # LLM Provider Selection
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "")  # Empty = auto-detect

    # LLM API Keys
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")

    # Model Overrides (optional)
    FAST_MODEL: str = os.getenv("FAST_MODEL", "")
    CREATIVE_MODEL: str = os.getenv("CREATIVE_MODEL", "")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./taleweave.db")

    # Turn loop
    STORYTELLER_MAX_STEPS: int = _int_env("STORYTELLER_MAX_STEPS", 12)
    STORYTELLER_MAX_TOKENS: int = _int_env("STORYTELLER_MAX_TOKENS", 4096)
    DIRECTOR_MAX_TOKENS: int = _int_env("DIRECTOR_MAX_TOKENS", 2048)

    # Context compression watermarks (message counts)
    CONTEXT_LOW_WATER: int = _int_env("CONTEXT_LOW_WATER", 40)
    CONTEXT_HIGH_WATER: int = _int_env("CONTEXT_HIGH_WATER", 80)
    CONTEXT_RETAIN_TAIL: int = _int_env("CONTEXT_RETAIN_TAIL", 40)

    # Row caches
    CACHE_MAX_ENTRIES: int = _int_env("CACHE_MAX_ENTRIES", 256)

    # Debug
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration, return list of issues."""
        issues = []

        # Check for at least one API key
        if not any([cls.GOOGLE_API_KEY, cls.ANTHROPIC_API_KEY, cls.OPENAI_API_KEY]):
            issues.append(
                "No LLM API keys configured. "
                "Set GOOGLE_API_KEY, ANTHROPIC_API_KEY, or OPENAI_API_KEY in .env"
            )

        if cls.CONTEXT_LOW_WATER > cls.CONTEXT_HIGH_WATER:
            issues.append(
                f"CONTEXT_LOW_WATER ({cls.CONTEXT_LOW_WATER}) must not exceed "
                f"CONTEXT_HIGH_WATER ({cls.CONTEXT_HIGH_WATER})"
            )
        if cls.CONTEXT_RETAIN_TAIL >= cls.CONTEXT_HIGH_WATER:
            issues.append("CONTEXT_RETAIN_TAIL must be smaller than CONTEXT_HIGH_WATER")
        if cls.STORYTELLER_MAX_STEPS < 1:
            issues.append("STORYTELLER_MAX_STEPS must be at least 1")

        return issues

    @classmethod
    def get_available_providers(cls) -> list[str]:
        """Get list of providers with configured API keys."""
        providers = []
        if cls.GOOGLE_API_KEY:
            providers.append("google")
        if cls.ANTHROPIC_API_KEY:
            providers.append("anthropic")
        if cls.OPENAI_API_KEY:
            providers.append("openai")
        return providers

    @classmethod
    def get_database_url(cls) -> str:
        """Get the database URL."""
        return os.getenv("DATABASE_URL", cls.DATABASE_URL)
