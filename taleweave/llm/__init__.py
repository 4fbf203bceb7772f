"""LLM provider package - Multi-provider support for Taleweave."""

from .manager import LLMManager, get_llm_manager
from .provider import LLMProvider, LLMResponse
from .tools import ToolDefinition, ToolParam, ToolRegistry, ToolResult

__all__ = [
    "LLMProvider", "LLMResponse", "LLMManager", "get_llm_manager",
    "ToolDefinition", "ToolParam", "ToolResult", "ToolRegistry",
]
