"""Anthropic Claude LLM provider."""

import logging
import os
from typing import Any, Dict, List, Optional

from .provider import LLMProvider, LLMResponse, lead_with_user, split_system_messages

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider implementation.

    Haiku for the fast tier (summaries), Sonnet for the Director and the
    Storyteller loop.
    """

    @property
    def name(self) -> str:
        return "anthropic"

    def get_default_model(self) -> str:
        return "claude-sonnet-4-5"

    def get_fast_model(self) -> str:
        return "claude-haiku-4-5"

    def get_creative_model(self) -> str:
        """Get creative model - defaults to Sonnet, can be set to Opus via env var."""
        preference = os.getenv("ANTHROPIC_CREATIVE_MODEL", "sonnet").lower()
        if preference == "opus":
            return "claude-opus-4-6"
        return "claude-sonnet-4-5"

    def _init_client(self):
        """Initialize the Anthropic client."""
        import anthropic
        self._client = anthropic.Anthropic(api_key=self.api_key)

    @staticmethod
    def _to_native(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Convert neutral messages to Anthropic content blocks.

        Consecutive tool results collapse into one user turn.
        """
        native: List[Dict[str, Any]] = []
        for msg in lead_with_user(messages):
            role = msg.get("role")
            if role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id", ""),
                    "content": str(msg.get("content", "")),
                }
                if native and native[-1]["role"] == "user" and isinstance(native[-1]["content"], list) \
                        and native[-1]["content"] and native[-1]["content"][0].get("type") == "tool_result":
                    native[-1]["content"].append(block)
                else:
                    native.append({"role": "user", "content": [block]})
            elif role == "assistant" and msg.get("tool_calls"):
                blocks: List[Dict[str, Any]] = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for call in msg["tool_calls"]:
                    blocks.append({
                        "type": "tool_use",
                        "id": call["id"],
                        "name": call["name"],
                        "input": call.get("arguments") or {},
                    })
                native.append({"role": "assistant", "content": blocks})
            elif role in ("user", "assistant"):
                native.append({"role": role, "content": str(msg.get("content", ""))})
        return native

    @staticmethod
    def _usage(response) -> Dict[str, int]:
        if not hasattr(response, "usage") or response.usage is None:
            return {}
        return {
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
        }

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a text completion using Claude."""
        self._ensure_client()

        model_name = model or self.default_model
        system_text, rest = split_system_messages(messages, system)

        kwargs = {
            "model": model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_text,
            "messages": self._to_native(rest),
        }

        # Use streaming to prevent truncation issues with long responses
        def _stream_and_collect():
            full_text = ""
            with self._client.messages.stream(**kwargs) as stream:
                for text in stream.text_stream:
                    full_text += text
                final_message = stream.get_final_message()
            return full_text, final_message

        full_text, final_message = await self._run_with_retry(_stream_and_collect)

        return LLMResponse(
            content=full_text,
            model=model_name,
            usage=self._usage(final_message),
            raw_response=final_message,
        )

    async def tool_step(
        self,
        messages: List[Dict[str, Any]],
        tools: Any,  # ToolRegistry
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """One messages.create round with tools; tool_use blocks are returned, not run."""
        self._ensure_client()

        model_name = model or self.default_model
        system_text, rest = split_system_messages(messages, system)

        kwargs = {
            "model": model_name,
            "max_tokens": max_tokens,
            "system": system_text,
            "messages": self._to_native(rest),
            "tools": tools.to_anthropic_format(),
        }

        response = await self._run_with_retry(
            lambda kwargs=kwargs: self._client.messages.create(**kwargs)
        )

        text_parts = []
        tool_calls = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use":
                tool_calls.append({
                    "id": block.id,
                    "name": block.name,
                    "arguments": block.input if isinstance(block.input, dict) else {},
                })

        logger.debug(f"[ToolStep/Anthropic] {len(tool_calls)} tool call(s), stop={response.stop_reason}")
        return LLMResponse(
            content="\n".join(text_parts),
            tool_calls=tool_calls,
            model=model_name,
            usage=self._usage(response),
            raw_response=response,
            metadata={"stop_reason": response.stop_reason},
        )
