"""OpenAI ChatGPT LLM provider."""

import json
import logging
from typing import Any

from .provider import LLMProvider, LLMResponse, split_system_messages

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI ChatGPT provider implementation (Chat Completions API)."""

    @property
    def name(self) -> str:
        return "openai"

    def get_default_model(self) -> str:
        return "gpt-5.2"

    def get_fast_model(self) -> str:
        return "gpt-5-mini"

    def get_creative_model(self) -> str:
        return "gpt-5.2"

    def _init_client(self):
        """Initialize the OpenAI client."""
        import openai
        self._client = openai.OpenAI(api_key=self.api_key)

    @staticmethod
    def _to_native(messages: list[dict[str, Any]], system: str) -> list[dict[str, Any]]:
        native: list[dict[str, Any]] = []
        if system:
            native.append({"role": "system", "content": system})
        for msg in messages:
            role = msg.get("role")
            if role == "tool":
                native.append({
                    "role": "tool",
                    "tool_call_id": msg.get("tool_call_id", ""),
                    "content": str(msg.get("content", "")),
                })
            elif role == "assistant" and msg.get("tool_calls"):
                native.append({
                    "role": "assistant",
                    "content": msg.get("content") or "",
                    "tool_calls": [
                        {
                            "id": call["id"],
                            "type": "function",
                            "function": {
                                "name": call["name"],
                                "arguments": json.dumps(call.get("arguments") or {}),
                            },
                        }
                        for call in msg["tool_calls"]
                    ],
                })
            elif role in ("user", "assistant"):
                native.append({"role": role, "content": str(msg.get("content", ""))})
        return native

    @staticmethod
    def _model_kwargs(model_name: str, max_tokens: int, temperature: float) -> dict[str, Any]:
        # GPT-5/o1 reject temperature and use max_completion_tokens
        if "gpt-5" in model_name or "o1" in model_name:
            return {"max_completion_tokens": max_tokens}
        return {"max_tokens": max_tokens, "temperature": temperature}

    @staticmethod
    def _usage(response) -> dict[str, int]:
        if not getattr(response, "usage", None):
            return {}
        return {
            "prompt_tokens": response.usage.prompt_tokens or 0,
            "completion_tokens": response.usage.completion_tokens or 0,
            "total_tokens": response.usage.total_tokens or 0,
        }

    async def complete(
        self,
        messages: list[dict[str, Any]],
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a text completion using ChatGPT."""
        self._ensure_client()

        model_name = model or self.default_model
        system_text, rest = split_system_messages(messages, system)

        kwargs = {
            "model": model_name,
            "messages": self._to_native(rest, system_text),
            **self._model_kwargs(model_name, max_tokens, temperature),
        }

        try:
            response = await self._run_with_retry(
                lambda: self._client.chat.completions.create(**kwargs)
            )
        except Exception as e:
            if self._is_retryable(e):
                raise
            raise RuntimeError(f"OpenAI completion failed for {model_name}: {e}") from e

        choice = response.choices[0] if response.choices else None
        return LLMResponse(
            content=(choice.message.content or "") if choice else "",
            model=model_name,
            usage=self._usage(response),
            raw_response=response,
        )

    async def tool_step(
        self,
        messages: list[dict[str, Any]],
        tools: Any,  # ToolRegistry
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """One chat.completions round with tools; tool calls are returned, not run."""
        self._ensure_client()

        model_name = model or self.default_model
        system_text, rest = split_system_messages(messages, system)

        kwargs = {
            "model": model_name,
            "messages": self._to_native(rest, system_text),
            "tools": tools.to_openai_format(),
            **self._model_kwargs(model_name, max_tokens, 0.3),
        }

        response = await self._run_with_retry(
            lambda kwargs=kwargs: self._client.chat.completions.create(**kwargs)
        )

        choice = response.choices[0] if response.choices else None
        if not choice:
            logger.info("[ToolStep/OpenAI] No choices returned")
            return LLMResponse(content="", model=model_name, usage=self._usage(response))

        message = choice.message
        tool_calls = []
        for tc in message.tool_calls or []:
            try:
                arguments = json.loads(tc.function.arguments) if tc.function.arguments else {}
            except json.JSONDecodeError:
                # Surfaced to the model as a schema violation by the registry
                arguments = {"_raw": tc.function.arguments}
            tool_calls.append({"id": tc.id, "name": tc.function.name, "arguments": arguments})

        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            model=model_name,
            usage=self._usage(response),
            raw_response=response,
            metadata={"stop_reason": choice.finish_reason},
        )
