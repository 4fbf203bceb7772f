"""Google Gemini LLM provider using the google.genai SDK."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .provider import LLMProvider, LLMResponse, lead_with_user, split_system_messages

logger = logging.getLogger(__name__)


class GoogleProvider(LLMProvider):
    """Google Gemini provider using the google.genai SDK."""

    @property
    def name(self) -> str:
        return "google"

    def get_default_model(self) -> str:
        return "gemini-3-flash-preview"

    def get_fast_model(self) -> str:
        return "gemini-3-flash-preview"

    def get_creative_model(self) -> str:
        return "gemini-3-pro-preview"

    def _init_client(self):
        """Initialize the Google GenAI client."""
        from google import genai
        self._client = genai.Client(api_key=self.api_key)

    @staticmethod
    def _build_contents(messages: List[Dict[str, Any]]) -> list:
        """Convert neutral messages into genai Content objects."""
        from google.genai import types

        contents = []
        for msg in lead_with_user(messages):
            role = msg.get("role")
            if role == "tool":
                part = types.Part.from_function_response(
                    name=msg.get("name", ""),
                    response={"result": str(msg.get("content", ""))},
                )
                # Function responses for one model turn share a single user turn
                if contents and contents[-1].role == "user" and contents[-1].parts \
                        and getattr(contents[-1].parts[0], "function_response", None):
                    contents[-1].parts.append(part)
                else:
                    contents.append(types.Content(role="user", parts=[part]))
            elif role == "assistant":
                parts = []
                if msg.get("content"):
                    parts.append(types.Part.from_text(text=msg["content"]))
                for call in msg.get("tool_calls") or []:
                    parts.append(types.Part.from_function_call(
                        name=call["name"], args=call.get("arguments") or {}
                    ))
                if parts:
                    contents.append(types.Content(role="model", parts=parts))
            elif role == "user":
                contents.append(types.Content(
                    role="user", parts=[types.Part.from_text(text=str(msg.get("content", "")))]
                ))
        return contents

    @staticmethod
    def _usage(response) -> Dict[str, int]:
        meta = getattr(response, "usage_metadata", None)
        if not meta:
            return {}
        return {
            "prompt_tokens": getattr(meta, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(meta, "candidates_token_count", 0) or 0,
            "total_tokens": getattr(meta, "total_token_count", 0) or 0,
        }

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a text completion using Gemini."""
        self._ensure_client()

        model_name = model or self.default_model
        system_text, rest = split_system_messages(messages, system)
        contents = self._build_contents(rest)

        config = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_text:
            config["system_instruction"] = system_text

        response = await self._run_with_retry(
            lambda: self._client.models.generate_content(
                model=model_name, contents=contents, config=config
            )
        )

        return LLMResponse(
            content=response.text or "",
            model=model_name,
            usage=self._usage(response),
            raw_response=response,
        )

    async def tool_step(
        self,
        messages: List[Dict[str, Any]],
        tools: Any,  # ToolRegistry
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """One generate_content round with function declarations.

        Automatic function calling is disabled; calls are returned to the caller.
        """
        self._ensure_client()
        from google.genai import types

        model_name = model or self.default_model
        system_text, rest = split_system_messages(messages, system)
        contents = self._build_contents(rest)

        config = {
            "max_output_tokens": max_tokens,
            "temperature": 0.3,  # Low temperature for tool-calling reasoning
            "tools": tools.to_google_format(),
            "automatic_function_calling": types.AutomaticFunctionCallingConfig(disable=True),
        }
        if system_text:
            config["system_instruction"] = system_text

        response = await self._run_with_retry(
            lambda: self._client.models.generate_content(
                model=model_name, contents=contents, config=config
            )
        )

        candidate = response.candidates[0] if response.candidates else None
        if not candidate or not candidate.content or not candidate.content.parts:
            logger.info("[ToolStep/Google] No content returned")
            return LLMResponse(content="", model=model_name, usage=self._usage(response))

        text_parts = []
        tool_calls = []
        for part in candidate.content.parts:
            if getattr(part, "function_call", None):
                fc = part.function_call
                tool_calls.append({
                    # Gemini does not always assign call ids
                    "id": getattr(fc, "id", None) or f"call_{uuid.uuid4().hex[:12]}",
                    "name": fc.name,
                    "arguments": dict(fc.args) if fc.args else {},
                })
            elif getattr(part, "text", None):
                text_parts.append(part.text)

        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            model=model_name,
            usage=self._usage(response),
            raw_response=response,
            metadata={"stop_reason": str(getattr(candidate, "finish_reason", ""))},
        )
