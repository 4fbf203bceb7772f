"""
Lenient decoding of JSON produced by language models.

Models wrap JSON in markdown fences, prefix it with prose, or emit it
half-finished.  Every caller goes through ``decode_llm_json`` (or the
pydantic-validating ``decode_llm_object``) and branches on the typed
result instead of catching exceptions.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


@dataclass(frozen=True)
class DecodeOk(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class DecodeError:
    reason: str
    raw: str = ""

    @property
    def ok(self) -> bool:
        return False


DecodeResult = Union[DecodeOk, DecodeError]


def strip_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def _first_balanced_object(text: str) -> str | None:
    """Return the first top-level ``{...}`` span, honouring string literals."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def decode_llm_json(text: Any) -> DecodeResult:
    """Best-effort JSON decode. Never raises."""
    if not isinstance(text, str):
        return DecodeError(f"expected text, got {type(text).__name__}")
    if not text.strip():
        return DecodeError("empty response", raw=text)

    body = strip_fences(text)
    try:
        return DecodeOk(json.loads(body))
    except json.JSONDecodeError as e:
        first_error = str(e)

    candidate = _first_balanced_object(body)
    if candidate is not None:
        try:
            return DecodeOk(json.loads(candidate))
        except json.JSONDecodeError:
            pass

    return DecodeError(f"invalid JSON: {first_error}", raw=text)


def decode_llm_object(text: Any, model: type[M]) -> Union[DecodeOk, DecodeError]:
    """Decode and validate into a pydantic model."""
    result = decode_llm_json(text)
    if isinstance(result, DecodeError):
        return result
    if not isinstance(result.value, dict):
        return DecodeError(
            f"expected a JSON object, got {type(result.value).__name__}",
            raw=text if isinstance(text, str) else "",
        )
    try:
        return DecodeOk(model.model_validate(result.value))
    except ValidationError as e:
        return DecodeError(f"schema mismatch: {e.error_count()} error(s): {e.errors()[0]['msg']}",
                           raw=text if isinstance(text, str) else "")
