"""
Tool infrastructure for the Storyteller loop.

A ToolRegistry holds the tools one turn may call. It validates what the model
sends before any handler runs, executes handlers without ever raising, and
renders its tools into each provider's schema.

Usage:
    registry = ToolRegistry()
    registry.register(ToolDefinition(
        name="recordFlag",
        description="Record a story flag",
        parameters=[ToolParam("flagName", "str", "Flag name")],
        handler=lambda flagName, value=True: plot.record_flag(session_id, flagName, value),
    ))

    anthropic_tools = registry.to_anthropic_format()
"""

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


# type name -> (JSON Schema fragment, runtime check); aliases share entries
_TYPES: Dict[str, Tuple[dict, Optional[Callable[[Any], bool]]]] = {
    "str": ({"type": "string"}, lambda v: isinstance(v, str)),
    "int": ({"type": "integer"}, _is_int),
    "float": ({"type": "number"}, _is_number),
    "bool": ({"type": "boolean"}, lambda v: isinstance(v, bool)),
    "list": ({"type": "array", "items": {"type": "string"}}, lambda v: isinstance(v, list)),
    "object": ({"type": "object"}, lambda v: isinstance(v, dict)),
    "object_list": (
        {"type": "array", "items": {"type": "object"}},
        lambda v: isinstance(v, list) and all(isinstance(i, dict) for i in v),
    ),
    "any": ({}, None),
}
_TYPE_ALIASES = {"string": "str", "integer": "int", "number": "float", "boolean": "bool", "array": "list"}


def _type_entry(type_name: str) -> Tuple[dict, Optional[Callable[[Any], bool]]]:
    key = type_name.lower()
    return _TYPES.get(_TYPE_ALIASES.get(key, key), ({"type": "string"}, None))


@dataclass
class ToolParam:
    """One argument of a tool."""
    name: str
    type: str  # a key of _TYPES or one of its aliases
    description: str
    required: bool = True
    default: Any = None
    enum: Optional[List[str]] = None

    def schema(self) -> dict:
        prop = dict(_type_entry(self.type)[0])
        prop["description"] = self.description
        if self.enum:
            prop["enum"] = list(self.enum)
        return prop

    def check(self, value: Any) -> Optional[str]:
        """Problem with ``value`` for this parameter, or None."""
        checker = _type_entry(self.type)[1]
        if checker and not checker(value):
            return f"argument '{self.name}' should be {self.type}, got {type(value).__name__}"
        if self.enum and value not in self.enum:
            return f"argument '{self.name}' must be one of {self.enum}, got {value!r}"
        return None


@dataclass
class ToolDefinition:
    """A tool the Storyteller can call.

    ``terminal`` marks a tool whose invocation ends the loop (yield).
    """
    name: str
    description: str
    parameters: List[ToolParam]
    handler: Callable
    terminal: bool = False

    def get_required_params(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def get_optional_params(self) -> List[str]:
        return [p.name for p in self.parameters if not p.required]

    def json_schema(self) -> dict:
        schema: dict = {
            "type": "object",
            "properties": {p.name: p.schema() for p in self.parameters},
        }
        required = self.get_required_params()
        if required:
            schema["required"] = required
        return schema


@dataclass
class ToolResult:
    """Outcome of one tool call, as fed back to the model."""
    tool_name: str
    arguments: Dict[str, Any]
    result: Any
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        if self.error:
            return False
        return not (isinstance(self.result, dict) and self.result.get("ok") is False)

    def to_string(self) -> str:
        if self.error:
            return f"Error calling {self.tool_name}: {self.error}"
        if self.result is None:
            return "ok"
        if isinstance(self.result, (dict, list)):
            try:
                return json.dumps(self.result, indent=2, default=str)
            except (TypeError, ValueError):
                pass
        return str(self.result)


@dataclass
class ToolCallLog:
    """Trace entry for one executed (or rejected) call."""
    tool_name: str
    arguments: Dict[str, Any]
    result_preview: str
    round_number: int


def _accepted_kwargs(handler: Callable, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Arguments the handler's signature accepts; None values fall back to defaults."""
    params = inspect.signature(handler).parameters
    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values()):
        return dict(arguments)
    return {k: v for k, v in arguments.items() if k in params and v is not None}


class ToolRegistry:
    """Named tools for one loop, in registration order."""

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}
        self._call_log: List[ToolCallLog] = []

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool. A second registration under the same name replaces the first."""
        self._tools[tool.name] = tool
        logger.debug(f"[ToolRegistry] Registered tool: {tool.name}")

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    @property
    def call_log(self) -> List[ToolCallLog]:
        return self._call_log

    def validate(self, tool_name: str, arguments: Any) -> Optional[str]:
        """Check arguments against the declared parameters.

        Returns an error message, or None when the input is acceptable.
        A None value counts as absent.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            return f"Unknown tool: {tool_name}. Available tools: {', '.join(self._tools)}"
        if not isinstance(arguments, dict):
            return f"Arguments must be an object, got {type(arguments).__name__}"

        problems = []
        for param in tool.parameters:
            value = arguments.get(param.name)
            if value is None:
                if param.required:
                    problems.append(f"missing required argument '{param.name}'")
                continue
            problem = param.check(value)
            if problem:
                problems.append(problem)
        return "; ".join(problems) or None

    def execute(self, tool_name: str, arguments: Dict[str, Any], round_number: int = 0) -> ToolResult:
        """Validate, then run the handler. Never raises; failures land in ``error``."""
        safe_args = arguments if isinstance(arguments, dict) else {}
        problem = self.validate(tool_name, arguments)
        if problem:
            logger.warning(f"[Tool] {tool_name} rejected: {problem}")
            return self._record(ToolResult(tool_name, safe_args, None, error=problem), round_number)

        handler = self._tools[tool_name].handler
        try:
            output = handler(**_accepted_kwargs(handler, arguments))
        except Exception as e:
            logger.warning(f"[Tool] {tool_name} failed: {e}")
            return self._record(
                ToolResult(tool_name, arguments, None, error=f"{type(e).__name__}: {e}"), round_number
            )

        logger.info(f"[Tool] {tool_name}({arguments}) → {str(output)[:100]}")
        return self._record(ToolResult(tool_name, arguments, output), round_number)

    def _record(self, result: ToolResult, round_number: int) -> ToolResult:
        self._call_log.append(ToolCallLog(
            tool_name=result.tool_name,
            arguments=result.arguments,
            result_preview=result.to_string()[:200],
            round_number=round_number,
        ))
        return result

    # -------------------------------------------------------------------
    # Provider schemas
    # -------------------------------------------------------------------

    def to_google_format(self) -> list:
        """google.genai Tool wrapping one FunctionDeclaration per tool."""
        from google.genai import types

        return [types.Tool(function_declarations=[
            types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters_json_schema=tool.json_schema() if tool.parameters else None,
            )
            for tool in self._tools.values()
        ])]

    def to_anthropic_format(self) -> list:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.json_schema()}
            for t in self._tools.values()
        ]

    def to_openai_format(self) -> list:
        return [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.json_schema()},
            }
            for t in self._tools.values()
        ]
