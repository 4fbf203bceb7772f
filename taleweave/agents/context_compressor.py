"""Context Compressor - keeps the Storyteller's message history bounded.

History is stored flattened: every tool call/result pair the Storyteller made
is folded into a line of assistant text, so no provider ever sees a dangling
tool id. When the history reaches the high-water mark the oldest messages
are summarized into ``story_summary`` and only the tail is kept verbatim.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..config import Config
from ..utils.tasks import safe_create_task
from .base import BaseAgent

logger = logging.getLogger(__name__)

MEMORY_HEADER = "[SEMANTIC MEMORY - PREVIOUSLY ON THIS ADVENTURE]"

_VALID_ROLES = {"user", "assistant", "system", "tool"}

# Set on stored messages whose content already reached story_summary
SUMMARIZED_KEY = "summarized"


# ---------------------------------------------------------------------------
# Tool flattening
# ---------------------------------------------------------------------------

def _flatten_frame(args: dict) -> str:
    frame = args.get("frame", args)
    if isinstance(frame, str):
        try:
            frame = json.loads(frame)
        except json.JSONDecodeError:
            return "[Already shown scene frame]: Scene advanced."
    if not isinstance(frame, dict):
        return "[Already shown scene frame]: Scene advanced."
    if set(frame) == {"frame"} and isinstance(frame["frame"], dict):
        frame = frame["frame"]

    parts = []
    if frame.get("narration"):
        parts.append(str(frame["narration"]))
    dialogue = frame.get("dialogue")
    if isinstance(dialogue, dict) and dialogue.get("text"):
        speaker = dialogue.get("speaker")
        parts.append(f'{speaker + ": " if speaker else ""}"{dialogue["text"]}"')
    choices = frame.get("choices")
    if isinstance(choices, list) and choices:
        texts = [str(c.get("text", "")) for c in choices if isinstance(c, dict)]
        parts.append(f"Choices presented: {' / '.join(texts)}")
    dice = frame.get("diceRoll") or frame.get("dice_roll")
    if isinstance(dice, dict):
        parts.append(f"Dice: {dice.get('diceNotation', '2d6')} for {dice.get('description') or 'check'}")
    check = frame.get("skillCheck") or frame.get("skill_check")
    if isinstance(check, dict):
        outcome = check.get("band") or ("passed" if check.get("succeeded") else "failed")
        parts.append(f"Skill check: {check.get('stat', '?')} total {check.get('total', '?')} -> {outcome}")
    frame_type = frame.get("type") or "scene"
    return f"[Already shown {frame_type} frame]: {' '.join(parts) or 'Scene advanced.'}"


def _flatten_travel_result(content: str) -> str | None:
    try:
        result = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(result, dict) and result.get("ok"):
        return f"[System Arrived]: {result.get('new_location_title') or result.get('new_location_id')}"
    return None


TOOL_CALL_FLATTENERS: dict[str, Callable[[dict], str]] = {
    "buildFrame": _flatten_frame,
    "readPlotState": lambda a: "[System Checked Plot State]",
    "frameGuide": lambda a: f"[System Read Frame Guide]: {a.get('frameType')}",
    "mutatePlayerStats": lambda a: f"[System Modified Player Stats]: Action - {a.get('action')}",
    "recordFlag": lambda a: f"[System Recorded Player Action FLAG]: {a.get('flagName')} = {a.get('value')}",
    "travel": lambda a: f"[System Travel]: Moving to location {a.get('targetLocationId')}",
    "completeEncounter": lambda a: f"[System Completed Encounter]: {a.get('encounterId')}",
    "advanceBeat": lambda a: "[System Advanced Story Beat]",
    "completeNode": lambda a: (
        f"[System Completed Node]: Transitioning to {a.get('nextLocationId') or 'the next location'}"
    ),
    "initializeCombat": lambda a: "[System Initialized Tactical Combat]",
    "injectCombatEvent": lambda a: "[System Injected Combat Event]: " + ", ".join(
        str(e.get("type")) for e in a.get("events") or [] if isinstance(e, dict)
    ),
    "yieldToPlayer": lambda a: f"[System Yielded Turn To Player]: Waiting for {a.get('waitingFor')}",
}

TOOL_RESULT_FLATTENERS: dict[str, Callable[[str], str | None]] = {
    "travel": _flatten_travel_result,
}


def flatten_tool_pair(name: str, arguments: dict, result_content: str) -> list[str]:
    """Assistant-text lines standing in for one call and its result."""
    call_fn = TOOL_CALL_FLATTENERS.get(name)
    lines = [call_fn(arguments) if call_fn else f"[System Called {name}]"]
    result_fn = TOOL_RESULT_FLATTENERS.get(name)
    if result_fn:
        flat = result_fn(result_content)
        if flat:
            lines.append(flat)
    return lines


def sanitize_history(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop malformed entries and fold tool traffic into assistant text.

    * messages with an unknown role or non-string content are dropped
    * tool results without a matching call are dropped
    * tool calls that never got a result are dropped
    * every surviving call/result pair becomes a flattened line
    """
    clean: list[dict[str, Any]] = []
    for msg in messages:
        if not isinstance(msg, dict) or msg.get("role") not in _VALID_ROLES:
            continue
        content = msg.get("content", "")
        if content is None and msg.get("role") == "assistant" and msg.get("tool_calls"):
            content = ""
        if not isinstance(content, str):
            continue
        clean.append({**msg, "content": content})

    results: dict[str, str] = {}
    call_ids: set[str] = set()
    for msg in clean:
        if msg["role"] == "assistant":
            for call in msg.get("tool_calls") or []:
                if isinstance(call, dict) and call.get("id"):
                    call_ids.add(call["id"])
        elif msg["role"] == "tool" and msg.get("tool_call_id"):
            results[msg["tool_call_id"]] = msg["content"]

    out: list[dict[str, Any]] = []
    for msg in clean:
        role = msg["role"]
        if role == "tool":
            continue  # folded into the calling assistant message (or orphaned)
        if role == "assistant" and msg.get("tool_calls"):
            lines = [msg["content"]] if msg["content"].strip() else []
            for call in msg["tool_calls"]:
                if not isinstance(call, dict) or call.get("id") not in results:
                    continue
                args = call.get("arguments") if isinstance(call.get("arguments"), dict) else {}
                lines.extend(flatten_tool_pair(call.get("name", "?"), args, results[call["id"]]))
            if lines:
                out.append({"role": "assistant", "content": "\n".join(lines)})
            continue
        out.append({"role": role, "content": msg["content"]})

    dropped_results = set(results) - call_ids
    if dropped_results:
        logger.debug(f"[ContextCompressor] dropped {len(dropped_results)} orphan tool results")
    return out


def mark_summarized(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copies of ``messages`` flagged so an overflow pass will not summarize them again."""
    return [{**msg, SUMMARIZED_KEY: True} for msg in messages]


# ---------------------------------------------------------------------------
# Summarizer agent
# ---------------------------------------------------------------------------

class ContextCompressorAgent(BaseAgent):
    """Folds discarded history into the rolling story summary.

    Uses fast-tier model (cheap, high throughput summarization).
    """

    agent_name = "context_compressor"

    @property
    def system_prompt(self) -> str:
        return self._load_prompt_file(
            "context_compressor.md", "You are a narrative compressor for an interactive fiction game."
        )

    async def summarize(
        self,
        messages: list[dict[str, Any]],
        previous_summary: str = "",
        context: str = "in-flight overflow",
    ) -> str:
        """Append a 2-3 sentence account of ``messages`` to ``previous_summary``."""
        lines = []
        for msg in messages:
            role = msg.get("role")
            content = msg.get("content") if isinstance(msg.get("content"), str) else ""
            if role == "user":
                lines.append(f"Player: {content}")
            elif role == "assistant":
                lines.append(f"DM: {content}" if content.strip() else "DM: [Generated Scene Frames]")
        transcript = "\n".join(lines)
        if not transcript.strip():
            return previous_summary

        user_message = (
            f"PREVIOUS SUMMARY:\n{previous_summary or 'No previous events.'}\n\n"
            f"RECENT EVENTS ({context}):\n{transcript}\n\n"
            'Task: Write a concise, 2-3 sentence summary of the "RECENT EVENTS" and append it '
            'logically to the "PREVIOUS SUMMARY". Return ONLY the combined summary text.'
        )
        response = await self.complete_text(user_message, max_tokens=1024, temperature=0.3)
        return response.content.strip() or previous_summary


# ---------------------------------------------------------------------------
# Compression policy
# ---------------------------------------------------------------------------

@dataclass
class CompressedHistory:
    messages: list[dict[str, Any]]
    summary: str
    compressed: bool = False
    dropped: int = 0


class ContextCompressor:
    """Watermark policy over a session's flattened history.

    Below ``high_water`` messages the history passes through untouched
    (``low_water`` only documents the size a freshly compressed history
    settles around). At or above it, everything but the last
    ``retain_tail`` messages is summarized away. The tail is kept exact even
    when it opens on an assistant message; providers that need a user turn
    first add one when converting.

    Every summary write for a session (overflow or scene) runs under that
    session's lock and starts from the stored summary, so concurrent writers
    extend each other instead of overwriting.
    """

    def __init__(
        self,
        plot_manager,
        agent: ContextCompressorAgent | None = None,
        low_water: int | None = None,
        high_water: int | None = None,
        retain_tail: int | None = None,
    ):
        self.plot_manager = plot_manager
        self.agent = agent or ContextCompressorAgent()
        self.low_water = low_water if low_water is not None else Config.CONTEXT_LOW_WATER
        self.high_water = high_water if high_water is not None else Config.CONTEXT_HIGH_WATER
        self.retain_tail = retain_tail if retain_tail is not None else Config.CONTEXT_RETAIN_TAIL
        if not (0 < self.retain_tail < self.high_water):
            raise ValueError("retain_tail must be positive and smaller than high_water")
        if self.low_water > self.high_water:
            raise ValueError("low_water must not exceed high_water")
        self._summary_locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._summary_locks.get(session_id)
        if lock is None:
            lock = self._summary_locks[session_id] = asyncio.Lock()
        return lock

    def forget(self, session_id: str) -> None:
        self._summary_locks.pop(session_id, None)

    def _stored_summary(self, session_id: str, fallback: str) -> str:
        state = self.plot_manager.read(session_id)
        return state.story_summary if state is not None else fallback

    async def compress(
        self,
        session_id: str,
        messages: list[dict[str, Any]],
        summary: str = "",
    ) -> CompressedHistory:
        """Summarize everything but the tail once ``messages`` reaches high water.

        ``summary`` is only used when the session has no stored state; otherwise
        the stored summary is read under the session's lock. Messages already
        marked as summarized are dropped without being sent to the model again.
        """
        if len(messages) < self.high_water:
            return CompressedHistory(messages=list(messages), summary=summary)

        prefix = messages[:-self.retain_tail]
        tail = messages[-self.retain_tail:]
        fresh = [m for m in prefix if not m.get(SUMMARIZED_KEY)]
        logger.info(
            f"[ContextCompressor] {session_id}: {len(messages)} msgs >= {self.high_water}, "
            f"summarizing {len(fresh)} of {len(prefix)}, keeping {len(tail)}"
        )

        async with self._lock_for(session_id):
            current = self._stored_summary(session_id, summary)
            new_summary = current
            if fresh:
                try:
                    new_summary = await self.agent.summarize(
                        fresh, current, context=f"overflow - {len(prefix)} messages discarded"
                    )
                except Exception as e:
                    logger.error(
                        f"[ContextCompressor] {session_id}: summarization failed, truncating anyway: {e}"
                    )
            if new_summary != current:
                self.plot_manager.set_story_summary(session_id, new_summary)

        return CompressedHistory(
            messages=list(tail),
            summary=new_summary,
            compressed=True,
            dropped=len(prefix),
        )

    def summarize_in_background(self, session_id: str, messages: list[dict[str, Any]]):
        """Fold a just-finished scene into the summary without blocking the turn."""
        return safe_create_task(
            self._summarize_scene(session_id, list(messages)),
            name=f"scene-summary-{session_id}",
        )

    async def _summarize_scene(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        try:
            async with self._lock_for(session_id):
                state = self.plot_manager.read(session_id)
                if state is None:
                    return
                new_summary = await self.agent.summarize(
                    messages, state.story_summary, context="just completed scene"
                )
                if new_summary and new_summary != state.story_summary:
                    self.plot_manager.set_story_summary(session_id, new_summary)
                    logger.info(
                        f"[ContextCompressor] {session_id}: scene summary updated ({len(new_summary)} chars)"
                    )
        except Exception as e:
            logger.error(f"[ContextCompressor] {session_id}: scene summary failed: {e}")
