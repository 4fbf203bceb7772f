"""Storyteller Agent - the bounded tool loop that renders a turn.

Each step is one ``tool_step`` round trip. The model's tool calls run in
array order against the session-bound registry; results go back as tool
messages and the loop continues until the model yields, stops calling tools,
or runs out of steps.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from ..combat.engine import CombatEngine
from ..config import Config
from ..enums import WaitingFor
from ..frames.models import Frame
from ..frames.registry import core_prompt_section
from ..llm.provider import LLMResponse
from ..llm.tools import ToolRegistry, ToolResult
from ..state.manager import PlotStateManager
from ..story.models import StoryPackage
from ..world.resolver import ResolverView
from .base import BaseAgent
from .context_compressor import MEMORY_HEADER
from .director import DirectionPack
from .storyteller_tools import StorytellerContext, build_storyteller_tools

logger = logging.getLogger(__name__)

COMBAT_TOOLS = ("initializeCombat", "injectCombatEvent")


# ---------------------------------------------------------------------------
# Step outcomes
# ---------------------------------------------------------------------------

@dataclass
class Continue:
    """The model called tools and expects their results."""
    tool_results: list[ToolResult]


@dataclass
class Yielded:
    """The turn ended explicitly (yieldToPlayer, or a forced dice roll)."""
    waiting_for: WaitingFor


@dataclass
class Finished:
    """The model answered without tools: an implicit yield to free text."""
    text: str


@dataclass
class BudgetExhausted:
    steps: int


StepOutcome = Union[Continue, Yielded, Finished]


@dataclass
class StorytellerEvent:
    """Streamed to the transport while the loop runs."""
    type: str  # frame | tool | combat | yield
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


EmitFn = Callable[[StorytellerEvent], Awaitable[None]]


@dataclass
class StorytellerResult:
    frames: list[Frame]
    waiting_for: WaitingFor
    outcome: str  # yielded | finished | budget_exhausted
    steps: int
    messages: list[dict[str, Any]] = field(default_factory=list)
    text: str = ""


def outcome_name(outcome: Yielded | Finished | BudgetExhausted) -> str:
    if isinstance(outcome, Yielded):
        return "yielded"
    if isinstance(outcome, Finished):
        return "finished"
    return "budget_exhausted"


class StorytellerAgent(BaseAgent):
    """Narrates the turn by calling tools: frames out, state changes in."""

    agent_name = "storyteller"

    def __init__(
        self,
        plot_manager: PlotStateManager,
        combat_engine: CombatEngine,
        max_steps: int | None = None,
        model_override: str | None = None,
    ):
        super().__init__(model_override=model_override)
        self.plot_manager = plot_manager
        self.combat_engine = combat_engine
        self.max_steps = max_steps or Config.STORYTELLER_MAX_STEPS
        self._base_prompt = self._load_prompt_file(
            "storyteller.md", "You are the Dungeon Master of a visual-novel adventure."
        )

    @property
    def system_prompt(self) -> str:
        return self._base_prompt

    async def run_turn(
        self,
        session_id: str,
        package: StoryPackage,
        direction: DirectionPack,
        view: ResolverView,
        player_message: str,
        history: list[dict[str, Any]] | None = None,
        summary: str = "",
        emit: EmitFn | None = None,
    ) -> StorytellerResult:
        """Run the tool loop for one player turn.

        Args:
            session_id: Session the tools are bound to
            package: The session's story package
            direction: This turn's DirectionPack
            view: Resolver view computed after the Director's mutations
            player_message: The player's text (dice prefix already applied)
            history: Sanitized prior messages
            summary: Rolling story summary
            emit: Optional async callback for streamed events

        Returns:
            StorytellerResult with the emitted frames and the yield target

        Provider exceptions propagate to the caller.
        """
        ctx = StorytellerContext(
            session_id=session_id,
            package=package,
            plot=self.plot_manager,
            combat=self.combat_engine,
            director_brief=direction.director_brief,
            suggested_encounter_id=direction.suggested_encounter_id,
        )
        tools = build_storyteller_tools(ctx)
        system = self.build_system_prompt(package, direction, view, summary)
        prior = list(history or [])
        turn_messages: list[dict[str, Any]] = [{"role": "user", "content": player_message}]
        provider, model = self._get_provider_and_model()

        final: Yielded | Finished | BudgetExhausted = BudgetExhausted(self.max_steps)
        steps = 0
        for step in range(1, self.max_steps + 1):
            steps = step
            response = await provider.tool_step(
                messages=prior + turn_messages,
                tools=tools,
                system=system,
                model=model,
                max_tokens=Config.STORYTELLER_MAX_TOKENS,
            )
            outcome = await self._run_step(step, response, ctx, tools, turn_messages, emit)
            if isinstance(outcome, (Yielded, Finished)):
                final = outcome
                break
        else:
            logger.warning(
                f"[Storyteller] {session_id}: step budget ({self.max_steps}) exhausted, yielding to free-text"
            )

        waiting_for = final.waiting_for if isinstance(final, Yielded) else WaitingFor.FREE_TEXT
        name = outcome_name(final)
        await _emit(emit, StorytellerEvent("yield", {"waitingFor": str(waiting_for), "outcome": name}))
        logger.info(
            f"[Storyteller] {session_id}: {name} after {steps} steps, "
            f"{len(ctx.frames)} frames, waiting for {waiting_for}"
        )
        return StorytellerResult(
            frames=list(ctx.frames),
            waiting_for=waiting_for,
            outcome=name,
            steps=steps,
            messages=turn_messages,
            text=final.text if isinstance(final, Finished) else "",
        )

    async def _run_step(
        self,
        step: int,
        response: LLMResponse,
        ctx: StorytellerContext,
        tools: ToolRegistry,
        turn_messages: list[dict[str, Any]],
        emit: EmitFn | None,
    ) -> StepOutcome:
        calls = response.tool_calls or []
        if not calls:
            text = response.content or ""
            if text.strip():
                turn_messages.append({"role": "assistant", "content": text})
            return Finished(text)

        turn_messages.append({
            "role": "assistant",
            "content": response.content or "",
            "tool_calls": [
                {"id": c.get("id"), "name": c.get("name"), "arguments": c.get("arguments")}
                for c in calls
            ],
        })

        results: list[ToolResult] = []
        for call in calls:
            name = call.get("name") or ""
            arguments = call.get("arguments")
            if ctx.waiting_for is not None or ctx.dice_roll_pending:
                result = ToolResult(
                    tool_name=name,
                    arguments=arguments if isinstance(arguments, dict) else {},
                    result=None,
                    error="turn already yielded; call skipped",
                )
            else:
                frames_before = len(ctx.frames)
                result = tools.execute(name, arguments, round_number=step)
                await self._emit_for(result, ctx.frames[frames_before:], emit)
            turn_messages.append({
                "role": "tool",
                "tool_call_id": call.get("id"),
                "name": name,
                "content": result.to_string(),
            })
            results.append(result)

        if ctx.dice_roll_pending:
            ctx.waiting_for = WaitingFor.DICE_RESULT
        if ctx.waiting_for is not None:
            return Yielded(ctx.waiting_for)
        return Continue(results)

    async def _emit_for(self, result: ToolResult, new_frames: list[Frame], emit: EmitFn | None) -> None:
        error = result.error
        if error is None and isinstance(result.result, dict) and result.result.get("ok") is False:
            error = result.result.get("error")
        await _emit(emit, StorytellerEvent("tool", {
            "name": result.tool_name,
            "ok": result.ok,
            "error": error,
        }))
        for frame in new_frames:
            await _emit(emit, StorytellerEvent("frame", frame.to_client()))
        if result.tool_name in COMBAT_TOOLS and result.ok and isinstance(result.result, dict):
            await _emit(emit, StorytellerEvent("combat", result.result))

    # ── Prompt assembly ───────────────────────────────────────────

    def build_system_prompt(
        self,
        package: StoryPackage,
        direction: DirectionPack,
        view: ResolverView,
        summary: str = "",
    ) -> str:
        plot = package.plot
        story = "\n".join(line for line in [
            f'Title: "{package.title}"' + (f" ({package.genre})" if package.genre else ""),
            f"Write every player-facing line in language: {package.language}",
            f"Art style: {package.art_style}" if package.art_style else "",
            f"Premise: {plot.premise}",
            f"Setting: {plot.global_context.setting}",
            f"Tone: {plot.global_context.tone}",
            f"Themes: {', '.join(plot.themes)}" if plot.themes else "",
            f"Possible endings: {' | '.join(plot.possible_endings)}" if plot.possible_endings else "",
        ] if line)

        characters = "\n".join(
            f"- {c.name} (id={c.id}, {c.role}): {c.description}"
            + (f" [sprite key: {c.id}]" if c.id in package.assets.characters else "")
            for c in package.characters
        ) or "(no characters defined)"

        assets = "\n".join([
            f"Backgrounds: {', '.join(package.assets.backgrounds) or '(none)'}",
            f"Character sprites: {', '.join(package.assets.characters) or '(none)'}",
            f"Music: {', '.join(package.assets.music) or '(none)'}",
            "Use ONLY these keys for panel backgrounds, characters and audio.",
        ])

        brief = direction.director_brief
        if direction.suggested_encounter_id:
            brief += f"\nSuggested encounter: {direction.suggested_encounter_id}"

        sections = {
            "STORY": story,
            "CHARACTERS": characters,
            "ASSET KEYS": assets,
            "GLOBAL MATERIALS": "\n".join(f"- {m}" for m in plot.global_materials),
            "FRAMES": core_prompt_section(),
            "DIRECTOR'S BRIEF": brief,
            "CURRENT POSITION": self._describe_view(view),
        }
        prompt = f"{self.system_prompt}\n\n{self._build_message(sections)}"
        if summary:
            prompt += f"\n\n{MEMORY_HEADER}\n{summary}"
        return prompt

    @staticmethod
    def _describe_view(view: ResolverView) -> str:
        lines = []
        if view.act:
            lines.append(f'Act: "{view.act.title}" ({view.act.id}) - {view.act.objective}')
        if view.location:
            lines.append(f'Location: "{view.location.title}" ({view.location.id})')
            if view.location.ambient_detail:
                lines.append(f"Ambient: {view.location.ambient_detail}")
        if view.beat:
            lines.append(f"Current beat: {view.beat.description}")
        for info in view.triggered_world_info:
            lines.append(f"Lore [{info.type}]: {info.content}")
        for encounter in view.available_encounters:
            lines.append(f'Encounter available: "{encounter.title}" id={encounter.id} ({encounter.type})')
        if view.available_connections:
            lines.append("Connections: " + ", ".join(
                f"{c['title']} ({c['id']})" for c in view.available_connections
            ))
        for event in view.pending_inevitable_events:
            lines.append(f"Inevitable: {event}")
        if view.characters_present:
            lines.append("Present: " + ", ".join(c.name for c in view.characters_present))
        return "\n".join(lines)


async def _emit(emit: EmitFn | None, event: StorytellerEvent) -> None:
    if emit is not None:
        await emit(event)
