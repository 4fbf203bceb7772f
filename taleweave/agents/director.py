"""Director Agent - per-turn narrative policy.

Reads the resolver view and the session's PlotState, makes one model call and
returns a DirectionPack: a free-form brief for the Storyteller plus a typed
StateMutationBatch. The Director never raises; an unusable reply (or a failed
call) degrades to a neutral pack so the turn still runs.
"""

import json
import logging

from pydantic import BaseModel, Field, ValidationError

from ..config import Config
from ..state.models import PlotState
from ..state.mutations import StateMutationBatch
from ..story.models import StoryPackage
from ..utils.llm_json import decode_llm_json
from ..world.resolver import ResolverView
from .base import BaseAgent
from .director_rules import RulesVerdict

logger = logging.getLogger(__name__)

DEFAULT_BRIEF = "Continue the current scene naturally."
FALLBACK_BRIEF = "Continue the current scene naturally. Follow the player's lead."

# Example reply shown to the model; must stay valid JSON
DIRECTION_TEMPLATE = json.dumps({
    "directorBrief": (
        "instructions for the Storyteller: encounter focus, NPC behaviour, "
        "pacing, tension, secrets to hint or withhold"
    ),
    "stateMutations": {
        "progressionDelta": 0,
        "doomClockDelta": 0,
        "characterUpdates": [{"characterId": "...", "disposition": "...", "newLocationId": "..."}],
        "setComplication": {"description": "...", "maxTurns": 3},
        "exhaustEncounters": ["..."],
        "injectEncounters": [{"locationId": "...", "encounter": {
            "id": "...", "title": "...", "description": "...", "type": "discovery",
        }}],
        "directorNotes": {},
    },
    "suggestedEncounterId": None,
}, indent=2)


class DirectionPack(BaseModel):
    """The Director's output for one turn. Never persisted."""

    director_brief: str = DEFAULT_BRIEF
    state_mutations: StateMutationBatch = Field(default_factory=StateMutationBatch)
    suggested_encounter_id: str | None = None
    fallback: bool = False
    skipped: bool = False
    reason: str = ""

    @classmethod
    def neutral_fallback(cls, reason: str) -> "DirectionPack":
        return cls(director_brief=FALLBACK_BRIEF, fallback=True, reason=reason)

    def to_event(self) -> dict:
        return {
            "brief": self.director_brief,
            "suggestedEncounterId": self.suggested_encounter_id,
            "fallback": self.fallback,
            "skipped": self.skipped,
            "reason": self.reason,
        }


def parse_direction(text: str) -> DirectionPack | None:
    """Map the model's camelCase JSON onto a DirectionPack; None if unusable."""
    decoded = decode_llm_json(text)
    if not decoded.ok:
        logger.warning(f"[Director] unparseable reply ({decoded.reason}): {decoded.raw[:300]!r}")
        return None
    data = decoded.value
    if not isinstance(data, dict):
        logger.warning(f"[Director] expected a JSON object, got {type(data).__name__}")
        return None

    raw_mutations = data.get("stateMutations") or {}
    if not isinstance(raw_mutations, dict):
        logger.warning("[Director] stateMutations is not an object")
        return None
    try:
        mutations = StateMutationBatch.model_validate(raw_mutations)
    except ValidationError as e:
        logger.warning(f"[Director] invalid stateMutations: {e.error_count()} errors: {e}")
        return None

    brief = data.get("directorBrief")
    suggested = data.get("suggestedEncounterId")
    return DirectionPack(
        director_brief=brief if isinstance(brief, str) and brief.strip() else DEFAULT_BRIEF,
        state_mutations=mutations,
        suggested_encounter_id=suggested if isinstance(suggested, str) and suggested else None,
    )


class DirectorAgent(BaseAgent):
    """The invisible hand: evaluates the player's action and steers the story."""

    agent_name = "director"

    def __init__(self, model_override: str | None = None):
        super().__init__(model_override=model_override)
        self._base_prompt = self._load_prompt_file(
            "director.md", "You are the Director. Steer the story; respond with JSON only."
        )

    @property
    def system_prompt(self) -> str:
        return self._base_prompt

    def skipped_pack(self, verdict: RulesVerdict, view: ResolverView) -> DirectionPack:
        """Direction for a turn the rules engine judged uneventful."""
        return DirectionPack(
            director_brief=DEFAULT_BRIEF,
            suggested_encounter_id=view.suggested_encounter.id if view.suggested_encounter else None,
            skipped=True,
            reason=verdict.reason,
        )

    async def direct(
        self,
        state: PlotState,
        package: StoryPackage,
        view: ResolverView,
        player_action: str,
    ) -> DirectionPack:
        prompt = self.build_prompt(state, package, view, player_action)
        try:
            response = await self.complete_text(
                prompt,
                max_tokens=Config.DIRECTOR_MAX_TOKENS,
                temperature=0.7,
            )
        except Exception as e:
            logger.warning(f"[Director] model call failed, using fallback: {type(e).__name__}: {e}")
            return DirectionPack.neutral_fallback(f"model call failed: {type(e).__name__}")

        pack = parse_direction(response.content)
        if pack is None:
            return DirectionPack.neutral_fallback("unparseable director reply")

        logger.info(
            f"[Director] turn {state.turn_count}: suggest={pack.suggested_encounter_id} "
            f"progression+{pack.state_mutations.progression_delta} "
            f"doom{pack.state_mutations.doom_clock_delta:+d}"
        )
        return pack

    # ── Prompt assembly ───────────────────────────────────────────

    def build_prompt(
        self,
        state: PlotState,
        package: StoryPackage,
        view: ResolverView,
        player_action: str,
    ) -> str:
        plot = package.plot
        act = view.act
        location = view.location

        backbone = "\n".join([
            f'Story: "{package.title}" (language: {package.language})',
            f"Premise: {plot.premise}",
            f"Themes: {', '.join(plot.themes)}",
            f"Setting: {plot.global_context.setting}",
            f"Tone: {plot.global_context.tone}",
            f"Hidden Truths: {' | '.join(plot.global_context.overarching_truths)}",
        ])

        act_section = "(no active act)"
        if act:
            prog = act.global_progression
            of = act.opposing_force
            escalations = "\n".join(
                f"  - At {e.threshold}: {e.description}" for e in (of.escalation_events if of else [])
            ) or "  (none defined)"
            inevitable = "\n".join(f"  - {e}" for e in act.inevitable_events) or "  (none)"
            act_section = "\n".join([
                f'Act: "{act.title}" - Objective: {act.objective}',
                f"Scenario Context (hidden truth): {act.scenario_context}",
                f"Narrative Guidelines: {act.narrative_guidelines}",
                f"Progression: {state.global_progression}/{prog.required_value if prog else '?'} "
                f"({prog.tracker_label if prog else 'Progress'})",
                f"Opposing Force: {state.opposing_force.current_tick}/{of.required_value if of else '?'} "
                f"({of.tracker_label if of else 'Threat Level'})",
                f"Escalations already triggered: {', '.join(state.opposing_force.escalation_history) or '(none)'}",
                f"Escalation Events:\n{escalations}",
                f"Inevitable Events:\n{inevitable}",
            ])

        location_section = "(unknown location)"
        if location:
            location_section = "\n".join([
                f'Location: "{location.title}" ({location.id})',
                f"Ambient: {location.ambient_detail or 'No detail provided'}",
                f"Mood: {location.mood or '-'}",
                f"Current beat: {view.beat.description if view.beat else '(none)'}",
                f"Connections: {', '.join(location.connections) or '(none)'}",
            ])

        characters = "\n".join(
            f"  - {c.name} ({c.id}): "
            f"{state.character_states[c.id].disposition if c.id in state.character_states else 'neutral'}"
            for c in view.characters_present
        ) or "  (no characters present)"

        encounters = "\n".join(
            f'  - [{e.priority}] "{e.title}" ({e.type}): {e.description}'
            + (f" [+{e.gives_progression} progression]" if e.gives_progression else "")
            + (f" [flags: {', '.join(e.potential_flags)}]" if e.potential_flags else "")
            + f"  id={e.id}"
            for e in view.available_encounters
        ) or "  (all encounters exhausted at this location)"
        exhausted = ", ".join(state.exhausted_encounters) or "(none)"

        flags = "\n".join(f"  - {k}: {v}" for k, v in state.flags.items()) or "  (none)"
        complication = "(none)"
        if state.active_complication:
            c = state.active_complication
            complication = (
                f"{c.description} (injected at turn {c.injected_at_turn}, "
                f"expires after {c.max_turns} turns)"
            )
        world_state = "\n".join([
            f"Turn: {state.turn_count}",
            f"Off-path turns: {state.off_path_turns}",
            f"Active Flags:\n{flags}",
            f"Active Complication: {complication}",
        ])

        notes = json.dumps(state.director_notes, indent=2) if state.director_notes else "(fresh session)"

        prog_status = "?"
        if act and act.global_progression:
            prog_status = f"{state.global_progression}/{act.global_progression.required_value}"
        task = (
            "Evaluate the player's action in context, then respond with ONLY a JSON object:\n"
            f"{DIRECTION_TEMPLATE}\n\n"
            "Field guidance:\n"
            f"- progressionDelta: award +1 or more for real plot advances (now {prog_status}).\n"
            "- doomClockDelta: +1 if the player wasted time or made noise.\n"
            "- setComplication: null clears the active complication; omit the key to keep it.\n"
            "- exhaustEncounters: encounter ids finished this turn.\n"
            "- directorNotes: your scratchpad for next turn.\n"
            "- suggestedEncounterId: an id from the available encounters, or null."
        )

        return self._build_message({
            "STORY BACKBONE": backbone,
            "CURRENT ACT": act_section,
            "CURRENT LOCATION": location_section,
            "CHARACTERS PRESENT": characters,
            "AVAILABLE ENCOUNTERS": f"{encounters}\nExhausted encounters: {exhausted}",
            "WORLD STATE": world_state,
            "STORY SO FAR": state.story_summary or "(Beginning of story)",
            "YOUR PREVIOUS NOTES": notes,
            "WHAT JUST HAPPENED": f'Player\'s action: "{player_action}"',
            "YOUR TASK": task,
        })
