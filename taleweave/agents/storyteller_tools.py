"""
Session-bound tool vocabulary for the Storyteller.

Builds a ToolRegistry whose handlers close over one session: the model never
supplies a session id. Handlers report problems as ``{"ok": False, "error"}``
dicts so the loop can feed them back for self-correction.

Usage:
    ctx = StorytellerContext(session_id, package, plot_manager, combat_engine)
    tools = build_storyteller_tools(ctx)
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..combat.engine import CombatEngine
from ..enums import PlayerStatsAction, WaitingFor
from ..frames.models import Frame, FrameError, normalize_frame_input
from ..frames.registry import FrameType, extended_guide
from ..llm.tools import ToolDefinition, ToolParam, ToolRegistry
from ..state.manager import PlotStateManager
from ..state.mutations import StateMutationBatch
from ..story.models import Encounter, StoryPackage
from ..world.resolver import resolve

logger = logging.getLogger(__name__)


@dataclass
class StorytellerContext:
    """Everything one turn's tool handlers may touch."""
    session_id: str
    package: StoryPackage
    plot: PlotStateManager
    combat: CombatEngine
    director_brief: str = ""
    suggested_encounter_id: str | None = None

    # Filled in while the turn runs
    frames: list[Frame] = field(default_factory=list)
    waiting_for: WaitingFor | None = None
    dice_roll_pending: bool = False

    def missing_state(self) -> dict[str, Any]:
        return {"ok": False, "error": f"No plot state for session '{self.session_id}'"}


def build_storyteller_tools(ctx: StorytellerContext) -> ToolRegistry:
    """Build the Storyteller's tool registry for one session and turn.

    Args:
        ctx: Session binding plus per-turn accumulators

    Returns:
        ToolRegistry populated with the Storyteller tools
    """
    registry = ToolRegistry()

    # -----------------------------------------------------------------
    # STATE TOOLS
    # -----------------------------------------------------------------

    registry.register(ToolDefinition(
        name="readPlotState",
        description=(
            "Read where the story stands: act, location, current beat, flags, "
            "triggered lore, available encounters, connections and the Director's "
            "brief. Call this FIRST every turn."
        ),
        parameters=[
            ToolParam("playerQuery", "str", "The player's latest action, used to trigger lore"),
        ],
        handler=lambda playerQuery: _read_plot_state(ctx, playerQuery),
    ))

    registry.register(ToolDefinition(
        name="recordFlag",
        description="Record a story flag the narrative should remember (e.g. 'found_key').",
        parameters=[
            ToolParam("flagName", "str", "snake_case flag name"),
            ToolParam("value", "any", "Flag value: true/false, a number or a short string",
                      required=False, default=True),
        ],
        handler=lambda flagName, value=True: _record_flag(ctx, flagName, value),
    ))

    registry.register(ToolDefinition(
        name="mutatePlayerStats",
        description=(
            "Read or change the player's stat sheet. action='read' returns it; "
            "'update' sets hp/maxHp/level/name/attributes and adds skills; "
            "'add_item'/'remove_item' manage the inventory; "
            "'add_status'/'remove_status' manage status effects."
        ),
        parameters=[
            ToolParam("action", "str", "What to do", enum=[str(a) for a in PlayerStatsAction]),
            ToolParam("updates", "object", "Fields to change for update/add_status", required=False),
            ToolParam("item", "object", "Item {id, name, description, icon, quantity} for add_item",
                      required=False),
            ToolParam("itemId", "str", "Item or status id to remove", required=False),
        ],
        handler=lambda action, updates=None, item=None, itemId=None: ctx.plot.mutate_player_stats(
            ctx.session_id, action, updates=updates, item=item, item_id=itemId
        ),
    ))

    # -----------------------------------------------------------------
    # NAVIGATION TOOLS
    # -----------------------------------------------------------------

    registry.register(ToolDefinition(
        name="travel",
        description=(
            "Move the player to a location connected to the current one. "
            "Rejected moves list the valid options."
        ),
        parameters=[
            ToolParam("targetLocationId", "str", "Id of a connected location"),
        ],
        handler=lambda targetLocationId: ctx.plot.travel(
            ctx.session_id, targetLocationId, ctx.package
        ).to_tool_dict(),
    ))

    registry.register(ToolDefinition(
        name="completeEncounter",
        description="Mark an encounter at this location as played out; grants its progression.",
        parameters=[
            ToolParam("encounterId", "str", "Id of the encounter that just concluded"),
        ],
        handler=lambda encounterId: _complete_encounter(ctx, encounterId),
    ))

    registry.register(ToolDefinition(
        name="advanceBeat",
        description=(
            "Move on to the next beat of this location once the current beat has "
            "played out. Holds at the last beat."
        ),
        parameters=[],
        handler=lambda: _advance_beat(ctx),
    ))

    registry.register(ToolDefinition(
        name="completeNode",
        description=(
            "Finish the current location and advance along the story graph. "
            "Only call once its purpose is fulfilled and the consequence was shown."
        ),
        parameters=[
            ToolParam("completedLocationId", "str", "Location being completed (defaults to current)",
                      required=False),
            ToolParam("nextLocationId", "str", "Explicit next location, if the story branches",
                      required=False),
        ],
        handler=lambda completedLocationId=None, nextLocationId=None: ctx.plot.complete_and_advance(
            ctx.session_id, completedLocationId, nextLocationId, package=ctx.package
        ).to_tool_dict(),
    ))

    # -----------------------------------------------------------------
    # FRAME TOOLS
    # -----------------------------------------------------------------

    registry.register(ToolDefinition(
        name="buildFrame",
        description=(
            "Emit one renderable frame to the player. Call once per frame. "
            "A dice-roll frame ends the turn immediately."
        ),
        parameters=[
            ToolParam("frame", "any", "The frame object: {id, type, panels, narration, dialogue, ...}"),
        ],
        handler=lambda frame: _build_frame(ctx, frame),
    ))

    registry.register(ToolDefinition(
        name="frameGuide",
        description="Usage notes and payload shape for a frame type. Call before first use of an extended type.",
        parameters=[
            ToolParam("frameType", "str", "Frame type", enum=[str(t) for t in FrameType]),
        ],
        handler=lambda frameType: extended_guide(frameType),
    ))

    # -----------------------------------------------------------------
    # COMBAT TOOLS
    # -----------------------------------------------------------------

    registry.register(ToolDefinition(
        name="initializeCombat",
        description=(
            "Start tactical grid combat (12x8). Tokens: {id, type, label, icon, col, row, hp, maxHp, "
            "attack?, defense?, moveRange?, attackRange?}. Terrain: {col, row, type}. "
            "Returns a tactical-map frame to emit with buildFrame."
        ),
        parameters=[
            ToolParam("setting", "str", "Short description of the battlefield"),
            ToolParam("tokens", "object_list", "Combatants and objectives"),
            ToolParam("terrain", "object_list", "Blocked/difficult/hazard/cover cells", required=False),
            ToolParam("rules", "str", "Special rules for this fight", required=False),
        ],
        handler=lambda setting, tokens, terrain=None, rules=None: ctx.combat.initialize(
            ctx.session_id, setting, tokens, terrain or [], rules
        ),
    ))

    registry.register(ToolDefinition(
        name="injectCombatEvent",
        description=(
            "Apply narrative events to the active combat, atomically: modify_hp, add_token, "
            "remove_token, move_token, add_terrain, log_message, end_turn, end_combat. "
            "Only end_combat finishes the fight."
        ),
        parameters=[
            ToolParam("events", "object_list", "Events, each with a 'type' field"),
        ],
        handler=lambda events: ctx.combat.inject_events(ctx.session_id, events),
    ))

    # -----------------------------------------------------------------
    # TURN CONTROL
    # -----------------------------------------------------------------

    registry.register(ToolDefinition(
        name="yieldToPlayer",
        description="End your turn and hand control to the player. Always the last call of a turn.",
        parameters=[
            ToolParam("waitingFor", "str", "What the player should do next",
                      enum=[str(w) for w in WaitingFor]),
        ],
        handler=lambda waitingFor: _yield_to_player(ctx, waitingFor),
        terminal=True,
    ))

    return registry


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _read_plot_state(ctx: StorytellerContext, player_query: str) -> dict:
    state = ctx.plot.read(ctx.session_id)
    if state is None:
        return ctx.missing_state()
    if state.package_id != ctx.package.id:
        return {"ok": False, "error": f"Session is bound to package '{state.package_id}'"}
    view = resolve(ctx.package, state, player_query, ctx.suggested_encounter_id)
    result = view.to_tool_dict(state)
    result["directorBrief"] = ctx.director_brief
    if view.location:
        result["currentLocationTitle"] = view.location.title
        result["ambientDetail"] = view.location.ambient_detail
    result["playerStats"] = {
        "hp": state.player_stats.hp,
        "maxHp": state.player_stats.max_hp,
        "level": state.player_stats.level,
    }
    return result


def _record_flag(ctx: StorytellerContext, name: str, value: Any) -> dict:
    if ctx.plot.read(ctx.session_id) is None:
        return ctx.missing_state()
    if not isinstance(value, (bool, int, float, str)):
        return {"ok": False, "error": "value must be a boolean, number or string"}
    ctx.plot.record_flag(ctx.session_id, name, value)
    return {"ok": True, "flag": name, "value": value}


def _find_encounter(ctx: StorytellerContext, location_id: str | None, encounter_id: str) -> Encounter | None:
    found = ctx.package.find_location(location_id)
    if found:
        for encounter in found[1].encounters:
            if encounter.id == encounter_id:
                return encounter
    state = ctx.plot.read(ctx.session_id)
    if state and location_id:
        for encounter in state.injected_encounters.get(location_id, []):
            if encounter.id == encounter_id:
                return encounter
    return None


def _complete_encounter(ctx: StorytellerContext, encounter_id: str) -> dict:
    state = ctx.plot.read(ctx.session_id)
    if state is None:
        return ctx.missing_state()
    encounter = _find_encounter(ctx, state.current_location_id, encounter_id)
    if encounter is None:
        return {"ok": False, "error": f"No encounter '{encounter_id}' at '{state.current_location_id}'"}
    if encounter.id in state.exhausted_encounters and not encounter.repeatable:
        return {"ok": False, "error": f"Encounter '{encounter_id}' was already completed"}

    batch = StateMutationBatch(
        exhaust_encounters=[encounter.id],
        progression_delta=encounter.gives_progression,
    )
    updated = ctx.plot.apply_mutations(ctx.session_id, batch, ctx.package)
    return {
        "ok": True,
        "encounterId": encounter.id,
        "progressionGained": batch.progression_delta,
        "globalProgression": updated.global_progression,
    }


def _advance_beat(ctx: StorytellerContext) -> dict:
    before = ctx.plot.read(ctx.session_id)
    if before is None:
        return ctx.missing_state()
    state = ctx.plot.advance_beat(ctx.session_id, ctx.package)
    view = resolve(ctx.package, state)
    return {
        "ok": True,
        "advanced": state.current_beat != before.current_beat,
        "currentBeat": state.current_beat,
        "beat": view.beat.description if view.beat else None,
    }


def _build_frame(ctx: StorytellerContext, raw: Any) -> dict:
    result = normalize_frame_input(raw)
    if isinstance(result, FrameError):
        return {"ok": False, "error": result.message}
    ctx.frames.append(result)
    if result.type == FrameType.DICE_ROLL:
        ctx.dice_roll_pending = True
        return {
            "ok": True,
            "frameId": result.id,
            "type": str(result.type),
            "note": "Dice roll shown. Your turn ends now; the result arrives next turn.",
        }
    return {"ok": True, "frameId": result.id, "type": str(result.type)}


def _yield_to_player(ctx: StorytellerContext, waiting_for: str) -> dict:
    ctx.waiting_for = WaitingFor(waiting_for)
    return {"ok": True, "waitingFor": str(ctx.waiting_for)}
