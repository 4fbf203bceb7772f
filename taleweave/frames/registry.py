"""Frame registry: every render variant the Storyteller may emit.

Core variants are described in the Storyteller's static system prompt;
extended ones are explained on demand through the ``frameGuide`` tool so
the standing prompt stays small.
"""

from dataclasses import dataclass
from enum import StrEnum


class FrameType(StrEnum):
    FULL_SCREEN = "full-screen"
    DIALOGUE = "dialogue"
    THREE_PANEL = "three-panel"
    CHOICE = "choice"
    BATTLE = "battle"
    TRANSITION = "transition"
    DICE_ROLL = "dice-roll"
    SKILL_CHECK = "skill-check"
    INVENTORY = "inventory"
    MAP = "map"
    TACTICAL_MAP = "tactical-map"
    CHARACTER_SHEET = "character-sheet"
    ITEM_PRESENTATION = "item-presentation"
    CG_PRESENTATION = "cg-presentation"
    MONOLOGUE = "monologue"
    INVESTIGATION = "investigation"
    LORE_UNLOCK = "lore-unlock"
    DYNAMIC_CUT_IN = "dynamic-cut-in"
    FLASHBACK = "flashback"
    CROSS_EXAMINATION = "cross-examination"
    TIME_LIMIT = "time-limit"


@dataclass(frozen=True)
class FrameSpec:
    type: FrameType
    summary: str
    workflow: str = ""
    requires_narration: bool = False
    data_field: str | None = None  # snake_case attribute on Frame holding the payload
    core: bool = False


_DICE_ROLL_WORKFLOW = """dice-roll (2d6 ruling, always ends your turn):
  1. diceRoll.diceNotation = "2d6"; never fill in the roll yourself, the client rolls.
  2. diceRoll.description names the stat and modifier, e.g. "2d6 + Nerve (+1)".
  3. Nothing after this frame is shown; the next turn starts with "[dice-result] N"."""

_SKILL_CHECK_WORKFLOW = """skill-check (show the ruling for a "[dice-result] N" input):
  1. total = N + the character's stat modifier; difficulty is always 10.
  2. total >= 10: full success. 7-9: success WITH a concrete cost. <= 6: miss, things get worse.
  3. skillCheck = { stat, modifier, difficulty: 10, roll: N, total, succeeded: total >= 7, band, description }
  4. Follow with 1-2 frames showing the consequence. Never soften a miss or drop the cost of a 7-9.
  5. HP changes go through mutatePlayerStats(action="update")."""

_INVENTORY_WORKFLOW = """inventory:
  - Grant items with mutatePlayerStats(action="add_item", item={id, name, description, icon, quantity}).
  - Show the pack with inventoryData = { items, mode: "view" | "select", prompt } built from a read."""

_MAP_WORKFLOW = """map:
  - mapData = { backgroundAsset, currentLocationId, level: "region" | "area", locations[] }
  - accessible = reachable through the current location's connections; visited = completed."""

_TACTICAL_WORKFLOW = """tactical-map (combat):
  1. initializeCombat(setting, tokens, terrain) builds the board; player tokens go on the left.
  2. Emit the returned frame unchanged with buildFrame, then yieldToPlayer("combat-result").
  3. "[combat-result] victory|defeat|escape" continues the story from that outcome.
  4. Free text during combat: injectCombatEvent(events) then emit the returned frame.
  5. A token at 0 HP is only logged as defeated; send end_combat when the fight is over."""


FRAME_REGISTRY: dict[FrameType, FrameSpec] = {spec.type: spec for spec in (
    FrameSpec(FrameType.FULL_SCREEN,
              "Establishing shots, reveals, atmosphere. One panel 'center' with a background; "
              "narration carries the text.",
              requires_narration=True, core=True),
    FrameSpec(FrameType.DIALOGUE,
              "Conversation. Two panels with background + character; dialogue {speaker, text}.",
              requires_narration=True, core=True),
    FrameSpec(FrameType.THREE_PANEL,
              "Three characters on screen in panels 'left', 'center', 'right'.",
              requires_narration=True, core=True),
    FrameSpec(FrameType.CHOICE,
              "Decision point with 2-4 choices {id, text}; set showFreeTextInput when typing is allowed.",
              core=True),
    FrameSpec(FrameType.BATTLE,
              "Quick abstract fight: battle {player, enemies, combatLog, skills, round}.",
              data_field="battle"),
    FrameSpec(FrameType.TRANSITION,
              "Scene or time change with no panels; transition {type, durationMs}.",
              data_field="transition", core=True),
    FrameSpec(FrameType.DICE_ROLL,
              "2d6 ruling animated on the client. Ends the turn.",
              workflow=_DICE_ROLL_WORKFLOW, data_field="dice_roll", core=True),
    FrameSpec(FrameType.SKILL_CHECK,
              "Ruling result for a dice roll: 10+ full, 7-9 mixed with a cost, 6- miss.",
              workflow=_SKILL_CHECK_WORKFLOW, data_field="skill_check", core=True),
    FrameSpec(FrameType.INVENTORY,
              "Item pack display or item selection.",
              workflow=_INVENTORY_WORKFLOW, data_field="inventory_data"),
    FrameSpec(FrameType.MAP,
              "Clickable location map.",
              workflow=_MAP_WORKFLOW, data_field="map_data"),
    FrameSpec(FrameType.TACTICAL_MAP,
              "Turn-based grid combat board produced by initializeCombat.",
              workflow=_TACTICAL_WORKFLOW, data_field="tactical_map_data"),
    FrameSpec(FrameType.CHARACTER_SHEET,
              "Full stat sheet: characterSheet {playerName, level, hp, maxHp, attributes, skills, statusEffects}.",
              data_field="character_sheet"),
    FrameSpec(FrameType.ITEM_PRESENTATION,
              "Spotlight on a newly found object: itemPresentation {itemAsset, itemName, description}.",
              data_field="item_presentation"),
    FrameSpec(FrameType.CG_PRESENTATION,
              "Full-screen event artwork with a light overlay: cgPresentation {cgAsset, description, emotion}.",
              data_field="cg_presentation"),
    FrameSpec(FrameType.MONOLOGUE,
              "Text on a dark screen for inner thought or voice-over: monologue {text, speaker?}.",
              data_field="monologue"),
    FrameSpec(FrameType.INVESTIGATION,
              "Point-and-click search: investigationData {backgroundAsset, hotspots[]}.",
              data_field="investigation_data"),
    FrameSpec(FrameType.LORE_UNLOCK,
              "Adds an encyclopedia entry: loreEntry {title, category, content}.",
              data_field="lore_entry"),
    FrameSpec(FrameType.DYNAMIC_CUT_IN,
              "Comic-style interruption or shout: cutIn {speaker, text, style}.",
              data_field="cut_in"),
    FrameSpec(FrameType.FLASHBACK,
              "Filtered memory or premonition: flashback {text, filter, backgroundAsset?}.",
              data_field="flashback"),
    FrameSpec(FrameType.CROSS_EXAMINATION,
              "Statement the player must contradict with evidence: crossExamination {speaker, statement}.",
              data_field="cross_examination"),
    FrameSpec(FrameType.TIME_LIMIT,
              "Quick-decision deadline: timeLimit {seconds, text, failureConsequence}.",
              data_field="time_limit"),
)}


def get_spec(frame_type: str) -> FrameSpec | None:
    try:
        return FRAME_REGISTRY[FrameType(frame_type)]
    except ValueError:
        return None


def core_types() -> list[FrameType]:
    return [t for t, spec in FRAME_REGISTRY.items() if spec.core]


def extended_types() -> list[FrameType]:
    return [t for t, spec in FRAME_REGISTRY.items() if not spec.core]


def core_prompt_section() -> str:
    """Summaries of every core frame type plus their step-by-step workflows."""
    lines = ["FRAME TYPES (always available):"]
    for frame_type in core_types():
        lines.append(f"- {frame_type}: {FRAME_REGISTRY[frame_type].summary}")
    workflows = [FRAME_REGISTRY[t].workflow for t in core_types() if FRAME_REGISTRY[t].workflow]
    if workflows:
        lines.append("")
        lines.append("FRAME WORKFLOWS:")
        lines.extend(workflows)
    lines.append("")
    lines.append(
        "EXTENDED FRAME TYPES (call frameGuide(frameType) before first use): "
        + ", ".join(str(t) for t in extended_types())
    )
    return "\n".join(lines)


def extended_guide(frame_type: str) -> dict:
    """On-demand usage notes for one frame type."""
    spec = get_spec(frame_type)
    if spec is None:
        return {
            "ok": False,
            "error": f"Unknown frame type '{frame_type}'",
            "validTypes": [str(t) for t in FrameType],
        }
    return {
        "ok": True,
        "type": str(spec.type),
        "summary": spec.summary,
        "workflow": spec.workflow,
        "payloadField": _camel(spec.data_field) if spec.data_field else None,
        "core": spec.core,
    }


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
