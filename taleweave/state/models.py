"""Typed per-session state: PlotState and the player's stat sheet."""

from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, Field

from ..enums import StatusEffectType, WaitingFor
from ..story.models import Encounter

FlagValue = Union[bool, int, float, str]


class CharacterState(BaseModel):
    location_id: str | None = None
    disposition: str = "neutral"


class ActiveComplication(BaseModel):
    """Temporary pressure on the scene that lapses after ``max_turns``."""
    description: str
    max_turns: int = Field(default=3, ge=1)
    injected_at_turn: int = 0

    def is_expired(self, turn_count: int) -> bool:
        return turn_count - self.injected_at_turn >= self.max_turns


class OpposingForceState(BaseModel):
    current_tick: int = 0
    escalation_history: list[str] = Field(default_factory=list)


class Item(BaseModel):
    id: str
    name: str
    description: str = ""
    icon: str = ""
    quantity: int = 1
    equipped: bool = False
    effect: str | None = None


class StatusEffect(BaseModel):
    id: str
    name: str
    type: StatusEffectType = StatusEffectType.NEUTRAL
    description: str = ""
    turns_remaining: int | None = None
    icon: str | None = None


class Attributes(BaseModel):
    strength: int = 8
    dexterity: int = 8
    intelligence: int = 8
    luck: int = 8
    charisma: int = 8


class PlayerStats(BaseModel):
    name: str = "Player"
    level: int = 1
    hp: int = 20
    max_hp: int = 20
    attributes: Attributes = Field(default_factory=Attributes)
    skills: list[str] = Field(default_factory=list)
    items: list[Item] = Field(default_factory=list)
    status_effects: list[StatusEffect] = Field(default_factory=list)


def default_player_stats(name: str = "Player") -> PlayerStats:
    return PlayerStats(name=name)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlotState(BaseModel):
    """Durable narrative position for one session.

    ``global_progression`` and ``exhausted_encounters`` only move forward
    through PlotStateManager; ``off_path_turns`` counts turns that moved
    nothing and returns to 0 on every location transition or beat advance.
    """

    session_id: str
    package_id: str
    current_act_id: str | None = None
    current_location_id: str | None = None
    current_beat: int = Field(default=0, ge=0)
    off_path_turns: int = Field(default=0, ge=0)
    completed_locations: list[str] = Field(default_factory=list)
    flags: dict[str, FlagValue] = Field(default_factory=dict)
    last_flag_names: list[str] = Field(default_factory=list)
    player_stats: PlayerStats = Field(default_factory=PlayerStats)
    turn_count: int = Field(default=0, ge=0)
    global_progression: int = Field(default=0, ge=0)
    opposing_force: OpposingForceState = Field(default_factory=OpposingForceState)
    character_states: dict[str, CharacterState] = Field(default_factory=dict)
    active_complication: ActiveComplication | None = None
    exhausted_encounters: list[str] = Field(default_factory=list)
    injected_encounters: dict[str, list[Encounter]] = Field(default_factory=dict)
    director_notes: dict[str, Any] = Field(default_factory=dict)
    story_summary: str = ""
    awaiting_input: WaitingFor | None = None
    updated_at: datetime = Field(default_factory=_utcnow)

    def active_flags(self) -> dict[str, FlagValue]:
        """Flags whose value is truthy."""
        return {k: v for k, v in self.flags.items() if v not in (False, None, "", 0)}

    def new_flag_names(self) -> list[str]:
        """Flags set since the last snapshot."""
        seen = set(self.last_flag_names)
        return [name for name in self.flags if name not in seen]
