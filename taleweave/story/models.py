"""Static story graph: the authored package a session plays through.

Packages are authored as JSON/YAML with camelCase keys; both camelCase and
snake_case are accepted on input.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..enums import CharacterRole, EncounterPriority, EncounterType, WorldInfoType


class StoryModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class WorldInfo(StoryModel):
    """Lore entry that surfaces when one of its keys is mentioned."""
    id: str
    keys: list[str] = Field(default_factory=list)
    content: str = ""
    type: WorldInfoType = WorldInfoType.LORE


class Pacing(StoryModel):
    expected_frames: int | None = None
    focus: str = ""


class Beat(StoryModel):
    description: str
    pacing: Pacing | None = None
    findings: list[str] = Field(default_factory=list)
    interactables: list[str] = Field(default_factory=list)
    potential_flags: list[str] = Field(default_factory=list)
    foreshadowing: str = ""


class Encounter(StoryModel):
    id: str
    title: str = ""
    description: str = ""
    type: EncounterType = EncounterType.DISCOVERY
    pacing: Pacing | None = None
    prerequisites: list[str] = Field(default_factory=list)
    exclude_if_flags: list[str] = Field(default_factory=list)
    required_characters: list[str] = Field(default_factory=list)
    gives_progression: int = 0
    potential_flags: list[str] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)
    interactables: list[str] = Field(default_factory=list)
    priority: EncounterPriority = EncounterPriority.NORMAL
    repeatable: bool = False
    arc_character_id: str | None = None


class Location(StoryModel):
    id: str
    title: str = ""
    location: str = ""
    required_characters: list[str] = Field(default_factory=list)
    ambient_detail: str = ""
    mood: str = ""
    beats: list[Beat] = Field(default_factory=list)
    encounters: list[Encounter] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)
    callbacks: list[str] = Field(default_factory=list)


class ProgressionTrack(StoryModel):
    required_value: int
    tracker_label: str = "Progress"


class EscalationEvent(StoryModel):
    threshold: int
    description: str = ""


class OpposingForceTrack(StoryModel):
    tracker_label: str = "Doom"
    required_value: int
    escalation_events: list[EscalationEvent] = Field(default_factory=list)


class Act(StoryModel):
    id: str
    title: str = ""
    objective: str = ""
    scenario_context: str = ""
    narrative_guidelines: str = ""
    scenario_world_info: list[WorldInfo] = Field(default_factory=list)
    sandbox_locations: list[Location] = Field(default_factory=list)
    inevitable_events: list[str] = Field(default_factory=list)
    global_progression: ProgressionTrack | None = None
    opposing_force: OpposingForceTrack | None = None


class GlobalContext(StoryModel):
    setting: str = ""
    tone: str = ""
    overarching_truths: list[str] = Field(default_factory=list)


class Plot(StoryModel):
    premise: str = ""
    themes: list[str] = Field(default_factory=list)
    global_context: GlobalContext = Field(default_factory=GlobalContext)
    global_materials: list[str] = Field(default_factory=list)
    global_world_info: list[WorldInfo] = Field(default_factory=list)
    acts: list[Act] = Field(default_factory=list)
    possible_endings: list[str] = Field(default_factory=list)


class Character(StoryModel):
    id: str
    name: str
    role: CharacterRole = CharacterRole.NPC
    description: str = ""
    image_prompt: str = ""
    personal_arc: str = ""


class Assets(StoryModel):
    backgrounds: dict[str, str] = Field(default_factory=dict)
    characters: dict[str, str] = Field(default_factory=dict)
    music: dict[str, str] = Field(default_factory=dict)


class StoryPackage(StoryModel):
    """A complete authored story: plot graph, cast and asset keys."""

    id: str
    title: str = ""
    genre: str = ""
    art_style: str = ""
    language: str = "en"
    plot: Plot = Field(default_factory=Plot)
    characters: list[Character] = Field(default_factory=list)
    assets: Assets = Field(default_factory=Assets)

    # ── Graph helpers ──────────────────────────────────────────────

    def get_act(self, act_id: str | None) -> Act | None:
        for act in self.plot.acts:
            if act.id == act_id:
                return act
        return None

    def find_location(self, location_id: str | None) -> tuple[Act, Location] | None:
        """Locate a location anywhere in the graph, with its owning act."""
        for act in self.plot.acts:
            for location in act.sandbox_locations:
                if location.id == location_id:
                    return act, location
        return None

    def first_position(self) -> tuple[Act, Location] | None:
        """The opening act and its first location."""
        if not self.plot.acts:
            return None
        first_act = self.plot.acts[0]
        if not first_act.sandbox_locations:
            return None
        return first_act, first_act.sandbox_locations[0]

    def resolve_next_location(self, completed_location_id: str) -> tuple[str | None, str | None]:
        """Next (location_id, act_id) after finishing a location.

        Later location in the same act first, else the first location of the
        next act, else (None, None): the story is over.
        """
        acts = self.plot.acts
        for ai, act in enumerate(acts):
            locations = act.sandbox_locations
            for li, location in enumerate(locations):
                if location.id != completed_location_id:
                    continue
                if li + 1 < len(locations):
                    return locations[li + 1].id, act.id
                if ai + 1 < len(acts):
                    next_act = acts[ai + 1]
                    first = next_act.sandbox_locations[0].id if next_act.sandbox_locations else None
                    return first, next_act.id if first else None
                return None, None
        return None, None

    def get_character(self, character_id: str) -> Character | None:
        for character in self.characters:
            if character.id == character_id:
                return character
        return None

    @property
    def protagonist_name(self) -> str:
        for character in self.characters:
            if character.role == CharacterRole.PROTAGONIST:
                return character.name
        return "Player"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
