"""Typed state-mutation batch produced by the Director each turn."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..story.models import Encounter


class MutationModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CharacterUpdate(MutationModel):
    character_id: str
    disposition: str | None = None
    new_location_id: str | None = None


class ComplicationSpec(MutationModel):
    description: str
    max_turns: int = Field(default=3, ge=1)


class EncounterInjection(MutationModel):
    location_id: str
    encounter: Encounter


class StateMutationBatch(MutationModel):
    """Changes applied to PlotState before the Storyteller runs.

    ``set_complication`` distinguishes a missing key (keep the current
    complication) from an explicit ``null`` (clear it); ``clears_complication``
    reports which one the batch carries.
    """

    progression_delta: int = 0
    doom_clock_delta: int = 0
    character_updates: list[CharacterUpdate] = Field(default_factory=list)
    set_complication: ComplicationSpec | None = None
    exhaust_encounters: list[str] = Field(default_factory=list)
    inject_encounters: list[EncounterInjection] = Field(default_factory=list)
    director_notes: dict[str, Any] | None = None

    @field_validator("progression_delta", mode="after")
    @classmethod
    def _no_negative_progression(cls, value: int) -> int:
        return max(0, value)

    @property
    def clears_complication(self) -> bool:
        return "set_complication" in self.model_fields_set and self.set_complication is None

    @property
    def is_empty(self) -> bool:
        return not (
            self.progression_delta
            or self.doom_clock_delta
            or self.character_updates
            or "set_complication" in self.model_fields_set
            or self.exhaust_encounters
            or self.inject_encounters
            or self.director_notes is not None
        )


class CompletionResult(BaseModel):
    ok: bool
    completed_location_id: str | None = None
    next_location_id: str | None = None
    next_act_id: str | None = None
    is_game_complete: bool = False
    error: str | None = None

    def to_tool_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TravelResult(BaseModel):
    ok: bool
    error: str | None = None
    valid_options: list[dict[str, str]] | None = None
    previous_location_id: str | None = None
    new_location_id: str | None = None
    new_location_title: str | None = None
    ambient_detail: str | None = None
    connections: list[str] | None = None

    def to_tool_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
