"""
WorldInfo / Encounter resolver.

A pure function over the static package, the session's PlotState and the
player's text. Nothing here writes state; injected encounters are unioned
into the pool at read time and never merged back into the package.
"""

import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from ..state.models import FlagValue, PlotState
from ..story.models import Act, Beat, Character, Encounter, Location, StoryPackage, WorldInfo

logger = logging.getLogger(__name__)


class ResolverView(BaseModel):
    """Everything the agents need to know about "where we are" this turn."""

    act: Act | None = None
    location: Location | None = None
    beat: Beat | None = None
    triggered_world_info: list[WorldInfo] = Field(default_factory=list)
    available_encounters: list[Encounter] = Field(default_factory=list)
    suggested_encounter: Encounter | None = None
    active_flags: dict[str, FlagValue] = Field(default_factory=dict)
    available_connections: list[dict[str, str]] = Field(default_factory=list)
    pending_inevitable_events: list[str] = Field(default_factory=list)
    characters_present: list[Character] = Field(default_factory=list)

    def to_tool_dict(self, state: PlotState) -> dict[str, Any]:
        """Compact camelCase view returned by the readPlotState tool."""
        return {
            "ok": True,
            "currentActId": state.current_act_id,
            "currentLocationId": state.current_location_id,
            "currentBeat": state.current_beat,
            "beatDescription": self.beat.description if self.beat else None,
            "turnCount": state.turn_count,
            "offPathTurns": state.off_path_turns,
            "globalProgression": state.global_progression,
            "doomClock": state.opposing_force.current_tick,
            "completedLocations": list(state.completed_locations),
            "flags": dict(self.active_flags),
            "activeComplication": (
                state.active_complication.description if state.active_complication else None
            ),
            "triggeredWorldInfo": [
                {"id": w.id, "type": str(w.type), "content": w.content} for w in self.triggered_world_info
            ],
            "availableEncounters": [
                {
                    "id": e.id,
                    "title": e.title,
                    "type": str(e.type),
                    "priority": str(e.priority),
                    "description": e.description,
                    "givesProgression": e.gives_progression,
                    "potentialFlags": e.potential_flags,
                }
                for e in self.available_encounters
            ],
            "suggestedEncounterId": self.suggested_encounter.id if self.suggested_encounter else None,
            "availableConnections": self.available_connections,
            "pendingInevitableEvents": self.pending_inevitable_events,
            "charactersPresent": [c.id for c in self.characters_present],
        }


def _key_matches(key: str, text: str) -> bool:
    try:
        return re.search(rf"\b{key}\b", text, re.IGNORECASE) is not None
    except re.error:
        return key.lower() in text.lower()


def trigger_world_info(entries: list[WorldInfo], text: str) -> list[WorldInfo]:
    """Entries with at least one key appearing as a whole word in ``text``."""
    if not text:
        return []
    return [entry for entry in entries if any(k and _key_matches(k, text) for k in entry.keys)]


def _present_character_ids(state: PlotState, location: Location | None) -> list[str]:
    if location is None:
        return []
    present = list(location.required_characters)
    for character_id, char_state in state.character_states.items():
        if char_state.location_id == location.id and character_id not in present:
            present.append(character_id)
    return present


def _is_available(encounter: Encounter, state: PlotState, active: dict, present: set[str]) -> bool:
    if encounter.id in state.exhausted_encounters and not encounter.repeatable:
        return False
    if any(flag not in active for flag in encounter.prerequisites):
        return False
    if any(flag in active for flag in encounter.exclude_if_flags):
        return False
    if any(cid not in present for cid in encounter.required_characters):
        return False
    return True


def suggest_encounter(
    available: list[Encounter],
    exhausted: list[str],
    director_suggestion: str | None = None,
) -> Encounter | None:
    """Director's pick if still available, else the highest-priority untried one."""
    if director_suggestion:
        for encounter in available:
            if encounter.id == director_suggestion:
                return encounter
    untried = [e for e in available if e.id not in exhausted]
    if not untried:
        return None
    # max() keeps the first of equal ranks, so listing order breaks ties
    return max(untried, key=lambda e: e.priority.rank)


def resolve(
    package: StoryPackage,
    state: PlotState,
    player_query: str = "",
    director_suggestion: str | None = None,
) -> ResolverView:
    act = package.get_act(state.current_act_id)
    found = package.find_location(state.current_location_id)
    location = found[1] if found else None
    beat = None
    if location and 0 <= state.current_beat < len(location.beats):
        beat = location.beats[state.current_beat]

    search_text = " ".join(part for part in (player_query, beat.description if beat else "") if part)
    pool = list(package.plot.global_world_info)
    if act:
        pool.extend(act.scenario_world_info)
    triggered = trigger_world_info(pool, search_text)

    active = state.active_flags()
    present_ids = _present_character_ids(state, location)

    candidates: list[Encounter] = list(location.encounters) if location else []
    if location:
        static_ids = {e.id for e in candidates}
        for injected in state.injected_encounters.get(location.id, []):
            if injected.id not in static_ids:
                candidates.append(injected)
    available = [e for e in candidates if _is_available(e, state, active, set(present_ids))]

    connections = []
    if location:
        for conn_id in location.connections:
            target = package.find_location(conn_id)
            connections.append({"id": conn_id, "title": target[1].title if target else conn_id})

    characters = [c for cid in present_ids if (c := package.get_character(cid)) is not None]

    return ResolverView(
        act=act,
        location=location,
        beat=beat,
        triggered_world_info=triggered,
        available_encounters=available,
        suggested_encounter=suggest_encounter(available, state.exhausted_encounters, director_suggestion),
        active_flags=active,
        available_connections=connections,
        pending_inevitable_events=list(act.inevitable_events) if act else [],
        characters_present=characters,
    )
