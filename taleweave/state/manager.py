"""PlotState Manager: every change to a session's narrative position.

All operations are keyed by ``session_id`` and persist through the
PlotStateStore immediately. Monotonic counters (``global_progression``,
``exhausted_encounters``) only move forward here; the explicit reset methods
are the one way back.
"""

import logging
from typing import Callable

from ..db.plot_store import PlotStateStore
from ..enums import WaitingFor
from ..story.models import StoryPackage
from .models import ActiveComplication, CharacterState, FlagValue, PlotState, default_player_stats
from .mutations import CompletionResult, StateMutationBatch, TravelResult
from .player_stats import PlayerStatsMixin

logger = logging.getLogger(__name__)


class SessionNotFound(LookupError):
    """No PlotState exists for the session."""


class PlotStateManager(PlayerStatsMixin):

    def __init__(self, store: PlotStateStore | None = None):
        self.store = store or PlotStateStore()

    # ── Helpers ───────────────────────────────────────────────────

    def _require(self, session_id: str) -> PlotState:
        state = self.store.load(session_id)
        if state is None:
            raise SessionNotFound(f"No plot state for session '{session_id}'")
        return state

    def _update(self, session_id: str, fn: Callable[[PlotState], None]) -> PlotState:
        state = self._require(session_id)
        fn(state)
        return self.store.save(state)

    # ── Lifecycle ─────────────────────────────────────────────────

    def init_if_absent(self, session_id: str, package: StoryPackage) -> PlotState:
        """Return the session's state, seeding it from the opening position if new."""
        existing = self.store.load(session_id)
        if existing is not None:
            return existing

        position = package.first_position()
        if position is None:
            raise ValueError(f"Package '{package.id}' has no act with a location to start from")
        act, location = position

        state = PlotState(
            session_id=session_id,
            package_id=package.id,
            current_act_id=act.id,
            current_location_id=location.id,
            player_stats=default_player_stats(package.protagonist_name),
        )
        logger.info(f"[PlotState] {session_id}: seeded at {act.id}/{location.id}")
        return self.store.save(state)

    def read(self, session_id: str) -> PlotState | None:
        return self.store.load(session_id)

    def delete(self, session_id: str) -> bool:
        return self.store.delete(session_id)

    # ── Director mutations ────────────────────────────────────────

    def apply_mutations(
        self,
        session_id: str,
        batch: StateMutationBatch,
        package: StoryPackage | None = None,
    ) -> PlotState:
        """Apply a Director batch in a fixed order and persist once."""
        state = self._require(session_id)

        state.global_progression += max(0, batch.progression_delta)

        of = state.opposing_force
        of.current_tick = max(0, of.current_tick + batch.doom_clock_delta)
        act = package.get_act(state.current_act_id) if package else None
        if act and act.opposing_force:
            for event in sorted(act.opposing_force.escalation_events, key=lambda e: e.threshold):
                tag = f"threshold_{event.threshold}"
                if of.current_tick >= event.threshold and tag not in of.escalation_history:
                    of.escalation_history.append(tag)
                    logger.info(f"[PlotState] {session_id}: escalation {tag} reached")

        for update in batch.character_updates:
            char = state.character_states.setdefault(update.character_id, CharacterState())
            if update.disposition is not None:
                char.disposition = update.disposition
            if update.new_location_id is not None:
                char.location_id = update.new_location_id

        if batch.set_complication is not None:
            state.active_complication = ActiveComplication(
                description=batch.set_complication.description,
                max_turns=batch.set_complication.max_turns,
                injected_at_turn=state.turn_count,
            )
        elif batch.clears_complication:
            state.active_complication = None

        for encounter_id in batch.exhaust_encounters:
            if encounter_id not in state.exhausted_encounters:
                state.exhausted_encounters.append(encounter_id)

        for injection in batch.inject_encounters:
            pool = state.injected_encounters.setdefault(injection.location_id, [])
            if all(e.id != injection.encounter.id for e in pool):
                pool.append(injection.encounter)

        if batch.director_notes is not None:
            state.director_notes = dict(batch.director_notes)

        return self.store.save(state)

    # ── Storyteller operations ────────────────────────────────────

    def record_flag(self, session_id: str, name: str, value: FlagValue = True) -> PlotState:
        def _set(state: PlotState) -> None:
            state.flags[name] = value
        return self._update(session_id, _set)

    def complete_and_advance(
        self,
        session_id: str,
        completed_location_id: str | None = None,
        explicit_next_id: str | None = None,
        *,
        package: StoryPackage,
    ) -> CompletionResult:
        """Mark a location done and move to the next one in the graph."""
        state = self.store.load(session_id)
        if state is None:
            return CompletionResult(ok=False, error=f"No plot state for session '{session_id}'")

        completed = completed_location_id or state.current_location_id
        if completed is None:
            return CompletionResult(ok=False, error="No current location to complete")

        next_location_id, next_act_id = None, None
        if explicit_next_id:
            found = package.find_location(explicit_next_id)
            if found:
                next_act_id, next_location_id = found[0].id, found[1].id
            else:
                logger.warning(
                    f"[PlotState] {session_id}: explicit next location '{explicit_next_id}' "
                    f"not in package, following graph order"
                )
        if next_location_id is None:
            next_location_id, next_act_id = package.resolve_next_location(completed)

        if completed not in state.completed_locations:
            state.completed_locations.append(completed)
        state.current_beat = 0
        state.off_path_turns = 0
        is_complete = next_location_id is None
        if not is_complete:
            state.current_location_id = next_location_id
            state.current_act_id = next_act_id
        self.store.save(state)

        logger.info(
            f"[PlotState] {session_id}: completed {completed} -> "
            f"{next_location_id or 'END'} (act {next_act_id or state.current_act_id})"
        )
        return CompletionResult(
            ok=True,
            completed_location_id=completed,
            next_location_id=next_location_id,
            next_act_id=next_act_id,
            is_game_complete=is_complete,
        )

    def travel(self, session_id: str, target_location_id: str, package: StoryPackage) -> TravelResult:
        """Move along one of the current location's connections."""
        state = self.store.load(session_id)
        if state is None:
            return TravelResult(ok=False, error=f"No plot state for session '{session_id}'")

        found = package.find_location(state.current_location_id)
        connections = found[1].connections if found else []
        valid_options = []
        for conn_id in connections:
            target = package.find_location(conn_id)
            valid_options.append({"id": conn_id, "title": target[1].title if target else conn_id})

        if target_location_id not in connections:
            return TravelResult(
                ok=False,
                error=f"'{target_location_id}' is not reachable from '{state.current_location_id}'",
                valid_options=valid_options,
            )

        destination = package.find_location(target_location_id)
        if destination is None:
            return TravelResult(
                ok=False,
                error=f"Location '{target_location_id}' does not exist in this story",
                valid_options=valid_options,
            )

        act, location = destination
        previous = state.current_location_id
        state.current_location_id = location.id
        state.current_act_id = act.id
        state.current_beat = 0
        state.off_path_turns = 0
        self.store.save(state)

        logger.info(f"[PlotState] {session_id}: travel {previous} -> {location.id}")
        return TravelResult(
            ok=True,
            previous_location_id=previous,
            new_location_id=location.id,
            new_location_title=location.title,
            ambient_detail=location.ambient_detail,
            connections=list(location.connections),
        )

    # ── Turn bookkeeping ──────────────────────────────────────────

    def begin_turn(self, session_id: str) -> PlotState:
        def _inc(state: PlotState) -> None:
            state.turn_count += 1
        return self._update(session_id, _inc)

    def clear_complication(self, session_id: str) -> PlotState:
        def _clear(state: PlotState) -> None:
            state.active_complication = None
        return self._update(session_id, _clear)

    def advance_beat(self, session_id: str, package: StoryPackage) -> PlotState:
        """Next beat of the current location, holding at the last one.

        Moving to a new beat puts the player back on the path (off-path count 0).
        """
        def _advance(state: PlotState) -> None:
            found = package.find_location(state.current_location_id)
            last = max(0, len(found[1].beats) - 1) if found else 0
            if state.current_beat < last:
                state.current_beat += 1
                state.off_path_turns = 0
        return self._update(session_id, _advance)

    def note_off_path(self, session_id: str) -> PlotState:
        def _note(state: PlotState) -> None:
            state.off_path_turns += 1
        return self._update(session_id, _note)

    def reset_progression(self, session_id: str) -> PlotState:
        def _reset(state: PlotState) -> None:
            state.global_progression = 0
        return self._update(session_id, _reset)

    def reset_encounters(self, session_id: str) -> PlotState:
        def _reset(state: PlotState) -> None:
            state.exhausted_encounters = []
        return self._update(session_id, _reset)

    def set_awaiting_input(self, session_id: str, waiting_for: WaitingFor | None) -> PlotState:
        def _set(state: PlotState) -> None:
            state.awaiting_input = waiting_for
        return self._update(session_id, _set)

    def set_story_summary(self, session_id: str, summary: str) -> PlotState:
        def _set(state: PlotState) -> None:
            state.story_summary = summary
        return self._update(session_id, _set)

    def snapshot_flag_names(self, session_id: str) -> PlotState:
        def _snap(state: PlotState) -> None:
            state.last_flag_names = list(state.flags)
        return self._update(session_id, _snap)
