"""PlotState Store: one row per session in ``plot_states``.

Writes are last-write-wins; callers serialize turns per session.
"""

import logging
from datetime import datetime, timezone

from ..config import Config
from ..state.models import PlotState
from . import codecs
from .cache import RowCache
from .models import PlotStateRow
from .session import create_session as create_db_session

logger = logging.getLogger(__name__)


def _row_to_state(row: PlotStateRow) -> PlotState:
    return PlotState(
        session_id=row.session_id,
        package_id=row.package_id,
        current_act_id=row.current_act_id,
        current_location_id=row.current_location_id,
        current_beat=row.current_beat or 0,
        off_path_turns=row.off_path_turns or 0,
        turn_count=row.turn_count or 0,
        global_progression=row.global_progression or 0,
        story_summary=row.story_summary or "",
        awaiting_input=row.awaiting_input or None,
        completed_locations=codecs.completed_locations_codec.decode(row.completed_locations_json),
        flags=codecs.flags_codec.decode(row.flags_json),
        last_flag_names=codecs.flag_names_codec.decode(row.last_flag_names_json),
        player_stats=codecs.player_stats_codec.decode(row.player_stats_json),
        opposing_force=codecs.opposing_force_codec.decode(row.opposing_force_json),
        character_states=codecs.character_states_codec.decode(row.character_states_json),
        active_complication=codecs.complication_codec.decode(row.active_complication_json),
        exhausted_encounters=codecs.exhausted_codec.decode(row.exhausted_encounters_json),
        injected_encounters=codecs.injected_codec.decode(row.injected_encounters_json),
        director_notes=codecs.director_notes_codec.decode(row.director_notes_json),
        updated_at=row.updated_at or datetime.now(timezone.utc),
    )


def _copy_into_row(state: PlotState, row: PlotStateRow) -> None:
    row.package_id = state.package_id
    row.current_act_id = state.current_act_id
    row.current_location_id = state.current_location_id
    row.current_beat = state.current_beat
    row.off_path_turns = state.off_path_turns
    row.turn_count = state.turn_count
    row.global_progression = state.global_progression
    row.story_summary = state.story_summary
    row.awaiting_input = str(state.awaiting_input) if state.awaiting_input else None
    row.completed_locations_json = codecs.completed_locations_codec.encode(state.completed_locations)
    row.flags_json = codecs.flags_codec.encode(state.flags)
    row.last_flag_names_json = codecs.flag_names_codec.encode(state.last_flag_names)
    row.player_stats_json = codecs.player_stats_codec.encode(state.player_stats)
    row.opposing_force_json = codecs.opposing_force_codec.encode(state.opposing_force)
    row.character_states_json = codecs.character_states_codec.encode(state.character_states)
    row.active_complication_json = codecs.complication_codec.encode(state.active_complication)
    row.exhausted_encounters_json = codecs.exhausted_codec.encode(state.exhausted_encounters)
    row.injected_encounters_json = codecs.injected_codec.encode(state.injected_encounters)
    row.director_notes_json = codecs.director_notes_codec.encode(state.director_notes)
    row.updated_at = state.updated_at


class PlotStateStore:
    """Load/save PlotState with a write-through cache.

    Loaded states are deep copies, so a caller that mutates and then
    abandons a state never leaks the change into the cache.
    """

    def __init__(self, cache: RowCache[str, PlotState] | None = None):
        self._cache = cache or RowCache("plot-state-cache", Config.CACHE_MAX_ENTRIES)

    @property
    def cache(self) -> RowCache[str, PlotState]:
        return self._cache

    def load(self, session_id: str) -> PlotState | None:
        state = self._cache.get_or_load(session_id, self._load_row)
        return state.model_copy(deep=True) if state is not None else None

    def _load_row(self, session_id: str) -> PlotState | None:
        db = create_db_session()
        try:
            row = db.get(PlotStateRow, session_id)
            return _row_to_state(row) if row else None
        finally:
            db.close()

    def save(self, state: PlotState) -> PlotState:
        state.updated_at = datetime.now(timezone.utc)
        db = create_db_session()
        try:
            row = db.get(PlotStateRow, state.session_id)
            if row is None:
                row = PlotStateRow(session_id=state.session_id)
                db.add(row)
            _copy_into_row(state, row)
            db.commit()
        except Exception:
            db.rollback()
            self._cache.invalidate(state.session_id)
            raise
        finally:
            db.close()
        self._cache.put(state.session_id, state.model_copy(deep=True))
        return state

    def delete(self, session_id: str) -> bool:
        db = create_db_session()
        try:
            count = db.query(PlotStateRow).filter(PlotStateRow.session_id == session_id).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        self._cache.invalidate(session_id)
        return count > 0
