"""Tests for PlotStateManager: seeding, Director batches, travel and advancement."""

import pytest

from taleweave.enums import WaitingFor
from taleweave.state.manager import PlotStateManager, SessionNotFound
from taleweave.state.mutations import StateMutationBatch
from taleweave.story.models import StoryPackage


def _batch(**data) -> StateMutationBatch:
    return StateMutationBatch.model_validate(data)


class TestLifecycle:
    def test_seeds_opening_position(self, plot_manager, sample_package):
        state = plot_manager.init_if_absent("s1", sample_package)
        assert state.current_act_id == "act-1"
        assert state.current_location_id == "harbor"
        assert state.turn_count == 0
        assert state.player_stats.name == "Mara"

    def test_existing_state_is_returned_unchanged(self, seeded, sample_package):
        seeded.begin_turn("s1")
        again = seeded.init_if_absent("s1", sample_package)
        assert again.turn_count == 1

    def test_package_without_locations(self, plot_manager):
        empty = StoryPackage.model_validate({"id": "empty", "plot": {"acts": [{"id": "a"}]}})
        with pytest.raises(ValueError, match="no act with a location"):
            plot_manager.init_if_absent("s1", empty)

    def test_state_survives_new_manager(self, seeded):
        seeded.record_flag("s1", "met_tobin")
        assert PlotStateManager().read("s1").flags == {"met_tobin": True}

    def test_delete(self, seeded):
        assert seeded.delete("s1") is True
        assert seeded.read("s1") is None
        assert seeded.delete("s1") is False

    def test_missing_session_raises(self, plot_manager):
        with pytest.raises(SessionNotFound):
            plot_manager.begin_turn("ghost")


class TestApplyMutations:
    def test_progression_is_monotonic(self, seeded, sample_package):
        seeded.apply_mutations("s1", _batch(progressionDelta=2), sample_package)
        state = seeded.apply_mutations("s1", _batch(progressionDelta=-5), sample_package)
        assert state.global_progression == 2

    def test_doom_clock_floors_at_zero(self, seeded, sample_package):
        state = seeded.apply_mutations("s1", _batch(doomClockDelta=-3), sample_package)
        assert state.opposing_force.current_tick == 0

    def test_escalation_thresholds_recorded_once(self, seeded, sample_package):
        seeded.apply_mutations("s1", _batch(doomClockDelta=2), sample_package)
        state = seeded.apply_mutations("s1", _batch(doomClockDelta=3), sample_package)
        assert state.opposing_force.current_tick == 5
        assert state.opposing_force.escalation_history == ["threshold_2", "threshold_4"]

    def test_character_updates(self, seeded, sample_package):
        state = seeded.apply_mutations(
            "s1",
            _batch(characterUpdates=[{"characterId": "ferryman", "disposition": "hostile",
                                      "newLocationId": "cliff"}]),
            sample_package,
        )
        assert state.character_states["ferryman"].disposition == "hostile"
        assert state.character_states["ferryman"].location_id == "cliff"

    def test_complication_set_keep_and_clear(self, seeded, sample_package):
        seeded.begin_turn("s1")
        state = seeded.apply_mutations(
            "s1", _batch(setComplication={"description": "Ice cracks", "maxTurns": 2}), sample_package
        )
        assert state.active_complication.injected_at_turn == 1

        state = seeded.apply_mutations("s1", _batch(progressionDelta=1), sample_package)
        assert state.active_complication is not None

        state = seeded.apply_mutations("s1", _batch(setComplication=None), sample_package)
        assert state.active_complication is None

    def test_exhausted_only_grows(self, seeded, sample_package):
        seeded.apply_mutations("s1", _batch(exhaustEncounters=["enc-ferry"]), sample_package)
        state = seeded.apply_mutations(
            "s1", _batch(exhaustEncounters=["enc-ferry", "enc-crate"]), sample_package
        )
        assert state.exhausted_encounters == ["enc-ferry", "enc-crate"]

    def test_injected_encounters_dedupe(self, seeded, sample_package):
        injection = {"locationId": "cliff", "encounter": {"id": "enc-gull", "title": "Gull swarm"}}
        seeded.apply_mutations("s1", _batch(injectEncounters=[injection]), sample_package)
        state = seeded.apply_mutations("s1", _batch(injectEncounters=[injection]), sample_package)
        assert [e.id for e in state.injected_encounters["cliff"]] == ["enc-gull"]

    def test_director_notes_replaced_only_when_present(self, seeded, sample_package):
        seeded.apply_mutations("s1", _batch(directorNotes={"arc": "trust"}), sample_package)
        state = seeded.apply_mutations("s1", _batch(progressionDelta=1), sample_package)
        assert state.director_notes == {"arc": "trust"}

    def test_empty_batch(self):
        assert _batch().is_empty
        assert not _batch(setComplication=None).is_empty
        assert _batch(setComplication=None).clears_complication
        assert not _batch().clears_complication


class TestTravel:
    def test_travel_along_connection(self, seeded, sample_package):
        seeded.note_off_path("s1")
        result = seeded.travel("s1", "cliff", sample_package)
        assert result.ok
        assert result.previous_location_id == "harbor"
        assert result.new_location_title == "Cliff Path"
        state = seeded.read("s1")
        assert state.current_location_id == "cliff"
        assert state.off_path_turns == 0

    def test_unreachable_lists_options_and_keeps_state(self, seeded, sample_package):
        before = seeded.read("s1")
        result = seeded.travel("s1", "lamp-room", sample_package)
        assert not result.ok
        assert result.valid_options == [{"id": "cliff", "title": "Cliff Path"}]
        after = seeded.read("s1")
        assert after.current_location_id == before.current_location_id
        assert after.current_beat == before.current_beat

    def test_tool_dict_drops_nulls(self, seeded, sample_package):
        data = seeded.travel("s1", "nowhere", sample_package).to_tool_dict()
        assert "new_location_id" not in data
        assert data["ok"] is False


class TestCompleteAndAdvance:
    def test_next_location_in_act(self, seeded, sample_package):
        result = seeded.complete_and_advance("s1", package=sample_package)
        assert result.next_location_id == "cliff"
        assert result.next_act_id == "act-1"
        state = seeded.read("s1")
        assert state.completed_locations == ["harbor"]
        assert state.current_location_id == "cliff"

    def test_crosses_into_next_act(self, seeded, sample_package):
        seeded.travel("s1", "cliff", sample_package)
        result = seeded.complete_and_advance("s1", package=sample_package)
        assert (result.next_location_id, result.next_act_id) == ("lamp-room", "act-2")
        assert seeded.read("s1").current_act_id == "act-2"

    def test_last_location_completes_the_game(self, seeded, sample_package):
        seeded.complete_and_advance("s1", explicit_next_id="lamp-room", package=sample_package)
        result = seeded.complete_and_advance("s1", package=sample_package)
        assert result.is_game_complete
        assert result.next_location_id is None
        assert seeded.read("s1").current_location_id == "lamp-room"

    def test_unknown_explicit_next_follows_graph(self, seeded, sample_package):
        result = seeded.complete_and_advance("s1", explicit_next_id="atlantis", package=sample_package)
        assert result.next_location_id == "cliff"

    def test_resets_beat_and_off_path(self, seeded, sample_package):
        seeded.advance_beat("s1", sample_package)
        seeded.note_off_path("s1")
        seeded.complete_and_advance("s1", package=sample_package)
        state = seeded.read("s1")
        assert (state.current_beat, state.off_path_turns) == (0, 0)

    def test_missing_session(self, plot_manager, sample_package):
        assert not plot_manager.complete_and_advance("ghost", package=sample_package).ok


class TestBookkeeping:
    def test_advance_beat_holds_at_last(self, seeded, sample_package):
        for _ in range(5):
            state = seeded.advance_beat("s1", sample_package)
        assert state.current_beat == 1

    def test_advance_beat_clears_off_path(self, seeded, sample_package):
        seeded.note_off_path("s1")
        seeded.note_off_path("s1")
        assert seeded.advance_beat("s1", sample_package).off_path_turns == 0
        seeded.note_off_path("s1")
        # Already on the last beat: nothing moves, the count stays
        assert seeded.advance_beat("s1", sample_package).off_path_turns == 1

    def test_explicit_resets(self, seeded, sample_package):
        seeded.apply_mutations("s1", _batch(progressionDelta=3, exhaustEncounters=["enc-ferry"]), sample_package)
        assert seeded.reset_progression("s1").global_progression == 0
        assert seeded.reset_encounters("s1").exhausted_encounters == []

    def test_awaiting_and_summary(self, seeded):
        seeded.set_awaiting_input("s1", WaitingFor.DICE_RESULT)
        state = seeded.set_story_summary("s1", "Mara reached the harbor.")
        assert state.awaiting_input == WaitingFor.DICE_RESULT
        assert state.story_summary == "Mara reached the harbor."

    def test_new_flag_names_since_snapshot(self, seeded):
        seeded.record_flag("s1", "met_tobin")
        seeded.snapshot_flag_names("s1")
        state = seeded.record_flag("s1", "gold", 5)
        assert state.new_flag_names() == ["gold"]

    def test_active_flags(self, seeded):
        seeded.record_flag("s1", "lit", True)
        state = seeded.record_flag("s1", "doused", False)
        assert state.active_flags() == {"lit": True}
