"""End-to-end turn tests: rules → Director → Storyteller → bookkeeping.

Uses the in-memory database and MockLLMProvider; no network access.
"""

import asyncio
import json

import pytest

from taleweave.agents.context_compressor import ContextCompressor
from taleweave.core.orchestrator import PackageNotFound, TurnOrchestrator
from taleweave.core._turn_pipeline import compose_player_message
from taleweave.enums import WaitingFor
from taleweave.story.models import StoryPackage

from .conftest import tool_call

DICE_ROLL = {"type": "dice-roll", "narration": "Jump the crack?",
             "diceRoll": {"diceNotation": "2d6", "stat": "dexterity"}}

DIRECTOR_REPLY = json.dumps({
    "directorBrief": "Introduce Tobin; he wants payment.",
    "stateMutations": {"progressionDelta": 1, "directorNotes": {"tobin": "greedy"}},
    "suggestedEncounterId": "enc-ferry",
})


@pytest.fixture
def orchestrator(package_store, plot_manager, combat_engine, history_store, mock_llm_manager):
    orch = TurnOrchestrator(
        package_store=package_store,
        plot_manager=plot_manager,
        combat_engine=combat_engine,
        history_store=history_store,
    )
    yield orch
    orch.close()


def _last_user_message(provider) -> str:
    messages = provider.calls("tool_step")[-1]["messages"]
    return [m for m in messages if m["role"] == "user"][-1]["content"]


class TestComposePlayerMessage:
    def test_explicit_total(self):
        assert compose_player_message("I jump", None, 8) == "[dice-result] 8 I jump"

    def test_leading_number_while_awaiting_roll(self):
        assert compose_player_message("11", WaitingFor.DICE_RESULT, None) == "[dice-result] 11"

    def test_already_prefixed(self):
        assert compose_player_message("[dice-result] 4", WaitingFor.DICE_RESULT, 9) == "[dice-result] 4"

    def test_plain_action(self):
        assert compose_player_message("  I wait ", WaitingFor.CHOICE, None) == "I wait"


class TestOpeningTurn:
    async def test_empty_action_only_seeds(self, orchestrator, mock_provider):
        result = await orchestrator.run_turn("s1", "lighthouse", "")
        assert result.outcome == "seeded"
        assert result.turn_count == 0
        assert (result.act_id, result.location_id) == ("act-1", "harbor")
        assert result.waiting_for is None
        assert mock_provider.call_history == []
        assert orchestrator.get_state("s1").turn_count == 0

    async def test_unknown_package(self, orchestrator):
        with pytest.raises(PackageNotFound):
            await orchestrator.run_turn("s1", "atlantis", "")

    async def test_session_bound_to_other_package(self, orchestrator, package_store, sample_package_data):
        other = StoryPackage.model_validate({**sample_package_data, "id": "other"})
        package_store.save(other)
        await orchestrator.run_turn("s1", "lighthouse", "")
        with pytest.raises(ValueError, match="plays package 'lighthouse'"):
            await orchestrator.run_turn("s1", "other", "hello")


class TestFullTurn:
    async def test_first_action_runs_director_and_storyteller(self, orchestrator, mock_provider):
        await orchestrator.run_turn("s1", "lighthouse", "")
        mock_provider.queue_response(DIRECTOR_REPLY)
        mock_provider.queue_tool_step(
            tool_call("readPlotState", playerQuery="I approach the ferryman"),
            tool_call("buildFrame", frame={"type": "dialogue",
                                           "dialogue": {"speaker": "Tobin", "text": "Coin first."}}),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )

        result = await orchestrator.run_turn("s1", "lighthouse", "I approach the ferryman")

        assert result.turn_count == 1
        assert result.outcome == "yielded"
        assert result.waiting_for == WaitingFor.CHOICE
        assert result.direction["brief"] == "Introduce Tobin; he wants payment."
        assert result.frames[0]["dialogue"] == {"speaker": "Tobin", "text": "Coin first."}

        state = orchestrator.get_state("s1")
        assert state.global_progression == 1
        assert state.director_notes == {"tobin": "greedy"}
        assert state.awaiting_input == WaitingFor.CHOICE
        assert "Suggested encounter: enc-ferry" in mock_provider.calls("tool_step")[0]["system"]

    async def test_history_is_stored_flattened(self, orchestrator, mock_provider, history_store):
        mock_provider.queue_tool_step(
            tool_call("recordFlag", flagName="looked"),
            tool_call("yieldToPlayer", waitingFor="free-text"),
        )
        await orchestrator.run_turn("s1", "lighthouse", "I look around")

        history = history_store.load("s1")
        assert history[0] == {"role": "user", "content": "I look around"}
        assert all(m["role"] in ("user", "assistant") for m in history)
        assert "[System Recorded Player Action FLAG]: looked = True" in history[1]["content"]
        assert orchestrator.get_state("s1").last_flag_names == ["looked"]

    async def test_quiet_turn_skips_director(self, orchestrator, mock_provider):
        await orchestrator.run_turn("s1", "lighthouse", "I look around")
        director_calls = len(mock_provider.calls("complete"))

        result = await orchestrator.run_turn("s1", "lighthouse", "I listen to the ice")
        assert result.direction["skipped"] is True
        assert len(mock_provider.calls("complete")) == director_calls

    async def test_dice_roll_round_trip(self, orchestrator, mock_provider):
        mock_provider.queue_tool_step(tool_call("buildFrame", frame=DICE_ROLL))
        first = await orchestrator.run_turn("s1", "lighthouse", "I leap across")
        assert first.waiting_for == WaitingFor.DICE_RESULT
        assert orchestrator.get_state("s1").awaiting_input == WaitingFor.DICE_RESULT

        await orchestrator.run_turn("s1", "lighthouse", "11")
        assert _last_user_message(mock_provider) == "[dice-result] 11"

        mock_provider.queue_tool_step(tool_call("buildFrame", frame=DICE_ROLL))
        await orchestrator.run_turn("s1", "lighthouse", "again")
        await orchestrator.run_turn("s1", "lighthouse", "I jump", dice_total=8)
        assert _last_user_message(mock_provider) == "[dice-result] 8 I jump"

    async def test_events_are_streamed_in_order(self, orchestrator, mock_provider):
        events = []

        async def collect(event):
            events.append(event)

        mock_provider.queue_tool_step(tool_call("yieldToPlayer", waitingFor="continue"))
        await orchestrator.run_turn("s1", "lighthouse", "Hello", emit=collect)

        types = [e.type for e in events]
        assert types[:2] == ["turn_start", "direction"]
        assert types[-2:] == ["yield", "turn_end"]
        assert events[-1].data["turnCount"] == 1
        assert "latencyMs" in events[-1].data

    async def test_turns_for_one_session_are_serialized(self, orchestrator, mock_provider):
        results = await asyncio.gather(
            orchestrator.run_turn("s1", "lighthouse", "I wait"),
            orchestrator.run_turn("s1", "lighthouse", "I wait more"),
        )
        assert sorted(r.turn_count for r in results) == [1, 2]


class TestPostTurn:
    async def test_scene_change_is_summarized_in_background(self, orchestrator, mock_provider):
        mock_provider.queue_response(DIRECTOR_REPLY)
        mock_provider.queue_response("Mara left the harbor for the cliffs.")
        mock_provider.queue_tool_step(
            tool_call("travel", targetLocationId="cliff"),
            tool_call("yieldToPlayer", waitingFor="free-text"),
        )

        result = await orchestrator.run_turn("s1", "lighthouse", "I head to the cliff")
        assert result.location_id == "cliff"

        await orchestrator.drain_background()
        assert orchestrator.get_state("s1").story_summary == "Mara left the harbor for the cliffs."

    async def test_history_is_compressed_at_high_water(
        self, package_store, plot_manager, combat_engine, history_store, mock_llm_manager, mock_provider
    ):
        orch = TurnOrchestrator(
            package_store=package_store,
            plot_manager=plot_manager,
            combat_engine=combat_engine,
            history_store=history_store,
            compressor=ContextCompressor(plot_manager, low_water=2, high_water=4, retain_tail=2),
        )
        mock_provider.queue_response(DIRECTOR_REPLY)
        mock_provider.queue_response("Mara waited twice.")

        await orch.run_turn("s1", "lighthouse", "I wait")
        await orch.run_turn("s1", "lighthouse", "I wait again")

        history = history_store.load("s1")
        assert history == [
            {"role": "user", "content": "I wait again"},
            {"role": "assistant", "content": "The scene holds its breath."},
        ]
        assert orch.get_state("s1").story_summary == "Mara waited twice."

    async def test_scene_turn_is_not_summarized_again_on_overflow(
        self, package_store, plot_manager, combat_engine, history_store, mock_llm_manager, mock_provider
    ):
        orch = TurnOrchestrator(
            package_store=package_store,
            plot_manager=plot_manager,
            combat_engine=combat_engine,
            history_store=history_store,
            compressor=ContextCompressor(plot_manager, low_water=2, high_water=4, retain_tail=2),
        )
        mock_provider.queue_response(DIRECTOR_REPLY)
        mock_provider.queue_response("Mara reached the cliffs.")
        mock_provider.queue_tool_step(
            tool_call("travel", targetLocationId="cliff"),
            tool_call("yieldToPlayer", waitingFor="free-text"),
        )
        await orch.run_turn("s1", "lighthouse", "I head to the cliff")
        await orch.drain_background()
        assert all(m.get("summarized") for m in history_store.load("s1"))

        await orch.run_turn("s1", "lighthouse", "I wait")

        assert history_store.load("s1") == [
            {"role": "user", "content": "I wait"},
            {"role": "assistant", "content": "The scene holds its breath."},
        ]
        assert orch.get_state("s1").story_summary == "Mara reached the cliffs."
        assert not any("overflow" in json.dumps(c["messages"]) for c in mock_provider.calls("complete"))
        orch.close()

    async def test_turns_without_progress_count_off_path(self, orchestrator, mock_provider):
        await orchestrator.run_turn("s1", "lighthouse", "I wait")
        await orchestrator.run_turn("s1", "lighthouse", "I wait more")
        assert orchestrator.get_state("s1").off_path_turns == 2

        mock_provider.queue_tool_step(
            tool_call("advanceBeat"),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        await orchestrator.run_turn("s1", "lighthouse", "I haggle over the fare")
        state = orchestrator.get_state("s1")
        assert (state.current_beat, state.off_path_turns) == (1, 0)

    async def test_end_session(self, orchestrator, history_store):
        await orchestrator.run_turn("s1", "lighthouse", "I wait")
        assert orchestrator.end_session("s1") is True
        assert orchestrator.get_state("s1") is None
        assert history_store.load("s1") == []
        assert orchestrator.end_session("s1") is False
