"""Tests for the Storyteller tool loop and its session-bound tools."""

import json

import pytest

from taleweave.agents.director import DirectionPack
from taleweave.agents.storyteller import StorytellerAgent
from taleweave.enums import WaitingFor
from taleweave.world.resolver import resolve

from .conftest import tool_call

FULL_SCREEN = {"type": "full-screen", "narration": "Ice groans beneath the hull.",
               "panels": [{"id": "center", "background": "harbor_bg"}]}
DICE_ROLL = {"type": "dice-roll", "narration": "Leap the gap?",
             "diceRoll": {"diceNotation": "2d6", "stat": "dexterity"}}


@pytest.fixture
def storyteller(seeded, combat_engine, mock_llm_manager):
    return StorytellerAgent(seeded, combat_engine, max_steps=3)


async def _run(storyteller, package, message="I look around", **kwargs):
    state = storyteller.plot_manager.read("s1")
    direction = kwargs.pop("direction", None) or DirectionPack(
        director_brief="Let Tobin stall.", suggested_encounter_id="enc-ferry"
    )
    return await storyteller.run_turn(
        session_id="s1",
        package=package,
        direction=direction,
        view=resolve(package, state, message),
        player_message=message,
        **kwargs,
    )


def _tool_messages(result) -> list[dict]:
    return [m for m in result.messages if m["role"] == "tool"]


class TestLoopOutcomes:
    async def test_explicit_yield(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(
            tool_call("readPlotState", playerQuery="I look around"),
            tool_call("buildFrame", frame=FULL_SCREEN),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        result = await _run(storyteller, sample_package)

        assert result.outcome == "yielded"
        assert result.waiting_for == WaitingFor.CHOICE
        assert result.steps == 1
        assert [f.narration for f in result.frames] == ["Ice groans beneath the hull."]
        assert [m["role"] for m in result.messages] == ["user", "assistant", "tool", "tool", "tool"]

        plot = json.loads(_tool_messages(result)[0]["content"])
        assert plot["directorBrief"] == "Let Tobin stall."
        assert plot["suggestedEncounterId"] == "enc-ferry"
        assert plot["currentLocationTitle"] == "Frozen Harbor"

    async def test_text_without_tools_is_implicit_yield(self, storyteller, mock_provider, sample_package):
        result = await _run(storyteller, sample_package)
        assert result.outcome == "finished"
        assert result.waiting_for == WaitingFor.FREE_TEXT
        assert result.text == "The scene holds its breath."
        assert result.messages[-1] == {"role": "assistant", "content": "The scene holds its breath."}

    async def test_budget_exhausted(self, storyteller, mock_provider, sample_package):
        for _ in range(3):
            mock_provider.queue_tool_step(tool_call("readPlotState", playerQuery="x"))
        result = await _run(storyteller, sample_package)
        assert result.outcome == "budget_exhausted"
        assert result.steps == 3
        assert result.waiting_for == WaitingFor.FREE_TEXT
        assert len(mock_provider.calls("tool_step")) == 3

    async def test_dice_roll_forces_yield(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(
            tool_call("buildFrame", frame=DICE_ROLL),
            tool_call("buildFrame", frame=FULL_SCREEN),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        result = await _run(storyteller, sample_package)

        assert result.waiting_for == WaitingFor.DICE_RESULT
        assert [str(f.type) for f in result.frames] == ["dice-roll"]
        skipped = _tool_messages(result)[1:]
        assert all("turn already yielded; call skipped" in m["content"] for m in skipped)

    async def test_provider_error_propagates(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_step_error(RuntimeError("upstream 500"))
        with pytest.raises(RuntimeError, match="upstream 500"):
            await _run(storyteller, sample_package)


class TestSelfCorrection:
    async def test_tool_errors_are_fed_back(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(
            tool_call("buildFrame", frame={"type": "choice"}),
            tool_call("teleport", where="moon"),
        )
        mock_provider.queue_tool_step(tool_call("yieldToPlayer", waitingFor="free-text"))
        result = await _run(storyteller, sample_package)

        assert result.steps == 2
        assert result.frames == []
        second_call = mock_provider.calls("tool_step")[1]["messages"]
        tool_contents = [m["content"] for m in second_call if m["role"] == "tool"]
        assert "choice frame requires at least one entry in 'choices'" in tool_contents[0]
        assert tool_contents[1].startswith("Error calling teleport: Unknown tool")

    async def test_invalid_yield_target_is_rejected(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(tool_call("yieldToPlayer", waitingFor="nap"))
        result = await _run(storyteller, sample_package)
        assert result.outcome == "finished"
        assert "must be one of" in _tool_messages(result)[0]["content"]


class TestSessionBoundTools:
    async def test_travel_moves_this_session(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(
            tool_call("travel", targetLocationId="cliff"),
            tool_call("yieldToPlayer", waitingFor="continue"),
        )
        await _run(storyteller, sample_package)
        assert storyteller.plot_manager.read("s1").current_location_id == "cliff"

    async def test_complete_encounter_only_once(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(
            tool_call("completeEncounter", encounterId="enc-ferry"),
            tool_call("completeEncounter", call_id="again", encounterId="enc-ferry"),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        result = await _run(storyteller, sample_package)
        first, second = (json.loads(m["content"]) for m in _tool_messages(result)[:2])
        assert first == {"ok": True, "encounterId": "enc-ferry", "progressionGained": 1, "globalProgression": 1}
        assert second["ok"] is False
        assert storyteller.plot_manager.read("s1").exhausted_encounters == ["enc-ferry"]

    async def test_advance_beat_tool(self, storyteller, mock_provider, sample_package):
        storyteller.plot_manager.note_off_path("s1")
        mock_provider.queue_tool_step(
            tool_call("advanceBeat"),
            tool_call("advanceBeat", call_id="again"),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        result = await _run(storyteller, sample_package)
        first, second = (json.loads(m["content"]) for m in _tool_messages(result)[:2])
        assert first == {"ok": True, "advanced": True, "currentBeat": 1, "beat": "Bargain with the ferryman"}
        assert second["advanced"] is False
        state = storyteller.plot_manager.read("s1")
        assert (state.current_beat, state.off_path_turns) == (1, 0)

    async def test_flags_and_stats(self, storyteller, mock_provider, sample_package):
        mock_provider.queue_tool_step(
            tool_call("recordFlag", flagName="paid_tobin"),
            tool_call("mutatePlayerStats", action="add_item", item={"id": "ticket", "name": "Ferry ticket"}),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        await _run(storyteller, sample_package)
        state = storyteller.plot_manager.read("s1")
        assert state.flags == {"paid_tobin": True}
        assert [i.id for i in state.player_stats.items] == ["ticket"]

    async def test_combat_tools_emit_events(self, storyteller, mock_provider, sample_package):
        events = []

        async def collect(event):
            events.append(event)

        mock_provider.queue_tool_step(
            tool_call("initializeCombat", setting="Pier", tokens=[
                {"id": "mara", "type": "player", "col": 0, "row": 0},
                {"id": "wraith", "type": "enemy", "col": 3, "row": 0},
            ]),
            tool_call("yieldToPlayer", waitingFor="combat-result"),
        )
        result = await _run(storyteller, sample_package, emit=collect)

        assert result.waiting_for == WaitingFor.COMBAT_RESULT
        assert [e.type for e in events] == ["tool", "combat", "tool", "yield"]
        assert events[1].data["frame"]["type"] == "tactical-map"
        assert events[-1].data == {"waitingFor": "combat-result", "outcome": "yielded"}
        assert storyteller.combat_engine.get("s1") is not None

    async def test_frame_events_are_streamed(self, storyteller, mock_provider, sample_package):
        events = []

        async def collect(event):
            events.append(event)

        mock_provider.queue_tool_step(
            tool_call("buildFrame", frame={"type": "choice", "choices": [{"id": "a", "text": "Pay"}]}),
            tool_call("yieldToPlayer", waitingFor="choice"),
        )
        await _run(storyteller, sample_package, emit=collect)
        frame_event = next(e for e in events if e.type == "frame")
        assert frame_event.data["choices"] == [{"id": "a", "text": "Pay"}]


class TestPrompt:
    async def test_history_and_summary_reach_the_model(self, storyteller, mock_provider, sample_package):
        history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "before"}]
        await _run(storyteller, sample_package, history=history, summary="Mara arrived by sled.")

        call = mock_provider.calls("tool_step")[0]
        assert call["messages"][:2] == history
        assert call["messages"][2] == {"role": "user", "content": "I look around"}
        assert "yieldToPlayer" in call["tools"]
        system = call["system"]
        assert "Let Tobin stall.\nSuggested encounter: enc-ferry" in system
        assert "Mara arrived by sled." in system
        assert "FRAME TYPES (always available):" in system
        assert "Backgrounds: harbor_bg, cliff_bg" in system
