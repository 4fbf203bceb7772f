"""Turn pipeline mixin: the main run_turn method.

Split from orchestrator.py for maintainability.
Contains the two-phase turn flow: Director (policy) → Storyteller (render).
"""

import logging
import re
import time
from typing import Any

from ..agents.context_compressor import mark_summarized, sanitize_history
from ..agents.director_rules import evaluate_rules
from ..agents.storyteller import EmitFn, StorytellerEvent
from ..enums import WaitingFor
from ..frames.dice import format_dice_result, parse_dice_result
from ..state.models import PlotState
from ..world.resolver import resolve

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+)\b\s*(.*)$", re.DOTALL)


def compose_player_message(action: str, awaiting: WaitingFor | None, dice_total: int | None) -> str:
    """Prefix the player's text with ``[dice-result] N`` when a roll is being answered.

    An explicit ``dice_total`` always wins. Otherwise, while the session waits
    for a dice result, a leading number in the action is taken as the roll.
    """
    action = action.strip()
    if parse_dice_result(action) is not None:
        return action
    if dice_total is not None:
        return f"{format_dice_result(dice_total)} {action}".rstrip()
    if awaiting == WaitingFor.DICE_RESULT:
        match = _LEADING_NUMBER.match(action)
        if match:
            return f"{format_dice_result(int(match.group(1)))} {match.group(2).strip()}".rstrip()
        logger.warning(f"[Orchestrator] awaiting a dice result but got no roll: {action[:80]!r}")
    return action


def made_progress(before: PlotState, after: PlotState) -> bool:
    """Whether a turn moved the plot: position, beat, flags, encounters or progression."""
    return (
        before.current_act_id != after.current_act_id
        or before.current_location_id != after.current_location_id
        or before.current_beat != after.current_beat
        or len(before.completed_locations) != len(after.completed_locations)
        or before.flags != after.flags
        or set(before.exhausted_encounters) != set(after.exhausted_encounters)
        or before.global_progression != after.global_progression
    )


class TurnPipelineMixin:
    """The main ``run_turn`` pipeline.

    Relies on instance attributes set by ``TurnOrchestrator.__init__``.
    """

    async def run_turn(
        self,
        session_id: str,
        package_id: str,
        player_action: str,
        dice_total: int | None = None,
        emit: EmitFn | None = None,
    ) -> "TurnResult":
        """Process a single turn.

        Args:
            session_id: Session to advance
            package_id: Story package the session plays
            player_action: The player's text (may be empty on the opening call)
            dice_total: Result of a roll the client performed, if any
            emit: Optional async callback receiving StorytellerEvents

        Returns:
            TurnResult with the frames and what the player is asked for next

        Raises:
            PackageNotFound: the package id is unknown
            ValueError: the session is bound to another package
        """
        package = self.load_package(package_id)
        async with self._lock_for(session_id):
            return await self._run_turn_locked(session_id, package, player_action or "", dice_total, emit)

    async def _run_turn_locked(self, session_id, package, player_action, dice_total, emit) -> "TurnResult":
        from .orchestrator import TurnResult
        start = time.time()

        existing = self.plot.read(session_id)
        if existing is not None and existing.package_id != package.id:
            raise ValueError(
                f"Session '{session_id}' plays package '{existing.package_id}', not '{package.id}'"
            )
        state = self.plot.init_if_absent(session_id, package)

        # =====================================================================
        # OPENING: a new session with no action only seeds the state
        # =====================================================================
        if existing is None and not player_action.strip() and dice_total is None:
            result = TurnResult(
                session_id=session_id,
                turn_count=state.turn_count,
                location_id=state.current_location_id,
                act_id=state.current_act_id,
            )
            await _send(emit, "turn_start", {"sessionId": session_id, "turnCount": 0, "opening": True})
            await _send(emit, "turn_end", result.to_dict())
            return result

        message = compose_player_message(player_action, state.awaiting_input, dice_total)

        # =====================================================================
        # PHASE 1: Rules pre-check on the pre-turn snapshot, then count the turn
        # =====================================================================
        before = state
        verdict = evaluate_rules(before, package, player_action)
        state = self.plot.begin_turn(session_id)
        if verdict.complication_cleared:
            state = self.plot.clear_complication(session_id)
            logger.info(f"[Orchestrator] {session_id}: complication expired and cleared")

        await _send(emit, "turn_start", {"sessionId": session_id, "turnCount": state.turn_count})

        # =====================================================================
        # PHASE 2: Director (policy) → mutations
        # =====================================================================
        view = resolve(package, state, player_action)
        if verdict.needs_director:
            logger.info(f"[Orchestrator] {session_id}: Director triggered ({verdict.reason})")
            direction = await self.director.direct(state, package, view, player_action)
        else:
            direction = self.director.skipped_pack(verdict, view)
        await _send(emit, "direction", direction.to_event())

        if not direction.state_mutations.is_empty:
            state = self.plot.apply_mutations(session_id, direction.state_mutations, package)

        # =====================================================================
        # PHASE 3: Storyteller (render) over the post-mutation view
        # =====================================================================
        view = resolve(package, state, player_action, direction.suggested_encounter_id)
        history = self.history.load(session_id)
        story = await self.storyteller.run_turn(
            session_id=session_id,
            package=package,
            direction=direction,
            view=view,
            player_message=message,
            history=history,
            summary=state.story_summary,
            emit=emit,
        )

        # =====================================================================
        # PHASE 4: Bookkeeping for the next turn
        # =====================================================================
        state = self.plot.set_awaiting_input(session_id, story.waiting_for)
        if not made_progress(before, state):
            self.plot.note_off_path(session_id)
        after = self.plot.snapshot_flag_names(session_id)

        moved = (
            before.current_location_id != after.current_location_id
            or before.current_act_id != after.current_act_id
        )
        turn_messages = sanitize_history(story.messages)
        if moved:
            # The scene summary covers these; overflow compression must skip them
            turn_messages = mark_summarized(turn_messages)
        full_history = self.history.append(session_id, turn_messages)
        compressed = await self.compressor.compress(session_id, full_history, after.story_summary)
        if compressed.compressed:
            self.history.replace(session_id, compressed.messages)

        if moved:
            self._summarize_scene(session_id, turn_messages, before, after)

        result = TurnResult(
            session_id=session_id,
            turn_count=after.turn_count,
            frames=[f.to_client() for f in story.frames],
            waiting_for=story.waiting_for,
            outcome=story.outcome,
            direction=direction.to_event(),
            location_id=after.current_location_id,
            act_id=after.current_act_id,
        )
        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            f"[Orchestrator] {session_id}: turn {after.turn_count} done in {latency_ms}ms "
            f"({len(result.frames)} frames, {story.outcome}, waiting for {story.waiting_for})"
        )
        await _send(emit, "turn_end", {**result.to_dict(), "latencyMs": latency_ms})
        return result


async def _send(emit: EmitFn | None, event_type: str, data: dict[str, Any]) -> None:
    if emit is not None:
        await emit(StorytellerEvent(event_type, data))
