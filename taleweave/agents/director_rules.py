"""Deterministic pre-check that decides whether the Director model runs.

Cheap turns (nothing changed, nothing interesting asked) reuse a neutral
direction instead of paying for a policy call.
"""

from dataclasses import dataclass, field

from ..state.models import PlotState
from ..story.models import StoryPackage

TRAVEL_KEYWORDS = ["go to", "walk to", "head to", "travel", "leave", "exit", "move to"]
ACTION_KEYWORDS = ["attack", "fight", "search", "examine", "pick", "steal", "break", "open", "hide", "run"]

STALE_PROGRESSION_TURNS = 8
PERIODIC_REFRESH_TURNS = 3


@dataclass
class RulesVerdict:
    needs_director: bool
    reasons: list[str] = field(default_factory=list)
    complication_cleared: bool = False

    @property
    def reason(self) -> str:
        if self.reasons:
            return "; ".join(self.reasons)
        return "no significant changes detected"


def evaluate_rules(state: PlotState, package: StoryPackage, player_action: str) -> RulesVerdict:
    verdict = RulesVerdict(needs_director=False)

    def need(reason: str) -> None:
        verdict.needs_director = True
        verdict.reasons.append(reason)

    complication = state.active_complication
    if complication and complication.is_expired(state.turn_count):
        verdict.complication_cleared = True
        verdict.reasons.append(
            f"complication expired ({state.turn_count - complication.injected_at_turn} "
            f">= {complication.max_turns} turns)"
        )

    if state.turn_count == 0:
        need("first turn of session")

    new_flags = state.new_flag_names()
    if new_flags:
        need(f"new flags set: {', '.join(new_flags)}")

    act = package.get_act(state.current_act_id)
    if act and act.global_progression:
        required = act.global_progression.required_value
        if state.global_progression >= required:
            need(f"progression threshold reached: {state.global_progression}/{required}")
        elif state.turn_count >= STALE_PROGRESSION_TURNS:
            need(f"stale progression ({state.global_progression}/{required} after {state.turn_count} turns)")

    if act and act.opposing_force:
        tick = state.opposing_force.current_tick
        if tick >= act.opposing_force.required_value:
            need(f"doom clock maxed: {tick}/{act.opposing_force.required_value}")
        for event in act.opposing_force.escalation_events:
            if tick >= event.threshold and f"threshold_{event.threshold}" not in state.opposing_force.escalation_history:
                need(f"escalation threshold crossed: {event.threshold}")

    if state.turn_count > 0 and state.turn_count % PERIODIC_REFRESH_TURNS == 0:
        need(f"periodic refresh (turn {state.turn_count})")

    query = (player_action or "").lower()
    if any(kw in query for kw in TRAVEL_KEYWORDS):
        need("travel intent detected")
    if any(kw in query for kw in ACTION_KEYWORDS):
        need("significant action detected")

    return verdict
