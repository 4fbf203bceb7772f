"""
Tactical combat state machine.

    init ──► player phase ◄──► enemy phase ──► complete(victory|defeat|escape)
                  (round +1 each time the turn order wraps)

Combat is narrative-controlled: HP reaching 0 is logged, but only an explicit
``end_combat`` event completes the fight. Every batch of injected events is
validated and applied to a copy, so a bad event leaves the stored state as it
was.
"""

import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from ..db.combat_store import CombatStore
from ..enums import CombatPhase, TerrainKind, TokenKind
from ..frames.models import Frame
from ..frames.registry import FrameType
from .models import (
    DEFAULT_ATTACK,
    DEFAULT_ATTACK_RANGE,
    DEFAULT_DEFENSE,
    DEFAULT_HP,
    DEFAULT_MOVE,
    DEFAULT_PLAYER_MOVE,
    DEFAULT_RULES,
    AddTerrain,
    AddToken,
    CombatEvent,
    CombatState,
    EndCombat,
    EndTurn,
    LogMessage,
    ModifyHp,
    MoveToken,
    RemoveToken,
    TerrainCell,
    Token,
    TokenSpec,
)

logger = logging.getLogger(__name__)

NO_ACTIVE_COMBAT = "No active combat found"

_events_adapter = TypeAdapter(list[CombatEvent])
_tokens_adapter = TypeAdapter(list[TokenSpec])
_terrain_adapter = TypeAdapter(list[TerrainCell])

_PLAYER_SIDE = (TokenKind.PLAYER, TokenKind.ALLY)


class CombatError(ValueError):
    """An event that cannot be applied to the current board."""


def fill_token(spec: TokenSpec) -> Token:
    """Materialize a token, filling omitted stats with defaults."""
    max_hp = spec.max_hp if spec.max_hp is not None else spec.hp
    if max_hp is None:
        max_hp = DEFAULT_HP
    hp = spec.hp if spec.hp is not None else max_hp
    default_move = DEFAULT_PLAYER_MOVE if spec.type == TokenKind.PLAYER else DEFAULT_MOVE
    return Token(
        id=spec.id,
        kind=spec.type,
        label=spec.label or spec.id,
        icon=spec.icon,
        col=spec.col,
        row=spec.row,
        hp=max(0, min(hp, max_hp)),
        max_hp=max_hp,
        attack=spec.attack if spec.attack is not None else DEFAULT_ATTACK,
        defense=spec.defense if spec.defense is not None else DEFAULT_DEFENSE,
        move_range=spec.move_range if spec.move_range is not None else default_move,
        attack_range=spec.attack_range if spec.attack_range is not None else DEFAULT_ATTACK_RANGE,
        ai_pattern=spec.ai_pattern,
    )


def build_turn_order(tokens: list[Token]) -> list[str]:
    """Player tokens first, then everything else that acts, in listing order."""
    players = [t.id for t in tokens if t.kind == TokenKind.PLAYER]
    others = [t.id for t in tokens if t.kind not in (TokenKind.PLAYER, TokenKind.OBJECTIVE)]
    return players + others


def _phase_for(state: CombatState, token_id: str | None) -> CombatPhase:
    token = state.get_token(token_id) if token_id else None
    if token is None or token.kind in _PLAYER_SIDE:
        return CombatPhase.PLAYER
    return CombatPhase.ENEMY


def combat_frame(state: CombatState) -> Frame:
    """The tactical-map frame for the current board."""
    return Frame(
        id=f"combat-{state.session_id}-r{state.round}",
        type=FrameType.TACTICAL_MAP,
        narration=state.log[-1] if state.log else None,
        tactical_map_data={
            "setting": state.setting,
            "rules": state.rules,
            "gridCols": state.grid_cols,
            "gridRows": state.grid_rows,
            "tokens": [
                {
                    "id": t.id,
                    "type": str(t.kind),
                    "label": t.label,
                    "icon": t.icon,
                    "col": t.col,
                    "row": t.row,
                    "hp": t.hp,
                    "maxHp": t.max_hp,
                    "attack": t.attack,
                    "defense": t.defense,
                    "moveRange": t.move_range,
                    "attackRange": t.attack_range,
                    "hasActed": t.has_acted,
                    "hasMoved": t.has_moved,
                    "statusEffects": [s.model_dump(mode="json") for s in t.status_effects],
                    "aiPattern": t.ai_pattern,
                }
                for t in state.tokens
            ],
            "terrain": [{"col": c.col, "row": c.row, "type": str(c.kind)} for c in state.terrain],
            "round": state.round,
            "phase": str(state.phase),
            "turnOrder": list(state.turn_order),
            "activeTokenId": state.active_token_id,
            "log": list(state.log),
            "isComplete": state.is_complete,
            "result": str(state.result) if state.result else None,
        },
    )


class CombatEngine:
    """Initializes, mutates and persists per-session combat."""

    def __init__(self, store: CombatStore | None = None):
        self.store = store or CombatStore()

    # ── Lifecycle ─────────────────────────────────────────────────

    def initialize(
        self,
        session_id: str,
        setting: str,
        tokens: list[dict[str, Any]],
        terrain: list[dict[str, Any]] | None = None,
        rules: str | None = None,
    ) -> dict[str, Any]:
        try:
            specs = _tokens_adapter.validate_python(tokens)
            cells = _terrain_adapter.validate_python(_terrain_input(terrain or []))
        except ValidationError as e:
            return {"ok": False, "error": f"Invalid combat setup: {e.error_count()} errors: {e}"}
        if not specs:
            return {"ok": False, "error": "Combat needs at least one token"}

        built = [fill_token(s) for s in specs]
        order = build_turn_order(built)
        first = built[0]
        state = CombatState(
            session_id=session_id,
            setting=setting,
            rules=rules or DEFAULT_RULES,
            tokens=built,
            terrain=_dedupe_terrain(cells),
            round=1,
            phase=CombatPhase.PLAYER if first.kind in _PLAYER_SIDE else CombatPhase.ENEMY,
            turn_order=order,
            active_token_id=order[0] if order else None,
            log=["Combat begins!"],
        )
        self.store.save(state)
        logger.info(f"[Combat] {session_id}: initialized with {len(built)} tokens")
        return {"ok": True, "frame": combat_frame(state).to_client()}

    def get(self, session_id: str) -> CombatState | None:
        return self.store.load(session_id)

    def clear(self, session_id: str) -> bool:
        return self.store.delete(session_id)

    # ── Events ────────────────────────────────────────────────────

    def inject_events(self, session_id: str, events: list[dict[str, Any]]) -> dict[str, Any]:
        state = self.store.load(session_id)
        if state is None:
            return {"ok": False, "error": NO_ACTIVE_COMBAT}
        if state.is_complete:
            return {"ok": False, "error": f"Combat already ended ({state.result})"}

        try:
            parsed = _events_adapter.validate_python(events)
        except ValidationError as e:
            return {"ok": False, "error": f"Invalid combat events: {e}"}

        working = state.model_copy(deep=True)
        try:
            for event in parsed:
                apply_event(working, event)
        except CombatError as e:
            logger.warning(f"[Combat] {session_id}: batch rejected: {e}")
            return {"ok": False, "error": str(e)}

        self.store.save(working)
        return {"ok": True, "frame": combat_frame(working).to_client()}


def _terrain_input(terrain: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Authors write {"type": "blocked"}; the model field is ``kind``
    out = []
    for cell in terrain:
        cell = dict(cell)
        if "kind" not in cell:
            cell["kind"] = cell.pop("type", cell.pop("terrainType", None))
        out.append(cell)
    return out


def _dedupe_terrain(cells: list[TerrainCell]) -> list[TerrainCell]:
    by_pos: dict[tuple[int, int], TerrainCell] = {}
    for cell in cells:
        by_pos[(cell.col, cell.row)] = cell
    return list(by_pos.values())


def _require_token(state: CombatState, token_id: str) -> Token:
    token = state.get_token(token_id)
    if token is None:
        raise CombatError(f"Unknown token '{token_id}'")
    return token


def apply_event(state: CombatState, event: Any) -> None:
    """Apply one validated event in place. Raises CombatError on a bad target."""
    if isinstance(event, ModifyHp):
        token = _require_token(state, event.token_id)
        token.hp = max(0, min(token.max_hp, token.hp + event.delta))
        if token.hp == 0:
            state.log.append(f"{token.label} was defeated!")

    elif isinstance(event, AddToken):
        if state.get_token(event.token.id):
            raise CombatError(f"Token '{event.token.id}' already exists")
        token = fill_token(event.token)
        state.tokens.append(token)
        if token.kind != TokenKind.OBJECTIVE:
            state.turn_order.append(token.id)
            if state.active_token_id is None:
                state.active_token_id = token.id
        state.log.append(f"{token.label} has entered the battle!")

    elif isinstance(event, RemoveToken):
        token = _require_token(state, event.token_id)
        state.tokens = [t for t in state.tokens if t.id != token.id]
        if token.id in state.turn_order:
            idx = state.turn_order.index(token.id)
            state.turn_order.remove(token.id)
            if state.active_token_id == token.id:
                if state.turn_order:
                    state.active_token_id = state.turn_order[idx % len(state.turn_order)]
                else:
                    state.active_token_id = None
                state.phase = _phase_for(state, state.active_token_id)

    elif isinstance(event, MoveToken):
        token = _require_token(state, event.token_id)
        if not (0 <= event.col < state.grid_cols and 0 <= event.row < state.grid_rows):
            raise CombatError(
                f"({event.col}, {event.row}) is outside the {state.grid_cols}x{state.grid_rows} grid"
            )
        cell = state.terrain_at(event.col, event.row)
        if cell is not None and cell.kind == TerrainKind.BLOCKED:
            raise CombatError(f"({event.col}, {event.row}) is blocked terrain")
        token.col, token.row = event.col, event.row
        token.has_moved = True

    elif isinstance(event, AddTerrain):
        state.terrain = [c for c in state.terrain if (c.col, c.row) != (event.col, event.row)]
        state.terrain.append(TerrainCell(col=event.col, row=event.row, kind=event.terrain_type))

    elif isinstance(event, LogMessage):
        state.log.append(event.message)

    elif isinstance(event, EndTurn):
        _end_turn(state)

    elif isinstance(event, EndCombat):
        state.is_complete = True
        state.result = event.result
        if event.message:
            state.log.append(event.message)

    else:
        raise CombatError(f"Unsupported event {type(event).__name__}")


def _end_turn(state: CombatState) -> None:
    if not state.turn_order:
        return
    current = state.get_token(state.active_token_id) if state.active_token_id else None
    if current is not None:
        current.has_acted = True
        current.has_moved = True

    if state.active_token_id in state.turn_order:
        idx = state.turn_order.index(state.active_token_id) + 1
    else:
        idx = 0
    if idx >= len(state.turn_order):
        idx = 0
        state.round += 1
        state.log.append(f"--- Round {state.round} ---")
        for token in state.tokens:
            token.has_acted = False
            token.has_moved = False

    state.active_token_id = state.turn_order[idx]
    state.phase = _phase_for(state, state.active_token_id)
