"""Tests for the tactical combat engine."""

from taleweave.combat.engine import NO_ACTIVE_COMBAT, CombatEngine
from taleweave.combat.models import DEFAULT_HP, DEFAULT_MOVE, DEFAULT_PLAYER_MOVE


TOKENS = [
    {"id": "mara", "type": "player", "label": "Mara", "col": 1, "row": 1, "hp": 12},
    {"id": "wraith", "type": "enemy", "label": "Sea Wraith", "col": 5, "row": 1, "hp": 6, "attack": 5},
    {"id": "lamp", "type": "objective", "label": "Lamp", "col": 9, "row": 4},
]


def _start(engine: CombatEngine, session_id: str = "s1", **kwargs) -> dict:
    return engine.initialize(session_id, "The frozen pier", [dict(t) for t in TOKENS], **kwargs)


def _board(result: dict) -> dict:
    return result["frame"]["tacticalMapData"]


class TestInitialize:
    def test_defaults_and_turn_order(self, combat_engine):
        result = _start(combat_engine)
        assert result["ok"]
        assert result["frame"]["type"] == "tactical-map"
        board = _board(result)
        tokens = {t["id"]: t for t in board["tokens"]}
        assert tokens["mara"]["maxHp"] == 12
        assert tokens["mara"]["moveRange"] == DEFAULT_PLAYER_MOVE
        assert tokens["wraith"]["moveRange"] == DEFAULT_MOVE
        assert tokens["lamp"]["hp"] == DEFAULT_HP
        assert board["turnOrder"] == ["mara", "wraith"]
        assert board["activeTokenId"] == "mara"
        assert board["phase"] == "player"
        assert board["round"] == 1
        assert board["log"] == ["Combat begins!"]

    def test_terrain_type_key_is_accepted(self, combat_engine):
        result = _start(combat_engine, terrain=[{"col": 3, "row": 1, "type": "blocked"}])
        assert _board(result)["terrain"] == [{"col": 3, "row": 1, "type": "blocked"}]

    def test_no_tokens(self, combat_engine):
        assert combat_engine.initialize("s1", "void", [])["ok"] is False

    def test_invalid_token(self, combat_engine):
        result = combat_engine.initialize("s1", "void", [{"id": "x", "type": "dragon"}])
        assert result["ok"] is False
        assert "Invalid combat setup" in result["error"]

    def test_state_is_persisted(self, combat_engine):
        _start(combat_engine)
        assert CombatEngine().get("s1").setting == "The frozen pier"


class TestEvents:
    def test_no_active_combat(self, combat_engine):
        result = combat_engine.inject_events("s1", [{"type": "end_turn"}])
        assert result == {"ok": False, "error": NO_ACTIVE_COMBAT}

    def test_hp_clamps_and_defeat_does_not_end_combat(self, combat_engine):
        _start(combat_engine)
        result = combat_engine.inject_events("s1", [{"type": "modify_hp", "tokenId": "wraith", "delta": -50}])
        board = _board(result)
        wraith = next(t for t in board["tokens"] if t["id"] == "wraith")
        assert wraith["hp"] == 0
        assert board["log"][-1] == "Sea Wraith was defeated!"
        assert board["isComplete"] is False

        healed = combat_engine.inject_events("s1", [{"type": "modify_hp", "tokenId": "mara", "delta": 99}])
        mara = next(t for t in _board(healed)["tokens"] if t["id"] == "mara")
        assert mara["hp"] == mara["maxHp"]

    def test_damage_at_zero_hp_logs_defeat(self, combat_engine):
        tokens = [
            {"id": "mara", "type": "player", "label": "Mara", "col": 1, "row": 1, "hp": 12},
            {"id": "wraith", "type": "enemy", "label": "Wraith", "col": 5, "row": 1, "hp": 0, "maxHp": 6},
        ]
        combat_engine.initialize("s1", "The frozen pier", tokens)
        result = combat_engine.inject_events("s1", [{"type": "modify_hp", "tokenId": "wraith", "delta": -3}])
        board = _board(result)
        assert board["log"] == ["Combat begins!", "Wraith was defeated!"]

    def test_end_combat_then_events_rejected(self, combat_engine):
        _start(combat_engine)
        result = combat_engine.inject_events(
            "s1", [{"type": "end_combat", "result": "victory", "message": "The wraith dissolves."}]
        )
        assert _board(result)["isComplete"] is True
        assert _board(result)["result"] == "victory"

        again = combat_engine.inject_events("s1", [{"type": "log_message", "message": "late"}])
        assert again["ok"] is False
        assert "already ended" in again["error"]

    def test_end_turn_wraps_round(self, combat_engine):
        _start(combat_engine)
        first = combat_engine.inject_events("s1", [{"type": "end_turn"}])
        assert _board(first)["activeTokenId"] == "wraith"
        assert _board(first)["phase"] == "enemy"

        second = combat_engine.inject_events("s1", [{"type": "end_turn"}])
        board = _board(second)
        assert board["round"] == 2
        assert board["activeTokenId"] == "mara"
        assert board["log"][-1] == "--- Round 2 ---"
        assert all(not t["hasActed"] for t in board["tokens"])

    def test_add_and_remove_tokens(self, combat_engine):
        _start(combat_engine)
        result = combat_engine.inject_events("s1", [
            {"type": "add_token", "token": {"id": "gull", "kind": "enemy", "label": "Gull"}},
            {"type": "add_token", "token": {"id": "chest", "type": "objective"}},
        ])
        board = _board(result)
        assert board["turnOrder"] == ["mara", "wraith", "gull"]
        assert "Gull has entered the battle!" in board["log"]

        result = combat_engine.inject_events("s1", [{"type": "remove_token", "tokenId": "mara"}])
        board = _board(result)
        assert board["activeTokenId"] == "wraith"
        assert board["phase"] == "enemy"

    def test_batch_is_atomic(self, combat_engine):
        _start(combat_engine, terrain=[{"col": 2, "row": 1, "type": "blocked"}])
        result = combat_engine.inject_events("s1", [
            {"type": "modify_hp", "tokenId": "mara", "delta": -5},
            {"type": "move_token", "tokenId": "mara", "col": 2, "row": 1},
        ])
        assert result["ok"] is False
        assert "blocked" in result["error"]
        assert combat_engine.get("s1").get_token("mara").hp == 12

    def test_move_out_of_bounds(self, combat_engine):
        _start(combat_engine)
        result = combat_engine.inject_events("s1", [{"type": "move_token", "tokenId": "mara", "col": 40, "row": 0}])
        assert "outside" in result["error"]

    def test_unknown_token(self, combat_engine):
        _start(combat_engine)
        result = combat_engine.inject_events("s1", [{"type": "modify_hp", "tokenId": "ghost", "delta": -1}])
        assert result["error"] == "Unknown token 'ghost'"

    def test_invalid_event_shape(self, combat_engine):
        _start(combat_engine)
        result = combat_engine.inject_events("s1", [{"type": "teleport"}])
        assert result["ok"] is False
        assert "Invalid combat events" in result["error"]

    def test_add_terrain_replaces_cell(self, combat_engine):
        _start(combat_engine, terrain=[{"col": 4, "row": 4, "type": "cover"}])
        result = combat_engine.inject_events("s1", [
            {"type": "add_terrain", "col": 4, "row": 4, "terrainType": "hazard"},
        ])
        assert _board(result)["terrain"] == [{"col": 4, "row": 4, "type": "hazard"}]

    def test_clear(self, combat_engine):
        _start(combat_engine)
        assert combat_engine.clear("s1") is True
        assert combat_engine.get("s1") is None
