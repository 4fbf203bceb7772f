"""
Canonical string enumerations for Taleweave.

StrEnum values serialize as plain strings, so they go straight into
database JSON blobs, SSE payloads, and LLM tool schemas.
"""

from enum import StrEnum


# ── Story graph ────────────────────────────────────────────────────────

class EncounterType(StrEnum):
    DISCOVERY = "discovery"
    NPC_INTERACTION = "npc_interaction"
    COMBAT = "combat"
    PUZZLE = "puzzle"
    ATMOSPHERIC = "atmospheric"


class EncounterPriority(StrEnum):
    """Encounter urgency. Higher rank wins when suggesting."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    EncounterPriority.LOW: 0,
    EncounterPriority.NORMAL: 1,
    EncounterPriority.HIGH: 2,
    EncounterPriority.URGENT: 3,
}


class WorldInfoType(StrEnum):
    LORE = "lore"
    ENTITY = "entity"
    ATMOSPHERE = "atmosphere"


class CharacterRole(StrEnum):
    PROTAGONIST = "protagonist"
    ALLY = "ally"
    ANTAGONIST = "antagonist"
    NPC = "npc"


# ── Player ─────────────────────────────────────────────────────────────

class StatusEffectType(StrEnum):
    BUFF = "buff"
    DEBUFF = "debuff"
    NEUTRAL = "neutral"


class PlayerStatsAction(StrEnum):
    READ = "read"
    UPDATE = "update"
    ADD_ITEM = "add_item"
    REMOVE_ITEM = "remove_item"
    ADD_STATUS = "add_status"
    REMOVE_STATUS = "remove_status"


# ── Turn loop ──────────────────────────────────────────────────────────

class WaitingFor(StrEnum):
    """What kind of player input the turn yielded for."""
    CHOICE = "choice"
    FREE_TEXT = "free-text"
    CONTINUE = "continue"
    DICE_RESULT = "dice-result"
    COMBAT_RESULT = "combat-result"


class SkillBand(StrEnum):
    """PbtA 2d6 result bands."""
    FULL = "full"      # 10+
    MIXED = "mixed"    # 7-9, success with a cost
    MISS = "miss"      # 6-


# ── Combat ─────────────────────────────────────────────────────────────

class TokenKind(StrEnum):
    PLAYER = "player"
    ENEMY = "enemy"
    ALLY = "ally"
    OBJECTIVE = "objective"
    NPC = "npc"


class TerrainKind(StrEnum):
    BLOCKED = "blocked"
    DIFFICULT = "difficult"
    HAZARD = "hazard"
    COVER = "cover"


class CombatPhase(StrEnum):
    PLAYER = "player"
    ENEMY = "enemy"


class CombatResult(StrEnum):
    VICTORY = "victory"
    DEFEAT = "defeat"
    ESCAPE = "escape"


class CombatEventType(StrEnum):
    MODIFY_HP = "modify_hp"
    ADD_TOKEN = "add_token"
    REMOVE_TOKEN = "remove_token"
    MOVE_TOKEN = "move_token"
    ADD_TERRAIN = "add_terrain"
    LOG_MESSAGE = "log_message"
    END_TURN = "end_turn"
    END_COMBAT = "end_combat"
