"""Typed combat state and the events that mutate it."""

from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, Field

from ..enums import CombatPhase, CombatResult, TerrainKind, TokenKind
from ..state.models import StatusEffect

GRID_COLS = 12
GRID_ROWS = 8

DEFAULT_ATTACK = 4
DEFAULT_DEFENSE = 10
DEFAULT_PLAYER_MOVE = 4
DEFAULT_MOVE = 3
DEFAULT_ATTACK_RANGE = 1
DEFAULT_HP = 10

DEFAULT_RULES = (
    "Turn-based grid combat. On its turn a token may move up to its move range "
    "and attack a target within its attack range. Damage = attacker attack minus "
    "half the target's defense, minimum 1."
)


class TokenSpec(BaseModel):
    """Token as supplied by the Storyteller; omitted stats get defaults."""
    id: str
    type: TokenKind = Field(validation_alias=AliasChoices("type", "kind"))
    label: str = ""
    icon: str = ""
    col: int = 0
    row: int = 0
    hp: int | None = None
    max_hp: int | None = Field(default=None, alias="maxHp")
    attack: int | None = None
    defense: int | None = None
    move_range: int | None = Field(default=None, alias="moveRange")
    attack_range: int | None = Field(default=None, alias="attackRange")
    ai_pattern: str | None = Field(default=None, alias="aiPattern")

    model_config = {"populate_by_name": True}


class Token(BaseModel):
    id: str
    kind: TokenKind
    label: str
    icon: str = ""
    col: int
    row: int
    hp: int
    max_hp: int
    attack: int
    defense: int
    move_range: int
    attack_range: int
    has_acted: bool = False
    has_moved: bool = False
    status_effects: list[StatusEffect] = Field(default_factory=list)
    ai_pattern: str | None = None


class TerrainCell(BaseModel):
    col: int
    row: int
    kind: TerrainKind


class CombatState(BaseModel):
    session_id: str
    setting: str = ""
    rules: str = DEFAULT_RULES
    grid_cols: int = GRID_COLS
    grid_rows: int = GRID_ROWS
    tokens: list[Token] = Field(default_factory=list)
    terrain: list[TerrainCell] = Field(default_factory=list)
    round: int = 1
    phase: CombatPhase = CombatPhase.PLAYER
    turn_order: list[str] = Field(default_factory=list)
    active_token_id: str | None = None
    log: list[str] = Field(default_factory=list)
    is_complete: bool = False
    result: CombatResult | None = None

    def get_token(self, token_id: str) -> Token | None:
        for token in self.tokens:
            if token.id == token_id:
                return token
        return None

    def terrain_at(self, col: int, row: int) -> TerrainCell | None:
        for cell in self.terrain:
            if cell.col == col and cell.row == row:
                return cell
        return None


# ── Events ─────────────────────────────────────────────────────────────

class ModifyHp(BaseModel):
    type: Literal["modify_hp"]
    token_id: str = Field(alias="tokenId")
    delta: int
    model_config = {"populate_by_name": True}


class AddToken(BaseModel):
    type: Literal["add_token"]
    token: TokenSpec


class RemoveToken(BaseModel):
    type: Literal["remove_token"]
    token_id: str = Field(alias="tokenId")
    model_config = {"populate_by_name": True}


class MoveToken(BaseModel):
    type: Literal["move_token"]
    token_id: str = Field(alias="tokenId")
    col: int
    row: int
    model_config = {"populate_by_name": True}


class AddTerrain(BaseModel):
    type: Literal["add_terrain"]
    col: int
    row: int
    terrain_type: TerrainKind = Field(alias="terrainType")
    model_config = {"populate_by_name": True}


class LogMessage(BaseModel):
    type: Literal["log_message"]
    message: str


class EndTurn(BaseModel):
    type: Literal["end_turn"]


class EndCombat(BaseModel):
    type: Literal["end_combat"]
    result: CombatResult
    message: str = ""


CombatEvent = Annotated[
    Union[ModifyHp, AddToken, RemoveToken, MoveToken, AddTerrain, LogMessage, EndTurn, EndCombat],
    Field(discriminator="type"),
]
