"""Versioned encode/decode for the JSON blob columns.

Every blob is written as ``{"v": SCHEMA_VERSION, "data": ...}``.  Payloads
without a version tag (hand-edited rows, legacy dumps) are read as version 0,
which has the same shape as version 1.  Corrupt blobs decode to the field
default with a warning; a newer-than-known version is refused.
"""

import json
import logging
from typing import Any, Callable, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from ..combat.models import CombatState
from ..state.models import (
    ActiveComplication,
    CharacterState,
    FlagValue,
    OpposingForceState,
    PlayerStats,
)
from ..story.models import Encounter

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

T = TypeVar("T")


class BlobCodec(Generic[T]):
    """Typed JSON codec for one column."""

    def __init__(self, name: str, type_: Any, default: Callable[[], T]):
        self.name = name
        self._adapter = TypeAdapter(type_)
        self._default = default

    def encode(self, value: T) -> str:
        data = self._adapter.dump_python(value, mode="json")
        return json.dumps({"v": SCHEMA_VERSION, "data": data}, separators=(",", ":"))

    def decode(self, text: str | None) -> T:
        if not text:
            return self._default()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"[codecs] {self.name}: corrupt JSON, using default")
            return self._default()

        if isinstance(payload, dict) and "v" in payload and "data" in payload:
            version = payload["v"]
            data = payload["data"]
        else:
            version = 0
            data = payload

        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise ValueError(
                f"{self.name}: blob schema version {version!r} is newer than supported ({SCHEMA_VERSION})"
            )

        try:
            return self._adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"[codecs] {self.name}: invalid payload ({e.error_count()} errors), using default")
            return self._default()


completed_locations_codec: BlobCodec[list[str]] = BlobCodec("completed_locations", list[str], list)
flags_codec: BlobCodec[dict[str, FlagValue]] = BlobCodec("flags", dict[str, FlagValue], dict)
flag_names_codec: BlobCodec[list[str]] = BlobCodec("last_flag_names", list[str], list)
player_stats_codec: BlobCodec[PlayerStats] = BlobCodec("player_stats", PlayerStats, PlayerStats)
opposing_force_codec: BlobCodec[OpposingForceState] = BlobCodec(
    "opposing_force", OpposingForceState, OpposingForceState
)
character_states_codec: BlobCodec[dict[str, CharacterState]] = BlobCodec(
    "character_states", dict[str, CharacterState], dict
)
complication_codec: BlobCodec[ActiveComplication | None] = BlobCodec(
    "active_complication", ActiveComplication | None, lambda: None
)
exhausted_codec: BlobCodec[list[str]] = BlobCodec("exhausted_encounters", list[str], list)
injected_codec: BlobCodec[dict[str, list[Encounter]]] = BlobCodec(
    "injected_encounters", dict[str, list[Encounter]], dict
)
director_notes_codec: BlobCodec[dict[str, Any]] = BlobCodec("director_notes", dict[str, Any], dict)
messages_codec: BlobCodec[list[dict[str, Any]]] = BlobCodec("messages", list[dict[str, Any]], list)
combat_codec: BlobCodec[CombatState | None] = BlobCodec("combat_state", CombatState | None, lambda: None)
