"""Player stat sheet mutations (HP, attributes, skills, items, status effects)."""

import logging
from typing import Any

from pydantic import ValidationError

from ..enums import PlayerStatsAction
from .models import Attributes, Item, PlayerStats, StatusEffect

logger = logging.getLogger(__name__)


def _stats_payload(stats: PlayerStats) -> dict[str, Any]:
    return {"ok": True, "stats": stats.model_dump(mode="json")}


def apply_stats_action(
    stats: PlayerStats,
    action: str,
    updates: dict[str, Any] | None = None,
    item: dict[str, Any] | None = None,
    item_id: str | None = None,
) -> tuple[PlayerStats | None, dict[str, Any]]:
    """Apply one action to a copy of ``stats``.

    Returns (new_stats, result). ``new_stats`` is None when nothing should be
    persisted (reads and rejected actions).
    """
    try:
        action = PlayerStatsAction(action)
    except ValueError:
        return None, {
            "ok": False,
            "error": f"Unknown action '{action}'",
            "validActions": [str(a) for a in PlayerStatsAction],
        }

    if action == PlayerStatsAction.READ:
        return None, _stats_payload(stats)

    new = stats.model_copy(deep=True)

    if action == PlayerStatsAction.UPDATE:
        if not updates:
            return None, {"ok": False, "error": "update requires 'updates'"}
        if "max_hp" in updates or "maxHp" in updates:
            new.max_hp = max(1, int(updates.get("max_hp", updates.get("maxHp"))))
        if "hp" in updates:
            new.hp = int(updates["hp"])
        new.hp = max(0, min(new.hp, new.max_hp))
        if "level" in updates:
            new.level = int(updates["level"])
        if updates.get("name"):
            new.name = str(updates["name"])
        for skill in updates.get("skills") or []:
            if skill not in new.skills:
                new.skills.append(skill)
        if isinstance(updates.get("attributes"), dict):
            merged = new.attributes.model_dump() | updates["attributes"]
            new.attributes = Attributes.model_validate(merged)
        effects = updates.get("status_effects", updates.get("statusEffects"))
        if effects is not None:
            new.status_effects = [StatusEffect.model_validate(_snake(e)) for e in effects]
        return new, _stats_payload(new)

    if action == PlayerStatsAction.ADD_ITEM:
        if not item:
            return None, {"ok": False, "error": "add_item requires 'item'"}
        incoming = Item.model_validate(_snake(item))
        for existing in new.items:
            if existing.id == incoming.id:
                existing.quantity += incoming.quantity
                break
        else:
            new.items.append(incoming)
        return new, _stats_payload(new)

    if action == PlayerStatsAction.REMOVE_ITEM:
        if not item_id:
            return None, {"ok": False, "error": "remove_item requires 'itemId'"}
        if not any(i.id == item_id for i in new.items):
            return None, {"ok": False, "error": f"Item '{item_id}' is not in the inventory"}
        new.items = [i for i in new.items if i.id != item_id]
        return new, _stats_payload(new)

    if action == PlayerStatsAction.ADD_STATUS:
        effect_data = (updates or {}).get("status") or item
        if not effect_data:
            return None, {"ok": False, "error": "add_status requires a status effect in 'updates.status'"}
        effect = StatusEffect.model_validate(_snake(effect_data))
        new.status_effects = [e for e in new.status_effects if e.id != effect.id] + [effect]
        return new, _stats_payload(new)

    # REMOVE_STATUS
    effect_id = item_id or (updates or {}).get("statusId")
    if not effect_id:
        return None, {"ok": False, "error": "remove_status requires 'itemId' (the status id)"}
    new.status_effects = [e for e in new.status_effects if e.id != effect_id]
    return new, _stats_payload(new)


def _snake(data: dict[str, Any]) -> dict[str, Any]:
    # Tool input arrives camelCase (turnsRemaining); the models are snake_case
    out = {}
    for key, value in data.items():
        snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in key)
        out[snake] = value
    return out


class PlayerStatsMixin:
    """Player stats operations for PlotStateManager."""

    def mutate_player_stats(
        self,
        session_id: str,
        action: str,
        updates: dict[str, Any] | None = None,
        item: dict[str, Any] | None = None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        state = self.read(session_id)
        if state is None:
            return {"ok": False, "error": f"No plot state for session '{session_id}'"}
        try:
            new_stats, result = apply_stats_action(state.player_stats, action, updates, item, item_id)
        except (ValidationError, ValueError, TypeError) as e:
            return {"ok": False, "error": f"Invalid player stats input: {e}"}
        if new_stats is not None:
            state.player_stats = new_stats
            self.store.save(state)
            logger.info(f"[PlayerStats] {session_id}: {action}")
        return result
