"""Combat Store: the active CombatState per session."""

import logging
from datetime import datetime, timezone

from ..combat.models import CombatState
from .codecs import combat_codec
from .models import CombatStateRow
from .session import create_session as create_db_session

logger = logging.getLogger(__name__)


class CombatStore:

    def load(self, session_id: str) -> CombatState | None:
        db = create_db_session()
        try:
            row = db.get(CombatStateRow, session_id)
            return combat_codec.decode(row.combat_json) if row else None
        finally:
            db.close()

    def save(self, state: CombatState) -> None:
        db = create_db_session()
        try:
            row = db.get(CombatStateRow, state.session_id)
            if row is None:
                row = CombatStateRow(session_id=state.session_id)
                db.add(row)
            row.combat_json = combat_codec.encode(state)
            row.updated_at = datetime.now(timezone.utc)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, session_id: str) -> bool:
        db = create_db_session()
        try:
            count = db.query(CombatStateRow).filter(CombatStateRow.session_id == session_id).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return count > 0
