"""History Store: the neutral-format message list carried between turns."""

import logging
from datetime import datetime, timezone
from typing import Any

from .codecs import messages_codec
from .models import SessionHistoryRow
from .session import create_session as create_db_session

logger = logging.getLogger(__name__)


class HistoryStore:

    def load(self, session_id: str) -> list[dict[str, Any]]:
        db = create_db_session()
        try:
            row = db.get(SessionHistoryRow, session_id)
            return messages_codec.decode(row.messages_json) if row else []
        finally:
            db.close()

    def replace(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        db = create_db_session()
        try:
            row = db.get(SessionHistoryRow, session_id)
            if row is None:
                row = SessionHistoryRow(session_id=session_id)
                db.add(row)
            row.messages_json = messages_codec.encode(messages)
            row.updated_at = datetime.now(timezone.utc)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def append(self, session_id: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        history = self.load(session_id) + list(messages)
        self.replace(session_id, history)
        return history

    def delete(self, session_id: str) -> bool:
        db = create_db_session()
        try:
            count = db.query(SessionHistoryRow).filter(SessionHistoryRow.session_id == session_id).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return count > 0
