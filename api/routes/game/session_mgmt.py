"""Session routes: state inspection, session deletion, orchestrator cache."""

import logging

from fastapi import APIRouter, HTTPException

from taleweave.core.orchestrator import TurnOrchestrator
from taleweave.db.session import init_db

from .models import StateResponse

logger = logging.getLogger(__name__)

router = APIRouter()

# Cache orchestrator instance
_orchestrator: TurnOrchestrator | None = None


def get_orchestrator() -> TurnOrchestrator:
    """Get or create the orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        init_db()
        _orchestrator = TurnOrchestrator()
        logger.info("[get_orchestrator] created TurnOrchestrator")
    return _orchestrator


def set_orchestrator(orchestrator: TurnOrchestrator | None) -> None:
    """Install a pre-built orchestrator (tests wire mock agents this way)."""
    global _orchestrator
    _orchestrator = orchestrator


def reset_orchestrator():
    """Reset the orchestrator singleton; the next call builds a fresh one."""
    global _orchestrator
    if _orchestrator:
        try:
            _orchestrator.close()
        except Exception as e:
            logger.error(f"[reset_orchestrator] Warning: close() failed: {e}")
    _orchestrator = None
    logger.info("[reset_orchestrator] Orchestrator cleared - next call will create fresh instance")


@router.get("/state/{session_id}", response_model=StateResponse)
async def get_state(session_id: str):
    """Current PlotState (and active combat) for a session."""
    orchestrator = get_orchestrator()
    state = orchestrator.get_state(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    combat = orchestrator.combat.get(session_id)
    return StateResponse(
        session_id=session_id,
        state=state.model_dump(mode="json"),
        combat=combat.model_dump(mode="json") if combat else None,
    )


@router.delete("/session/{session_id}")
async def delete_session(session_id: str):
    """Delete a session's plot state, combat and history."""
    orchestrator = get_orchestrator()
    deleted = orchestrator.end_session(session_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"status": "deleted", "session_id": session_id}
