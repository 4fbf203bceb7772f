"""Game API routes package.

Exposes a single ``router`` that aggregates the sub-module routers, and
re-exports the orchestrator accessors used by ``api.main`` and the tests.
"""

from fastapi import APIRouter

from .gameplay import router as _gameplay_router
from .session_mgmt import router as _session_mgmt_router

router = APIRouter()
router.include_router(_gameplay_router)
router.include_router(_session_mgmt_router)

from .session_mgmt import (  # noqa: E402,F401 re-export
    get_orchestrator,
    reset_orchestrator,
    set_orchestrator,
)
