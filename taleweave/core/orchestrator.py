"""Turn orchestrator for Taleweave.

Composed from two mixins:

    TurnPipelineMixin  – The run_turn pipeline (rules → Director → Storyteller)
    BackgroundMixin    – Fire-and-forget scene summaries

This file retains only wiring, lookups and lifecycle methods.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from ..agents.context_compressor import ContextCompressor
from ..agents.director import DirectorAgent
from ..agents.storyteller import StorytellerAgent
from ..combat.engine import CombatEngine
from ..db.history_store import HistoryStore
from ..db.package_store import PackageStore
from ..enums import WaitingFor
from ..state.manager import PlotStateManager
from ..state.models import PlotState
from ..story.models import StoryPackage
from ._background import BackgroundMixin
from ._turn_pipeline import TurnPipelineMixin

logger = logging.getLogger(__name__)


class PackageNotFound(LookupError):
    """No story package is stored under the requested id."""


@dataclass
class TurnResult:
    """What one call to ``run_turn`` produced."""
    session_id: str
    turn_count: int
    frames: list[dict[str, Any]] = field(default_factory=list)
    waiting_for: WaitingFor | None = None
    outcome: str = "seeded"
    direction: dict[str, Any] | None = None
    location_id: str | None = None
    act_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "turnCount": self.turn_count,
            "frames": self.frames,
            "waitingFor": str(self.waiting_for) if self.waiting_for else None,
            "outcome": self.outcome,
            "direction": self.direction,
            "locationId": self.location_id,
            "actId": self.act_id,
        }


class TurnOrchestrator(TurnPipelineMixin, BackgroundMixin):
    """Runs turns for any number of sessions.

    Coordinates:
    1. Rules pre-check (does the Director need to run?)
    2. Director policy step (DirectionPack + state mutations)
    3. Storyteller tool loop (frames + yield)
    4. History persistence and compression
    """

    def __init__(
        self,
        package_store: PackageStore | None = None,
        plot_manager: PlotStateManager | None = None,
        combat_engine: CombatEngine | None = None,
        history_store: HistoryStore | None = None,
        director: DirectorAgent | None = None,
        storyteller: StorytellerAgent | None = None,
        compressor: ContextCompressor | None = None,
    ):
        self.packages = package_store or PackageStore()
        self.plot = plot_manager or PlotStateManager()
        self.combat = combat_engine or CombatEngine()
        self.history = history_store or HistoryStore()
        self.director = director or DirectorAgent()
        self.storyteller = storyteller or StorytellerAgent(self.plot, self.combat)
        self.compressor = compressor or ContextCompressor(self.plot)

        # One lock per session: turns for a session never overlap
        self._session_locks: dict[str, asyncio.Lock] = {}
        self._background_tasks: set[asyncio.Task] = set()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    def load_package(self, package_id: str) -> StoryPackage:
        package = self.packages.load(package_id)
        if package is None:
            raise PackageNotFound(f"Story package '{package_id}' not found")
        return package

    def get_state(self, session_id: str) -> PlotState | None:
        return self.plot.read(session_id)

    def end_session(self, session_id: str) -> bool:
        """Forget everything stored for a session."""
        removed = self.plot.delete(session_id)
        self.combat.clear(session_id)
        self.history.delete(session_id)
        self._session_locks.pop(session_id, None)
        self.compressor.forget(session_id)
        logger.info(f"[Orchestrator] session {session_id} ended (state existed: {removed})")
        return removed

    def close(self):
        """Cancel outstanding background work."""
        for task in list(self._background_tasks):
            task.cancel()
        self._background_tasks.clear()
        logger.info("[Orchestrator] shut down")
