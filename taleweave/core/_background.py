"""Background processing mixin: post-turn bookkeeping.

Split from orchestrator.py for maintainability.
Contains the fire-and-forget work that runs after a turn returns.
"""

import asyncio
import logging
from typing import Any

from ..state.models import PlotState

logger = logging.getLogger(__name__)


class BackgroundMixin:
    """Post-turn background processing.

    Relies on ``self.compressor`` and ``self._background_tasks`` set by
    ``TurnOrchestrator.__init__``.
    """

    def _summarize_scene(
        self,
        session_id: str,
        messages: list[dict[str, Any]],
        before: PlotState,
        after: PlotState,
    ) -> asyncio.Task:
        """Fold the scene that just ended into the story summary."""
        logger.info(
            f"[Background] {session_id}: scene change "
            f"{before.current_act_id}/{before.current_location_id} -> "
            f"{after.current_act_id}/{after.current_location_id}, summarizing"
        )
        task = self.compressor.summarize_in_background(session_id, messages)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def drain_background(self) -> None:
        """Wait for all outstanding background work (tests, shutdown)."""
        while self._background_tasks:
            tasks = list(self._background_tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            self._background_tasks.difference_update(tasks)
