"""
Shared test fixtures for the Taleweave test suite.

Provides:
- MockLLMProvider: deterministic LLM stub (no API keys needed)
- Database fixtures: in-memory SQLite
- A small two-act story package and the stores/managers built on it
"""

import copy
import os
from collections import deque
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

# Set test environment BEFORE any taleweave imports
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from taleweave.combat.engine import CombatEngine
from taleweave.db.history_store import HistoryStore
from taleweave.db.package_store import PackageStore
from taleweave.db.session import drop_db, get_engine, init_db, reset_engine
from taleweave.llm.provider import LLMProvider, LLMResponse
from taleweave.state.manager import PlotStateManager
from taleweave.story.models import StoryPackage


# ---------------------------------------------------------------------------
# MockLLMProvider: deterministic stub
# ---------------------------------------------------------------------------

def tool_call(name: str, call_id: str | None = None, **arguments) -> dict[str, Any]:
    """One entry of LLMResponse.tool_calls."""
    return {"id": call_id or f"call-{name}-{len(arguments)}", "name": name, "arguments": arguments}


class MockLLMProvider(LLMProvider):
    """LLM provider that returns canned responses from queues.

    Usage:
        provider = MockLLMProvider()
        provider.queue_response('{"directorBrief": "..."}')       # next complete()
        provider.queue_tool_step(tool_call("yieldToPlayer", waitingFor="choice"))
    """

    def __init__(self):
        super().__init__(api_key="mock-key", default_model="mock-model")
        self._response_queue: deque[LLMResponse] = deque()
        self._step_queue: deque[LLMResponse | Exception] = deque()
        self._call_history: list[dict[str, Any]] = []

    # --- Queue helpers ---

    def queue_response(self, content: str = "", **kwargs):
        """Queue a text response for complete()."""
        self._response_queue.append(LLMResponse(content=content, model="mock-model", **kwargs))

    def queue_tool_step(self, *calls: dict[str, Any], content: str = ""):
        """Queue one tool_step() response carrying ``calls``."""
        numbered = []
        for i, call in enumerate(calls):
            call = dict(call)
            call["id"] = f"{call['id']}-{len(self._step_queue)}-{i}"
            numbered.append(call)
        self._step_queue.append(LLMResponse(content=content, tool_calls=numbered, model="mock-model"))

    def queue_step_error(self, exc: Exception):
        self._step_queue.append(exc)

    @property
    def call_history(self) -> list[dict[str, Any]]:
        return self._call_history

    def calls(self, method: str) -> list[dict[str, Any]]:
        return [c for c in self._call_history if c["method"] == method]

    # --- LLMProvider interface ---

    @property
    def name(self) -> str:
        return "mock"

    def get_default_model(self) -> str:
        return "mock-model"

    def get_fast_model(self) -> str:
        return "mock-fast"

    def get_creative_model(self) -> str:
        return "mock-creative"

    async def complete(self, messages, system=None, model=None, max_tokens=1024, temperature=0.7) -> LLMResponse:
        self._call_history.append({
            "method": "complete",
            "messages": messages,
            "system": system,
            "model": model,
        })
        if self._response_queue:
            return self._response_queue.popleft()
        return LLMResponse(content="mock response", model="mock-model")

    async def tool_step(self, messages, tools, system=None, model=None, max_tokens=4096) -> LLMResponse:
        self._call_history.append({
            "method": "tool_step",
            "messages": copy.deepcopy(messages),
            "tools": tools.names(),
            "system": system,
            "model": model,
        })
        if self._step_queue:
            next_step = self._step_queue.popleft()
            if isinstance(next_step, Exception):
                raise next_step
            return next_step
        return LLMResponse(content="The scene holds its breath.", model="mock-model")

    def _init_client(self):
        pass  # No real client needed


# ---------------------------------------------------------------------------
# Story package
# ---------------------------------------------------------------------------

SAMPLE_PACKAGE: dict[str, Any] = {
    "id": "lighthouse",
    "title": "The Drowned Lighthouse",
    "genre": "mystery",
    "artStyle": "ink wash",
    "language": "en",
    "plot": {
        "premise": "A keeper vanished; the lamp still burns.",
        "themes": ["grief", "secrets"],
        "globalContext": {
            "setting": "A frozen fishing village",
            "tone": "melancholy",
            "overarchingTruths": ["The keeper never left the lamp room"],
        },
        "globalMaterials": ["A brass key"],
        "globalWorldInfo": [
            {"id": "wi-lamp", "keys": ["lamp", "lantern"], "content": "The lamp burns without oil.", "type": "lore"},
        ],
        "acts": [
            {
                "id": "act-1",
                "title": "Arrival",
                "objective": "Reach the lighthouse",
                "scenarioContext": "The village hides the keeper's debt.",
                "scenarioWorldInfo": [
                    {"id": "wi-harbor", "keys": ["harbor"], "content": "The harbor froze decades ago.",
                     "type": "atmosphere"},
                ],
                "globalProgression": {"requiredValue": 3, "trackerLabel": "Clues"},
                "opposingForce": {
                    "trackerLabel": "Storm",
                    "requiredValue": 6,
                    "escalationEvents": [
                        {"threshold": 2, "description": "The wind rises"},
                        {"threshold": 4, "description": "Waves breach the pier"},
                    ],
                },
                "inevitableEvents": ["The storm arrives at dusk"],
                "sandboxLocations": [
                    {
                        "id": "harbor",
                        "title": "Frozen Harbor",
                        "ambientDetail": "Ice creaks under the boats.",
                        "requiredCharacters": ["ferryman"],
                        "beats": [
                            {"description": "Arrive at the harbor"},
                            {"description": "Bargain with the ferryman"},
                        ],
                        "encounters": [
                            {"id": "enc-ferry", "title": "The Ferryman", "type": "npc_interaction",
                             "priority": "normal", "givesProgression": 1},
                            {"id": "enc-ghost", "title": "Ghost Light", "type": "discovery",
                             "priority": "high", "prerequisites": ["saw_light"]},
                            {"id": "enc-crate", "title": "Washed-up Crate", "type": "discovery",
                             "priority": "low", "excludeIfFlags": ["crate_opened"]},
                        ],
                        "connections": ["cliff"],
                    },
                    {
                        "id": "cliff",
                        "title": "Cliff Path",
                        "ambientDetail": "Gulls scream overhead.",
                        "beats": [{"description": "Climb toward the light"}],
                        "encounters": [
                            {"id": "enc-rockslide", "title": "Rockslide", "type": "combat",
                             "priority": "urgent", "givesProgression": 1},
                        ],
                        "connections": ["harbor"],
                    },
                ],
            },
            {
                "id": "act-2",
                "title": "The Lamp",
                "objective": "Confront the keeper",
                "sandboxLocations": [
                    {"id": "lamp-room", "title": "Lamp Room", "beats": [{"description": "The light turns"}]},
                ],
            },
        ],
        "possibleEndings": ["Escape the island", "Take the keeper's place"],
    },
    "characters": [
        {"id": "hero", "name": "Mara", "role": "protagonist"},
        {"id": "ferryman", "name": "Old Tobin", "role": "npc", "description": "Knows the tides."},
    ],
    "assets": {
        "backgrounds": {"harbor_bg": "harbor.png", "cliff_bg": "cliff.png"},
        "characters": {"ferryman": "tobin.png"},
        "music": {"storm": "storm.mp3"},
    },
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    """Fresh MockLLMProvider instance."""
    return MockLLMProvider()


@pytest.fixture
def mock_llm_manager(mock_provider):
    """Patch get_llm_manager to return a manager using MockLLMProvider."""
    manager = MagicMock()
    manager.get_provider.return_value = mock_provider
    manager.get_provider_for_agent.return_value = (mock_provider, "mock-model")
    manager.primary_provider = "mock"
    manager.get_fast_model.return_value = "mock-fast"
    manager.get_creative_model.return_value = "mock-creative"

    with patch("taleweave.llm.manager.get_llm_manager", return_value=manager):
        # Also patch agents.base where it's imported directly
        with patch("taleweave.agents.base.get_llm_manager", return_value=manager):
            yield manager


@pytest.fixture
def fresh_db():
    """A brand-new in-memory SQLite database with all tables."""
    reset_engine()
    init_db()
    yield get_engine()
    drop_db()
    reset_engine()


@pytest.fixture
def sample_package_data() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_PACKAGE)


@pytest.fixture
def sample_package(sample_package_data) -> StoryPackage:
    return StoryPackage.model_validate(sample_package_data)


@pytest.fixture
def package_store(fresh_db, sample_package):
    store = PackageStore()
    store.save(sample_package)
    return store


@pytest.fixture
def plot_manager(fresh_db):
    return PlotStateManager()


@pytest.fixture
def seeded(plot_manager, sample_package):
    """Session 's1' seeded at the opening position."""
    plot_manager.init_if_absent("s1", sample_package)
    return plot_manager


@pytest.fixture
def combat_engine(fresh_db):
    return CombatEngine()


@pytest.fixture
def history_store(fresh_db):
    return HistoryStore()
