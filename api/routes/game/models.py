"""Pydantic request/response models for the Game API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TurnRequest(BaseModel):
    """One player turn."""
    session_id: str = Field(min_length=1)
    package_id: str = Field(min_length=1)
    player_input: str = ""
    dice_total: Optional[int] = None  # Client-side roll result, if any


class TurnResponse(BaseModel):
    """Response from processing a turn (non-streaming)."""
    session_id: str
    turn_count: int
    frames: List[Dict[str, Any]]
    waiting_for: Optional[str] = None
    outcome: str
    direction: Optional[Dict[str, Any]] = None
    location_id: Optional[str] = None
    act_id: Optional[str] = None
    latency_ms: int = 0


class StateResponse(BaseModel):
    """Current PlotState plus any active combat."""
    session_id: str
    state: Dict[str, Any]
    combat: Optional[Dict[str, Any]] = None


class PackageSummary(BaseModel):
    id: str
    title: str = ""
    genre: str = ""
    art_style: str = ""
