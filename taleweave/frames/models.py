"""Frame model and normalization of model-supplied frame input."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..utils.llm_json import decode_llm_json
from .registry import FrameType, get_spec

logger = logging.getLogger(__name__)


class FrameModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class Panel(FrameModel):
    id: str = "center"
    background: str | None = None
    character: str | None = None
    expression: str | None = None


class DialogueLine(FrameModel):
    speaker: str = ""
    text: str = ""


class Choice(FrameModel):
    id: str
    text: str


class Effect(FrameModel):
    type: str


class Frame(FrameModel):
    """One renderable instruction for the client."""

    id: str = Field(default_factory=lambda: f"frame-{uuid.uuid4().hex[:8]}")
    type: FrameType
    panels: list[Panel] = Field(default_factory=list)
    narration: str | None = None
    dialogue: DialogueLine | None = None
    choices: list[Choice] = Field(default_factory=list)
    show_free_text_input: bool = False
    effects: list[Effect] = Field(default_factory=list)
    audio: dict[str, Any] | None = None

    battle: dict[str, Any] | None = None
    transition: dict[str, Any] | None = None
    dice_roll: dict[str, Any] | None = None
    skill_check: dict[str, Any] | None = None
    inventory_data: dict[str, Any] | None = None
    map_data: dict[str, Any] | None = None
    character_sheet: dict[str, Any] | None = None
    tactical_map_data: dict[str, Any] | None = None
    item_presentation: dict[str, Any] | None = None
    cg_presentation: dict[str, Any] | None = None
    monologue: dict[str, Any] | None = None
    investigation_data: dict[str, Any] | None = None
    lore_entry: dict[str, Any] | None = None
    cut_in: dict[str, Any] | None = None
    flashback: dict[str, Any] | None = None
    cross_examination: dict[str, Any] | None = None
    time_limit: dict[str, Any] | None = None

    def to_client(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class FrameError:
    """Why a frame was rejected; reported back to the model as a tool error."""
    message: str

    @property
    def ok(self) -> bool:
        return False


def ensure_renderable(frame: Frame) -> Frame:
    """Fill the minimum a client needs to draw the frame."""
    if not frame.panels and frame.type != FrameType.TRANSITION:
        frame.panels = [Panel(id="center")]
    spec = get_spec(frame.type)
    if spec and spec.requires_narration:
        has_text = bool(frame.narration) or bool(frame.dialogue and frame.dialogue.text)
        if not has_text:
            frame.narration = "..."
    return frame


def _normalize_effects(effects: Any) -> list[dict]:
    # Models often send {"shake": true, "flash": {...}} instead of a list
    if isinstance(effects, list):
        return [e for e in effects if isinstance(e, dict) and e.get("type")]
    if isinstance(effects, dict):
        if "type" in effects:
            return [effects]
        out = []
        for name, value in effects.items():
            if value in (False, None):
                continue
            entry = {"type": name}
            if isinstance(value, dict):
                entry.update(value)
            out.append(entry)
        return out
    return []


def normalize_frame_input(raw: Any) -> Frame | FrameError:
    """Turn whatever the model passed to buildFrame into a validated Frame."""
    if isinstance(raw, str):
        decoded = decode_llm_json(raw)
        if not decoded.ok:
            return FrameError(f"frame is not valid JSON: {decoded.reason}")
        raw = decoded.value

    if isinstance(raw, dict) and set(raw) == {"frame"}:
        raw = raw["frame"]
        if isinstance(raw, str):
            return normalize_frame_input(raw)

    if not isinstance(raw, dict):
        return FrameError(f"frame must be an object, got {type(raw).__name__}")

    data = dict(raw)
    if "effects" in data:
        data["effects"] = _normalize_effects(data["effects"])

    try:
        frame = Frame.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return FrameError(f"invalid frame: {problems}")

    spec = get_spec(frame.type)
    if spec and spec.data_field and getattr(frame, spec.data_field) is None:
        field_name = to_camel(spec.data_field)
        return FrameError(f"{frame.type} frame requires '{field_name}'")

    if frame.type == FrameType.CHOICE and not frame.choices and not frame.show_free_text_input:
        return FrameError("choice frame requires at least one entry in 'choices'")

    return ensure_renderable(frame)
