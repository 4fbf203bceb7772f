"""Frame contract: registry, model, normalization and dice banding."""

from .dice import (
    SkillCheckOutcome,
    format_dice_result,
    parse_dice_result,
    resolve_skill_check,
)
from .models import Frame, FrameError, ensure_renderable, normalize_frame_input
from .registry import (
    FRAME_REGISTRY,
    FrameSpec,
    FrameType,
    core_prompt_section,
    extended_guide,
)

__all__ = [
    "FRAME_REGISTRY", "FrameSpec", "FrameType", "core_prompt_section", "extended_guide",
    "Frame", "FrameError", "ensure_renderable", "normalize_frame_input",
    "SkillCheckOutcome", "resolve_skill_check", "parse_dice_result", "format_dice_result",
]
