"""2d6 skill-check banding and the dice-result input token."""

import re
from dataclasses import dataclass

from ..enums import SkillBand

DICE_RESULT_PREFIX = "[dice-result]"

_DICE_RESULT_RE = re.compile(r"^\s*\[dice-result\]\s*(-?\d+)")


@dataclass(frozen=True)
class SkillCheckOutcome:
    roll: int
    modifier: int
    total: int
    band: SkillBand
    difficulty: int = 10

    @property
    def succeeded(self) -> bool:
        return self.band != SkillBand.MISS

    def to_frame_data(self, stat: str = "", description: str = "") -> dict:
        return {
            "stat": stat,
            "modifier": self.modifier,
            "difficulty": self.difficulty,
            "roll": self.roll,
            "total": self.total,
            "succeeded": self.succeeded,
            "band": str(self.band),
            "description": description,
        }


def band_for_total(total: int) -> SkillBand:
    if total >= 10:
        return SkillBand.FULL
    if total >= 7:
        return SkillBand.MIXED
    return SkillBand.MISS


def resolve_skill_check(roll: int, modifier: int = 0, difficulty: int = 10) -> SkillCheckOutcome:
    """Band a 2d6 roll. ``difficulty`` is carried for display, bands are fixed."""
    total = roll + modifier
    return SkillCheckOutcome(
        roll=roll,
        modifier=modifier,
        total=total,
        band=band_for_total(total),
        difficulty=difficulty,
    )


def parse_dice_result(text: str | None) -> int | None:
    """Roll value from a leading ``[dice-result] N`` token, else None."""
    if not text:
        return None
    match = _DICE_RESULT_RE.match(text)
    return int(match.group(1)) if match else None


def format_dice_result(total: int) -> str:
    return f"{DICE_RESULT_PREFIX} {total}"
