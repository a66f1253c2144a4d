"""
Gamification constants — thresholds, weights and bonuses as data.

Changing the reward curve means editing (or overriding) this table, never the
engine functions. Set GAMIFICATION_CONFIG to a JSON file path to override.
"""
import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")


class LevelThreshold(BaseModel):
    level: int = Field(ge=1)
    xp_required: int = Field(ge=0)
    model_config = {"frozen": True}


DEFAULT_LEVEL_THRESHOLDS: tuple[LevelThreshold, ...] = tuple(
    LevelThreshold(level=lvl, xp_required=xp)
    for lvl, xp in [
        (1, 0),
        (2, 100),
        (3, 250),
        (4, 500),
        (5, 1000),
        (6, 2000),
        (7, 3500),
        (8, 5500),
        (9, 8500),
        (10, 12500),
        (11, 18000),
        (12, 25000),
        (13, 35000),
        (14, 50000),
        (15, 75000),
    ]
)

DEFAULT_LEVEL_TITLES: dict[int, str] = {
    1: "Beginner",
    2: "Novice",
    3: "Apprentice",
    4: "Skilled",
    5: "Expert",
    6: "Master",
    7: "Grand Master",
    8: "Legend",
    9: "Hero",
    10: "Champion",
    11: "Mythic",
    12: "Legendary",
    13: "Supreme",
    14: "Divine",
    15: "Ascended",
}


class GamificationConfig(BaseModel):
    base_xp: int = 10
    xp_per_minute: int = 2
    urgent_task_bonus: int = 50
    streak_bonus_per_day: float = 0.1
    priority_weights: dict[str, float] = Field(
        default_factory=lambda: {"low": 1.0, "medium": 1.5, "high": 2.0}
    )
    level_thresholds: tuple[LevelThreshold, ...] = DEFAULT_LEVEL_THRESHOLDS
    level_titles: dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_LEVEL_TITLES))
    urgent_window_hours: int = Field(default=24, gt=0)
    today_focus_max_tasks: int = Field(default=5, gt=0)
    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("priority_weights")
    @classmethod
    def validate_priority_weights(cls, v):
        missing = [p for p in PRIORITIES if p not in v]
        if missing:
            raise ValueError(f"missing priority weights: {', '.join(missing)}")
        return v

    @field_validator("level_thresholds")
    @classmethod
    def validate_thresholds(cls, v):
        if not v:
            raise ValueError("at least one level threshold is required")
        first = v[0]
        if first.level != 1 or first.xp_required != 0:
            raise ValueError("level thresholds must start at level 1 with 0 XP")
        for prev, cur in zip(v, v[1:]):
            if cur.level <= prev.level or cur.xp_required <= prev.xp_required:
                raise ValueError(
                    f"level thresholds must strictly increase (level {prev.level} -> {cur.level})"
                )
        return v

    @property
    def max_level(self) -> int:
        return self.level_thresholds[-1].level


DEFAULT_CONFIG = GamificationConfig()


def load_config_file(path: str | Path) -> GamificationConfig:
    """Parse and validate a JSON override file. Raises pydantic.ValidationError on bad data."""
    return GamificationConfig.model_validate_json(Path(path).read_text())


@lru_cache(maxsize=1)
def get_config() -> GamificationConfig:
    path = os.getenv("GAMIFICATION_CONFIG")
    if not path:
        return DEFAULT_CONFIG
    config = load_config_file(path)
    logger.info("Loaded gamification config from %s (max level %d)", path, config.max_level)
    return config


def get_profile_id() -> str:
    return os.getenv("PROFILE_ID", "default")
