"""
Task-completion step — applies XP, counters and the streak transition to a
UserStats snapshot. Pure: the input object is never mutated.
"""
from datetime import datetime

from ..config import DEFAULT_CONFIG, GamificationConfig
from ..models import UserStats
from .streak import advance_streak
from .xp import calculate_level, will_level_up


def apply_completion(
    stats: UserStats,
    xp_gained: int,
    pomodoros_completed: int,
    now: datetime,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> tuple[UserStats, bool]:
    """
    Returns (updated_stats, leveled_up).
    leveled_up is measured against the pre-completion total_xp.
    """
    leveled_up = will_level_up(stats.total_xp, xp_gained, config)

    total_xp = stats.total_xp + xp_gained
    current_streak, longest_streak = advance_streak(
        stats.last_activity_date, stats.current_streak, stats.longest_streak, now
    )

    updated = stats.model_copy(update={
        "total_xp": total_xp,
        "level": calculate_level(total_xp, config),
        "total_tasks_completed": stats.total_tasks_completed + 1,
        "total_pomodoros_completed": stats.total_pomodoros_completed + pomodoros_completed,
        "current_streak": current_streak,
        "longest_streak": longest_streak,
        "last_activity_date": now,
    })
    return updated, leveled_up


def reset_streak(stats: UserStats) -> UserStats:
    return stats.model_copy(update={"current_streak": 0})
