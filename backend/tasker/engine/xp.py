"""
XP and level rules — pure functions, no DB access.
"""
import math

from ..config import DEFAULT_CONFIG, GamificationConfig


def _round_half_up(value: float) -> int:
    # 157.5 -> 158, matching Math.round on the client
    return int(math.floor(value + 0.5))


def streak_multiplier(current_streak: int, config: GamificationConfig = DEFAULT_CONFIG) -> float:
    return 1 + current_streak * config.streak_bonus_per_day


def calculate_task_xp(
    estimated_time: int,
    priority: str,
    is_urgent: bool = False,
    current_streak: int = 0,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> int:
    """
    XP reward for a task. Order matters: the urgent bonus is added after the
    priority multiplier, and the streak multiplier scales everything.
    Negative estimated_time is not rejected here; callers validate upstream.
    """
    weight = config.priority_weights.get(priority)
    if weight is None:
        raise ValueError(f"unknown priority: {priority!r}")

    xp = float(config.base_xp)
    xp += estimated_time * config.xp_per_minute
    xp *= weight

    if is_urgent:
        xp += config.urgent_task_bonus

    if current_streak > 0:
        xp *= streak_multiplier(current_streak, config)

    return _round_half_up(xp)


def calculate_level(total_xp: int, config: GamificationConfig = DEFAULT_CONFIG) -> int:
    for threshold in reversed(config.level_thresholds):
        if total_xp >= threshold.xp_required:
            return threshold.level
    return 1


def xp_for_next_level(level: int, config: GamificationConfig = DEFAULT_CONFIG) -> int | None:
    """XP required for level + 1, or None when level is already the top one."""
    for threshold in config.level_thresholds:
        if threshold.level == level + 1:
            return threshold.xp_required
    return None


def xp_for_current_level(level: int, config: GamificationConfig = DEFAULT_CONFIG) -> int:
    for threshold in config.level_thresholds:
        if threshold.level == level:
            return threshold.xp_required
    return 0


def level_progress(total_xp: int, config: GamificationConfig = DEFAULT_CONFIG) -> float:
    """Fraction of the way from the current level to the next, 1.0 at max level."""
    level = calculate_level(total_xp, config)
    next_xp = xp_for_next_level(level, config)
    if next_xp is None:
        return 1.0
    current_xp = xp_for_current_level(level, config)
    return (total_xp - current_xp) / (next_xp - current_xp)


def xp_until_next_level(total_xp: int, config: GamificationConfig = DEFAULT_CONFIG) -> int:
    next_xp = xp_for_next_level(calculate_level(total_xp, config), config)
    if next_xp is None:
        return 0
    return next_xp - total_xp


def new_level(current_xp: int, xp_to_add: int, config: GamificationConfig = DEFAULT_CONFIG) -> int:
    return calculate_level(current_xp + xp_to_add, config)


def will_level_up(current_xp: int, xp_to_add: int, config: GamificationConfig = DEFAULT_CONFIG) -> bool:
    return new_level(current_xp, xp_to_add, config) > calculate_level(current_xp, config)


def format_xp(xp: int) -> str:
    if xp >= 1_000_000:
        return f"{xp / 1_000_000:.1f}M"
    if xp >= 1_000:
        return f"{xp / 1_000:.1f}K"
    return str(xp)


def level_title(level: int, config: GamificationConfig = DEFAULT_CONFIG) -> str:
    return config.level_titles.get(level) or f"Level {level}"
