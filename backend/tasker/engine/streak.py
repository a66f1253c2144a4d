"""
Streak tracking — pure functions, no DB access.
"""
from datetime import datetime, timedelta, timezone

ONE_DAY = timedelta(days=1)
STREAK_DANGER_HOUR = 20


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so elapsed-time arithmetic never mixes kinds."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole elapsed days (floor), not calendar-date difference."""
    return (as_utc(later) - as_utc(earlier)) // ONE_DAY


def advance_streak(
    last_activity: datetime | None,
    current_streak: int,
    longest_streak: int,
    now: datetime,
) -> tuple[int, int]:
    """
    Returns (new_current_streak, new_longest_streak) for a completion at `now`.
    Called on every completion; same-day repeats leave the streak unchanged.
    """
    if last_activity is None:
        new_streak = 1
    else:
        days_diff = days_between(last_activity, now)
        if days_diff <= 0:
            # same elapsed day, or a clock that went backwards
            new_streak = current_streak
        elif days_diff == 1:
            new_streak = current_streak + 1
        else:
            new_streak = 1

    return new_streak, max(longest_streak, new_streak)


def is_streak_in_danger(last_activity: datetime | None, now: datetime) -> bool:
    """No activity yet on now's calendar day and it is already evening."""
    if last_activity is None:
        return False
    if now.tzinfo is not None:
        last_activity = as_utc(last_activity).astimezone(now.tzinfo)
    if last_activity.date() == now.date():
        return False
    return now.hour >= STREAK_DANGER_HOUR
