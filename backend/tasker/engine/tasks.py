"""
Task queries and XP pricing — pure functions over in-memory task lists.
"""
from datetime import datetime, timedelta

from ..config import DEFAULT_CONFIG, GamificationConfig
from ..models import Task, TaskFilters
from .streak import as_utc
from .xp import calculate_task_xp

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}
OPEN_STATUSES = ("todo", "in_progress")


def is_deadline_urgent(
    deadline: datetime | None,
    now: datetime,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> bool:
    """Deadline strictly in the future and no further away than the urgency window."""
    if deadline is None:
        return False
    remaining = as_utc(deadline) - as_utc(now)
    return timedelta(0) < remaining <= timedelta(hours=config.urgent_window_hours)


def price_task(
    estimated_time: int,
    priority: str,
    deadline: datetime | None,
    current_streak: int,
    now: datetime,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> int:
    """XP reward stored on a task at create/update time."""
    urgent = is_deadline_urgent(deadline, now, config)
    return calculate_task_xp(estimated_time, priority, urgent, current_streak, config)


def open_tasks(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if t.status in OPEN_STATUSES]


def urgent_tasks(
    tasks: list[Task],
    now: datetime,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> list[Task]:
    """Open tasks that are high priority or have a deadline inside the urgency window."""
    return [
        t for t in tasks
        if t.status != "completed"
        and (t.priority == "high" or is_deadline_urgent(t.deadline, now, config))
    ]


def _focus_sort_key(task: Task):
    # deadline-less tasks sort after dated ones within the same priority
    if task.deadline is None:
        return (-PRIORITY_RANK.get(task.priority, 0), 1, 0.0)
    return (-PRIORITY_RANK.get(task.priority, 0), 0, as_utc(task.deadline).timestamp())


def today_focus(
    tasks: list[Task],
    now: datetime,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> list[Task]:
    """Urgent tasks first, then the rest of the open ones, best few by priority and deadline."""
    combined: list[Task] = []
    seen: set[str] = set()
    for task in urgent_tasks(tasks, now, config) + open_tasks(tasks):
        if task.id not in seen:
            seen.add(task.id)
            combined.append(task)

    combined.sort(key=_focus_sort_key)
    return combined[:config.today_focus_max_tasks]


def filter_tasks(tasks: list[Task], filters: TaskFilters) -> list[Task]:
    result = list(tasks)

    if filters.status:
        result = [t for t in result if t.status in filters.status]
    if filters.priority:
        result = [t for t in result if t.priority in filters.priority]
    if filters.category:
        result = [t for t in result if t.category in filters.category]

    if filters.start or filters.end:
        start = as_utc(filters.start) if filters.start else None
        end = as_utc(filters.end) if filters.end else None

        def in_range(task: Task) -> bool:
            when = as_utc(task.deadline or task.created_at)
            if start and when < start:
                return False
            if end and when > end:
                return False
            return True

        result = [t for t in result if in_range(t)]

    if filters.search:
        query = filters.search.lower()
        result = [
            t for t in result
            if query in t.title.lower() or (t.description and query in t.description.lower())
        ]

    return result
