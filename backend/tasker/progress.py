"""
Stats read-modify-write, serialized per profile.

FastAPI runs sync endpoints on a thread pool, so two completion requests for
the same profile can overlap. Each load/apply/save cycle holds that profile's
lock so the second one sees the first one's write. Task completion also reads
and flips the task status under the same lock, so a task pays out once.
"""
import logging
import threading
from datetime import datetime, timezone

from supabase import Client

from .config import DEFAULT_CONFIG, GamificationConfig
from .db import StorageError, get_task, update_task, load_user_stats, save_user_stats
from .engine.completion import apply_completion, reset_streak
from .models import Task, UserStats

logger = logging.getLogger(__name__)

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


class TaskNotFound(Exception):
    pass


class TaskAlreadyCompleted(Exception):
    pass


def _profile_lock(profile_id: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(profile_id)
        if lock is None:
            lock = _locks[profile_id] = threading.Lock()
        return lock


def _apply_and_save(db, profile_id, xp_gained, pomodoros_completed, now, config) -> tuple[UserStats, bool]:
    # caller holds the profile lock
    stats = load_user_stats(db, profile_id, config)
    updated, leveled_up = apply_completion(stats, xp_gained, pomodoros_completed, now, config)
    save_user_stats(db, profile_id, updated)

    if updated.current_streak != stats.current_streak:
        logger.info("Streak for %s: %d -> %d", profile_id, stats.current_streak, updated.current_streak)
    if leveled_up:
        logger.info("Level up for %s: %d -> %d", profile_id, stats.level, updated.level)
    return updated, leveled_up


def record_completion(
    db: Client,
    profile_id: str,
    xp_gained: int,
    pomodoros_completed: int = 0,
    now: datetime | None = None,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> tuple[UserStats, bool]:
    """
    Apply one task completion and persist it. Returns (stats, leveled_up).
    Raises StorageError if the write fails; the stored stats are then unchanged.
    """
    now = now or datetime.now(timezone.utc)
    with _profile_lock(profile_id):
        return _apply_and_save(db, profile_id, xp_gained, pomodoros_completed, now, config)


def complete_task_and_record(
    db: Client,
    profile_id: str,
    task_id: str,
    now: datetime | None = None,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> tuple[Task, UserStats, bool]:
    """
    Mark a task completed and credit its reward. Returns (task, stats, leveled_up).

    Raises TaskNotFound, TaskAlreadyCompleted, or StorageError. When the stats
    write fails the task is put back to its previous status.
    """
    now = now or datetime.now(timezone.utc)
    with _profile_lock(profile_id):
        task = get_task(db, profile_id, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        if task.status == "completed":
            raise TaskAlreadyCompleted(task_id)

        completed = task.model_copy(update={"status": "completed", "completed_at": now})
        update_task(db, profile_id, completed)
        try:
            stats, leveled_up = _apply_and_save(
                db, profile_id, completed.xp_reward, completed.pomodoros_completed, now, config
            )
        except StorageError:
            try:
                update_task(db, profile_id, task)
            except StorageError:
                logger.error("Could not revert task %s after stats write failure", task.id[:8])
            raise
    return completed, stats, leveled_up


def count_pomodoro(db: Client, profile_id: str, task_id: str) -> Task:
    """Add one finished Pomodoro to an open task."""
    with _profile_lock(profile_id):
        task = get_task(db, profile_id, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        if task.status == "completed":
            raise TaskAlreadyCompleted(task_id)
        task = task.model_copy(update={"pomodoros_completed": task.pomodoros_completed + 1})
        update_task(db, profile_id, task)
    return task


def record_streak_reset(db: Client, profile_id: str, config: GamificationConfig = DEFAULT_CONFIG) -> UserStats:
    with _profile_lock(profile_id):
        stats = load_user_stats(db, profile_id, config)
        updated = reset_streak(stats)
        save_user_stats(db, profile_id, updated)
    logger.info("Streak reset for %s (was %d)", profile_id, stats.current_streak)
    return updated
