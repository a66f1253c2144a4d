"""
Backfill stats for a profile from its completed tasks.

Recomputes total_xp, total_tasks_completed, total_pomodoros_completed and
level from the tasks table. Streak fields are left as they are, since task
rows do not record every day the user was active. Safe to run multiple times
(idempotent).

Usage:
    cd backend
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... python scripts/backfill_stats.py <profile_id> [--dry-run]

Or with a .env file in the working directory.
"""
import sys

from dotenv import load_dotenv

from tasker.config import DEFAULT_CONFIG, GamificationConfig, get_config
from tasker.db import get_client, list_tasks, load_user_stats, save_user_stats
from tasker.engine.xp import calculate_level
from tasker.models import Task, UserStats

RECOUNTED_FIELDS = ["total_xp", "level", "total_tasks_completed", "total_pomodoros_completed"]


def compute_backfill(
    tasks: list[Task],
    current: UserStats,
    config: GamificationConfig = DEFAULT_CONFIG,
) -> UserStats:
    """Ground-truth recount of everything derivable from completed tasks."""
    completed = [t for t in tasks if t.status == "completed"]
    total_xp = sum(t.xp_reward for t in completed)
    return current.model_copy(update={
        "total_xp": total_xp,
        "level": calculate_level(total_xp, config),
        "total_tasks_completed": len(completed),
        "total_pomodoros_completed": sum(t.pomodoros_completed for t in completed),
    })


def run(profile_id: str, dry_run: bool = False):
    print(f"\n🔍 Backfilling stats for profile: {profile_id}\n")

    db = get_client()
    config = get_config()

    current = load_user_stats(db, profile_id, config)
    print("  Current stats:")
    for k in RECOUNTED_FIELDS:
        print(f"    {k}: {getattr(current, k)}")

    print("\n  Fetching tasks...")
    tasks = list_tasks(db, profile_id)
    print(f"  fetched {len(tasks)} tasks")

    if not tasks:
        print("  No tasks found — nothing to backfill.")
        return

    new_stats = compute_backfill(tasks, current, config)

    print("\n  Computed stats:")
    for k in RECOUNTED_FIELDS:
        v, was = getattr(new_stats, k), getattr(current, k)
        marker = " ✅" if v == was else f" 📈 (was {was})"
        print(f"    {k}: {v}{marker}")

    if dry_run:
        print("\n  DRY RUN — no changes written.")
        return

    save_user_stats(db, profile_id, new_stats)
    print(f"\n✅ Stats updated for {profile_id}!\n")


if __name__ == "__main__":
    load_dotenv()

    args = [a for a in sys.argv[1:] if a != "--dry-run"]
    dry = "--dry-run" in sys.argv

    if not args:
        print("Usage: python scripts/backfill_stats.py <profile_id> [--dry-run]")
        sys.exit(1)

    run(args[0], dry_run=dry)
