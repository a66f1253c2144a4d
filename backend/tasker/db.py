import os
import logging
from functools import lru_cache
from supabase import create_client, Client

from .config import DEFAULT_CONFIG, GamificationConfig
from .engine.xp import calculate_level
from .models import (
    AppSettings, Category, PomodoroSession, Task, Template, UserStats,
    DEFAULT_CATEGORIES, DEFAULT_SETTINGS,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A Supabase read or write failed. Nothing was partially applied by this layer."""


@lru_cache(maxsize=1)
def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


def open_client() -> Client:
    client = get_client()
    logger.info("Supabase client opened")
    return client


def close_client() -> None:
    get_client.cache_clear()
    logger.info("Supabase client released")


def _execute(query, action: str):
    try:
        return query.execute()
    except Exception as e:
        logger.error("Storage failure during %s: %s", action, e)
        raise StorageError(f"{action} failed") from e


# ── User stats ────────────────────────────────────────────────────────────────

def stats_from_row(row: dict, config: GamificationConfig = DEFAULT_CONFIG) -> UserStats:
    stats = UserStats.model_validate(row)
    # the stored level column is a cache; total_xp is authoritative
    stats.level = calculate_level(stats.total_xp, config)
    return stats


def load_user_stats(db: Client, profile_id: str, config: GamificationConfig = DEFAULT_CONFIG) -> UserStats:
    res = _execute(
        db.table("user_stats").select("*").eq("profile_id", profile_id),
        "load user stats",
    )
    if not res.data:
        return UserStats()
    return stats_from_row(res.data[0], config)


def save_user_stats(db: Client, profile_id: str, stats: UserStats) -> None:
    """Single upsert so XP, counters and streak land together or not at all."""
    _execute(
        db.table("user_stats").upsert({"profile_id": profile_id, **stats.model_dump(mode="json")}),
        "save user stats",
    )


# ── Tasks ─────────────────────────────────────────────────────────────────────

def list_tasks(db: Client, profile_id: str) -> list[Task]:
    res = _execute(
        db.table("tasks").select("*").eq("profile_id", profile_id).order("created_at", desc=True),
        "list tasks",
    )
    return [Task.model_validate(row) for row in (res.data or [])]


def get_task(db: Client, profile_id: str, task_id: str) -> Task | None:
    res = _execute(
        db.table("tasks").select("*").eq("profile_id", profile_id).eq("id", task_id),
        "get task",
    )
    return Task.model_validate(res.data[0]) if res.data else None


def insert_task(db: Client, profile_id: str, task: Task) -> None:
    _execute(
        db.table("tasks").insert({"profile_id": profile_id, **task.model_dump(mode="json")}),
        "insert task",
    )


def update_task(db: Client, profile_id: str, task: Task) -> None:
    _execute(
        db.table("tasks").update(task.model_dump(mode="json", exclude={"id"}))
        .eq("profile_id", profile_id).eq("id", task.id),
        "update task",
    )


def delete_task(db: Client, profile_id: str, task_id: str) -> bool:
    res = _execute(
        db.table("tasks").delete().eq("profile_id", profile_id).eq("id", task_id),
        "delete task",
    )
    return bool(res.data)


# ── Settings ──────────────────────────────────────────────────────────────────

def get_settings(db: Client, profile_id: str) -> AppSettings:
    res = _execute(
        db.table("app_settings").select("data").eq("profile_id", profile_id),
        "load settings",
    )
    if not res.data:
        return DEFAULT_SETTINGS
    return AppSettings.model_validate(res.data[0].get("data") or {})


def save_settings(db: Client, profile_id: str, settings: AppSettings) -> None:
    _execute(
        db.table("app_settings").upsert({"profile_id": profile_id, "data": settings.model_dump(mode="json")}),
        "save settings",
    )


# ── Categories ────────────────────────────────────────────────────────────────

def get_categories(db: Client, profile_id: str) -> list[Category]:
    """Seeds the default categories the first time a profile reads them."""
    res = _execute(
        db.table("categories").select("id, name, color, icon").eq("profile_id", profile_id).order("id"),
        "list categories",
    )
    if res.data:
        return [Category.model_validate(row) for row in res.data]

    _execute(
        db.table("categories").insert(
            [{"profile_id": profile_id, **c.model_dump()} for c in DEFAULT_CATEGORIES]
        ),
        "seed categories",
    )
    logger.info("Seeded %d default categories for profile %s", len(DEFAULT_CATEGORIES), profile_id)
    return list(DEFAULT_CATEGORIES)


def upsert_category(db: Client, profile_id: str, category: Category) -> None:
    _execute(
        db.table("categories").upsert({"profile_id": profile_id, **category.model_dump()}),
        "save category",
    )


def delete_category(db: Client, profile_id: str, category_id: str) -> bool:
    res = _execute(
        db.table("categories").delete().eq("profile_id", profile_id).eq("id", category_id),
        "delete category",
    )
    return bool(res.data)


# ── Templates ─────────────────────────────────────────────────────────────────

def list_templates(db: Client, profile_id: str) -> list[Template]:
    res = _execute(
        db.table("templates").select("*").eq("profile_id", profile_id).order("created_at", desc=True),
        "list templates",
    )
    return [Template.model_validate(row) for row in (res.data or [])]


def get_template(db: Client, profile_id: str, template_id: str) -> Template | None:
    res = _execute(
        db.table("templates").select("*").eq("profile_id", profile_id).eq("id", template_id),
        "get template",
    )
    return Template.model_validate(res.data[0]) if res.data else None


def insert_template(db: Client, profile_id: str, template: Template) -> None:
    # tasks go into a jsonb column
    _execute(
        db.table("templates").insert({"profile_id": profile_id, **template.model_dump(mode="json")}),
        "insert template",
    )


def delete_template(db: Client, profile_id: str, template_id: str) -> bool:
    res = _execute(
        db.table("templates").delete().eq("profile_id", profile_id).eq("id", template_id),
        "delete template",
    )
    return bool(res.data)


# ── Pomodoro sessions ─────────────────────────────────────────────────────────

def insert_pomodoro_session(db: Client, profile_id: str, session: PomodoroSession) -> None:
    _execute(
        db.table("pomodoro_sessions").insert({"profile_id": profile_id, **session.model_dump(mode="json")}),
        "insert pomodoro session",
    )


def list_pomodoro_sessions(db: Client, profile_id: str, task_id: str) -> list[PomodoroSession]:
    """Newest first."""
    res = _execute(
        db.table("pomodoro_sessions").select("*")
        .eq("profile_id", profile_id).eq("task_id", task_id)
        .order("start_time", desc=True),
        "list pomodoro sessions",
    )
    return [PomodoroSession.model_validate(row) for row in (res.data or [])]
