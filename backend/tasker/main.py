"""
ADHD Tasker — FastAPI backend
"""
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import GamificationConfig, get_config, get_profile_id
from .db import (
    StorageError, open_client, close_client,
    load_user_stats, list_tasks, get_task, insert_task, update_task, delete_task,
    get_settings, save_settings, get_categories, upsert_category, delete_category,
    list_templates, get_template, insert_template, delete_template,
    insert_pomodoro_session, list_pomodoro_sessions,
)
from .engine.streak import is_streak_in_danger
from .engine.tasks import filter_tasks, price_task, today_focus
from .engine.xp import (
    calculate_level, level_progress, xp_for_current_level, xp_for_next_level,
    xp_until_next_level, level_title, format_xp,
)
from .models import (
    Category, PomodoroSession, PomodoroSessionCreate, SettingsPatch, Task, TaskCreate,
    TaskFilters, TaskUpdate, Template, TemplateCreate, UserStats, DEFAULT_SETTINGS,
)
from .progress import (
    TaskAlreadyCompleted, TaskNotFound, complete_task_and_record, count_pomodoro, record_streak_reset,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.db = open_client()
    get_config()  # fail fast on a bad GAMIFICATION_CONFIG file
    yield
    close_client()


limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="ADHD Tasker API", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:8081,http://localhost:19006").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


def get_db(request: Request):
    return request.app.state.db


@app.get("/health")
def health(db=Depends(get_db)):
    try:
        db.table("user_stats").select("profile_id").limit(1).execute()
        return {"status": "ok", "db": "ok"}
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
        raise HTTPException(status_code=503, detail="DB unavailable")


# ── Stats ─────────────────────────────────────────────────────────────────────

@app.get("/api/stats")
def read_stats(
    tz: Optional[str] = Query(default=None, max_length=64),
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    """`tz` is an IANA zone name; the evening streak warning uses its wall clock."""
    stats = load_user_stats(db, profile_id, config)
    return _stats_view(stats, config, _client_now(tz))


@app.post("/api/stats/reset-streak")
def reset_streak(
    tz: Optional[str] = Query(default=None, max_length=64),
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    now = _client_now(tz)
    stats = record_streak_reset(db, profile_id, config)
    return _stats_view(stats, config, now)


# ── Tasks ─────────────────────────────────────────────────────────────────────

@app.get("/api/tasks")
def read_tasks(
    filters: Annotated[TaskFilters, Query()],
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
):
    tasks = filter_tasks(list_tasks(db, profile_id), filters)
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@app.get("/api/tasks/focus")
def read_today_focus(
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    """Today's short list: urgent first, then by priority and deadline."""
    focus = today_focus(list_tasks(db, profile_id), datetime.now(timezone.utc), config)
    return {"tasks": [t.model_dump(mode="json") for t in focus]}


@app.get("/api/tasks/{task_id}")
def read_task(task_id: str, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    return _require_task(db, profile_id, task_id).model_dump(mode="json")


@app.post("/api/tasks", status_code=201)
@limiter.limit("30/minute")
def create_task(
    request: Request,
    body: TaskCreate,
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    now = datetime.now(timezone.utc)
    stats = load_user_stats(db, profile_id, config)
    task = Task(
        id=str(uuid.uuid4()),
        created_at=now,
        xp_reward=price_task(
            body.estimated_time, body.priority, body.deadline, stats.current_streak, now, config
        ),
        **body.model_dump(),
    )
    insert_task(db, profile_id, task)
    logger.info("Task created: %s (%d XP)", task.id[:8], task.xp_reward)
    return task.model_dump(mode="json")


@app.patch("/api/tasks/{task_id}")
def edit_task(
    task_id: str,
    body: TaskUpdate,
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    task = _require_task(db, profile_id, task_id)
    if task.status == "completed":
        raise HTTPException(status_code=409, detail="Completed tasks cannot be edited")

    # explicit null only clears the optional fields
    updates = {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k in ("deadline", "description")
    }
    merged = Task.model_validate({**task.model_dump(), **updates})

    now = datetime.now(timezone.utc)
    stats = load_user_stats(db, profile_id, config)
    merged.xp_reward = price_task(
        merged.estimated_time, merged.priority, merged.deadline, stats.current_streak, now, config
    )
    update_task(db, profile_id, merged)
    return merged.model_dump(mode="json")


@app.delete("/api/tasks/{task_id}")
def remove_task(task_id: str, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    if not delete_task(db, profile_id, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


@app.post("/api/tasks/{task_id}/pomodoros")
def add_pomodoro(task_id: str, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    return _count_pomodoro(db, profile_id, task_id).model_dump(mode="json")


@app.get("/api/tasks/{task_id}/pomodoro-sessions")
def read_pomodoro_sessions(task_id: str, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    _require_task(db, profile_id, task_id)
    sessions = list_pomodoro_sessions(db, profile_id, task_id)
    return {"sessions": [s.model_dump(mode="json") for s in sessions]}


@app.post("/api/tasks/{task_id}/pomodoro-sessions", status_code=201)
def add_pomodoro_session(
    task_id: str,
    body: PomodoroSessionCreate,
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
):
    """Records a work or break session. A finished work session also counts toward the task."""
    task = _require_task(db, profile_id, task_id)
    if task.status == "completed":
        raise HTTPException(status_code=409, detail="Task already completed")

    session = PomodoroSession(id=str(uuid.uuid4()), task_id=task_id, **body.model_dump())
    insert_pomodoro_session(db, profile_id, session)
    if session.counts_as_pomodoro:
        task = _count_pomodoro(db, profile_id, task_id)
    return {"session": session.model_dump(mode="json"), "task": task.model_dump(mode="json")}


@app.post("/api/tasks/{task_id}/complete")
@limiter.limit("60/minute")
def complete_task(
    request: Request,
    task_id: str,
    tz: Optional[str] = Query(default=None, max_length=64),
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    local_now = _client_now(tz)
    now = local_now.astimezone(timezone.utc)
    try:
        completed, stats, leveled_up = complete_task_and_record(db, profile_id, task_id, now, config)
    except TaskNotFound:
        raise HTTPException(status_code=404, detail="Task not found")
    except TaskAlreadyCompleted:
        raise HTTPException(status_code=409, detail="Task already completed")

    logger.info("Task completed: %s +%d XP%s", completed.id[:8], completed.xp_reward,
                " (level up)" if leveled_up else "")
    return {
        "task": completed.model_dump(mode="json"),
        "xp_gained": completed.xp_reward,
        "leveled_up": leveled_up,
        "stats": _stats_view(stats, config, local_now),
    }


# ── Templates ─────────────────────────────────────────────────────────────────

@app.get("/api/templates")
def read_templates(db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    return {"templates": [t.model_dump(mode="json") for t in list_templates(db, profile_id)]}


@app.post("/api/templates", status_code=201)
def create_template(body: TemplateCreate, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    template = Template(id=str(uuid.uuid4()), created_at=datetime.now(timezone.utc), **body.model_dump())
    insert_template(db, profile_id, template)
    logger.info("Template created: %s (%d tasks)", template.id[:8], len(template.tasks))
    return template.model_dump(mode="json")


@app.delete("/api/templates/{template_id}")
def remove_template(template_id: str, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    if not delete_template(db, profile_id, template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    return {"status": "deleted"}


@app.post("/api/templates/{template_id}/apply", status_code=201)
@limiter.limit("30/minute")
def apply_template(
    request: Request,
    template_id: str,
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
    config: GamificationConfig = Depends(get_config),
):
    """
    Create one priced task per template entry. Chained templates link each
    task to the next under a fresh chain id.
    """
    template = get_template(db, profile_id, template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    now = datetime.now(timezone.utc)
    stats = load_user_stats(db, profile_id, config)
    ids = [str(uuid.uuid4()) for _ in template.tasks]
    chain_id = str(uuid.uuid4()) if template.is_chained else None

    tasks = []
    for i, entry in enumerate(template.tasks):
        chain = {}
        if chain_id:
            chain = {
                "chain_id": chain_id,
                "chain_order": i,
                "next_task_id": ids[i + 1] if i + 1 < len(ids) else None,
            }
        tasks.append(Task(
            id=ids[i],
            created_at=now,
            xp_reward=price_task(
                entry.estimated_time, entry.priority, entry.deadline, stats.current_streak, now, config
            ),
            **entry.model_dump(),
            **chain,
        ))

    for task in tasks:
        insert_task(db, profile_id, task)
    logger.info("Template %s applied: %d tasks", template.id[:8], len(tasks))
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


# ── Settings ──────────────────────────────────────────────────────────────────

@app.get("/api/settings")
def read_settings(db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    return get_settings(db, profile_id).model_dump(mode="json")


@app.patch("/api/settings")
def patch_settings(body: SettingsPatch, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    updated = body.apply_to(get_settings(db, profile_id))
    save_settings(db, profile_id, updated)
    return updated.model_dump(mode="json")


@app.post("/api/settings/reset")
def reset_settings(db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    save_settings(db, profile_id, DEFAULT_SETTINGS)
    logger.info("Settings reset to defaults for %s", profile_id)
    return DEFAULT_SETTINGS.model_dump(mode="json")


# ── Categories ────────────────────────────────────────────────────────────────

@app.get("/api/categories")
def read_categories(db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    return {"categories": [c.model_dump() for c in get_categories(db, profile_id)]}


@app.post("/api/categories", status_code=201)
def add_category(body: Category, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    if any(c.id == body.id for c in get_categories(db, profile_id)):
        raise HTTPException(status_code=409, detail="Category already exists")
    upsert_category(db, profile_id, body)
    return body.model_dump()


@app.put("/api/categories/{category_id}")
def replace_category(
    category_id: str,
    body: Category,
    db=Depends(get_db),
    profile_id: str = Depends(get_profile_id),
):
    if body.id != category_id:
        raise HTTPException(status_code=400, detail="Category id mismatch")
    if not any(c.id == category_id for c in get_categories(db, profile_id)):
        raise HTTPException(status_code=404, detail="Category not found")
    upsert_category(db, profile_id, body)
    return body.model_dump()


@app.delete("/api/categories/{category_id}")
def remove_category(category_id: str, db=Depends(get_db), profile_id: str = Depends(get_profile_id)):
    if not delete_category(db, profile_id, category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"status": "deleted"}


# ── Helpers ───────────────────────────────────────────────────────────────────

def _require_task(db, profile_id: str, task_id: str) -> Task:
    task = get_task(db, profile_id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _stats_view(stats: UserStats, config: GamificationConfig, now: datetime) -> dict:
    level = calculate_level(stats.total_xp, config)
    return {
        "total_xp": stats.total_xp,
        "total_xp_display": format_xp(stats.total_xp),
        "level": level,
        "level_title": level_title(level, config),
        "level_progress": level_progress(stats.total_xp, config),
        "xp_in_level": stats.total_xp - xp_for_current_level(level, config),
        "xp_for_next_level": xp_for_next_level(level, config),
        "xp_until_next_level": xp_until_next_level(stats.total_xp, config),
        "current_streak": stats.current_streak,
        "longest_streak": stats.longest_streak,
        "streak_in_danger": is_streak_in_danger(stats.last_activity_date, now),
        "total_tasks_completed": stats.total_tasks_completed,
        "total_pomodoros_completed": stats.total_pomodoros_completed,
        "last_activity_date": stats.last_activity_date.isoformat() if stats.last_activity_date else None,
    }


def _count_pomodoro(db, profile_id: str, task_id: str) -> Task:
    try:
        return count_pomodoro(db, profile_id, task_id)
    except TaskNotFound:
        raise HTTPException(status_code=404, detail="Task not found")
    except TaskAlreadyCompleted:
        raise HTTPException(status_code=409, detail="Task already completed")


def _client_now(tz: Optional[str]) -> datetime:
    now = datetime.now(timezone.utc)
    if not tz:
        return now
    try:
        return now.astimezone(ZoneInfo(tz))
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise HTTPException(status_code=422, detail="Unknown time zone")
