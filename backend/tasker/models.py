from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

Priority = Literal["low", "medium", "high"]
TaskStatus = Literal["todo", "in_progress", "completed"]
RecurringPattern = Literal["none", "daily", "weekly", "monthly"]

HHMM_RE = r"^([01]\d|2[0-3]):[0-5]\d$"


class UserStats(BaseModel):
    total_xp: int = Field(default=0, ge=0)
    level: int = 1
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_tasks_completed: int = Field(default=0, ge=0)
    total_pomodoros_completed: int = Field(default=0, ge=0)
    last_activity_date: Optional[datetime] = None
    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def longest_covers_current(self):
        # rows written before the invariant was enforced
        if self.longest_streak < self.current_streak:
            self.longest_streak = self.current_streak
        return self


class Task(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    estimated_time: int = 30
    category: str = "personal"
    priority: Priority = "medium"
    status: TaskStatus = "todo"
    created_at: datetime
    completed_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    xp_reward: int = 0
    pomodoros_completed: int = 0
    is_recurring: bool = False
    recurring_pattern: RecurringPattern = "none"
    chain_id: Optional[str] = None
    chain_order: Optional[int] = None
    next_task_id: Optional[str] = None
    model_config = {"extra": "ignore"}


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    estimated_time: int = Field(default=30, ge=0, le=1440)
    category: str = Field(default="personal", min_length=1, max_length=50)
    priority: Priority = "medium"
    deadline: Optional[datetime] = None
    is_recurring: bool = False
    recurring_pattern: RecurringPattern = "none"

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    estimated_time: Optional[int] = Field(default=None, ge=0, le=1440)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    priority: Optional[Priority] = None
    status: Optional[Literal["todo", "in_progress"]] = None
    deadline: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None


class TaskFilters(BaseModel):
    status: list[TaskStatus] = []
    priority: list[Priority] = []
    category: list[str] = []
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    search: Optional[str] = None


class AppSettings(BaseModel):
    pomodoro_duration: int = Field(default=25, ge=1, le=180)
    short_break_duration: int = Field(default=5, ge=1, le=60)
    long_break_duration: int = Field(default=15, ge=1, le=120)
    pomodoros_until_long_break: int = Field(default=4, ge=1, le=12)
    enable_notifications: bool = True
    enable_sounds: bool = True
    daily_motivation_time: Optional[str] = Field(default="09:00", pattern=HHMM_RE)
    streak_reminder_enabled: bool = True
    dark_mode: bool = True
    xp_multiplier: float = Field(default=1.0, gt=0, le=10)
    model_config = {"extra": "ignore"}


DEFAULT_SETTINGS = AppSettings()


class SettingsPatch(BaseModel):
    pomodoro_duration: Optional[int] = Field(default=None, ge=1, le=180)
    short_break_duration: Optional[int] = Field(default=None, ge=1, le=60)
    long_break_duration: Optional[int] = Field(default=None, ge=1, le=120)
    pomodoros_until_long_break: Optional[int] = Field(default=None, ge=1, le=12)
    enable_notifications: Optional[bool] = None
    enable_sounds: Optional[bool] = None
    daily_motivation_time: Optional[str] = Field(default=None, pattern=HHMM_RE)
    streak_reminder_enabled: Optional[bool] = None
    dark_mode: Optional[bool] = None
    xp_multiplier: Optional[float] = Field(default=None, gt=0, le=10)
    model_config = {"extra": "forbid"}

    def apply_to(self, settings: AppSettings) -> AppSettings:
        # explicit null only clears the motivation time; other fields are required
        updates = {
            k: v for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None or k == "daily_motivation_time"
        }
        return settings.model_copy(update=updates)


class Category(BaseModel):
    id: str = Field(min_length=1, max_length=50, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(pattern=r"^#[0-9A-Fa-f]{6}$")
    icon: Optional[str] = None


DEFAULT_CATEGORIES: list[Category] = [
    Category(id="work", name="Work", color="#4A9FFF", icon="briefcase"),
    Category(id="personal", name="Personal", color="#00D9A3", icon="person"),
    Category(id="health", name="Health", color="#FF6B6B", icon="heart"),
    Category(id="learning", name="Learning", color="#FFB800", icon="book"),
    Category(id="chores", name="Chores", color="#9B59B6", icon="home"),
    Category(id="social", name="Social", color="#E91E63", icon="people"),
]


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    tasks: list[TaskCreate] = Field(min_length=1, max_length=50)
    is_chained: bool = False


class Template(BaseModel):
    """A reusable routine. Its tasks carry no id or reward until applied."""
    id: str
    name: str
    description: Optional[str] = None
    tasks: list[TaskCreate]
    is_chained: bool = False
    created_at: datetime
    model_config = {"extra": "ignore"}


class PomodoroSessionCreate(BaseModel):
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int = Field(ge=1, le=180)  # minutes
    is_completed: bool = False
    is_break: bool = False

    @model_validator(mode="after")
    def ends_after_start(self):
        if self.end_time is None:
            return self
        if (self.end_time.tzinfo is None) != (self.start_time.tzinfo is None):
            raise ValueError("start_time and end_time must both carry a timezone or neither")
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class PomodoroSession(PomodoroSessionCreate):
    id: str
    task_id: str
    model_config = {"extra": "ignore"}

    @property
    def counts_as_pomodoro(self) -> bool:
        return self.is_completed and not self.is_break
