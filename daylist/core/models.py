import dataclasses
from collections.abc import Mapping
from datetime import datetime
from enum import IntEnum, StrEnum
from typing import TypeVar

from .errors import ValidationError

E = TypeVar("E", bound=StrEnum)


class CompletionBehavior(StrEnum):
    STAY_VISIBLE = "stay_visible"
    MOVE_TO_BOTTOM = "move_to_bottom"
    HIDE = "hide"


class CompletionVisual(StrEnum):
    CHANGE_COLOR = "change_color"
    NO_CHANGE = "no_change"


class Quadrant(IntEnum):
    DO_FIRST = 1
    SCHEDULE = 2
    DELEGATE = 3
    ELIMINATE = 4


@dataclasses.dataclass(frozen=True)
class Task:
    id: str
    user_id: str
    content: str
    date_created: str
    completed: bool = False
    date_completed: datetime | None = None
    archived: bool = False
    order: int = 0
    project_id: str | None = None
    carry_over_count: int = 0
    eisenhower_quadrant: Quadrant | None = None

    @property
    def is_daily(self) -> bool:
        return self.project_id is None


@dataclasses.dataclass(frozen=True)
class Project:
    id: str
    user_id: str
    title: str
    date_created: str
    last_accessed: datetime
    archived: bool = False
    task_count: int = 0


@dataclasses.dataclass(frozen=True)
class CarryOverAttempt:
    id: int
    user_id: str
    attempt_date: str
    created: datetime


@dataclasses.dataclass(frozen=True)
class UserSettings:
    task_completion_behavior: CompletionBehavior = CompletionBehavior.STAY_VISIBLE
    task_completion_visual: CompletionVisual = CompletionVisual.CHANGE_COLOR
    smart_suggestions_enabled: bool = True
    task_overload_threshold: int = 15
    project_auto_archive_days: int = 7
    project_archive_completed: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> "UserSettings":
        """Build settings from a loosely-shaped record, filling defaults.

        Unknown keys are ignored. Values of the wrong shape raise ValidationError.
        The legacy behavior value ``change_color`` reads as ``stay_visible``.
        """
        if not data:
            return cls()
        defaults = cls()
        return cls(
            task_completion_behavior=_behavior(
                data.get("task_completion_behavior", defaults.task_completion_behavior)
            ),
            task_completion_visual=_choice(
                CompletionVisual,
                "task_completion_visual",
                data.get("task_completion_visual", defaults.task_completion_visual),
            ),
            smart_suggestions_enabled=_flag(
                "smart_suggestions_enabled",
                data.get("smart_suggestions_enabled", defaults.smart_suggestions_enabled),
            ),
            task_overload_threshold=_count(
                "task_overload_threshold",
                data.get("task_overload_threshold", defaults.task_overload_threshold),
                minimum=1,
            ),
            project_auto_archive_days=_count(
                "project_auto_archive_days",
                data.get("project_auto_archive_days", defaults.project_auto_archive_days),
                minimum=1,
            ),
            project_archive_completed=_flag(
                "project_archive_completed",
                data.get("project_archive_completed", defaults.project_archive_completed),
            ),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "task_completion_behavior": self.task_completion_behavior.value,
            "task_completion_visual": self.task_completion_visual.value,
            "smart_suggestions_enabled": self.smart_suggestions_enabled,
            "task_overload_threshold": self.task_overload_threshold,
            "project_auto_archive_days": self.project_auto_archive_days,
            "project_archive_completed": self.project_archive_completed,
        }


def _behavior(val: object) -> CompletionBehavior:
    if val == "change_color":
        return CompletionBehavior.STAY_VISIBLE
    return _choice(CompletionBehavior, "task_completion_behavior", val)


def _choice(enum_cls: type[E], key: str, val: object) -> E:
    try:
        return enum_cls(val)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{key} must be one of: {allowed}") from None


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _flag(key: str, val: object) -> bool:
    if isinstance(val, bool):
        return val
    if isinstance(val, str) and val.strip().lower() in _TRUE | _FALSE:
        return val.strip().lower() in _TRUE
    raise ValidationError(f"{key} must be true or false")


def _count(key: str, val: object, minimum: int = 0) -> int:
    if isinstance(val, bool):
        raise ValidationError(f"{key} must be a whole number")
    try:
        n = int(val)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a whole number") from None
    if n < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    return n


@dataclasses.dataclass(frozen=True)
class CarryOverResult:
    carried_tasks: list[Task] = dataclasses.field(default_factory=list)
    archived_tasks: int = 0
    guarded: bool = False

    @property
    def total_carried(self) -> int:
        return len(self.carried_tasks)

    @property
    def high_priority_tasks(self) -> list[Task]:
        return [t for t in self.carried_tasks if t.carry_over_count >= 2]


@dataclasses.dataclass(frozen=True)
class ProjectArchiveResult:
    completed_projects: int = 0
    inactive_projects: int = 0


@dataclasses.dataclass(frozen=True)
class DaySummary:
    date: str
    total_tasks: int
    completed_tasks: int

    @property
    def completion_rate(self) -> int:
        if not self.total_tasks:
            return 0
        return round(self.completed_tasks * 100 / self.total_tasks)
