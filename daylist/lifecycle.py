"""Task visibility as an explicit state machine.

A task's visible state follows from ``completed``, ``archived`` and the
user's completion behavior:

    active ──complete──▶ completed_visible   (stay_visible, move_to_bottom)
    active ──complete──▶ completed_hidden    (hide)
    completed_* ──uncomplete──▶ active
    any non-archived ──archive──▶ archived
    archived ──restore──▶ active | completed_*

Switching the completion behavior moves completed tasks between
completed_visible and completed_hidden without touching stored data.
"""

from datetime import datetime
from enum import StrEnum

from .core.errors import StateError
from .core.models import CompletionBehavior, Task


class TaskState(StrEnum):
    ACTIVE = "active"
    COMPLETED_VISIBLE = "completed_visible"
    COMPLETED_HIDDEN = "completed_hidden"
    ARCHIVED = "archived"


class Event(StrEnum):
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"
    ARCHIVE = "archive"
    RESTORE = "restore"


def _completed_state(behavior: CompletionBehavior) -> TaskState:
    if behavior == CompletionBehavior.HIDE:
        return TaskState.COMPLETED_HIDDEN
    return TaskState.COMPLETED_VISIBLE


def state_of(task: Task, behavior: CompletionBehavior) -> TaskState:
    if task.archived:
        return TaskState.ARCHIVED
    if task.completed:
        return _completed_state(behavior)
    return TaskState.ACTIVE


def transition(
    state: TaskState, event: Event, behavior: CompletionBehavior, completed: bool = False
) -> TaskState:
    """Next state for an event. ``completed`` only matters when restoring."""
    completed_states = (TaskState.COMPLETED_VISIBLE, TaskState.COMPLETED_HIDDEN)
    if event == Event.COMPLETE and state == TaskState.ACTIVE:
        return _completed_state(behavior)
    if event == Event.UNCOMPLETE and state in completed_states:
        return TaskState.ACTIVE
    if event == Event.ARCHIVE and state != TaskState.ARCHIVED:
        return TaskState.ARCHIVED
    if event == Event.RESTORE and state == TaskState.ARCHIVED:
        return _completed_state(behavior) if completed else TaskState.ACTIVE
    raise StateError(f"cannot {event.value} a task that is {state.value}")


def is_visible(task: Task, behavior: CompletionBehavior) -> bool:
    return state_of(task, behavior) in (TaskState.ACTIVE, TaskState.COMPLETED_VISIBLE)


def vanished_by_hiding(task: Task, behavior: CompletionBehavior) -> bool:
    """Whether a task missing from a new snapshot is explained by hide-on-complete.

    Only an active task can disappear this way: completing it under ``hide``
    drops it from the visible list. Anything else that disappeared was deleted.
    """
    if state_of(task, behavior) != TaskState.ACTIVE:
        return False
    return transition(TaskState.ACTIVE, Event.COMPLETE, behavior) == TaskState.COMPLETED_HIDDEN


def arrange(tasks: list[Task], behavior: CompletionBehavior) -> list[Task]:
    """Order a day's stored tasks the way the list should show them."""
    visible = [t for t in tasks if is_visible(t, behavior)]
    if behavior == CompletionBehavior.MOVE_TO_BOTTOM:
        return [t for t in visible if not t.completed] + [t for t in visible if t.completed]
    return visible


def completion_fields(task: Task, completed: bool, at: datetime) -> dict[str, object]:
    """Field changes for setting ``completed``; date_completed moves only on a real transition."""
    if task.completed == completed:
        return {}
    if completed:
        return {"completed": True, "date_completed": at}
    return {"completed": False, "date_completed": None}


def overload_message(task_count: int, threshold: int) -> str | None:
    if task_count > threshold:
        return f"{task_count} tasks today. Consider sorting them into quadrants to prioritize."
    return None
