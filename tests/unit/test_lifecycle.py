from datetime import datetime, timezone

import pytest

from daylist.core.errors import StateError
from daylist.core.models import CompletionBehavior, Task
from daylist.lifecycle import (
    Event,
    TaskState,
    arrange,
    completion_fields,
    is_visible,
    overload_message,
    state_of,
    transition,
    vanished_by_hiding,
)

HIDE = CompletionBehavior.HIDE
STAY = CompletionBehavior.STAY_VISIBLE
BOTTOM = CompletionBehavior.MOVE_TO_BOTTOM
NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


def _task(tid, completed=False, archived=False):
    return Task(
        id=tid,
        user_id="u",
        content=tid,
        date_created="2026-03-10",
        completed=completed,
        archived=archived,
    )


def test_state_of():
    assert state_of(_task("a"), HIDE) == TaskState.ACTIVE
    assert state_of(_task("a", completed=True), HIDE) == TaskState.COMPLETED_HIDDEN
    assert state_of(_task("a", completed=True), STAY) == TaskState.COMPLETED_VISIBLE
    assert state_of(_task("a", completed=True, archived=True), STAY) == TaskState.ARCHIVED


def test_transitions():
    assert transition(TaskState.ACTIVE, Event.COMPLETE, HIDE) == TaskState.COMPLETED_HIDDEN
    assert transition(TaskState.ACTIVE, Event.COMPLETE, BOTTOM) == TaskState.COMPLETED_VISIBLE
    assert transition(TaskState.COMPLETED_HIDDEN, Event.UNCOMPLETE, HIDE) == TaskState.ACTIVE
    assert transition(TaskState.ACTIVE, Event.ARCHIVE, STAY) == TaskState.ARCHIVED
    assert (
        transition(TaskState.ARCHIVED, Event.RESTORE, HIDE, completed=True)
        == TaskState.COMPLETED_HIDDEN
    )


@pytest.mark.parametrize(
    "state,event",
    [
        (TaskState.ACTIVE, Event.UNCOMPLETE),
        (TaskState.COMPLETED_VISIBLE, Event.COMPLETE),
        (TaskState.ARCHIVED, Event.ARCHIVE),
        (TaskState.ACTIVE, Event.RESTORE),
    ],
)
def test_invalid_transitions_raise(state, event):
    with pytest.raises(StateError):
        transition(state, event, STAY)


def test_vanished_by_hiding_only_for_active_under_hide():
    assert vanished_by_hiding(_task("a"), HIDE)
    assert not vanished_by_hiding(_task("a"), STAY)
    assert not vanished_by_hiding(_task("a"), BOTTOM)
    assert not vanished_by_hiding(_task("a", completed=True), HIDE)


def test_arrange_hide_drops_completed():
    tasks = [_task("a", completed=True), _task("b")]
    assert [t.id for t in arrange(tasks, HIDE)] == ["b"]
    assert not is_visible(tasks[0], HIDE)


def test_arrange_move_to_bottom_keeps_relative_order():
    tasks = [_task("a", completed=True), _task("b"), _task("c", completed=True), _task("d")]
    assert [t.id for t in arrange(tasks, BOTTOM)] == ["b", "d", "a", "c"]


def test_arrange_stay_visible_is_unchanged():
    tasks = [_task("a", completed=True), _task("b")]
    assert arrange(tasks, STAY) == tasks


def test_completion_fields_only_on_transition():
    assert completion_fields(_task("a"), True, NOW) == {"completed": True, "date_completed": NOW}
    assert completion_fields(_task("a", completed=True), False, NOW) == {
        "completed": False,
        "date_completed": None,
    }
    assert completion_fields(_task("a", completed=True), True, NOW) == {}


def test_overload_message():
    assert overload_message(16, 15) is not None
    assert overload_message(15, 15) is None
