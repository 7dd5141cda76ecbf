import pytest

from daylist.core.errors import ValidationError
from daylist.core.models import Quadrant

USER = "local"
TODAY = "2026-03-10"
YESTERDAY = "2026-03-09"


def _orders(tasks):
    return [t.order for t in tasks]


def test_create_appends_order_within_day(store):
    a = store.create(USER, "one")
    b = store.create(USER, "two")
    c = store.create(USER, "three", date_created=YESTERDAY)
    assert (a.order, b.order) == (0, 1)
    assert c.order == 0
    assert a.date_created == TODAY


def test_create_requires_user_and_content(store):
    with pytest.raises(ValidationError):
        store.create("", "orphan")
    with pytest.raises(ValidationError):
        store.create(USER, "   ")


def test_list_daily_excludes_archived_and_project_tasks(store, projects):
    keep = store.create(USER, "keep")
    gone = store.create(USER, "gone")
    project = projects.create(USER, "garden")
    store.create(USER, "dig", project_id=project.id)
    store.set_archived(USER, [gone.id], True)

    assert [t.id for t in store.list_daily(USER, TODAY)] == [keep.id]
    assert [t.id for t in store.list_for_date(USER, TODAY, include_archived=True)] == [
        keep.id,
        gone.id,
    ]


def test_update_missing_task_returns_none(store):
    assert store.update("no-such-id", {"content": "x"}) is None


def test_update_rejects_unknown_fields(store):
    task = store.create(USER, "x")
    with pytest.raises(ValidationError):
        store.update(task.id, {"user_id": "someone-else"})


def test_update_partial_fields(store):
    task = store.create(USER, "draft")
    updated = store.update(task.id, {"content": "final", "eisenhower_quadrant": Quadrant.DELEGATE})
    assert updated is not None
    assert updated.content == "final"
    assert updated.eisenhower_quadrant is Quadrant.DELEGATE
    assert updated.order == task.order


def test_toggle_complete_sets_and_clears_date(store, clock):
    task = store.create(USER, "x")
    done = store.toggle_complete(task.id)
    assert done.completed
    assert done.date_completed == clock.utcnow()
    reopened = store.toggle_complete(task.id)
    assert not reopened.completed
    assert reopened.date_completed is None


def test_reorder_is_contiguous_and_skips_missing(store):
    a, b, c = (store.create(USER, n) for n in ("a", "b", "c"))
    moved = store.reorder(USER, [c.id, "missing", a.id, b.id])
    assert moved == 3
    tasks = store.list_daily(USER, TODAY)
    assert [t.id for t in tasks] == [c.id, a.id, b.id]


def test_reorder_only_touches_own_tasks(store):
    mine = store.create(USER, "mine")
    theirs = store.create("other", "theirs")
    store.reorder(USER, [theirs.id, mine.id])
    assert store.get(theirs.id).order == 0
    assert store.get(mine.id).order == 1


def test_reorder_closes_gaps_after_delete(store):
    a, b, c = (store.create(USER, n) for n in ("a", "b", "c"))
    store.delete(b.id)
    store.reorder(USER, [a.id, c.id])
    assert _orders(store.list_daily(USER, TODAY)) == [0, 1]


def test_delete_many(store):
    ids = [store.create(USER, n).id for n in ("a", "b", "c")]
    assert store.delete_many(ids[:2]) == 2
    assert [t.id for t in store.list_daily(USER, TODAY)] == ids[2:]
    assert store.delete_many([]) == 0


def test_delete_compacts_the_day(store):
    a, b, c = (store.create(USER, n) for n in ("a", "b", "c"))
    other_day = store.create(USER, "other", date_created=YESTERDAY)
    store.create(USER, "other 2", date_created=YESTERDAY)

    store.delete(b.id)

    tasks = store.list_daily(USER, TODAY)
    assert [t.id for t in tasks] == [a.id, c.id]
    assert _orders(tasks) == [0, 1]
    assert store.create(USER, "d").order == 2
    assert store.get(other_day.id).order == 0


def test_delete_many_compacts_each_group(store, projects):
    project = projects.create(USER, "garden")
    dig = store.create(USER, "dig", project_id=project.id)
    store.create(USER, "plant", project_id=project.id)
    store.create(USER, "water", project_id=project.id)
    x, y = store.create(USER, "x"), store.create(USER, "y")

    assert store.delete_many([dig.id, x.id]) == 2

    assert _orders(store.list_by_project(USER, project.id)) == [0, 1]
    assert store.get(y.id).order == 0


def test_list_incomplete_most_delayed_first(store):
    store.create(USER, "today")
    old = store.create(USER, "old", date_created="2026-03-05")
    fresh = store.create(USER, "fresh", date_created=YESTERDAY)
    stuck = store.create(USER, "stuck", date_created=YESTERDAY, carry_over_count=3)
    done = store.create(USER, "done", date_created=YESTERDAY)
    store.toggle_complete(done.id)
    store.create(USER, "ancient", date_created="2026-02-01")

    result = store.list_incomplete(USER, days_back=7)
    assert [t.id for t in result] == [stuck.id, fresh.id, old.id]


def test_list_archived_most_recent_first(store):
    older = store.create(USER, "older", date_created="2026-03-01")
    newer = store.create(USER, "newer", date_created="2026-03-05")
    store.set_archived(USER, [older.id, newer.id], True)
    assert [t.id for t in store.list_archived(USER)] == [newer.id, older.id]
    assert len(store.list_archived(USER, limit=1)) == 1


def test_restore_moves_to_end_of_today(store):
    store.create(USER, "first")
    old = store.create(USER, "old", date_created="2026-03-01")
    store.set_archived(USER, [old.id], True)

    (restored,) = store.restore(USER, [old.id])
    assert restored.date_created == TODAY
    assert not restored.archived
    assert restored.order == 1


def test_restore_skips_content_already_today(store):
    store.create(USER, "Buy milk")
    old = store.create(USER, "Buy milk", date_created="2026-03-01")
    store.set_archived(USER, [old.id], True)

    assert store.restore(USER, [old.id]) == []
    assert store.get(old.id).archived
    assert [t.content for t in store.list_daily(USER, TODAY)] == ["Buy milk"]


def test_move_to_daily_detaches_from_project(store, projects):
    project = projects.create(USER, "garden")
    task = store.create(USER, "dig", project_id=project.id)
    (moved,) = store.move_to_daily(USER, [task.id])
    assert moved.project_id is None
    assert moved.date_created == TODAY
    assert store.list_by_project(USER, project.id) == []


def test_daily_summaries_include_archived(store):
    a = store.create(USER, "a", date_created="2026-03-08")
    store.create(USER, "b", date_created="2026-03-08")
    store.toggle_complete(a.id)
    store.set_archived(USER, [a.id], True)
    store.create(USER, "c")

    summaries = store.daily_summaries(USER, "2026-03-01", TODAY)
    assert [s.date for s in summaries] == [TODAY, "2026-03-08"]
    assert summaries[1].total_tasks == 2
    assert summaries[1].completed_tasks == 1
    assert summaries[1].completion_rate == 50
