import pytest

from daylist import db
from daylist.carryover import _attempt, carry_over_selected, run_carry_over
from daylist.core.models import Quadrant

USER = "local"
TODAY = "2026-03-10"
YESTERDAY = "2026-03-09"


def _attempts():
    with db.get_db() as conn:
        return [r[0] for r in conn.execute("SELECT attempt_date FROM carry_over_attempts")]


def test_email_bob_end_to_end(store):
    store.create(USER, "Email Bob", date_created=YESTERDAY)

    first = run_carry_over(store, USER)
    assert first.total_carried == 1
    (task,) = first.carried_tasks
    assert task.content == "Email Bob"
    assert task.carry_over_count == 1
    assert task.date_created == TODAY
    assert not task.completed

    second = run_carry_over(store, USER)
    assert second.guarded
    assert second.total_carried == 0
    assert second.archived_tasks == 0


def test_guard_reads_recorded_attempt(store, clock):
    run_carry_over(store, USER)
    with db.get_db() as conn:
        attempt = _attempt(conn, USER, TODAY)
    assert attempt is not None
    assert attempt.user_id == USER
    assert attempt.created == clock.utcnow()
    with db.get_db() as conn:
        assert _attempt(conn, USER, YESTERDAY) is None


def test_nothing_to_carry_still_records_attempt(store):
    result = run_carry_over(store, USER)
    assert result.total_carried == 0
    assert not result.guarded
    assert _attempts() == [TODAY]


def test_skips_content_already_on_today(store):
    store.create(USER, "Buy milk", date_created=YESTERDAY)
    store.create(USER, "Call mum", date_created=YESTERDAY)
    store.create(USER, "Buy milk")

    result = run_carry_over(store, USER)
    assert [t.content for t in result.carried_tasks] == ["Call mum"]
    assert [t.content for t in store.list_daily(USER, TODAY)] == ["Buy milk", "Call mum"]


def test_duplicate_check_is_case_sensitive(store):
    store.create(USER, "buy milk", date_created=YESTERDAY)
    store.create(USER, "Buy milk")
    result = run_carry_over(store, USER)
    assert result.total_carried == 1


def test_completed_tasks_are_not_carried(store):
    done = store.create(USER, "done", date_created=YESTERDAY)
    store.toggle_complete(done.id)
    assert run_carry_over(store, USER).total_carried == 0


def test_carried_copies_continue_today_order(store):
    store.create(USER, "already here")
    store.create(USER, "a", date_created=YESTERDAY)
    store.create(USER, "b", date_created=YESTERDAY, eisenhower_quadrant=Quadrant.DO_FIRST)

    result = run_carry_over(store, USER)
    assert [t.order for t in result.carried_tasks] == [1, 2]
    assert result.carried_tasks[1].eisenhower_quadrant is Quadrant.DO_FIRST
    assert [t.order for t in store.list_daily(USER, TODAY)] == [0, 1, 2]


def test_counter_grows_each_day_and_flags_high_priority(store, instant):
    store.create(USER, "Fix the gate", date_created=YESTERDAY)

    counts = []
    for _ in range(3):
        result = run_carry_over(store, USER)
        counts.append(result.carried_tasks[0].carry_over_count)
        instant.advance(days=1)

    assert counts == [1, 2, 3]
    assert [t.content for t in result.high_priority_tasks] == ["Fix the gate"]


def test_archives_everything_older_than_yesterday(store):
    old_open = store.create(USER, "old open", date_created="2026-03-07")
    old_done = store.create(USER, "old done", date_created="2026-03-08")
    store.toggle_complete(old_done.id)
    kept = store.create(USER, "yesterday done", date_created=YESTERDAY)
    store.toggle_complete(kept.id)

    result = run_carry_over(store, USER)
    assert result.archived_tasks == 2
    assert store.get(old_open.id).archived
    assert store.get(old_done.id).archived
    assert not store.get(kept.id).archived
    assert result.total_carried == 0


def test_project_tasks_are_left_alone(store, projects):
    project = projects.create(USER, "garden")
    task = store.create(USER, "dig", date_created="2026-03-01", project_id=project.id)
    result = run_carry_over(store, USER)
    assert result.archived_tasks == 0
    assert not store.get(task.id).archived


def test_runs_are_per_user(store):
    store.create("ada", "ada's task", date_created=YESTERDAY)
    run_carry_over(store, USER)
    assert run_carry_over(store, "ada").total_carried == 1


def test_failed_run_leaves_no_attempt_and_no_copies(store, monkeypatch):
    store.create(USER, "a", date_created=YESTERDAY)
    store.create(USER, "b", date_created=YESTERDAY)
    real_create = store.create
    calls = []

    def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real_create(*args, **kwargs)

    monkeypatch.setattr(store, "create", flaky)
    with pytest.raises(RuntimeError):
        run_carry_over(store, USER)

    assert _attempts() == []
    assert store.list_daily(USER, TODAY) == []

    monkeypatch.setattr(store, "create", real_create)
    assert run_carry_over(store, USER).total_carried == 2


def test_old_attempts_are_purged(store, instant):
    run_carry_over(store, USER)
    instant.advance(days=31)
    run_carry_over(store, USER)
    assert _attempts() == ["2026-04-10"]


def test_carry_over_selected_ignores_guard(store):
    run_carry_over(store, USER)
    picked = store.create(USER, "pick me", date_created="2026-03-06")
    store.create(USER, "leave me", date_created="2026-03-06")

    result = carry_over_selected(store, USER, [picked.id])
    assert [t.content for t in result.carried_tasks] == ["pick me"]
    assert result.carried_tasks[0].carry_over_count == 1
