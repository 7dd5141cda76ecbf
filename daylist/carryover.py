"""Once-a-day carry-over of yesterday's unfinished daily tasks.

A run for (user, today) happens at most once. Everything happens inside a
single write-locked transaction: the guard read, the archive sweep of
anything older than yesterday, the forwarded copies and the attempt record
commit together or not at all, and the UNIQUE(user_id, attempt_date)
constraint rejects a second device that raced past the guard.
"""

import logging
import sqlite3
from datetime import timedelta

from fncli import cli

from . import config
from .core.errors import ConflictError
from .core.models import CarryOverAttempt, CarryOverResult, Task
from .lib.converters import row_to_attempt
from .lib.errors import echo, exit_error
from .lib.format import format_task
from .tasks import TaskStore

__all__ = ["carry_over_selected", "run_carry_over"]

logger = logging.getLogger(__name__)

ATTEMPT_RETENTION_DAYS = 30


def _attempt(conn: sqlite3.Connection, user_id: str, date: str) -> CarryOverAttempt | None:
    row = conn.execute(
        "SELECT id, user_id, attempt_date, created FROM carry_over_attempts "
        "WHERE user_id = ? AND attempt_date = ?",
        (user_id, date),
    ).fetchone()
    return row_to_attempt(row) if row else None


def _record_attempt(conn: sqlite3.Connection, user_id: str, date: str, stamp: str) -> None:
    try:
        conn.execute(
            "INSERT INTO carry_over_attempts (user_id, attempt_date, created) VALUES (?, ?, ?)",
            (user_id, date, stamp),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError(f"carry-over for {user_id} on {date} already recorded") from e


def _purge_attempts(conn: sqlite3.Connection, user_id: str, before: str) -> int:
    cursor = conn.execute(
        "DELETE FROM carry_over_attempts WHERE user_id = ? AND attempt_date < ?",
        (user_id, before),
    )
    return cursor.rowcount


def _forward(
    store: TaskStore,
    conn: sqlite3.Connection,
    user_id: str,
    candidates: list[Task],
    today: str,
) -> list[Task]:
    """Copy candidates into today, skipping content already on today's list."""
    present = store.contents_for_date(user_id, today, conn=conn)
    carried: list[Task] = []
    for task in candidates:
        if task.content in present:
            logger.debug("skipping '%s', already on %s", task.content, today)
            continue
        carried.append(
            store.create(
                user_id,
                task.content,
                date_created=today,
                carry_over_count=task.carry_over_count + 1,
                eisenhower_quadrant=task.eisenhower_quadrant,
                conn=conn,
            )
        )
        present.add(task.content)
    return carried


def run_carry_over(store: TaskStore, user_id: str) -> CarryOverResult:
    """Archive stale daily tasks and forward yesterday's unfinished ones into today.

    Returns a guarded, empty result when the run already happened today.
    Store errors propagate; nothing is committed unless the whole run succeeds.
    """
    clock = store.clock
    today = clock.today()
    yesterday = clock.yesterday()

    with store.transaction() as conn:
        previous = _attempt(conn, user_id, today)
        if previous is not None:
            logger.debug(
                "carry-over already ran for %s on %s at %s", user_id, today, previous.created
            )
            return CarryOverResult(guarded=True)

        archived = store.archive_before(user_id, yesterday, conn=conn)
        leftovers = store.list_daily_incomplete(user_id, yesterday, conn=conn)
        carried = _forward(store, conn, user_id, leftovers, today) if leftovers else []

        _record_attempt(conn, user_id, today, clock.stamp())
        cutoff = (clock.today_date() - timedelta(days=ATTEMPT_RETENTION_DAYS)).isoformat()
        purged = _purge_attempts(conn, user_id, cutoff)

    result = CarryOverResult(carried_tasks=carried, archived_tasks=archived)
    logger.info(
        "carry-over %s on %s: carried=%d high_priority=%d archived=%d purged_attempts=%d",
        user_id,
        today,
        result.total_carried,
        len(result.high_priority_tasks),
        archived,
        purged,
    )
    return result


def carry_over_selected(
    store: TaskStore, user_id: str, task_ids: list[str], days_back: int = 7
) -> CarryOverResult:
    """Forward chosen unfinished tasks from the last ``days_back`` days into today.

    Independent of the daily guard. Ids that are not eligible are ignored.
    """
    wanted = set(task_ids)
    today = store.clock.today()
    eligible = [t for t in store.list_incomplete(user_id, days_back=days_back) if t.id in wanted]
    with store.transaction() as conn:
        carried = _forward(store, conn, user_id, eligible, today)
    logger.info("manual carry-over %s: carried=%d of %d", user_id, len(carried), len(task_ids))
    return CarryOverResult(carried_tasks=carried)


# ── cli ──────────────────────────────────────────────────────────────────────


@cli("daylist carry", name="run", default=True)
def carry() -> None:
    """Forward yesterday's unfinished tasks into today"""
    from . import users

    user_id = config.get_user_id()
    store = TaskStore()
    result = run_carry_over(store, user_id)
    if result.guarded:
        echo("already carried over today")
        return
    visual = users.get_settings(user_id).task_completion_visual
    echo(f"↻ carried {result.total_carried}, archived {result.archived_tasks}")
    for t in result.carried_tasks:
        echo(f"  {format_task(t, visual)}")
    for t in result.high_priority_tasks:
        echo(f"  ! {t.content} has been carried {t.carry_over_count} times")


@cli("daylist carry", name="pick", flags={"refs": []})
def carry_pick(refs: list[str] | None = None, days: int = 7) -> None:
    """Forward chosen unfinished tasks from recent days: `daylist carry pick <ref> ...`"""
    from .lib.fuzzy import find_in_pool

    user_id = config.get_user_id()
    store = TaskStore()
    pool = store.list_incomplete(user_id, days_back=days)
    if not refs:
        if not pool:
            echo(f"nothing unfinished in the last {days} days")
            return
        for t in pool:
            echo(f"  {t.date_created}  {format_task(t)}")
        return
    chosen = []
    for ref in refs:
        task = find_in_pool(ref, pool)
        if not task:
            exit_error(f"No unfinished task found: '{ref}'")
        chosen.append(task.id)
    result = carry_over_selected(store, user_id, chosen, days_back=days)
    echo(f"↻ carried {result.total_carried}")
