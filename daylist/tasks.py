import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from fncli import UsageError, cli

from . import db
from .core.errors import ValidationError
from .core.models import DaySummary, Quadrant, Task
from .lib import clock as clock_mod
from .lib.clock import Clock
from .lib.converters import row_to_task
from .lib.errors import echo, exit_error
from .lib.format import format_status, format_summary, format_task

__all__ = ["TaskStore"]

logger = logging.getLogger(__name__)


# ── domain ───────────────────────────────────────────────────────────────────

_TASK_COLS = 'id, user_id, content, date_created, completed, date_completed, archived, "order", project_id, carry_over_count, eisenhower_quadrant'

_UPDATABLE = {
    "content",
    "date_created",
    "completed",
    "date_completed",
    "archived",
    "order",
    "project_id",
    "carry_over_count",
    "eisenhower_quadrant",
}


def _to_db(value: object) -> object:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Quadrant):
        return int(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="seconds")
    return value


def _placeholders(values: Iterable[object]) -> str:
    return ",".join("?" for _ in values)


class TaskStore:
    """Task persistence scoped by user, date and optional project.

    Every method opens its own short-lived connection unless an open
    ``conn`` is passed, which lets an engine run several calls in one
    transaction (see ``transaction``).

    Order groups: a daily task's group is (user, date_created); a project
    task's group is (user, project). ``order`` is 0..n-1 within a group
    after create, reorder, carry-over and delete.
    """

    def __init__(self, db_path: Path | None = None, clock: Clock | None = None):
        self.db_path = db_path
        self.clock = clock or clock_mod.default()

    @contextmanager
    def _conn(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with db.get_db(self.db_path) as own:
            yield own

    def transaction(self):
        """Write-locked transaction for a read-then-write sequence."""
        return db.get_db(self.db_path, immediate=True)

    def _fetch(
        self,
        conn: sqlite3.Connection,
        where: str,
        params: tuple[object, ...] = (),
        order_by: str = '"order" ASC',
        limit: int | None = None,
    ) -> list[Task]:
        sql = f"SELECT {_TASK_COLS} FROM tasks WHERE {where} ORDER BY {order_by}"  # noqa: S608
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        return [row_to_task(row) for row in conn.execute(sql, params).fetchall()]

    # reads

    def get(self, task_id: str, conn: sqlite3.Connection | None = None) -> Task | None:
        with self._conn(conn) as c:
            found = self._fetch(c, "id = ?", (task_id,))
        return found[0] if found else None

    def list_daily(
        self, user_id: str, date: str, conn: sqlite3.Connection | None = None
    ) -> list[Task]:
        with self._conn(conn) as c:
            return self._fetch(
                c,
                "user_id = ? AND date_created = ? AND archived = 0 AND project_id IS NULL",
                (user_id, date),
            )

    def list_by_project(
        self, user_id: str, project_id: str, conn: sqlite3.Connection | None = None
    ) -> list[Task]:
        with self._conn(conn) as c:
            return self._fetch(
                c,
                "user_id = ? AND project_id = ? AND archived = 0",
                (user_id, project_id),
                order_by='"order" ASC, date_created ASC',
            )

    def list_for_date(self, user_id: str, date: str, include_archived: bool = False) -> list[Task]:
        where = "user_id = ? AND date_created = ? AND project_id IS NULL"
        if not include_archived:
            where += " AND archived = 0"
        with self._conn(None) as c:
            return self._fetch(c, where, (user_id, date))

    def list_archived(self, user_id: str, limit: int = 50) -> list[Task]:
        with self._conn(None) as c:
            return self._fetch(
                c,
                "user_id = ? AND archived = 1 AND project_id IS NULL",
                (user_id,),
                order_by='date_created DESC, "order" ASC',
                limit=limit,
            )

    def list_incomplete(self, user_id: str, days_back: int = 7) -> list[Task]:
        """Unfinished daily tasks from the previous ``days_back`` dates, most delayed first."""
        dates = [self.clock.days_ago(i) for i in range(1, days_back + 1)]
        if not dates:
            return []
        with self._conn(None) as c:
            return self._fetch(
                c,
                f"user_id = ? AND date_created IN ({_placeholders(dates)}) "
                "AND completed = 0 AND archived = 0 AND project_id IS NULL",
                (user_id, *dates),
                order_by='date_created DESC, carry_over_count DESC, "order" ASC',
            )

    def list_daily_incomplete(
        self, user_id: str, date: str, conn: sqlite3.Connection | None = None
    ) -> list[Task]:
        with self._conn(conn) as c:
            return self._fetch(
                c,
                "user_id = ? AND date_created = ? AND completed = 0 AND archived = 0 "
                "AND project_id IS NULL",
                (user_id, date),
            )

    def contents_for_date(
        self, user_id: str, date: str, conn: sqlite3.Connection | None = None
    ) -> set[str]:
        with self._conn(conn) as c:
            rows = c.execute(
                "SELECT content FROM tasks WHERE user_id = ? AND date_created = ? AND project_id IS NULL",
                (user_id, date),
            ).fetchall()
        return {row[0] for row in rows}

    def daily_summaries(self, user_id: str, start: str, end: str) -> list[DaySummary]:
        """Per-date totals for daily tasks, archived ones included, most recent first."""
        with self._conn(None) as c:
            rows = c.execute(
                "SELECT date_created, COUNT(*), SUM(completed) FROM tasks "
                "WHERE user_id = ? AND date_created >= ? AND date_created <= ? AND project_id IS NULL "
                "GROUP BY date_created ORDER BY date_created DESC",
                (user_id, start, end),
            ).fetchall()
        return [
            DaySummary(date=row[0], total_tasks=row[1], completed_tasks=row[2] or 0)
            for row in rows
        ]

    # writes

    @staticmethod
    def _next_order(
        conn: sqlite3.Connection, user_id: str, date_created: str, project_id: str | None
    ) -> int:
        if project_id is None:
            row = conn.execute(
                'SELECT MAX("order") FROM tasks WHERE user_id = ? AND date_created = ? '
                "AND project_id IS NULL AND archived = 0",
                (user_id, date_created),
            ).fetchone()
        else:
            row = conn.execute(
                'SELECT MAX("order") FROM tasks WHERE user_id = ? AND project_id = ? AND archived = 0',
                (user_id, project_id),
            ).fetchone()
        return 0 if row[0] is None else row[0] + 1

    def create(
        self,
        user_id: str,
        content: str,
        date_created: str | None = None,
        project_id: str | None = None,
        carry_over_count: int = 0,
        eisenhower_quadrant: Quadrant | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> Task:
        if not user_id:
            raise ValidationError("user id is required to create a task")
        if not content or not content.strip():
            raise ValidationError("task content cannot be empty")
        if carry_over_count < 0:
            raise ValidationError("carry_over_count cannot be negative")
        date_created = date_created or self.clock.today()
        task_id = str(uuid.uuid4())
        with self._conn(conn) as c:
            order = self._next_order(c, user_id, date_created, project_id)
            c.execute(
                f"INSERT INTO tasks ({_TASK_COLS}) VALUES (?, ?, ?, ?, 0, NULL, 0, ?, ?, ?, ?)",  # noqa: S608
                (
                    task_id,
                    user_id,
                    content,
                    date_created,
                    order,
                    project_id,
                    carry_over_count,
                    _to_db(eisenhower_quadrant),
                ),
            )
            created = self.get(task_id, conn=c)
        logger.debug("created task %s order=%s date=%s", task_id, order, date_created)
        if created is None:
            raise ValidationError(f"task {task_id} vanished after insert")
        return created

    def update(
        self, task_id: str, fields: dict[str, object], conn: sqlite3.Connection | None = None
    ) -> Task | None:
        """Apply partial fields. Returns None when the row no longer exists."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValidationError(f"cannot update task fields: {', '.join(sorted(unknown))}")
        if not fields:
            return self.get(task_id, conn=conn)
        set_clauses = [f'"{k}" = ?' for k in fields]
        values = [_to_db(v) for v in fields.values()]
        with self._conn(conn) as c:
            cursor = c.execute(
                f"UPDATE tasks SET {', '.join(set_clauses)} WHERE id = ?",  # noqa: S608
                (*values, task_id),
            )
            if cursor.rowcount == 0:
                logger.warning("task %s not found, skipping update", task_id)
                return None
            return self.get(task_id, conn=c)

    def toggle_complete(self, task_id: str) -> Task | None:
        from .lifecycle import completion_fields

        with self._conn(None) as c:
            task = self.get(task_id, conn=c)
            if task is None:
                logger.warning("task %s not found, skipping toggle", task_id)
                return None
            fields = completion_fields(task, not task.completed, self.clock.utcnow())
            return self.update(task_id, fields, conn=c)

    @staticmethod
    def _groups_of(
        conn: sqlite3.Connection, task_ids: list[str]
    ) -> set[tuple[str, str | None, str | None]]:
        rows = conn.execute(
            f"SELECT user_id, date_created, project_id FROM tasks WHERE id IN ({_placeholders(task_ids)})",  # noqa: S608
            tuple(task_ids),
        ).fetchall()
        return {(u, None if p is not None else d, p) for u, d, p in rows}

    @staticmethod
    def _compact(
        conn: sqlite3.Connection, user_id: str, date_created: str | None, project_id: str | None
    ) -> None:
        """Renumber a group's active tasks 0..n-1, keeping their relative order."""
        if project_id is None:
            where = "user_id = ? AND date_created = ? AND project_id IS NULL AND archived = 0"
            params: tuple[object, ...] = (user_id, date_created)
        else:
            where = "user_id = ? AND project_id = ? AND archived = 0"
            params = (user_id, project_id)
        rows = conn.execute(
            f'SELECT id, "order" FROM tasks WHERE {where} ORDER BY "order" ASC, rowid ASC',  # noqa: S608
            params,
        ).fetchall()
        for index, (task_id, order) in enumerate(rows):
            if order != index:
                conn.execute('UPDATE tasks SET "order" = ? WHERE id = ?', (index, task_id))

    def delete(self, task_id: str, conn: sqlite3.Connection | None = None) -> None:
        self.delete_many([task_id], conn=conn)

    def delete_many(self, task_ids: list[str], conn: sqlite3.Connection | None = None) -> int:
        """Delete tasks and close the gaps they leave in their order groups."""
        if not task_ids:
            return 0
        with self._conn(conn) as c:
            groups = self._groups_of(c, task_ids)
            cursor = c.execute(
                f"DELETE FROM tasks WHERE id IN ({_placeholders(task_ids)})",  # noqa: S608
                tuple(task_ids),
            )
            for group in groups:
                self._compact(c, *group)
            return cursor.rowcount

    def reorder(
        self, user_id: str, task_ids: list[str], conn: sqlite3.Connection | None = None
    ) -> int:
        """Set order = position for each id. Ids not owned by the user are skipped and logged."""
        moved = 0
        with self._conn(conn) as c:
            for index, task_id in enumerate(task_ids):
                cursor = c.execute(
                    'UPDATE tasks SET "order" = ? WHERE id = ? AND user_id = ?',
                    (index, task_id, user_id),
                )
                if cursor.rowcount == 0:
                    logger.warning("task %s not found during reorder", task_id)
                    continue
                moved += 1
        return moved

    def set_archived(
        self,
        user_id: str,
        task_ids: list[str],
        archived: bool,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        if not task_ids:
            return 0
        with self._conn(conn) as c:
            cursor = c.execute(
                f"UPDATE tasks SET archived = ? WHERE user_id = ? AND id IN ({_placeholders(task_ids)})",  # noqa: S608
                (int(archived), user_id, *task_ids),
            )
            return cursor.rowcount

    def archive_before(
        self, user_id: str, date: str, conn: sqlite3.Connection | None = None
    ) -> int:
        """Archive every active daily task dated before ``date``, done or not."""
        with self._conn(conn) as c:
            cursor = c.execute(
                "UPDATE tasks SET archived = 1 WHERE user_id = ? AND date_created < ? "
                "AND archived = 0 AND project_id IS NULL",
                (user_id, date),
            )
            return cursor.rowcount

    def _append_to_today(
        self,
        user_id: str,
        task_ids: list[str],
        fields: dict[str, object],
        skip_present: bool = False,
    ) -> list[Task]:
        today = self.clock.today()
        moved: list[Task] = []
        with self._conn(None) as c:
            present = {t.content for t in self.list_daily(user_id, today, conn=c)}
            for task_id in task_ids:
                current = self.get(task_id, conn=c)
                if current is None or current.user_id != user_id:
                    logger.warning("task %s not found, skipping move", task_id)
                    continue
                if skip_present and current.content in present:
                    logger.info("'%s' already on %s, left where it was", current.content, today)
                    continue
                order = self._next_order(c, user_id, today, None)
                task = self.update(
                    task_id, {**fields, "date_created": today, "order": order}, conn=c
                )
                if task is not None:
                    moved.append(task)
                    present.add(task.content)
                if current.project_id is not None:
                    self._compact(c, user_id, None, current.project_id)
        return moved

    def restore(self, user_id: str, task_ids: list[str]) -> list[Task]:
        """Unarchive tasks onto today's list, appended after today's tasks.

        A task whose content is already on today's list stays archived, the
        same duplicate rule carry-over applies.
        """
        return self._append_to_today(user_id, task_ids, {"archived": False}, skip_present=True)

    def move_to_daily(self, user_id: str, task_ids: list[str]) -> list[Task]:
        """Detach project tasks onto today's list."""
        return self._append_to_today(user_id, task_ids, {"project_id": None})


# ── cli ──────────────────────────────────────────────────────────────────────


def _session():
    from . import config, users

    user_id = config.get_user_id()
    return user_id, TaskStore(), users.get_settings(user_id)


def _resolve(ref: str, pool: list[Task], where: str = "today") -> Task:
    from .lib.fuzzy import find_in_pool

    task = find_in_pool(ref, pool)
    if not task:
        exit_error(f"No task found {where}: '{ref}'")
    return task


def _scope(user_id, store, settings, project=None):
    """Resolve the list a command works on: today's, or a project's with -p.

    Returns (project_id, label, every active task in the group, the arranged
    list the user sees). Working in a project counts as opening it.
    """
    from .lifecycle import arrange

    if project:
        from .projects import ProjectStore, _find

        projects = ProjectStore(clock=store.clock)
        found = _find(projects, user_id, project)
        projects.touch(found.id)
        project_id, label = found.id, f"in {found.title}"
        pool = store.list_by_project(user_id, project_id)
    else:
        project_id, label = None, "today"
        pool = store.list_daily(user_id, store.clock.today())
    return project_id, label, pool, arrange(pool, settings.task_completion_behavior)


def _apply(user_id, store, old, new, settings, project_id=None):
    import asyncio

    from .reconcile import reconcile

    return asyncio.run(
        reconcile(
            store, user_id, old, new, settings, date=store.clock.today(), project_id=project_id
        )
    )


@cli("daylist", name="ls", default=True, flags={"show_all": ["-a", "--all"]})
def ls(show_all: bool = False) -> None:
    """Show today's tasks"""
    from .lifecycle import arrange, overload_message
    from .session import start_session

    user_id, store, settings = _session()
    carried, _ = start_session(store, user_id, settings)
    if carried.total_carried:
        echo(f"↻ carried {carried.total_carried} from yesterday")
        for t in carried.high_priority_tasks:
            echo(f"  ! {t.content} has been carried {t.carry_over_count} times")
    tasks = store.list_daily(user_id, store.clock.today())
    shown = tasks if show_all else arrange(tasks, settings.task_completion_behavior)
    if not shown:
        echo("nothing today")
        return
    for t in shown:
        echo(format_task(t, settings.task_completion_visual))
    if settings.smart_suggestions_enabled:
        active = sum(1 for t in tasks if not t.completed)
        hint = overload_message(active, settings.task_overload_threshold)
        if hint:
            echo(hint)


@cli(
    "daylist",
    flags={"content": [], "quadrant": ["-q", "--quadrant"], "project": ["-p", "--project"]},
)
def add(
    content: list[str] | None = None, quadrant: int | None = None, project: str | None = None
) -> None:
    """Add a task for today, or to a project with -p"""
    text = " ".join(content).strip() if content else ""
    if not text:
        raise UsageError("Usage: daylist add <task>")
    if quadrant is not None and quadrant not in {q.value for q in Quadrant}:
        raise UsageError("quadrant must be 1, 2, 3 or 4")
    user_id, store, settings = _session()
    project_id, _, _, old = _scope(user_id, store, settings, project)
    draft = Task(
        id=f"draft-{uuid.uuid4()}",
        user_id=user_id,
        content=text,
        date_created=store.clock.today(),
        project_id=project_id,
        eisenhower_quadrant=Quadrant(quadrant) if quadrant is not None else None,
    )
    result = _apply(user_id, store, old, [*old, draft], settings, project_id=project_id)
    created = result.created[0]
    echo(format_status("□", created.content, created.id))


@cli("daylist", name="done", flags={"ref": [], "project": ["-p", "--project"]})
def done(ref: list[str], project: str | None = None) -> None:
    """Toggle done, in a project's list with -p"""
    import dataclasses

    from .lifecycle import is_visible

    user_id, store, settings = _session()
    behavior = settings.task_completion_behavior
    project_id, where, pool, old = _scope(user_id, store, settings, project)
    target = _resolve(" ".join(ref), pool, where)
    if target not in old:
        # Completed tasks hidden from the list are reopened directly.
        store.toggle_complete(target.id)
        echo(format_status("□", target.content, target.id))
        return
    flipped = dataclasses.replace(target, completed=not target.completed)
    new = [flipped if t.id == target.id else t for t in old]
    new = [t for t in new if is_visible(t, behavior)]
    _apply(user_id, store, old, new, settings, project_id=project_id)
    symbol = "✓" if flipped.completed else "□"
    echo(format_status(symbol, target.content, target.id))


@cli("daylist", name="undo", flags={"ref": [], "project": ["-p", "--project"]})
def undo(ref: list[str], project: str | None = None) -> None:
    """Reopen a completed task, hidden ones included"""
    user_id, store, settings = _session()
    _, where, pool, _ = _scope(user_id, store, settings, project)
    target = _resolve(" ".join(ref), [t for t in pool if t.completed], where)
    store.update(target.id, {"completed": False, "date_completed": None})
    echo(format_status("□", target.content, target.id))


@cli(
    "daylist",
    name="edit",
    flags={"ref": [], "to": ["-t", "--to"], "project": ["-p", "--project"]},
)
def edit(ref: list[str], to: str | None = None, project: str | None = None) -> None:
    """Change a task's text: `daylist edit <task> -t "new text"`"""
    import dataclasses

    text = (to or "").strip()
    if not text:
        raise UsageError("nothing to change, use -t for the new text")
    user_id, store, settings = _session()
    project_id, where, _, old = _scope(user_id, store, settings, project)
    target = _resolve(" ".join(ref), old, where)
    new = [dataclasses.replace(t, content=text) if t.id == target.id else t for t in old]
    _apply(user_id, store, old, new, settings, project_id=project_id)
    echo(f"→ {text}")


@cli(
    "daylist",
    name="mv",
    flags={"ref": [], "position": ["-n", "--position"], "project": ["-p", "--project"]},
)
def mv(ref: list[str], position: int = 1, project: str | None = None) -> None:
    """Move a task to a 1-based position: `daylist mv <task> -n 2`"""
    import dataclasses

    user_id, store, settings = _session()
    project_id, where, _, old = _scope(user_id, store, settings, project)
    target = _resolve(" ".join(ref), old, where)
    rest = [t for t in old if t.id != target.id]
    index = max(0, min(len(rest), position - 1))
    moved = [*rest[:index], target, *rest[index:]]
    new = [dataclasses.replace(t, order=i) for i, t in enumerate(moved)]
    _apply(user_id, store, old, new, settings, project_id=project_id)
    echo(format_status(f"{index + 1}.", target.content, target.id))


@cli("daylist", name="rm", flags={"ref": [], "project": ["-p", "--project"]})
def rm(ref: list[str], project: str | None = None) -> None:
    """Delete a task"""
    user_id, store, settings = _session()
    _, where, pool, _ = _scope(user_id, store, settings, project)
    target = _resolve(" ".join(ref), pool, where)
    store.delete(target.id)
    echo(f"✗ {target.content}")


@cli("daylist", name="archived")
def archived(limit: int = 50) -> None:
    """List archived tasks"""
    user_id, store, settings = _session()
    tasks = store.list_archived(user_id, limit=limit)
    if not tasks:
        echo("no archived tasks")
        return
    current = None
    for t in tasks:
        if t.date_created != current:
            current = t.date_created
            echo(current)
        echo(f"  {format_task(t, settings.task_completion_visual)}")


@cli("daylist", name="restore", flags={"ref": []})
def restore(ref: list[str]) -> None:
    """Bring an archived task back to today"""
    from .lib.fuzzy import find_in_pool

    user_id, store, _ = _session()
    item_ref = " ".join(ref)
    task = find_in_pool(item_ref, store.list_archived(user_id, limit=500))
    if not task:
        exit_error(f"No archived task found: '{item_ref}'")
    restored = store.restore(user_id, [task.id])
    if not restored:
        echo(f"'{task.content}' is already on today's list")
        return
    for t in restored:
        echo(format_status("□", t.content, t.id))


@cli("daylist", name="history")
def history(days: int = 14) -> None:
    """Completion per day"""
    user_id, store, _ = _session()
    summaries = store.daily_summaries(user_id, store.clock.days_ago(days), store.clock.today())
    if not summaries:
        echo("no history")
        return
    for s in summaries:
        echo(format_summary(s))
