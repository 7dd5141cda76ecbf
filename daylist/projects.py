import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from fncli import cli

from . import config, db
from .core.errors import NotFoundError, ValidationError
from .core.models import Project
from .lib import clock as clock_mod
from .lib.clock import Clock
from .lib.converters import row_to_project
from .lib.errors import echo, exit_error
from .lib.format import format_project, format_status, format_task

__all__ = ["ProjectStore"]

logger = logging.getLogger(__name__)

_PROJECT_SELECT = """
    SELECT p.id, p.user_id, p.title, p.date_created, p.last_accessed, p.archived,
           (SELECT COUNT(*) FROM tasks t WHERE t.project_id = p.id AND t.archived = 0)
    FROM projects p
"""


class ProjectStore:
    """Projects with a derived ``task_count`` of their non-archived tasks."""

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

    def _select(self, conn: sqlite3.Connection, where: str, params: tuple[object, ...], order_by: str):
        rows = conn.execute(f"{_PROJECT_SELECT} WHERE {where} ORDER BY {order_by}", params).fetchall()  # noqa: S608
        return [row_to_project(row) for row in rows]

    def create(self, user_id: str, title: str) -> Project:
        if not user_id:
            raise ValidationError("user id is required to create a project")
        if not title or not title.strip():
            raise ValidationError("project title cannot be empty")
        project_id = str(uuid.uuid4())
        with self._conn(None) as c:
            c.execute(
                "INSERT INTO projects (id, user_id, title, date_created, last_accessed) VALUES (?, ?, ?, ?, ?)",
                (project_id, user_id, title.strip(), self.clock.today(), self.clock.stamp()),
            )
        project = self.get(project_id)
        if project is None:
            raise NotFoundError(f"project {project_id} vanished after insert")
        logger.debug("created project %s", project_id)
        return project

    def get(self, project_id: str, conn: sqlite3.Connection | None = None) -> Project | None:
        with self._conn(conn) as c:
            found = self._select(c, "p.id = ?", (project_id,), "p.id")
        return found[0] if found else None

    def list_active(self, user_id: str, conn: sqlite3.Connection | None = None) -> list[Project]:
        with self._conn(conn) as c:
            return self._select(
                c, "p.user_id = ? AND p.archived = 0", (user_id,), "p.last_accessed DESC"
            )

    def list_archived(self, user_id: str) -> list[Project]:
        with self._conn(None) as c:
            return self._select(
                c, "p.user_id = ? AND p.archived = 1", (user_id,), "p.last_accessed DESC"
            )

    def touch(self, project_id: str) -> None:
        """Record that the project was opened."""
        with self._conn(None) as c:
            c.execute(
                "UPDATE projects SET last_accessed = ? WHERE id = ?",
                (self.clock.stamp(), project_id),
            )

    def set_archived(
        self,
        user_id: str,
        project_ids: list[str],
        archived: bool,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        if not project_ids:
            return 0
        marks = ",".join("?" for _ in project_ids)
        with self._conn(conn) as c:
            if archived:
                cursor = c.execute(
                    f"UPDATE projects SET archived = 1 WHERE user_id = ? AND id IN ({marks})",  # noqa: S608
                    (user_id, *project_ids),
                )
            else:
                cursor = c.execute(
                    f"UPDATE projects SET archived = 0, last_accessed = ? WHERE user_id = ? AND id IN ({marks})",  # noqa: S608
                    (self.clock.stamp(), user_id, *project_ids),
                )
            return cursor.rowcount

    def inactive_since(
        self, user_id: str, cutoff: datetime, conn: sqlite3.Connection | None = None
    ) -> list[Project]:
        """Active projects last opened before ``cutoff``."""
        return [p for p in self.list_active(user_id, conn=conn) if p.last_accessed < cutoff]

    def delete(self, project_id: str) -> None:
        """Delete a project and, through the foreign key, all of its tasks."""
        with self._conn(None) as c:
            c.execute("DELETE FROM projects WHERE id = ?", (project_id,))


# ── cli ──────────────────────────────────────────────────────────────────────


def _find(store: ProjectStore, user_id: str, ref: str, archived: bool = False) -> Project:
    from .lib.fuzzy import find_in_pool

    pool = store.list_archived(user_id) if archived else store.list_active(user_id)
    project = find_in_pool(ref, pool)
    if not project:
        exit_error(f"No project found: '{ref}'")
    return project


@cli("daylist project", name="add", flags={"title": []})
def project_add(title: list[str]) -> None:
    """Create a project"""
    store = ProjectStore()
    project = store.create(config.get_user_id(), " ".join(title))
    echo(format_status("+", project.title, project.id))


@cli("daylist project", name="ls", default=True, flags={"archived": ["-a", "--archived"]})
def project_ls(archived: bool = False) -> None:
    """List projects"""
    store = ProjectStore()
    user_id = config.get_user_id()
    projects = store.list_archived(user_id) if archived else store.list_active(user_id)
    if not projects:
        echo("no projects")
        return
    for p in projects:
        echo(format_project(p))


@cli("daylist project", name="open", flags={"ref": []})
def project_open(ref: list[str]) -> None:
    """Show a project's tasks"""
    from . import users
    from .tasks import TaskStore

    store = ProjectStore()
    user_id = config.get_user_id()
    project = _find(store, user_id, " ".join(ref))
    store.touch(project.id)
    visual = users.get_settings(user_id).task_completion_visual
    echo(project.title)
    tasks = TaskStore().list_by_project(user_id, project.id)
    if not tasks:
        echo("  no tasks")
    for t in tasks:
        echo(f"  {format_task(t, visual)}")


@cli("daylist project", name="archive", flags={"ref": []})
def project_archive(ref: list[str]) -> None:
    """Archive a project"""
    store = ProjectStore()
    user_id = config.get_user_id()
    project = _find(store, user_id, " ".join(ref))
    store.set_archived(user_id, [project.id], True)
    echo(format_status("▣", project.title, project.id))


@cli("daylist project", name="unarchive", flags={"ref": []})
def project_unarchive(ref: list[str]) -> None:
    """Bring an archived project back"""
    store = ProjectStore()
    user_id = config.get_user_id()
    project = _find(store, user_id, " ".join(ref), archived=True)
    store.set_archived(user_id, [project.id], False)
    echo(format_status("□", project.title, project.id))


@cli("daylist project", name="rm", flags={"ref": []})
def project_rm(ref: list[str]) -> None:
    """Delete a project and its tasks"""
    store = ProjectStore()
    project = _find(store, config.get_user_id(), " ".join(ref))
    store.delete(project.id)
    echo(f"✗ {project.title} ({project.task_count} tasks)")
