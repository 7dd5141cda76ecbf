import logging
from datetime import timedelta

from fncli import cli

from . import config
from .core.models import ProjectArchiveResult, UserSettings
from .lib.errors import echo
from .projects import ProjectStore
from .tasks import TaskStore

__all__ = ["archive_projects", "archive_stale_tasks"]

logger = logging.getLogger(__name__)


def archive_stale_tasks(store: TaskStore, user_id: str) -> int:
    """Archive every daily task dated before yesterday, finished or not."""
    count = store.archive_before(user_id, store.clock.yesterday())
    logger.info("archived %d stale tasks for %s", count, user_id)
    return count


def archive_projects(
    projects: ProjectStore,
    tasks: TaskStore,
    user_id: str,
    settings: UserSettings,
) -> ProjectArchiveResult:
    """Run the completed-project and inactive-project sweeps.

    Each sweep re-reads the active projects, so a project archived by the
    first sweep is never counted by the second.
    """
    completed = 0
    if settings.project_archive_completed:
        finished = []
        for project in projects.list_active(user_id):
            active = tasks.list_by_project(user_id, project.id)
            if active and all(t.completed for t in active):
                finished.append(project.id)
        completed = projects.set_archived(user_id, finished, True)

    cutoff = projects.clock.utcnow() - timedelta(days=settings.project_auto_archive_days)
    stale = [p.id for p in projects.inactive_since(user_id, cutoff)]
    inactive = projects.set_archived(user_id, stale, True)

    result = ProjectArchiveResult(completed_projects=completed, inactive_projects=inactive)
    logger.info(
        "project sweep %s: completed=%d inactive=%d",
        user_id,
        result.completed_projects,
        result.inactive_projects,
    )
    return result


# ── cli ──────────────────────────────────────────────────────────────────────


@cli("daylist", name="archive")
def archive() -> None:
    """Archive stale daily tasks plus finished and inactive projects now"""
    from . import users

    user_id = config.get_user_id()
    tasks = TaskStore()
    stale = archive_stale_tasks(tasks, user_id)
    result = archive_projects(ProjectStore(), tasks, user_id, users.get_settings(user_id))
    echo(f"▣ archived {stale} old tasks")
    echo(
        f"▣ archived {result.completed_projects} completed, "
        f"{result.inactive_projects} inactive projects"
    )
