from .archival import archive_projects
from .carryover import run_carry_over
from .core.models import CarryOverResult, ProjectArchiveResult, UserSettings
from .projects import ProjectStore
from .tasks import TaskStore

__all__ = ["start_session"]


def start_session(
    store: TaskStore,
    user_id: str,
    settings: UserSettings,
    projects: ProjectStore | None = None,
) -> tuple[CarryOverResult, ProjectArchiveResult]:
    """Maintenance run whenever the user opens their list: daily carry-over, then project sweeps."""
    carried = run_carry_over(store, user_id)
    projects = projects or ProjectStore(store.db_path, clock=store.clock)
    swept = archive_projects(projects, store, user_id, settings)
    return carried, swept
