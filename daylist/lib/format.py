from daylist.core.models import CompletionVisual, DaySummary, Project, Task

from . import ansi

__all__ = [
    "format_project",
    "format_status",
    "format_summary",
    "format_task",
]


def format_task(
    task: Task,
    visual: CompletionVisual = CompletionVisual.CHANGE_COLOR,
    show_id: bool = True,
) -> str:
    """Format a task for display. Returns: [✓|□] [Q] content [↻n] [id]"""
    parts = [ansi.green("✓") if task.completed else "□"]

    if task.eisenhower_quadrant is not None:
        parts.append(ansi.quadrant(task.eisenhower_quadrant))

    if task.completed and visual == CompletionVisual.CHANGE_COLOR:
        parts.append(ansi.strikethrough(task.content))
    else:
        parts.append(task.content)

    if task.carry_over_count:
        marker = f"↻{task.carry_over_count}"
        parts.append(ansi.coral(marker) if task.carry_over_count >= 2 else ansi.muted(marker))

    if show_id:
        parts.append(ansi.muted(f"[{task.id[:8]}]"))

    return " ".join(parts)


def format_project(project: Project) -> str:
    count = f"{project.task_count} task" + ("" if project.task_count == 1 else "s")
    state = ansi.muted(" archived") if project.archived else ""
    return f"{project.title} {ansi.muted(f'({count})')}{state} {ansi.muted(f'[{project.id[:8]}]')}"


def format_summary(summary: DaySummary) -> str:
    return (
        f"{summary.date}  {summary.completed_tasks}/{summary.total_tasks}"
        f"  {ansi.muted(f'{summary.completion_rate}%')}"
    )


def format_status(symbol: str, content: str, item_id: str | None = None) -> str:
    """Format status message for action confirmations."""
    if item_id:
        return f"{symbol} {content} {ansi.muted(f'[{item_id[:8]}]')}"
    return f"{symbol} {content}"
