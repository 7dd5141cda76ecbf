from datetime import date, datetime, timezone
from typing import cast

from daylist.core.models import CarryOverAttempt, Project, Quadrant, Task

TaskRow = tuple[object, ...]
ProjectRow = tuple[object, ...]


def _parse_date(val) -> str | None:
    """Normalise a stored date (ISO string, ISO datetime or numeric timestamp) to YYYY-MM-DD."""
    if isinstance(val, str) and val:
        return date.fromisoformat(val.split("T")[0]).isoformat()
    if isinstance(val, (int, float)):
        return datetime.fromtimestamp(val, timezone.utc).date().isoformat()
    return None


def _parse_datetime_optional(val) -> datetime | None:
    """Parse a stored instant. Naive values are UTC, the stored form."""
    if isinstance(val, str) and val:
        try:
            parsed = datetime.fromisoformat(val)
        except ValueError:
            parsed = datetime.combine(date.fromisoformat(val.split("T")[0]), datetime.min.time())
    elif isinstance(val, (int, float)):
        return datetime.fromtimestamp(val, timezone.utc)
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_datetime(val) -> datetime:
    parsed = _parse_datetime_optional(val)
    return parsed if parsed is not None else datetime.min.replace(tzinfo=timezone.utc)


def _parse_quadrant(val) -> Quadrant | None:
    if val is None:
        return None
    try:
        return Quadrant(int(cast(int, val)))
    except ValueError:
        return None


def row_to_task(row: TaskRow) -> Task:
    """
    Converts a raw database row from the tasks table into a Task.
    Expected row format: (id, user_id, content, date_created, completed, date_completed, archived, order, project_id, carry_over_count, eisenhower_quadrant)
    """
    return Task(
        id=cast(str, row[0]),
        user_id=cast(str, row[1]),
        content=cast(str, row[2]),
        date_created=_parse_date(row[3]) or "",
        completed=bool(row[4]),
        date_completed=_parse_datetime_optional(row[5]),
        archived=bool(row[6]),
        order=int(cast(int, row[7] or 0)),
        project_id=cast(str, row[8]) if row[8] is not None else None,
        carry_over_count=int(cast(int, row[9] or 0)),
        eisenhower_quadrant=_parse_quadrant(row[10]),
    )


def row_to_project(row: ProjectRow) -> Project:
    """
    Expected row format: (id, user_id, title, date_created, last_accessed, archived[, task_count])
    """
    return Project(
        id=cast(str, row[0]),
        user_id=cast(str, row[1]),
        title=cast(str, row[2]),
        date_created=_parse_date(row[3]) or "",
        last_accessed=_parse_datetime(row[4]),
        archived=bool(row[5]),
        task_count=int(cast(int, row[6])) if len(row) > 6 and row[6] is not None else 0,
    )


def row_to_attempt(row: tuple[object, ...]) -> CarryOverAttempt:
    return CarryOverAttempt(
        id=int(cast(int, row[0])),
        user_id=cast(str, row[1]),
        attempt_date=cast(str, row[2]),
        created=_parse_datetime(row[3]),
    )
