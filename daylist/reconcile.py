"""Turn a before/after snapshot of a task list into store operations.

The caller shows the user a list (arranged by ``lifecycle.arrange``), lets
them edit it freely and hands back the new list. Tasks in the new list
whose id is unknown are drafts to create. Tasks missing from the new list
were either deleted or, under the ``hide`` completion behavior, completed
and dropped from view; ``lifecycle.vanished_by_hiding`` decides which.

Creations run one at a time because each returns the stored id. Updates,
hidden completions, deletions and the reorder have no dependency on each
other and run together.
"""

import asyncio
import dataclasses
import logging

from .core.errors import CreationFailedError
from .core.models import Task, UserSettings
from .lifecycle import completion_fields, vanished_by_hiding
from .tasks import TaskStore

__all__ = ["ReconcileResult", "reconcile"]

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ReconcileResult:
    created: list[Task] = dataclasses.field(default_factory=list)
    id_map: dict[str, str] = dataclasses.field(default_factory=dict)
    updated: list[Task] = dataclasses.field(default_factory=list)
    hidden: list[Task] = dataclasses.field(default_factory=list)
    deleted: list[str] = dataclasses.field(default_factory=list)
    not_found: list[str] = dataclasses.field(default_factory=list)
    reordered: bool = False
    failures: list[BaseException] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _changed(before: Task, after: Task) -> bool:
    return (
        before.content != after.content
        or before.completed != after.completed
        or before.order != after.order
    )


def _update_fields(before: Task, after: Task, now, with_order: bool) -> dict[str, object]:
    fields: dict[str, object] = {}
    if before.content != after.content:
        fields["content"] = after.content
    fields.update(completion_fields(before, after.completed, now))
    if with_order and before.order != after.order:
        fields["order"] = after.order
    return fields


async def _create_all(
    store: TaskStore,
    user_id: str,
    drafts: list[Task],
    date: str,
    project_id: str | None,
) -> tuple[list[Task], dict[str, str]]:
    created: list[Task] = []
    id_map: dict[str, str] = {}
    for draft in drafts:
        try:
            task = await asyncio.to_thread(
                store.create,
                user_id,
                draft.content,
                date_created=date,
                project_id=project_id,
                eisenhower_quadrant=draft.eisenhower_quadrant,
            )
        except Exception as e:
            logger.error("creating '%s' failed after %d created: %s", draft.content, len(created), e)
            raise CreationFailedError(draft.content, created) from e
        created.append(task)
        id_map[draft.id] = task.id
    return created, id_map


async def _group_ids(store: TaskStore, user_id: str, date: str, project_id: str | None) -> list[str]:
    if project_id is not None:
        stored = await asyncio.to_thread(store.list_by_project, user_id, project_id)
    else:
        stored = await asyncio.to_thread(store.list_daily, user_id, date)
    return [t.id for t in stored]


async def reconcile(
    store: TaskStore,
    user_id: str,
    old: list[Task],
    new: list[Task],
    settings: UserSettings,
    *,
    date: str | None = None,
    project_id: str | None = None,
) -> ReconcileResult:
    """Apply the difference between ``old`` and ``new`` to the store.

    Raises CreationFailedError, carrying the tasks created so far, when a
    draft cannot be saved; nothing else is attempted in that case. Failures
    in the update, delete and reorder batches are logged and returned in
    ``failures``. Updates whose task has disappeared land in ``not_found``.
    """
    date = date or store.clock.today()
    behavior = settings.task_completion_behavior
    now = store.clock.utcnow()

    old_by_id = {t.id: t for t in old}
    new_ids = {t.id for t in new}

    drafts = [t for t in new if t.id not in old_by_id]
    changed = [t for t in new if t.id in old_by_id and _changed(old_by_id[t.id], t)]
    missing = [t for t in old if t.id not in new_ids]
    hide = [t for t in missing if vanished_by_hiding(t, behavior)]
    delete = [t.id for t in missing if not vanished_by_hiding(t, behavior)]

    created, id_map = await _create_all(store, user_id, drafts, date, project_id)

    sequence = [id_map.get(t.id, t.id) for t in new]
    needs_reorder = [t.id for t in old] != [t.id for t in new]

    jobs = []
    labels = []
    for after in changed:
        # Position belongs to the reorder call whenever the sequence moved.
        fields = _update_fields(old_by_id[after.id], after, now, with_order=not needs_reorder)
        if fields:
            jobs.append(asyncio.to_thread(store.update, after.id, fields))
            labels.append(("update", after.id))
    for task in hide:
        jobs.append(asyncio.to_thread(store.update, task.id, completion_fields(task, True, now)))
        labels.append(("hide", task.id))
    if delete:
        jobs.append(asyncio.to_thread(store.delete_many, delete))
        labels.append(("delete", ",".join(delete)))
    if needs_reorder:
        stored = await _group_ids(store, user_id, date, project_id)
        hidden_ids = [t.id for t in hide]
        placed = set(sequence) | set(delete) | set(hidden_ids)
        tail = hidden_ids + [i for i in stored if i not in placed]
        jobs.append(asyncio.to_thread(store.reorder, user_id, sequence + tail))
        labels.append(("reorder", str(len(sequence) + len(tail))))

    outcomes = await asyncio.gather(*jobs, return_exceptions=True)

    updated: list[Task] = []
    hidden: list[Task] = []
    not_found: list[str] = []
    failures: list[BaseException] = []
    for (kind, ref), outcome in zip(labels, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            logger.error("%s %s failed: %s", kind, ref, outcome)
            failures.append(outcome)
        elif kind in ("update", "hide"):
            if outcome is None:
                not_found.append(ref)
            elif kind == "update":
                updated.append(outcome)
            else:
                hidden.append(outcome)

    result = ReconcileResult(
        created=created,
        id_map=id_map,
        updated=updated,
        hidden=hidden,
        deleted=delete,
        not_found=not_found,
        reordered=needs_reorder,
        failures=failures,
    )
    logger.info(
        "reconcile %s %s: created=%d updated=%d hidden=%d deleted=%d reordered=%s failures=%d",
        user_id,
        project_id or date,
        len(created),
        len(updated),
        len(hidden),
        len(delete),
        needs_reorder,
        len(failures),
    )
    return result
