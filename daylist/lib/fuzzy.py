from collections.abc import Callable, Sequence
from difflib import get_close_matches
from typing import TypeVar

from daylist.core.errors import AmbiguousError
from daylist.core.models import Project, Task

__all__ = ["find_in_pool", "label_of"]

FUZZY_MATCH_CUTOFF = 0.8

T = TypeVar("T", Task, Project)


def label_of(item: Task | Project) -> str:
    return item.title if isinstance(item, Project) else item.content


def _match_id_prefix(ref: str, pool: Sequence[T]) -> T | None:
    ref_lower = ref.lower()
    matches = [item for item in pool if item.id.lower().startswith(ref_lower)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        exact = next((item for item in matches if item.id == ref), None)
        if exact:
            return exact
        sample = [item.id[:8] for item in matches[:3]]
        raise AmbiguousError(ref, count=len(matches), sample=sample)
    return None


def _match_substring(ref: str, pool: Sequence[T], text: Callable[[T], str]) -> T | None:
    ref_lower = ref.lower()
    exact = next((item for item in pool if text(item).lower() == ref_lower), None)
    if exact:
        return exact
    matches = [item for item in pool if ref_lower in text(item).lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        sample = [text(item) for item in matches[:3]]
        raise AmbiguousError(ref, count=len(matches), sample=sample)
    return None


def _match_fuzzy(ref: str, pool: Sequence[T], text: Callable[[T], str]) -> T | None:
    lowered = [text(item).lower() for item in pool]
    matches = get_close_matches(ref.lower(), lowered, n=1, cutoff=FUZZY_MATCH_CUTOFF)
    if matches:
        return pool[lowered.index(matches[0])]
    return None


def find_in_pool(ref: str, pool: Sequence[T]) -> T | None:
    """Resolve a user reference: id prefix, then exact/substring text, then close match."""
    if not pool or not ref.strip():
        return None
    return (
        _match_id_prefix(ref, pool)
        or _match_substring(ref, pool, label_of)
        or _match_fuzzy(ref, pool, label_of)
    )
