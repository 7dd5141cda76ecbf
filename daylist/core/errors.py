class DaylistError(Exception):
    pass


class NotFoundError(DaylistError):
    pass


class ValidationError(DaylistError):
    pass


class ConflictError(DaylistError):
    pass


class TransientStoreError(DaylistError):
    """Persistence failure other than a missing row. Never retried here."""


class CreationFailedError(DaylistError):
    def __init__(self, content: str, created: list | None = None):
        self.content = content
        self.created = created or []
        super().__init__(f"failed to save task '{content}'")


class StateError(DaylistError):
    pass


class AmbiguousError(DaylistError):
    def __init__(self, ref: str, count: int = 0, sample: list[str] | None = None):
        self.ref = ref
        self.count = count
        self.sample = sample or []
        count_note = f" ({count})" if count else ""
        note = f": {', '.join(self.sample)}" if self.sample else ""
        super().__init__(f"ambiguous ref '{ref}' matches multiple tasks{count_note}{note}")
