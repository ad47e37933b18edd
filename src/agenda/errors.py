"""Error hierarchy for the agenda core.

Split into transient failures (worth retrying, e.g. the attendance feed) and
permanent failures (bad snapshot data, lookups of ids that were never loaded).
The attendance client relies on this split for its tenacity retry predicate:
    Retrying(retry=retry_if_exception_type(TransientError), ...)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.agenda.models import IntegrityViolation


class AgendaError(Exception):
    """Base exception for all agenda errors."""

    pass


class TransientError(AgendaError):
    """Temporary failure that may succeed on retry."""

    pass


class FeedFetchError(TransientError):
    """Attendance poll failed.

    Covers network errors, non-2xx responses and malformed bodies. Never
    propagates past the room status tracker; the next tick retries.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PermanentError(AgendaError):
    """Failure that won't succeed on retry."""

    pass


class DataIntegrityError(PermanentError):
    """The snapshot contains bad rows.

    Carries every violation found during one load: unresolved references,
    duplicate ids, malformed intervals and rows that fail validation.
    """

    def __init__(self, violations: list[IntegrityViolation]) -> None:
        self.violations = list(violations)
        summary = "; ".join(str(v) for v in self.violations[:5])
        if len(self.violations) > 5:
            summary += f"; ... ({len(self.violations) - 5} more)"
        super().__init__(
            f"{len(self.violations)} data integrity violation(s): {summary}"
        )


class NotFoundError(PermanentError):
    """Lookup of an id that is not present in the loaded snapshot.

    Ids only ever come from loaded data, so this indicates a caller bug.
    """

    def __init__(self, kind: str, requested_id: str) -> None:
        super().__init__(f"Can not find {kind}: {requested_id!r}")
        self.kind = kind
        self.requested_id = requested_id
