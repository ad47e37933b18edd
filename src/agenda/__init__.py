"""Scheduling and session-filtering core of the conference agenda.

Turns an exported session snapshot into timezone-correct, cross-referenced
views, answers filtered schedule queries and tracks live room status.
"""

from src.agenda.errors import DataIntegrityError, FeedFetchError, NotFoundError
from src.agenda.models import FilterSpec, Locale, RoomStatus
from src.agenda.query import AgendaQuery
from src.agenda.transform import transform

__all__ = [
    "AgendaQuery",
    "DataIntegrityError",
    "FeedFetchError",
    "FilterSpec",
    "Locale",
    "NotFoundError",
    "RoomStatus",
    "transform",
]
