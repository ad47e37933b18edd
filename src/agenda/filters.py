"""Compound filter evaluation against sessions.

Keys are ANDed and checked in a fixed order; the first failing key rejects
the session. A wildcard key is skipped.
"""

from collections.abc import Collection

from src.agenda.models import WILDCARD, FilterSpec, Locale, Session


def is_wildcard(value: str | Collection[str]) -> bool:
    if isinstance(value, str):
        return value == WILDCARD
    return WILDCARD in value


def matches_search(session: Session, needle: str, locale: Locale | str) -> bool:
    """Case-insensitive substring search.

    Title or description may match. Speakers only count when there is at
    least one and every one of them matches on name or bio.
    """
    needle = needle.lower()
    text = session.text(locale)
    if needle in text.title.lower() or needle in text.description.lower():
        return True
    if not session.speakers:
        return False
    return all(
        needle in speaker.text(locale).name.lower()
        or needle in speaker.text(locale).bio.lower()
        for speaker in session.speakers
    )


def matches(
    session: Session,
    favorite_ids: Collection[str],
    spec: FilterSpec,
    locale: Locale | str,
) -> bool:
    """Whether `session` passes every non-wildcard key of `spec`."""
    if not is_wildcard(spec.room) and session.room.id not in spec.room:
        return False
    if not is_wildcard(spec.tags) and not any(t.id == spec.tags for t in session.tags):
        return False
    if not is_wildcard(spec.type) and session.type.id != spec.type:
        return False
    if not is_wildcard(spec.collection) and session.id not in favorite_ids:
        return False
    if not is_wildcard(spec.filter) and session.id not in spec.filter:
        return False
    if spec.search and not is_wildcard(spec.search):
        if not matches_search(session, spec.search, locale):
            return False
    return True
