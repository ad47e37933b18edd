"""Per-day schedule views: timetable grid and linear list.

Every function here expects elements already ordered by start time, as
produced by transform(), and keeps that order.
"""

import math
from collections.abc import Callable, Iterable
from datetime import timedelta

from src.agenda.logging import get_logger
from src.agenda.models import (
    Day,
    DayElements,
    DaySchedule,
    ScheduleConflict,
    ScheduleElement,
    ScheduleList,
    ScheduleTable,
    TableCell,
)
from src.agenda.timeutils import extract_fields

log = get_logger(__name__)

DEFAULT_SLOT_MINUTES = 30


def day_of(element: ScheduleElement) -> Day:
    """Day bucket of an element: the local date it starts on."""
    parts = extract_fields(element.start)
    return (parts.year, parts.month, parts.date)


def group_by_day(elements: Iterable[ScheduleElement]) -> list[DayElements]:
    buckets: dict[Day, list[ScheduleElement]] = {}
    for element in elements:
        buckets.setdefault(day_of(element), []).append(element)
    return [DayElements(day=day, elements=buckets[day]) for day in sorted(buckets)]


def _slot_minutes(elements: list[ScheduleElement]) -> int:
    """Largest slot length that every element boundary falls on."""
    origin = min(e.start for e in elements)
    step = 0
    for element in elements:
        for boundary in (element.start, element.end):
            step = math.gcd(step, int((boundary - origin).total_seconds() // 60))
    return step or DEFAULT_SLOT_MINUTES


def build_table(elements: list[ScheduleElement]) -> ScheduleTable:
    """Lay one day's elements out on a (room, time slot) grid.

    Overlapping elements in the same room are reported as conflicts; the
    later one is left out of the grid.
    """
    if not elements:
        return ScheduleTable()

    slot_minutes = _slot_minutes(elements)
    slot = timedelta(minutes=slot_minutes)
    origin = min(e.start for e in elements)
    last = max(e.end for e in elements)

    slots = []
    cursor = origin
    while cursor < last or not slots:
        slots.append(cursor)
        cursor += slot

    rooms = sorted({e.room for e in elements})
    cells: dict[tuple[str, int], TableCell] = {}
    conflicts: list[ScheduleConflict] = []
    room_tail: dict[str, ScheduleElement] = {}

    for element in sorted(elements, key=lambda e: (e.room, e.start, e.end, e.session)):
        previous = room_tail.get(element.room)
        row = int((element.start - origin) / slot)
        # a zero-length element still holds its slot
        if previous is not None and (
            element.start < previous.end or (element.room, row) in cells
        ):
            conflicts.append(
                ScheduleConflict(room=element.room, kept=previous, dropped=element)
            )
            continue
        row_span = max(1, int((element.end - element.start) / slot))
        cells[(element.room, row)] = TableCell(
            room=element.room, row=row, row_span=row_span, element=element
        )
        room_tail[element.room] = element

    for conflict in conflicts:
        log.warning(
            "schedule_overlap",
            room=conflict.room,
            kept=conflict.kept.session,
            dropped=conflict.dropped.session,
        )

    return ScheduleTable(
        rooms=rooms,
        slots=slots,
        slot_minutes=slot_minutes,
        cells=cells,
        conflicts=conflicts,
    )


def build_list(elements: list[ScheduleElement]) -> ScheduleList:
    return ScheduleList(
        items=sorted(elements, key=lambda e: (e.start, e.room, e.session))
    )


def build_days_schedule(
    elements: list[ScheduleElement],
    keep: Callable[[ScheduleElement], bool] | None = None,
) -> list[DaySchedule]:
    """Table and list for every day, after dropping elements `keep` rejects.

    Days whose elements are all filtered out stay in the result, empty.
    """
    days = []
    for bucket in group_by_day(elements):
        visible = [e for e in bucket.elements if keep is None or keep(e)]
        days.append(
            DaySchedule(day=bucket.day, table=build_table(visible), list=build_list(visible))
        )
    return days
