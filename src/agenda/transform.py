"""Raw snapshot -> normalized, cross-referenced entity maps.

The exported snapshot is denormalized: sessions refer to rooms, types, tags and
speakers by id. transform() resolves those ids into embedded entities, moves
every instant to the conference offset and produces the ordered element
sequence the schedule builder works from.

Bad rows never abort a load. Each problem becomes an IntegrityViolation, the
offending row is skipped and the rest of the snapshot is still returned.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from src.agenda.config import ROOM_CAPACITIES
from src.agenda.errors import DataIntegrityError
from src.agenda.logging import get_logger
from src.agenda.models import (
    FilterOptions,
    IntegrityViolation,
    RawNamed,
    RawSession,
    RawSpeaker,
    Room,
    ScheduleElement,
    Session,
    SessionType,
    Speaker,
    Tag,
    ViolationKind,
)
from src.agenda.timeutils import normalize_to_zone

log = get_logger(__name__)

RawT = TypeVar("RawT", bound=BaseModel)


@dataclass
class TransformResult:
    elements: list[ScheduleElement] = field(default_factory=list)
    sessions_by_id: dict[str, Session] = field(default_factory=dict)
    rooms_by_id: dict[str, Room] = field(default_factory=dict)
    speakers_by_id: dict[str, Speaker] = field(default_factory=dict)
    tags_by_id: dict[str, Tag] = field(default_factory=dict)
    types_by_id: dict[str, SessionType] = field(default_factory=dict)
    violations: list[IntegrityViolation] = field(default_factory=list)

    def raise_for_violations(self) -> None:
        if self.violations:
            raise DataIntegrityError(self.violations)


def _validate_rows(
    rows: Any,
    model: type[RawT],
    entity: str,
    violations: list[IntegrityViolation],
) -> dict[str, RawT]:
    """Validate rows one by one, keyed by id; first occurrence of an id wins."""
    result: dict[str, RawT] = {}
    if rows is None:
        return result
    if not isinstance(rows, list):
        violations.append(
            IntegrityViolation(
                kind=ViolationKind.MALFORMED_RECORD,
                entity=entity,
                detail=f"expected a list of rows, got {type(rows).__name__}",
            )
        )
        return result

    for index, row in enumerate(rows):
        try:
            record = model.model_validate(row)
        except ValidationError as e:
            record_id = row.get("id") if isinstance(row, Mapping) else None
            violations.append(
                IntegrityViolation(
                    kind=ViolationKind.MALFORMED_RECORD,
                    entity=entity,
                    record_id=str(record_id) if record_id is not None else None,
                    detail=f"row {index}: {e.error_count()} validation error(s)",
                )
            )
            continue
        if record.id in result:
            violations.append(
                IntegrityViolation(
                    kind=ViolationKind.DUPLICATE_ID,
                    entity=entity,
                    record_id=record.id,
                    detail=f"row {index} repeats an earlier id",
                )
            )
            continue
        result[record.id] = record
    return result


def _resolve(
    table: Mapping[str, Any],
    ref: str,
    kind: str,
    session_id: str,
    violations: list[IntegrityViolation],
) -> Any:
    found = table.get(ref)
    if found is None:
        violations.append(
            IntegrityViolation(
                kind=ViolationKind.UNRESOLVED_REFERENCE,
                entity="session",
                record_id=session_id,
                detail=f"unknown {kind} {ref!r}",
            )
        )
    return found


def transform(raw_snapshot: Any, timezone_offset_minutes: int) -> TransformResult:
    """Normalize a raw snapshot.

    Args:
        raw_snapshot: Mapping with `sessions`, `speakers`, `rooms`, `tags` and
            `session_types` lists, as exported.
        timezone_offset_minutes: Conference offset east of UTC.

    Returns:
        TransformResult with the valid subset and every violation found.

    Raises:
        DataIntegrityError: If the snapshot is not a mapping at all.
    """
    if not isinstance(raw_snapshot, Mapping):
        raise DataIntegrityError(
            [
                IntegrityViolation(
                    kind=ViolationKind.MALFORMED_RECORD,
                    entity="snapshot",
                    detail=f"expected a mapping, got {type(raw_snapshot).__name__}",
                )
            ]
        )

    violations: list[IntegrityViolation] = []
    raw_rooms = _validate_rows(raw_snapshot.get("rooms"), RawNamed, "room", violations)
    raw_tags = _validate_rows(raw_snapshot.get("tags"), RawNamed, "tag", violations)
    raw_types = _validate_rows(
        raw_snapshot.get("session_types"), RawNamed, "session_type", violations
    )
    raw_speakers = _validate_rows(
        raw_snapshot.get("speakers"), RawSpeaker, "speaker", violations
    )
    raw_sessions = _validate_rows(
        raw_snapshot.get("sessions"), RawSession, "session", violations
    )

    rooms_by_id = {
        room_id: Room(
            id=room_id, en=raw.en, zh=raw.zh, capacity=ROOM_CAPACITIES.get(room_id)
        )
        for room_id, raw in raw_rooms.items()
    }
    tags_by_id = {
        tag_id: Tag(id=tag_id, en=raw.en, zh=raw.zh) for tag_id, raw in raw_tags.items()
    }
    types_by_id = {
        type_id: SessionType(id=type_id, en=raw.en, zh=raw.zh)
        for type_id, raw in raw_types.items()
    }
    speakers_by_id = {
        speaker_id: Speaker(id=speaker_id, avatar=raw.avatar, en=raw.en, zh=raw.zh)
        for speaker_id, raw in raw_speakers.items()
    }

    sessions_by_id: dict[str, Session] = {}
    elements: list[ScheduleElement] = []
    for session_id, raw in raw_sessions.items():
        found_before = len(violations)
        room = _resolve(rooms_by_id, raw.room, "room", session_id, violations)
        session_type = _resolve(types_by_id, raw.type, "session type", session_id, violations)
        tags = [_resolve(tags_by_id, t, "tag", session_id, violations) for t in raw.tags]
        speakers = [
            _resolve(speakers_by_id, s, "speaker", session_id, violations)
            for s in raw.speakers
        ]

        start = normalize_to_zone(raw.start, timezone_offset_minutes)
        end = normalize_to_zone(raw.end, timezone_offset_minutes)
        if start > end:
            violations.append(
                IntegrityViolation(
                    kind=ViolationKind.MALFORMED_INTERVAL,
                    entity="session",
                    record_id=session_id,
                    detail=f"start {start.isoformat()} is after end {end.isoformat()}",
                )
            )

        if len(violations) > found_before:
            continue

        sessions_by_id[session_id] = Session(
            id=session_id,
            en=raw.en,
            zh=raw.zh,
            start=start,
            end=end,
            room=room,
            type=session_type,
            tags=tuple(tags),
            speakers=tuple(speakers),
            language=raw.language,
            co_write=raw.co_write,
            record=raw.record,
            uri=raw.uri,
            qa=raw.qa,
            slide=raw.slide,
        )
        elements.append(
            ScheduleElement(session=session_id, room=room.id, start=start, end=end)
        )

    elements.sort(key=lambda e: (e.start, e.room, e.session))

    log.info(
        "snapshot_transformed",
        sessions=len(sessions_by_id),
        rooms=len(rooms_by_id),
        elements=len(elements),
        violations=len(violations),
        offset_minutes=timezone_offset_minutes,
    )
    return TransformResult(
        elements=elements,
        sessions_by_id=sessions_by_id,
        rooms_by_id=rooms_by_id,
        speakers_by_id=speakers_by_id,
        tags_by_id=tags_by_id,
        types_by_id=types_by_id,
        violations=violations,
    )


def build_filter_options(result: TransformResult) -> FilterOptions:
    """Rooms, tags and types that loaded sessions actually use, in id order."""
    room_ids: set[str] = set()
    tag_ids: set[str] = set()
    type_ids: set[str] = set()
    for session in result.sessions_by_id.values():
        room_ids.add(session.room.id)
        type_ids.add(session.type.id)
        tag_ids.update(tag.id for tag in session.tags)

    return FilterOptions(
        rooms=[result.rooms_by_id[i] for i in sorted(room_ids)],
        tags=[result.tags_by_id[i] for i in sorted(tag_ids)],
        types=[result.types_by_id[i] for i in sorted(type_ids)],
    )
