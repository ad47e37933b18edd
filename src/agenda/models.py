"""Pydantic models for agenda data.

Two layers live here: the raw rows of an exported snapshot (loosely typed,
validated one row at a time) and the normalized, frozen entities the rest of
the package works with.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WILDCARD = "*"

# (year, month, date) in conference-local time
Day = tuple[int, int, int]


class Locale(str, Enum):
    EN = "en"
    ZH_TW = "zh-TW"

    @classmethod
    def _missing_(cls, value: object) -> "Locale | None":
        if isinstance(value, str) and value.lower() in ("zh", "zh-tw", "zh_tw"):
            return cls.ZH_TW
        return None

    @property
    def attr(self) -> str:
        """Attribute name holding this locale's text block."""
        return "zh" if self is Locale.ZH_TW else "en"


# Raw snapshot rows


def _fold_localized(data: Any, fields: tuple[str, ...]) -> Any:
    """Fold flat `title:en` / `title:zh-TW` keys into `en` / `zh` blocks."""
    if not isinstance(data, dict):
        return data
    data = dict(data)
    if "zh-TW" in data and "zh" not in data:
        data["zh"] = data.pop("zh-TW")
    for field in fields:
        for suffix, target in (("en", "en"), ("zh-TW", "zh"), ("zh", "zh")):
            key = f"{field}:{suffix}"
            if key not in data:
                continue
            existing = data.get(target)
            if existing is not None and not isinstance(existing, dict):
                raise ValueError(f"{target} must be an object, got {type(existing).__name__}")
            block = dict(existing or {})
            block.setdefault(field, data.pop(key))
            data[target] = block
    return data


class SessionText(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""

    @field_validator("title", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class SpeakerText(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    bio: str = ""

    @field_validator("name", "bio", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class NameText(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class RawNamed(BaseModel):
    """Raw room, tag or session type row."""

    model_config = ConfigDict(extra="ignore")

    id: str
    en: NameText = NameText()
    zh: NameText = NameText()

    @model_validator(mode="before")
    @classmethod
    def _fold(cls, data: Any) -> Any:
        return _fold_localized(data, ("name",))


class RawSpeaker(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    avatar: str | None = None
    en: SpeakerText = SpeakerText()
    zh: SpeakerText = SpeakerText()

    @model_validator(mode="before")
    @classmethod
    def _fold(cls, data: Any) -> Any:
        return _fold_localized(data, ("name", "bio"))


class RawSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    room: str
    start: datetime
    end: datetime
    language: str | None = None
    en: SessionText = SessionText()
    zh: SessionText = SessionText()
    speakers: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    co_write: str | None = None
    record: str | None = None
    uri: str | None = None
    qa: str | None = None
    slide: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold(cls, data: Any) -> Any:
        return _fold_localized(data, ("title", "description"))

    @field_validator("speakers", "tags", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


# Normalized entities


class _Localized(BaseModel):
    def text(self, locale: Locale | str) -> Any:
        return getattr(self, Locale(locale).attr)


class Room(_Localized):
    model_config = ConfigDict(frozen=True)

    id: str
    en: NameText = NameText()
    zh: NameText = NameText()
    capacity: int | None = None  # None: not in the capacity table


class Tag(_Localized):
    model_config = ConfigDict(frozen=True)

    id: str
    en: NameText = NameText()
    zh: NameText = NameText()


class SessionType(_Localized):
    model_config = ConfigDict(frozen=True)

    id: str
    en: NameText = NameText()
    zh: NameText = NameText()


class Speaker(_Localized):
    model_config = ConfigDict(frozen=True)

    id: str
    avatar: str | None = None
    en: SpeakerText = SpeakerText()
    zh: SpeakerText = SpeakerText()


class Session(_Localized):
    """A session with its room, type, tags and speakers resolved."""

    model_config = ConfigDict(frozen=True)

    id: str
    en: SessionText = SessionText()
    zh: SessionText = SessionText()
    start: datetime
    end: datetime
    room: Room
    type: SessionType
    tags: tuple[Tag, ...] = ()
    speakers: tuple[Speaker, ...] = ()
    language: str | None = None
    co_write: str | None = None
    record: str | None = None
    uri: str | None = None
    qa: str | None = None
    slide: str | None = None
    favorite: bool = False  # set by the query layer, not by the transformer

    @model_validator(mode="after")
    def _check_interval(self) -> "Session":
        if self.start > self.end:
            raise ValueError(f"session {self.id} starts after it ends")
        return self


class ScheduleElement(BaseModel):
    """One placement of a session into a room for [start, end)."""

    model_config = ConfigDict(frozen=True)

    session: str
    room: str
    start: datetime
    end: datetime


class ViolationKind(str, Enum):
    DUPLICATE_ID = "duplicate_id"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    MALFORMED_INTERVAL = "malformed_interval"
    MALFORMED_RECORD = "malformed_record"


class IntegrityViolation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ViolationKind
    entity: str  # "session", "speaker", "room", "tag", "session_type"
    record_id: str | None = None
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value} {self.entity} {self.record_id or '?'}: {self.detail}"


# Schedule views


class TableCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    room: str
    row: int  # index into ScheduleTable.slots
    row_span: int
    element: ScheduleElement


class ScheduleConflict(BaseModel):
    """Two elements overlapping in the same room; `dropped` was not placed."""

    model_config = ConfigDict(frozen=True)

    room: str
    kept: ScheduleElement
    dropped: ScheduleElement


class ScheduleTable(BaseModel):
    rooms: list[str] = Field(default_factory=list)
    slots: list[datetime] = Field(default_factory=list)
    slot_minutes: int = 30
    cells: dict[tuple[str, int], TableCell] = Field(default_factory=dict)
    conflicts: list[ScheduleConflict] = Field(default_factory=list)

    def cell_at(self, room: str, row: int) -> TableCell | None:
        return self.cells.get((room, row))


class ScheduleList(BaseModel):
    items: list[ScheduleElement] = Field(default_factory=list)


class DayElements(BaseModel):
    day: Day
    elements: list[ScheduleElement]


class DaySchedule(BaseModel):
    day: Day
    table: ScheduleTable
    list: ScheduleList


class RoomStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_full: bool = False
    current_session: str | None = None


# Filtering


class FilterSpec(BaseModel):
    """Immutable snapshot of the current filter criteria.

    A key holding the wildcard ("*", or a set containing it) does not filter.
    """

    model_config = ConfigDict(frozen=True)

    room: frozenset[str] = frozenset({WILDCARD})
    tags: str = WILDCARD
    type: str = WILDCARD
    collection: Literal["favorites", "*"] = WILDCARD
    filter: frozenset[str] = frozenset({WILDCARD})
    search: str = ""

    @field_validator("room", "filter", mode="before")
    @classmethod
    def _single_to_set(cls, value: Any) -> Any:
        if isinstance(value, str):
            return frozenset({value})
        return value

    @classmethod
    def from_query(cls, query: dict[str, Any]) -> "FilterSpec":
        """Build from a URL query mapping; absent keys mean "any".

        `filter` is a run of concatenated 6-character session ids.
        """

        def first(key: str) -> str | None:
            value = query.get(key)
            if isinstance(value, (list, tuple)):
                return value[0] if value else None
            return value

        values: dict[str, Any] = {}
        room = query.get("room")
        if room:
            values["room"] = [room] if isinstance(room, str) else list(room)
        for key in ("tags", "type", "collection", "search"):
            value = first(key)
            if value:
                values[key] = value
        ids = first("filter")
        if ids:
            values["filter"] = [ids[i : i + 6] for i in range(0, len(ids), 6)]
        return cls.model_validate(values)

    def to_query(self) -> dict[str, Any]:
        """Inverse of from_query; wildcard and empty keys are omitted."""
        query: dict[str, Any] = {}
        if WILDCARD not in self.room:
            query["room"] = sorted(self.room)
        for key in ("tags", "type", "collection"):
            value = getattr(self, key)
            if value != WILDCARD:
                query[key] = value
        if WILDCARD not in self.filter:
            query["filter"] = "".join(sorted(self.filter))
        if self.search and self.search != WILDCARD:
            query["search"] = self.search
        return query


class FilterOptions(BaseModel):
    """Values offered by the room, tag and type filters."""

    rooms: list[Room] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    types: list[SessionType] = Field(default_factory=list)
