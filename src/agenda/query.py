"""AgendaQuery: the one read/query surface the presentation layer talks to.

State changes only through explicit triggers, each followed by a synchronous
recompute of the visible per-day schedule:
  - load() / set_timezone_offset(): snapshot replaced
  - set_filter() / set_locale(): query changed
  - toggle_favorite(): favorites changed
Room statuses are refreshed separately by the tracker's own timer.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.agenda.attendance import AttendanceClient
from src.agenda.config import AgendaConfig
from src.agenda.errors import NotFoundError
from src.agenda.favorites import FavoriteSet, JsonFileStorage, MemoryStorage
from src.agenda.filters import matches
from src.agenda.logging import get_logger
from src.agenda.models import (
    DaySchedule,
    FilterOptions,
    FilterSpec,
    IntegrityViolation,
    Locale,
    Room,
    RoomStatus,
    Session,
)
from src.agenda.schedule import build_days_schedule
from src.agenda.timeutils import normalize_to_zone
from src.agenda.tracker import RoomStatusTracker
from src.agenda.transform import TransformResult, build_filter_options, transform

logger = get_logger(__name__)

SnapshotLoader = Callable[[], Awaitable[Any]]


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def file_snapshot_loader(path: str | Path) -> SnapshotLoader:
    """Loader reading a JSON snapshot file off the event loop."""

    async def load() -> Any:
        return await asyncio.to_thread(_read_json, Path(path))

    return load


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgendaQuery:
    def __init__(
        self,
        loader: SnapshotLoader | None = None,
        favorites: FavoriteSet | None = None,
        attendance: AttendanceClient | None = None,
        clock: Callable[[], datetime] = _utc_now,
        timezone_offset_minutes: int = 480,
        locale: Locale | str = Locale.ZH_TW,
        poll_interval_seconds: float = 30.0,
    ) -> None:
        self._loader = loader
        self._favorites = favorites or FavoriteSet(MemoryStorage())
        self._clock = clock
        self._offset = timezone_offset_minutes
        self._locale = Locale(locale)
        self._filter = FilterSpec()

        self._raw: Any = None
        self._data: TransformResult | None = None
        self._loaded_offset: int | None = None
        self._filter_options = FilterOptions()
        self._generation = 0
        self._loaded_generation = 0

        self._days: list[DaySchedule] = []
        self._current_day_index = 0

        self.tracker: RoomStatusTracker | None = None
        if attendance is not None:
            self.tracker = RoomStatusTracker(
                data=lambda: self._data,
                fetch_attendance=attendance.fetch_attendance,
                clock=self.corrected_now,
                interval_seconds=poll_interval_seconds,
            )

    @classmethod
    def from_config(cls, config: AgendaConfig) -> "AgendaQuery":
        return cls(
            loader=file_snapshot_loader(config.snapshot_path),
            favorites=FavoriteSet(JsonFileStorage(config.favorites_path)),
            attendance=AttendanceClient.from_config(config),
            timezone_offset_minutes=config.timezone_offset_minutes,
            locale=config.default_locale,
            poll_interval_seconds=config.poll_interval_seconds,
        )

    async def __aenter__(self) -> "AgendaQuery":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop_tracking()

    # Loading

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    @property
    def timezone_offset(self) -> int:
        return self._offset

    @property
    def integrity_violations(self) -> list[IntegrityViolation]:
        return list(self._data.violations) if self._data else []

    async def load(self, snapshot: Any = None, offset_minutes: int | None = None) -> None:
        """Load a snapshot and rebuild every view.

        With no snapshot, the configured loader is awaited (or the last raw
        snapshot is reused). Loading what is already loaded is a no-op unless
        another load is still running. When loads overlap, the one started
        last wins.

        Raises:
            DataIntegrityError: If the snapshot is not a mapping.
            ValueError: If there is nothing to load from.
        """
        offset = self._offset if offset_minutes is None else offset_minutes
        if (
            self._data is not None
            and self._generation == self._loaded_generation
            and offset == self._loaded_offset
            and (snapshot is None or snapshot == self._raw)
        ):
            logger.debug("load_skipped", reason="already_loaded")
            return

        self._generation += 1
        generation = self._generation
        self._offset = offset

        if snapshot is None:
            if self._loader is not None:
                snapshot = await self._loader()
            else:
                snapshot = self._raw
        if snapshot is None:
            raise ValueError("No snapshot given and no snapshot loader configured")

        if generation != self._generation:
            logger.info("load_superseded", generation=generation, latest=self._generation)
            return

        result = transform(snapshot, offset)
        if result.violations:
            logger.warning(
                "snapshot_integrity_violations",
                count=len(result.violations),
                violations=[str(v) for v in result.violations[:20]],
            )

        self._raw = snapshot
        self._data = result
        self._loaded_offset = offset
        self._loaded_generation = generation
        self._filter_options = build_filter_options(result)
        if self.tracker is not None:
            self.tracker.reset()
        self._recompute()
        logger.info(
            "snapshot_loaded",
            sessions=len(result.sessions_by_id),
            days=len(self._days),
            offset_minutes=offset,
        )

    async def set_timezone_offset(self, offset_minutes: int) -> None:
        """Switch the conference offset; views are invalidated and rebuilt."""
        if offset_minutes == self._offset and self.is_loaded:
            return
        self._offset = offset_minutes
        if self._raw is None and self._loader is None:
            return
        self._data = None
        self._recompute()
        await self.load(offset_minutes=offset_minutes)

    # Query state

    @property
    def locale(self) -> Locale:
        return self._locale

    def set_locale(self, locale: Locale | str) -> None:
        self._locale = Locale(locale)
        self._recompute()

    def get_filter(self) -> FilterSpec:
        return self._filter

    def set_filter(self, spec: FilterSpec | Mapping[str, Any]) -> None:
        if not isinstance(spec, FilterSpec):
            spec = FilterSpec.model_validate(spec)
        self._filter = spec
        self._recompute()

    @property
    def filter_options(self) -> FilterOptions:
        return self._filter_options

    @property
    def favorite_ids(self) -> frozenset[str]:
        return self._favorites.ids

    def toggle_favorite(self, session_id: str) -> bool:
        """Flip a session's favorite flag. Returns True if it is now a favorite.

        Raises:
            NotFoundError: If a snapshot is loaded and has no such session.
        """
        if self._data is not None and session_id not in self._data.sessions_by_id:
            raise NotFoundError("session", session_id)
        added = self._favorites.toggle(session_id)
        self._recompute()
        return added

    # Views

    def _recompute(self) -> None:
        if self._data is None:
            self._days = []
            self._current_day_index = 0
            return

        sessions = self._data.sessions_by_id
        favorite_ids = self._favorites.ids
        spec = self._filter
        locale = self._locale
        self._days = build_days_schedule(
            self._data.elements,
            keep=lambda e: matches(sessions[e.session], favorite_ids, spec, locale),
        )

        if self._current_day_index >= len(self._days):
            self._current_day_index = 0
        if self._days and not self._days[self._current_day_index].list.items:
            first = next(
                (i for i, day in enumerate(self._days) if day.list.items), None
            )
            if first is not None:
                self._current_day_index = first

    def get_days_schedule(self) -> list[DaySchedule]:
        return list(self._days)

    @property
    def current_day_index(self) -> int:
        return self._current_day_index

    def select_day(self, index: int) -> None:
        if not 0 <= index < len(self._days):
            raise IndexError(f"day index {index} out of range (0..{len(self._days) - 1})")
        self._current_day_index = index

    def get_session_by_id(self, session_id: str) -> Session:
        """Session with its `favorite` flag filled in.

        Raises:
            NotFoundError: If the id is not in the loaded snapshot.
        """
        session = self._data.sessions_by_id.get(session_id) if self._data else None
        if session is None:
            raise NotFoundError("session", session_id)
        return session.model_copy(update={"favorite": session_id in self._favorites})

    def get_room_by_id(self, room_id: str) -> Room:
        room = self._data.rooms_by_id.get(room_id) if self._data else None
        if room is None:
            raise NotFoundError("room", room_id)
        return room

    # Room status

    def corrected_now(self) -> datetime:
        return normalize_to_zone(self._clock(), self._offset)

    def get_room_status(self, room_id: str) -> RoomStatus:
        """Latest status for a room; rooms the tracker has not reported are not full.

        Raises:
            NotFoundError: If the room is not in the loaded snapshot.
        """
        self.get_room_by_id(room_id)
        if self.tracker is None:
            return RoomStatus()
        return self.tracker.status_for(room_id)

    async def refresh_room_status(self) -> bool:
        """Run a single tracker poll now. Returns True if statuses were updated."""
        if self.tracker is None:
            return False
        return await self.tracker.tick()

    def start_tracking(self) -> None:
        if self.tracker is not None:
            self.tracker.start()

    async def stop_tracking(self) -> None:
        if self.tracker is not None:
            await self.tracker.stop()
