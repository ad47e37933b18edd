"""Live room status: which session is on in each room, and whether it is full.

RoomStatusTracker polls the attendance feed on its own asyncio task. Each
tick computes a complete new status map and swaps it in; a failed tick keeps
the previous map untouched. The tracker only reads the normalized data.
"""

import asyncio
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from enum import Enum

from src.agenda.errors import FeedFetchError
from src.agenda.logging import get_logger
from src.agenda.models import Room, RoomStatus, ScheduleElement, Session
from src.agenda.transform import TransformResult

logger = get_logger(__name__)


class TrackerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


def is_active(start: datetime, end: datetime, now: datetime) -> bool:
    return start <= now <= end


def current_sessions(sessions: Iterable[Session], now: datetime) -> list[Session]:
    """Sessions whose [start, end] contains `now`, ordered by start then id."""
    active = [s for s in sessions if is_active(s.start, s.end, now)]
    return sorted(active, key=lambda s: (s.start, s.id))


def full_rooms(
    elements: Iterable[ScheduleElement],
    rooms_by_id: Mapping[str, Room],
    attendance: Mapping[str, float],
    now: datetime,
) -> dict[str, bool]:
    """Full flag for every room with an active element.

    Rooms with nothing on are left out. A room without a known capacity is
    never full. Each element is judged on its own session's attendance.
    """
    result: dict[str, bool] = {}
    for element in elements:
        if not is_active(element.start, element.end, now):
            continue
        room = rooms_by_id.get(element.room)
        capacity = room.capacity if room is not None else None
        if capacity is None:
            result.setdefault(element.room, False)
            continue
        count = attendance.get(element.session, 0)
        result[element.room] = result.get(element.room, False) or count > capacity
    return result


def build_room_statuses(
    rooms_by_id: Mapping[str, Room],
    full: Mapping[str, bool],
    current: list[Session],
) -> dict[str, RoomStatus]:
    statuses = {}
    for room_id in rooms_by_id:
        session = next((s for s in current if s.room.id == room_id), None)
        statuses[room_id] = RoomStatus(
            is_full=full.get(room_id, False),
            current_session=session.id if session is not None else None,
        )
    return statuses


class RoomStatusTracker:
    """Polls attendance and keeps the latest RoomStatus per room.

    Args:
        data: Returns the currently loaded snapshot, or None before a load.
        fetch_attendance: Blocking call returning attendance per session id;
            raises FeedFetchError on failure.
        clock: Returns the current corrected time as an aware datetime.
        interval_seconds: Pause between the end of one tick and the next.
    """

    def __init__(
        self,
        data: Callable[[], TransformResult | None],
        fetch_attendance: Callable[[], Mapping[str, float]],
        clock: Callable[[], datetime],
        interval_seconds: float = 30.0,
    ) -> None:
        self._data = data
        self._fetch_attendance = fetch_attendance
        self._clock = clock
        self.interval_seconds = interval_seconds
        self._statuses: dict[str, RoomStatus] = {}
        self._current: list[Session] = []
        self._task: asyncio.Task | None = None
        self._in_flight = False

    @property
    def state(self) -> TrackerState:
        if self._task is not None and not self._task.done():
            return TrackerState.POLLING
        return TrackerState.IDLE

    @property
    def statuses(self) -> dict[str, RoomStatus]:
        return dict(self._statuses)

    @property
    def current_sessions(self) -> list[Session]:
        return list(self._current)

    def status_for(self, room_id: str) -> RoomStatus:
        return self._statuses.get(room_id, RoomStatus())

    def reset(self) -> None:
        """Forget all statuses, e.g. after the snapshot was replaced."""
        self._statuses = {}
        self._current = []

    async def tick(self) -> bool:
        """Run one poll. Returns True if a new status map was committed.

        Skipped (returns False) when another tick is still running.
        """
        if self._in_flight:
            logger.debug("tick_skipped", reason="in_flight")
            return False

        self._in_flight = True
        try:
            data = self._data()
            if data is None:
                logger.debug("tick_skipped", reason="not_loaded")
                return False

            now = self._clock()
            current = current_sessions(data.sessions_by_id.values(), now)
            try:
                attendance = await asyncio.to_thread(self._fetch_attendance)
            except FeedFetchError as e:
                logger.warning("attendance_poll_failed", error=str(e))
                return False

            # the snapshot may have been replaced while we were fetching
            if self._data() is not data:
                logger.debug("tick_discarded", reason="snapshot_replaced")
                return False

            full = full_rooms(data.elements, data.rooms_by_id, attendance, now)
            self._current = current
            self._statuses = build_room_statuses(data.rooms_by_id, full, current)
            logger.debug(
                "room_status_updated",
                current_sessions=len(current),
                full_rooms=sorted(r for r, f in full.items() if f),
            )
            return True
        finally:
            self._in_flight = False

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception as e:
                logger.error("tick_failed", error=str(e), type=type(e).__name__)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Arm the polling loop on the running event loop. No-op if already polling."""
        if self.state is TrackerState.POLLING:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("tracker_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the polling loop and wait until it has ended."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("tracker_stopped")
