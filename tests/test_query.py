import asyncio
import json
from datetime import datetime, timezone

import pytest
from conftest import FakeAttendance, make_session, make_snapshot

from src.agenda.errors import DataIntegrityError, FeedFetchError, NotFoundError
from src.agenda.favorites import FavoriteSet, MemoryStorage
from src.agenda.models import FilterSpec, RoomStatus
from src.agenda.query import AgendaQuery, file_snapshot_loader

MORNING = datetime(2024, 8, 3, 1, 15, tzinfo=timezone.utc)


def loaded(snapshot, **kwargs) -> AgendaQuery:
    agenda = AgendaQuery(**kwargs)
    asyncio.run(agenda.load(snapshot))
    return agenda


def visible_ids(agenda: AgendaQuery) -> list[list[str]]:
    return [[e.session for e in day.list.items] for day in agenda.get_days_schedule()]


class TestLoad:
    def test_builds_days(self, snapshot):
        agenda = loaded(snapshot)
        assert agenda.is_loaded
        days = agenda.get_days_schedule()
        assert [d.day for d in days] == [(2024, 8, 3), (2024, 8, 4)]
        assert visible_ids(agenda) == [["K00001", "S00001", "S00002"], ["S00003"]]

    def test_second_load_is_a_no_op(self, snapshot):
        calls = []

        async def loader():
            calls.append(1)
            return snapshot

        agenda = AgendaQuery(loader=loader)
        asyncio.run(agenda.load())
        days = agenda.get_days_schedule()
        asyncio.run(agenda.load())
        asyncio.run(agenda.load(snapshot))
        assert len(calls) == 1
        assert agenda.get_days_schedule() == days

    def test_last_load_wins(self, snapshot):
        other = make_snapshot([make_session("X00001")])
        calls = []

        async def loader():
            call = len(calls)
            calls.append(call)
            # the first request is slower than the second
            await asyncio.sleep(0.05 if call == 0 else 0)
            return snapshot if call == 0 else other

        agenda = AgendaQuery(loader=loader)

        async def scenario():
            await asyncio.gather(agenda.load(), agenda.load(offset_minutes=0))

        asyncio.run(scenario())
        assert visible_ids(agenda) == [["X00001"]]
        assert agenda.timezone_offset == 0

    def test_reload_while_another_load_is_running(self, snapshot):
        delays = [0, 0.05, 0]

        async def loader():
            await asyncio.sleep(delays.pop(0))
            return snapshot

        agenda = AgendaQuery(loader=loader)

        async def scenario():
            await agenda.load()
            slow = asyncio.create_task(agenda.load(offset_minutes=0))
            await asyncio.sleep(0)
            await agenda.load(offset_minutes=480)
            await slow

        asyncio.run(scenario())
        assert agenda.timezone_offset == 480
        assert agenda.get_session_by_id("S00001").start.hour == 9

    def test_file_loader(self, snapshot, tmp_path):
        path = tmp_path / "session.json"
        path.write_text(json.dumps(snapshot), encoding="utf-8")
        agenda = AgendaQuery(loader=file_snapshot_loader(path))
        asyncio.run(agenda.load())
        assert agenda.get_session_by_id("S00001").en.title == "Intro to Python"

    def test_nothing_to_load(self):
        with pytest.raises(ValueError):
            asyncio.run(AgendaQuery().load())

    def test_bad_rows_are_reported_and_rest_is_usable(self, snapshot):
        snapshot["sessions"].append(make_session("BAD001", room="NOPE"))
        agenda = loaded(snapshot)
        assert [v.record_id for v in agenda.integrity_violations] == ["BAD001"]
        assert agenda.get_session_by_id("S00001")

    def test_unusable_snapshot_raises(self):
        with pytest.raises(DataIntegrityError):
            asyncio.run(AgendaQuery().load(["nope"]))

    def test_timezone_change_reloads(self, snapshot):
        agenda = loaded(snapshot)
        assert agenda.get_session_by_id("S00001").start.hour == 9
        asyncio.run(agenda.set_timezone_offset(0))
        assert agenda.get_session_by_id("S00001").start.hour == 1
        assert agenda.timezone_offset == 0


class TestLookups:
    def test_session_not_found(self, snapshot):
        agenda = loaded(snapshot)
        with pytest.raises(NotFoundError) as exc_info:
            agenda.get_session_by_id("ZZZZZZ")
        assert exc_info.value.requested_id == "ZZZZZZ"
        assert exc_info.value.kind == "session"

    def test_room_not_found(self, snapshot):
        agenda = loaded(snapshot)
        assert agenda.get_room_by_id("TR411").capacity == 38
        with pytest.raises(NotFoundError) as exc_info:
            agenda.get_room_by_id("TR999")
        assert exc_info.value.requested_id == "TR999"

    def test_lookup_before_load(self):
        with pytest.raises(NotFoundError):
            AgendaQuery().get_session_by_id("S00001")


class TestFilteringAndFavorites:
    def test_set_filter_recomputes(self, snapshot):
        agenda = loaded(snapshot)
        agenda.set_filter(FilterSpec(room={"TR411"}))
        assert visible_ids(agenda) == [["S00001", "S00002"], []]
        assert agenda.get_filter().room == frozenset({"TR411"})

    def test_set_filter_from_mapping(self, snapshot):
        agenda = loaded(snapshot)
        agenda.set_filter({"type": "keynote"})
        assert visible_ids(agenda) == [["K00001"], []]

    def test_favorite_flag_and_collection(self, snapshot):
        storage = MemoryStorage()
        agenda = loaded(snapshot, favorites=FavoriteSet(storage))
        agenda.set_filter(FilterSpec(collection="favorites"))
        assert visible_ids(agenda) == [[], []]

        assert agenda.toggle_favorite("S00002") is True
        assert agenda.get_session_by_id("S00002").favorite is True
        assert agenda.get_session_by_id("S00001").favorite is False
        assert visible_ids(agenda) == [["S00002"], []]

        assert agenda.toggle_favorite("S00002") is False
        assert agenda.favorite_ids == frozenset()
        assert visible_ids(agenda) == [[], []]

    def test_toggle_unknown_session(self, snapshot):
        agenda = loaded(snapshot)
        with pytest.raises(NotFoundError):
            agenda.toggle_favorite("ZZZZZZ")

    def test_locale_changes_search_target(self, snapshot):
        agenda = loaded(snapshot, locale="en")
        agenda.set_filter(FilterSpec(search="議程"))
        assert visible_ids(agenda) == [[], []]
        agenda.set_locale("zh-TW")
        assert visible_ids(agenda) == [["K00001", "S00001", "S00002"], ["S00003"]]

    def test_filter_options(self, snapshot):
        agenda = loaded(snapshot)
        assert [r.id for r in agenda.filter_options.rooms] == ["AU101", "RB105", "TR411"]


class TestDaySelection:
    def test_jumps_to_first_day_with_sessions(self, snapshot):
        agenda = loaded(snapshot)
        assert agenda.current_day_index == 0
        agenda.set_filter(FilterSpec(room={"AU101"}))
        assert agenda.current_day_index == 1

    def test_keeps_selection_while_it_has_sessions(self, snapshot):
        agenda = loaded(snapshot)
        agenda.select_day(1)
        agenda.set_filter(FilterSpec(tags="Beginner"))
        assert agenda.current_day_index == 1

    def test_select_out_of_range(self, snapshot):
        agenda = loaded(snapshot)
        with pytest.raises(IndexError):
            agenda.select_day(5)


class TestRoomStatus:
    def make(self, snapshot, counts):
        attendance = FakeAttendance(counts)
        agenda = loaded(snapshot, attendance=attendance, clock=lambda: MORNING)
        return agenda, attendance

    def test_over_capacity_is_full(self, snapshot):
        agenda, _ = self.make(snapshot, {"S00001": 40})
        assert asyncio.run(agenda.refresh_room_status()) is True
        status = agenda.get_room_status("TR411")
        assert status == RoomStatus(is_full=True, current_session="S00001")

    def test_under_capacity_is_not_full(self, snapshot):
        agenda, _ = self.make(snapshot, {"S00001": 30})
        asyncio.run(agenda.refresh_room_status())
        assert agenda.get_room_status("TR411").is_full is False

    def test_failed_poll_keeps_previous_result(self, snapshot):
        agenda, attendance = self.make(snapshot, {"S00001": 40})
        asyncio.run(agenda.refresh_room_status())
        before = {r: agenda.get_room_status(r) for r in ("TR411", "RB105", "AU101")}

        attendance.error = FeedFetchError("connection reset")
        assert asyncio.run(agenda.refresh_room_status()) is False
        after = {r: agenda.get_room_status(r) for r in ("TR411", "RB105", "AU101")}
        assert after == before

    def test_defaults_before_first_poll(self, snapshot):
        agenda, _ = self.make(snapshot, {})
        assert agenda.get_room_status("RB105") == RoomStatus()

    def test_unknown_room(self, snapshot):
        agenda, _ = self.make(snapshot, {})
        with pytest.raises(NotFoundError):
            agenda.get_room_status("TR999")

    def test_without_feed(self, snapshot):
        agenda = loaded(snapshot)
        assert asyncio.run(agenda.refresh_room_status()) is False
        assert agenda.get_room_status("TR411") == RoomStatus()

    def test_corrected_now_uses_offset(self, snapshot):
        agenda, _ = self.make(snapshot, {})
        assert agenda.corrected_now().hour == 9

    def test_teardown_stops_polling(self, snapshot):
        agenda, attendance = self.make(snapshot, {"S00001": 40})

        async def scenario():
            async with agenda:
                agenda.start_tracking()
                await asyncio.sleep(0.05)
            return agenda.tracker.state

        state = asyncio.run(scenario())
        assert state.value == "idle"
        assert attendance.calls >= 1
