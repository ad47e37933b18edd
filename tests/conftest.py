"""Shared builders for agenda tests.

Snapshots follow the exported session.json layout: nested `en` / `zh` text
blocks and foreign keys as id strings.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.agenda.transform import transform

TAIPEI = timezone(timedelta(hours=8))


def at(hour: int, minute: int = 0, day: int = 3) -> datetime:
    """Conference-local (UTC+8) instant on 2024-08-<day>."""
    return datetime(2024, 8, day, hour, minute, tzinfo=TAIPEI)


def make_session(
    session_id: str,
    room: str = "TR411",
    start: str = "2024-08-03T01:00:00Z",
    end: str = "2024-08-03T01:30:00Z",
    session_type: str = "talk",
    tags: list[str] | None = None,
    speakers: list[str] | None = None,
    title_en: str | None = None,
    title_zh: str | None = None,
    description_en: str = "",
    description_zh: str = "",
) -> dict:
    return {
        "id": session_id,
        "type": session_type,
        "room": room,
        "start": start,
        "end": end,
        "language": "漢語",
        "zh": {
            "title": title_zh if title_zh is not None else f"議程 {session_id}",
            "description": description_zh,
        },
        "en": {
            "title": title_en if title_en is not None else f"Session {session_id}",
            "description": description_en,
        },
        "speakers": speakers or [],
        "tags": tags or [],
        "co_write": None,
        "record": None,
        "uri": f"https://coscup.org/2024/session/{session_id}",
    }


def _named(item_id: str, en: str, zh: str) -> dict:
    return {"id": item_id, "en": {"name": en}, "zh": {"name": zh}}


def make_snapshot(
    sessions: list[dict],
    speakers: list[dict] | None = None,
    rooms: list[dict] | None = None,
    tags: list[dict] | None = None,
    session_types: list[dict] | None = None,
) -> dict:
    return {
        "sessions": sessions,
        "speakers": speakers
        if speakers is not None
        else [
            {
                "id": "SP1",
                "avatar": "https://example.org/sp1.png",
                "en": {"name": "Alice Chen", "bio": "Python core developer"},
                "zh": {"name": "陳愛麗", "bio": "Python 核心開發者"},
            },
            {
                "id": "SP2",
                "avatar": None,
                "en": {"name": "Bob Lin", "bio": "Rust hacker"},
                "zh": {"name": "林鮑伯", "bio": "Rust 駭客"},
            },
        ],
        "rooms": rooms
        if rooms is not None
        else [
            _named("TR411", "TR411", "TR411"),
            _named("RB105", "RB105 Main Hall", "RB105 大講堂"),
            _named("AU101", "Auditorium", "視聽館"),  # not in the capacity table
        ],
        "tags": tags
        if tags is not None
        else [
            _named("Beginner", "Beginner", "入門"),
            _named("Advanced", "Advanced", "進階"),
        ],
        "session_types": session_types
        if session_types is not None
        else [
            _named("talk", "Talk", "演講"),
            _named("keynote", "Keynote", "主題演講"),
        ],
    }


def load_sessions(snapshot: dict, offset: int = 480) -> dict:
    return transform(snapshot, offset).sessions_by_id


class FakeAttendance:
    """Stands in for AttendanceClient; set `error` to make polls fail."""

    def __init__(self, counts: dict[str, float] | None = None) -> None:
        self.counts = dict(counts or {})
        self.error: Exception | None = None
        self.calls = 0

    def fetch_attendance(self) -> dict[str, float]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.counts)


@pytest.fixture
def snapshot() -> dict:
    """Two days, three rooms; TR411 has S00001 at 09:00 and S00002 at 10:00."""
    return make_snapshot(
        [
            make_session(
                "S00002",
                start="2024-08-03T02:00:00Z",
                end="2024-08-03T02:30:00Z",
                tags=["Advanced"],
                speakers=["SP2", "SP1"],
                title_en="Writing async Rust",
            ),
            make_session(
                "S00001",
                start="2024-08-03T01:00:00Z",
                end="2024-08-03T01:30:00Z",
                tags=["Beginner"],
                speakers=["SP1"],
                title_en="Intro to Python",
            ),
            make_session(
                "K00001",
                room="RB105",
                session_type="keynote",
                start="2024-08-03T01:00:00Z",
                end="2024-08-03T02:00:00Z",
                title_en="Opening keynote",
            ),
            make_session(
                "S00003",
                room="AU101",
                start="2024-08-04T02:00:00Z",
                end="2024-08-04T03:00:00Z",
                tags=["Beginner"],
                title_en="Community day",
            ),
        ]
    )
