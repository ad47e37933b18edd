"""Print one day of the conference agenda as JSON or a table.

Loads an exported session snapshot, applies filters given on the command
line and prints the selected day. Optionally polls the attendance feed once
and prints the live room status.

Run with: python scripts/show_agenda.py --snapshot data/session.json
Table:    python scripts/show_agenda.py --table
Filters:  python scripts/show_agenda.py --room TR411 --room RB105 --search python
Zone:     python scripts/show_agenda.py --timezone Asia/Taipei --day 1
Status:   python scripts/show_agenda.py --room-status

Exit codes:
  0 = success (JSON or table on stdout)
  1 = error (message on stderr)
"""

import argparse
import asyncio
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.agenda.config import get_config  # noqa: E402
from src.agenda.logging import get_logger, setup_logging  # noqa: E402
from src.agenda.models import WILDCARD, DaySchedule, FilterSpec  # noqa: E402
from src.agenda.query import AgendaQuery  # noqa: E402
from src.agenda.timeutils import (  # noqa: E402
    format_date_string,
    format_time_string,
    offset_for_zone,
)

log = get_logger("show_agenda")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print the conference agenda for one day as JSON or table.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--snapshot", type=str, default=None, help="Snapshot JSON path.")

    zone_group = parser.add_mutually_exclusive_group()
    zone_group.add_argument(
        "--offset", type=int, default=None, help="Conference offset in minutes east of UTC."
    )
    zone_group.add_argument(
        "--timezone", type=str, default=None, help="IANA zone name, e.g. Asia/Taipei."
    )

    parser.add_argument("--locale", type=str, default=None, help="en or zh-TW.")
    parser.add_argument(
        "--day",
        type=int,
        default=None,
        help="Day index to print (default: first day with visible sessions).",
    )
    parser.add_argument("--room", action="append", default=None, help="Room id (repeatable).")
    parser.add_argument("--tag", type=str, default=WILDCARD, help="Tag id.")
    parser.add_argument("--type", type=str, default=WILDCARD, help="Session type id.")
    parser.add_argument("--search", type=str, default="", help="Free-text search.")
    parser.add_argument(
        "--favorites", action="store_true", help="Only show favorite sessions."
    )
    parser.add_argument(
        "--table", action="store_true", help="Human-readable table instead of JSON."
    )
    parser.add_argument(
        "--room-status",
        action="store_true",
        help="Poll the attendance feed once and print room status.",
    )
    return parser.parse_args()


def _format_table(agenda: AgendaQuery, day: DaySchedule) -> str:
    """Columns: Time | Room | Session | Title | Speakers"""
    if not day.list.items:
        return "(no sessions match)"

    headers = ["Time", "Room", "Session", "Title", "Speakers"]
    rows = []
    for element in day.list.items:
        session = agenda.get_session_by_id(element.session)
        speakers = ", ".join(s.text(agenda.locale).name for s in session.speakers)
        star = "*" if session.favorite else ""
        rows.append(
            [
                f"{format_time_string(element.start, ':')}-"
                f"{format_time_string(element.end, ':')}",
                element.room,
                session.id + star,
                session.text(agenda.locale).title,
                speakers or "-",
            ]
        )

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [
        " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows
    ]
    return "\n".join([header_line, separator, *row_lines])


def _day_to_json(agenda: AgendaQuery, day: DaySchedule) -> dict:
    year, month, date = day.day
    return {
        "day": f"{year:04d}-{month:02d}-{date:02d}",
        "slot_minutes": day.table.slot_minutes,
        "sessions": [
            {
                **element.model_dump(mode="json"),
                "title": agenda.get_session_by_id(element.session)
                .text(agenda.locale)
                .title,
            }
            for element in day.list.items
        ],
        "conflicts": [c.model_dump(mode="json") for c in day.table.conflicts],
    }


async def main(args: argparse.Namespace) -> None:
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    if args.snapshot:
        config = config.model_copy(update={"snapshot_path": args.snapshot})
    agenda = AgendaQuery.from_config(config)
    if args.locale:
        agenda.set_locale(args.locale)

    offset = args.offset
    if args.timezone:
        offset = offset_for_zone(args.timezone)
    await agenda.load(offset_minutes=offset)

    agenda.set_filter(
        FilterSpec(
            room=frozenset(args.room) if args.room else frozenset({WILDCARD}),
            tags=args.tag,
            type=args.type,
            collection="favorites" if args.favorites else WILDCARD,
            search=args.search,
        )
    )

    days = agenda.get_days_schedule()
    if not days:
        print("(snapshot has no sessions)")
        return
    if args.day is not None:
        agenda.select_day(args.day)
    day = days[agenda.current_day_index]
    log.info(
        "agenda_day_selected",
        index=agenda.current_day_index,
        day=format_date_string(day.list.items[0].start, "-") if day.list.items else None,
        sessions=len(day.list.items),
    )

    if args.table:
        print(_format_table(agenda, day))
    else:
        print(json.dumps(_day_to_json(agenda, day), indent=2, ensure_ascii=False))

    if args.room_status:
        async with agenda:
            updated = await agenda.refresh_room_status()
        if not updated:
            log.warning("room_status_unavailable")
        status = {
            room.id: agenda.get_room_status(room.id).model_dump()
            for room in agenda.filter_options.rooms
        }
        print(json.dumps(status, indent=2))


if __name__ == "__main__":
    args = _parse_args()
    try:
        asyncio.run(main(args))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
