"""Check whether a timetable slot is free and list its candidate rooms.

Standalone CLI script that runs one availability check against the backend
configured in .env (TIMETABLE_API_BASE_URL) and prints the result as JSON.

Run with: python scripts/check_slot.py --school 3 --year 226 --class 12 --day 1 --start 08:00 --end 09:00
Session:  python scripts/check_slot.py ... --date 2024-01-15 --contract room_list
Edit:     python scripts/check_slot.py ... --edit-room 42

Exit codes:
  0 = slot available (JSON on stdout)
  1 = slot unavailable or error (message on stderr)
"""

import argparse
import asyncio
import json
import os
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.api import TimetableApi  # noqa: E402
from src.timetable.availability import (  # noqa: E402
    AvailabilityChecker,
    AvailabilityContract,
)
from src.timetable.config import get_config  # noqa: E402
from src.timetable.logging import bind_session_context, setup_logging  # noqa: E402
from src.timetable.models import Room, ScheduleSlotQuery, SessionContext  # noqa: E402


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check a timetable slot against the school API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--school", type=int, required=True, help="School id.")
    parser.add_argument("--year", type=int, required=True, help="Academic year id.")
    parser.add_argument("--class", dest="class_id", type=int, required=True, help="Class id.")
    parser.add_argument("--day", type=int, required=True, help="Day id, 1 (Monday) to 7.")
    parser.add_argument("--start", required=True, help="Start time, HH:MM.")
    parser.add_argument("--end", required=True, help="End time, HH:MM.")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Session date, YYYY-MM-DD (recorded sessions only).",
    )
    parser.add_argument(
        "--contract",
        choices=[c.value for c in AvailabilityContract],
        default=None,
        help="Backend contract (default: TIMETABLE_AVAILABILITY_CONTRACT).",
    )
    parser.add_argument(
        "--edit-room",
        type=int,
        default=None,
        help="Check as an existing booking in this room (edit mode).",
    )
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    context = SessionContext(school_id=args.school, academic_year_id=args.year)
    bind_session_context(context)

    api = TimetableApi(config, context)
    checker = AvailabilityChecker(api, args.contract or config.availability_contract)
    query = ScheduleSlotQuery(
        class_id=args.class_id,
        day_id=args.day,
        slot_date=args.date,
        start_time=args.start,
        end_time=args.end,
        academic_year_id=args.year,
    )

    _log(f"check_slot: {config.api_base_url} ({checker.contract.value})")
    try:
        if args.edit_room is not None:
            result = await checker.check_for_edit(query, Room(id=args.edit_room))
        else:
            result = await checker.check(query)
    finally:
        api.close()

    print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    if result.error:
        _log(f"  {result.error}")
    return 0 if result.available else 1


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
