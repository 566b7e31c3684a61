"""Weekday codes used by the backend's "jour" table.

Monday is 1 and Sunday is 7, the ISO weekday numbering.
"""

from datetime import date

WEEKDAY_LABELS: dict[int, str] = {
    1: "Lundi",
    2: "Mardi",
    3: "Mercredi",
    4: "Jeudi",
    5: "Vendredi",
    6: "Samedi",
    7: "Dimanche",
}


def derive_day(day: date) -> int:
    """Map a calendar date (or datetime) to its day id, 1 (Monday) to 7 (Sunday)."""
    return day.isoweekday()
