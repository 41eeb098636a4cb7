from datetime import date, datetime, time, timedelta


def next_weekday(weekday: int, after: date | None = None) -> date:
    """Next date strictly after ``after`` (default: today) with ``date.weekday() == weekday``."""
    start = (after or date.today()) + timedelta(days=1)
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def at(day: date, hhmm: str) -> datetime:
    hours, minutes = hhmm.split(':')
    return datetime.combine(day, time(int(hours), int(minutes)))
