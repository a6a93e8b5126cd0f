from collections import namedtuple
from datetime import date, datetime, time

from services.errors import ValidationError

# One requested interval on one day. Orders chronologically as a tuple.
Window = namedtuple("Window", ["play_date", "start_time", "end_time"])


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid play_date {value!r}. Use YYYY-MM-DD")


def _parse_time(value) -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0)
    text = str(value or "").strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid time {value!r}. Use HH:MM or HH:MM:SS")


def parse_window(raw) -> Window:
    if isinstance(raw, Window):
        play_date, start, end = raw
    elif isinstance(raw, dict):
        play_date = raw.get("play_date")
        start = raw.get("start_time")
        end = raw.get("end_time")
        if not play_date or not start or not end:
            raise ValidationError("Each window needs play_date, start_time and end_time")
    else:
        raise ValidationError("Each window must be an object")

    window = Window(_parse_date(play_date), _parse_time(start), _parse_time(end))
    if window.start_time >= window.end_time:
        raise ValidationError(
            f"end_time must be after start_time ({window.start_time:%H:%M}-{window.end_time:%H:%M})"
        )
    return window


def normalize_windows(raw_windows) -> list:
    """Parse, dedupe and sort requested windows chronologically."""
    if not raw_windows or not isinstance(raw_windows, (list, tuple)):
        raise ValidationError("At least one slot window is required")
    return sorted({parse_window(w) for w in raw_windows})


def window_start(window: Window) -> datetime:
    return datetime.combine(window.play_date, window.start_time)


def window_to_dict(window) -> dict:
    return {
        "play_date": window.play_date.isoformat(),
        "start_time": window.start_time.strftime("%H:%M"),
        "end_time": window.end_time.strftime("%H:%M"),
    }
