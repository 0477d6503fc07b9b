"""
window.py

Time and thread filtering of events, and resolution of the time window
from either warm-up/cool-down trimming or an access log entry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from collapse_jfr.errors import ConfigurationError
from collapse_jfr.events import classify, event_millis

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Common Log Format months, e.g. 17/Sep/2020:13:03:23 +0200
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def instant_from_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


@dataclass(frozen=True)
class ThreadFilter:
    name: str

    @classmethod
    def from_name(cls, name: str) -> "ThreadFilter":
        return cls(name.strip().lower())

    def matches(self, thread_name) -> bool:
        return thread_name is not None and thread_name.lower() == self.name


def should_skip(event, window: TimeWindow = None, thread_filter: ThreadFilter = None) -> bool:
    if window is not None and not window.contains(instant_from_millis(event_millis(event))):
        return True
    if thread_filter is not None and not thread_filter.matches(event.thread()):
        return True
    return False


def parse_access_log_date(value: str) -> datetime:
    """Parse a Common Log Format date, independently of the current locale."""
    try:
        day, month, rest = value.strip().split("/", 2)
        month_number = _MONTHS.index(month.title()) + 1
        return datetime.strptime(f"{day}/{month_number:02d}/{rest}", "%d/%m/%Y:%H:%M:%S %z")
    except ValueError as exc:
        raise ConfigurationError(
            f"cannot parse access log date {value!r}, expected e.g. '17/Sep/2020:13:03:23 +0200'"
        ) from exc


def access_log_window(date: str, duration_ms) -> TimeWindow:
    """Window of a request logged at `date` that took `duration_ms`.

    Padded by one second on both sides.
    """
    try:
        duration = int(duration_ms)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"duration must be an integer in ms, got {duration_ms!r}") from exc
    end = parse_access_log_date(date) + timedelta(seconds=1)
    start = end - timedelta(seconds=1) - timedelta(milliseconds=duration)
    return TimeWindow(start, end)


def _file_extremes(recording):
    lowest = highest = None
    for batch in recording.batches():
        if classify(batch.kind) is None:
            continue
        for event in batch.events():
            millis = event_millis(event)
            if lowest is None or millis < lowest:
                lowest = millis
            if highest is None or millis > highest:
                highest = millis
    return lowest, highest


def scan_extremes(paths, opener):
    """Return (min_ms, max_ms) over all supported events of all recordings.

    A recording that cannot be read to the end is logged and left out.
    """
    lowest = highest = None
    for path in paths:
        try:
            file_lowest, file_highest = _file_extremes(opener(path))
        except Exception:
            logger.exception("Skipping %s while computing the time range", path)
            continue
        if file_lowest is None:
            continue
        if lowest is None or file_lowest < lowest:
            lowest = file_lowest
        if highest is None or file_highest > highest:
            highest = file_highest
    if lowest is None:
        return None
    return lowest, highest


def warm_up_window(paths, opener, warm_up: int = 0, cool_down: int = 0):
    extremes = scan_extremes(paths, opener)
    if extremes is None:
        logger.warning("No events found, warm-up and cool-down are ignored")
        return None
    lowest, highest = extremes
    return TimeWindow(
        instant_from_millis(lowest) + timedelta(seconds=warm_up),
        instant_from_millis(highest) - timedelta(seconds=cool_down),
    )


def resolve_window(paths, opener, access_log=None, warm_up: int = 0, cool_down: int = 0):
    """Pick the window policy from the configured inputs.

    `access_log` is a `(date, duration_ms)` pair and wins over warm-up and
    cool-down. Returns None when nothing restricts time.
    """
    if access_log is not None:
        return access_log_window(*access_log)
    if warm_up or cool_down:
        return warm_up_window(paths, opener, warm_up, cool_down)
    return None
