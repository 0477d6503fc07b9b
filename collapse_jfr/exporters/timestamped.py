"""
timestamped.py

Streams every sample, unaggregated, to one gzip file per output:

    2020-09-17T13:03:23.512;thread;root;child;leaf 1
"""

import gzip
from contextlib import ExitStack
from pathlib import Path

from collapse_jfr.events import Output
from collapse_jfr.window import instant_from_millis

SUFFIX = ".timestamps.collapsed.gz"


def file_name(output: Output) -> str:
    return f"{output.value}{SUFFIX}"


def format_timestamp(millis: int, tz=None) -> str:
    """Render `yyyy-MM-ddTHH:mm:ss.SSS` in `tz`, local time when None."""
    moment = instant_from_millis(millis).astimezone(tz)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{millis % 1000:03d}"


class TimestampedSinks:
    """Context manager owning the five gzip sinks of a run.

    All sinks are created on enter, even if nothing gets written to them,
    and closed on exit whatever happened.
    """

    def __init__(self, output_dir, tz=None):
        self.output_dir = Path(output_dir)
        self.tz = tz
        self.paths = []
        self._sinks = {}
        self._stack = None

    def __enter__(self):
        with ExitStack() as stack:
            for output in Output:
                path = self.output_dir / file_name(output)
                self._sinks[output] = stack.enter_context(gzip.open(path, "wt", encoding="utf-8"))
                self.paths.append(path)
            self._stack = stack.pop_all()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._sinks = {}
        return self._stack.__exit__(exc_type, exc, tb)

    def write(self, sample) -> None:
        sink = self._sinks[sample.output]
        sink.write(f"{format_timestamp(sample.timestamp_ms, self.tz)};{sample.stack} {sample.value}\n")
