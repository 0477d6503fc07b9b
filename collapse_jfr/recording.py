"""
recording.py

Reads Java Flight Recorder files and exposes them as ordered batches of
typed events.

Binary parsing is delegated to the JDK `jfr` tool:

    jfr print --json --stack-depth 2048 --events jdk.ExecutionSample,... file.jfr

The JSON document it prints is turned into `Recording` -> `EventBatch` ->
`EventRecord` views. `.jfr.gz` files are decompressed to a temporary file
first, since `jfr` only reads plain recordings.
"""

import gzip
import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from collapse_jfr.errors import FrameFormatError, RecordingOpenError
from collapse_jfr.events import EventKind

logger = logging.getLogger(__name__)

DEFAULT_STACK_DEPTH = 2048

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:?\d{2})?$"
)
_THREAD_FIELDS = ("eventThread", "sampledThread")
_MISSING = object()


def parse_timestamp_ns(value) -> int:
    """Convert a `startTime` value to nanoseconds since the epoch.

    `jfr print --json` renders timestamps as ISO-8601 strings with up to
    nanosecond precision; integers are taken as epoch nanoseconds already.
    """
    if isinstance(value, int):
        return value
    match = _TIMESTAMP_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"unrecognized timestamp {value!r}")
    base, fraction, offset = match.groups()
    if offset is None or offset == "Z":
        offset = "+00:00"
    elif ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"
    moment = datetime.fromisoformat(base + offset)
    seconds = (moment - _EPOCH) // timedelta(seconds=1)
    nanos = int((fraction or "").ljust(9, "0"))
    return seconds * 1_000_000_000 + nanos


class TypeRef:
    """A Java class as referenced by a frame or an event field.

    Names are kept in slash form (`com/foo/Bar`).
    """

    __slots__ = ("full_name", "_package")

    def __init__(self, full_name: str, package=_MISSING):
        self.full_name = full_name.replace(".", "/")
        if isinstance(package, str):
            package = package.replace(".", "/")
        self._package = package

    @classmethod
    def from_value(cls, value: dict) -> "TypeRef":
        package = value.get("package", _MISSING)
        if isinstance(package, dict):
            package = package.get("name") or ""
        elif package is None:
            # unnamed package
            package = ""
        return cls(value.get("name") or "", package)

    @property
    def package_name(self) -> str:
        if self._package is _MISSING or not isinstance(self._package, str):
            raise FrameFormatError(f"type {self.full_name!r} has no resolvable package")
        return self._package

    @property
    def simple_name(self) -> str:
        package = self._package if isinstance(self._package, str) else ""
        if package and self.full_name.startswith(package + "/"):
            return self.full_name[len(package) + 1:]
        return self.full_name.rsplit("/", 1)[-1]

    def __repr__(self):
        return f"TypeRef({self.full_name!r})"


class Method:
    __slots__ = ("type", "name", "descriptor")

    def __init__(self, type_ref, name: str, descriptor: str = None):
        self.type = type_ref
        self.name = name
        self.descriptor = descriptor

    @classmethod
    def from_value(cls, value: dict) -> "Method":
        type_value = value.get("type")
        type_ref = TypeRef.from_value(type_value) if type_value else None
        return cls(type_ref, value.get("name") or "", value.get("descriptor"))

    @property
    def package_name(self) -> str:
        if self.type is None:
            raise FrameFormatError(f"method {self.name!r} has no declaring type")
        return self.type.package_name

    @property
    def type_name(self) -> str:
        return self.type.simple_name if self.type is not None else ""


class Frame:
    __slots__ = ("method", "line_number", "frame_type")

    def __init__(self, method: Method, line_number: int = None, frame_type: str = None):
        self.method = method
        self.line_number = line_number
        self.frame_type = frame_type

    @classmethod
    def from_value(cls, value: dict) -> "Frame":
        return cls(
            Method.from_value(value.get("method") or {}),
            value.get("lineNumber"),
            value.get("type"),
        )


class FieldAccessor:
    """Reads one named field from events of a batch."""

    __slots__ = ("name", "_convert")

    def __init__(self, name: str, convert=None):
        self.name = name
        self._convert = convert

    def __call__(self, event: "EventRecord"):
        value = event.raw(self.name)
        if value is None or self._convert is None:
            return value
        return self._convert(value)


_FIELD_CONVERTERS = {
    "state": str,
    "monitorClass": TypeRef.from_value,
    "objectClass": TypeRef.from_value,
    "allocationSize": int,
}


class EventRecord:
    """Read-only view over one event's values."""

    __slots__ = ("_values",)

    def __init__(self, values: dict):
        self._values = values

    def raw(self, name: str):
        return self._values.get(name)

    def timestamp(self) -> int:
        return parse_timestamp_ns(self._values["startTime"])

    def thread(self):
        for key in _THREAD_FIELDS:
            thread = self._values.get(key)
            if thread:
                return thread.get("javaName") or thread.get("osName")
        return None

    def has_stack_trace(self) -> bool:
        return self._values.get("stackTrace") is not None

    def stack_frames(self) -> list:
        """Frames of the event's stack, leaf first."""
        stack = self._values.get("stackTrace")
        if not stack:
            return []
        return [Frame.from_value(frame) for frame in stack.get("frames") or []]

    def field(self, accessor: FieldAccessor):
        return accessor(self)


class EventBatch:
    """All events of one type found in a recording."""

    def __init__(self, kind: str, values: list):
        self.kind = kind
        self._values = values
        self._fields = set()
        for event_values in values:
            self._fields.update(event_values)

    def __len__(self):
        return len(self._values)

    def find_accessor(self, name: str):
        """Return an accessor for `name`, or None if no event carries it."""
        if name not in self._fields:
            return None
        return FieldAccessor(name, _FIELD_CONVERTERS.get(name))

    def events(self):
        return (EventRecord(values) for values in self._values)


class Recording:
    def __init__(self, batches: list):
        self._batches = batches

    def batches(self) -> list:
        return list(self._batches)

    @classmethod
    def from_document(cls, document: dict) -> "Recording":
        """Build a recording from the document printed by `jfr print --json`."""
        events = document.get("recording", document).get("events") or []
        grouped = {}
        for event in events:
            grouped.setdefault(event["type"], []).append(event.get("values") or {})
        return cls([EventBatch(kind, values) for kind, values in grouped.items()])


@contextmanager
def _decompressed(path: str):
    handle, plain_path = tempfile.mkstemp(suffix=".jfr")
    try:
        with os.fdopen(handle, "wb") as plain, gzip.open(path, "rb") as compressed:
            shutil.copyfileobj(compressed, plain)
        yield plain_path
    finally:
        os.unlink(plain_path)


def _print_json(source, path: str, jfr_command: str, stack_depth: int, event_types) -> dict:
    command = [
        jfr_command, "print", "--json",
        "--stack-depth", str(stack_depth),
        "--events", ",".join(event_types),
        path,
    ]
    logger.debug("Running %s", " ".join(command))
    try:
        completed = subprocess.run(
            command,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
        )
    except FileNotFoundError as exc:
        raise RecordingOpenError(source, f"'{jfr_command}' command not found") from exc
    except subprocess.CalledProcessError as exc:
        reason = (exc.stderr or "").strip() or f"jfr exited with status {exc.returncode}"
        raise RecordingOpenError(source, reason) from exc
    try:
        return json.loads(completed.stdout)
    except json.JSONDecodeError as exc:
        raise RecordingOpenError(source, f"invalid JSON from jfr: {exc}") from exc


def open_recording(path, jfr_command: str = "jfr", stack_depth: int = DEFAULT_STACK_DEPTH,
                   event_types=None) -> Recording:
    """Load the supported event types of a `.jfr` or `.jfr.gz` recording."""
    path = os.fspath(path)
    if event_types is None:
        event_types = [kind.value for kind in EventKind]
    try:
        if path.lower().endswith(".jfr.gz"):
            with _decompressed(path) as plain_path:
                document = _print_json(path, plain_path, jfr_command, stack_depth, event_types)
        else:
            document = _print_json(path, path, jfr_command, stack_depth, event_types)
    except (OSError, EOFError) as exc:
        raise RecordingOpenError(path, str(exc)) from exc
    try:
        return Recording.from_document(document)
    except (AttributeError, KeyError, TypeError) as exc:
        raise RecordingOpenError(path, f"unexpected document layout: {exc}") from exc
