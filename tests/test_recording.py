import gzip
import json
import subprocess
from datetime import datetime, timedelta, timezone

import pytest

from builders import EXECUTION_SAMPLE, MONITOR_ENTER, document, lock, sample
from collapse_jfr import recording as recording_module
from collapse_jfr.errors import RecordingOpenError
from collapse_jfr.recording import (
    Recording,
    TypeRef,
    open_recording,
    parse_timestamp_ns,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def expected_ns(moment: datetime, nanos: int) -> int:
    return (moment - EPOCH) // timedelta(seconds=1) * 1_000_000_000 + nanos


class TestParseTimestamp:
    def test_utc_with_nanoseconds(self):
        moment = datetime(2020, 9, 17, 11, 3, 23, tzinfo=timezone.utc)
        assert parse_timestamp_ns("2020-09-17T11:03:23.123456789Z") == expected_ns(moment, 123456789)

    def test_offset_forms(self):
        moment = datetime(2020, 9, 17, 11, 3, 23, tzinfo=timezone.utc)
        assert parse_timestamp_ns("2020-09-17T13:03:23.5+02:00") == expected_ns(moment, 500_000_000)
        assert parse_timestamp_ns("2020-09-17T13:03:23.5+0200") == expected_ns(moment, 500_000_000)

    def test_integers_are_epoch_nanoseconds(self):
        assert parse_timestamp_ns(1_600_000_000_123_000_000) == 1_600_000_000_123_000_000

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_timestamp_ns("yesterday")


class TestRecordingModel:
    def test_batches_grouped_by_type_in_first_seen_order(self):
        rec = Recording.from_document(document(
            sample(1), lock("com.foo.Lock", 2), sample(3), {"type": "jdk.CPULoad", "values": {}},
        ))
        batches = rec.batches()
        assert [b.kind for b in batches] == [EXECUTION_SAMPLE, MONITOR_ENTER, "jdk.CPULoad"]
        assert len(batches[0]) == 2

    def test_find_accessor(self):
        [batch] = Recording.from_document(document(sample(state="STATE_SLEEPING"))).batches()
        assert batch.find_accessor("monitorClass") is None
        state = batch.find_accessor("state")
        [event] = batch.events()
        assert event.field(state) == "STATE_SLEEPING"

    def test_owner_field_converts_to_type(self):
        [batch] = Recording.from_document(document(lock("com.foo.Lock"))).batches()
        [event] = batch.events()
        owner = event.field(batch.find_accessor("monitorClass"))
        assert owner.full_name == "com/foo/Lock"
        assert owner.package_name == "com/foo"
        assert owner.simple_name == "Lock"

    def test_thread_name(self):
        [batch] = Recording.from_document(document(
            sample(thread="worker-1"),
            sample(thread=None),
            sample(thread=None, sampledThread={"osName": "GC Thread#0", "javaName": None}),
        )).batches()
        assert [event.thread() for event in batch.events()] == ["worker-1", None, "GC Thread#0"]

    def test_stack_frames_are_leaf_first(self):
        [batch] = Recording.from_document(document(sample())).batches()
        [event] = batch.events()
        assert [f.method.name for f in event.stack_frames()] == ["handle", "run"]

    def test_missing_stack(self):
        [batch] = Recording.from_document(document(sample(stackTrace=None))).batches()
        [event] = batch.events()
        assert event.stack_frames() == []

    def test_dotted_type_names_are_normalized(self):
        assert TypeRef("com.foo.Bar", "com.foo").package_name == "com/foo"
        assert TypeRef("com.foo.Bar", "com.foo").full_name == "com/foo/Bar"


class FakeJfr:
    def __init__(self, doc=None, error=None):
        self.doc = doc or document(sample(1))
        self.error = error
        self.commands = []
        self.inputs = []

    def __call__(self, command, **kwargs):
        self.commands.append(command)
        with open(command[-1], "rb") as plain:
            self.inputs.append(plain.read())
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(command, 0, stdout=json.dumps(self.doc), stderr="")


class TestOpenRecording:
    def test_runs_jfr_print(self, tmp_path, monkeypatch):
        path = tmp_path / "app.jfr"
        path.write_bytes(b"FLR\0")
        fake = FakeJfr()
        monkeypatch.setattr(recording_module.subprocess, "run", fake)

        rec = open_recording(path, jfr_command="/opt/jdk/bin/jfr", stack_depth=64)

        [command] = fake.commands
        assert command[:5] == ["/opt/jdk/bin/jfr", "print", "--json", "--stack-depth", "64"]
        assert command[5] == "--events"
        assert set(command[6].split(",")) == {
            "jdk.ExecutionSample", "jdk.JavaMonitorEnter",
            "jdk.ObjectAllocationInNewTLAB", "jdk.ObjectAllocationOutsideTLAB",
        }
        assert [b.kind for b in rec.batches()] == [EXECUTION_SAMPLE]

    def test_gzipped_recordings_are_decompressed(self, tmp_path, monkeypatch):
        path = tmp_path / "app.JFR.GZ"
        with gzip.open(path, "wb") as out:
            out.write(b"FLR\0payload")
        fake = FakeJfr()
        monkeypatch.setattr(recording_module.subprocess, "run", fake)

        open_recording(path)

        assert fake.inputs == [b"FLR\0payload"]
        assert fake.commands[0][-1].endswith(".jfr")

    def test_corrupt_gzip(self, tmp_path, monkeypatch):
        path = tmp_path / "broken.jfr.gz"
        path.write_bytes(b"not gzip at all")
        fake = FakeJfr()
        monkeypatch.setattr(recording_module.subprocess, "run", fake)

        with pytest.raises(RecordingOpenError) as excinfo:
            open_recording(path)
        assert excinfo.value.path == str(path)
        assert fake.commands == []

    def test_missing_jfr_tool(self, tmp_path, monkeypatch):
        path = tmp_path / "app.jfr"
        path.write_bytes(b"")
        monkeypatch.setattr(recording_module.subprocess, "run", FakeJfr(error=FileNotFoundError("jfr")))

        with pytest.raises(RecordingOpenError, match="command not found"):
            open_recording(path)

    def test_jfr_failure_reports_stderr(self, tmp_path, monkeypatch):
        path = tmp_path / "app.jfr"
        path.write_bytes(b"")
        error = subprocess.CalledProcessError(1, ["jfr"], output="", stderr="Not a valid Flight Recorder file\n")
        monkeypatch.setattr(recording_module.subprocess, "run", FakeJfr(error=error))

        with pytest.raises(RecordingOpenError, match="Not a valid Flight Recorder file"):
            open_recording(path)
