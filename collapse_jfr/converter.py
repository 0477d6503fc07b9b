"""
converter.py

Drives a conversion run: finds recordings, resolves the time window,
feeds every recording through the classifier and either aggregates the
samples (batch mode) or streams them with timestamps (timestamp mode).

A failing recording is logged and reported in the run's `FileResult`s;
it never stops the other recordings.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timezone
from functools import partial
from pathlib import Path
from typing import Optional

import click

from collapse_jfr.aggregation import AggregationContext
from collapse_jfr.errors import ConfigurationError
from collapse_jfr.events import samples
from collapse_jfr.exporters.collapsed import write_context
from collapse_jfr.exporters.timestamped import TimestampedSinks
from collapse_jfr.frames import DEFAULT_DESCRIPTOR_RULES, FrameFormatter
from collapse_jfr.recording import DEFAULT_STACK_DEPTH, open_recording
from collapse_jfr.window import ThreadFilter, access_log_window, resolve_window, should_skip

logger = logging.getLogger(__name__)

RECORDING_SUFFIXES = (".jfr", ".jfr.gz")


@dataclass(frozen=True)
class Settings:
    path: Path
    directory: bool = False
    timestamps: bool = False
    access_log: Optional[tuple] = None
    thread: Optional[str] = None
    warm_up: int = 0
    cool_down: int = 0
    output_dir: Path = Path(".")
    jobs: int = 1
    jfr_command: str = "jfr"
    stack_depth: int = DEFAULT_STACK_DEPTH
    filter_timestamps: bool = False
    utc: bool = False
    descriptor_rules: tuple = DEFAULT_DESCRIPTOR_RULES


@dataclass
class FileResult:
    path: Path
    samples: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ConversionReport:
    results: list = field(default_factory=list)
    written: list = field(default_factory=list)
    context: Optional[AggregationContext] = None

    @property
    def failed(self) -> list:
        return [result for result in self.results if not result.ok]


def is_recording(path: Path) -> bool:
    return path.name.lower().endswith(RECORDING_SUFFIXES)


def find_recordings(path, directory: bool = False) -> list:
    """The recordings to convert: `path` itself, or every recording below it."""
    path = Path(path)
    if not directory:
        return [path]
    if not path.is_dir():
        raise ConfigurationError(f"{path} is not a directory")
    return sorted(candidate for candidate in path.rglob("*")
                  if candidate.is_file() and is_recording(candidate))


class Converter:
    def __init__(self, settings: Settings, opener=None):
        self.settings = settings
        self.formatter = FrameFormatter(settings.descriptor_rules)
        if opener is None:
            opener = partial(open_recording,
                             jfr_command=settings.jfr_command,
                             stack_depth=settings.stack_depth)
        self.opener = opener
        self.thread_filter = ThreadFilter.from_name(settings.thread) if settings.thread else None

    def run(self) -> ConversionReport:
        paths = find_recordings(self.settings.path, self.settings.directory)
        if not paths:
            logger.warning("No recordings found under %s", self.settings.path)
        if self.settings.timestamps:
            return self._stream(paths)
        return self._aggregate(paths)

    def _window(self, paths):
        settings = self.settings
        window = resolve_window(paths, self.opener, settings.access_log,
                                settings.warm_up, settings.cool_down)
        if window is not None:
            logger.info("Keeping events between %s and %s",
                        window.start.isoformat(), window.end.isoformat())
        return window

    def _skip_predicate(self, window):
        if window is None and self.thread_filter is None:
            return None
        return partial(should_skip, window=window, thread_filter=self.thread_filter)

    def _aggregate(self, paths) -> ConversionReport:
        skip = self._skip_predicate(self._window(paths))
        context = AggregationContext()
        convert = partial(self.process_recording, context=context, skip=skip)
        if self.settings.jobs > 1 and len(paths) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.jobs) as pool:
                results = list(pool.map(convert, paths))
        else:
            results = [convert(path) for path in paths]
        written = write_context(self.settings.output_dir, context)
        click.echo("Done")
        return ConversionReport(results, written, context)

    def _stream(self, paths) -> ConversionReport:
        settings = self.settings
        if settings.filter_timestamps:
            skip = self._skip_predicate(self._window(paths))
        else:
            if settings.access_log is not None:
                # still reject a malformed date up front
                access_log_window(*settings.access_log)
            if settings.access_log or settings.warm_up or settings.cool_down or settings.thread:
                logger.warning("Time and thread filters are not applied to timestamped output, "
                               "use --filter-timestamps to apply them")
            skip = None
        tz = timezone.utc if settings.utc else None
        with TimestampedSinks(settings.output_dir, tz) as sinks:
            results = [self.stream_recording(path, sinks, skip) for path in paths]
        click.echo("Done")
        return ConversionReport(results, list(sinks.paths))

    def _announce(self, path: Path):
        click.echo(f"Input file: {path.name}")
        click.echo("Converting JFR to collapsed stack ...")

    def process_recording(self, path: Path, context: AggregationContext, skip=None) -> FileResult:
        """Aggregate one recording into `context`.

        Samples are collected per file and merged only once the whole file
        converted, so a failing file leaves `context` untouched.
        """
        self._announce(path)
        local = AggregationContext()
        count = 0
        try:
            recording = self.opener(path)
            for batch in recording.batches():
                for sample in samples(batch, self.formatter, skip):
                    local.record(sample)
                    count += 1
        except Exception as exc:
            logger.error("Failed to convert %s", path, exc_info=True)
            return FileResult(path, error=exc)
        context.merge(local)
        return FileResult(path, samples=count)

    def stream_recording(self, path: Path, sinks: TimestampedSinks, skip=None) -> FileResult:
        self._announce(path)
        count = 0
        try:
            recording = self.opener(path)
            for batch in recording.batches():
                for sample in samples(batch, self.formatter, skip):
                    sinks.write(sample)
                    count += 1
        except Exception as exc:
            logger.error("Failed to convert %s", path, exc_info=True)
            return FileResult(path, samples=count, error=exc)
        return FileResult(path, samples=count)
