"""
events.py

Classifies event batches and turns their events into `Sample`s, one per
output table/sink they contribute to.
"""

import enum
import logging
from collections import namedtuple

from collapse_jfr.frames import (
    IN_TLAB_MARKER,
    LOCK_MARKER,
    OUTSIDE_TLAB_MARKER,
    flatten_event,
    with_owner,
)

logger = logging.getLogger(__name__)

STATE_FIELD = "state"
MONITOR_CLASS_FIELD = "monitorClass"
ALLOCATION_SIZE_FIELD = "allocationSize"
OBJECT_CLASS_FIELD = "objectClass"

RUNNABLE_STATE = "STATE_RUNNABLE"


class EventKind(enum.Enum):
    EXECUTION_SAMPLE = "jdk.ExecutionSample"
    MONITOR_ENTER = "jdk.JavaMonitorEnter"
    ALLOCATION_IN_NEW_TLAB = "jdk.ObjectAllocationInNewTLAB"
    ALLOCATION_OUTSIDE_TLAB = "jdk.ObjectAllocationOutsideTLAB"


class Output(enum.Enum):
    """Tables in batch mode, sinks in timestamp mode. Values are file prefixes."""
    WALL = "wall"
    CPU = "cpu"
    ALLOC_COUNT = "alloc.count"
    ALLOC_SIZE = "alloc.size"
    LOCK = "lock"


Sample = namedtuple("Sample", ["output", "timestamp_ms", "stack", "value"])


def classify(kind_identifier):
    """Map a batch's type identifier to an EventKind, or None if unsupported."""
    try:
        return EventKind(kind_identifier)
    except ValueError:
        return None


def event_millis(event) -> int:
    return event.timestamp() // 1_000_000


def is_consuming_cpu(state) -> bool:
    return str(state) == RUNNABLE_STATE


def _execution_samples(batch, formatter, skip):
    state = batch.find_accessor(STATE_FIELD)
    if state is None:
        logger.debug("No %s field in %s batch, skipping cpu samples", STATE_FIELD, batch.kind)
    for event in batch.events():
        if skip is not None and skip(event):
            continue
        stack = flatten_event(event, formatter)
        if stack is None:
            continue
        timestamp = event_millis(event)
        yield Sample(Output.WALL, timestamp, stack, 1)
        if state is not None and is_consuming_cpu(event.field(state)):
            yield Sample(Output.CPU, timestamp, stack, 1)


def _lock_samples(batch, formatter, skip):
    monitor_class = batch.find_accessor(MONITOR_CLASS_FIELD)
    if monitor_class is None:
        logger.warning("No %s field in %s batch, skipping it", MONITOR_CLASS_FIELD, batch.kind)
        return
    for event in batch.events():
        if skip is not None and skip(event):
            continue
        stack = flatten_event(event, formatter)
        owner = event.field(monitor_class)
        if stack is None or owner is None:
            continue
        yield Sample(Output.LOCK, event_millis(event), with_owner(stack, owner, LOCK_MARKER), 1)


def _allocation_samples(batch, formatter, skip, outside_tlab):
    size = batch.find_accessor(ALLOCATION_SIZE_FIELD)
    object_class = batch.find_accessor(OBJECT_CLASS_FIELD)
    if size is None or object_class is None:
        logger.warning("No %s/%s fields in %s batch, skipping it",
                       ALLOCATION_SIZE_FIELD, OBJECT_CLASS_FIELD, batch.kind)
        return
    marker = OUTSIDE_TLAB_MARKER if outside_tlab else IN_TLAB_MARKER
    for event in batch.events():
        if skip is not None and skip(event):
            continue
        stack = flatten_event(event, formatter)
        owner = event.field(object_class)
        if stack is None or owner is None:
            continue
        stack = with_owner(stack, owner, marker)
        timestamp = event_millis(event)
        yield Sample(Output.ALLOC_COUNT, timestamp, stack, 1)
        yield Sample(Output.ALLOC_SIZE, timestamp, stack, event.field(size) or 0)


def samples(batch, formatter, skip=None):
    """Yield the samples contributed by every in-scope event of `batch`.

    `skip` is an optional predicate; events for which it returns True are
    ignored. Unsupported batches yield nothing.
    """
    kind = classify(batch.kind)
    if kind is EventKind.EXECUTION_SAMPLE:
        return _execution_samples(batch, formatter, skip)
    if kind is EventKind.MONITOR_ENTER:
        return _lock_samples(batch, formatter, skip)
    if kind is EventKind.ALLOCATION_IN_NEW_TLAB:
        return _allocation_samples(batch, formatter, skip, outside_tlab=False)
    if kind is EventKind.ALLOCATION_OUTSIDE_TLAB:
        return _allocation_samples(batch, formatter, skip, outside_tlab=True)
    return iter(())
