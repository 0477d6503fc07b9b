"""
aggregation.py

Stack path -> value tables. Each table has its own lock so file workers
can record into a shared context concurrently.
"""

import threading

from collapse_jfr.events import Output


class AggregationTable:
    def __init__(self, output: Output):
        self.output = output
        self._values = {}
        self._lock = threading.Lock()

    def record(self, stack: str, delta: int = 1) -> None:
        with self._lock:
            self._values[stack] = self._values.get(stack, 0) + delta

    def update(self, other: "AggregationTable") -> None:
        for stack, value in other.items():
            self.record(stack, value)

    def items(self) -> list:
        with self._lock:
            return list(self._values.items())

    def total(self) -> int:
        with self._lock:
            return sum(self._values.values())

    def as_dict(self) -> dict:
        with self._lock:
            return dict(self._values)

    def get(self, stack: str, default=None):
        with self._lock:
            return self._values.get(stack, default)

    def __len__(self):
        with self._lock:
            return len(self._values)

    def __contains__(self, stack):
        with self._lock:
            return stack in self._values


class AggregationContext:
    """The five tables of one run."""

    def __init__(self):
        self._tables = {output: AggregationTable(output) for output in Output}

    @property
    def wall(self):
        return self._tables[Output.WALL]

    @property
    def cpu(self):
        return self._tables[Output.CPU]

    @property
    def alloc_count(self):
        return self._tables[Output.ALLOC_COUNT]

    @property
    def alloc_size(self):
        return self._tables[Output.ALLOC_SIZE]

    @property
    def lock(self):
        return self._tables[Output.LOCK]

    def table(self, output: Output) -> AggregationTable:
        return self._tables[output]

    def tables(self):
        return list(self._tables.values())

    def record(self, sample) -> None:
        self._tables[sample.output].record(sample.stack, sample.value)

    def merge(self, other: "AggregationContext") -> None:
        for output, table in other._tables.items():
            self._tables[output].update(table)

    def wall_redundant(self) -> bool:
        """True when every wall sample was also a cpu sample."""
        return len(self.wall) == len(self.cpu) and self.wall.total() == self.cpu.total()
