import threading

from collapse_jfr.aggregation import AggregationContext, AggregationTable
from collapse_jfr.events import Output, Sample


def test_record_accumulates():
    table = AggregationTable(Output.ALLOC_SIZE)
    table.record("t;a", 100)
    table.record("t;a", 28)
    table.record("t;b")
    assert table.as_dict() == {"t;a": 128, "t;b": 1}
    assert len(table) == 2
    assert table.total() == 129
    assert "t;a" in table
    assert table.get("t;c") is None


def test_context_routes_samples_to_their_table():
    context = AggregationContext()
    context.record(Sample(Output.WALL, 0, "t;a", 1))
    context.record(Sample(Output.ALLOC_SIZE, 0, "t;a;X_[k]", 64))
    assert context.wall.as_dict() == {"t;a": 1}
    assert context.alloc_size.as_dict() == {"t;a;X_[k]": 64}
    assert len(context.cpu) == len(context.lock) == len(context.alloc_count) == 0


def test_merge():
    first, second = AggregationContext(), AggregationContext()
    first.record(Sample(Output.LOCK, 0, "t;a", 1))
    second.record(Sample(Output.LOCK, 0, "t;a", 1))
    second.record(Sample(Output.CPU, 0, "t;b", 1))
    first.merge(second)
    assert first.lock.as_dict() == {"t;a": 2}
    assert first.cpu.as_dict() == {"t;b": 1}


class TestWallRedundancy:
    def test_same_cardinality_and_total(self):
        context = AggregationContext()
        for output in (Output.WALL, Output.CPU):
            context.record(Sample(output, 0, "t;a", 1))
            context.record(Sample(output, 0, "t;b", 1))
        assert context.wall_redundant()

    def test_extra_wall_sample(self):
        context = AggregationContext()
        context.record(Sample(Output.WALL, 0, "t;a", 1))
        context.record(Sample(Output.WALL, 0, "t;a", 1))
        context.record(Sample(Output.CPU, 0, "t;a", 1))
        assert not context.wall_redundant()

    def test_extra_wall_stack(self):
        context = AggregationContext()
        context.record(Sample(Output.WALL, 0, "t;a", 1))
        context.record(Sample(Output.WALL, 0, "t;b", 1))
        context.record(Sample(Output.CPU, 0, "t;a", 2))
        assert not context.wall_redundant()


def test_concurrent_records_are_not_lost():
    table = AggregationTable(Output.WALL)

    def worker():
        for i in range(2000):
            table.record(f"t;{i % 10}")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert table.total() == 16000
    assert len(table) == 10
