from __future__ import annotations

import os
import threading
import time
from pathlib import Path

import pytest

from ghash.core import (
    ClosableQueue,
    EntryResolver,
    ErrorAggregator,
    HashResult,
    Pipeline,
    PipelineState,
    dispatch_names,
    pool_size,
)
from ghash.errors import AggregateError, FailureKind, PipelineError
from ghash.hashes import get_factory, hash_file
from ghash.records import InodeTracker


def _hasher():
    factory = get_factory("sha256")

    def _hash(record):
        digest, nbytes = hash_file(record.path, factory)
        return HashResult(record.path, nbytes, digest)

    return _hash


def test_pool_size_is_bounded_by_inputs():
    assert pool_size(1, parallelism=4) == 1
    assert pool_size(0, parallelism=2) == 1
    assert pool_size(3, parallelism=2) <= 3
    assert pool_size(parallelism=2) >= pool_size(parallelism=1)


def test_every_admitted_file_is_hashed_once(files, tmp_path: Path):
    paths = files(12)
    duplicate = tmp_path / "dup.bin"
    os.link(paths[0], duplicate)
    names = [str(p) for p in paths] + [str(duplicate), str(paths[3])]
    results = []

    pipeline = Pipeline(_hasher(), workers=4, sink=results.append)
    resolver = EntryResolver(InodeTracker())
    aggregate = pipeline.run(lambda emit, report: dispatch_names(names, resolver, emit, report))

    assert aggregate is None
    assert sorted(r.path for r in results) == sorted(str(p) for p in paths)
    assert pipeline.state is PipelineState.DONE


def test_file_deleted_before_hashing_fails_alone(files):
    paths = files(10)
    victim = paths[4]
    resolver = EntryResolver(InodeTracker())
    results = []

    def _produce(emit, report):
        for path in paths:
            resolution = resolver.resolve(str(path))
            if path == victim:
                os.unlink(path)
            emit(resolution.record)

    pipeline = Pipeline(_hasher(), workers=3, sink=results.append)
    aggregate = pipeline.run(_produce)

    assert isinstance(aggregate, AggregateError)
    assert len(aggregate) == 1
    failure = aggregate.failures[0]
    assert failure.path == str(victim)
    assert failure.kind is FailureKind.STAT
    assert len(results) == 9


def test_late_worker_error_is_collected_before_run_returns():
    release = threading.Event()

    def _action(item):
        if item == "slow":
            release.wait(timeout=5)
            time.sleep(0.05)
            raise OSError("late failure")
        return item

    def _produce(emit, report):
        for item in ("a", "b", "slow"):
            emit(item)
        release.set()

    pipeline = Pipeline(_action, workers=3, sink=lambda item: None)
    aggregate = pipeline.run(_produce)

    assert aggregate is not None
    assert [f.path for f in aggregate.failures] == ["slow"]
    assert pipeline.failures[0].kind is FailureKind.READ


def test_producer_reported_errors_are_kept():
    def _produce(emit, report):
        for i in range(5):
            report(PipelineError(FailureKind.STAT, f"missing{i}", "no such file"))
        emit("ok")

    seen = []
    aggregate = Pipeline(lambda item: item, workers=2, sink=seen.append).run(_produce)
    assert seen == ["ok"]
    assert sorted(f.path for f in aggregate.failures) == [f"missing{i}" for i in range(5)]


def test_pipeline_runs_only_once():
    pipeline = Pipeline(lambda item: item, workers=1)
    pipeline.run(lambda emit, report: emit("x"))
    with pytest.raises(RuntimeError):
        pipeline.run(lambda emit, report: None)


def test_status_callback_sees_every_state():
    states = []
    Pipeline(lambda item: None, workers=2, status_callback=states.append).run(lambda emit, report: emit(1))
    assert states == ["dispatching", "draining", "done"]


def test_producer_exception_still_shuts_down():
    pipeline = Pipeline(lambda item: item, workers=2, sink=lambda item: None)

    def _produce(emit, report):
        emit("a")
        raise ValueError("producer broke")

    with pytest.raises(ValueError):
        pipeline.run(_produce)
    assert pipeline.state is PipelineState.DONE


def test_broken_sink_keeps_draining():
    def _sink(item):
        raise OSError("disk full")

    aggregate = Pipeline(lambda item: item, workers=2, sink=_sink).run(
        lambda emit, report: [emit(f"item{i}") for i in range(40)]
    )
    assert aggregate is not None
    assert len(aggregate.failures) == 1
    assert aggregate.failures[0].fatal


def test_aggregator_refuses_early_reads():
    errors = ClosableQueue(1)
    aggregator = ErrorAggregator(errors)
    aggregator.start()
    errors.put(PipelineError(FailureKind.STAT, "x", "gone"))
    with pytest.raises(RuntimeError):
        _ = aggregator.failures
    errors.close()
    assert aggregator.wait(timeout=5)
    assert [f.path for f in aggregator.failures] == ["x"]


def test_closable_queue_wakes_every_consumer():
    q = ClosableQueue(2, consumers=3)
    drained = []

    def _consume():
        drained.extend(list(q))

    threads = [threading.Thread(target=_consume) for _ in range(3)]
    for t in threads:
        t.start()
    for i in range(5):
        q.put(i)
    q.close()
    for t in threads:
        t.join(timeout=5)
    assert not any(t.is_alive() for t in threads)
    assert sorted(drained) == [0, 1, 2, 3, 4]
    assert q.closed


def _run_with_timeout(pipeline, producer, timeout=10.0):
    outcome = {}

    def _target():
        outcome["aggregate"] = pipeline.run(producer)

    runner = threading.Thread(target=_target, daemon=True)
    runner.start()
    runner.join(timeout)
    assert not runner.is_alive(), "pipeline did not finish after the sink raised"
    return outcome["aggregate"]


@pytest.mark.parametrize("count", [3, 60])
def test_sink_raising_non_os_error_is_reported(count):
    def _sink(item):
        raise ValueError("cannot render item")

    pipeline = Pipeline(lambda item: item, workers=2, sink=_sink)
    aggregate = _run_with_timeout(pipeline, lambda emit, report: [emit(f"item{i}") for i in range(count)])

    assert aggregate is not None
    assert len(aggregate.failures) == 1
    failure = aggregate.failures[0]
    assert failure.kind is FailureKind.WRITE
    assert failure.fatal
    assert "ValueError" in str(failure)


def test_broken_sink_is_a_write_failure():
    def _sink(item):
        raise OSError("disk full")

    aggregate = Pipeline(lambda item: item, workers=1, sink=_sink).run(lambda emit, report: emit("x"))
    assert aggregate.failures[0].kind is FailureKind.WRITE
