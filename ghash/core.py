from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterator, List, Optional, Sequence, TypeVar

from .errors import AggregateError, FailureKind, PipelineError, failure_from_exception
from .records import EntryKind, FileRecord, InodeTracker


logger = logging.getLogger(__name__)

PARALLELISM = 2
_RESULT_QUEUE_SIZE = 16
_ERROR_QUEUE_SIZE = 1

T = TypeVar("T")
R = TypeVar("R")

Emit = Callable[[Any], None]
Report = Callable[[PipelineError], None]


def pool_size(inputs: Optional[int] = None, parallelism: int = PARALLELISM) -> int:
    workers = max(1, os.cpu_count() or 1) * max(1, parallelism)
    if inputs is not None:
        workers = min(workers, inputs)
    return max(1, workers)


# ------------------------------------------------------------- resolution --


class ResolveAction(str, Enum):
    ADMIT = "admit"
    SKIP_SEEN = "skip_seen"
    SKIP_SYMLINK = "skip_symlink"
    SKIP_NON_FILE = "skip_non_file"
    ERROR = "error"


@dataclass
class Resolution:
    path: str
    action: ResolveAction
    record: Optional[FileRecord] = None
    cause: Optional[BaseException] = None

    def diagnostic(self) -> Optional[PipelineError]:
        if self.action is ResolveAction.ADMIT or self.action is ResolveAction.SKIP_SEEN:
            return None
        if self.action is ResolveAction.SKIP_SYMLINK:
            return PipelineError(FailureKind.SKIPPED, self.path, "skipping symlink")
        if self.action is ResolveAction.SKIP_NON_FILE:
            if self.record is not None and self.record.kind is EntryKind.DIR:
                return PipelineError(FailureKind.SKIPPED, self.path, "skipping dir..")
            return PipelineError(FailureKind.SKIPPED, self.path, "skipping non-file..")
        if self.record is not None and self.record.kind is EntryKind.SYMLINK:
            return PipelineError(FailureKind.SYMLINK, self.path, self.cause)
        return PipelineError(FailureKind.STAT, self.path, self.cause)


class EntryResolver:
    """Classify a raw path and decide whether it enters the pipeline."""

    def __init__(self, tracker: InodeTracker, follow_symlinks: bool = False) -> None:
        self.tracker = tracker
        self.follow_symlinks = follow_symlinks

    def resolve(self, path: str) -> Resolution:
        try:
            st = os.lstat(path)
        except OSError as exc:
            return Resolution(path, ResolveAction.ERROR, cause=exc)
        record = FileRecord.from_stat(path, st)
        if self.tracker.seen(record.key, record):
            return Resolution(path, ResolveAction.SKIP_SEEN, record)

        if record.kind is EntryKind.SYMLINK:
            if not self.follow_symlinks:
                return Resolution(path, ResolveAction.SKIP_SYMLINK, record)
            try:
                target = os.path.realpath(path, strict=True)
                record = FileRecord.from_stat(target, os.stat(target))
            except OSError as exc:
                return Resolution(path, ResolveAction.ERROR, record, cause=exc)
            # A chain that lands on an identity already admitted ends here.
            if self.tracker.seen(record.key, record):
                return Resolution(path, ResolveAction.SKIP_SEEN, record)

        return self._classify(path, record)

    def check_walked(self, record: FileRecord) -> Resolution:
        """Reduced check for records that come from the recursive walker."""
        if self.tracker.seen(record.key, record):
            return Resolution(record.path, ResolveAction.SKIP_SEEN, record)
        if record.kind is EntryKind.SYMLINK and not self.follow_symlinks:
            return Resolution(record.path, ResolveAction.SKIP_SYMLINK, record)
        return self._classify(record.path, record)

    @staticmethod
    def _classify(path: str, record: FileRecord) -> Resolution:
        if record.kind is EntryKind.FILE:
            return Resolution(path, ResolveAction.ADMIT, record)
        return Resolution(path, ResolveAction.SKIP_NON_FILE, record)


# ---------------------------------------------------------------- queues --


_CLOSED = object()


class ClosableQueue(Generic[T]):
    """Bounded queue whose ``close`` is the only end-of-input signal."""

    def __init__(self, maxsize: int, consumers: int = 1) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._consumers = max(1, consumers)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, item: T) -> None:
        if self._closed.is_set():
            raise RuntimeError("put on a closed queue")
        self._queue.put(item)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        for _ in range(self._consumers):
            self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item


class ErrorAggregator:
    def __init__(self, errors: ClosableQueue[PipelineError]) -> None:
        self._errors = errors
        self._collected: List[PipelineError] = []
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._drain, name="ghash-errors", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _drain(self) -> None:
        try:
            for failure in self._errors:
                logger.debug("collected failure: %s", failure)
                self._collected.append(failure)
        finally:
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    @property
    def failures(self) -> List[PipelineError]:
        if not self._done.is_set():
            raise RuntimeError("error list read before the aggregator finished draining")
        return list(self._collected)

    def result(self) -> Optional[AggregateError]:
        failures = self.failures
        if not failures:
            return None
        return AggregateError(failures)


class WorkerPool(Generic[T]):
    def __init__(
        self,
        size: int,
        action: Callable[[T], Any],
        work: ClosableQueue[T],
        report: Report,
        results: Optional[ClosableQueue[Any]] = None,
    ) -> None:
        self.size = max(1, size)
        self._action = action
        self._work = work
        self._report = report
        self._results = results
        self._threads = [
            threading.Thread(target=self._run, name=f"ghash-worker-{i}", daemon=True)
            for i in range(self.size)
        ]

    def start(self) -> None:
        for thread in self._threads:
            thread.start()

    def join(self) -> None:
        for thread in self._threads:
            thread.join()

    def _run(self) -> None:
        for item in self._work:
            try:
                result = self._action(item)
            except Exception as exc:  # per-item failure, the pool keeps going
                self._report(failure_from_exception(_item_path(item), exc))
                continue
            if result is not None and self._results is not None:
                self._results.put(result)


def _item_path(item: Any) -> str:
    path = getattr(item, "path", None)
    return str(path) if path is not None else str(item)


# -------------------------------------------------------------- pipeline --


class PipelineState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    DONE = "done"


class Pipeline(Generic[T, R]):
    """Producer, worker pool and error aggregator for one run.

    ``run`` is given a producer that receives ``emit`` and ``report``
    callables. Everything emitted is handed to ``action`` on a worker
    thread; non-None return values go to ``sink`` on a single consumer
    thread. Shutdown happens in a fixed order: workers, results, errors.
    """

    def __init__(
        self,
        action: Callable[[T], Optional[R]],
        workers: int,
        sink: Optional[Callable[[R], None]] = None,
        status_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.action = action
        self.workers = max(1, workers)
        self.sink = sink
        self.status_callback = status_callback or (lambda msg: None)
        self._state = PipelineState.IDLE
        self._state_lock = threading.Lock()
        self._aggregator: Optional[ErrorAggregator] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    def _advance(self, state: PipelineState) -> None:
        with self._state_lock:
            self._state = state
        self.status_callback(state.value)

    def run(self, producer: Callable[[Emit, Report], None]) -> Optional[AggregateError]:
        with self._state_lock:
            if self._state is not PipelineState.IDLE:
                raise RuntimeError("a pipeline runs only once")
            self._state = PipelineState.DISPATCHING
        self.status_callback(PipelineState.DISPATCHING.value)

        work: ClosableQueue[T] = ClosableQueue(self.workers, consumers=self.workers)
        errors: ClosableQueue[PipelineError] = ClosableQueue(_ERROR_QUEUE_SIZE)
        results: Optional[ClosableQueue[R]] = None
        writer: Optional[threading.Thread] = None

        aggregator = ErrorAggregator(errors)
        self._aggregator = aggregator
        aggregator.start()

        if self.sink is not None:
            results = ClosableQueue(_RESULT_QUEUE_SIZE)
            writer = threading.Thread(
                target=self._write_results, args=(results, errors.put), name="ghash-results", daemon=True
            )
            writer.start()

        pool = WorkerPool(self.workers, self.action, work, errors.put, results)
        logger.debug("starting %d workers", pool.size)
        pool.start()

        try:
            producer(work.put, errors.put)
        finally:
            work.close()
            self._advance(PipelineState.DRAINING)
            # The order below is load bearing: the error list is only final
            # once every writer to the error queue has exited.
            pool.join()
            if results is not None and writer is not None:
                results.close()
                writer.join()
            errors.close()
            aggregator.wait()
            self._advance(PipelineState.DONE)
        return aggregator.result()

    @property
    def failures(self) -> List[PipelineError]:
        if self._aggregator is None:
            return []
        return self._aggregator.failures

    def _write_results(self, results: ClosableQueue[R], report: Report) -> None:
        broken: Optional[BaseException] = None
        for result in results:
            if broken is not None:
                continue
            try:
                self.sink(result)  # type: ignore[misc]
            except Exception as exc:
                # Keep draining so workers never block on a dead consumer.
                broken = exc
                logger.error("cannot write results: %s", exc)
                cause = exc if isinstance(exc, OSError) else f"{type(exc).__name__}: {exc}"
                report(PipelineError(FailureKind.WRITE, _item_path(result), cause, fatal=True))


# ------------------------------------------------------------ generation --


@dataclass
class HashResult:
    path: str
    size: int
    digest: bytes

    @property
    def hexdigest(self) -> str:
        return self.digest.hex()


def dispatch_names(names: Sequence[str], resolver: EntryResolver, emit: Emit, report: Report) -> None:
    for name in names:
        resolution = resolver.resolve(name)
        if resolution.action is ResolveAction.ADMIT:
            emit(resolution.record)
            continue
        failure = resolution.diagnostic()
        if failure is not None:
            report(failure)


def dispatch_walked(records: Iterator[FileRecord], resolver: EntryResolver, emit: Emit, report: Report) -> None:
    for record in records:
        resolution = resolver.check_walked(record)
        if resolution.action is ResolveAction.ADMIT:
            emit(resolution.record)
            continue
        failure = resolution.diagnostic()
        if failure is not None:
            report(failure)


__all__ = [
    "ClosableQueue",
    "EntryResolver",
    "ErrorAggregator",
    "HashResult",
    "PARALLELISM",
    "Pipeline",
    "PipelineState",
    "Resolution",
    "ResolveAction",
    "WorkerPool",
    "dispatch_names",
    "dispatch_walked",
    "pool_size",
]
