from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .config import GhashConfig
from .core import EntryResolver, HashResult, Pipeline, dispatch_names, dispatch_walked, pool_size
from .errors import FatalError, PipelineError
from .hashes import hash_file
from .records import FileRecord, InodeTracker
from .walk import walk


logger = logging.getLogger(__name__)


@dataclass
class GenerateSummary:
    hashed: int = 0
    hashed_bytes: int = 0
    failures: List[PipelineError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def generate(
    names: Sequence[str],
    config: GhashConfig,
    result_callback: Callable[[HashResult], None],
    status_callback: Optional[Callable[[str], None]] = None,
) -> GenerateSummary:
    """Hash every admissible file named by ``names``.

    ``result_callback`` runs on a single consumer thread, so it may write to
    a stream without locking. Setup problems raise before any hashing.
    """
    if not names:
        raise FatalError("insufficient arguments; nothing to hash")
    factory = config.factory()

    summary = GenerateSummary()

    def _hash(record: FileRecord) -> HashResult:
        digest, nbytes = hash_file(record.path, factory)
        return HashResult(record.path, nbytes, digest)

    def _sink(result: HashResult) -> None:
        result_callback(result)
        summary.hashed += 1
        summary.hashed_bytes += result.size

    tracker = InodeTracker()
    resolver = EntryResolver(tracker, follow_symlinks=config.follow_symlinks)

    if config.recurse:
        workers = pool_size(parallelism=config.parallelism)

        def _produce(emit, report):
            records = walk(list(names), config.walk_options(), on_error=report)
            dispatch_walked(records, resolver, emit, report)

    else:
        workers = pool_size(len(names), config.parallelism)

        def _produce(emit, report):
            dispatch_names(list(names), resolver, emit, report)

    logger.debug("hashing with %s, %d workers", config.algorithm, workers)
    pipeline: Pipeline[FileRecord, HashResult] = Pipeline(_hash, workers, sink=_sink, status_callback=status_callback)
    aggregate = pipeline.run(_produce)
    if aggregate is not None:
        summary.failures = aggregate.failures
    return summary


__all__ = ["GenerateSummary", "generate"]
