from __future__ import annotations

import hmac
import logging
import os
import stat
from dataclasses import dataclass, field
from typing import IO, Callable, List, Optional, Union

from .core import PARALLELISM, Pipeline, pool_size
from .errors import FailureKind, ManifestLineError, PipelineError, VerificationError
from .hashes import HashFactory, get_factory, hash_file
from .manifest import ManifestEntry, open_manifest, read_manifest


logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_FAILED = "FAILED"


@dataclass
class VerifyOutcome:
    status: str
    path: str
    detail: str
    line: int = 0


@dataclass
class VerifySummary:
    manifest: str = ""
    algorithm: str = ""
    verified: List[VerifyOutcome] = field(default_factory=list)
    failures: List[PipelineError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.verified) + len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def outcomes(self) -> List[VerifyOutcome]:
        rows = list(self.verified)
        for failure in self.failures:
            rows.append(VerifyOutcome(STATUS_FAILED, failure.path, str(failure.cause or failure.kind.value), failure.line or 0))
        rows.sort(key=lambda row: (row.line, row.path))
        return rows

    def as_dict(self) -> dict:
        return {"manifest": self.manifest, "algorithm": self.algorithm, "total": self.total, "ok": len(self.verified), "failed": len(self.failures)}


def digests_equal(actual: str, expected: str) -> bool:
    return hmac.compare_digest(actual.encode("ascii", "replace"), expected.encode("ascii", "replace"))


def verify_entry(entry: ManifestEntry, factory: HashFactory, manifest: str = "") -> VerifyOutcome:
    """Check one manifest entry: stat, size, then digest.

    The size check happens before hashing so a resized file is reported
    without reading it.
    """

    def _fail(kind: FailureKind, detail: str) -> VerificationError:
        return VerificationError(kind, entry.path, detail, line=entry.line, manifest=manifest)

    try:
        st = os.stat(entry.path)
    except OSError as exc:
        raise _fail(FailureKind.STAT, str(exc.strerror or exc)) from exc
    if not stat.S_ISREG(st.st_mode):
        raise _fail(FailureKind.SKIPPED, "not a file")
    if st.st_size != entry.size:
        raise _fail(FailureKind.SIZE_MISMATCH, f"size mismatch: exp {entry.size}, saw {st.st_size}")

    try:
        digest, nbytes = hash_file(entry.path, factory)
    except OSError as exc:
        raise _fail(FailureKind.READ, f"can't hash: {exc.strerror or exc}") from exc
    if nbytes != entry.size:
        raise _fail(FailureKind.SIZE_MISMATCH, f"hash size mismatch: exp {entry.size}, saw {nbytes}")
    if not digests_equal(digest.hex(), entry.digest):
        raise _fail(FailureKind.DIGEST_MISMATCH, "file modified")
    return VerifyOutcome(STATUS_OK, entry.path, "checksum match", entry.line)


def verify_manifest(
    source: Union[str, IO[str], None],
    parallelism: int = PARALLELISM,
    result_callback: Optional[Callable[[VerifyOutcome], None]] = None,
    status_callback: Optional[Callable[[str], None]] = None,
) -> VerifySummary:
    """Re-hash every file listed in a manifest.

    An unreadable or corrupt header raises before any worker starts; bad
    lines and mismatching files are collected into ``failures``.
    """
    summary = VerifySummary()
    with open_manifest(source) as (handle, name):
        header, entries = read_manifest(handle, name)
        factory = get_factory(header.algorithm)
        summary.manifest = name
        summary.algorithm = header.algorithm
        logger.debug("%s: verifying %s manifest written by %s", name, header.algorithm, header.version)

        def _sink(outcome: VerifyOutcome) -> None:
            summary.verified.append(outcome)
            if result_callback is not None:
                result_callback(outcome)

        def _produce(emit, report):
            for item in entries:
                if isinstance(item, ManifestLineError):
                    report(item.as_failure())
                    continue
                emit(item)

        pipeline: Pipeline[ManifestEntry, VerifyOutcome] = Pipeline(
            lambda entry: verify_entry(entry, factory, name),
            pool_size(parallelism=parallelism),
            sink=_sink,
            status_callback=status_callback,
        )
        aggregate = pipeline.run(_produce)
    if aggregate is not None:
        summary.failures = aggregate.failures
    return summary


__all__ = [
    "STATUS_FAILED",
    "STATUS_OK",
    "VerifyOutcome",
    "VerifySummary",
    "digests_equal",
    "verify_entry",
    "verify_manifest",
]
