from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union


class FailureKind(str, Enum):
    STAT = "stat"
    READ = "read"
    WRITE = "write"
    SYMLINK = "symlink"
    SKIPPED = "skipped"
    MALFORMED = "malformed"
    SIZE_MISMATCH = "size_mismatch"
    DIGEST_MISMATCH = "digest_mismatch"


@dataclass
class PipelineError:
    """One failure collected while a pipeline runs.

    ``line`` is only set for failures tied to a manifest line. Per-item
    failures never stop a run; ``fatal`` marks the few that do.
    """

    kind: FailureKind
    path: str
    cause: Union[BaseException, str, None] = None
    line: Optional[int] = None
    source: Optional[str] = None
    fatal: bool = False

    def __str__(self) -> str:
        parts: List[str] = []
        if self.source:
            parts.append(self.source)
        if self.line is not None:
            parts.append(str(self.line))
        if self.path:
            parts.append(self.path)
        parts.append(self.kind.value if self.cause is None else str(self.cause))
        return ": ".join(parts)


class GhashError(Exception):
    pass


class FatalError(GhashError):
    """Setup or traversal failure that aborts a run before workers start."""


class UnknownAlgorithmError(FatalError):
    def __init__(self, name: str, where: Optional[str] = None) -> None:
        self.name = name
        self.where = where
        if where:
            super().__init__(f"{where}: unsupported hash algorithm '{name}'")
        else:
            super().__init__(f"unknown hash algorithm '{name}'")


class ManifestCorruptError(FatalError):
    def __init__(self, manifest: str, reason: str) -> None:
        self.manifest = manifest
        self.reason = reason
        super().__init__(f"{manifest}: {reason}")


class ManifestLineError(GhashError):
    def __init__(self, manifest: str, line: int, reason: str) -> None:
        self.manifest = manifest
        self.line = line
        self.reason = reason
        super().__init__(f"{manifest}: {line}: {reason}")

    def as_failure(self) -> PipelineError:
        return PipelineError(FailureKind.MALFORMED, "", self.reason, line=self.line, source=self.manifest)


class VerificationError(GhashError):
    def __init__(self, kind: FailureKind, path: str, detail: str, line: Optional[int] = None, manifest: Optional[str] = None) -> None:
        self.kind = kind
        self.path = path
        self.detail = detail
        self.line = line
        self.manifest = manifest
        super().__init__(f"'{path}' {detail}")


class AggregateError(GhashError):
    """Every per-item failure from one run, in the order they were collected."""

    def __init__(self, failures: Sequence[PipelineError]) -> None:
        self.failures: List[PipelineError] = list(failures)
        super().__init__("\n".join(str(f) for f in self.failures))

    def __len__(self) -> int:
        return len(self.failures)


def failure_from_exception(path: str, exc: BaseException) -> PipelineError:
    if isinstance(exc, ManifestLineError):
        return exc.as_failure()
    if isinstance(exc, VerificationError):
        return PipelineError(exc.kind, exc.path, exc.detail, line=exc.line, source=exc.manifest)
    if isinstance(exc, FileNotFoundError):
        return PipelineError(FailureKind.STAT, path, exc)
    if isinstance(exc, OSError):
        return PipelineError(FailureKind.READ, path, exc)
    return PipelineError(FailureKind.READ, path, f"{type(exc).__name__}: {exc}")


__all__ = [
    "AggregateError",
    "FailureKind",
    "FatalError",
    "GhashError",
    "ManifestCorruptError",
    "ManifestLineError",
    "PipelineError",
    "UnknownAlgorithmError",
    "VerificationError",
    "failure_from_exception",
]
