"""Parallel file checksum generation and verification."""
from __future__ import annotations

__version__ = "0.4.0"

from .config import ExcludeRules, GhashConfig
from .core import EntryResolver, ErrorAggregator, HashResult, Pipeline, PipelineState, ResolveAction, WorkerPool
from .errors import AggregateError, FailureKind, FatalError, ManifestCorruptError, PipelineError
from .generate import GenerateSummary, generate
from .hashes import HASHES, available_algorithms, hash_file
from .manifest import MAGIC, ManifestEntry, ManifestWriter
from .records import FileRecord, InodeKey, InodeTracker
from .verify import VerifySummary, verify_manifest

__all__ = [
    "AggregateError",
    "EntryResolver",
    "ErrorAggregator",
    "ExcludeRules",
    "FailureKind",
    "FatalError",
    "FileRecord",
    "GenerateSummary",
    "GhashConfig",
    "HASHES",
    "HashResult",
    "InodeKey",
    "InodeTracker",
    "MAGIC",
    "ManifestCorruptError",
    "ManifestEntry",
    "ManifestWriter",
    "Pipeline",
    "PipelineError",
    "PipelineState",
    "ResolveAction",
    "VerifySummary",
    "WorkerPool",
    "available_algorithms",
    "generate",
    "hash_file",
    "verify_manifest",
    "__version__",
]
