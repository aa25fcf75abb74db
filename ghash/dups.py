from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from .config import DEFAULT_EXCLUDES
from .core import PARALLELISM, EntryResolver, Pipeline, dispatch_walked, pool_size
from .errors import FatalError, PipelineError
from .hashes import get_factory, hash_file
from .records import FileRecord, InodeTracker
from .walk import WALK_FILE, WalkOptions, walk


DUPS_ALGORITHM = "blake2b"


@dataclass
class DuplicateGroup:
    digest: str
    records: List[FileRecord]

    def names(self) -> List[str]:
        return [r.path for r in self.records]


@dataclass
class DuplicateReport:
    groups: List[DuplicateGroup] = field(default_factory=list)
    failures: List[PipelineError] = field(default_factory=list)

    def render(self, shell: bool = False) -> Iterator[str]:
        for group in self.groups:
            yield ""
            yield f"# {group.digest}"
            names = group.names()
            if shell:
                yield f"# rm -f {shlex.quote(names[0])}"
                for name in names[1:]:
                    yield f"rm -f {shlex.quote(name)}"
            else:
                yield "    " + "\n    ".join(names)


def find_duplicates(
    roots: Sequence[str],
    follow_symlinks: bool = False,
    one_filesystem: bool = False,
    excludes: Optional[Sequence[str]] = None,
    parallelism: int = PARALLELISM,
) -> DuplicateReport:
    """Group files under ``roots`` that share a keyed blake2b digest.

    Hard links and repeated symlinks count once. Within a group the most
    recently modified file comes first.
    """
    if not roots:
        raise FatalError("insufficient arguments; nothing to scan")
    factory = get_factory(DUPS_ALGORITHM)
    by_digest: Dict[str, List[FileRecord]] = {}

    def _hash(record: FileRecord):
        digest, _ = hash_file(record.path, factory)
        return digest.hex(), record

    def _sink(pair) -> None:
        digest, record = pair
        by_digest.setdefault(digest, []).append(record)

    options = WalkOptions(
        follow_symlinks=follow_symlinks,
        one_filesystem=one_filesystem,
        excludes=list(DEFAULT_EXCLUDES if excludes is None else excludes),
        kind=WALK_FILE,
    )
    resolver = EntryResolver(InodeTracker(), follow_symlinks=follow_symlinks)

    def _produce(emit, report):
        dispatch_walked(walk(list(roots), options, on_error=report), resolver, emit, report)

    pipeline = Pipeline(_hash, pool_size(parallelism=parallelism), sink=_sink)
    aggregate = pipeline.run(_produce)

    report = DuplicateReport(failures=aggregate.failures if aggregate else [])
    for digest in sorted(by_digest):
        records = by_digest[digest]
        if len(records) < 2:
            continue
        records.sort(key=lambda r: r.mtime, reverse=True)
        report.groups.append(DuplicateGroup(digest, records))
    return report


__all__ = ["DuplicateGroup", "DuplicateReport", "find_duplicates"]
