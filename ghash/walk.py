from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from .errors import FailureKind, PipelineError
from .records import EntryKind, FileRecord, InodeTracker


logger = logging.getLogger(__name__)

WALK_FILE = "file"
WALK_SYMLINK = "symlink"
WALK_ANY = "any"


@dataclass
class WalkOptions:
    follow_symlinks: bool = False
    one_filesystem: bool = False
    excludes: Sequence[str] = field(default_factory=list)
    kind: str = WALK_FILE


def _excluded(path: str, name: str, patterns: Sequence[str]) -> bool:
    for pattern in patterns:
        if name == pattern or fnmatch.fnmatch(name, pattern):
            return True
        if fnmatch.fnmatch(path, pattern) or path.startswith(pattern.rstrip("/") + "/"):
            return True
    return False


def _wanted(record: FileRecord, kind: str) -> bool:
    if kind == WALK_ANY:
        return True
    if kind == WALK_SYMLINK:
        return record.kind is EntryKind.SYMLINK
    return record.kind is EntryKind.FILE


def walk(
    roots: Iterable[str],
    options: Optional[WalkOptions] = None,
    on_error: Optional[Callable[[PipelineError], None]] = None,
) -> Iterator[FileRecord]:
    """Lazily yield records for every entry under ``roots``.

    Directories are descended with an explicit stack. When links are
    followed each directory identity is visited once, which keeps link
    cycles from looping. Errors are handed to ``on_error`` and the walk
    carries on with the next entry.
    """
    opts = options or WalkOptions()
    visited_dirs = InodeTracker()

    def _report(path: str, kind: FailureKind, exc: object) -> None:
        if on_error is not None:
            on_error(PipelineError(kind, path, exc))
        else:
            logger.warning("%s: %s", path, exc)

    for root in roots:
        root = os.fspath(root)
        try:
            st = os.stat(root) if opts.follow_symlinks else os.lstat(root)
        except OSError as exc:
            _report(root, FailureKind.STAT, exc)
            continue
        record = FileRecord.from_stat(root, st)
        if record.kind is not EntryKind.DIR:
            if _wanted(record, opts.kind):
                yield record
            continue
        root_dev = record.dev
        stack: List[FileRecord] = [record]
        visited_dirs.seen(record.key, record)
        if opts.kind == WALK_ANY:
            yield record
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current.path) as entries:
                    children = sorted(entries, key=lambda e: e.name, reverse=True)
            except OSError as exc:
                _report(current.path, FailureKind.READ, exc)
                continue
            for entry in children:
                if _excluded(entry.path, entry.name, opts.excludes):
                    continue
                try:
                    if entry.is_symlink() and opts.follow_symlinks:
                        child_st = os.stat(entry.path)
                    else:
                        child_st = entry.stat(follow_symlinks=False)
                except OSError as exc:
                    kind = FailureKind.SYMLINK if entry.is_symlink() else FailureKind.STAT
                    _report(entry.path, kind, exc)
                    continue
                child = FileRecord.from_stat(entry.path, child_st)
                if child.kind is EntryKind.DIR:
                    if opts.one_filesystem and child.dev != root_dev:
                        logger.debug("not crossing into %s", child.path)
                        continue
                    if visited_dirs.seen(child.key, child):
                        continue
                    stack.append(child)
                    if opts.kind == WALK_ANY:
                        yield child
                    continue
                if _wanted(child, opts.kind):
                    yield child


__all__ = ["WALK_ANY", "WALK_FILE", "WALK_SYMLINK", "WalkOptions", "walk"]
