from __future__ import annotations

import os
import stat
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, NamedTuple, Optional


class EntryKind(str, Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    OTHER = "other"

    @classmethod
    def from_mode(cls, mode: int) -> "EntryKind":
        if stat.S_ISREG(mode):
            return cls.FILE
        if stat.S_ISDIR(mode):
            return cls.DIR
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        return cls.OTHER


class InodeKey(NamedTuple):
    dev: int
    rdev: int
    ino: int


@dataclass(frozen=True)
class FileRecord:
    path: str
    dev: int
    rdev: int
    ino: int
    size: int
    mtime: float
    kind: EntryKind

    @classmethod
    def from_stat(cls, path: str, st: os.stat_result) -> "FileRecord":
        return cls(
            path=path,
            dev=int(st.st_dev),
            rdev=int(getattr(st, "st_rdev", 0) or 0),
            ino=int(st.st_ino),
            size=int(st.st_size),
            mtime=float(st.st_mtime),
            kind=EntryKind.from_mode(st.st_mode),
        )

    @property
    def key(self) -> InodeKey:
        return InodeKey(self.dev, self.rdev, self.ino)

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE


class InodeTracker:
    """Identities admitted during one traversal.

    The dispatcher and the workers may call :meth:`seen` at the same time;
    the first caller for a key stores its record and every later caller is
    told the key was already seen.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seen: Dict[InodeKey, FileRecord] = {}

    def seen(self, key: InodeKey, record: FileRecord) -> bool:
        with self._lock:
            if key in self._seen:
                return True
            self._seen[key] = record
            return False

    def first(self, key: InodeKey) -> Optional[FileRecord]:
        with self._lock:
            return self._seen.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._seen


__all__ = ["EntryKind", "FileRecord", "InodeKey", "InodeTracker"]
