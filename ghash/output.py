from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import IO, Optional, Union

from .errors import FatalError


class SafeFile:
    """Text file that only replaces its destination on a clean close.

    Content goes to a temporary sibling; :meth:`close` fsyncs it and moves it
    over the destination, :meth:`abort` throws it away. An existing
    destination is left alone unless ``force`` is set.
    """

    def __init__(self, path: Union[str, Path], force: bool = False, mode: int = 0o600) -> None:
        self.path = Path(path)
        if self.path.exists() and not force:
            raise FatalError(f"{self.path}: output file exists; use --force-overwrite")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        if hasattr(os, "fchmod"):
            os.fchmod(fd, mode)
        self._tmp = Path(tmp)
        self._handle: Optional[IO[str]] = os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="\n")
        self._done = False

    @property
    def name(self) -> str:
        return str(self.path)

    def write(self, text: str) -> int:
        if self._handle is None:
            raise ValueError("write to a closed SafeFile")
        return self._handle.write(text)

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.flush()

    def close(self) -> None:
        if self._done:
            return
        handle = self._handle
        self._handle = None
        self._done = True
        try:
            handle.flush()
            try:
                os.fsync(handle.fileno())
            except OSError:
                pass
        finally:
            handle.close()
        os.replace(str(self._tmp), str(self.path))

    def abort(self) -> None:
        if self._done:
            return
        self._done = True
        handle = self._handle
        self._handle = None
        if handle is not None:
            handle.close()
        try:
            self._tmp.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> "SafeFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


class _StdoutSink:
    """Same surface as :class:`SafeFile` for writing to stdout."""

    name = "<stdout>"

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self._stream = stream or sys.stdout

    def write(self, text: str) -> int:
        return self._stream.write(text)

    def flush(self) -> None:
        self._stream.flush()

    def close(self) -> None:
        self._stream.flush()

    def abort(self) -> None:
        self._stream.flush()

    def __enter__(self) -> "_StdoutSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_output(path: Optional[str], force: bool = False):
    if not path or path == "-":
        return _StdoutSink()
    return SafeFile(path, force=force)


__all__ = ["SafeFile", "open_output"]
