from __future__ import annotations

import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, Iterable, Iterator, Optional, Tuple, Union

from . import __version__
from .errors import ManifestCorruptError, ManifestLineError, UnknownAlgorithmError
from .hashes import HASHES


MAGIC = "#!ghash"
STDIN = "-"

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
}
_UNESCAPES = {v[1]: k for k, v in _ESCAPES.items()}


@dataclass(frozen=True)
class ManifestEntry:
    digest: str
    size: int
    path: str
    line: int = 0


@dataclass(frozen=True)
class ManifestHeader:
    algorithm: str
    version: str


# ----------------------------------------------------------------- quoting --


def needs_quoting(path: str) -> bool:
    if not path:
        return True
    if path[0] == '"' or "|" in path or path != path.strip():
        return True
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F or 0xDC80 <= ord(ch) <= 0xDCFF for ch in path)


def quote_path(path: str) -> str:
    out = ['"']
    for ch in path:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\x{ord(ch):02x}")
        elif 0xDC80 <= ord(ch) <= 0xDCFF:
            # undecodable filename byte carried as a lone surrogate
            out.append(f"\\x{ord(ch) - 0xDC00:02x}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def unquote_path(text: str) -> str:
    """Reverse :func:`quote_path`; raises ``ValueError`` on bad input."""
    if len(text) < 2 or text[0] != '"' or text[-1] != '"':
        raise ValueError("unterminated quoted filename")
    body = text[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == '"':
            raise ValueError("unescaped quote in filename")
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(body):
            raise ValueError("dangling escape in filename")
        code = body[i + 1]
        if code in _UNESCAPES:
            out.append(_UNESCAPES[code])
            i += 2
        elif code == "x":
            digits = body[i + 2 : i + 4]
            if len(digits) != 2:
                raise ValueError("short \\x escape in filename")
            value = int(digits, 16)
            out.append(chr(value) if value < 0x80 else chr(0xDC00 + value))
            i += 4
        else:
            raise ValueError(f"unknown escape \\{code} in filename")
    return "".join(out)


# ---------------------------------------------------------------- encoding --


def format_header(algorithm: str, version: str = __version__) -> str:
    return f"{MAGIC} {algorithm} {version}"


def format_entry(digest: Union[bytes, str], size: int, path: str) -> str:
    hexdigest = digest.hex() if isinstance(digest, (bytes, bytearray)) else digest
    name = quote_path(path) if needs_quoting(path) else path
    return f"{hexdigest}|{size}|{name}"


class ManifestWriter:
    """Writes the header immediately and one line per :meth:`write` call."""

    def __init__(self, handle: IO[str], algorithm: str, version: str = __version__) -> None:
        self._handle = handle
        self._lock = threading.Lock()
        self.count = 0
        self._handle.write(format_header(algorithm, version) + "\n")

    def write(self, digest: Union[bytes, str], size: int, path: str) -> None:
        line = format_entry(digest, size, path)
        with self._lock:
            self._handle.write(line + "\n")
            self.count += 1

    def write_result(self, result) -> None:
        self.write(result.digest, result.size, result.path)

    def flush(self) -> None:
        self._handle.flush()


# ---------------------------------------------------------------- decoding --


def read_header(first_line: Optional[str], manifest: str) -> ManifestHeader:
    if first_line is None or not first_line.strip():
        raise ManifestCorruptError(manifest, "possibly corrupt; can't read first line")
    fields = first_line.strip().split(" ")
    if len(fields) < 3:
        raise ManifestCorruptError(manifest, "possibly corrupt; not enough fields in header")
    if fields[0] != MAGIC:
        raise ManifestCorruptError(manifest, "not a ghash file")
    if fields[1] not in HASHES:
        raise UnknownAlgorithmError(fields[1], where=manifest)
    return ManifestHeader(fields[1], fields[2])


def parse_entry(line: str, lineno: int, manifest: str) -> ManifestEntry:
    text = line.strip()
    digest, sep, rest = text.partition("|")
    if not sep:
        raise ManifestLineError(manifest, lineno, "malformed checksum")
    size_text, sep, name = rest.partition("|")
    if not sep:
        raise ManifestLineError(manifest, lineno, "malformed file size")
    try:
        size = int(size_text, 10)
    except ValueError:
        raise ManifestLineError(manifest, lineno, f"malformed line; size {size_text!r}") from None
    if size < 0:
        raise ManifestLineError(manifest, lineno, f"malformed line; negative size {size}")
    if not name:
        raise ManifestLineError(manifest, lineno, "malformed line; empty filename")
    if name[0] == '"':
        try:
            name = unquote_path(name)
        except ValueError as exc:
            raise ManifestLineError(manifest, lineno, f"malformed line; filename {exc}") from None
    return ManifestEntry(digest.lower(), size, name, lineno)


def iter_entries(
    lines: Iterable[str], manifest: str, start: int = 2
) -> Iterator[Union[ManifestEntry, ManifestLineError]]:
    """Yield an entry or a line error for every non-blank line.

    Bad lines never stop the scan. ``start`` is the 1-based number of the
    first line in ``lines`` (the header occupies line 1).
    """
    for lineno, line in enumerate(lines, start=start):
        if not line.strip():
            continue
        try:
            yield parse_entry(line, lineno, manifest)
        except ManifestLineError as exc:
            yield exc


def read_manifest(handle: IO[str], manifest: str) -> Tuple[ManifestHeader, Iterator[Union[ManifestEntry, ManifestLineError]]]:
    first = handle.readline()
    header = read_header(first or None, manifest)
    return header, iter_entries(handle, manifest)


@contextmanager
def open_manifest(source: Union[str, IO[str], None]) -> Iterator[Tuple[IO[str], str]]:
    """Open a manifest path, ``-`` for stdin, or pass a text stream through."""
    if source is None or source == STDIN:
        yield sys.stdin, "<stdin>"
        return
    if not isinstance(source, str):
        yield source, getattr(source, "name", "<stream>")
        return
    try:
        handle = open(source, "r", encoding="utf-8", errors="surrogateescape", newline="\n")
    except OSError as exc:
        raise ManifestCorruptError(source, f"can't open: {exc.strerror or exc}") from exc
    with handle:
        yield handle, source


__all__ = [
    "MAGIC",
    "ManifestEntry",
    "ManifestHeader",
    "ManifestWriter",
    "format_entry",
    "format_header",
    "iter_entries",
    "needs_quoting",
    "open_manifest",
    "parse_entry",
    "quote_path",
    "read_header",
    "read_manifest",
    "unquote_path",
]
