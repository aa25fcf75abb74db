from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Dict, List, Protocol, Tuple, Union

from .errors import UnknownAlgorithmError


_CHUNK_SIZE = 4 * 1024 * 1024
_ZERO_KEY = bytes(32)

DEFAULT_ALGORITHM = "sha256"


class HashCapability(Protocol):
    def update(self, data: bytes) -> None: ...

    def digest(self) -> bytes: ...


HashFactory = Callable[[], HashCapability]


# Keyed blake2 uses a fixed all-zero key so digests are reproducible.
HASHES: Dict[str, HashFactory] = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
    "sha3": hashlib.sha3_512,
    "sha3-256": hashlib.sha3_256,
    "sha3-512": hashlib.sha3_512,
    "blake2s": lambda: hashlib.blake2s(key=_ZERO_KEY),
    "blake2b": lambda: hashlib.blake2b(key=_ZERO_KEY),
    "blake2b-256": lambda: hashlib.blake2b(digest_size=32, key=_ZERO_KEY),
    "blake2b-512": lambda: hashlib.blake2b(key=_ZERO_KEY),
}


def available_algorithms() -> List[str]:
    return sorted(HASHES)


def get_factory(name: str) -> HashFactory:
    """Look up a hash constructor; unknown names are a setup error."""
    factory = HASHES.get(name)
    if factory is None:
        raise UnknownAlgorithmError(name)
    return factory


def hash_file(path: Union[str, Path], factory: HashFactory) -> Tuple[bytes, int]:
    """Stream ``path`` through a fresh hash object.

    Returns the digest and the number of bytes actually read, which can
    differ from the size reported by ``stat`` if the file changes underneath.
    """
    hasher = factory()
    total = 0
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(_CHUNK_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
            total += len(chunk)
    return hasher.digest(), total


__all__ = [
    "DEFAULT_ALGORITHM",
    "HASHES",
    "HashCapability",
    "HashFactory",
    "available_algorithms",
    "get_factory",
    "hash_file",
]
