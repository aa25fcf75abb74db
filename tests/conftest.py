from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def write_file(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def files(tmp_path: Path):
    def _make(count: int, prefix: str = "file") -> list:
        return [write_file(tmp_path / f"{prefix}{i}.bin", f"payload {i}\n".encode() * (i + 1)) for i in range(count)]

    return _make
