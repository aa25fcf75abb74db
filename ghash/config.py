from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .core import PARALLELISM
from .hashes import DEFAULT_ALGORITHM, HashFactory, get_factory
from .walk import WALK_FILE, WalkOptions


logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES = [".git", ".hg"]


def default_config_dir() -> Path:
    return Path.home() / ".ghash"


@dataclass
class GhashConfig:
    algorithm: str = DEFAULT_ALGORITHM
    recurse: bool = False
    follow_symlinks: bool = False
    one_filesystem: bool = False
    output: Optional[str] = None
    force: bool = False
    verify_from: Optional[str] = None
    parallelism: int = PARALLELISM
    excludes: List[str] = field(default_factory=list)

    def factory(self) -> HashFactory:
        return get_factory(self.algorithm)

    def walk_options(self) -> WalkOptions:
        return WalkOptions(
            follow_symlinks=self.follow_symlinks,
            one_filesystem=self.one_filesystem,
            excludes=list(self.excludes),
            kind=WALK_FILE,
        )


class ExcludeRules:
    """Walker exclusion patterns persisted as a JSON list."""

    def __init__(self, config_dir: Optional[Path] = None):
        self._lock = threading.Lock()
        self._dir = Path(config_dir) if config_dir else default_config_dir()
        self._path = self._dir / "excludes.json"
        self.patterns: List[str] = list(DEFAULT_EXCLUDES)
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("ignoring unreadable exclude list %s: %s", self._path, exc)
            return
        if isinstance(payload, list):
            self.patterns = [str(p) for p in payload]

    def save(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(sorted(set(self.patterns)), handle, ensure_ascii=False, indent=2)

    def add(self, pattern: str) -> None:
        with self._lock:
            if pattern not in self.patterns:
                self.patterns.append(pattern)
                self.save()

    def merged(self, extra: Optional[List[str]] = None) -> List[str]:
        combined = list(self.patterns)
        for pattern in extra or []:
            if pattern not in combined:
                combined.append(pattern)
        return combined


__all__ = ["DEFAULT_EXCLUDES", "ExcludeRules", "GhashConfig", "default_config_dir"]
