"""
speechsampler.extract.tempfiles - Temporary artifact lifecycle.

Every extraction attempt writes to its own uniquely-named temp path, so no
file-level locking is needed. Paths are tracked until the caller releases
or cleans them up; a TempScope groups the paths of one unit of work and
deletes everything it did not keep, or everything when the unit fails or
is cancelled.
"""

from __future__ import annotations

import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from speechsampler.logging import get_logger

logger = get_logger("extract.tempfiles")

DEFAULT_DIR_NAME = "speechsampler_audio"


@dataclass(frozen=True)
class TempFileInfo:
    path: Path
    created_at: float
    purpose: str


@dataclass
class TempFileStats:
    total_files: int
    total_size_bytes: int
    by_purpose: dict[str, int] = field(default_factory=dict)
    oldest: TempFileInfo | None = None


class TempFileManager:
    """Thread-safe registry of temporary files created by the sampler."""

    def __init__(self, root: Path | None = None, prefix: str = "speechsampler") -> None:
        self.root = root or Path(tempfile.gettempdir()) / DEFAULT_DIR_NAME
        self.prefix = prefix
        self._lock = threading.Lock()
        self._tracked: dict[Path, TempFileInfo] = {}

    def create_temp_path(self, suffix: str = "wav", purpose: str = "audio") -> Path:
        """Allocate and track a unique path; the file itself is not created."""
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{self.prefix}_{purpose}_{uuid.uuid4().hex}.{suffix.lstrip('.')}"
        self.track(path, purpose=purpose)
        return path

    def track(self, path: Path, purpose: str = "unknown") -> None:
        with self._lock:
            self._tracked[path] = TempFileInfo(path=path, created_at=time.time(), purpose=purpose)

    def untrack(self, path: Path) -> None:
        """Stop tracking a file without deleting it."""
        with self._lock:
            self._tracked.pop(path, None)

    def release(self, path: Path) -> Path:
        """Hand ownership of ``path`` to the caller."""
        self.untrack(path)
        return path

    def is_tracked(self, path: Path) -> bool:
        with self._lock:
            return path in self._tracked

    def tracked_paths(self) -> list[Path]:
        with self._lock:
            return list(self._tracked)

    def cleanup(self, path: Path) -> bool:
        """Delete one temp file immediately. Returns True if a file was removed."""
        self.untrack(path)
        try:
            if path.exists():
                path.unlink()
                logger.debug("Cleaned up %s", path.name)
                return True
        except OSError as e:
            logger.warning("Failed to clean up %s: %s", path.name, e)
        return False

    def cleanup_all(self) -> int:
        """Delete every tracked file. Returns the number removed."""
        with self._lock:
            paths = list(self._tracked)
            self._tracked.clear()

        removed = 0
        failed = 0
        for path in paths:
            try:
                if path.exists():
                    path.unlink()
                    removed += 1
            except OSError as e:
                failed += 1
                logger.warning("Failed to clean up %s: %s", path.name, e)

        if removed or failed:
            logger.info("Cleaned up %d temp files, %d failed", removed, failed)
        return removed

    def cleanup_older_than(self, age: float) -> int:
        """Delete tracked files created more than ``age`` seconds ago."""
        cutoff = time.time() - age
        with self._lock:
            old = [info.path for info in self._tracked.values() if info.created_at < cutoff]
        return sum(1 for path in old if self.cleanup(path))

    def purge_orphans(self) -> int:
        """Delete untracked files left in the temp root by earlier runs."""
        if not self.root.exists():
            return 0
        with self._lock:
            tracked = set(self._tracked)

        purged = 0
        for path in self.root.iterdir():
            if path in tracked or not path.is_file() or not path.name.startswith(self.prefix):
                continue
            try:
                path.unlink()
                purged += 1
            except OSError as e:
                logger.warning("Failed to purge orphan %s: %s", path.name, e)

        if purged:
            logger.info("Purged %d orphaned temp files", purged)
        return purged

    def stats(self) -> TempFileStats:
        with self._lock:
            infos = list(self._tracked.values())

        total_size = 0
        by_purpose: dict[str, int] = {}
        for info in infos:
            by_purpose[info.purpose] = by_purpose.get(info.purpose, 0) + 1
            try:
                total_size += info.path.stat().st_size
            except OSError:
                continue

        return TempFileStats(
            total_files=len(infos),
            total_size_bytes=total_size,
            by_purpose=by_purpose,
            oldest=min(infos, key=lambda info: info.created_at) if infos else None,
        )

    def scope(self) -> TempScope:
        return TempScope(self)


class TempScope:
    """Paths allocated for one unit of work.

    On normal exit, every path not marked with ``keep`` is deleted. On an
    exception (including cancellation) every path is deleted.
    """

    def __init__(self, manager: TempFileManager) -> None:
        self.manager = manager
        self._lock = threading.Lock()
        self._paths: list[Path] = []
        self._kept: set[Path] = set()

    def create(self, suffix: str = "wav", purpose: str = "audio") -> Path:
        path = self.manager.create_temp_path(suffix=suffix, purpose=purpose)
        with self._lock:
            self._paths.append(path)
        return path

    def keep(self, path: Path) -> Path:
        with self._lock:
            self._kept.add(path)
        return path

    def discard(self, path: Path) -> None:
        """Delete a path now (e.g. the artifact of a failed attempt)."""
        with self._lock:
            self._kept.discard(path)
        self.manager.cleanup(path)

    @property
    def kept(self) -> list[Path]:
        with self._lock:
            return [path for path in self._paths if path in self._kept]

    def close(self, keep_results: bool = True) -> None:
        with self._lock:
            paths = list(self._paths)
            kept = set(self._kept) if keep_results else set()
            self._paths.clear()
        for path in paths:
            if path not in kept:
                self.manager.cleanup(path)

    def __enter__(self) -> TempScope:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close(keep_results=exc_type is None)
