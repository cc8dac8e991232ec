"""
Filesystem helpers shared by the mailbox, task and team stores.
"""

import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

import portalocker

from teamctl.errors import CorruptStateError, LockTimeoutError


def ensure_dir(p: Path):
    p.mkdir(parents=True, exist_ok=True)


def atomic_write(path: Path, content: str) -> None:
    """
    Write content to `path` atomically: write to a temp file, then rename.
    Readers never observe a half-written document.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name + ".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def read_json(path: Path, empty: Any = None) -> Any:
    """
    Parse the JSON document at `path`. A blank file yields `empty`.

    Raises:
        FileNotFoundError: if the file does not exist
        CorruptStateError: if the content is not valid JSON
    """
    raw = Path(path).read_text(encoding="utf-8")
    if not raw.strip():
        return empty
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptStateError(path, str(e)) from e


def write_json(path: Path, data: Any, indent: int = 2) -> None:
    atomic_write(path, json.dumps(data, indent=indent, ensure_ascii=False))


# One in-process mutex per lock file; flock does not serialize threads on every platform
_thread_locks: Dict[str, threading.Lock] = {}
_thread_locks_guard = threading.Lock()


def _thread_lock_for(path: Path) -> threading.Lock:
    key = str(path)
    with _thread_locks_guard:
        if key not in _thread_locks:
            _thread_locks[key] = threading.Lock()
        return _thread_locks[key]


class FileLock:
    """
    Exclusive advisory lock on `<target>.lock`, used as a context manager.

    Acquisition is non-blocking with bounded retries and exponential backoff
    (min_wait doubling up to max_wait). A lock file whose holder has kept it
    longer than `stale_after` seconds is presumed abandoned: it is unlinked so
    the next attempt locks a fresh file. Raises LockTimeoutError once the
    retry budget is spent. The lock is released on every exit path.
    """

    def __init__(
        self,
        target: Path,
        retries: int = 5,
        min_wait: float = 0.05,
        max_wait: float = 0.5,
        stale_after: float = 10.0,
    ):
        self.target = Path(target)
        self.path = self.target.with_name(self.target.name + ".lock")
        self.retries = retries
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.stale_after = stale_after
        self._fh = None
        self._thread_lock = _thread_lock_for(self.path)

    def _delays(self):
        return [min(self.min_wait * (2 ** i), self.max_wait) for i in range(self.retries)]

    def __enter__(self) -> "FileLock":
        delays = self._delays()
        budget = sum(delays) + self.stale_after
        if not self._thread_lock.acquire(timeout=budget):
            raise LockTimeoutError(self.target, self.retries + 1)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            for attempt in range(self.retries + 1):
                if self._try_acquire():
                    return self
                if attempt < self.retries:
                    self._reclaim_if_stale()
                    time.sleep(delays[attempt])
            raise LockTimeoutError(self.target, self.retries + 1)
        except BaseException:
            self._thread_lock.release()
            raise

    def __exit__(self, exc_type, exc, tb):
        try:
            if self._fh is not None:
                portalocker.unlock(self._fh)
                self._fh.close()
        finally:
            self._fh = None
            self._thread_lock.release()

    def _try_acquire(self) -> bool:
        fh = open(self.path, "a+")
        try:
            portalocker.lock(fh, portalocker.LOCK_EX | portalocker.LOCK_NB)
        except portalocker.LockException:
            fh.close()
            return False

        # The file may have been reclaimed between open() and lock()
        held = os.fstat(fh.fileno())
        try:
            current = os.stat(self.path)
        except FileNotFoundError:
            current = None
        if current is None or (held.st_ino, held.st_dev) != (current.st_ino, current.st_dev):
            portalocker.unlock(fh)
            fh.close()
            return False

        os.utime(self.path)  # acquisition time, read by _reclaim_if_stale
        self._fh = fh
        return True

    def _reclaim_if_stale(self) -> None:
        try:
            age = time.time() - os.stat(self.path).st_mtime
        except FileNotFoundError:
            return
        if age > self.stale_after:
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass


def lock_from_settings(target: Path, settings: Optional[Any] = None) -> FileLock:
    """Build a FileLock for `target` using the retry/staleness values in settings."""
    if settings is None:
        from teamctl.config import get_settings
        settings = get_settings()
    return FileLock(
        target,
        retries=settings.lock_retries,
        min_wait=settings.lock_min_wait,
        max_wait=settings.lock_max_wait,
        stale_after=settings.lock_stale_after,
    )
