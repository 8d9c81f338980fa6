"""
Per-deal mutual exclusion.

A deal folder is guarded by an in-process RLock keyed by its resolved path
plus an advisory lock file (``.deal.lock``) for other processes. The lock is
re-entrant within a thread: nested acquisitions reuse the lock file.

The lock file records host, pid and a random token. A holder on this host is
stale only once its process is gone; holders on other hosts (or records that
cannot be read) fall back to the file age. Breaking a stale lock is serialized
through a short-lived ``.takeover`` file. The stale file is renamed aside
and removed only if it still holds the record that was judged stale.
"""
import json
import logging
import os
import socket
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Union

from config import settings
from utils.errors import DealNotFoundError, LockTimeoutError, PipelineIOError
from utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

TAKEOVER_SUFFIX = ".takeover"

_registry_lock = threading.Lock()
# key -> [RLock, number of DealLock objects using it]
_thread_locks: Dict[str, List] = {}
_file_depth: Dict[str, int] = {}
# token written by the outermost acquisition of each key
_file_tokens: Dict[str, str] = {}


def lock_key(deal_path: Union[str, Path]) -> str:
    return str(Path(deal_path).resolve())


def _checkout(key: str) -> threading.RLock:
    with _registry_lock:
        slot = _thread_locks.setdefault(key, [threading.RLock(), 0])
        slot[1] += 1
        return slot[0]


def _checkin(key: str):
    with _registry_lock:
        slot = _thread_locks.get(key)
        if slot is None:
            return
        slot[1] -= 1
        if slot[1] <= 0:
            del _thread_locks[key]


def pid_alive(pid: int) -> bool:
    """Whether a process with this pid exists on this host"""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _read_record(path: Path) -> Optional[dict]:
    """Lock file contents; {} while unreadable or half written, None when absent"""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _file_age(path: Path) -> Optional[float]:
    try:
        return time.time() - path.stat().st_mtime
    except FileNotFoundError:
        return None


class DealLock:
    """
    Lock for one deal folder. Use via ``deal_lock(path)``.
    """

    def __init__(
        self,
        deal_path: Union[str, Path],
        timeout: Optional[float] = None,
        owner: Optional[str] = None,
    ):
        self.key = lock_key(deal_path)
        self.lock_file = Path(self.key) / settings.LOCK_FILE_NAME
        self.takeover_file = Path(self.key) / (settings.LOCK_FILE_NAME + TAKEOVER_SUFFIX)
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self.owner = owner or settings.ANALYST_ID
        self.host = socket.gethostname()
        self.token = uuid.uuid4().hex
        self._rlock: Optional[threading.RLock] = None

    def _timeout_error(self) -> LockTimeoutError:
        return LockTimeoutError(
            f"Timed out after {self.timeout}s waiting for deal lock",
            {'path': self.key, 'lockFile': str(self.lock_file)},
        )

    def is_stale(self, record: Optional[dict]) -> bool:
        """Whether the holder described by ``record`` can no longer own the lock"""
        if record is None:
            return False
        pid = record.get('pid')
        # os.kill(pid, 0) terminates the target on Windows
        if record.get('host') == self.host and isinstance(pid, int) and os.name != 'nt':
            # this thread holds the in-process lock, so a record with our pid is orphaned
            if pid == os.getpid():
                return True
            return not pid_alive(pid)
        age = _file_age(self.lock_file)
        return age is not None and age > settings.LOCK_STALE_SECONDS

    def _try_create(self) -> bool:
        try:
            fd = os.open(str(self.lock_file), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump({
                'owner': self.owner,
                'host': self.host,
                'pid': os.getpid(),
                'token': self.token,
                'acquiredAt': utc_now_iso(),
            }, f)
        return True

    def _break_stale(self, stale: dict) -> bool:
        """
        Remove the lock file if it still holds the ``stale`` record.
        Returns False when another waiter is mid-takeover or the record changed.
        """
        try:
            fd = os.open(str(self.takeover_file), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            age = _file_age(self.takeover_file)
            if age is not None and age > settings.LOCK_STALE_SECONDS:
                logger.warning("Removing abandoned lock takeover %s", self.takeover_file)
                try:
                    self.takeover_file.unlink()
                except FileNotFoundError:
                    pass
            return False
        os.close(fd)

        try:
            if _read_record(self.lock_file) != stale:
                return False
            claimed = self.lock_file.with_name(f"{settings.LOCK_FILE_NAME}.{self.token}.stale")
            try:
                os.rename(self.lock_file, claimed)
            except FileNotFoundError:
                return True
            if _read_record(claimed) == stale:
                logger.warning("Removed stale deal lock %s held by pid %s", self.lock_file, stale.get('pid'))
                claimed.unlink()
                return True
            # the holder changed between the check and the rename; hand its lock back
            try:
                os.link(claimed, self.lock_file)
            except FileExistsError:
                logger.error("Deal lock %s was replaced during takeover", self.lock_file)
            claimed.unlink()
            return False
        finally:
            try:
                self.takeover_file.unlink()
            except FileNotFoundError:
                pass

    def acquire(self):
        deadline = time.monotonic() + self.timeout
        self._rlock = _checkout(self.key)

        if not self._rlock.acquire(timeout=max(self.timeout, 0)):
            _checkin(self.key)
            raise self._timeout_error()

        if _file_depth.get(self.key, 0) > 0:
            _file_depth[self.key] += 1
            return

        try:
            if not self.lock_file.parent.is_dir():
                raise DealNotFoundError(f"No deal folder at {self.key}", {'path': self.key})
            while not self._try_create():
                record = _read_record(self.lock_file)
                if self.is_stale(record) and self._break_stale(record):
                    continue
                if time.monotonic() >= deadline:
                    raise self._timeout_error()
                time.sleep(settings.LOCK_POLL_INTERVAL_SECONDS)
        except (LockTimeoutError, DealNotFoundError):
            self._release_thread_lock()
            raise
        except OSError as e:
            self._release_thread_lock()
            raise PipelineIOError(f"Could not create deal lock: {e}", {'path': self.key}) from e

        _file_depth[self.key] = 1
        _file_tokens[self.key] = self.token

    def _release_thread_lock(self):
        self._rlock.release()
        _checkin(self.key)

    def release(self):
        depth = _file_depth.get(self.key, 0) - 1
        if depth <= 0:
            _file_depth.pop(self.key, None)
            token = _file_tokens.pop(self.key, None)
            record = _read_record(self.lock_file)
            if record is None:
                logger.warning("Deal lock %s was already removed", self.lock_file)
            elif record.get('token') != token:
                logger.warning("Deal lock %s is now held by another owner; leaving it", self.lock_file)
            else:
                try:
                    self.lock_file.unlink()
                except FileNotFoundError:
                    pass
        else:
            _file_depth[self.key] = depth
        self._release_thread_lock()

    def __enter__(self) -> 'DealLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


@contextmanager
def deal_lock(
    deal_path: Union[str, Path],
    timeout: Optional[float] = None,
    owner: Optional[str] = None,
):
    """Hold the per-deal lock for the duration of the block"""
    lock = DealLock(deal_path, timeout=timeout, owner=owner)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()
