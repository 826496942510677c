"""
Persistence collaborator: a small synchronized key/value area.

Every process talks to the same logical area. Writers call set(); every
subscriber (the writer included) then receives the changed keys with their
old and new values, which is how processes learn about each other's edits.
Changes are delivered in commit order, and a failing subscriber never keeps
the others (or the writer) from seeing a committed write.
"""
from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, Iterator, List, Optional

try:
    import fcntl
except ImportError:  # Windows: in-process locking only
    fcntl = None

from error_handling import PersistenceError
from organizer_config import StorageConfig
from utils.event_logger import EventLogger, get_event_logger


@dataclass
class StorageChange:
    old_value: Any = None
    new_value: Any = None


ChangeListener = Callable[[Dict[str, StorageChange], str], None]


class SyncStorage(ABC):
    """Abstract base class for the synchronized storage area."""

    area_name: str = "sync"

    @abstractmethod
    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Values of the requested keys; absent keys are omitted."""
        pass

    @abstractmethod
    def set(self, record: Dict[str, Any]) -> None:
        """
        Write all keys of ``record``.

        Raises:
            PersistenceError: the write failed or the quota would be exceeded
        """
        pass

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it."""
        pass

    def poll(self) -> Dict[str, StorageChange]:
        """Pick up writes made outside this instance; push-notified areas have none."""
        return {}

    @staticmethod
    def from_config(config: StorageConfig, logger: Optional[EventLogger] = None) -> SyncStorage:
        """File-backed area when ``file_path`` is set, in-memory otherwise."""
        if config.file_path:
            return JsonFileSyncStorage(
                config.file_path,
                quota_bytes=config.quota_bytes,
                area_name=config.area_name,
                logger=logger,
            )
        return MemorySyncStorage(quota_bytes=config.quota_bytes, area_name=config.area_name, logger=logger)


def encoded_size(data: Dict[str, Any]) -> int:
    """UTF-8 byte size of the area: every key plus its compact JSON value."""
    return sum(
        len(key.encode("utf-8"))
        + len(json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
        for key, value in data.items()
    )


def diff_areas(old: Dict[str, Any], new: Dict[str, Any],
               keys: Optional[Iterable[str]] = None) -> Dict[str, StorageChange]:
    """Per-key changes from ``old`` to ``new``; a removed key changes to None."""
    if keys is None:
        keys = list(old) + [key for key in new if key not in old]
    return {
        key: StorageChange(copy.deepcopy(old.get(key)), copy.deepcopy(new.get(key)))
        for key in keys
        if (key in old) != (key in new) or old.get(key) != new.get(key)
    }


class MemorySyncStorage(SyncStorage):
    """
    Thread-safe in-process storage area with a byte quota.

    Values are deep-copied on the way in and out so no caller can mutate
    stored state behind the area's back.
    """

    def __init__(self, quota_bytes: int = 102_400, area_name: str = "sync",
                 initial: Optional[Dict[str, Any]] = None, logger: Optional[EventLogger] = None):
        self.quota_bytes = quota_bytes
        self.area_name = area_name
        self._logger = logger
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._listeners: List[ChangeListener] = []
        self._lock = threading.RLock()
        # held from commit through delivery so batches reach listeners in commit order
        self._dispatch_lock = threading.RLock()
        self._pending: Deque[Dict[str, StorageChange]] = deque()
        self._dispatching = False
        self.write_count = 0

    @property
    def logger(self) -> EventLogger:
        return self._logger or get_event_logger()

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

    def bytes_in_use(self) -> int:
        with self._lock:
            return encoded_size(self._data)

    def set(self, record: Dict[str, Any]) -> None:
        try:
            incoming = json.loads(json.dumps(record))
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value is not JSON serializable: {e}") from e

        with self._dispatch_lock:
            with self._lock:
                candidate = dict(self._data)
                candidate.update(incoming)
                size = encoded_size(candidate)
                if size > self.quota_bytes:
                    raise PersistenceError(
                        f"QUOTA_BYTES quota exceeded ({size} > {self.quota_bytes})",
                        is_quota=True,
                        size_bytes=size,
                    )
                changes = diff_areas(self._data, candidate, keys=incoming)
                self._write_through(candidate)
                self._data = candidate
                self.write_count += 1
            self._publish(changes)

    def _write_through(self, data: Dict[str, Any]) -> None:
        """Hook for durable subclasses; called under the lock before the write is committed."""

    def _publish(self, changes: Dict[str, StorageChange]) -> None:
        """
        Deliver ``changes`` to every listener. Caller holds the dispatch lock.

        A write made from inside a listener is queued behind the batch being
        delivered instead of overtaking it.
        """
        if changes:
            self._pending.append(changes)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                batch = self._pending.popleft()
                with self._lock:
                    listeners = list(self._listeners)
                for listener in listeners:
                    try:
                        listener(batch, self.area_name)
                    except Exception as e:
                        self.logger.system_error("Storage change listener failed", error=e, keys=",".join(batch))
        finally:
            self._dispatching = False

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return _unsubscribe


class JsonFileSyncStorage(MemorySyncStorage):
    """
    Storage area shared through a JSON file.

    Several instances (one per process) may point at the same file. Each
    write is a locked read-modify-write of the whole file, so keys written by
    other instances survive. get() and poll() re-read the file and report
    what other instances changed to this instance's subscribers.
    """

    lock_timeout: float = 10.0

    def __init__(self, file_path: str, quota_bytes: int = 102_400, area_name: str = "sync",
                 logger: Optional[EventLogger] = None):
        self.file_path = file_path
        self.lock_path = f"{file_path}.lock"
        self._file_mutex = threading.RLock()
        self._file_lock_depth = 0
        super().__init__(quota_bytes=quota_bytes, area_name=area_name, initial=self._read(), logger=logger)

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        """Cross-process advisory lock on a sidecar file; re-entrant within the instance."""
        with self._file_mutex:
            self._file_lock_depth += 1
            try:
                if self._file_lock_depth > 1 or fcntl is None:
                    yield
                    return
                directory = os.path.dirname(os.path.abspath(self.lock_path))
                try:
                    os.makedirs(directory, exist_ok=True)
                    fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o600)
                except OSError as e:
                    raise PersistenceError(f"Could not open {self.lock_path}: {e}") from e
                try:
                    deadline = time.monotonic() + self.lock_timeout
                    while True:
                        try:
                            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                            break
                        except BlockingIOError:
                            if time.monotonic() >= deadline:
                                raise PersistenceError(f"Storage file is busy: {self.lock_path}")
                            time.sleep(0.05)
                    try:
                        yield
                    finally:
                        fcntl.flock(fd, fcntl.LOCK_UN)
                finally:
                    os.close(fd)
            finally:
                self._file_lock_depth -= 1

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {self.file_path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def poll(self) -> Dict[str, StorageChange]:
        """Reload the file and notify subscribers of keys other instances changed."""
        with self._file_lock():
            on_disk = self._read()
            with self._dispatch_lock:
                with self._lock:
                    changes = diff_areas(self._data, on_disk)
                    if changes:
                        self._data = on_disk
                self._publish(changes)
        return changes

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        self.poll()
        return super().get(keys)

    def set(self, record: Dict[str, Any]) -> None:
        with self._file_lock():
            self.poll()
            super().set(record)

    def _write_through(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.file_path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".sync-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.file_path)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.file_path}: {e}") from e
