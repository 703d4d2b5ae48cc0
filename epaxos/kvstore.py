"""Thread-safe in-memory string-to-string store."""

from __future__ import annotations

import threading

from .logger import get_logger
from .logutil import log_kvstore_operation
from .model import Command, CommandType


class KVStoreError(Exception):
    """Raised when a command cannot be applied to the store."""


class KVStore:
    """A simple in-memory key-value map guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    def put(self, key: str, value: str) -> None:
        """Set ``key`` to ``value``."""
        with self._lock:
            self._store[key] = value
        if get_logger() is not None:
            log_kvstore_operation(0, "PUT", key, value, True, None)

    def get(self, key: str) -> str | None:
        """Return the value stored for ``key``, or None if it is absent."""
        with self._lock:
            value = self._store.get(key)
        if get_logger() is not None:
            if value is None:
                log_kvstore_operation(0, "GET", key, "", False, KVStoreError("key not found"))
            else:
                log_kvstore_operation(0, "GET", key, value, True, None)
        return value

    def apply_command(self, cmd: Command) -> str:
        """Apply a command and return its result; raise KVStoreError on failure."""
        if cmd.type == CommandType.PUT:
            self.put(cmd.key, cmd.value)
            return cmd.value
        if cmd.type == CommandType.GET:
            value = self.get(cmd.key)
            if value is None:
                raise KVStoreError("key not found")
            return value
        raise KVStoreError("unknown command type")