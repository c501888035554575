"""
Per-key mutual exclusion for invoice and transaction updates.

Operations on the same invoice are serialized; operations on different
invoices run in parallel.  A key's lock exists only while some caller
holds or waits on it, so the registry stays as small as the set of
invoices currently being worked on.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


def invoice_key(invoice_id: str) -> str:
    return f"invoice:{invoice_id}"


def transaction_key(transaction_id: str) -> str:
    return f"transaction:{transaction_id}"


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class KeyedLockRegistry:
    """
    Hands out one lock per key.

    ``hold`` acquires several keys in sorted order so that two callers
    locking the same pair cannot deadlock.  Entries are reference counted
    and dropped when the last holder or waiter leaves.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    def _checkout(self, key: str) -> threading.Lock:
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._registry_lock:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        ordered = sorted(set(keys))
        checked_out: list[str] = []
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in reversed(checked_out):
                self._checkin(key)
