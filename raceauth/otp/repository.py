"""
OTP storage interfaces.

The repositories only ever see sealed strings and issuance timestamps;
OTPIssuer and OTPValidator do the sealing. In-memory implementations are
provided for tests and single-process deployments. A shared backend must
offer an atomic conditional update to keep validation at-most-once across
processes; KeyedLocks only serializes callers within one process.
"""

import threading
import weakref
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from ..config import OTP_HISTORY_SIZE


class OTPRepository(ABC):
    """Sealed OTP storage keyed by normalized email."""

    @abstractmethod
    def get(self, email: str) -> Optional[str]:
        """Sealed record for email, or None."""

    @abstractmethod
    def put(self, email: str, sealed: str) -> None:
        """Store a sealed record, replacing any previous one."""

    @abstractmethod
    def delete(self, email: str) -> bool:
        """Remove the record; True if one existed."""

    @abstractmethod
    def emails(self) -> List[str]:
        """Snapshot of emails that currently hold a record."""


class InMemoryOTPRepository(OTPRepository):

    def __init__(self):
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, email: str) -> Optional[str]:
        with self._lock:
            return self._items.get(email)

    def put(self, email: str, sealed: str) -> None:
        with self._lock:
            self._items[email] = sealed

    def delete(self, email: str) -> bool:
        with self._lock:
            return self._items.pop(email, None) is not None

    def emails(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class IssuanceHistory(ABC):
    """Per-email log of OTP issuance times (epoch milliseconds)."""

    @abstractmethod
    def record(self, email: str, timestamp_ms: int) -> None:
        """Append an issuance time."""

    @abstractmethod
    def since(self, email: str, timestamp_ms: int) -> List[int]:
        """Issuance times strictly after timestamp_ms, oldest first."""


class InMemoryIssuanceHistory(IssuanceHistory):
    """Ring buffer per email; only the newest history_size entries are kept."""

    def __init__(self, history_size: int = OTP_HISTORY_SIZE):
        if history_size < 1:
            raise ValueError("history_size must be positive")
        self._history: Dict[str, Deque[int]] = defaultdict(lambda: deque(maxlen=history_size))
        self._lock = threading.Lock()

    def record(self, email: str, timestamp_ms: int) -> None:
        with self._lock:
            self._history[email].append(timestamp_ms)

    def since(self, email: str, timestamp_ms: int) -> List[int]:
        with self._lock:
            entries = self._history.get(email)
            if not entries:
                return []
            return sorted(ts for ts in entries if ts > timestamp_ms)

    def all(self, email: str) -> List[int]:
        with self._lock:
            return list(self._history.get(email, ()))


class KeyedLocks:
    """
    Registry of one lock per email.

    Entries are weak: a lock lives only while some caller holds it, so
    lookups for arbitrary emails do not accumulate.
    """

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def lock_for(self, email: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(email)
            if lock is None:
                lock = threading.Lock()
                self._locks[email] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
