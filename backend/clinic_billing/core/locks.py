"""In-process keyed mutual exclusion for ledger mutations."""

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from clinic_billing.core.errors import ConflictError


class KeyedLock:
    """One lock per key, created on demand and dropped when unused.

    Callers on different keys never block each other. Callers on the same key
    are serialized; a caller that cannot acquire within ``timeout`` seconds gets
    a ``ConflictError`` instead of waiting forever.
    """

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}
        self._holders: dict[str, int] = {}
        self._guard = Lock()

    @contextmanager
    def hold(self, key: object, timeout: float) -> Iterator[None]:
        name = str(key)
        with self._guard:
            lock = self._locks.setdefault(name, Lock())
            self._holders[name] = self._holders.get(name, 0) + 1

        acquired = lock.acquire(timeout=timeout)
        try:
            if not acquired:
                raise ConflictError(
                    f"Another update to {name} is still in progress, try again"
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._holders[name] -= 1
                if self._holders[name] == 0:
                    del self._holders[name]
                    del self._locks[name]

    def is_held(self, key: object) -> bool:
        with self._guard:
            lock = self._locks.get(str(key))
            return lock is not None and lock.locked()

    def reset(self) -> None:
        """Clear all tracked state (useful for testing)."""
        with self._guard:
            self._locks.clear()
            self._holders.clear()


invoice_locks = KeyedLock()
