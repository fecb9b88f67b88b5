"""Process-wide gauge of in-flight commit requests."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class RequestGauge:
    """Thread-safe counter of pending commit requests, labelled by repository."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._pending: Counter[str] = Counter()

    def configure(self) -> None:
        """Reset all counts; called once at process startup."""
        with self._lock:
            self._pending.clear()

    def increment(self, repo: str) -> None:
        with self._lock:
            self._pending[repo] += 1

    def decrement(self, repo: str) -> None:
        with self._lock:
            self._pending[repo] -= 1
            if self._pending[repo] <= 0:
                del self._pending[repo]

    def pending(self, repo: str | None = None) -> int:
        with self._lock:
            if repo is None:
                return sum(self._pending.values())
            return self._pending.get(repo, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._pending)

    @contextmanager
    def track(self, repo: str) -> Iterator[None]:
        """Count one request for the duration of the block, on every exit path."""
        self.increment(repo)
        try:
            yield
        finally:
            self.decrement(repo)


pending_requests = RequestGauge()
