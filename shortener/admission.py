"""Per-client admission control.

``AdmissionController`` keeps a ``(count, window_start)`` pair per client
identity. A window opens on the first request, admits up to ``max_requests``
calls, and is replaced by a fresh one once ``window_seconds`` have elapsed
since it opened.

Decision Flow
=============
::
    ┌─────────────┐
    │ check(ident) │
    └──────┬──────┘
           ▼
    ┌─────────────┐   no entry     ┌──────────────┐
    │ lookup entry├───────────────▶│ (1, now) ALLOW│
    └──────┬──────┘                └──────────────┘
           ▼
    ┌─────────────┐   elapsed ≥ w  ┌──────────────┐
    │ window aged?├───────────────▶│ (1, now) ALLOW│
    └──────┬──────┘                └──────────────┘
           ▼
    ┌─────────────┐   count < max  ┌──────────────┐
    │ under limit?├───────────────▶│ count+1 ALLOW │
    └──────┬──────┘                └──────────────┘
           ▼
        DENY

The table is guarded by a ``threading.Lock`` held only for the dictionary
update; nothing inside the critical section awaits or does I/O.

Once the table holds ``prune_threshold`` identities, the next new identity
sweeps out every entry whose window has already closed.
"""

import threading
import time
from collections.abc import Callable

from fastapi import Request

__all__ = ["AdmissionController", "client_identity"]

UNKNOWN_IDENTITY = "unknown"


class AdmissionController:
    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        prune_threshold: int = 10_000,
    ) -> None:
        assert max_requests > 0, f"max_requests must be positive, got {max_requests!r}"
        assert window_seconds > 0, f"window_seconds must be positive, got {window_seconds!r}"
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prune_threshold = prune_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[int, float]] = {}

    def check(self, identity: str) -> bool:
        """Record one request for ``identity`` and return whether it is admitted."""
        now = self._clock()
        with self._lock:
            entry = self._windows.get(identity)
            if entry is None:
                if len(self._windows) >= self.prune_threshold:
                    self._prune(now)
                self._windows[identity] = (1, now)
                return True

            count, window_start = entry
            if now - window_start >= self.window_seconds:
                self._windows[identity] = (1, now)
                return True

            if count < self.max_requests:
                self._windows[identity] = (count + 1, window_start)
                return True

            return False

    def _prune(self, now: float) -> None:
        # Caller holds the lock.
        stale = [key for key, (_, start) in self._windows.items() if now - start >= self.window_seconds]
        for key in stale:
            del self._windows[key]

    def retry_after(self, identity: str) -> int:
        """Whole seconds until ``identity``'s current window closes."""
        now = self._clock()
        with self._lock:
            entry = self._windows.get(identity)
        if entry is None:
            return 0
        remaining = self.window_seconds - (now - entry[1])
        return max(1, int(remaining + 0.999))

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


def client_identity(request: Request, trust_forwarded: bool = False) -> str:
    """Identity used for admission: forwarded client address, then peer address."""
    if trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTITY
