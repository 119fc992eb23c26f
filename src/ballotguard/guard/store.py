"""Sliding-window counter stores for the rate guard.

The guard talks only to :class:`CounterStore`; swapping the process-local
store for a shared one (needed once the API runs in several processes) is a
configuration change.
"""

from collections import deque


class CounterStore:
    """Timestamp log per key, queried over a trailing window."""

    async def hit(self, key: str, now: float, window: float) -> int:
        """Record an event at ``now`` and return the count within ``window``."""
        raise NotImplementedError

    async def count(self, key: str, now: float, window: float) -> int:
        raise NotImplementedError

    async def oldest(self, key: str, now: float, window: float) -> float | None:
        """Timestamp of the oldest event still inside the window."""
        raise NotImplementedError

    async def reset(self, key: str | None = None) -> None:
        raise NotImplementedError

    async def sweep(self, now: float, window: float) -> int:
        """Forget keys with no events inside ``window``; returns how many."""
        raise NotImplementedError


class InMemoryCounterStore(CounterStore):
    """Process-local, best-effort counters."""

    def __init__(self):
        self._events: dict[str, deque[float]] = {}

    def __len__(self) -> int:
        return len(self._events)

    def _prune(self, key: str, now: float, window: float) -> deque[float]:
        """Drop expired timestamps; a key left with none is forgotten."""
        events = self._events.get(key)
        if events is None:
            return deque()
        cutoff = now - window
        while events and events[0] <= cutoff:
            events.popleft()
        if not events:
            del self._events[key]
        return events

    async def hit(self, key: str, now: float, window: float) -> int:
        events = self._prune(key, now, window)
        events.append(now)
        self._events[key] = events
        return len(events)

    async def sweep(self, now: float, window: float) -> int:
        stale = [key for key, events in self._events.items() if events[-1] <= now - window]
        for key in stale:
            del self._events[key]
        return len(stale)

    async def count(self, key: str, now: float, window: float) -> int:
        return len(self._prune(key, now, window))

    async def oldest(self, key: str, now: float, window: float) -> float | None:
        events = self._prune(key, now, window)
        return events[0] if events else None

    async def reset(self, key: str | None = None) -> None:
        if key is None:
            self._events.clear()
        else:
            self._events.pop(key, None)


def build_counter_store(backend: str) -> CounterStore:
    if backend == "memory":
        return InMemoryCounterStore()
    raise ValueError(f"Unknown rate counter backend '{backend}'")
