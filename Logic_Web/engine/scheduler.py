"""Timed event queue driving the simulation ticks."""

from __future__ import annotations

import heapq
from enum import IntEnum
from typing import Any, Callable, List, Tuple


class EventKind(IntEnum):
    """Event categories. The value breaks ties between events due together."""

    EMIT = 0
    ADVANCE = 1
    DEFERRED_EMIT = 2
    ENABLE_SWEEP = 3
    OUTPUT_SWEEP = 4


class EventQueue:
    """Priority queue of events ordered by ``(time, kind, seq)``.

    ``seq`` increases with every push so events sharing a time and kind keep
    their insertion order, making the processing order fully deterministic.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[float, int, int, Any]] = []
        self._seq = 0

    def push(self, time_ms: float, kind: EventKind, payload: Any = None) -> None:
        """Insert a payload due at ``time_ms``."""

        heapq.heappush(self._heap, (float(time_ms), int(kind), self._seq, payload))
        self._seq += 1

    def pop(self) -> Tuple[float, EventKind, Any]:
        """Remove and return the next due event."""

        if not self._heap:
            raise IndexError("pop from empty event queue")
        time_ms, kind, _seq, payload = heapq.heappop(self._heap)
        return time_ms, EventKind(kind), payload

    def peek_time(self) -> float:
        """Return the due time of the next event without removing it."""

        if not self._heap:
            raise IndexError("peek from empty event queue")
        return self._heap[0][0]

    def discard(self, predicate: Callable[[EventKind, Any], bool]) -> int:
        """Drop every event for which ``predicate(kind, payload)`` is true.

        Returns the number of events removed.
        """

        kept = [e for e in self._heap if not predicate(EventKind(e[1]), e[3])]
        removed = len(self._heap) - len(kept)
        if removed:
            heapq.heapify(kept)
            self._heap = kept
        return removed

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._heap)

    def clear(self) -> None:
        """Drop all scheduled items."""

        self._heap.clear()
        self._seq = 0
