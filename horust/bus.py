"""A simple broadcast bus.

Every connector can send events; the bus delivers each event to every
connector, the sender included. The bus keeps dispatching until every
connector has been closed.
"""

from __future__ import annotations

import itertools
import queue
import threading
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")

_EVENT = "event"
_CLOSE = "close"
_END = "end"


class Bus(Generic[T]):
    """Fan-out dispatcher with one shared input queue."""

    def __init__(self) -> None:
        self._inbox: queue.SimpleQueue = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._outboxes: list[queue.SimpleQueue] = []
        self._open = 0
        self._finished = False

    def __repr__(self) -> str:
        with self._lock:
            return f"Bus(senders={len(self._outboxes)})"

    def join_bus(self) -> BusConnector[T]:
        """Add another connection to the bus."""
        return self._join()

    def _join(self) -> BusConnector[T]:
        outbox: queue.SimpleQueue = queue.SimpleQueue()
        with self._lock:
            if self._finished:
                raise RuntimeError("The bus is no longer running.")
            self._outboxes.append(outbox)
            self._open += 1
        return BusConnector(self, outbox)

    def _post(self, kind: str, value: object) -> None:
        if self._finished:
            raise RuntimeError("Failed sending update event!")
        self._inbox.put((kind, value))

    def run(self) -> None:
        """Dispatch events until every connector is closed. Blocking."""
        while True:
            with self._lock:
                if self._open == 0:
                    self._finished = True
                    remaining, self._outboxes = self._outboxes, []
                    break
            kind, value = self._inbox.get()
            with self._lock:
                if kind == _CLOSE:
                    self._outboxes.remove(value)
                    self._open -= 1
                else:
                    for outbox in self._outboxes:
                        outbox.put((_EVENT, value))
        for outbox in remaining:
            outbox.put((_END, None))


class BusConnector(Generic[T]):
    """A connection to a bus: sends events to it and receives all of its events."""

    def __init__(self, bus: Bus[T], outbox: queue.SimpleQueue) -> None:
        self._bus = bus
        self._outbox = outbox
        self._closed = False
        self._ended = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"BusConnector({state}, pending={self._outbox.qsize()})"

    def join_bus(self) -> BusConnector[T]:
        """Add another connection to the same bus."""
        if self._closed:
            raise RuntimeError("Cannot join the bus from a closed connector.")
        return self._bus._join()

    def __iter__(self) -> Iterator[T]:
        """Yield received events, blocking, until the bus stops."""
        while not self._ended:
            kind, value = self._outbox.get()
            if kind == _END:
                self._ended = True
                return
            yield value

    def try_get_events(self) -> list[T]:
        """All events received so far, without blocking."""
        events: list[T] = []
        while not self._ended:
            try:
                kind, value = self._outbox.get_nowait()
            except queue.Empty:
                break
            if kind == _END:
                self._ended = True
            else:
                events.append(value)
        return events

    def get_n_events_blocking(self, quantity: int) -> list[T]:
        """Wait for and return the next ``quantity`` events."""
        return list(itertools.islice(self, quantity))

    def send_event(self, event: T) -> None:
        """Publish an event to every connector of the bus."""
        if self._closed:
            raise RuntimeError("Failed sending update event!")
        self._bus._post(_EVENT, event)

    def close(self) -> None:
        """Leave the bus. The bus stops once every connector has left."""
        if self._closed:
            return
        self._closed = True
        self._bus._inbox.put((_CLOSE, self._outbox))

    def __enter__(self) -> BusConnector[T]:
        return self

    def __exit__(self, *args) -> None:
        self.close()