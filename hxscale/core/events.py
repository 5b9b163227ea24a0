from __future__ import annotations

import queue
import threading
import time
from dataclasses import asdict, dataclass
from typing import Dict, Tuple, Union


@dataclass(frozen=True, slots=True)
class MovingAverageEvent:
    value: float
    raw: int
    window_size: int


@dataclass(frozen=True, slots=True)
class SampleErrorEvent:
    reason: str


@dataclass(frozen=True, slots=True)
class SamplerStoppedEvent:
    pass


ScaleEvent = Union[
    MovingAverageEvent,
    SampleErrorEvent,
    SamplerStoppedEvent,
]


def event_name(event: ScaleEvent) -> str:
    name = type(event).__name__
    if name.endswith("Event"):
        name = name[:-5]
    out = []
    for index, char in enumerate(name):
        if char.isupper() and index:
            out.append("-")
        out.append(char.lower())
    return "".join(out)


class ScaleEventBus:
    """Pub/sub bus fanning sampler events out to one bounded queue per subscriber."""

    def __init__(self, *, queue_size: int = 32) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, queue.Queue[ScaleEvent]] = {}
        self._next_token = 1
        self._queue_size = max(1, queue_size)

    def subscribe(self) -> Tuple[int, queue.Queue[ScaleEvent]]:
        subscriber_queue: queue.Queue[ScaleEvent] = queue.Queue(self._queue_size)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = subscriber_queue
        return token, subscriber_queue

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ScaleEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.values())

        for subscriber_queue in subscribers:
            try:
                subscriber_queue.put_nowait(event)
            except queue.Full:
                # Slow subscriber; it keeps what it already has.
                continue

    @staticmethod
    def serialize(event: ScaleEvent) -> Dict[str, object]:
        payload = asdict(event)
        payload["type"] = event_name(event)
        payload["ts"] = time.time()
        return payload


__all__ = [
    "MovingAverageEvent",
    "SampleErrorEvent",
    "SamplerStoppedEvent",
    "ScaleEvent",
    "ScaleEventBus",
    "event_name",
]
