from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from posefx.core.effect_graph import RebuildReport
from posefx.core.features import MotionFeatures


@dataclass
class FeaturesEvent:
    timestamp: float
    person_count: int
    features: MotionFeatures
    throttle_tick: bool


@dataclass
class ParametersEvent:
    timestamp: float
    applied: Dict[str, Dict[str, float]] = field(default_factory=dict)


@dataclass
class GraphRebuiltEvent:
    report: RebuildReport


class EventBus:
    """Synchronous fan-out of loop events to listeners on the publishing thread."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callable) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(topic, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(topic, [])
                if callback in listeners:
                    listeners.remove(callback)

        return unsubscribe

    def publish(self, topic: str, payload) -> None:
        with self._lock:
            listeners = list(self._listeners.get(topic, ()))
        for callback in listeners:
            callback(payload)
