from __future__ import annotations

from concurrent.futures import Future

import numpy as np

from posefx.core.constants import LANDMARK_COUNT
from posefx.core.landmarks import PersonLandmarks, PoseFrame


def make_person(points: dict | None = None) -> PersonLandmarks:
    arr = np.zeros((LANDMARK_COUNT, 3), dtype=float)
    for idx, xy in (points or {}).items():
        arr[idx, 0] = xy[0]
        arr[idx, 1] = xy[1]
    return PersonLandmarks(arr)


def make_frame(*persons: PersonLandmarks, timestamp: float = 0.0) -> PoseFrame:
    return PoseFrame(timestamp=timestamp, persons=list(persons))


class ImmediateAnalyzer:
    """Resolves every request at once with the next scripted frame."""

    def __init__(self, frames=None, error: Exception | None = None):
        self.frames = list(frames or [])
        self.error = error
        self.requests: list[float] = []
        self.max_persons = None

    def analyze(self, image, timestamp):
        self.requests.append(timestamp)
        future: Future = Future()
        if self.error is not None:
            future.set_exception(self.error)
        elif self.frames:
            future.set_result(self.frames.pop(0))
        else:
            future.set_result(PoseFrame(timestamp=timestamp))
        return future

    def set_max_persons(self, count):
        self.max_persons = count


class ManualAnalyzer:
    """Keeps futures open until the test resolves them."""

    def __init__(self):
        self.futures: list[Future] = []
        self.requests: list[float] = []
        self.max_persons = None

    def analyze(self, image, timestamp):
        self.requests.append(timestamp)
        future: Future = Future()
        self.futures.append(future)
        return future

    def set_max_persons(self, count):
        self.max_persons = count
