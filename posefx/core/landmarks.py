from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import numpy as np

from posefx.core.constants import LANDMARK_COUNT


class PersonLandmarks:
    """The 33 landmarks of one detected person as an ``(33, 3)`` array.

    Rows follow the fixed body layout in ``posefx.core.constants``; points the
    estimator did not resolve are NaN.
    """

    def __init__(self, points: np.ndarray):
        arr = np.asarray(points, dtype=float)
        if arr.shape != (LANDMARK_COUNT, 3):
            raise ValueError(
                f"expected ({LANDMARK_COUNT}, 3) landmark array, got {arr.shape}"
            )
        self.points = arr

    @classmethod
    def empty(cls) -> "PersonLandmarks":
        return cls(np.full((LANDMARK_COUNT, 3), np.nan, dtype=float))

    def xy(self, idx: int) -> np.ndarray:
        return self.points[idx, :2]

    def x(self, idx: int) -> float:
        return float(self.points[idx, 0])


@dataclass
class PoseFrame:
    timestamp: float
    persons: List[PersonLandmarks] = field(default_factory=list)

    @property
    def person_count(self) -> int:
        return len(self.persons)

    def xs(self, idx: int) -> np.ndarray:
        return np.array([person.x(idx) for person in self.persons], dtype=float)
