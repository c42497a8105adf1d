from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from posefx.core.constants import HEAD_REFERENCE, LEFT_FOOT, RIGHT_FOOT
from posefx.core.features import FootHeadShifts
from posefx.core.landmarks import PoseFrame

logger = logging.getLogger(__name__)


def landmark_shift(
    current: PoseFrame, baseline: PoseFrame, landmark_idx: int
) -> Optional[float]:
    """Mean x displacement of one landmark between two frames.

    Persons are not tracked across frames: both x lists are sorted and paired
    by rank, so two people crossing paths get their shifts swapped. Unseen
    (non-finite) points are dropped before pairing; ``None`` when nothing pairs.
    """
    now_x = current.xs(landmark_idx)
    past_x = baseline.xs(landmark_idx)
    now_x = np.sort(now_x[np.isfinite(now_x)])
    past_x = np.sort(past_x[np.isfinite(past_x)])
    pairs = min(now_x.size, past_x.size)
    if pairs == 0:
        return None
    return float(np.sum(now_x[:pairs] - past_x[:pairs]) / pairs)


class FrameThrottle:
    def __init__(self, interval: int = 10, expected_persons: int = 1):
        self.interval = max(1, int(interval))
        self.expected_persons = max(1, int(expected_persons))
        self._count = 0
        self._baseline: Optional[PoseFrame] = None
        self.ticks = 0
        self.mismatches = 0

    @property
    def baseline(self) -> Optional[PoseFrame]:
        return self._baseline

    @property
    def count(self) -> int:
        return self._count

    def reset(self) -> None:
        self._count = 0
        self._baseline = None

    def set_expected_persons(self, expected_persons: int) -> None:
        self.expected_persons = max(1, int(expected_persons))
        self.reset()

    def observe(self, frame: PoseFrame) -> Optional[FootHeadShifts]:
        """Advance the cadence; returns fresh shifts on a tick, else ``None``."""
        if frame.person_count != self.expected_persons:
            self.mismatches += 1
            logger.debug(
                "person count mismatch: detected=%d expected=%d, throttle held at %d",
                frame.person_count,
                self.expected_persons,
                self._count,
            )
            return None

        self._count += 1
        if self._count < self.interval:
            return None

        # The first tick measures against itself: 0.0 where seen, None where not.
        baseline = self._baseline if self._baseline is not None else frame
        shifts = FootHeadShifts(
            right_foot=landmark_shift(frame, baseline, RIGHT_FOOT),
            left_foot=landmark_shift(frame, baseline, LEFT_FOOT),
            head=landmark_shift(frame, baseline, HEAD_REFERENCE),
        )
        self._baseline = frame
        self._count = 0
        self.ticks += 1
        return shifts
