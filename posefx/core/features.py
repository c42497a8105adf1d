from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from typing import Optional

from posefx.core.constants import (
    LEFT_ELBOW,
    LEFT_SHOULDER,
    RIGHT_ELBOW,
    RIGHT_SHOULDER,
)
from posefx.core.landmarks import PersonLandmarks, PoseFrame

ANGLE_MIN = -90.0
ANGLE_MAX = 90.0


@dataclass(frozen=True)
class MotionFeatures:
    """Scalar control signals for one frame. ``None`` means unavailable."""

    right_arm_angle: Optional[float] = None
    left_arm_angle: Optional[float] = None
    right_foot_shift: Optional[float] = None
    left_foot_shift: Optional[float] = None
    head_shift: Optional[float] = None

    def get(self, name: str) -> Optional[float]:
        return getattr(self, name)

    def with_shifts(self, shifts: "FootHeadShifts") -> "MotionFeatures":
        return replace(
            self,
            right_foot_shift=shifts.right_foot,
            left_foot_shift=shifts.left_foot,
            head_shift=shifts.head,
        )

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class FootHeadShifts:
    right_foot: Optional[float]
    left_foot: Optional[float]
    head: Optional[float]


def clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def angle_with_x_axis(dx: float, dy: float) -> float:
    return math.degrees(math.atan2(dy, dx))


def _segment_angle(person: PersonLandmarks, start: int, end: int) -> Optional[float]:
    dx, dy = person.xy(end) - person.xy(start)
    if not (math.isfinite(dx) and math.isfinite(dy)):
        return None
    return angle_with_x_axis(float(dx), float(dy))


def right_arm_angle(person: PersonLandmarks) -> float:
    angle = _segment_angle(person, RIGHT_SHOULDER, RIGHT_ELBOW)
    if angle is None:
        return 0.0
    positive = angle if angle >= 0 else 360.0 + angle
    return clamp(positive - 180.0, ANGLE_MIN, ANGLE_MAX)


def left_arm_angle(person: PersonLandmarks) -> float:
    angle = _segment_angle(person, LEFT_SHOULDER, LEFT_ELBOW)
    if angle is None:
        return 0.0
    return clamp(-angle, ANGLE_MIN, ANGLE_MAX)


class FeatureExtractor:
    """Per-frame arm angles averaged across every detected person."""

    def extract(self, frame: PoseFrame) -> MotionFeatures:
        count = frame.person_count
        if count == 0:
            return MotionFeatures()

        right = 0.0
        left = 0.0
        for person in frame.persons:
            right += right_arm_angle(person) / count
            left += left_arm_angle(person) / count
        return MotionFeatures(
            right_arm_angle=clamp(right, ANGLE_MIN, ANGLE_MAX),
            left_arm_angle=clamp(left, ANGLE_MIN, ANGLE_MAX),
        )
