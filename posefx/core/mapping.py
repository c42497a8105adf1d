from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from posefx.core.constants import FEATURE_NAMES
from posefx.core.features import MotionFeatures, clamp


@dataclass(frozen=True)
class MappingRule:
    """``clamp(|feature * scale| + offset)``, with ``abs`` only when ``absolute``."""

    param: str
    feature: str
    scale: float
    lo: float
    hi: float
    offset: float = 0.0
    absolute: bool = True

    def __post_init__(self):
        if self.feature not in FEATURE_NAMES:
            raise ValueError(f"unknown feature: {self.feature}")
        if self.lo > self.hi:
            raise ValueError(f"{self.param}: min {self.lo} is above max {self.hi}")

    def evaluate(self, value: Optional[float]) -> Optional[float]:
        if value is None or math.isnan(value):
            return None
        scaled = value * self.scale
        if math.isnan(scaled):
            return None
        if self.absolute:
            scaled = abs(scaled)
        return float(clamp(scaled + self.offset, self.lo, self.hi))


DEFAULT_RULES: Dict[str, Tuple[MappingRule, ...]] = {
    "pitch_shift": (
        MappingRule("pitch", "left_foot_shift", scale=60.0, lo=0.0, hi=12.0),
    ),
    "phaser": (
        MappingRule("octaves", "right_foot_shift", scale=100.0, lo=0.0, hi=8.0),
    ),
    "feedback_delay": (
        MappingRule(
            "delay_time",
            "right_arm_angle",
            scale=1.0 / 180.0,
            offset=0.5,
            absolute=False,
            lo=0.0,
            hi=1.0,
        ),
        MappingRule(
            "feedback",
            "right_arm_angle",
            scale=1.0 / 180.0,
            offset=0.5,
            absolute=False,
            lo=0.0,
            hi=0.5,
        ),
    ),
    "distortion": (
        MappingRule("distortion", "left_arm_angle", scale=1.0 / 180.0, lo=0.0, hi=0.5),
    ),
    "playback_rate": (
        MappingRule(
            "playback_rate", "head_shift", scale=10.0, offset=0.3, lo=0.75, hi=1.25
        ),
    ),
}


def evaluate_rules(
    rules: Iterable[MappingRule],
    features: MotionFeatures,
    enabled: bool = True,
) -> Optional[Dict[str, float]]:
    """Parameter values for one effect, or ``None`` when nothing should change."""
    if not enabled:
        return None
    params: Dict[str, float] = {}
    for rule in rules:
        value = rule.evaluate(features.get(rule.feature))
        if value is not None:
            params[rule.param] = value
    return params or None


def pitch_shift_params(features: MotionFeatures, enabled: bool = True):
    return evaluate_rules(DEFAULT_RULES["pitch_shift"], features, enabled)


def phaser_params(features: MotionFeatures, enabled: bool = True):
    return evaluate_rules(DEFAULT_RULES["phaser"], features, enabled)


def feedback_delay_params(features: MotionFeatures, enabled: bool = True):
    return evaluate_rules(DEFAULT_RULES["feedback_delay"], features, enabled)


def distortion_params(features: MotionFeatures, enabled: bool = True):
    return evaluate_rules(DEFAULT_RULES["distortion"], features, enabled)


def playback_rate_params(features: MotionFeatures, enabled: bool = True):
    return evaluate_rules(DEFAULT_RULES["playback_rate"], features, enabled)


class ParameterMapper:
    """Per-effect rule table keyed by effect name."""

    def __init__(self, table: Mapping[str, Sequence[MappingRule]]):
        self.table: Dict[str, Tuple[MappingRule, ...]] = {
            name: tuple(rules) for name, rules in table.items()
        }

    def rules_for(self, name: str) -> Tuple[MappingRule, ...]:
        return self.table.get(name, ())

    def parameter_ranges(self, name: str) -> Dict[str, Tuple[float, float]]:
        return {rule.param: (rule.lo, rule.hi) for rule in self.rules_for(name)}

    def map_effect(
        self, name: str, features: MotionFeatures, enabled: bool = True
    ) -> Optional[Dict[str, float]]:
        return evaluate_rules(self.rules_for(name), features, enabled)

    def map_all(
        self, features: MotionFeatures, enabled_names: Iterable[str]
    ) -> Dict[str, Dict[str, float]]:
        out: Dict[str, Dict[str, float]] = {}
        for name in enabled_names:
            params = self.map_effect(name, features, enabled=True)
            if params is not None:
                out[name] = params
        return out
