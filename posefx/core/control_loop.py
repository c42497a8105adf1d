from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Optional, Protocol, Tuple

import numpy as np

from posefx.core.effect_graph import EffectGraph, RebuildReport
from posefx.core.events import EventBus, FeaturesEvent, GraphRebuiltEvent, ParametersEvent
from posefx.core.features import FeatureExtractor, MotionFeatures
from posefx.core.landmarks import PoseFrame
from posefx.core.mapping import ParameterMapper
from posefx.core.smoothing import FeatureSmoother
from posefx.core.throttle import FrameThrottle

logger = logging.getLogger(__name__)


class PoseAnalyzer(Protocol):
    def analyze(self, image: np.ndarray, timestamp: float) -> Future: ...

    def set_max_persons(self, count: int) -> None: ...


@dataclass
class LoopState:
    capturing: bool = False
    message: str = "idle"
    frames_seen: int = 0
    analyses_issued: int = 0
    analyses_completed: int = 0
    deferred_frames: int = 0
    stale_frames: int = 0
    discarded_results: int = 0
    failed_analyses: int = 0
    throttle_ticks: int = 0
    person_mismatches: int = 0
    last_timestamp: float = 0.0
    last_person_count: int = 0
    last_features: dict = field(default_factory=dict)
    last_parameters: dict = field(default_factory=dict)


class ControlLoop:
    """Frame-driven pipeline: analyze -> features -> parameters -> effect graph.

    Every step runs on the caller's thread under ``_lock``. The analyzer future
    is the only suspension point; at most one request is outstanding and each
    request carries a strictly newer video timestamp than the previous one.
    Toggle requests are queued and applied right before parameters are mapped,
    so the graph is never rewired while parameters are being applied.
    """

    def __init__(
        self,
        analyzer: Optional[PoseAnalyzer],
        graph: EffectGraph,
        mapper: ParameterMapper,
        extractor: Optional[FeatureExtractor] = None,
        throttle: Optional[FrameThrottle] = None,
        smoother: Optional[FeatureSmoother] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.analyzer = analyzer
        self.graph = graph
        self.mapper = mapper
        self.extractor = extractor or FeatureExtractor()
        self.throttle = throttle or FrameThrottle()
        self.smoother = smoother or FeatureSmoother(1.0)
        self.event_bus = event_bus or EventBus()
        self.state = LoopState()
        self.features = MotionFeatures()
        self._lock = threading.RLock()
        self._toggle_lock = threading.Lock()
        self._desired = set(graph.enabled_names())
        self._toggles_dirty = graph.last_report is None
        self._pending: Optional[Tuple[float, Future]] = None
        self._last_request_ts: Optional[float] = None

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            self._pending = None
            self._last_request_ts = None
            self.throttle.reset()
            self.smoother.reset()
            self.features = MotionFeatures()
            self.state.capturing = True
            self.state.message = "running"
            self._apply_pending_toggles()
        logger.info("control loop started")

    def stop(self) -> None:
        with self._lock:
            self.state.capturing = False
            self.state.message = "stopped"
        logger.info("control loop stopped")

    # -- toggle interface -------------------------------------------------

    def enable(self, name: str) -> None:
        self.graph.node(name)
        with self._toggle_lock:
            self._desired.add(name)
            self._toggles_dirty = True
        self._sync_if_idle()

    def disable(self, name: str) -> None:
        self.graph.node(name)
        with self._toggle_lock:
            self._desired.discard(name)
            self._toggles_dirty = True
        self._sync_if_idle()

    def set_enabled(self, names: Iterable[str]) -> None:
        wanted = set(names)
        for name in wanted:
            self.graph.node(name)
        with self._toggle_lock:
            self._desired = wanted
            self._toggles_dirty = True
        self._sync_if_idle()

    def desired_effects(self) -> list[str]:
        with self._toggle_lock:
            return [name for name in self.graph.names if name in self._desired]

    def sync(self) -> Optional[RebuildReport]:
        """Apply queued toggles now; only safe between frames."""
        with self._lock:
            return self._apply_pending_toggles()

    def _sync_if_idle(self) -> None:
        if not self.state.capturing:
            self.sync()

    def _apply_pending_toggles(self) -> Optional[RebuildReport]:
        with self._toggle_lock:
            if not self._toggles_dirty:
                return None
            desired = set(self._desired)
            self._toggles_dirty = False
        changed = self.graph.set_enabled(desired)
        if not changed and self.graph.last_report is not None:
            return None
        report = self.graph.rebuild()
        self.event_bus.publish("graph", GraphRebuiltEvent(report=report))
        return report

    def attach(self, analyzer: PoseAnalyzer) -> None:
        with self._lock:
            self.analyzer = analyzer
            self.analyzer.set_max_persons(self.throttle.expected_persons)

    def set_expected_persons(self, count: int) -> None:
        with self._lock:
            self.throttle.set_expected_persons(count)
            if self.analyzer is not None:
                self.analyzer.set_max_persons(count)
        logger.info("expected person count set to %d", count)

    # -- frame path ------------------------------------------------------

    def on_frame(self, image: np.ndarray, timestamp: float) -> bool:
        """Frame-ready callback. Returns True when an analysis was requested."""
        with self._lock:
            if not self.state.capturing or self.analyzer is None:
                return False
            self.state.frames_seen += 1
            self._collect()

            if self._last_request_ts is not None and timestamp <= self._last_request_ts:
                self.state.stale_frames += 1
                return False
            if self._pending is not None:
                self.state.deferred_frames += 1
                logger.debug("analysis still in flight, deferring frame %.3f", timestamp)
                return False

            self._last_request_ts = timestamp
            self._pending = (timestamp, self.analyzer.analyze(image, timestamp))
            self.state.analyses_issued += 1
            self._collect()
            return True

    def poll(self) -> None:
        with self._lock:
            self._collect()

    def _collect(self) -> None:
        if self._pending is None:
            return
        timestamp, future = self._pending
        if not future.done():
            return
        self._pending = None
        if not self.state.capturing:
            self.state.discarded_results += 1
            return
        try:
            frame = future.result()
        except Exception as exc:  # noqa: BLE001
            self.state.failed_analyses += 1
            logger.warning("pose analysis at %.3f failed: %s", timestamp, exc)
            return
        self.state.analyses_completed += 1
        self._process(frame, timestamp)

    def _process(self, frame: PoseFrame, timestamp: float) -> Dict[str, Dict[str, float]]:
        features = self.extractor.extract(frame)
        features = replace(
            features,
            right_arm_angle=self.smoother.update("right_arm_angle", features.right_arm_angle),
            left_arm_angle=self.smoother.update("left_arm_angle", features.left_arm_angle),
        )
        shifts = self.throttle.observe(frame)
        if shifts is not None:
            features = features.with_shifts(shifts)
        self.features = features
        self.event_bus.publish(
            "features",
            FeaturesEvent(
                timestamp=timestamp,
                person_count=frame.person_count,
                features=features,
                throttle_tick=shifts is not None,
            ),
        )

        self._apply_pending_toggles()

        params = self.mapper.map_all(features, self.graph.enabled_names())
        applied: Dict[str, Dict[str, float]] = {}
        for name, values in params.items():
            if self.graph.apply(name, values):
                applied[name] = values

        self.state.last_timestamp = timestamp
        self.state.last_person_count = frame.person_count
        self.state.last_features = features.as_dict()
        self.state.last_parameters = applied
        self.state.throttle_ticks = self.throttle.ticks
        self.state.person_mismatches = self.throttle.mismatches
        self.event_bus.publish("parameters", ParametersEvent(timestamp=timestamp, applied=applied))
        return applied

    def status(self) -> dict:
        s = self.state
        return {
            "capturing": s.capturing,
            "message": s.message,
            "frames_seen": s.frames_seen,
            "analyses_issued": s.analyses_issued,
            "analyses_completed": s.analyses_completed,
            "analysis_in_flight": self._pending is not None,
            "deferred_frames": s.deferred_frames,
            "stale_frames": s.stale_frames,
            "discarded_results": s.discarded_results,
            "failed_analyses": s.failed_analyses,
            "throttle_ticks": s.throttle_ticks,
            "person_mismatches": s.person_mismatches,
            "expected_persons": self.throttle.expected_persons,
            "last_timestamp": s.last_timestamp,
            "last_person_count": s.last_person_count,
            "last_features": dict(s.last_features),
            "last_parameters": {k: dict(v) for k, v in s.last_parameters.items()},
        }
