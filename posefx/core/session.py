from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from posefx.core.audio import TrackSource
from posefx.core.audio_output import AudioOutput
from posefx.core.capture import CameraStream
from posefx.core.control_loop import ControlLoop, PoseAnalyzer
from posefx.core.effect_graph import EffectGraph
from posefx.core.events import GraphRebuiltEvent
from posefx.core.pose import AsyncPoseAnalyzer, PoseEstimator
from posefx.models.config import AppConfig

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns a capture session: camera frames drive the control loop while audio plays."""

    def __init__(
        self,
        cfg: AppConfig,
        graph: EffectGraph,
        control_loop: ControlLoop,
        camera: Optional[CameraStream] = None,
        audio: Optional[AudioOutput] = None,
        analyzer_factory: Optional[Callable[[], PoseAnalyzer]] = None,
    ):
        self.cfg = cfg
        self.graph = graph
        self.control_loop = control_loop
        self.camera = camera or CameraStream(cfg.camera)
        self.camera.subscribe(self.control_loop.on_frame)
        self.audio = audio or AudioOutput(graph, cfg.audio)
        self._analyzer_factory = analyzer_factory or self._build_analyzer
        self._lock = threading.Lock()
        self.running = False
        self.message = "idle"
        self.last_rebuild = graph.last_report.as_dict() if graph.last_report else None
        self.control_loop.event_bus.subscribe("graph", self._on_graph_rebuilt)

    def _on_graph_rebuilt(self, event: GraphRebuiltEvent) -> None:
        self.last_rebuild = event.report.as_dict()

    def _build_analyzer(self) -> PoseAnalyzer:
        estimator = PoseEstimator(self.cfg.model, max_persons=self.cfg.tracking.expected_persons)
        return AsyncPoseAnalyzer(estimator)

    def load_track(self, path: str | Path) -> None:
        track = TrackSource.from_wav(
            path, sample_rate=self.cfg.audio.sample_rate, loop=self.cfg.audio.loop
        )
        with self.graph.lock:
            self.graph.source.load(track.data)
        logger.info("loaded track %s (%d samples)", path, track.data.size)

    def start(self) -> dict:
        with self._lock:
            if self.running:
                return {"ok": True, "message": "already_running"}
            try:
                if self.control_loop.analyzer is None:
                    self.control_loop.attach(self._analyzer_factory())
                if self.cfg.audio.track_path and self.graph.source.data.size == 0:
                    self.load_track(self.cfg.audio.track_path)
            except Exception as exc:  # noqa: BLE001
                self.message = f"error: {exc}"
                logger.error("session failed to start: %s", exc)
                return {"ok": False, "message": self.message}

            try:
                self.audio.start()
            except Exception as exc:  # noqa: BLE001
                logger.warning("audio output unavailable, continuing without it: %s", exc)

            self.control_loop.start()
            self.camera.start()
            self.running = True
            self.message = "running"
        return {"ok": True, "message": "started"}

    def stop(self) -> dict:
        with self._lock:
            if not self.running:
                return {"ok": True, "message": "already_stopped"}
            self.camera.stop()
            self.control_loop.stop()
            self.audio.stop()
            self.running = False
            self.message = "stopped"
        return {"ok": True, "message": "stopped"}

    def status(self) -> dict:
        return {
            "running": self.running,
            "message": self.message,
            "camera": {
                "running": self.camera.running,
                "message": self.camera.message,
                "seq": self.camera.seq,
                "last_timestamp": self.camera.last_timestamp,
            },
            "audio": {
                "running": self.audio.running,
                "underflows": self.audio.underflows,
            },
            "loop": self.control_loop.status(),
            "last_rebuild": self.last_rebuild,
            "graph": self.graph.snapshot(),
        }
