from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import cv2
import numpy as np

from posefx.models.config import CameraConfig

logger = logging.getLogger(__name__)

FrameCallback = Callable[[np.ndarray, float], None]


class CameraStream:
    """Reads frames from a local camera and notifies listeners as each arrives."""

    def __init__(self, cfg: CameraConfig, capture_factory: Callable = cv2.VideoCapture):
        self.cfg = cfg
        self._capture_factory = capture_factory
        self._listeners: List[FrameCallback] = []
        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._lock = threading.Lock()
        self.running = False
        self.seq = 0
        self.last_timestamp = 0.0
        self.message = "idle"

    def subscribe(self, callback: FrameCallback) -> None:
        self._listeners.append(callback)

    def start(self) -> bool:
        with self._lock:
            if self.running:
                return False
            self._stop_evt.clear()
            self.running = True
            self.message = "starting"
            self._thread = threading.Thread(target=self._run, name="camera", daemon=True)
            self._thread.start()
        return True

    def stop(self) -> None:
        self._stop_evt.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=3.0)
        with self._lock:
            self.running = False
            self._thread = None
            if self.message in {"starting", "running"}:
                self.message = "stopped"

    def _open(self):
        cap = self._capture_factory(self.cfg.device)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.cfg.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.cfg.height)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"camera {self.cfg.device} could not be opened")
        return cap

    def _run(self) -> None:
        cap = None
        min_dt = 1.0 / max(self.cfg.fps_cap, 1)
        try:
            cap = self._open()
            self.message = "running"
            logger.info("camera %s streaming", self.cfg.device)
            while not self._stop_evt.is_set():
                t0 = time.time()
                ok, frame = cap.read()
                if not ok or frame is None:
                    self.message = "read_failed"
                    logger.warning("camera %s stopped delivering frames", self.cfg.device)
                    break
                self.seq += 1
                self.last_timestamp = t0
                for callback in self._listeners:
                    callback(frame, t0)
                elapsed = time.time() - t0
                if elapsed < min_dt:
                    time.sleep(min_dt - elapsed)
        except Exception as exc:  # noqa: BLE001
            self.message = f"error: {exc}"
            logger.error("camera loop failed: %s", exc)
        finally:
            if cap is not None:
                cap.release()
            self.running = False
