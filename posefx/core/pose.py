from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

import numpy as np
from ultralytics import YOLO

from posefx.core.constants import COCO_TO_BODY33
from posefx.core.landmarks import PersonLandmarks, PoseFrame
from posefx.models.config import ModelConfig


def coco_to_landmarks(xyn: np.ndarray, conf: np.ndarray, min_conf: float) -> PersonLandmarks:
    person = PersonLandmarks.empty()
    for coco_idx, body_idx in COCO_TO_BODY33.items():
        if coco_idx >= xyn.shape[0]:
            continue
        x, y = xyn[coco_idx]
        if float(conf[coco_idx]) < min_conf:
            continue
        if np.isfinite(x) and np.isfinite(y):
            person.points[body_idx] = (float(x), float(y), 0.0)
    return person


class PoseEstimator:
    def __init__(self, cfg: ModelConfig, max_persons: int = 2):
        self.model = YOLO(cfg.path)
        self.conf = cfg.conf
        self.iou = cfg.iou
        self.device = cfg.device
        self.keypoint_conf = cfg.keypoint_conf
        self.max_persons = max(1, int(max_persons))

    def set_max_persons(self, count: int) -> None:
        self.max_persons = max(1, int(count))

    def detect(self, frame: np.ndarray, timestamp: float) -> PoseFrame:
        results = self.model(
            frame,
            conf=self.conf,
            iou=self.iou,
            device=self.device,
            max_det=self.max_persons,
            verbose=False,
        )
        if not results:
            return PoseFrame(timestamp=timestamp)

        kpts = results[0].keypoints
        if kpts is None or kpts.xyn is None:
            return PoseFrame(timestamp=timestamp)

        xyn = kpts.xyn.cpu().numpy()
        if xyn.size == 0:
            return PoseFrame(timestamp=timestamp)

        if kpts.conf is None:
            conf = np.ones((xyn.shape[0], xyn.shape[1]), dtype=np.float32)
        else:
            conf = kpts.conf.cpu().numpy()

        persons = [
            coco_to_landmarks(xyn[idx], conf[idx], self.keypoint_conf)
            for idx in range(min(xyn.shape[0], self.max_persons))
        ]
        return PoseFrame(timestamp=timestamp, persons=persons)


class AsyncPoseAnalyzer:
    """Runs the estimator on a single worker thread and hands back futures."""

    def __init__(self, estimator: PoseEstimator):
        self.estimator = estimator
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose")

    def analyze(self, image: np.ndarray, timestamp: float) -> Future:
        return self._executor.submit(self.estimator.detect, image, timestamp)

    def set_max_persons(self, count: int) -> None:
        self.estimator.set_max_persons(count)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
