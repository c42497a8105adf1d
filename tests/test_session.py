import unittest

import numpy as np

from helpers import ImmediateAnalyzer, make_frame, make_person

try:
    import cv2  # noqa: F401
except Exception:  # noqa: BLE001
    cv2 = None

try:
    import ultralytics  # noqa: F401
except Exception:  # noqa: BLE001
    ultralytics = None


class FakeCapture:
    def __init__(self, device, frames=3):
        self.device = device
        self.remaining = frames
        self.released = False

    def set(self, prop, value):
        return True

    def isOpened(self):
        return True

    def read(self):
        if self.remaining <= 0:
            return False, None
        self.remaining -= 1
        return True, np.zeros((4, 4, 3), dtype=np.uint8)

    def release(self):
        self.released = True


class FakeCamera:
    def __init__(self):
        self.listeners = []
        self.running = False
        self.message = "idle"
        self.seq = 0
        self.last_timestamp = 0.0

    def subscribe(self, callback):
        self.listeners.append(callback)

    def start(self):
        self.running = True

    def stop(self):
        self.running = False

    def emit(self, timestamp):
        self.seq += 1
        self.last_timestamp = timestamp
        for callback in self.listeners:
            callback(None, timestamp)


class SilentAudio:
    running = False
    underflows = 0

    def start(self):
        raise RuntimeError("no output device")

    def stop(self):
        pass


@unittest.skipUnless(cv2 is not None, "opencv-python not installed")
class CameraStreamTests(unittest.TestCase):
    def test_frames_reach_listeners_until_reads_fail(self):
        from posefx.core.capture import CameraStream
        from posefx.models.config import CameraConfig

        captures = []

        def factory(device):
            cap = FakeCapture(device)
            captures.append(cap)
            return cap

        stream = CameraStream(CameraConfig(fps_cap=1000), capture_factory=factory)
        seen = []
        stream.subscribe(lambda frame, ts: seen.append(ts))
        self.assertTrue(stream.start())
        stream._thread.join(timeout=3.0)
        self.assertEqual(len(seen), 3)
        self.assertEqual(stream.seq, 3)
        self.assertEqual(stream.message, "read_failed")
        self.assertTrue(captures[0].released)
        self.assertFalse(stream.running)


@unittest.skipUnless(cv2 is not None, "opencv-python not installed")
@unittest.skipUnless(ultralytics is not None, "ultralytics not installed")
class SessionManagerTests(unittest.TestCase):
    def setUp(self):
        from posefx.core.session import SessionManager
        from posefx.models.config import AppConfig
        from posefx.services.runtime import build_effect_graph, build_mapper
        from posefx.core.control_loop import ControlLoop

        cfg = AppConfig()
        cfg.effects[3].enabled = True
        mapper = build_mapper(cfg)
        graph = build_effect_graph(cfg, mapper)
        self.loop = ControlLoop(None, graph, mapper)
        self.loop.sync()
        self.camera = FakeCamera()
        self.analyzer = ImmediateAnalyzer()
        self.session = SessionManager(
            cfg,
            graph,
            self.loop,
            camera=self.camera,
            audio=SilentAudio(),
            analyzer_factory=lambda: self.analyzer,
        )

    def test_start_attaches_analyzer_and_tolerates_missing_audio(self):
        out = self.session.start()
        self.assertTrue(out["ok"])
        self.assertIs(self.loop.analyzer, self.analyzer)
        self.assertEqual(self.analyzer.max_persons, 1)
        self.assertTrue(self.camera.running)
        self.assertTrue(self.session.status()["loop"]["capturing"])
        self.assertEqual(self.session.start()["message"], "already_running")

    def test_camera_frames_drive_the_loop(self):
        self.session.start()
        person = make_person({11: (0.6, 0.3), 13: (0.6, 0.5)})
        self.analyzer.frames = [make_frame(person)]
        self.camera.emit(1.0)
        self.assertEqual(self.analyzer.requests, [1.0])
        self.assertIn("distortion", self.loop.state.last_parameters)

    def test_status_tracks_the_latest_rebuild(self):
        self.assertEqual(self.session.status()["last_rebuild"]["chain"], ["distortion"])
        self.loop.enable("pitch shift")
        rebuild = self.session.status()["last_rebuild"]
        self.assertEqual(rebuild["chain"], ["pitch shift", "distortion"])
        self.assertEqual(rebuild["failures"], [])

    def test_stop_halts_camera_and_loop(self):
        self.session.start()
        out = self.session.stop()
        self.assertEqual(out["message"], "stopped")
        self.assertFalse(self.camera.running)
        self.assertFalse(self.loop.state.capturing)
        self.assertEqual(self.session.stop()["message"], "already_stopped")


if __name__ == "__main__":
    unittest.main()
