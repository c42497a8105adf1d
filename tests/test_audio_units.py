import tempfile
import unittest
from pathlib import Path

import numpy as np
from scipy.io import wavfile

from posefx.core.audio import (
    AudioUnitError,
    DistortionUnit,
    FeedbackDelayUnit,
    OutputSink,
    PhaserUnit,
    PitchShiftUnit,
    TrackSource,
    create_unit,
)


class AudioNodeTests(unittest.TestCase):
    def test_connect_and_isolate_keep_both_sides_consistent(self):
        src = TrackSource(data=np.ones(8))
        fx = DistortionUnit("fx")
        sink = OutputSink("out")
        src.connect(fx)
        fx.connect(sink)
        fx.isolate()
        self.assertEqual(src.outputs, ())
        self.assertEqual(sink.inputs, ())
        self.assertEqual(fx.inputs, ())
        self.assertEqual(fx.outputs, ())

    def test_self_connection_is_rejected(self):
        fx = DistortionUnit("fx")
        with self.assertRaises(AudioUnitError):
            fx.connect(fx)

    def test_unknown_parameter_raises(self):
        with self.assertRaises(KeyError):
            DistortionUnit("fx").set_param("octaves", 1.0)

    def test_sink_without_inputs_renders_silence(self):
        block = OutputSink("out").render(64)
        self.assertEqual(block.shape, (64,))
        self.assertFalse(np.any(block))

    def test_create_unit_for_source_level_kind_is_none(self):
        self.assertIsNone(create_unit("playback_rate", "rate"))
        self.assertIsInstance(create_unit("phaser", "ph"), PhaserUnit)
        with self.assertRaises(ValueError):
            create_unit("reverb", "verb")


class TrackSourceTests(unittest.TestCase):
    def test_playback_rate_changes_read_speed(self):
        src = TrackSource(data=np.arange(100, dtype=np.float32), loop=False)
        src.set_param("playback_rate", 2.0)
        block = src.pull(4)
        np.testing.assert_allclose(block, [0.0, 2.0, 4.0, 6.0])
        self.assertEqual(src.position, 8.0)

    def test_non_looping_source_runs_out_to_silence(self):
        src = TrackSource(data=np.ones(4, dtype=np.float32), loop=False)
        block = src.pull(8)
        np.testing.assert_allclose(block[:4], 1.0)
        np.testing.assert_allclose(block[5:], 0.0)

    def test_from_wav_converts_int_pcm_to_float_mono(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tone.wav"
            stereo = np.zeros((100, 2), dtype=np.int16)
            stereo[:, 0] = 16384
            wavfile.write(str(path), 44100, stereo)
            src = TrackSource.from_wav(path, sample_rate=44100)
        self.assertEqual(src.data.shape, (100,))
        self.assertAlmostEqual(float(src.data[0]), 0.25, places=3)
        self.assertEqual(src.name, "tone")


class EffectUnitTests(unittest.TestCase):
    def test_distortion_output_is_bounded(self):
        fx = DistortionUnit("fx")
        fx.set_param("distortion", 0.5)
        out = fx.process(np.linspace(-1.0, 1.0, 256, dtype=np.float32))
        self.assertLessEqual(float(np.max(np.abs(out))), 1.0 + 1e-6)

    def test_feedback_delay_echoes_after_delay_time(self):
        fx = FeedbackDelayUnit("delay", sample_rate=1000)
        fx.set_param("delay_time", 0.01)
        fx.set_param("feedback", 0.5)
        fx.set_param("wet", 1.0)
        impulse = np.zeros(40, dtype=np.float32)
        impulse[0] = 1.0
        out = fx.process(impulse)
        self.assertAlmostEqual(float(out[10]), 1.0)
        self.assertAlmostEqual(float(out[20]), 0.5)
        self.assertAlmostEqual(float(out[30]), 0.25)
        self.assertEqual(float(out[0]), 0.0)

    def test_phaser_keeps_block_shape_and_finite_values(self):
        fx = PhaserUnit("ph", sample_rate=8000)
        fx.set_param("octaves", 8.0)
        block = np.random.default_rng(1).uniform(-1, 1, 512).astype(np.float32)
        for _ in range(4):
            out = fx.process(block)
            self.assertEqual(out.shape, block.shape)
            self.assertTrue(np.all(np.isfinite(out)))

    def test_pitch_shift_handles_blocks_larger_than_chunk(self):
        fx = PitchShiftUnit("ps", sample_rate=8000)
        fx.set_param("pitch", 7.0)
        block = np.sin(np.linspace(0, 200 * np.pi, 10000)).astype(np.float32)
        out = fx.process(block)
        self.assertEqual(out.shape, block.shape)
        self.assertTrue(np.all(np.isfinite(out)))
        self.assertGreater(float(np.max(np.abs(out[2000:]))), 0.1)

    def test_chain_renders_through_sink(self):
        src = TrackSource(data=np.full(64, 0.5, dtype=np.float32))
        fx = DistortionUnit("fx")
        fx.set_param("wet", 0.0)
        sink = OutputSink("out")
        src.connect(fx)
        fx.connect(sink)
        np.testing.assert_allclose(sink.render(16), 0.5, rtol=1e-6)


if __name__ == "__main__":
    unittest.main()
