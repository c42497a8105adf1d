import math
import unittest

import numpy as np

from helpers import make_frame, make_person
from posefx.core.constants import LEFT_ELBOW, LEFT_SHOULDER, RIGHT_ELBOW, RIGHT_SHOULDER
from posefx.core.features import FeatureExtractor, left_arm_angle, right_arm_angle
from posefx.core.landmarks import PersonLandmarks


def arms(right_elbow_offset, left_elbow_offset):
    return make_person(
        {
            RIGHT_SHOULDER: (0.4, 0.5),
            RIGHT_ELBOW: (0.4 + right_elbow_offset[0], 0.5 + right_elbow_offset[1]),
            LEFT_SHOULDER: (0.6, 0.5),
            LEFT_ELBOW: (0.6 + left_elbow_offset[0], 0.5 + left_elbow_offset[1]),
        }
    )


class ArmAngleTests(unittest.TestCase):
    def test_horizontal_arms_are_neutral(self):
        person = arms((-0.1, 0.0), (0.1, 0.0))
        self.assertAlmostEqual(right_arm_angle(person), 0.0, places=6)
        self.assertAlmostEqual(left_arm_angle(person), 0.0, places=6)

    def test_raised_arms_read_plus_ninety(self):
        # Image y grows downward, so a raised elbow has a smaller y.
        person = arms((0.0, -0.1), (0.0, -0.1))
        self.assertAlmostEqual(right_arm_angle(person), 90.0, places=6)
        self.assertAlmostEqual(left_arm_angle(person), 90.0, places=6)

    def test_lowered_arms_read_minus_ninety(self):
        person = arms((0.0, 0.1), (0.0, 0.1))
        self.assertAlmostEqual(right_arm_angle(person), -90.0, places=6)
        self.assertAlmostEqual(left_arm_angle(person), -90.0, places=6)

    def test_left_and_right_formulas_differ_for_mirrored_input(self):
        # Both elbows out to the image right at 45 degrees below the shoulder.
        person = arms((0.1, 0.1), (0.1, 0.1))
        self.assertAlmostEqual(left_arm_angle(person), -45.0, places=6)
        self.assertAlmostEqual(right_arm_angle(person), -90.0, places=6)

    def test_degenerate_and_extreme_inputs_stay_in_range(self):
        cases = [
            arms((0.0, 0.0), (0.0, 0.0)),
            arms((1e9, -1e9), (-1e9, 1e9)),
            arms((-1e-12, 0.0), (1e-12, 0.0)),
        ]
        rng = np.random.default_rng(7)
        for _ in range(50):
            cases.append(PersonLandmarks(rng.normal(scale=100.0, size=(33, 3))))
        for person in cases:
            for value in (right_arm_angle(person), left_arm_angle(person)):
                self.assertTrue(math.isfinite(value))
                self.assertGreaterEqual(value, -90.0)
                self.assertLessEqual(value, 90.0)

    def test_non_finite_landmarks_are_neutral(self):
        person = PersonLandmarks.empty()
        self.assertEqual(right_arm_angle(person), 0.0)
        self.assertEqual(left_arm_angle(person), 0.0)


class FeatureExtractorTests(unittest.TestCase):
    def test_zero_persons_is_unavailable(self):
        features = FeatureExtractor().extract(make_frame())
        self.assertIsNone(features.right_arm_angle)
        self.assertIsNone(features.left_arm_angle)
        self.assertIsNone(features.head_shift)

    def test_aggregate_is_mean_for_any_person_count(self):
        rng = np.random.default_rng(3)
        extractor = FeatureExtractor()
        for count in range(1, 6):
            persons = [
                arms(tuple(rng.uniform(-0.2, 0.2, 2)), tuple(rng.uniform(-0.2, 0.2, 2)))
                for _ in range(count)
            ]
            features = extractor.extract(make_frame(*persons))
            expected_right = sum(right_arm_angle(p) for p in persons) / count
            expected_left = sum(left_arm_angle(p) for p in persons) / count
            self.assertAlmostEqual(features.right_arm_angle, expected_right, places=9)
            self.assertAlmostEqual(features.left_arm_angle, expected_left, places=9)

    def test_two_people_average(self):
        raised = arms((0.0, -0.1), (0.1, 0.0))
        level = arms((-0.1, 0.0), (0.1, 0.0))
        features = FeatureExtractor().extract(make_frame(raised, level))
        self.assertAlmostEqual(features.right_arm_angle, 45.0, places=6)
        self.assertAlmostEqual(features.left_arm_angle, 0.0, places=6)
        self.assertIsNone(features.left_foot_shift)


if __name__ == "__main__":
    unittest.main()
