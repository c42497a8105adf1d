LANDMARK_COUNT = 33

NOSE = 0
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_ELBOW = 13
RIGHT_ELBOW = 14
LEFT_ANKLE = 27
RIGHT_ANKLE = 28

# Landmarks tracked for frame-to-frame displacement.
HEAD_REFERENCE = NOSE
LEFT_FOOT = LEFT_ANKLE
RIGHT_FOOT = RIGHT_ANKLE

# COCO-17 keypoint index -> 33-point body layout index.
COCO_TO_BODY33 = {
    0: 0,
    1: 2,
    2: 5,
    3: 7,
    4: 8,
    5: 11,
    6: 12,
    7: 13,
    8: 14,
    9: 15,
    10: 16,
    11: 23,
    12: 24,
    13: 25,
    14: 26,
    15: 27,
    16: 28,
}

FEATURE_NAMES = (
    "right_arm_angle",
    "left_arm_angle",
    "right_foot_shift",
    "left_foot_shift",
    "head_shift",
)

# Effects that act on the source instead of occupying a slot in the chain.
SOURCE_EFFECT_KINDS = frozenset({"playback_rate"})
