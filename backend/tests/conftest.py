"""
Shared fixtures: pose builders
"""

import math

import pytest


# Upright subject seen from behind, right side of the body on the image right
STANDING = {
    "nose": (300, 100), "left_eye": (290, 90), "right_eye": (310, 90),
    "left_ear": (280, 95), "right_ear": (320, 95),
    "left_shoulder": (250, 200), "right_shoulder": (350, 200),
    "left_elbow": (235, 290), "right_elbow": (365, 290),
    "left_wrist": (225, 370), "right_wrist": (375, 370),
    "left_hip": (270, 400), "right_hip": (330, 400),
    "left_knee": (270, 500), "right_knee": (330, 500),
    "left_ankle": (270, 600), "right_ankle": (330, 600),
}


def build_pose(points, score=0.9):
    """
    Pose from ``{name: (x, y)}`` or ``{name: (x, y, score)}``.

    Landmarks that are not listed are absent.
    """
    from core.keypoints import BodyLandmark, Keypoint, Pose

    slots = [None] * len(BodyLandmark)
    for name, value in points.items():
        landmark = BodyLandmark.from_key(name)
        x, y = value[0], value[1]
        kp_score = value[2] if len(value) > 2 else score
        slots[landmark] = Keypoint(landmark, float(x), float(y), kp_score)
    return Pose(tuple(slots))


@pytest.fixture
def make_pose():
    return build_pose


@pytest.fixture
def standing_points():
    return dict(STANDING)


@pytest.fixture
def standing_pose():
    return build_pose(STANDING)


def _ideal_forehand():
    """
    Forehand posture at every rear-elevated ideal: shoulder-to-elbow 60,
    shoulder alignment 30, knee flexion ratio 0.55, elbow-to-wrist 140.
    """
    rs = (300.0, 200.0)
    re = (rs[0] + 100 * math.cos(math.radians(150)), rs[1] + 100 * math.sin(math.radians(150)))
    rw = (re[0] + 100 * math.cos(math.radians(110)), re[1] + 100 * math.sin(math.radians(110)))
    return {
        "nose": (275, 60), "left_eye": (265, 50), "right_eye": (285, 50),
        "left_ear": (255, 55), "right_ear": (295, 55),
        "left_shoulder": (250.0, 200.0 - 50 * math.sqrt(3)), "right_shoulder": rs,
        "left_elbow": (220, 200), "right_elbow": re,
        "left_wrist": (200, 280), "right_wrist": rw,
        "left_hip": (250, 400), "right_hip": (300, 400),
        "left_knee": (250, 500), "right_knee": (300, 490),
        "left_ankle": (250, 600), "right_ankle": (300, 600),
    }


def rear_elevated_capture(points, gain=0.15, widening=10.0):
    """
    Undo the rear-elevated correction: the returned points, once corrected,
    land back on ``points``.
    """
    bottom = max(points["left_ankle"][1], points["right_ankle"][1])
    raw = {}
    for name, (x, y) in points.items():
        if name == "left_shoulder":
            x += widening
        elif name == "right_shoulder":
            x -= widening
        raw[name] = (x, (y + gain * bottom) / (1 + gain))
    return raw


@pytest.fixture
def ideal_forehand_points():
    return _ideal_forehand()


@pytest.fixture
def rear_capture():
    return rear_elevated_capture
