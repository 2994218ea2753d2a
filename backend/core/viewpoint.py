"""
Camera Viewpoint Classification and Correction
Classifies the camera viewpoint from pose landmarks and applies the
viewpoint-specific coordinate corrections used before feature extraction.
"""

from dataclasses import dataclass
from typing import Dict, Optional
import logging

from config import get_thresholds
from config.thresholds import ValidityConfig, ViewpointConfig
from .geometry import distance
from .keypoints import BodyLandmark, CameraViewpoint, Keypoint, Pose

logger = logging.getLogger(__name__)

L = BodyLandmark

FACE_LANDMARKS = (L.NOSE, L.LEFT_EYE, L.RIGHT_EYE)
TOP_LANDMARKS = (L.NOSE, L.LEFT_EYE, L.RIGHT_EYE, L.LEFT_EAR, L.RIGHT_EAR,
                 L.LEFT_SHOULDER, L.RIGHT_SHOULDER)
BOTTOM_LANDMARKS = (L.LEFT_ANKLE, L.RIGHT_ANKLE)


@dataclass
class ViewpointClassification:
    """Camera viewpoint classification result"""
    viewpoint: CameraViewpoint
    # Shoulder width / hip width, None when either is unavailable
    width_ratio: Optional[float]
    # Mean score of nose and eyes
    face_score: float
    shoulder_separation: Optional[float]
    reason: str

    def to_dict(self) -> Dict:
        return {
            "viewpoint": self.viewpoint.value,
            "width_ratio": round(self.width_ratio, 3) if self.width_ratio is not None else None,
            "face_score": round(self.face_score, 3),
            "shoulder_separation": self.shoulder_separation,
            "reason": self.reason,
        }


class ViewpointClassifier:
    """
    Heuristic viewpoint decision tree.

    Faces turned away mean the camera is behind the player (rear-elevated);
    a clearly visible face with matching shoulder and hip widths means front;
    overlapping shoulders mean side. Anything ambiguous falls back to
    rear-elevated.
    """

    def __init__(self, config: Optional[ViewpointConfig] = None, validity: Optional[ValidityConfig] = None):
        thresholds = get_thresholds()
        self.config = config or thresholds.viewpoint
        self.threshold = (validity or thresholds.validity).confidence_threshold

    def classify(self, pose: Pose) -> ViewpointClassification:
        cfg = self.config
        left_shoulder = pose.valid(L.LEFT_SHOULDER, self.threshold)
        right_shoulder = pose.valid(L.RIGHT_SHOULDER, self.threshold)

        shoulder_width = distance(left_shoulder, right_shoulder)
        hip_width = distance(pose.valid(L.LEFT_HIP, self.threshold), pose.valid(L.RIGHT_HIP, self.threshold))

        face_score = sum(
            pose[lm].score if pose[lm] is not None else 0.0 for lm in FACE_LANDMARKS
        ) / len(FACE_LANDMARKS)

        separation = None
        if left_shoulder is not None and right_shoulder is not None:
            separation = abs(left_shoulder.x - right_shoulder.x)

        def result(viewpoint: CameraViewpoint, ratio: Optional[float], reason: str) -> ViewpointClassification:
            return ViewpointClassification(viewpoint, ratio, face_score, separation, reason)

        if not shoulder_width or not hip_width:
            return result(CameraViewpoint.REAR_ELEVATED, None, "widths_unavailable")

        width_ratio = shoulder_width / hip_width

        if face_score < cfg.rear_face_score_max:
            return result(CameraViewpoint.REAR_ELEVATED, width_ratio, "face_hidden")

        if (face_score > cfg.front_face_score_min
                and cfg.front_width_ratio_min < width_ratio < cfg.front_width_ratio_max):
            return result(CameraViewpoint.FRONT, width_ratio, "face_visible_square_torso")

        if separation is not None and separation < cfg.side_shoulder_separation_max:
            return result(CameraViewpoint.SIDE, width_ratio, "shoulders_overlap")

        return result(CameraViewpoint.REAR_ELEVATED, width_ratio, "default")


class ViewpointCorrector:
    """Pure corrections; every method returns a corrected copy of the pose."""

    def __init__(self, config: Optional[ViewpointConfig] = None, validity: Optional[ValidityConfig] = None):
        thresholds = get_thresholds()
        self.config = config or thresholds.viewpoint
        self.threshold = (validity or thresholds.validity).confidence_threshold

    def correct(self, pose: Pose, viewpoint: CameraViewpoint) -> Pose:
        if viewpoint == CameraViewpoint.REAR_ELEVATED:
            return self.correct_rear_elevated(pose)
        if viewpoint == CameraViewpoint.SIDE:
            return self.correct_side(pose)
        return self.correct_front(pose)

    def correct_rear_elevated(self, pose: Pose) -> Pose:
        """
        Stretch the body upward away from the ankles and widen the shoulders.

        A camera above and behind the player compresses height; each point is
        raised by ``rear_vertical_gain`` times its height above the lowest
        visible ankle. Without a visible top landmark and ankle the pose is
        returned unchanged.
        """
        tops = [kp.y for kp in (pose.valid(lm, self.threshold) for lm in TOP_LANDMARKS) if kp]
        bottoms = [kp.y for kp in (pose.valid(lm, self.threshold) for lm in BOTTOM_LANDMARKS) if kp]

        updates: Dict[BodyLandmark, Optional[Keypoint]] = {}

        if tops and bottoms and max(bottoms) > min(tops):
            bottom_y = max(bottoms)
            gain = self.config.rear_vertical_gain
            for kp in pose:
                if kp is not None:
                    updates[kp.landmark] = kp.moved(y=kp.y - gain * (bottom_y - kp.y))

            widen = self.config.rear_shoulder_widening
            for landmark, direction in ((L.LEFT_SHOULDER, -1.0), (L.RIGHT_SHOULDER, 1.0)):
                kp = updates.get(landmark)
                if kp is not None:
                    updates[landmark] = kp.moved(x=kp.x + direction * widen)

        return pose.with_keypoints(updates)

    def correct_side(self, pose: Pose) -> Pose:
        """Spread shoulders and hips away from the shoulder midpoint."""
        left_shoulder, right_shoulder = pose[L.LEFT_SHOULDER], pose[L.RIGHT_SHOULDER]
        if left_shoulder is None or right_shoulder is None:
            return pose.with_keypoints({})

        center_x = (left_shoulder.x + right_shoulder.x) / 2
        factor = self.config.side_spread_factor
        updates = {}
        for landmark in (L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.LEFT_HIP, L.RIGHT_HIP):
            kp = pose[landmark]
            if kp is not None:
                updates[landmark] = kp.moved(x=kp.x + (kp.x - center_x) * factor)
        return pose.with_keypoints(updates)

    def correct_front(self, pose: Pose) -> Pose:
        # Feature formulas assume a frontal projection already
        return pose.with_keypoints({})
