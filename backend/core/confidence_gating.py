"""
Keypoint Confidence Gating
Decides whether single keypoints are trustworthy and whether the keypoints a
stroke needs are visible enough to run the full analysis.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from config import get_thresholds
from config.thresholds import ValidityConfig
from .keypoints import BodyLandmark, CameraViewpoint, Keypoint, Pose, StrokeType

logger = logging.getLogger(__name__)

L = BodyLandmark


# Keypoints each stroke needs, per effective viewpoint
_REAR_ELEVATED_REQUIREMENTS: Dict[StrokeType, Tuple[BodyLandmark, ...]] = {
    StrokeType.FOREHAND: (L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST,
                          L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE),
    StrokeType.BACKHAND: (L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.LEFT_ELBOW,
                          L.LEFT_WRIST, L.LEFT_HIP, L.LEFT_KNEE),
    StrokeType.SERVE: (L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.RIGHT_ELBOW,
                       L.RIGHT_WRIST, L.LEFT_HIP, L.RIGHT_HIP),
    StrokeType.VOLLEY: (L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.RIGHT_ELBOW,
                        L.RIGHT_WRIST, L.LEFT_KNEE, L.RIGHT_KNEE),
}

_SIDE_REQUIREMENTS: Dict[StrokeType, Tuple[BodyLandmark, ...]] = {
    StrokeType.FOREHAND: (L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.RIGHT_ELBOW,
                          L.RIGHT_WRIST, L.RIGHT_HIP, L.RIGHT_KNEE),
    StrokeType.BACKHAND: _REAR_ELEVATED_REQUIREMENTS[StrokeType.BACKHAND],
    StrokeType.SERVE: (L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.RIGHT_ELBOW,
                       L.RIGHT_WRIST, L.RIGHT_HIP, L.RIGHT_KNEE),
    StrokeType.VOLLEY: (L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST,
                        L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE),
}

REQUIRED_KEYPOINTS: Dict[CameraViewpoint, Dict[StrokeType, Tuple[BodyLandmark, ...]]] = {
    CameraViewpoint.REAR_ELEVATED: _REAR_ELEVATED_REQUIREMENTS,
    CameraViewpoint.SIDE: _SIDE_REQUIREMENTS,
}

# Front and any other viewpoint fall back to this table
DEFAULT_REQUIREMENTS = _REAR_ELEVATED_REQUIREMENTS

CORE_KEYPOINTS = frozenset({
    L.LEFT_SHOULDER, L.RIGHT_SHOULDER,
    L.LEFT_ELBOW, L.RIGHT_ELBOW,
    L.LEFT_WRIST, L.RIGHT_WRIST,
})


def required_keypoints(stroke: StrokeType, viewpoint: CameraViewpoint) -> Tuple[BodyLandmark, ...]:
    """Required keypoints for a stroke seen from an effective viewpoint."""
    return REQUIRED_KEYPOINTS.get(viewpoint, DEFAULT_REQUIREMENTS)[stroke]


@dataclass
class DetectionStatus:
    """How much of a required keypoint set was detected"""
    detected_count: int
    required_count: int
    detected_ratio: float
    required_ratio: float
    missing_parts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "detected_ratio": round(self.detected_ratio, 3),
            "required_ratio": self.required_ratio,
            "detected_count": self.detected_count,
            "required_count": self.required_count,
            "missing_parts": list(self.missing_parts),
        }


class KeypointGate:
    """
    Validity and coverage checks.

    Coverage passes when either half of the required keypoints are valid, or
    enough of the required upper-body core (shoulders, elbows, wrists) is.
    """

    def __init__(self, config: Optional[ValidityConfig] = None):
        self.config = config or get_thresholds().validity

    def is_valid(self, keypoint: Optional[Keypoint], threshold: Optional[float] = None) -> bool:
        if keypoint is None:
            return False
        limit = self.config.confidence_threshold if threshold is None else threshold
        return keypoint.score > limit

    def valid_landmarks(self, pose: Pose, landmarks: Sequence[BodyLandmark]) -> List[BodyLandmark]:
        return [lm for lm in landmarks if self.is_valid(pose[lm])]

    def has_required_coverage(self, pose: Pose, required: Sequence[BodyLandmark]) -> bool:
        if not required:
            return True

        valid = self.valid_landmarks(pose, required)
        if len(valid) / len(required) >= self.config.required_valid_ratio:
            return True

        core_required = [lm for lm in required if lm in CORE_KEYPOINTS]
        if not core_required:
            return False
        core_valid = [lm for lm in core_required if lm in valid]
        return len(core_valid) / len(core_required) >= self.config.core_valid_ratio

    def detection_status(self, pose: Pose, required: Sequence[BodyLandmark]) -> DetectionStatus:
        valid = set(self.valid_landmarks(pose, required))
        missing = [lm.readable for lm in required if lm not in valid]
        ratio = len(valid) / len(required) if required else 1.0

        return DetectionStatus(
            detected_count=len(valid),
            required_count=len(required),
            detected_ratio=ratio,
            required_ratio=self.config.reported_required_ratio,
            missing_parts=missing,
        )
