"""
Stroke Type Auto-Detection

Two independent heuristics, each returning a typed result with confidence:

- InstantaneousStrokeDetector looks at one frame's arm geometry.
- TrajectoryStrokeDetector looks at the net direction of recent wrist motion.

Neither overrides the other; the session exposes both.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import logging

from config import get_thresholds
from config.thresholds import DetectionConfig
from .geometry import joint_angle
from .keypoints import BodyLandmark, Pose, StrokeType
from .motion_history import MotionHistory

logger = logging.getLogger(__name__)

L = BodyLandmark

DETECTING_LABEL = "detecting"


@dataclass
class StrokeDetection:
    """Result of stroke type detection"""
    stroke: Optional[StrokeType]  # None while still detecting
    confidence: float  # 0.0 - 1.0
    method: str  # "instantaneous" or "trajectory"
    reason: str = ""
    phase: Optional[str] = None  # "preparation", "impact", "follow-through"
    debug_features: Dict = field(default_factory=dict)

    def is_confident(self, threshold: Optional[float] = None) -> bool:
        limit = get_thresholds().detection.display_confidence if threshold is None else threshold
        return self.stroke is not None and self.confidence >= limit

    @property
    def label(self) -> str:
        """Stroke name when confident enough to show, otherwise ``detecting``."""
        return self.stroke.value if self.is_confident() else DETECTING_LABEL

    def to_dict(self) -> Dict:
        return {
            "stroke": self.stroke.value if self.stroke else None,
            "confidence": round(self.confidence, 3),
            "label": self.label,
            "method": self.method,
            "reason": self.reason,
            "phase": self.phase,
        }


class InstantaneousStrokeDetector:
    """Classifies a single frame from wrist, elbow and shoulder positions."""

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or get_thresholds().detection

    def _undetected(self, reason: str) -> StrokeDetection:
        return StrokeDetection(None, 0.0, "instantaneous", reason)

    def detect(self, pose: Pose) -> StrokeDetection:
        cfg = self.config
        floor = cfg.min_keypoint_score
        lw, rw = pose.valid(L.LEFT_WRIST, floor), pose.valid(L.RIGHT_WRIST, floor)
        ls, rs = pose.valid(L.LEFT_SHOULDER, floor), pose.valid(L.RIGHT_SHOULDER, floor)
        le, re = pose.valid(L.LEFT_ELBOW, floor), pose.valid(L.RIGHT_ELBOW, floor)

        if None in (lw, rw, ls, rs, le, re):
            return self._undetected("arms_not_visible")

        right_elbow = joint_angle(rs, re, rw)
        left_elbow = joint_angle(ls, le, lw)
        debug = {"right_elbow_angle": right_elbow, "left_elbow_angle": left_elbow}
        straight = cfg.straight_elbow_angle

        def detected(stroke: StrokeType, confidence: float, reason: str) -> StrokeDetection:
            return StrokeDetection(stroke, confidence, "instantaneous", reason, debug_features=debug)

        if rw.y < rs.y and lw.y < ls.y:
            return detected(StrokeType.SERVE, cfg.serve_confidence, "both_wrists_above_shoulders")

        if rw.x > rs.x and right_elbow is not None and right_elbow < straight:
            return detected(StrokeType.FOREHAND, cfg.groundstroke_confidence, "right_wrist_outside_bent_elbow")

        if lw.x < ls.x and left_elbow is not None and left_elbow < straight:
            return detected(StrokeType.BACKHAND, cfg.groundstroke_confidence, "left_wrist_outside_bent_elbow")

        straight_arm = any(a is not None and a > straight for a in (right_elbow, left_elbow))
        if straight_arm and (rw.y < re.y or lw.y < le.y):
            return detected(StrokeType.VOLLEY, cfg.volley_confidence, "straight_arm_wrist_above_elbow")

        result = self._undetected("no_pattern")
        result.debug_features = debug
        return result


class TrajectoryStrokeDetector:
    """
    Classifies the recent wrist path from the motion history.

    The wrist followed is the left one when the current stroke is a backhand,
    otherwise the right one. Horizontal-dominant motion keeps the
    forehand/backhand family, upward motion means serve, downward motion
    means volley, and strong diagonals are resolved by quadrant.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or get_thresholds().detection

    def detect(self, history: MotionHistory, current: StrokeType) -> StrokeDetection:
        cfg = self.config
        if len(history) < cfg.trajectory_min_history:
            return StrokeDetection(None, 0.0, "trajectory", "insufficient_history")

        wrist = L.LEFT_WRIST if current == StrokeType.BACKHAND else L.RIGHT_WRIST
        positions = history.positions(wrist, cfg.trajectory_window)
        if len(positions) < cfg.trajectory_min_points:
            return StrokeDetection(None, 0.0, "trajectory", "wrist_not_tracked")

        horizontal = positions[-1].x - positions[0].x
        vertical = positions[-1].y - positions[0].y
        debug = {"horizontal": horizontal, "vertical": vertical, "points": len(positions)}
        phase = self.swing_phase(history, wrist)

        def detected(stroke: Optional[StrokeType], reason: str) -> StrokeDetection:
            confidence = cfg.trajectory_confidence[reason] if stroke is not None else 0.0
            return StrokeDetection(stroke, confidence, "trajectory", reason, phase, debug)

        factor = cfg.dominance_factor
        if abs(horizontal) > abs(vertical) * factor:
            if horizontal > 0:
                stroke = StrokeType.BACKHAND if current == StrokeType.BACKHAND else StrokeType.FOREHAND
                return detected(stroke, "horizontal_forward")
            stroke = StrokeType.FOREHAND if current == StrokeType.BACKHAND else StrokeType.BACKHAND
            return detected(stroke, "horizontal_reverse")

        if abs(vertical) > abs(horizontal) * factor:
            if vertical < 0:
                return detected(StrokeType.SERVE, "vertical_upward")
            return detected(StrokeType.VOLLEY, "vertical_downward")

        threshold = cfg.diagonal_min_movement
        if abs(horizontal) > threshold and abs(vertical) > threshold:
            if vertical < 0 and horizontal > 0:
                return detected(StrokeType.SERVE, "diagonal_up_forward")
            if vertical < 0 and horizontal < 0:
                return detected(StrokeType.BACKHAND, "diagonal_up_back")
            return detected(current, "diagonal_down")

        return detected(None, "no_dominant_direction")

    def swing_phase(self, history: MotionHistory, wrist: BodyLandmark) -> Optional[str]:
        """Swing phase from the mean recent wrist speed."""
        velocities = history.velocities(wrist, self.config.phase_window)
        if not velocities:
            return None

        mean_speed = sum(v.speed for v in velocities) / len(velocities)
        if mean_speed < self.config.preparation_speed_max:
            return "preparation"
        if mean_speed > self.config.impact_speed_min:
            return "impact"
        return "follow-through"
