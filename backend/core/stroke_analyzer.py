"""
Stroke Feature Extraction and Analysis

For every stroke type and effective camera viewpoint a fixed profile names the
geometric features to measure. Each feature is scored against its ideal with
a Gaussian proximity score; features that cannot be measured score neutral.
Posture is the mean of the feature scores and is combined with the
history-derived components into the composite score.

Viewpoint groups:
- rear-elevated: posture plus stability, movement, timing and acceleration
- side and front: posture plus stability and movement
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging

from config import get_thresholds
from config.thresholds import ScoringConfig, ValidityConfig
from .geometry import angle_at, distance, inclination, midpoint
from .keypoints import BodyLandmark, CameraViewpoint, Keypoint, Pose, StrokeType
from .motion_history import MotionHistory
from .scoring import HistoryScorer, composite_score, feature_score

logger = logging.getLogger(__name__)

L = BodyLandmark

# Accessor returning a landmark's keypoint when it is valid, else None
KeypointGetter = Callable[[BodyLandmark], Optional[Keypoint]]


# =============================================================================
# Feature formulas
# =============================================================================

def _knee_flexion_ratio(k: KeypointGetter) -> Optional[float]:
    """Knee-to-ankle over hip-to-ankle distance on the right leg."""
    knee_to_ankle = distance(k(L.RIGHT_KNEE), k(L.RIGHT_ANKLE))
    hip_to_ankle = distance(k(L.RIGHT_HIP), k(L.RIGHT_ANKLE))
    if knee_to_ankle is None or not hip_to_ankle:
        return None
    return knee_to_ankle / hip_to_ankle


def _shoulder_hip_alignment(k: KeypointGetter) -> Optional[float]:
    """Difference between shoulder width and hip width along x."""
    ls, rs, lh, rh = k(L.LEFT_SHOULDER), k(L.RIGHT_SHOULDER), k(L.LEFT_HIP), k(L.RIGHT_HIP)
    if None in (ls, rs, lh, rh):
        return None
    return abs((rs.x - ls.x) - (rh.x - lh.x))


def _center_shift(k: KeypointGetter) -> Optional[float]:
    lh, rh = k(L.LEFT_HIP), k(L.RIGHT_HIP)
    if lh is None or rh is None:
        return None
    return rh.x - lh.x


def _back_arch(k: KeypointGetter) -> Optional[float]:
    """Torso lean away from vertical, in degrees."""
    shoulders = midpoint(k(L.LEFT_SHOULDER), k(L.RIGHT_SHOULDER))
    hips = midpoint(k(L.LEFT_HIP), k(L.RIGHT_HIP))
    lean = inclination(shoulders, hips)
    return abs(lean) if lean is not None else None


def _elbow_height(k: KeypointGetter) -> Optional[float]:
    """Pixels the right elbow sits above the right shoulder."""
    rs, re = k(L.RIGHT_SHOULDER), k(L.RIGHT_ELBOW)
    if rs is None or re is None:
        return None
    return rs.y - re.y


def _avg_knee_angle(k: KeypointGetter) -> Optional[float]:
    angles = [a for a in (
        angle_at(k(L.RIGHT_HIP), k(L.RIGHT_KNEE), k(L.RIGHT_ANKLE)),
        angle_at(k(L.LEFT_ANKLE), k(L.LEFT_KNEE), k(L.LEFT_HIP)),
    ) if a is not None]
    if not angles:
        return None
    return sum(angles) / len(angles)


def _angle(a: BodyLandmark, b: BodyLandmark, c: BodyLandmark) -> Callable[[KeypointGetter], Optional[float]]:
    return lambda k: angle_at(k(a), k(b), k(c))


def _distance(a: BodyLandmark, b: BodyLandmark) -> Callable[[KeypointGetter], Optional[float]]:
    return lambda k: distance(k(a), k(b))


def _shoulder_alignment(k: KeypointGetter) -> Optional[float]:
    return inclination(k(L.LEFT_SHOULDER), k(L.RIGHT_SHOULDER))


# =============================================================================
# Stroke profiles
# =============================================================================

@dataclass(frozen=True)
class FeatureSpec:
    name: str
    compute: Callable[[KeypointGetter], Optional[float]]
    # Reported without an ideal; scores a fixed value
    unscored: bool = False


@dataclass(frozen=True)
class StrokeProfile:
    stroke: StrokeType
    features: Tuple[FeatureSpec, ...]
    # Landmarks tracked through the motion history
    wrist: BodyLandmark
    elbow: BodyLandmark
    # Whether timing and acceleration contribute
    full_components: bool


REAR = "rear"
DEFAULT = "default"

# The left-side formulas swap the outer points so a mirrored pose measures
# the same turning angle as its right-side counterpart.
STROKE_PROFILES: Dict[Tuple[StrokeType, str], StrokeProfile] = {
    (StrokeType.FOREHAND, REAR): StrokeProfile(
        StrokeType.FOREHAND,
        (
            FeatureSpec("shoulder_to_elbow_angle", _angle(L.RIGHT_HIP, L.RIGHT_SHOULDER, L.RIGHT_ELBOW)),
            FeatureSpec("shoulder_alignment", _shoulder_alignment),
            FeatureSpec("knee_flexion_ratio", _knee_flexion_ratio),
            FeatureSpec("elbow_to_wrist_angle", _angle(L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST)),
        ),
        L.RIGHT_WRIST, L.RIGHT_ELBOW, True,
    ),
    (StrokeType.FOREHAND, DEFAULT): StrokeProfile(
        StrokeType.FOREHAND,
        (
            FeatureSpec("elbow_angle", _angle(L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST)),
            FeatureSpec("hip_knee_angle", _angle(L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE)),
            FeatureSpec("shoulder_hip_alignment", _shoulder_hip_alignment),
            FeatureSpec("center_shift", _center_shift, unscored=True),
        ),
        L.RIGHT_WRIST, L.RIGHT_ELBOW, False,
    ),
    (StrokeType.BACKHAND, REAR): StrokeProfile(
        StrokeType.BACKHAND,
        (
            FeatureSpec("left_shoulder_to_elbow_angle", _angle(L.LEFT_ELBOW, L.LEFT_SHOULDER, L.LEFT_HIP)),
            FeatureSpec("shoulder_alignment", _shoulder_alignment),
            FeatureSpec("elbow_to_wrist_angle", _angle(L.LEFT_WRIST, L.LEFT_ELBOW, L.LEFT_SHOULDER)),
            FeatureSpec("knee_angle_left", _angle(L.LEFT_ANKLE, L.LEFT_KNEE, L.LEFT_HIP)),
        ),
        L.LEFT_WRIST, L.LEFT_ELBOW, True,
    ),
    (StrokeType.BACKHAND, DEFAULT): StrokeProfile(
        StrokeType.BACKHAND,
        (
            FeatureSpec("elbow_angle", _angle(L.LEFT_WRIST, L.LEFT_ELBOW, L.LEFT_SHOULDER)),
            FeatureSpec("knee_angle_left", _angle(L.LEFT_ANKLE, L.LEFT_KNEE, L.LEFT_HIP)),
            FeatureSpec("hands_distance", _distance(L.LEFT_WRIST, L.RIGHT_WRIST)),
            FeatureSpec("shoulder_alignment", _shoulder_alignment),
        ),
        L.LEFT_WRIST, L.LEFT_ELBOW, False,
    ),
    (StrokeType.SERVE, REAR): StrokeProfile(
        StrokeType.SERVE,
        (
            FeatureSpec("shoulder_to_elbow_angle", _angle(L.RIGHT_HIP, L.RIGHT_SHOULDER, L.RIGHT_ELBOW)),
            FeatureSpec("shoulder_alignment", _shoulder_alignment),
            FeatureSpec("arm_extension", _angle(L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST)),
            FeatureSpec("back_arch", _back_arch),
            FeatureSpec("knee_angle", _angle(L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE)),
        ),
        L.RIGHT_WRIST, L.RIGHT_ELBOW, True,
    ),
    (StrokeType.SERVE, DEFAULT): StrokeProfile(
        StrokeType.SERVE,
        (
            FeatureSpec("arm_extension", _angle(L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST)),
            FeatureSpec("shoulder_rotation", _angle(L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.RIGHT_ELBOW)),
            FeatureSpec("back_arch", _back_arch),
            FeatureSpec("knee_angle", _angle(L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE)),
        ),
        L.RIGHT_WRIST, L.RIGHT_ELBOW, False,
    ),
    (StrokeType.VOLLEY, REAR): StrokeProfile(
        StrokeType.VOLLEY,
        (
            FeatureSpec("shoulder_to_elbow_angle", _angle(L.RIGHT_HIP, L.RIGHT_SHOULDER, L.RIGHT_ELBOW)),
            FeatureSpec("shoulder_to_wrist_distance", _distance(L.RIGHT_SHOULDER, L.RIGHT_WRIST)),
            FeatureSpec("avg_knee_angle", _avg_knee_angle),
            FeatureSpec("shoulder_alignment", _shoulder_alignment),
        ),
        L.RIGHT_WRIST, L.RIGHT_ELBOW, True,
    ),
    (StrokeType.VOLLEY, DEFAULT): StrokeProfile(
        StrokeType.VOLLEY,
        (
            FeatureSpec("shoulder_to_wrist_distance", _distance(L.RIGHT_SHOULDER, L.RIGHT_WRIST)),
            FeatureSpec("avg_knee_angle", _avg_knee_angle),
            FeatureSpec("elbow_height", _elbow_height),
            FeatureSpec("shoulder_alignment", _shoulder_alignment),
        ),
        L.RIGHT_WRIST, L.RIGHT_ELBOW, False,
    ),
}


def stroke_profile(stroke: StrokeType, viewpoint: CameraViewpoint) -> StrokeProfile:
    group = REAR if viewpoint == CameraViewpoint.REAR_ELEVATED else DEFAULT
    return STROKE_PROFILES[(stroke, group)]


# =============================================================================
# Analyzer
# =============================================================================

@dataclass
class StrokeAnalysis:
    """Per-frame features and scores for one stroke"""
    stroke: StrokeType
    viewpoint: CameraViewpoint
    # Feature name -> measured value (None when not measurable)
    motion_data: Dict[str, Optional[float]]
    feature_scores: Dict[str, float]
    # posture/stability/movement/timing/acceleration; None when not part of this profile
    component_scores: Dict[str, Optional[int]]
    composite_score: int


class StrokeAnalyzer:
    """Extracts a stroke profile's features and turns them into scores."""

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        validity: Optional[ValidityConfig] = None,
        history_scorer: Optional[HistoryScorer] = None
    ):
        thresholds = get_thresholds()
        self.config = config or thresholds.scoring
        self.threshold = (validity or thresholds.validity).confidence_threshold
        self.history_scorer = history_scorer or HistoryScorer(validity=validity)

    def extract(self, pose: Pose, profile: StrokeProfile) -> Dict[str, Optional[float]]:
        getter: KeypointGetter = lambda landmark: pose.valid(landmark, self.threshold)
        return {feature.name: feature.compute(getter) for feature in profile.features}

    def score_features(self, motion_data: Dict[str, Optional[float]], profile: StrokeProfile) -> Dict[str, float]:
        ideals = self.config.ideal_angles[profile.stroke.value]
        scores = {}
        for feature in profile.features:
            if feature.unscored:
                scores[feature.name] = float(self.config.unscored_feature_score)
            else:
                scores[feature.name] = feature_score(
                    motion_data.get(feature.name), ideals[feature.name], self.config.neutral_score
                )
        return scores

    def analyze(
        self,
        pose: Pose,
        stroke: StrokeType,
        viewpoint: CameraViewpoint,
        history: MotionHistory
    ) -> StrokeAnalysis:
        profile = stroke_profile(stroke, viewpoint)
        motion_data = self.extract(pose, profile)
        feature_scores = self.score_features(motion_data, profile)

        posture = int(round(sum(feature_scores.values()) / len(feature_scores)))
        history_scores = self.history_scorer.scores(history, profile.wrist, profile.elbow)

        components: Dict[str, Optional[int]] = {
            "posture": posture,
            "stability": history_scores["stability"],
            "movement": history_scores["movement"],
            "timing": history_scores["timing"] if profile.full_components else None,
            "acceleration": history_scores["acceleration"] if profile.full_components else None,
        }

        return StrokeAnalysis(
            stroke=stroke,
            viewpoint=viewpoint,
            motion_data=motion_data,
            feature_scores=feature_scores,
            component_scores=components,
            composite_score=composite_score(components, self.config.component_weights, self.config.neutral_score),
        )
