"""
Tennis Form Analyzer - Configurable Thresholds
All tuning constants for filtering, estimation, viewpoint correction and
scoring live here so they can be adjusted without code changes.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass
class ValidityConfig:
    """Keypoint validity and coverage thresholds"""
    # A keypoint is valid when its score exceeds this
    confidence_threshold: float = 0.15
    # Share of required keypoints that must be valid
    required_valid_ratio: float = 0.5
    # Share of required core (shoulders/elbows/wrists) keypoints that must be valid
    core_valid_ratio: float = 0.4
    # Reported alongside the visibility issue
    reported_required_ratio: float = 0.6
    # Below this detected ratio a detection-confidence marker is attached
    detection_confidence_ratio: float = 0.9
    # Score reported when coverage is insufficient
    insufficient_coverage_score: int = 20


@dataclass
class TemporalFilterConfig:
    """Exponential and Kalman smoothing constants"""
    # Weight of the current frame in the exponential filter
    exponential_alpha: float = 0.8
    # Both frames must exceed this score for exponential smoothing
    exponential_min_score: float = 0.1
    # Carried-forward score decay
    score_decay: float = 0.95

    # Kalman process noise
    process_noise: float = 0.01
    # Kalman measurement noise for confident keypoints
    measurement_noise: float = 0.1
    # Initial uncertainty
    initial_uncertainty: float = 1.0
    # (score upper bound, measurement noise) tiers, checked in order
    noise_tiers: List[Tuple[float, float]] = field(
        default_factory=lambda: [(0.3, 0.5), (0.6, 0.3)]
    )
    # Keypoints under this score bypass the Kalman filter
    kalman_min_score: float = 0.1


@dataclass
class EstimationConfig:
    """Missing-keypoint estimation offsets and confidence attenuation"""
    # Horizontal mirror offset for a missing shoulder (pixels)
    shoulder_mirror_offset: float = 100.0
    shoulder_confidence_factor: float = 0.8
    # Elbow interpolated between shoulder and wrist
    elbow_midpoint_confidence_factor: float = 0.9
    # Elbow dropped below the shoulder when the wrist is missing (pixels)
    elbow_drop_offset: float = 60.0
    elbow_drop_confidence_factor: float = 0.7
    hip_confidence_factor: float = 0.7


@dataclass
class ViewpointConfig:
    """Camera viewpoint classification and correction"""
    # Average face score below this means the subject faces away
    rear_face_score_max: float = 0.2
    # Average face score above this (with matching widths) means front
    front_face_score_min: float = 0.7
    front_width_ratio_min: float = 0.8
    front_width_ratio_max: float = 1.2
    # Shoulders closer than this horizontally means side view (pixels)
    side_shoulder_separation_max: float = 30.0

    # Upward stretch applied to rear-elevated poses, relative to height above the ankles
    rear_vertical_gain: float = 0.15
    # Outward shift of each shoulder on rear-elevated poses (pixels)
    rear_shoulder_widening: float = 10.0
    # Side view shoulder/hip spread relative to the shoulder midpoint
    side_spread_factor: float = 0.1


@dataclass
class HistoryConfig:
    """Motion history buffer and history-derived components"""
    capacity: int = 60
    short_window: int = 30
    # Landmarks below this score are not stored
    min_store_score: float = 0.2
    # Velocities are only computed across intervals longer than this (seconds)
    min_velocity_interval_sec: float = 0.016

    stability_window: int = 5
    stability_min_frames: int = 3
    # Positional std dev bands (pixels): below static_max is too static,
    # up to ideal_max is ideal, up to unstable_min is acceptable
    stability_static_max: float = 10.0
    stability_ideal_max: float = 80.0
    stability_unstable_min: float = 120.0
    stability_static_score: int = 40
    stability_ideal_score: int = 90
    stability_acceptable_score: int = 70
    stability_unstable_score: int = 30

    flow_window: int = 10
    flow_min_frames: int = 5
    # (upper bound on average jerk, score)
    flow_bands: List[Tuple[float, int]] = field(
        default_factory=lambda: [(5.0, 90), (15.0, 75), (30.0, 60)]
    )
    flow_above_score: int = 40

    timing_window: int = 5
    # (upper bound on peak speed in px/s, score)
    timing_bands: List[Tuple[float, int]] = field(
        default_factory=lambda: [(5.0, 30), (10.0, 70), (20.0, 90), (30.0, 80)]
    )
    timing_above_score: int = 60

    # Acceleration is not modeled yet
    acceleration_score: int = 70
    # Returned by any history component without enough data
    default_score: int = 50


@dataclass
class ScoringConfig:
    """Composite and probabilistic scoring"""
    component_weights: Dict[str, float] = field(default_factory=lambda: {
        "posture": 0.35,
        "stability": 0.15,
        "movement": 0.25,
        "timing": 0.15,
        "acceleration": 0.10,
    })
    # Used for features that cannot be computed
    neutral_score: int = 50
    # Fixed score for features reported without an ideal (forehand center shift)
    unscored_feature_score: int = 70
    # S-curve exponents applied to the probabilistic score
    low_curve_exponent: float = 1.2
    high_curve_exponent: float = 0.8

    # Gaussian ideals: feature -> (mean, std dev)
    ideal_angles: Dict[str, Dict[str, Tuple[float, float]]] = field(default_factory=lambda: {
        "forehand": {
            "shoulder_to_elbow_angle": (60.0, 15.0),
            "shoulder_alignment": (30.0, 12.0),
            "knee_flexion_ratio": (0.55, 0.1),
            "elbow_to_wrist_angle": (140.0, 20.0),
            "elbow_angle": (140.0, 20.0),
            "hip_knee_angle": (150.0, 15.0),
            "shoulder_hip_alignment": (40.0, 10.0),
        },
        "backhand": {
            "left_shoulder_to_elbow_angle": (65.0, 15.0),
            "shoulder_alignment": (-30.0, 12.0),
            "elbow_to_wrist_angle": (145.0, 15.0),
            "elbow_angle": (145.0, 15.0),
            "knee_angle_left": (145.0, 15.0),
            "hands_distance": (60.0, 30.0),
        },
        "serve": {
            "shoulder_to_elbow_angle": (130.0, 20.0),
            "shoulder_alignment": (50.0, 15.0),
            "arm_extension": (160.0, 15.0),
            "shoulder_rotation": (120.0, 30.0),
            "back_arch": (20.0, 10.0),
            "knee_angle": (140.0, 15.0),
        },
        "volley": {
            "shoulder_to_elbow_angle": (90.0, 15.0),
            "shoulder_to_wrist_distance": (80.0, 20.0),
            "avg_knee_angle": (140.0, 10.0),
            "shoulder_alignment": (0.0, 8.0),
            "elbow_height": (10.0, 15.0),
        },
    })

    # Probabilistic ideals: feature -> (ideal value, weight, range)
    probabilistic_ideals: Dict[str, Dict[str, Tuple[float, float, float]]] = field(default_factory=lambda: {
        "forehand": {
            "shoulder_to_elbow_angle": (60.0, 1.5, 20.0),
            "shoulder_alignment": (30.0, 1.2, 15.0),
            "knee_flexion_ratio": (0.55, 1.0, 0.15),
            "elbow_to_wrist_angle": (140.0, 1.3, 25.0),
            "elbow_angle": (120.0, 1.3, 20.0),
            "hip_knee_angle": (150.0, 1.0, 20.0),
            "shoulder_hip_alignment": (40.0, 0.8, 15.0),
            "center_shift": (25.0, 0.7, 15.0),
        },
        "backhand": {
            "left_shoulder_to_elbow_angle": (65.0, 1.5, 20.0),
            "shoulder_alignment": (-30.0, 1.2, 15.0),
            "knee_angle_left": (140.0, 1.0, 20.0),
            "hands_distance": (60.0, 1.2, 30.0),
        },
        "serve": {
            "arm_extension": (160.0, 1.5, 20.0),
            "shoulder_rotation": (120.0, 1.2, 30.0),
            "back_arch": (20.0, 1.0, 10.0),
            "knee_angle": (140.0, 0.8, 20.0),
        },
        "volley": {
            "shoulder_to_wrist_distance": (100.0, 1.2, 25.0),
            "avg_knee_angle": (145.0, 1.0, 20.0),
            "shoulder_alignment": (5.0, 0.8, 10.0),
            "elbow_height": (10.0, 0.9, 15.0),
        },
    })


@dataclass
class DetectionConfig:
    """Stroke auto-detection"""
    # Keypoints used by the instantaneous detector must exceed this
    min_keypoint_score: float = 0.2
    # Elbow angle separating bent from straight arms (degrees)
    straight_elbow_angle: float = 160.0
    serve_confidence: float = 0.8
    groundstroke_confidence: float = 0.75
    volley_confidence: float = 0.7
    # Minimum confidence before a detected label is surfaced
    display_confidence: float = 0.7

    trajectory_min_history: int = 10
    trajectory_window: int = 20
    trajectory_min_points: int = 5
    # One axis must exceed the other by this factor to dominate
    dominance_factor: float = 1.5
    # Both axes must move more than this for a diagonal decision (pixels)
    diagonal_min_movement: float = 50.0
    # Confidence attached to each trajectory decision
    trajectory_confidence: Dict[str, float] = field(default_factory=lambda: {
        "horizontal_forward": 0.7,
        "horizontal_reverse": 0.6,
        "vertical_upward": 0.8,
        "vertical_downward": 0.6,
        "diagonal_up_forward": 0.6,
        "diagonal_up_back": 0.6,
        "diagonal_down": 0.4,
    })

    # Swing phase from mean wrist speed (px/s)
    phase_window: int = 5
    preparation_speed_max: float = 50.0
    impact_speed_min: float = 300.0


@dataclass
class SessionConfig:
    """Frame driver cadence"""
    update_interval_ms: float = 500.0
    # Frames with fewer confident keypoints than this reuse the last result
    min_confident_keypoints: int = 6
    confident_keypoint_score: float = 0.2


@dataclass
class ThresholdConfig:
    """Master threshold configuration"""
    validity: ValidityConfig = field(default_factory=ValidityConfig)
    temporal_filter: TemporalFilterConfig = field(default_factory=TemporalFilterConfig)
    estimation: EstimationConfig = field(default_factory=EstimationConfig)
    viewpoint: ViewpointConfig = field(default_factory=ViewpointConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


# Global config instance - modify this to tune thresholds
THRESHOLDS = ThresholdConfig()


def get_thresholds() -> ThresholdConfig:
    """Get the current threshold configuration"""
    return THRESHOLDS


# Commonly referenced thresholds (aliases)
CONFIDENCE_THRESHOLD = THRESHOLDS.validity.confidence_threshold
DISPLAY_CONFIDENCE_THRESHOLD = THRESHOLDS.detection.display_confidence
