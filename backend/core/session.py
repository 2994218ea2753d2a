"""
Analysis Session
Owns all per-session state (filters, motion history, configuration and the
last result) and runs the per-frame analysis pipeline:

raw pose -> viewpoint classification (auto only) -> coverage check
-> exponential filter -> missing-keypoint estimation -> viewpoint correction
-> feature extraction -> scoring

Every accepted frame feeds both temporal filters and the motion history (with
the Kalman-filtered raw pose); only the steps from the coverage check on are
throttled to the update interval.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from config import get_thresholds
from config.thresholds import ThresholdConfig
from exceptions import SessionLimitReached, SessionNotFound
from .confidence_gating import KeypointGate, required_keypoints
from .geometry import angle_at, inclination
from .keypoint_estimator import KeypointEstimator
from .keypoints import (
    AUTO_STROKE,
    BodyLandmark,
    CameraViewpoint,
    Pose,
    StrokeType,
    parse_stroke_selection,
    parse_viewpoint,
)
from .motion_history import MotionHistory
from .scoring import HistoryScorer, probabilistic_score
from .stroke_analyzer import StrokeAnalyzer
from .stroke_detector import InstantaneousStrokeDetector, StrokeDetection, TrajectoryStrokeDetector
from .temporal_filter import ExponentialKeypointFilter, KalmanKeypointSmoother
from .viewpoint import ViewpointClassification, ViewpointClassifier, ViewpointCorrector

logger = logging.getLogger(__name__)

L = BodyLandmark

# Stroke analyzed while auto-detection has no confident label yet
FALLBACK_STROKE = StrokeType.FOREHAND


@dataclass
class AnalysisResult:
    """
    Outcome of one analysis tick.

    ``status`` is ``ok`` for a full feature map, ``partial`` when keypoint
    coverage was insufficient (``motion_data`` then holds a
    ``visibility_issue`` marker and basic joint data only) and ``no_data``
    when nothing has been analyzed yet.
    """
    status: str
    score: Optional[int]
    motion_data: Dict[str, Any] = field(default_factory=dict)
    component_scores: Optional[Dict[str, Optional[int]]] = None
    composite_score: Optional[int] = None
    stroke_type: Optional[StrokeType] = None
    camera_viewpoint: Optional[CameraViewpoint] = None
    detection: Optional[StrokeDetection] = None
    trajectory: Optional[StrokeDetection] = None
    viewpoint_classification: Optional[ViewpointClassification] = None
    timestamp: Optional[float] = None
    # Corrected pose the features were measured on
    pose: Optional[Pose] = None

    @property
    def has_visibility_issue(self) -> bool:
        return "visibility_issue" in self.motion_data

    @classmethod
    def no_data(cls, timestamp: Optional[float] = None) -> "AnalysisResult":
        return cls(status="no_data", score=None, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "score": self.score,
            "motion_data": self.motion_data,
            "component_scores": self.component_scores,
            "composite_score": self.composite_score,
            "stroke_type": self.stroke_type.value if self.stroke_type else None,
            "camera_viewpoint": self.camera_viewpoint.value if self.camera_viewpoint else None,
            "detection": self.detection.to_dict() if self.detection else None,
            "trajectory": self.trajectory.to_dict() if self.trajectory else None,
            "viewpoint_classification": (
                self.viewpoint_classification.to_dict() if self.viewpoint_classification else None
            ),
            "timestamp": self.timestamp,
        }


@dataclass
class FrameOutcome:
    """What the frame driver should display for one frame"""
    result: AnalysisResult
    # True when ``result`` was produced by this frame
    updated: bool
    reason: str  # "analyzed", "throttled", "no_pose", "low_confidence"


class AnalysisSession:
    """
    One analysis session: a single subject seen through a single source.

    State is created lazily by the first frame; ``reset()`` returns the
    session to that initial state (session stop or source change). Changing
    the stroke type keeps the motion history.
    """

    def __init__(
        self,
        stroke_type: str = StrokeType.FOREHAND.value,
        camera_viewpoint: str = CameraViewpoint.REAR_ELEVATED.value,
        thresholds: Optional[ThresholdConfig] = None,
        update_interval_ms: Optional[float] = None,
        history_capacity: Optional[int] = None,
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or str(uuid.uuid4())[:8]
        self.thresholds = thresholds or get_thresholds()
        t = self.thresholds

        self.update_interval_ms = (
            update_interval_ms if update_interval_ms is not None else t.session.update_interval_ms
        )

        self.stroke_selection: Optional[StrokeType] = None
        self.camera_viewpoint = CameraViewpoint.REAR_ELEVATED
        self.set_stroke_type(stroke_type)
        self.set_camera_viewpoint(camera_viewpoint)

        self.gate = KeypointGate(t.validity)
        self.exponential = ExponentialKeypointFilter(t.temporal_filter)
        self.kalman = KalmanKeypointSmoother(t.temporal_filter)
        self.estimator = KeypointEstimator(t.estimation, t.validity)
        self.classifier = ViewpointClassifier(t.viewpoint, t.validity)
        self.corrector = ViewpointCorrector(t.viewpoint, t.validity)
        self.history = MotionHistory(t.history, capacity=history_capacity)
        self.analyzer = StrokeAnalyzer(t.scoring, t.validity, HistoryScorer(t.history, t.validity))
        self.instant_detector = InstantaneousStrokeDetector(t.detection)
        self.trajectory_detector = TrajectoryStrokeDetector(t.detection)

        self.last_result: Optional[AnalysisResult] = None
        self.last_update: Optional[float] = None
        self.frames_seen = 0
        self._last_label: Optional[str] = None

        logger.info(
            "Analysis session created",
            extra={"session_id": self.session_id, "stroke_type": stroke_type, "camera_viewpoint": camera_viewpoint}
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def stroke_type(self) -> str:
        return self.stroke_selection.value if self.stroke_selection else AUTO_STROKE

    def set_stroke_type(self, value: str):
        self.stroke_selection = parse_stroke_selection(value)

    def set_camera_viewpoint(self, value: str):
        self.camera_viewpoint = parse_viewpoint(value)

    def reset(self):
        """Drop all per-session state; the next frame starts fresh."""
        self.exponential.reset()
        self.kalman.reset()
        self.history.clear()
        self.last_result = None
        self.last_update = None
        self.frames_seen = 0
        self._last_label = None
        logger.info("Analysis session reset", extra={"session_id": self.session_id})

    def config_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "stroke_type": self.stroke_type,
            "camera_viewpoint": self.camera_viewpoint.value,
            "update_interval_ms": self.update_interval_ms,
            "history_capacity": self.history.capacity,
            "history_length": len(self.history),
            "frames_seen": self.frames_seen,
        }

    # ------------------------------------------------------------------
    # Frame driver
    # ------------------------------------------------------------------

    def process_frame(self, pose: Optional[Pose], timestamp: float) -> FrameOutcome:
        """
        Handle one frame from the pose source.

        Frames without a subject or with too few confident keypoints reuse
        the previous result; otherwise the frame feeds the filters and
        history, and a new result is produced at most once per update
        interval.
        """
        self.frames_seen += 1

        if pose is None:
            return FrameOutcome(self.last_result or AnalysisResult.no_data(timestamp), False, "no_pose")

        cfg = self.thresholds.session
        if self.last_result is not None and pose.count_above(cfg.confident_keypoint_score) < cfg.min_confident_keypoints:
            return FrameOutcome(self.last_result, False, "low_confidence")

        smoothed = self._track(pose, timestamp)

        if self.last_result is not None and self.last_update is not None:
            elapsed_ms = (timestamp - self.last_update) * 1000.0
            if elapsed_ms < self.update_interval_ms:
                return FrameOutcome(self.last_result, False, "throttled")

        return FrameOutcome(self._evaluate(pose, smoothed, timestamp), True, "analyzed")

    def analyze(self, pose: Pose, timestamp: float) -> AnalysisResult:
        """Run the full pipeline on ``pose`` immediately, ignoring the update cadence."""
        smoothed = self._track(pose, timestamp)
        return self._evaluate(pose, smoothed, timestamp)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _track(self, pose: Pose, timestamp: float) -> Pose:
        """Per-frame state updates: both temporal filters and the motion history."""
        self.history.push(self.kalman.smooth(pose), timestamp)
        return self.exponential.filter(pose)

    def _select_stroke(self, detection: StrokeDetection) -> StrokeType:
        if self.stroke_selection is not None:
            return self.stroke_selection

        if detection.label != self._last_label:
            logger.debug(
                "Detected stroke changed",
                extra={"session_id": self.session_id, "label": detection.label, "confidence": detection.confidence}
            )
            self._last_label = detection.label

        return detection.stroke if detection.is_confident() else FALLBACK_STROKE

    def _effective_viewpoint(self, pose: Pose):
        if self.camera_viewpoint != CameraViewpoint.AUTO:
            return self.camera_viewpoint, None

        classification = self.classifier.classify(pose)
        logger.debug(
            "Viewpoint classified",
            extra={"session_id": self.session_id, **classification.to_dict()}
        )
        return classification.viewpoint, classification

    def _evaluate(self, raw: Pose, smoothed: Pose, timestamp: float) -> AnalysisResult:
        detection = self.instant_detector.detect(raw)
        stroke = self._select_stroke(detection)
        trajectory = self.trajectory_detector.detect(self.history, stroke)
        viewpoint, classification = self._effective_viewpoint(raw)

        required = required_keypoints(stroke, viewpoint)
        status = self.gate.detection_status(raw, required)

        common = dict(
            stroke_type=stroke,
            camera_viewpoint=viewpoint,
            detection=detection,
            trajectory=trajectory,
            viewpoint_classification=classification,
            timestamp=timestamp,
        )

        if not self.gate.has_required_coverage(raw, required):
            logger.info(
                "Insufficient keypoint coverage",
                extra={"session_id": self.session_id, "missing_parts": status.missing_parts}
            )
            motion_data: Dict[str, Any] = {"visibility_issue": status.to_dict()}
            motion_data.update(self._basic_keypoint_data(smoothed, required))
            result = AnalysisResult(
                status="partial",
                score=self.thresholds.validity.insufficient_coverage_score,
                motion_data=motion_data,
                pose=smoothed,
                **common
            )
            return self._store(result, timestamp)

        corrected = self.corrector.correct(self.estimator.estimate(smoothed), viewpoint)
        analysis = self.analyzer.analyze(corrected, stroke, viewpoint, self.history)

        motion_data = dict(analysis.motion_data)
        if status.detected_ratio < self.thresholds.validity.detection_confidence_ratio:
            motion_data["detection_confidence"] = status.to_dict()

        result = AnalysisResult(
            status="ok",
            score=probabilistic_score(motion_data, stroke, self.thresholds.scoring),
            motion_data=motion_data,
            component_scores=analysis.component_scores,
            composite_score=analysis.composite_score,
            pose=corrected,
            **common
        )
        return self._store(result, timestamp)

    def _store(self, result: AnalysisResult, timestamp: float) -> AnalysisResult:
        self.last_result = result
        self.last_update = timestamp
        return result

    def _basic_keypoint_data(self, pose: Pose, required) -> Dict[str, float]:
        """
        Joint angles that can still be measured when coverage is insufficient.

        A joint is only reported when one of its trigger landmarks is in the
        required set for the stroke and viewpoint.
        """
        threshold = self.thresholds.validity.confidence_threshold

        def k(landmark):
            return pose.valid(landmark, threshold)

        joints = (
            ("shoulder_alignment", (L.LEFT_SHOULDER, L.RIGHT_SHOULDER),
             lambda: inclination(k(L.LEFT_SHOULDER), k(L.RIGHT_SHOULDER))),
            ("right_arm_angle", (L.RIGHT_ELBOW, L.RIGHT_WRIST),
             lambda: angle_at(k(L.RIGHT_SHOULDER), k(L.RIGHT_ELBOW), k(L.RIGHT_WRIST))),
            ("left_arm_angle", (L.LEFT_ELBOW, L.LEFT_WRIST),
             lambda: angle_at(k(L.LEFT_SHOULDER), k(L.LEFT_ELBOW), k(L.LEFT_WRIST))),
            ("right_leg_angle", (L.RIGHT_KNEE, L.RIGHT_ANKLE),
             lambda: angle_at(k(L.RIGHT_HIP), k(L.RIGHT_KNEE), k(L.RIGHT_ANKLE))),
            ("left_leg_angle", (L.LEFT_KNEE, L.LEFT_ANKLE),
             lambda: angle_at(k(L.LEFT_HIP), k(L.LEFT_KNEE), k(L.LEFT_ANKLE))),
        )

        data = {}
        for name, triggers, measure in joints:
            if not any(lm in required for lm in triggers):
                continue
            value = measure()
            if value is not None:
                data[name] = value
        return data


class SessionRegistry:
    """In-memory analysis sessions keyed by id, bounded in number."""

    def __init__(self, max_sessions: int = 32):
        self.max_sessions = max_sessions
        self._sessions: Dict[str, AnalysisSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, **options) -> AnalysisSession:
        if len(self._sessions) >= self.max_sessions:
            raise SessionLimitReached(self.max_sessions)
        session = AnalysisSession(**options)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> AnalysisSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def remove(self, session_id: str) -> None:
        session = self.get(session_id)
        session.reset()
        del self._sessions[session_id]
        logger.info("Analysis session closed", extra={"session_id": session_id})

    def all(self):
        return list(self._sessions.values())

    def clear(self):
        self._sessions.clear()
