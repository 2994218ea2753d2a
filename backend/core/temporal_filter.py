"""
Temporal Keypoint Filtering

Two independent smoothers that reduce frame-to-frame jitter:

- ExponentialKeypointFilter blends each keypoint with the previous frame's
  smoothed keypoint and feeds geometric analysis.
- KalmanKeypointSmoother runs one scalar Kalman filter per landmark axis with
  confidence-dependent measurement noise and feeds the motion history.

Both are deterministic for a given input sequence and initial state.
"""

from typing import Dict, List, Optional
import logging

from config import get_thresholds
from config.thresholds import TemporalFilterConfig
from .keypoints import BodyLandmark, Keypoint, Pose

logger = logging.getLogger(__name__)


class ExponentialKeypointFilter:
    """
    smoothed = alpha * current + (1 - alpha) * previous, per axis.

    Smoothing only applies when both frames' scores clear the floor; the
    carried-forward score decays so stale detections lose weight. The first
    frame passes through unchanged and seeds the state.
    """

    def __init__(self, config: Optional[TemporalFilterConfig] = None):
        self.config = config or get_thresholds().temporal_filter
        self._previous: Optional[Pose] = None

    @property
    def has_state(self) -> bool:
        return self._previous is not None

    def filter(self, pose: Pose) -> Pose:
        if self._previous is None:
            self._previous = pose
            return pose

        alpha = self.config.exponential_alpha
        floor = self.config.exponential_min_score
        smoothed: List[Optional[Keypoint]] = []

        for current, previous in zip(pose.keypoints, self._previous.keypoints):
            if current is None or previous is None or current.score <= floor or previous.score <= floor:
                smoothed.append(current)
                continue

            # prev + alpha * (cur - prev) keeps a steady input exactly steady
            smoothed.append(current.moved(
                x=previous.x + alpha * (current.x - previous.x),
                y=previous.y + alpha * (current.y - previous.y),
                score=max(current.score, previous.score * self.config.score_decay),
            ))

        result = Pose(tuple(smoothed), pose.score)
        self._previous = result
        return result

    def reset(self):
        self._previous = None


class ScalarKalmanFilter:
    """One-dimensional constant-position Kalman filter."""

    def __init__(
        self,
        process_noise: float = 0.01,
        measurement_noise: float = 0.1,
        initial_uncertainty: float = 1.0
    ):
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise
        self.initial_uncertainty = initial_uncertainty

        self.estimate = 0.0
        self.uncertainty = initial_uncertainty
        self.initialized = False

    def update(self, measurement: float, measurement_noise: Optional[float] = None) -> float:
        """
        Fold one measurement into the estimate.

        The first measurement seeds the estimate so the filter does not start
        biased toward zero.
        """
        if not self.initialized:
            self.estimate = measurement
            self.initialized = True

        noise = self.measurement_noise if measurement_noise is None else measurement_noise
        predicted = self.uncertainty + self.process_noise
        gain = predicted / (predicted + noise)

        self.estimate += gain * (measurement - self.estimate)
        self.uncertainty = (1.0 - gain) * predicted
        return self.estimate

    def reset(self, value: Optional[float] = None):
        self.estimate = 0.0 if value is None else value
        self.uncertainty = self.initial_uncertainty
        self.initialized = value is not None


class KalmanKeypointSmoother:
    """
    Applies scalar Kalman filtering to all 17 landmarks.
    Maintains one filter per landmark for each of x and y.
    """

    def __init__(self, config: Optional[TemporalFilterConfig] = None):
        self.config = config or get_thresholds().temporal_filter

        self.filters_x: Dict[BodyLandmark, ScalarKalmanFilter] = {}
        self.filters_y: Dict[BodyLandmark, ScalarKalmanFilter] = {}

        for landmark in BodyLandmark:
            self.filters_x[landmark] = self._new_filter()
            self.filters_y[landmark] = self._new_filter()

    def _new_filter(self) -> ScalarKalmanFilter:
        return ScalarKalmanFilter(
            process_noise=self.config.process_noise,
            measurement_noise=self.config.measurement_noise,
            initial_uncertainty=self.config.initial_uncertainty,
        )

    def measurement_noise_for(self, score: float) -> float:
        """Low-confidence observations get wider measurement noise."""
        for upper_bound, noise in self.config.noise_tiers:
            if score < upper_bound:
                return noise
        return self.config.measurement_noise

    def smooth(self, pose: Pose) -> Pose:
        smoothed: List[Optional[Keypoint]] = []

        for landmark, kp in zip(BodyLandmark, pose.keypoints):
            # Too unreliable to filter; pass through raw
            if kp is None or kp.score < self.config.kalman_min_score:
                smoothed.append(kp)
                continue

            noise = self.measurement_noise_for(kp.score)
            smoothed.append(kp.moved(
                x=self.filters_x[landmark].update(kp.x, noise),
                y=self.filters_y[landmark].update(kp.y, noise),
            ))

        return Pose(tuple(smoothed), pose.score)

    def reset(self):
        """Reset all filters"""
        for f in self.filters_x.values():
            f.reset()
        for f in self.filters_y.values():
            f.reset()
