"""
Stroke Scoring
Gaussian proximity scores, history-derived component scores, the weighted
composite score and the probabilistic score reported to users.
"""

import math
from typing import Dict, Mapping, Optional, Tuple
import logging

import numpy as np

from config import get_thresholds
from config.thresholds import HistoryConfig, ScoringConfig, ValidityConfig
from .geometry import distance
from .keypoints import BodyLandmark, StrokeType
from .motion_history import MotionHistory

logger = logging.getLogger(__name__)


COMPONENTS = ("posture", "stability", "movement", "timing", "acceleration")


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def gaussian_score(value: float, ideal_mean: float, std_dev: float) -> float:
    """100 at the ideal, decaying along a normal curve; clamped to [0, 100]."""
    if std_dev <= 0:
        return 100.0 if value == ideal_mean else 0.0
    return clamp_score(100.0 * math.exp(-((value - ideal_mean) ** 2) / (2 * std_dev ** 2)))


def feature_score(value: Optional[float], ideal: Tuple[float, float], neutral: int = 50) -> float:
    """Gaussian score of a feature; features that could not be computed score ``neutral``."""
    if value is None or not math.isfinite(value):
        return float(neutral)
    mean, std_dev = ideal
    return gaussian_score(value, mean, std_dev)


def composite_score(
    components: Mapping[str, Optional[float]],
    weights: Optional[Mapping[str, float]] = None,
    neutral: int = 50
) -> int:
    """
    Weighted mean of the component scores that are present.

    A component is present when its score is above zero; weights are
    renormalized over present components only.
    """
    weights = weights or get_thresholds().scoring.component_weights
    total = 0.0
    weight_sum = 0.0

    for name, weight in weights.items():
        score = components.get(name)
        if score is None or score <= 0:
            continue
        total += clamp_score(score) * weight
        weight_sum += weight

    if weight_sum == 0:
        return neutral
    return int(round(clamp_score(total / weight_sum)))


def s_curve(score: float, low_exponent: float = 1.2, high_exponent: float = 0.8) -> float:
    """Push scores away from 50: low scores down, high scores up."""
    if score < 50:
        return 50 * (score / 50) ** low_exponent
    return 50 + 50 * ((score - 50) / 50) ** high_exponent


def probabilistic_score(
    motion_data: Mapping[str, object],
    stroke: StrokeType,
    config: Optional[ScoringConfig] = None
) -> int:
    """
    Weighted proximity of every known feature to its ideal value, reshaped by
    an S-curve. Returns the neutral score when no known feature is present.
    """
    config = config or get_thresholds().scoring
    ideals = config.probabilistic_ideals.get(stroke.value, {})

    weighted = 0.0
    weight_sum = 0.0
    for key, value in motion_data.items():
        if key not in ideals or isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value):
            continue
        ideal, weight, spread = ideals[key]
        weighted += 100.0 * math.exp(-((abs(value - ideal) / spread) ** 2)) * weight
        weight_sum += weight

    if weight_sum == 0:
        return config.neutral_score

    curved = s_curve(weighted / weight_sum, config.low_curve_exponent, config.high_curve_exponent)
    return int(round(clamp_score(curved)))


def score_label(score: float) -> str:
    if score < 30:
        return "Needs improvement"
    if score < 50:
        return "Basic"
    if score < 70:
        return "Intermediate"
    if score < 85:
        return "Good"
    return "Excellent"


class HistoryScorer:
    """Component scores that need several frames of motion history."""

    def __init__(self, config: Optional[HistoryConfig] = None, validity: Optional[ValidityConfig] = None):
        thresholds = get_thresholds()
        self.config = config or thresholds.history
        self.threshold = (validity or thresholds.validity).confidence_threshold

    def _valid_positions(self, history: MotionHistory, landmark: BodyLandmark, window: int):
        return [kp for kp in history.positions(landmark, window) if kp.score > self.threshold]

    def stability(self, history: MotionHistory, landmark: BodyLandmark) -> int:
        """Positional spread of a landmark over the last few frames."""
        cfg = self.config
        if len(history) < cfg.stability_window:
            return cfg.default_score

        positions = self._valid_positions(history, landmark, cfg.stability_window)
        if len(positions) < cfg.stability_min_frames:
            return cfg.default_score

        spread_x = float(np.std([kp.x for kp in positions]))
        spread_y = float(np.std([kp.y for kp in positions]))
        variability = math.hypot(spread_x, spread_y)

        if variability < cfg.stability_static_max:
            return cfg.stability_static_score
        if variability > cfg.stability_unstable_min:
            return cfg.stability_unstable_score
        if variability <= cfg.stability_ideal_max:
            return cfg.stability_ideal_score
        return cfg.stability_acceptable_score

    def movement_flow(self, history: MotionHistory, wrist: BodyLandmark, elbow: BodyLandmark) -> int:
        """Average jerk (change in per-frame displacement) of a wrist/elbow pair."""
        cfg = self.config
        if len(history) < cfg.flow_window:
            return cfg.default_score

        wrists = self._valid_positions(history, wrist, cfg.flow_window)
        elbows = self._valid_positions(history, elbow, cfg.flow_window)
        if len(wrists) < cfg.flow_min_frames or len(elbows) < cfg.flow_min_frames:
            return cfg.default_score

        jerks = []
        for i in range(2, min(len(wrists), len(elbows))):
            wrist_change = abs(distance(wrists[i], wrists[i - 1]) - distance(wrists[i - 1], wrists[i - 2]))
            elbow_change = abs(distance(elbows[i], elbows[i - 1]) - distance(elbows[i - 1], elbows[i - 2]))
            jerks.append(wrist_change + elbow_change)

        average = sum(jerks) / len(jerks)
        for upper_bound, score in cfg.flow_bands:
            if average < upper_bound:
                return score
        return cfg.flow_above_score

    def timing(self, history: MotionHistory, landmark: BodyLandmark) -> int:
        """Peak recent speed (px/s) of a landmark against the optimal band."""
        cfg = self.config
        velocities = history.velocities(landmark, cfg.timing_window)
        if not velocities:
            return cfg.default_score

        peak = max(v.speed for v in velocities)
        for upper_bound, score in cfg.timing_bands:
            if peak < upper_bound:
                return score
        return cfg.timing_above_score

    def acceleration(self) -> int:
        # Not modeled yet; constant placeholder
        return self.config.acceleration_score

    def scores(self, history: MotionHistory, wrist: BodyLandmark, elbow: BodyLandmark) -> Dict[str, int]:
        return {
            "stability": self.stability(history, wrist),
            "movement": self.movement_flow(history, wrist, elbow),
            "timing": self.timing(history, wrist),
            "acceleration": self.acceleration(),
        }
