"""
Missing Keypoint Estimation
Fills in structurally predictable landmarks (shoulders, elbows, hips) from
their detected neighbours so analysis degrades instead of failing.
"""

from typing import Dict, Optional
import logging

from config import get_thresholds
from config.thresholds import EstimationConfig, ValidityConfig
from .keypoints import BodyLandmark, Keypoint, Pose

logger = logging.getLogger(__name__)

L = BodyLandmark


class KeypointEstimator:
    """
    Estimates under-confidence landmarks in dependency order:

    1. a single missing shoulder, mirrored from the other one
    2. each missing elbow, from its shoulder (and wrist when visible)
    3. both hips, from the shoulders and the nose

    Estimated keypoints are flagged and always carry a lower score than the
    keypoints they were derived from.
    """

    def __init__(
        self,
        config: Optional[EstimationConfig] = None,
        validity: Optional[ValidityConfig] = None
    ):
        thresholds = get_thresholds()
        self.config = config or thresholds.estimation
        self.threshold = (validity or thresholds.validity).confidence_threshold

    def _valid(self, slots: Dict[BodyLandmark, Optional[Keypoint]], landmark: BodyLandmark) -> Optional[Keypoint]:
        kp = slots[landmark]
        if kp is not None and kp.is_valid(self.threshold):
            return kp
        return None

    def estimate(self, pose: Pose) -> Pose:
        slots: Dict[BodyLandmark, Optional[Keypoint]] = {lm: pose[lm] for lm in BodyLandmark}
        estimated: Dict[BodyLandmark, Keypoint] = {}

        def put(kp: Keypoint):
            slots[kp.landmark] = kp
            estimated[kp.landmark] = kp

        # 1. Shoulders
        left_shoulder = self._valid(slots, L.LEFT_SHOULDER)
        right_shoulder = self._valid(slots, L.RIGHT_SHOULDER)
        offset = self.config.shoulder_mirror_offset
        factor = self.config.shoulder_confidence_factor

        if left_shoulder and not right_shoulder:
            put(Keypoint(L.RIGHT_SHOULDER, left_shoulder.x + offset, left_shoulder.y,
                         left_shoulder.score * factor, estimated=True))
        elif right_shoulder and not left_shoulder:
            put(Keypoint(L.LEFT_SHOULDER, right_shoulder.x - offset, right_shoulder.y,
                         right_shoulder.score * factor, estimated=True))

        # 2. Elbows
        for shoulder_lm, elbow_lm, wrist_lm in (
            (L.LEFT_SHOULDER, L.LEFT_ELBOW, L.LEFT_WRIST),
            (L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST),
        ):
            if self._valid(slots, elbow_lm):
                continue
            shoulder = self._valid(slots, shoulder_lm)
            if shoulder is None:
                continue

            wrist = self._valid(slots, wrist_lm)
            if wrist is not None:
                put(Keypoint(
                    elbow_lm,
                    (shoulder.x + wrist.x) / 2,
                    (shoulder.y + wrist.y) / 2,
                    min(shoulder.score, wrist.score) * self.config.elbow_midpoint_confidence_factor,
                    estimated=True,
                ))
            else:
                put(Keypoint(
                    elbow_lm,
                    shoulder.x,
                    shoulder.y + self.config.elbow_drop_offset,
                    shoulder.score * self.config.elbow_drop_confidence_factor,
                    estimated=True,
                ))

        # 3. Hips
        nose = self._valid(slots, L.NOSE)
        left_shoulder = self._valid(slots, L.LEFT_SHOULDER)
        right_shoulder = self._valid(slots, L.RIGHT_SHOULDER)

        if nose and left_shoulder and right_shoulder:
            mid_x = (left_shoulder.x + right_shoulder.x) / 2
            mid_y = (left_shoulder.y + right_shoulder.y) / 2
            half_width = (right_shoulder.x - left_shoulder.x) / 2
            hip_y = mid_y + (mid_y - nose.y)
            factor = self.config.hip_confidence_factor

            if not self._valid(slots, L.LEFT_HIP):
                put(Keypoint(L.LEFT_HIP, mid_x - half_width, hip_y,
                             left_shoulder.score * factor, estimated=True))
            if not self._valid(slots, L.RIGHT_HIP):
                put(Keypoint(L.RIGHT_HIP, mid_x + half_width, hip_y,
                             right_shoulder.score * factor, estimated=True))

        if not estimated:
            return pose

        logger.debug("Estimated missing keypoints", extra={"landmarks": [lm.key for lm in estimated]})
        return pose.with_keypoints(estimated)
