"""
Pose Sources
Single-person 2D pose estimation behind an async interface. The MediaPipe
source reports BlazePose's 33 landmarks reduced to the 17-landmark layout used
by the analysis pipeline, in pixel coordinates.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

import cv2
import numpy as np

from exceptions import PoseEstimationError
from .keypoints import BodyLandmark, Keypoint, NUM_LANDMARKS, Pose

logger = logging.getLogger(__name__)


# BlazePose landmark index for each BodyLandmark
BLAZEPOSE_INDEX = {
    BodyLandmark.NOSE: 0,
    BodyLandmark.LEFT_EYE: 2,
    BodyLandmark.RIGHT_EYE: 5,
    BodyLandmark.LEFT_EAR: 7,
    BodyLandmark.RIGHT_EAR: 8,
    BodyLandmark.LEFT_SHOULDER: 11,
    BodyLandmark.RIGHT_SHOULDER: 12,
    BodyLandmark.LEFT_ELBOW: 13,
    BodyLandmark.RIGHT_ELBOW: 14,
    BodyLandmark.LEFT_WRIST: 15,
    BodyLandmark.RIGHT_WRIST: 16,
    BodyLandmark.LEFT_HIP: 23,
    BodyLandmark.RIGHT_HIP: 24,
    BodyLandmark.LEFT_KNEE: 25,
    BodyLandmark.RIGHT_KNEE: 26,
    BodyLandmark.LEFT_ANKLE: 27,
    BodyLandmark.RIGHT_ANKLE: 28,
}


@dataclass
class PoseEstimationOptions:
    """Per-call estimation options"""
    max_poses: int = 1
    # Landmark smoothing inside the model; fixed by the first call
    smoothing: bool = True
    # Poses whose mean keypoint score is below this are dropped
    score_threshold: float = 0.3
    flip_horizontal: bool = False


class PoseSource(ABC):
    """Produces at most one pose per frame."""

    @abstractmethod
    async def estimate(self, frame: np.ndarray, options: Optional[PoseEstimationOptions] = None) -> Optional[Pose]:
        """Pose for ``frame`` or ``None`` when no subject is found."""

    def close(self):
        pass


def blazepose_to_pose(landmarks, width: int, height: int, flip_horizontal: bool = False) -> Pose:
    """
    Reduce 33 normalized BlazePose landmarks to a 17-landmark pixel-space pose.

    Visibility becomes the keypoint score.
    """
    slots = [None] * NUM_LANDMARKS
    for landmark, index in BLAZEPOSE_INDEX.items():
        lm = landmarks[index]
        x = (1.0 - lm.x) if flip_horizontal else lm.x
        slots[landmark] = Keypoint(
            landmark=landmark,
            x=float(x * width),
            y=float(lm.y * height),
            score=float(lm.visibility),
        )
    return Pose(tuple(slots))


class MediaPipePoseSource(PoseSource):
    """
    BlazePose through MediaPipe.

    Inference runs in a worker thread so the event loop is not blocked.
    """

    def __init__(
        self,
        model_complexity: int = 1,  # 0=lite, 1=full, 2=heavy
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5
    ):
        self.model_complexity = model_complexity
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.pose = None

    def _init_pose(self, smoothing: bool = True):
        if self.pose is None:
            import mediapipe as mp

            self.pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=self.model_complexity,
                smooth_landmarks=smoothing,
                enable_segmentation=False,
                min_detection_confidence=self.min_detection_confidence,
                min_tracking_confidence=self.min_tracking_confidence
            )

    def estimate_sync(self, frame: np.ndarray, options: Optional[PoseEstimationOptions] = None) -> Optional[Pose]:
        options = options or PoseEstimationOptions()
        self._init_pose(options.smoothing)

        try:
            # Convert BGR to RGB
            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            results = self.pose.process(rgb_frame)
        except Exception as e:
            logger.error(f"Pose estimation failed: {e}", exc_info=True)
            raise PoseEstimationError(f"Failed to estimate pose: {str(e)}")

        if not results.pose_landmarks:
            return None

        h, w = frame.shape[:2]
        pose = blazepose_to_pose(results.pose_landmarks.landmark, w, h, options.flip_horizontal)
        if pose.score < options.score_threshold:
            logger.debug("Pose dropped below score threshold", extra={"pose_score": round(pose.score, 3)})
            return None
        return pose

    async def estimate(self, frame: np.ndarray, options: Optional[PoseEstimationOptions] = None) -> Optional[Pose]:
        return await asyncio.to_thread(self.estimate_sync, frame, options)

    def close(self):
        """Release resources"""
        if self.pose:
            self.pose.close()
            self.pose = None
