"""
Pose Data Model
17-landmark keypoint indexing shared by every analysis component.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from exceptions import InvalidKeypointData, ValidationError


class BodyLandmark(IntEnum):
    """Landmark index; the ordering is fixed across all components."""
    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16

    @property
    def key(self) -> str:
        """snake_case name, e.g. ``left_shoulder``"""
        return self.name.lower()

    @property
    def readable(self) -> str:
        """Display name, e.g. ``Left Shoulder``"""
        return self.name.replace("_", " ").title()

    @classmethod
    def from_key(cls, key: str) -> "BodyLandmark":
        try:
            return cls[key.strip().upper()]
        except KeyError:
            raise InvalidKeypointData(f"Unknown landmark: {key}", landmark=key)


NUM_LANDMARKS = len(BodyLandmark)


class StrokeType(str, Enum):
    FOREHAND = "forehand"
    BACKHAND = "backhand"
    SERVE = "serve"
    VOLLEY = "volley"


class CameraViewpoint(str, Enum):
    REAR_ELEVATED = "rear-elevated"
    SIDE = "side"
    FRONT = "front"
    AUTO = "auto"


# Stroke selection value that turns on auto-detection
AUTO_STROKE = "auto"


def parse_stroke_selection(value: str) -> Optional[StrokeType]:
    """Map a configured stroke name to a StrokeType; ``None`` means auto."""
    if value == AUTO_STROKE:
        return None
    try:
        return StrokeType(value)
    except ValueError:
        raise ValidationError(f"Unknown stroke type: {value}", field="stroke_type")


def parse_viewpoint(value: str) -> CameraViewpoint:
    try:
        return CameraViewpoint(value)
    except ValueError:
        raise ValidationError(f"Unknown camera viewpoint: {value}", field="camera_viewpoint")


@dataclass(frozen=True)
class Keypoint:
    """One 2D landmark position in pixels with its confidence."""
    landmark: BodyLandmark
    x: float
    y: float
    score: float
    # True when inferred from neighbouring landmarks rather than observed
    estimated: bool = False

    def __post_init__(self):
        # Filter state and velocities never recover from a NaN position
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise InvalidKeypointData(
                f"Non-finite position for {self.landmark.key}: ({self.x}, {self.y})",
                landmark=self.landmark.key
            )

    def is_valid(self, threshold: float) -> bool:
        return self.score > threshold

    def moved(self, x: Optional[float] = None, y: Optional[float] = None, **changes) -> "Keypoint":
        return replace(
            self,
            x=self.x if x is None else x,
            y=self.y if y is None else y,
            **changes
        )

    def to_dict(self) -> Dict:
        return {
            "name": self.landmark.key,
            "x": self.x,
            "y": self.y,
            "score": self.score,
            "estimated": self.estimated,
        }


@dataclass(frozen=True)
class Pose:
    """
    The keypoints of one subject in one frame.

    ``keypoints[i]`` belongs to ``BodyLandmark(i)``; a ``None`` slot means
    the landmark was not reported at all.
    """
    keypoints: Tuple[Optional[Keypoint], ...]
    score: Optional[float] = field(default=None)

    def __post_init__(self):
        if len(self.keypoints) != NUM_LANDMARKS:
            raise InvalidKeypointData(
                f"Pose needs {NUM_LANDMARKS} keypoints, got {len(self.keypoints)}"
            )
        if not isinstance(self.keypoints, tuple):
            object.__setattr__(self, "keypoints", tuple(self.keypoints))
        if self.score is None:
            present = [kp.score for kp in self.keypoints if kp is not None]
            object.__setattr__(self, "score", sum(present) / len(present) if present else 0.0)

    def __getitem__(self, landmark: BodyLandmark) -> Optional[Keypoint]:
        return self.keypoints[landmark]

    def __iter__(self):
        return iter(self.keypoints)

    def valid(self, landmark: BodyLandmark, threshold: float) -> Optional[Keypoint]:
        """The keypoint if it is present and above ``threshold``, else ``None``."""
        kp = self.keypoints[landmark]
        if kp is not None and kp.is_valid(threshold):
            return kp
        return None

    def count_above(self, threshold: float) -> int:
        return sum(1 for kp in self.keypoints if kp is not None and kp.score > threshold)

    def with_keypoints(self, updates: Mapping[BodyLandmark, Optional[Keypoint]]) -> "Pose":
        """Copy of this pose with some slots replaced."""
        slots = list(self.keypoints)
        for landmark, kp in updates.items():
            slots[landmark] = kp
        return Pose(tuple(slots), self.score)

    def to_dicts(self) -> List[Optional[Dict]]:
        return [kp.to_dict() if kp is not None else None for kp in self.keypoints]

    @classmethod
    def empty(cls) -> "Pose":
        return cls(tuple([None] * NUM_LANDMARKS), 0.0)

    @classmethod
    def from_dicts(cls, items: Iterable[Optional[Mapping]], score: Optional[float] = None) -> "Pose":
        """
        Build a pose from ``{name?, x, y, score}`` mappings.

        Named items may come in any order; unnamed items are taken positionally.
        """
        slots: List[Optional[Keypoint]] = [None] * NUM_LANDMARKS
        items = list(items)

        for position, item in enumerate(items):
            if item is None:
                continue
            name = item.get("name")
            if name:
                landmark = BodyLandmark.from_key(name)
            elif position < NUM_LANDMARKS:
                landmark = BodyLandmark(position)
            else:
                raise InvalidKeypointData(f"Too many keypoints: {len(items)}")

            try:
                kp = Keypoint(
                    landmark=landmark,
                    x=float(item["x"]),
                    y=float(item["y"]),
                    score=float(item.get("score", 0.0)),
                )
            except (KeyError, TypeError, ValueError):
                raise InvalidKeypointData(f"Malformed keypoint for {landmark.key}", landmark=landmark.key)
            slots[landmark] = kp

        return cls(tuple(slots), score)
