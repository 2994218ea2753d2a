"""
Motion History Buffer
Bounded rolling window of filtered keypoints with derived angles and
per-landmark velocities, read by history-dependent scoring and trajectory
stroke detection.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional
import logging

from config import get_thresholds
from config.thresholds import HistoryConfig
from .geometry import angle_at, distance, line_tilt
from .keypoints import BodyLandmark, Keypoint, Pose

logger = logging.getLogger(__name__)

L = BodyLandmark

IMPORTANT_LANDMARKS = (
    L.LEFT_WRIST, L.RIGHT_WRIST,
    L.LEFT_ELBOW, L.RIGHT_ELBOW,
    L.LEFT_SHOULDER, L.RIGHT_SHOULDER,
    L.LEFT_HIP, L.RIGHT_HIP,
    L.LEFT_KNEE, L.RIGHT_KNEE,
    L.NOSE,
)


@dataclass(frozen=True)
class Velocity:
    # Pixels per second
    speed: float
    # Radians, atan2(dy, dx)
    direction: float


@dataclass
class HistoryEntry:
    timestamp: float
    keypoints: Dict[BodyLandmark, Keypoint]
    angles: Dict[str, Optional[float]] = field(default_factory=dict)
    velocities: Dict[BodyLandmark, Velocity] = field(default_factory=dict)


class MotionHistory:
    """
    FIFO of HistoryEntry with ring-buffer eviction.

    Readers only ever take suffixes of the buffer (the most recent N entries).
    """

    def __init__(self, config: Optional[HistoryConfig] = None, capacity: Optional[int] = None):
        self.config = config or get_thresholds().history
        self.capacity = capacity or self.config.capacity
        self._entries: Deque[HistoryEntry] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def latest(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self):
        self._entries.clear()

    def push(self, pose: Pose, timestamp: float) -> HistoryEntry:
        """Append a snapshot of ``pose`` taken at ``timestamp`` (seconds)."""
        stored = {
            lm: pose[lm] for lm in IMPORTANT_LANDMARKS
            if pose[lm] is not None and pose[lm].score >= self.config.min_store_score
        }

        entry = HistoryEntry(
            timestamp=timestamp,
            keypoints=stored,
            angles={
                "right_elbow": angle_at(stored.get(L.RIGHT_SHOULDER), stored.get(L.RIGHT_ELBOW),
                                        stored.get(L.RIGHT_WRIST)),
                "left_elbow": angle_at(stored.get(L.LEFT_SHOULDER), stored.get(L.LEFT_ELBOW),
                                       stored.get(L.LEFT_WRIST)),
                "shoulder_alignment": line_tilt(stored.get(L.LEFT_SHOULDER), stored.get(L.RIGHT_SHOULDER)),
            },
        )

        previous = self.latest
        if previous is not None:
            dt = timestamp - previous.timestamp
            if dt > self.config.min_velocity_interval_sec:
                for lm, kp in stored.items():
                    moved = distance(previous.keypoints.get(lm), kp)
                    if moved is None:
                        continue
                    before = previous.keypoints[lm]
                    entry.velocities[lm] = Velocity(
                        speed=moved / dt,
                        direction=math.atan2(kp.y - before.y, kp.x - before.x),
                    )

        self._entries.append(entry)
        return entry

    def recent(self, count: int) -> List[HistoryEntry]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def positions(self, landmark: BodyLandmark, window: int) -> List[Keypoint]:
        """Stored positions of ``landmark`` within the last ``window`` entries."""
        return [e.keypoints[landmark] for e in self.recent(window) if landmark in e.keypoints]

    def velocities(self, landmark: BodyLandmark, window: int) -> List[Velocity]:
        return [e.velocities[landmark] for e in self.recent(window) if landmark in e.velocities]
