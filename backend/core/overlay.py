"""
Overlay Payload
Describes what a renderer should draw over the frame: visible keypoints,
skeleton lines (with the selected stroke's segments highlighted), key joint
angles and the drawing style for the camera viewpoint. No pixels are drawn here.
"""

from dataclasses import asdict, dataclass, replace
from typing import Dict, List, Optional, Tuple

from config import get_thresholds
from .geometry import joint_angle
from .keypoints import BodyLandmark, CameraViewpoint, Pose, StrokeType

L = BodyLandmark

Connection = Tuple[BodyLandmark, BodyLandmark]

SKELETON_CONNECTIONS: Tuple[Connection, ...] = (
    (L.NOSE, L.LEFT_EYE), (L.LEFT_EYE, L.LEFT_EAR), (L.NOSE, L.RIGHT_EYE), (L.RIGHT_EYE, L.RIGHT_EAR),
    (L.LEFT_SHOULDER, L.RIGHT_SHOULDER), (L.LEFT_SHOULDER, L.LEFT_ELBOW), (L.LEFT_ELBOW, L.LEFT_WRIST),
    (L.RIGHT_SHOULDER, L.RIGHT_ELBOW), (L.RIGHT_ELBOW, L.RIGHT_WRIST),
    (L.LEFT_SHOULDER, L.LEFT_HIP), (L.RIGHT_SHOULDER, L.RIGHT_HIP), (L.LEFT_HIP, L.RIGHT_HIP),
    (L.LEFT_HIP, L.LEFT_KNEE), (L.LEFT_KNEE, L.LEFT_ANKLE), (L.RIGHT_HIP, L.RIGHT_KNEE), (L.RIGHT_KNEE, L.RIGHT_ANKLE),
)

_RIGHT_ARM = ((L.RIGHT_SHOULDER, L.RIGHT_ELBOW), (L.RIGHT_ELBOW, L.RIGHT_WRIST))
_LEFT_ARM = ((L.LEFT_SHOULDER, L.LEFT_ELBOW), (L.LEFT_ELBOW, L.LEFT_WRIST))
_RIGHT_LEG = ((L.RIGHT_HIP, L.RIGHT_KNEE), (L.RIGHT_KNEE, L.RIGHT_ANKLE))
_LEFT_LEG = ((L.LEFT_HIP, L.LEFT_KNEE), (L.LEFT_KNEE, L.LEFT_ANKLE))

STROKE_HIGHLIGHTS: Dict[StrokeType, Tuple[Connection, ...]] = {
    StrokeType.FOREHAND: _RIGHT_ARM + _RIGHT_LEG,
    StrokeType.BACKHAND: _LEFT_ARM + _LEFT_LEG,
    StrokeType.SERVE: _RIGHT_ARM + _LEFT_LEG + _RIGHT_LEG,
    StrokeType.VOLLEY: ((L.LEFT_SHOULDER, L.RIGHT_SHOULDER),) + _LEFT_ARM + _RIGHT_ARM,
}

# Drawn larger than the rest
PRIMARY_KEYPOINTS = frozenset({
    L.RIGHT_WRIST, L.LEFT_WRIST, L.RIGHT_ELBOW, L.LEFT_ELBOW,
    L.RIGHT_SHOULDER, L.LEFT_SHOULDER, L.RIGHT_KNEE, L.LEFT_KNEE,
})

KEYPOINT_LABELS = {
    L.RIGHT_SHOULDER: "RS", L.LEFT_SHOULDER: "LS",
    L.RIGHT_ELBOW: "RE", L.LEFT_ELBOW: "LE",
    L.RIGHT_WRIST: "RW", L.LEFT_WRIST: "LW",
    L.RIGHT_HIP: "RH", L.LEFT_HIP: "LH",
    L.RIGHT_KNEE: "RK", L.LEFT_KNEE: "LK",
    L.RIGHT_ANKLE: "RA", L.LEFT_ANKLE: "LA",
}

# (label, outer point, vertex, outer point)
ANGLE_OVERLAYS: Dict[StrokeType, Tuple[Tuple[str, BodyLandmark, BodyLandmark, BodyLandmark], ...]] = {
    StrokeType.FOREHAND: (
        ("Elbow", L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST),
        ("Shoulder", L.RIGHT_HIP, L.RIGHT_SHOULDER, L.RIGHT_ELBOW),
        ("Knee", L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE),
    ),
    StrokeType.BACKHAND: (
        ("Elbow", L.LEFT_SHOULDER, L.LEFT_ELBOW, L.LEFT_WRIST),
        ("Shoulder", L.LEFT_HIP, L.LEFT_SHOULDER, L.LEFT_ELBOW),
        ("Knee", L.LEFT_HIP, L.LEFT_KNEE, L.LEFT_ANKLE),
    ),
    StrokeType.SERVE: (
        ("Arm", L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST),
        ("Shoulder", L.LEFT_SHOULDER, L.RIGHT_SHOULDER, L.RIGHT_ELBOW),
        ("Knee", L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE),
    ),
    StrokeType.VOLLEY: (
        ("Right Elbow", L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST),
        ("Left Elbow", L.LEFT_SHOULDER, L.LEFT_ELBOW, L.LEFT_WRIST),
        ("Knee", L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE),
    ),
}


@dataclass(frozen=True)
class OverlayStyle:
    thin_line_width: int = 2
    bold_line_width: int = 4
    small_keypoint_radius: int = 4
    large_keypoint_radius: int = 7
    secondary_line_color: str = "rgba(100, 100, 255, 0.6)"
    primary_line_color: str = "rgba(255, 100, 100, 0.9)"
    secondary_keypoint_color: str = "rgba(100, 255, 100, 0.6)"
    primary_keypoint_color: str = "rgba(255, 255, 0, 0.9)"
    angle_color: str = "rgba(255, 220, 50, 0.9)"
    text_color: str = "white"


DEFAULT_STYLE = OverlayStyle()

VIEWPOINT_STYLES = {
    CameraViewpoint.REAR_ELEVATED: DEFAULT_STYLE,
    CameraViewpoint.SIDE: replace(DEFAULT_STYLE, bold_line_width=5),
    CameraViewpoint.FRONT: replace(DEFAULT_STYLE, primary_line_color="rgba(255, 150, 50, 0.9)"),
}


def style_for(viewpoint: Optional[CameraViewpoint]) -> OverlayStyle:
    return VIEWPOINT_STYLES.get(viewpoint, DEFAULT_STYLE)


def confidence_color(score: float) -> str:
    if score < 0.3:
        return "rgba(255, 0, 0, 0.7)"
    if score < 0.6:
        return "rgba(255, 255, 0, 0.8)"
    return "rgba(0, 255, 0, 0.9)"


def build_overlay(
    pose: Pose,
    stroke: Optional[StrokeType],
    viewpoint: Optional[CameraViewpoint],
    threshold: Optional[float] = None
) -> Dict:
    """Drawing instructions for one pose; keypoints at or below ``threshold`` are left out."""
    if threshold is None:
        threshold = get_thresholds().validity.confidence_threshold

    def visible(landmark: BodyLandmark):
        return pose.valid(landmark, threshold)

    keypoints = []
    for kp in pose:
        if kp is None or not kp.is_valid(threshold):
            continue
        keypoints.append({
            "name": kp.landmark.key,
            "x": kp.x,
            "y": kp.y,
            "primary": kp.landmark in PRIMARY_KEYPOINTS,
            "estimated": kp.estimated,
            "label": KEYPOINT_LABELS.get(kp.landmark),
        })

    highlighted = set(STROKE_HIGHLIGHTS.get(stroke, ()))
    lines: List[Dict] = []
    for start, end in SKELETON_CONNECTIONS:
        a, b = visible(start), visible(end)
        if a is None or b is None:
            continue
        lines.append({
            "from": start.key,
            "to": end.key,
            "points": [[a.x, a.y], [b.x, b.y]],
            "highlighted": (start, end) in highlighted,
        })

    angles = []
    for label, first, vertex, last in ANGLE_OVERLAYS.get(stroke, ()):
        value = joint_angle(visible(first), visible(vertex), visible(last))
        if value is None:
            continue
        center = pose[vertex]
        angles.append({"label": label, "vertex": [center.x, center.y], "value": round(value)})

    return {
        "keypoints": keypoints,
        "lines": lines,
        "angles": angles,
        "style": asdict(style_for(viewpoint)),
        "pose_confidence": {"score": pose.score, "color": confidence_color(pose.score)},
    }
