"""
Report Payload
Turns an AnalysisResult into the display-ready payload: readable feature
labels, formatted values, score label, camera context and warnings.
"""

from typing import Any, Dict, List, Optional

from .keypoints import CameraViewpoint
from .scoring import score_label
from .session import AnalysisResult
from .stroke_detector import StrokeDetection

DETECTING_DISPLAY = "Detecting..."

FEATURE_LABELS = {
    "shoulder_to_elbow_angle": "Shoulder to Elbow Angle",
    "left_shoulder_to_elbow_angle": "Left Shoulder to Elbow Angle",
    "shoulder_alignment": "Shoulder Alignment",
    "knee_flexion_ratio": "Knee Flexion Ratio",
    "elbow_to_wrist_angle": "Elbow to Wrist Angle",
    "elbow_angle": "Elbow Angle",
    "hip_knee_angle": "Hip Knee Angle",
    "shoulder_hip_alignment": "Shoulder Hip Alignment",
    "center_shift": "Center Shift",
    "knee_angle_left": "Left Knee Angle",
    "hands_distance": "Hands Distance",
    "arm_extension": "Arm Extension",
    "shoulder_rotation": "Shoulder Rotation",
    "back_arch": "Back Arch",
    "knee_angle": "Knee Angle",
    "shoulder_to_wrist_distance": "Shoulder to Wrist Distance",
    "avg_knee_angle": "Average Knee Angle",
    "elbow_height": "Elbow Height",
    "right_arm_angle": "Right Arm Angle",
    "left_arm_angle": "Left Arm Angle",
    "right_leg_angle": "Right Leg Angle",
    "left_leg_angle": "Left Leg Angle",
}

# Keys shown with a degree sign
ANGLE_FEATURES = frozenset({
    "shoulder_to_elbow_angle", "left_shoulder_to_elbow_angle", "shoulder_alignment",
    "elbow_to_wrist_angle", "elbow_angle", "hip_knee_angle", "knee_angle_left",
    "arm_extension", "shoulder_rotation", "back_arch", "knee_angle", "avg_knee_angle",
    "right_arm_angle", "left_arm_angle", "right_leg_angle", "left_leg_angle",
})

RATIO_FEATURES = frozenset({"knee_flexion_ratio"})

# Markers carried in motion data that are not measurements
MARKER_KEYS = ("visibility_issue", "detection_confidence")

CAMERA_CONTEXT = {
    CameraViewpoint.REAR_ELEVATED: (
        "Camera behind and above the player. Vertical positions are stretched "
        "to compensate for the elevated angle."
    ),
    CameraViewpoint.SIDE: (
        "Camera to the side of the player. Shoulder and hip rotation are "
        "estimated from the side profile."
    ),
    CameraViewpoint.FRONT: "Camera facing the player. Positions are used as detected.",
    CameraViewpoint.AUTO: "Camera viewpoint is detected from the pose on every update.",
}

VISIBILITY_TIPS = [
    "Ensure the entire body is visible in the video",
    "Record in a well-lit environment",
    "Wear fitted clothing for better detection",
]


def feature_label(key: str) -> str:
    return FEATURE_LABELS.get(key) or key.replace("_", " ").title()


def format_feature(key: str, value: float) -> str:
    if key in ANGLE_FEATURES:
        return f"{round(value)}°"
    if key in RATIO_FEATURES:
        return f"{round(value * 100)}%"
    return f"{round(value, 2):g}"


def detection_label(detection: Optional[StrokeDetection]) -> str:
    """Stroke name with confidence once confident, otherwise ``Detecting...``"""
    if detection is None or not detection.is_confident():
        return DETECTING_DISPLAY
    return f"{detection.stroke.value.title()} ({round(detection.confidence * 100)}%)"


def _features(motion_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows = []
    for key, value in motion_data.items():
        if key in MARKER_KEYS or isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        rows.append({
            "key": key,
            "label": feature_label(key),
            "value": value,
            "display": format_feature(key, value),
        })
    return rows


def _warning(motion_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    issue = motion_data.get("visibility_issue")
    if issue:
        missing = issue.get("missing_parts", [])
        shown = ", ".join(missing[:3])
        if len(missing) > 3:
            shown += f" and {len(missing) - 3} more"
        return {
            "kind": "visibility",
            "detection_accuracy": round(issue["detected_ratio"] * 100),
            "message": f"Missing body parts: {shown}" if missing else "Some body parts are not fully detected",
            "tips": VISIBILITY_TIPS,
        }

    confidence = motion_data.get("detection_confidence")
    if confidence:
        return {
            "kind": "confidence",
            "detection_accuracy": round(confidence["detected_ratio"] * 100),
            "message": "Some keypoints were estimated; scores may be less accurate",
            "tips": [],
        }
    return None


def build_report(result: AnalysisResult) -> Dict[str, Any]:
    """Display payload for one analysis result."""
    if result.status == "no_data":
        return {
            "status": result.status,
            "score": None,
            "score_label": None,
            "message": "No motion data available yet",
            "features": [],
            "warning": None,
        }

    viewpoint = result.camera_viewpoint
    return {
        "status": result.status,
        "score": result.score,
        "score_label": score_label(result.score) if result.score is not None else None,
        "stroke_type": result.stroke_type.value if result.stroke_type else None,
        "detected_stroke": detection_label(result.detection),
        "camera_viewpoint": viewpoint.value if viewpoint else None,
        "camera_context": CAMERA_CONTEXT.get(viewpoint, "") if viewpoint else "",
        "features": _features(result.motion_data),
        "component_scores": result.component_scores,
        "composite_score": result.composite_score,
        "warning": _warning(result.motion_data),
    }
