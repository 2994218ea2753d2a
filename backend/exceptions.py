"""
Custom Exceptions for the Tennis Form Analyzer
Provides structured error handling with error codes and HTTP status mapping.
"""

from typing import Optional, Dict, Any


class TennisFormException(Exception):
    """Base exception for all analyzer errors"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format"""
        result = {
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Resource Errors (404)
# =============================================================================

class SessionNotFound(TennisFormException):
    """Raised when an analysis session doesn't exist"""
    def __init__(self, session_id: str):
        super().__init__(
            f"Session not found: {session_id}",
            "SESSION_NOT_FOUND",
            404,
            {"session_id": session_id}
        )


class VideoNotFound(TennisFormException):
    """Raised when a video file doesn't exist"""
    def __init__(self, video_path: str):
        super().__init__(
            f"Video not found: {video_path}",
            "VIDEO_NOT_FOUND",
            404,
            {"video_path": video_path}
        )


# =============================================================================
# Validation Errors (400, 422)
# =============================================================================

class ValidationError(TennisFormException):
    """Raised when input validation fails"""
    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", 400, details)


class InvalidKeypointData(TennisFormException):
    """Raised when submitted keypoints cannot form a pose"""
    def __init__(self, message: str, landmark: Optional[str] = None):
        details = {"landmark": landmark} if landmark else {}
        super().__init__(message, "INVALID_KEYPOINT_DATA", 422, details)


# =============================================================================
# Processing Errors (422)
# =============================================================================

class PoseEstimationError(TennisFormException):
    """Raised when the pose source fails on a frame"""
    def __init__(self, message: str):
        super().__init__(message, "POSE_ESTIMATION_ERROR", 422, {"stage": "pose_estimation"})


class VideoProcessingError(TennisFormException):
    """Raised when a video cannot be decoded"""
    def __init__(self, message: str, stage: Optional[str] = None):
        details = {"stage": stage} if stage else {}
        super().__init__(message, "VIDEO_PROCESSING_ERROR", 422, details)


# =============================================================================
# Resource Exhaustion Errors (503)
# =============================================================================

class SessionLimitReached(TennisFormException):
    """Raised when no more analysis sessions can be opened"""
    def __init__(self, limit: int):
        super().__init__(
            f"Session limit reached: {limit}",
            "SESSION_LIMIT_REACHED",
            503,
            {"limit": limit}
        )
