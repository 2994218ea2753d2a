"""
FastAPI Application - Tennis Form Analyzer API
Live analysis sessions fed one frame of keypoints at a time, plus one-off
analysis of stored videos.
"""

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import get_settings
from core.keypoints import Pose, StrokeType
from core.overlay import build_overlay
from core.pipeline import analyze_video
from core.pose_source import MediaPipePoseSource, PoseSource
from core.report import build_report
from core.session import AnalysisSession, SessionRegistry
from exceptions import TennisFormException, ValidationError, VideoNotFound, VideoProcessingError
from logging_config import setup_logging
from middleware.error_handler import setup_error_handlers
from middleware.performance import PerformanceMiddleware
from middleware.rate_limiter import limiter, setup_rate_limiting

# Load settings
settings = get_settings()

setup_logging(settings.LOG_LEVEL, settings.LOG_JSON, settings.LOG_FILE)
logger = logging.getLogger(__name__)

# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=settings.APP_NAME,
        description="Tennis stroke form analysis from 2D pose keypoints",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
        max_age=3600,  # Cache preflight for 1 hour
    )

    app.add_middleware(PerformanceMiddleware)
    setup_error_handlers(app)
    setup_rate_limiting(app)

    return app


# Create app instance
app = create_app()

# =============================================================================
# Global State
# =============================================================================

registry = SessionRegistry(max_sessions=settings.MAX_SESSIONS)

# =============================================================================
# Request/Response Models
# =============================================================================

class KeypointIn(BaseModel):
    name: Optional[str] = Field(default=None, description="Landmark name, e.g. right_wrist; positional if omitted")
    x: float = Field(..., allow_inf_nan=False)
    y: float = Field(..., allow_inf_nan=False)
    score: float = Field(default=0.0, ge=0.0, le=1.0)


class CreateSessionRequest(BaseModel):
    stroke_type: Optional[str] = Field(default=None, description="forehand, backhand, serve, volley or auto")
    camera_viewpoint: Optional[str] = Field(default=None, description="rear-elevated, side, front or auto")
    update_interval_ms: Optional[float] = Field(default=None, gt=0)


class UpdateSessionRequest(BaseModel):
    stroke_type: Optional[str] = None
    camera_viewpoint: Optional[str] = None


class FrameRequest(BaseModel):
    timestamp: float = Field(..., ge=0, description="Frame time in seconds")
    keypoints: Optional[List[Optional[KeypointIn]]] = Field(
        default=None, description="17 keypoints, or null when no subject was found"
    )
    score: Optional[float] = Field(default=None, description="Overall pose score")


class AnalyzeVideoRequest(BaseModel):
    video_name: str = Field(..., min_length=1, description="File name inside the video directory")
    stroke_type: Optional[str] = None
    camera_viewpoint: Optional[str] = None
    max_frames: Optional[int] = Field(default=None, gt=0)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


# =============================================================================
# Helpers
# =============================================================================

def session_payload(session: AnalysisSession) -> dict:
    result = session.last_result
    return {
        **session.config_dict(),
        "last_result": result.to_dict() if result else None,
        "report": build_report(result) if result else None,
    }


def resolve_video(video_name: str) -> Path:
    """Video file inside VIDEO_DIR; names that escape the directory are rejected."""
    video_dir = Path(settings.VIDEO_DIR).resolve()
    path = (video_dir / video_name).resolve()
    if path.parent != video_dir:
        raise ValidationError(f"Invalid video name: {video_name}", field="video_name")
    if not path.exists():
        raise VideoNotFound(video_name)
    return path


def get_pose_source():
    """One MediaPipe pose source per request, closed afterwards."""
    source = MediaPipePoseSource()
    try:
        yield source
    finally:
        source.close()


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root():
    """Root endpoint - basic health check."""
    return HealthResponse(
        status="ok",
        service=settings.APP_NAME,
        version=settings.APP_VERSION
    )


@app.get("/health", tags=["Health"])
async def health():
    """Simple health check for load balancers."""
    return {"status": "healthy"}


@app.get("/health/live", tags=["Health"])
async def health_live():
    """Liveness probe - is service responding?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
async def health_ready():
    """Readiness probe - can another session be opened?"""
    if len(registry) >= registry.max_sessions:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "session_limit_reached"}
        )
    return {"status": "ready", "sessions": len(registry)}


# =============================================================================
# Session Endpoints
# =============================================================================

@app.post("/api/sessions", status_code=201, tags=["Sessions"])
@limiter.limit(settings.RATE_LIMIT_SESSIONS)
async def create_session(request: Request, body: CreateSessionRequest):
    """
    Open an analysis session.

    - **stroke_type**: stroke to analyze, or auto to detect it
    - **camera_viewpoint**: camera placement, or auto to classify it per frame
    """
    session = registry.create(
        stroke_type=body.stroke_type or settings.DEFAULT_STROKE_TYPE,
        camera_viewpoint=body.camera_viewpoint or settings.DEFAULT_CAMERA_VIEWPOINT,
        update_interval_ms=body.update_interval_ms or settings.UPDATE_INTERVAL_MS,
        history_capacity=settings.HISTORY_CAPACITY,
    )
    return session_payload(session)


@app.get("/api/sessions", tags=["Sessions"])
async def list_sessions():
    return {"sessions": [s.config_dict() for s in registry.all()]}


@app.get("/api/sessions/{session_id}", tags=["Sessions"])
async def get_session(session_id: str):
    return session_payload(registry.get(session_id))


@app.patch("/api/sessions/{session_id}", tags=["Sessions"])
async def update_session(session_id: str, body: UpdateSessionRequest):
    """Change stroke type or camera viewpoint; motion history is kept."""
    session = registry.get(session_id)
    if body.stroke_type is not None:
        session.set_stroke_type(body.stroke_type)
    if body.camera_viewpoint is not None:
        session.set_camera_viewpoint(body.camera_viewpoint)
    logger.info("Session configuration changed", extra=session.config_dict())
    return session_payload(session)


@app.post("/api/sessions/{session_id}/reset", tags=["Sessions"])
async def reset_session(session_id: str):
    session = registry.get(session_id)
    session.reset()
    return session_payload(session)


@app.delete("/api/sessions/{session_id}", tags=["Sessions"])
async def delete_session(session_id: str):
    registry.remove(session_id)
    return {"deleted": session_id}


@app.post("/api/sessions/{session_id}/frames", tags=["Sessions"])
@limiter.limit(settings.RATE_LIMIT_FRAMES)
async def submit_frame(request: Request, session_id: str, body: FrameRequest):
    """
    Submit one frame's keypoints.

    The returned result is only new when ``updated`` is true; other frames
    repeat the last result. The overlay always describes the submitted pose.
    """
    session = registry.get(session_id)

    pose = None
    if body.keypoints is not None:
        pose = Pose.from_dicts(
            [kp.model_dump() if kp is not None else None for kp in body.keypoints],
            body.score
        )

    outcome = session.process_frame(pose, body.timestamp)
    result = outcome.result

    overlay = None
    if pose is not None:
        stroke = result.stroke_type or session.stroke_selection or StrokeType.FOREHAND
        overlay = build_overlay(pose, stroke, result.camera_viewpoint or session.camera_viewpoint)

    return {
        "updated": outcome.updated,
        "reason": outcome.reason,
        "result": result.to_dict(),
        "report": build_report(result),
        "overlay": overlay,
    }


# =============================================================================
# Video Analysis Endpoint
# =============================================================================

@app.post("/api/analyze", tags=["Analysis"])
@limiter.limit(settings.RATE_LIMIT_ANALYZE)
async def analyze(
    request: Request,
    body: AnalyzeVideoRequest,
    source: PoseSource = Depends(get_pose_source)
):
    """
    Analyze a video from the video directory in a one-off session.

    - **video_name**: file name inside VIDEO_DIR
    - **stroke_type** / **camera_viewpoint**: as for live sessions
    - **max_frames**: stop after this many frames
    """
    video_path = resolve_video(body.video_name)
    session = AnalysisSession(
        stroke_type=body.stroke_type or settings.DEFAULT_STROKE_TYPE,
        camera_viewpoint=body.camera_viewpoint or settings.DEFAULT_CAMERA_VIEWPOINT,
        update_interval_ms=settings.UPDATE_INTERVAL_MS,
        history_capacity=settings.HISTORY_CAPACITY,
    )

    try:
        result = await analyze_video(
            str(video_path),
            session=session,
            source=source,
            max_frames=body.max_frames or settings.MAX_VIDEO_FRAMES,
        )
    except TennisFormException:
        raise
    except Exception as e:
        logger.error(f"Analysis failed for {body.video_name}: {e}", exc_info=True)
        raise VideoProcessingError(f"Analysis failed: {str(e)}", stage="analysis")

    logger.info(f"Analysis complete: {body.video_name}", extra={"session_id": session.session_id})
    return result


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
