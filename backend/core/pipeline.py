"""
Frame Loop and Video Analysis
Drives an AnalysisSession from a pose source: one pose estimate per frame,
then the synchronous per-frame analysis. Estimation failures on a frame are
logged and the loop moves on to the next frame.
"""

import logging
from pathlib import Path
from typing import Any, AsyncIterable, Callable, Dict, Generator, Iterable, List, Optional, Tuple, Union

import cv2
import numpy as np

from exceptions import VideoNotFound, VideoProcessingError
from logging_config import LogTimer
from .overlay import build_overlay
from .pose_source import MediaPipePoseSource, PoseEstimationOptions, PoseSource
from .report import build_report
from .session import AnalysisSession, FrameOutcome

logger = logging.getLogger(__name__)

# Used when a container does not report its frame rate
DEFAULT_FPS = 30.0

# (timestamp in seconds, BGR frame)
TimedFrame = Tuple[float, np.ndarray]


class FrameLoop:
    """
    Runs frames through a pose source and a session.

    ``stop()`` ends ``run`` before the next frame and resets the session. A
    pose estimate already in flight is not cancelled, but its frame is
    dropped instead of reaching the reset session.
    """

    def __init__(
        self,
        session: AnalysisSession,
        source: PoseSource,
        options: Optional[PoseEstimationOptions] = None,
        on_outcome: Optional[Callable[[FrameOutcome], None]] = None
    ):
        self.session = session
        self.source = source
        self.options = options or PoseEstimationOptions()
        self.on_outcome = on_outcome
        self.frames_processed = 0
        self.frames_failed = 0
        self._running = False
        # Bumped by stop(); estimates started under an older generation are dropped
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._running

    async def process(self, frame: np.ndarray, timestamp: float) -> Optional[FrameOutcome]:
        """One frame; ``None`` when the frame could not be processed."""
        generation = self._generation
        try:
            pose = await self.source.estimate(frame, self.options)
            if generation != self._generation:
                logger.debug("Dropping frame estimated before stop", extra={"timestamp": timestamp})
                return None
            outcome = self.session.process_frame(pose, timestamp)
        except Exception as e:
            self.frames_failed += 1
            logger.warning(
                f"Frame skipped: {e}",
                exc_info=True,
                extra={"session_id": self.session.session_id, "timestamp": timestamp}
            )
            return None

        self.frames_processed += 1
        if self.on_outcome:
            self.on_outcome(outcome)
        return outcome

    async def run(self, frames: Union[Iterable[TimedFrame], AsyncIterable[TimedFrame]]) -> List[FrameOutcome]:
        """Process frames until exhausted or stopped; returns the outcomes of processed frames."""
        self._running = True
        outcomes = []

        if hasattr(frames, "__aiter__"):
            async for timestamp, frame in frames:
                if not self._running:
                    break
                outcome = await self.process(frame, timestamp)
                if outcome is not None:
                    outcomes.append(outcome)
        else:
            for timestamp, frame in frames:
                if not self._running:
                    break
                outcome = await self.process(frame, timestamp)
                if outcome is not None:
                    outcomes.append(outcome)

        self._running = False
        return outcomes

    def stop(self):
        self._running = False
        self._generation += 1
        self.session.reset()


def validate_video_path(video_path: str) -> Path:
    """Validate video file exists and is accessible"""
    path = Path(video_path)
    if not path.exists():
        raise VideoNotFound(str(path))
    if not path.is_file():
        raise VideoProcessingError(f"Not a file: {path}", stage="validation")
    if path.stat().st_size == 0:
        raise VideoProcessingError("Video file is empty", stage="validation")
    return path


def iter_video_frames(
    video_path: str,
    max_frames: Optional[int] = None
) -> Generator[TimedFrame, None, None]:
    """
    Decode a video frame by frame (generator).

    Timestamps come from the frame index and the container frame rate.
    """
    path = validate_video_path(video_path)
    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        raise VideoProcessingError(f"Cannot open video: {path}", stage="decode")

    fps = cap.get(cv2.CAP_PROP_FPS) or DEFAULT_FPS
    frame_idx = 0
    try:
        while max_frames is None or frame_idx < max_frames:
            ret, frame = cap.read()
            if not ret:
                break
            yield frame_idx / fps, frame
            frame_idx += 1
    finally:
        cap.release()


def video_metadata(video_path: str) -> Dict[str, Any]:
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise VideoProcessingError(f"Cannot open video: {video_path}", stage="decode")
    try:
        fps = cap.get(cv2.CAP_PROP_FPS)
        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        return {
            "fps": fps,
            "total_frames": total_frames,
            "width": int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "duration": total_frames / fps if fps > 0 else 0,
            "path": str(video_path),
        }
    finally:
        cap.release()


async def analyze_video(
    video_path: str,
    session: Optional[AnalysisSession] = None,
    source: Optional[PoseSource] = None,
    options: Optional[PoseEstimationOptions] = None,
    max_frames: Optional[int] = None
) -> Dict[str, Any]:
    """
    Run the frame loop over a video file.

    Returns every emitted (updated) result with its report payload, plus the
    final result's overlay.
    """
    metadata = video_metadata(str(validate_video_path(video_path)))
    frames = iter_video_frames(video_path, max_frames)
    session = session or AnalysisSession()
    owns_source = source is None
    source = source or MediaPipePoseSource()

    loop = FrameLoop(session, source, options)
    try:
        with LogTimer(logger, "Video analysis", session_id=session.session_id, path=str(video_path)) as timer:
            outcomes = await loop.run(frames)
    finally:
        if owns_source:
            source.close()

    updates = [o.result for o in outcomes if o.updated]
    final = session.last_result
    processing_time = (timer.duration_ms or 0.0) / 1000.0

    return {
        "session": session.config_dict(),
        "video_metadata": metadata,
        "processing_stats": {
            "processing_time_sec": round(processing_time, 2),
            "frames_processed": loop.frames_processed,
            "frames_failed": loop.frames_failed,
            "updates": len(updates),
        },
        "results": [{**r.to_dict(), "report": build_report(r)} for r in updates],
        "final_overlay": (
            build_overlay(final.pose, final.stroke_type, final.camera_viewpoint)
            if final is not None and final.pose is not None else None
        ),
    }
