"""
Blink Video Analysis

Reads a recorded blink clip frame by frame, measures the eye aspect ratio
(EAR) of both eyes from MediaPipe face-mesh landmarks and hands the series
to the decision logic in checkin.verification.
"""
import hashlib
import os
import tempfile
from typing import List, Optional, Tuple
import logging

import cv2
import numpy as np

from checkin.config import (
    MAX_VIDEO_FRAMES,
    DEFAULT_VIDEO_FPS,
    FACE_LANDMARKER_MODEL_PATH,
)
from checkin.verification import BlinkProfile, build_blink_profile, eye_aspect_ratio

logger = logging.getLogger(__name__)

# Face-mesh landmark indices, ordered outer corner, top x2, inner corner, bottom x2
LEFT_EYE_IDX = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_IDX = [362, 385, 387, 263, 373, 380]


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def frame_timestamps(reported_ms: List[float], fps: float) -> List[float]:
    """
    Per-frame timestamps in milliseconds.

    Browser recordings often carry no usable timestamps (all zero or not
    increasing); those fall back to frame index / fps.
    """
    if len(reported_ms) > 1 and all(b > a for a, b in zip(reported_ms, reported_ms[1:])):
        return [float(t) for t in reported_ms]

    if not fps or fps <= 0 or fps > 240:
        fps = DEFAULT_VIDEO_FPS
    return [i * 1000.0 / fps for i in range(len(reported_ms))]


class EyeLandmarkExtractor:
    """
    EAR per frame from MediaPipe.

    Uses the legacy FaceMesh solution when the installed MediaPipe ships it,
    otherwise the FaceLandmarker task with a bundled .task model.
    """

    def __init__(self):
        import mediapipe as mp

        self._mp = mp
        if hasattr(mp, "solutions"):
            self._legacy = True
            self._mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=1,
                refine_landmarks=True,
                min_detection_confidence=0.5,
                min_tracking_confidence=0.5
            )
        else:
            from mediapipe.tasks import python as mp_tasks
            from mediapipe.tasks.python import vision

            if not FACE_LANDMARKER_MODEL_PATH.exists():
                raise RuntimeError(
                    f"Face landmarker model not found at {FACE_LANDMARKER_MODEL_PATH}"
                )
            self._legacy = False
            options = vision.FaceLandmarkerOptions(
                base_options=mp_tasks.BaseOptions(model_asset_path=str(FACE_LANDMARKER_MODEL_PATH)),
                num_faces=1
            )
            self._mesh = vision.FaceLandmarker.create_from_options(options)

    def close(self):
        self._mesh.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _landmarks(self, rgb: np.ndarray):
        if self._legacy:
            results = self._mesh.process(rgb)
            if not results.multi_face_landmarks:
                return None
            return results.multi_face_landmarks[0].landmark

        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
        result = self._mesh.detect(mp_image)
        if not result.face_landmarks:
            return None
        return result.face_landmarks[0]

    def ear(self, frame_bgr: np.ndarray) -> Optional[float]:
        """Mean EAR of both eyes, None when no face is found."""
        h, w = frame_bgr.shape[:2]
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        landmarks = self._landmarks(rgb)
        if landmarks is None:
            return None

        left = [(landmarks[i].x * w, landmarks[i].y * h) for i in LEFT_EYE_IDX]
        right = [(landmarks[i].x * w, landmarks[i].y * h) for i in RIGHT_EYE_IDX]
        return (eye_aspect_ratio(left) + eye_aspect_ratio(right)) / 2.0


class BlinkAnalysisService:
    """Service class for blink clip analysis."""

    def __init__(self, max_frames: int = MAX_VIDEO_FRAMES):
        self.max_frames = max_frames

    def read_ear_series(self, video_path: str) -> Tuple[List[Optional[float]], List[float]]:
        """
        EAR and timestamp per decoded frame.

        Raises:
            ValueError: If the file yields no frames
        """
        cap = cv2.VideoCapture(video_path)
        if not cap.isOpened():
            raise ValueError("Failed to open video")

        ears = []
        reported_ms = []
        try:
            fps = cap.get(cv2.CAP_PROP_FPS)
            with EyeLandmarkExtractor() as extractor:
                while len(ears) < self.max_frames:
                    ok, frame = cap.read()
                    if not ok:
                        break
                    reported_ms.append(cap.get(cv2.CAP_PROP_POS_MSEC))
                    ears.append(extractor.ear(frame))
        finally:
            cap.release()

        if not ears:
            raise ValueError("Video contains no decodable frames")

        return ears, frame_timestamps(reported_ms, fps)

    def analyze_video_bytes(self, video_bytes: bytes, suffix: str = ".webm") -> BlinkProfile:
        """
        Complete pipeline: clip bytes -> BlinkProfile.

        Raises:
            ValueError: If the clip cannot be decoded
            RuntimeError: If the landmark model is unavailable
        """
        # OpenCV only decodes from a path
        fd, path = tempfile.mkstemp(suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(video_bytes)
            ears, timestamps = self.read_ear_series(path)
        finally:
            os.unlink(path)

        profile = build_blink_profile(ears, timestamps)
        logger.info(
            f"Analyzed {profile.frames_analyzed} frames: {profile.blink_count} blinks, "
            f"double blink interval={profile.interval_ms}"
        )
        return profile


# Singleton instance
blink_service = BlinkAnalysisService()
