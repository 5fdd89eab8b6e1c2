"""
Biometric decision logic

Turns a fresh face embedding and a fresh blink signal into accept/reject
decisions against the user's enrolled baseline:
- Face: cosine distance between probe and stored embedding
- Liveness: eye-aspect-ratio blink detection, double-blink requirement,
  timing compared with the registered double blink

Everything here is pure numpy so it can run without any model loaded.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import logging

import numpy as np

from checkin.config import (
    FACE_MATCH_THRESHOLD,
    EAR_THRESHOLD,
    EAR_CLOSED_RATIO,
    BLINK_MIN_CLOSED_FRAMES,
    BLINK_MAX_CLOSED_MS,
    DOUBLE_BLINK_MIN_GAP_MS,
    DOUBLE_BLINK_MAX_GAP_MS,
    BLINK_INTERVAL_TOLERANCE_MS,
    BLINK_INTERVAL_TOLERANCE_RATIO,
    MIN_FACE_FRAME_RATIO,
)

logger = logging.getLogger(__name__)

REASON_OK = "ok"
REASON_NO_FACE = "no_face"
REASON_NO_DOUBLE_BLINK = "no_double_blink"
REASON_INTERVAL_MISMATCH = "interval_mismatch"
REASON_REPLAY = "replay"
# Clip could not be analysed at all
REASON_UNREADABLE = "unreadable_video"
REASON_UNAVAILABLE = "analysis_unavailable"


# ============================================================================
# Face
# ============================================================================

@dataclass
class FaceVerification:
    verified: bool
    distance: float
    threshold: float


def l2_normalize(vec) -> np.ndarray:
    """Unit-norm float32 copy of `vec`; a zero vector is returned as is."""
    arr = np.asarray(vec, dtype=np.float32).reshape(-1)
    norm = np.linalg.norm(arr)
    if norm > 0:
        arr = arr / norm
    return arr


def cosine_distance(a, b) -> float:
    """
    1 - cosine similarity.

    Raises:
        ValueError: on empty vectors or mismatched dimensions
    """
    a = np.asarray(a, dtype=np.float32).reshape(-1)
    b = np.asarray(b, dtype=np.float32).reshape(-1)

    if a.size == 0 or b.size == 0:
        raise ValueError("Cannot compare empty embeddings")
    if a.shape != b.shape:
        raise ValueError(f"Embedding dimensions differ: {a.size} vs {b.size}")

    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 1.0
    similarity = float(np.dot(a, b)) / denom
    return 1.0 - max(-1.0, min(1.0, similarity))


def verify_face(probe, stored, threshold: float = FACE_MATCH_THRESHOLD) -> FaceVerification:
    """Accept when the cosine distance is strictly below `threshold`."""
    distance = cosine_distance(probe, stored)
    verified = distance < threshold
    logger.debug(f"face: distance={distance:.4f} threshold={threshold} -> {verified}")
    return FaceVerification(verified=verified, distance=round(distance, 6), threshold=threshold)


# ============================================================================
# Blink
# ============================================================================

@dataclass
class Blink:
    start_ms: float
    end_ms: float
    frames: int

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


@dataclass
class BlinkProfile:
    """Blink summary of one clip."""
    blinks: List[Blink] = field(default_factory=list)
    frames_analyzed: int = 0
    frames_with_face: int = 0
    ear_threshold: float = EAR_THRESHOLD
    double_blink: Optional[tuple] = None

    @property
    def blink_count(self) -> int:
        return len(self.blinks)

    @property
    def has_double_blink(self) -> bool:
        return self.double_blink is not None

    @property
    def interval_ms(self) -> Optional[float]:
        """Onset-to-onset gap of the first double blink."""
        if self.double_blink is None:
            return None
        first, second = self.double_blink
        return second.start_ms - first.start_ms

    @property
    def mean_duration_ms(self) -> Optional[float]:
        if not self.blinks:
            return None
        return float(np.mean([b.duration_ms for b in self.blinks]))

    @property
    def face_ratio(self) -> float:
        if self.frames_analyzed == 0:
            return 0.0
        return self.frames_with_face / self.frames_analyzed


@dataclass
class BlinkVerification:
    verified: bool
    reason: str
    interval_ms: Optional[float] = None
    baseline_interval_ms: Optional[float] = None


def eye_aspect_ratio(points) -> float:
    """
    Eye aspect ratio from six landmarks ordered
    outer corner, top x2, inner corner, bottom x2.
    """
    p = np.asarray(points, dtype=np.float64)
    vertical_a = np.linalg.norm(p[1] - p[5])
    vertical_b = np.linalg.norm(p[2] - p[4])
    horizontal = np.linalg.norm(p[0] - p[3])
    if horizontal == 0:
        return 0.0
    return float((vertical_a + vertical_b) / (2.0 * horizontal))


def closed_eye_threshold(ears: Sequence[Optional[float]],
                         absolute: float = EAR_THRESHOLD,
                         ratio: float = EAR_CLOSED_RATIO) -> float:
    """
    Threshold adapted to the subject: eyes that are narrow when open get a
    lower threshold than the absolute one.
    """
    values = np.array([e for e in ears if e is not None], dtype=np.float64)
    if values.size == 0:
        return absolute

    open_values = values[values >= absolute]
    if open_values.size == 0:
        # Narrow eyes never reach the absolute threshold, even when open
        open_values = values
    return float(min(absolute, np.median(open_values) * ratio))


def detect_blinks(ears: Sequence[Optional[float]],
                  timestamps_ms: Sequence[float],
                  threshold: Optional[float] = None,
                  min_closed_frames: int = BLINK_MIN_CLOSED_FRAMES,
                  max_closed_ms: float = BLINK_MAX_CLOSED_MS) -> List[Blink]:
    """
    Find blinks in a per-frame EAR series.

    Frames without a face (`None`) are skipped. A blink is a run of at
    least `min_closed_frames` closed frames that reopens and lasts no more
    than `max_closed_ms`. A run still closed at the end is ignored.
    """
    if len(ears) != len(timestamps_ms):
        raise ValueError("ears and timestamps_ms must have the same length")
    if threshold is None:
        threshold = closed_eye_threshold(ears)

    blinks = []
    run_start = None
    run_frames = 0

    for ear, ts in zip(ears, timestamps_ms):
        if ear is None:
            continue
        if ear < threshold:
            if run_start is None:
                run_start = ts
                run_frames = 0
            run_frames += 1
            continue

        if run_start is not None:
            duration = ts - run_start
            if run_frames >= min_closed_frames and duration <= max_closed_ms:
                blinks.append(Blink(start_ms=float(run_start), end_ms=float(ts), frames=run_frames))
            else:
                logger.debug(
                    f"Discarded closure: frames={run_frames} duration={duration:.0f}ms"
                )
            run_start = None
            run_frames = 0

    return blinks


def find_double_blink(blinks: Sequence[Blink],
                      min_gap_ms: float = DOUBLE_BLINK_MIN_GAP_MS,
                      max_gap_ms: float = DOUBLE_BLINK_MAX_GAP_MS) -> Optional[tuple]:
    """First pair of consecutive blinks whose onsets are within the window."""
    for first, second in zip(blinks, blinks[1:]):
        gap = second.start_ms - first.start_ms
        if min_gap_ms <= gap <= max_gap_ms:
            return first, second
    return None


def build_blink_profile(ears: Sequence[Optional[float]],
                        timestamps_ms: Sequence[float]) -> BlinkProfile:
    """Summarise an EAR series into a BlinkProfile."""
    threshold = closed_eye_threshold(ears)
    blinks = detect_blinks(ears, timestamps_ms, threshold=threshold)
    return BlinkProfile(
        blinks=blinks,
        frames_analyzed=len(ears),
        frames_with_face=sum(1 for e in ears if e is not None),
        ear_threshold=threshold,
        double_blink=find_double_blink(blinks),
    )


def interval_tolerance(baseline_interval_ms: float) -> float:
    return max(BLINK_INTERVAL_TOLERANCE_MS, BLINK_INTERVAL_TOLERANCE_RATIO * baseline_interval_ms)


def verify_blink(sample: BlinkProfile,
                 baseline_interval_ms: Optional[float] = None) -> BlinkVerification:
    """
    Liveness decision for one clip.

    Rejects clips where the face is mostly missing, with no double blink,
    or whose double-blink rhythm is far from the registered one.
    """
    if sample.face_ratio < MIN_FACE_FRAME_RATIO:
        return BlinkVerification(False, REASON_NO_FACE, None, baseline_interval_ms)

    if not sample.has_double_blink:
        return BlinkVerification(False, REASON_NO_DOUBLE_BLINK, None, baseline_interval_ms)

    interval = sample.interval_ms
    if baseline_interval_ms is not None:
        if abs(interval - baseline_interval_ms) > interval_tolerance(baseline_interval_ms):
            return BlinkVerification(False, REASON_INTERVAL_MISMATCH, interval, baseline_interval_ms)

    return BlinkVerification(True, REASON_OK, interval, baseline_interval_ms)


def same_media(digest_a: Optional[str], digest_b: Optional[str]) -> bool:
    """True when two uploads are byte-identical (replayed registration clip)."""
    return bool(digest_a) and bool(digest_b) and digest_a == digest_b
