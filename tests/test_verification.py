import numpy as np
import pytest

from checkin.verification import (
    Blink,
    BlinkProfile,
    REASON_INTERVAL_MISMATCH,
    REASON_NO_DOUBLE_BLINK,
    REASON_NO_FACE,
    REASON_OK,
    build_blink_profile,
    closed_eye_threshold,
    cosine_distance,
    detect_blinks,
    eye_aspect_ratio,
    find_double_blink,
    l2_normalize,
    same_media,
    verify_blink,
    verify_face,
)

FRAME_MS = 1000.0 / 30
OPEN = 0.30
CLOSED = 0.10


def ear_series(n_frames, closed_runs):
    """Open-eye series with closed frames at the given (start, length) runs."""
    ears = [OPEN] * n_frames
    for start, length in closed_runs:
        for i in range(start, start + length):
            ears[i] = CLOSED
    return ears, [i * FRAME_MS for i in range(n_frames)]


class TestCosineDistance:
    def test_identical_vectors(self):
        v = np.array([1.0, 2.0, 3.0])
        assert cosine_distance(v, v) == pytest.approx(0.0, abs=1e-6)

    def test_orthogonal_vectors(self):
        assert cosine_distance([1, 0], [0, 1]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_distance([1, 0], [-1, 0]) == pytest.approx(2.0)

    def test_scale_invariant(self):
        assert cosine_distance([1, 2], [10, 20]) == pytest.approx(0.0, abs=1e-6)

    def test_zero_vector_is_maximally_dissimilar(self):
        assert cosine_distance([0, 0, 0], [1, 2, 3]) == 1.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_distance([1, 2, 3], [1, 2])

    def test_empty(self):
        with pytest.raises(ValueError):
            cosine_distance([], [])


def test_l2_normalize():
    v = l2_normalize([3.0, 4.0])
    assert v.dtype == np.float32
    assert np.linalg.norm(v) == pytest.approx(1.0)
    assert l2_normalize([0.0, 0.0]).tolist() == [0.0, 0.0]


class TestVerifyFace:
    def test_accepts_close_face(self):
        stored = l2_normalize([1.0, 0.0, 0.0])
        probe = l2_normalize([1.0, 0.2, 0.0])
        result = verify_face(probe, stored, threshold=0.40)
        assert result.verified
        assert result.distance < 0.40

    def test_rejects_far_face(self):
        result = verify_face([1.0, 0.0], [0.0, 1.0], threshold=0.40)
        assert not result.verified
        assert result.distance == pytest.approx(1.0)

    def test_threshold_is_strict(self):
        # Orthogonal unit vectors: distance is exactly 1.0
        probe = [1.0, 0.0]
        stored = [0.0, 1.0]
        assert not verify_face(probe, stored, threshold=1.0).verified
        assert verify_face(probe, stored, threshold=1.0001).verified

    def test_stored_embedding_as_list(self):
        stored = [0.6, 0.8]
        assert verify_face(np.array([0.6, 0.8]), stored).verified


def test_eye_aspect_ratio():
    # Horizontal span 4, vertical spans 1 and 1 -> (1 + 1) / (2 * 4)
    points = [(0, 0), (1, 0.5), (3, 0.5), (4, 0), (3, -0.5), (1, -0.5)]
    assert eye_aspect_ratio(points) == pytest.approx(0.25)


def test_eye_aspect_ratio_degenerate():
    assert eye_aspect_ratio([(1, 1)] * 6) == 0.0


class TestClosedEyeThreshold:
    def test_absolute_threshold_for_wide_eyes(self):
        assert closed_eye_threshold([0.35] * 10, absolute=0.21, ratio=0.75) == pytest.approx(0.21)

    def test_adapts_to_narrow_eyes(self):
        assert closed_eye_threshold([0.2] * 10, absolute=0.21, ratio=0.75) == pytest.approx(0.15)

    def test_no_face_frames(self):
        assert closed_eye_threshold([None, None], absolute=0.21) == 0.21

    def test_closed_frames_do_not_lower_threshold(self):
        # Median over every frame would be 0.17; open frames alone give 0.24
        ears = [0.10] * 10 + [0.24] * 10
        assert closed_eye_threshold(ears, absolute=0.21, ratio=0.75) == pytest.approx(0.18)


class TestDetectBlinks:
    def test_two_blinks(self):
        ears, ts = ear_series(90, [(30, 4), (42, 4)])
        blinks = detect_blinks(ears, ts)
        assert len(blinks) == 2
        assert blinks[0].start_ms == pytest.approx(30 * FRAME_MS)
        assert blinks[0].frames == 4
        assert blinks[1].start_ms - blinks[0].start_ms == pytest.approx(12 * FRAME_MS)

    def test_single_closed_frame_is_noise(self):
        ears, ts = ear_series(60, [(20, 1)])
        assert detect_blinks(ears, ts) == []

    def test_long_closure_is_not_a_blink(self):
        ears, ts = ear_series(120, [(20, 40)])
        assert detect_blinks(ears, ts) == []

    def test_closure_at_end_is_ignored(self):
        ears, ts = ear_series(60, [(56, 4)])
        assert detect_blinks(ears, ts) == []

    def test_frames_without_face_are_skipped(self):
        ears, ts = ear_series(60, [(20, 4)])
        ears[22] = None
        ears[40] = None
        blinks = detect_blinks(ears, ts)
        assert len(blinks) == 1
        assert blinks[0].frames == 3

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            detect_blinks([0.3, 0.3], [0.0])


class TestDoubleBlink:
    def test_pair_within_window(self):
        blinks = [Blink(0, 100, 3), Blink(400, 500, 3)]
        assert find_double_blink(blinks) == (blinks[0], blinks[1])

    def test_pair_too_far_apart(self):
        blinks = [Blink(0, 100, 3), Blink(3000, 3100, 3)]
        assert find_double_blink(blinks) is None

    def test_first_matching_pair_wins(self):
        blinks = [Blink(0, 100, 3), Blink(3000, 3100, 3), Blink(3500, 3600, 3)]
        assert find_double_blink(blinks) == (blinks[1], blinks[2])

    def test_profile_from_series(self):
        ears, ts = ear_series(90, [(30, 4), (42, 4)])
        profile = build_blink_profile(ears, ts)
        assert profile.blink_count == 2
        assert profile.has_double_blink
        assert profile.interval_ms == pytest.approx(400.0)
        assert profile.mean_duration_ms == pytest.approx(4 * FRAME_MS)
        assert profile.frames_analyzed == 90
        assert profile.face_ratio == 1.0


def make_profile(interval_ms=None, frames=90, with_face=90):
    if interval_ms is None:
        return BlinkProfile(frames_analyzed=frames, frames_with_face=with_face)
    first = Blink(1000.0, 1120.0, 4)
    second = Blink(1000.0 + interval_ms, 1120.0 + interval_ms, 4)
    return BlinkProfile(
        blinks=[first, second],
        frames_analyzed=frames,
        frames_with_face=with_face,
        double_blink=(first, second),
    )


class TestVerifyBlink:
    def test_double_blink_without_baseline(self):
        result = verify_blink(make_profile(400.0))
        assert result.verified
        assert result.reason == REASON_OK
        assert result.interval_ms == pytest.approx(400.0)

    def test_matching_baseline(self):
        result = verify_blink(make_profile(450.0), baseline_interval_ms=400.0)
        assert result.verified
        assert result.baseline_interval_ms == 400.0

    def test_interval_mismatch(self):
        # Tolerance is max(350, 0.5 * 1000) = 500
        result = verify_blink(make_profile(400.0), baseline_interval_ms=1000.0)
        assert not result.verified
        assert result.reason == REASON_INTERVAL_MISMATCH

    def test_no_double_blink(self):
        result = verify_blink(make_profile(None), baseline_interval_ms=400.0)
        assert not result.verified
        assert result.reason == REASON_NO_DOUBLE_BLINK

    def test_face_mostly_missing(self):
        result = verify_blink(make_profile(400.0, frames=90, with_face=30))
        assert not result.verified
        assert result.reason == REASON_NO_FACE

    def test_empty_clip(self):
        result = verify_blink(BlinkProfile())
        assert result.reason == REASON_NO_FACE


def test_same_media():
    assert same_media("abc", "abc")
    assert not same_media("abc", "abd")
    assert not same_media(None, None)
    assert not same_media("", "")
