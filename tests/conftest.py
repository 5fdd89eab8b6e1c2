import os
import tempfile
import uuid

# Must be set before any checkin module reads its configuration
_TMP = tempfile.mkdtemp(prefix="checkin-tests-")
os.environ["DATA_DIR"] = _TMP
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["EMBEDDING_BACKEND"] = "deepface"
os.environ["FACE_RECOGNITION_MODEL"] = "ArcFace"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("DB_SCHEMA", None)

import numpy as np
import pytest
from fastapi.testclient import TestClient

from checkin.verification import BlinkProfile, Blink, l2_normalize

DIM = 512


def random_embedding(seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return l2_normalize(rng.normal(size=DIM))


def nearby_embedding(base: np.ndarray, noise: float, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return l2_normalize(base + noise * rng.normal(size=base.size))


def double_blink_profile(interval_ms: float = 400.0, frames: int = 90) -> BlinkProfile:
    first = Blink(start_ms=1000.0, end_ms=1130.0, frames=4)
    second = Blink(start_ms=1000.0 + interval_ms, end_ms=1130.0 + interval_ms, frames=4)
    return BlinkProfile(
        blinks=[first, second],
        frames_analyzed=frames,
        frames_with_face=frames,
        double_blink=(first, second),
    )


def no_blink_profile(frames: int = 90) -> BlinkProfile:
    return BlinkProfile(blinks=[], frames_analyzed=frames, frames_with_face=frames)


class FakeFaceModel:
    """Maps uploaded image bytes to registered embeddings."""

    def __init__(self):
        self.by_bytes = {}

    def register(self, image_bytes: bytes, embedding):
        self.by_bytes[image_bytes] = embedding

    def __call__(self, image_bytes: bytes):
        if image_bytes.startswith(b"not-an-image"):
            raise ValueError("Failed to process image: cannot identify image file")
        embedding = self.by_bytes.get(image_bytes)
        if embedding is None:
            return False, None
        return True, embedding


class FakeBlinkModel:
    """Maps uploaded clip bytes to blink profiles."""

    def __init__(self):
        self.by_bytes = {}

    def register(self, video_bytes: bytes, profile: BlinkProfile):
        self.by_bytes[video_bytes] = profile

    def __call__(self, video_bytes: bytes, suffix: str = ".webm"):
        if video_bytes not in self.by_bytes:
            raise ValueError("Video contains no decodable frames")
        return self.by_bytes[video_bytes]


@pytest.fixture
def face_model(monkeypatch):
    from checkin.face_service import face_service

    fake = FakeFaceModel()
    monkeypatch.setattr(face_service, "generate_embedding_from_bytes", fake)
    return fake


@pytest.fixture
def blink_model(monkeypatch):
    from checkin.blink_service import blink_service

    fake = FakeBlinkModel()
    monkeypatch.setattr(blink_service, "analyze_video_bytes", fake)
    return fake


@pytest.fixture
def client(face_model, blink_model):
    from checkin.main import app

    with TestClient(app) as c:
        yield c


def unique_email() -> str:
    return f"user-{uuid.uuid4().hex[:12]}@example.com"


def signup(client, email=None, password="secret123", full_name="Test User"):
    response = client.post(
        "/auth/signup",
        json={"email": email or unique_email(), "password": password, "full_name": full_name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def enrolled_user(client, face_model, blink_model):
    """A user with face and blink registered. Returns (headers, embedding, blink bytes)."""
    seed = uuid.uuid4().int % (2 ** 32)
    embedding = random_embedding(seed)
    face_bytes = f"face-{seed}".encode()
    face_model.register(face_bytes, embedding)

    blink_bytes = f"blink-{seed}".encode()
    blink_model.register(blink_bytes, double_blink_profile(400.0))

    data = signup(client)
    headers = auth_headers(data["access_token"])

    r = client.post("/register/face", files={"image": ("face.jpg", face_bytes, "image/jpeg")}, headers=headers)
    assert r.status_code == 200, r.text
    r = client.post("/register/blink", files={"video": ("blink.webm", blink_bytes, "video/webm")}, headers=headers)
    assert r.status_code == 200, r.text

    return headers, embedding, blink_bytes


def upload_image(data: bytes, name="face.jpg", content_type="image/jpeg"):
    return {"image": (name, data, content_type)}


def upload_video(data: bytes, name="blink.webm", content_type="video/webm"):
    return {"video": (name, data, content_type)}


def start_checkin(client, face_model, headers, embedding, seed):
    """Pass the face step with a photo close to the enrolled one."""
    photo = nearby_embedding(embedding, noise=0.01, seed=seed)
    photo_bytes = f"checkin-face-{seed}".encode()
    face_model.register(photo_bytes, photo)
    r = client.post("/checkin/face", files=upload_image(photo_bytes), headers=headers)
    assert r.status_code == 200, r.text
    return r.json()
