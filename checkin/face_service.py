"""
Face Embedding Service

This module turns a captured face photo into a normalised embedding:
- Image decoding and preprocessing
- Backend selection (DeepFace or the MiniFaceNet ONNX model)
- Lazy model loading on first use
"""
import numpy as np
import cv2
from PIL import Image, UnidentifiedImageError
from io import BytesIO
from typing import Optional, Tuple
import logging

from checkin.config import (
    EMBEDDING_BACKEND,
    EMBEDDING_DIM,
    EMBEDDING_MODEL_VERSION,
    FACE_RECOGNITION_MODEL,
    FACE_DETECTOR_BACKEND,
    MAX_IMAGE_SIZE,
    MINIFACENET_MODEL_PATH,
    MINIFACENET_INPUT_NAME,
    MINIFACENET_OUTPUT_NAME,
    MINIFACENET_INPUT_SIZE,
)
from checkin.verification import l2_normalize

logger = logging.getLogger(__name__)


class DeepFaceEmbedder:
    """
    Embeddings from DeepFace.

    DeepFace handles detection, alignment and the recognition model in a
    single `represent` call. ArcFace with RetinaFace by default.
    """

    def __init__(self, model_name: str = FACE_RECOGNITION_MODEL,
                 detector_backend: str = FACE_DETECTOR_BACKEND):
        self.model_name = model_name
        self.detector_backend = detector_backend
        self._deepface = None

    def load(self):
        from deepface import DeepFace

        self._deepface = DeepFace
        logger.info(f"Loading {self.model_name} model...")
        # Warm up the model by running a dummy inference
        try:
            dummy_img = np.zeros((224, 224, 3), dtype=np.uint8)
            DeepFace.represent(
                img_path=dummy_img,
                model_name=self.model_name,
                detector_backend="skip",
                enforce_detection=False
            )
            logger.info(f"{self.model_name} model loaded successfully")
        except Exception as e:
            logger.warning(f"Model warmup warning: {e}")

    def embed(self, img_array: np.ndarray) -> Optional[np.ndarray]:
        try:
            results = self._deepface.represent(
                img_path=img_array,
                model_name=self.model_name,
                detector_backend=self.detector_backend,
                enforce_detection=True,
                align=True
            )
        except ValueError as e:
            # DeepFace raises ValueError when enforce_detection finds no face
            logger.warning(f"No face detected: {e}")
            return None

        if not results:
            return None
        embedding = results[0].get("embedding")
        if embedding is None:
            return None
        return l2_normalize(embedding)


class MiniFaceNetEmbedder:
    """
    Embeddings from the 256-d MiniFaceNet ONNX model.

    The largest face found by an OpenCV Haar cascade is cropped, resized to
    112x112, scaled to [0, 1] and fed as a 1x3x112x112 RGB tensor.
    """

    def __init__(self, model_path=MINIFACENET_MODEL_PATH,
                 input_size: int = MINIFACENET_INPUT_SIZE):
        self.model_path = model_path
        self.input_size = input_size
        self._session = None
        self._cascade = None

    def load(self):
        import onnxruntime as ort

        if not self.model_path.exists():
            raise RuntimeError(f"MiniFaceNet model not found at {self.model_path}")

        logger.info(f"Loading model from: {self.model_path}")
        self._session = ort.InferenceSession(
            str(self.model_path),
            providers=["CPUExecutionProvider"]
        )
        self._cascade = cv2.CascadeClassifier(
            cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
        )

    def crop_face(self, img_array: np.ndarray) -> Optional[np.ndarray]:
        """Largest detected face with a small margin, or None."""
        gray = cv2.cvtColor(img_array, cv2.COLOR_RGB2GRAY)
        faces = self._cascade.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=5, minSize=(60, 60))
        if len(faces) == 0:
            return None

        x, y, w, h = max(faces, key=lambda f: f[2] * f[3])
        margin = int(0.1 * max(w, h))
        height, width = img_array.shape[:2]
        x0, y0 = max(0, x - margin), max(0, y - margin)
        x1, y1 = min(width, x + w + margin), min(height, y + h + margin)
        return img_array[y0:y1, x0:x1]

    def to_tensor(self, face: np.ndarray) -> np.ndarray:
        """RGB HWC uint8 -> 1x3xSxS float32 in [0, 1]."""
        resized = cv2.resize(face, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
        chw = resized.astype(np.float32).transpose(2, 0, 1) / 255.0
        return chw[np.newaxis, ...]

    def embed(self, img_array: np.ndarray) -> Optional[np.ndarray]:
        face = self.crop_face(img_array)
        if face is None:
            logger.warning("No face detected by cascade")
            return None

        outputs = self._session.run(
            [MINIFACENET_OUTPUT_NAME],
            {MINIFACENET_INPUT_NAME: self.to_tensor(face)}
        )
        return l2_normalize(outputs[0])


class FaceEmbeddingService:
    """
    Service class for face embedding operations.

    The backend is chosen by EMBEDDING_BACKEND and loaded lazily so the
    service can be imported without any model on disk.
    """

    def __init__(self, backend: str = EMBEDDING_BACKEND):
        """Initialize the face embedding service."""
        if backend == "minifacenet":
            self._embedder = MiniFaceNetEmbedder()
        elif backend == "deepface":
            self._embedder = DeepFaceEmbedder()
        else:
            raise ValueError(f"Unknown embedding backend: {backend}")
        self.backend = backend
        self.model_version = EMBEDDING_MODEL_VERSION
        self.embedding_dim = EMBEDDING_DIM
        self._model_loaded = False

    @property
    def model_loaded(self) -> bool:
        return self._model_loaded

    def _ensure_model_loaded(self):
        """Lazy load the model on first use."""
        if not self._model_loaded:
            self._embedder.load()
            self._model_loaded = True

    def preprocess_image(self, image_bytes: bytes) -> np.ndarray:
        """
        Preprocess image bytes into numpy array.

        Steps:
        1. Load image from bytes
        2. Convert to RGB
        3. Resize if too large (preserving aspect ratio)

        Raises:
            ValueError: If image cannot be decoded
        """
        try:
            image = Image.open(BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ValueError(f"Failed to process image: {e}")

        # Convert to RGB (handles PNG with alpha, grayscale, etc.)
        if image.mode != "RGB":
            image = image.convert("RGB")

        if image.size[0] > MAX_IMAGE_SIZE[0] or image.size[1] > MAX_IMAGE_SIZE[1]:
            image.thumbnail(MAX_IMAGE_SIZE, Image.Resampling.LANCZOS)
            logger.debug(f"Image resized to {image.size}")

        return np.array(image)

    def generate_embedding(self, img_array: np.ndarray) -> Optional[np.ndarray]:
        """Embedding for the face in `img_array`, or None if no face."""
        self._ensure_model_loaded()
        embedding = self._embedder.embed(img_array)
        if embedding is not None and embedding.size != self.embedding_dim:
            logger.error(
                f"{self.model_version} returned {embedding.size} dims, expected {self.embedding_dim}"
            )
            return None
        return embedding

    def generate_embedding_from_bytes(self, image_bytes: bytes) -> Tuple[bool, Optional[np.ndarray]]:
        """
        Complete pipeline: bytes -> embedding.

        Returns:
            Tuple of (success: bool, embedding: Optional[np.ndarray])

        Raises:
            ValueError: If the bytes are not a decodable image
            RuntimeError: If the model cannot be loaded
        """
        img_array = self.preprocess_image(image_bytes)
        embedding = self.generate_embedding(img_array)

        if embedding is not None:
            return True, embedding
        return False, None


# Singleton instance
face_service = FaceEmbeddingService()
