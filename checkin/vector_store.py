"""
FAISS Vector Store for Enrolled Faces

Mirrors every active enrolled face embedding so a new enrolment can be
searched against everyone else's face. Rows in user_face_embeddings refer
to vectors here by `embedding_index`.

- Adding/removing vectors
- Top-K cosine search
- Persistence (index file + JSON sidecar)
"""
import json
import faiss
import numpy as np
from pathlib import Path
from typing import Optional, List, Tuple
import logging
import threading

from checkin.config import (
    FAISS_INDEX_PATH,
    METADATA_PATH,
    EMBEDDING_DIM,
)

logger = logging.getLogger(__name__)


class FAISSVectorStore:
    """
    FAISS-based vector store for face embeddings.

    Uses IndexFlatIP (Inner Product) with normalized vectors
    for cosine similarity search. Thread-safe via a re-entrant lock.
    """

    def __init__(self, index_path: Path = FAISS_INDEX_PATH,
                 metadata_path: Path = METADATA_PATH,
                 dim: int = EMBEDDING_DIM):
        """Initialize the vector store."""
        self.index_path = Path(index_path)
        self.metadata_path = Path(metadata_path)
        self.dim = dim
        self._lock = threading.RLock()
        self._index: Optional[faiss.IndexFlatIP] = None
        self._next_index = 0
        self._deleted_positions: set = set()
        self._index_mapping: dict = {}  # faiss position -> embedding_index

        self._load_or_create()

    def _load_or_create(self):
        """Load existing index or create new one."""
        with self._lock:
            if self.index_path.exists() and self.metadata_path.exists():
                try:
                    self._load_index()
                    logger.info(f"Loaded existing FAISS index with {self.count} vectors")
                except Exception as e:
                    logger.warning(f"Failed to load index: {e}. Creating new one.")
                    self._create_new_index()
            else:
                self._create_new_index()

    def _create_new_index(self):
        """Create a new FAISS index."""
        self._index = faiss.IndexFlatIP(self.dim)
        self._next_index = 0
        self._deleted_positions = set()
        self._index_mapping = {}
        logger.info(f"Created new FAISS index (dim={self.dim})")

    def _load_index(self):
        """Load index and metadata from disk."""
        index = faiss.read_index(str(self.index_path))
        if index.d != self.dim:
            # Embedding backend changed since the index was written
            raise ValueError(f"index dimension {index.d} does not match {self.dim}")
        self._index = index

        with open(self.metadata_path, "r") as f:
            data = json.load(f)

        self._next_index = data.get("next_index", 0)
        self._deleted_positions = set(data.get("deleted_positions", []))
        self._index_mapping = {int(k): v for k, v in data.get("index_mapping", {}).items()}

    def _save_index(self):
        """Persist index and metadata to disk."""
        try:
            faiss.write_index(self._index, str(self.index_path))

            data = {
                "dim": self.dim,
                "next_index": self._next_index,
                "deleted_positions": sorted(self._deleted_positions),
                "index_mapping": {str(k): v for k, v in self._index_mapping.items()}
            }

            with open(self.metadata_path, "w") as f:
                json.dump(data, f, indent=2)

            logger.debug("Index saved to disk")
        except Exception as e:
            logger.error(f"Failed to save index: {e}")
            raise

    @property
    def count(self) -> int:
        """Get the number of active vectors."""
        with self._lock:
            return self._index.ntotal - len(self._deleted_positions) if self._index else 0

    def add(self, embedding: np.ndarray) -> int:
        """
        Add a new face embedding to the index.

        Returns:
            embedding_index: The index assigned to this embedding
        """
        with self._lock:
            embedding = np.array(embedding, dtype=np.float32).reshape(1, -1)
            if embedding.shape[1] != self.dim:
                raise ValueError(f"Expected {self.dim}-dim embedding, got {embedding.shape[1]}")

            self._index.add(embedding)
            embedding_index = self._next_index

            faiss_position = self._index.ntotal - 1
            self._index_mapping[faiss_position] = embedding_index
            self._next_index += 1

            self._save_index()
            logger.info(f"Added embedding at index {embedding_index}")
            return embedding_index

    def delete(self, embedding_index: int) -> bool:
        """
        Mark an embedding as deleted.

        FAISS flat indexes have no cheap removal, so the position is
        filtered out of searches until the next rebuild.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            faiss_position = None
            for pos, idx in self._index_mapping.items():
                if idx == embedding_index and pos not in self._deleted_positions:
                    faiss_position = pos
                    break

            if faiss_position is None:
                return False

            self._deleted_positions.add(faiss_position)
            self._save_index()

            logger.info(f"Deleted embedding at index {embedding_index}")
            return True

    def search(self, query_embedding: np.ndarray, top_k: int = 5) -> List[Tuple[int, float, float]]:
        """
        Search for the nearest enrolled faces.

        Returns:
            List of (embedding_index, confidence, distance), nearest first
        """
        with self._lock:
            if self.count == 0:
                return []

            query = np.array(query_embedding, dtype=np.float32).reshape(1, -1)

            # Search past deleted entries
            search_k = min(top_k + len(self._deleted_positions), self._index.ntotal)
            scores, positions = self._index.search(query, search_k)

            matches = []
            for score, faiss_pos in zip(scores[0], positions[0]):
                faiss_pos = int(faiss_pos)
                if faiss_pos < 0 or faiss_pos in self._deleted_positions:
                    continue

                embedding_index = self._index_mapping.get(faiss_pos)
                if embedding_index is None:
                    continue

                # For normalized vectors: cosine_distance = 1 - inner_product
                distance = 1.0 - float(score)
                confidence = float(score)

                matches.append((
                    embedding_index,
                    round(max(0.0, min(1.0, confidence)), 4),
                    round(max(0.0, distance), 4)
                ))

                if len(matches) >= top_k:
                    break

            matches.sort(key=lambda x: x[2])
            return matches

    def rebuild_index(self) -> int:
        """
        Rebuild the FAISS index to reclaim space from deleted entries.

        Returns:
            Number of active vectors after rebuild
        """
        with self._lock:
            if not self._deleted_positions:
                logger.info("No deleted entries, skipping rebuild")
                return self.count

            logger.info(f"Rebuilding index, removing {len(self._deleted_positions)} deleted entries")

            active_embeddings = []
            new_index_mapping = {}

            for faiss_pos in range(self._index.ntotal):
                if faiss_pos in self._deleted_positions:
                    continue

                embedding_index = self._index_mapping.get(faiss_pos)
                if embedding_index is None:
                    continue

                new_index_mapping[len(active_embeddings)] = embedding_index
                active_embeddings.append(self._index.reconstruct(faiss_pos))

            new_index = faiss.IndexFlatIP(self.dim)
            if active_embeddings:
                new_index.add(np.array(active_embeddings, dtype=np.float32))

            self._index = new_index
            self._index_mapping = new_index_mapping
            self._deleted_positions = set()

            self._save_index()
            logger.info(f"Index rebuilt with {self.count} active vectors")
            return self.count


# Singleton instance
vector_store = FAISSVectorStore()
