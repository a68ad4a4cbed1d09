"""
Embedding Service

On-device embedding generation using fastembed. Each Knowledge summary gets
one vector so that knowledge can later be searched by similarity.
"""

import logging
from typing import List, Optional

import numpy as np

logger = logging.getLogger("harvest.common.embedding_service")

DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


class EmbeddingService:
    """
    Thin wrapper around fastembed's TextEmbedding.

    The model is loaded lazily on first use; loading downloads weights, which
    is slow and must not happen at import time.
    """

    def __init__(self, model: str = DEFAULT_MODEL):
        self._model_name = model
        self._model = None
        self._load_failed = False

    def _ensure_model(self) -> None:
        if self._model is not None or self._load_failed:
            return
        try:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Embedding model loaded: fastembed/%s", self._model_name)
        except ImportError:
            logger.warning("fastembed package not installed, embeddings unavailable")
            self._load_failed = True
        except Exception as e:
            logger.warning("Failed to load embedding model %s: %s", self._model_name, e)
            self._load_failed = True

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        self._ensure_model()
        return self._model is not None

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized)
        """
        if not texts:
            return []

        self._ensure_model()
        if self._model is None:
            raise RuntimeError("Embedding model not initialized")

        vectors = []
        for vec in self._model.embed(texts):
            arr = np.asarray(vec, dtype=np.float32)
            norm = float(np.linalg.norm(arr))
            if norm > 0:
                arr = arr / norm
            vectors.append(arr.tolist())
        return vectors

    def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        if not text:
            raise ValueError("Cannot embed empty text")
        return self.embed([text])[0]


_service_instance: Optional[EmbeddingService] = None


def get_embedding_service(model: str = DEFAULT_MODEL) -> EmbeddingService:
    """Get the process-wide EmbeddingService for the given model."""
    global _service_instance

    if _service_instance is None or _service_instance.model_name != model:
        _service_instance = EmbeddingService(model=model)

    return _service_instance
