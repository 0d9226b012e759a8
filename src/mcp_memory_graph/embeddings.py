"""
Embedding providers.

The search engine only needs ``embed(text)`` and ``dimensions()``; the
sentence-transformers implementation loads its model lazily on first use
and runs inference in the default executor so the event loop stays free.
"""

import asyncio
import logging
import threading
from typing import Protocol, runtime_checkable

from .config import settings

# Import sentence transformers with fallback
try:
    from sentence_transformers import SentenceTransformer

    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SENTENCE_TRANSFORMERS_AVAILABLE = False

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]:
        """Embed non-empty text. Raises ValueError on empty input."""
        ...

    def dimensions(self) -> int: ...


def get_torch_device() -> str:
    """Pick cuda, mps or cpu, in that order of preference."""
    try:
        import torch

        if torch.cuda.is_available():
            return "cuda"
        if getattr(torch.backends, "mps", None) and torch.backends.mps.is_available():
            return "mps"
    except ImportError:
        pass
    return "cpu"


class SentenceTransformerEmbedder:
    """EmbeddingProvider backed by a sentence-transformers model."""

    def __init__(self, model_name: str | None = None, device: str | None = None):
        self.model_name = model_name or settings.embedding.model_name
        self.device = device or settings.embedding.device
        self._dimensions = settings.embedding.dimensions
        self._model = None
        self._model_lock = threading.Lock()

    def _get_model(self):
        if not SENTENCE_TRANSFORMERS_AVAILABLE:
            raise RuntimeError("sentence_transformers not installed. Install with: pip install sentence-transformers")

        # Double-checked so concurrent first calls load the model once
        if self._model is None:
            with self._model_lock:
                if self._model is None:
                    device = self.device or get_torch_device()
                    logger.info(f"Loading embedding model: {self.model_name}")
                    self._model = SentenceTransformer(self.model_name, device=device)
                    self._dimensions = self._model.get_sentence_embedding_dimension() or self._dimensions
                    logger.info(f"Loaded model: {self.model_name} on device: {device}")
        return self._model

    def _encode(self, text: str) -> list[float]:
        vector = self._get_model().encode(text, convert_to_tensor=False)
        embedding = vector.tolist() if hasattr(vector, "tolist") else list(vector)
        if not embedding:
            raise ValueError("Generated embedding is empty")
        return [float(x) for x in embedding]

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._encode, text)

    def dimensions(self) -> int:
        return self._dimensions
