"""
Embedding Service

Generates fixed-dimension embeddings with sentence-transformers, locally.

Model: sentence-transformers/all-MiniLM-L6-v2 (default)
- 384 dimensions, must match EMBEDDING_DIMENSION and the vector column
- Normalized output, so cosine similarity is a dot product
- Free (no API costs)

The model is loaded once per process by ``initialize()`` and the service
object is then handed to whoever needs it (embedding writer, search engine).
"""

import asyncio
import logging
from typing import Optional

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from talkarchive.core.config import settings
from talkarchive.core.exceptions import ProviderUnavailable

logger = logging.getLogger(__name__)

PROVIDER = "sentence-transformers"


class EmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Usage:
    ------
    embedder = EmbeddingService()
    await embedder.initialize()

    embedding = await embedder.embed_text("What is governance?")
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
        dimension: Optional[int] = None,
        normalize: bool = True,
    ):
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.device = device or settings.EMBEDDING_DEVICE
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.normalize = normalize

        self.model: Optional[SentenceTransformer] = None
        self._initialized = False

        self._validate_device()

    def _validate_device(self) -> None:
        """Validate and adjust device setting based on availability."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Load the model (downloads it on first use).

        Raises:
            ValueError: If the model's dimension differs from EMBEDDING_DIMENSION
        """
        if self._initialized:
            return

        logger.info(f"Loading embedding model: {self.model_name} on {self.device}")
        self.model = await asyncio.to_thread(
            SentenceTransformer,
            self.model_name,
            device=self.device
        )

        model_dimension = self.model.get_sentence_embedding_dimension()
        if model_dimension != self.dimension:
            raise ValueError(
                f"Model {self.model_name} produces {model_dimension}-dimensional vectors "
                f"but EMBEDDING_DIMENSION is {self.dimension}"
            )

        self._initialized = True
        logger.info(f"Embedding model loaded. Dimension: {self.dimension}, Device: {self.device}")

    async def embed_text(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            RuntimeError: If service not initialized
            ValueError: If text is empty
            ProviderUnavailable: If the model fails to encode
        """
        if not self._initialized:
            raise RuntimeError("Embedding service not initialized. Call initialize() first.")
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        try:
            embedding = await asyncio.to_thread(self._encode, text)
        except (RuntimeError, ValueError) as e:
            logger.error(f"Error generating embedding: {e}")
            raise ProviderUnavailable(PROVIDER, str(e)) from e
        return embedding.tolist()

    def _encode(self, text: str) -> np.ndarray:
        return self.model.encode(
            text,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True,
        )
