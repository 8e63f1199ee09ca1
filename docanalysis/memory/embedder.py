# docanalysis/memory/embedder.py

"""
Embedding client with batching.

Architecture contract:
chunker → embedder → vector_store

Guarantees:
• Output order equals input order
• Always numpy float32, L2-normalized (cosine-ready)
• Fixed dimension, checked on every response
• Whole-request failure on any upstream error (no partial batches)
• Inputs longer than `embedding_max_chars` are truncated before submission
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from docanalysis.config import Settings
from docanalysis.errors import (
    ConfigurationError,
    DimensionMismatchError,
    EmbeddingError,
    InvalidInputError,
)

logger = logging.getLogger(__name__)


class Embedder:
    """
    Async embedding generator over the OpenAI embeddings API.

    A pre-built client may be injected (tests, custom transports); otherwise
    one is created from the settings credential.
    """

    # ============================================================
    # INITIALIZATION
    # ============================================================

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):

        self._settings = settings
        self._model = settings.embedding_model
        self._dimension = settings.resolved_embedding_dimension()
        self._batch_size = settings.embedding_batch_size
        self._max_chars = settings.embedding_max_chars

        if self._batch_size <= 0:
            raise ConfigurationError(
                f"Invalid embedding batch size: {self._batch_size}"
            )

        if client is None:

            if not settings.openai_api_key:
                raise ConfigurationError(
                    "OPENAI_API_KEY is not set. Embeddings cannot be generated."
                )

            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.embedding_timeout_seconds,
            )

        self._client = client

        logger.info(
            "Embedding client initialized",
            extra={
                "model": self._model,
                "dimension": self._dimension,
                "batch_size": self._batch_size,
            },
        )

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def embed(self, text: str) -> np.ndarray:
        """
        Embed one text. Returns a 1-D vector.
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed many texts; row i of the result belongs to texts[i].

        Requests are issued sequentially, `batch_size` inputs at a time.
        """

        if isinstance(texts, str):
            raise InvalidInputError("embed_batch expects a sequence of texts")

        texts = list(texts)

        if not texts:
            return np.empty((0, self._dimension), dtype="float32")

        for position, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInputError(
                    f"Cannot embed empty text (position {position})"
                )

        prepared = [text[: self._max_chars] for text in texts]

        truncated = sum(1 for text in texts if len(text) > self._max_chars)

        total = len(prepared)

        logger.info(
            "Embedding started",
            extra={
                "texts": total,
                "batch_size": self._batch_size,
                "truncated": truncated,
            },
        )

        all_embeddings: List[np.ndarray] = []
        usage_tokens = 0

        # ====================================================
        # BATCH PROCESSING LOOP
        # ====================================================

        for start in range(0, total, self._batch_size):

            batch = prepared[start:start + self._batch_size]

            batch_embeddings, tokens = await self._request(batch, start)

            all_embeddings.append(batch_embeddings)
            usage_tokens += tokens

        embeddings = np.vstack(all_embeddings)

        logger.info(
            "Embedding completed",
            extra={
                "texts": total,
                "dimension": self._dimension,
                "usage_tokens": usage_tokens,
            },
        )

        return embeddings

    # ============================================================
    # INTERNALS
    # ============================================================

    async def _request(self, batch: List[str], offset: int):

        kwargs = {"model": self._model, "input": batch}

        if self._settings.embedding_dimension and self._model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self._settings.embedding_dimension

        try:

            response = await self._client.embeddings.create(**kwargs)

        except OpenAIError as e:

            logger.error(
                "Embedding request failed",
                extra={
                    "batch_offset": offset,
                    "batch_size": len(batch),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

            raise EmbeddingError(f"Embedding request failed: {e}") from e

        data = sorted(response.data, key=lambda item: item.index)

        if len(data) != len(batch):
            raise EmbeddingError(
                f"Embedding response returned {len(data)} vectors "
                f"for {len(batch)} inputs"
            )

        vectors = np.array([item.embedding for item in data], dtype="float32")

        if vectors.ndim != 2 or vectors.shape[1] != self._dimension:
            actual = vectors.shape[-1] if vectors.ndim == 2 else 0
            raise DimensionMismatchError(self._dimension, actual)

        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) or 0

        return self._normalize(vectors), tokens

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:

        norms = np.linalg.norm(vectors, axis=1, keepdims=True)

        return vectors / np.clip(norms, 1e-10, None)

    # ============================================================
    # ACCESSORS
    # ============================================================

    def get_dimension(self) -> int:
        """
        Required by VectorStore initialization.
        """
        return self._dimension

    def health_check(self) -> dict:

        return {
            "model": self._model,
            "dimension": self._dimension,
            "provider": "openai",
            "status": "healthy",
        }

    async def close(self):

        close = getattr(self._client, "close", None)

        if close is not None:
            await close()
