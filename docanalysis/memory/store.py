# docanalysis/memory/store.py

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np

from docanalysis.config import Settings
from docanalysis.errors import (
    ConfigurationError,
    DimensionMismatchError,
    InvalidInputError,
    ScopeError,
)
from docanalysis.models import ChunkInput, ChunkRecord, SearchMatch, SearchScope

logger = logging.getLogger(__name__)


def chunk_id(document_id: str, index: int) -> str:
    """
    Stable chunk identifier, shared by every backend.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"chunk:{document_id}:{index}"))


def rank_key(match: SearchMatch):
    """
    Similarity descending, then lower chunk index, then lower document id.
    """
    return (-match.similarity, match.chunk.chunk_index, match.chunk.document_id)


def validate_chunks(chunks: Sequence[ChunkInput], dim: int) -> List[ChunkInput]:
    """
    Chunks ordered by index; indices must be contiguous from 0.
    """

    ordered = sorted(chunks, key=lambda c: c.index)

    for position, chunk in enumerate(ordered):

        if chunk.index != position:
            raise InvalidInputError(
                f"Chunk indices must be contiguous from 0 (missing index {position})"
            )

        if len(chunk.vector) != dim:
            raise DimensionMismatchError(dim, len(chunk.vector))

    return ordered


def validate_scope(scope: SearchScope):

    if not scope.project_id or not scope.project_id.strip():
        raise ScopeError("Similarity search requires a project scope")


class VectorStore(Protocol):
    """
    Storage contract for chunk vectors.

    `upsert_chunks` replaces every chunk of a document as one unit;
    `search` is always scoped to a project.
    """

    async def upsert_chunks(
        self,
        document_id: str,
        project_id: str,
        chunks: Sequence[ChunkInput],
    ) -> int: ...

    async def delete_chunks(self, document_id: str) -> int: ...

    async def search(
        self,
        query_vector,
        scope: SearchScope,
        k: int,
        min_similarity: float,
    ) -> List[SearchMatch]: ...

    async def count(self, document_id: Optional[str] = None) -> int: ...

    async def get_stats(self) -> dict: ...


@dataclass
class _Partition:
    project_id: str
    records: List[ChunkRecord]
    matrix: np.ndarray


class InMemoryVectorStore:
    """
    Exact cosine search over numpy matrices, one partition per document.

    A document's partition is swapped with a single assignment, so a
    search never sees a half-replaced document.
    """

    def __init__(self, dim: int):

        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")

        self._dim = dim
        self._partitions: Dict[str, _Partition] = {}

        logger.info(
            "In-memory vector store initialized",
            extra={"dimension": dim},
        )

    # ============================================================
    # HELPERS
    # ============================================================

    def _normalize(self, vectors: np.ndarray) -> np.ndarray:

        norms = np.linalg.norm(vectors, axis=1, keepdims=True)

        return vectors / np.clip(norms, 1e-10, None)

    def _ensure_query(self, query_vector) -> Optional[np.ndarray]:

        query = np.asarray(query_vector, dtype="float32").reshape(-1)

        if query.shape[0] != self._dim:
            raise DimensionMismatchError(self._dim, query.shape[0])

        norm = np.linalg.norm(query)

        if norm == 0:
            return None

        return query / norm

    # ============================================================
    # WRITE
    # ============================================================

    async def upsert_chunks(
        self,
        document_id: str,
        project_id: str,
        chunks: Sequence[ChunkInput],
    ) -> int:

        if not project_id:
            raise ScopeError(f"Document {document_id} has no project scope")

        ordered = validate_chunks(chunks, self._dim)

        if not ordered:
            await self.delete_chunks(document_id)
            return 0

        records = [
            ChunkRecord(
                id=chunk_id(document_id, chunk.index),
                document_id=document_id,
                project_id=project_id,
                text=chunk.text,
                chunk_index=chunk.index,
                metadata=dict(chunk.metadata),
            )
            for chunk in ordered
        ]

        matrix = self._normalize(
            np.array([chunk.vector for chunk in ordered], dtype="float32")
        )

        replaced = len(self._partitions[document_id].records) if document_id in self._partitions else 0

        self._partitions[document_id] = _Partition(
            project_id=project_id,
            records=records,
            matrix=matrix,
        )

        logger.info(
            "Chunks stored",
            extra={
                "document_id": document_id,
                "project_id": project_id,
                "chunks": len(records),
                "replaced": replaced,
            },
        )

        return len(records)

    async def delete_chunks(self, document_id: str) -> int:

        partition = self._partitions.pop(document_id, None)

        if partition is None:
            return 0

        logger.info(
            "Chunks deleted",
            extra={
                "document_id": document_id,
                "chunks": len(partition.records),
            },
        )

        return len(partition.records)

    # ============================================================
    # READ
    # ============================================================

    async def search(
        self,
        query_vector,
        scope: SearchScope,
        k: int,
        min_similarity: float,
    ) -> List[SearchMatch]:

        validate_scope(scope)

        if k <= 0:
            return []

        query = self._ensure_query(query_vector)

        if query is None:
            return []

        allowed = set(scope.document_ids) if scope.document_ids is not None else None

        matches: List[SearchMatch] = []

        for document_id, partition in list(self._partitions.items()):

            if partition.project_id != scope.project_id:
                continue

            if allowed is not None and document_id not in allowed:
                continue

            similarities = np.clip(partition.matrix @ query, -1.0, 1.0)

            for record, similarity in zip(partition.records, similarities):

                similarity = float(similarity)

                if similarity >= min_similarity:
                    matches.append(SearchMatch(chunk=record, similarity=similarity))

        matches.sort(key=rank_key)

        return matches[:k]

    async def count(self, document_id: Optional[str] = None) -> int:

        if document_id is not None:
            partition = self._partitions.get(document_id)
            return len(partition.records) if partition else 0

        return sum(len(p.records) for p in self._partitions.values())

    async def get_chunks(self, document_id: str) -> List[ChunkRecord]:

        partition = self._partitions.get(document_id)

        return list(partition.records) if partition else []

    async def get_stats(self) -> dict:

        return {
            "backend": "memory",
            "dimension": self._dim,
            "total_chunks": await self.count(),
            "documents": {
                document_id: len(partition.records)
                for document_id, partition in self._partitions.items()
            },
        }

    async def close(self):
        return None


def create_vector_store(settings: Settings, dim: int):
    """
    Build the configured backend.
    """

    backend = settings.vector_backend.lower()

    if backend == "memory":
        return InMemoryVectorStore(dim)

    if backend == "qdrant":

        from qdrant_client import AsyncQdrantClient

        from docanalysis.memory.qdrant_client import QdrantVectorStore

        if settings.qdrant_url:
            client = AsyncQdrantClient(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                timeout=60,
            )
        else:
            client = AsyncQdrantClient(location=":memory:")

        return QdrantVectorStore(
            dim=dim,
            client=client,
            collection=settings.qdrant_collection,
        )

    raise ConfigurationError(f"Unknown vector backend: {settings.vector_backend}")
