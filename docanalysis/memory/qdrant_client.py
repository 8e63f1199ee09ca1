# docanalysis/memory/qdrant_client.py

import logging
from typing import List, Optional, Sequence

import numpy as np
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from docanalysis.config import QDRANT_COLLECTION
from docanalysis.errors import DimensionMismatchError, ScopeError
from docanalysis.memory.store import chunk_id, rank_key, validate_chunks, validate_scope
from docanalysis.models import ChunkInput, ChunkRecord, SearchMatch, SearchScope

logger = logging.getLogger(__name__)


class QdrantVectorStore:
    """
    Qdrant-backed chunk store.

    Project and document filters are evaluated by Qdrant. Replacement is
    delete-by-filter followed by upsert; Qdrant offers no transaction
    across the two, so callers serialize writes per document.
    """

    def __init__(
        self,
        dim: int,
        client: AsyncQdrantClient,
        collection: str = QDRANT_COLLECTION,
    ):

        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")

        self._dim = dim
        self._client = client
        self._collection = collection
        self._ready = False

    # ============================================================
    # COLLECTION SETUP
    # ============================================================

    async def _ensure_collection(self):
        """
        Ensures collection exists AND required payload indexes exist.
        """

        if self._ready:
            return

        if not await self._client.collection_exists(self._collection):

            await self._client.create_collection(
                collection_name=self._collection,
                vectors_config=VectorParams(
                    size=self._dim,
                    distance=Distance.COSINE,
                ),
            )

            logger.info(
                "Qdrant collection created",
                extra={"collection": self._collection, "dimension": self._dim},
            )

        else:

            info = await self._client.get_collection(self._collection)
            size = info.config.params.vectors.size

            if size != self._dim:
                raise DimensionMismatchError(self._dim, size)

        for field_name in ("document_id", "project_id"):

            await self._client.create_payload_index(
                collection_name=self._collection,
                field_name=field_name,
                field_schema=PayloadSchemaType.KEYWORD,
            )

        self._ready = True

    def _document_filter(self, document_id: str) -> Filter:

        return Filter(
            must=[
                FieldCondition(key="document_id", match=MatchValue(value=document_id))
            ]
        )

    def _scope_filter(self, scope: SearchScope) -> Filter:

        must = [
            FieldCondition(key="project_id", match=MatchValue(value=scope.project_id))
        ]

        if scope.document_ids is not None:
            must.append(
                FieldCondition(key="document_id", match=MatchAny(any=list(scope.document_ids)))
            )

        return Filter(must=must)

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

        await self._ensure_collection()

        await self.delete_chunks(document_id)

        if not ordered:
            return 0

        points = [
            PointStruct(
                id=chunk_id(document_id, chunk.index),
                vector=[float(v) for v in chunk.vector],
                payload={
                    "document_id": document_id,
                    "project_id": project_id,
                    "text": chunk.text,
                    "chunk_index": chunk.index,
                    "metadata": dict(chunk.metadata),
                },
            )
            for chunk in ordered
        ]

        await self._client.upsert(
            collection_name=self._collection,
            points=points,
            wait=True,
        )

        logger.info(
            "Chunks stored in Qdrant",
            extra={
                "document_id": document_id,
                "project_id": project_id,
                "chunks": len(points),
            },
        )

        return len(points)

    async def delete_chunks(self, document_id: str) -> int:

        await self._ensure_collection()

        existing = await self.count(document_id)

        if existing == 0:
            return 0

        await self._client.delete(
            collection_name=self._collection,
            points_selector=FilterSelector(filter=self._document_filter(document_id)),
            wait=True,
        )

        logger.info(
            "Deleted vectors from Qdrant",
            extra={"document_id": document_id, "chunks": existing},
        )

        return existing

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

        if k <= 0 or scope.document_ids == []:
            return []

        query = np.asarray(query_vector, dtype="float32").reshape(-1)

        if query.shape[0] != self._dim:
            raise DimensionMismatchError(self._dim, query.shape[0])

        if not np.any(query):
            return []

        await self._ensure_collection()

        response = await self._client.query_points(
            collection_name=self._collection,
            query=query.tolist(),
            query_filter=self._scope_filter(scope),
            limit=k,
            score_threshold=min_similarity,
            with_payload=True,
        )

        matches = []

        for point in response.points:

            payload = point.payload or {}

            similarity = float(point.score)

            # Qdrant applies the threshold; re-checked for float rounding
            if similarity < min_similarity:
                continue

            matches.append(
                SearchMatch(
                    chunk=ChunkRecord(
                        id=str(point.id),
                        document_id=payload.get("document_id"),
                        project_id=payload.get("project_id"),
                        text=payload.get("text", ""),
                        chunk_index=payload.get("chunk_index", 0),
                        metadata=payload.get("metadata") or {},
                    ),
                    similarity=similarity,
                )
            )

        matches.sort(key=rank_key)

        return matches[:k]

    async def count(self, document_id: Optional[str] = None) -> int:

        await self._ensure_collection()

        result = await self._client.count(
            collection_name=self._collection,
            count_filter=self._document_filter(document_id) if document_id else None,
            exact=True,
        )

        return result.count

    async def get_stats(self) -> dict:

        return {
            "backend": "qdrant",
            "collection": self._collection,
            "dimension": self._dim,
            "total_chunks": await self.count(),
        }

    async def health_check(self):

        return await self._client.get_collections()

    async def close(self):

        await self._client.close()
