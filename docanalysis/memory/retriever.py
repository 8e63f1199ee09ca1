# docanalysis/memory/retriever.py

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from docanalysis.config import Settings
from docanalysis.errors import ScopeError
from docanalysis.models import Document, SearchMatch, SearchScope

logger = logging.getLogger(__name__)


DOCUMENT_DELIMITER = "\n\n======\n\n"
CHUNK_DELIMITER = "\n---\n"


async def retrieve(
    query: str,
    embedder,
    store,
    scope: SearchScope,
    top_k: int,
    min_similarity: float,
) -> List[SearchMatch]:
    """
    Retrieve top-k chunks in scope whose similarity clears the threshold.

    Args:
        query: User query or synthesis query
        embedder: Embedder instance to generate the query embedding
        store: VectorStore instance to search
        scope: Project (and optional document subset) to search in
        top_k: Maximum number of results
        min_similarity: Cosine similarity floor

    Returns:
        Matches ordered by similarity, highest first
    """
    if not query or not query.strip():
        return []

    query_embedding = await embedder.embed(query.strip())

    return await store.search(
        query_embedding,
        scope=scope,
        k=top_k,
        min_similarity=min_similarity,
    )


def group_by_document(matches: List[SearchMatch]) -> List[Tuple[str, List[SearchMatch]]]:
    """
    Documents ranked by their best chunk; chunks in reading order.
    """

    groups: Dict[str, List[SearchMatch]] = OrderedDict()

    for match in matches:
        groups.setdefault(match.chunk.document_id, []).append(match)

    ranked = sorted(
        groups.items(),
        key=lambda item: (-max(m.similarity for m in item[1]), item[0]),
    )

    return [
        (document_id, sorted(group, key=lambda m: m.chunk.chunk_index))
        for document_id, group in ranked
    ]


def render_context(
    matches: List[SearchMatch],
    document_names: Optional[Dict[str, str]] = None,
) -> str:
    """
    Render matches as one prompt-ready string.

    Only filenames, fragment positions and similarity scores appear;
    chunk and document identifiers are never written out.
    """

    if not matches:
        return ""

    document_names = document_names or {}

    blocks = []

    for position, (document_id, group) in enumerate(group_by_document(matches), 1):

        name = document_names.get(document_id) or f"Documento {position}"

        fragments = CHUNK_DELIMITER.join(
            f"[Fragmento {m.chunk.chunk_index + 1} | Similitud: {m.similarity:.2f}]\n{m.chunk.text}"
            for m in group
        )

        blocks.append(f"=== Documento: {name} ===\n{fragments}")

    return DOCUMENT_DELIMITER.join(blocks)


class ContextAssembler:
    """
    Turns a query into a bounded, provenance-labelled context string.
    """

    def __init__(self, embedder, store, repository=None, settings: Optional[Settings] = None):

        self._embedder = embedder
        self._store = store
        self._repository = repository
        self._settings = settings or Settings()

    async def _check_scope(self, scope: SearchScope):

        if not scope.project_id:
            raise ScopeError("Similarity search requires a project scope")

        if self._repository is not None and not await self._repository.has_project(scope.project_id):
            raise ScopeError(f"Unknown project scope: {scope.project_id}")

    async def _document_names(self, matches: List[SearchMatch]) -> Dict[str, str]:

        if self._repository is None or not matches:
            return {}

        document_ids = sorted({m.chunk.document_id for m in matches})

        return await self._repository.document_names(document_ids)

    async def get_matches(
        self,
        query: str,
        scope: SearchScope,
        max_chunks: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[SearchMatch]:
        """
        Scope-checked retrieval with the context defaults applied.
        """

        await self._check_scope(scope)

        if max_chunks is None:
            max_chunks = self._settings.context_max_chunks

        if min_similarity is None:
            min_similarity = self._settings.context_similarity_threshold

        matches = await retrieve(
            query,
            self._embedder,
            self._store,
            scope=scope,
            top_k=max_chunks,
            min_similarity=min_similarity,
        )

        logger.info(
            "Context retrieval completed",
            extra={
                "project_id": scope.project_id,
                "chunks_retrieved": len(matches),
                "top_score": matches[0].similarity if matches else None,
                "min_similarity": min_similarity,
            },
        )

        return matches

    async def get_context(
        self,
        query: str,
        scope: SearchScope,
        max_chunks: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> str:
        """
        Returns "" when nothing clears the threshold; callers fall back to
        the non-RAG path.
        """

        matches = await self.get_matches(query, scope, max_chunks, min_similarity)

        if not matches:
            return ""

        return render_context(matches, await self._document_names(matches))

    async def search(
        self,
        query: str,
        scope: SearchScope,
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[Tuple[SearchMatch, Optional[Document]]]:
        """
        Interactive semantic search: matches joined with their documents.
        """

        await self._check_scope(scope)

        if limit is None:
            limit = self._settings.search_max_results

        if min_similarity is None:
            min_similarity = self._settings.search_similarity_threshold

        matches = await retrieve(
            query,
            self._embedder,
            self._store,
            scope=scope,
            top_k=limit,
            min_similarity=min_similarity,
        )

        documents: Dict[str, Document] = {}

        if self._repository is not None:
            for document_id in {m.chunk.document_id for m in matches}:
                try:
                    documents[document_id] = await self._repository.get_document(document_id)
                except KeyError:
                    logger.warning(
                        "Search hit for unknown document",
                        extra={"document_id": document_id},
                    )

        return [(m, documents.get(m.chunk.document_id)) for m in matches]
