# docanalysis/workflow/indexing.py

"""
Document indexing: chunker → embedder → vector_store.

State machine per document: pending → processing → completed | failed.
A document never stays in `processing` after this module returns, times
out, or is cancelled.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from docanalysis.config import Settings
from docanalysis.errors import FATAL_ERRORS
from docanalysis.memory.chunker import chunk_text, estimate_tokens
from docanalysis.memory.extractors import ExtractorRegistry
from docanalysis.models import (
    ChunkInput,
    Document,
    ExtractionResult,
    ProcessingStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


NO_CHUNKS_REASON = "no chunks produced"


@dataclass
class IndexingResult:
    document_id: str
    status: ProcessingStatus
    chunks_created: int = 0
    has_extracted_content: bool = False
    error: Optional[str] = None


class IndexingPipeline:
    """
    Indexes one document at a time per document id.

    Index, re-index and delete of the same document are serialized with a
    per-document lock; different documents run independently.
    """

    def __init__(
        self,
        settings: Settings,
        embedder,
        store,
        repository,
        extractors: Optional[ExtractorRegistry] = None,
    ):
        self._settings = settings
        self._embedder = embedder
        self._store = store
        self._repository = repository
        self._extractors = extractors or ExtractorRegistry(
            max_characters=settings.max_document_characters
        )
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _document_lock(self, document_id: str):
        """
        Hold the document's lock; the lock is dropped once nobody holds
        or waits on it.
        """

        lock = self._locks.get(document_id)

        if lock is None:
            lock = asyncio.Lock()
            self._locks[document_id] = lock

        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if self._lock_users[document_id] == 0:
                del self._lock_users[document_id]
                del self._locks[document_id]

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def index_document(
        self,
        document_id: str,
        content: Union[str, ExtractionResult],
    ) -> IndexingResult:

        async with self._document_lock(document_id):
            return await self._index_locked(document_id, content)

    async def reindex(
        self,
        document_id: str,
        text: Union[str, ExtractionResult],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IndexingResult:
        """
        Delete every chunk of the document, then run the pipeline again.
        """

        async with self._document_lock(document_id):

            document = await self._repository.get_document(document_id)

            if metadata:
                await self._repository.update_document(
                    document_id,
                    metadata={**document.metadata, **metadata},
                )

            deleted = await self._store.delete_chunks(document_id)

            logger.info(
                "Re-indexing document",
                extra={"document_id": document_id, "chunks_deleted": deleted},
            )

            return await self._index_locked(document_id, text)

    async def ingest(self, document_id: str, data: bytes) -> IndexingResult:
        """
        Extract text from raw file bytes, then index it.
        """

        document = await self._repository.get_document(document_id)

        extraction = await asyncio.to_thread(
            self._extractors.extract,
            data,
            document.file_type,
            document.filename,
            document.description,
        )

        return await self.index_document(document_id, extraction)

    async def delete_document(self, document_id: str) -> int:

        async with self._document_lock(document_id):

            deleted = await self._store.delete_chunks(document_id)

            await self._repository.delete_document(document_id)

        logger.info(
            "Document deleted",
            extra={"document_id": document_id, "chunks_deleted": deleted},
        )

        return deleted

    async def index_many(
        self,
        items: Sequence[Tuple[str, Union[str, ExtractionResult]]],
        concurrency: Optional[int] = None,
    ) -> List[IndexingResult]:
        """
        Index several documents with a bounded worker pool.

        Results follow input order.
        """

        semaphore = asyncio.Semaphore(concurrency or self._settings.indexing_concurrency)

        async def worker(document_id, content):
            async with semaphore:
                return await self.index_document(document_id, content)

        return list(
            await asyncio.gather(*(worker(document_id, content) for document_id, content in items))
        )

    # ============================================================
    # PIPELINE
    # ============================================================

    async def _index_locked(
        self,
        document_id: str,
        content: Union[str, ExtractionResult],
    ) -> IndexingResult:

        document = await self._repository.get_document(document_id)

        extraction = (
            content
            if isinstance(content, ExtractionResult)
            else ExtractionResult(text=content or "")
        )

        await self._repository.update_document(
            document_id,
            processing_status=ProcessingStatus.processing,
            processing_error=None,
        )

        start_time = time.time()

        try:

            result = await asyncio.wait_for(
                self._run(document, extraction),
                timeout=self._settings.indexing_timeout_seconds,
            )

        except asyncio.TimeoutError:

            return await self._fail(
                document,
                f"indexing timed out after {self._settings.indexing_timeout_seconds}s",
            )

        except asyncio.CancelledError:

            await self._fail(document, "indexing cancelled")
            raise

        except FATAL_ERRORS as e:

            await self._fail(document, f"{type(e).__name__}: {e}")
            raise

        except Exception as e:

            logger.error(
                "Document indexing failed",
                extra={
                    "document_id": document_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )

            return await self._fail(document, f"{type(e).__name__}: {e}")

        logger.info(
            "Document indexing finished",
            extra={
                "document_id": document_id,
                "status": result.status.value,
                "chunks": result.chunks_created,
                "latency_seconds": round(time.time() - start_time, 3),
            },
        )

        return result

    async def _run(self, document: Document, extraction: ExtractionResult) -> IndexingResult:

        if extraction.degraded and extraction.error:
            return await self._fail(document, f"extraction failed: {extraction.error}")

        text = (extraction.text or "").strip()

        if extraction.degraded or len(text) < self._settings.min_index_chars:
            return await self._complete_without_chunks(document, extraction)

        # indices are fixed here, before any embedding call
        chunks = chunk_text(
            text,
            max_tokens=self._settings.chunk_max_tokens,
            overlap_tokens=self._settings.chunk_overlap_tokens,
            chars_per_token=self._settings.chars_per_token,
            min_chunk_chars=self._settings.min_chunk_chars,
        )

        if not chunks:
            return await self._fail(document, NO_CHUNKS_REASON)

        vectors = await self._embedder.embed_batch(chunks)

        inputs = [
            ChunkInput(
                text=chunk,
                index=index,
                vector=vectors[index].tolist(),
                metadata={
                    "token_count": estimate_tokens(chunk, self._settings.chars_per_token),
                    "char_length": len(chunk),
                    "chunk_index": index,
                },
            )
            for index, chunk in enumerate(chunks)
        ]

        stored = await self._store.upsert_chunks(
            document.id,
            document.project_id,
            inputs,
        )

        await self._repository.update_document(
            document.id,
            extracted_text=text,
            has_extracted_content=True,
            processing_status=ProcessingStatus.completed,
            processing_error=None,
            processed_at=utcnow(),
            metadata={**document.metadata, "chunk_count": stored},
        )

        return IndexingResult(
            document_id=document.id,
            status=ProcessingStatus.completed,
            chunks_created=stored,
            has_extracted_content=True,
        )

    async def _complete_without_chunks(
        self,
        document: Document,
        extraction: ExtractionResult,
    ) -> IndexingResult:
        """
        Nothing worth embedding: completed, no chunks, description only.
        """

        await self._store.delete_chunks(document.id)

        await self._repository.update_document(
            document.id,
            extracted_text=document.description or "",
            has_extracted_content=False,
            processing_status=ProcessingStatus.completed,
            processing_error=None,
            processed_at=utcnow(),
            metadata={
                **document.metadata,
                "chunk_count": 0,
                "extraction_source": extraction.source,
            },
        )

        logger.info(
            "Document completed without chunks",
            extra={
                "document_id": document.id,
                "text_length": len(extraction.text or ""),
                "degraded": extraction.degraded,
            },
        )

        return IndexingResult(
            document_id=document.id,
            status=ProcessingStatus.completed,
        )

    async def _fail(self, document: Document, reason: str) -> IndexingResult:
        """
        Mark failed, keeping any human-entered description as a stand-in.
        """

        current = await self._repository.get_document(document.id)

        await self._repository.update_document(
            document.id,
            processing_status=ProcessingStatus.failed,
            processing_error=reason,
            extracted_text=current.extracted_text or document.description or "",
        )

        logger.warning(
            "Document marked failed",
            extra={"document_id": document.id, "reason": reason},
        )

        return IndexingResult(
            document_id=document.id,
            status=ProcessingStatus.failed,
            has_extracted_content=current.has_extracted_content,
            error=reason,
        )
