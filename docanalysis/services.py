# docanalysis/services.py

"""
Service wiring.

Architecture contract:
extractors → chunker → embedder → vector_store
assembler → synthesizer

One Services instance per process. Built on first use, so a missing
OPENAI_API_KEY fails the first request instead of the import.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from docanalysis.config import Settings, get_settings
from docanalysis.llm.client import CompletionClient
from docanalysis.memory.embedder import Embedder
from docanalysis.memory.retriever import ContextAssembler
from docanalysis.memory.store import create_vector_store
from docanalysis.observability.posthog_client import PostHogClient
from docanalysis.repository import InMemoryRepository
from docanalysis.workflow.indexing import IndexingPipeline
from docanalysis.workflow.report_synthesis import ReportSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    repository: InMemoryRepository
    embedder: Embedder
    store: object
    pipeline: IndexingPipeline
    assembler: ContextAssembler
    synthesizer: ReportSynthesizer
    completion_client: Optional[CompletionClient] = None

    async def close(self):

        await self.embedder.close()

        if self.completion_client is not None:
            await self.completion_client.close()

        await self.store.close()


def build_services(settings: Settings, openai_client=None) -> Services:
    """
    Assemble every service from settings.

    `openai_client` replaces the AsyncOpenAI client for both embeddings
    and completions.
    """

    embedder = Embedder(settings, client=openai_client)

    store = create_vector_store(settings, embedder.get_dimension())

    repository = InMemoryRepository()

    completion_client = (
        CompletionClient(settings, client=openai_client)
        if settings.ai_enabled
        else None
    )

    assembler = ContextAssembler(embedder, store, repository=repository, settings=settings)

    services = Services(
        settings=settings,
        repository=repository,
        embedder=embedder,
        store=store,
        pipeline=IndexingPipeline(settings, embedder, store, repository),
        assembler=assembler,
        synthesizer=ReportSynthesizer(settings, assembler, completion_client),
        completion_client=completion_client,
    )

    logger.info(
        "Services initialized",
        extra={
            "vector_backend": settings.vector_backend,
            "embedding_model": settings.embedding_model,
            "ai_enabled": completion_client is not None,
        },
    )

    return services


_services: Optional[Services] = None


def get_services() -> Services:
    """
    FastAPI dependency; override in tests via app.dependency_overrides.
    """

    global _services

    if _services is None:
        _services = build_services(get_settings())

    return _services


async def shutdown_services():

    global _services

    if _services is not None:
        await _services.close()
        _services = None


@lru_cache
def get_posthog() -> PostHogClient:
    return PostHogClient(get_settings())
