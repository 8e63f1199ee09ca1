# tests/conftest.py
import hashlib
import json
from types import SimpleNamespace

import httpx
import numpy as np
import openai
import pytest
import pytest_asyncio

from docanalysis.config import Settings
from docanalysis.memory.embedder import Embedder
from docanalysis.memory.retriever import ContextAssembler
from docanalysis.memory.store import InMemoryVectorStore
from docanalysis.models import Document, Project, ProjectType
from docanalysis.repository import InMemoryRepository
from docanalysis.workflow.indexing import IndexingPipeline


TEST_DIMENSION = 32

# Dimensions reserved for pinned keywords; hash vectors are zero there
PINNED_DIMENSIONS = 4


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/test")
    )


class FakeEmbeddingsAPI:
    """
    Deterministic stand-in for `client.embeddings`.

    Each text maps to a vector derived from its sha256. A text containing
    a pinned keyword maps to that keyword's basis vector instead, so
    tests can arrange exact similarities.
    """

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.dimension = dimension
        self.pinned = {}
        self.calls = []
        self.fail = False
        self.returned_dimension = None

    def pin(self, keyword: str, axis: int):
        assert axis < PINNED_DIMENSIONS
        self.pinned[keyword.lower()] = axis

    def vector_for(self, text: str) -> np.ndarray:

        lowered = text.lower()

        for keyword, axis in self.pinned.items():
            if keyword in lowered:
                vector = np.zeros(self.dimension)
                vector[axis] = 1.0
                return vector

        seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:16], 16)
        vector = np.random.default_rng(seed).standard_normal(self.dimension)
        vector[:PINNED_DIMENSIONS] = 0.0

        return vector

    async def create(self, model, input, **kwargs):

        self.calls.append(list(input))

        if self.fail:
            raise connection_error()

        data = [
            SimpleNamespace(
                index=i,
                embedding=(
                    [0.1] * self.returned_dimension
                    if self.returned_dimension
                    else self.vector_for(text).tolist()
                ),
            )
            for i, text in enumerate(input)
        ]

        # upstream does not promise ordering
        data.reverse()

        return SimpleNamespace(
            data=data,
            usage=SimpleNamespace(total_tokens=sum(len(t) // 4 for t in input)),
        )


class FakeChatCompletionsAPI:
    """
    Stand-in for `client.chat.completions`.

    `content` is returned verbatim; `error` is raised instead when set.
    """

    def __init__(self):
        self.content = None
        self.error = None
        self.calls = []

    async def create(self, **kwargs):

        self.calls.append(kwargs)

        if self.error is not None:
            raise self.error

        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))]
        )


class FakeOpenAI:

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.embeddings = FakeEmbeddingsAPI(dimension)
        self.chat = SimpleNamespace(completions=FakeChatCompletionsAPI())
        self.closed = False

    async def close(self):
        self.closed = True


def ai_report_json(document_id: str) -> str:
    """
    Well-formed completion output in the report JSON contract.
    """
    return json.dumps(
        {
            "executive_summary": "Resumen del contrato de servicios.",
            "document_analysis": [
                {
                    "title": "Contrato principal",
                    "content": "El contrato fija el monto total.",
                    "document_ids": [document_id],
                }
            ],
            "key_findings": [
                {
                    "title": "Monto elevado",
                    "description": "El monto supera el presupuesto.",
                    "severity": "Alta",
                    "document_ids": [document_id],
                }
            ],
            "conclusions": "El contrato requiere revisión.",
            "recommendations": [
                {
                    "title": "Renegociar",
                    "description": "Renegociar el monto.",
                    "priority": "crítica",
                    "actionable_steps": ["Convocar reunión", "Revisar cláusulas"],
                }
            ],
        },
        ensure_ascii=False,
    )


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        embedding_dimension=TEST_DIMENSION,
        vector_backend="memory",
        posthog_api_key=None,
        ai_enabled=True,
        indexing_timeout_seconds=5,
        report_timeout_seconds=5,
    )


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def embedder(settings, fake_openai):
    return Embedder(settings, client=fake_openai)


@pytest.fixture
def store():
    return InMemoryVectorStore(TEST_DIMENSION)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def pipeline(settings, embedder, store, repository):
    return IndexingPipeline(settings, embedder, store, repository)


@pytest.fixture
def assembler(settings, embedder, store, repository):
    return ContextAssembler(embedder, store, repository=repository, settings=settings)


@pytest_asyncio.fixture
async def project(repository):
    project = Project(
        name="Auditoría 2024",
        description="Revisión de contratos de proveedores",
        type=ProjectType.legal,
    )
    await repository.save_project(project)
    return project


@pytest.fixture
def make_document(repository):
    """
    Save a document and return it.
    """

    async def _make(project_id: str, filename: str = "contrato.pdf", **fields) -> Document:
        document = Document(project_id=project_id, filename=filename, **fields)
        await repository.save_document(document)
        return document

    return _make


@pytest.fixture
def long_text():
    """
    Spanish prose in several paragraphs, long enough to produce
    multiple chunks with small chunk settings.
    """
    paragraphs = [
        (
            f"Sección {i}. El proveedor número {i} entregará los materiales en el plazo "
            f"acordado. Las penalizaciones por retraso se calculan sobre el valor total. "
            f"La supervisión técnica revisará cada entrega parcial del lote {i}."
        )
        for i in range(1, 13)
    ]
    return "\n\n".join(paragraphs)
