# tests/test_retriever.py
import pytest

from docanalysis.errors import ScopeError
from docanalysis.memory.retriever import (
    DOCUMENT_DELIMITER,
    group_by_document,
    render_context,
)
from docanalysis.models import ChunkRecord, SearchMatch, SearchScope


def match(document_id, index, similarity, text=None):
    return SearchMatch(
        chunk=ChunkRecord(
            id=f"{document_id}-{index}",
            document_id=document_id,
            project_id="proj-1",
            text=text or f"texto {document_id} {index}",
            chunk_index=index,
        ),
        similarity=similarity,
    )


class TestGroupByDocument:

    def test_documents_ranked_by_best_chunk(self):
        matches = [
            match("doc-b", 3, 0.9),
            match("doc-a", 0, 0.8),
            match("doc-b", 1, 0.7),
        ]

        grouped = group_by_document(matches)

        assert [document_id for document_id, _ in grouped] == ["doc-b", "doc-a"]
        assert [m.chunk.chunk_index for m in grouped[0][1]] == [1, 3]


class TestRenderContext:

    def test_empty_matches_render_empty_string(self):
        assert render_context([]) == ""

    def test_labels_use_filenames_not_ids(self):
        matches = [match("doc-a", 0, 0.87, "El monto es 250.000 euros.")]

        context = render_context(matches, {"doc-a": "contrato.pdf"})

        assert "=== Documento: contrato.pdf ===" in context
        assert "[Fragmento 1 | Similitud: 0.87]" in context
        assert "El monto es 250.000 euros." in context
        assert "doc-a" not in context

    def test_unknown_document_gets_positional_label(self):
        context = render_context([match("doc-a", 0, 0.8, "Plazo de ejecución de seis meses.")])

        assert "Documento 1" in context
        assert "doc-a" not in context

    def test_documents_separated_by_delimiter(self):
        matches = [match("doc-a", 0, 0.9), match("doc-b", 0, 0.8)]

        context = render_context(matches, {"doc-a": "a.pdf", "doc-b": "b.pdf"})

        assert len(context.split(DOCUMENT_DELIMITER)) == 2


class TestContextAssembler:

    @pytest.mark.asyncio
    async def test_no_match_gives_empty_context(self, assembler, pipeline, project, make_document, long_text):
        document = await make_document(project.id)
        await pipeline.index_document(document.id, long_text)

        context = await assembler.get_context(
            "tema sin relación", SearchScope(project_id=project.id), min_similarity=0.99
        )

        assert context == ""

    @pytest.mark.asyncio
    async def test_context_includes_matching_chunk(
        self, assembler, pipeline, project, make_document, fake_openai
    ):
        fake_openai.embeddings.pin("garantía", 1)
        document = await make_document(project.id, filename="anexo_garantias.pdf")
        await pipeline.index_document(
            document.id,
            "La garantía bancaria cubre el diez por ciento del valor adjudicado y "
            "se mantiene vigente hasta la recepción definitiva de la obra.",
        )

        context = await assembler.get_context("garantía exigida", SearchScope(project_id=project.id))

        assert "anexo_garantias.pdf" in context
        assert "diez por ciento" in context
        assert document.id not in context

    @pytest.mark.asyncio
    async def test_unknown_project_is_scope_error(self, assembler):
        with pytest.raises(ScopeError):
            await assembler.get_context("consulta", SearchScope(project_id="no-existe"))

    @pytest.mark.asyncio
    async def test_empty_project_id_is_scope_error(self, assembler):
        with pytest.raises(ScopeError):
            await assembler.search("consulta", SearchScope(project_id=""))

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, assembler, project):
        assert await assembler.search("   ", SearchScope(project_id=project.id)) == []

    @pytest.mark.asyncio
    async def test_explicit_zero_limits_are_honoured(
        self, assembler, pipeline, project, make_document, fake_openai
    ):
        fake_openai.embeddings.pin("garantía", 1)
        document = await make_document(project.id)
        await pipeline.index_document(document.id, "La garantía definitiva asciende al cinco por ciento del importe de adjudicación.")
        scope = SearchScope(project_id=project.id)

        assert await assembler.search("garantía", scope) != []
        assert await assembler.search("garantía", scope, limit=0) == []
        assert await assembler.get_context("garantía", scope, max_chunks=0) == ""
        assert await assembler.get_context("garantía", scope, min_similarity=0.0) != ""
