# tests/test_report_synthesis.py
import asyncio
import json

import pytest

from docanalysis.errors import ConfigurationError, DimensionMismatchError, EmbeddingError
from docanalysis.llm.client import CompletionClient
from docanalysis.models import (
    ChunkRecord,
    Document,
    DocumentType,
    ProcessingStatus,
    Project,
    ReportType,
    SearchMatch,
    Severity,
)
from docanalysis.prompts.prompt_builder import build_system_prompt, build_user_prompt
from docanalysis.workflow.fallback_report import (
    build_fallback_report,
    build_initial_report,
    relevant_concepts,
)
from docanalysis.workflow.report_synthesis import (
    ReportSynthesizer,
    bounded_context,
    merge_matches,
    select_candidates,
)

from tests.conftest import ai_report_json, connection_error


def assert_fully_populated(sections):
    assert sections.executive_summary.strip()
    assert sections.conclusions.strip()
    assert len(sections.key_findings) >= 1
    assert len(sections.recommendations) >= 1


@pytest.fixture
def completion_client(settings, fake_openai):
    return CompletionClient(settings, client=fake_openai)


@pytest.fixture
def synthesizer(settings, assembler, completion_client):
    return ReportSynthesizer(settings, assembler, completion_client)


def match(document_id, index, similarity, text="texto"):
    return SearchMatch(
        chunk=ChunkRecord(
            id=f"{document_id}:{index}",
            document_id=document_id,
            project_id="p-1",
            text=text,
            chunk_index=index,
        ),
        similarity=similarity,
    )


class StubAssembler:

    def __init__(self, error=None, matches=None):
        self.error = error
        self.matches = matches or []
        self.queries = []

    async def get_matches(self, query, scope, max_chunks=None, min_similarity=None):
        self.queries.append((query, scope, min_similarity))
        if self.error:
            raise self.error
        return list(self.matches)


class TestInitialReport:

    def test_zero_documents_is_fully_populated(self):
        project = Project(name="Obra Norte", description="")

        sections = build_initial_report(project, ReportType.compliance)

        assert_fully_populated(sections)
        assert "Obra Norte" in sections.executive_summary
        assert sections.key_findings[0].severity == Severity.low
        assert sections.document_analysis == []

    @pytest.mark.asyncio
    async def test_zero_documents_never_touches_network(self, settings, fake_openai, completion_client):
        fake_openai.embeddings.fail = True
        fake_openai.chat.completions.error = connection_error()
        synthesizer = ReportSynthesizer(settings, StubAssembler(error=connection_error()), completion_client)
        project = Project(name="Obra Norte")

        report = await synthesizer.generate_report(project, [], ReportType.executive)

        assert report.generation_source == "initial"
        assert_fully_populated(report)
        assert fake_openai.chat.completions.calls == []


class TestFallbackReport:

    def test_relevant_concepts_filter_stop_words(self):
        text = (
            "El presupuesto del proyecto incluye materiales. El presupuesto cubre "
            "materiales y transporte. Sobre todo el presupuesto."
        )

        concepts = relevant_concepts(text)

        assert concepts[0] == "presupuesto"
        assert "materiales" in concepts
        assert "sobre" not in concepts
        assert "transporte" not in concepts

    def test_documents_with_content_get_concept_finding(self, long_text):
        project = Project(name="Suministros")
        document = Document(
            project_id=project.id,
            filename="pliego.pdf",
            file_type=DocumentType.pdf,
            extracted_text=long_text,
            has_extracted_content=True,
            processing_status=ProcessingStatus.completed,
        )

        sections = build_fallback_report(project, [document], ReportType.technical)

        assert_fully_populated(sections)
        assert sections.key_findings[0].title == "Conceptos y Temas Relevantes"
        assert "proveedor" in sections.key_findings[0].description
        assert sections.document_analysis[0].document_references == [document.id]

    def test_documents_without_content_still_report(self):
        project = Project(name="Archivo")
        document = Document(project_id=project.id, filename="foto.png", file_type=DocumentType.image)

        sections = build_fallback_report(project, [document], ReportType.financial)

        assert_fully_populated(sections)
        assert sections.key_findings[0].title == "Contenido Limitado Disponible"
        assert "foto.png" in sections.document_analysis[0].content

    def test_deterministic(self, long_text):
        project = Project(id="p-1", name="Suministros")
        document = Document(
            id="d-1",
            project_id="p-1",
            filename="pliego.pdf",
            extracted_text=long_text,
            has_extracted_content=True,
        )

        first = build_fallback_report(project, [document], ReportType.executive)
        second = build_fallback_report(project, [document], ReportType.executive)

        assert first == second


class TestPrompts:

    def test_system_prompt_follows_template(self):
        prompt = build_system_prompt(ReportType.compliance, "legal")

        assert "análisis legal" in prompt
        assert "1. Resumen de Cumplimiento" in prompt
        assert '"key_findings"' in prompt

    def test_user_prompt_lists_document_ids_and_context(self):
        project = Project(name="Auditoría")
        document = Document(
            project_id=project.id,
            filename="contrato.pdf",
            extracted_text="x" * 5000,
            has_extracted_content=True,
        )

        prompt = build_user_prompt(project, [document], "=== Documento: contrato.pdf ===", preview_chars=1500)

        assert f"(ID: {document.id})" in prompt
        assert "=== Documento: contrato.pdf ===" in prompt
        assert "x" * 1501 not in prompt


class TestMergeMatches:

    def test_same_chunk_from_two_queries_kept_once_at_best_similarity(self):
        first = [match("a", 0, 0.41), match("a", 1, 0.80)]
        second = [match("a", 0, 0.55), match("b", 0, 0.60)]

        merged = merge_matches([first, second])

        assert [m.chunk.id for m in merged] == ["a:1", "b:0", "a:0"]
        assert merged[2].similarity == 0.55

    def test_overlapping_queries_render_each_chunk_once(self):
        shared = match("a", 0, 0.70, text="cláusula de penalización")
        first = [shared, match("b", 0, 0.50, text="plazo de entrega")]
        second = [match("a", 0, 0.65, text="cláusula de penalización"), match("a", 1, 0.60, text="garantía")]

        context = bounded_context(merge_matches([first, second]), {"a": "a.pdf", "b": "b.pdf"}, 4000)

        assert context.count("cláusula de penalización") == 1
        assert context.count("=== Documento: a.pdf ===") == 1
        assert "garantía" in context
        assert "plazo de entrega" in context

    def test_bounded_by_max_chars(self):
        matches = [match(f"d{i}", 0, 0.9 - i * 0.01, text="texto " * 50) for i in range(10)]

        context = bounded_context(matches, {}, max_chars=1000)

        assert 0 < len(context) <= 1000
        assert 0 < context.count("[Fragmento") < 10

    def test_oversized_first_chunk_is_truncated(self):
        context = bounded_context([match("a", 0, 0.9, text="x" * 5000)], {"a": "a.pdf"}, max_chars=300)

        assert len(context) == 300
        assert context.startswith("=== Documento: a.pdf ===")

    def test_no_matches_gives_empty_context(self):
        assert bounded_context(merge_matches([[], []]), {}, max_chars=1000) == ""


class TestReportSynthesizer:

    @pytest.mark.asyncio
    async def test_ai_report(
        self, synthesizer, pipeline, repository, project, make_document, fake_openai, long_text
    ):
        document = await make_document(project.id)
        await pipeline.index_document(document.id, long_text)
        document = await repository.get_document(document.id)
        fake_openai.chat.completions.content = ai_report_json(document.id)

        report = await synthesizer.generate_report(project, [document], ReportType.executive)

        assert report.generation_source == "ai"
        assert report.key_findings[0].severity == Severity.high
        assert report.key_findings[0].document_references == [document.id]
        assert report.title == f"{project.name} - Informe ejecutivo"
        assert len(fake_openai.chat.completions.calls) == 1

    @pytest.mark.asyncio
    async def test_retrieval_uses_report_threshold_and_candidate_scope(self, settings, completion_client, fake_openai):
        assembler = StubAssembler()
        synthesizer = ReportSynthesizer(settings, assembler, completion_client)
        project = Project(name="Finanzas")
        done = Document(project_id=project.id, filename="a.pdf", processing_status=ProcessingStatus.completed)
        failed = Document(project_id=project.id, filename="b.pdf", processing_status=ProcessingStatus.failed)
        fake_openai.chat.completions.content = ai_report_json(done.id)

        await synthesizer.generate_report(project, [done, failed], ReportType.financial)

        assert 2 <= len(assembler.queries) <= 3
        for _, scope, threshold in assembler.queries:
            assert scope.document_ids == [done.id]
            assert threshold == settings.report_similarity_threshold

    @pytest.mark.asyncio
    async def test_parse_failure_falls_back(self, synthesizer, project, make_document, fake_openai):
        document = await make_document(project.id, description="Contrato marco de suministro eléctrico")
        fake_openai.chat.completions.content = "Lo siento, no puedo generar JSON."

        report = await synthesizer.generate_report(project, [document], ReportType.executive)

        assert report.generation_source == "fallback"
        assert_fully_populated(report)

    @pytest.mark.asyncio
    async def test_wrongly_typed_content_falls_back(self, synthesizer, project, make_document, fake_openai):
        document = await make_document(project.id)
        payload = json.loads(ai_report_json(document.id))
        payload["document_analysis"][0]["content"] = ["uno", "dos"]
        fake_openai.chat.completions.content = json.dumps(payload)

        report = await synthesizer.generate_report(project, [document], ReportType.executive)

        assert report.generation_source == "fallback"
        assert_fully_populated(report)

    @pytest.mark.asyncio
    async def test_empty_json_object_falls_back(self, synthesizer, project, make_document, fake_openai):
        document = await make_document(project.id)
        fake_openai.chat.completions.content = "{}"

        report = await synthesizer.generate_report(project, [document], ReportType.executive)

        assert report.generation_source == "fallback"
        assert_fully_populated(report)

    @pytest.mark.asyncio
    async def test_overlapping_queries_send_each_chunk_once(self, settings, completion_client, fake_openai):
        project = Project(name="Finanzas")
        document = Document(project_id=project.id, filename="balance.pdf")
        chunk = match(document.id, 0, 0.72, text="Activo corriente de la sociedad")
        assembler = StubAssembler(matches=[chunk])
        synthesizer = ReportSynthesizer(settings, assembler, completion_client)
        fake_openai.chat.completions.content = ai_report_json(document.id)

        await synthesizer.generate_report(project, [document], ReportType.financial)

        user_prompt = fake_openai.chat.completions.calls[0]["messages"][1]["content"]
        assert len(assembler.queries) >= 2
        assert user_prompt.count("Activo corriente de la sociedad") == 1
        assert "=== Documento: balance.pdf ===" in user_prompt

    @pytest.mark.asyncio
    async def test_transport_failure_falls_back(self, synthesizer, project, make_document, fake_openai):
        document = await make_document(project.id)
        fake_openai.chat.completions.error = connection_error()

        report = await synthesizer.generate_report(project, [document], ReportType.technical)

        assert report.generation_source == "fallback"
        assert_fully_populated(report)

    @pytest.mark.asyncio
    async def test_retrieval_failure_continues_without_context(
        self, settings, completion_client, fake_openai
    ):
        assembler = StubAssembler(error=EmbeddingError("Embedding request failed"))
        synthesizer = ReportSynthesizer(settings, assembler, completion_client)
        project = Project(name="Finanzas")
        document = Document(project_id=project.id, filename="a.pdf")
        fake_openai.chat.completions.content = ai_report_json(document.id)

        report = await synthesizer.generate_report(project, [document], ReportType.financial)

        assert report.generation_source == "ai"
        user_prompt = fake_openai.chat.completions.calls[0]["messages"][1]["content"]
        assert "No se recuperó contexto relevante" in user_prompt

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, settings, assembler, project, make_document):

        class HangingClient:
            async def complete(self, system_prompt, user_prompt):
                await asyncio.sleep(10)

        settings.report_timeout_seconds = 0.05
        synthesizer = ReportSynthesizer(settings, assembler, HangingClient())
        document = await make_document(project.id)

        report = await synthesizer.generate_report(project, [document], ReportType.executive)

        assert report.generation_source == "fallback"

    @pytest.mark.asyncio
    async def test_ai_disabled_uses_fallback(self, settings, assembler, project, make_document):
        synthesizer = ReportSynthesizer(settings, assembler, completion_client=None)
        document = await make_document(project.id)

        report = await synthesizer.generate_report(project, [document], ReportType.executive, title="Manual")

        assert report.generation_source == "fallback"
        assert report.title == "Manual"

    @pytest.mark.asyncio
    async def test_fatal_errors_propagate(self, settings, completion_client):
        synthesizer = ReportSynthesizer(
            settings, StubAssembler(error=DimensionMismatchError(32, 64)), completion_client
        )
        project = Project(name="Finanzas")
        document = Document(project_id=project.id, filename="a.pdf")

        with pytest.raises(DimensionMismatchError):
            await synthesizer.generate_report(project, [document], ReportType.financial)


class TestCompletionClient:

    def test_missing_key_is_configuration_error(self, settings):
        settings.openai_api_key = None

        with pytest.raises(ConfigurationError):
            CompletionClient(settings)


def test_select_candidates_prefers_completed():
    done = Document(project_id="p", filename="a", processing_status=ProcessingStatus.completed)
    pending = Document(project_id="p", filename="b")

    assert select_candidates([done, pending]) == [done]
    assert select_candidates([pending]) == [pending]
    assert select_candidates([]) == []
