# docanalysis/workflow/report_synthesis.py

"""
Report synthesis: retrieval queries → merged matches → completion → report.

Architecture contract:
assembler → prompt_builder → completion client → response_parser

Guarantees:
• Always returns a complete Report
• Transport, timeout and parse failures fall back to the deterministic report
• Configuration and consistency errors propagate
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from docanalysis.config import Settings
from docanalysis.errors import FATAL_ERRORS, ResponseParseError, UpstreamError
from docanalysis.llm.response_parser import parse_report_response
from docanalysis.memory.retriever import render_context
from docanalysis.memory.store import rank_key
from docanalysis.models import (
    Document,
    ProcessingStatus,
    Project,
    Report,
    ReportSections,
    ReportType,
    SearchMatch,
    SearchScope,
)
from docanalysis.prompts.prompt_builder import build_system_prompt, build_user_prompt
from docanalysis.prompts.system_prompts import RETRIEVAL_QUERIES, REPORT_TYPE_LABELS
from docanalysis.workflow.fallback_report import build_fallback_report, build_initial_report

logger = logging.getLogger(__name__)


def select_candidates(documents: List[Document]) -> List[Document]:
    """
    Completed documents if any, otherwise every document.
    """

    completed = [d for d in documents if d.processing_status == ProcessingStatus.completed]

    return completed or list(documents)


def merge_matches(match_lists: List[List[SearchMatch]]) -> List[SearchMatch]:
    """
    Union of matches from several queries, one entry per chunk at its
    best similarity, ranked like a single search.
    """

    best: Dict[str, SearchMatch] = {}

    for matches in match_lists:
        for match in matches:
            current = best.get(match.chunk.id)
            if current is None or match.similarity > current.similarity:
                best[match.chunk.id] = match

    return sorted(best.values(), key=rank_key)


def bounded_context(
    matches: List[SearchMatch],
    document_names: Dict[str, str],
    max_chars: int,
) -> str:
    """
    Render the best-ranked matches that fit in `max_chars`.

    A first chunk longer than the budget is truncated rather than dropped.
    """

    kept: List[SearchMatch] = []
    context = ""

    for match in matches:

        candidate = render_context(kept + [match], document_names)

        if len(candidate) > max_chars:
            if not kept:
                context = candidate[:max_chars]
            break

        kept.append(match)
        context = candidate

    return context


def default_title(project: Project, report_type: ReportType) -> str:

    label = REPORT_TYPE_LABELS.get(report_type.value, "ejecutivo")

    return f"{project.name} - Informe {label}"


class ReportSynthesizer:
    """
    Produces a structured report for a project.

    `completion_client=None` means AI generation is disabled; every report
    then comes from the deterministic generator.
    """

    def __init__(self, settings: Settings, assembler, completion_client=None):

        self._settings = settings
        self._assembler = assembler
        self._completion_client = completion_client

        if completion_client is None:
            logger.warning(
                "AI report generation disabled, using deterministic reports"
            )

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def generate_report(
        self,
        project: Project,
        documents: List[Document],
        report_type: ReportType,
        title: Optional[str] = None,
    ) -> Report:

        start_time = time.time()

        candidates = select_candidates(documents)

        if not candidates:
            sections, source = build_initial_report(project, report_type), "initial"

        elif self._completion_client is None:
            sections, source = build_fallback_report(project, candidates, report_type), "fallback"

        else:
            sections, source = await self._generate_with_fallback(project, candidates, report_type)

        report = Report(
            project_id=project.id,
            title=title or default_title(project, report_type),
            report_type=report_type,
            generation_source=source,
            **sections.model_dump(),
        )

        logger.info(
            "Report generated",
            extra={
                "project_id": project.id,
                "report_type": report_type.value,
                "documents": len(candidates),
                "generation_source": source,
                "findings": len(report.key_findings),
                "latency_seconds": round(time.time() - start_time, 3),
            },
        )

        return report

    # ============================================================
    # AI PATH
    # ============================================================

    async def _generate_with_fallback(
        self,
        project: Project,
        documents: List[Document],
        report_type: ReportType,
    ) -> Tuple[ReportSections, str]:

        try:

            sections = await asyncio.wait_for(
                self._generate_ai(project, documents, report_type),
                timeout=self._settings.report_timeout_seconds,
            )

            return sections, "ai"

        except FATAL_ERRORS:
            raise

        except asyncio.TimeoutError:

            logger.warning(
                "Report generation timed out, using fallback",
                extra={
                    "project_id": project.id,
                    "timeout_seconds": self._settings.report_timeout_seconds,
                },
            )

        except (UpstreamError, ResponseParseError) as e:

            logger.warning(
                "AI report generation failed, using fallback",
                extra={
                    "project_id": project.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

        return build_fallback_report(project, documents, report_type), "fallback"

    async def _generate_ai(
        self,
        project: Project,
        documents: List[Document],
        report_type: ReportType,
    ) -> ReportSections:

        context = await self._gather_context(project, documents, report_type)

        system_prompt = build_system_prompt(report_type, project.type)

        user_prompt = build_user_prompt(
            project,
            documents,
            context,
            preview_chars=self._settings.document_preview_chars,
        )

        content = await self._completion_client.complete(system_prompt, user_prompt)

        return parse_report_response(content)

    async def _gather_context(
        self,
        project: Project,
        documents: List[Document],
        report_type: ReportType,
    ) -> str:
        """
        Run every retrieval query for the report type and merge the results.

        Upstream failures give an empty context; the report still goes out.
        """

        scope = SearchScope(
            project_id=project.id,
            document_ids=[d.id for d in documents],
        )

        match_lists = []

        try:

            for query in RETRIEVAL_QUERIES[report_type.value]:
                match_lists.append(
                    await self._assembler.get_matches(
                        query,
                        scope,
                        min_similarity=self._settings.report_similarity_threshold,
                    )
                )

        except UpstreamError as e:

            logger.warning(
                "Context retrieval failed, continuing without context",
                extra={"project_id": project.id, "error": str(e)},
            )

            return ""

        matches = merge_matches(match_lists)

        merged = bounded_context(
            matches,
            {d.id: d.filename for d in documents},
            self._settings.report_context_max_chars,
        )

        logger.info(
            "Report context assembled",
            extra={
                "project_id": project.id,
                "queries": len(match_lists),
                "chunks": len(matches),
                "context_chars": len(merged),
            },
        )

        return merged
