# docanalysis/repository.py

"""
In-memory project/document/report registry.

Persistence is owned by an external store in production; this registry
implements the same contract for local runs and tests. Records are
copied on the way in and out so callers never share mutable state.
"""

import logging
from typing import Dict, List, Optional

from docanalysis.errors import (
    DocumentNotFoundError,
    ProjectNotFoundError,
    ReportNotFoundError,
)
from docanalysis.models import Document, Project, Report, utcnow

logger = logging.getLogger(__name__)


class InMemoryRepository:

    def __init__(self):

        self._projects: Dict[str, Project] = {}
        self._documents: Dict[str, Document] = {}
        self._reports: Dict[str, Report] = {}

    # ============================================================
    # PROJECTS
    # ============================================================

    async def save_project(self, project: Project) -> Project:

        self._projects[project.id] = project.model_copy(deep=True)

        return project

    async def get_project(self, project_id: str) -> Project:

        project = self._projects.get(project_id)

        if project is None:
            raise ProjectNotFoundError(project_id)

        return project.model_copy(deep=True)

    async def has_project(self, project_id: str) -> bool:

        return project_id in self._projects

    # ============================================================
    # DOCUMENTS
    # ============================================================

    async def save_document(self, document: Document) -> Document:

        self._documents[document.id] = document.model_copy(deep=True)

        return document

    async def get_document(self, document_id: str) -> Document:

        document = self._documents.get(document_id)

        if document is None:
            raise DocumentNotFoundError(document_id)

        return document.model_copy(deep=True)

    async def update_document(self, document_id: str, **changes) -> Document:

        document = await self.get_document(document_id)

        updated = document.model_copy(update=changes)

        self._documents[document_id] = updated

        return updated.model_copy(deep=True)

    async def delete_document(self, document_id: str) -> bool:

        return self._documents.pop(document_id, None) is not None

    async def list_documents(
        self,
        project_id: str,
        document_ids: Optional[List[str]] = None,
    ) -> List[Document]:

        wanted = set(document_ids) if document_ids is not None else None

        return [
            document.model_copy(deep=True)
            for document in self._documents.values()
            if document.project_id == project_id
            and (wanted is None or document.id in wanted)
        ]

    async def document_names(self, document_ids: List[str]) -> Dict[str, str]:

        return {
            document_id: self._documents[document_id].filename
            for document_id in document_ids
            if document_id in self._documents
        }

    async def count_documents(self) -> int:

        return len(self._documents)

    # ============================================================
    # REPORTS
    # ============================================================

    async def save_report(self, report: Report) -> Report:

        self._reports[report.id] = report.model_copy(deep=True)

        logger.info(
            "Report saved",
            extra={
                "report_id": report.id,
                "project_id": report.project_id,
                "generation_source": report.generation_source,
            },
        )

        return report

    async def get_report(self, report_id: str) -> Report:

        report = self._reports.get(report_id)

        if report is None:
            raise ReportNotFoundError(report_id)

        return report.model_copy(deep=True)

    async def update_report(self, report_id: str, **changes) -> Report:
        """
        Manual edits overwrite sections in place; there is no versioning.
        """

        report = await self.get_report(report_id)

        changes["updated_at"] = utcnow()

        updated = report.model_copy(update=changes)

        self._reports[report_id] = updated

        return updated.model_copy(deep=True)
