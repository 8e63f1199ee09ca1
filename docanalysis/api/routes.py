# docanalysis/api/routes.py

import logging
import time
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from docanalysis.memory.extractors import detect_document_type
from docanalysis.models import (
    ContextResponse,
    CreateProjectRequest,
    DeleteDocumentResponse,
    Document,
    GenerateReportRequest,
    HealthResponse,
    Project,
    ReindexRequest,
    Report,
    SearchHit,
    SearchRequest,
    SearchResponse,
    SearchScope,
    UpdateReportRequest,
    UploadResponse,
)
from docanalysis.observability.metrics import metrics_tracker
from docanalysis.services import Services, get_posthog, get_services

# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# CONFIGURATION
# ============================================================

MAX_FILE_SIZE_MB = 10


# ============================================================
# HELPERS
# ============================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def validate_file_size(content: bytes):

    size_mb = len(content) / (1024 * 1024)

    if size_mb > MAX_FILE_SIZE_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {size_mb:.2f}MB",
        )


def _upload_response(document: Document, result) -> UploadResponse:

    return UploadResponse(
        document_id=document.id,
        filename=document.filename,
        file_type=document.file_type,
        processing_status=result.status,
        chunks_created=result.chunks_created,
        has_extracted_content=result.has_extracted_content,
        error=result.error,
    )


# ============================================================
# HEALTH & METRICS
# ============================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)):

    stats = await services.store.get_stats()

    return HealthResponse(
        status="healthy",
        total_documents=await services.repository.count_documents(),
        total_chunks=stats["total_chunks"],
        vector_backend=stats["backend"],
        ai_enabled=services.completion_client is not None,
    )


@router.get("/metrics")
async def get_metrics():

    return metrics_tracker.get_metrics()


# ============================================================
# PROJECTS
# ============================================================

@router.post("/projects", response_model=Project, status_code=201)
async def create_project(
    payload: CreateProjectRequest,
    services: Services = Depends(get_services),
):

    project = Project(
        name=payload.name,
        description=payload.description,
        type=payload.type,
    )

    await services.repository.save_project(project)

    logger.info(
        "Project created",
        extra={"project_id": project.id, "project_type": project.type.value},
    )

    return project


@router.get("/projects/{project_id}", response_model=Project)
async def get_project(project_id: str, services: Services = Depends(get_services)):

    return await services.repository.get_project(project_id)


@router.get("/projects/{project_id}/documents", response_model=List[Document])
async def list_documents(project_id: str, services: Services = Depends(get_services)):

    await services.repository.get_project(project_id)

    return await services.repository.list_documents(project_id)


# ============================================================
# UPLOAD DOCUMENT
# ============================================================

@router.post("/projects/{project_id}/documents", response_model=UploadResponse)
async def upload_document(
    project_id: str,
    request: Request,
    file: UploadFile = File(...),
    description: str = Form(""),
    services: Services = Depends(get_services),
):

    await services.repository.get_project(project_id)

    start_time = time.time()

    data = await file.read()

    validate_file_size(data)

    if not data:
        raise HTTPException(status_code=400, detail="Empty file")

    filename = file.filename or "documento"

    document = Document(
        project_id=project_id,
        filename=filename,
        file_type=detect_document_type(filename, file.content_type),
        file_size=len(data),
        description=description.strip(),
    )

    await services.repository.save_document(document)

    result = await services.pipeline.ingest(document.id, data)

    get_posthog().track_document_indexed(
        distinct_id=_request_id(request),
        document_id=document.id,
        project_id=project_id,
        status=result.status.value,
        chunks=result.chunks_created,
        latency=time.time() - start_time,
    )

    return _upload_response(document, result)


@router.post("/documents/{document_id}/reindex", response_model=UploadResponse)
async def reindex_document(
    document_id: str,
    payload: ReindexRequest,
    request: Request,
    services: Services = Depends(get_services),
):

    document = await services.repository.get_document(document_id)

    start_time = time.time()

    result = await services.pipeline.reindex(document_id, payload.text, payload.metadata)

    get_posthog().track_document_indexed(
        distinct_id=_request_id(request),
        document_id=document_id,
        project_id=document.project_id,
        status=result.status.value,
        chunks=result.chunks_created,
        latency=time.time() - start_time,
    )

    return _upload_response(document, result)


# ============================================================
# DELETE DOCUMENT
# ============================================================

@router.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
async def delete_document(document_id: str, services: Services = Depends(get_services)):

    await services.repository.get_document(document_id)

    deleted = await services.pipeline.delete_document(document_id)

    return DeleteDocumentResponse(
        document_id=document_id,
        chunks_deleted=deleted,
        message="Deleted",
        success=True,
    )


# ============================================================
# SEARCH & CONTEXT
# ============================================================

@router.post("/projects/{project_id}/search", response_model=SearchResponse)
async def search_documents(
    project_id: str,
    payload: SearchRequest,
    request: Request,
    services: Services = Depends(get_services),
):

    await services.repository.get_project(project_id)

    results = await services.assembler.search(
        payload.query,
        SearchScope(project_id=project_id, document_ids=payload.document_ids),
        limit=payload.limit,
        min_similarity=payload.min_similarity,
    )

    hits = [
        SearchHit(
            document_id=match.chunk.document_id,
            filename=document.filename if document else None,
            chunk_index=match.chunk.chunk_index,
            text=match.chunk.text,
            similarity=round(match.similarity, 4),
        )
        for match, document in results
    ]

    get_posthog().track_search(
        distinct_id=_request_id(request),
        project_id=project_id,
        query=payload.query,
        results=len(hits),
        top_score=hits[0].similarity if hits else None,
    )

    return SearchResponse(query=payload.query, results=hits, total_results=len(hits))


@router.post("/projects/{project_id}/context", response_model=ContextResponse)
async def get_context(
    project_id: str,
    payload: SearchRequest,
    services: Services = Depends(get_services),
):

    await services.repository.get_project(project_id)

    context = await services.assembler.get_context(
        payload.query,
        SearchScope(project_id=project_id, document_ids=payload.document_ids),
        max_chunks=payload.limit,
        min_similarity=payload.min_similarity,
    )

    return ContextResponse(query=payload.query, context=context, empty=not context)


# ============================================================
# REPORTS
# ============================================================

@router.post("/projects/{project_id}/reports", response_model=Report, status_code=201)
async def generate_report(
    project_id: str,
    payload: GenerateReportRequest,
    request: Request,
    services: Services = Depends(get_services),
):

    project = await services.repository.get_project(project_id)

    documents = await services.repository.list_documents(project_id, payload.document_ids)

    start_time = time.time()

    report = await services.synthesizer.generate_report(
        project,
        documents,
        payload.report_type,
        title=payload.title,
    )

    await services.repository.save_report(report)

    get_posthog().track_report_generated(
        distinct_id=_request_id(request),
        project_id=project_id,
        report_type=report.report_type.value,
        generation_source=report.generation_source,
        latency=time.time() - start_time,
    )

    return report


@router.get("/reports/{report_id}", response_model=Report)
async def get_report(report_id: str, services: Services = Depends(get_services)):

    return await services.repository.get_report(report_id)


@router.put("/reports/{report_id}", response_model=Report)
async def update_report(
    report_id: str,
    payload: UpdateReportRequest,
    services: Services = Depends(get_services),
):

    changes = {
        field: getattr(payload, field)
        for field in payload.model_fields_set
        if getattr(payload, field) is not None
    }

    return await services.repository.update_report(report_id, **changes)
