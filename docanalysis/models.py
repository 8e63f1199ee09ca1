# docanalysis/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# ============================================================
# ENUMERATIONS
# ============================================================

class DocumentType(str, Enum):
    pdf = "pdf"
    word = "word"
    image = "image"
    excel = "excel"
    csv = "csv"
    other = "other"


class ProcessingStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class ProjectType(str, Enum):
    general = "general"
    financial = "financial"
    legal = "legal"


class ReportType(str, Enum):
    executive = "executive"
    technical = "technical"
    compliance = "compliance"
    financial = "financial"


class Severity(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class Priority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


# ============================================================
# PROJECTS & DOCUMENTS
# ============================================================

class Project(BaseModel):
    """Scopes both documents and their chunk search space."""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    type: ProjectType = ProjectType.general
    status: str = "active"
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Document(BaseModel):
    """
    An uploaded document and its processing state.

    `completed` with `has_extracted_content=False` means nothing was
    extractable; `extracted_text` then only carries the description.
    """
    id: str = Field(default_factory=new_id)
    project_id: str
    filename: str
    file_type: DocumentType = DocumentType.other
    file_size: int = 0
    storage_path: Optional[str] = None
    description: str = ""
    processing_status: ProcessingStatus = ProcessingStatus.pending
    extracted_text: str = ""
    has_extracted_content: bool = False
    processing_error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    uploaded_by: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


class ExtractionResult(BaseModel):
    """
    Output of a text extractor.

    `degraded=True` means `text` is a stand-in (description or file
    metadata), not content read from the file.
    """
    text: str = ""
    degraded: bool = False
    source: str = "extracted"  # extracted | description | metadata
    error: Optional[str] = None


# ============================================================
# CHUNKS & SEARCH
# ============================================================

class ChunkInput(BaseModel):
    text: str
    index: int
    vector: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChunkRecord(BaseModel):
    id: str
    document_id: str
    project_id: str
    text: str
    chunk_index: int
    vector: Optional[List[float]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchScope(BaseModel):
    project_id: str
    document_ids: Optional[List[str]] = None


class SearchMatch(BaseModel):
    chunk: ChunkRecord
    similarity: float


# ============================================================
# REPORTS
# ============================================================

class AnalysisSection(BaseModel):
    id: str
    title: str
    content: str
    document_references: List[str] = Field(default_factory=list)


class Finding(BaseModel):
    id: str
    title: str
    description: str
    severity: Severity = Severity.medium
    document_references: List[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    id: str
    title: str
    description: str
    priority: Priority = Priority.medium
    actionable_steps: List[str] = Field(default_factory=list)


class ReportSections(BaseModel):
    executive_summary: str = ""
    document_analysis: List[AnalysisSection] = Field(default_factory=list)
    key_findings: List[Finding] = Field(default_factory=list)
    conclusions: str = ""
    recommendations: List[Recommendation] = Field(default_factory=list)


class Report(ReportSections):
    id: str = Field(default_factory=new_id)
    project_id: str
    title: str
    report_type: ReportType
    status: str = "draft"
    generation_source: str = "ai"  # ai | fallback | initial
    generated_by: Optional[str] = None
    generated_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ============================================================
# API MODELS
# ============================================================

class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    type: ProjectType = ProjectType.general

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Ensure name is not just whitespace."""
        if not v.strip():
            raise ValueError("Project name cannot be empty")
        return v.strip()


class UploadResponse(BaseModel):
    document_id: str
    filename: str
    file_type: DocumentType
    processing_status: ProcessingStatus
    chunks_created: int
    has_extracted_content: bool
    error: Optional[str] = None


class ReindexRequest(BaseModel):
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)
    document_ids: Optional[List[str]] = None
    limit: Optional[int] = Field(None, ge=1, le=50)
    min_similarity: Optional[float] = Field(None, ge=-1.0, le=1.0)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v):
        """Ensure query is not just whitespace."""
        if not v.strip():
            raise ValueError("Query cannot be empty or only whitespace")
        return v.strip()


class SearchHit(BaseModel):
    document_id: str
    filename: Optional[str] = None
    chunk_index: int
    text: str
    similarity: float


class SearchResponse(BaseModel):
    query: str
    results: List[SearchHit]
    total_results: int


class ContextResponse(BaseModel):
    query: str
    context: str
    empty: bool


class GenerateReportRequest(BaseModel):
    report_type: ReportType = ReportType.executive
    title: Optional[str] = None
    document_ids: Optional[List[str]] = None


class UpdateReportRequest(BaseModel):
    title: Optional[str] = None
    status: Optional[str] = None
    executive_summary: Optional[str] = None
    document_analysis: Optional[List[AnalysisSection]] = None
    key_findings: Optional[List[Finding]] = None
    conclusions: Optional[str] = None
    recommendations: Optional[List[Recommendation]] = None


class DeleteDocumentResponse(BaseModel):
    document_id: str
    chunks_deleted: int
    message: str
    success: bool


class HealthResponse(BaseModel):
    status: str
    total_documents: int
    total_chunks: int
    vector_backend: str
    ai_enabled: bool
