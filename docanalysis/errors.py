# docanalysis/errors.py
"""
Error taxonomy for the RAG pipeline.

Recoverable errors (UpstreamError, ResponseParseError) are handled by the
indexing pipeline (document marked failed) and the report synthesizer
(deterministic fallback). Configuration and consistency errors are fatal
and always propagate.
"""


class DocAnalysisError(Exception):
    """Base class for all service errors."""


# ============================================================
# FATAL
# ============================================================

class ConfigurationError(DocAnalysisError):
    """Missing credential or invalid setting."""


class ScopeError(DocAnalysisError):
    """Search or indexing requested outside a valid project scope."""


class DimensionMismatchError(DocAnalysisError):
    """Embedding dimension does not match the vector store dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )


# ============================================================
# VALIDATION
# ============================================================

class InvalidInputError(DocAnalysisError, ValueError):
    """Empty text or otherwise unusable input."""


class DocumentNotFoundError(DocAnalysisError, KeyError):

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")

    def __str__(self):
        return self.args[0]


class ProjectNotFoundError(DocAnalysisError, KeyError):

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")

    def __str__(self):
        return self.args[0]


class ReportNotFoundError(DocAnalysisError, KeyError):

    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Report not found: {report_id}")

    def __str__(self):
        return self.args[0]


# ============================================================
# RECOVERABLE
# ============================================================

class UpstreamError(DocAnalysisError):
    """External API unreachable, rate-limited, or erroring."""


class EmbeddingError(UpstreamError):
    pass


class CompletionError(UpstreamError):
    pass


class ResponseParseError(DocAnalysisError):
    """Completion output is not the expected JSON report."""


class ExtractionError(DocAnalysisError):
    """Text extraction failed for a file."""


FATAL_ERRORS = (ConfigurationError, ScopeError, DimensionMismatchError)
