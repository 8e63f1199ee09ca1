# docanalysis/config.py
"""
Configuration for the document analysis RAG service.

This file centralizes all tunable parameters for the RAG pipeline.
Module constants are the defaults; `Settings` reads overrides from the
environment (or a .env file) and is passed explicitly to the embedding
client, completion client, pipeline and synthesizer.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from docanalysis.errors import ConfigurationError


# ========== DOCUMENT PROCESSING ==========

# Chunk configuration (estimated tokens, not exact)
CHUNK_MAX_TOKENS = 1000
CHUNK_OVERLAP_TOKENS = 200

# 1 token ~ 4 characters for Spanish prose
CHARS_PER_TOKEN = 4

# Chunks shorter than this are treated as noise
MIN_CHUNK_CHARS = 50

# Extracted text shorter than this is not worth embedding
MIN_INDEX_CHARS = 100

# Hard cap on extracted text kept per document
MAX_DOCUMENT_CHARACTERS = 500_000


# ========== EMBEDDING CONFIGURATION ==========

EMBEDDING_MODEL = "text-embedding-3-small"  # 1536 dimensions, cost-effective

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Items per embeddings request
EMBEDDING_BATCH_SIZE = 100

# Each input is truncated to this many characters before submission
EMBEDDING_MAX_CHARS = 8000

EMBEDDING_TIMEOUT_SECONDS = 60.0


# ========== RETRIEVAL CONFIGURATION ==========

# Thresholds are per call site
CONTEXT_SIMILARITY_THRESHOLD = 0.6   # loose, exploratory context
SEARCH_SIMILARITY_THRESHOLD = 0.75   # interactive semantic search
REPORT_SIMILARITY_THRESHOLD = 0.78   # report synthesis

CONTEXT_MAX_CHUNKS = 10
SEARCH_MAX_RESULTS = 10


# ========== LLM CONFIGURATION ==========

LLM_MODEL = "gpt-4o-mini"
LLM_TEMPERATURE = 0.7
LLM_MAX_TOKENS = 4000
LLM_TIMEOUT_SECONDS = 90.0

# Merged retrieval context budget in the report prompt
REPORT_CONTEXT_MAX_CHARS = 4000

# Per-document content preview in the report prompt
DOCUMENT_PREVIEW_CHARS = 1500


# ========== SYSTEM CONSTRAINTS ==========

INDEXING_TIMEOUT_SECONDS = 300.0
INDEXING_CONCURRENCY = 3
REPORT_TIMEOUT_SECONDS = 120.0


# ========== VECTOR BACKEND ==========

VECTOR_BACKEND = "memory"  # "memory" or "qdrant"
QDRANT_COLLECTION = "document_embeddings"


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. CHUNK_MAX_TOKENS = 1000, CHUNK_OVERLAP_TOKENS = 200:
   - Paragraph-first packing keeps related sentences together
   - 20% overlap keeps a clause that straddles two chunks retrievable

2. Per-call-site similarity thresholds:
   - 0.6 for context assembly (recall over precision)
   - 0.75 for interactive search
   - 0.78 for report synthesis
   - 0.9+ would mean near-duplicate; no call site uses it

3. Exact cosine search in memory:
   - Moderate corpora per project, no recall loss
   - Qdrant backend available when the corpus outgrows memory

4. Sequential embedding batches:
   - Upstream rate limits matter more than latency here
   - Output order equals input order by construction
"""


class Settings(BaseSettings):
    """Runtime settings, read from the environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Credentials
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None

    # Embeddings
    embedding_model: str = EMBEDDING_MODEL
    embedding_dimension: Optional[int] = None
    embedding_batch_size: int = EMBEDDING_BATCH_SIZE
    embedding_max_chars: int = EMBEDDING_MAX_CHARS
    embedding_timeout_seconds: float = EMBEDDING_TIMEOUT_SECONDS

    # Completions
    ai_enabled: bool = True
    llm_model: str = LLM_MODEL
    llm_temperature: float = LLM_TEMPERATURE
    llm_max_tokens: int = LLM_MAX_TOKENS
    llm_timeout_seconds: float = LLM_TIMEOUT_SECONDS

    # Chunking
    chunk_max_tokens: int = CHUNK_MAX_TOKENS
    chunk_overlap_tokens: int = CHUNK_OVERLAP_TOKENS
    chars_per_token: int = CHARS_PER_TOKEN
    min_chunk_chars: int = MIN_CHUNK_CHARS
    min_index_chars: int = MIN_INDEX_CHARS
    max_document_characters: int = MAX_DOCUMENT_CHARACTERS

    # Retrieval
    context_similarity_threshold: float = CONTEXT_SIMILARITY_THRESHOLD
    search_similarity_threshold: float = SEARCH_SIMILARITY_THRESHOLD
    report_similarity_threshold: float = REPORT_SIMILARITY_THRESHOLD
    context_max_chunks: int = CONTEXT_MAX_CHUNKS
    search_max_results: int = SEARCH_MAX_RESULTS

    # Report synthesis
    report_context_max_chars: int = REPORT_CONTEXT_MAX_CHARS
    document_preview_chars: int = DOCUMENT_PREVIEW_CHARS
    report_timeout_seconds: float = REPORT_TIMEOUT_SECONDS

    # Indexing
    indexing_timeout_seconds: float = INDEXING_TIMEOUT_SECONDS
    indexing_concurrency: int = INDEXING_CONCURRENCY

    # Vector backend
    vector_backend: str = VECTOR_BACKEND
    qdrant_url: Optional[str] = None
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = QDRANT_COLLECTION

    # Observability
    posthog_api_key: Optional[str] = None
    posthog_host: str = "https://app.posthog.com"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def resolved_embedding_dimension(self) -> int:
        """
        Dimension the vector store must match exactly.
        """
        if self.embedding_dimension:
            return self.embedding_dimension

        try:
            return EMBEDDING_DIMENSIONS[self.embedding_model]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported embedding model: {self.embedding_model}. "
                f"Set EMBEDDING_DIMENSION explicitly."
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
