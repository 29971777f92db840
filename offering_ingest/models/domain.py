"""
Core domain models for the offering ingestion pipeline.

All pipeline data structures use Pydantic for validation and serialization.
Inputs and chunks are frozen; the only mutable model is PipelineRun, which is
owned by a single orchestrator invocation.
"""
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Locale(str, Enum):
    """Instruction template locale"""

    ARABIC = "ar"
    ENGLISH = "en"


class ErrorCode(str, Enum):
    """Error codes reported per chunk and in the run summary"""

    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    SERVICE_ERROR = "SERVICE_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class PipelineState(str, Enum):
    """Orchestrator states"""

    INIT = "init"
    CHUNKING = "chunking"
    EXTRACTING = "extracting"
    ABORTED = "aborted"
    AGGREGATING = "aggregating"
    FILTERING = "filtering"
    DONE = "done"


class ChunkOutcome(str, Enum):
    """Final outcome of one attempted chunk"""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


def normalize_key(name: str) -> str:
    """Identity key shared by intra-run dedup and store membership checks"""
    return name.strip().lower()


# ============================================================================
# Input Models
# ============================================================================


class ProcessingOptions(BaseModel):
    """Per-document processing switches"""

    truncate: bool = Field(default=False, description="Cap text to a page budget")
    max_pages: int = Field(default=50, ge=1, le=1000, description="Page budget")
    check_duplicates: bool = Field(
        default=False, description="Skip names already in the record store"
    )

    model_config = ConfigDict(frozen=True)


class Document(BaseModel):
    """Immutable price list text handed to the pipeline"""

    text: str = Field(..., description="Plain text of the price list")
    source_id: Optional[str] = Field(None, description="Owning supplier id")
    source_name: str = Field(default="Unknown", description="Supplier label")
    locale: Locale = Field(default=Locale.ARABIC)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)

    model_config = ConfigDict(frozen=True)


class Chunk(BaseModel):
    """Contiguous, non-overlapping slice of a document"""

    text: str
    index: int = Field(..., ge=0)
    total: int = Field(..., ge=1)
    start: int = Field(default=0, ge=0, description="Offset into the document")

    model_config = ConfigDict(frozen=True)

    @property
    def end(self) -> int:
        return self.start + len(self.text)


class ChunkContext(BaseModel):
    """Everything the extraction client needs to phrase one request"""

    index: int = Field(..., ge=0)
    total: int = Field(..., ge=1)
    source_name: str = "Unknown"
    locale: Locale = Locale.ARABIC

    model_config = ConfigDict(frozen=True)

    @property
    def is_multi_part(self) -> bool:
        return self.total > 1


# ============================================================================
# Extraction Result Models
# ============================================================================


class CandidateRecord(BaseModel):
    """One coffee offering proposed by the extraction service"""

    name: str = Field(..., min_length=1, max_length=255)
    origin: Optional[str] = Field(None, max_length=100)
    region: Optional[str] = Field(None, max_length=100)
    process: Optional[str] = Field(None, max_length=100)
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, max_length=3)
    score: Optional[int] = Field(None, ge=0, le=100)
    altitude: Optional[str] = Field(None, max_length=50)
    variety: Optional[str] = Field(None, max_length=100)
    flavor: Optional[str] = Field(None, max_length=500)
    available: bool = True

    @property
    def normalized_key(self) -> str:
        return normalize_key(self.name)


class ChunkExtraction(BaseModel):
    """Records and token usage of one extraction call"""

    records: list[CandidateRecord] = Field(default_factory=list)
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ChunkResult(BaseModel):
    """Outcome of the retry-wrapped extraction of one chunk"""

    chunk_index: int = Field(..., ge=0)
    records: list[CandidateRecord] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)
    error_code: Optional[ErrorCode] = None
    attempts: int = Field(default=1, ge=0)
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error_code is None

    @property
    def is_terminal(self) -> bool:
        return self.error_code == ErrorCode.QUOTA_EXHAUSTED


class FilterResult(BaseModel):
    """Candidates left after removing names already in the store"""

    to_insert: list[CandidateRecord] = Field(default_factory=list)
    duplicates_skipped: int = Field(default=0, ge=0)


class PipelineRun(BaseModel):
    """Mutable accumulator for one orchestrator invocation"""

    state: PipelineState = PipelineState.INIT
    chunks_total: int = Field(default=0, ge=0)
    outcomes: list[ChunkOutcome] = Field(default_factory=list)
    chunk_results: list[list[CandidateRecord]] = Field(default_factory=list)
    chunks_processed: int = Field(default=0, ge=0)
    chunks_failed: int = Field(default=0, ge=0)
    aborted: bool = False
    cancelled: bool = False
    error_code: Optional[ErrorCode] = None
    tokens_used: int = Field(default=0, ge=0)

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.chunk_results)


class RunSummary(BaseModel):
    """Caller-facing result of one pipeline invocation"""

    records: list[CandidateRecord] = Field(default_factory=list)
    chunks_total: int = Field(default=0, ge=0)
    chunks_processed: int = Field(default=0, ge=0)
    chunks_failed: int = Field(default=0, ge=0)
    duplicates_skipped: int = Field(default=0, ge=0)
    error_code: Optional[ErrorCode] = None
    cancelled: bool = False
    tokens_used: int = Field(default=0, ge=0)
    chunk_outcomes: list[ChunkOutcome] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


# ============================================================================
# Processing Configuration Models
# ============================================================================


class ExtractionConfig(BaseModel):
    """Extraction service configuration for one client"""

    api_url: str = Field(default="https://api.anthropic.com/v1/messages")
    model: str = Field(default="claude-3-haiku-20240307")
    max_tokens: int = Field(default=8000, ge=100, le=16000)
    temperature: float = Field(default=0.1, ge=0.0, le=1.0)
    timeout_seconds: float = Field(default=120.0, gt=0, le=600)
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_delay_seconds: float = Field(default=2.0, ge=0.0)


class PipelineConfig(BaseModel):
    """Overall pipeline processing configuration"""

    max_chunk_size: int = Field(default=500_000, ge=1)
    max_chunks: int = Field(default=10, ge=1)
    chunk_delay_seconds: float = Field(default=1.0, ge=0.0)
    chars_per_page: int = Field(default=2000, ge=1)
    truncate_threshold_chars: int = Field(default=100_000, ge=0)
    max_text_length: int = Field(default=10_000_000, ge=1)

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)


# ============================================================================
# API Models
# ============================================================================


class ExtractionRequest(BaseModel):
    """Request to extract offerings from price list text"""

    text: str = Field(..., min_length=1, description="Plain text of the price list")
    source_id: Optional[UUID] = Field(None, description="Supplier id")
    source_name: str = Field(default="Unknown", min_length=1, max_length=255)
    locale: Locale = Field(default=Locale.ARABIC)
    truncate: bool = Field(default=False)
    max_pages: int = Field(default=50, ge=1, le=1000)
    check_duplicates: bool = Field(default=False)

    def to_document(self) -> Document:
        return Document(
            text=self.text,
            source_id=str(self.source_id) if self.source_id else None,
            source_name=self.source_name,
            locale=self.locale,
            options=ProcessingOptions(
                truncate=self.truncate,
                max_pages=self.max_pages,
                check_duplicates=self.check_duplicates,
            ),
        )


class ExtractionResponse(BaseModel):
    """Response envelope for a completed run"""

    success: bool = True
    records: list[CandidateRecord] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)
    chunks_processed: int = Field(default=0, ge=0)
    chunks_failed: int = Field(default=0, ge=0)
    duplicates_skipped: int = Field(default=0, ge=0)
    error_code: Optional[ErrorCode] = None
    inserted: int = Field(default=0, ge=0)
    cancelled: bool = False

    @classmethod
    def from_summary(cls, summary: RunSummary, inserted: int = 0) -> "ExtractionResponse":
        return cls(
            success=True,
            records=summary.records,
            count=summary.count,
            chunks_processed=summary.chunks_processed,
            chunks_failed=summary.chunks_failed,
            duplicates_skipped=summary.duplicates_skipped,
            error_code=summary.error_code,
            inserted=inserted,
            cancelled=summary.cancelled,
        )


__all__ = [
    # Enums
    "Locale",
    "ErrorCode",
    "PipelineState",
    "ChunkOutcome",
    # Core models
    "normalize_key",
    "ProcessingOptions",
    "Document",
    "Chunk",
    "ChunkContext",
    "CandidateRecord",
    "ChunkExtraction",
    "ChunkResult",
    "FilterResult",
    "PipelineRun",
    "RunSummary",
    # Config models
    "ExtractionConfig",
    "PipelineConfig",
    # API models
    "ExtractionRequest",
    "ExtractionResponse",
]
