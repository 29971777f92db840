"""
Unit tests for domain models and the exception hierarchy.
"""
import pytest
from pydantic import ValidationError

from offering_ingest.exceptions import (
    ExtractionError,
    InputValidationError,
    OfferingIngestError,
    QuotaExhaustedError,
    ServiceError,
    TransportError,
)
from offering_ingest.models.domain import (
    CandidateRecord,
    Chunk,
    ChunkContext,
    ChunkResult,
    ErrorCode,
    ExtractionRequest,
    ExtractionResponse,
    Locale,
    PipelineRun,
    RunSummary,
    normalize_key,
)


class TestCandidateRecord:
    """Test CandidateRecord model"""

    def test_normalized_key(self):
        assert CandidateRecord(name="  Yirgacheffe ").normalized_key == "yirgacheffe"
        assert normalize_key("KENYA AA") == "kenya aa"

    def test_defaults(self):
        record = CandidateRecord(name="Guji")

        assert record.available is True
        assert record.price is None
        assert record.score is None

    @pytest.mark.parametrize(
        "fields",
        [{"name": ""}, {"name": "x" * 256}, {"name": "A", "score": 101}, {"name": "A", "price": -1}],
    )
    def test_bounds(self, fields):
        with pytest.raises(ValidationError):
            CandidateRecord(**fields)


class TestChunkModels:
    """Test Chunk, ChunkContext and ChunkResult"""

    def test_chunk_end(self):
        assert Chunk(text="abcd", index=1, total=3, start=10).end == 14

    def test_chunk_is_frozen(self):
        chunk = Chunk(text="abcd", index=0, total=1)

        with pytest.raises(ValidationError):
            chunk.text = "changed"

    def test_context_multi_part(self):
        assert ChunkContext(index=0, total=2).is_multi_part is True
        assert ChunkContext(index=0, total=1).is_multi_part is False

    def test_chunk_result_states(self):
        assert ChunkResult(chunk_index=0).succeeded is True
        failed = ChunkResult(chunk_index=0, error_code=ErrorCode.TIMEOUT)
        assert failed.succeeded is False
        assert failed.is_terminal is False
        assert ChunkResult(chunk_index=0, error_code=ErrorCode.QUOTA_EXHAUSTED).is_terminal is True

    def test_run_record_count(self):
        run = PipelineRun(chunk_results=[[CandidateRecord(name="A")], [], [CandidateRecord(name="B")]])

        assert run.record_count == 2


class TestExtractionRequest:
    """Test the API input contract"""

    def test_defaults(self):
        request = ExtractionRequest(text="Guji 85")

        assert request.source_name == "Unknown"
        assert request.locale == Locale.ARABIC
        assert request.max_pages == 50
        assert request.truncate is False
        assert request.check_duplicates is False

    def test_to_document(self):
        request = ExtractionRequest(
            text="Guji 85",
            source_id="3f1c2a9e-5b7d-4c1e-9a2f-8d6b0e4c7a11",
            source_name="Acme",
            locale="en",
            truncate=True,
            max_pages=5,
            check_duplicates=True,
        )

        document = request.to_document()

        assert document.source_id == "3f1c2a9e-5b7d-4c1e-9a2f-8d6b0e4c7a11"
        assert document.locale == Locale.ENGLISH
        assert document.options.truncate is True
        assert document.options.max_pages == 5
        assert document.options.check_duplicates is True

    @pytest.mark.parametrize(
        "fields",
        [
            {"text": ""},
            {"text": "a", "source_id": "not-a-uuid"},
            {"text": "a", "max_pages": 0},
            {"text": "a", "max_pages": 1001},
            {"text": "a", "locale": "fr"},
            {"text": "a", "source_name": ""},
        ],
    )
    def test_invalid(self, fields):
        with pytest.raises(ValidationError):
            ExtractionRequest(**fields)


class TestExtractionResponse:
    """Test the API output contract"""

    def test_from_summary(self):
        summary = RunSummary(
            records=[CandidateRecord(name="Guji")],
            chunks_total=3,
            chunks_processed=1,
            chunks_failed=0,
            duplicates_skipped=2,
            error_code=ErrorCode.QUOTA_EXHAUSTED,
        )

        response = ExtractionResponse.from_summary(summary, inserted=1)

        assert response.success is True
        assert response.count == 1
        assert response.chunks_processed == 1
        assert response.duplicates_skipped == 2
        assert response.error_code == ErrorCode.QUOTA_EXHAUSTED
        assert response.inserted == 1
        assert response.model_dump(mode="json")["error_code"] == "QUOTA_EXHAUSTED"


class TestExceptions:
    """Test exception hierarchy and serialization"""

    def test_input_validation_error(self):
        error = InputValidationError.single("text", "Price list content is required")

        assert error.field_errors == [{"field": "text", "message": "Price list content is required"}]
        assert "text" in error.message
        assert isinstance(error, OfferingIngestError)

    def test_extraction_error_details(self):
        error = TransportError("connection reset", chunk_index=3)

        assert error.error_code == ErrorCode.TRANSPORT_ERROR
        assert error.retryable is True
        assert error.to_dict()["details"] == {"error_code": "TRANSPORT_ERROR", "chunk_index": 3}

    def test_service_error_status(self):
        error = ServiceError("HTTP 503", status_code=503, chunk_index=0)

        assert error.status_code == 503
        assert error.details["status_code"] == 503
        assert isinstance(error, ExtractionError)

    def test_quota_error_is_terminal(self):
        error = QuotaExhaustedError(summary=RunSummary())

        assert error.retryable is False
        assert error.error_code == ErrorCode.QUOTA_EXHAUSTED
        assert error.summary.count == 0

    def test_to_dict_original_exception(self):
        cause = ValueError("bad")
        error = OfferingIngestError("wrapped", original_exception=cause)

        assert error.to_dict()["original_exception"] == "bad"
        assert error.to_dict()["error_type"] == "OfferingIngestError"
