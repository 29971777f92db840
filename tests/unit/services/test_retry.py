"""
Unit tests for RetryCoordinator.
"""
from unittest.mock import AsyncMock, patch

import pytest

from offering_ingest.exceptions import (
    ExtractionTimeoutError,
    QuotaExhaustedError,
    RateLimitError,
    ServiceError,
)
from offering_ingest.models.domain import (
    CandidateRecord,
    Chunk,
    ChunkContext,
    ChunkExtraction,
    ErrorCode,
)
from offering_ingest.services.retry import RetryCoordinator


@pytest.fixture
def chunk():
    return Chunk(text="Brazil Cerrado Natural 60 SAR", index=2, total=5)


@pytest.fixture
def context():
    return ChunkContext(index=2, total=5)


@pytest.fixture
def records():
    return [CandidateRecord(name="Brazil Cerrado")]


class TestRetryCoordinator:
    """Test retry, backoff and terminal short-circuit"""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, chunk, context, records):
        extractor = AsyncMock()
        extractor.extract.return_value = ChunkExtraction(records=records, input_tokens=80, output_tokens=20)

        result = await RetryCoordinator(extractor, retry_delay_seconds=0).run(chunk, context)

        assert result.succeeded
        assert result.records == records
        assert result.attempts == 1
        assert result.chunk_index == 2
        assert result.tokens_used == 100
        extractor.extract.assert_awaited_once_with(chunk.text, context)

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, chunk, context, records):
        extractor = AsyncMock()
        extractor.extract.side_effect = [RateLimitError("Rate limit exceeded"), ChunkExtraction(records=records)]

        result = await RetryCoordinator(extractor, retry_delay_seconds=0).run(chunk, context)

        assert result.succeeded
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_reported_not_raised(self, chunk, context):
        extractor = AsyncMock()
        extractor.extract.side_effect = ExtractionTimeoutError("Request timeout after 120s")

        result = await RetryCoordinator(extractor, max_retries=2, retry_delay_seconds=0).run(chunk, context)

        assert not result.succeeded
        assert not result.is_terminal
        assert result.error_code == ErrorCode.TIMEOUT
        assert result.attempts == 3
        assert extractor.extract.await_count == 3

    @pytest.mark.asyncio
    async def test_quota_exhaustion_not_retried(self, chunk, context):
        extractor = AsyncMock()
        extractor.extract.side_effect = QuotaExhaustedError("Payment required")

        with patch("offering_ingest.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await RetryCoordinator(extractor).run(chunk, context)

        assert result.is_terminal
        assert result.attempts == 1
        assert extractor.extract.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quota_exhaustion_during_retry(self, chunk, context):
        extractor = AsyncMock()
        extractor.extract.side_effect = [ServiceError("HTTP 500", status_code=500), QuotaExhaustedError()]

        result = await RetryCoordinator(extractor, retry_delay_seconds=0).run(chunk, context)

        assert result.is_terminal
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_linear_backoff(self, chunk, context):
        """Delay before retry n is retry_delay_seconds * n"""
        extractor = AsyncMock()
        extractor.extract.side_effect = ServiceError("HTTP 500", status_code=500)

        with patch("offering_ingest.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await RetryCoordinator(extractor, max_retries=2, retry_delay_seconds=2.0).run(chunk, context)

        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_no_retries(self, chunk, context):
        extractor = AsyncMock()
        extractor.extract.side_effect = RateLimitError("Rate limit exceeded")

        result = await RetryCoordinator(extractor, max_retries=0).run(chunk, context)

        assert result.attempts == 1
        assert result.error_code == ErrorCode.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, chunk, context):
        extractor = AsyncMock()
        extractor.extract.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await RetryCoordinator(extractor).run(chunk, context)

    def test_rejects_negative_retries(self):
        with pytest.raises(ValueError):
            RetryCoordinator(AsyncMock(), max_retries=-1)
