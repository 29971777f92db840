"""
Bounded retry with linear backoff around chunk extraction.
"""
import asyncio
from typing import Optional, Protocol

import structlog

from offering_ingest.exceptions import ExtractionError
from offering_ingest.models.domain import (
    Chunk,
    ChunkContext,
    ChunkExtraction,
    ChunkResult,
    ErrorCode,
)

logger = structlog.get_logger(__name__)


class ChunkExtractor(Protocol):
    async def extract(
        self, chunk_text: str, context: ChunkContext
    ) -> ChunkExtraction: ...


class RetryCoordinator:
    """
    Runs one chunk extraction with retries and terminal-error short-circuit.

    The first failure is followed by at most max_retries further attempts,
    each preceded by retry_delay_seconds * attempt. Quota exhaustion is
    returned immediately. Exhausted retries are reported in the result
    rather than raised.
    """

    def __init__(
        self,
        extractor: ChunkExtractor,
        max_retries: int = 2,
        retry_delay_seconds: float = 2.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self.extractor = extractor
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.logger = logger.bind(component="retry_coordinator")

    async def run(self, chunk: Chunk, context: ChunkContext) -> ChunkResult:
        chunk_logger = self.logger.bind(
            chunk_index=chunk.index, chunk_total=chunk.total
        )
        last_error: Optional[ExtractionError] = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.retry_delay_seconds * attempt
                chunk_logger.info("Retrying chunk", attempt=attempt, delay=delay)
                await asyncio.sleep(delay)

            try:
                extraction = await self.extractor.extract(chunk.text, context)
            except ExtractionError as e:
                last_error = e
                chunk_logger.warning(
                    "Chunk attempt failed",
                    attempt=attempt + 1,
                    error_code=e.error_code.value,
                    error=e.message,
                )
                if not e.retryable:
                    return ChunkResult(
                        chunk_index=chunk.index,
                        error_code=e.error_code,
                        attempts=attempt + 1,
                        error_message=e.message,
                    )
                continue

            return ChunkResult(
                chunk_index=chunk.index,
                records=extraction.records,
                tokens_used=extraction.total_tokens,
                attempts=attempt + 1,
            )

        chunk_logger.error(
            "All retries failed for chunk",
            attempts=self.max_retries + 1,
            error_code=last_error.error_code.value if last_error else None,
        )
        return ChunkResult(
            chunk_index=chunk.index,
            error_code=last_error.error_code if last_error else ErrorCode.SERVICE_ERROR,
            attempts=self.max_retries + 1,
            error_message=last_error.message if last_error else None,
        )
