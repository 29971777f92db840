"""
Extraction pipeline controller.

Drives one document through the states

    INIT -> CHUNKING -> EXTRACTING -> (ABORTED | AGGREGATING) -> FILTERING -> DONE

Chunks are extracted strictly one at a time, in order, with a pacing delay
between them. Chunk-level failures are folded into counters; only input
validation and a quota abort with nothing extracted escape as exceptions.
The pipeline reads the record store once and never writes to it.
"""
import asyncio
import time
from typing import Optional
from uuid import uuid4

import structlog

from offering_ingest.exceptions import InputValidationError, QuotaExhaustedError
from offering_ingest.models.domain import (
    Chunk,
    ChunkContext,
    ChunkOutcome,
    ChunkResult,
    Document,
    ErrorCode,
    PipelineConfig,
    PipelineRun,
    PipelineState,
    RunSummary,
)
from offering_ingest.pipeline.aggregator import merge_candidates
from offering_ingest.pipeline.existing_filter import build_existing_keys, filter_existing
from offering_ingest.repositories.base import RecordStore
from offering_ingest.services.chunker import split_text, truncate_to_page_budget
from offering_ingest.services.retry import ChunkExtractor, RetryCoordinator

logger = structlog.get_logger(__name__)


class ExtractionPipeline:
    """
    Sequential chunked extraction with retry, pacing and store dedup.

    Args:
        config: Chunking, pacing, limits and retry configuration
        extractor: Chunk extractor, normally an ExtractionClient
        record_store: Store consulted for existing names when a run opts in
    """

    def __init__(
        self,
        config: PipelineConfig,
        extractor: ChunkExtractor,
        record_store: Optional[RecordStore] = None,
    ) -> None:
        self.config = config
        self.extractor = extractor
        self.record_store = record_store
        self.retry = RetryCoordinator(
            extractor,
            max_retries=config.extraction.max_retries,
            retry_delay_seconds=config.extraction.retry_delay_seconds,
        )
        self.logger = logger.bind(component="extraction_pipeline")

    async def run(
        self, document: Document, cancel_event: Optional[asyncio.Event] = None
    ) -> RunSummary:
        """
        Extract offerings from a document.

        Args:
            document: Price list text and processing options
            cancel_event: Once set, no further chunk extraction is started

        Returns:
            Run summary with the insertable records and chunk counters

        Raises:
            InputValidationError: Text is empty or too large
            QuotaExhaustedError: Quota ran out before any record was extracted
            RepositoryError: Existing names could not be read from the store
        """
        start_time = time.time()
        run = PipelineRun()
        run_logger = self.logger.bind(
            run_id=uuid4().hex[:12], source_id=document.source_id
        )

        # INIT
        text = self._prepare_text(document, run_logger)
        existing_keys = await self._load_existing_keys(document, run_logger)

        # CHUNKING
        self._transition(run, PipelineState.CHUNKING, run_logger)
        chunks = self._build_chunks(text, run_logger)
        run.chunks_total = len(chunks)

        run_logger.info(
            "Starting extraction",
            chunk_count=len(chunks),
            text_length=len(text),
            locale=document.locale.value,
            check_duplicates=existing_keys is not None,
        )

        # EXTRACTING
        self._transition(run, PipelineState.EXTRACTING, run_logger)
        await self._extract_chunks(document, chunks, run, cancel_event, run_logger)

        if run.aborted:
            self._transition(run, PipelineState.ABORTED, run_logger)
            if run.record_count == 0:
                run_logger.error(
                    "Extraction quota exhausted before any offerings were extracted"
                )
                raise QuotaExhaustedError(
                    "Extraction quota exhausted before any offerings were extracted",
                    summary=self._build_summary(run, [], 0),
                )
            run_logger.warning(
                "Extraction quota exhausted, keeping partial results",
                records_so_far=run.record_count,
            )

        # AGGREGATING
        self._transition(run, PipelineState.AGGREGATING, run_logger)
        merged = merge_candidates(run.chunk_results)

        # FILTERING
        self._transition(run, PipelineState.FILTERING, run_logger)
        filtered = filter_existing(merged, existing_keys)

        self._transition(run, PipelineState.DONE, run_logger)
        summary = self._build_summary(
            run, filtered.to_insert, filtered.duplicates_skipped
        )

        run_logger.info(
            "Extraction completed",
            chunks_processed=summary.chunks_processed,
            chunks_failed=summary.chunks_failed,
            candidates=run.record_count,
            unique=len(merged),
            new_records=summary.count,
            duplicates_skipped=summary.duplicates_skipped,
            cancelled=summary.cancelled,
            outcomes=[outcome.value for outcome in summary.chunk_outcomes],
            tokens_used=summary.tokens_used,
            error_code=summary.error_code.value if summary.error_code else None,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )
        return summary

    def _prepare_text(self, document: Document, run_logger) -> str:
        text = document.text
        if not text or not text.strip():
            raise InputValidationError.single("text", "Price list content is required")

        options = document.options
        if options.truncate:
            truncated = truncate_to_page_budget(
                text,
                max_pages=options.max_pages,
                chars_per_page=self.config.chars_per_page,
                threshold=self.config.truncate_threshold_chars,
            )
            if len(truncated) < len(text):
                run_logger.info(
                    "Truncated content to page budget",
                    original_length=len(text),
                    truncated_length=len(truncated),
                    max_pages=options.max_pages,
                )
            text = truncated

        if len(text) > self.config.max_text_length:
            raise InputValidationError.single(
                "text",
                f"Content too large (max {self.config.max_text_length} characters)",
            )
        return text

    async def _load_existing_keys(
        self, document: Document, run_logger
    ) -> Optional[set[str]]:
        if not document.options.check_duplicates:
            return None
        if not document.source_id:
            run_logger.info("Duplicate check skipped: no source id")
            return None
        if self.record_store is None:
            run_logger.warning("Duplicate check skipped: no record store configured")
            return None

        names = await self.record_store.list_existing_names(document.source_id)
        existing_keys = build_existing_keys(names)
        run_logger.info("Loaded existing offerings", existing=len(existing_keys))
        return existing_keys

    def _build_chunks(self, text: str, run_logger) -> list[Chunk]:
        chunks = split_text(text, self.config.max_chunk_size)
        if len(chunks) > self.config.max_chunks:
            run_logger.warning(
                "Limiting chunk count",
                chunk_count=len(chunks),
                max_chunks=self.config.max_chunks,
            )
            chunks = chunks[: self.config.max_chunks]
        return chunks

    async def _extract_chunks(
        self,
        document: Document,
        chunks: list[Chunk],
        run: PipelineRun,
        cancel_event: Optional[asyncio.Event],
        run_logger,
    ) -> None:
        total = len(chunks)

        for position, chunk in enumerate(chunks):
            if cancel_event is not None and cancel_event.is_set():
                run.cancelled = True
                run_logger.warning("Run cancelled", next_chunk=chunk.index)
                return

            context = ChunkContext(
                index=chunk.index,
                total=total,
                source_name=document.source_name,
                locale=document.locale,
            )

            try:
                result = await self.retry.run(chunk, context)
            except Exception as e:
                run_logger.error(
                    "Unexpected error processing chunk",
                    chunk_index=chunk.index,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                result = ChunkResult(
                    chunk_index=chunk.index,
                    error_code=ErrorCode.UNEXPECTED_ERROR,
                    error_message=str(e),
                )

            run.tokens_used += result.tokens_used

            if result.is_terminal:
                run.aborted = True
                run.error_code = ErrorCode.QUOTA_EXHAUSTED
                run.outcomes.append(ChunkOutcome.ABORTED)
                run_logger.error(
                    "Quota exhausted, stopping extraction",
                    chunk_index=chunk.index,
                    remaining_chunks=total - position - 1,
                )
                return

            if result.succeeded:
                run.chunks_processed += 1
                run.chunk_results.append(result.records)
                run.outcomes.append(ChunkOutcome.SUCCEEDED)
            else:
                run.chunks_failed += 1
                run.outcomes.append(ChunkOutcome.FAILED)

            if position < total - 1 and await self._pace(cancel_event):
                run.cancelled = True
                run_logger.warning("Run cancelled", next_chunk=chunk.index + 1)
                return

    async def _pace(self, cancel_event: Optional[asyncio.Event]) -> bool:
        """Wait the inter-chunk delay; True if cancellation arrived meanwhile"""
        delay = self.config.chunk_delay_seconds
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if delay <= 0:
            return cancel_event.is_set()
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _transition(run: PipelineRun, state: PipelineState, run_logger) -> None:
        run_logger.debug("Pipeline state changed", previous=run.state.value, state=state.value)
        run.state = state

    @staticmethod
    def _build_summary(
        run: PipelineRun, records: list, duplicates_skipped: int
    ) -> RunSummary:
        return RunSummary(
            records=records,
            chunks_total=run.chunks_total,
            chunks_processed=run.chunks_processed,
            chunks_failed=run.chunks_failed,
            duplicates_skipped=duplicates_skipped,
            error_code=run.error_code,
            cancelled=run.cancelled,
            tokens_used=run.tokens_used,
            chunk_outcomes=list(run.outcomes),
        )
