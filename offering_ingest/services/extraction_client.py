"""
Extraction service client: one Claude Messages API call per chunk.

Classifies HTTP outcomes into the extraction error taxonomy and turns the
free-text response into coerced CandidateRecords. An unparseable response is
not an error; it means no offerings were found in that chunk.
"""
import asyncio
import json
import re
from typing import Any, Optional

import httpx
import structlog

from offering_ingest.exceptions import (
    ConfigurationError,
    ExtractionTimeoutError,
    QuotaExhaustedError,
    RateLimitError,
    ServiceError,
    TransportError,
)
from offering_ingest.models.domain import ChunkContext, ChunkExtraction, ExtractionConfig
from offering_ingest.services.normalization import coerce_records
from offering_ingest.services.prompts import build_system_prompt, build_user_message

logger = structlog.get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

FENCE_OPENERS = ("```json", "```JSON", "```")
FENCE_CLOSER = "```"

# Greedy: from the first "[" to the last "]"
ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)


def strip_code_fences(content: str) -> str:
    """Remove a leading and trailing markdown code fence if present"""
    cleaned = content.strip()
    for opener in FENCE_OPENERS:
        if cleaned.startswith(opener):
            cleaned = cleaned[len(opener):]
            break
    if cleaned.endswith(FENCE_CLOSER):
        cleaned = cleaned[: -len(FENCE_CLOSER)]
    return cleaned.strip()


def parse_response_content(content: Optional[str]) -> list[Any]:
    """
    Locate and parse the JSON array in a free-text extraction response.

    Tries the greedy [...] match first, then the whole cleaned body.

    Returns:
        Parsed array items, or an empty list when nothing parses to an array
    """
    if not content:
        return []

    cleaned = strip_code_fences(content)

    candidates = []
    match = ARRAY_PATTERN.search(cleaned)
    if match:
        candidates.append(match.group(0))
    candidates.append(cleaned)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return parsed if isinstance(parsed, list) else []

    return []


class ExtractionClient:
    """
    Async client for the extraction service.

    Features:
    - Hard per-call timeout
    - HTTP status classification into retryable and terminal errors
    - Lenient response parsing and field coercion
    - Token usage tracking
    """

    def __init__(
        self,
        config: ExtractionConfig,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError(
                "Extraction API key is not configured", config_key="EXTRACTION_API_KEY"
            )

        self.config = config
        self.api_key = api_key
        self.logger = logger.bind(service="extraction_client")

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
        )

        # Usage tracking
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._total_requests = 0

        self.logger.info(
            "Extraction client initialized",
            model=config.model,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
        )

    async def extract(
        self, chunk_text: str, context: ChunkContext
    ) -> ChunkExtraction:
        """
        Extract candidate offerings from one chunk.

        Args:
            chunk_text: Chunk content
            context: Chunk position, source label and locale

        Returns:
            Coerced candidate records, possibly empty, with this call's token usage

        Raises:
            ExtractionTimeoutError: Call exceeded the hard timeout
            RateLimitError: Service answered 429
            QuotaExhaustedError: Service answered 402
            ServiceError: Any other non-success status
            TransportError: Network failure
        """
        request_logger = self.logger.bind(
            chunk_index=context.index, chunk_total=context.total
        )
        request_logger.info("Requesting chunk extraction", chunk_size=len(chunk_text))

        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": build_system_prompt(context.locale),
            "messages": [
                {"role": "user", "content": build_user_message(chunk_text, context)}
            ],
        }

        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        self._total_requests += 1

        try:
            response = await asyncio.wait_for(
                self.client.post(self.config.api_url, json=payload, headers=headers),
                timeout=self.config.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            request_logger.warning(
                "Extraction request timed out", timeout=self.config.timeout_seconds
            )
            raise ExtractionTimeoutError(
                f"Request timeout after {self.config.timeout_seconds}s",
                chunk_index=context.index,
                original_exception=e,
            ) from e
        except httpx.TransportError as e:
            request_logger.warning("Extraction transport failure", error=str(e))
            raise TransportError(
                f"Transport failure: {e}",
                chunk_index=context.index,
                original_exception=e,
            ) from e

        self._raise_for_status(response, context)

        content, usage = self._read_content(response, request_logger)
        self._total_input_tokens += usage["input_tokens"]
        self._total_output_tokens += usage["output_tokens"]

        items = parse_response_content(content)
        if content and not items:
            request_logger.warning(
                "No offerings parsed from extraction response",
                response_preview=content[:200],
            )

        records = coerce_records(items)
        request_logger.info(
            "Chunk extraction completed",
            items_parsed=len(items),
            records=len(records),
            **usage,
        )
        return ChunkExtraction(records=records, **usage)

    def _raise_for_status(self, response: httpx.Response, context: ChunkContext) -> None:
        status_code = response.status_code
        if 200 <= status_code < 300:
            return

        self.logger.error(
            "Extraction service error",
            chunk_index=context.index,
            status_code=status_code,
            body_preview=response.text[:200],
        )

        if status_code == 429:
            raise RateLimitError("Rate limit exceeded", chunk_index=context.index)
        if status_code == 402:
            raise QuotaExhaustedError("Payment required", chunk_index=context.index)
        raise ServiceError(
            f"Extraction service error: HTTP {status_code}",
            status_code=status_code,
            chunk_index=context.index,
        )

    def _read_content(
        self, response: httpx.Response, request_logger
    ) -> tuple[Optional[str], dict[str, int]]:
        """Return the text blocks and token usage of a Messages API response"""
        usage = {"input_tokens": 0, "output_tokens": 0}
        try:
            data = response.json()
        except ValueError:
            request_logger.warning("Extraction response envelope is not JSON")
            return None, usage

        if not isinstance(data, dict):
            return None, usage

        reported = data.get("usage")
        if not isinstance(reported, dict):
            reported = {}
        for key in usage:
            usage[key] = max(int(reported.get(key, 0) or 0), 0)

        blocks = data.get("content") or []
        texts = [
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        content = "".join(texts)
        if not content:
            request_logger.info("No content returned")
            return None, usage
        return content, usage

    def get_usage_statistics(self) -> dict[str, int]:
        """Get current usage statistics"""
        return {
            "total_requests": self._total_requests,
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
            "total_tokens": self._total_input_tokens + self._total_output_tokens,
        }

    async def close(self) -> None:
        """Close HTTP client and cleanup resources"""
        if self._owns_client:
            await self.client.aclose()
        self.logger.info("Extraction client closed", **self.get_usage_statistics())
