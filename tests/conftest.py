"""
Shared fixtures for the offering ingestion test suite.
"""
from typing import Any, Optional

import pytest

from offering_ingest.models.domain import (
    CandidateRecord,
    ChunkContext,
    ChunkExtraction,
    ExtractionConfig,
    PipelineConfig,
)

SOURCE_ID = "3f1c2a9e-5b7d-4c1e-9a2f-8d6b0e4c7a11"


class ScriptedExtractor:
    """
    Extractor double that replays scripted outcomes per chunk index.

    Each outcome is either a list of records to return or an exception to
    raise. Once a chunk's script runs out, ``default`` is returned.
    """

    def __init__(
        self,
        script: Optional[dict[int, list[Any]]] = None,
        default: Optional[list[CandidateRecord]] = None,
        tokens_per_call: int = 0,
    ):
        self.script = {index: list(outcomes) for index, outcomes in (script or {}).items()}
        self.default = default or []
        self.tokens_per_call = tokens_per_call
        self.calls: list[ChunkContext] = []
        self.texts: list[str] = []
        self.closed = False

    async def extract(self, chunk_text: str, context: ChunkContext) -> ChunkExtraction:
        self.calls.append(context)
        self.texts.append(chunk_text)
        outcomes = self.script.get(context.index)
        outcome = outcomes.pop(0) if outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return ChunkExtraction(records=outcome, output_tokens=self.tokens_per_call)

    async def close(self) -> None:
        self.closed = True

    @property
    def attempted_indexes(self) -> list[int]:
        return [context.index for context in self.calls]


def offering(name: str, **fields) -> CandidateRecord:
    return CandidateRecord(name=name, **fields)


@pytest.fixture
def scripted_extractor():
    """Factory for ScriptedExtractor instances"""
    return ScriptedExtractor


@pytest.fixture
def make_offering():
    """Factory for CandidateRecords"""
    return offering


@pytest.fixture
def fast_config():
    """Pipeline configuration without pacing or backoff delays"""
    return PipelineConfig(
        max_chunk_size=100,
        max_chunks=10,
        chunk_delay_seconds=0,
        chars_per_page=40,
        truncate_threshold_chars=0,
        extraction=ExtractionConfig(max_retries=2, retry_delay_seconds=0),
    )


@pytest.fixture
def source_id():
    return SOURCE_ID


@pytest.fixture
def sample_offerings():
    """Offerings as a roaster price list would describe them"""
    return [
        CandidateRecord(
            name="Ethiopia Yirgacheffe Kochere",
            origin="Ethiopia",
            region="Yirgacheffe",
            process="Washed",
            price=95.0,
            currency="SAR",
            score=87,
            altitude="1900-2100 masl",
            variety="Heirloom",
            flavor="Jasmine, lemon, black tea",
        ),
        CandidateRecord(
            name="Colombia Huila Pink Bourbon",
            origin="Colombia",
            region="Huila",
            process="Natural",
            price=28.5,
            currency="USD",
            score=88,
            variety="Pink Bourbon",
        ),
    ]
