"""
Cross-chunk merge of candidate records.
"""
from collections.abc import Iterable

from offering_ingest.models.domain import CandidateRecord


def merge_candidates(
    chunk_results: Iterable[Iterable[CandidateRecord]],
) -> list[CandidateRecord]:
    """
    Concatenate chunk results in order and keep the first record per name.

    Names are compared by normalized key; later duplicates are dropped and the
    first occurrence keeps its position and spelling.
    """
    seen: set[str] = set()
    merged: list[CandidateRecord] = []

    for records in chunk_results:
        for record in records:
            if not record.name or not record.name.strip():
                continue
            key = record.normalized_key
            if key in seen:
                continue
            seen.add(key)
            merged.append(record)

    return merged
