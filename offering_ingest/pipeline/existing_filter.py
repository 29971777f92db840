"""
Removal of candidates already present in the record store.
"""
from collections.abc import Iterable
from typing import Optional

from offering_ingest.models.domain import CandidateRecord, FilterResult, normalize_key


def build_existing_keys(names: Iterable[Optional[str]]) -> set[str]:
    """Normalize names fetched from the store, ignoring blanks"""
    return {normalize_key(name) for name in names if name and name.strip()}


def filter_existing(
    candidates: list[CandidateRecord], existing_keys: Optional[set[str]]
) -> FilterResult:
    """
    Split candidates into new records and a count of store duplicates.

    Args:
        candidates: Deduplicated candidates in first-seen order
        existing_keys: Normalized names already stored, or None to skip the check

    Returns:
        FilterResult with insertable records and skipped count
    """
    if existing_keys is None:
        return FilterResult(to_insert=list(candidates), duplicates_skipped=0)

    to_insert = []
    duplicates_skipped = 0

    for candidate in candidates:
        if candidate.normalized_key in existing_keys:
            duplicates_skipped += 1
            continue
        to_insert.append(candidate)

    return FilterResult(to_insert=to_insert, duplicates_skipped=duplicates_skipped)
