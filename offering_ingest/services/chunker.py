"""
Boundary-aware splitting of price list text into extraction-sized chunks.
"""
from offering_ingest.models.domain import Chunk

# A whitespace boundary is only used when it keeps at least this share of the step
MIN_BOUNDARY_RATIO = 0.8

BOUNDARY_CHARACTERS = ("\n", " ")


def _find_cut(text: str, cursor: int, end: int, min_cut: int) -> int:
    """Return the cut offset for the window text[cursor:end]"""
    for boundary in BOUNDARY_CHARACTERS:
        position = text.rfind(boundary, cursor, end)
        if position >= min_cut:
            # Boundary character stays with the earlier chunk
            return position + 1
    return end


def split_text(text: str, max_chunk_size: int) -> list[Chunk]:
    """
    Split text into ordered, non-overlapping chunks of at most max_chunk_size.

    Cuts prefer the last newline, then the last space, inside each window, but
    only when that boundary lies at or beyond 80% of the window; otherwise the
    raw cut is kept so whitespace-free text never yields tiny chunks.

    Args:
        text: Full document text
        max_chunk_size: Maximum characters per chunk

    Returns:
        Chunks in document order whose concatenation equals text

    Raises:
        ValueError: If max_chunk_size is not positive
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be a positive integer")

    if len(text) <= max_chunk_size:
        return [Chunk(text=text, index=0, total=1, start=0)]

    spans: list[tuple[int, int]] = []
    cursor = 0
    text_length = len(text)

    while cursor < text_length:
        end = cursor + max_chunk_size
        if end < text_length:
            min_cut = cursor + int(max_chunk_size * MIN_BOUNDARY_RATIO)
            end = _find_cut(text, cursor, end, min_cut)
        else:
            end = text_length

        spans.append((cursor, end))
        cursor = end

    total = len(spans)
    return [
        Chunk(text=text[start:end], index=index, total=total, start=start)
        for index, (start, end) in enumerate(spans)
    ]


def truncate_to_page_budget(
    text: str, max_pages: int, chars_per_page: int, threshold: int = 0
) -> str:
    """
    Cap text to an estimated page budget.

    Texts no longer than threshold are returned unchanged; the cap is a plain
    character count, not page-aware parsing.
    """
    if len(text) <= threshold:
        return text

    max_chars = max_pages * chars_per_page
    if len(text) > max_chars:
        return text[:max_chars]
    return text
