"""
Field-by-field coercion of raw extraction items into CandidateRecords.

The extraction service returns loosely typed JSON; every field is coerced
leniently and bounded so nothing downstream has to trust its shape.
"""
import math
import re
from typing import Any, Optional

import structlog

from offering_ingest.models.domain import CandidateRecord

logger = structlog.get_logger(__name__)

# Maximum stored length per text field
FIELD_MAX_LENGTHS = {
    "name": 255,
    "origin": 100,
    "region": 100,
    "process": 100,
    "altitude": 50,
    "variety": 100,
    "flavor": 500,
}

SUPPORTED_CURRENCIES = ("SAR", "USD")
DEFAULT_CURRENCY = "SAR"

SCORE_MIN = 0
SCORE_MAX = 100

FALSE_STRINGS = {"false", "no", "0", "unavailable", "sold out"}

NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?|\.\d+")
NON_NUMERIC_PATTERN = re.compile(r"[^\d.]")


def parse_number(value: Any) -> Optional[float]:
    """Parse a number after stripping everything but digits and dots.

    A leading minus sign is kept so quoted and unquoted negatives agree.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = str(value).strip()
    cleaned = NON_NUMERIC_PATTERN.sub("", text)
    match = NUMBER_PATTERN.match(cleaned)
    if not match:
        return None
    number = float(match.group(0))
    if text.startswith("-"):
        number = -number
    return number if math.isfinite(number) else None


def coerce_name(value: Any) -> Optional[str]:
    """Trim and truncate a name; inner whitespace is part of its identity"""
    if value is None or isinstance(value, (dict, list, tuple, bool)):
        return None
    name = str(value).strip()
    if not name:
        return None
    return name[: FIELD_MAX_LENGTHS["name"]]


def coerce_text(value: Any, max_length: int) -> Optional[str]:
    if value is None or isinstance(value, (dict, bool)):
        return None
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(item).strip() for item in value if item is not None)
    text = " ".join(str(value).split())
    if not text:
        return None
    return text[:max_length]


def coerce_price(value: Any) -> Optional[float]:
    price = parse_number(value)
    if price is None:
        return None
    return max(price, 0.0)


def coerce_score(value: Any) -> Optional[int]:
    score = parse_number(value)
    if score is None:
        return None
    return min(max(int(score), SCORE_MIN), SCORE_MAX)


def coerce_currency(value: Any) -> str:
    if isinstance(value, str):
        code = value.strip().upper()
        if code in SUPPORTED_CURRENCIES:
            return code
    return DEFAULT_CURRENCY


def coerce_available(value: Any) -> bool:
    if value is False:
        return False
    if isinstance(value, str) and value.strip().lower() in FALSE_STRINGS:
        return False
    return True


def coerce_record(raw: Any) -> Optional[CandidateRecord]:
    """
    Build a CandidateRecord from one raw extraction item.

    Args:
        raw: One element of the parsed response array

    Returns:
        CandidateRecord, or None if the item has no usable name
    """
    if not isinstance(raw, dict):
        return None

    name = coerce_name(raw.get("name"))
    if not name:
        return None

    return CandidateRecord(
        name=name,
        origin=coerce_text(raw.get("origin"), FIELD_MAX_LENGTHS["origin"]),
        region=coerce_text(raw.get("region"), FIELD_MAX_LENGTHS["region"]),
        process=coerce_text(raw.get("process"), FIELD_MAX_LENGTHS["process"]),
        price=coerce_price(raw.get("price")),
        currency=coerce_currency(raw.get("currency")),
        score=coerce_score(raw.get("score")),
        altitude=coerce_text(raw.get("altitude"), FIELD_MAX_LENGTHS["altitude"]),
        variety=coerce_text(raw.get("variety"), FIELD_MAX_LENGTHS["variety"]),
        flavor=coerce_text(raw.get("flavor"), FIELD_MAX_LENGTHS["flavor"]),
        available=coerce_available(raw.get("available")),
    )


def coerce_records(items: list[Any]) -> list[CandidateRecord]:
    """Coerce a parsed response array, dropping items without a name"""
    records = []
    dropped = 0

    for item in items:
        record = coerce_record(item)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug("Dropped extraction items without a name", dropped=dropped)

    return records
