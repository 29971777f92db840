"""
Coffee Offering Ingestion

Turns supplier price lists into deduplicated coffee offering records using
chunked LLM extraction with retry, pacing and idempotent re-ingestion.
"""

__version__ = "1.0.0"
__description__ = "Chunked LLM extraction of coffee offerings from supplier price lists"

__all__ = [
    "__version__",
    "__description__",
]
