"""
In-memory record store for development, dry runs and tests.
"""
from collections import defaultdict

import structlog

from offering_ingest.models.domain import CandidateRecord
from offering_ingest.repositories.base import RecordStore

logger = structlog.get_logger(__name__)


class InMemoryRecordStore(RecordStore):
    """Keeps offerings per supplier id in process memory"""

    def __init__(self) -> None:
        self._records: dict[str, list[CandidateRecord]] = defaultdict(list)
        self.logger = logger.bind(repository=self.__class__.__name__)

    async def list_existing_names(self, source_id: str) -> set[str]:
        return {record.name for record in self._records.get(source_id, [])}

    async def insert_records(
        self, source_id: str, records: list[CandidateRecord]
    ) -> int:
        self._records[source_id].extend(records)
        self.logger.info(
            "Inserted offerings", source_id=source_id, inserted=len(records)
        )
        return len(records)

    def records_for(self, source_id: str) -> list[CandidateRecord]:
        return list(self._records.get(source_id, []))
