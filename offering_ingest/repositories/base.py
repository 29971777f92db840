"""
Record store interface used by the pipeline and its callers.

The pipeline reads existing names once per run; callers insert the final
records once per run. Nothing else touches the store.
"""
from abc import ABC, abstractmethod

from offering_ingest.models.domain import CandidateRecord


class RecordStore(ABC):
    """Abstract offering store keyed by supplier id"""

    @abstractmethod
    async def list_existing_names(self, source_id: str) -> set[str]:
        """
        Get the names of offerings already stored for a supplier.

        Raises:
            RepositoryError: If the store cannot be read
        """

    @abstractmethod
    async def insert_records(
        self, source_id: str, records: list[CandidateRecord]
    ) -> int:
        """
        Insert offerings for a supplier in one batch.

        Returns:
            Number of inserted records

        Raises:
            RepositoryError: If the insert fails
        """

    async def close(self) -> None:
        """Release store resources"""
