"""
SQLAlchemy-backed offering record store.
"""
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from offering_ingest.exceptions import RepositoryError
from offering_ingest.models.database import Base, OfferingTable
from offering_ingest.models.domain import CandidateRecord
from offering_ingest.repositories.base import RecordStore

logger = structlog.get_logger(__name__)


class OfferingRepository(RecordStore):
    """
    Record store over the coffee_offerings table.

    Each operation runs in its own session; inserts are committed as one
    batch and rolled back as a whole on failure.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.session_factory = session_factory
        self.engine = engine
        self.logger = logger.bind(
            repository=self.__class__.__name__, table=OfferingTable.__tablename__
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "OfferingRepository":
        engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
        return cls(async_sessionmaker(engine, expire_on_commit=False), engine=engine)

    async def create_tables(self) -> None:
        if self.engine is None:
            raise RepositoryError("Cannot create tables without an engine")
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            self.logger.error("Failed to create tables", error=str(e))
            raise RepositoryError(
                f"Failed to create tables: {e}", original_exception=e
            ) from e

    async def list_existing_names(self, source_id: str) -> set[str]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(OfferingTable.name).where(
                        OfferingTable.supplier_id == source_id
                    )
                )
                names = {name for name in result.scalars().all() if name}
        except SQLAlchemyError as e:
            self.logger.error(
                "Failed to list existing offerings", source_id=source_id, error=str(e)
            )
            raise RepositoryError(
                f"Failed to list existing offerings: {e}", original_exception=e
            ) from e

        self.logger.info(
            "Loaded existing offering names", source_id=source_id, count=len(names)
        )
        return names

    async def insert_records(
        self, source_id: str, records: list[CandidateRecord]
    ) -> int:
        if not records:
            return 0

        async with self.session_factory() as session:
            try:
                session.add_all(
                    [OfferingTable.from_record(source_id, record) for record in records]
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                self.logger.error(
                    "Failed to insert offerings",
                    source_id=source_id,
                    record_count=len(records),
                    error=str(e),
                )
                raise RepositoryError(
                    f"Failed to insert offerings: {e}", original_exception=e
                ) from e

        self.logger.info(
            "Inserted offerings", source_id=source_id, inserted=len(records)
        )
        return len(records)

    async def list_records(self, source_id: str) -> list[CandidateRecord]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(OfferingTable)
                    .where(OfferingTable.supplier_id == source_id)
                    .order_by(OfferingTable.created_at)
                )
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to list offerings: {e}", original_exception=e
            ) from e

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
