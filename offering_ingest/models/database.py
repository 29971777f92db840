"""
SQLAlchemy database models for the offering record store.

Portable column types so the same schema runs on PostgreSQL and SQLite.
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from offering_ingest.models.domain import CandidateRecord

Base = declarative_base()


class OfferingTable(Base):
    """Coffee offerings published by suppliers"""

    __tablename__ = "coffee_offerings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    supplier_id = Column(String(64), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    origin = Column(String(100))
    region = Column(String(100))
    process = Column(String(100))
    price = Column(Float)
    currency = Column(String(3), nullable=False, default="SAR")
    score = Column(Integer)
    altitude = Column(String(50))
    variety = Column(String(100))
    flavor = Column(String(500))
    available = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("idx_offerings_supplier_name", "supplier_id", "name"),)

    @classmethod
    def from_record(cls, supplier_id: str, record: CandidateRecord) -> "OfferingTable":
        return cls(
            supplier_id=supplier_id,
            name=record.name,
            origin=record.origin,
            region=record.region,
            process=record.process,
            price=record.price,
            currency=record.currency or "SAR",
            score=record.score,
            altitude=record.altitude,
            variety=record.variety,
            flavor=record.flavor,
            available=record.available,
        )

    def to_record(self) -> CandidateRecord:
        return CandidateRecord(
            name=self.name,
            origin=self.origin,
            region=self.region,
            process=self.process,
            price=self.price,
            currency=self.currency,
            score=self.score,
            altitude=self.altitude,
            variety=self.variety,
            flavor=self.flavor,
            available=self.available,
        )
