"""
SQLAlchemy ORM models for the supply-chain tracker.
Tables: products
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime, Enum, Index

from api.database import Base
from ledger.models import ProductStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_id)
    chain_id = Column(String(80), nullable=True, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    manufacturer = Column(String(200), nullable=True)
    status = Column(
        Enum(ProductStatus, name="productstatus", native_enum=False, length=20),
        nullable=False,
        default=ProductStatus.Created,
    )
    last_tx_hash = Column(String(66), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_products_created_at", "created_at"),
        Index("ix_products_status", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "name": self.name,
            "description": self.description,
            "manufacturer": self.manufacturer,
            "status": self.status.value if hasattr(self.status, "value") else self.status,
            "last_tx_hash": self.last_tx_hash,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
