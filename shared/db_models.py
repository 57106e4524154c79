"""SQLAlchemy model for the remote document store."""

from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()


class Document(Base):
    """Model for documents table: one JSON body per (collection, doc_id)."""
    __tablename__ = 'documents'

    collection = Column(String(100), primary_key=True)
    doc_id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_documents_collection', 'collection'),
    )
