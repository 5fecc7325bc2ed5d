from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint, Index
from driver_portal.database import Base


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    collection = Column(String(64), nullable=False)
    doc_id = Column(String(128), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True))  # copied from data["createdAt"] for ordering
    updated_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('collection', 'doc_id', name='uix_collection_doc'),
        Index('ix_documents_collection_created', 'collection', 'created_at'),
    )
