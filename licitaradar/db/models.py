from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, Float, Date, DateTime,
    ForeignKey, UniqueConstraint, JSON, Index, SmallInteger
)
from sqlalchemy.orm import declarative_base, relationship
from pgvector.sqlalchemy import Vector

from licitaradar.settings import EMBEDDING_DIMENSION

Base = declarative_base()


def utc_now() -> datetime:
    """Current UTC time, naive (columns are timezone-less UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProcurementRecord(Base):
    __tablename__ = "procurement_records"

    id = Column(Integer, primary_key=True)
    control_number = Column(String(100), nullable=False, unique=True)  # numeroControlePNCP
    entity_cnpj = Column(String(20))
    entity_name = Column(String(500))
    unit_name = Column(String(500))
    municipality = Column(String(255))
    state = Column(String(2))
    purchase_year = Column(Integer)
    purchase_sequence = Column(Integer)
    process_number = Column(String(255))
    modality = Column(String(100))
    dispute_mode = Column(String(100))
    status = Column(String(100))
    description = Column(Text)
    complementary_info = Column(Text)
    estimated_value = Column(Float)
    published_at = Column(DateTime)
    updated_at = Column(DateTime)
    source_link = Column(Text)
    portal_link = Column(Text)

    # AI fields, nullable until analysis ran
    ai_summary = Column(Text)
    ai_keywords = Column(JSON)
    relevance_tier = Column(String(10))  # Alto | Médio | Baixo
    relevance_justification = Column(Text)
    document_links = Column(JSON)
    analyzed_at = Column(DateTime)

    created_at = Column(DateTime, default=utc_now)
    synced_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        Index("ix_procurement_records_published_at", "published_at"),
        Index("ix_procurement_records_state", "state"),
        Index("ix_procurement_records_relevance_tier", "relevance_tier"),
    )

    chunks = relationship(
        "DocumentChunk",
        back_populates="record",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True)
    run_date = Column(Date, nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="running")  # running/success/failed
    mode = Column(String(20), default="incremental")  # incremental/initial
    started_at = Column(DateTime, default=utc_now)
    finished_at = Column(DateTime)
    records_fetched = Column(Integer, default=0)
    records_viable = Column(Integer, default=0)
    error_message = Column(Text)

    __table_args__ = (
        Index("ix_sync_runs_status", "status"),
    )


class DocumentChunk(Base):
    __tablename__ = "document_chunks"

    id = Column(Integer, primary_key=True)
    control_number = Column(
        String(100),
        ForeignKey("procurement_records.control_number", ondelete="CASCADE"),
        nullable=False,
    )
    file_name = Column(String(500))
    chunk_index = Column(Integer, nullable=False, default=0)
    text = Column(Text, nullable=False)
    embedding = Column(Vector(EMBEDDING_DIMENSION))
    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        Index("ix_document_chunks_control_number", "control_number"),
    )

    record = relationship("ProcurementRecord", back_populates="chunks")


class RelevanceVote(Base):
    __tablename__ = "relevance_votes"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), nullable=False)
    control_number = Column(
        String(100),
        ForeignKey("procurement_records.control_number", ondelete="CASCADE"),
        nullable=False,
    )
    vote = Column(SmallInteger, nullable=False)  # +1 / -1
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "control_number", name="uq_relevance_vote_user_record"),
    )
