"""Storage access for records, sync runs, document chunks and votes.

Writes to ``procurement_records`` and ``relevance_votes`` go through
``INSERT ... ON CONFLICT DO UPDATE`` on the natural key, so replaying the
same input is a no-op apart from ``synced_at``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from licitaradar.core.constants import (
    SYNC_STATUS_RUNNING,
    SYNC_STATUSES,
    VOTE_DOWN,
    VOTE_UP,
)
from licitaradar.core.exceptions import DatabaseError
from licitaradar.core.logging import get_logger
from licitaradar.db.models import DocumentChunk, ProcurementRecord, RelevanceVote, SyncRun, utc_now

logger = get_logger("db.repositories")

AI_FIELDS = frozenset({
    "ai_summary",
    "ai_keywords",
    "relevance_tier",
    "relevance_justification",
    "document_links",
    "analyzed_at",
})

_RECORD_COLUMNS = frozenset(c.name for c in ProcurementRecord.__table__.columns) - {"id", "created_at"}


def _insert(session: Session, model):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise DatabaseError(f"Dialeto sem suporte a upsert: {dialect}", operation="upsert")


@dataclass
class ChunkData:
    """One chunk to persist."""

    file_name: str
    chunk_index: int
    text: str
    embedding: Optional[List[float]] = None


class RecordRepository:
    """Upsert-only write path for procurement records."""

    def __init__(self, session: Session):
        self._session = session

    def upsert(self, values: Dict[str, Any]) -> None:
        """Insert or update one record by ``control_number``.

        AI fields are only written when a value is supplied, so a plain
        re-sync never erases a previous analysis.
        """
        control_number = values.get("control_number")
        if not control_number:
            raise ValueError("control_number is required")

        row = {
            key: value
            for key, value in values.items()
            if key in _RECORD_COLUMNS and not (key in AI_FIELDS and value is None)
        }
        row["synced_at"] = utc_now()

        stmt = _insert(self._session, ProcurementRecord).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ProcurementRecord.control_number],
            set_={key: stmt.excluded[key] for key in row if key != "control_number"},
        )
        self._session.execute(stmt)

    def upsert_many(self, rows: Iterable[Dict[str, Any]]) -> Tuple[int, int]:
        """Upsert each row in its own savepoint.

        Returns:
            Tuple of (upserted, failed)
        """
        ok = failed = 0
        for row in rows:
            try:
                with self._session.begin_nested():
                    self.upsert(row)
                ok += 1
            except (SQLAlchemyError, ValueError) as e:
                failed += 1
                logger.warning("Falha ao salvar licitação %s: %s", row.get("control_number"), e)
        return ok, failed

    def get(self, control_number: str) -> Optional[ProcurementRecord]:
        return (
            self._session.query(ProcurementRecord)
            .filter(ProcurementRecord.control_number == control_number)
            .one_or_none()
        )

    def find_for_period(
        self,
        start: datetime,
        end: datetime,
        state: Optional[str] = None,
    ) -> List[ProcurementRecord]:
        """Records published in ``[start, end)``, newest first."""
        query = self._session.query(ProcurementRecord).filter(
            ProcurementRecord.published_at >= start,
            ProcurementRecord.published_at < end,
        )
        if state:
            query = query.filter(ProcurementRecord.state == state.upper())
        return query.order_by(ProcurementRecord.published_at.desc()).all()

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete records published before ``cutoff`` with their chunks and votes.

        Returns:
            Number of records deleted
        """
        stale = [
            row.control_number
            for row in self._session.query(ProcurementRecord.control_number)
            .filter(ProcurementRecord.published_at < cutoff)
        ]
        if not stale:
            return 0

        self._session.query(DocumentChunk).filter(
            DocumentChunk.control_number.in_(stale)
        ).delete(synchronize_session=False)
        self._session.query(RelevanceVote).filter(
            RelevanceVote.control_number.in_(stale)
        ).delete(synchronize_session=False)
        deleted = self._session.query(ProcurementRecord).filter(
            ProcurementRecord.control_number.in_(stale)
        ).delete(synchronize_session=False)
        return deleted


class SyncRunRepository:
    """Audit log of sync runs, one row per target date."""

    def __init__(self, session: Session):
        self._session = session

    def get_by_date(self, run_date: date) -> Optional[SyncRun]:
        return self._session.query(SyncRun).filter(SyncRun.run_date == run_date).one_or_none()

    def start(self, run_date: date, mode: str) -> SyncRun:
        run = SyncRun(
            run_date=run_date,
            status=SYNC_STATUS_RUNNING,
            mode=mode,
            started_at=utc_now(),
            records_fetched=0,
            records_viable=0,
        )
        self._session.add(run)
        self._session.flush()
        return run

    def restart(self, run: SyncRun, mode: str) -> SyncRun:
        """Reset a failed run back to ``running``."""
        run.status = SYNC_STATUS_RUNNING
        run.mode = mode
        run.started_at = utc_now()
        run.finished_at = None
        run.records_fetched = 0
        run.records_viable = 0
        run.error_message = None
        self._session.flush()
        return run

    def finish(
        self,
        run: SyncRun,
        status: str,
        records_fetched: int = 0,
        records_viable: int = 0,
        error_message: Optional[str] = None,
    ) -> SyncRun:
        """Move a running run to a terminal status (exactly once)."""
        if status not in SYNC_STATUSES or status == SYNC_STATUS_RUNNING:
            raise ValueError(f"invalid terminal status: {status}")
        if run.status != SYNC_STATUS_RUNNING:
            raise ValueError(f"sync run {run.run_date} already finished ({run.status})")

        run.status = status
        run.finished_at = utc_now()
        run.records_fetched = records_fetched
        run.records_viable = records_viable
        run.error_message = error_message[:2000] if error_message else None
        self._session.flush()
        return run


class ChunkRepository:
    """Document chunks with embeddings."""

    def __init__(self, session: Session):
        self._session = session

    def replace_chunks(self, control_number: str, chunks: Sequence[ChunkData]) -> int:
        """Delete the record's chunk set, then insert ``chunks``."""
        self._session.query(DocumentChunk).filter(
            DocumentChunk.control_number == control_number
        ).delete(synchronize_session="fetch")
        self._session.add_all([
            DocumentChunk(
                control_number=control_number,
                file_name=chunk.file_name,
                chunk_index=chunk.chunk_index,
                text=chunk.text,
                embedding=chunk.embedding,
            )
            for chunk in chunks
        ])
        self._session.flush()
        return len(chunks)

    def count_for(self, control_number: str) -> int:
        return (
            self._session.query(DocumentChunk)
            .filter(DocumentChunk.control_number == control_number)
            .count()
        )

    def search_similar(
        self,
        control_number: str,
        embedding: List[float],
        limit: int = 5,
    ) -> List[DocumentChunk]:
        """Nearest chunks of one record by cosine distance (pgvector ``<=>``)."""
        return (
            self._session.query(DocumentChunk)
            .filter(DocumentChunk.control_number == control_number)
            .order_by(DocumentChunk.embedding.cosine_distance(embedding))
            .limit(limit)
            .all()
        )


class VoteRepository:
    """Relevance feedback, one vote per (user, record)."""

    def __init__(self, session: Session):
        self._session = session

    def upsert_vote(self, user_id: str, control_number: str, vote: int) -> None:
        now = utc_now()
        stmt = _insert(self._session, RelevanceVote).values(
            user_id=user_id,
            control_number=control_number,
            vote=vote,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RelevanceVote.user_id, RelevanceVote.control_number],
            set_={"vote": stmt.excluded.vote, "updated_at": stmt.excluded.updated_at},
        )
        self._session.execute(stmt)

    def get_vote(self, user_id: str, control_number: str) -> Optional[RelevanceVote]:
        return (
            self._session.query(RelevanceVote)
            .filter(
                RelevanceVote.user_id == user_id,
                RelevanceVote.control_number == control_number,
            )
            .one_or_none()
        )

    def count_for(self, control_number: str) -> Dict[str, int]:
        votes = [
            row.vote
            for row in self._session.query(RelevanceVote.vote).filter(
                RelevanceVote.control_number == control_number
            )
        ]
        return {
            "up": sum(1 for v in votes if v == VOTE_UP),
            "down": sum(1 for v in votes if v == VOTE_DOWN),
        }
