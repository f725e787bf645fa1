from licitaradar.db.models import Base, ProcurementRecord, SyncRun, DocumentChunk, RelevanceVote
from licitaradar.db.session import create_session_factory, get_session

__all__ = [
    "Base",
    "ProcurementRecord",
    "SyncRun",
    "DocumentChunk",
    "RelevanceVote",
    "create_session_factory",
    "get_session",
]
