"""On-demand search: question -> filter -> stored candidates -> optional re-classification."""

import asyncio
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.orm import sessionmaker

from licitaradar.ai.filter_extractor import FilterExtractor
from licitaradar.ai.relevance_classifier import ProgressCallback, RelevanceClassifier
from licitaradar.ai.schemas import StructuredFilter
from licitaradar.cache.ttl_cache import ResultSetCache, query_signature
from licitaradar.core.constants import RELEVANCE_TIERS
from licitaradar.core.exceptions import AIProcessingError, InputValidationError
from licitaradar.core.logging import get_logger
from licitaradar.db.models import ProcurementRecord
from licitaradar.db.repositories import RecordRepository
from licitaradar.db.session import get_session

logger = get_logger("services.search")


class SearchRequest(BaseModel):
    """Search parameters as sent by the caller."""

    question: str = Field(min_length=1, max_length=2000)
    mes: int = Field(ge=1, le=12)
    ano: int = Field(ge=2000, le=2100)
    exclusoes: List[str] = Field(default_factory=list)
    reclassificar: bool = False

    @field_validator("question")
    @classmethod
    def _strip_question(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("pergunta vazia")
        return value


def parse_search_request(payload: Any) -> SearchRequest:
    """Validate a raw request.

    Raises:
        InputValidationError: Naming the first malformed field
    """
    if not isinstance(payload, dict):
        raise InputValidationError("Corpo da requisição deve ser um objeto JSON")
    try:
        return SearchRequest.model_validate(payload)
    except ValidationError as e:
        error = e.errors()[0]
        field_name = ".".join(str(part) for part in error.get("loc", ())) or None
        raise InputValidationError(
            f"Campo inválido '{field_name}': {error.get('msg')}",
            field=field_name,
            details={"errors": e.errors(include_url=False)},
        ) from e


@dataclass
class SearchResult:
    """Records found for a request, plus what happened along the way."""

    records: List[Dict[str, Any]] = field(default_factory=list)
    filters: Optional[StructuredFilter] = None
    total_candidates: int = 0
    cancelled: bool = False
    error: Optional[str] = None


def record_to_dict(record: ProcurementRecord) -> Dict[str, Any]:
    return {column.name: getattr(record, column.name) for column in ProcurementRecord.__table__.columns}


def month_bounds(year: int, month: int) -> tuple:
    """``[first day, first day of next month)`` as datetimes."""
    start = datetime(year, month, 1)
    end = start + timedelta(days=monthrange(year, month)[1])
    return start, end


def _tier_rank(record: Dict[str, Any]) -> int:
    tier = record.get("relevance_tier")
    return RELEVANCE_TIERS.index(tier) if tier in RELEVANCE_TIERS else len(RELEVANCE_TIERS)


class SearchService:
    """Answers a search request from storage."""

    def __init__(
        self,
        extractor: FilterExtractor,
        classifier: RelevanceClassifier,
        result_cache: ResultSetCache,
        session_factory: Optional[sessionmaker] = None,
    ):
        self._extractor = extractor
        self._classifier = classifier
        self._result_cache = result_cache
        self._session_factory = session_factory

    async def search(
        self,
        request: SearchRequest,
        on_progress: Optional[ProgressCallback] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> SearchResult:
        """Run a search.

        An AI failure does not raise: the result carries ``error`` and
        whatever was produced before the failure.
        """
        result = SearchResult()
        try:
            filters = await self._extractor.extract_filters(request.question, request.exclusoes)
        except AIProcessingError as e:
            logger.error("Falha ao interpretar a pergunta: %s", e)
            result.error = f"Não foi possível interpretar a pergunta: {e.message}"
            return result
        result.filters = filters

        candidates = self._load_candidates(request.ano, request.mes, filters.estado)
        result.total_candidates = len(candidates)

        matched = [r for r in candidates if self.matches(filters, r)]
        logger.info(
            "Busca '%s': %d candidatas, %d após filtros",
            request.question[:60],
            len(candidates),
            len(matched),
        )

        if request.reclassificar and matched:
            matched = await self._classifier.classify(matched, on_progress=on_progress, abort=abort)
            result.cancelled = abort is not None and abort.is_set()

        result.records = sorted(
            matched,
            key=lambda r: (_tier_rank(r), -(r["published_at"].timestamp() if r.get("published_at") else 0)),
        )
        return result

    def _load_candidates(self, year: int, month: int, state: Optional[str]) -> List[Dict[str, Any]]:
        signature = query_signature(ano=year, mes=month, estado=state)
        cached = self._result_cache.get(signature)
        if cached is not None:
            return cached

        self._result_cache.expire()
        start, end = month_bounds(year, month)
        with get_session(self._session_factory) as session:
            rows = RecordRepository(session).find_for_period(start, end, state=state)
            candidates = [record_to_dict(row) for row in rows]

        self._result_cache.set(signature, candidates)
        return candidates

    @staticmethod
    def matches(filters: StructuredFilter, record: Dict[str, Any]) -> bool:
        """Apply the structured filter to one stored record."""
        if not filters.matches_text(record.get("description") or ""):
            return False
        if not filters.matches_value(record.get("estimated_value")):
            return False

        modality = (record.get("modality") or "").lower()
        if filters.modalidade and filters.modalidade.lower() not in modality:
            return False
        if modality and modality in filters.blacklist:
            return False

        published = record.get("published_at")
        published_day: Optional[date] = published.date() if published else None
        if filters.data_inicial and (published_day is None or published_day < filters.data_inicial):
            return False
        if filters.data_final and (published_day is None or published_day > filters.data_final):
            return False
        return True
