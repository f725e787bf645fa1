"""Dependency injection container."""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import sessionmaker

from licitaradar.ai.filter_extractor import FilterExtractor
from licitaradar.ai.llm_client import GeminiClient, LLMClient
from licitaradar.ai.record_analyzer import RecordAnalyzer
from licitaradar.ai.relevance_classifier import RelevanceClassifier
from licitaradar.ai.retry import RetryPolicy, Sleep, ai_retry_policy
from licitaradar.cache.ttl_cache import ResultSetCache, ViabilityCache
from licitaradar.core.logging import get_logger
from licitaradar.db.session import create_session_factory
from licitaradar.services.chat_service import ChatService
from licitaradar.services.document_service import DocumentService
from licitaradar.services.embedding_service import EmbeddingService
from licitaradar.services.feedback_service import FeedbackService
from licitaradar.services.search_service import SearchService
from licitaradar.settings import Settings, settings as default_settings
from licitaradar.sourcing.pncp.client import PncpApiClient

logger = get_logger("core.container")


@dataclass
class ApplicationContainer:
    """Container for application dependencies.

    Every component is built on first access from ``settings``; tests pass
    replacements (``_llm``, ``_session_factory``, ``sleep``...) directly.
    """

    settings: Settings = field(default_factory=lambda: default_settings)
    sleep: Optional[Sleep] = field(default=None, repr=False)
    _llm: Optional[LLMClient] = field(default=None, repr=False)
    _session_factory: Optional[sessionmaker] = field(default=None, repr=False)
    _pncp_client: Optional[PncpApiClient] = field(default=None, repr=False)
    _embedding_service: Optional[EmbeddingService] = field(default=None, repr=False)
    _viability_cache: Optional[ViabilityCache] = field(default=None, repr=False)
    _result_cache: Optional[ResultSetCache] = field(default=None, repr=False)
    _relevance_classifier: Optional[RelevanceClassifier] = field(default=None, repr=False)
    _filter_extractor: Optional[FilterExtractor] = field(default=None, repr=False)
    _record_analyzer: Optional[RecordAnalyzer] = field(default=None, repr=False)
    _document_service: Optional[DocumentService] = field(default=None, repr=False)
    _search_service: Optional[SearchService] = field(default=None, repr=False)
    _chat_service: Optional[ChatService] = field(default=None, repr=False)
    _feedback_service: Optional[FeedbackService] = field(default=None, repr=False)

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "ApplicationContainer":
        """Create a new application container.

        Args:
            settings: Optional settings override

        Returns:
            Configured ApplicationContainer instance
        """
        container = cls(settings=settings or default_settings)
        logger.debug("Created ApplicationContainer")
        return container

    def ai_retry_policy(self) -> RetryPolicy:
        return ai_retry_policy(
            max_attempts=self.settings.ai_max_attempts,
            backoff_base=self.settings.ai_backoff_base_seconds,
            quota_delay=self.settings.ai_quota_delay_seconds,
            sleep=self.sleep,
        )

    @property
    def llm(self) -> LLMClient:
        """Get Gemini client (lazy initialization)."""
        if self._llm is None:
            self._llm = GeminiClient(settings=self.settings)
        return self._llm

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = create_session_factory(self.settings)
        return self._session_factory

    @property
    def pncp_client(self) -> PncpApiClient:
        if self._pncp_client is None:
            self._pncp_client = PncpApiClient(settings=self.settings, sleep=self.sleep)
        return self._pncp_client

    @property
    def embedding_service(self) -> EmbeddingService:
        """Get embedding service (lazy initialization)."""
        if self._embedding_service is None:
            self._embedding_service = EmbeddingService(self.llm, settings=self.settings)
        return self._embedding_service

    @property
    def viability_cache(self) -> ViabilityCache:
        if self._viability_cache is None:
            self._viability_cache = ViabilityCache.in_memory(self.settings.viability_cache_ttl_seconds)
        return self._viability_cache

    @property
    def result_cache(self) -> ResultSetCache:
        if self._result_cache is None:
            self._result_cache = ResultSetCache.in_memory(self.settings.api_cache_ttl_seconds)
        return self._result_cache

    @property
    def relevance_classifier(self) -> RelevanceClassifier:
        if self._relevance_classifier is None:
            self._relevance_classifier = RelevanceClassifier(
                self.llm,
                self.viability_cache,
                batch_size=self.settings.classifier_batch_size,
                batch_delay=self.settings.classifier_batch_delay_seconds,
                retry_policy=self.ai_retry_policy(),
                sleep=self.sleep,
                model=self.settings.generation_model,
            )
        return self._relevance_classifier

    @property
    def filter_extractor(self) -> FilterExtractor:
        if self._filter_extractor is None:
            self._filter_extractor = FilterExtractor(
                self.llm,
                retry_policy=self.ai_retry_policy(),
                model=self.settings.generation_model,
            )
        return self._filter_extractor

    @property
    def record_analyzer(self) -> RecordAnalyzer:
        if self._record_analyzer is None:
            self._record_analyzer = RecordAnalyzer(
                self.llm,
                retry_policy=self.ai_retry_policy(),
                model=self.settings.generation_model,
            )
        return self._record_analyzer

    @property
    def document_service(self) -> DocumentService:
        if self._document_service is None:
            self._document_service = DocumentService(
                self.pncp_client,
                self.embedding_service,
                chunk_size=self.settings.chunk_size,
                chunk_overlap=self.settings.chunk_overlap,
                max_pages=self.settings.max_pdf_pages,
            )
        return self._document_service

    @property
    def search_service(self) -> SearchService:
        if self._search_service is None:
            self._search_service = SearchService(
                self.filter_extractor,
                self.relevance_classifier,
                self.result_cache,
                session_factory=self.session_factory,
            )
        return self._search_service

    @property
    def chat_service(self) -> ChatService:
        if self._chat_service is None:
            self._chat_service = ChatService(
                self.llm,
                self.embedding_service,
                session_factory=self.session_factory,
                model=self.settings.chat_model,
                retry_policy=self.ai_retry_policy(),
            )
        return self._chat_service

    @property
    def feedback_service(self) -> FeedbackService:
        if self._feedback_service is None:
            self._feedback_service = FeedbackService(session_factory=self.session_factory)
        return self._feedback_service

    def sync_orchestrator(self):
        """Build a sync orchestrator wired to this container."""
        from licitaradar.sync_orchestrator import SyncOrchestrator

        return SyncOrchestrator(
            pncp=self.pncp_client,
            classifier=self.relevance_classifier,
            documents=self.document_service,
            analyzer=self.record_analyzer,
            session_factory=self.session_factory,
            settings=self.settings,
        )

    async def aclose(self) -> None:
        """Clean up container resources."""
        if self._pncp_client is not None:
            await self._pncp_client.aclose()
        logger.debug("ApplicationContainer closed")


# Global container instance
_container: Optional[ApplicationContainer] = None


def get_container() -> ApplicationContainer:
    """Get or create the global application container.

    Returns:
        ApplicationContainer instance
    """
    global _container
    if _container is None:
        _container = ApplicationContainer.create()
    return _container


def reset_container() -> None:
    """Reset the global container (useful for testing)."""
    global _container
    _container = None
