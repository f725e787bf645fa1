"""Sync Orchestrator - daily PNCP ingestion and enrichment pipeline.

One run per target date, recorded in ``sync_runs``:
1. SyncRun created as ``running`` (committed before any fetch)
2. Fetch → every page of every modality until the first empty page
3. Parse → column values per notice
4. Classify → viability per notice (cached, batched, fail-closed)
5. Upsert → every notice, viable or not, one savepoint each
6. Enrich → attachments, chunks, embeddings, AI summary (viable notices)
7. Finish → ``success`` with counts, or ``failed`` with the error

Fetch/parse/classify/upsert problems fail the run; enrichment problems
only skip the affected notice.
"""

import asyncio
import hmac
import sys
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from licitaradar.ai.record_analyzer import RecordAnalyzer
from licitaradar.ai.relevance_classifier import RelevanceClassifier
from licitaradar.core.constants import (
    SEPARATOR_LINE,
    SYNC_MODE_INCREMENTAL,
    SYNC_MODE_INITIAL,
    SYNC_STATUS_FAILED,
    SYNC_STATUS_RUNNING,
    SYNC_STATUS_SUCCESS,
)
from licitaradar.core.container import ApplicationContainer, get_container, reset_container
from licitaradar.core.exceptions import UnauthorizedTriggerError
from licitaradar.core.logging import get_logger
from licitaradar.db.models import utc_now
from licitaradar.db.repositories import RecordRepository, SyncRunRepository
from licitaradar.db.session import get_session
from licitaradar.services.document_service import DocumentService
from licitaradar.settings import Settings, settings as default_settings
from licitaradar.sourcing.pncp.client import PncpApiClient
from licitaradar.sourcing.pncp.parser import parse_record

logger = get_logger("sync_orchestrator")


def _run_async(coro):
    """Run async coroutine with proper event loop handling for Windows."""
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    else:
        return asyncio.run(coro)


@dataclass
class PipelineStats:
    """Statistics for one sync run."""

    fetched: int = 0
    parsed: int = 0
    viable: int = 0
    saved: int = 0
    save_errors: int = 0
    analyzed: int = 0
    chunks: int = 0
    enrich_errors: int = 0

    def log_summary(self, run_date: date) -> None:
        """Log summary statistics."""
        logger.info(SEPARATOR_LINE)
        logger.info("SINCRONIZAÇÃO %s", run_date.isoformat())
        logger.info(SEPARATOR_LINE)
        logger.info("  Buscadas:         %d", self.fetched)
        logger.info("  Válidas:          %d", self.parsed)
        logger.info("  Viáveis:          %d", self.viable)
        logger.info("  Salvas:           %d (%d erros)", self.saved, self.save_errors)
        logger.info("  Analisadas (IA):  %d", self.analyzed)
        logger.info("  Chunks gerados:   %d", self.chunks)
        logger.info("  Erros de análise: %d", self.enrich_errors)
        logger.info(SEPARATOR_LINE)


@dataclass
class SyncRunSummary:
    """Outcome of ``run_for_date``."""

    run_date: date
    status: str
    mode: str
    records_fetched: int = 0
    records_viable: int = 0
    records_saved: int = 0
    records_failed: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["run_date"] = self.run_date.isoformat()
        return data


class SyncOrchestrator:
    """Runs the ingestion pipeline for one date at a time."""

    def __init__(
        self,
        pncp: PncpApiClient,
        classifier: RelevanceClassifier,
        documents: Optional[DocumentService] = None,
        analyzer: Optional[RecordAnalyzer] = None,
        session_factory: Optional[sessionmaker] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize orchestrator.

        Args:
            pncp: Procurement API client
            classifier: Viability classifier
            documents: Optional attachment processing (skipped when None)
            analyzer: Optional per-record AI analysis (skipped when None)
            session_factory: Optional session factory
            settings: Optional settings instance
        """
        self._pncp = pncp
        self._classifier = classifier
        self._documents = documents
        self._analyzer = analyzer
        self._session_factory = session_factory
        self._settings = settings or default_settings

    async def run_for_date(self, day: date, mode: str = SYNC_MODE_INCREMENTAL) -> SyncRunSummary:
        """Execute the pipeline for notices published on ``day``.

        The caller must not start a second run for a date whose run is
        ``running`` or ``success``; a ``failed`` run is restarted in place.

        Returns:
            SyncRunSummary (never raises for pipeline errors)
        """
        logger.info(SEPARATOR_LINE)
        logger.info("Sincronização %s (%s)", day.isoformat(), mode)
        logger.info(SEPARATOR_LINE)

        stats = PipelineStats()
        self._open_run(day, mode)

        try:
            raw_items = await self._pncp.fetch_all_pages(day)
            stats.fetched = len(raw_items)

            rows = self._parse(raw_items)
            stats.parsed = len(rows)
            if not rows:
                logger.info("Nenhuma licitação publicada em %s", day.isoformat())
                stats.log_summary(day)
                return self._close_run(day, mode, SYNC_STATUS_SUCCESS, stats)

            viable = await self._classifier.classify(rows)
            stats.viable = len(viable)

            with get_session(self._session_factory) as session:
                stats.saved, stats.save_errors = RecordRepository(session).upsert_many(rows)

        except Exception as e:
            logger.error("Sincronização de %s falhou: %s", day.isoformat(), e)
            stats.log_summary(day)
            return self._close_run(day, mode, SYNC_STATUS_FAILED, stats, error=str(e) or type(e).__name__)

        targets = viable if self._settings.sync_analyze_viable_only else rows
        for row in targets:
            await self._enrich(row, stats)

        stats.log_summary(day)
        return self._close_run(day, mode, SYNC_STATUS_SUCCESS, stats)

    def _parse(self, raw_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Parse items; the last occurrence of a control number wins."""
        by_key: Dict[str, Dict[str, Any]] = {}
        for item in raw_items:
            row = parse_record(item)
            if row is not None:
                by_key[row["control_number"]] = row
        if len(by_key) < len(raw_items):
            logger.debug("%d itens descartados (sem id ou duplicados)", len(raw_items) - len(by_key))
        return list(by_key.values())

    async def _enrich(self, row: Dict[str, Any], stats: PipelineStats) -> None:
        """Documents + AI analysis for one stored record; errors stay local."""
        if self._documents is None and self._analyzer is None:
            return

        control_number = row["control_number"]
        try:
            with get_session(self._session_factory) as session:
                update: Dict[str, Any] = {"control_number": control_number}
                document_text = ""
                if self._documents is not None:
                    extraction = await self._documents.extract_and_chunk(row, session=session)
                    document_text = extraction.full_text
                    update["document_links"] = extraction.file_links
                    stats.chunks += len(extraction.chunks)

                if self._analyzer is not None:
                    analysis = await self._analyzer.analyze(row, document_text)
                    if analysis is not None:
                        update.update(
                            ai_summary=analysis.resumo,
                            ai_keywords=analysis.palavras_chave,
                            relevance_tier=analysis.grau_relevancia,
                            relevance_justification=analysis.justificativa,
                            analyzed_at=utc_now(),
                        )
                        stats.analyzed += 1

                if len(update) > 1:
                    RecordRepository(session).upsert(update)
        except Exception as e:
            stats.enrich_errors += 1
            logger.warning("Enriquecimento de %s falhou: %s", control_number, e)

    def _open_run(self, day: date, mode: str) -> None:
        with get_session(self._session_factory) as session:
            runs = SyncRunRepository(session)
            existing = runs.get_by_date(day)
            if existing is None:
                runs.start(day, mode)
            else:
                logger.info("Reiniciando execução anterior de %s (%s)", day.isoformat(), existing.status)
                runs.restart(existing, mode)

    def _close_run(
        self,
        day: date,
        mode: str,
        status: str,
        stats: PipelineStats,
        error: Optional[str] = None,
    ) -> SyncRunSummary:
        with get_session(self._session_factory) as session:
            runs = SyncRunRepository(session)
            run = runs.get_by_date(day)
            runs.finish(
                run,
                status,
                records_fetched=stats.fetched,
                records_viable=stats.viable,
                error_message=error,
            )

        return SyncRunSummary(
            run_date=day,
            status=status,
            mode=mode,
            records_fetched=stats.fetched,
            records_viable=stats.viable,
            records_saved=stats.saved,
            records_failed=stats.save_errors,
            error_message=error,
        )


def target_dates(today: date, initial_load: bool, initial_days: int) -> List[date]:
    """Dates covered by a trigger: yesterday, or the last ``initial_days`` days."""
    if initial_load:
        return [today - timedelta(days=i) for i in range(1, initial_days + 1)]
    return [today - timedelta(days=1)]


async def trigger_sync(
    secret: Optional[str],
    initial_load: bool = False,
    container: Optional[ApplicationContainer] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Scheduler entry point.

    Args:
        secret: Shared secret presented by the scheduler
        initial_load: Sync the last ``sync_initial_days`` days instead of yesterday
        container: Optional container (default: global one)
        today: Reference date (default: today)

    Returns:
        Dict with ``success``, ``mode``, ``records_fetched``, ``removed``, ``runs``

    Raises:
        UnauthorizedTriggerError: If the secret is missing or wrong
    """
    container = container or get_container()
    settings = container.settings
    if not settings.cron_secret or not hmac.compare_digest(secret or "", settings.cron_secret):
        logger.warning("Tentativa de sincronização sem credencial válida")
        raise UnauthorizedTriggerError("Não autorizado")

    today = today or date.today()
    mode = SYNC_MODE_INITIAL if initial_load else SYNC_MODE_INCREMENTAL
    days = target_dates(today, initial_load, settings.sync_initial_days)
    orchestrator = container.sync_orchestrator()

    logger.info("Iniciando sincronização (%s): %d datas", mode, len(days))
    runs: List[Dict[str, Any]] = []

    for day in days:
        with get_session(container.session_factory) as session:
            existing = SyncRunRepository(session).get_by_date(day)
            existing_status = existing.status if existing else None

        if existing_status in (SYNC_STATUS_RUNNING, SYNC_STATUS_SUCCESS):
            logger.info("Data %s já sincronizada (%s), ignorando", day.isoformat(), existing_status)
            runs.append({"run_date": day.isoformat(), "status": "skipped", "previous_status": existing_status})
            continue

        summary = await orchestrator.run_for_date(day, mode)
        runs.append(summary.to_dict())

    expired = container.viability_cache.expire()
    if expired:
        logger.info("%d vereditos de viabilidade expirados descartados", expired)

    removed = 0
    cutoff = datetime.combine(today - timedelta(days=settings.retention_days), time.min)
    try:
        with get_session(container.session_factory) as session:
            removed = RecordRepository(session).delete_older_than(cutoff)
        logger.info("%d licitações anteriores a %s removidas", removed, cutoff.date().isoformat())
    except Exception as e:
        logger.error("Erro durante a limpeza de dados antigos: %s", e)

    return {
        "success": all(run["status"] != SYNC_STATUS_FAILED for run in runs),
        "mode": mode,
        "records_fetched": sum(run.get("records_fetched", 0) for run in runs),
        "removed": removed,
        "runs": runs,
    }


def run_sync(initial_load: bool = False, secret: Optional[str] = None) -> Dict[str, Any]:
    """Synchronous wrapper for scripts and schedulers."""
    container = get_container()

    async def _main():
        try:
            return await trigger_sync(
                secret if secret is not None else container.settings.cron_secret,
                initial_load=initial_load,
                container=container,
            )
        finally:
            await container.aclose()
            reset_container()

    return _run_async(_main())
