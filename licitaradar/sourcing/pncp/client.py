"""PNCP REST client (Portal Nacional de Contratações Públicas).

Two APIs are used:
- consulta: ``/v1/contratacoes/publicacao`` lists notices published on a
  date, paginated and filtered by modality code
- pncp: ``/v1/orgaos/{cnpj}/compras/{ano}/{sequencial}/arquivos`` lists the
  attachments of one purchase

An empty page is the only end-of-data signal of the listing endpoint.
"""

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import httpx

from licitaradar.ai.retry import RetryPolicy, Sleep, fetch_retry_policy
from licitaradar.core.exceptions import SourceFetchError
from licitaradar.core.logging import get_logger
from licitaradar.settings import Settings, settings as default_settings

logger = get_logger("sourcing.pncp.client")

PUBLICATION_ENDPOINT = "/v1/contratacoes/publicacao"
ATTACHMENTS_ENDPOINT = "/v1/orgaos/{cnpj}/compras/{year}/{sequence}/arquivos"

# Pause between page requests of the same modality
PAGE_DELAY_SECONDS = 0.5

# Responses meaning "nothing here", not an error
EMPTY_STATUS_CODES = frozenset({204, 404})


@dataclass
class Attachment:
    """One file attached to a purchase."""

    url: str
    title: str = ""
    content_type: str = ""

    @property
    def is_pdf(self) -> bool:
        if "pdf" in self.content_type.lower():
            return True
        return self.url.lower().endswith(".pdf") or self.title.lower().endswith(".pdf")


class PncpApiClient:
    """Async client for the PNCP listing and attachment endpoints."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
        page_delay: float = PAGE_DELAY_SECONDS,
    ):
        """Initialize API client.

        Args:
            settings: Optional settings instance
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
            retry_policy: Optional retry policy for every request
            sleep: Async sleep used for page pacing and retries
            page_delay: Pause between page requests in seconds
        """
        self._settings = settings or default_settings
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._retry = retry_policy or fetch_retry_policy(
            max_attempts=self._settings.pncp_max_attempts,
            delay=self._settings.pncp_retry_delay_seconds,
            sleep=sleep,
        )
        self._page_delay = page_delay
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._http()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.pncp_timeout_seconds,
                headers={"Accept": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_page(
        self,
        day: date,
        page: int,
        modality: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of notices published on ``day``.

        Args:
            day: Publication date
            page: 1-based page number
            modality: Optional ``codigoModalidadeContratacao``

        Returns:
            Raw items of the page (empty list = no more data)

        Raises:
            SourceFetchError: If every attempt failed
        """
        url = f"{self._settings.pncp_base_url}{PUBLICATION_ENDPOINT}"
        params: Dict[str, Any] = {
            "dataInicial": day.strftime("%Y%m%d"),
            "dataFinal": day.strftime("%Y%m%d"),
            "pagina": page,
            "tamanhoPagina": self._settings.pncp_page_size,
        }
        if modality is not None:
            params["codigoModalidadeContratacao"] = modality

        try:
            payload = await self._retry.call(self._get_json, url, params)
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as e:
            raise SourceFetchError(
                f"Falha ao buscar página {page} (modalidade {modality}) de {day.isoformat()}: {e}",
                source="pncp",
                url=url,
                status_code=_status_of(e),
            ) from e

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            return payload.get("data") or []
        return []

    async def fetch_all_pages(
        self,
        day: date,
        modalities: Optional[Iterable[int]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every notice published on ``day``.

        For each modality, pages are requested from 1 upward until the
        first empty page.

        Raises:
            SourceFetchError: On the first page that cannot be fetched
        """
        codes = list(modalities if modalities is not None else self._settings.pncp_modality_codes)
        records: List[Dict[str, Any]] = []

        for modality in codes:
            page = 1
            while True:
                items = await self.fetch_page(day, page, modality)
                if not items:
                    logger.debug("Modalidade %s: página %d vazia, fim da paginação", modality, page)
                    break
                records.extend(items)
                logger.debug("Modalidade %s: página %d com %d itens", modality, page, len(items))
                page += 1
                if self._page_delay > 0:
                    await self._sleep(self._page_delay)

        logger.info("PNCP: %d licitações encontradas para %s", len(records), day.isoformat())
        return records

    async def list_attachments(self, cnpj: str, year: int, sequence: int) -> List[Attachment]:
        """List the files attached to a purchase.

        Raises:
            SourceFetchError: If every attempt failed
        """
        url = self._settings.pncp_files_base_url + ATTACHMENTS_ENDPOINT.format(
            cnpj=cnpj, year=year, sequence=sequence
        )
        try:
            payload = await self._retry.call(self._get_json, url, None)
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as e:
            raise SourceFetchError(
                f"Falha ao listar arquivos de {cnpj}/{year}/{sequence}: {e}",
                source="pncp",
                url=url,
                status_code=_status_of(e),
            ) from e

        items = payload if isinstance(payload, list) else []
        attachments = []
        for item in items:
            if not isinstance(item, dict):
                continue
            file_url = item.get("url") or item.get("uri")
            if not file_url:
                continue
            attachments.append(Attachment(
                url=file_url,
                title=item.get("titulo") or item.get("nome") or "",
                content_type=item.get("tipo") or "",
            ))
        return attachments

    async def download(self, url: str) -> bytes:
        """Download a file.

        Raises:
            SourceFetchError: If every attempt failed
        """
        try:
            return await self._retry.call(self._get_bytes, url)
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as e:
            raise SourceFetchError(
                f"Falha ao baixar arquivo: {e}",
                source="pncp",
                url=url,
                status_code=_status_of(e),
            ) from e

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        response = await self._http().get(url, params=params)
        if response.status_code in EMPTY_STATUS_CODES:
            return None
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    async def _get_bytes(self, url: str) -> bytes:
        response = await self._http().get(url)
        response.raise_for_status()
        return response.content


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None
