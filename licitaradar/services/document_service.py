"""Attachment download, text extraction, chunking and embedding per record."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from licitaradar.ai.relevance_classifier import record_field
from licitaradar.core.exceptions import SourceFetchError
from licitaradar.core.logging import get_logger
from licitaradar.db.repositories import ChunkData, ChunkRepository
from licitaradar.services.embedding_service import EmbeddingIntent, EmbeddingService
from licitaradar.sourcing.pdf.extractor import (
    MAX_PDF_PAGES,
    ScratchSpace,
    chunk_text,
    extract_pdf_text,
)
from licitaradar.sourcing.pncp.client import PncpApiClient

logger = get_logger("services.documents")


@dataclass
class DocumentExtraction:
    """Result of processing the attachments of one record."""

    control_number: str
    file_links: List[str] = field(default_factory=list)
    chunks: List[ChunkData] = field(default_factory=list)
    full_text: str = ""
    pdf_count: int = 0
    failed_files: int = 0


class DocumentService:
    """Turns a record's PDF attachments into embedded chunks."""

    def __init__(
        self,
        pncp: PncpApiClient,
        embeddings: EmbeddingService,
        chunk_size: int = 1000,
        chunk_overlap: int = 100,
        max_pages: int = MAX_PDF_PAGES,
    ):
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self._pncp = pncp
        self._embeddings = embeddings
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._max_pages = max_pages

    async def extract_and_chunk(
        self,
        record: Any,
        session: Optional[Session] = None,
    ) -> DocumentExtraction:
        """Process every PDF attachment of ``record``.

        A file that cannot be downloaded, parsed or embedded is logged and
        skipped. When ``session`` is given and at least one PDF was
        processed, the stored chunk set is replaced by the new one; a pass
        where every PDF failed leaves the stored chunks untouched.

        Args:
            record: Record dict or ORM object
            session: Optional session for persisting chunks

        Returns:
            DocumentExtraction with links, chunks and concatenated text
        """
        control_number = record_field(record, "control_number")
        result = DocumentExtraction(control_number=control_number)

        cnpj = record_field(record, "entity_cnpj")
        year = record_field(record, "purchase_year")
        sequence = record_field(record, "purchase_sequence")
        if not (cnpj and year and sequence):
            logger.debug("Licitação %s sem identificação da compra, documentos ignorados", control_number)
            return result

        try:
            attachments = await self._pncp.list_attachments(cnpj, year, sequence)
        except SourceFetchError as e:
            logger.warning("Arquivos de %s indisponíveis: %s", control_number, e)
            return result

        result.file_links = [a.url for a in attachments]
        pdfs = [a for a in attachments if a.is_pdf]
        result.pdf_count = len(pdfs)
        if not pdfs:
            logger.info("Nenhum PDF encontrado para %s", control_number)
            return result

        text_parts = []
        with ScratchSpace() as scratch:
            for attachment in pdfs:
                name = attachment.title or attachment.url.rsplit("/", 1)[-1]
                try:
                    data = await self._pncp.download(attachment.url)
                    path = scratch.write(name, data)
                    text = await asyncio.to_thread(extract_pdf_text, path, self._max_pages)
                    pieces = chunk_text(text, self._chunk_size, self._chunk_overlap)
                    if not pieces:
                        logger.info("PDF sem texto extraível: %s (%s)", name, control_number)
                        continue

                    logger.info("Gerando %d embeddings para %s", len(pieces), name)
                    file_chunks = []
                    for piece in pieces:
                        vector = await self._embeddings.embed(piece, EmbeddingIntent.DOCUMENT)
                        file_chunks.append(ChunkData(
                            file_name=name,
                            chunk_index=len(result.chunks) + len(file_chunks),
                            text=piece,
                            embedding=vector,
                        ))
                except Exception as e:
                    result.failed_files += 1
                    logger.warning("Falha ao processar documento %s de %s: %s", name, control_number, e)
                    continue

                result.chunks.extend(file_chunks)
                text_parts.append(f'Conteúdo do arquivo "{name}":\n{text.strip()}\n\n--- (Fim do Documento) ---')

        result.full_text = "\n\n".join(text_parts)

        if session is not None:
            if result.failed_files < result.pdf_count:
                ChunkRepository(session).replace_chunks(control_number, result.chunks)
            else:
                logger.warning(
                    "Nenhum PDF de %s processado; chunks armazenados mantidos", control_number
                )

        logger.info(
            "Documentos de %s: %d PDFs, %d chunks, %d falhas",
            control_number,
            result.pdf_count,
            len(result.chunks),
            result.failed_files,
        )
        return result
