"""Embedding service with document/query intent."""

from enum import Enum
from typing import List, Optional

from licitaradar.ai.llm_client import LLMClient
from licitaradar.core.exceptions import AIProcessingError
from licitaradar.core.logging import get_logger
from licitaradar.settings import Settings, settings as default_settings

logger = get_logger("services.embedding")

# Input chars sent to the embedding model
MAX_EMBEDDING_CHARS = 8000


class EmbeddingIntent(Enum):
    """What the vector will be used for; maps to the provider task type."""

    DOCUMENT = "RETRIEVAL_DOCUMENT"
    QUERY = "RETRIEVAL_QUERY"


class EmbeddingService:
    """Service for creating text embeddings.

    No caching and no retry here: callers decide whether a failed chunk
    is skipped or fails their operation.
    """

    def __init__(self, llm: LLMClient, settings: Optional[Settings] = None):
        """Initialize embedding service.

        Args:
            llm: Provider client
            settings: Optional settings instance
        """
        self._llm = llm
        self._settings = settings or default_settings

    async def embed(self, text: str, intent: EmbeddingIntent = EmbeddingIntent.DOCUMENT) -> List[float]:
        """Create embedding vector for text.

        Args:
            text: Text to embed
            intent: Indexing (DOCUMENT) or retrieval (QUERY)

        Returns:
            Embedding vector of ``embedding_dimension`` floats

        Raises:
            AIProcessingError: If the provider fails or returns a wrong-sized vector
        """
        text = (text or "").strip()
        if not text:
            raise AIProcessingError("Texto vazio não pode ser vetorizado", model=self._settings.embedding_model)
        if len(text) > MAX_EMBEDDING_CHARS:
            text = text[:MAX_EMBEDDING_CHARS]
            logger.debug("Texto truncado para %d caracteres antes do embedding", MAX_EMBEDDING_CHARS)

        try:
            vector = await self._llm.embed(text, intent.value)
        except AIProcessingError:
            raise
        except Exception as e:
            logger.error("Falha na geração de embedding: %s", e)
            raise AIProcessingError(
                f"Falha na geração de embedding: {e}",
                model=self._settings.embedding_model,
            ) from e

        if len(vector) != self._settings.embedding_dimension:
            raise AIProcessingError(
                f"Embedding com dimensão {len(vector)}, esperado {self._settings.embedding_dimension}",
                model=self._settings.embedding_model,
            )
        return vector
