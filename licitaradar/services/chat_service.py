"""Retrieval-augmented chat over the stored chunks of one record."""

from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from licitaradar.ai.llm_client import LLMClient
from licitaradar.ai.retry import RetryPolicy, ai_retry_policy
from licitaradar.core.constants import CHAT_NOT_FOUND_REPLY
from licitaradar.core.exceptions import InputValidationError
from licitaradar.core.logging import get_logger
from licitaradar.db.repositories import ChunkRepository
from licitaradar.db.session import get_session
from licitaradar.services.embedding_service import EmbeddingIntent, EmbeddingService

logger = get_logger("services.chat")

CHAT_TOP_K = 5

CHAT_PROMPT = """Você é um assistente especialista em licitações.
Responda à PERGUNTA DO USUÁRIO usando APENAS o CONTEXTO abaixo, extraído dos documentos
oficiais da licitação. Se a resposta não estiver no contexto, diga
"A informação solicitada não foi encontrada nos documentos da licitação."
Seja direto e conciso.

--- CONTEXTO ---
{context}
--- FIM DO CONTEXTO ---

PERGUNTA DO USUÁRIO: {question}
"""


class ChatService:
    """Answers questions about one record from its document chunks."""

    def __init__(
        self,
        llm: LLMClient,
        embeddings: EmbeddingService,
        session_factory: Optional[sessionmaker] = None,
        model: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        top_k: int = CHAT_TOP_K,
    ):
        self._llm = llm
        self._embeddings = embeddings
        self._session_factory = session_factory
        self._model = model
        self._retry = retry_policy or ai_retry_policy()
        self._top_k = top_k

    async def ask(self, control_number: str, question: str) -> str:
        """Answer ``question`` using the nearest chunks of the record.

        Raises:
            InputValidationError: If the question or record id is blank
            AIProcessingError: If embedding or generation fails
        """
        if not control_number or not control_number.strip():
            raise InputValidationError("Licitação não informada", field="control_number")
        if not question or not question.strip():
            raise InputValidationError("Pergunta vazia", field="question")

        query_vector = await self._embeddings.embed(question, EmbeddingIntent.QUERY)

        with get_session(self._session_factory) as session:
            chunks = ChunkRepository(session).search_similar(control_number, query_vector, self._top_k)
            texts = [chunk.text for chunk in chunks]

        if not texts:
            logger.info("Nenhum chunk encontrado para %s", control_number)
            return CHAT_NOT_FOUND_REPLY

        logger.info("%d chunks encontrados para %s", len(texts), control_number)
        prompt = CHAT_PROMPT.format(context="\n---\n".join(texts), question=question.strip())
        return await self._retry.call(
            self._llm.generate,
            prompt,
            model=self._model,
            temperature=0.3,
        )

    def document_status(self, control_number: str) -> Dict[str, object]:
        """Whether the record's documents were processed."""
        with get_session(self._session_factory) as session:
            count = ChunkRepository(session).count_for(control_number)

        if count > 0:
            return {
                "status": "processed",
                "chunks": count,
                "message": f"Base de conhecimento pronta com {count} trechos.",
            }
        return {
            "status": "empty",
            "chunks": 0,
            "message": "Os documentos desta licitação ainda não foram processados.",
        }
