"""Per-record AI summary and relevance tier."""

import json
from typing import Any, Optional

from licitaradar.ai.json_utils import extract_json
from licitaradar.ai.llm_client import LLMClient
from licitaradar.ai.relevance_classifier import record_field
from licitaradar.ai.retry import RetryPolicy, Sleep, ai_retry_policy
from licitaradar.ai.schemas import RecordAnalysis
from licitaradar.core.logging import get_logger

logger = get_logger("ai.record_analyzer")

# Document text sent to the model (chars)
MAX_DOCUMENT_CHARS = 30000

ANALYSIS_PROMPT = """Você é um especialista em licitações públicas no Brasil.
Analise a licitação abaixo e retorne um JSON ESTRITO.

Critérios de relevância:
- Alto: valor acima de R$ 1.000.000, objetos complexos (obras de engenharia de grande porte,
  cogestão prisional, PPP/concessões) ou serviços contínuos de grande escala.
- Médio: valor moderado, serviços contínuos (limpeza, manutenção predial, alimentação, mão de obra).
- Baixo: baixo valor, compras simples de materiais, credenciamentos simples.

Formato da resposta:
{{
  "resumo": "Resumo do objeto em uma frase.",
  "palavrasChave": ["palavra1", "palavra2", "palavra3"],
  "grauRelevanciaIA": "Alto" | "Médio" | "Baixo",
  "justificativaRelevanciaIA": "Justificativa breve (máx. 30 palavras)."
}}

--- DADOS DA LICITAÇÃO (JSON) ---
{context}

--- CONTEÚDO DOS DOCUMENTOS (EDITAL/ANEXOS) ---
{documents}
---
"""


class RecordAnalyzer:
    """Summarizes one record and assigns a relevance tier."""

    def __init__(
        self,
        llm: LLMClient,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
        model: Optional[str] = None,
    ):
        self._llm = llm
        self._retry = retry_policy or ai_retry_policy(sleep=sleep)
        self._model = model

    async def analyze(self, record: Any, document_text: str = "") -> Optional[RecordAnalysis]:
        """Analyze a record with its document text.

        Args:
            record: Record dict or ORM object
            document_text: Concatenated attachment text (may be empty)

        Returns:
            RecordAnalysis, or None if the model call or decoding failed
        """
        control_number = record_field(record, "control_number")
        prompt = self.build_prompt(record, document_text)

        try:
            text = await self._retry.call(
                self._llm.generate,
                prompt,
                model=self._model,
                json_output=True,
            )
            analysis = RecordAnalysis.model_validate(extract_json(text, expect=dict))
        except Exception as e:
            logger.warning("Análise de IA falhou para %s: %s", control_number, e)
            return None

        logger.info("Análise concluída para %s: relevância %s", control_number, analysis.grau_relevancia)
        return analysis

    @staticmethod
    def build_prompt(record: Any, document_text: str) -> str:
        published_at = record_field(record, "published_at")
        context = {
            "objeto": record_field(record, "description"),
            "valor": record_field(record, "estimated_value") or 0,
            "modalidade": record_field(record, "modality"),
            "orgao": record_field(record, "entity_name"),
            "municipio": record_field(record, "municipality"),
            "uf": record_field(record, "state"),
            "dataPublicacao": published_at.isoformat() if published_at else None,
        }
        documents = (document_text or "").strip()[:MAX_DOCUMENT_CHARS]
        return ANALYSIS_PROMPT.format(
            context=json.dumps(context, ensure_ascii=False, indent=2),
            documents=documents or "Nenhum documento PDF encontrado ou processado.",
        )
