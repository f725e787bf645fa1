"""Free-text question -> StructuredFilter via one model call.

The prompt carries the business profile so the model can map the question
onto the company's areas, and size a "smart blacklist" to the question: the
conflicting areas for a focused question, the whole out-of-profile
vocabulary for a generic one. The answer goes through the schema-validated
decode of ``StructuredFilter``: a malformed field becomes its default.
"""

from datetime import date
from typing import Iterable, Optional

from licitaradar.ai.json_utils import extract_json
from licitaradar.ai.llm_client import LLMClient
from licitaradar.ai.retry import RetryPolicy, Sleep, ai_retry_policy
from licitaradar.ai.schemas import StructuredFilter, dedupe
from licitaradar.core.domain_profile import (
    GLOBAL_BLACKLIST,
    KNOWN_MODALITIES,
    OUT_OF_PROFILE_TERMS,
    format_business_areas,
    format_global_blacklist,
    format_out_of_profile_terms,
)
from licitaradar.core.exceptions import AIProcessingError, ParsingError
from licitaradar.core.logging import get_logger

logger = get_logger("ai.filter_extractor")

FILTER_PROMPT = """<MISSAO>
Você é um assistente especializado em licitações públicas no Brasil. Sua única função
é extrair informações da pergunta do usuário e convertê-las em um objeto JSON estrito,
sem texto, explicação ou markdown adicional.
</MISSAO>

<CONTEXTO>
A data de referência (hoje) é: {today}.

Ramos de atuação da empresa (use como base para mapear os termos da pergunta):
{areas}

Modalidades de licitação conhecidas: {modalities}.

<EXCLUSOES_GLOBAIS>
Os termos abaixo devem SEMPRE ser incluídos na "blacklist":
{global_blacklist}
</EXCLUSOES_GLOBAIS>

<EXCLUSOES_FORA_DO_PERFIL>
Compras que a empresa não atende (use na regra 7 para perguntas genéricas):
{out_of_profile}
</EXCLUSOES_FORA_DO_PERFIL>
</CONTEXTO>

<REGRAS>
1. "palavrasChave": termos exatos da pergunta e os termos-chave dos ramos identificados.
   "sinonimos": uma lista de sinônimos por ramo identificado.
2. Datas no formato YYYY-MM-DD. "últimos X dias": dataFinal = hoje, dataInicial = hoje - X dias.
   Sem período mencionado: dataInicial e dataFinal null.
3. Valores: "500 mil" = 500000, "1 milhão" = 1000000. "acima de X" -> valorMin,
   "até X" / "abaixo de X" -> valorMax, "entre X e Y" -> ambos.
4. Estado: sigla em maiúsculas ("São Paulo" -> "SP"); null se não mencionado.
5. Modalidade: uma das modalidades conhecidas; null se não mencionada.
6. "blacklist": as exclusões globais e os termos que o usuário NÃO quer ver
   ("exceto", "sem", "nada de", "excluindo").
7. "smartBlacklist": dimensione pela especificidade da pergunta.
   a) Pergunta focada em um ramo (ou poucos ramos citados): lista CURTA, apenas com os
      termos-chave e sinônimos dos ramos que conflitam com ela, ou seja, os NÃO citados.
   b) Pergunta genérica, sem ramo identificado: TODOS os termos de
      <EXCLUSOES_FORA_DO_PERFIL>, aplicados de forma agressiva.
</REGRAS>

<FORMATO_DE_SAIDA>
{{
  "palavrasChave": ["string"],
  "sinonimos": [["string"]],
  "valorMin": number | null,
  "valorMax": number | null,
  "estado": string | null,
  "modalidade": string | null,
  "dataInicial": string | null,
  "dataFinal": string | null,
  "blacklist": ["string"],
  "smartBlacklist": ["string"]
}}
</FORMATO_DE_SAIDA>

Pergunta do usuário: "{question}"
"""


class FilterExtractor:
    """Builds a ``StructuredFilter`` from a user question."""

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

    async def extract_filters(
        self,
        question: str,
        user_exclusions: Iterable[str] = (),
        today: Optional[date] = None,
    ) -> StructuredFilter:
        """Extract a structured filter from ``question``.

        Args:
            question: Free-text question
            user_exclusions: Exclusion terms typed by the user
            today: Reference date for relative periods

        Returns:
            Validated filter; defaults (plus exclusions) on malformed output

        Raises:
            AIProcessingError: If the provider call fails after retries
        """
        if not question or not question.strip():
            logger.warning("Extração de filtros chamada com pergunta vazia")
            return self._merge(StructuredFilter(), user_exclusions)

        prompt = self.build_prompt(question.strip(), today or date.today())
        logger.info("Extraindo filtros de: %s", question.strip()[:120])

        try:
            text = await self._retry.call(
                self._llm.generate,
                prompt,
                model=self._model,
                json_output=True,
            )
        except AIProcessingError:
            raise
        except Exception as e:
            raise AIProcessingError(
                f"Falha na comunicação com a IA: {e}",
                model=self._model,
                prompt_preview=prompt,
            ) from e

        try:
            parsed = StructuredFilter.decode(extract_json(text, expect=dict))
        except ParsingError as e:
            logger.warning("Filtros inválidos, usando padrões: %s | Resposta bruta: %s", e, e.raw_output)
            parsed = StructuredFilter()

        result = self._merge(parsed, user_exclusions)
        logger.debug(
            "Filtros: %d palavras-chave, valor %s-%s, estado=%s, %d exclusões, %d exclusões inteligentes",
            len(result.palavras_chave),
            result.valor_min,
            result.valor_max,
            result.estado,
            len(result.blacklist),
            len(result.smart_blacklist),
        )
        return result

    @staticmethod
    def build_prompt(question: str, today: date) -> str:
        return FILTER_PROMPT.format(
            today=today.isoformat(),
            areas=format_business_areas(),
            modalities=", ".join(f'"{m}"' for m in KNOWN_MODALITIES),
            global_blacklist=format_global_blacklist(),
            out_of_profile=format_out_of_profile_terms(),
            question=question.replace('"', "'"),
        )

    @staticmethod
    def _merge(parsed: StructuredFilter, user_exclusions: Iterable[str]) -> StructuredFilter:
        """Hard blacklist = global + model-identified + user, lower-cased, no duplicates.

        A generic question (no keywords) that came back without a smart
        blacklist gets the whole out-of-profile vocabulary.
        """
        user_terms = [t.strip().lower() for t in user_exclusions if isinstance(t, str) and t.strip()]
        blacklist = dedupe([
            *(term.lower() for term in GLOBAL_BLACKLIST),
            *parsed.blacklist,
            *user_terms,
        ])
        update = {"blacklist": blacklist}
        if not parsed.palavras_chave and not parsed.smart_blacklist:
            update["smart_blacklist"] = [term.lower() for term in OUT_OF_PROFILE_TERMS]
        return parsed.model_copy(update=update)
