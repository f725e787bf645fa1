"""LLM-based viability classification of procurement notices.

Decides, for a fixed business profile, which notices are worth looking
at. Works in batches to keep the number of model calls (and the prompt
size) bounded:

1. Cache partition: known-viable pass, known-non-viable drop, rest queued
2. Queue split into batches of ``batch_size`` (150)
3. One prompt per batch with only id + description and the profile rules
4. Response parsed leniently; unparsable or failed batch = all non-viable
5. Every evaluated verdict cached (true and false); an aborted batch is not
6. Fixed pause between batches, none after the last one
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set

from licitaradar.ai.json_utils import extract_json
from licitaradar.ai.llm_client import LLMClient
from licitaradar.ai.retry import RetryPolicy, Sleep, ai_retry_policy
from licitaradar.cache.ttl_cache import ViabilityCache
from licitaradar.core.domain_profile import GLOBAL_BLACKLIST, format_business_areas
from licitaradar.core.exceptions import OperationAborted
from licitaradar.core.logging import get_logger

logger = get_logger("ai.relevance_classifier")

# Description chars sent per item
MAX_DESCRIPTION_CHARS = 600

CLASSIFIER_PROMPT = """Você é um analista de licitações públicas de uma empresa brasileira de serviços.
Avalie cada licitação da lista abaixo e decida se ela é VIÁVEL para a empresa.

<RAMOS_DE_ATUACAO>
{areas}
</RAMOS_DE_ATUACAO>

<REGRAS>
1. VIÁVEL: o objeto se enquadra claramente em pelo menos um dos ramos de atuação.
2. NÃO VIÁVEL: o objeto trata de compra de materiais avulsos, eventos, shows,
   alimentação festiva, obras de pavimentação ou qualquer tema fora dos ramos.
3. NÃO VIÁVEL: o objeto contém algum destes termos de exclusão: {exclusions}.
4. Na dúvida, considere NÃO VIÁVEL.
</REGRAS>

<FORMATO_DE_SAIDA>
Responda APENAS com um array JSON contendo os "id" das licitações VIÁVEIS.
Exemplo: ["id1", "id3"]. Se nenhuma for viável, responda [].
</FORMATO_DE_SAIDA>

<LICITACOES>
{items}
</LICITACOES>
"""


@dataclass
class ClassificationProgress:
    """Progress event emitted while classifying.

    ``event`` is one of ``start``, ``batch``, ``done``, ``cancelled``.
    """

    event: str
    total_items: int = 0
    total_batches: int = 0
    batch_index: Optional[int] = None
    viable_ids: List[str] = field(default_factory=list)
    viable_count: int = 0
    cached_viable: int = 0


ProgressCallback = Callable[[ClassificationProgress], None]


def record_field(record: Any, name: str, default: Any = None) -> Any:
    """Read a field from a record dict or ORM object."""
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def record_key(record: Any) -> str:
    return str(record_field(record, "control_number"))


class RelevanceClassifier:
    """Batch viability classifier guarded by a TTL cache."""

    def __init__(
        self,
        llm: LLMClient,
        cache: ViabilityCache,
        batch_size: int = 150,
        batch_delay: float = 2.0,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
        model: Optional[str] = None,
    ):
        """Initialize classifier.

        Args:
            llm: Generative model client
            cache: Viability verdict cache
            batch_size: Records per prompt
            batch_delay: Pause between consecutive batches in seconds
            retry_policy: Retry policy for the model call
            sleep: Async sleep (injectable for tests)
            model: Optional model override
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._llm = llm
        self._cache = cache
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._sleep = sleep or asyncio.sleep
        self._retry = retry_policy or ai_retry_policy(sleep=sleep)
        self._model = model

    async def classify(
        self,
        records: Sequence[Any],
        on_progress: Optional[ProgressCallback] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> List[Any]:
        """Return the viable subset of ``records`` (input order kept).

        Args:
            records: Records with ``control_number`` and ``description``
            on_progress: Optional callback receiving progress events
            abort: Optional event; when set, the running batch call is
                cancelled and no further batch is started

        Returns:
            Viable records
        """
        viable_keys: Set[str] = set()
        pending: List[Any] = []

        for record in records:
            key = record_key(record)
            verdict = self._cache.get(key)
            if verdict is True:
                viable_keys.add(key)
            elif verdict is None:
                pending.append(record)

        batches = [
            pending[i:i + self._batch_size]
            for i in range(0, len(pending), self._batch_size)
        ]
        cached_viable = len(viable_keys)

        logger.info(
            "Classificando %d licitações: %d do cache, %d em %d lotes",
            len(records),
            len(records) - len(pending),
            len(pending),
            len(batches),
        )
        self._emit(on_progress, ClassificationProgress(
            event="start",
            total_items=len(records),
            total_batches=len(batches),
            cached_viable=cached_viable,
        ))

        for index, batch in enumerate(batches):
            approved = None
            if abort is None or not abort.is_set():
                approved = await self._classify_batch(batch, index, len(batches), abort)
            if approved is None:
                logger.info("Classificação interrompida no lote %d/%d", index + 1, len(batches))
                self._emit(on_progress, ClassificationProgress(
                    event="cancelled",
                    total_items=len(records),
                    total_batches=len(batches),
                    batch_index=index,
                    viable_count=len(viable_keys),
                ))
                break

            batch_viable = []
            for record in batch:
                key = record_key(record)
                is_viable = key in approved
                self._cache.set(key, is_viable)
                if is_viable:
                    viable_keys.add(key)
                    batch_viable.append(key)

            self._emit(on_progress, ClassificationProgress(
                event="batch",
                total_items=len(records),
                total_batches=len(batches),
                batch_index=index,
                viable_ids=batch_viable,
                viable_count=len(viable_keys),
            ))

            if index < len(batches) - 1 and self._batch_delay > 0:
                await self._sleep(self._batch_delay)
        else:
            self._emit(on_progress, ClassificationProgress(
                event="done",
                total_items=len(records),
                total_batches=len(batches),
                viable_count=len(viable_keys),
                cached_viable=cached_viable,
            ))

        logger.info("Classificação concluída: %d viáveis de %d", len(viable_keys), len(records))
        return [r for r in records if record_key(r) in viable_keys]

    async def _classify_batch(
        self,
        batch: List[Any],
        index: int,
        total: int,
        abort: Optional[asyncio.Event] = None,
    ) -> Optional[Set[str]]:
        """Ask the model for one batch; fail closed on any error.

        Returns ``None`` when ``abort`` interrupted the call, so the batch
        is left unevaluated (and uncached).
        """
        prompt = self.build_prompt(batch)
        batch_keys = {record_key(r) for r in batch}
        logger.debug("Lote %d/%d: %d itens", index + 1, total, len(batch))

        try:
            text = await self._retry.call_cancellable(
                abort,
                self._llm.generate,
                prompt,
                model=self._model,
                temperature=0.1,
                json_output=True,
            )
        except OperationAborted:
            return None
        except Exception as e:
            logger.error(
                "Lote %d/%d falhou após retentativas (%s); %d itens marcados como não viáveis",
                index + 1, total, e, len(batch),
            )
            return set()

        try:
            approved = self.parse_approved(text)
        except Exception as e:
            logger.warning(
                "Lote %d/%d: resposta da IA inválida (%s). Resposta bruta: %s",
                index + 1, total, e, (text or "")[:500],
            )
            return set()

        unknown = approved - batch_keys
        if unknown:
            logger.debug("Lote %d/%d: ignorando %d ids desconhecidos", index + 1, total, len(unknown))
        return approved & batch_keys

    @staticmethod
    def build_prompt(batch: Iterable[Any]) -> str:
        items = [
            {
                "id": record_key(record),
                "descricao": (record_field(record, "description") or "")[:MAX_DESCRIPTION_CHARS],
            }
            for record in batch
        ]
        return CLASSIFIER_PROMPT.format(
            areas=format_business_areas(),
            exclusions=", ".join(f'"{term}"' for term in GLOBAL_BLACKLIST),
            items=json.dumps(items, ensure_ascii=False, indent=1),
        )

    @staticmethod
    def parse_approved(text: str) -> Set[str]:
        """Extract approved ids from a model answer.

        Accepts a bare array, an object wrapping the array, and items that
        are ids or ``{"id": ...}`` objects.
        """
        value = extract_json(text)
        if isinstance(value, dict):
            value = next((v for v in value.values() if isinstance(v, list)), None)
            if value is None:
                raise ValueError("objeto JSON sem lista de aprovados")

        approved = set()
        for item in value:
            if isinstance(item, dict):
                item = item.get("id")
            if isinstance(item, (str, int)) and not isinstance(item, bool):
                approved.add(str(item))
        return approved

    @staticmethod
    def _emit(callback: Optional[ProgressCallback], event: ClassificationProgress) -> None:
        if callback is not None:
            callback(event)
