"""Pydantic schemas for structured AI outputs.

Every field validator runs in ``before`` mode and falls back to the
field's documented default instead of raising: a partially malformed
model answer degrades to a weaker value, never to a crash.
"""

import re
from datetime import date
from functools import lru_cache
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from licitaradar.core.constants import RELEVANCE_ALIASES, RELEVANCE_MEDIUM


def _string_list(value: Any, lower: bool = False) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return [item.lower() for item in items] if lower else items


def _number_or_none(value: Any) -> Optional[float]:
    # bool is an int subclass; "true" is not a price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


@lru_cache(maxsize=4096)
def _term_pattern(term: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)")


def contains_term(text: str, term: str) -> bool:
    """Whole-word match ("curso" does not match "recursos")."""
    return bool(term) and _term_pattern(term).search(text) is not None


def dedupe(items: List[str]) -> List[str]:
    """Order-preserving deduplication."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


class StructuredFilter(BaseModel):
    """Search filter extracted from a free-text question.

    Defaults: empty lists for every list field, ``None`` for every scalar.
    ``blacklist`` is a hard exclusion list (global + explicit negatives);
    ``smart_blacklist`` holds terms of unrelated business areas and only
    excludes a record that matches none of the keywords.
    """

    model_config = ConfigDict(populate_by_name=True)

    palavras_chave: List[str] = Field(default_factory=list, alias="palavrasChave")
    sinonimos: List[List[str]] = Field(default_factory=list)
    valor_min: Optional[float] = Field(default=None, alias="valorMin")
    valor_max: Optional[float] = Field(default=None, alias="valorMax")
    estado: Optional[str] = None
    modalidade: Optional[str] = None
    data_inicial: Optional[date] = Field(default=None, alias="dataInicial")
    data_final: Optional[date] = Field(default=None, alias="dataFinal")
    blacklist: List[str] = Field(default_factory=list)
    smart_blacklist: List[str] = Field(default_factory=list, alias="smartBlacklist")

    @field_validator("palavras_chave", mode="before")
    @classmethod
    def _keywords(cls, value: Any) -> List[str]:
        return _string_list(value)

    @field_validator("blacklist", "smart_blacklist", mode="before")
    @classmethod
    def _exclusions(cls, value: Any) -> List[str]:
        return dedupe(_string_list(value, lower=True))

    @field_validator("sinonimos", mode="before")
    @classmethod
    def _synonyms(cls, value: Any) -> List[List[str]]:
        if not isinstance(value, list):
            return []
        return [_string_list(group) for group in value]

    @field_validator("valor_min", "valor_max", mode="before")
    @classmethod
    def _value(cls, value: Any) -> Optional[float]:
        return _number_or_none(value)

    @field_validator("estado", mode="before")
    @classmethod
    def _state(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        state = value.strip().upper()
        return state if len(state) == 2 and state.isalpha() else None

    @field_validator("modalidade", mode="before")
    @classmethod
    def _modality(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    @field_validator("data_inicial", "data_final", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Optional[date]:
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            return None
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None

    @classmethod
    def decode(cls, data: Any) -> "StructuredFilter":
        """Decode model output; anything that is not an object yields defaults."""
        if not isinstance(data, dict):
            return cls()
        return cls.model_validate(data)

    @property
    def search_terms(self) -> List[str]:
        """Keywords and synonyms, lower-cased."""
        terms = [kw.lower() for kw in self.palavras_chave]
        for group in self.sinonimos:
            terms.extend(term.lower() for term in group)
        return dedupe(terms)

    def is_excluded(self, text: str) -> bool:
        """Hard exclusion: any blacklist term appears in ``text``."""
        lowered = (text or "").lower()
        return any(contains_term(lowered, term) for term in self.blacklist)

    def matches_text(self, text: str) -> bool:
        """Keyword/exclusion match of a record description."""
        lowered = (text or "").lower()
        if self.is_excluded(lowered):
            return False

        terms = self.search_terms
        keyword_hit = any(contains_term(lowered, term) for term in terms)
        if terms and not keyword_hit:
            return False
        if not keyword_hit and any(contains_term(lowered, term) for term in self.smart_blacklist):
            return False
        return True

    def matches_value(self, value: Optional[float]) -> bool:
        if self.valor_min is None and self.valor_max is None:
            return True
        if value is None:
            return False
        if self.valor_min is not None and value < self.valor_min:
            return False
        if self.valor_max is not None and value > self.valor_max:
            return False
        return True


class RecordAnalysis(BaseModel):
    """Per-record AI summary and relevance tier."""

    model_config = ConfigDict(populate_by_name=True)

    resumo: str = ""
    palavras_chave: List[str] = Field(default_factory=list, alias="palavrasChave")
    grau_relevancia: str = Field(default=RELEVANCE_MEDIUM, alias="grauRelevanciaIA")
    justificativa: str = Field(default="", alias="justificativaRelevanciaIA")

    @field_validator("resumo", "justificativa", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @field_validator("palavras_chave", mode="before")
    @classmethod
    def _keywords(cls, value: Any) -> List[str]:
        return _string_list(value)

    @field_validator("grau_relevancia", mode="before")
    @classmethod
    def _tier(cls, value: Any) -> str:
        if not isinstance(value, str):
            return RELEVANCE_MEDIUM
        return RELEVANCE_ALIASES.get(value.strip().lower(), RELEVANCE_MEDIUM)
