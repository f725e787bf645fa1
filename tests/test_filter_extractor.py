"""Tests for AI filter extraction and filter matching."""

import asyncio
import json
from datetime import date

import pytest

from licitaradar.ai.filter_extractor import FilterExtractor
from licitaradar.ai.schemas import StructuredFilter, contains_term
from licitaradar.core.domain_profile import GLOBAL_BLACKLIST, OUT_OF_PROFILE_TERMS
from licitaradar.core.exceptions import AIProcessingError, AIProviderError
from tests.conftest import FakeLLM, SleepRecorder


def make_extractor(llm):
    return FilterExtractor(llm=llm, sleep=SleepRecorder())


FACILITIES_ANSWER = json.dumps({
    "palavrasChave": ["facilities", "apoio administrativo"],
    "sinonimos": [["recepcionista", "porteiro", "serviços gerais"]],
    "valorMin": 500000,
    "valorMax": None,
    "estado": None,
    "modalidade": None,
    "dataInicial": None,
    "dataFinal": None,
    "blacklist": ["Copeiragem"],
    "smartBlacklist": ["limpeza hospitalar", "vigilância"],
})


class TestExtractFilters:
    """Tests for FilterExtractor.extract_filters."""

    def test_facilities_question(self):
        """Test value, explicit exclusion and smart blacklist are extracted."""
        llm = FakeLLM([FACILITIES_ANSWER])
        result = asyncio.run(make_extractor(llm).extract_filters(
            "licitações de facilities acima de 500 mil, sem copeiragem",
            today=date(2024, 5, 10),
        ))

        assert result.valor_min == 500000
        assert result.valor_max is None
        assert "copeiragem" in result.blacklist
        assert result.smart_blacklist
        assert "2024-05-10" in llm.calls[0]

    def test_missing_value_is_none(self):
        """Test an absent valorMin decodes to None, not zero."""
        llm = FakeLLM(['{"palavrasChave": ["limpeza"]}'])
        result = asyncio.run(make_extractor(llm).extract_filters("limpeza em SP"))
        assert result.valor_min is None
        assert result.palavras_chave == ["limpeza"]

    def test_global_blacklist_always_present(self):
        """Test the global exclusions are merged even when omitted by the model."""
        llm = FakeLLM(['{"palavrasChave": ["limpeza"], "blacklist": []}'])
        result = asyncio.run(make_extractor(llm).extract_filters("limpeza"))
        assert set(t.lower() for t in GLOBAL_BLACKLIST) <= set(result.blacklist)

    def test_user_exclusions_merged_without_duplicates(self):
        """Test typed exclusions are lower-cased and deduplicated."""
        llm = FakeLLM(['{"blacklist": ["copeiragem"]}'])
        result = asyncio.run(make_extractor(llm).extract_filters(
            "facilities", user_exclusions=["Copeiragem", " jardinagem ", ""],
        ))
        assert result.blacklist.count("copeiragem") == 1
        assert "jardinagem" in result.blacklist

    def test_malformed_answer_gives_defaults(self):
        """Test non-JSON output degrades to default filters."""
        llm = FakeLLM(["desculpe, não entendi"])
        result = asyncio.run(make_extractor(llm).extract_filters("qualquer coisa"))
        assert result.palavras_chave == []
        assert result.valor_min is None
        assert "pavimentação" in result.blacklist

    def test_malformed_fields_fall_back(self):
        """Test individually invalid fields become their defaults."""
        llm = FakeLLM(['{"valorMin": "muito", "estado": "São Paulo", '
                       '"dataInicial": "ontem", "palavrasChave": "limpeza"}'])
        result = asyncio.run(make_extractor(llm).extract_filters("limpeza"))
        assert result.valor_min is None
        assert result.estado is None
        assert result.data_inicial is None
        assert result.palavras_chave == []

    def test_empty_question_skips_model(self):
        """Test a blank question makes no call."""
        llm = FakeLLM()
        result = asyncio.run(make_extractor(llm).extract_filters("   ", user_exclusions=["obra"]))
        assert llm.calls == []
        assert "obra" in result.blacklist

    def test_provider_failure_raises(self):
        """Test provider errors surface as AIProcessingError."""
        llm = FakeLLM([AIProviderError("bad", status_code=400)])
        with pytest.raises(AIProcessingError):
            asyncio.run(make_extractor(llm).extract_filters("limpeza"))

    def test_unexpected_error_wrapped(self):
        """Test non-AI exceptions are wrapped."""
        llm = FakeLLM([RuntimeError("boom")])
        with pytest.raises(AIProcessingError):
            asyncio.run(make_extractor(llm).extract_filters("limpeza"))


class TestSmartBlacklistSizing:
    """Tests for how the smart blacklist scales with question specificity."""

    def test_prompt_scopes_focused_question_to_conflicting_areas(self):
        """Test the rule asks for a short list of the areas not mentioned."""
        prompt = FilterExtractor.build_prompt("limpeza hospitalar em SP", date(2024, 5, 10))
        rule = prompt.split("7. \"smartBlacklist\"")[1].split("</REGRAS>")[0]
        assert "CURTA" in rule
        assert "NÃO citados" in rule
        assert "lista vazia" not in prompt

    def test_prompt_gives_generic_question_full_vocabulary(self):
        """Test every out-of-profile term is offered for generic questions."""
        prompt = FilterExtractor.build_prompt("licitações de maio", date(2024, 5, 10))
        block = prompt.split("<EXCLUSOES_FORA_DO_PERFIL>")[1].split("</EXCLUSOES_FORA_DO_PERFIL>")[0]
        assert all(f'"{term}"' in block for term in OUT_OF_PROFILE_TERMS)
        assert "TODOS os termos de\n      <EXCLUSOES_FORA_DO_PERFIL>" in prompt

    def test_generic_answer_without_smart_blacklist_filled(self):
        """Test a keyword-less answer falls back to the full out-of-profile list."""
        llm = FakeLLM(['{"palavrasChave": [], "estado": "SP"}'])
        result = asyncio.run(make_extractor(llm).extract_filters("licitações em SP"))
        assert result.smart_blacklist == [t.lower() for t in OUT_OF_PROFILE_TERMS]
        assert not result.matches_text("aquisição de medicamentos")
        assert result.matches_text("serviços de limpeza predial")

    def test_focused_answer_kept_as_is(self):
        """Test a focused answer keeps the model's short list."""
        llm = FakeLLM([FACILITIES_ANSWER])
        result = asyncio.run(make_extractor(llm).extract_filters("facilities"))
        assert result.smart_blacklist == ["limpeza hospitalar", "vigilância"]


class TestStructuredFilterMatching:
    """Tests for local filter application."""

    def test_whole_word_terms(self):
        """Test terms only match whole words."""
        assert contains_term("curso de capacitação", "curso")
        assert not contains_term("recursos humanos", "curso")

    def test_blacklist_excludes(self):
        """Test a hard exclusion wins over keywords."""
        f = StructuredFilter(palavrasChave=["limpeza"], blacklist=["eventos"])
        assert not f.matches_text("limpeza pós eventos")
        assert f.matches_text("limpeza predial")

    def test_smart_blacklist_only_without_keyword(self):
        """Test soft exclusions apply only when no keyword matches."""
        f = StructuredFilter(smartBlacklist=["vigilância"])
        assert not f.matches_text("vigilância patrimonial")

        f = StructuredFilter(palavrasChave=["portaria"], smartBlacklist=["vigilância"])
        assert f.matches_text("portaria e vigilância")

    def test_synonyms_count_as_keywords(self):
        """Test synonym groups widen the keyword match."""
        f = StructuredFilter(palavrasChave=["facilities"], sinonimos=[["recepcionista"]])
        assert f.matches_text("contratação de recepcionista")
        assert not f.matches_text("fornecimento de água mineral")

    def test_value_range(self):
        """Test min/max bounds and unknown values."""
        f = StructuredFilter(valorMin=1000, valorMax=5000)
        assert f.matches_value(1000)
        assert not f.matches_value(999.99)
        assert not f.matches_value(None)
        assert StructuredFilter().matches_value(None)

    def test_decode_non_object(self):
        """Test decode of a list yields defaults."""
        assert StructuredFilter.decode(["x"]) == StructuredFilter()
