"""Tests for request validation and on-demand search."""

import asyncio
import json
from datetime import datetime

import pytest

from licitaradar.ai.filter_extractor import FilterExtractor
from licitaradar.ai.relevance_classifier import RelevanceClassifier
from licitaradar.cache.ttl_cache import InMemoryTTLCache, ResultSetCache, ViabilityCache
from licitaradar.core.exceptions import AIProviderError, InputValidationError
from licitaradar.db.repositories import RecordRepository
from licitaradar.services.search_service import (
    SearchService,
    month_bounds,
    parse_search_request,
)
from tests.conftest import FakeLLM, SleepRecorder, make_record


def make_service(llm, session_factory, result_cache=None):
    sleep = SleepRecorder()
    return SearchService(
        extractor=FilterExtractor(llm, sleep=sleep),
        classifier=RelevanceClassifier(llm, ViabilityCache.in_memory(), sleep=sleep),
        result_cache=result_cache or ResultSetCache.in_memory(),
        session_factory=session_factory,
    )


@pytest.fixture
def stored_records(session_factory):
    session = session_factory()
    RecordRepository(session).upsert_many([
        make_record("A", "serviços de limpeza hospitalar", estimated_value=800000.0,
                    published_at=datetime(2024, 5, 3), relevance_tier="Médio"),
        make_record("B", "limpeza e conservação predial", estimated_value=900000.0,
                    published_at=datetime(2024, 5, 20), relevance_tier="Alto"),
        make_record("C", "limpeza de vias públicas", estimated_value=100000.0,
                    published_at=datetime(2024, 5, 25)),
        make_record("D", "aquisição de gêneros alimentícios", estimated_value=700000.0,
                    published_at=datetime(2024, 5, 10)),
        make_record("E", "limpeza hospitalar", estimated_value=700000.0,
                    published_at=datetime(2024, 6, 2)),
    ])
    session.commit()
    session.close()


class TestParseSearchRequest:
    """Tests for request validation."""

    def test_valid(self):
        """Test a well-formed request."""
        request = parse_search_request({"question": "  limpeza  ", "mes": 5, "ano": 2024})
        assert request.question == "limpeza"
        assert request.reclassificar is False

    def test_month_out_of_range(self):
        """Test the malformed field is named."""
        with pytest.raises(InputValidationError) as exc_info:
            parse_search_request({"question": "limpeza", "mes": 13, "ano": 2024})
        assert exc_info.value.field == "mes"

    def test_blank_question(self):
        """Test whitespace-only questions are rejected."""
        with pytest.raises(InputValidationError) as exc_info:
            parse_search_request({"question": "   ", "mes": 5, "ano": 2024})
        assert exc_info.value.field == "question"

    def test_not_an_object(self):
        """Test non-object bodies are rejected."""
        with pytest.raises(InputValidationError):
            parse_search_request(["limpeza"])


class TestSearch:
    """Tests for SearchService.search."""

    def test_filters_and_orders(self, session_factory, stored_records):
        """Test keyword/value filters and tier-then-date ordering."""
        llm = FakeLLM([json.dumps({"palavrasChave": ["limpeza"], "valorMin": 500000})])
        request = parse_search_request({"question": "limpeza acima de 500 mil", "mes": 5, "ano": 2024})

        result = asyncio.run(make_service(llm, session_factory).search(request))

        assert result.error is None
        assert result.total_candidates == 4
        assert [r["control_number"] for r in result.records] == ["B", "A"]

    def test_user_exclusions_applied(self, session_factory, stored_records):
        """Test typed exclusions remove matching records."""
        llm = FakeLLM([json.dumps({"palavrasChave": ["limpeza"]})])
        request = parse_search_request({
            "question": "limpeza", "mes": 5, "ano": 2024, "exclusoes": ["hospitalar"],
        })

        result = asyncio.run(make_service(llm, session_factory).search(request))

        assert "A" not in [r["control_number"] for r in result.records]

    def test_reclassification(self, session_factory, stored_records):
        """Test reclassification keeps only approved records."""
        llm = FakeLLM([json.dumps({"palavrasChave": ["limpeza"]}), '["C"]'])
        request = parse_search_request({
            "question": "limpeza", "mes": 5, "ano": 2024, "reclassificar": True,
        })

        result = asyncio.run(make_service(llm, session_factory).search(request))

        assert [r["control_number"] for r in result.records] == ["C"]

    def test_candidates_cached(self, session_factory, stored_records):
        """Test the second search is served from the result cache."""
        cache = ResultSetCache.in_memory()
        llm = FakeLLM([json.dumps({"palavrasChave": ["limpeza"]})] * 2)
        service = make_service(llm, session_factory, cache)
        request = parse_search_request({"question": "limpeza", "mes": 5, "ano": 2024})

        asyncio.run(service.search(request))
        session = session_factory()
        RecordRepository(session).upsert(make_record("F", "limpeza", published_at=datetime(2024, 5, 4)))
        session.commit()
        session.close()
        result = asyncio.run(service.search(request))

        assert "F" not in [r["control_number"] for r in result.records]

    def test_stale_result_sets_swept(self, session_factory, stored_records):
        """Test expired result sets are dropped when a new one is loaded."""
        now = [0.0]
        backend = InMemoryTTLCache(3600, clock=lambda: now[0])
        backend.set("antiga", [{"control_number": "X"}])
        now[0] = 4000.0
        llm = FakeLLM([json.dumps({"palavrasChave": ["limpeza"]})])
        service = make_service(llm, session_factory, ResultSetCache(backend))
        request = parse_search_request({"question": "limpeza", "mes": 5, "ano": 2024})

        asyncio.run(service.search(request))

        assert backend.get("antiga") is None
        assert len(backend) == 1

    def test_ai_failure_reported(self, session_factory, stored_records):
        """Test an extraction failure yields an error result."""
        llm = FakeLLM([AIProviderError("bad", status_code=400)])
        request = parse_search_request({"question": "limpeza", "mes": 5, "ano": 2024})

        result = asyncio.run(make_service(llm, session_factory).search(request))

        assert result.error
        assert result.records == []


class TestMonthBounds:
    """Tests for period computation."""

    def test_december(self):
        """Test the year rolls over."""
        assert month_bounds(2024, 12) == (datetime(2024, 12, 1), datetime(2025, 1, 1))

    def test_leap_february(self):
        """Test February of a leap year."""
        assert month_bounds(2024, 2)[1] == datetime(2024, 3, 1)
