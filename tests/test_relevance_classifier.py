"""Tests for the batch viability classifier."""

import asyncio
import json

import pytest

from licitaradar.ai.relevance_classifier import RelevanceClassifier
from licitaradar.cache.ttl_cache import ViabilityCache
from licitaradar.core.exceptions import AIProviderError
from tests.conftest import FakeLLM, SleepRecorder, make_record


def make_classifier(llm, cache=None, sleep=None, batch_size=150):
    return RelevanceClassifier(
        llm=llm,
        cache=cache or ViabilityCache.in_memory(),
        batch_size=batch_size,
        sleep=sleep or SleepRecorder(),
    )


class HangingLLM(FakeLLM):
    """Model whose generate call never completes on its own."""

    started = None

    async def generate(self, contents, **kwargs):
        self.calls.append(contents)
        self.started.set()
        await asyncio.sleep(3600)


def approve_all(prompt):
    """Answer approving every id in the prompt's item list."""
    items = json.loads(prompt.split("<LICITACOES>")[1].split("</LICITACOES>")[0])
    return json.dumps([item["id"] for item in items])


class TestClassify:
    """Tests for the classify pipeline."""

    def test_viable_subset_and_cache(self):
        """Test approved ids pass and both verdicts are cached."""
        llm = FakeLLM(['["A"]'])
        cache = ViabilityCache.in_memory()
        records = [
            make_record("A", "limpeza hospitalar"),
            make_record("B", "aquisição de material esportivo"),
        ]

        result = asyncio.run(make_classifier(llm, cache).classify(records))

        assert [r["control_number"] for r in result] == ["A"]
        assert cache.get("A") is True
        assert cache.get("B") is False

    def test_garbage_response_fails_closed(self):
        """Test an unparsable answer marks the whole batch non-viable."""
        llm = FakeLLM(["isto não é JSON"])
        cache = ViabilityCache.in_memory()
        records = [make_record("A"), make_record("B")]

        assert asyncio.run(make_classifier(llm, cache).classify(records)) == []
        assert cache.get("A") is False
        assert cache.get("B") is False

    def test_provider_error_fails_closed(self):
        """Test a non-retryable provider error empties the batch."""
        llm = FakeLLM([AIProviderError("bad request", status_code=400)])
        assert asyncio.run(make_classifier(llm).classify([make_record("A")])) == []

    def test_cached_records_skip_model(self):
        """Test fully cached input makes no model call."""
        llm = FakeLLM()
        cache = ViabilityCache.in_memory()
        cache.set("A", True)
        cache.set("B", False)

        result = asyncio.run(make_classifier(llm, cache).classify(
            [make_record("A"), make_record("B")]
        ))

        assert [r["control_number"] for r in result] == ["A"]
        assert llm.calls == []

    def test_only_uncached_records_sent(self):
        """Test cached ids are not part of the prompt."""
        llm = FakeLLM([approve_all])
        cache = ViabilityCache.in_memory()
        cache.set("A", True)

        result = asyncio.run(make_classifier(llm, cache).classify(
            [make_record("A"), make_record("C")]
        ))

        assert [r["control_number"] for r in result] == ["A", "C"]
        assert '"A"' not in llm.calls[0].split("<LICITACOES>")[1]

    def test_batches_with_delay_between(self):
        """Test 300 items use 2 calls and a single 2s pause."""
        llm = FakeLLM([approve_all, "[]"])
        sleep = SleepRecorder()
        records = [make_record(f"R{i}") for i in range(300)]

        result = asyncio.run(make_classifier(llm, sleep=sleep).classify(records))

        assert len(llm.calls) == 2
        assert sleep.calls == [2.0]
        assert len(result) == 150

    def test_input_order_preserved(self):
        """Test viable records keep their input order."""
        llm = FakeLLM(['["C", "A"]'])
        records = [make_record("A"), make_record("B"), make_record("C")]
        result = asyncio.run(make_classifier(llm).classify(records))
        assert [r["control_number"] for r in result] == ["A", "C"]

    def test_unknown_ids_ignored(self):
        """Test ids not in the batch are discarded."""
        llm = FakeLLM(['["A", "Z"]'])
        cache = ViabilityCache.in_memory()
        result = asyncio.run(make_classifier(llm, cache).classify([make_record("A")]))
        assert len(result) == 1
        assert cache.get("Z") is None

    def test_quota_error_retried_after_61s(self):
        """Test a 429 is retried and the batch still succeeds."""
        llm = FakeLLM([AIProviderError("quota", status_code=429), '["A"]'])
        sleep = SleepRecorder()
        result = asyncio.run(make_classifier(llm, sleep=sleep).classify([make_record("A")]))
        assert len(result) == 1
        assert sleep.calls == [61.0]

    def test_accepts_orm_objects(self):
        """Test records may be objects with attributes."""
        class Row:
            def __init__(self, control_number, description):
                self.control_number = control_number
                self.description = description

        llm = FakeLLM(['[{"id": "A"}]'])
        result = asyncio.run(make_classifier(llm).classify([Row("A", "limpeza")]))
        assert result[0].control_number == "A"


class TestProgress:
    """Tests for progress events and cancellation."""

    def test_events_emitted(self):
        """Test start, per-batch and done events."""
        llm = FakeLLM([approve_all, "[]"])
        events = []
        records = [make_record(f"R{i}") for i in range(4)]

        asyncio.run(make_classifier(llm, batch_size=2).classify(records, on_progress=events.append))

        assert [e.event for e in events] == ["start", "batch", "batch", "done"]
        assert events[0].total_batches == 2
        assert events[1].viable_ids == ["R0", "R1"]
        assert events[-1].viable_count == 2

    def test_abort_stops_before_next_batch(self):
        """Test a set abort event prevents further model calls."""
        abort = asyncio.Event()
        events = []

        def answer_and_abort(prompt):
            abort.set()
            return approve_all(prompt)

        llm = FakeLLM([answer_and_abort])
        records = [make_record(f"R{i}") for i in range(4)]

        result = asyncio.run(make_classifier(llm, batch_size=2).classify(
            records, on_progress=events.append, abort=abort
        ))

        assert len(llm.calls) == 1
        assert [r["control_number"] for r in result] == ["R0", "R1"]
        assert events[-1].event == "cancelled"
        assert "done" not in [e.event for e in events]

    def test_abort_during_quota_error_skips_backoff(self):
        """Test an abort raised while the model call fails stops retrying at once."""
        abort = asyncio.Event()
        sleep = SleepRecorder()
        cache = ViabilityCache.in_memory()
        events = []

        def abort_then_quota(prompt):
            abort.set()
            raise AIProviderError("quota", status_code=429)

        llm = FakeLLM([abort_then_quota, "[]"])

        result = asyncio.run(make_classifier(llm, cache, sleep=sleep).classify(
            [make_record("A")], on_progress=events.append, abort=abort
        ))

        assert result == []
        assert len(llm.calls) == 1
        assert sleep.calls == []
        assert cache.get("A") is None
        assert events[-1].event == "cancelled"

    def test_abort_cancels_call_in_flight(self):
        """Test a model call that never returns is abandoned when abort is set."""
        llm = HangingLLM()
        cache = ViabilityCache.in_memory()
        events = []

        async def scenario():
            abort = asyncio.Event()
            llm.started = asyncio.Event()
            task = asyncio.ensure_future(make_classifier(llm, cache).classify(
                [make_record("A"), make_record("B")], on_progress=events.append, abort=abort
            ))
            await llm.started.wait()
            abort.set()
            return await asyncio.wait_for(task, timeout=5)

        assert asyncio.run(scenario()) == []
        assert cache.get("A") is None
        assert [e.event for e in events] == ["start", "cancelled"]


class TestParseApproved:
    """Tests for answer parsing."""

    def test_fenced_array(self):
        """Test markdown fences are tolerated."""
        assert RelevanceClassifier.parse_approved('```json\n["A", "B"]\n```') == {"A", "B"}

    def test_wrapped_object(self):
        """Test an object wrapping the list is accepted."""
        assert RelevanceClassifier.parse_approved('{"viaveis": ["A", 12]}') == {"A", "12"}

    def test_object_without_list(self):
        """Test an object without a list is rejected."""
        with pytest.raises(ValueError):
            RelevanceClassifier.parse_approved('{"ok": true}')

    def test_prompt_contains_only_id_and_description(self):
        """Test other fields are not sent to the model."""
        prompt = RelevanceClassifier.build_prompt([make_record("A", "limpeza", entity_name="Órgão X")])
        assert "Órgão X" not in prompt
        assert '"descricao": "limpeza"' in prompt
