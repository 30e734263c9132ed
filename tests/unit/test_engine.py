"""Unit tests for RecommendationEngine orchestration."""

import asyncio

import pytest

from sommelier.agents.engine import (
    FALLBACK_CONFIDENCE,
    FALLBACK_EDUCATION,
    FALLBACK_ERROR,
    RecommendationEngine,
    aggregate_confidence,
    build_fallback_response,
    extract_reasoning,
    generate_follow_up_questions,
)
from sommelier.models.models import KnowledgeItem, Recommendation
from sommelier.utils.circuit_breaker import CircuitBreaker
from sommelier.utils.errors import (
    CompletionQuotaExceededError,
    CompletionRateLimitedError,
    CompletionTimeoutError,
)


class RecordingSink:
    def __init__(self):
        self.records = []

    def record(self, metrics):
        self.records.append(metrics)


class BrokenSink:
    def record(self, metrics):
        raise RuntimeError("sink offline")


class StaticRetriever:
    def __init__(self, items=None, error=None, delay=0.0):
        self.items = items or []
        self.error = error
        self.delay = delay
        self.calls = []

    async def retrieve(self, query, taste_profile=None, top_k=5):
        self.calls.append((query, top_k))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.items


class HangingClient:
    async def complete(self, system_prompt, user_prompt, params):
        await asyncio.sleep(10)


@pytest.fixture
def build_engine(model_params, instant_sleep):
    def _build(client, retriever=None, **overrides):
        options = {"sleep": instant_sleep, "metrics_sink": RecordingSink()}
        options.update(overrides)
        return RecommendationEngine(client, model_params, retriever, **options)

    return _build


class TestSuccessPath:
    """Tests for model-backed responses."""

    @pytest.mark.asyncio
    async def test_inventory_recommendation(
        self, build_engine, stub_completion_client, make_request, make_wine, good_response_text
    ):
        """Test a validated response with a cellar match."""
        sink = RecordingSink()
        client = stub_completion_client(good_response_text)
        engine = build_engine(client, metrics_sink=sink)

        response = await engine.generate_recommendations(make_request(inventory=[make_wine()]))

        assert [rec.wine_id for rec in response.recommendations] == ["wine-1"]
        assert response.confidence == 0.86
        assert response.response_metadata.validation_passed is True
        assert response.response_metadata.validation_errors == []
        assert response.response_metadata.tokens_used == 420
        assert response.response_metadata.model == "gemini-2.5-flash"
        assert response.response_metadata.request_id.startswith("req_")
        assert response.response_metadata.response_time >= 0
        assert "because" in response.reasoning
        assert response.follow_up_questions == [
            "What food will you be pairing this wine with?",
            "What's the occasion for this wine?",
        ]
        assert len(client.calls) == 1
        assert len(sink.records) == 1
        assert sink.records[0].validation_score == 100
        assert sink.records[0].request_id == response.response_metadata.request_id

    @pytest.mark.asyncio
    async def test_empty_inventory_yields_purchase(
        self, build_engine, stub_completion_client, make_request, good_response_text
    ):
        """Test that without a cellar the mention becomes a purchase suggestion."""
        engine = build_engine(stub_completion_client(good_response_text))

        response = await engine.generate_recommendations(make_request(inventory=[]))

        assert response.recommendations[0].type == "purchase"
        assert response.recommendations[0].suggested_wine.producer == "Caymus"
        assert response.confidence > 0

    @pytest.mark.asyncio
    async def test_prompts_carry_knowledge_and_pairing(
        self, build_engine, stub_completion_client, make_request, good_response_text
    ):
        """Test that retrieved knowledge and the pairing block reach the model."""
        retriever = StaticRetriever(items=[KnowledgeItem(id="k1", content="Caymus is from Napa.", confidence=0.9)])
        client = stub_completion_client(good_response_text)
        engine = build_engine(client, retriever, knowledge_top_k=3)

        await engine.generate_recommendations(make_request(food_pairing="grilled steak"))

        system_prompt, user_prompt, params = client.calls[0]
        assert "## Task: Food Pairing" in system_prompt
        assert "- Caymus is from Napa." in user_prompt
        assert params.model == "gemini-2.5-flash"
        assert retriever.calls == [("Recommend a wine", 3)]

    @pytest.mark.asyncio
    async def test_failed_validation_keeps_raw_text(self, build_engine, stub_completion_client, make_request):
        """Test that a response failing validation is returned unenhanced."""
        raw = "OMG this wine is totally awesome! \U0001F377"
        engine = build_engine(stub_completion_client(raw))

        response = await engine.generate_recommendations(make_request())

        metadata = response.response_metadata
        assert metadata.validation_passed is False
        assert "Emojis detected: \U0001F377" in metadata.validation_errors
        assert response.reasoning == "OMG this wine is totally awesome!"
        assert response.recommendations == []
        # no recommendations: 0.003 x score 58
        assert response.confidence == pytest.approx(0.17)

    @pytest.mark.asyncio
    async def test_beginner_educational_notes(self, build_engine, stub_completion_client, make_request):
        """Test that beginners get educational notes extracted from the text."""
        text = (
            "I recommend the Caymus 2019 Cabernet Sauvignon because it pairs well with steak. "
            "Note that this wine comes from the Napa Valley region and has firm tannins."
        )
        engine = build_engine(stub_completion_client(text))

        response = await engine.generate_recommendations(make_request(experience_level="beginner"))

        assert response.educational_notes.startswith("Note that this wine")
        assert response.recommendations[0].educational_context is not None


class TestResilience:
    """Tests for retry, circuit breaking, deadlines and fallback."""

    @pytest.mark.asyncio
    async def test_always_failing_completion_falls_back(
        self, build_engine, stub_completion_client, make_request
    ):
        """Test the fallback response when every attempt times out."""
        client = stub_completion_client(CompletionTimeoutError("slow"))
        sink = RecordingSink()
        engine = build_engine(client, metrics_sink=sink)

        response = await engine.generate_recommendations(make_request())

        assert len(client.calls) == 3
        assert response.confidence == FALLBACK_CONFIDENCE
        assert len(response.recommendations) == 2
        assert {rec.type for rec in response.recommendations} == {"inventory", "purchase"}
        assert response.response_metadata.validation_passed is False
        assert response.response_metadata.validation_errors == [FALLBACK_ERROR]
        assert response.response_metadata.tokens_used == 0
        assert sink.records[0].validation_score is None

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(
        self, build_engine, stub_completion_client, make_request, good_response_text
    ):
        """Test that a rate-limited first attempt is retried."""
        client = stub_completion_client(CompletionRateLimitedError("429"), good_response_text)
        engine = build_engine(client)

        response = await engine.generate_recommendations(make_request())

        assert len(client.calls) == 2
        assert response.response_metadata.validation_passed is True

    @pytest.mark.asyncio
    async def test_quota_is_not_retried(self, build_engine, stub_completion_client, make_request):
        """Test that quota exhaustion falls back after one attempt."""
        client = stub_completion_client(CompletionQuotaExceededError("quota"))
        engine = build_engine(client)

        response = await engine.generate_recommendations(make_request())

        assert len(client.calls) == 1
        assert response.response_metadata.validation_errors == [FALLBACK_ERROR]

    @pytest.mark.asyncio
    async def test_open_circuit_skips_completion(self, build_engine, stub_completion_client, make_request):
        """Test that an open breaker yields the fallback without calling the model."""
        client = stub_completion_client(CompletionQuotaExceededError("quota"))
        engine = build_engine(client, circuit_breaker=CircuitBreaker(name="completion", failure_threshold=1))

        await engine.generate_recommendations(make_request())
        response = await engine.generate_recommendations(make_request())

        assert len(client.calls) == 1
        assert response.confidence == FALLBACK_CONFIDENCE

    @pytest.mark.asyncio
    async def test_deadline_covers_completion(self, build_engine, make_request):
        """Test that a hung completion is cut off by the request deadline."""
        engine = build_engine(HangingClient(), deadline_seconds=0.05)

        response = await engine.generate_recommendations(make_request())

        assert response.response_metadata.validation_errors == [FALLBACK_ERROR]

    @pytest.mark.asyncio
    async def test_deadline_covers_retrieval(
        self, build_engine, stub_completion_client, make_request, good_response_text
    ):
        """Test that a slow retriever counts against the same deadline."""
        client = stub_completion_client(good_response_text)
        engine = build_engine(client, StaticRetriever(delay=10), deadline_seconds=0.05)

        response = await engine.generate_recommendations(make_request())

        assert client.calls == []
        assert response.confidence == FALLBACK_CONFIDENCE

    @pytest.mark.asyncio
    async def test_failing_retriever_matches_no_retriever(
        self, build_engine, stub_completion_client, make_request, good_response_text
    ):
        """Test that a retriever error is treated like no knowledge at all."""
        without = stub_completion_client(good_response_text)
        failing = stub_completion_client(good_response_text)

        first = await build_engine(without).generate_recommendations(make_request())
        second = await build_engine(failing, StaticRetriever(error=RuntimeError("index gone"))).generate_recommendations(
            make_request()
        )

        assert without.calls == failing.calls
        assert first.recommendations == second.recommendations
        assert first.confidence == second.confidence

    @pytest.mark.asyncio
    async def test_metrics_sink_failure_is_ignored(
        self, build_engine, stub_completion_client, make_request, good_response_text
    ):
        """Test that a broken metrics sink does not affect the response."""
        engine = build_engine(stub_completion_client(good_response_text), metrics_sink=BrokenSink())

        response = await engine.generate_recommendations(make_request())

        assert response.response_metadata.validation_passed is True


class TestHelpers:
    """Tests for response assembly helpers."""

    def test_aggregate_confidence(self):
        """Test the weighted formula and the empty case."""
        recs = [Recommendation(type="purchase", reasoning="r", confidence=c) for c in (0.8, 0.6)]

        assert aggregate_confidence(recs, 100) == 0.79
        assert aggregate_confidence([], 80) == 0.24
        assert aggregate_confidence([], 0) == 0.0

    def test_extract_reasoning(self):
        """Test that reasoning sentences win and the first sentence is the fallback."""
        assert extract_reasoning("A fine red. Pick it because it is bold. Enjoy.") == "Pick it because it is bold."
        assert extract_reasoning("A fine red. Enjoy.") == "A fine red."

    def test_follow_up_questions(self, make_request):
        """Test that at most two questions are asked, skipping known context."""
        assert generate_follow_up_questions(make_request(food_pairing="lamb", occasion="dinner")) == []
        assert generate_follow_up_questions(make_request(food_pairing="lamb", experience_level="beginner")) == [
            "What's the occasion for this wine?",
            "Would you like me to explain any wine terms or concepts?",
        ]

    def test_fallback_response_for_beginner(self, make_request):
        """Test that the fallback carries education for beginners."""
        response = build_fallback_response(make_request(experience_level="beginner"), request_id="req_x")

        assert all(rec.educational_context == FALLBACK_EDUCATION for rec in response.recommendations)
        assert response.response_metadata.request_id == "req_x"
        assert response.response_metadata.confidence == FALLBACK_CONFIDENCE
