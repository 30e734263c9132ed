"""Recommendation engine: one request in, one well-formed response out.

Pipeline per request:
1. Analyze context (sync)
2. Retrieve knowledge (async, absorbs failures)
3. Build prompts (sync)
4. Complete (async, circuit breaker + retry)
5. Validate, 6. enhance if validation passed, 7. parse recommendations
8. Aggregate confidence, 9. assemble response and report metrics

Steps 2-4 share one deadline. Any completion failure that survives the
resilience layer (or the deadline) produces the fallback response;
generate_recommendations never raises except on cancellation.
"""

import asyncio
import logging
import time
import uuid
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from sommelier.agents.parser import RecommendationParser, split_sentences
from sommelier.analysis.context_analyzer import ContextAnalyzer
from sommelier.models.models import (
    CompletionResult,
    ContextAnalysis,
    KnowledgeItem,
    ModelParams,
    PromptTemplate,
    Recommendation,
    RecommendationRequest,
    RecommendationResponse,
    ResponseMetadata,
    TasteProfile,
)
from sommelier.prompts.prompts import build_prompt_template, build_user_prompt, determine_recommendation_type
from sommelier.utils.circuit_breaker import CircuitBreaker
from sommelier.utils.errors import CircuitOpenError, CompletionError, CompletionTimeoutError, is_retryable_completion_error
from sommelier.utils.logger import logger as default_logger
from sommelier.utils.metrics import AIMetrics, LoggingMetricsSink, MetricsSink, calculate_cost
from sommelier.utils.retry import RetryOptions, with_retry
from sommelier.validation.enhancer import ResponseEnhancer
from sommelier.validation.validator import ResponseClassifier, ResponseValidator


FALLBACK_CONFIDENCE = 0.6
FALLBACK_ERROR = "Service unavailable - using fallback"
FALLBACK_MESSAGE = "I'm temporarily unavailable, but here are some suggestions to help you find great wine."
FALLBACK_EDUCATION = "While I work on getting back online, these suggestions can help you explore wine."
FALLBACK_SUGGESTIONS = (
    ("inventory", "Explore your inventory: browse your wine collection to find something perfect for tonight."),
    ("purchase", "Popular wines: check out wines that are popular with other wine lovers."),
)

DEFAULT_REASONING = "These recommendations reflect your taste profile and the occasion you described."
REASONING_MARKERS = ("because", "pairs well", "recommend")
EDUCATION_MARKERS = ("learn", "note that", "tip:")


class CompletionPort(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str, params: ModelParams) -> CompletionResult: ...


class KnowledgePort(Protocol):
    async def retrieve(
        self, query: str, taste_profile: Optional[TasteProfile] = None, top_k: int = 5
    ) -> List[KnowledgeItem]: ...


# ============================================================================
# Response assembly helpers
# ============================================================================


def aggregate_confidence(recommendations: Sequence[Recommendation], validation_score: int) -> float:
    """0.7 x mean recommendation confidence (0 when empty) + 0.003 x validation score, 2 dp."""
    mean = sum(r.confidence for r in recommendations) / len(recommendations) if recommendations else 0.0
    return min(1.0, max(0.0, round(0.7 * mean + 0.003 * validation_score, 2)))


def extract_reasoning(text: str) -> str:
    sentences = split_sentences(text)
    reasons = [s for s in sentences if any(marker in s.lower() for marker in REASONING_MARKERS)][:2]
    if reasons:
        return " ".join(reasons)
    return sentences[0] if sentences else DEFAULT_REASONING


def extract_educational_notes(text: str) -> Optional[str]:
    notes = [s for s in split_sentences(text) if any(marker in s.lower() for marker in EDUCATION_MARKERS)]
    return " ".join(notes) if notes else None


def generate_follow_up_questions(request: RecommendationRequest) -> List[str]:
    questions = []
    if not request.context.food_pairing:
        questions.append("What food will you be pairing this wine with?")
    if not request.context.occasion:
        questions.append("What's the occasion for this wine?")
    if request.experience_level == "beginner":
        questions.append("Would you like me to explain any wine terms or concepts?")
    return questions[:2]


def build_fallback_response(
    request: RecommendationRequest,
    request_id: str = "",
    model: str = "fallback",
    response_time: float = 0.0,
) -> RecommendationResponse:
    """Fixed, low-risk response used when the completion path fails."""
    educational = FALLBACK_EDUCATION if request.experience_level == "beginner" else None
    return RecommendationResponse(
        recommendations=[
            Recommendation(
                type=rec_type,
                reasoning=reasoning,
                confidence=FALLBACK_CONFIDENCE,
                educational_context=educational,
            )
            for rec_type, reasoning in FALLBACK_SUGGESTIONS
        ],
        reasoning=FALLBACK_MESSAGE,
        confidence=FALLBACK_CONFIDENCE,
        response_metadata=ResponseMetadata(
            request_id=request_id,
            model=model,
            tokens_used=0,
            response_time=max(0.0, response_time),
            validation_passed=False,
            validation_errors=[FALLBACK_ERROR],
            confidence=FALLBACK_CONFIDENCE,
        ),
    )


# ============================================================================
# Engine
# ============================================================================


class RecommendationEngine:
    """Orchestrates one recommendation request end to end.

    Args:
        completion_client: CompletionClient (or anything with the same `complete`).
        model_params: Model id, temperature and token limit for completions.
        knowledge_retriever: Optional retriever; None behaves like a retriever that found nothing.
        analyzer: Context analyzer.
        validator: Response classifier (lexicon-based ResponseValidator by default).
        enhancer: Response enhancer.
        parser: Recommendation parser.
        circuit_breaker: Breaker shared by all requests against the completion service.
        retry_options: Backoff policy for completions; defaults retry transient errors only.
        metrics_sink: Receives one AIMetrics record per request.
        logger: Logger for pipeline events.
        deadline_seconds: Budget for retrieval, prompt building and completion combined.
        knowledge_top_k: Knowledge items requested per call.
        sleep: Awaitable sleep used between retries.
        timer: Monotonic clock in seconds used for response time.
    """

    def __init__(
        self,
        completion_client: CompletionPort,
        model_params: ModelParams,
        knowledge_retriever: Optional[KnowledgePort] = None,
        *,
        analyzer: Optional[ContextAnalyzer] = None,
        validator: Optional[ResponseClassifier] = None,
        enhancer: Optional[ResponseEnhancer] = None,
        parser: Optional[RecommendationParser] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_options: Optional[RetryOptions] = None,
        metrics_sink: Optional[MetricsSink] = None,
        logger: Optional[logging.Logger] = None,
        deadline_seconds: float = 10.0,
        knowledge_top_k: int = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self._client = completion_client
        self._model_params = model_params
        self._retriever = knowledge_retriever
        self._analyzer = analyzer or ContextAnalyzer()
        self._validator = validator or ResponseValidator()
        self._enhancer = enhancer or ResponseEnhancer()
        self._parser = parser or RecommendationParser()
        self._breaker = circuit_breaker or CircuitBreaker(name="completion")
        self._log = logger or default_logger
        self._retry_options = retry_options or RetryOptions(
            retry_predicate=is_retryable_completion_error,
            on_retry=self._log_retry,
        )
        self._metrics = metrics_sink or LoggingMetricsSink(self._log)
        self._deadline_seconds = deadline_seconds
        self._knowledge_top_k = knowledge_top_k
        self._sleep = sleep
        self._timer = timer

    async def generate_recommendations(self, request: RecommendationRequest) -> RecommendationResponse:
        """Produce recommendations for one request.

        Args:
            request: Immutable request (query, context, profile, inventory, level).

        Returns:
            RecommendationResponse: A model-backed response, or the fallback
            response when the completion path fails. Never raises.
        """
        start = self._timer()
        request_id = f"req_{uuid.uuid4().hex[:16]}"
        extra = {"request_id": request_id, "user_id": request.user_id}

        try:
            analysis = self._analyzer.analyze(request)
            self._log.debug(
                f"Context: occasion={analysis.occasion.type} dish={analysis.food_pairing.main_dish} "
                f"urgency={analysis.urgency.level} availability={analysis.constraints.availability}",
                extra=extra,
            )

            try:
                template, completion = await asyncio.wait_for(
                    self._retrieve_and_complete(request, analysis, extra),
                    timeout=self._deadline_seconds,
                )
            except asyncio.TimeoutError as e:
                raise CompletionTimeoutError(
                    f"Request deadline of {self._deadline_seconds}s exceeded"
                ) from e

            return self._assemble_response(request, analysis, template, completion, request_id, start, extra)

        except (CompletionError, CircuitOpenError) as e:
            self._log.warning(f"Completion unavailable, using fallback: {type(e).__name__}: {e}", extra=extra)
        except Exception as e:
            self._log.error(f"Recommendation pipeline failed, using fallback: {e}", exc_info=True, extra=extra)

        return self._fallback(request, request_id, start, extra)

    async def _retrieve_and_complete(
        self,
        request: RecommendationRequest,
        analysis: ContextAnalysis,
        extra: dict,
    ) -> Tuple[PromptTemplate, CompletionResult]:
        knowledge = await self._retrieve_knowledge(request, extra)

        template = build_prompt_template(
            request.experience_level,
            determine_recommendation_type(request),
            analysis.occasion.type,
        )
        user_prompt = build_user_prompt(request, analysis, knowledge)

        result = await with_retry(
            lambda: self._breaker.call(
                lambda: self._client.complete(template.system_prompt, user_prompt, self._model_params)
            ),
            self._retry_options,
            sleep=self._sleep,
        )
        if not result.success:
            self._log.warning(f"Completion failed after {result.attempts_made} attempt(s)", extra=extra)
            raise result.error
        return template, result.value

    async def _retrieve_knowledge(self, request: RecommendationRequest, extra: dict) -> List[KnowledgeItem]:
        if self._retriever is None:
            return []
        try:
            knowledge = await self._retriever.retrieve(request.query, request.user_profile, self._knowledge_top_k)
        except Exception as e:
            self._log.warning(f"Knowledge retrieval failed, continuing without knowledge: {e}", extra=extra)
            return []
        self._log.debug(f"✓ Retrieved {len(knowledge)} knowledge item(s)", extra=extra)
        return knowledge

    def _assemble_response(
        self,
        request: RecommendationRequest,
        analysis: ContextAnalysis,
        template: PromptTemplate,
        completion: CompletionResult,
        request_id: str,
        start: float,
        extra: dict,
    ) -> RecommendationResponse:
        guidelines = template.response_guidelines
        validation = self._validator.comprehensive_validation(completion.text, guidelines)
        if validation.passed:
            final_text = self._enhancer.enhance(completion.text, guidelines)
        else:
            self._log.info(
                f"Validation failed (score {validation.score}): {', '.join(validation.error_types())}",
                extra=extra,
            )
            final_text = completion.text

        recommendations = self._parser.parse(final_text, request, analysis)
        confidence = aggregate_confidence(recommendations, validation.score)
        response_time = (self._timer() - start) * 1000

        response = RecommendationResponse(
            recommendations=recommendations,
            reasoning=extract_reasoning(final_text),
            confidence=confidence,
            educational_notes=extract_educational_notes(final_text) if guidelines.include_education else None,
            follow_up_questions=generate_follow_up_questions(request) or None,
            response_metadata=ResponseMetadata(
                request_id=request_id,
                model=self._model_params.model,
                tokens_used=completion.tokens_used,
                response_time=response_time,
                validation_passed=validation.passed,
                validation_errors=[error.message for error in validation.errors],
                confidence=confidence,
            ),
        )

        self._record_metrics(request, request_id, completion.tokens_used, response_time, confidence, validation.score)
        self._log.info(
            f"✓ {len(recommendations)} recommendation(s), confidence {confidence:.2f}, {response_time:.0f}ms",
            extra=extra,
        )
        return response

    def _fallback(self, request: RecommendationRequest, request_id: str, start: float, extra: dict) -> RecommendationResponse:
        response_time = (self._timer() - start) * 1000
        self._record_metrics(request, request_id, 0, response_time, FALLBACK_CONFIDENCE, None)
        return build_fallback_response(request, request_id, self._model_params.model, response_time)

    def _record_metrics(
        self,
        request: RecommendationRequest,
        request_id: str,
        tokens_used: int,
        response_time: float,
        confidence: float,
        validation_score: Optional[int],
    ) -> None:
        try:
            self._metrics.record(
                AIMetrics(
                    request_id=request_id,
                    user_id=request.user_id,
                    model=self._model_params.model,
                    tokens_used=tokens_used,
                    response_time_ms=response_time,
                    cost_estimate=calculate_cost(self._model_params.model, tokens_used),
                    confidence=confidence,
                    validation_score=validation_score,
                )
            )
        except Exception as e:
            self._log.warning(f"Metrics sink failed: {e}")

    def _log_retry(self, attempt: int, error: Exception) -> None:
        self._log.warning(f"Completion attempt {attempt} failed ({type(error).__name__}: {error}), retrying...")
