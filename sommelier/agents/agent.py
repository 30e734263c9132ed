"""Factory for a fully wired RecommendationEngine.

Reads the module-level config and builds every collaborator: Gemini
completion client, circuit breakers, retry policy, optional LanceDB knowledge
retriever, parser and metrics sink. Also builds the indexer that fills the
knowledge table from a cellar.
"""

import os
import warnings
from typing import Optional, Sequence

from sommelier.agents.engine import RecommendationEngine
from sommelier.agents.parser import RecommendationParser
from sommelier.models.models import ModelParams, Wine
from sommelier.services.completion import CompletionClient, GeminiCompletionService
from sommelier.services.knowledge import (
    KnowledgeRetriever,
    LanceVectorIndex,
    SentenceTransformerEmbeddingService,
    WineKnowledgeIndexer,
)
from sommelier.utils.circuit_breaker import CircuitBreaker
from sommelier.utils.config import config
from sommelier.utils.errors import is_retryable_completion_error
from sommelier.utils.logger import logger
from sommelier.utils.metrics import LoggingMetricsSink
from sommelier.utils.retry import RetryOptions

# Suppress LanceDB fork-safety warning (not using multiprocessing)
warnings.filterwarnings("ignore", message="lance is not fork-safe")


def initialize_knowledge_retriever() -> Optional[KnowledgeRetriever]:
    """Build the vector knowledge retriever.

    Uses LanceDB for vector storage and SentenceTransformer embeddings (local, no API calls).
    The engine treats a missing retriever exactly like an empty result, so
    initialization failures are logged and yield None.

    Returns:
        KnowledgeRetriever or None if unavailable.
    """
    logger.info("Initializing knowledge base...")
    try:
        os.makedirs(config.KNOWLEDGE_DB_URI, exist_ok=True)
        retriever = KnowledgeRetriever(
            embedder=SentenceTransformerEmbeddingService(),
            index=LanceVectorIndex(uri=config.KNOWLEDGE_DB_URI, table_name=config.KNOWLEDGE_TABLE),
            circuit_breaker=CircuitBreaker(
                name="knowledge",
                failure_threshold=config.CIRCUIT_FAILURE_THRESHOLD,
                recovery_timeout=config.CIRCUIT_RECOVERY_TIMEOUT,
            ),
        )
        logger.info(f"✓ Knowledge base initialized ({config.KNOWLEDGE_DB_URI}/{config.KNOWLEDGE_TABLE})")
        return retriever
    except Exception as e:
        logger.warning(f"Knowledge base initialization failed: {e}. Continuing without knowledge base.")
        return None


def initialize_knowledge_indexer() -> Optional[WineKnowledgeIndexer]:
    """Build the indexer that writes cellar wines into the knowledge table.

    Targets the same LanceDB table the retriever reads, so indexed wines become
    retrievable on the next request.

    Returns:
        WineKnowledgeIndexer or None if the embedder or database is unavailable.
    """
    try:
        os.makedirs(config.KNOWLEDGE_DB_URI, exist_ok=True)
        indexer = WineKnowledgeIndexer(
            embedder=SentenceTransformerEmbeddingService(),
            index=LanceVectorIndex(uri=config.KNOWLEDGE_DB_URI, table_name=config.KNOWLEDGE_TABLE),
        )
        logger.info(f"✓ Knowledge indexer ready ({config.KNOWLEDGE_DB_URI}/{config.KNOWLEDGE_TABLE})")
        return indexer
    except Exception as e:
        logger.warning(f"Knowledge indexer initialization failed: {e}. Wines will not be indexed.")
        return None


async def index_inventory(wines: Sequence[Wine]) -> int:
    """Index a cellar into the knowledge base.

    Returns:
        int: Number of wines indexed (0 when the indexer is unavailable).
    """
    if not wines:
        return 0
    indexer = initialize_knowledge_indexer()
    if indexer is None:
        return 0
    return await indexer.index_wines(wines)


def _build_completion_client() -> CompletionClient:
    service = GeminiCompletionService(api_key=config.GEMINI_API_KEY)
    logger.info(f"✓ Completion service ready (model: {config.GEMINI_MODEL})")
    return CompletionClient(service, timeout_seconds=config.COMPLETION_TIMEOUT_SECONDS)


def _build_retry_options() -> RetryOptions:
    return RetryOptions(
        max_attempts=config.MAX_RETRIES,
        base_delay=config.RETRY_BASE_DELAY,
        max_delay=config.RETRY_MAX_DELAY,
        exponential_base=config.RETRY_EXPONENTIAL_BASE,
        jitter=config.RETRY_JITTER,
        retry_predicate=is_retryable_completion_error,
        on_retry=lambda attempt, error: logger.warning(
            f"Completion attempt {attempt}/{config.MAX_RETRIES} failed ({type(error).__name__}), retrying..."
        ),
    )


def initialize_recommendation_engine(use_knowledge: Optional[bool] = None) -> RecommendationEngine:
    """Factory function to initialize and configure the recommendation engine.

    Orchestrates initialization of all components in sequence:
    1. Gemini completion client with per-call timeout
    2. Circuit breaker and retry policy for completions
    3. Knowledge retriever (optional)
    4. Parser and metrics sink

    Args:
        use_knowledge: Override ENABLE_KNOWLEDGE_BASE. None keeps the configured value.

    Returns:
        RecommendationEngine: Ready to serve requests.

    Raises:
        ValueError: If GEMINI_API_KEY is missing.
    """
    logger.info("=== Initializing Recommendation Engine ===")

    completion_client = _build_completion_client()
    knowledge_enabled = config.ENABLE_KNOWLEDGE_BASE if use_knowledge is None else use_knowledge
    retriever = None
    if knowledge_enabled:
        retriever = initialize_knowledge_retriever()
    else:
        logger.info("Knowledge base disabled, recommendations will use model knowledge only")

    engine = RecommendationEngine(
        completion_client,
        ModelParams(
            model=config.GEMINI_MODEL,
            temperature=config.TEMPERATURE,
            max_tokens=config.MAX_OUTPUT_TOKENS,
        ),
        retriever,
        parser=RecommendationParser(
            default_confidence=config.RECOMMENDATION_CONFIDENCE,
            max_recommendations=config.MAX_RECOMMENDATIONS,
        ),
        circuit_breaker=CircuitBreaker(
            name="completion",
            failure_threshold=config.CIRCUIT_FAILURE_THRESHOLD,
            recovery_timeout=config.CIRCUIT_RECOVERY_TIMEOUT,
        ),
        retry_options=_build_retry_options(),
        metrics_sink=LoggingMetricsSink(logger),
        logger=logger,
        deadline_seconds=config.REQUEST_DEADLINE_SECONDS,
        knowledge_top_k=config.KNOWLEDGE_TOP_K,
    )

    logger.info("=== Engine initialization complete ===")
    return engine
