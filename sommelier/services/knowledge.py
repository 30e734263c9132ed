"""Wine knowledge base: embeddings, vector index and retrieval (RAG).

Ports:
- EmbeddingService.embed(text) -> vector
- VectorIndex.query(vector, filters, top_k) / VectorIndex.upsert(id, vector, metadata)

Default adapters use agno's SentenceTransformerEmbedder (local embeddings, no
API calls) and a LanceDB table. KnowledgeRetriever wraps both behind retry and
a circuit breaker and never raises: any failure yields an empty list.
"""

import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import lancedb
from agno.knowledge.embedder.sentence_transformer import SentenceTransformerEmbedder

from sommelier.models.models import KnowledgeItem, TasteProfile, Wine
from sommelier.utils.circuit_breaker import CircuitBreaker
from sommelier.utils.errors import CircuitOpenError, RetrievalError
from sommelier.utils.logger import logger
from sommelier.utils.retry import RetryOptions, with_retry


FILTERABLE_FIELDS = ("type", "country", "price_range")

TASTING_KEYWORDS = (
    "fruity", "earthy", "oaky", "crisp", "smooth", "bold", "light", "full-bodied",
    "tannic", "acidic", "sweet", "dry", "spicy", "floral", "mineral", "buttery",
    "citrus", "berry", "cherry", "vanilla", "chocolate", "tobacco", "leather",
)


# ============================================================================
# Ports
# ============================================================================


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class EmbeddingService(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class VectorIndex(Protocol):
    async def query(
        self, vector: List[float], filters: Optional[Dict[str, str]] = None, top_k: int = 10
    ) -> List[VectorMatch]: ...

    async def upsert(self, id: str, vector: List[float], metadata: Dict[str, Any]) -> None: ...


# ============================================================================
# Wine rendering helpers
# ============================================================================


def price_range_category(price: Optional[float]) -> Optional[str]:
    """Bucket a bottle price: budget (<20), mid-range (<50), premium (<100), luxury."""
    if price is None:
        return None
    if price < 20:
        return "budget"
    if price < 50:
        return "mid-range"
    if price < 100:
        return "premium"
    return "luxury"


def extract_tasting_keywords(notes: Optional[str]) -> List[str]:
    if not notes:
        return []
    lowered = notes.lower()
    return [keyword for keyword in TASTING_KEYWORDS if keyword in lowered]


def wine_to_text(wine: Wine) -> str:
    """Render a wine as the text that gets embedded."""
    parts = [
        f"{wine.name} by {wine.producer}",
        f"{wine.type} wine from {wine.region}, {wine.country}".rstrip(", "),
    ]
    if wine.varietal:
        parts.append(f"Made from {', '.join(wine.varietal)}")
    if wine.vintage:
        parts.append(f"Vintage {wine.vintage}")
    if wine.tasting_notes:
        parts.append(f"Tasting notes: {wine.tasting_notes}")
    keywords = extract_tasting_keywords(wine.tasting_notes)
    if keywords:
        parts.append(f"Characteristics: {', '.join(keywords)}")
    return ". ".join(parts)


def format_wine_knowledge(metadata: Dict[str, Any]) -> str:
    """Render stored metadata as a prompt-ready knowledge snippet."""
    text = (
        f"{metadata.get('name', 'Unknown wine')} by {metadata.get('producer', 'unknown producer')} "
        f"from {metadata.get('region', 'unknown region')}, {metadata.get('country', 'unknown country')}. "
        f"Type: {metadata.get('type', 'unknown')}."
    )
    varietals = metadata.get("varietals") or []
    if varietals:
        text += f" Varietals: {', '.join(varietals)}."
    if metadata.get("vintage"):
        text += f" Vintage: {metadata['vintage']}."
    if metadata.get("tasting_notes"):
        text += f" Tasting notes: {metadata['tasting_notes']}"
        if not text.endswith("."):
            text += "."
    if metadata.get("rating"):
        text += f" Professional rating: {metadata['rating']}/100."
    return text


def wine_metadata(wine: Wine) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "name": wine.name,
        "producer": wine.producer,
        "region": wine.region,
        "country": wine.country,
        "type": wine.type,
        "varietals": list(wine.varietal),
        "vintage": wine.vintage,
        "price_range": price_range_category(wine.purchase_price),
        "tasting_notes": wine.tasting_notes,
        "keywords": extract_tasting_keywords(wine.tasting_notes),
        "rating": wine.professional_rating,
    }
    metadata["knowledge"] = format_wine_knowledge(metadata)
    return metadata


def build_metadata_filter(filters: Optional[Dict[str, str]]) -> Optional[str]:
    """Translate equality filters into a LanceDB SQL predicate.

    Raises:
        ValueError: If a filter key is not filterable.
    """
    if not filters:
        return None
    clauses = []
    for key, value in filters.items():
        if key not in FILTERABLE_FIELDS:
            raise ValueError(f"Unsupported filter field: {key} (allowed: {', '.join(FILTERABLE_FIELDS)})")
        escaped = str(value).replace("'", "''")
        clauses.append(f"{key} = '{escaped}'")
    return " AND ".join(clauses)


# ============================================================================
# Adapters
# ============================================================================


class SentenceTransformerEmbeddingService:
    """Local sentence-transformer embeddings via agno's embedder."""

    def __init__(self, embedder: Optional[SentenceTransformerEmbedder] = None):
        self._embedder = embedder or SentenceTransformerEmbedder()

    async def embed(self, text: str) -> List[float]:
        # Model inference is synchronous; keep it off the event loop
        return await asyncio.to_thread(self._embedder.get_embedding, text)


class LanceVectorIndex:
    """VectorIndex stored in a LanceDB table (cosine distance).

    Args:
        uri: LanceDB directory.
        table_name: Table holding one row per wine.
    """

    def __init__(self, uri: str = "tmp/lancedb", table_name: str = "wine_knowledge"):
        self.uri = uri
        self.table_name = table_name
        self._db = None
        self._table = None
        # Upserts run on worker threads; table creation and writes must not interleave
        self._lock = threading.RLock()

    def _connect(self):
        if self._db is None:
            self._db = lancedb.connect(self.uri)
        return self._db

    def _open_table(self):
        with self._lock:
            if self._table is None:
                try:
                    self._table = self._connect().open_table(self.table_name)
                except (ValueError, FileNotFoundError):
                    return None
            return self._table

    def _query_sync(self, vector: List[float], filters: Optional[Dict[str, str]], top_k: int) -> List[VectorMatch]:
        table = self._open_table()
        if table is None:
            return []
        search = table.search(vector).distance_type("cosine").limit(top_k)
        where = build_metadata_filter(filters)
        if where:
            search = search.where(where, prefilter=True)

        matches = []
        for row in search.to_list():
            score = 1.0 - float(row.get("_distance", 1.0))
            matches.append(
                VectorMatch(
                    id=row["id"],
                    score=min(1.0, max(0.0, score)),
                    metadata=json.loads(row.get("metadata") or "{}"),
                )
            )
        return matches

    def _upsert_sync(self, id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        row = {
            "id": id,
            "vector": list(vector),
            "type": str(metadata.get("type") or ""),
            "country": str(metadata.get("country") or ""),
            "price_range": str(metadata.get("price_range") or ""),
            "metadata": json.dumps(metadata, default=str),
        }
        with self._lock:
            table = self._open_table()
            if table is None:
                self._table = self._connect().create_table(self.table_name, data=[row])
                return
            table.merge_insert("id").when_matched_update_all().when_not_matched_insert_all().execute([row])

    async def query(
        self, vector: List[float], filters: Optional[Dict[str, str]] = None, top_k: int = 10
    ) -> List[VectorMatch]:
        return await asyncio.to_thread(self._query_sync, vector, filters, top_k)

    async def upsert(self, id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._upsert_sync, id, vector, metadata)


# ============================================================================
# Retrieval and indexing
# ============================================================================


def _is_retryable_retrieval_error(error: Exception) -> bool:
    return not isinstance(error, (CircuitOpenError, ValueError))


class KnowledgeRetriever:
    """Turns a query plus taste profile into knowledge snippets.

    Args:
        embedder: EmbeddingService implementation.
        index: VectorIndex implementation.
        circuit_breaker: Shared breaker guarding the embed+search call.
        retry_options: Backoff policy; the predicate defaults to "anything but circuit-open".
        sleep: Awaitable sleep passed to the retry loop.
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        index: VectorIndex,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_options: Optional[RetryOptions] = None,
        sleep=asyncio.sleep,
    ):
        self._embedder = embedder
        self._index = index
        self._breaker = circuit_breaker or CircuitBreaker(name="knowledge")
        self._retry_options = retry_options or RetryOptions(
            max_attempts=2,
            base_delay=0.5,
            max_delay=2.0,
            retry_predicate=_is_retryable_retrieval_error,
        )
        self._sleep = sleep

    @staticmethod
    def build_search_text(query: str, taste_profile: Optional[TasteProfile]) -> str:
        if taste_profile is None:
            return query
        varietals: List[str] = []
        regions: List[str] = []
        for _, preferences in taste_profile.families():
            varietals.extend(v for v in preferences.preferred_varietals if v not in varietals)
            regions.extend(r for r in preferences.preferred_regions if r not in regions)
        parts = [query]
        if varietals:
            parts.append(f"Preferred varietals: {', '.join(varietals)}")
        if regions:
            parts.append(f"Preferred regions: {', '.join(regions)}")
        return ". ".join(part for part in parts if part)

    async def _search(self, text: str, top_k: int, filters: Optional[Dict[str, str]]) -> List[VectorMatch]:
        try:
            vector = await self._embedder.embed(text)
            return await self._index.query(vector, filters, top_k)
        except ValueError:
            raise
        except Exception as e:
            raise RetrievalError(f"Knowledge search failed: {e}") from e

    async def retrieve(
        self,
        query: str,
        taste_profile: Optional[TasteProfile] = None,
        top_k: int = 5,
        filters: Optional[Dict[str, str]] = None,
    ) -> List[KnowledgeItem]:
        """Search the knowledge base.

        Args:
            query: Free-text user query.
            taste_profile: Used to enrich the search text with preferred varietals and regions.
            top_k: Maximum number of items.
            filters: Optional equality filters on type, country or price_range.

        Returns:
            List[KnowledgeItem]: Matches ordered by similarity; empty on any failure.
        """
        text = self.build_search_text(query, taste_profile)
        if not text.strip():
            return []

        result = await with_retry(
            lambda: self._breaker.call(lambda: self._search(text, top_k, filters)),
            self._retry_options,
            sleep=self._sleep,
        )
        if not result.success:
            logger.warning(
                f"Knowledge retrieval unavailable after {result.attempts_made} attempt(s): {result.error}"
            )
            return []

        items = []
        for match in result.value or []:
            metadata = match.metadata or {}
            items.append(
                KnowledgeItem(
                    id=match.id,
                    content=metadata.get("knowledge") or format_wine_knowledge(metadata),
                    confidence=min(1.0, max(0.0, match.score)),
                    metadata=metadata,
                )
            )
        logger.debug(f"✓ Retrieved {len(items)} knowledge item(s)")
        return items


class WineKnowledgeIndexer:
    """Adds cellar wines to the vector index."""

    def __init__(self, embedder: EmbeddingService, index: VectorIndex):
        self._embedder = embedder
        self._index = index

    async def index_wine(self, wine: Wine) -> None:
        vector = await self._embedder.embed(wine_to_text(wine))
        await self._index.upsert(wine.id, vector, wine_metadata(wine))
        logger.debug(f"✓ Indexed wine {wine.id} ({wine.name})")

    async def index_wines(self, wines: Sequence[Wine]) -> int:
        """Index wines concurrently.

        Returns:
            int: Number of wines indexed successfully. Failures are logged and skipped.
        """
        results = await asyncio.gather(*(self.index_wine(wine) for wine in wines), return_exceptions=True)
        indexed = 0
        for wine, outcome in zip(wines, results):
            if isinstance(outcome, BaseException):
                logger.warning(f"Failed to index wine {wine.id}: {outcome}")
            else:
                indexed += 1
        logger.info(f"✓ Indexed {indexed}/{len(wines)} wines")
        return indexed
