"""Extraction of structured recommendations from sommelier prose.

The default extractor is a regular expression over capitalized
producer-like phrases, an optional vintage and a varietal keyword. It is a
heuristic; anything implementing WineMentionExtractor can replace it.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from sommelier.models.models import (
    ContextAnalysis,
    Recommendation,
    RecommendationRequest,
    SuggestedWine,
    Wine,
)


VARIETALS = (
    "Cabernet Sauvignon", "Cabernet Franc", "Cabernet", "Pinot Noir", "Pinot Grigio", "Pinot Gris",
    "Pinot", "Sauvignon Blanc", "Sauvignon", "Chardonnay", "Merlot", "Syrah", "Shiraz", "Riesling",
    "Malbec", "Zinfandel", "Tempranillo", "Sangiovese", "Nebbiolo", "Grenache", "Chenin Blanc",
    "Viognier", "Gewurztraminer",
)

WINE_MENTION_PATTERN = re.compile(
    r"\b((?:[A-Z][\w'&-]*\s+){1,4}?)"
    r"(?:((?:19|20)\d{2})\s+)?"
    r"(" + "|".join(re.escape(varietal) for varietal in VARIETALS) + r")\b"
)

# Capitalized words that start sentences rather than producer names
LEADING_STOPWORDS = {
    "a", "an", "the", "i", "try", "consider", "this", "that", "these", "for", "with", "my", "your",
    "our", "perhaps", "alternatively", "also", "finally", "first", "second", "third", "another", "or",
    "and", "if", "pair", "choose", "open", "recommend", "suggest", "enjoy",
}

# Words too generic to identify a producer on their own
GENERIC_PRODUCER_TOKENS = {
    "winery", "wines", "vineyard", "vineyards", "estate", "estates", "cellars", "cellar",
    "chateau", "château", "domaine", "reserve", "family",
}

RED_VARIETALS = (
    "cabernet", "merlot", "pinot noir", "syrah", "shiraz", "malbec", "zinfandel",
    "tempranillo", "sangiovese", "nebbiolo", "grenache",
)
WHITE_VARIETALS = (
    "chardonnay", "sauvignon blanc", "riesling", "pinot grigio", "pinot gris",
    "chenin blanc", "viognier", "gewurztraminer",
)

DEFAULT_REASONING = "Recommended based on your preferences."
BEGINNER_CONTEXT = (
    "This wine represents a classic example of its style and region, "
    "making it an excellent choice for learning about wine characteristics."
)

SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class WineMention:
    producer: str
    varietal: str
    vintage: Optional[int] = None

    @property
    def name(self) -> str:
        return f"{self.producer} {self.varietal}"


class WineMentionExtractor(Protocol):
    def extract(self, text: str) -> List[WineMention]: ...


class RegexWineMentionExtractor:
    def extract(self, text: str) -> List[WineMention]:
        mentions: List[WineMention] = []
        seen = set()
        for match in WINE_MENTION_PATTERN.finditer(text):
            words = match.group(1).split()
            while words and words[0].lower().strip(".") in LEADING_STOPWORDS:
                words.pop(0)
            if not words:
                continue
            mention = WineMention(
                producer=" ".join(words),
                varietal=match.group(3),
                vintage=int(match.group(2)) if match.group(2) else None,
            )
            key = (mention.producer.lower(), mention.varietal.lower(), mention.vintage)
            if key not in seen:
                seen.add(key)
                mentions.append(mention)
        return mentions


def infer_wine_type(varietal: str) -> str:
    lowered = varietal.lower()
    if any(red in lowered for red in RED_VARIETALS):
        return "red"
    if any(white in lowered for white in WHITE_VARIETALS):
        return "white"
    return "red"


def split_sentences(text: str) -> List[str]:
    return [sentence.strip() for sentence in SENTENCE_SPLIT_PATTERN.split(text) if sentence.strip()]


def _tokens(text: str) -> set:
    return {token for token in re.findall(r"[\w']+", text.lower()) if len(token) >= 3}


class RecommendationParser:
    """Turns enhanced response text into Recommendation entries.

    Args:
        extractor: Wine mention extractor; defaults to the regex extractor.
        default_confidence: Confidence assigned to every parsed recommendation.
        max_recommendations: Upper bound on returned entries (at most 3).
    """

    def __init__(
        self,
        extractor: Optional[WineMentionExtractor] = None,
        default_confidence: float = 0.8,
        max_recommendations: int = 3,
    ):
        if not (0.0 < default_confidence <= 1.0):
            raise ValueError(f"default_confidence must be in (0, 1], got: {default_confidence}")
        self.extractor = extractor or RegexWineMentionExtractor()
        self.default_confidence = default_confidence
        self.max_recommendations = min(3, max_recommendations)

    def parse(
        self,
        text: str,
        request: RecommendationRequest,
        analysis: Optional[ContextAnalysis] = None,
    ) -> List[Recommendation]:
        """Extract up to three recommendations.

        Args:
            text: Enhanced (or raw, when validation failed) response text.
            request: Original request; its inventory is matched against mentions.
            analysis: Context analysis; supplies the price range for purchase suggestions.

        Returns:
            List[Recommendation]: Possibly empty.
        """
        sentences = split_sentences(text)
        educational = BEGINNER_CONTEXT if request.experience_level == "beginner" else None
        recommendations = []

        for mention in self.extractor.extract(text)[: self.max_recommendations]:
            reasoning = self._reasoning_for(mention, sentences)
            wine = self.match_inventory(mention, request.inventory or [])
            if wine is not None:
                recommendations.append(
                    Recommendation(
                        type="inventory",
                        wine_id=wine.id,
                        reasoning=reasoning,
                        confidence=self.default_confidence,
                        educational_context=educational,
                    )
                )
            else:
                recommendations.append(
                    Recommendation(
                        type="purchase",
                        suggested_wine=self._suggest(mention, request, analysis),
                        reasoning=reasoning,
                        confidence=self.default_confidence,
                        educational_context=educational,
                    )
                )
        return recommendations

    @staticmethod
    def match_inventory(mention: WineMention, inventory: Sequence[Wine]) -> Optional[Wine]:
        """Best inventory wine sharing producer tokens with the mention, if any."""
        mention_tokens = _tokens(mention.producer) - LEADING_STOPWORDS - GENERIC_PRODUCER_TOKENS
        if not mention_tokens:
            return None

        best, best_score = None, 0
        for wine in inventory:
            overlap = len(mention_tokens & (_tokens(wine.name) | _tokens(wine.producer)))
            if not overlap:
                continue
            score = overlap
            if mention.vintage and wine.vintage == mention.vintage:
                score += 1
            varietal = mention.varietal.lower()
            if varietal in " ".join(wine.varietal).lower() or varietal in wine.name.lower():
                score += 1
            if score > best_score:
                best, best_score = wine, score
        return best

    @staticmethod
    def _reasoning_for(mention: WineMention, sentences: Sequence[str]) -> str:
        first_word = mention.producer.split()[0].lower()
        for sentence in sentences:
            if first_word in sentence.lower():
                return sentence
        return DEFAULT_REASONING

    @staticmethod
    def _suggest(
        mention: WineMention,
        request: RecommendationRequest,
        analysis: Optional[ContextAnalysis],
    ) -> SuggestedWine:
        price_range = analysis.constraints.price_range if analysis else request.context.price_range
        return SuggestedWine(
            name=mention.name,
            producer=mention.producer,
            vintage=mention.vintage,
            region="Various",
            varietal=[mention.varietal],
            type=infer_wine_type(mention.varietal),
            estimated_price=price_range,
        )
