"""Fixed lexicons used to score sommelier responses.

`ValidationLexicon` bundles every word list and pattern the validator and
enhancer consult. Swapping the lexicon (or the validator built on it) is how
a better classifier plugs in without touching the engine.
"""

import re
from dataclasses import dataclass
from typing import Pattern, Tuple


EMOJI_PATTERN = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F1E0-\U0001F1FF"  # flags
    "\u2600-\u26FF"  # misc symbols
    "\u2700-\u27BF"  # dingbats
    "]"
)


@dataclass(frozen=True)
class Misconception:
    phrase: str
    severity: str
    correction: str


@dataclass(frozen=True)
class ValidationLexicon:
    emoji_pattern: Pattern[str] = EMOJI_PATTERN
    professional_indicators: Tuple[str, ...] = (
        "recommend", "suggest", "consider", "pairs well", "excellent choice",
        "would complement", "characteristics include", "tasting notes",
        "serving temperature", "decanting",
    )
    unprofessional_indicators: Tuple[str, ...] = (
        "awesome", "amazing", "super", "totally", "definitely gonna",
        "you guys", "no way", "for sure", "omg",
    )
    complex_terms: Tuple[str, ...] = (
        "terroir", "malolactic", "phenolic", "tannin structure", "minerality",
        "brettanomyces", "sur lie", "batonnage", "assemblage", "cuvée",
    )
    technical_terms: Tuple[str, ...] = (
        "acidity", "tannins", "body", "finish", "vintage", "varietal",
        "appellation", "oak aging", "decanting", "aerating",
    )
    reasoning_indicators: Tuple[str, ...] = (
        "because", "since", "due to", "reason", "pairs well", "complements",
    )
    wine_references: Tuple[str, ...] = ("wine", "bottle")
    location_indicators: Tuple[str, ...] = (
        "from", "producer", "winery", "region", "valley", "appellation",
    )
    misconceptions: Tuple[Misconception, ...] = (
        Misconception(
            "red wine with fish", "medium",
            "Light, low-tannin reds such as Pinot Noir can pair well with many fish dishes.",
        ),
        Misconception(
            "white wine must be chilled to freezing", "low",
            "Most whites show best at 45-55°F (7-13°C), not ice cold.",
        ),
        Misconception(
            "expensive wine is always better", "medium",
            "Price reflects many factors beyond quality; preference is personal.",
        ),
        Misconception(
            "wine gets better indefinitely with age", "medium",
            "Most wines are made to be enjoyed young; only some improve with extended aging.",
        ),
    )
    closing_phrases: Tuple[str, ...] = (
        "Enjoy your wine selection!",
        "I hope this helps with your wine choice.",
        "Please let me know if you need any additional recommendations.",
        "Feel free to ask if you have any questions about these suggestions.",
    )
    default_closing: str = "I hope this helps with your wine selection!"


DEFAULT_LEXICON = ValidationLexicon()


def find_terms(text: str, terms: Tuple[str, ...]) -> list:
    """Return the terms that occur in text (case-insensitive substring match)."""
    lowered = text.lower()
    return [term for term in terms if term in lowered]


def find_words(text: str, words: Tuple[str, ...]) -> list:
    """Like find_terms, but only whole-word matches ("super" does not match "superb")."""
    return [word for word in words if re.search(rf"\b{re.escape(word)}\b", text, re.IGNORECASE)]
