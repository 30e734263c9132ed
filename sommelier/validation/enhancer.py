"""Deterministic clean-up of validated responses.

Applied only to text that passed validation. Every step is stable under
re-application, so enhance(enhance(x)) == enhance(x).
"""

import re

from sommelier.models.models import ResponseGuidelines
from sommelier.validation.lexicons import DEFAULT_LEXICON, ValidationLexicon


MISSING_SPACE_PATTERN = re.compile(r"([.!?])([A-Z])")
EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")
SENTENCE_START_PATTERN = re.compile(r"(^|[.!?]\s+)([a-z])")

GLOSSARY_MARKER = "Wine term:"

# First matching term wins
WINE_GLOSSARY = (
    ("tannins", "Tannins are compounds from grape skins, seeds and oak that leave a drying feel in the mouth."),
    ("acidity", "Acidity is the fresh, mouth-watering quality that keeps a wine lively."),
    ("decanting", "Decanting means pouring wine into another vessel to let it breathe or to separate sediment."),
    ("terroir", "Terroir is the combined effect of soil, climate and place on a wine's character."),
    ("finish", "The finish is how long the flavors linger after you swallow."),
    ("body", "Body describes how light or heavy a wine feels in the mouth."),
    ("vintage", "The vintage is the year the grapes were harvested."),
)


class ResponseEnhancer:
    def __init__(self, lexicon: ValidationLexicon = DEFAULT_LEXICON):
        self.lexicon = lexicon

    def enhance(self, text: str, guidelines: ResponseGuidelines) -> str:
        """Polish a validated response.

        Steps, in order: strip emojis, fix missing spaces after sentence
        punctuation, collapse runs of blank lines, capitalize sentence starts,
        add a glossary line for beginners, and append a closing sentence when
        the text neither closes politely nor ends in punctuation.

        Args:
            text: Validated completion text.
            guidelines: Response policy for the request.

        Returns:
            str: Enhanced text.
        """
        enhanced = self.lexicon.emoji_pattern.sub("", text) if guidelines.no_emojis else text
        enhanced = enhanced.strip()
        enhanced = MISSING_SPACE_PATTERN.sub(r"\1 \2", enhanced)
        enhanced = EXCESS_NEWLINES_PATTERN.sub("\n\n", enhanced)
        enhanced = SENTENCE_START_PATTERN.sub(lambda m: m.group(1) + m.group(2).upper(), enhanced)

        if guidelines.include_education:
            enhanced = self._add_glossary(enhanced)

        enhanced = self._ensure_closing(enhanced)
        return enhanced.strip()

    def _add_glossary(self, text: str) -> str:
        if GLOSSARY_MARKER in text:
            return text
        lowered = text.lower()
        for term, definition in WINE_GLOSSARY:
            if re.search(rf"\b{term}\b", lowered):
                return f"{text}\n\n{GLOSSARY_MARKER} {definition}"
        return text

    def _ensure_closing(self, text: str) -> str:
        lowered = text.lower()
        has_closing = any(phrase.lower()[:10] in lowered for phrase in self.lexicon.closing_phrases)
        if has_closing or text.endswith((".", "!", "?")):
            return text
        if not text:
            return self.lexicon.default_closing
        return f"{text}. {self.lexicon.default_closing}"
