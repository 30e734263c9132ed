"""Response validation against the sommelier response policy.

Each check adds an independent penalty to a score that starts at 100 and is
floored at 0. Errors are policy violations and fail the response; warnings
only lower the score.

Penalties:
- emoji_detected (error, high): -50
- inappropriate_tone / missing_professional_vocabulary (errors, medium): -20 once
- response_too_long (error, low): -10
- vocabulary level mismatch (warning): -5
- incomplete response (warning): -10
- factual misconception (error): -15 medium, -5 low
"""

from typing import List, Protocol

from sommelier.models.models import (
    ResponseGuidelines,
    ResponseValidationError,
    ResponseValidationWarning,
    ValidationResult,
)
from sommelier.validation.lexicons import DEFAULT_LEXICON, ValidationLexicon, find_terms, find_words


EMOJI_PENALTY = 50
TONE_PENALTY = 20
LENGTH_PENALTY = 10
VOCABULARY_PENALTY = 5
COMPLETENESS_PENALTY = 10
FACTUAL_PENALTIES = {"high": 25, "medium": 15, "low": 5}


class ResponseClassifier(Protocol):
    """Anything that can score a response against guidelines."""

    def comprehensive_validation(self, text: str, guidelines: ResponseGuidelines) -> ValidationResult: ...


class ResponseValidator:
    """Lexicon-based response classifier.

    Args:
        lexicon: Word lists and patterns; defaults to the built-in sommelier lexicon.
    """

    def __init__(self, lexicon: ValidationLexicon = DEFAULT_LEXICON):
        self.lexicon = lexicon

    def validate(self, text: str, guidelines: ResponseGuidelines) -> ValidationResult:
        """Score text against tone, emoji, length, vocabulary and completeness rules.

        Args:
            text: Raw completion text.
            guidelines: Response policy for the request.

        Returns:
            ValidationResult: passed is True iff no errors were found.
        """
        errors: List[ResponseValidationError] = []
        warnings: List[ResponseValidationWarning] = []
        score = 100

        score -= self._check_emojis(text, guidelines, errors)
        score -= self._check_tone(text, errors)
        score -= self._check_length(text, guidelines, errors)
        score -= self._check_vocabulary(text, guidelines, warnings)
        score -= self._check_completeness(text, warnings)

        return ValidationResult(passed=not errors, errors=errors, warnings=warnings, score=max(0, score))

    def _check_emojis(self, text: str, guidelines: ResponseGuidelines, errors: list) -> int:
        if not guidelines.no_emojis:
            return 0
        found = self.lexicon.emoji_pattern.findall(text)
        if not found:
            return 0
        errors.append(
            ResponseValidationError(
                type="emoji_detected",
                message=f"Emojis detected: {' '.join(found)}",
                severity="high",
                details=found,
            )
        )
        return EMOJI_PENALTY

    def _check_tone(self, text: str, errors: list) -> int:
        """Flag casual language and a lack of professional vocabulary.

        Unprofessional phrases match whole words only, so "super" does not flag
        "superb" or "supermarket". Professional indicators match as substrings,
        so "recommend" counts inside "recommended".

        Returns:
            int: TONE_PENALTY if either check fails, else 0.
        """
        unprofessional = find_words(text, self.lexicon.unprofessional_indicators)
        professional = find_terms(text, self.lexicon.professional_indicators)

        if unprofessional:
            errors.append(
                ResponseValidationError(
                    type="inappropriate_tone",
                    message=f"Unprofessional language detected: {', '.join(unprofessional)}",
                    severity="medium",
                    details=unprofessional,
                )
            )
        if not professional:
            errors.append(
                ResponseValidationError(
                    type="missing_professional_vocabulary",
                    message="Response lacks professional sommelier vocabulary",
                    severity="medium",
                )
            )
        # One penalty for the tone check, whichever causes fired
        return TONE_PENALTY if unprofessional or not professional else 0

    def _check_length(self, text: str, guidelines: ResponseGuidelines, errors: list) -> int:
        if len(text) <= guidelines.max_length:
            return 0
        errors.append(
            ResponseValidationError(
                type="response_too_long",
                message=f"Response too long: {len(text)} characters (max: {guidelines.max_length})",
                severity="low",
            )
        )
        return LENGTH_PENALTY

    def _check_vocabulary(self, text: str, guidelines: ResponseGuidelines, warnings: list) -> int:
        complex_count = len(find_terms(text, self.lexicon.complex_terms))
        technical_count = len(find_terms(text, self.lexicon.technical_terms))
        level = guidelines.vocabulary_level

        if level == "accessible" and complex_count > 1:
            warnings.append(
                ResponseValidationWarning(
                    type="vocabulary_too_complex",
                    message=f"Response uses {complex_count} complex terms for a beginner",
                    suggestion="Replace specialist terms with plain descriptions or explain them",
                )
            )
            return VOCABULARY_PENALTY
        if level == "intermediate" and (complex_count > 3 or technical_count == 0):
            warnings.append(
                ResponseValidationWarning(
                    type="vocabulary_mismatch",
                    message=(
                        f"Vocabulary not suited to an intermediate reader "
                        f"({complex_count} complex, {technical_count} technical terms)"
                    ),
                    suggestion="Use standard wine terminology without heavy jargon",
                )
            )
            return VOCABULARY_PENALTY
        if level == "advanced" and technical_count < 2 and complex_count == 0:
            warnings.append(
                ResponseValidationWarning(
                    type="vocabulary_too_simple",
                    message="Response is light on technical detail for an advanced reader",
                    suggestion="Discuss structure, terroir or winemaking in more depth",
                )
            )
            return VOCABULARY_PENALTY
        return 0

    def _check_completeness(self, text: str, warnings: list) -> int:
        missing = []
        if not find_terms(text, self.lexicon.reasoning_indicators):
            missing.append("reasoning explanation")
        if not find_terms(text, self.lexicon.wine_references):
            missing.append("specific wine reference")
        if not find_terms(text, self.lexicon.location_indicators):
            missing.append("producer or region information")
        if not missing:
            return 0
        warnings.append(
            ResponseValidationWarning(
                type="incomplete_response",
                message=f"Response may be missing: {', '.join(missing)}",
                suggestion="Explain the choice and name the wine, producer and region",
            )
        )
        return COMPLETENESS_PENALTY

    def validate_factual_accuracy(self, text: str) -> ValidationResult:
        """Flag well-known wine misconceptions stated in the text."""
        errors: List[ResponseValidationError] = []
        score = 100
        lowered = text.lower()
        for misconception in self.lexicon.misconceptions:
            if misconception.phrase in lowered:
                errors.append(
                    ResponseValidationError(
                        type="factual_error",
                        message=f"Potential misconception: {misconception.phrase}. {misconception.correction}",
                        severity=misconception.severity,
                    )
                )
                score -= FACTUAL_PENALTIES.get(misconception.severity, FACTUAL_PENALTIES["medium"])
        return ValidationResult(passed=not errors, errors=errors, warnings=[], score=max(0, score))

    def comprehensive_validation(self, text: str, guidelines: ResponseGuidelines) -> ValidationResult:
        """Run policy and factual checks; union the findings and average the scores."""
        policy = self.validate(text, guidelines)
        factual = self.validate_factual_accuracy(text)
        errors = policy.errors + factual.errors
        return ValidationResult(
            passed=not errors,
            errors=errors,
            warnings=policy.warnings + factual.warnings,
            score=int((policy.score + factual.score) / 2 + 0.5),
        )
