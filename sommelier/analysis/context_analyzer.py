"""Context analysis for recommendation requests.

Extracts occasion, food pairing, preference, constraint and urgency signals
from the free-text query and the structured request context. Every check is
a lexical substring match against fixed vocabularies, so the analysis is a
pure function of the request (plus the clock, which only feeds the season
default).
"""

import math
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from sommelier.models.models import (
    ConstraintContext,
    ContextAnalysis,
    FoodPairingContext,
    OccasionContext,
    PreferenceContext,
    RecommendationRequest,
    UrgencyContext,
)


# ============================================================================
# Vocabularies
# ============================================================================

# (phrases, occasion type, formality); evaluated in order, first hit wins
OCCASION_RULES: Tuple[Tuple[Tuple[str, ...], str, str], ...] = (
    (("dinner party",), "dinner_party", "semi_formal"),
    (("romantic", "date night"), "romantic_dinner", "semi_formal"),
    (("celebration", "celebrate"), "celebration", "formal"),
    (("casual",), "casual_evening", "casual"),
    (("business",), "business_dinner", "formal"),
)

TIME_OF_DAY_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("lunch", "afternoon"), "afternoon"),
    (("brunch", "morning"), "morning"),
    (("late night", "nightcap"), "late_night"),
)

SPECIAL_CONSIDERATIONS: Tuple[Tuple[str, str], ...] = (
    ("anniversary", "anniversary"),
    ("birthday", "birthday"),
    ("first time", "first_time_guest"),
    ("impress", "impressive_selection"),
    ("budget", "budget_conscious"),
    ("special", "special_occasion"),
)

DISHES = (
    "steak", "beef", "lamb", "pork", "chicken", "duck", "turkey",
    "salmon", "tuna", "cod", "lobster", "crab", "shrimp",
    "pasta", "risotto", "pizza", "salad", "soup", "cheese", "chocolate", "dessert",
)

CUISINES = (
    "italian", "french", "spanish", "german", "american", "asian", "chinese",
    "japanese", "thai", "indian", "mexican", "mediterranean", "greek",
)

FLAVORS = (
    "spicy", "sweet", "sour", "bitter", "salty", "umami", "rich", "light", "heavy",
    "creamy", "tangy", "smoky", "grilled", "roasted", "fried", "steamed", "raw",
)

COOKING_METHODS = (
    "grilled", "roasted", "braised", "fried", "steamed", "baked",
    "sautéed", "sauteed", "poached", "smoked", "raw",
)

RICH_INDICATORS = ("beef", "lamb", "duck", "cream", "butter", "cheese", "braised", "rich", "steak")
LIGHT_INDICATORS = ("fish", "chicken", "salad", "steamed", "poached", "light")

# Evaluated hot > medium > mild; first tier with a hit wins
SPICE_TIERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("hot", ("spicy", "hot", "chili", "pepper", "thai", "indian", "mexican")),
    ("medium", ("garlic", "onion", "herbs", "seasoned")),
    ("mild", ("herb", "lemon", "wine sauce")),
)

HIGH_URGENCY = ("tonight", "now", "immediately")
LOW_URGENCY = ("planning", "future", "next week")

PAST_PEAK_STATUSES = ("declining", "over_hill")


def _first_match(text: str, vocabulary: Sequence[str]) -> Optional[str]:
    return next((term for term in vocabulary if term in text), None)


def _all_matches(text: str, vocabulary: Sequence[str]) -> List[str]:
    return [term for term in vocabulary if term in text]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def season_for_month(month: int) -> str:
    """Map a calendar month (1-12) to its northern-hemisphere season."""
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "fall"
    return "winter"


class ContextAnalyzer:
    """Derives a ContextAnalysis from a RecommendationRequest.

    Args:
        clock: Returns "now"; only used when the request carries no season.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def analyze(self, request: RecommendationRequest) -> ContextAnalysis:
        return ContextAnalysis(
            occasion=self.analyze_occasion(request),
            food_pairing=self.analyze_food_pairing(request),
            preferences=self.analyze_preferences(request),
            constraints=self.analyze_constraints(request),
            urgency=self.analyze_urgency(request),
        )

    def analyze_occasion(self, request: RecommendationRequest) -> OccasionContext:
        query = request.query.lower()
        occasion = (request.context.occasion or "").lower()

        occasion_type, formality = "general", "casual"
        for phrases, rule_type, rule_formality in OCCASION_RULES:
            if any(phrase in query or phrase in occasion for phrase in phrases):
                occasion_type, formality = rule_type, rule_formality
                break

        time_of_day = "evening"
        for phrases, rule_time in TIME_OF_DAY_RULES:
            if any(phrase in query for phrase in phrases):
                time_of_day = rule_time
                break

        special = []
        for phrase, consideration in SPECIAL_CONSIDERATIONS:
            if phrase in query and consideration not in special:
                special.append(consideration)

        return OccasionContext(
            type=occasion_type,
            formality=formality,
            time_of_day=time_of_day,
            season=request.context.season or season_for_month(self._clock().month),
            companion_count=max(1, len(request.context.companions)),
            special_considerations=special,
        )

    def analyze_food_pairing(self, request: RecommendationRequest) -> FoodPairingContext:
        text = f"{request.context.food_pairing or ''} {request.query}".lower()

        main_dish = _first_match(text, DISHES)
        cuisine = _first_match(text, CUISINES)
        flavors = _all_matches(text, FLAVORS)
        cooking_method = _first_match(text, COOKING_METHODS)

        dish_terms = " ".join(term for term in (main_dish, cooking_method, *flavors) if term)
        rich_hits = len(_all_matches(dish_terms, RICH_INDICATORS))
        light_hits = len(_all_matches(dish_terms, LIGHT_INDICATORS))
        if rich_hits > light_hits:
            richness = "rich"
        elif light_hits > rich_hits:
            richness = "light"
        else:
            richness = "medium"

        # only detected flavors and cuisine count, not free text
        spice_text = " ".join([*flavors, cuisine or ""])
        spice_level = "none"
        for level, indicators in SPICE_TIERS:
            if _first_match(spice_text, indicators):
                spice_level = level
                break

        return FoodPairingContext(
            main_dish=main_dish,
            cuisine=cuisine,
            flavors=flavors,
            cooking_method=cooking_method,
            richness=richness,
            spice_level=spice_level,
        )

    def analyze_preferences(self, request: RecommendationRequest) -> PreferenceContext:
        profile = request.user_profile
        families = [preferences for _, preferences in profile.families()]

        recent = list((request.inventory or [])[-10:])

        disliked = [item for preferences in families for item in preferences.disliked_characteristics]
        regions = {wine.region for wine in recent if wine.region}
        varietals = {varietal for wine in recent for varietal in wine.varietal}

        diversity_score = min(10.0, (len(regions) + len(varietals)) / 2)
        experience_score = min(10.0, len(profile.learning_history) / 5)
        adventurousness = max(1, min(10, _round_half_up((diversity_score + experience_score) / 2)))

        preferred_producers = [
            record.wine_id for record in profile.learning_history if record.rating >= 4
        ][:5]

        return PreferenceContext(
            taste_profile=profile,
            recent_consumption=recent,
            disliked_characteristics=disliked,
            preferred_producers=preferred_producers,
            adventurousness=adventurousness,
        )

    def analyze_constraints(self, request: RecommendationRequest) -> ConstraintContext:
        return ConstraintContext(
            price_range=request.context.price_range,
            availability="inventory_only" if request.inventory else "purchase_allowed",
        )

    def analyze_urgency(self, request: RecommendationRequest) -> UrgencyContext:
        query = request.query.lower()
        if _first_match(query, HIGH_URGENCY):
            level = "high"
        elif _first_match(query, LOW_URGENCY):
            level = "low"
        else:
            level = "medium"

        past_peak = any(
            wine.drinking_window.current_status in PAST_PEAK_STATUSES for wine in request.inventory or []
        )

        return UrgencyContext(
            level=level,
            drinking_window_priority=past_peak,
            immediate_need=level == "high",
            planning_ahead=level == "low",
        )
